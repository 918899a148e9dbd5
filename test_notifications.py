import pytest

from patient_portal.models.database_models import NotificationStatus
from patient_portal.services.notification_service import NotificationService


@pytest.mark.asyncio
async def test_notifications_lifecycle(gateway):
    service = NotificationService(gateway)
    first = await service.create_notification("user_1", "Welcome", "Thanks for joining MediCare")
    second = await service.create_notification(
        "user_1", "Appointment confirmed", "Monday 10:30 AM", notification_type="appointment_reminder"
    )

    assert await service.unread_count("user_1") == 2

    await service.mark_read("user_1", first.id)
    await service.mark_dismissed("user_1", second.id)

    visible = await service.list_notifications("user_1")
    assert [n.id for n in visible] == [first.id]
    assert visible[0].status == NotificationStatus.READ
    assert visible[0].timestamps.read_at is not None

    everything = await service.list_notifications("user_1", include_dismissed=True)
    assert len(everything) == 2
    assert gateway.get(f"users/user_1/notifications/{second.id}/timestamps/dismissedAt") is not None


@pytest.mark.asyncio
async def test_mark_all_read_is_one_merge(gateway):
    service = NotificationService(gateway)
    for title in ("One", "Two", "Three"):
        await service.create_notification("user_1", title, "body")
    gateway.writes.clear()

    assert await service.mark_all_read("user_1") == 3
    assert gateway.writes == [('update', 'users/user_1/notifications')]
    assert await service.unread_count("user_1") == 0

    gateway.writes.clear()
    assert await service.mark_all_read("user_1") == 0
    assert gateway.writes == []


@pytest.mark.asyncio
async def test_watch_notifications_delivers_full_list(gateway):
    service = NotificationService(gateway)
    seen = []
    subscription = await service.watch_notifications("user_1", lambda items: seen.append(len(items)))

    await service.create_notification("user_1", "One", "body")
    await service.create_notification("user_1", "Two", "body")
    subscription.close()
    await service.create_notification("user_1", "Three", "body")

    assert seen == [0, 1, 2]
