"""
Path rendering and subscription handles, plus the merge semantics the
services rely on (exercised through the in-memory gateway).
"""
import asyncio

import pytest

from patient_portal.core.exceptions import GatewayError, SlotUnavailableError
from patient_portal.database.gateway import Subscription, dispatch_change
from patient_portal.database.paths import path_for
from patient_portal.services.doctor_service import DoctorService


def test_path_for_renders_templates():
    assert path_for('time_slot', doctor_id="doctor_001", day="monday", slot_id="slot2") == \
        "doctors/doctor_001/schedule/monday/timeSlots/slot2"
    assert path_for('messages', user_id="u1", conversation_id="c1") == "users/u1/chatSupport/messages/c1"


@pytest.mark.parametrize("bad_id", ["", "a/b", "a.b", "a#b", "a$b", "a[0]"])
def test_path_for_rejects_unsafe_ids(bad_id):
    with pytest.raises(ValueError):
        path_for('user', user_id=bad_id)


def test_subscription_close_is_idempotent():
    calls = []
    subscription = Subscription("users/u1", closer=lambda: calls.append(1))

    subscription.close()
    subscription()
    assert calls == [1]
    assert subscription.closed


def test_subscription_as_context_manager():
    calls = []
    with Subscription("doctors", closer=lambda: calls.append(1)) as subscription:
        assert not subscription.closed
    assert calls == [1]


def test_dispatch_skips_closed_subscriptions():
    seen = []
    subscription = Subscription("doctors")
    dispatch_change(subscription, seen.append, {'a': 1})
    subscription.close()
    dispatch_change(subscription, seen.append, {'a': 2})
    assert seen == [{'a': 1}]


@pytest.mark.asyncio
async def test_dispatch_from_another_thread_runs_on_the_loop():
    loop = asyncio.get_running_loop()
    delivered = asyncio.Event()
    seen = []

    def on_change(value):
        seen.append(value)
        delivered.set()

    subscription = Subscription("doctors")
    await asyncio.to_thread(dispatch_change, subscription, on_change, {'x': 1}, loop)
    await asyncio.wait_for(delivered.wait(), timeout=1)
    assert seen == [{'x': 1}]


@pytest.mark.asyncio
async def test_slash_keyed_update_keeps_siblings(gateway):
    await gateway.set("users/u1/appointments/a1", {
        'appointmentDetails': {'status': 'upcoming', 'timeSlot': '10:30 AM'},
        'timestamps': {'createdAt': 't0'},
    })
    await gateway.update("users/u1/appointments/a1", {
        'appointmentDetails/status': 'cancelled',
        'timestamps/cancelledAt': 't1',
    })

    stored = gateway.get("users/u1/appointments/a1")
    assert stored['appointmentDetails'] == {'status': 'cancelled', 'timeSlot': '10:30 AM'}
    assert stored['timestamps'] == {'createdAt': 't0', 'cancelledAt': 't1'}


@pytest.mark.asyncio
async def test_reserve_time_slot_is_conditional(gateway):
    await gateway.set("doctors/d1/schedule/monday/timeSlots/slot1", {'time': '09:00 AM', 'available': True})
    doctors = DoctorService(gateway)

    slot = await doctors.reserve_time_slot("d1", "monday", "slot1", "u1")
    assert slot.booked_by == "u1"

    with pytest.raises(SlotUnavailableError):
        await doctors.reserve_time_slot("d1", "monday", "slot1", "u2")
    with pytest.raises(SlotUnavailableError):
        await doctors.reserve_time_slot("d1", "monday", "missing", "u2")
    assert gateway.get("doctors/d1/schedule/monday/timeSlots/slot1/bookedBy") == "u1"


@pytest.mark.asyncio
async def test_injected_failures_surface_as_gateway_errors(gateway):
    gateway.fail('read', 'doctors')
    with pytest.raises(GatewayError) as exc_info:
        await DoctorService(gateway).list_doctors()
    assert exc_info.value.operation == 'read'
    assert exc_info.value.path == 'doctors'
