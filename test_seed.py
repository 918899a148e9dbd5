import pytest

from patient_portal.database.seed import auto_initialize_database, initialize_database, is_database_initialized
from patient_portal.services.department_service import DepartmentService, GlobalSettingsService
from patient_portal.services.doctor_service import DoctorService, available_slots


@pytest.mark.asyncio
async def test_seed_writes_doctors_departments_and_settings(gateway):
    assert await is_database_initialized(gateway) is False

    await initialize_database(gateway)

    assert await is_database_initialized(gateway) is True
    doctors = await DoctorService(gateway).list_doctors()
    assert set(doctors) == {"doctor_001", "doctor_002"}
    assert doctors["doctor_001"].profile.name == "Dr. John Smith"

    departments = await DepartmentService(gateway).list_departments()
    assert [d.name for d in departments] == ["Cardiology", "Neurology"]

    global_settings = await GlobalSettingsService(gateway).get_settings()
    assert global_settings.hospital_info.name == "MediCare Hospital"
    assert global_settings.appointment_settings.cancellation_policy.penalty_fee == 25


@pytest.mark.asyncio
async def test_seeded_monday_slots(gateway):
    await initialize_database(gateway)
    doctor = await DoctorService(gateway).get_doctor("doctor_001")

    slots = available_slots(doctor, "monday")
    assert [slot_id for slot_id, _ in slots] == ["slot1", "slot2", "slot3", "slot4", "slot5", "slot6"]
    assert dict(slots)["slot2"].time == "10:30 AM"
    assert available_slots(doctor, "sunday") == []


@pytest.mark.asyncio
async def test_auto_initialize_only_once_and_keeps_users(gateway):
    await gateway.set("users/user_1/profile", {'email': 'pat@example.com', 'displayName': 'Pat'})

    assert await auto_initialize_database(gateway) is True
    gateway.writes.clear()
    assert await auto_initialize_database(gateway) is False

    assert gateway.writes == []
    assert gateway.get("users/user_1/profile/email") == "pat@example.com"


@pytest.mark.asyncio
async def test_doctors_by_department(gateway):
    await initialize_database(gateway)
    cardiology = await DoctorService(gateway).get_doctors_by_department("cardiology")
    assert list(cardiology) == ["doctor_001"]
