"""
Initial data: sample doctors with weekly slots, departments, hospital-wide
settings and today's empty analytics node. Users are never seeded; they are
created on registration.

Run directly to seed a fresh database:  python -m patient_portal.database.seed
"""

import asyncio
import logging
from typing import Dict

from ..models.database_models import (
    AppointmentSettings, BreakTime, CancellationPolicy, ChatSettings, DailyStats,
    DaySchedule, Department, DepartmentContact, DepartmentLocation, Doctor,
    DoctorProfile, DoctorStats, EscalationRules, GlobalSettings, HospitalInfo, TimeSlot
)
from ..services.analytics_service import today_key
from .gateway import get_gateway
from .paths import COLLECTIONS, path_for

logger = logging.getLogger(__name__)


def _slots(*times: str) -> Dict[str, TimeSlot]:
    return {f"slot{i}": TimeSlot(time=t, available=True, duration=30) for i, t in enumerate(times, start=1)}


def sample_doctors() -> Dict[str, Doctor]:
    return {
        'doctor_001': Doctor(
            profile=DoctorProfile(
                name="Dr. John Smith",
                email="john.smith@medicare.com",
                specialty="Cardiologist",
                experience="15 years experience",
                license_number="MD123456",
                phone_number="+1555123456",
                department="cardiology",
                avatar="https://example.com/avatar1.jpg",
                qualification="MBBS, MD Cardiology",
                bio="Experienced cardiologist specializing in heart disease prevention and treatment",
                created_at="2025-01-01T00:00:00Z",
            ),
            schedule={
                'monday': DaySchedule(
                    start_time="09:00",
                    end_time="17:00",
                    break_time=BreakTime(start="12:00", end="13:00"),
                    time_slots=_slots("09:00 AM", "10:30 AM", "11:00 AM", "02:00 PM", "03:30 PM", "04:00 PM"),
                ),
            },
            stats=DoctorStats(rating=4.8, review_count=67, total_appointments=245, total_patients=189),
        ),
        'doctor_002': Doctor(
            profile=DoctorProfile(
                name="Dr. Sarah Johnson",
                email="sarah.johnson@medicare.com",
                specialty="Neurologist",
                experience="12 years experience",
                license_number="MD789012",
                phone_number="+1555123457",
                department="neurology",
                avatar="https://example.com/avatar2.jpg",
                qualification="MBBS, MD Neurology",
                bio="Specialized neurologist focusing on brain and nervous system disorders",
                created_at="2025-01-01T00:00:00Z",
            ),
            schedule={
                'monday': DaySchedule(
                    start_time="08:30",
                    end_time="16:30",
                    time_slots=_slots("08:30 AM", "10:00 AM", "11:30 AM", "01:00 PM", "03:00 PM", "04:30 PM"),
                ),
            },
            stats=DoctorStats(rating=4.9, review_count=52, total_appointments=189, total_patients=145),
        ),
    }


def sample_departments() -> Dict[str, Department]:
    return {
        'dept_001': Department(
            name="Cardiology",
            description="Heart and cardiovascular care",
            head="doctor_001",
            location=DepartmentLocation(building="Main Building", floor="2nd Floor", wing="East Wing"),
            contact_info=DepartmentContact(
                phone="+1555123456", email="cardiology@medicare.com", emergency_phone="+1555911911"
            ),
            services=["ECG", "Echocardiogram", "Stress Testing", "Cardiac Catheterization"],
            doctors=["doctor_001"],
        ),
        'dept_002': Department(
            name="Neurology",
            description="Brain and nervous system care",
            head="doctor_002",
            location=DepartmentLocation(building="Main Building", floor="3rd Floor", wing="West Wing"),
            contact_info=DepartmentContact(
                phone="+1555123457", email="neurology@medicare.com", emergency_phone="+1555911912"
            ),
            services=["EEG", "MRI", "CT Scan", "Neurological Examination"],
            doctors=["doctor_002"],
        ),
    }


def _hours(weekday, saturday, sunday, keys=('open', 'close')):
    hours = {day: dict(zip(keys, weekday)) for day in ('monday', 'tuesday', 'wednesday', 'thursday', 'friday')}
    hours['saturday'] = dict(zip(keys, saturday))
    hours['sunday'] = dict(zip(keys, sunday))
    return hours


def sample_global_settings() -> GlobalSettings:
    return GlobalSettings(
        hospital_info=HospitalInfo(
            name="MediCare Hospital",
            address="123 Health St, Medical City",
            phone="+1555123456",
            email="info@medicare.com",
            emergency_phone="+1555911911",
            website="https://medicare.com",
            operating_hours=_hours(("06:00", "22:00"), ("08:00", "20:00"), ("08:00", "18:00")),
        ),
        appointment_settings=AppointmentSettings(
            max_advance_booking=90,
            min_advance_booking=1,
            slot_duration=30,
            buffer_time=15,
            cancellation_policy=CancellationPolicy(min_notice_hours=24, penalty_fee=25),
        ),
        chat_settings=ChatSettings(
            max_concurrent_chats=5,
            auto_response_enabled=True,
            auto_response_message="Hello! Welcome to MediCare Hospital support. How can I help you today?",
            auto_response_delay=1000,
            operating_hours=_hours(("08:00", "20:00"), ("09:00", "18:00"), ("10:00", "16:00"), keys=('start', 'end')),
            offline_message="Our support team is currently offline. Please leave a message and we'll get back to you soon.",
            escalation_rules=EscalationRules(
                response_time_threshold=300,
                max_wait_time=900,
                keywords=["emergency", "urgent", "pain", "bleeding"],
            ),
        ),
    )


async def is_database_initialized(gateway=None) -> bool:
    """Seeded means both `doctors` and `globalSettings` exist."""
    db = gateway or get_gateway()
    doctors = await db.read(COLLECTIONS['doctors'])
    global_settings = await db.read(COLLECTIONS['global_settings'])
    return bool(doctors) and bool(global_settings)


async def initialize_database(gateway=None) -> None:
    """
    Write the seed collections one by one. `users` is left alone so seeding an
    existing database never wipes accounts.
    """
    db = gateway or get_gateway()
    logger.info("🔄 Initializing database with sample doctors, departments and settings...")

    await db.set(
        COLLECTIONS['doctors'],
        {doctor_id: {**doctor.to_store(), 'id': doctor_id} for doctor_id, doctor in sample_doctors().items()}
    )
    await db.set(
        COLLECTIONS['departments'],
        {dept_id: {**dept.to_store(), 'id': dept_id} for dept_id, dept in sample_departments().items()}
    )
    await db.set(COLLECTIONS['global_settings'], sample_global_settings().to_store())
    await db.set(path_for('daily_stats', date=today_key()), DailyStats().to_store())

    logger.info("✅ Database initialized: doctors, departments, globalSettings, analytics")


async def auto_initialize_database(gateway=None) -> bool:
    """Seed only when needed. Returns True if seeding ran."""
    if await is_database_initialized(gateway):
        logger.info("✅ Database already initialized")
        return False
    logger.info("📊 Database not initialized. Starting initialization...")
    await initialize_database(gateway)
    return True


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    asyncio.run(auto_initialize_database())
