from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from enum import Enum


class StoreModel(BaseModel):
    """Base for documents kept in the realtime store (camelCase keys on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ──────────────────────────────────────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────────────────────────────────────

class DoctorStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class AppointmentStatus(str, Enum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class AppointmentType(str, Enum):
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow-up"
    EMERGENCY = "emergency"


class PrescriptionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PrescriptionType(str, Enum):
    MEDICATION = "medication"
    LAB_REPORT = "lab-report"
    X_RAY = "x-ray"
    BLOOD_TEST = "blood-test"
    OTHER = "other"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    WAITING = "waiting"
    ESCALATED = "escalated"


class SenderType(str, Enum):
    PATIENT = "patient"
    SUPPORT = "support"
    DOCTOR = "doctor"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    DISMISSED = "dismissed"


# ──────────────────────────────────────────────────────────────────────────────
# Doctors & departments
# ──────────────────────────────────────────────────────────────────────────────

class DoctorProfile(StoreModel):
    name: str
    email: Optional[str] = None
    specialty: str = ""
    experience: Optional[str] = None
    license_number: Optional[str] = None
    phone_number: Optional[str] = None
    department: str = ""
    status: DoctorStatus = DoctorStatus.AVAILABLE
    avatar: Optional[str] = None
    qualification: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[str] = None
    is_active: bool = True


class TimeSlot(StoreModel):
    time: str
    available: bool = True
    duration: int = 30  # minutes
    booked_by: Optional[str] = None


class BreakTime(StoreModel):
    start: str
    end: str


class DaySchedule(StoreModel):
    is_available: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    break_time: Optional[BreakTime] = None
    time_slots: Dict[str, TimeSlot] = Field(default_factory=dict)


class DoctorStats(StoreModel):
    total_appointments: int = 0
    total_patients: int = 0
    rating: float = 0.0
    review_count: int = 0


class Doctor(StoreModel):
    id: Optional[str] = None
    profile: DoctorProfile
    schedule: Dict[str, DaySchedule] = Field(default_factory=dict)  # weekday -> schedule
    stats: DoctorStats = Field(default_factory=DoctorStats)


class DepartmentLocation(StoreModel):
    building: str = ""
    floor: str = ""
    wing: str = ""


class DepartmentContact(StoreModel):
    phone: str = ""
    email: str = ""
    emergency_phone: str = ""


class Department(StoreModel):
    id: Optional[str] = None
    name: str
    description: str = ""
    head: Optional[str] = None  # doctorId
    location: DepartmentLocation = Field(default_factory=DepartmentLocation)
    contact_info: DepartmentContact = Field(default_factory=DepartmentContact)
    services: List[str] = Field(default_factory=list)
    doctors: List[str] = Field(default_factory=list)
    is_active: bool = True


# ──────────────────────────────────────────────────────────────────────────────
# Appointments
# ──────────────────────────────────────────────────────────────────────────────

class AppointmentDetails(StoreModel):
    date: str
    time_slot: str
    duration: int = 30
    type: AppointmentType = AppointmentType.CONSULTATION
    status: AppointmentStatus = AppointmentStatus.UPCOMING
    location: str = ""
    room_number: str = ""


class PatientInfo(StoreModel):
    name: str
    phone_number: str
    email: str
    reason_for_visit: str = ""
    symptoms: Optional[List[str]] = None
    priority: str = "normal"  # low, normal, high, emergency


class AppointmentTimestamps(StoreModel):
    created_at: Optional[str] = None
    scheduled_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None


class AppointmentNotes(StoreModel):
    patient_notes: str = ""
    doctor_notes: str = ""
    admin_notes: str = ""


class AppointmentReminders(StoreModel):
    sent_24h: bool = Field(default=False, alias="sent24h")
    sent_2h: bool = Field(default=False, alias="sent2h")
    sms_reminder: bool = True
    email_reminder: bool = True


class Appointment(StoreModel):
    id: Optional[str] = None
    doctor_id: str
    appointment_details: AppointmentDetails
    patient_info: PatientInfo
    timestamps: AppointmentTimestamps = Field(default_factory=AppointmentTimestamps)
    notes: AppointmentNotes = Field(default_factory=AppointmentNotes)
    reminders: AppointmentReminders = Field(default_factory=AppointmentReminders)

    @property
    def status(self) -> AppointmentStatus:
        return self.appointment_details.status


# ──────────────────────────────────────────────────────────────────────────────
# Prescriptions
# ──────────────────────────────────────────────────────────────────────────────

class PrescriptionDetails(StoreModel):
    title: str
    type: PrescriptionType = PrescriptionType.OTHER
    status: PrescriptionStatus = PrescriptionStatus.ACTIVE
    prescribed_date: Optional[str] = None
    expiry_date: Optional[str] = None
    instructions: str = ""


class Medication(StoreModel):
    name: str
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    instructions: str = ""
    quantity: str = ""


class PrescriptionDocument(StoreModel):
    file_name: str
    file_url: str = ""  # legacy; content is stored inline
    file_content: Optional[str] = None  # base64
    file_type: str
    file_size: str
    uploaded_at: str
    uploaded_by: str


class PrescriptionTimestamps(StoreModel):
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Prescription(StoreModel):
    id: Optional[str] = None
    doctor_id: str
    appointment_id: str = ""
    prescription_details: PrescriptionDetails
    medications: Dict[str, Medication] = Field(default_factory=dict)
    documents: Dict[str, PrescriptionDocument] = Field(default_factory=dict)
    timestamps: PrescriptionTimestamps = Field(default_factory=PrescriptionTimestamps)
    notes: str = ""


# ──────────────────────────────────────────────────────────────────────────────
# Chat support
# ──────────────────────────────────────────────────────────────────────────────

class ConversationParticipants(StoreModel):
    patient: Optional[str] = None
    support_agent: Optional[str] = None
    doctor: Optional[str] = None


class ConversationInfo(StoreModel):
    type: str = "general"  # general, medical, technical, emergency
    status: ConversationStatus = ConversationStatus.ACTIVE
    priority: str = "normal"  # low, normal, high, urgent
    category: str = "general"  # general, appointment, billing, medical, technical, other
    subject: str = "General Support"
    language: str = "en"


class ConversationTimestamps(StoreModel):
    created_at: Optional[str] = None
    last_message_at: Optional[str] = None
    updated_at: Optional[str] = None
    resolved_at: Optional[str] = None


class ConversationMetadata(StoreModel):
    tags: List[str] = Field(default_factory=list)
    escalated: bool = False
    escalation_reason: Optional[str] = None
    patient_satisfaction: Optional[int] = None


class Conversation(StoreModel):
    id: Optional[str] = None
    participants: ConversationParticipants = Field(default_factory=ConversationParticipants)
    conversation_info: ConversationInfo = Field(default_factory=ConversationInfo)
    timestamps: ConversationTimestamps = Field(default_factory=ConversationTimestamps)
    metadata: ConversationMetadata = Field(default_factory=ConversationMetadata)


class MessageContent(StoreModel):
    text: str
    type: str = "text"  # text, image, file, system_message
    attachments: List[Any] = Field(default_factory=list)


class MessageTimestamps(StoreModel):
    sent_at: str
    delivered_at: Optional[str] = None
    read_at: Optional[str] = None


class Message(StoreModel):
    id: Optional[str] = None
    sender_id: str
    sender_type: SenderType
    content: MessageContent
    timestamps: MessageTimestamps
    status: MessageStatus = MessageStatus.SENT
    is_edited: bool = False
    edited_at: Optional[str] = None
    reply_to: Optional[str] = None

    @property
    def text(self) -> str:
        return self.content.text


# ──────────────────────────────────────────────────────────────────────────────
# Notifications
# ──────────────────────────────────────────────────────────────────────────────

class NotificationAction(StoreModel):
    type: str
    label: str
    url: str


class NotificationTimestamps(StoreModel):
    created_at: Optional[str] = None
    scheduled_for: Optional[str] = None
    sent_at: Optional[str] = None
    read_at: Optional[str] = None
    dismissed_at: Optional[str] = None


class Notification(StoreModel):
    id: Optional[str] = None
    type: str  # appointment_reminder, prescription_reminder, chat_message, system_update
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = NotificationStatus.UNREAD
    priority: str = "normal"
    channels: List[str] = Field(default_factory=lambda: ["in_app"])
    timestamps: NotificationTimestamps = Field(default_factory=NotificationTimestamps)
    actions: List[NotificationAction] = Field(default_factory=list)


# ──────────────────────────────────────────────────────────────────────────────
# Global settings & analytics
# ──────────────────────────────────────────────────────────────────────────────

class HospitalInfo(StoreModel):
    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    emergency_phone: str = ""
    website: str = ""
    operating_hours: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class EscalationRules(StoreModel):
    response_time_threshold: int = 300  # seconds
    max_wait_time: int = 900  # seconds
    keywords: List[str] = Field(default_factory=list)


class ChatSettings(StoreModel):
    max_concurrent_chats: int = 5
    auto_response_enabled: bool = True
    auto_response_message: str = ""
    auto_response_delay: int = 1000  # milliseconds
    operating_hours: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    offline_message: str = ""
    escalation_rules: EscalationRules = Field(default_factory=EscalationRules)


class CancellationPolicy(StoreModel):
    min_notice_hours: int = 24
    penalty_fee: float = 0


class AppointmentSettings(StoreModel):
    max_advance_booking: int = 90  # days
    min_advance_booking: int = 1  # hours
    slot_duration: int = 30  # minutes
    buffer_time: int = 15  # minutes
    cancellation_policy: CancellationPolicy = Field(default_factory=CancellationPolicy)


class GlobalSettings(StoreModel):
    hospital_info: HospitalInfo
    chat_settings: ChatSettings = Field(default_factory=ChatSettings)
    appointment_settings: AppointmentSettings = Field(default_factory=AppointmentSettings)


class DailyAppointmentStats(StoreModel):
    total: int = 0
    completed: int = 0
    cancelled: int = 0
    no_show: int = 0


class DailyChatStats(StoreModel):
    total_chats: int = 0
    resolved: int = 0
    escalated: int = 0
    avg_response_time: float = 0


class DailyStats(StoreModel):
    appointments: DailyAppointmentStats = Field(default_factory=DailyAppointmentStats)
    chat_support: DailyChatStats = Field(default_factory=DailyChatStats)
    user_registrations: int = 0
    prescriptions_uploaded: int = 0
