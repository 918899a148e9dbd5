from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, Any
from enum import Enum

from .database_models import StoreModel

# ──────────────────────────────────────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────────────────────────────────────

class UserRole(str, Enum):
    ADMIN = "admin"
    PATIENT = "patient"


def _fold_legacy_role(value: Any) -> Any:
    # Older documents stored plain users as "user"
    if value in (None, "", "user"):
        return UserRole.PATIENT
    return value


# ──────────────────────────────────────────────────────────────────────────────
# Profile documents
# ──────────────────────────────────────────────────────────────────────────────

class Address(StoreModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class EmergencyContact(StoreModel):
    name: str = ""
    phone_number: str = ""
    relationship: str = ""


class UserProfile(StoreModel):
    uid: str
    email: str
    display_name: str = ""
    phone_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None  # male, female, other
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    role: UserRole = UserRole.PATIENT
    avatar: Optional[str] = None
    created_at: Optional[str] = None
    last_login_at: Optional[str] = None
    updated_at: Optional[str] = None
    is_active: bool = True
    email_verified: bool = False

    @field_validator("role", mode="before")
    @classmethod
    def fold_legacy_role(cls, value):
        return _fold_legacy_role(value)


class UserPreferences(StoreModel):
    language: str = "en"
    timezone: str = "UTC"
    date_format: str = "MM/DD/YYYY"
    time_format: str = "12h"


class NotificationSettings(StoreModel):
    email_notifications: bool = True
    sms_notifications: bool = True
    push_notifications: bool = True
    appointment_reminders: bool = True
    prescription_reminders: bool = True
    marketing_emails: bool = False


class PrivacySettings(StoreModel):
    profile_visibility: str = "private"  # private, friends, public
    share_data_for_research: bool = False
    allow_communication_from_doctors: bool = True


class SystemSettings(StoreModel):
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)


# ──────────────────────────────────────────────────────────────────────────────
# Session (explicit identity passed into services and workflows)
# ──────────────────────────────────────────────────────────────────────────────

class Session(BaseModel):
    uid: str
    email: str
    display_name: Optional[str] = None
    email_verified: bool = False
    role: UserRole = UserRole.PATIENT
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def fold_legacy_role(cls, value):
        return _fold_legacy_role(value)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# ──────────────────────────────────────────────────────────────────────────────
# Request payloads
# ──────────────────────────────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    avatar: Optional[str] = None

    def to_store(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, camelCased."""
        data = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if isinstance(value, StoreModel):
                value = value.to_store()
            data[to_camel(name)] = value
        return data
