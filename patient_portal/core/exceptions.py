"""
Exception hierarchy shared by the gateway, services and workflows.
Routers translate these into HTTP responses at the request boundary.
"""

from enum import Enum
from typing import Optional


class PortalError(Exception):
    """Base class for every error raised by the portal"""


class GatewayError(PortalError):
    """A remote-store read/write failed"""

    def __init__(self, path: str, operation: str, cause: Optional[BaseException] = None):
        self.path = path
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed at '{path}': {cause}")


# ──────────────────────────────────────────────────────────────────────────────
# Identity
# ──────────────────────────────────────────────────────────────────────────────

class AuthErrorCategory(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_IN_USE = "email_in_use"
    WEAK_PASSWORD = "weak_password"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    ACCOUNT_DISABLED = "account_disabled"
    PROFILE_NOT_FOUND = "profile_not_found"
    UNKNOWN = "unknown"


AUTH_ERROR_MESSAGES = {
    AuthErrorCategory.INVALID_CREDENTIALS: "Invalid email or password",
    AuthErrorCategory.EMAIL_IN_USE: "This email address is already registered",
    AuthErrorCategory.WEAK_PASSWORD: "Password should be at least 6 characters",
    AuthErrorCategory.TOO_MANY_ATTEMPTS: "Too many failed attempts. Please try again later",
    AuthErrorCategory.ACCOUNT_DISABLED: "This account has been disabled",
    AuthErrorCategory.PROFILE_NOT_FOUND: "User profile not found",
    AuthErrorCategory.UNKNOWN: "An error occurred. Please try again",
}


class AuthError(PortalError):
    def __init__(self, category: AuthErrorCategory):
        self.category = category
        self.message = AUTH_ERROR_MESSAGES[category]
        super().__init__(self.message)


# ──────────────────────────────────────────────────────────────────────────────
# Booking
# ──────────────────────────────────────────────────────────────────────────────

class BookingError(PortalError):
    """Base class for booking workflow failures"""


class BookingValidationError(BookingError):
    """Rejected before any remote call was attempted"""


class SlotUnavailableError(BookingError):
    def __init__(self, doctor_id: str, day: str, slot_id: str, appointment_id: Optional[str] = None):
        self.doctor_id = doctor_id
        self.day = day
        self.slot_id = slot_id
        self.appointment_id = appointment_id
        super().__init__("This time slot is no longer available. Please choose another slot.")


class BookingPartialFailure(BookingError):
    """The appointment exists but its slot could not be marked as booked"""

    def __init__(self, appointment_id: str, cause: Optional[BaseException] = None):
        self.appointment_id = appointment_id
        self.cause = cause
        super().__init__(
            "Your appointment was recorded but the time slot could not be reserved. "
            "Our staff has been notified; please contact the hospital to confirm."
        )


# ──────────────────────────────────────────────────────────────────────────────
# Files
# ──────────────────────────────────────────────────────────────────────────────

class FileValidationError(PortalError):
    TOO_LARGE = "too_large"
    UNSUPPORTED_TYPE = "unsupported_type"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


# ──────────────────────────────────────────────────────────────────────────────
# Chat completion (never leaves the chat workflow)
# ──────────────────────────────────────────────────────────────────────────────

class ChatCompletionError(PortalError):
    pass


class UnrecognizedResponseShape(ChatCompletionError):
    pass
