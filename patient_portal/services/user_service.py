"""
User Service - the users/{userId} document: profile, system settings and the
empty sub-collections every account is materialized with
"""

from typing import Any, Dict, Optional
import logging
import re

from pydantic.alias_generators import to_camel

from ..core.clock import now_iso
from ..database.gateway import get_gateway
from ..database.paths import path_for
from ..models.user import (
    NotificationSettings, PrivacySettings, ProfileUpdate, SystemSettings,
    UserPreferences, UserProfile, UserRole
)

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^\+?[\d\s\-().]{7,20}$')

SETTINGS_SECTIONS = {
    'preferences': UserPreferences,
    'notifications': NotificationSettings,
    'privacy': PrivacySettings,
}


def validate_profile_update(update: ProfileUpdate) -> Optional[str]:
    """Return an error message for an invalid edit, or None."""
    if update.phone_number and not PHONE_PATTERN.match(update.phone_number):
        return "Invalid phone number format"
    if update.display_name is not None:
        name = update.display_name.strip()
        if not name or len(name) > 100:
            return "Display name must be between 1 and 100 characters"
    if update.gender and update.gender not in ('male', 'female', 'other'):
        return "Gender must be male, female or other"
    return None


class UserService:
    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def create_user(
        self,
        uid: str,
        email: str,
        display_name: str,
        role: UserRole = UserRole.PATIENT,
        email_verified: bool = False
    ) -> UserProfile:
        """
        Write the complete User document in one overwrite: profile, default system
        settings and empty appointment/prescription/notification/chat children.
        """
        now = now_iso()
        profile = UserProfile(
            uid=uid,
            email=email,
            display_name=display_name,
            role=role,
            created_at=now,
            last_login_at=now,
            updated_at=now,
            is_active=True,
            email_verified=email_verified,
        )
        document = {
            'profile': profile.to_store(),
            'appointments': {},
            'prescriptions': {},
            'systemSettings': SystemSettings().to_store(),
            'chatSupport': {
                'conversations': {},
                'messages': {},
            },
            'notifications': {},
        }
        await self.db.set(path_for('user', user_id=uid), document)
        logger.info(f"Materialized user document for {uid} ({role.value if isinstance(role, UserRole) else role})")
        return profile

    async def get_user(self, uid: str) -> Optional[Dict[str, Any]]:
        return await self.db.read(path_for('user', user_id=uid))

    async def get_profile(self, uid: str) -> Optional[UserProfile]:
        data = await self.db.read(path_for('user_profile', user_id=uid))
        if not data:
            return None
        return UserProfile.model_validate({'uid': uid, **data})

    async def update_profile(self, uid: str, update: ProfileUpdate) -> None:
        """Merge the edited fields; untouched profile fields are preserved."""
        error = validate_profile_update(update)
        if error:
            raise ValueError(error)

        fields = update.to_store()
        if not fields:
            return
        fields['updatedAt'] = now_iso()
        await self.db.update(path_for('user_profile', user_id=uid), fields)
        logger.info(f"Updated profile of {uid}: {sorted(fields)}")

    async def update_last_login(self, uid: str) -> None:
        now = now_iso()
        await self.db.update(
            path_for('user_profile', user_id=uid),
            {'lastLoginAt': now, 'updatedAt': now}
        )

    async def set_email_verified(self, uid: str, verified: bool) -> None:
        await self.db.update(
            path_for('user_profile', user_id=uid),
            {'emailVerified': verified, 'updatedAt': now_iso()}
        )

    # ===== System settings =====

    async def get_system_settings(self, uid: str) -> SystemSettings:
        data = await self.db.read(path_for('system_settings', user_id=uid))
        return SystemSettings.model_validate(data or {})

    async def update_settings_section(self, uid: str, section: str, values: Dict[str, Any]) -> None:
        """
        Merge into one of `preferences`, `notifications` or `privacy`.
        Unknown keys are rejected so typos don't land in the store.
        """
        model = SETTINGS_SECTIONS.get(section)
        if model is None:
            raise ValueError(f"Unknown settings section: {section}")

        aliases = {to_camel(name) for name in model.model_fields}
        wire_keys = {key: to_camel(key) if '_' in key else key for key in values}
        unknown = [key for key, wire in wire_keys.items() if wire not in aliases]
        if unknown:
            raise ValueError(f"Unknown {section} settings: {', '.join(sorted(unknown))}")

        parsed = model.model_validate({wire: values[key] for key, wire in wire_keys.items()}).to_store()
        fields = {f'{section}/{wire}': parsed[wire] for wire in wire_keys.values() if wire in parsed}
        if not fields:
            return
        await self.db.update(path_for('system_settings', user_id=uid), fields)

    async def update_preferences(self, uid: str, values: Dict[str, Any]) -> None:
        await self.update_settings_section(uid, 'preferences', values)

    async def update_notification_settings(self, uid: str, values: Dict[str, Any]) -> None:
        await self.update_settings_section(uid, 'notifications', values)

    async def update_privacy_settings(self, uid: str, values: Dict[str, Any]) -> None:
        await self.update_settings_section(uid, 'privacy', values)



# Singleton instance
_user_service = None

def get_user_service() -> UserService:
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service
