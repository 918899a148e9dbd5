# Root collections
COLLECTIONS = {
    'doctors': 'doctors',
    'departments': 'departments',
    'global_settings': 'globalSettings',
    'analytics': 'analytics',
    'users': 'users',
}

# Path templates (slash-delimited, relative to the database root)
PATHS = {
    'doctor': 'doctors/{doctor_id}',
    'doctor_profile': 'doctors/{doctor_id}/profile',
    'time_slot': 'doctors/{doctor_id}/schedule/{day}/timeSlots/{slot_id}',
    'department': 'departments/{department_id}',
    'daily_stats': 'analytics/dailyStats/{date}',
    'user': 'users/{user_id}',
    'user_profile': 'users/{user_id}/profile',
    'system_settings': 'users/{user_id}/systemSettings',
    'appointments': 'users/{user_id}/appointments',
    'appointment': 'users/{user_id}/appointments/{appointment_id}',
    'prescriptions': 'users/{user_id}/prescriptions',
    'prescription': 'users/{user_id}/prescriptions/{prescription_id}',
    'notifications': 'users/{user_id}/notifications',
    'notification': 'users/{user_id}/notifications/{notification_id}',
    'conversations': 'users/{user_id}/chatSupport/conversations',
    'conversation': 'users/{user_id}/chatSupport/conversations/{conversation_id}',
    'messages': 'users/{user_id}/chatSupport/messages/{conversation_id}',
    'message': 'users/{user_id}/chatSupport/messages/{conversation_id}/{message_id}',
}

WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


def path_for(name: str, **params: str) -> str:
    """Render a path template, rejecting ids that would escape their node."""
    for key, value in params.items():
        if not value or any(ch in str(value) for ch in '/.#$[]'):
            raise ValueError(f"Invalid {key} for path '{name}': {value!r}")
    return PATHS[name].format(**params)
