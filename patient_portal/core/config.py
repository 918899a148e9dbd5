# patient_portal/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "medicare-4b741")
    FIREBASE_DATABASE_URL: str = os.getenv(
        "FIREBASE_DATABASE_URL",
        "https://medicare-4b741-default-rtdb.firebaseio.com/",
    )
    FIREBASE_WEB_API_KEY: str | None = os.getenv("FIREBASE_WEB_API_KEY")
    FIREBASE_SERVICE_ACCOUNT_PATH: str = os.getenv(
        "FIREBASE_SERVICE_ACCOUNT_PATH",
        "firebase-service-account.json",
    )
    AUTO_INITIALIZE_DATABASE: bool = os.getenv("AUTO_INITIALIZE_DATABASE", "false").lower() == "true"

    # Chat-completion API (Groq "responses" endpoint by default)
    CHAT_API_URL: str = os.getenv("CHAT_API_URL", "https://api.groq.com/openai/v1/responses")
    CHAT_API_KEY: str | None = os.getenv("CHAT_API_KEY") or os.getenv("GROQ_API_KEY")
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "deepseek-r1-distill-llama-70b")
    CHAT_API_TIMEOUT: float = float(os.getenv("CHAT_API_TIMEOUT", "20"))
    CHAT_REPLY_DELAY: float = float(os.getenv("CHAT_REPLY_DELAY", "1.0"))

    # Device-local cache for conversations/messages
    LOCAL_CACHE_DIR: str = os.getenv("LOCAL_CACHE_DIR", ".portal_cache")

    # Uploads
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    IMAGE_MAX_WIDTH: int = int(os.getenv("IMAGE_MAX_WIDTH", "1200"))
    IMAGE_QUALITY: int = int(os.getenv("IMAGE_QUALITY", "80"))

    # Appointment reminders
    ENABLE_REMINDERS: bool = os.getenv("ENABLE_REMINDERS", "true").lower() == "true"
    REMINDER_INTERVAL_MINUTES: int = int(os.getenv("REMINDER_INTERVAL_MINUTES", "15"))

    # Hospital wall-clock timezone; slot times like "10:30 AM" are local to it.
    # Set via environment variable: TZ_OFFSET=6 for UTC+6, etc.
    TZ_OFFSET: int = int(os.getenv("TZ_OFFSET", "0"))

    # Hospital defaults used when building appointments
    HOSPITAL_LOCATION: str = os.getenv("HOSPITAL_LOCATION", "MediCare Hospital, Main Building")
    DEFAULT_ROOM: str = os.getenv("DEFAULT_ROOM", "A-101")

    FRONTEND_ORIGINS: list = [
        origin.strip()
        for origin in os.getenv("FRONTEND_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if origin.strip()
    ]


settings = Settings()


def assert_chat_ready():
    """Call this only if the AI assistant must be reachable."""
    if not settings.CHAT_API_KEY:
        raise RuntimeError(
            "Chat API key is missing. Set CHAT_API_KEY (or GROQ_API_KEY) in .env."
        )
