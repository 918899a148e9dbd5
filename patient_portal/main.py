from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from patient_portal.core.config import settings, assert_chat_ready
from patient_portal.core.exceptions import (
    AuthError, BookingPartialFailure, BookingValidationError, FileValidationError,
    GatewayError, PortalError, SlotUnavailableError
)
from patient_portal.core.firebase_init import initialize_firebase, get_firebase_status
from patient_portal.core.scheduler import start_scheduler, stop_scheduler
from patient_portal.database.seed import auto_initialize_database
from patient_portal.services.chat_completion import close_completion_client

# Initialize Firebase first
print("🔥 Initializing Firebase for FastAPI app...")
firebase_status = get_firebase_status()
print(f"Firebase status: {firebase_status}")

if not firebase_status['available']:
    success = initialize_firebase()
    if success:
        print("✅ Firebase initialized successfully")
    else:
        print("⚠️ Firebase initialization failed - app will run without Firebase features")

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="MediCare Patient Portal API",
    description="Appointments, prescriptions and support chat for MediCare Hospital patients",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ERROR MAPPING ====================

def _status_for(error: PortalError) -> int:
    if isinstance(error, (BookingValidationError, FileValidationError)):
        return 400
    if isinstance(error, SlotUnavailableError):
        return 409
    if isinstance(error, AuthError):
        return 401
    if isinstance(error, (GatewayError, BookingPartialFailure)):
        return 502
    return 400

@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Errors that escaped a router; storage failures are logged with their path"""
    status_code = _status_for(exc)
    if isinstance(exc, GatewayError):
        logger.error(f"[Gateway] {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"success": False, "detail": str(exc)})

@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"success": False, "detail": str(exc)})

# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup_event():
    """Seed an empty database if configured, then start the reminder scheduler"""
    logger.info("🚀 FastAPI startup event triggered")
    try:
        assert_chat_ready()
    except RuntimeError as e:
        logger.warning(f"⚠️ {e} Support chat will answer with the fallback message.")

    if settings.AUTO_INITIALIZE_DATABASE:
        try:
            await auto_initialize_database()
        except PortalError as e:
            logger.error(f"❌ Database auto-initialization failed: {e}")

    start_scheduler()

@app.on_event("shutdown")
async def shutdown_event():
    """Stop scheduler and close the chat API client on app shutdown"""
    logger.info("⛔ FastAPI shutdown event triggered")
    stop_scheduler()
    await close_completion_client()

# ==================== ROUTERS ====================

def safe_include_router(router_module_path: str, router_name: str = "router"):
    """Safely include a router with error handling"""
    try:
        module = __import__(router_module_path, fromlist=[router_name])
        router = getattr(module, router_name)
        app.include_router(router)
        logger.info(f"✅ Successfully included {router_module_path}")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to include {router_module_path}: {str(e)}", exc_info=True)
        return False

logger.info("Loading routers...")

routers_to_load = [
    ("patient_portal.routers.auth", "Authentication"),
    ("patient_portal.routers.profiles", "Profiles"),
    ("patient_portal.routers.doctors", "Doctors"),
    ("patient_portal.routers.appointments", "Appointments"),
    ("patient_portal.routers.prescriptions", "Prescriptions"),
    ("patient_portal.routers.chat", "Chat"),
    ("patient_portal.routers.notifications", "Notifications"),
    ("patient_portal.routers.hospital", "Hospital"),
    ("patient_portal.routers.websocket", "WebSocket"),
]

successful_routers = []
failed_routers = []

for router_path, router_description in routers_to_load:
    if safe_include_router(router_path):
        successful_routers.append(router_description)
    else:
        failed_routers.append(router_description)

logger.info(f"Successfully loaded routers: {successful_routers}")
if failed_routers:
    logger.warning(f"Failed to load routers: {failed_routers}")

@app.get("/")
async def root():
    return {
        "message": "Welcome to the MediCare Patient Portal API",
        "firebase_status": get_firebase_status(),
        "loaded_routers": successful_routers,
        "failed_routers": failed_routers
    }

@app.get("/health")
async def health_check():
    firebase_status = get_firebase_status()
    return {
        "status": "healthy",
        "firebase_available": firebase_status['available'],
        "chat_api_configured": bool(settings.CHAT_API_KEY),
        "loaded_routers": len(successful_routers),
        "failed_routers": len(failed_routers)
    }
