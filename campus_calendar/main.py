import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS, DIRECTORY_FILE
from .database import Base, engine
from .directory import InMemoryDirectory, UsFederalHolidayCalendar
from .domain.calendar_events.router import router as calendar_events_router
from .exceptions import CalendarEventError
from .services.attachment_storage import InMemoryAttachmentStore, R2AttachmentStore, r2_is_configured
from .services.email_service import ResendEmailTransport
from .services.notification_service import NotificationComposer
from .services.twilio_service import TwilioSmsTransport

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)


def load_directory():
    if DIRECTORY_FILE:
        return InMemoryDirectory.from_file(DIRECTORY_FILE)
    logger.warning("⚠️ DIRECTORY_FILE not set, starting with an empty directory")
    return InMemoryDirectory()


def build_notifier(directory) -> NotificationComposer:
    if r2_is_configured():
        store = R2AttachmentStore()
        logger.info("✅ Calendar attachments stored in R2")
    else:
        store = InMemoryAttachmentStore()
        logger.warning("⚠️ R2 not configured, calendar attachments kept in memory")

    sms_transport = TwilioSmsTransport()
    if not sms_transport.is_configured:
        logger.warning("⚠️ Twilio not configured, text notices will fail")

    return NotificationComposer(
        directory,
        email_transport=ResendEmailTransport(),
        sms_transport=sms_transport,
        attachment_store=store,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    # Collaborators set before startup (tests, embedding apps) are kept
    state = app.state
    if getattr(state, "directory", None) is None:
        state.directory = load_directory()
    if getattr(state, "holiday_calendar", None) is None:
        state.holiday_calendar = UsFederalHolidayCalendar()
    if getattr(state, "notifier", None) is None:
        state.notifier = build_notifier(state.directory)
    if not hasattr(state, "action_executor"):
        state.action_executor = None

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Campus Calendar API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(CalendarEventError)
async def calendar_event_error_handler(request: Request, exc: CalendarEventError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path} - {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw ctx objects pydantic attaches"""
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# Log CORS configuration for debugging
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(calendar_events_router)


@app.get("/")
def root():
    return {"message": "Campus Calendar API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
