import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./campus_calendar.db")
# Pool settings apply to server databases only
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Calendar behavior
# Used when neither the campus, the parent organization nor the creator carries a time zone
DEFAULT_TIME_ZONE = os.getenv("DEFAULT_TIME_ZONE", "America/Los_Angeles")
# Height of a 1 hour row in the daily calendar view (em)
DAILY_VIEW_ROW_HEIGHT = float(os.getenv("DAILY_VIEW_ROW_HEIGHT", "5"))
# Seconds allowed for generating and storing the .ics attachment before notices go out without it
ICS_GENERATION_TIMEOUT = float(os.getenv("ICS_GENERATION_TIMEOUT", "45"))
ICS_PRODUCT_ID = os.getenv("ICS_PRODUCT_ID", "-//Campus Calendar//Calendar Events//EN")
ICS_UID_DOMAIN = os.getenv("ICS_UID_DOMAIN", "campus-calendar")

# Public scheduling site used for reschedule/cancel links sent to external recipients
SCHEDULING_URL = os.getenv("SCHEDULING_URL", "http://localhost:5173/schedule").rstrip("/")

# Cloudflare R2 Configuration (calendar attachments)
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "campus-calendar")
R2_PRESIGNED_URL_TTL = int(os.getenv("R2_PRESIGNED_URL_TTL", "604800"))  # 7 days

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Campus Calendar <noreply@example.edu>")

# Twilio Configuration
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
TWILIO_TIMEOUT = float(os.getenv("TWILIO_TIMEOUT", "10"))
# Longer messages are truncated before sending
TEXT_SIZE_LIMIT = int(os.getenv("TEXT_SIZE_LIMIT", "1600"))

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

# JSON seed for the in-memory directory used when no directory service is wired in
DIRECTORY_FILE = os.getenv("DIRECTORY_FILE")
