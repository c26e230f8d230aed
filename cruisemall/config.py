import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cruisemall.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Session cookie
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "cm_session")
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(60 * 60 * 24 * 7)))
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

# Public URLs
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
BASE_URL = os.getenv("BASE_URL", FRONTEND_URL)
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",") if o.strip()]

# Local wall clock used for message send times and backup folder names
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Seoul")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Cruise Mall <noreply@cruisemall.co.kr>")

# Aligo SMS (HQ account, partners may register their own)
ALIGO_API_URL = os.getenv("ALIGO_API_URL", "https://apis.aligo.in")
ALIGO_API_KEY = os.getenv("ALIGO_API_KEY")
ALIGO_USER_ID = os.getenv("ALIGO_USER_ID")
ALIGO_SENDER_PHONE = os.getenv("ALIGO_SENDER_PHONE")
# Fernet key for partner SMS credentials (generate with Fernet.generate_key())
SMS_ENCRYPTION_KEY = os.getenv("SMS_ENCRYPTION_KEY")

# Google service account (Drive / Sheets backups)
GOOGLE_SERVICE_ACCOUNT_EMAIL = os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL")
GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY = (os.getenv("GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY") or "").replace("\\n", "\n")
GOOGLE_DRIVE_BACKUP_FOLDER_ID = os.getenv("GOOGLE_DRIVE_BACKUP_FOLDER_ID") or None
GOOGLE_SALES_SPREADSHEET_ID = os.getenv("GOOGLE_SALES_SPREADSHEET_ID")
GOOGLE_BACKUP_SPREADSHEET_IDS = [
    s.strip() for s in os.getenv("GOOGLE_BACKUP_SPREADSHEET_IDS", "").split(",") if s.strip()
]

# Gemini (chat assistant general answers)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

# Passport submission links
PASSPORT_TOKEN_TTL_HOURS = int(os.getenv("PASSPORT_TOKEN_TTL_HOURS", "72"))

# Payment webhook shared secret (payment confirmation)
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET")

# Feature toggles
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
BOT_DETECTION_ENABLED = os.getenv("BOT_DETECTION_ENABLED", "true").lower() == "true"
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"
