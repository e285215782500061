import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# --- App ---
APP_NAME = os.getenv("APP_NAME", "Society Issue Tracker")
APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./society.db")
DATABASE_ECHO = _env_bool("DATABASE_ECHO", False)

# --- Auth ---
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))
AUTH_COOKIE_NAME = "token"
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# --- Rate limiting ---
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))

# --- Response cache TTLs (seconds) ---
CACHE_TTL_ISSUE_LIST = 180
CACHE_TTL_ISSUE_DETAIL = 300
CACHE_TTL_ANALYTICS = 300
CACHE_TTL_CATEGORIES = 3600

# --- Uploads ---
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_FILES = 10
MAX_UPLOAD_BYTES = 2 * 1024 * 1024

# --- Recurring issue detection ---
RECURRING_RECENT_DAYS = int(os.getenv("RECURRING_RECENT_DAYS", "30"))
RECURRING_MIN_ISSUES = 3

# --- Feedback ---
FEEDBACK_AUTO_APPROVE = _env_bool("FEEDBACK_AUTO_APPROVE", True)

# --- Translation ---
SUPPORTED_LANGUAGES = {"en": "English", "hi": "Hindi"}
DEFAULT_LANGUAGE = "en"
GOOGLE_TRANSLATE_API_KEY = os.getenv("GOOGLE_TRANSLATE_API_KEY", "")
GOOGLE_TRANSLATE_URL = os.getenv(
    "GOOGLE_TRANSLATE_URL", "https://translation.googleapis.com/language/translate/v2"
)
TRANSLATION_TIMEOUT_SECONDS = float(os.getenv("TRANSLATION_TIMEOUT_SECONDS", "5"))
TRANSLATION_CACHE_TTL_SECONDS = 24 * 60 * 60

# --- Geocoding ---
NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse")
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "society-issue-tracker/1.0")
GEOCODE_TIMEOUT_SECONDS = float(os.getenv("GEOCODE_TIMEOUT_SECONDS", "5"))

# --- Chat assistant ---
CHAT_WEBHOOK_URL = os.getenv("CHAT_WEBHOOK_URL", "http://localhost:5678/webhook/chat-assistant")
CHAT_TIMEOUT_SECONDS = float(os.getenv("CHAT_TIMEOUT_SECONDS", "30"))
