import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from core.cache import ResponseCache
from core.config import APP_ENV, APP_NAME, CORS_ORIGINS, LOG_LEVEL, UPLOAD_DIR
from core.database import create_db_and_tables
from core.errors import register_exception_handlers
from core.middleware import RateLimiter, register_middleware
from routes import assignments, audit_logs, auth, chat, feedback, issues, recurring_alerts, translation, users
from services.translation import TranslationService

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s (%s)", APP_NAME, APP_ENV)
    create_db_and_tables()
    yield
    logger.info("Shutting down %s", APP_NAME)


app = FastAPI(title=APP_NAME, lifespan=lifespan)

app.state.cache = ResponseCache()
app.state.rate_limiter = RateLimiter()
app.state.translator = TranslationService()

register_exception_handlers(app)
register_middleware(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Make sure the folder exists
os.makedirs(UPLOAD_DIR, exist_ok=True)

# Expose uploads directory at /uploads
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")
app.include_router(auth.router, prefix="/api/auth")
app.include_router(users.router, prefix="/api/user")
app.include_router(issues.router, prefix="/api/issues")
app.include_router(assignments.router, prefix="/api/assignments")
app.include_router(feedback.router, prefix="/api/feedback")
app.include_router(recurring_alerts.router, prefix="/api/recurring-alerts")
app.include_router(audit_logs.router, prefix="/api/audit-logs")
app.include_router(translation.router, prefix="/api/translate")
app.include_router(chat.router, prefix="/api/chat")


@app.get("/", tags=["Health"])
def root():
    return {"success": True, "message": f"{APP_NAME} API running"}


@app.get("/health", tags=["Health"])
def health():
    return {"success": True, "status": "ok", "environment": APP_ENV}
