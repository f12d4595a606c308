import logging
import os

from fastapi import FastAPI

from services.library_notifications.pipeline import NotificationPipeline
from services.shared.cors import json_response, preflight_response
from services.shared.mailer import ResendEmailSender
from services.shared.sql_store import SqlLibraryStore
from services.shared.store import LibraryStore, SupabaseLibraryStore

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
DATABASE_URL = os.getenv("LIBRARY_DB_URL", "sqlite:///./services/library_notifications/library.db")
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("LIBRARY_EMAIL_FROM", "SVIT Library <onboarding@resend.dev>")
EMAIL_SEND_RETRIES = int(os.getenv("EMAIL_SEND_RETRIES", "2"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

app = FastAPI(title="Library Notifications", version="1.0.0")
logger = logging.getLogger("library-notifications")


def check_config() -> None:
    if SUPABASE_URL and not SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY is not configured")
    if not RESEND_API_KEY:
        raise RuntimeError("RESEND_API_KEY is not configured")


def create_store() -> LibraryStore:
    if SUPABASE_URL:
        return SupabaseLibraryStore(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, timeout=HTTP_TIMEOUT_SECONDS)
    store = SqlLibraryStore(DATABASE_URL)
    store.create_db()
    return store


def create_email_sender() -> ResendEmailSender:
    return ResendEmailSender(
        RESEND_API_KEY, EMAIL_FROM, timeout=HTTP_TIMEOUT_SECONDS, retries=EMAIL_SEND_RETRIES
    )


def build_pipeline() -> NotificationPipeline:
    # Nothing is opened until every setting is known to be present
    check_config()
    return NotificationPipeline(create_store(), create_email_sender())


def get_pipeline() -> NotificationPipeline:
    if not hasattr(app.state, "pipeline"):
        app.state.pipeline = build_pipeline()
    return app.state.pipeline


@app.on_event("shutdown")
async def shutdown_event():
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline:
        await pipeline.aclose()


@app.get("/health")
def health():
    return {"status": "ok", "service": "library-notifications"}


@app.options("/")
def preflight():
    return preflight_response()


@app.post("/")
async def send_library_notifications():
    try:
        summary = await get_pipeline().run()
    except Exception as exc:
        logger.exception("Error in library-notifications")
        return json_response({"error": str(exc)}, status_code=500)
    return json_response(summary.to_response())
