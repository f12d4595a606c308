import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, Field

from services.shared.cors import json_response, preflight_response
from services.shared.mailer import EmailSender, ResendEmailSender

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("NOTIFICATION_EMAIL_FROM", "SVIT Attend Hub <onboarding@resend.dev>")
EMAIL_SEND_RETRIES = int(os.getenv("EMAIL_SEND_RETRIES", "2"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
APP_NAME = "SVIT Attend Hub"

PRIORITY_BADGES = {
    "urgent": "🚨 URGENT",
    "high": "⚠️ HIGH PRIORITY",
}

app = FastAPI(title="Notification Email", version="1.0.0")
logger = logging.getLogger("notification-email")

templates = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=select_autoescape(["html"]),
)


class NotificationEmailRequest(BaseModel):
    to: str | list[str]
    subject: str
    message: str
    priority: Optional[str] = None
    action_url: Optional[str] = Field(default=None, alias="actionUrl")

    model_config = {"populate_by_name": True}


def render_notification(payload: NotificationEmailRequest) -> tuple[str, str]:
    badge = PRIORITY_BADGES.get(payload.priority or "", "")
    html = templates.get_template("notification.html").render(
        app_name=APP_NAME,
        badge=badge,
        priority=payload.priority,
        subject=payload.subject,
        message_lines=payload.message.split("\n"),
        action_url=payload.action_url,
    )
    subject = f"{badge} - {payload.subject}" if badge else payload.subject
    return subject, html


def create_email_sender() -> EmailSender:
    if not RESEND_API_KEY:
        raise RuntimeError("RESEND_API_KEY is not configured")
    return ResendEmailSender(
        RESEND_API_KEY, EMAIL_FROM, timeout=HTTP_TIMEOUT_SECONDS, retries=EMAIL_SEND_RETRIES
    )


def get_email_sender() -> EmailSender:
    if not hasattr(app.state, "email_sender"):
        app.state.email_sender = create_email_sender()
    return app.state.email_sender


@app.on_event("shutdown")
async def shutdown_event():
    sender = getattr(app.state, "email_sender", None)
    if sender:
        await sender.aclose()


@app.get("/health")
def health():
    return {"status": "ok", "service": "notification-email"}


@app.options("/")
def preflight():
    return preflight_response()


@app.post("/")
async def send_notification_email(payload: NotificationEmailRequest):
    subject, html = render_notification(payload)
    try:
        ack = await get_email_sender().send(payload.to, subject, html)
    except Exception as exc:
        logger.exception("Error in send-notification-email")
        return json_response({"error": str(exc)}, status_code=500)
    logger.info("Email sent successfully: %s", ack)
    return json_response({"success": True, **ack})
