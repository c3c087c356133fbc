from __future__ import annotations

import html as html_lib
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import httpx

from workforce.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailSendResult:
    provider: str
    message_id: Optional[str] = None


class EmailSendError(RuntimeError):
    pass


def send_email(*, to_address: str, subject: str, html: str, text: str | None = None) -> EmailSendResult:
    provider = settings.email_provider or "disabled"
    if provider in {"disabled", "none"}:
        raise EmailSendError("EMAIL_PROVIDER disabled")
    if not settings.email_from:
        raise EmailSendError("EMAIL_FROM not configured")

    if provider == "resend":
        return _send_resend(to_address=to_address, subject=subject, html=html, text=text)
    if provider == "postmark":
        return _send_postmark(to_address=to_address, subject=subject, html=html, text=text)
    if provider == "smtp":
        return _send_smtp(to_address=to_address, subject=subject, html=html, text=text)

    raise EmailSendError(f"Unsupported EMAIL_PROVIDER: {settings.email_provider}")


def _post_json(url: str, *, payload: dict, headers: dict, provider: str) -> dict:
    try:
        with httpx.Client(timeout=15) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise EmailSendError(f"{provider} request failed: {exc}") from exc
    if resp.status_code >= 400:
        raise EmailSendError(f"{provider} error: {resp.status_code} {resp.text}")
    return resp.json()


def _send_resend(*, to_address: str, subject: str, html: str, text: str | None) -> EmailSendResult:
    if not settings.email_api_key:
        raise EmailSendError("EMAIL_API_KEY not configured for Resend")
    payload = {
        "from": settings.email_from,
        "to": [to_address],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text
    headers = {
        "Authorization": f"Bearer {settings.email_api_key}",
        "Content-Type": "application/json",
    }
    data = _post_json("https://api.resend.com/emails", payload=payload, headers=headers, provider="Resend")
    return EmailSendResult(provider="resend", message_id=data.get("id"))


def _send_postmark(*, to_address: str, subject: str, html: str, text: str | None) -> EmailSendResult:
    if not settings.email_api_key:
        raise EmailSendError("EMAIL_API_KEY not configured for Postmark")
    payload = {
        "From": settings.email_from,
        "To": to_address,
        "Subject": subject,
        "HtmlBody": html,
    }
    if text:
        payload["TextBody"] = text
    headers = {
        "X-Postmark-Server-Token": settings.email_api_key,
        "Content-Type": "application/json",
    }
    data = _post_json("https://api.postmarkapp.com/email", payload=payload, headers=headers, provider="Postmark")
    return EmailSendResult(provider="postmark", message_id=data.get("MessageID"))


def _send_smtp(*, to_address: str, subject: str, html: str, text: str | None) -> EmailSendResult:
    if not settings.smtp_host:
        raise EmailSendError("SMTP_HOST not configured")
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.email_from
    message["To"] = to_address
    message.set_content(text or "This email requires an HTML-capable client.")
    message.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailSendError(f"SMTP delivery failed: {exc}") from exc
    return EmailSendResult(provider="smtp")


def render_verification_email(*, name: str, code: str, expiry_minutes: int) -> tuple[str, str, str]:
    """Return (subject, html, text) for an email verification code."""
    subject = "Your verification code"
    safe_name = html_lib.escape(name)
    html = (
        "<!DOCTYPE html><html><body style=\"font-family:Arial,sans-serif\">"
        f"<p>Hi {safe_name},</p>"
        "<p>Use this code to verify your email address:</p>"
        f"<p style=\"font-size:28px;font-weight:bold;letter-spacing:6px\">{code}</p>"
        f"<p>The code expires in {expiry_minutes} minutes. "
        "If you did not request it, you can ignore this email.</p>"
        "</body></html>"
    )
    text = (
        f"Hi {name},\n\nYour verification code is {code}.\n"
        f"It expires in {expiry_minutes} minutes.\n"
    )
    return subject, html, text
