from __future__ import annotations

import base64
import html
import logging
from email.mime.text import MIMEText
from typing import Any

import anyio
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

from app.core.config import settings
from app.core.paths import resolve_repo_path, template_path

logger = logging.getLogger("vamos.email")


def _gmail_client():
    scopes = ["https://www.googleapis.com/auth/gmail.send"]
    service_account_path = settings.google_application_credentials
    if not service_account_path:
        raise RuntimeError("Missing service account credentials for Gmail.")
    credentials = Credentials.from_service_account_file(str(resolve_repo_path(service_account_path)), scopes=scopes)
    credentials = credentials.with_subject(settings.gmail_sender_email)
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


def render_template(name: str, context: dict[str, Any]) -> str:
    raw = template_path("email", name).read_text(encoding="utf-8")
    return raw.format_map({k: ("" if v is None else v) for k, v in context.items()})


def message_to_html(message: str) -> str:
    """Plain text with blank-line paragraphs -> escaped <p> blocks."""
    return "".join(
        f'<p style="margin: 0 0 16px 0; line-height: 1.6;">{html.escape(line.strip())}</p>'
        for line in message.splitlines()
        if line.strip()
    )


def outreach_subject(first_name: str | None) -> str:
    name = (first_name or "").strip()
    return f"{name}, дякуємо за заявку до Vamos!" if name else "Дякуємо за заявку до Vamos!"


def _send_raw(raw: str) -> dict[str, Any]:
    service = _gmail_client()
    return service.users().messages().send(userId=settings.gmail_sender_email, body={"raw": raw}).execute()


async def send_email(
    *,
    to_email: str | None,
    subject: str,
    template_name: str,
    context: dict[str, Any],
    email_type: str,
) -> dict[str, Any]:
    """Send one templated email. Returns a meta dict whose `status` is sent, skipped or failed."""
    meta: dict[str, Any] = {
        "to": to_email,
        "subject": subject,
        "template": template_name,
        "email_type": email_type,
    }
    if not to_email:
        meta["status"] = "skipped"
        meta["reason"] = "missing_recipient"
        return meta

    if not settings.enable_gmail:
        meta["status"] = "skipped"
        meta["reason"] = "gmail_disabled"
        return meta

    body = render_template(template_name, context)
    sender = settings.gmail_sender_email
    msg = MIMEText(body, "html", "utf-8")
    msg["To"] = to_email
    msg["From"] = f"{settings.gmail_sender_name} <{sender}>"
    msg["Reply-To"] = sender
    msg["Subject"] = subject

    raw = base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8")
    try:
        response = await anyio.to_thread.run_sync(_send_raw, raw)
        meta["status"] = "sent"
        meta["message_id"] = (response or {}).get("id")
    except Exception as exc:  # noqa: BLE001
        logger.warning("email_send_failed", extra={"email_type": email_type, "error": str(exc)})
        meta["status"] = "failed"
        meta["error"] = str(exc)
    return meta
