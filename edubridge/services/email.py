import base64
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Mail, To, From, Subject, HtmlContent, PlainTextContent, Attachment,
    FileContent, FileName, FileType, Disposition, CustomArg,
)

from edubridge.core.settings import settings

logger = logging.getLogger("edubridge.email")

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "..", "templates", "email")


@dataclass
class EmailSendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success


def datetime_filter(value, format="%A, %B %d, %Y at %H:%M UTC"):
    """Jinja2 filter for rendering datetimes in emails."""
    if isinstance(value, datetime):
        return value.strftime(format)
    return value


_template_env: Optional[Environment] = None


def get_email_template_env() -> Environment:
    """Get Jinja2 environment for email templates."""
    global _template_env
    if _template_env is None:
        _template_env = Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=select_autoescape(["html", "xml"]),
        )
        _template_env.filters["datetime"] = datetime_filter
    return _template_env


def get_sendgrid_client() -> Optional[SendGridAPIClient]:
    """Get SendGrid client if configured and log diagnostics (without leaking key)."""
    api_key = settings.sendgrid_api_key
    if not api_key:
        logger.warning("[email] SENDGRID_API_KEY missing from environment")
        return None
    if api_key.startswith("your_"):
        logger.warning("[email] SENDGRID_API_KEY appears to be a placeholder (starts with 'your_')")
        return None
    logger.debug(f"[email] SendGrid key loaded (length={len(api_key)})")
    return SendGridAPIClient(api_key)


def _build_attachment(att: dict) -> Optional[Attachment]:
    data_b64 = att.get("data_b64")
    if not data_b64 and att.get("data") is not None:
        raw = att["data"]
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        data_b64 = base64.b64encode(raw).decode()
    if not data_b64:
        return None
    return Attachment(
        FileContent(data_b64),
        FileName(att.get("filename", "attachment.bin")),
        FileType(att.get("mime_type", "application/octet-stream")),
        Disposition("attachment"),
    )


def send_email(to_email: str, subject: str, html_content: str,
               plain_content: str, from_email: str | None = None,
               attachments: list[dict] | None = None,
               custom_args: dict[str, str] | None = None) -> EmailSendResult:
    """Send email using SendGrid with diagnostic logging.

    Never raises: configuration problems and provider errors come back as a
    failed result carrying the reason, so bulk callers can record it per recipient.

    Logging levels:
    - INFO: success
    - WARNING: configuration issues / skipped send
    - ERROR: failed send attempt with response diagnostics
    """
    client = get_sendgrid_client()
    if not client:
        logger.warning(f"[email] Skipping send (client unavailable) to={to_email} subject={subject[:80]!r}")
        return EmailSendResult(False, error="Email provider not configured")

    from_email = from_email or settings.email_from_address
    if not from_email:
        logger.error(f"[email] No from_email resolved; aborting send to={to_email}")
        return EmailSendResult(False, error="No sender address configured")

    message = Mail(
        from_email=From(from_email, settings.email_from_name),
        to_emails=To(to_email),
        subject=Subject(subject),
        html_content=HtmlContent(html_content),
        plain_text_content=PlainTextContent(plain_content),
    )
    for att in attachments or []:
        attachment = _build_attachment(att)
        if attachment is not None:
            message.add_attachment(attachment)
    for key, value in (custom_args or {}).items():
        message.add_custom_arg(CustomArg(key, str(value)))

    try:
        logger.debug(f"[email] Sending message payload_summary={{'to': {to_email!r}, 'subject': {subject[:120]!r}, 'html_len': {len(html_content)}, 'plain_len': {len(plain_content)}}}")
        response = client.send(message)
    except Exception as e:
        # python_http_client raises HTTPError subclasses for 4xx/5xx
        logger.error(f"[email] Exception during send to={to_email}: {e}", exc_info=True)
        return EmailSendResult(False, error=str(e)[:500])

    status_code = getattr(response, "status_code", None)
    headers = getattr(response, "headers", None) or {}
    message_id = headers.get("X-Message-Id") if hasattr(headers, "get") else None

    if status_code in (200, 202):
        logger.info(f"[email] Sent to={to_email} status={status_code} message_id={message_id}")
        return EmailSendResult(True, message_id=message_id)

    body_snippet = None
    if getattr(response, "body", None):
        body = response.body
        body_snippet = (body.decode(errors="replace") if hasattr(body, "decode") else str(body))[:500]
    logger.error(f"[email] Failed send to={to_email} status={status_code} body_snippet={body_snippet}")
    return EmailSendResult(False, error=f"Provider returned status {status_code}")


def render_template(template_name: str, context: dict) -> str:
    return get_email_template_env().get_template(template_name).render(
        app_url=settings.app_url, **context
    )


def send_notification_email(to_email: str, subject: str, message: str,
                            action_url: str | None = None) -> EmailSendResult:
    """Send a general account notification email."""
    try:
        html_content = render_template(
            "notification.html",
            {"subject": subject, "message": message, "action_url": action_url},
        )
    except Exception as e:
        logger.error(f"Failed to render notification email template: {e}")
        html_content = f"<p>{message}</p>" + (f'<p><a href="{action_url}">Open EduBridge</a></p>' if action_url else "")

    plain_content = f"""
EduBridge

{message}

{f'Open: {action_url}' if action_url else ''}

The EduBridge Team
    """.strip()

    return send_email(to_email, subject, html_content, plain_content)
