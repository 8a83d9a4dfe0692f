"""SendGrid email service for leasing notifications.

Uses asyncio.to_thread to wrap the synchronous SendGrid client. When no API
key is configured the message is logged instead of sent.
"""

import asyncio
import html
import logging

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from rentflow.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.notification_from_email


def _get_client() -> sendgrid.SendGridAPIClient:
    api_key, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


def render_html(title: str, lines: list[str]) -> str:
    """Minimal HTML body: a heading and one paragraph per line, text escaped."""
    paragraphs = "".join(f"<p style=\"margin:0 0 12px\">{html.escape(line)}</p>" for line in lines)
    return (
        "<html><body style=\"font-family:Arial,sans-serif;color:#1f2937\">"
        f"<h2 style=\"margin:0 0 16px\">{html.escape(title)}</h2>{paragraphs}"
        "</body></html>"
    )


async def send_email(to_email: str, subject: str, html_body: str) -> bool:
    """Send one email.

    Args:
        to_email: Recipient address.
        subject: Subject line.
        html_body: Rendered HTML body.

    Returns:
        True if SendGrid accepted the message, False otherwise.
    """
    api_key, from_email = _get_config()
    if not api_key or not from_email:
        logger.info("Email delivery disabled; would send %r to %s", subject, to_email)
        return False

    mail = Mail(
        from_email=Email(from_email, "RentFlow"),
        to_emails=To(to_email),
        subject=subject,
        html_content=HtmlContent(html_body),
    )
    result = await asyncio.to_thread(_send_mail, mail)
    if result:
        logger.info("Email %r sent to %s", subject, to_email)
    return result
