"""
Email service for delivering queued notifications.
Uses Flask-Mail for SMTP integration with UTF-8 support.
"""
import logging
from typing import Optional
from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def send_notification_email(
    to_email: str,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    action_label: Optional[str] = None
) -> bool:
    """
    Send a single notification email.

    Returns:
        True if sent (or mail is disabled), False otherwise. SMTP errors propagate
        so the outbox can record them.
    """
    if not _mail_enabled():
        logger.warning(f"[MAIL DISABLED] Notification '{title}' skipped for {to_email}")
        return True

    link_html = ''
    link_text = ''
    if action_url:
        base_url = current_app.config.get('APP_BASE_URL', '').rstrip('/')
        full_url = action_url if action_url.startswith('http') else f"{base_url}{action_url}"
        link_html = f'<p><a href="{full_url}">{action_label or "Open"}</a></p>'
        link_text = f"\n\n{action_label or 'Open'}: {full_url}"

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="UTF-8"></head>
    <body style="font-family: Arial, sans-serif; color: #333;">
        <h2>{title}</h2>
        <p>{message}</p>
        {link_html}
    </body>
    </html>
    """

    msg = Message(
        subject=title,
        recipients=[to_email],
        html=html_body,
        body=f"{message}{link_text}",
        charset='utf-8'
    )
    mail.send(msg)
    logger.info(f"[EMAIL] Notification '{title}' sent to {to_email}")
    return True
