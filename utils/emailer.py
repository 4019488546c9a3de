import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)


def build_message(sender: str, to_email: str, subject: str, body: str, attachments=None) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    # (filename, text) pairs, sent as text/plain parts
    for filename, content in attachments or ():
        msg.add_attachment(content, filename=filename)
    return msg


def send_email(to_email: str, subject: str, body: str, attachments=None):
    """
    Plain-text mail over SMTP. Returns (sent, error) and never raises on
    transport trouble, so booking code can treat mail as best effort.
    """
    cfg = current_app.config
    host = cfg.get("SMTP_HOST")
    username = cfg.get("SMTP_USERNAME")
    sender = cfg.get("SMTP_FROM_EMAIL") or username

    if not host or not sender:
        return False, "Email not configured"
    if not to_email:
        return False, "No recipient"

    msg = build_message(sender, to_email, subject, body, attachments)
    try:
        with smtplib.SMTP(host, cfg.get("SMTP_PORT", 587), timeout=10) as server:
            if cfg.get("SMTP_USE_TLS", True):
                server.starttls()
            if username and cfg.get("SMTP_PASSWORD"):
                server.login(username, cfg["SMTP_PASSWORD"])
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("smtp delivery to %s failed: %s", to_email, exc)
        return False, str(exc)

    logger.info("mail sent to %s: %s", to_email, subject)
    return True, None
