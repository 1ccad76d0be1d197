import os
import smtplib
from email.mime.text import MIMEText

from .logging import get_logger

log = get_logger(__name__)

SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
NOTIFY_TO = os.getenv("NOTIFY_TO")


def notify(text: str, level: str = "info") -> bool:
    """
    Send a plain text email notification about a KPI run.
    Requires SMTP_* and NOTIFY_TO env vars; returns False when not configured
    or when delivery fails.
    """
    if not (SMTP_USER and SMTP_PASS and NOTIFY_TO):
        return False

    subject = f"[KPI {level.upper()}] Revenue KPI pipeline"
    msg = MIMEText(text)
    msg["Subject"] = subject
    msg["From"] = SMTP_USER
    msg["To"] = NOTIFY_TO

    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
            server.starttls()
            server.login(SMTP_USER, SMTP_PASS)
            server.sendmail(SMTP_USER, [NOTIFY_TO], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        log.warning(f"Email notify failed: {e}")
        return False
    return True
