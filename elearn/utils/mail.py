import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from starlette.concurrency import run_in_threadpool

from elearn.core import config

logger = logging.getLogger(__name__)


class Mailer:
    """SMTP sender for transactional emails"""

    def __init__(self, host: str = None, port: int = None, username: str = None, password: str = None):
        self.smtp_server = host or config.EMAIL_HOST
        self.smtp_port = port or config.EMAIL_PORT
        self.smtp_username = username if username is not None else config.EMAIL_USER
        self.smtp_password = password if password is not None else config.EMAIL_PASSWORD

    def send_email(self, to_email: str, subject: str, html: str):
        if not html:
            logger.warning("Email to %s has no message content", to_email)

        msg = MIMEMultipart("alternative")
        msg["From"] = config.MAIL_SENDER
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(html or "", "html"))

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
                server.starttls()
                if self.smtp_username:
                    server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
            logger.info("Email '%s' sent to %s", subject, to_email)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            raise


mailer = Mailer()


def get_mailer() -> Mailer:
    """FastAPI dependency so tests can swap the SMTP sender"""
    return mailer


async def send_mail(mailer: Mailer, to_email: str, subject: str, html: str):
    """Send without blocking the event loop"""
    await run_in_threadpool(mailer.send_email, to_email, subject, html)
