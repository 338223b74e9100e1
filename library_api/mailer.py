import logging
import smtplib
from email.message import EmailMessage

from fastapi import Depends

from .config import Settings, get_settings


logger = logging.getLogger(__name__)


class EmailSender:
    """
    Fire-and-forget email delivery over SMTP.

    ``send`` never raises: a failed delivery is logged and reported as
    ``False`` so the write that triggered it is never rolled back.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: str, subject: str, body: str) -> bool:
        if not self.settings.smtp_host:
            logger.info("Mail delivery disabled, not sending %r to %s", subject, to)
            return False

        message = EmailMessage()
        message["From"] = self.settings.mail_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
                smtp.starttls()
                if self.settings.smtp_username:
                    smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to send %r to %s: %s", subject, to, exc)
            return False

        logger.info("Sent %r to %s", subject, to)
        return True


def get_mailer(settings: Settings = Depends(get_settings)) -> EmailSender:
    return EmailSender(settings)
