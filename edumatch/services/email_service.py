"""
Email Service - SMTP delivery of notification and support emails.

send_notification_email is the notification dispatcher:
1. Validate the metadata against the model of the notification type
2. Skip the send when the user switched the notification category off
3. Render subject + HTML from the template registry
4. One SMTP send; failures propagate to the caller (no retry)
"""

import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError

from edumatch.core.config import get_settings
from edumatch.core.errors import InvalidNotificationMessage
from edumatch.core.log import get_logger
from edumatch.schemas.schemas import NotificationMessage
from edumatch.services import email_templates
from edumatch.services.notification_settings import category_for, is_notification_enabled

settings = get_settings()
log = get_logger(__name__)

# (filename, content, mime subtype)
Attachment = Tuple[str, bytes, str]


class EmailService:
    def __init__(self, host: str = None, port: int = None, user: str = None,
                 password: str = None, sender: str = None):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = settings.smtp_user if user is None else user
        self.password = settings.smtp_pass if password is None else password
        self.sender = sender or settings.smtp_from

    # ============================================================
    # TRANSPORT
    # ============================================================

    def _build_message(self, to: str, subject: str, html: str,
                       attachments: Sequence[Attachment] = ()) -> MIMEMultipart:
        if attachments:
            msg = MIMEMultipart("mixed")
            body = MIMEMultipart("alternative")
            body.attach(MIMEText(html, "html", "utf-8"))
            msg.attach(body)
            for filename, content, subtype in attachments:
                part = MIMEApplication(content, _subtype=subtype or "octet-stream")
                part.add_header("Content-Disposition", "attachment", filename=filename)
                msg.attach(part)
        else:
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(html, "html", "utf-8"))

        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        return msg

    def _send(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port) as server:
            if self.user and self.password:
                server.starttls()
                server.login(self.user, self.password)
            server.send_message(msg)

    # ============================================================
    # PUBLIC API
    # ============================================================

    def send_notification_email(self, message: NotificationMessage) -> bool:
        """
        Send the email for one notification. Returns False when the user has
        the category switched off, True once the message is handed to SMTP.
        """
        try:
            message.typed_metadata()
        except ValidationError as e:
            raise InvalidNotificationMessage(
                f"Invalid metadata for {message.type.value} notification {message.id}: {e}"
            ) from e

        category = category_for(message.type)
        if category and not is_notification_enabled(message.user_id, category):
            log.info(
                "User %s has disabled %s notifications, skipping %s email",
                message.user_id, category, message.type.value,
            )
            return False

        subject, html = email_templates.render_notification(message)
        self._send(self._build_message(message.user_email, subject, html))

        log.info("Email sent to %s for notification %s (%s)", message.user_email, message.id, message.type.value)
        return True

    def send_custom_email(self, to: str, subject: str, html: str,
                          attachments: Optional[List[Attachment]] = None) -> None:
        self._send(self._build_message(to, subject, html, attachments or ()))
        log.info("Custom email sent to %s: %s", to, subject)

    def send_company_email(self, to: str, subject: str, body_html: str,
                           attachments: Optional[List[Attachment]] = None, **options) -> None:
        """Send body_html inside the branded company layout. Options are passed
        to render_company_email (title, preheader, cta, footer_html, ...)."""
        html = email_templates.render_company_email(body_html, **options)
        self.send_custom_email(to, subject, html, attachments)


# Singleton
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
