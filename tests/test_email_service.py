"""
Tests for the notification dispatcher (EmailService.send_notification_email)
and the template registry.

Dispatcher contract:
- metadata is validated before anything else
- a category the user switched off skips the send
- a type without a template raises
- one SMTP attempt; transport errors propagate
"""

import smtplib
from unittest.mock import patch

import pytest

from edumatch.core.errors import InvalidNotificationMessage, UnsupportedNotificationType
from edumatch.schemas.schemas import NotificationType
from edumatch.services import email_templates
from edumatch.services.email_service import EmailService

WISHLIST_META = {
    "postId": "post-1",
    "postTitle": "PhD in Robotics",
    "deadlineDate": "2024-02-01T00:00:00+00:00",
    "daysRemaining": 3,
}

STATUS_META = {
    "applicationId": "app-1",
    "programName": "MSc Data Science",
    "oldStatus": "submitted",
    "newStatus": "require_update",
    "institutionName": "Test University",
    "message": "<b>Upload your transcript</b>",
}


@pytest.fixture
def service():
    return EmailService(host="smtp.test", port=25, user="", password="", sender="noreply@edumatch.test")


def test_every_notification_type_has_a_template():
    assert set(email_templates.TEMPLATE_REGISTRY) == set(NotificationType)


def test_sends_when_category_enabled(service, make_message):
    message = make_message(NotificationType.WISHLIST_DEADLINE, WISHLIST_META)

    with patch("edumatch.services.email_service.is_notification_enabled", return_value=True) as enabled, \
            patch("edumatch.services.email_service.smtplib.SMTP") as smtp:
        assert service.send_notification_email(message) is True

    enabled.assert_called_once_with("user-1", "wishlist")
    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_not_called()
    sent = server.send_message.call_args[0][0]
    assert sent["To"] == "student@example.com"
    assert sent["Subject"] == "Deadline Approaching - PhD in Robotics"


def test_disabled_category_skips_send(service, make_message):
    message = make_message(NotificationType.WISHLIST_DEADLINE, WISHLIST_META)

    with patch("edumatch.services.email_service.is_notification_enabled", return_value=False), \
            patch.object(EmailService, "_send") as send:
        assert service.send_notification_email(message) is False

    send.assert_not_called()


def test_types_without_category_are_never_gated(service, make_message):
    message = make_message(NotificationType.WELCOME, {"firstName": "Ana", "lastName": "Lee"})

    with patch("edumatch.services.email_service.is_notification_enabled") as enabled, \
            patch.object(EmailService, "_send") as send:
        assert service.send_notification_email(message) is True

    enabled.assert_not_called()
    send.assert_called_once()


def test_unsupported_type_raises(service, make_message):
    message = make_message(NotificationType.WELCOME, {"firstName": "Ana", "lastName": "Lee"})

    with patch.dict(email_templates.TEMPLATE_REGISTRY), patch.object(EmailService, "_send") as send:
        del email_templates.TEMPLATE_REGISTRY[NotificationType.WELCOME]
        with pytest.raises(UnsupportedNotificationType):
            service.send_notification_email(message)

    send.assert_not_called()


def test_invalid_metadata_raises(service, make_message):
    message = make_message(NotificationType.WELCOME, {"firstName": "Ana"})

    with patch.object(EmailService, "_send") as send:
        with pytest.raises(InvalidNotificationMessage):
            service.send_notification_email(message)

    send.assert_not_called()


def test_smtp_failure_propagates_without_retry(service, make_message):
    message = make_message(NotificationType.WELCOME, {"firstName": "Ana", "lastName": "Lee"})

    with patch("edumatch.services.email_service.smtplib.SMTP", side_effect=smtplib.SMTPException("down")) as smtp:
        with pytest.raises(smtplib.SMTPException):
            service.send_notification_email(message)

    assert smtp.call_count == 1


def test_credentials_trigger_starttls_and_login(make_message):
    service = EmailService(host="smtp.test", port=587, user="mailer", password="secret", sender="a@b.c")

    with patch("edumatch.services.email_service.smtplib.SMTP") as smtp:
        service.send_custom_email("x@example.com", "Hi", "<p>Hi</p>")

    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")


def test_attachments_build_mixed_message(service):
    msg = service._build_message("x@example.com", "Docs", "<p>see attached</p>",
                                 [("cv.pdf", b"%PDF-1.4", "pdf")])
    assert msg.get_content_subtype() == "mixed"
    parts = msg.get_payload()
    assert parts[1].get_filename() == "cv.pdf"


def test_application_status_message_is_escaped(make_message):
    message = make_message(NotificationType.APPLICATION_STATUS_UPDATE, STATUS_META)

    subject, html = email_templates.render_notification(message)

    assert subject == "Application Status Update - MSc Data Science"
    assert "&lt;b&gt;Upload your transcript&lt;/b&gt;" in html
    assert "<b>Upload your transcript</b>" not in html


def test_company_email_wraps_body():
    html = email_templates.render_company_email(
        "<p>Body</p>", title="Hello", cta={"label": "Go", "url": "https://edumatch.test/go"}
    )
    assert "<p>Body</p>" in html
    assert "https://edumatch.test/go" in html
    assert "EduMatch" in html
