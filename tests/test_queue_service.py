"""
Tests for the SQS queue wrapper, the queue consumers and the notification
producers. The boto3 client is a MagicMock throughout.
"""

import json
import smtplib
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from edumatch.core.errors import InvalidNotificationMessage, QueueError
from edumatch.schemas.schemas import NotificationType
from edumatch.services.queue_service import (
    NotificationUtils, QueueMessageHandler, QueueService, build_in_app_notification,
)

WELCOME_META = {"firstName": "Ana", "lastName": "Lee"}


@pytest.fixture
def sqs():
    return MagicMock()


@pytest.fixture
def queue(sqs):
    return QueueService(client=sqs, notifications_url="https://sqs/notifications", emails_url="https://sqs/emails")


def _raw(message, receipt):
    return {"MessageId": receipt, "ReceiptHandle": receipt, "Body": message.model_dump_json(by_alias=True)}


# ============================================================
# QUEUE SERVICE
# ============================================================

def test_send_notification_uses_user_group_and_message_id(queue, sqs, make_message):
    message = make_message(NotificationType.WELCOME, WELCOME_META)

    queue.send_notification(message)

    kwargs = sqs.send_message.call_args.kwargs
    assert kwargs["QueueUrl"] == "https://sqs/notifications"
    assert kwargs["MessageGroupId"] == "user-1"
    assert kwargs["MessageDeduplicationId"] == message.id
    body = json.loads(kwargs["MessageBody"])
    assert body["userId"] == "user-1"
    assert body["userEmail"] == "student@example.com"
    assert kwargs["MessageAttributes"]["Type"] == {"DataType": "String", "StringValue": "WELCOME"}


def test_send_email_message_groups_by_email(queue, sqs, make_message):
    queue.send_email_message(make_message(NotificationType.WELCOME, WELCOME_META))

    kwargs = sqs.send_message.call_args.kwargs
    assert kwargs["QueueUrl"] == "https://sqs/emails"
    assert kwargs["MessageGroupId"] == "student@example.com"


def test_client_errors_become_queue_errors(queue, sqs, make_message):
    sqs.send_message.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "SendMessage")

    with pytest.raises(QueueError):
        queue.send_notification(make_message(NotificationType.WELCOME, WELCOME_META))


def test_receive_returns_empty_list_without_messages(queue, sqs):
    sqs.receive_message.return_value = {}
    assert queue.receive_messages("https://sqs/emails") == []


# ============================================================
# CONSUMERS
# ============================================================

def test_email_messages_are_deleted_only_after_success(queue, sqs, make_message):
    good = make_message(NotificationType.WELCOME, WELCOME_META)
    sqs.receive_message.return_value = {"Messages": [
        _raw(good, "r1"),
        {"MessageId": "r2", "ReceiptHandle": "r2", "Body": "not json"},
    ]}
    email = MagicMock()

    handled = QueueMessageHandler(queue, email).process_email_messages()

    assert handled == 1
    email.send_notification_email.assert_called_once()
    sqs.delete_message.assert_called_once_with(QueueUrl="https://sqs/emails", ReceiptHandle="r1")


def test_failed_send_leaves_message_queued(queue, sqs, make_message):
    sqs.receive_message.return_value = {"Messages": [_raw(make_message(NotificationType.WELCOME, WELCOME_META), "r1")]}
    email = MagicMock()
    email.send_notification_email.side_effect = smtplib.SMTPException("down")

    assert QueueMessageHandler(queue, email).process_email_messages() == 0
    sqs.delete_message.assert_not_called()


def test_empty_queue(queue, sqs):
    sqs.receive_message.return_value = {"Messages": []}
    assert QueueMessageHandler(queue, MagicMock()).process_notification_messages() == 0


def test_notification_is_stored_then_forwarded(queue, sqs, make_message):
    message = make_message(NotificationType.WELCOME, WELCOME_META)
    sqs.receive_message.return_value = {"Messages": [_raw(message, "r1")]}

    with patch("edumatch.services.queue_service.store_notification") as store:
        handled = QueueMessageHandler(queue, MagicMock()).process_notification_messages()

    assert handled == 1
    assert store.call_args[0][0].id == message.id
    assert sqs.send_message.call_args.kwargs["QueueUrl"] == "https://sqs/emails"
    sqs.delete_message.assert_called_once_with(QueueUrl="https://sqs/notifications", ReceiptHandle="r1")


# ============================================================
# IN-APP NOTIFICATIONS
# ============================================================

def test_wishlist_in_app_notification(make_message):
    message = make_message(NotificationType.WISHLIST_DEADLINE, {
        "postId": "post-9", "postTitle": "Merit Award", "deadlineDate": "2024-02-01",
        "daysRemaining": 1, "postType": "scholarship",
    })

    title, body, url = build_in_app_notification(message)

    assert title == "Deadline Approaching - Merit Award"
    assert "in 1 day." in body
    assert url == "/explore/scholarships/post-9"


def test_application_status_body_depends_on_audience(make_message):
    message = make_message(NotificationType.APPLICATION_STATUS_UPDATE, {
        "applicationId": "app-1", "programName": "MSc AI", "oldStatus": "draft",
        "newStatus": "SUBMITTED", "institutionName": "Uni",
    })

    _, student_body, student_url = build_in_app_notification(message, application_url="/explore/programmes/p1")
    _, inst_body, inst_url = build_in_app_notification(message, is_institution=True)

    assert "has been submitted and is currently being reviewed by Uni" in student_body
    assert student_url == "/explore/programmes/p1"
    assert inst_body.startswith('New application received for "MSc AI"')
    assert inst_url == "/institution/dashboard/applications/app-1"


def test_unmapped_type_gets_generic_notification(make_message):
    message = make_message(NotificationType.PAYMENT_SUCCESS, {
        "subscriptionId": "s", "planName": "Pro", "amount": 10, "currency": "USD", "transactionId": "t",
    })
    assert build_in_app_notification(message) == ("New Notification", "You have a new notification from EduMatch.", "/")


# ============================================================
# PRODUCERS
# ============================================================

def test_wishlist_producer_builds_and_queues_message():
    queue = MagicMock()
    message = NotificationUtils(queue).send_wishlist_deadline_notification(
        "user-7", "u7@example.com", "post-1", "PhD", "2024-02-01", 2, post_type="research-lab",
    )

    assert message.id.startswith("wishlist-deadline-user-7-")
    assert message.timestamp.endswith("Z")
    assert message.metadata["postType"] == "research-lab"
    assert "institutionName" not in message.metadata
    queue.send_notification.assert_called_once_with(message)


def test_producer_rejects_invalid_metadata():
    queue = MagicMock()
    with pytest.raises(InvalidNotificationMessage):
        NotificationUtils(queue).send_application_status_notification(
            "user-7", "u7@example.com", "app-1", None, "draft", "submitted", "Uni",
        )
    queue.send_notification.assert_not_called()
