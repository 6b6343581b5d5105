"""
Queue Service - notification fan-out over two SQS queues.

Producers put NotificationMessage JSON on the notifications queue. Processing
that queue stores an in-app notification and forwards the message to the
emails queue; processing the emails queue runs the email dispatcher.
A message is deleted only after it was handled; on failure it stays queued
and SQS redelivers it after the visibility timeout.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from edumatch.core.config import get_settings
from edumatch.core.errors import EduMatchError, InvalidNotificationMessage, QueueError
from edumatch.core.log import get_logger
from edumatch.db.postgres import execute_raw_sql, fetch_one
from edumatch.schemas.schemas import NotificationMessage, NotificationType
from edumatch.services.email_service import EmailService, get_email_service

settings = get_settings()
log = get_logger(__name__)


class QueueService:
    """Thin wrapper around the boto3 SQS client."""

    def __init__(self, client=None, notifications_url: str = None, emails_url: str = None):
        self.client = client or boto3.client(
            "sqs",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
        self.notifications_url = notifications_url or settings.sqs_notifications_queue_url
        self.emails_url = emails_url or settings.sqs_emails_queue_url

    def send_notification(self, message: NotificationMessage) -> None:
        self._send(
            self.notifications_url,
            message,
            group_id=message.user_id,
            attributes={"Type": message.type.value, "UserId": message.user_id, "UserEmail": message.user_email},
        )
        log.info("Notification queued: %s for user %s", message.type.value, message.user_id)

    def send_email_message(self, message: NotificationMessage) -> None:
        self._send(
            self.emails_url,
            message,
            group_id=message.user_email,
            attributes={"Type": message.type.value, "UserEmail": message.user_email},
        )
        log.info("Email message queued: %s for %s", message.type.value, message.user_email)

    def _send(self, queue_url: str, message: NotificationMessage, group_id: str, attributes: Dict[str, str]) -> None:
        try:
            self.client.send_message(
                QueueUrl=queue_url,
                MessageBody=message.model_dump_json(by_alias=True),
                MessageAttributes={
                    k: {"DataType": "String", "StringValue": v} for k, v in attributes.items()
                },
                MessageGroupId=group_id,
                MessageDeduplicationId=message.id,
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to send message {message.id}: {e}") from e

    def receive_messages(self, queue_url: str, max_messages: int = 10, wait_seconds: int = 20) -> List[Dict[str, Any]]:
        try:
            response = self.client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
                MessageAttributeNames=["All"],
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to receive messages: {e}") from e
        return response.get("Messages", [])

    def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        try:
            self.client.delete_message(QueueUrl=queue_url, ReceiptHandle=receipt_handle)
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"Failed to delete message: {e}") from e


# ============================================================
# IN-APP NOTIFICATIONS
# ============================================================

_EXPLORE_PATHS = {
    "programme": "/explore/programmes",
    "scholarship": "/explore/scholarships",
    "research-lab": "/explore/research-labs",
}


def _days_text(days: int) -> str:
    return "1 day" if days == 1 else f"{days} days"


def _application_status_body(meta: Dict[str, Any], is_institution: bool) -> str:
    program = meta.get("programName") or ("your program" if is_institution else "the program")
    status = (meta.get("newStatus") or "").lower()
    institution = meta.get("institutionName") or "the institution"

    if is_institution:
        if status == "submitted":
            return f'New application received for "{program}" from an applicant. Please review the application.'
        return f'Application status for "{program}" has been updated.'

    if status == "accepted":
        return (f'Congratulations! Your application for "{program}" has been approved by {institution}. '
                "They will contact you soon with next steps.")
    if status == "rejected":
        return (f'Your application for "{program}" was not selected by {institution} this time. '
                "Don't give up - there are many other opportunities available!")
    if status == "require_update":
        if meta.get("message"):
            return (f'Action Required: {institution} has reviewed your application for "{program}" '
                    f'and requires additional information. Message: {meta["message"]}')
        return (f'Action Required: {institution} has reviewed your application for "{program}" and requires '
                "additional information or updates. Please check your messages for details.")
    if status == "submitted":
        return (f'Your application for "{program}" has been submitted and is currently being reviewed by '
                f"{institution}. We'll notify you as soon as there are any updates.")
    if status == "updated":
        return f'Your application for "{program}" has been updated. The institution will review your changes.'
    return (f'Your application status for "{program}" has been updated by {institution}. '
            "Please check your application dashboard for more details.")


def build_in_app_notification(message: NotificationMessage, is_institution: bool = False,
                              application_url: Optional[str] = None) -> Tuple[str, str, str]:
    """(title, body, url) of the in-app notification for a message."""
    meta = message.metadata or {}
    t = message.type

    if t == NotificationType.WELCOME:
        return ("Welcome to EduMatch!",
                f"Welcome {meta.get('firstName') or 'User'}! Your account has been created successfully.",
                "/profile/create")
    if t == NotificationType.PROFILE_CREATED:
        return ("Profile Created Successfully!",
                f"Your {meta.get('role') or 'profile'} profile has been created and is now live.",
                "/institution/dashboard/profile" if is_institution else "/profile/view")
    if t == NotificationType.PAYMENT_DEADLINE:
        return ("Payment Deadline Reminder",
                f"Your {meta.get('planName') or 'subscription'} payment is due on {meta.get('deadlineDate') or 'soon'}.",
                "/institution/dashboard/payment" if is_institution else "/pricing")
    if t == NotificationType.APPLICATION_STATUS_UPDATE:
        title = f"Application Status Update - {meta.get('programName') or 'Your Application'}"
        if is_institution:
            url = f"/institution/dashboard/applications/{meta.get('applicationId') or ''}"
        else:
            url = application_url or "/applications"
        return title, _application_status_body(meta, is_institution), url
    if t == NotificationType.DOCUMENT_UPDATED:
        return (f"Document Updated - {meta.get('programName') or 'Application'}",
                f"{meta.get('applicantName') or 'An applicant'} has uploaded or updated "
                f"{meta.get('documentCount') or 0} document(s) for their application to "
                f"\"{meta.get('programName') or 'the program'}\". Please review the updated documents.",
                f"/institution/dashboard/applications/{meta.get('applicationId') or ''}")
    if t == NotificationType.WISHLIST_DEADLINE:
        path = _EXPLORE_PATHS.get(meta.get("postType") or "programme", _EXPLORE_PATHS["programme"])
        return (f"Deadline Approaching - {meta.get('postTitle') or 'Wishlist Item'}",
                f"Don't miss this opportunity! \"{meta.get('postTitle') or 'An item in your wishlist'}\" is "
                f"approaching its deadline in {_days_text(meta.get('daysRemaining') or 0)}. "
                "Make sure to submit your application before it expires!",
                f"{path}/{meta.get('postId') or ''}")
    if t == NotificationType.POST_STATUS_UPDATE:
        return (f"{meta.get('postType') or 'Post'} Status Update - {meta.get('postTitle') or ''}",
                f"Your post \"{meta.get('postTitle') or ''}\" is now {meta.get('newStatus') or 'updated'}.",
                meta.get("postUrl") or "/institution/dashboard/posts")
    return "New Notification", "You have a new notification from EduMatch.", "/"


def _application_url(application_id: str) -> str:
    row = fetch_one(
        """
        SELECT a.post_id,
               EXISTS (SELECT 1 FROM program_posts x WHERE x.post_id = a.post_id) AS is_program,
               EXISTS (SELECT 1 FROM scholarship_posts x WHERE x.post_id = a.post_id) AS is_scholarship,
               EXISTS (SELECT 1 FROM job_posts x WHERE x.post_id = a.post_id) AS is_job
        FROM applications a WHERE a.application_id = :id
        """,
        {"id": application_id},
    )
    if not row:
        return "/applications"

    if row["is_program"]:
        path = _EXPLORE_PATHS["programme"]
    elif row["is_scholarship"]:
        path = _EXPLORE_PATHS["scholarship"]
    elif row["is_job"]:
        path = _EXPLORE_PATHS["research-lab"]
    else:
        return "/applications"
    return f"{path}/{row['post_id']}?applicationId={application_id}&from=application"


def store_notification(message: NotificationMessage) -> bool:
    """Save the in-app notification. Returns False when it already exists."""
    if fetch_one("SELECT notification_id FROM notifications WHERE notification_id = :id", {"id": message.id}):
        log.info("Notification %s already exists, skipping duplicate storage", message.id)
        return False

    user = fetch_one("SELECT role FROM users WHERE user_id = :id", {"id": message.user_id})
    is_institution = bool(user and user["role"] == "institution")

    application_url = None
    application_id = (message.metadata or {}).get("applicationId")
    if message.type == NotificationType.APPLICATION_STATUS_UPDATE and not is_institution and application_id:
        application_url = _application_url(application_id)

    title, body, url = build_in_app_notification(message, is_institution, application_url)
    execute_raw_sql(
        """
        INSERT INTO notifications (notification_id, user_id, type, title, body, url, send_at)
        VALUES (:id, :uid, :type, :title, :body, :url, NOW())
        """,
        {"id": message.id, "uid": message.user_id, "type": message.type.value,
         "title": title, "body": body, "url": url},
    )
    log.info("Notification saved: %s for user %s", message.type.value, message.user_id)
    return True


# ============================================================
# CONSUMERS
# ============================================================

class QueueMessageHandler:
    def __init__(self, queue: QueueService = None, email_service: EmailService = None):
        self.queue = queue or get_queue_service()
        self.email_service = email_service or get_email_service()

    def process_notification_messages(self) -> int:
        """Store + forward every received notification. Returns the number handled."""
        return self._drain(self.queue.notifications_url, self._handle_notification, "notification")

    def process_email_messages(self) -> int:
        return self._drain(self.queue.emails_url, self._handle_email, "email")

    def _drain(self, queue_url: str, handle, kind: str) -> int:
        messages = self.queue.receive_messages(queue_url)
        if not messages:
            log.info("No %s messages to process - queue is empty", kind)
            return 0

        log.info("Found %d %s message(s) in queue", len(messages), kind)
        handled = 0
        for raw in messages:
            message_id = raw.get("MessageId", "unknown")
            try:
                handle(NotificationMessage.model_validate_json(raw["Body"]))
                self.queue.delete_message(queue_url, raw["ReceiptHandle"])
                handled += 1
            except (ValidationError, EduMatchError, SQLAlchemyError, OSError) as e:
                # Left in the queue; SQS redelivers it
                log.error("Error processing %s message %s: %s", kind, message_id, e)
        return handled

    def _handle_notification(self, message: NotificationMessage) -> None:
        try:
            store_notification(message)
        except SQLAlchemyError:
            log.exception("Could not store notification %s", message.id)
        self.queue.send_email_message(message)

    def _handle_email(self, message: NotificationMessage) -> None:
        log.info("Processing email: %s for %s (user: %s)", message.type.value, message.user_email, message.user_id)
        self.email_service.send_notification_email(message)


# ============================================================
# PRODUCERS
# ============================================================

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class NotificationUtils:
    """Builds notification messages and puts them on the notifications queue."""

    def __init__(self, queue: QueueService = None):
        self.queue = queue or get_queue_service()

    def _publish(self, prefix: str, ntype: NotificationType, user_id: str, user_email: str,
                 metadata: Dict[str, Any]) -> NotificationMessage:
        message = NotificationMessage(
            id=f"{prefix}-{user_id}-{uuid.uuid4().hex}",
            type=ntype,
            user_id=user_id,
            user_email=user_email,
            timestamp=_now_iso(),
            metadata=metadata,
        )
        try:
            message.typed_metadata()
        except ValidationError as e:
            raise InvalidNotificationMessage(f"Invalid metadata for {ntype.value} notification: {e}") from e
        self.queue.send_notification(message)
        return message

    def send_welcome_notification(self, user_id: str, user_email: str, first_name: str, last_name: str):
        return self._publish("welcome", NotificationType.WELCOME, user_id, user_email,
                             {"firstName": first_name, "lastName": last_name})

    def send_profile_created_notification(self, user_id: str, user_email: str, profile_id: str,
                                          first_name: str, last_name: str, role: str):
        return self._publish("profile-created", NotificationType.PROFILE_CREATED, user_id, user_email,
                             {"profileId": profile_id, "firstName": first_name,
                              "lastName": last_name, "role": role})

    def send_application_status_notification(self, user_id: str, user_email: str, application_id: str,
                                              program_name: str, old_status: str, new_status: str,
                                              institution_name: str, message: Optional[str] = None):
        metadata = {
            "applicationId": application_id,
            "programName": program_name,
            "oldStatus": old_status,
            "newStatus": new_status,
            "institutionName": institution_name,
        }
        if message:
            metadata["message"] = message
        return self._publish("application-status", NotificationType.APPLICATION_STATUS_UPDATE,
                             user_id, user_email, metadata)

    def send_document_update_notification(self, user_id: str, user_email: str, application_id: str,
                                          program_name: str, applicant_name: str, institution_name: str,
                                          document_count: int):
        return self._publish("document-updated", NotificationType.DOCUMENT_UPDATED, user_id, user_email,
                             {"applicationId": application_id, "programName": program_name,
                              "applicantName": applicant_name, "institutionName": institution_name,
                              "documentCount": document_count})

    def send_wishlist_deadline_notification(self, user_id: str, user_email: str, post_id: str, post_title: str,
                                            deadline_date: str, days_remaining: int,
                                            post_type: Optional[str] = None,
                                            institution_name: Optional[str] = None):
        metadata = {
            "postId": post_id,
            "postTitle": post_title,
            "deadlineDate": deadline_date,
            "daysRemaining": days_remaining,
        }
        if post_type:
            metadata["postType"] = post_type
        if institution_name:
            metadata["institutionName"] = institution_name
        return self._publish("wishlist-deadline", NotificationType.WISHLIST_DEADLINE, user_id, user_email, metadata)

    def send_post_status_update_notification(self, user_id: str, user_email: str, post_id: str, post_title: str,
                                             post_type: str, institution_name: str, old_status: str,
                                             new_status: str, post_url: str,
                                             rejection_reason: Optional[str] = None):
        metadata = {
            "postId": post_id,
            "postTitle": post_title,
            "postType": post_type,
            "institutionName": institution_name,
            "oldStatus": old_status,
            "newStatus": new_status,
            "postUrl": post_url,
        }
        if rejection_reason:
            metadata["rejectionReason"] = rejection_reason
        return self._publish("post-status", NotificationType.POST_STATUS_UPDATE, user_id, user_email, metadata)


# Singleton
_queue_service: Optional[QueueService] = None


def get_queue_service() -> QueueService:
    global _queue_service
    if _queue_service is None:
        _queue_service = QueueService()
    return _queue_service
