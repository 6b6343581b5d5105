"""
Notification Routes

POST /notifications/process - Drain the notifications queue
PUT /notifications/process - Drain the emails queue
GET /notifications/process - Drain both queues
GET /debug/queue-status - Peek at both queues
GET|POST /cron/wishlist-deadlines - Queue reminders for wishlisted posts closing within 7 days
GET /notification-settings - Current user's email preferences
PUT /notification-settings - Update email preferences
GET /test/email - Sample email types
POST /test/email - Send a sample email
"""

import json
import uuid
from datetime import datetime, timedelta, timezone
from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from edumatch.core.auth import get_current_user, get_optional_user, verify_cron_secret
from edumatch.core.config import get_settings
from edumatch.core.errors import EduMatchError, QueueError
from edumatch.core.log import get_logger
from edumatch.db.postgres import execute_raw_sql, fetch_one
from edumatch.schemas.schemas import (
    NotificationMessage, NotificationType, NotificationSettingsPayload,
    ProcessResponse, WishlistCronResponse, TestEmailRequest
)
from edumatch.services import notification_settings
from edumatch.services.email_service import get_email_service
from edumatch.services.queue_service import (
    QueueMessageHandler, NotificationUtils, get_queue_service
)

router = APIRouter(tags=["Notifications"])
log = get_logger(__name__)
settings = get_settings()

WISHLIST_WINDOW_DAYS = 7


# ============================================================
# QUEUE PROCESSING
# ============================================================

def _process(notifications: bool, emails: bool) -> dict:
    handler = QueueMessageHandler()
    processed = {}
    try:
        if notifications:
            processed["notifications"] = handler.process_notification_messages()
        if emails:
            processed["emails"] = handler.process_email_messages()
    except QueueError as e:
        log.error("Queue processing failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to process messages")
    return {"success": True, "message": "Messages processed successfully", "processed": processed}


@router.post("/notifications/process", response_model=ProcessResponse, dependencies=[Depends(verify_cron_secret)])
async def process_notifications():
    return _process(notifications=True, emails=False)


@router.put("/notifications/process", response_model=ProcessResponse, dependencies=[Depends(verify_cron_secret)])
async def process_emails():
    return _process(notifications=False, emails=True)


@router.get("/notifications/process", response_model=ProcessResponse, dependencies=[Depends(verify_cron_secret)])
async def process_all():
    return _process(notifications=True, emails=True)


def _peek(raw: dict) -> dict:
    body = raw.get("Body") or "{}"
    try:
        body = json.loads(body)
    except ValueError:
        pass
    return {
        "messageId": raw.get("MessageId"),
        "body": body,
        "receiptHandle": (raw.get("ReceiptHandle") or "")[:20] + "...",
    }


@router.get("/debug/queue-status", dependencies=[Depends(verify_cron_secret)])
async def queue_status():
    """Receive (without deleting) up to 10 messages from each queue."""
    queue = get_queue_service()
    try:
        notifications = queue.receive_messages(queue.notifications_url, 10, wait_seconds=0)
        emails = queue.receive_messages(queue.emails_url, 10, wait_seconds=0)
    except QueueError as e:
        log.error("Queue status check failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to check queue status")

    return {
        "success": True,
        "notificationsQueue": {"count": len(notifications), "messages": [_peek(m) for m in notifications]},
        "emailsQueue": {"count": len(emails), "messages": [_peek(m) for m in emails]},
        "note": "Messages shown here are temporarily visible. They will become visible again after visibility timeout.",
    }


# ============================================================
# CRON: WISHLIST DEADLINES
# ============================================================

def _post_type(row: dict) -> str:
    if row["is_scholarship"]:
        return "scholarship"
    if row["is_job"]:
        return "research-lab"
    return "programme"


def _as_utc(value) -> datetime:
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def run_wishlist_deadlines(now: Optional[datetime] = None, utils: Optional[NotificationUtils] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    utils = utils or NotificationUtils()

    items = execute_raw_sql(
        """
        SELECT w.post_id, p.title, p.end_date, i.name AS institution_name,
               u.user_id, u.email,
               EXISTS (SELECT 1 FROM scholarship_posts x WHERE x.post_id = p.post_id) AS is_scholarship,
               EXISTS (SELECT 1 FROM job_posts x WHERE x.post_id = p.post_id) AS is_job
        FROM wishlists w
        JOIN applicants a ON a.applicant_id = w.applicant_id
        JOIN users u ON u.user_id = a.user_id
        JOIN opportunity_posts p ON p.post_id = w.post_id
        JOIN institutions i ON i.institution_id = p.institution_id
        WHERE w.status = 1 AND p.status = 'PUBLISHED'
          AND p.end_date IS NOT NULL AND p.end_date >= :now AND p.end_date <= :until
        """,
        {"now": now, "until": now + timedelta(days=WISHLIST_WINDOW_DAYS)},
    )

    if not items:
        return {"success": True, "message": "No wishlist items approaching deadline", "notificationsSent": 0}

    sent = 0
    errors = []
    for item in items:
        try:
            end = _as_utc(item["end_date"])
            days_remaining = ceil((end - now).total_seconds() / 86400)
            if days_remaining <= 0 or days_remaining > WISHLIST_WINDOW_DAYS:
                continue

            if not notification_settings.is_notification_enabled(item["user_id"], "wishlist"):
                continue

            recent = fetch_one(
                """
                SELECT notification_id FROM notifications
                WHERE user_id = :uid AND type = 'WISHLIST_DEADLINE' AND send_at >= :since
                  AND url LIKE :suffix
                LIMIT 1
                """,
                {"uid": item["user_id"], "since": now - timedelta(hours=24), "suffix": f"%/{item['post_id']}"},
            )
            if recent:
                continue

            utils.send_wishlist_deadline_notification(
                item["user_id"],
                item["email"] or "",
                item["post_id"],
                item["title"],
                end.isoformat(),
                days_remaining,
                post_type=_post_type(item),
                institution_name=item["institution_name"],
            )
            sent += 1
        except (EduMatchError, SQLAlchemyError) as e:
            errors.append(f"Error processing wishlist item {item['post_id']}: {e}")
            log.error("Wishlist deadline notification failed for post %s: %s", item["post_id"], e)

    log.info("Wishlist deadlines: %d items, %d notifications queued", len(items), sent)
    return {
        "success": True,
        "message": f"Processed {len(items)} wishlist items",
        "notificationsSent": sent,
        "errors": errors or None,
    }


@router.api_route("/cron/wishlist-deadlines", methods=["GET", "POST"], response_model=WishlistCronResponse,
                  response_model_exclude_none=True, dependencies=[Depends(verify_cron_secret)])
async def wishlist_deadlines():
    try:
        return run_wishlist_deadlines()
    except SQLAlchemyError:
        log.exception("Failed to process wishlist deadlines")
        raise HTTPException(status_code=500, detail="Failed to process wishlist deadlines")


# ============================================================
# NOTIFICATION SETTINGS
# ============================================================

@router.get("/notification-settings")
async def get_notification_settings(user: dict = Depends(get_current_user)):
    return {"success": True, "settings": notification_settings.get_settings_for(user["user_id"])}


@router.put("/notification-settings")
async def update_notification_settings(
    payload: NotificationSettingsPayload,
    user: dict = Depends(get_current_user),
):
    updated = notification_settings.update_settings_for(
        user["user_id"], payload.applicationStatus, payload.wishlistDeadline, payload.payment
    )
    return {"success": True, "message": "Notification settings updated successfully", "settings": updated}


# ============================================================
# TEST EMAILS
# ============================================================

def _in_days(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


SAMPLE_EMAILS = {
    "welcome": (NotificationType.WELCOME, lambda: {"firstName": "John", "lastName": "Doe"}),
    "profile_created": (NotificationType.PROFILE_CREATED, lambda: {
        "profileId": "test-profile-id", "firstName": "Jane", "lastName": "Smith", "role": "applicant"}),
    "payment_deadline": (NotificationType.PAYMENT_DEADLINE, lambda: {
        "subscriptionId": "test-subscription-id", "planName": "Premium Plan",
        "deadlineDate": _in_days(7), "amount": 99.99, "currency": "USD"}),
    "wishlist_deadline": (NotificationType.WISHLIST_DEADLINE, lambda: {
        "postTitle": "PhD in Computer Science", "postId": "test-post-id",
        "deadlineDate": _in_days(14), "daysRemaining": 14, "institutionName": "Test University"}),
    "application_status": (NotificationType.APPLICATION_STATUS_UPDATE, lambda: {
        "applicationId": "test-app-id", "programName": "Master's in Data Science",
        "institutionName": "Test University", "oldStatus": "submitted", "newStatus": "accepted",
        "message": "Congratulations! Your application has been accepted."}),
    "document_updated": (NotificationType.DOCUMENT_UPDATED, lambda: {
        "applicationId": "test-app-id", "programName": "PhD in Engineering", "applicantName": "John Doe",
        "institutionName": "Test University", "documentCount": 3}),
    "payment_success": (NotificationType.PAYMENT_SUCCESS, lambda: {
        "subscriptionId": "test-subscription-id", "planName": "Premium Plan", "amount": 99.99,
        "currency": "USD", "transactionId": "txn_test_123456"}),
    "payment_failed": (NotificationType.PAYMENT_FAILED, lambda: {
        "subscriptionId": "test-subscription-id", "planName": "Premium Plan", "amount": 99.99,
        "currency": "USD", "failureReason": "Insufficient funds"}),
    "subscription_expiring": (NotificationType.SUBSCRIPTION_EXPIRING, lambda: {
        "subscriptionId": "test-subscription-id", "planName": "Premium Plan",
        "expiryDate": _in_days(3), "daysRemaining": 3}),
    "user_banned": (NotificationType.USER_BANNED, lambda: {
        "firstName": "John", "lastName": "Doe", "reason": "Violation of terms of service",
        "bannedBy": "admin", "bannedUntil": _in_days(30)}),
    "session_revoked": (NotificationType.SESSION_REVOKED, lambda: {
        "firstName": "John", "lastName": "Doe", "reason": "Suspicious activity detected",
        "revokedBy": "admin", "deviceInfo": "Chrome on Windows"}),
    "password_changed": (NotificationType.PASSWORD_CHANGED, lambda: {
        "firstName": "John", "lastName": "Doe", "changeTime": datetime.now(timezone.utc).isoformat(),
        "ipAddress": "192.168.1.1", "userAgent": "Mozilla/5.0"}),
    "account_deleted": (NotificationType.ACCOUNT_DELETED, lambda: {
        "firstName": "John", "lastName": "Doe", "deletionTime": datetime.now(timezone.utc).isoformat()}),
}


@router.get("/test/email")
async def list_test_emails():
    return {
        "success": True,
        "message": "POST {type, to} to send a sample email",
        "availableTypes": list(SAMPLE_EMAILS),
    }


@router.post("/test/email")
async def send_test_email(request: TestEmailRequest, user: Optional[dict] = Depends(get_optional_user)):
    """Send a sample email of one type. Admins only in production."""
    if settings.is_production:
        is_admin = bool(user) and (user["email"] == settings.admin_email or user["role"] == "admin")
        if not is_admin:
            raise HTTPException(status_code=403, detail="This endpoint is only available to admins in production")

    sample = SAMPLE_EMAILS.get(request.type)
    if sample is None:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown email type: {request.type}. Available types: {', '.join(SAMPLE_EMAILS)}",
        )

    ntype, metadata = sample
    message = NotificationMessage(
        id=f"test-{request.type}-{uuid.uuid4().hex}",
        type=ntype,
        user_id=user["user_id"] if user else "test-user-id",
        user_email=request.to,
        timestamp=datetime.now(timezone.utc).isoformat(),
        metadata=metadata(),
    )

    try:
        sent = get_email_service().send_notification_email(message)
    except (EduMatchError, OSError) as e:
        log.error("Test email %s to %s failed: %s", request.type, request.to, e)
        raise HTTPException(status_code=500, detail=f"Failed to send test email: {e}")

    return {
        "success": True,
        "message": f"Test email sent to {request.to}" if sent else "Email skipped by notification settings",
        "type": request.type,
    }
