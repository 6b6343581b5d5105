"""
API tests with FastAPI's TestClient. Database, queue and SMTP access is
patched out; auth dependencies are replaced through dependency_overrides.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from edumatch.api.routes.notification_routes import run_wishlist_deadlines
from edumatch.core.auth import get_current_institution, get_current_user
from edumatch.core.errors import QueueError
from edumatch.main import app
from edumatch.schemas.schemas import TabType, ValidationAction, ValidationResult

EMPTY_LISTING = {
    "success": True,
    "data": [],
    "meta": {"total": 0, "page": 1, "limit": 10, "totalPages": 0},
    "availableFilters": {},
}

USER = {"user_id": "user-1", "email": "student@example.com", "name": "Ana", "role": "applicant", "status": True}


# ============================================================
# EXPLORE
# ============================================================

def test_explore_resolves_url_state(client):
    with patch("edumatch.services.explore_service.build_listing", return_value=EMPTY_LISTING) as listing:
        res = client.get("/api/explore?tab=scholarships&sort=deadline&page=1&scholarships_country=USA&ref=mail")

    assert res.status_code == 200
    body = res.json()
    assert body["tab"] == "scholarships"
    assert body["sort"] == "deadline"
    assert body["query"] == "tab=scholarships&sort=deadline&scholarships_country=USA&ref=mail"

    query = listing.call_args[0][0]
    assert query.tab == TabType.scholarships
    assert query.filters == {"country": ["USA"]}
    assert listing.call_args[0][1] is None


def test_explore_invalid_values_fall_back(client):
    with patch("edumatch.services.explore_service.build_listing", return_value=EMPTY_LISTING):
        body = client.get("/api/explore?tab=bogus&sort=bogus&page=zero").json()

    assert body["tab"] == "programmes"
    assert body["sort"] == "most-popular"
    assert body["query"] == "tab=programmes"


def test_program_listing_reads_filters(client):
    with patch("edumatch.services.explore_service.build_listing", return_value=EMPTY_LISTING) as listing:
        res = client.get("/api/explore/programs?country=Italy,France&minFee=1000&sortBy=price-low&page=2")

    assert res.status_code == 200
    query = listing.call_args[0][0]
    assert query.filters == {"country": ["Italy", "France"]}
    assert query.min_fee == 1000.0
    assert query.max_fee is None
    assert query.sort_by == "price-low"
    assert query.page == 2


def test_program_listing_rejects_bad_numbers(client):
    res = client.get("/api/explore/programs?minFee=cheap")
    assert res.status_code == 400
    assert res.json() == {"success": False, "error": "Invalid minFee"}


def test_detail_requires_id(client):
    res = client.get("/api/explore/programs/detail")
    assert res.status_code == 400
    assert res.json()["error"] == "Post ID is required"


def test_detail_not_found(client):
    with patch("edumatch.services.explore_service.get_post_detail", return_value=None):
        res = client.get("/api/explore/research/detail?id=missing")
    assert res.status_code == 404


# ============================================================
# POSTS
# ============================================================

def test_create_scholarship_rejects_past_start(client):
    app.dependency_overrides[get_current_institution] = lambda: {**USER, "institution_id": "inst-1"}
    yesterday = (datetime.now(timezone.utc) - timedelta(days=1)).date().isoformat()
    next_month = (datetime.now(timezone.utc) + timedelta(days=30)).date().isoformat()

    res = client.post("/api/posts/scholarships", json={
        "title": "Merit Award", "start_date": yesterday, "application_deadline": next_month,
    })

    assert res.status_code == 400
    assert res.json()["error"] == "Start date cannot be in the past"


def test_create_scholarship_deadline_before_start_is_invalid(client):
    app.dependency_overrides[get_current_institution] = lambda: {**USER, "institution_id": "inst-1"}

    res = client.post("/api/posts/scholarships", json={
        "title": "Merit Award", "start_date": "2099-06-01", "application_deadline": "2099-01-01",
    })

    assert res.status_code == 422
    assert res.json()["error"] == "Validation error"


def test_delete_only_drafts(client):
    app.dependency_overrides[get_current_institution] = lambda: {**USER, "institution_id": "inst-1"}
    post = {"post_id": "p1", "institution_id": "inst-1", "status": "PUBLISHED"}

    with patch("edumatch.services.post_service.get_owned_post", return_value=post), \
            patch("edumatch.services.post_service.soft_delete_post") as delete:
        res = client.delete("/api/posts/research?postId=p1")

    assert res.status_code == 400
    delete.assert_not_called()


# ============================================================
# NOTIFICATIONS
# ============================================================

def test_process_both_queues(client):
    with patch("edumatch.api.routes.notification_routes.QueueMessageHandler") as handler:
        handler.return_value.process_notification_messages.return_value = 2
        handler.return_value.process_email_messages.return_value = 1
        res = client.get("/api/notifications/process")

    assert res.status_code == 200
    assert res.json()["processed"] == {"notifications": 2, "emails": 1}


def test_process_queue_failure(client):
    with patch("edumatch.api.routes.notification_routes.QueueMessageHandler") as handler:
        handler.return_value.process_email_messages.side_effect = QueueError("sqs down")
        res = client.put("/api/notifications/process")

    assert res.status_code == 500
    assert res.json()["success"] is False


def test_notification_settings_use_current_user(client):
    app.dependency_overrides[get_current_user] = lambda: USER
    saved = {"applicationStatus": False, "wishlistDeadline": True, "payment": True}

    with patch("edumatch.services.notification_settings.update_settings_for", return_value=saved) as update:
        res = client.put("/api/notification-settings", json={"applicationStatus": False})

    assert res.status_code == 200
    assert res.json()["settings"] == saved
    update.assert_called_once_with("user-1", False, True, True)


def test_notification_settings_require_auth(client):
    assert client.get("/api/notification-settings").status_code in (401, 403)


def test_test_email_lists_types(client):
    body = client.get("/api/test/email").json()
    assert "welcome" in body["availableTypes"]


def test_test_email_unknown_type(client):
    res = client.post("/api/test/email", json={"type": "nope", "to": "a@example.com"})
    assert res.status_code == 400
    assert res.json()["error"].startswith("Unknown email type: nope. Available types: welcome")


def test_test_email_sends_sample(client):
    email = MagicMock()
    email.send_notification_email.return_value = True
    with patch("edumatch.api.routes.notification_routes.get_email_service", return_value=email):
        res = client.post("/api/test/email", json={"type": "application_status", "to": "a@example.com"})

    assert res.status_code == 200
    message = email.send_notification_email.call_args[0][0]
    assert message.user_email == "a@example.com"
    assert message.metadata["newStatus"] == "accepted"


def test_wishlist_cron_queues_reminders():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    items = [
        {"post_id": "p1", "title": "Merit Award", "end_date": now + timedelta(days=2, hours=12),
         "institution_name": "Uni", "user_id": "u1", "email": "u1@example.com",
         "is_scholarship": True, "is_job": False},
        {"post_id": "p2", "title": "MSc AI", "end_date": now + timedelta(days=5),
         "institution_name": "Uni", "user_id": "u2", "email": "u2@example.com",
         "is_scholarship": False, "is_job": False},
    ]
    utils = MagicMock()

    with patch("edumatch.api.routes.notification_routes.execute_raw_sql", return_value=items), \
            patch("edumatch.api.routes.notification_routes.fetch_one", return_value=None), \
            patch("edumatch.services.notification_settings.is_notification_enabled",
                  side_effect=lambda uid, category: uid == "u1"):
        result = run_wishlist_deadlines(now=now, utils=utils)

    assert result == {
        "success": True,
        "message": "Processed 2 wishlist items",
        "notificationsSent": 1,
        "errors": None,
    }
    args, kwargs = utils.send_wishlist_deadline_notification.call_args
    assert args[0] == "u1"
    assert args[5] == 3
    assert kwargs["post_type"] == "scholarship"


def test_wishlist_cron_skips_recent_duplicates():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    items = [{"post_id": "p1", "title": "T", "end_date": now + timedelta(days=1), "institution_name": "U",
              "user_id": "u1", "email": "u1@example.com", "is_scholarship": False, "is_job": True}]
    utils = MagicMock()

    with patch("edumatch.api.routes.notification_routes.execute_raw_sql", return_value=items), \
            patch("edumatch.api.routes.notification_routes.fetch_one", return_value={"notification_id": "n1"}), \
            patch("edumatch.services.notification_settings.is_notification_enabled", return_value=True):
        result = run_wishlist_deadlines(now=now, utils=utils)

    assert result["notificationsSent"] == 0
    utils.send_wishlist_deadline_notification.assert_not_called()


def test_wishlist_cron_without_items(client):
    with patch("edumatch.api.routes.notification_routes.execute_raw_sql", return_value=[]):
        res = client.post("/api/cron/wishlist-deadlines")

    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "No wishlist items approaching deadline", "notificationsSent": 0}


# ============================================================
# SUPPORT
# ============================================================

def test_support_guest_needs_email(client):
    res = client.post("/api/support", json={"question": "How do I apply?"})
    assert res.status_code == 400
    assert res.json()["error"] == "Email is required for guests"


def test_support_blank_question(client):
    res = client.post("/api/support", json={"question": "   ", "email": "guest@example.com"})
    assert res.status_code == 400
    assert res.json()["error"] == "Question is required"


def test_support_guest_request_is_emailed(client):
    email = MagicMock()
    with patch("edumatch.api.routes.support_routes.resolve_manager_id", return_value=None), \
            patch("edumatch.api.routes.support_routes.get_email_service", return_value=email):
        res = client.post("/api/support", json={
            "problemType": "billing", "question": "Refund <please>", "email": "guest@example.com",
        })

    assert res.status_code == 200
    assert res.json() == {"success": True, "stored": False}
    assert email.send_company_email.call_count == 2

    to_support = email.send_company_email.call_args_list[0]
    assert to_support.args[1] == "Support Request: billing"
    assert "Refund &lt;please&gt;" in to_support.args[2]
    assert email.send_company_email.call_args_list[1].args[0] == "guest@example.com"


def test_support_multipart_with_attachment(client):
    email = MagicMock()
    with patch("edumatch.api.routes.support_routes.resolve_manager_id", return_value="admin-1"), \
            patch("edumatch.api.routes.support_routes.execute_raw_sql") as insert, \
            patch("edumatch.api.routes.support_routes.get_email_service", return_value=email):
        res = client.post(
            "/api/support",
            data={"question": "See attached", "email": "guest@example.com"},
            files={"files": ("shot.png", b"\x89PNG", "image/png")},
        )

    assert res.status_code == 200
    assert res.json()["stored"] is True
    assert insert.call_args[0][1]["manager"] == "admin-1"
    attachments = email.send_company_email.call_args_list[0].kwargs["attachments"]
    assert attachments == [("shot.png", b"\x89PNG", "png")]


# ============================================================
# FILES
# ============================================================

def test_validate_file(client):
    service = MagicMock()
    service.validate_file.return_value = ValidationResult(
        isValid=True, confidence=0.9, reasoning="Looks like a CV", action=ValidationAction.accept,
    )
    with patch("edumatch.api.routes.file_routes.get_file_validation_service", return_value=service):
        res = client.post(
            "/api/files/validate",
            data={"documentType": "cv-resume"},
            files={"file": ("cv.txt", b"Jane Doe, experience and education", "text/plain")},
        )

    assert res.status_code == 200
    body = res.json()
    assert body["displayName"] == "CV/Resume"
    assert body["result"]["isValid"] is True
    service.validate_file.assert_called_once()
    assert service.validate_file.call_args[0][0] == "Jane Doe, experience and education"


def test_validate_file_rejects_unsupported_extension(client):
    res = client.post(
        "/api/files/validate",
        data={"documentType": "cv-resume"},
        files={"file": ("cv.exe", b"MZ", "application/octet-stream")},
    )
    assert res.status_code == 400
