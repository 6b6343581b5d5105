"""
Notification Settings - per-user opt-outs for email notifications.

Three categories are stored per user: application, wishlist, subscription.
A user without a settings row has every category enabled.
"""

from typing import Dict, Optional

from edumatch.db.postgres import fetch_one
from edumatch.schemas.schemas import NotificationType

# Notification types that respect a user setting; every other type always sends
NOTIFICATION_CATEGORIES: Dict[NotificationType, str] = {
    NotificationType.APPLICATION_STATUS_UPDATE: "application",
    NotificationType.DOCUMENT_UPDATED: "application",
    NotificationType.PAYMENT_DEADLINE: "subscription",
    NotificationType.WISHLIST_DEADLINE: "wishlist",
}

_COLUMNS = {
    "application": "notify_application",
    "wishlist": "notify_wishlist",
    "subscription": "notify_subscription",
}


def category_for(notification_type: NotificationType) -> Optional[str]:
    return NOTIFICATION_CATEGORIES.get(notification_type)


def is_notification_enabled(user_id: str, category: str) -> bool:
    """True unless the user switched the category off."""
    column = _COLUMNS[category]
    row = fetch_one(
        f"SELECT {column} AS enabled FROM notification_settings WHERE user_id = :uid",
        {"uid": user_id},
    )
    if row is None or row["enabled"] is None:
        return True
    return bool(row["enabled"])


def _to_payload(row: dict) -> Dict[str, bool]:
    return {
        "applicationStatus": row["notify_application"],
        "wishlistDeadline": row["notify_wishlist"] if row["notify_wishlist"] is not None else True,
        "payment": row["notify_subscription"],
    }


def get_settings_for(user_id: str) -> Dict[str, bool]:
    """Settings of a user, creating the all-enabled row on first read."""
    row = fetch_one(
        """
        INSERT INTO notification_settings (user_id, update_at)
        VALUES (:uid, NOW())
        ON CONFLICT (user_id) DO UPDATE SET user_id = EXCLUDED.user_id
        RETURNING notify_application, notify_wishlist, notify_subscription
        """,
        {"uid": user_id},
    )
    return _to_payload(row)


def update_settings_for(user_id: str, application: bool, wishlist: bool, subscription: bool) -> Dict[str, bool]:
    row = fetch_one(
        """
        INSERT INTO notification_settings (user_id, notify_application, notify_wishlist,
            notify_subscription, update_at)
        VALUES (:uid, :app, :wish, :sub, NOW())
        ON CONFLICT (user_id) DO UPDATE SET
            notify_application = EXCLUDED.notify_application,
            notify_wishlist = EXCLUDED.notify_wishlist,
            notify_subscription = EXCLUDED.notify_subscription,
            update_at = NOW()
        RETURNING notify_application, notify_wishlist, notify_subscription
        """,
        {"uid": user_id, "app": application, "wish": wishlist, "sub": subscription},
    )
    return _to_payload(row)
