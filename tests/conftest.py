"""Shared pytest fixtures."""

import pytest
from fastapi.testclient import TestClient

from edumatch.main import app
from edumatch.schemas.schemas import NotificationMessage, NotificationType


@pytest.fixture
def client():
    # No context manager: startup (MongoDB indexes) is not run
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_message():
    def _make(ntype: NotificationType, metadata: dict, user_id: str = "user-1",
              user_email: str = "student@example.com") -> NotificationMessage:
        return NotificationMessage(
            id=f"test-{ntype.value.lower()}-{user_id}",
            type=ntype,
            user_id=user_id,
            user_email=user_email,
            timestamp="2024-01-01T00:00:00Z",
            metadata=metadata,
        )
    return _make
