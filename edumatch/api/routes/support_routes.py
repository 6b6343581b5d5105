"""
Support Routes

POST /support - Submit a support request (JSON or multipart with files)
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.datastructures import UploadFile
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from edumatch.core.auth import get_optional_user
from edumatch.core.config import get_settings
from edumatch.core.log import get_logger
from edumatch.db.postgres import execute_raw_sql, fetch_one
from edumatch.schemas.schemas import SupportRequest, SupportResponse
from edumatch.services.email_service import Attachment, get_email_service
from edumatch.services.email_templates import render_fragment

router = APIRouter(tags=["Support"])
log = get_logger(__name__)
settings = get_settings()


def resolve_manager_id(user_id: Optional[str]) -> Optional[str]:
    """Admin that owns support requests: ADMIN_EMAIL user, any admin, else the requester."""
    if settings.admin_email:
        row = fetch_one("SELECT user_id FROM users WHERE email = :email", {"email": settings.admin_email})
        if row:
            return row["user_id"]

    row = fetch_one("SELECT user_id FROM users WHERE role = 'admin' LIMIT 1")
    if row:
        return row["user_id"]

    return user_id


async def _read_request(request: Request) -> tuple:
    """(SupportRequest, attachments) from a JSON or multipart body."""
    attachments: List[Attachment] = []
    if "multipart/form-data" in request.headers.get("content-type", ""):
        form = await request.form()
        data = {
            "problemType": (form.get("problemType") or "other"),
            "question": form.get("question") or "",
            "email": (form.get("email") or "").strip() or None,
        }
        for f in form.getlist("files"):
            if isinstance(f, UploadFile):
                content_type = f.content_type or "application/octet-stream"
                attachments.append((f.filename, await f.read(), content_type.split("/")[-1]))
    else:
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid request body")
        if isinstance(data, dict) and not data.get("email"):
            data["email"] = None

    try:
        return SupportRequest.model_validate(data), attachments
    except ValidationError as e:
        first = e.errors()[0]
        msg = first.get("msg", "Invalid request")
        raise HTTPException(status_code=400, detail=msg.replace("Value error, ", ""))


@router.post("/support", response_model=SupportResponse, response_model_exclude_none=True)
async def submit_support_request(request: Request, user: Optional[dict] = Depends(get_optional_user)):
    """
    Submit a support request.

    Guests must give an email. The request is stored when a manager can be
    resolved; support receivers get the request (with attachments) and the
    sender gets a confirmation either way.
    """
    body, attachments = await _read_request(request)

    user_id = user["user_id"] if user else None
    sender_email = (user["email"] if user else None) or body.email
    if not sender_email:
        raise HTTPException(status_code=400, detail="Email is required for guests")

    support_id = None
    try:
        manager_id = resolve_manager_id(user_id)
        if manager_id:
            support_id = str(uuid.uuid4())
            execute_raw_sql(
                """
                INSERT INTO support_requirements (support_requirement_id, manager_id, user_id, email,
                    problem_type, question, status, create_at)
                VALUES (:id, :manager, :uid, :email, :ptype, :question, 'PENDING', NOW())
                """,
                {"id": support_id, "manager": manager_id, "uid": user_id, "email": sender_email,
                 "ptype": body.problemType, "question": body.question},
            )
            log.info("Stored support request %s from %s", support_id, sender_email)
    except SQLAlchemyError:
        log.exception("Failed to store support request from %s", sender_email)
        raise HTTPException(status_code=500, detail="Failed to submit support request")

    context = {
        "problem_type": body.problemType,
        "sender_email": sender_email,
        "authenticated": user is not None,
        "support_id": support_id,
        "question": body.question,
        "attachments": [a[0] for a in attachments],
    }
    help_center = f"{settings.app_url}/support"
    email = get_email_service()
    try:
        email.send_company_email(
            ", ".join(settings.support_receivers),
            f"Support Request: {body.problemType}",
            render_fragment("support_request.html", **context),
            attachments=attachments or None,
            title="New Support Request",
            preheader=f"Support request from {sender_email}",
            help_center_url=help_center,
        )
        email.send_company_email(
            sender_email,
            f"Support Request Received - {body.problemType}",
            render_fragment("support_confirmation.html", **context),
            title="Support Request Received",
            preheader="Thank you for contacting EduMatch support",
            cta={"label": "Visit Help Center", "url": help_center},
            help_center_url=help_center,
        )
    except OSError:
        log.exception("Failed to send support emails for %s", sender_email)
        raise HTTPException(status_code=500, detail="Failed to submit support request")

    return SupportResponse(stored=support_id is not None, id=support_id)
