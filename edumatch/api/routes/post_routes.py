"""
Institution Post Routes

GET /posts/scholarships - Own scholarship posts (?postId= for one)
POST /posts/scholarships - Create scholarship post
PUT /posts/scholarships - Update scholarship post
DELETE /posts/scholarships?postId= - Delete a draft scholarship post
GET /posts/research - Own research posts (?postId= for one)
POST /posts/research - Create research post
PUT /posts/research - Update research post
DELETE /posts/research?postId= - Delete a draft research post
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from edumatch.core.auth import get_current_institution
from edumatch.schemas.schemas import (
    TabType, PostBase, PostStatus, ScholarshipCreate, ScholarshipUpdate,
    ResearchCreate, ResearchUpdate, PostMutationResponse
)
from edumatch.services import post_service

router = APIRouter(prefix="/posts", tags=["Posts"])

SCHOLARSHIP_DEGREE_LEVEL = "SCHOLARSHIP"
RESEARCH_DEGREE_LEVEL = "RESEARCH"


def _check_dates(post: PostBase, check_start: bool = True) -> None:
    today = date.today()
    if check_start and post.start_date < today:
        raise HTTPException(status_code=400, detail="Start date cannot be in the past")
    if post.application_deadline < today:
        raise HTTPException(status_code=400, detail="Application deadline cannot be in the past")


def _require_owned(post_id: str, institution: dict) -> dict:
    post = post_service.get_owned_post(post_id)
    if not post or post["institution_id"] != institution["institution_id"] or post["status"] == PostStatus.deleted.value:
        raise HTTPException(status_code=404, detail="Post not found or access denied")
    return post


def _get(tab: TabType, post_id: Optional[str], institution: dict) -> dict:
    if post_id:
        post = post_service.get_institution_post(institution["institution_id"], post_id, tab)
        if not post:
            raise HTTPException(status_code=404, detail="Post not found or access denied")
        return {"success": True, "data": post}
    return {"success": True, "data": post_service.list_institution_posts(institution["institution_id"], tab)}


def _delete(post_id: Optional[str], institution: dict) -> dict:
    if not post_id:
        raise HTTPException(status_code=400, detail="Post ID is required")

    post = post_service.get_owned_post(post_id)
    if not post or post["status"] == PostStatus.deleted.value:
        raise HTTPException(status_code=404, detail="Post not found")
    if post["institution_id"] != institution["institution_id"]:
        raise HTTPException(status_code=403, detail="You do not have permission to delete this post")
    if post["status"] != PostStatus.draft.value:
        raise HTTPException(status_code=400, detail="Only draft posts can be deleted")

    post_service.soft_delete_post(post_id)
    return {"success": True, "message": "Post deleted successfully"}


# ============================================================
# SCHOLARSHIPS
# ============================================================

@router.get("/scholarships")
async def get_scholarships(
    postId: Optional[str] = Query(None),
    institution: dict = Depends(get_current_institution),
):
    return _get(TabType.scholarships, postId, institution)


@router.post("/scholarships", response_model=PostMutationResponse, status_code=201)
async def create_scholarship(post: ScholarshipCreate, institution: dict = Depends(get_current_institution)):
    """Create a scholarship post. A published post with the same title is a conflict."""
    _check_dates(post)

    if post_service.published_title_exists(institution["institution_id"], post.title):
        raise HTTPException(status_code=409, detail="A published scholarship with this title already exists")

    post_id = post_service.create_post(
        institution["institution_id"], TabType.scholarships, post, SCHOLARSHIP_DEGREE_LEVEL
    )
    return PostMutationResponse(post_id=post_id, status=post.status, message="Scholarship created successfully")


@router.put("/scholarships", response_model=PostMutationResponse)
async def update_scholarship(post: ScholarshipUpdate, institution: dict = Depends(get_current_institution)):
    _require_owned(post.post_id, institution)
    _check_dates(post, check_start=False)

    if post.status == PostStatus.published and post_service.published_title_exists(
        institution["institution_id"], post.title, exclude_post_id=post.post_id
    ):
        raise HTTPException(status_code=409, detail="A published scholarship with this title already exists")

    post_service.update_post(post.post_id, TabType.scholarships, post, SCHOLARSHIP_DEGREE_LEVEL)
    return PostMutationResponse(post_id=post.post_id, status=post.status, message="Scholarship updated successfully")


@router.delete("/scholarships")
async def delete_scholarship(
    postId: Optional[str] = Query(None),
    institution: dict = Depends(get_current_institution),
):
    return _delete(postId, institution)


# ============================================================
# RESEARCH POSITIONS
# ============================================================

@router.get("/research")
async def get_research(
    postId: Optional[str] = Query(None),
    institution: dict = Depends(get_current_institution),
):
    return _get(TabType.research, postId, institution)


@router.post("/research", response_model=PostMutationResponse, status_code=201)
async def create_research(post: ResearchCreate, institution: dict = Depends(get_current_institution)):
    """Create a research position post."""
    _check_dates(post)
    if post.salary.min is not None and post.salary.max is not None and post.salary.min > post.salary.max:
        raise HTTPException(status_code=400, detail="Minimum salary cannot exceed maximum salary")

    post_id = post_service.create_post(
        institution["institution_id"], TabType.research, post, RESEARCH_DEGREE_LEVEL
    )
    return PostMutationResponse(post_id=post_id, status=post.status, message="Research post created successfully")


@router.put("/research", response_model=PostMutationResponse)
async def update_research(post: ResearchUpdate, institution: dict = Depends(get_current_institution)):
    _require_owned(post.post_id, institution)
    _check_dates(post, check_start=False)

    post_service.update_post(post.post_id, TabType.research, post, RESEARCH_DEGREE_LEVEL)
    return PostMutationResponse(post_id=post.post_id, status=post.status, message="Research post updated successfully")


@router.delete("/research")
async def delete_research(
    postId: Optional[str] = Query(None),
    institution: dict = Depends(get_current_institution),
):
    return _delete(postId, institution)
