"""
Explore Routes

GET /explore - Listing driven by the explore page URL (tab, sort, page, <tab>_<filter>)
GET /explore/programs - Published programmes with filters and pagination
GET /explore/scholarships - Published scholarships with filters and pagination
GET /explore/research - Published research positions with filters and pagination
GET /explore/programs/detail - One programme
GET /explore/scholarships/detail - One scholarship
GET /explore/research/detail - One research position
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError

from edumatch.core.auth import get_optional_user
from edumatch.core.log import get_logger
from edumatch.schemas.schemas import (
    TabType, ListingSort, ExploreResponse, QueryStateResponse, PostDetailResponse
)
from edumatch.services import explore_service
from edumatch.services.query_state import (
    ExploreQuery, PAGE_SIZES, parse_query_state, build_query_string, to_explore_query
)

router = APIRouter(prefix="/explore", tags=["Explore"])
log = get_logger(__name__)


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _run_listing(query: ExploreQuery, user: Optional[dict]) -> dict:
    try:
        return explore_service.build_listing(query, user["user_id"] if user else None)
    except SQLAlchemyError:
        log.exception("Error fetching %s", query.tab.value)
        raise HTTPException(status_code=500, detail="Internal server error")


def _listing_query(
    tab: TabType,
    request: Request,
    search: str,
    sort_by: ListingSort,
    page: int,
    limit: int,
    keys: List[str],
) -> ExploreQuery:
    params = request.query_params
    filters = {key: _split(params.get(key)) for key in keys}

    def _num(name):
        raw = params.get(name)
        try:
            return float(raw) if raw not in (None, "") else None
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid {name}")

    essay = params.get("essayRequired")
    return ExploreQuery(
        tab=tab,
        page=page,
        limit=limit,
        sort_by=sort_by.value,
        search=search.strip(),
        filters={k: v for k, v in filters.items() if v},
        min_fee=_num("minFee"),
        max_fee=_num("maxFee"),
        min_salary=_num("minSalary"),
        max_salary=_num("maxSalary"),
        essay_required=None if essay not in ("Yes", "No") else essay == "Yes",
    )


@router.get("", response_model=QueryStateResponse)
async def explore(request: Request, user: Optional[dict] = Depends(get_optional_user)):
    """
    Serve the active tab's listing straight from an explore page URL query.

    Returns the canonical query string alongside the data so the caller can
    replace its URL with it.
    """
    raw = str(request.url.query)
    state = parse_query_state(raw)
    result = _run_listing(to_explore_query(state), user)

    return {
        **result,
        "tab": state.active_tab,
        "sort": state.sort_by,
        "query": build_query_string(state, raw),
    }


@router.get("/programs", response_model=ExploreResponse)
async def list_programs(
    request: Request,
    search: str = Query(""),
    sortBy: ListingSort = Query(ListingSort.most_popular),
    page: int = Query(1, ge=1),
    limit: int = Query(PAGE_SIZES[TabType.programmes], ge=1, le=50),
    user: Optional[dict] = Depends(get_optional_user),
):
    """Programmes. Filters: discipline, country, attendance, degreeLevel, duration (comma separated), minFee, maxFee."""
    query = _listing_query(
        TabType.programmes, request, search, sortBy, page, limit,
        ["discipline", "country", "attendance", "degreeLevel", "duration"],
    )
    return _run_listing(query, user)


@router.get("/scholarships", response_model=ExploreResponse)
async def list_scholarships(
    request: Request,
    search: str = Query(""),
    sortBy: ListingSort = Query(ListingSort.most_popular),
    page: int = Query(1, ge=1),
    limit: int = Query(PAGE_SIZES[TabType.scholarships], ge=1, le=50),
    user: Optional[dict] = Depends(get_optional_user),
):
    """Scholarships. Filters: discipline, country, degreeLevel, essayRequired (Yes/No)."""
    query = _listing_query(
        TabType.scholarships, request, search, sortBy, page, limit,
        ["discipline", "country", "degreeLevel"],
    )
    return _run_listing(query, user)


@router.get("/research", response_model=ExploreResponse)
async def list_research(
    request: Request,
    search: str = Query(""),
    sortBy: ListingSort = Query(ListingSort.most_popular),
    page: int = Query(1, ge=1),
    limit: int = Query(PAGE_SIZES[TabType.research], ge=1, le=50),
    user: Optional[dict] = Depends(get_optional_user),
):
    """Research positions. Filters: researchField, country, jobType, contractType, attendance, minSalary, maxSalary."""
    query = _listing_query(
        TabType.research, request, search, sortBy, page, limit,
        ["researchField", "discipline", "country", "jobType", "contractType", "attendance"],
    )
    return _run_listing(query, user)


def _detail(tab: TabType, post_id: str, user: Optional[dict]) -> dict:
    if not post_id:
        raise HTTPException(status_code=400, detail="Post ID is required")
    try:
        data = explore_service.get_post_detail(tab, post_id, user["user_id"] if user else None)
    except SQLAlchemyError:
        log.exception("Error fetching %s detail %s", tab.value, post_id)
        raise HTTPException(status_code=500, detail="Internal server error")
    if not data:
        raise HTTPException(status_code=404, detail="Post not found")
    return {"success": True, "data": data}


@router.get("/programs/detail", response_model=PostDetailResponse)
async def program_detail(id: str = Query(""), user: Optional[dict] = Depends(get_optional_user)):
    return _detail(TabType.programmes, id, user)


@router.get("/scholarships/detail", response_model=PostDetailResponse)
async def scholarship_detail(id: str = Query(""), user: Optional[dict] = Depends(get_optional_user)):
    return _detail(TabType.scholarships, id, user)


@router.get("/research/detail", response_model=PostDetailResponse)
async def research_detail(id: str = Query(""), user: Optional[dict] = Depends(get_optional_user)):
    return _detail(TabType.research, id, user)
