"""
Institution Routes (public)

GET /institution/{institution_id} - Institution profile with disciplines
GET /institution/{institution_id}/posts - Published posts of one institution
"""

import math

from fastapi import APIRouter, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from edumatch.core.log import get_logger
from edumatch.db.postgres import execute_raw_sql, fetch_one
from edumatch.schemas.schemas import TabType, InstitutionResponse, InstitutionPostsResponse
from edumatch.services.explore_service import (
    TRANSFORMS, fetch_institution_posts, fetch_application_counts,
    fetch_post_subdisciplines, fetch_discipline_lookup
)
from edumatch.services.listing import TransformContext

router = APIRouter(prefix="/institution", tags=["Institutions"])
log = get_logger(__name__)

# ?type= value -> listing tab
POST_TYPES = {
    "Program": TabType.programmes,
    "Scholarship": TabType.scholarships,
    "Job": TabType.research,
}


@router.get("/{institution_id}", response_model=InstitutionResponse)
async def get_institution(institution_id: str):
    """Get institution profile with its disciplines."""
    try:
        inst = fetch_one(
            """
            SELECT institution_id, name, abbreviation, type, country, address, email,
                   website, hotline, logo, cover_image, about
            FROM institutions
            WHERE institution_id = :id AND status = TRUE
            """,
            {"id": institution_id},
        )
        if not inst:
            raise HTTPException(status_code=404, detail="Institution not found")

        disciplines = execute_raw_sql(
            """
            SELECT s.name, d.name AS discipline_name
            FROM institution_subdisciplines isd
            JOIN subdisciplines s ON s.subdiscipline_id = isd.subdiscipline_id
            JOIN disciplines d ON d.discipline_id = s.discipline_id
            WHERE isd.institution_id = :id
            ORDER BY d.name, s.name
            """,
            {"id": institution_id},
        )
    except SQLAlchemyError:
        log.exception("Error fetching institution %s", institution_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "success": True,
        "institution": {
            "id": inst["institution_id"],
            "name": inst["name"],
            "abbreviation": inst["abbreviation"],
            "type": inst["type"],
            "country": inst["country"],
            "address": inst["address"],
            "email": inst["email"],
            "website": inst["website"],
            "hotline": inst["hotline"],
            "logo": inst["logo"],
            "coverImage": inst["cover_image"],
            "about": inst["about"],
            "disciplines": [
                {"name": d["name"], "disciplineName": d["discipline_name"]} for d in disciplines
            ],
        },
    }


@router.get("/{institution_id}/posts", response_model=InstitutionPostsResponse)
async def get_institution_posts(
    institution_id: str,
    type: str = Query("all", pattern="^(all|Program|Scholarship|Job)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
):
    """Published posts of an institution, optionally narrowed to one post type."""
    kinds = POST_TYPES if type == "all" else {type: POST_TYPES[type]}

    try:
        rows = []
        for kind, tab in kinds.items():
            for row in fetch_institution_posts(institution_id, tab):
                row["post_kind"] = kind
                rows.append(row)

        rows.sort(key=lambda r: r["create_at"], reverse=True)
        total = len(rows)
        page_rows = rows[(page - 1) * limit:page * limit]

        post_ids = [r["post_id"] for r in page_rows]
        ctx = TransformContext(
            lookup=fetch_discipline_lookup(),
            application_counts=fetch_application_counts(post_ids),
            post_subdisciplines=fetch_post_subdisciplines(post_ids),
        )
    except SQLAlchemyError:
        log.exception("Error fetching posts of institution %s", institution_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    data = []
    for row in page_rows:
        view = TRANSFORMS[POST_TYPES[row["post_kind"]]](row, ctx).model_dump(by_alias=True)
        view["type"] = row["post_kind"]
        data.append(view)

    total_pages = math.ceil(total / limit) if total else 0
    return {
        "success": True,
        "data": data,
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalItems": total,
            "itemsPerPage": limit,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }
