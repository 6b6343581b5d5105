"""
Explore Service - loads published posts and runs them through the listing
transformer.

One listing call:
1. Fetch published posts of the tab's type (search applied in SQL,
   newest/oldest ordering applied in SQL)
2. Fetch application counts, linked subdisciplines and the discipline table
3. Transform rows into view models
4. Filter, sort, paginate, and compute facets over the filtered set
"""

from typing import Any, Callable, Dict, List, Optional

from edumatch.core.log import get_logger
from edumatch.db.postgres import execute_raw_sql, fetch_one
from edumatch.schemas.schemas import TabType
from edumatch.services.listing import (
    DisciplineLookup, TransformContext,
    transform_to_program, transform_to_scholarship, transform_to_research_lab,
    apply_filters, apply_sorting, paginate, extract_available_filters,
)
from edumatch.services.query_state import ExploreQuery

log = get_logger(__name__)


_POST_COLUMNS = """
    p.post_id, p.title, p.description, p.other_info, p.location, p.degree_level,
    p.start_date, p.end_date, p.status, p.create_at,
    i.institution_id, i.name AS institution_name, i.logo AS institution_logo,
    i.country AS institution_country
"""

_EXTENSIONS = {
    TabType.programmes: (
        "JOIN program_posts x ON x.post_id = p.post_id",
        "x.duration, x.attendance, x.tuition_fee, x.scholarship_info, x.fee_description, "
        "x.course_include, x.gpa, x.gre, x.gmat, x.language_requirement",
    ),
    TabType.scholarships: (
        "JOIN scholarship_posts x ON x.post_id = p.post_id",
        "x.description AS scholarship_description, x.type AS scholarship_type, x.number, "
        "x.grant_info, x.eligibility, x.essay_required, x.award_amount, x.award_duration",
    ),
    TabType.research: (
        "JOIN job_posts x ON x.post_id = p.post_id",
        "x.contract_type, x.attendance, x.job_type, x.min_salary, x.max_salary, "
        "x.salary_description, x.benefit, x.main_responsibility, x.qualification_requirement, "
        "x.experience_requirement, x.assessment_criteria, x.other_requirement, "
        "x.professor_name, x.lab_name, x.research_areas",
    ),
}

TRANSFORMS: Dict[TabType, Callable] = {
    TabType.programmes: transform_to_program,
    TabType.scholarships: transform_to_scholarship,
    TabType.research: transform_to_research_lab,
}

MAX_LIMIT = 50


# ============================================================
# DATA ACCESS
# ============================================================

def fetch_published_posts(tab: TabType, search: str = "", sort_by: str = "") -> List[Dict[str, Any]]:
    join, columns = _EXTENSIONS[tab]
    sql = f"""
        SELECT {_POST_COLUMNS}, {columns}
        FROM opportunity_posts p
        {join}
        JOIN institutions i ON i.institution_id = p.institution_id
        WHERE p.status = 'PUBLISHED'
    """
    params: Dict[str, Any] = {}
    if search:
        sql += " AND p.title ILIKE :search"
        params["search"] = f"%{search}%"

    sql += " ORDER BY p.create_at ASC" if sort_by == "oldest" else " ORDER BY p.create_at DESC"
    return execute_raw_sql(sql, params)


def fetch_institution_posts(institution_id: str, tab: TabType) -> List[Dict[str, Any]]:
    join, columns = _EXTENSIONS[tab]
    return execute_raw_sql(
        f"""
        SELECT {_POST_COLUMNS}, {columns}
        FROM opportunity_posts p
        {join}
        JOIN institutions i ON i.institution_id = p.institution_id
        WHERE p.institution_id = :id AND p.status = 'PUBLISHED'
        ORDER BY p.create_at DESC
        """,
        {"id": institution_id},
    )


def fetch_application_counts(post_ids: List[str]) -> Dict[str, int]:
    if not post_ids:
        return {}
    rows = execute_raw_sql(
        """
        SELECT post_id, COUNT(application_id) AS cnt
        FROM applications
        WHERE post_id = ANY(:ids)
        GROUP BY post_id
        """,
        {"ids": post_ids},
    )
    return {r["post_id"]: int(r["cnt"]) for r in rows}


def fetch_post_subdisciplines(post_ids: List[str]) -> Dict[str, List[Dict[str, str]]]:
    if not post_ids:
        return {}
    rows = execute_raw_sql(
        """
        SELECT ps.post_id, s.name, d.name AS discipline_name
        FROM post_subdisciplines ps
        JOIN subdisciplines s ON s.subdiscipline_id = ps.subdiscipline_id
        JOIN disciplines d ON d.discipline_id = s.discipline_id
        WHERE ps.post_id = ANY(:ids)
        ORDER BY s.name
        """,
        {"ids": post_ids},
    )
    result: Dict[str, List[Dict[str, str]]] = {}
    for r in rows:
        result.setdefault(r["post_id"], []).append(
            {"name": r["name"], "discipline_name": r["discipline_name"]}
        )
    return result


def fetch_discipline_lookup() -> DisciplineLookup:
    rows = execute_raw_sql(
        """
        SELECT d.name AS discipline_name, s.name AS subdiscipline_name
        FROM disciplines d
        LEFT JOIN subdisciplines s ON s.discipline_id = d.discipline_id AND s.status = TRUE
        WHERE d.status = TRUE
        ORDER BY d.name, s.name
        """
    )
    return DisciplineLookup.from_rows(rows)


def fetch_wishlist_post_ids(user_id: Optional[str]) -> List[str]:
    if not user_id:
        return []
    rows = execute_raw_sql(
        """
        SELECT w.post_id
        FROM wishlists w
        JOIN applicants a ON a.applicant_id = w.applicant_id
        WHERE a.user_id = :uid AND w.status = 1
        """,
        {"uid": user_id},
    )
    return [r["post_id"] for r in rows]


# ============================================================
# LISTING
# ============================================================

def listing_filters(query: ExploreQuery) -> Dict[str, List[str]]:
    """Fold numeric bounds and the essay flag back into filter entries."""
    filters = {k: list(v) for k, v in query.filters.items() if v}

    if query.min_fee is not None or query.max_fee is not None:
        low = query.min_fee if query.min_fee is not None else 0
        high = query.max_fee if query.max_fee is not None else float("inf")
        filters["feeRange"] = [f"{low:g}-{high:g}"]

    if query.min_salary is not None or query.max_salary is not None:
        low = query.min_salary if query.min_salary is not None else 0
        high = query.max_salary if query.max_salary is not None else float("inf")
        filters["salaryRange"] = [f"{low:g}-{high:g}"]

    if query.essay_required is not None:
        filters["essayRequired"] = ["Yes" if query.essay_required else "No"]

    return filters


def build_listing(query: ExploreQuery, user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Run one explore listing. Returns {success, data, meta, availableFilters}
    with items already serialized in their camelCase shape.
    """
    rows = fetch_published_posts(query.tab, query.search, query.sort_by)
    post_ids = [r["post_id"] for r in rows]

    lookup = fetch_discipline_lookup()
    ctx = TransformContext(
        lookup=lookup,
        application_counts=fetch_application_counts(post_ids),
        post_subdisciplines=fetch_post_subdisciplines(post_ids),
        wishlist=fetch_wishlist_post_ids(user_id),
    )

    transform = TRANSFORMS[query.tab]
    items = [transform(row, ctx) for row in rows]

    items = apply_filters(items, listing_filters(query))
    items = apply_sorting(items, query.sort_by)

    limit = max(1, min(MAX_LIMIT, query.limit))
    page = max(1, query.page)
    page_items, meta = paginate(items, page, limit)

    facets = extract_available_filters(items, lookup, (r.get("degree_level") for r in rows))
    log.info("Explore %s: %d posts, %d after filters, page %d", query.tab.value, len(rows), meta.total, page)

    return {
        "success": True,
        "data": [item.model_dump(by_alias=True) for item in page_items],
        "meta": meta.model_dump(by_alias=True),
        "availableFilters": facets.model_dump(by_alias=True),
    }


# ============================================================
# DETAIL
# ============================================================

def get_post_detail(tab: TabType, post_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Full published post: view model fields plus the raw extension record,
    institution, subdisciplines and required documents."""
    join, columns = _EXTENSIONS[tab]
    row = fetch_one(
        f"""
        SELECT {_POST_COLUMNS}, {columns},
               i.email AS institution_email, i.website AS institution_website,
               i.about AS institution_about, i.type AS institution_type
        FROM opportunity_posts p
        {join}
        JOIN institutions i ON i.institution_id = p.institution_id
        WHERE p.post_id = :pid AND p.status = 'PUBLISHED'
        """,
        {"pid": post_id},
    )
    if not row:
        return None

    subdisciplines = fetch_post_subdisciplines([post_id])
    ctx = TransformContext(
        lookup=fetch_discipline_lookup(),
        application_counts=fetch_application_counts([post_id]),
        post_subdisciplines=subdisciplines,
        wishlist=fetch_wishlist_post_ids(user_id),
    )
    view = TRANSFORMS[tab](row, ctx).model_dump(by_alias=True)

    documents = execute_raw_sql(
        "SELECT document_id, name, description FROM post_documents WHERE post_id = :pid ORDER BY name",
        {"pid": post_id},
    )

    view.update({
        "startDate": _iso(row.get("start_date")),
        "endDate": _iso(row.get("end_date")),
        "location": row.get("location"),
        "otherInfo": row.get("other_info"),
        "institution": {
            "id": row["institution_id"],
            "name": row.get("institution_name"),
            "logo": row.get("institution_logo"),
            "country": row.get("institution_country"),
            "email": row.get("institution_email"),
            "website": row.get("institution_website"),
            "about": row.get("institution_about"),
            "type": row.get("institution_type"),
        },
        "subdisciplines": [
            {"name": s["name"], "disciplineName": s["discipline_name"]}
            for s in subdisciplines.get(post_id, [])
        ],
        "requiredDocuments": [
            {"id": d["document_id"], "name": d["name"], "description": d["description"]}
            for d in documents
        ],
        "extension": {k: _jsonable(row.get(k)) for k in _extension_keys(columns)},
    })
    return view


def _extension_keys(columns: str) -> List[str]:
    keys = []
    for col in columns.split(","):
        col = col.strip()
        keys.append(col.split(" AS ")[-1] if " AS " in col else col.split(".")[-1])
    return keys


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None and hasattr(value, "isoformat") else value


def _jsonable(value):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return float(value) if hasattr(value, "as_integer_ratio") else str(value)
