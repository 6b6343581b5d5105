"""
Listing Transformer

Turns raw post rows (opportunity post + program/scholarship/job extension +
institution) into display-ready view models, then filters, sorts and
paginates them.

Everything here is pure: database access lives in explore_service. The
match percentage is a placeholder value, not a relevance score.
"""

import math
import random
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from edumatch.schemas.schemas import (
    ProgramView, ScholarshipView, ResearchLabView, PaginationMeta, AvailableFilters
)

GENERAL_STUDIES = "General Studies"
DEFAULT_LOGO = "/logos/default.png"
DEADLINE_FALLBACK_DAYS = 90
_NON_NUMERIC = re.compile(r"[^0-9.]")


# ============================================================
# FIELD RESOLUTION
# ============================================================

class DisciplineLookup:
    """
    Discipline -> subdiscipline table used to label posts.

    Built from rows of (discipline_name, subdiscipline_name or None).
    """

    def __init__(self, disciplines: Dict[str, List[str]]):
        self.disciplines = disciplines

    @classmethod
    def from_rows(cls, rows: Iterable[Dict[str, Any]]) -> "DisciplineLookup":
        disciplines: Dict[str, List[str]] = {}
        for row in rows:
            subs = disciplines.setdefault(row["discipline_name"], [])
            sub = row.get("subdiscipline_name")
            if sub and sub not in subs:
                subs.append(sub)
        return cls(disciplines)

    @property
    def names(self) -> List[str]:
        return sorted(self.disciplines)

    def resolve(self, text: Optional[str]) -> Optional[str]:
        """
        Case-insensitive substring scan. A subdiscipline hit wins over a
        discipline hit; returns None when nothing matches.
        """
        if not text:
            return None
        needle = text.lower()

        for discipline, subs in self.disciplines.items():
            for sub in subs:
                if sub.lower() in needle:
                    return f"{discipline} - {sub}"

        for discipline in self.disciplines:
            if discipline.lower() in needle:
                return discipline

        return None


def resolve_field_name(
    text: Optional[str],
    lookup: DisciplineLookup,
    post_subdisciplines: Optional[Sequence[Dict[str, str]]] = None,
) -> str:
    """
    Display label for a post's field of study.

    Order: the first subdiscipline linked to the post, then the lookup scan
    over the free text, then the raw text itself, then "General Studies".
    """
    if post_subdisciplines:
        first = post_subdisciplines[0]
        return f"{first['discipline_name']} - {first['name']}"

    matched = lookup.resolve(text)
    if matched:
        return matched

    if text and text.strip():
        return text.strip()
    return GENERAL_STUDIES


# ============================================================
# DERIVED FIELDS
# ============================================================

def _as_aware(value) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def days_until_deadline(target, now: Optional[datetime] = None) -> int:
    """max(0, ceil((target - now) / 1 day))"""
    now = _as_aware(now) if now else datetime.now(timezone.utc)
    diff = (_as_aware(target) - now).total_seconds() / 86400
    return max(0, math.ceil(diff))


def calculate_match_percentage(rng: Optional[random.Random] = None) -> str:
    """Placeholder match score in [70, 100)."""
    rng = rng or random
    return f"{rng.randint(70, 99)}%"


def deadline_for(post: Dict[str, Any]) -> date:
    """end_date, or start_date + 90 days when the post has no end date."""
    end = post.get("end_date")
    if end:
        return end.date() if isinstance(end, datetime) else end
    start = post["start_date"]
    start = start.date() if isinstance(start, datetime) else start
    return start + timedelta(days=DEADLINE_FALLBACK_DAYS)


def format_currency(amount) -> str:
    """Thousands-separated amount; "0" for empty or non-numeric input."""
    if amount is None or amount == "":
        return "0"
    try:
        num = Decimal(str(amount))
    except InvalidOperation:
        return "0"
    if num == 0:
        return "0"
    if num == num.to_integral_value():
        return f"{int(num):,}"
    return f"{num:,.2f}".rstrip("0").rstrip(".")


def parse_numeric(text) -> float:
    """Scrape the number out of a formatted string such as "$12,500"."""
    if text is None:
        return 0.0
    cleaned = _NON_NUMERIC.sub("", str(text))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def _to_float(value) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# ============================================================
# TRANSFORMS
# ============================================================

class TransformContext:
    """Per-request inputs shared by every transform call."""

    def __init__(
        self,
        lookup: DisciplineLookup,
        application_counts: Optional[Dict[str, int]] = None,
        post_subdisciplines: Optional[Dict[str, List[Dict[str, str]]]] = None,
        wishlist: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
        rng: Optional[random.Random] = None,
    ):
        self.lookup = lookup
        self.application_counts = application_counts or {}
        self.post_subdisciplines = post_subdisciplines or {}
        self.wishlist = set(wishlist or [])
        self.now = now
        self.rng = rng

    def subdisciplines_of(self, post_id: str) -> List[Dict[str, str]]:
        return self.post_subdisciplines.get(post_id, [])


def transform_to_program(row: Dict[str, Any], ctx: TransformContext) -> ProgramView:
    post_id = row["post_id"]
    deadline = deadline_for(row)
    tuition = row.get("tuition_fee")

    return ProgramView(
        id=post_id,
        title=row["title"],
        description=row.get("description") or "No description available",
        university=row.get("institution_name") or "University",
        logo=row.get("institution_logo") or DEFAULT_LOGO,
        field=resolve_field_name(row.get("degree_level"), ctx.lookup, ctx.subdisciplines_of(post_id)),
        country=row.get("institution_country") or "Unknown",
        date=deadline.isoformat(),
        days_left=days_until_deadline(deadline, ctx.now),
        price=f"${format_currency(tuition)}" if tuition else "Contact for pricing",
        match=calculate_match_percentage(ctx.rng),
        funding=row.get("scholarship_info") or "Contact for details",
        attendance=row.get("attendance") or "On-campus",
        duration=row.get("duration") or "",
        degree_level=row.get("degree_level") or "",
        application_count=ctx.application_counts.get(post_id, 0),
        is_in_wishlist=post_id in ctx.wishlist,
    )


def transform_to_scholarship(row: Dict[str, Any], ctx: TransformContext) -> ScholarshipView:
    post_id = row["post_id"]
    deadline = deadline_for(row)

    return ScholarshipView(
        id=post_id,
        title=row["title"],
        description=row.get("scholarship_description") or row.get("description")
        or row.get("other_info") or "No description available",
        provider=row.get("scholarship_type") or "Provided by institution",
        university=row.get("institution_name") or "University",
        essay_required="Yes" if row.get("essay_required") else "No",
        country=row.get("institution_country") or "Unknown",
        date=deadline.isoformat(),
        days_left=days_until_deadline(deadline, ctx.now),
        amount=row.get("grant_info") or (
            f"${format_currency(row['award_amount'])}" if row.get("award_amount") else "Contact for details"
        ),
        match=calculate_match_percentage(ctx.rng),
        degree_level=row.get("degree_level") or "",
        application_count=ctx.application_counts.get(post_id, 0),
        is_in_wishlist=post_id in ctx.wishlist,
    )


def transform_to_research_lab(row: Dict[str, Any], ctx: TransformContext) -> ResearchLabView:
    post_id = row["post_id"]
    deadline = deadline_for(row)
    field_text = row.get("research_areas") or row.get("degree_level")
    field = resolve_field_name(field_text, ctx.lookup, ctx.subdisciplines_of(post_id))
    if field == GENERAL_STUDIES:
        field = "Research"

    return ResearchLabView(
        id=post_id,
        title=row["title"],
        description=row.get("description") or "No description available",
        professor=row.get("professor_name") or row.get("lab_name") or row.get("institution_name") or "Research Institution",
        field=field,
        country=row.get("institution_country") or "Unknown",
        position=row.get("job_type") or "Research Position",
        contract_type=row.get("contract_type") or "",
        attendance=row.get("attendance") or "",
        min_salary=_to_float(row.get("min_salary")),
        max_salary=_to_float(row.get("max_salary")),
        date=deadline.isoformat(),
        days_left=days_until_deadline(deadline, ctx.now),
        match=calculate_match_percentage(ctx.rng),
        degree_level=row.get("degree_level") or "",
        application_count=ctx.application_counts.get(post_id, 0),
        is_in_wishlist=post_id in ctx.wishlist,
    )


# ============================================================
# FILTERING
# ============================================================

def _get(item, name: str, default=None):
    """Read an attribute from a view model or a key from a plain mapping."""
    if isinstance(item, dict):
        if name in item:
            return item[name]
        camel = name.split("_")[0] + "".join(p.title() for p in name.split("_")[1:])
        return item.get(camel, default)
    return getattr(item, name, default)


def _contains_any(value, wanted: List[str]) -> bool:
    haystack = (value or "").lower()
    return any(w.lower() in haystack for w in wanted)


def _equals_any(value, wanted: List[str]) -> bool:
    return value in wanted


def parse_range(values: Optional[List[str]]) -> Optional[Tuple[float, float]]:
    """Decode a ["min-max"] range filter entry."""
    if not values:
        return None
    raw = values[0]
    low, sep, high = raw.partition("-")
    if not sep:
        return None
    try:
        return float(low or 0), float(high or math.inf)
    except ValueError:
        return None


def _price_of(item) -> float:
    price = _get(item, "price")
    if price is None:
        price = _get(item, "amount")
    return parse_numeric(price)


def _matches_fee(item, values: List[str]) -> bool:
    bounds = parse_range(values)
    if bounds is None:
        return True
    price = _price_of(item)
    return bounds[0] <= price <= bounds[1]


def _matches_salary(item, values: List[str]) -> bool:
    bounds = parse_range(values)
    if bounds is None:
        return True
    low = _to_float(_get(item, "min_salary"))
    high = _to_float(_get(item, "max_salary")) or low
    return low <= bounds[1] and high >= bounds[0]


def _matches_discipline(item, values: List[str]) -> bool:
    if _contains_any(_get(item, "field"), values):
        return True
    # research labs also list the discipline in their position
    return _get(item, "position") is not None and _contains_any(_get(item, "position"), values)


# filter key -> predicate(item, selected values)
FILTER_PREDICATES: Dict[str, Callable[[Any, List[str]], bool]] = {
    "discipline": _matches_discipline,
    "researchField": lambda item, v: _contains_any(_get(item, "field"), v),
    "country": lambda item, v: _equals_any(_get(item, "country"), v),
    "attendance": lambda item, v: _equals_any(_get(item, "attendance"), v),
    "jobType": lambda item, v: _equals_any(_get(item, "position"), v),
    "degreeLevel": lambda item, v: _contains_any(_get(item, "degree_level"), v),
    "duration": lambda item, v: _contains_any(_get(item, "duration"), v),
    "contractType": lambda item, v: _contains_any(_get(item, "contract_type"), v),
    "essayRequired": lambda item, v: _equals_any(_get(item, "essay_required"), v),
    "feeRange": _matches_fee,
    "salaryRange": _matches_salary,
}


def apply_filters(items: Iterable[Any], filters: Optional[Dict[str, List[str]]]) -> List[Any]:
    """
    Keep items satisfying every non-empty filter dimension.

    Values inside one dimension are OR-ed, dimensions are AND-ed. Absent or
    empty dimensions and unknown keys do not filter.
    """
    active = [
        (FILTER_PREDICATES[key], values)
        for key, values in (filters or {}).items()
        if values and key in FILTER_PREDICATES
    ]
    return [item for item in items if all(pred(item, values) for pred, values in active)]


# ============================================================
# SORTING
# ============================================================

def _match_value(item) -> float:
    return parse_numeric(_get(item, "match"))


SORT_KEYS: Dict[str, Tuple[Callable[[Any], Any], bool]] = {
    "most-popular": (lambda i: _get(i, "application_count", 0) or 0, True),
    "match-score": (_match_value, True),
    "deadline": (lambda i: _get(i, "days_left", 0), False),
    "price-low": (_price_of, False),
    "price-high": (_price_of, True),
    "amount-low": (lambda i: parse_numeric(_get(i, "amount")), False),
    "amount-high": (lambda i: parse_numeric(_get(i, "amount")), True),
    "alphabetical": (lambda i: (_get(i, "title") or "").lower(), False),
}


def apply_sorting(items: Iterable[Any], sort_by: Optional[str]) -> List[Any]:
    """
    Order items by sort key. "newest", "oldest" and unknown keys keep the
    incoming (database) order.
    """
    items = list(items)
    entry = SORT_KEYS.get(sort_by or "")
    if entry is None:
        return items
    key, reverse = entry
    return sorted(items, key=key, reverse=reverse)


# ============================================================
# PAGINATION & FACETS
# ============================================================

def paginate(items: Sequence[Any], page: int, limit: int) -> Tuple[List[Any], PaginationMeta]:
    """Slice one 1-indexed page; pages past the end come back empty."""
    total = len(items)
    start = (page - 1) * limit
    page_items = list(items[start:start + limit]) if start >= 0 else []
    meta = PaginationMeta(
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if limit else 0,
    )
    return page_items, meta


def _distinct(values: Iterable[Optional[str]]) -> List[str]:
    return sorted({v for v in values if v})


def extract_available_filters(
    items: Sequence[Any],
    lookup: DisciplineLookup,
    degree_levels: Iterable[Optional[str]] = (),
) -> AvailableFilters:
    """Facet values computed over the filtered (pre-pagination) items."""
    return AvailableFilters(
        countries=_distinct(_get(i, "country") for i in items),
        disciplines=lookup.names,
        degree_levels=_distinct(degree_levels),
        attendance_types=_distinct(_get(i, "attendance") for i in items),
        essay_required=_distinct(_get(i, "essay_required") for i in items),
        contract_types=_distinct(_get(i, "contract_type") for i in items),
        job_types=_distinct(_get(i, "position") for i in items),
        subdisciplines={name: list(subs) for name, subs in lookup.disciplines.items()},
    )
