"""
Unit tests for the listing transformer: view models, filters, sorting,
pagination and facets.
"""

import random
from datetime import date, datetime, timezone

from edumatch.services.listing import (
    GENERAL_STUDIES, DisciplineLookup, TransformContext,
    apply_filters, apply_sorting, days_until_deadline, extract_available_filters,
    format_currency, paginate, parse_numeric, resolve_field_name,
    transform_to_program, transform_to_research_lab, transform_to_scholarship,
)

NOW = datetime(2024, 2, 20, tzinfo=timezone.utc)


def _lookup():
    return DisciplineLookup({
        "Computer Science": ["Artificial Intelligence", "Data Science"],
        "Business": [],
    })


def _ctx(**kwargs):
    return TransformContext(lookup=_lookup(), now=NOW, rng=random.Random(7), **kwargs)


# ============================================================
# FIELD RESOLUTION
# ============================================================

def test_lookup_prefers_subdiscipline_match():
    assert _lookup().resolve("Master of Artificial Intelligence") == "Computer Science - Artificial Intelligence"
    assert _lookup().resolve("MBA in business") == "Business"
    assert _lookup().resolve("Philosophy") is None


def test_lookup_from_rows_dedupes_subdisciplines():
    lookup = DisciplineLookup.from_rows([
        {"discipline_name": "Law", "subdiscipline_name": "Tax Law"},
        {"discipline_name": "Law", "subdiscipline_name": "Tax Law"},
        {"discipline_name": "Arts", "subdiscipline_name": None},
    ])
    assert lookup.disciplines == {"Law": ["Tax Law"], "Arts": []}
    assert lookup.names == ["Arts", "Law"]


def test_resolve_field_name_order():
    linked = [{"name": "Data Science", "discipline_name": "Computer Science"}]
    assert resolve_field_name("Business", _lookup(), linked) == "Computer Science - Data Science"
    assert resolve_field_name("Philosophy", _lookup()) == "Philosophy"
    assert resolve_field_name("   ", _lookup()) == GENERAL_STUDIES
    assert resolve_field_name(None, _lookup()) == GENERAL_STUDIES


# ============================================================
# DERIVED FIELDS
# ============================================================

def test_days_left_rounds_up_and_never_goes_negative():
    assert days_until_deadline(date(2024, 3, 1), NOW) == 10
    assert days_until_deadline(datetime(2024, 2, 20, 1, tzinfo=timezone.utc), NOW) == 1
    assert days_until_deadline(date(2024, 1, 1), NOW) == 0


def test_format_currency():
    assert format_currency(1234567) == "1,234,567"
    assert format_currency(1234.5) == "1,234.5"
    assert format_currency(None) == "0"
    assert format_currency("abc") == "0"
    assert format_currency(0) == "0"


def test_parse_numeric_scrapes_formatted_strings():
    assert parse_numeric("$12,500") == 12500.0
    assert parse_numeric("87%") == 87.0
    assert parse_numeric("Contact for pricing") == 0.0
    assert parse_numeric(None) == 0.0


# ============================================================
# TRANSFORMS
# ============================================================

def test_transform_to_program():
    row = {
        "post_id": "p1",
        "title": "MSc Artificial Intelligence",
        "start_date": date(2024, 1, 1),
        "end_date": date(2024, 3, 1),
        "tuition_fee": 12500,
        "institution_name": "Politecnico",
        "institution_country": "Italy",
        "degree_level": "Master",
    }
    view = transform_to_program(row, _ctx(application_counts={"p1": 4}, wishlist=["p1"]))

    assert view.days_left == 10
    assert view.date == "2024-03-01"
    assert view.price == "$12,500"
    assert view.field == "Master"
    assert view.logo == "/logos/default.png"
    assert view.attendance == "On-campus"
    assert 70 <= parse_numeric(view.match) <= 99

    dumped = view.model_dump(by_alias=True)
    assert dumped["applicationCount"] == 4
    assert dumped["isInWishlist"] is True
    assert dumped["daysLeft"] == 10


def test_program_without_end_date_uses_start_plus_90_days():
    row = {"post_id": "p2", "title": "BA", "start_date": date(2024, 1, 1), "end_date": None}
    view = transform_to_program(row, _ctx())
    assert view.date == "2024-03-31"
    assert view.price == "Contact for pricing"
    assert view.university == "University"
    assert view.country == "Unknown"


def test_transform_to_scholarship():
    row = {
        "post_id": "s1",
        "title": "Merit Award",
        "start_date": date(2024, 1, 1),
        "end_date": date(2024, 2, 25),
        "award_amount": 5000,
        "essay_required": True,
        "institution_name": "Uni",
    }
    view = transform_to_scholarship(row, _ctx())
    assert view.amount == "$5,000"
    assert view.essay_required == "Yes"
    assert view.provider == "Provided by institution"
    assert view.days_left == 5


def test_scholarship_grant_text_wins_over_amount():
    row = {"post_id": "s2", "title": "Grant", "start_date": date(2024, 1, 1),
           "grant_info": "Full tuition", "award_amount": 5000}
    assert transform_to_scholarship(row, _ctx()).amount == "Full tuition"


def test_research_lab_defaults():
    row = {"post_id": "r1", "title": "PhD position", "start_date": date(2024, 1, 1),
           "end_date": date(2024, 4, 1), "min_salary": "40000", "max_salary": None}
    view = transform_to_research_lab(row, _ctx())
    assert view.field == "Research"
    assert view.professor == "Research Institution"
    assert view.position == "Research Position"
    assert view.min_salary == 40000.0
    assert view.max_salary == 0.0


# ============================================================
# FILTERING
# ============================================================

ITEMS = [
    {"title": "A", "field": "Computer Science - AI", "country": "USA", "price": "$12,500"},
    {"title": "B", "field": "Business", "country": "Italy", "price": "$30,000"},
    {"title": "C", "field": "Computer Science - AI", "country": "Italy", "price": "$8,000"},
]


def test_single_dimension_filter():
    assert [i["title"] for i in apply_filters(ITEMS, {"country": ["Italy"]})] == ["B", "C"]


def test_values_are_ored_dimensions_are_anded():
    assert [i["title"] for i in apply_filters(ITEMS, {"country": ["USA", "Italy"]})] == ["A", "B", "C"]
    assert [i["title"] for i in apply_filters(ITEMS, {"discipline": ["AI"], "country": ["USA"]})] == ["A"]


def test_empty_and_unknown_filters_keep_everything():
    assert apply_filters(ITEMS, {"country": [], "colour": ["red"]}) == ITEMS
    assert apply_filters(ITEMS, None) == ITEMS


def test_fee_range_filter():
    kept = apply_filters(ITEMS, {"feeRange": ["10000-20000"]})
    assert [i["title"] for i in kept] == ["A"]


def test_salary_range_overlap():
    labs = [
        {"title": "low", "min_salary": 20000, "max_salary": 30000},
        {"title": "mid", "min_salary": 50000, "max_salary": 70000},
        {"title": "flat", "min_salary": 65000, "max_salary": 0},
    ]
    kept = apply_filters(labs, {"salaryRange": ["60000-80000"]})
    assert [i["title"] for i in kept] == ["mid", "flat"]


# ============================================================
# SORTING & PAGINATION
# ============================================================

def test_deadline_sort_is_ascending():
    items = [{"title": t, "days_left": d} for t, d in (("x", 5), ("y", 0), ("z", 12))]
    assert [i["days_left"] for i in apply_sorting(items, "deadline")] == [0, 5, 12]


def test_most_popular_and_alphabetical():
    items = [
        {"title": "beta", "application_count": 1},
        {"title": "Alpha", "application_count": 9},
        {"title": "gamma", "application_count": 4},
    ]
    assert [i["title"] for i in apply_sorting(items, "most-popular")] == ["Alpha", "gamma", "beta"]
    assert [i["title"] for i in apply_sorting(items, "alphabetical")] == ["Alpha", "beta", "gamma"]


def test_newest_and_unknown_keep_database_order():
    items = [{"title": "b"}, {"title": "a"}]
    assert apply_sorting(items, "newest") == items
    assert apply_sorting(items, "whatever") == items


def test_paginate():
    items = list(range(25))
    page, meta = paginate(items, 3, 10)
    assert page == [20, 21, 22, 23, 24]
    assert meta.total == 25
    assert meta.total_pages == 3

    page, meta = paginate(items, 4, 10)
    assert page == []
    assert meta.page == 4


def test_extract_available_filters():
    facets = extract_available_filters(ITEMS, _lookup(), ["Master", None, "Bachelor", "Master"])
    assert facets.countries == ["Italy", "USA"]
    assert facets.degree_levels == ["Bachelor", "Master"]
    assert facets.disciplines == ["Business", "Computer Science"]
    assert facets.subdisciplines["Computer Science"] == ["Artificial Intelligence", "Data Science"]
