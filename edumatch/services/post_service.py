"""
Post Service - institution-side persistence for scholarship and research posts.

A post is one opportunity_posts row plus its extension row
(scholarship_posts or job_posts), linked subdisciplines and the list of
documents applicants must upload.
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from edumatch.core.log import get_logger
from edumatch.db.postgres import get_db_session, execute_raw_sql, fetch_one
from edumatch.schemas.schemas import (
    PostBase, ScholarshipCreate, ResearchCreate, PostStatus, TabType
)

log = get_logger(__name__)

EXTENSION_TABLES = {
    TabType.scholarships: "scholarship_posts",
    TabType.research: "job_posts",
}

ESSAY_HINTS = ("essay", "writing")


def new_id() -> str:
    return str(uuid.uuid4())


def essay_required_from(eligibility: Optional[str]) -> bool:
    """Scholarships whose eligibility text mentions an essay or writing task."""
    text_lower = (eligibility or "").lower()
    return any(hint in text_lower for hint in ESSAY_HINTS)


def published_title_exists(institution_id: str, title: str, exclude_post_id: Optional[str] = None) -> bool:
    row = fetch_one(
        """
        SELECT post_id FROM opportunity_posts
        WHERE institution_id = :iid AND title = :title AND status = 'PUBLISHED'
          AND (CAST(:exclude AS VARCHAR) IS NULL OR post_id <> :exclude)
        LIMIT 1
        """,
        {"iid": institution_id, "title": title, "exclude": exclude_post_id},
    )
    return row is not None


def get_owned_post(post_id: str) -> Optional[Dict[str, Any]]:
    """Post row regardless of owner; callers compare institution_id."""
    return fetch_one(
        "SELECT post_id, institution_id, title, status FROM opportunity_posts WHERE post_id = :pid",
        {"pid": post_id},
    )


def list_institution_posts(institution_id: str, tab: TabType) -> List[Dict[str, Any]]:
    table = EXTENSION_TABLES[tab]
    return execute_raw_sql(
        f"""
        SELECT p.post_id, p.title, p.status, p.degree_level, p.start_date, p.end_date,
               p.create_at, p.update_at,
               (SELECT COUNT(*) FROM applications a WHERE a.post_id = p.post_id) AS application_count
        FROM opportunity_posts p
        JOIN {table} x ON x.post_id = p.post_id
        WHERE p.institution_id = :iid AND p.status <> 'DELETED'
        ORDER BY p.create_at DESC
        """,
        {"iid": institution_id},
    )


def get_institution_post(institution_id: str, post_id: str, tab: TabType) -> Optional[Dict[str, Any]]:
    table = EXTENSION_TABLES[tab]
    row = fetch_one(
        f"""
        SELECT x.*, p.*
        FROM opportunity_posts p
        JOIN {table} x ON x.post_id = p.post_id
        WHERE p.post_id = :pid AND p.institution_id = :iid AND p.status <> 'DELETED'
        """,
        {"pid": post_id, "iid": institution_id},
    )
    if not row:
        return None

    row["subdisciplines"] = [
        r["name"] for r in execute_raw_sql(
            """
            SELECT s.name FROM post_subdisciplines ps
            JOIN subdisciplines s ON s.subdiscipline_id = ps.subdiscipline_id
            WHERE ps.post_id = :pid ORDER BY s.name
            """,
            {"pid": post_id},
        )
    ]
    row["file_requirements"] = execute_raw_sql(
        "SELECT name, description FROM post_documents WHERE post_id = :pid ORDER BY name",
        {"pid": post_id},
    )
    return row


# ============================================================
# WRITES
# ============================================================

def _base_params(post: PostBase) -> Dict[str, Any]:
    return {
        "title": post.title,
        "description": post.description,
        "other_info": post.other_info,
        "location": post.location or post.country,
        "start_date": post.start_date,
        "end_date": post.application_deadline,
        "status": post.status.value,
    }


def _scholarship_params(post: ScholarshipCreate) -> Dict[str, Any]:
    return {
        "x_description": post.description,
        "x_type": ", ".join(post.scholarship_type) or None,
        "x_number": post.number,
        "x_grant": post.grant,
        "x_eligibility": post.eligibility,
        "x_essay": essay_required_from(post.eligibility),
        "x_award_amount": post.award_amount,
        "x_award_duration": post.award_duration,
    }


def _research_params(post: ResearchCreate) -> Dict[str, Any]:
    return {
        "x_contract_type": post.contract_type,
        "x_attendance": post.attendance,
        "x_job_type": post.job_type,
        "x_min_salary": post.salary.min,
        "x_max_salary": post.salary.max,
        "x_salary_description": post.salary.description,
        "x_benefit": post.benefit,
        "x_main_responsibility": post.main_responsibility,
        "x_qualification_requirement": post.qualification_requirement,
        "x_experience_requirement": post.experience_requirement,
        "x_assessment_criteria": post.assessment_criteria,
        "x_other_requirement": post.other_requirement,
        "x_professor_name": post.professor_name,
        "x_lab_name": post.lab_name,
        "x_research_areas": ", ".join(post.research_fields) or None,
    }


_EXTENSION_SQL = {
    TabType.scholarships: (
        """
        INSERT INTO scholarship_posts (post_id, description, type, number, grant_info, eligibility,
            essay_required, award_amount, award_duration)
        VALUES (:pid, :x_description, :x_type, :x_number, :x_grant, :x_eligibility,
            :x_essay, :x_award_amount, :x_award_duration)
        """,
        """
        UPDATE scholarship_posts SET description = :x_description, type = :x_type, number = :x_number,
            grant_info = :x_grant, eligibility = :x_eligibility, essay_required = :x_essay,
            award_amount = :x_award_amount, award_duration = :x_award_duration
        WHERE post_id = :pid
        """,
        _scholarship_params,
    ),
    TabType.research: (
        """
        INSERT INTO job_posts (post_id, contract_type, attendance, job_type, min_salary, max_salary,
            salary_description, benefit, main_responsibility, qualification_requirement,
            experience_requirement, assessment_criteria, other_requirement, professor_name,
            lab_name, research_areas)
        VALUES (:pid, :x_contract_type, :x_attendance, :x_job_type, :x_min_salary, :x_max_salary,
            :x_salary_description, :x_benefit, :x_main_responsibility, :x_qualification_requirement,
            :x_experience_requirement, :x_assessment_criteria, :x_other_requirement, :x_professor_name,
            :x_lab_name, :x_research_areas)
        """,
        """
        UPDATE job_posts SET contract_type = :x_contract_type, attendance = :x_attendance,
            job_type = :x_job_type, min_salary = :x_min_salary, max_salary = :x_max_salary,
            salary_description = :x_salary_description, benefit = :x_benefit,
            main_responsibility = :x_main_responsibility,
            qualification_requirement = :x_qualification_requirement,
            experience_requirement = :x_experience_requirement,
            assessment_criteria = :x_assessment_criteria, other_requirement = :x_other_requirement,
            professor_name = :x_professor_name, lab_name = :x_lab_name,
            research_areas = :x_research_areas
        WHERE post_id = :pid
        """,
        _research_params,
    ),
}


def _replace_links(db, post_id: str, post: PostBase) -> None:
    """Replace subdiscipline links and required documents of a post."""
    db.execute(text("DELETE FROM post_subdisciplines WHERE post_id = :pid"), {"pid": post_id})
    if post.subdisciplines:
        db.execute(
            text("""
                INSERT INTO post_subdisciplines (post_id, subdiscipline_id)
                SELECT :pid, subdiscipline_id FROM subdisciplines
                WHERE name = ANY(:names) AND status = TRUE
                ON CONFLICT DO NOTHING
            """),
            {"pid": post_id, "names": post.subdisciplines},
        )

    db.execute(text("DELETE FROM post_documents WHERE post_id = :pid"), {"pid": post_id})
    for req in post.file_requirements:
        db.execute(
            text("INSERT INTO post_documents (document_id, post_id, name, description) VALUES (:id, :pid, :name, :descr)"),
            {"id": new_id(), "pid": post_id, "name": req.name, "descr": req.description},
        )


def create_post(institution_id: str, tab: TabType, post: PostBase, default_degree_level: Optional[str] = None) -> str:
    insert_sql, _, params_for = _EXTENSION_SQL[tab]
    post_id = new_id()

    params = _base_params(post)
    params.update(params_for(post))
    params.update({
        "pid": post_id,
        "iid": institution_id,
        "degree_level": post.degree_level or default_degree_level,
    })

    with get_db_session() as db:
        db.execute(
            text("""
                INSERT INTO opportunity_posts (post_id, institution_id, title, description, other_info,
                    location, degree_level, start_date, end_date, status, create_at)
                VALUES (:pid, :iid, :title, :description, :other_info, :location, :degree_level,
                    :start_date, :end_date, :status, NOW())
            """),
            params,
        )
        db.execute(text(insert_sql), params)
        _replace_links(db, post_id, post)

    log.info("Created %s post %s for institution %s", tab.value, post_id, institution_id)
    return post_id


def update_post(post_id: str, tab: TabType, post: PostBase, default_degree_level: Optional[str] = None) -> None:
    _, update_sql, params_for = _EXTENSION_SQL[tab]

    params = _base_params(post)
    params.update(params_for(post))
    params.update({"pid": post_id, "degree_level": post.degree_level or default_degree_level})

    with get_db_session() as db:
        db.execute(
            text("""
                UPDATE opportunity_posts SET title = :title, description = :description,
                    other_info = :other_info, location = :location, degree_level = :degree_level,
                    start_date = :start_date, end_date = :end_date, status = :status, update_at = NOW()
                WHERE post_id = :pid
            """),
            params,
        )
        db.execute(text(update_sql), params)
        _replace_links(db, post_id, post)

    log.info("Updated %s post %s", tab.value, post_id)


def soft_delete_post(post_id: str) -> None:
    with get_db_session() as db:
        db.execute(
            text("UPDATE opportunity_posts SET status = :status, update_at = NOW() WHERE post_id = :pid"),
            {"status": PostStatus.deleted.value, "pid": post_id},
        )
    log.info("Soft-deleted post %s", post_id)
