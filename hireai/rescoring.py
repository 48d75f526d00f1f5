"""
Background re-scoring: blends resume-derived scores with the test score.

    final = skills * 0.30 + experience * 0.20 + projects * 0.15 + test * 0.35

Runs after the submission response has been sent (FastAPI BackgroundTasks),
once per fresh submission and once per candidate when a recruiter replays a
whole job. Writes only the ``ai_scores`` row for the (candidate, job) pair.
"""
import logging
from typing import Awaitable, Callable, Optional

from hireai import ai, config
from hireai.db import get_db, loads, new_id

logger = logging.getLogger(__name__)

Matcher = Callable[[dict, dict], Awaitable[dict]]
Summarizer = Callable[[dict], Awaitable[str]]


def _clamp(value) -> float:
    try:
        return max(0.0, min(100.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def compute_final_weighted_score(skills, experience, projects, test) -> float:
    w = config.COMPOSITE_WEIGHTS
    score = (
        _clamp(skills) * w["skills"]
        + _clamp(experience) * w["experience"]
        + _clamp(projects) * w["projects"]
        + _clamp(test) * w["test"]
    )
    return round(score, 2)


def candidate_profile(row) -> dict:
    return {
        "name": row["name"],
        "skills": loads(row["parsed_skills"], []),
        "experience": loads(row["parsed_experience"], []),
        "projects": loads(row["parsed_projects"], []),
        "education": loads(row["parsed_education"], []),
    }


def latest_test_score(cursor, candidate_id: str, job_id: str) -> float:
    """Most recent total score for the pair, 0 when none has been written yet"""
    cursor.execute("""
        SELECT total_score FROM results
        WHERE candidate_id = ? AND job_id = ?
        ORDER BY evaluated_at DESC, rowid DESC
        LIMIT 1
    """, (candidate_id, job_id))
    row = cursor.fetchone()
    return float(row["total_score"]) if row else 0.0


async def score_candidate(
    candidate_id: str,
    job_id: str,
    matcher: Optional[Matcher] = None,
    summarizer: Optional[Summarizer] = None,
) -> dict:
    """Compute and upsert the composite score for one candidate and job"""
    matcher = matcher or ai.match_candidate
    summarizer = summarizer or ai.generate_summary

    conn = get_db()
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT * FROM candidates WHERE id = ?", (candidate_id,))
        candidate = cursor.fetchone()
        if not candidate:
            raise LookupError(f"Candidate {candidate_id} not found")

        cursor.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
        job = cursor.fetchone()
        if not job:
            raise LookupError(f"Job {job_id} not found")

        test_score = latest_test_score(cursor, candidate_id, job_id)
        profile = candidate_profile(candidate)
    finally:
        conn.close()

    requirements = {
        "title": job["title"],
        "required_skills": loads(job["required_skills"], []),
        "tools_technologies": loads(job["tools_technologies"], []),
        "experience_level": job["experience_level"],
    }
    match = await matcher(profile, requirements)

    skills_score = _clamp(match.get("skills_score"))
    experience_score = _clamp(match.get("experience_score"))
    projects_score = _clamp(match.get("projects_score"))
    final_score = compute_final_weighted_score(skills_score, experience_score, projects_score, test_score)

    summary = ""
    try:
        summary = await summarizer(profile)
    except Exception as e:
        logger.error("Summary generation failed for candidate %s: %s", candidate_id, e)

    record = {
        "candidate_id": candidate_id,
        "job_id": job_id,
        "skills_score": skills_score,
        "experience_score": experience_score,
        "projects_score": projects_score,
        "test_score": test_score,
        "final_weighted_score": final_score,
        "ai_summary": summary,
    }

    # Re-scoring overwrites the pair's row rather than adding another one
    conn = get_db()
    try:
        conn.execute("""
            INSERT INTO ai_scores
            (id, candidate_id, job_id, skills_score, experience_score, projects_score,
             test_score, final_weighted_score, ai_summary)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(candidate_id, job_id) DO UPDATE SET
                skills_score = excluded.skills_score,
                experience_score = excluded.experience_score,
                projects_score = excluded.projects_score,
                test_score = excluded.test_score,
                final_weighted_score = excluded.final_weighted_score,
                ai_summary = excluded.ai_summary,
                updated_at = CURRENT_TIMESTAMP
        """, (
            new_id(),
            candidate_id,
            job_id,
            skills_score,
            experience_score,
            projects_score,
            test_score,
            final_score,
            summary,
        ))
        conn.commit()
    finally:
        conn.close()

    return record


async def score_candidate_background(candidate_id: str, job_id: str) -> None:
    """Background task: never raises, a failure leaves the previous score in place"""
    try:
        record = await score_candidate(candidate_id, job_id)
        logger.info(
            "AI scoring completed for candidate %s, job %s: %.2f",
            candidate_id, job_id, record["final_weighted_score"],
        )
    except Exception as e:
        logger.error("AI scoring failed for candidate %s, job %s: %s", candidate_id, job_id, e)
