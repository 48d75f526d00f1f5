"""
HireAI - AI Hiring Assessment Platform
Backend with session auth, SQLite database, Groq LLM integration and proctored assessments
"""
import csv
import io
import json
import logging
import os
import re
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from starlette.middleware.sessions import SessionMiddleware

from hireai import __version__, ai, config
from hireai.auth import get_current_user, require_role
from hireai.auth import router as auth_router
from hireai.db import get_db, init_db, loads, new_id
from hireai.errors import LLMResponseError, LLMUnavailableError, ScoringPreconditionError
from hireai.rescoring import score_candidate_background
from hireai.resume import router as resume_router
from hireai.schemas import JobCreateRequest, JobGenerateRequest, SubmissionCreate, SubmissionResult
from hireai.scoring import save_result, score_submission
from hireai.templates import error_html, exam_html

logger = logging.getLogger(__name__)

LEADERBOARD_SORT_KEYS = (
    "final_weighted_score",
    "test_score",
    "skills_score",
    "experience_score",
    "projects_score",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.setup_logging()
    init_db()
    yield


app = FastAPI(title="HireAI API", version=__version__, lifespan=lifespan)

# Middleware
origins = ["http://localhost:3000"]
if config.FRONTEND_URL:
    origins.append(config.FRONTEND_URL)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SECRET_KEY,
    max_age=3600 * 24 * 7  # 7 days
)

app.include_router(auth_router)
app.include_router(resume_router)


@app.exception_handler(LLMUnavailableError)
async def llm_unavailable_handler(request: Request, exc: LLMUnavailableError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(LLMResponseError)
async def llm_response_handler(request: Request, exc: LLMResponseError):
    logger.error("LLM response error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ============================================================================
# HELPERS
# ============================================================================

def question_row(row, include_answer: bool = True) -> dict:
    q = {
        "id": row["id"],
        "type": row["type"],
        "question": row["question"],
        "options": loads(row["options"], None),
        "skill": row["skill"],
        "difficulty": row["difficulty"],
        "order_index": row["order_index"],
    }
    if include_answer:
        q["correct_answer"] = row["correct_answer"]
    return q


def job_row(row) -> dict:
    return {
        "id": row["id"],
        "title": row["title"],
        "description": row["description"],
        "required_skills": loads(row["required_skills"], []),
        "experience_level": row["experience_level"],
        "tools_technologies": loads(row["tools_technologies"], []),
        "created_at": row["created_at"],
    }


def result_row(row) -> dict:
    r = dict(row)
    r["skill_scores"] = loads(r.get("skill_scores"), {})
    r["disqualified"] = bool(r.get("disqualified"))
    return r


def load_questions(cursor, job_id: str) -> List[dict]:
    cursor.execute("SELECT * FROM questions WHERE job_id = ? ORDER BY order_index", (job_id,))
    return [question_row(row) for row in cursor.fetchall()]


def insert_job(conn, parsed: dict, description: str, questions: List[dict]) -> str:
    job_id = new_id()
    conn.execute("""
        INSERT INTO jobs (id, title, description, required_skills, experience_level, tools_technologies)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (
        job_id,
        parsed["title"],
        description,
        json.dumps(parsed["required_skills"]),
        parsed["experience_level"],
        json.dumps(parsed["tools_technologies"]),
    ))

    for i, q in enumerate(questions):
        q_type = q.get("type") or "mcq"
        is_mcq = q_type == "mcq"
        conn.execute("""
            INSERT INTO questions
            (id, job_id, type, question, options, correct_answer, skill, difficulty, order_index)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            new_id(),
            job_id,
            q_type,
            q.get("question") or "",
            json.dumps(q["options"]) if is_mcq and q.get("options") else None,
            q.get("correct_answer") if is_mcq else None,
            q.get("skill") or "General",
            q.get("difficulty") or "Medium",
            i,
        ))
    return job_id


def find_or_create_submitter(cursor, name: str, email: str, user: Optional[dict]) -> str:
    """Candidate row for a submission, keyed by email"""
    cursor.execute("SELECT id, user_id FROM candidates WHERE email = ?", (email,))
    candidate = cursor.fetchone()
    if candidate:
        if user and not candidate["user_id"]:
            cursor.execute("UPDATE candidates SET user_id = ? WHERE id = ?", (user["id"], candidate["id"]))
        return candidate["id"]

    candidate_id = new_id()
    cursor.execute(
        "INSERT INTO candidates (id, name, email, user_id) VALUES (?, ?, ?, ?)",
        (candidate_id, name, email, user["id"] if user else None)
    )
    return candidate_id


def build_leaderboard(cursor, job_id: str, sort: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
    cursor.execute("SELECT DISTINCT candidate_id FROM submissions WHERE job_id = ?", (job_id,))
    candidate_ids = [row["candidate_id"] for row in cursor.fetchall()]
    if not candidate_ids:
        return []

    placeholders = ",".join("?" * len(candidate_ids))
    cursor.execute(f"SELECT * FROM candidates WHERE id IN ({placeholders}) ORDER BY created_at, rowid", candidate_ids)
    candidates = cursor.fetchall()

    cursor.execute("SELECT * FROM ai_scores WHERE job_id = ?", (job_id,))
    ai_map = {row["candidate_id"]: row for row in cursor.fetchall()}

    # Ascending, so each candidate ends up mapped to their latest result
    cursor.execute(
        "SELECT * FROM results WHERE job_id = ? ORDER BY evaluated_at, rowid",
        (job_id,)
    )
    result_map = {row["candidate_id"]: row for row in cursor.fetchall()}

    entries = []
    for c in candidates:
        a = ai_map.get(c["id"])
        r = result_map.get(c["id"])
        raw_test = r["total_score"] if r else 0
        entries.append({
            "candidate_id": c["id"],
            "name": c["name"],
            "email": c["email"],
            "phone": c["phone"] or "",
            "resume_status": c["resume_status"] or "none",
            "parsed_skills": loads(c["parsed_skills"], []),
            "skills_score": a["skills_score"] if a else 0,
            "experience_score": a["experience_score"] if a else 0,
            "projects_score": a["projects_score"] if a else 0,
            "test_score": a["test_score"] if a else raw_test,
            "final_weighted_score": a["final_weighted_score"] if a else raw_test,
            "ai_summary": a["ai_summary"] if a else "",
            "disqualified": bool(r["disqualified"]) if r else False,
        })

    query = (search or "").lower().strip()
    if query:
        entries = [
            e for e in entries
            if query in (e["name"] or "").lower()
            or query in (e["email"] or "").lower()
            or any(query in str(s).lower() for s in e["parsed_skills"])
        ]

    sort_key = sort if sort in LEADERBOARD_SORT_KEYS else "final_weighted_score"
    entries.sort(key=lambda e: e[sort_key] or 0, reverse=True)

    return [{"rank": i + 1, **e} for i, e in enumerate(entries)]


# ============================================================================
# API ROUTES - HEALTH
# ============================================================================

@app.get("/api/health")
async def health():
    return {"status": "ok", "version": __version__}


# ============================================================================
# API ROUTES - JOBS
# ============================================================================

@app.post("/api/jobs/generate")
async def generate_job_draft(body: JobGenerateRequest):
    """Parse a description and generate questions without saving anything"""
    if not body.description.strip():
        raise HTTPException(status_code=400, detail="Job description is required")

    parsed = await ai.parse_job_description(body.description)
    generated = await ai.generate_questions(
        parsed, body.mcq_count, body.subjective_count, body.coding_count
    )

    return {"job": parsed, "questions": ai.flatten_questions(generated)}


@app.post("/api/jobs", status_code=201)
async def create_job(body: JobCreateRequest):
    description = (body.description or "").strip()

    if body.job and description and body.questions:
        parsed = body.job.model_dump()
        questions = [q.model_dump() for q in body.questions]
    elif description:
        parsed = await ai.parse_job_description(description)
        generated = await ai.generate_questions(
            parsed, body.mcq_count, body.subjective_count, body.coding_count
        )
        questions = ai.flatten_questions(generated)
    else:
        raise HTTPException(status_code=400, detail="Job description or job+questions required")

    conn = get_db()
    job_id = insert_job(conn, parsed, description, questions)
    conn.commit()
    cursor = conn.cursor()
    saved = load_questions(cursor, job_id)
    conn.close()

    logger.info("Created job %s with %d questions", job_id, len(saved))

    return {
        "job": {
            "id": job_id,
            "title": parsed["title"],
            "required_skills": parsed["required_skills"],
            "experience_level": parsed["experience_level"],
            "tools_technologies": parsed["tools_technologies"],
        },
        "questions": saved,
    }


@app.get("/api/jobs")
async def list_jobs():
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT j.*, COUNT(q.id) as question_count
        FROM jobs j
        LEFT JOIN questions q ON q.job_id = j.id
        GROUP BY j.id
        ORDER BY j.created_at DESC, j.rowid DESC
    """)
    jobs = [{**job_row(row), "question_count": row["question_count"]} for row in cursor.fetchall()]
    conn.close()
    return jobs


@app.get("/api/jobs/{job_id}")
async def get_job(job_id: str):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
    job = cursor.fetchone()
    if not job:
        conn.close()
        raise HTTPException(status_code=404, detail="Job not found")

    cursor.execute("SELECT * FROM questions WHERE job_id = ? ORDER BY order_index", (job_id,))
    # NEVER send correct answers to the candidate
    questions = [question_row(row, include_answer=False) for row in cursor.fetchall()]
    conn.close()

    return {**job_row(job), "questions": questions}


# ============================================================================
# ASSESSMENT PAGE
# ============================================================================

@app.get("/assessment/{job_id}", response_class=HTMLResponse)
async def assessment_page(job_id: str):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT title FROM jobs WHERE id = ?", (job_id,))
    job = cursor.fetchone()
    if not job:
        conn.close()
        return HTMLResponse(content=error_html("Assessment Not Found", "This assessment link is invalid."), status_code=404)

    cursor.execute("SELECT * FROM questions WHERE job_id = ? ORDER BY order_index", (job_id,))
    questions = [question_row(row, include_answer=False) for row in cursor.fetchall()]
    conn.close()

    return HTMLResponse(content=exam_html(
        job_id=job_id,
        title=job["title"],
        questions_json=json.dumps(questions),
        num_questions=len(questions),
    ))


# ============================================================================
# API ROUTES - SUBMISSIONS & RESULTS
# ============================================================================

@app.post("/api/submissions", status_code=201, response_model=SubmissionResult)
async def create_submission(body: SubmissionCreate, request: Request, background_tasks: BackgroundTasks):
    name = body.candidate_name.strip()
    email = body.candidate_email.lower().strip()
    if not name or not email or not body.job_id:
        raise HTTPException(status_code=400, detail="candidate_name, candidate_email, and job_id are required")

    # Only a logged-in candidate owns the submission
    user = get_current_user(request)
    if user and user["role"] != "candidate":
        user = None

    conn = get_db()
    cursor = conn.cursor()

    cursor.execute("SELECT id FROM jobs WHERE id = ?", (body.job_id,))
    if not cursor.fetchone():
        conn.close()
        raise HTTPException(status_code=404, detail="Job not found")

    questions = load_questions(cursor, body.job_id)
    try:
        summary = score_submission(questions, body.answers, body.disqualified)
    except ScoringPreconditionError as e:
        conn.close()
        raise HTTPException(status_code=400, detail=str(e))

    candidate_id = find_or_create_submitter(cursor, name, email, user)

    submission_id = new_id()
    cursor.execute("""
        INSERT INTO submissions (id, candidate_id, job_id, user_id, answers, time_taken_seconds, disqualified)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """, (
        submission_id,
        candidate_id,
        body.job_id,
        user["id"] if user else None,
        json.dumps(body.answers),
        max(0, body.time_taken_seconds),
        int(body.disqualified),
    ))

    snapshots = [
        s for s in body.snapshots[-config.MAX_SNAPSHOTS:]
        if isinstance(s, str) and s.startswith("data:image")
    ]
    for image_data in snapshots:
        cursor.execute(
            "INSERT INTO proctor_snapshots (id, submission_id, image_data) VALUES (?, ?, ?)",
            (new_id(), submission_id, image_data)
        )

    result_id = save_result(conn, submission_id, candidate_id, body.job_id, summary)
    conn.commit()
    conn.close()

    logger.info(
        "Scored submission %s for %s: total=%d%s",
        submission_id, email, summary.total_score, " (disqualified)" if body.disqualified else "",
    )

    background_tasks.add_task(score_candidate_background, candidate_id, body.job_id)

    return {"result_id": result_id, "submission_id": submission_id, **summary.as_dict()}


@app.get("/api/results/detail/{result_id}")
async def get_result_detail(result_id: str):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT r.*, c.name as candidate_name, c.email as candidate_email, j.title as job_title
        FROM results r
        JOIN candidates c ON r.candidate_id = c.id
        JOIN jobs j ON r.job_id = j.id
        WHERE r.id = ?
    """, (result_id,))
    result = cursor.fetchone()
    if not result:
        conn.close()
        raise HTTPException(status_code=404, detail="Result not found")

    cursor.execute("SELECT answers FROM submissions WHERE id = ?", (result["submission_id"],))
    submission = cursor.fetchone()
    answers = loads(submission["answers"], {}) if submission else {}

    question_review = []
    for q in load_questions(cursor, result["job_id"]):
        your_answer = answers.get(q["id"], "")
        review = {
            "id": q["id"],
            "type": q["type"],
            "question": q["question"],
            "skill": q["skill"],
            "your_answer": your_answer,
        }
        if q["type"] == "mcq":
            review["correct_answer"] = q["correct_answer"]
            review["is_correct"] = your_answer == q["correct_answer"]
        question_review.append(review)

    cursor.execute("""
        SELECT id, image_data, captured_at FROM proctor_snapshots
        WHERE submission_id = ?
        ORDER BY captured_at, rowid
    """, (result["submission_id"],))
    snapshots = [dict(row) for row in cursor.fetchall()]

    cursor.execute(
        "SELECT id FROM results WHERE job_id = ? ORDER BY total_score DESC, evaluated_at",
        (result["job_id"],)
    )
    ranking = [row["id"] for row in cursor.fetchall()]

    cursor.execute(
        "SELECT final_weighted_score FROM ai_scores WHERE candidate_id = ? AND job_id = ?",
        (result["candidate_id"], result["job_id"])
    )
    composite = cursor.fetchone()
    conn.close()

    return {
        **result_row(result),
        "final_weighted_score": composite["final_weighted_score"] if composite else None,
        "rank": ranking.index(result_id) + 1,
        "total_candidates": len(ranking),
        "question_review": question_review,
        "proctor_snapshots": snapshots,
    }


@app.get("/api/results/{job_id}")
async def get_results(job_id: str):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT r.*, c.name as candidate_name, c.email as candidate_email,
               a.final_weighted_score
        FROM results r
        JOIN candidates c ON r.candidate_id = c.id
        LEFT JOIN ai_scores a ON a.candidate_id = r.candidate_id AND a.job_id = r.job_id
        WHERE r.job_id = ?
        ORDER BY r.total_score DESC, r.evaluated_at
    """, (job_id,))
    results = [result_row(row) for row in cursor.fetchall()]
    conn.close()
    return results


# ============================================================================
# API ROUTES - RECRUITER
# ============================================================================

@app.get("/api/recruiter/dashboard")
async def recruiter_dashboard(user: dict = Depends(require_role("recruiter"))):
    conn = get_db()
    cursor = conn.cursor()

    cursor.execute("SELECT id, title FROM jobs ORDER BY created_at DESC, rowid DESC")
    jobs = cursor.fetchall()

    cursor.execute("SELECT COUNT(DISTINCT candidate_id) FROM submissions")
    total_candidates = cursor.fetchone()[0]

    cursor.execute("""
        SELECT COUNT(*) FROM submissions s
        JOIN ai_scores a ON a.candidate_id = s.candidate_id AND a.job_id = s.job_id
    """)
    completed = cursor.fetchone()[0]

    cursor.execute("SELECT COUNT(*) FROM submissions")
    pending = cursor.fetchone()[0] - completed

    cursor.execute("SELECT job_id, COUNT(*) as n FROM submissions GROUP BY job_id")
    counts = {row["job_id"]: row["n"] for row in cursor.fetchall()}
    conn.close()

    return {
        "total_assessments": len(jobs),
        "total_candidates": total_candidates,
        "completed": completed,
        "pending": pending,
        "recent_assessments": [
            {
                "id": j["id"],
                "title": j["title"],
                "candidate_count": counts.get(j["id"], 0),
                "status": "Active" if counts.get(j["id"], 0) > 0 else "New",
            }
            for j in jobs[:8]
        ],
    }


@app.post("/api/recruiter/score-job/{job_id}")
async def score_job(job_id: str, background_tasks: BackgroundTasks, user: dict = Depends(require_role("recruiter"))):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT DISTINCT candidate_id FROM submissions WHERE job_id = ?", (job_id,))
    candidate_ids = [row["candidate_id"] for row in cursor.fetchall()]
    conn.close()

    for candidate_id in candidate_ids:
        background_tasks.add_task(score_candidate_background, candidate_id, job_id)

    return {"triggered": len(candidate_ids), "message": "AI scoring started in background"}


@app.get("/api/recruiter/stats/{job_id}")
async def recruiter_stats(job_id: str, user: dict = Depends(require_role("recruiter"))):
    conn = get_db()
    cursor = conn.cursor()

    cursor.execute("SELECT COUNT(*) FROM submissions WHERE job_id = ?", (job_id,))
    total_applicants = cursor.fetchone()[0]

    cursor.execute("""
        SELECT COUNT(*) FROM candidates
        WHERE resume_status = 'processed'
        AND id IN (SELECT candidate_id FROM submissions WHERE job_id = ?)
    """, (job_id,))
    resumes_uploaded = cursor.fetchone()[0]

    cursor.execute("SELECT COUNT(*) FROM results WHERE job_id = ?", (job_id,))
    tests_completed = cursor.fetchone()[0]

    cursor.execute("""
        SELECT COUNT(DISTINCT candidate_id) FROM submissions
        WHERE job_id = ?
        AND candidate_id NOT IN (SELECT candidate_id FROM results WHERE job_id = ?)
    """, (job_id, job_id))
    tests_pending = cursor.fetchone()[0]
    conn.close()

    return {
        "total_applicants": total_applicants,
        "resumes_uploaded": resumes_uploaded,
        "tests_completed": tests_completed,
        "tests_pending": tests_pending,
    }


@app.get("/api/recruiter/leaderboard/{job_id}")
async def recruiter_leaderboard(
    job_id: str,
    sort: Optional[str] = None,
    search: Optional[str] = None,
    user: dict = Depends(require_role("recruiter")),
):
    conn = get_db()
    cursor = conn.cursor()
    entries = build_leaderboard(cursor, job_id, sort, search)
    conn.close()
    return entries


@app.get("/api/recruiter/leaderboard/{job_id}/export")
async def export_leaderboard_csv(job_id: str, user: dict = Depends(require_role("recruiter"))):
    """Export the leaderboard as CSV"""
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT title FROM jobs WHERE id = ?", (job_id,))
    job = cursor.fetchone()
    if not job:
        conn.close()
        raise HTTPException(status_code=404, detail="Job not found")

    entries = build_leaderboard(cursor, job_id)
    conn.close()

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "Rank", "Name", "Email", "Phone",
        "Skills Score", "Experience Score", "Projects Score",
        "Test Score", "Final Score", "Disqualified", "Resume Status"
    ])

    for e in entries:
        writer.writerow([
            e["rank"],
            e["name"],
            e["email"],
            e["phone"],
            round(e["skills_score"] or 0, 1),
            round(e["experience_score"] or 0, 1),
            round(e["projects_score"] or 0, 1),
            round(e["test_score"] or 0, 1),
            round(e["final_weighted_score"] or 0, 2),
            "yes" if e["disqualified"] else "no",
            e["resume_status"],
        ])

    filename = re.sub(r"[^A-Za-z0-9_-]", "_", job["title"]) or "job"

    return Response(
        content=output.getvalue(),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}_leaderboard.csv"
        }
    )


@app.get("/api/recruiter/candidate/{candidate_id}")
async def recruiter_candidate(candidate_id: str, user: dict = Depends(require_role("recruiter"))):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM candidates WHERE id = ?", (candidate_id,))
    candidate = cursor.fetchone()
    if not candidate:
        conn.close()
        raise HTTPException(status_code=404, detail="Candidate not found")

    cursor.execute("SELECT * FROM ai_scores WHERE candidate_id = ?", (candidate_id,))
    scores = cursor.fetchall()

    cursor.execute("""
        SELECT r.*, j.title as job_title
        FROM results r
        JOIN jobs j ON r.job_id = j.id
        WHERE r.candidate_id = ?
        ORDER BY r.evaluated_at DESC, r.rowid DESC
    """, (candidate_id,))
    results = [result_row(row) for row in cursor.fetchall()]
    conn.close()

    return {
        "id": candidate["id"],
        "name": candidate["name"],
        "email": candidate["email"],
        "phone": candidate["phone"] or "",
        "resume_status": candidate["resume_status"] or "none",
        "resume_file_path": candidate["resume_file_path"],
        "parsed_skills": loads(candidate["parsed_skills"], []),
        "parsed_experience": loads(candidate["parsed_experience"], []),
        "parsed_projects": loads(candidate["parsed_projects"], []),
        "parsed_education": loads(candidate["parsed_education"], []),
        "ai_scores": [
            {
                "job_id": s["job_id"],
                "skills_score": s["skills_score"],
                "experience_score": s["experience_score"],
                "projects_score": s["projects_score"],
                "test_score": s["test_score"],
                "final_weighted_score": s["final_weighted_score"],
                "ai_summary": s["ai_summary"],
            }
            for s in scores
        ],
        "results": results,
    }


@app.get("/api/recruiter/resume/{candidate_id}")
async def download_resume(candidate_id: str, user: dict = Depends(require_role("recruiter"))):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT name, resume_file_path FROM candidates WHERE id = ?", (candidate_id,))
    candidate = cursor.fetchone()
    conn.close()

    if not candidate or not candidate["resume_file_path"]:
        raise HTTPException(status_code=404, detail="Resume not found")

    path = os.path.join(config.RESUME_DIR, candidate["resume_file_path"])
    if not os.path.exists(path):
        raise HTTPException(status_code=404, detail="Resume file not found")

    ext = os.path.splitext(path)[1]
    media_type = "application/pdf" if ext == ".pdf" else \
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    filename = re.sub(r"[^A-Za-z0-9]", "_", candidate["name"] or "resume") + "_resume" + ext

    return FileResponse(path, media_type=media_type, filename=filename)


# ============================================================================
# ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
