"""
Resume upload, text extraction and background parsing
"""
import io
import json
import logging
import os
import re

from docx import Document
from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from hireai import ai, config
from hireai.auth import require_role
from hireai.db import get_db, loads, new_id
from hireai.errors import ResumeExtractionError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ("pdf", "docx")

router = APIRouter()


# ============================================================================
# TEXT EXTRACTION
# ============================================================================

def _printable_text(data: bytes) -> str:
    text = data.decode("utf-8", errors="ignore")
    text = re.sub(r"[^\x20-\x7E\n\r\t]", " ", text)
    return re.sub(r"\s{2,}", " ", text).strip()


def extract_pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        text = "\n".join(p for p in pages if p.strip())
        if text.strip():
            return text
    except (PdfReadError, ValueError, KeyError) as e:
        logger.warning("pypdf failed, falling back to basic text extraction: %s", e)

    text = _printable_text(data)
    if len(text) > 50:
        return text
    raise ResumeExtractionError("Could not read text from this PDF. Please upload a DOCX file instead.")


def extract_docx_text(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    lines = [p.text.strip() for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            row_text = " ".join(cell.text.strip() for cell in row.cells if cell.text.strip())
            if row_text:
                lines.append(row_text)
    return "\n".join(lines)


def extract_text(data: bytes, ext: str) -> str:
    ext = ext.lower().lstrip(".")
    if ext == "pdf":
        return extract_pdf_text(data)
    if ext == "docx":
        return extract_docx_text(data)
    raise ResumeExtractionError("Unsupported file format")


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

async def process_resume(candidate_id: str, data: bytes, ext: str):
    """Background task: extract text, parse it with the LLM and store the profile"""
    try:
        text = extract_text(data, ext)
        conn = get_db()
        conn.execute("UPDATE candidates SET raw_resume_text = ? WHERE id = ?", (text, candidate_id))
        conn.commit()
        conn.close()

        parsed = await ai.parse_resume(text)

        conn = get_db()
        conn.execute("""
            UPDATE candidates
            SET parsed_skills = ?, parsed_experience = ?, parsed_projects = ?,
                parsed_education = ?, phone = COALESCE(NULLIF(?, ''), phone),
                resume_status = 'processed'
            WHERE id = ?
        """, (
            json.dumps(parsed["skills"]),
            json.dumps(parsed["experience"]),
            json.dumps(parsed["projects"]),
            json.dumps(parsed["education"]),
            parsed["phone"],
            candidate_id,
        ))
        conn.commit()
        conn.close()
        logger.info("Resume parsed for candidate %s", candidate_id)

    except Exception as e:
        logger.error("Resume parsing failed for candidate %s: %s", candidate_id, e)
        conn = get_db()
        conn.execute("UPDATE candidates SET resume_status = 'error' WHERE id = ?", (candidate_id,))
        conn.commit()
        conn.close()


def find_or_create_candidate(cursor, user: dict):
    """The candidate row owned by a logged-in user, claiming an anonymous one by email"""
    cursor.execute("SELECT * FROM candidates WHERE user_id = ?", (user["id"],))
    candidate = cursor.fetchone()
    if candidate:
        return candidate

    cursor.execute("SELECT * FROM candidates WHERE email = ? AND user_id IS NULL", (user["email"],))
    candidate = cursor.fetchone()
    if candidate:
        cursor.execute("UPDATE candidates SET user_id = ? WHERE id = ?", (user["id"], candidate["id"]))
    else:
        cursor.execute(
            "INSERT INTO candidates (id, name, email, user_id) VALUES (?, ?, ?, ?)",
            (new_id(), user["name"], user["email"], user["id"])
        )

    cursor.execute("SELECT * FROM candidates WHERE user_id = ?", (user["id"],))
    return cursor.fetchone()


# ============================================================================
# API ROUTES - RESUME
# ============================================================================

@router.post("/api/resume/upload")
async def upload_resume(
    background_tasks: BackgroundTasks,
    resume: UploadFile = File(...),
    user: dict = Depends(require_role("candidate")),
):
    ext = os.path.splitext(resume.filename or "")[1].lower().lstrip(".")
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only PDF and DOCX files are allowed")

    data = await resume.read()
    if not data:
        raise HTTPException(status_code=400, detail="No resume file uploaded")
    if len(data) > config.MAX_RESUME_BYTES:
        raise HTTPException(status_code=400, detail="Resume must be 5MB or smaller")

    conn = get_db()
    cursor = conn.cursor()
    candidate = find_or_create_candidate(cursor, user)

    os.makedirs(config.RESUME_DIR, exist_ok=True)
    if candidate["resume_file_path"]:
        old_path = os.path.join(config.RESUME_DIR, candidate["resume_file_path"])
        if os.path.exists(old_path):
            os.remove(old_path)

    storage_name = f"{new_id()}.{ext}"
    with open(os.path.join(config.RESUME_DIR, storage_name), "wb") as f:
        f.write(data)

    cursor.execute(
        "UPDATE candidates SET resume_file_path = ?, resume_status = 'processing', name = ? WHERE id = ?",
        (storage_name, user["name"], candidate["id"])
    )
    conn.commit()
    conn.close()

    background_tasks.add_task(process_resume, candidate["id"], data, ext)

    return {
        "candidate_id": candidate["id"],
        "status": "processing",
        "message": "Resume uploaded. AI parsing in progress...",
    }


@router.get("/api/resume/status")
async def resume_status(user: dict = Depends(require_role("candidate"))):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM candidates WHERE user_id = ?", (user["id"],))
    candidate = cursor.fetchone()
    conn.close()

    if not candidate:
        return {
            "resume_status": "none",
            "parsed_skills": [],
            "parsed_experience": [],
            "parsed_projects": [],
            "parsed_education": [],
        }

    return {
        "candidate_id": candidate["id"],
        "resume_status": candidate["resume_status"] or "none",
        "parsed_skills": loads(candidate["parsed_skills"], []),
        "parsed_experience": loads(candidate["parsed_experience"], []),
        "parsed_projects": loads(candidate["parsed_projects"], []),
        "parsed_education": loads(candidate["parsed_education"], []),
    }


@router.get("/api/resume/score/{job_id}")
async def resume_score(job_id: str, user: dict = Depends(require_role("candidate"))):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT id FROM candidates WHERE user_id = ?", (user["id"],))
    candidate = cursor.fetchone()
    score = None
    if candidate:
        cursor.execute(
            "SELECT * FROM ai_scores WHERE candidate_id = ? AND job_id = ?",
            (candidate["id"], job_id)
        )
        score = cursor.fetchone()
    conn.close()

    if not score:
        return {"score": None}

    return {
        "score": {
            "skills_score": score["skills_score"],
            "experience_score": score["experience_score"],
            "projects_score": score["projects_score"],
            "test_score": score["test_score"],
            "final_weighted_score": score["final_weighted_score"],
            "ai_summary": score["ai_summary"],
        }
    }
