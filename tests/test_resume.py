import io
import os

import pytest
from docx import Document

from hireai import ai, config
from hireai.errors import ResumeExtractionError
from hireai.resume import extract_text

DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def make_docx() -> bytes:
    doc = Document()
    doc.add_paragraph("Ada Lovelace")
    doc.add_paragraph("Senior Python Engineer")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Skills"
    table.rows[0].cells[1].text = "Python, SQL"
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def test_extract_docx_paragraphs_and_tables():
    text = extract_text(make_docx(), "docx")

    assert "Ada Lovelace" in text
    assert "Senior Python Engineer" in text
    assert "Skills Python, SQL" in text


def test_unreadable_pdf_falls_back_to_printable_text():
    data = b"Ada Lovelace\x00\x01 Python engineer with ten years building web services and APIs\xff"

    text = extract_text(data, ".PDF")

    assert text.startswith("Ada Lovelace")
    assert "web services" in text


def test_pdf_without_text_is_rejected():
    with pytest.raises(ResumeExtractionError):
        extract_text(b"\x00\x01\x02 tiny", "pdf")


def test_unsupported_extension():
    with pytest.raises(ResumeExtractionError):
        extract_text(b"hello", "txt")


@pytest.fixture
def candidate(client):
    client.post("/api/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "secret123"})
    return client


def test_upload_requires_candidate_role(client):
    response = client.post("/api/resume/upload", files={"resume": ("cv.docx", make_docx(), DOCX_TYPE)})
    assert response.status_code == 401


def test_upload_rejects_other_formats(candidate):
    response = candidate.post("/api/resume/upload", files={"resume": ("cv.txt", b"plain text", "text/plain")})
    assert response.status_code == 400


def test_upload_rejects_large_files(candidate, monkeypatch):
    monkeypatch.setattr(config, "MAX_RESUME_BYTES", 10)
    response = candidate.post("/api/resume/upload", files={"resume": ("cv.docx", make_docx(), DOCX_TYPE)})
    assert response.status_code == 400


def test_upload_parses_in_background(candidate, monkeypatch):
    async def fake_parse(text):
        assert "Ada Lovelace" in text
        return {
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "phone": "+44 20 0000",
            "skills": ["Python", "SQL"],
            "experience": [{"role": "Engineer", "company": "Analytical Engines", "years": 10}],
            "projects": [],
            "education": [],
        }

    monkeypatch.setattr(ai, "parse_resume", fake_parse)

    response = candidate.post("/api/resume/upload", files={"resume": ("cv.docx", make_docx(), DOCX_TYPE)})

    assert response.status_code == 200
    assert response.json()["status"] == "processing"
    assert len(os.listdir(config.RESUME_DIR)) == 1

    status = candidate.get("/api/resume/status").json()
    assert status["resume_status"] == "processed"
    assert status["parsed_skills"] == ["Python", "SQL"]
    assert status["parsed_experience"][0]["company"] == "Analytical Engines"


def test_reupload_replaces_previous_file(candidate, monkeypatch):
    async def fake_parse(text):
        return {"name": "", "email": "", "phone": "", "skills": [], "experience": [], "projects": [], "education": []}

    monkeypatch.setattr(ai, "parse_resume", fake_parse)

    candidate.post("/api/resume/upload", files={"resume": ("cv.docx", make_docx(), DOCX_TYPE)})
    candidate.post("/api/resume/upload", files={"resume": ("cv2.docx", make_docx(), DOCX_TYPE)})

    assert len(os.listdir(config.RESUME_DIR)) == 1


def test_parse_failure_marks_resume_as_error(candidate):
    # No API key configured, so parsing fails after the upload is accepted
    response = candidate.post("/api/resume/upload", files={"resume": ("cv.docx", make_docx(), DOCX_TYPE)})

    assert response.status_code == 200
    assert candidate.get("/api/resume/status").json()["resume_status"] == "error"


def test_status_and_score_before_upload(candidate):
    assert candidate.get("/api/resume/status").json()["resume_status"] == "none"
    assert candidate.get("/api/resume/score/some-job").json() == {"score": None}


def test_recruiter_can_download_uploaded_resume(candidate, monkeypatch):
    async def fake_parse(text):
        return {"name": "", "email": "", "phone": "", "skills": [], "experience": [], "projects": [], "education": []}

    monkeypatch.setattr(ai, "parse_resume", fake_parse)
    candidate_id = candidate.post(
        "/api/resume/upload", files={"resume": ("cv.docx", make_docx(), DOCX_TYPE)}
    ).json()["candidate_id"]

    candidate.post("/api/auth/logout")
    candidate.post("/api/auth/register", json={"name": "Rita", "email": "rita@corp.io", "password": "secret123"})
    candidate.post("/api/auth/role", json={"role": "recruiter"})

    response = candidate.get(f"/api/recruiter/resume/{candidate_id}")

    assert response.status_code == 200
    assert response.headers["content-type"] == DOCX_TYPE
    assert "Ada_resume.docx" in response.headers["content-disposition"]


def test_deleting_account_removes_resume_file(candidate, monkeypatch):
    async def fake_parse(text):
        return {"name": "", "email": "", "phone": "", "skills": [], "experience": [], "projects": [], "education": []}

    monkeypatch.setattr(ai, "parse_resume", fake_parse)
    candidate.post("/api/resume/upload", files={"resume": ("cv.docx", make_docx(), DOCX_TYPE)})
    assert len(os.listdir(config.RESUME_DIR)) == 1

    assert candidate.delete("/api/auth/account").status_code == 200

    assert os.listdir(config.RESUME_DIR) == []
