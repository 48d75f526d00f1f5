import pytest
from fastapi.testclient import TestClient

from hireai import config
from hireai.db import init_db


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "test.db")
    monkeypatch.setattr(config, "DB_PATH", path)
    monkeypatch.setattr(config, "RESUME_DIR", str(tmp_path / "resumes"))
    monkeypatch.setattr(config, "GROQ_API_KEY", "")
    init_db()
    return path


@pytest.fixture
def client(db_path):
    from hireai.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def recruiter(client):
    client.post("/api/auth/register", json={"name": "Rita", "email": "rita@corp.io", "password": "secret123"})
    client.post("/api/auth/role", json={"role": "recruiter"})
    return client


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock(1000.0)


SAMPLE_QUESTIONS = [
    {
        "type": "mcq",
        "question": "Which keyword defines a function in Python?",
        "options": ["func", "def", "lambda", "fn"],
        "correct_answer": "def",
        "skill": "Python",
        "difficulty": "Easy",
    },
    {
        "type": "mcq",
        "question": "Which HTTP method is idempotent?",
        "options": ["POST", "PUT", "PATCH", "CONNECT"],
        "correct_answer": "PUT",
        "skill": "HTTP",
        "difficulty": "Medium",
    },
    {
        "type": "subjective",
        "question": "Explain how you would design a caching layer.",
        "skill": "System Design",
        "difficulty": "Medium",
    },
    {
        "type": "coding",
        "question": "Write a function that sums the positive numbers in a list.",
        "skill": "Python",
        "difficulty": "Medium",
    },
]


@pytest.fixture
def job(client):
    """A saved job with two MCQs, one subjective and one coding question"""
    response = client.post("/api/jobs", json={
        "description": "Backend engineer working on Python web services.",
        "job": {
            "title": "Backend Engineer",
            "required_skills": ["Python", "HTTP"],
            "experience_level": "Mid-level",
            "tools_technologies": ["FastAPI"],
        },
        "questions": SAMPLE_QUESTIONS,
    })
    assert response.status_code == 201
    return response.json()
