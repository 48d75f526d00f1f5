import asyncio
import json
import sqlite3

import pytest

from hireai import ai
from hireai.db import get_db, new_id
from hireai.errors import LLMResponseError
from hireai.rescoring import (
    compute_final_weighted_score,
    score_candidate,
    score_candidate_background,
)


def seed(total_scores=(70,)):
    """Insert one job, one candidate and a result per given total score"""
    conn = get_db()
    job_id, candidate_id = new_id(), new_id()
    conn.execute(
        "INSERT INTO jobs (id, title, description, required_skills) VALUES (?, ?, ?, ?)",
        (job_id, "Backend Engineer", "Python services", json.dumps(["Python"]))
    )
    conn.execute(
        "INSERT INTO candidates (id, name, email, parsed_skills) VALUES (?, ?, ?, ?)",
        (candidate_id, "Ada", "ada@example.com", json.dumps(["Python", "SQL"]))
    )
    for total in total_scores:
        submission_id = new_id()
        conn.execute(
            "INSERT INTO submissions (id, candidate_id, job_id, answers) VALUES (?, ?, ?, ?)",
            (submission_id, candidate_id, job_id, "{}")
        )
        conn.execute(
            "INSERT INTO results (id, submission_id, candidate_id, job_id, total_score) VALUES (?, ?, ?, ?, ?)",
            (new_id(), submission_id, candidate_id, job_id, total)
        )
    conn.commit()
    conn.close()
    return candidate_id, job_id


def matcher_returning(skills, experience, projects):
    async def matcher(profile, job):
        return {"skills_score": skills, "experience_score": experience, "projects_score": projects}
    return matcher


async def summarizer(profile):
    return f"{profile['name']} knows {', '.join(profile['skills'])}."


def ai_score_rows():
    conn = get_db()
    rows = conn.execute("SELECT * FROM ai_scores").fetchall()
    conn.close()
    return rows


def test_final_weighted_score_formula():
    assert compute_final_weighted_score(80, 60, 50, 70) == 24 + 12 + 7.5 + 24.5
    assert compute_final_weighted_score(100, 100, 100, 100) == 100
    assert compute_final_weighted_score(0, 0, 0, 0) == 0


def test_final_weighted_score_clamps_components():
    assert compute_final_weighted_score(150, -20, "n/a", 100) == 30 + 0 + 0 + 35


def test_score_candidate_writes_composite(db_path):
    candidate_id, job_id = seed((70,))

    record = asyncio.run(score_candidate(
        candidate_id, job_id, matcher=matcher_returning(80, 60, 50), summarizer=summarizer
    ))

    assert record["test_score"] == 70
    assert record["final_weighted_score"] == 68.0
    assert record["ai_summary"] == "Ada knows Python, SQL."

    rows = ai_score_rows()
    assert len(rows) == 1
    assert rows[0]["final_weighted_score"] == 68.0
    assert rows[0]["skills_score"] == 80


def test_rescoring_overwrites_the_same_row(db_path):
    candidate_id, job_id = seed((70,))

    asyncio.run(score_candidate(candidate_id, job_id, matcher_returning(80, 60, 50), summarizer))
    asyncio.run(score_candidate(candidate_id, job_id, matcher_returning(100, 100, 100), summarizer))

    rows = ai_score_rows()
    assert len(rows) == 1
    assert rows[0]["final_weighted_score"] == 65 + 24.5


def test_uses_the_latest_test_score(db_path):
    candidate_id, job_id = seed((30, 90))

    record = asyncio.run(score_candidate(candidate_id, job_id, matcher_returning(0, 0, 0), summarizer))

    assert record["test_score"] == 90


def test_missing_test_score_counts_as_zero(db_path):
    candidate_id, job_id = seed(())

    record = asyncio.run(score_candidate(candidate_id, job_id, matcher_returning(100, 100, 100), summarizer))

    assert record["test_score"] == 0
    assert record["final_weighted_score"] == 65.0


def test_summary_failure_keeps_scores(db_path):
    candidate_id, job_id = seed((70,))

    async def broken(profile):
        raise RuntimeError("model overloaded")

    record = asyncio.run(score_candidate(candidate_id, job_id, matcher_returning(80, 60, 50), broken))

    assert record["ai_summary"] == ""
    assert ai_score_rows()[0]["final_weighted_score"] == 68.0


def test_unknown_candidate_raises(db_path):
    _, job_id = seed()
    with pytest.raises(LookupError):
        asyncio.run(score_candidate("nope", job_id, matcher_returning(0, 0, 0), summarizer))


def test_background_failure_is_swallowed_and_leaves_previous_score(db_path, monkeypatch):
    candidate_id, job_id = seed((70,))
    asyncio.run(score_candidate(candidate_id, job_id, matcher_returning(80, 60, 50), summarizer))

    async def failing_matcher(profile, job):
        raise LLMResponseError("bad json")

    monkeypatch.setattr(ai, "match_candidate", failing_matcher)

    asyncio.run(score_candidate_background(candidate_id, job_id))

    rows = ai_score_rows()
    assert len(rows) == 1
    assert rows[0]["final_weighted_score"] == 68.0


def test_background_without_api_key_does_not_raise(db_path):
    candidate_id, job_id = seed((70,))

    asyncio.run(score_candidate_background(candidate_id, job_id))

    assert ai_score_rows() == []


def test_background_uses_ai_collaborators(db_path, monkeypatch):
    candidate_id, job_id = seed((70,))
    monkeypatch.setattr(ai, "match_candidate", matcher_returning(80, 60, 50))
    monkeypatch.setattr(ai, "generate_summary", summarizer)

    asyncio.run(score_candidate_background(candidate_id, job_id))

    assert ai_score_rows()[0]["final_weighted_score"] == 68.0


class FailingUpsertConnection:
    """Wraps a real connection; the ai_scores INSERT fails and close() is recorded"""

    opened = []

    def __init__(self):
        self.conn = get_db()
        self.closed = False
        FailingUpsertConnection.opened.append(self)

    def cursor(self):
        return self.conn.cursor()

    def execute(self, sql, params=()):
        if "INSERT INTO ai_scores" in sql:
            raise sqlite3.OperationalError("database is locked")
        return self.conn.execute(sql, params)

    def commit(self):
        self.conn.commit()

    def close(self):
        self.closed = True
        self.conn.close()


def test_failed_upsert_still_closes_connection(db_path, monkeypatch):
    candidate_id, job_id = seed()
    FailingUpsertConnection.opened = []
    monkeypatch.setattr("hireai.rescoring.get_db", FailingUpsertConnection)

    with pytest.raises(sqlite3.OperationalError):
        asyncio.run(score_candidate(candidate_id, job_id, matcher_returning(80, 60, 50), summarizer))

    assert len(FailingUpsertConnection.opened) == 2
    assert all(conn.closed for conn in FailingUpsertConnection.opened)
    assert ai_score_rows() == []
