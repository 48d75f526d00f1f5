"""
Database access: sqlite connection, schema and small row helpers
"""
import json
import logging
import sqlite3
import uuid

from hireai import config

logger = logging.getLogger(__name__)


def get_db():
    """Get database connection"""
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def new_id() -> str:
    return str(uuid.uuid4())


def loads(value, default):
    """Decode a JSON column, falling back to ``default`` on empty or bad data"""
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return default


def init_db():
    """Initialize database tables"""
    conn = get_db()
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'candidate',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            required_skills TEXT DEFAULT '[]',
            experience_level TEXT DEFAULT 'Mid-level',
            tools_technologies TEXT DEFAULT '[]',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS questions (
            id TEXT PRIMARY KEY,
            job_id TEXT NOT NULL,
            type TEXT NOT NULL,
            question TEXT NOT NULL,
            options TEXT,
            correct_answer TEXT,
            skill TEXT NOT NULL DEFAULT 'General',
            difficulty TEXT NOT NULL DEFAULT 'Medium',
            order_index INTEGER NOT NULL,
            FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_questions_job ON questions(job_id)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS candidates (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT UNIQUE NOT NULL,
            phone TEXT DEFAULT '',
            user_id TEXT,
            resume_file_path TEXT,
            resume_status TEXT DEFAULT 'none',
            raw_resume_text TEXT,
            parsed_skills TEXT,
            parsed_experience TEXT,
            parsed_projects TEXT,
            parsed_education TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS submissions (
            id TEXT PRIMARY KEY,
            candidate_id TEXT NOT NULL,
            job_id TEXT NOT NULL,
            user_id TEXT,
            answers TEXT NOT NULL,
            time_taken_seconds INTEGER DEFAULT 0,
            disqualified INTEGER DEFAULT 0,
            submitted_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (candidate_id) REFERENCES candidates(id),
            FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_submissions_job ON submissions(job_id)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS proctor_snapshots (
            id TEXT PRIMARY KEY,
            submission_id TEXT NOT NULL,
            image_data TEXT NOT NULL,
            captured_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (submission_id) REFERENCES submissions(id) ON DELETE CASCADE
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS results (
            id TEXT PRIMARY KEY,
            submission_id TEXT UNIQUE NOT NULL,
            candidate_id TEXT NOT NULL,
            job_id TEXT NOT NULL,
            total_score INTEGER NOT NULL DEFAULT 0,
            mcq_score INTEGER NOT NULL DEFAULT 0,
            subjective_score INTEGER NOT NULL DEFAULT 0,
            coding_score INTEGER NOT NULL DEFAULT 0,
            skill_scores TEXT DEFAULT '{}',
            disqualified INTEGER DEFAULT 0,
            evaluated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (submission_id) REFERENCES submissions(id) ON DELETE CASCADE
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_results_job ON results(job_id)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS ai_scores (
            id TEXT PRIMARY KEY,
            candidate_id TEXT NOT NULL,
            job_id TEXT NOT NULL,
            skills_score REAL DEFAULT 0,
            experience_score REAL DEFAULT 0,
            projects_score REAL DEFAULT 0,
            test_score REAL DEFAULT 0,
            final_weighted_score REAL DEFAULT 0,
            ai_summary TEXT DEFAULT '',
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(candidate_id, job_id)
        )
    """)

    conn.commit()

    # ── Schema migrations ────────────────────────────────────────────────────
    # SQLite has no ADD COLUMN IF NOT EXISTS, so check table_info first.
    def existing_columns(table):
        cursor.execute(f"PRAGMA table_info({table})")
        return {row["name"] for row in cursor.fetchall()}

    migrations = {
        "candidates": [
            ("phone",            "TEXT DEFAULT ''"),
            ("user_id",          "TEXT"),
            ("resume_file_path", "TEXT"),
            ("resume_status",    "TEXT DEFAULT 'none'"),
            ("raw_resume_text",  "TEXT"),
        ],
        "submissions": [
            ("user_id",          "TEXT"),
            ("disqualified",     "INTEGER DEFAULT 0"),
        ],
        "results": [
            ("disqualified",     "INTEGER DEFAULT 0"),
        ],
    }
    for table, columns in migrations.items():
        present = existing_columns(table)
        for col, col_def in columns:
            if col not in present:
                cursor.execute(f"ALTER TABLE {table} ADD COLUMN {col} {col_def}")
                logger.info("Migration: added %s.%s", table, col)

    conn.commit()
    conn.close()
    logger.info("Database initialized at %s", config.DB_PATH)
