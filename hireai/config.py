"""Configuration for the HireAI backend."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Server
SECRET_KEY = os.getenv("SECRET_KEY", "change-this-secret-key-in-production")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3002))
FRONTEND_URL = os.getenv("FRONTEND_URL", "")

# Storage
DB_PATH = os.getenv("DB_PATH", "hireai.db")
RESUME_DIR = os.getenv("RESUME_DIR", "resumes")
MAX_RESUME_BYTES = 5 * 1024 * 1024

# LLM
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_API_URL = os.getenv("GROQ_API_URL", "https://api.groq.com/openai/v1/chat/completions")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
LLM_TIMEOUT_SECONDS = 120

# Proctored session
ASSESSMENT_DURATION_SECONDS = 30 * 60
VIOLATION_DEBOUNCE_SECONDS = 2.0
MAX_SNAPSHOTS = 30
SNAPSHOT_WARMUP_SECONDS = 2.0
SNAPSHOT_INTERVAL_SECONDS = 30.0
SNAPSHOT_SIZE = (320, 240)
SNAPSHOT_QUALITY = 60

# Scoring weights
TEST_WEIGHTS = {"mcq": 0.40, "subjective": 0.30, "coding": 0.30}
COMPOSITE_WEIGHTS = {"skills": 0.30, "experience": 0.20, "projects": 0.15, "test": 0.35}

# Logging
LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging():
    """Setup logging configuration."""
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("hireai")
