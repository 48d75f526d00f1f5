"""
Request and response bodies shared by the API and the session monitor
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SubmissionCreate(BaseModel):
    """The single outbound call a proctored session makes when it ends"""
    candidate_name: str
    candidate_email: str
    job_id: str
    answers: Dict[str, Any]
    time_taken_seconds: int = 0
    disqualified: bool = False
    snapshots: List[Any] = Field(default_factory=list)


class SubmissionResult(BaseModel):
    result_id: str
    submission_id: str
    total_score: int
    mcq_score: int
    subjective_score: int
    coding_score: int
    skill_scores: Dict[str, int]


class QuestionDraft(BaseModel):
    type: str = "mcq"
    question: str = ""
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    skill: str = "General"
    difficulty: str = "Medium"


class JobDraft(BaseModel):
    title: str = "Assessment"
    required_skills: List[str] = Field(default_factory=list)
    experience_level: str = "Mid-level"
    tools_technologies: List[str] = Field(default_factory=list)


class JobGenerateRequest(BaseModel):
    description: str
    mcq_count: int = 5
    subjective_count: int = 2
    coding_count: int = 1


class JobCreateRequest(BaseModel):
    description: Optional[str] = None
    job: Optional[JobDraft] = None
    questions: Optional[List[QuestionDraft]] = None
    mcq_count: int = 5
    subjective_count: int = 2
    coding_count: int = 1


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class RoleRequest(BaseModel):
    role: str
