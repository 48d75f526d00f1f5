"""
Submission scoring.

Turns a job's ordered question list and a candidate's answer map into
per-category percentages, per-skill percentages and a weighted total:

    total = round(mcq * 0.40 + subjective * 0.30 + coding * 0.30)

A disqualified submission keeps its category and skill scores for review but
its total is always 0. Missing or malformed answers score as empty; scoring
never fails because of answer content.
"""
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from hireai import config
from hireai.db import new_id
from hireai.errors import ScoringPreconditionError
from hireai.heuristics import score_coding_answer, score_subjective_answer

logger = logging.getLogger(__name__)

AnswerScorer = Callable[[str, str], int]

SKILL_UNIT = 100


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(score) -> int:
    try:
        value = int(score)
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, value))


def _answer_text(answers: Mapping[str, Any], question_id) -> str:
    value = answers.get(str(question_id), "") if answers else ""
    return value if isinstance(value, str) else ""


@dataclass
class ScoreSummary:
    mcq_score: int = 0
    subjective_score: int = 0
    coding_score: int = 0
    skill_scores: Dict[str, int] = field(default_factory=dict)
    total_score: int = 0
    disqualified: bool = False

    def as_dict(self) -> dict:
        return {
            "total_score": self.total_score,
            "mcq_score": self.mcq_score,
            "subjective_score": self.subjective_score,
            "coding_score": self.coding_score,
            "skill_scores": dict(self.skill_scores),
        }


def weighted_total(mcq: int, subjective: int, coding: int, disqualified: bool = False) -> int:
    if disqualified:
        return 0
    weights = config.TEST_WEIGHTS
    return round_half_up(
        mcq * weights["mcq"] + subjective * weights["subjective"] + coding * weights["coding"]
    )


def score_submission(
    questions: List[Mapping[str, Any]],
    answers: Optional[Mapping[str, Any]],
    disqualified: bool = False,
    subjective_scorer: Optional[AnswerScorer] = None,
    coding_scorer: Optional[AnswerScorer] = None,
) -> ScoreSummary:
    """Score one submission against the job's questions.

    ``questions`` are mappings with ``id``, ``type``, ``question``, ``skill``
    and, for MCQs, ``correct_answer``. ``answers`` maps question id to the
    candidate's answer text.
    """
    if not questions:
        raise ScoringPreconditionError("Job has no questions to score against")

    subjective_scorer = subjective_scorer or score_subjective_answer
    coding_scorer = coding_scorer or score_coding_answer
    if not isinstance(answers, Mapping):
        answers = {}

    mcq_correct = mcq_total = 0
    subjective_sum = subjective_total = 0
    coding_sum = coding_total = 0
    skills: Dict[str, List[int]] = {}

    for q in questions:
        answer = _answer_text(answers, q.get("id"))
        skill = q.get("skill") or "General"
        points = skills.setdefault(skill, [0, 0])
        points[1] += SKILL_UNIT

        q_type = q.get("type")
        if q_type == "mcq":
            mcq_total += 1
            correct = q.get("correct_answer")
            if correct is not None and answer == correct:
                mcq_correct += 1
                points[0] += SKILL_UNIT
        elif q_type == "subjective":
            subjective_total += 1
            score = _clamp(subjective_scorer(q.get("question") or "", answer))
            subjective_sum += score
            points[0] += score
        elif q_type == "coding":
            coding_total += 1
            score = _clamp(coding_scorer(q.get("question") or "", answer))
            coding_sum += score
            points[0] += score
        else:
            logger.warning("Unknown question type %r on question %s", q_type, q.get("id"))

    mcq_pct = round_half_up(mcq_correct / mcq_total * 100) if mcq_total else 0
    subjective_pct = round_half_up(subjective_sum / subjective_total) if subjective_total else 0
    coding_pct = round_half_up(coding_sum / coding_total) if coding_total else 0

    return ScoreSummary(
        mcq_score=mcq_pct,
        subjective_score=subjective_pct,
        coding_score=coding_pct,
        skill_scores={
            skill: round_half_up(correct / total * 100)
            for skill, (correct, total) in skills.items()
            if total > 0
        },
        total_score=weighted_total(mcq_pct, subjective_pct, coding_pct, disqualified),
        disqualified=bool(disqualified),
    )


def save_result(conn, submission_id: str, candidate_id: str, job_id: str, summary: ScoreSummary) -> str:
    """Insert the one result row for a submission. Caller commits."""
    result_id = new_id()
    conn.execute("""
        INSERT INTO results
        (id, submission_id, candidate_id, job_id, total_score, mcq_score,
         subjective_score, coding_score, skill_scores, disqualified)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        result_id,
        submission_id,
        candidate_id,
        job_id,
        summary.total_score,
        summary.mcq_score,
        summary.subjective_score,
        summary.coding_score,
        json.dumps(summary.skill_scores),
        int(summary.disqualified),
    ))
    return result_id
