"""
LLM collaborators: job-description parsing, question generation, resume
parsing, resume/job matching and candidate summaries.

All calls go to an OpenAI-compatible chat completions endpoint (Groq by
default) through ``call_llm``.
"""
import json
import logging
import re
from typing import Any, Dict, List

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from hireai import config
from hireai.errors import LLMResponseError, LLMUnavailableError

logger = logging.getLogger(__name__)

QUESTION_LIMITS = {"mcq": 10, "subjective": 5, "coding": 3}
DIFFICULTIES = ("Easy", "Medium", "Hard")


# ============================================================================
# TRANSPORT
# ============================================================================

def require_api_key() -> str:
    key = (config.GROQ_API_KEY or "").strip()
    if not key:
        raise LLMUnavailableError(
            "GROQ_API_KEY is not set. Add it to your .env file. Get a key at https://console.groq.com"
        )
    return key


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(1, 10),
    retry=retry_if_exception_type(httpx.HTTPError),
    reraise=True,
)
async def _post_chat(payload: dict, api_key: str) -> dict:
    async with httpx.AsyncClient(timeout=config.LLM_TIMEOUT_SECONDS) as client:
        response = await client.post(
            config.GROQ_API_URL,
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        response.raise_for_status()
        return response.json()


async def call_llm(system: str, prompt: str, temperature: float = 0.3, json_mode: bool = True) -> str:
    """Call the chat completions API with retry logic"""
    api_key = require_api_key()
    payload = {
        "model": config.GROQ_MODEL,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        "temperature": temperature,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    data = await _post_chat(payload, api_key)
    try:
        return (data["choices"][0]["message"]["content"] or "").strip()
    except (KeyError, IndexError, TypeError) as e:
        raise LLMResponseError(f"Unexpected completion payload: {e}") from e


# ============================================================================
# PARSING HELPERS
# ============================================================================

def strip_prompt_injection(text: str) -> str:
    """Strip common prompt injection patterns from user input"""
    if not text:
        return text
    patterns = [
        r'ignore\s+(previous|above|all)\s+instructions?',
        r'(system|assistant|user)\s*:\s*',
        r'<\s*(system|assistant|user)\s*>',
        r'\[\s*(INST|SYS|END)\s*\]',
        r'###\s*(instruction|system|prompt)',
        r'forget\s+(your|all|previous)',
    ]
    cleaned = text
    for pattern in patterns:
        cleaned = re.sub(pattern, '[REMOVED]', cleaned, flags=re.IGNORECASE)
    return cleaned[:10000]


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the JSON object out of a completion, tolerating markdown fences"""
    cleaned = re.sub(r"```(?:json)?", "", text or "", flags=re.IGNORECASE).strip()
    start = cleaned.find('{')
    end = cleaned.rfind('}') + 1
    if start >= 0 and end > start:
        cleaned = cleaned[start:end]
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise LLMResponseError(f"Completion is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise LLMResponseError("Completion JSON is not an object")
    return data


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def _clamp_score(value) -> float:
    try:
        return max(0.0, min(100.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


# ============================================================================
# JOB DESCRIPTIONS & QUESTIONS
# ============================================================================

async def parse_job_description(description: str) -> dict:
    """Extract title, skills, level and tools from a job description"""
    system = (
        "You are an expert recruiter. Extract structured information from job descriptions.\n"
        "Return ONLY valid JSON with this exact structure (no markdown, no code block):\n"
        '{"title":"Job Title","required_skills":["Skill1","Skill2"],'
        '"experience_level":"Junior|Mid-level|Senior","tools_technologies":["Tool1","Tool2"]}\n'
        "- title: Short job title (max 80 chars)\n"
        "- required_skills: 4-6 key skills/technologies\n"
        "- experience_level: Junior, Mid-level, or Senior\n"
        "- tools_technologies: 3-5 tools/technologies"
    )
    prompt = f"Extract from this job description:\n\n{strip_prompt_injection(description)}"

    parsed = extract_json(await call_llm(system, prompt, temperature=0.3))

    title = str(parsed.get("title") or "").strip()[:80]
    return {
        "title": title or "Software Engineering Position",
        "required_skills": _string_list(parsed.get("required_skills")) or ["Problem Solving", "Technical Skills"],
        "experience_level": str(parsed.get("experience_level") or "").strip() or "Mid-level",
        "tools_technologies": _string_list(parsed.get("tools_technologies")) or ["Git", "VS Code"],
    }


def _clamp_count(value, limit: int) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        count = 0
    return max(0, min(limit, count))


def _difficulty(value) -> str:
    text = str(value or "").strip().capitalize()
    return text if text in DIFFICULTIES else "Medium"


def _normalize_mcq(item: dict):
    options = _string_list(item.get("options"))
    if len(options) < 2 or not item.get("question"):
        return None
    correct = str(item.get("correct_answer") or "").strip()
    if correct not in options:
        # Some completions answer with the option letter
        letter = correct.upper().rstrip(".)")
        if len(letter) == 1 and "A" <= letter < chr(ord("A") + len(options)):
            correct = options[ord(letter) - ord("A")]
        else:
            return None
    return {
        "question": str(item["question"]),
        "options": options,
        "correct_answer": correct,
        "skill": str(item.get("skill") or "General"),
        "difficulty": _difficulty(item.get("difficulty")),
    }


def _normalize_open(item: dict):
    if not isinstance(item, dict) or not item.get("question"):
        return None
    return {
        "question": str(item["question"]),
        "skill": str(item.get("skill") or "General"),
        "difficulty": _difficulty(item.get("difficulty")),
    }


async def generate_questions(parsed: dict, mcq: int = 5, subjective: int = 2, coding: int = 1) -> dict:
    """Generate MCQ, subjective and coding questions for a parsed job"""
    skills = parsed.get("required_skills") or []
    level = parsed.get("experience_level") or "Mid-level"
    mcq_count = _clamp_count(mcq, QUESTION_LIMITS["mcq"])
    sub_count = _clamp_count(subjective, QUESTION_LIMITS["subjective"])
    code_count = _clamp_count(coding, QUESTION_LIMITS["coding"])

    system = f"""You are an expert technical assessor. Generate UNIQUE assessment questions for a {level} role.

Return ONLY valid JSON with this exact structure (no markdown, no code block):
{{
  "mcqs": [
    {{"question":"...","options":["A","B","C","D"],"correct_answer":"exact option text","skill":"SkillName","difficulty":"Easy|Medium|Hard"}}
  ],
  "subjective": [
    {{"question":"...","skill":"SkillName","difficulty":"Medium|Hard"}}
  ],
  "coding": [
    {{"question":"Full problem description with example and requirements","skill":"SkillName","difficulty":"Medium|Hard"}}
  ]
}}

Requirements:
- Generate exactly {mcq_count} MCQs, {sub_count} subjective, {code_count} coding question(s)
- MCQs: 4 options each, correct_answer must exactly match one option
- Subjective: open-ended questions requiring 2-3 paragraph answers
- Coding: one programming problem with clear example input/output
- Skills should come from: {", ".join(skills)}"""
    prompt = f"Generate assessment questions for a {level} position requiring: {', '.join(skills)}"

    result = extract_json(await call_llm(system, prompt, temperature=0.9))

    def collect(key, normalize, limit):
        items = result.get(key) if isinstance(result.get(key), list) else []
        normalized = [normalize(item) for item in items if isinstance(item, dict)]
        return [item for item in normalized if item][:limit]

    mcqs = collect("mcqs", _normalize_mcq, mcq_count)
    subs = collect("subjective", _normalize_open, sub_count)
    codes = collect("coding", _normalize_open, code_count)

    primary = skills[0] if skills else "General"
    while len(mcqs) < mcq_count:
        mcqs.append({
            "question": f"Which practice best improves maintainability in {primary} projects?",
            "options": ["Modular design", "Copy-pasted code", "Global state everywhere", "Skipping reviews"],
            "correct_answer": "Modular design",
            "skill": primary,
            "difficulty": "Medium",
        })
    while len(subs) < sub_count:
        subs.append({
            "question": "Describe your approach to problem-solving in technical projects.",
            "skill": "Problem Solving",
            "difficulty": "Medium",
        })
    while len(codes) < code_count:
        codes.append({
            "question": "Write a function that takes a list of numbers and returns the sum of all positive numbers.",
            "skill": primary,
            "difficulty": "Medium",
        })

    return {"mcqs": mcqs, "subjective": subs, "coding": codes}


def flatten_questions(generated: dict) -> List[dict]:
    """Lay generated questions out in assessment order: MCQ, subjective, coding"""
    questions = []
    for m in generated.get("mcqs", []):
        questions.append({"type": "mcq", **m})
    for s in generated.get("subjective", []):
        questions.append({"type": "subjective", "options": None, "correct_answer": None, **s})
    for c in generated.get("coding", []):
        questions.append({"type": "coding", "options": None, "correct_answer": None, **c})
    return questions


# ============================================================================
# RESUMES & MATCHING
# ============================================================================

async def parse_resume(resume_text: str) -> dict:
    """Extract contact details, skills, experience, projects and education"""
    system = """You are an expert resume parser. Extract structured information from the resume text.
Return ONLY valid JSON with this exact structure (no markdown, no code block):
{
  "name": "Full Name",
  "email": "email@example.com",
  "phone": "+1234567890",
  "skills": ["Skill1", "Skill2"],
  "experience": [{"role": "Job Title", "company": "Company Name", "years": 2, "description": "..."}],
  "projects": [{"name": "Project Name", "tech_stack": ["Tech1"], "description": "...", "impact": "..."}],
  "education": [{"degree": "Degree Name", "institution": "University Name", "year": "2024"}]
}
If a field is not found, use an empty string or empty array."""
    prompt = f"Parse this resume:\n\n{strip_prompt_injection(resume_text or '')[:8000]}"

    parsed = extract_json(await call_llm(system, prompt, temperature=0.2))

    def records(key):
        value = parsed.get(key)
        return [v for v in value if isinstance(v, dict)] if isinstance(value, list) else []

    return {
        "name": str(parsed.get("name") or ""),
        "email": str(parsed.get("email") or ""),
        "phone": str(parsed.get("phone") or ""),
        "skills": _string_list(parsed.get("skills")),
        "experience": records("experience"),
        "projects": records("projects"),
        "education": records("education"),
    }


async def match_candidate(profile: dict, job: dict) -> dict:
    """Score a parsed candidate profile against a job's requirements.

    Returns ``skills_score``, ``experience_score`` and ``projects_score`` in
    [0, 100] plus the model's ``reasoning``.
    """
    system = """You are an expert technical recruiter evaluating a candidate against a job posting.
Score each category 0-100. Return ONLY valid JSON (no markdown):
{"skills_score": <0-100>, "experience_score": <0-100>, "projects_score": <0-100>, "reasoning": "Brief explanation"}
- skills_score: match between candidate skills and the required skills and tools
- experience_score: years of relevant experience, role relevance, progression
- projects_score: complexity, tech stack alignment, real-world impact
Be fair but rigorous. A score of 90+ should be rare."""
    prompt = (
        f"Job: {job.get('title', '')}\n"
        f"Required Skills: {', '.join(job.get('required_skills', []))}\n"
        f"Tools: {', '.join(job.get('tools_technologies', []))}\n"
        f"Level: {job.get('experience_level', '')}\n\n"
        f"Candidate Skills: {', '.join(profile.get('skills', []))}\n"
        f"Experience: {json.dumps(profile.get('experience', []))}\n"
        f"Projects: {json.dumps(profile.get('projects', []))}"
    )

    scores = extract_json(await call_llm(system, prompt, temperature=0.3))
    return {
        "skills_score": _clamp_score(scores.get("skills_score")),
        "experience_score": _clamp_score(scores.get("experience_score")),
        "projects_score": _clamp_score(scores.get("projects_score")),
        "reasoning": str(scores.get("reasoning") or ""),
    }


async def generate_summary(profile: dict) -> str:
    """One or two sentence recruiter-facing summary of a candidate"""
    system = (
        "Write a 1-2 sentence professional summary of this candidate for a recruiter dashboard. "
        "Be concise and factual. Return ONLY the summary text, no JSON, no quotes."
    )
    prompt = (
        f"Name: {profile.get('name', '')}\n"
        f"Skills: {', '.join(profile.get('skills', []))}\n"
        f"Experience: {json.dumps(profile.get('experience', []))}\n"
        f"Projects: {json.dumps(profile.get('projects', []))}\n"
        f"Education: {json.dumps(profile.get('education', []))}"
    )
    summary = await call_llm(system, prompt, temperature=0.4, json_mode=False)
    return summary or "No summary available."
