"""
Deterministic rubric scorers for free-text answers.

Both scorers take the question text and the candidate's answer and return an
integer in [0, 100]. They are the default collaborators of the submission
scorer; any callable with the same signature can replace them.
"""
import re

CODE_CONSTRUCTS = ["map", "filter", "reduce", "forEach", "Object", "Array", "Set", "Map", "sort"]
EXAMPLE_MARKERS = ["example", "e.g.", "for instance"]


def score_subjective_answer(question: str, answer: str) -> int:
    """Score a written answer on length, relevance to the question and structure"""
    if not answer or not answer.strip():
        return 0

    word_count = len(answer.split())
    score = 0

    # Length (max 40)
    if word_count >= 100:
        score += 40
    elif word_count >= 50:
        score += 30
    elif word_count >= 20:
        score += 20
    else:
        score += 10

    # Keyword relevance (max 35)
    keywords = [w for w in (question or "").lower().split() if len(w) > 4]
    answer_lower = answer.lower()
    matches = sum(1 for kw in keywords if kw in answer_lower)
    relevance = matches / len(keywords) if keywords else 0
    score += int(relevance * 35 + 0.5)

    # Structure (max 25)
    if "\n" in answer or ". " in answer:
        score += 10
    if any(marker in answer for marker in EXAMPLE_MARKERS):
        score += 10
    if word_count >= 30 and relevance > 0.2:
        score += 5

    return min(score, 100)


def score_coding_answer(question: str, answer: str) -> int:
    """Score submitted code on shape: definitions, size, control flow, idioms"""
    if not answer or not answer.strip():
        return 0

    code = answer.strip()
    score = 0

    if any(token in code for token in ("function", "=>", "def ", "const ")):
        score += 20

    lines = [line for line in code.split("\n") if line.strip()]
    if len(lines) >= 10:
        score += 30
    elif len(lines) >= 5:
        score += 20
    elif len(lines) >= 2:
        score += 10

    if re.search(r"if|for|while|switch", code):
        score += 15

    if "return" in code:
        score += 10

    used = [c for c in CODE_CONSTRUCTS if c in code]
    score += min(len(used) * 5, 15)

    if any(token in code for token in ("try", "catch", "throw", "Error")):
        score += 10

    return min(score, 100)
