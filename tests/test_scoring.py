import pytest

from hireai.errors import ScoringPreconditionError
from hireai.scoring import round_half_up, score_submission, weighted_total

QUESTIONS = [
    {"id": "q1", "type": "mcq", "question": "2 + 2?", "correct_answer": "4", "skill": "Math"},
    {"id": "q2", "type": "mcq", "question": "3 + 3?", "correct_answer": "6", "skill": "Math"},
    {"id": "q3", "type": "subjective", "question": "Describe caching.", "skill": "Design"},
    {"id": "q4", "type": "coding", "question": "Sum a list.", "skill": "Python"},
]

ANSWERS = {"q1": "4", "q2": "7", "q3": "Caches keep hot data close.", "q4": "def f(xs): return sum(xs)"}


def fixed(value):
    return lambda question, answer: value


def test_mixed_submission_scores_each_category():
    summary = score_submission(
        QUESTIONS, ANSWERS, subjective_scorer=fixed(60), coding_scorer=fixed(80)
    )

    assert summary.mcq_score == 50
    assert summary.subjective_score == 60
    assert summary.coding_score == 80
    assert summary.total_score == 62
    assert summary.skill_scores == {"Math": 50, "Design": 60, "Python": 80}


def test_disqualified_keeps_category_scores_but_zeroes_total():
    summary = score_submission(
        QUESTIONS, ANSWERS, disqualified=True, subjective_scorer=fixed(60), coding_scorer=fixed(80)
    )

    assert summary.total_score == 0
    assert summary.mcq_score == 50
    assert summary.subjective_score == 60
    assert summary.coding_score == 80
    assert summary.disqualified is True


def test_empty_categories_score_zero():
    questions = [{"id": "q1", "type": "mcq", "correct_answer": "a", "skill": "S"}]

    summary = score_submission(questions, {"q1": "a"})

    assert summary.mcq_score == 100
    assert summary.subjective_score == 0
    assert summary.coding_score == 0
    assert summary.total_score == 40


def test_missing_and_malformed_answers_score_as_empty():
    seen = []

    def recorder(question, answer):
        seen.append(answer)
        return 0

    summary = score_submission(
        QUESTIONS, {"q1": 4, "q3": None}, subjective_scorer=recorder, coding_scorer=recorder
    )

    assert summary.mcq_score == 0
    assert seen == ["", ""]
    assert summary.total_score == 0


def test_answers_not_a_mapping_are_ignored():
    summary = score_submission(QUESTIONS, ["4", "6"], subjective_scorer=fixed(0), coding_scorer=fixed(0))
    assert summary.total_score == 0


def test_mcq_match_is_exact():
    questions = [{"id": "q1", "type": "mcq", "correct_answer": "Modular design", "skill": "S"}]

    assert score_submission(questions, {"q1": "modular design"}).mcq_score == 0
    assert score_submission(questions, {"q1": "Modular design "}).mcq_score == 0
    assert score_submission(questions, {"q1": "Modular design"}).mcq_score == 100


def test_scorer_output_is_clamped():
    summary = score_submission(QUESTIONS, ANSWERS, subjective_scorer=fixed(250), coding_scorer=fixed(-5))

    assert summary.subjective_score == 100
    assert summary.coding_score == 0


def test_unknown_type_only_counts_toward_skill_max():
    questions = [
        {"id": "q1", "type": "mcq", "correct_answer": "a", "skill": "S"},
        {"id": "q2", "type": "essay", "skill": "S"},
    ]

    summary = score_submission(questions, {"q1": "a", "q2": "anything"})

    assert summary.mcq_score == 100
    assert summary.skill_scores == {"S": 50}


def test_missing_skill_falls_back_to_general():
    questions = [{"id": "q1", "type": "mcq", "correct_answer": "a"}]
    assert score_submission(questions, {"q1": "a"}).skill_scores == {"General": 100}


def test_scoring_is_deterministic():
    first = score_submission(QUESTIONS, ANSWERS)
    second = score_submission(QUESTIONS, ANSWERS)
    assert first == second


def test_no_questions_is_a_precondition_failure():
    with pytest.raises(ScoringPreconditionError):
        score_submission([], {"q1": "a"})


def test_rounding_is_half_up():
    assert round_half_up(62.5) == 63
    assert round_half_up(0.5) == 1
    assert round_half_up(2.4999) == 2
    # mcq 1/3 correct -> 33.33..; 2/3 -> 66.67
    questions = [{"id": str(i), "type": "mcq", "correct_answer": "a"} for i in range(3)]
    assert score_submission(questions, {"0": "a", "1": "a"}).mcq_score == 67


def test_weighted_total():
    assert weighted_total(50, 60, 80) == 62
    assert weighted_total(100, 100, 100) == 100
    assert weighted_total(100, 100, 100, disqualified=True) == 0


def test_totals_stay_in_range():
    summary = score_submission(QUESTIONS, {"q1": "4", "q2": "6"}, subjective_scorer=fixed(100), coding_scorer=fixed(100))
    assert summary.total_score == 100
    for value in (summary.mcq_score, summary.subjective_score, summary.coding_score):
        assert 0 <= value <= 100
