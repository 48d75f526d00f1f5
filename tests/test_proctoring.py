import pytest

from hireai.errors import CameraUnavailableError, SessionStateError
from hireai.proctoring import (
    AssessmentSession,
    Debouncer,
    EvidenceRing,
    SessionStatus,
    ViolationOutcome,
)


def make_session(clock, **kwargs):
    kwargs.setdefault("duration", 1800)
    return AssessmentSession(
        "job-1", candidate_name="Ada", candidate_email="ada@example.com", clock=clock, **kwargs
    )


@pytest.fixture
def session(clock):
    s = make_session(clock)
    s.start(camera_ready=True)
    return s


# ── Start ────────────────────────────────────────────────────────────────────

def test_start_requires_camera(clock):
    s = make_session(clock)
    with pytest.raises(CameraUnavailableError):
        s.start(camera_ready=False)
    assert s.status == SessionStatus.IDLE


def test_start_requires_name_and_email(clock):
    s = AssessmentSession("job-1", candidate_name="", candidate_email="ada@example.com", clock=clock)
    with pytest.raises(SessionStateError):
        s.start(camera_ready=True)
    assert s.status == SessionStatus.IDLE


def test_cannot_start_twice(session):
    with pytest.raises(SessionStateError):
        session.start(camera_ready=True)


# ── Violations ───────────────────────────────────────────────────────────────

def test_first_violation_is_a_warning(session):
    assert session.record_violation() == ViolationOutcome.WARNING
    assert session.violation_count == 1
    assert session.warning_shown is True
    assert session.status == SessionStatus.ACTIVE


def test_second_violation_disqualifies(session, clock):
    session.set_answer("q1", "def")
    session.record_violation()
    clock.advance(5)

    assert session.record_violation() == ViolationOutcome.DISQUALIFIED
    assert session.status == SessionStatus.DISQUALIFIED
    assert session.payload.disqualified is True
    assert session.payload.answers == {"q1": "def"}
    assert session.in_flight is True


def test_violations_inside_debounce_window_count_once(session, clock):
    session.record_violation()
    clock.advance(0.5)

    assert session.record_violation() == ViolationOutcome.IGNORED
    assert session.violation_count == 1
    assert session.status == SessionStatus.ACTIVE


def test_debounce_measures_from_last_accepted_event(session, clock):
    session.record_violation()
    clock.advance(1.5)
    session.record_violation()  # ignored
    clock.advance(1.0)  # 2.5s after the accepted one

    assert session.record_violation() == ViolationOutcome.DISQUALIFIED


def test_violations_ignored_before_start(clock):
    s = make_session(clock)
    assert s.record_violation() == ViolationOutcome.IGNORED
    assert s.violation_count == 0


# ── Timer ────────────────────────────────────────────────────────────────────

def test_timeout_submits_given_answers(clock):
    s = make_session(clock, duration=3)
    s.start(camera_ready=True)
    for qid in ("q1", "q2", "q3"):
        s.set_answer(qid, "answer " + qid)

    assert s.tick() is None
    clock.advance(1)
    assert s.tick() is None
    clock.advance(1)
    payload = s.tick()

    assert payload is not None
    assert payload.disqualified is False
    assert payload.answers == {"q1": "answer q1", "q2": "answer q2", "q3": "answer q3"}
    assert payload.time_taken_seconds == 2
    assert s.status == SessionStatus.SUBMITTED
    assert s.time_remaining == 0


def test_ticks_after_terminal_state_do_nothing(session):
    session.begin_submit()
    remaining = session.time_remaining
    assert session.tick() is None
    assert session.time_remaining == remaining


# ── Evidence ─────────────────────────────────────────────────────────────────

def test_snapshots_keep_only_the_latest(clock):
    s = make_session(clock, max_snapshots=3)
    s.start(camera_ready=True)
    for i in range(5):
        s.add_snapshot(f"data:image/jpeg;base64,{i}")

    assert list(s.snapshots) == [
        "data:image/jpeg;base64,2",
        "data:image/jpeg;base64,3",
        "data:image/jpeg;base64,4",
    ]
    assert s.begin_submit().snapshots == list(s.snapshots)


def test_payload_carries_at_most_thirty_snapshots(session):
    for i in range(45):
        session.add_snapshot(f"data:image/jpeg;base64,{i}")

    payload = session.begin_submit()

    assert len(payload.snapshots) == 30
    assert payload.snapshots[0] == "data:image/jpeg;base64,15"
    assert payload.snapshots[-1] == "data:image/jpeg;base64,44"


def test_evidence_ring():
    ring = EvidenceRing(2)
    ring.append("a")
    ring.append("b")
    ring.append("c")

    assert len(ring) == 2
    assert ring.latest() == ["b", "c"]
    assert ring.latest(1) == ["c"]
    assert ring.latest(0) == []


def test_debouncer():
    d = Debouncer(2.0)
    assert d.accept(10.0) is True
    assert d.accept(11.9) is False
    assert d.accept(12.0) is True


# ── Terminal states ──────────────────────────────────────────────────────────

def test_terminal_state_freezes_everything(session):
    session.begin_submit()

    with pytest.raises(SessionStateError):
        session.set_answer("q1", "late")
    assert session.add_snapshot("data:image/jpeg;base64,x") is False
    assert session.record_violation() == ViolationOutcome.IGNORED
    assert session.violation_count == 0


def test_submit_is_not_reentrant(session):
    first = session.begin_submit()
    assert first is not None
    assert session.begin_submit() is None
    assert session.begin_submit(disqualified=True) is None
    assert session.status == SessionStatus.SUBMITTED


def test_disqualification_after_submit_started_is_ignored(session, clock):
    session.record_violation()
    session.begin_submit()
    clock.advance(5)

    assert session.record_violation() == ViolationOutcome.IGNORED
    assert session.status == SessionStatus.SUBMITTED


def test_failed_submit_keeps_terminal_state_and_can_be_retried(session):
    payload = session.begin_submit()
    session.fail_submit("connection refused")

    assert session.status == SessionStatus.SUBMITTED
    assert session.last_error == "connection refused"
    assert session.can_retry is True
    assert session.retry_submit() is payload
    assert session.in_flight is True
    assert session.can_retry is False


def test_failed_disqualification_is_not_retried(session, clock):
    session.record_violation()
    clock.advance(3)
    session.record_violation()
    session.fail_submit("timeout")

    assert session.status == SessionStatus.DISQUALIFIED
    assert session.can_retry is False
    assert session.retry_submit() is None


def test_completed_submit_cannot_be_resent(session):
    session.begin_submit()
    session.complete_submit({"result_id": "r1"})

    assert session.result == {"result_id": "r1"}
    assert session.in_flight is False
    assert session.retry_submit() is None
    assert session.begin_submit() is None
