"""
Proctored session state machine.

    IDLE --start--> ACTIVE --timeout / manual submit--> SUBMITTED
                      |
                      +--second violation--> DISQUALIFIED

A violation is a loss of page visibility or window focus. Signals arriving
within the debounce window of the last counted one are the same violation.
The first violation only raises a warning; the second ends the session with
a disqualified submission. SUBMITTED and DISQUALIFIED are terminal: answers,
snapshots and violations are frozen once either is reached.

Everything here is synchronous and takes time from an injected clock, so the
host (``hireai.monitor`` or a test) decides when ticks and events happen.
"""
import logging
import time
from collections import deque
from enum import Enum
from typing import Callable, Iterator, List, Optional

from hireai import config
from hireai.errors import CameraUnavailableError, SessionStateError
from hireai.schemas import SubmissionCreate

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "in_progress"
    SUBMITTED = "submitted"
    DISQUALIFIED = "disqualified"

    @property
    def terminal(self) -> bool:
        return self in (SessionStatus.SUBMITTED, SessionStatus.DISQUALIFIED)


class ViolationOutcome(str, Enum):
    IGNORED = "ignored"
    WARNING = "warning"
    DISQUALIFIED = "disqualified"


class Debouncer:
    """Accepts an event unless it falls within ``window`` seconds of the last accepted one"""

    def __init__(self, window: float = config.VIOLATION_DEBOUNCE_SECONDS):
        self.window = window
        self._last: Optional[float] = None

    def accept(self, now: float) -> bool:
        if self._last is not None and now - self._last < self.window:
            return False
        self._last = now
        return True


class EvidenceRing:
    """Most recent ``capacity`` snapshots, oldest evicted first"""

    def __init__(self, capacity: int = config.MAX_SNAPSHOTS):
        self.capacity = capacity
        self._items = deque(maxlen=capacity)

    def append(self, item: str) -> None:
        self._items.append(item)

    def latest(self, n: Optional[int] = None) -> List[str]:
        items = list(self._items)
        if n is None:
            return items
        return items[-n:] if n > 0 else []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)


class AssessmentSession:
    """One candidate's attempt at one job's assessment"""

    def __init__(
        self,
        job_id: str,
        candidate_name: str = "",
        candidate_email: str = "",
        duration: int = config.ASSESSMENT_DURATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        debounce_window: float = config.VIOLATION_DEBOUNCE_SECONDS,
        max_snapshots: int = config.MAX_SNAPSHOTS,
    ):
        self.job_id = job_id
        self.candidate_name = candidate_name
        self.candidate_email = candidate_email
        self.answers = {}
        self.time_remaining = duration
        self.violation_count = 0
        self.warning_shown = False
        self.snapshots = EvidenceRing(max_snapshots)
        self.status = SessionStatus.IDLE
        self.started_at: Optional[float] = None

        self.in_flight = False
        self.payload: Optional[SubmissionCreate] = None
        self.result: Optional[dict] = None
        self.last_error: Optional[str] = None

        self._clock = clock
        self._debouncer = Debouncer(debounce_window)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def active(self) -> bool:
        return self.status == SessionStatus.ACTIVE and not self.in_flight

    def start(self, camera_ready: bool) -> None:
        if self.status != SessionStatus.IDLE:
            raise SessionStateError(f"Cannot start a session that is {self.status.value}")
        if not self.candidate_name.strip() or not self.candidate_email.strip():
            raise SessionStateError("Enter your name and email")
        if not camera_ready:
            raise CameraUnavailableError("Camera access required for this proctored assessment.")
        self.status = SessionStatus.ACTIVE
        self.started_at = self._clock()
        logger.info("Assessment started for %s on job %s", self.candidate_email, self.job_id)

    def set_answer(self, question_id: str, text: str) -> None:
        if not self.active:
            raise SessionStateError("Answers can no longer be changed")
        self.answers[str(question_id)] = text

    def tick(self) -> Optional[SubmissionCreate]:
        """Advance the countdown one second; returns the payload when time runs out"""
        if not self.active:
            return None
        self.time_remaining = max(0, self.time_remaining - 1)
        if self.time_remaining == 0:
            logger.info("Time is up for %s, submitting", self.candidate_email)
            return self.begin_submit(disqualified=False)
        return None

    def record_violation(self, now: Optional[float] = None) -> ViolationOutcome:
        if not self.active:
            return ViolationOutcome.IGNORED
        now = self._clock() if now is None else now
        if not self._debouncer.accept(now):
            return ViolationOutcome.IGNORED

        self.violation_count += 1
        if self.violation_count == 1:
            self.warning_shown = True
            logger.warning("Focus lost by %s: first warning", self.candidate_email)
            return ViolationOutcome.WARNING

        logger.warning("Focus lost again by %s: disqualified", self.candidate_email)
        self.begin_submit(disqualified=True)
        return ViolationOutcome.DISQUALIFIED

    def add_snapshot(self, image_data: str) -> bool:
        if not self.active:
            return False
        self.snapshots.append(image_data)
        return True

    # ── Submission ───────────────────────────────────────────────────────────

    def elapsed_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return int(round(self._clock() - self.started_at))

    def begin_submit(self, disqualified: bool = False) -> Optional[SubmissionCreate]:
        """Enter the terminal state and build the one outbound payload.

        Returns None when a submission is already under way or the session
        has already ended, so concurrent triggers collapse into one.
        """
        if self.status != SessionStatus.ACTIVE or self.in_flight:
            return None

        self.status = SessionStatus.DISQUALIFIED if disqualified else SessionStatus.SUBMITTED
        self.in_flight = True
        self.payload = SubmissionCreate(
            candidate_name=self.candidate_name,
            candidate_email=self.candidate_email,
            job_id=self.job_id,
            answers=dict(self.answers),
            time_taken_seconds=self.elapsed_seconds(),
            disqualified=disqualified,
            snapshots=self.snapshots.latest(self.snapshots.capacity),
        )
        return self.payload

    def complete_submit(self, result: dict) -> None:
        self.in_flight = False
        self.result = result
        self.last_error = None

    def fail_submit(self, error: str) -> None:
        # The terminal state stays; only the transmission is reported as failed
        self.in_flight = False
        self.last_error = error
        logger.error("Submission for %s failed: %s", self.candidate_email, error)

    @property
    def can_retry(self) -> bool:
        return (
            self.status == SessionStatus.SUBMITTED
            and not self.in_flight
            and self.result is None
            and self.last_error is not None
        )

    def retry_submit(self) -> Optional[SubmissionCreate]:
        """Resend a failed manual/timeout submission. Disqualifications are not retried."""
        if not self.can_retry:
            return None
        self.in_flight = True
        self.last_error = None
        return self.payload
