"""
Asyncio host for a proctored session.

Drives an ``AssessmentSession`` the way the exam page does in the browser:
a one-second countdown, a webcam snapshot shortly after start and every 30
seconds afterwards, focus-loss reports from the host, and exactly one
transmission to ``POST /api/submissions`` when the session ends. The camera
is released and both loops are stopped on every way out.
"""
import asyncio
import base64
import io
import logging
from typing import Awaitable, Callable, List, Optional

import httpx
from PIL import Image

from hireai import config
from hireai.errors import CameraUnavailableError, HireAIError
from hireai.proctoring import AssessmentSession, ViolationOutcome
from hireai.schemas import SubmissionCreate

logger = logging.getLogger(__name__)

Submitter = Callable[[SubmissionCreate], Awaitable[dict]]


# ============================================================================
# CAMERA & EVIDENCE
# ============================================================================

class Camera:
    """Webcam source. Subclasses wrap a real device or a test double."""

    async def open(self) -> None:
        """Acquire the device; raise CameraUnavailableError when access is denied"""
        raise NotImplementedError

    async def grab_frame(self) -> Optional[Image.Image]:
        """Current still frame, or None while the feed is not ready"""
        raise NotImplementedError

    def release(self) -> None:
        raise NotImplementedError


def encode_snapshot(image: Image.Image, size=config.SNAPSHOT_SIZE, quality: int = config.SNAPSHOT_QUALITY) -> str:
    """Downscale a frame and encode it as a JPEG data URL"""
    frame = image.convert("RGB").resize(size)
    buffer = io.BytesIO()
    frame.save(buffer, format="JPEG", quality=quality)
    return "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


# ============================================================================
# TRANSPORT
# ============================================================================

class HttpSubmitter:
    """Posts the final payload to the submissions endpoint. Never retries on its own."""

    def __init__(self, base_url: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def __call__(self, payload: SubmissionCreate) -> dict:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            response = await client.post("/api/submissions", json=payload.model_dump())
            response.raise_for_status()
            try:
                return response.json()
            except ValueError as e:
                # A proxy or captive portal can answer 2xx with an HTML page
                raise httpx.DecodingError(
                    f"Unexpected response from {response.url}: {e}", request=response.request
                ) from e


# ============================================================================
# RUNNER
# ============================================================================

class ProctoredSessionRunner:
    def __init__(
        self,
        session: AssessmentSession,
        camera: Camera,
        submit: Submitter,
        tick_seconds: float = 1.0,
        warmup_seconds: float = config.SNAPSHOT_WARMUP_SECONDS,
        capture_interval: float = config.SNAPSHOT_INTERVAL_SECONDS,
    ):
        self.session = session
        self.camera = camera
        self.submit_payload = submit
        self.tick_seconds = tick_seconds
        self.warmup_seconds = warmup_seconds
        self.capture_interval = capture_interval

        self._tasks: List[asyncio.Task] = []
        self._transmission: Optional[asyncio.Task] = None
        self._camera_open = False
        self._ended = asyncio.Event()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def start(self) -> None:
        """Acquire the camera and begin the countdown and evidence capture"""
        try:
            await self.camera.open()
        except CameraUnavailableError:
            raise
        except OSError as e:
            raise CameraUnavailableError(f"Camera access required for this proctored assessment: {e}") from e
        self._camera_open = True

        try:
            self.session.start(camera_ready=True)
        except HireAIError:
            self._release_camera()
            raise

        self._tasks = [
            asyncio.create_task(self._run_timer()),
            asyncio.create_task(self._run_capture()),
        ]

    # ── Host events ──────────────────────────────────────────────────────────

    def set_answer(self, question_id: str, text: str) -> None:
        self.session.set_answer(question_id, text)

    def report_focus_lost(self) -> ViolationOutcome:
        """Page hidden or window blurred"""
        outcome = self.session.record_violation()
        if outcome == ViolationOutcome.DISQUALIFIED:
            self._finish(self.session.payload)
        return outcome

    def submit(self) -> Optional[asyncio.Task]:
        """Manual submit, or a resend after a failed transmission"""
        if self.session.can_retry:
            payload = self.session.retry_submit()
            self._transmission = asyncio.create_task(self._transmit(payload))
            return self._transmission
        return self._finish(self.session.begin_submit(disqualified=False))

    async def wait(self) -> AssessmentSession:
        """Block until the session has ended and its transmission has settled"""
        await self._ended.wait()
        while self._transmission is not None and not self._transmission.done():
            await self._transmission
        return self.session

    async def close(self) -> None:
        """Tear down without submitting (navigation away) or after the session ended"""
        self._stop_monitoring()
        pending = [t for t in self._tasks if t is not asyncio.current_task()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Loops ────────────────────────────────────────────────────────────────

    async def _run_timer(self) -> None:
        while self.session.active:
            await asyncio.sleep(self.tick_seconds)
            payload = self.session.tick()
            if payload is not None:
                self._finish(payload)

    async def _run_capture(self) -> None:
        await asyncio.sleep(self.warmup_seconds)
        while self.session.active:
            await self._capture()
            await asyncio.sleep(self.capture_interval)

    async def _capture(self) -> None:
        # Best effort: a frame that is not ready or fails to grab or encode is skipped
        try:
            frame = await self.camera.grab_frame()
            if frame is None:
                return
            snapshot = encode_snapshot(frame)
        except Exception as e:
            logger.debug("Snapshot skipped: %s", e)
            return
        self.session.add_snapshot(snapshot)

    # ── Termination ──────────────────────────────────────────────────────────

    def _finish(self, payload: Optional[SubmissionCreate]) -> Optional[asyncio.Task]:
        if payload is None:
            return None
        self._stop_monitoring()
        self._ended.set()
        self._transmission = asyncio.create_task(self._transmit(payload))
        return self._transmission

    async def _transmit(self, payload: SubmissionCreate) -> None:
        try:
            result = await self.submit_payload(payload)
        except (httpx.HTTPError, OSError, ValueError, HireAIError) as e:
            self.session.fail_submit(str(e) or e.__class__.__name__)
        else:
            self.session.complete_submit(result)
            logger.info("Submission for %s accepted", self.session.candidate_email)

    def _stop_monitoring(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._release_camera()

    def _release_camera(self) -> None:
        if self._camera_open:
            self.camera.release()
            self._camera_open = False
