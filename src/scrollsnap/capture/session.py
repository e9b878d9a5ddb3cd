from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from ..errors import SessionAlreadyRunning, SessionNotFound
from ..schemas import CaptureOptions, Region, StopReason

log = logging.getLogger("Session")


class SessionState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"


class CancellationToken:
    """Single stop signal shared by every stop producer of a session.

    The first reason recorded wins; later calls are ignored.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[StopReason] = None

    def cancel(self, reason: StopReason = StopReason.USER_STOP) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[StopReason]:
        with self._lock:
            return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns the cancelled state."""
        return self._event.wait(timeout)


@dataclass
class CaptureSession:
    """Per-run state. Counters are mutated only by the session worker."""

    region: Region
    options: CaptureOptions
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    cancel: CancellationToken = field(default_factory=CancellationToken)
    stitch_count: int = 0
    static_count: int = 0
    running: bool = False
    state: SessionState = SessionState.CAPTURING
    created_at: float = field(default_factory=time.time)

    @property
    def stop_requested(self) -> bool:
        return self.cancel.cancelled


class SessionManager:
    """Registry of capture sessions, keyed by id.

    At most one session is registered at a time; it stays registered from
    ``create`` until the worker finalizes and calls ``remove``.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, CaptureSession] = {}
        self._lock = threading.Lock()

    def create(self, region: Region, options: CaptureOptions) -> CaptureSession:
        with self._lock:
            if self._sessions:
                active_id = next(iter(self._sessions))
                raise SessionAlreadyRunning(active_id)
            session = CaptureSession(region=region, options=options, running=True)
            self._sessions[session.id] = session
        log.info(f"Created capture session {session.id}")
        return session

    def get(self, session_id: str) -> CaptureSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def active(self) -> Optional[CaptureSession]:
        with self._lock:
            return next(iter(self._sessions.values()), None)

    def request_stop(
        self, session_id: str, reason: StopReason = StopReason.USER_STOP
    ) -> bool:
        """Cancel a registered session. Raises :class:`SessionNotFound`."""
        return self.get(session_id).cancel.cancel(reason)

    def remove(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.running = False
            session.state = SessionState.IDLE
            log.info(f"Removed capture session {session_id}")

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
