"""Capture loop driving one scroll-capture session at a time.

Each session runs on its own background thread hosting an asyncio loop.
Blocking work (frame grabs, the poll wait, PNG encoding) goes through a
single-thread executor, so frames are processed strictly in capture order
and the composite is only ever touched by that worker.

States per session::

    IDLE -> CAPTURING -> FINALIZING -> IDLE

The loop ends on a user stop (explicit ``stop`` or the hotkey), when
``max_stitches`` appends were made, after ``static_timeout_ticks`` ticks
without new content, or on the first capture failure.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Dict, List, Optional, Union

from ..encoding import encode_png
from ..errors import CaptureFailure
from ..schemas import (
    CaptureComplete,
    CaptureError,
    CaptureOptions,
    ErrorKind,
    Region,
    StopReason,
)
from ..stitch import CompositeImage, Frame, ImageCompositor, OverlapDetector, OverlapKind
from .protocols import ScreenCapture, WindowVisibility
from .session import CaptureSession, SessionManager, SessionState

CaptureEvent = Union[CaptureComplete, CaptureError]
Listener = Callable[[CaptureEvent], None]

log = logging.getLogger("Scheduler")


class CaptureScheduler:
    """Start, stop and run scroll-capture sessions.

    Parameters
    ----------
    capture : ScreenCapture
        Source of frames for the selected region.
    manager : SessionManager, optional
        Registry shared with other entry points (hotkey, CLI). A private
        one is created when omitted.
    detector, compositor : optional
        Stitching components; defaults use the standard tunables.
    encoder : callable, optional
        Turns the finished composite into bytes. Defaults to PNG.
    window : WindowVisibility, optional
        Overlay window made click-through while a session captures.
    """

    _WINDOW_SETTLE_SEC: float = 0.2

    def __init__(
        self,
        capture: ScreenCapture,
        manager: Optional[SessionManager] = None,
        detector: Optional[OverlapDetector] = None,
        compositor: Optional[ImageCompositor] = None,
        encoder: Callable[[CompositeImage], bytes] = encode_png,
        window: Optional[WindowVisibility] = None,
    ) -> None:
        self._capture = capture
        self._manager = manager if manager is not None else SessionManager()
        self._detector = detector or OverlapDetector()
        self._compositor = compositor or ImageCompositor()
        self._encoder = encoder
        self._window = window

        self._listeners: List[Listener] = []
        self._listener_lock = threading.Lock()
        self._workers: Dict[str, threading.Thread] = {}
        self._workers_lock = threading.Lock()

    @property
    def manager(self) -> SessionManager:
        return self._manager

    @property
    def state(self) -> SessionState:
        session = self._manager.active()
        return session.state if session is not None else SessionState.IDLE

    # ─────────────────────────────── listeners
    def add_listener(self, callback: Listener) -> None:
        """Register a callback for completion and error events.

        Callbacks run on the session worker thread.
        """
        with self._listener_lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        with self._listener_lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _emit(self, event: CaptureEvent) -> None:
        with self._listener_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event)
            except Exception:
                log.exception(f"Capture listener {callback!r} failed")

    # ─────────────────────────────── public entry points
    def start(self, region: Region, options: Optional[CaptureOptions] = None) -> str:
        """Register a session and launch its worker. Returns the session id.

        Raises
        ------
        SessionAlreadyRunning
            If another session is still registered.
        ValueError
            If the region is empty.
        """
        if region.is_empty:
            raise ValueError(f"Cannot capture an empty region: {region}")
        session = self._manager.create(region, options or CaptureOptions())

        worker = threading.Thread(
            target=self._run_session,
            args=(session,),
            daemon=True,
            name=f"CaptureWorker-{session.id[:8]}",
        )
        with self._workers_lock:
            self._workers[session.id] = worker
        worker.start()
        log.info(
            f"Session {session.id} started on "
            f"({region.x}, {region.y}) {region.width}x{region.height}"
        )
        return session.id

    def stop(self, session_id: str) -> None:
        """Ask a session to finish. Raises :class:`SessionNotFound`."""
        if self._manager.request_stop(session_id, StopReason.USER_STOP):
            log.info(f"Stop requested for session {session_id}")

    def stop_active(self) -> Optional[str]:
        """Stop whichever session is registered; used by the stop hotkey."""
        session = self._manager.active()
        if session is None:
            return None
        if session.cancel.cancel(StopReason.USER_STOP):
            log.info(f"Stop requested for active session {session.id}")
        return session.id

    def join(self, session_id: str, timeout: Optional[float] = None) -> bool:
        """Wait for a session worker to exit. Returns *True* once it has."""
        with self._workers_lock:
            worker = self._workers.get(session_id)
        if worker is None:
            return True
        worker.join(timeout)
        if worker.is_alive():
            return False
        with self._workers_lock:
            self._workers.pop(session_id, None)
        return True

    def shutdown(self, timeout: Optional[float] = None) -> None:
        self.stop_active()
        with self._workers_lock:
            ids = list(self._workers)
        for session_id in ids:
            self.join(session_id, timeout)

    # ─────────────────────────────── worker
    def _run_session(self, session: CaptureSession) -> None:
        try:
            asyncio.run(self._worker(session))
        finally:
            with self._workers_lock:
                self._workers.pop(session.id, None)

    def _grab(self, region: Region) -> Frame:
        try:
            return self._capture.capture_region(region)
        except CaptureFailure:
            raise
        except Exception as exc:
            raise CaptureFailure(f"Failed to capture region: {exc}") from exc

    async def _worker(self, session: CaptureSession) -> None:
        loop = asyncio.get_running_loop()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture-io")

        async def run_in_thread(func, *args):
            return await loop.run_in_executor(pool, partial(func, *args))

        region = session.region.inset(session.options.border_inset)
        composite: Optional[CompositeImage] = None
        failure: Optional[Exception] = None
        reason = StopReason.USER_STOP

        await self._engage_window()
        try:
            first = await run_in_thread(self._grab, region)
            composite = CompositeImage.from_frame(first)
            log.info(
                f"Session {session.id}: first frame {first.width}x{first.height}, "
                f"scroll the content now"
            )
            reason = await self._capture_loop(session, region, composite, run_in_thread)
        except CaptureFailure as exc:
            log.error(f"Session {session.id}: capture failed: {exc}")
            failure, reason = exc, StopReason.CAPTURE_FAILURE
        except Exception as exc:
            log.exception(f"Session {session.id}: capture loop aborted")
            failure = CaptureFailure(f"Capture loop aborted: {exc}")
            reason = StopReason.CAPTURE_FAILURE

        try:
            self._release_window()
            await self._finalize(session, composite, reason, failure, run_in_thread)
        finally:
            await self._release_capture(session, run_in_thread)
            pool.shutdown(wait=True)

    async def _release_capture(self, session: CaptureSession, run_in_thread) -> None:
        # per-thread resources live on the pool thread that did the grabs
        release = getattr(self._capture, "release", None)
        if release is None:
            return
        try:
            await run_in_thread(release)
        except Exception as exc:
            log.warning(f"Session {session.id}: could not release capture: {exc}")

    async def _capture_loop(
        self,
        session: CaptureSession,
        region: Region,
        composite: CompositeImage,
        run_in_thread,
    ) -> StopReason:
        interval = session.options.poll_interval
        while True:
            # wait one poll interval, waking early on a stop request
            if await run_in_thread(session.cancel.wait, interval):
                log.info(f"Session {session.id}: stop signal received")
                return session.cancel.reason or StopReason.USER_STOP

            frame = await run_in_thread(self._grab, region)
            outcome = self._tick(session, composite, frame)
            if outcome is not None:
                return outcome

    def _tick(
        self, session: CaptureSession, composite: CompositeImage, frame: Frame
    ) -> Optional[StopReason]:
        """Absorb one frame. Returns a stop reason when the session should end."""
        result = self._detector.detect(composite.tail(frame.height), frame)
        appended = 0
        if result.kind is OverlapKind.MATCHED:
            appended = self._compositor.append(composite, frame, result)

        if appended == 0:
            session.static_count += 1
            log.debug(
                f"Session {session.id}: {result.kind.value}, "
                f"static ticks={session.static_count}"
            )
            limit = session.options.static_timeout_ticks
            if limit is not None and session.static_count > limit:
                log.info(
                    f"Session {session.id}: no new content for "
                    f"{session.static_count} ticks"
                )
                return StopReason.IDLE_TIMEOUT
            return None

        session.static_count = 0
        session.stitch_count += 1
        log.debug(
            f"Session {session.id}: stitched {appended} rows "
            f"(overlap {result.offset}), height={composite.height}"
        )
        if session.stitch_count >= session.options.max_stitches:
            log.info(f"Session {session.id}: reached max stitches limit")
            return StopReason.LIMIT_REACHED
        return None

    async def _finalize(
        self,
        session: CaptureSession,
        composite: Optional[CompositeImage],
        reason: StopReason,
        failure: Optional[Exception],
        run_in_thread,
    ) -> None:
        session.running = False
        session.state = SessionState.FINALIZING
        event: CaptureEvent
        try:
            if composite is None:
                event = CaptureError(
                    session_id=session.id,
                    message=str(failure) or "No frame was captured",
                    kind=ErrorKind.CAPTURE_FAILURE,
                )
            else:
                event = await self._encode_result(
                    session, composite, reason, failure, run_in_thread
                )
        finally:
            self._manager.remove(session.id)
        self._emit(event)

    async def _encode_result(
        self,
        session: CaptureSession,
        composite: CompositeImage,
        reason: StopReason,
        failure: Optional[Exception],
        run_in_thread,
    ) -> CaptureEvent:
        try:
            data = await run_in_thread(self._encoder, composite)
        except Exception as exc:
            log.error(f"Session {session.id}: encoding failed: {exc}")
            return CaptureError(
                session_id=session.id,
                message=str(exc),
                kind=ErrorKind.ENCODING_FAILURE,
            )

        if failure is not None:
            return CaptureError(
                session_id=session.id,
                message=str(failure),
                kind=ErrorKind.CAPTURE_FAILURE,
                image_bytes=data,
                width=composite.width,
                height=composite.height,
            )

        log.info(
            f"Session {session.id} finished ({reason.value}): "
            f"{composite.width}x{composite.height}, {session.stitch_count} stitches"
        )
        return CaptureComplete(
            session_id=session.id,
            image_bytes=data,
            width=composite.width,
            height=composite.height,
            stitch_count=session.stitch_count,
            reason=reason,
        )

    # ─────────────────────────────── window visibility
    async def _engage_window(self) -> None:
        if self._window is None:
            return
        try:
            self._window.set_click_through(True)
        except Exception as exc:
            log.warning(f"Could not make overlay click-through: {exc}")
            return
        await asyncio.sleep(self._WINDOW_SETTLE_SEC)

    def _release_window(self) -> None:
        if self._window is None:
            return
        try:
            self._window.set_click_through(False)
            self._window.show()
        except Exception as exc:
            log.warning(f"Could not restore overlay window: {exc}")
