"""TranscodeRunner - drives one engine invocation per job."""

import asyncio
import threading
from typing import override

from loguru import logger

from ..common.errors import InvalidTransition, JobNotFound
from ..common.job_storage import BlobStorage
from ..common.job_store import JobStore
from .base import EngineHandle, EngineListener, TranscodingEngine


class JobListener(EngineListener):
    """Translates engine callbacks for one job into JobStore updates.

    The first terminal signal wins; anything after it is logged and dropped.
    """

    def __init__(self, runner: "TranscodeRunner", job_id: str, input_ref: str, output_ref: str):
        self._runner: TranscodeRunner = runner
        self.job_id: str = job_id
        self.input_ref: str = input_ref
        self.output_ref: str = output_ref
        self._lock: threading.Lock = threading.Lock()
        self._terminal_signal: str | None = None

    @property
    def terminated(self) -> bool:
        return self._terminal_signal is not None

    def _claim_terminal(self, signal: str) -> bool:
        with self._lock:
            if self._terminal_signal is not None:
                logger.warning(
                    f"Job {self.job_id}: ignoring {signal} after {self._terminal_signal}"
                )
                return False
            self._terminal_signal = signal
            return True

    @override
    def on_start(self) -> None:
        if not self.terminated:
            _ = self._runner.store.mark_running(self.job_id)

    @override
    def on_progress(self, percent: float) -> None:
        if self.terminated:
            return
        logger.debug(f"Job {self.job_id}: {percent:.1f}%")
        _ = self._runner.store.update_progress(self.job_id, percent)

    @override
    def on_success(self) -> None:
        if self._claim_terminal("success"):
            self._runner._finish_success(self)

    @override
    def on_failure(self, reason: str) -> None:
        _ = self.fail_once(reason)

    def fail_once(self, reason: str) -> bool:
        if not self._claim_terminal("failure"):
            return False
        self._runner._finish_failure(self, reason)
        return True


class TranscodeRunner:
    """Owns exactly one engine invocation per job and guarantees that every
    started job reaches a terminal state.

    Example:
        runner = TranscodeRunner(store, storage, FFmpegSubtitleEngine())
        started = await runner.run(job_id, input_ref, output_ref)
        ...
        await runner.wait(job_id)
    """

    def __init__(
        self,
        store: JobStore,
        storage: BlobStorage,
        engine: TranscodingEngine,
        *,
        timeout_seconds: float | None = None,
    ):
        """Initialize runner.

        Args:
            store: JobStore receiving progress and terminal transitions
            storage: BlobStorage owning input and output files
            engine: TranscodingEngine performing the conversion
            timeout_seconds: Optional wall-clock limit per job. Jobs still
                running afterwards are failed and their engine is cancelled.
        """
        self.store: JobStore = store
        self.storage: BlobStorage = storage
        self.engine: TranscodingEngine = engine
        self.timeout_seconds: float | None = timeout_seconds

        self._listeners: dict[str, JobListener] = {}
        self._handles: dict[str, EngineHandle] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    # ------------------------------------------------------------------
    # Starting
    # ------------------------------------------------------------------

    async def run(self, job_id: str, input_ref: str, output_ref: str) -> bool:
        """Start the engine for a job and return without waiting for it.

        Returns:
            True if the engine was started, False if starting failed (the job
            is already failed when this returns).
        """
        self._prune()

        listener = JobListener(self, job_id, input_ref, output_ref)
        self._listeners[job_id] = listener

        try:
            input_path = self.storage.resolve_path(input_ref)
            output_path = self.storage.resolve_output(output_ref)
            handle = await self.engine.start(input_path, output_path, listener)
        except Exception as exc:
            logger.error(f"Job {job_id}: engine could not be started: {exc}")
            _ = listener.fail_once(str(exc) or type(exc).__name__)
            return False

        self._handles[job_id] = handle

        if self.timeout_seconds is not None and not listener.terminated:
            loop = asyncio.get_running_loop()
            self._timers[job_id] = loop.call_later(
                self.timeout_seconds,
                self.cancel,
                job_id,
                f"timed out after {self.timeout_seconds:g}s",
            )
        return True

    # ------------------------------------------------------------------
    # Terminal handling (called by JobListener)
    # ------------------------------------------------------------------

    def _finish_success(self, listener: JobListener) -> None:
        job_id = listener.job_id
        self._release(job_id)

        if not self.storage.exists(listener.output_ref):
            self._record_failure(listener, "engine reported success but produced no output")
            return

        try:
            _ = self.store.complete(job_id, listener.output_ref)
        except (InvalidTransition, JobNotFound) as exc:
            # Failed by a supervisor before the engine finished
            logger.warning(f"Job {job_id}: completion not recorded: {exc}")
            self._cleanup(listener.output_ref)

        self._cleanup(listener.input_ref)

    def _finish_failure(self, listener: JobListener, reason: str) -> None:
        self._release(listener.job_id)
        self._record_failure(listener, reason)

    def _record_failure(self, listener: JobListener, reason: str) -> None:
        try:
            _ = self.store.fail(listener.job_id, reason)
        except (InvalidTransition, JobNotFound) as exc:
            logger.warning(f"Job {listener.job_id}: failure not recorded: {exc}")

        self._cleanup(listener.input_ref)
        self._cleanup(listener.output_ref)

    def _cleanup(self, ref: str) -> None:
        if not self.storage.delete(ref):
            logger.warning(f"Could not remove {ref}; leaving it for reclamation")

    def _release(self, job_id: str) -> None:
        _ = self._listeners.pop(job_id, None)
        timer = self._timers.pop(job_id, None)
        if timer is not None:
            timer.cancel()

    def _prune(self) -> None:
        for job_id in [j for j, h in self._handles.items() if h.done]:
            del self._handles[job_id]

    # ------------------------------------------------------------------
    # Supervision
    # ------------------------------------------------------------------

    def cancel(self, job_id: str, reason: str = "cancelled") -> bool:
        """Force a running job into the failed state and stop its engine.

        Returns:
            True if this call failed the job, False if it had already
            terminated or is unknown to this runner.
        """
        listener = self._listeners.get(job_id)
        failed = listener.fail_once(reason) if listener is not None else False

        handle = self._handles.get(job_id)
        if handle is not None and not handle.done:
            handle.cancel()
        return failed

    def active_jobs(self) -> list[str]:
        return list(self._listeners)

    async def wait(self, job_id: str) -> None:
        """Wait for the engine of a job to stop."""
        handle = self._handles.get(job_id)
        if handle is not None:
            await handle.wait()
            _ = self._handles.pop(job_id, None)

    async def shutdown(self) -> None:
        """Fail and stop every job that is still converting."""
        for job_id in self.active_jobs():
            _ = self.cancel(job_id, "shutdown")
        handles = list(self._handles.values())
        for handle in handles:
            await handle.wait()
        self._handles.clear()
