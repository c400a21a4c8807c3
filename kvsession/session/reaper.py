"""
Periodic reaper removing expired sessions.

Each tick queries the expiration index for every entry between EPOCH_FLOOR
and now, then deletes the matching sessions independently of each other.
Reaping is best effort: a failed query aborts the tick, a failed delete only
affects its own session, and both are logged and retried on the next tick.
Nothing raised here reaches session middleware.

A candidate is deleted only after re-reading its current index entry and
confirming it still lies inside the sweep window, so a session refreshed
after the index query captured its old entry is kept.
"""

import asyncio
import logging
import time
import uuid
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from kvsession.config.settings import DEFAULT_BUCKET
from kvsession.errors.exceptions import DeleteError, NotFoundError, QueryError
from kvsession.session import codec
from kvsession.session.election import ElectionGuard, StaticElectionGuard
from kvsession.storage.engine import StorageEngine
from kvsession.telemetry.service import get_telemetry_service, sweep_id_var

logger = logging.getLogger(__name__)


class ReaperState(str, Enum):
    """Lifecycle state of the reaper."""
    STOPPED = "stopped"
    IDLE = "idle"
    SWEEPING = "sweeping"


@dataclass(frozen=True)
class SweepWindow:
    """Index key bounds of one sweep: everything expired up to ``end``."""
    start: str
    end: str

    @classmethod
    def ending_at(cls, now: Optional[datetime] = None) -> "SweepWindow":
        now = now or datetime.now(timezone.utc)
        return cls(start=codec.EPOCH_FLOOR, end=codec.format_index_key(now))


@dataclass
class SweepResult:
    """
    Outcome of a single sweep.

    Attributes:
        sweep_id: Correlation ID attached to the sweep's log entries
        window: The bounds the index was queried with
        found: Distinct expired IDs returned by the index query
        deleted: Sessions removed
        skipped: Candidates that were gone or had been refreshed
        failed: Candidates whose re-confirmation or delete failed
        query_failed: Whether the index query itself failed
        duration_ms: Wall time of the sweep
    """
    sweep_id: str
    window: SweepWindow
    found: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    query_failed: bool = False
    duration_ms: float = 0.0
    failed_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "sweep_id": self.sweep_id,
            "window": {"start": self.window.start, "end": self.window.end},
            "found": self.found,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "failed": self.failed,
            "query_failed": self.query_failed,
            "duration_ms": round(self.duration_ms, 2),
        }


class Reaper:
    """
    Timer-driven sweeper of expired sessions.

    The timer is armed by start() only when the interval is positive and the
    election guard says this process is eligible. Ticks run sequentially on
    one asyncio task, so sweeps never overlap.
    """

    def __init__(
        self,
        engine: StorageEngine,
        bucket: str = DEFAULT_BUCKET,
        interval_ms: int = 0,
        guard: Optional[ElectionGuard] = None,
    ):
        self.engine = engine
        self.bucket = bucket
        self.interval_ms = interval_ms
        self.guard = guard if guard is not None else StaticElectionGuard(True)
        self.state = ReaperState.STOPPED
        self.last_result: Optional[SweepResult] = None
        self.last_sweep_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        """Whether the timer task is running in this process."""
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """
        Arm the reaper timer.

        Must be called from a running event loop.

        Returns:
            True if the timer was armed, False if reaping is disabled or
            this process is not eligible.
        """
        if self.armed:
            return True

        if self.interval_ms <= 0:
            logger.info("Session reaping disabled", extra={
                "extra_data": {"interval_ms": self.interval_ms}
            })
            return False

        if not self.guard.is_eligible():
            logger.info("Process not eligible to reap sessions, timer not armed", extra={
                "extra_data": {"guard": repr(self.guard)}
            })
            return False

        self._task = asyncio.get_running_loop().create_task(self._run(), name="kvsession-reaper")
        self.state = ReaperState.IDLE
        logger.info("Session reaper armed", extra={
            "extra_data": {"interval_ms": self.interval_ms, "bucket": self.bucket}
        })
        return True

    async def stop(self) -> None:
        """Cancel the timer task, abandoning any in-flight sweep."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Session reaper stopped")
        self.state = ReaperState.STOPPED

    async def _run(self) -> None:
        interval = self.interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)

            if not self.guard.is_eligible():
                logger.debug("Process no longer eligible, skipping sweep")
                continue

            try:
                await self.sweep()
            except Exception:
                # sweep() swallows its own failures; this keeps the timer alive
                # if bookkeeping around it breaks.
                logger.exception("Unexpected reaper failure, continuing")

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Run one sweep: query the expiration index and delete what it finds.

        Never raises for storage failures; they are reported in the result.

        Args:
            now: Upper bound of the sweep window, defaults to the current time.

        Returns:
            SweepResult describing what the sweep did.
        """
        window = SweepWindow.ending_at(now)
        result = SweepResult(sweep_id=uuid.uuid4().hex[:12], window=window)
        token = sweep_id_var.set(result.sweep_id)
        previous_state = self.state
        self.state = ReaperState.SWEEPING
        started = time.perf_counter()
        telemetry = get_telemetry_service()

        try:
            span = telemetry.create_span("kvsession.reaper.sweep", {"bucket": self.bucket}) if telemetry else nullcontext()
            with span:
                await self._sweep(window, result)
        finally:
            result.duration_ms = (time.perf_counter() - started) * 1000
            self.last_result = result
            self.last_sweep_at = datetime.now(timezone.utc)
            self.state = previous_state if previous_state != ReaperState.SWEEPING else ReaperState.IDLE
            self._report(result, telemetry)
            sweep_id_var.reset(token)

        return result

    async def _sweep(self, window: SweepWindow, result: SweepResult) -> None:
        try:
            raw_keys = await self.engine.index_range_query(
                self.bucket, codec.EXPIRE_INDEX, window.start, window.end
            )
        except Exception as e:
            error = QueryError(details={"bucket": self.bucket, "cause": str(e)})
            result.query_failed = True
            logger.warning("Expiration index query failed, retrying next tick", extra={
                "extra_data": {**error.to_dict(), "error_type": type(e).__name__}
            })
            return

        session_ids = codec.decode_index_result(raw_keys)
        result.found = len(session_ids)
        if not session_ids:
            return

        outcomes = await asyncio.gather(
            *(self._reap_one(session_id, window) for session_id in session_ids),
            return_exceptions=True,
        )

        for session_id, outcome in zip(session_ids, outcomes):
            if isinstance(outcome, Exception):
                result.failed += 1
                result.failed_ids.append(session_id)
                error = outcome if isinstance(outcome, DeleteError) else DeleteError(
                    details={"session_id": session_id, "cause": str(outcome)}
                )
                logger.warning("Failed to reap expired session, retrying next tick", extra={
                    "extra_data": error.to_dict()
                })
            elif outcome:
                result.deleted += 1
            else:
                result.skipped += 1

    async def _current_index_key(self, key: str) -> Optional[str]:
        """
        Re-read the expiration index entry of a stored session.

        Returns None when the session is gone or carries no expiration.
        """
        try:
            stored = await self.engine.get(self.bucket, key)
        except NotFoundError:
            return None

        indexes = stored.metadata.get("indexes")
        if indexes is not None:
            return indexes.get(codec.EXPIRE_INDEX)

        record = codec.decode(stored.value)
        if record.expires_at is None:
            return None
        return codec.format_index_key(record.expires_at)

    async def _reap_one(self, session_id: str, window: SweepWindow) -> bool:
        """
        Delete one candidate if it is still expired.

        Returns:
            True if the session was deleted, False if it was skipped.

        Raises:
            DeleteError: If re-confirmation or the delete failed.
        """
        key = codec.encode_key(session_id)

        try:
            current = await self._current_index_key(key)
        except Exception as e:
            raise DeleteError(
                "Failed to re-confirm expired session",
                details={"session_id": session_id, "cause": str(e)}
            ) from e

        if current is None or current > window.end:
            logger.debug("Session no longer expired, skipping", extra={
                "extra_data": {"session_id": session_id, "expires_at": current}
            })
            return False

        try:
            await self.engine.delete(self.bucket, key)
        except Exception as e:
            raise DeleteError(details={"session_id": session_id, "cause": str(e)}) from e

        return True

    def _report(self, result: SweepResult, telemetry) -> None:
        level = logging.WARNING if result.query_failed or result.failed else logging.INFO
        logger.log(level, "Session sweep completed", extra={"extra_data": result.to_dict()})

        if telemetry is not None:
            tags = {"bucket": self.bucket}
            telemetry.record_metric("kvsession.reaper.found", result.found, tags)
            telemetry.record_metric("kvsession.reaper.deleted", result.deleted, tags)
            telemetry.record_metric("kvsession.reaper.failed", result.failed, tags)
            telemetry.record_metric("kvsession.reaper.duration_ms", result.duration_ms, tags)
