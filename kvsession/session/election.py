"""
Election guards deciding which process runs the reaper.

Eligibility is a coarse, host-local role rather than a distributed lock:
there is no fencing token or heartbeat. A lease-based election can replace
these guards without touching the reaper, which only calls
``is_eligible()`` and, on shutdown, ``release()``.
"""

import errno
import fcntl
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Optional

from kvsession.config.settings import DEFAULT_BUCKET, ReaperRole

logger = logging.getLogger(__name__)


class ElectionGuard(ABC):
    """Decides whether this process may run the reaper."""

    @abstractmethod
    def is_eligible(self) -> bool:
        """Return True if the reaper may run in this process."""

    def release(self) -> None:
        """Give up eligibility, if this guard holds any."""


class StaticElectionGuard(ElectionGuard):
    """Guard with a fixed answer, for explicitly assigned roles."""

    def __init__(self, eligible: bool):
        self.eligible = eligible

    def is_eligible(self) -> bool:
        return self.eligible

    def __repr__(self) -> str:
        return f"StaticElectionGuard(eligible={self.eligible})"


def default_lock_path(bucket: str = DEFAULT_BUCKET) -> str:
    """Lock file shared by every process on this host reaping ``bucket``."""
    return os.path.join(tempfile.gettempdir(), f"kvsession-reaper-{bucket}.lock")


class LockFileElectionGuard(ElectionGuard):
    """
    Eligible while this process holds an exclusive flock on a lock file.

    At most one process per host holds the lock, whether the workers were
    forked or spawned. The holder keeps it until release() or exit; other
    processes retry on every check, so a surviving process takes over after
    the holder dies. Deployments spanning several hosts must assign the
    coordinator role explicitly.

    Attributes:
        path: Path of the lock file
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or default_lock_path()
        self._fd: Optional[int] = None
        self._owner_pid: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None and self._owner_pid == os.getpid()

    def is_eligible(self) -> bool:
        if self._fd is not None and self._owner_pid != os.getpid():
            # Descriptor inherited through fork; the lock belongs to the parent
            self._close()

        if self._fd is not None:
            return True

        try:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            logger.warning("Cannot open reaper lock file, not eligible", extra={
                "extra_data": {"path": self.path, "error": str(e)}
            })
            return False

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            os.close(fd)
            if e.errno not in (errno.EAGAIN, errno.EACCES, errno.EWOULDBLOCK):
                logger.warning("Reaper lock failed, not eligible", extra={
                    "extra_data": {"path": self.path, "error": str(e)}
                })
            return False

        self._fd = fd
        self._owner_pid = os.getpid()
        os.ftruncate(fd, 0)
        os.write(fd, str(self._owner_pid).encode("ascii"))
        logger.info("Acquired reaper lock", extra={
            "extra_data": {"path": self.path, "pid": self._owner_pid}
        })
        return True

    def release(self) -> None:
        if not self.held:
            self._close()
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        self._close()
        logger.info("Released reaper lock", extra={"extra_data": {"path": self.path}})

    def _close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
        self._fd = None
        self._owner_pid = None

    def __repr__(self) -> str:
        return f"LockFileElectionGuard(path={self.path!r})"


def create_election_guard(
    role: ReaperRole,
    lock_path: Optional[str] = None,
    bucket: str = DEFAULT_BUCKET,
) -> ElectionGuard:
    """
    Build the guard matching a configured reaper role.

    Args:
        role: 'auto' (lock file holder on this host), 'coordinator' or 'worker'
        lock_path: Lock file for the auto role, defaults to one per bucket
            in the system temp directory
        bucket: Bucket the reaper sweeps, used for the default lock path
    """
    role = ReaperRole(role)
    if role == ReaperRole.COORDINATOR:
        guard = StaticElectionGuard(True)
    elif role == ReaperRole.WORKER:
        guard = StaticElectionGuard(False)
    else:
        guard = LockFileElectionGuard(lock_path or default_lock_path(bucket))

    logger.debug("Election guard created", extra={
        "extra_data": {"role": role.value, "guard": repr(guard)}
    })
    return guard
