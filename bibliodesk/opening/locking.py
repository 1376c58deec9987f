from __future__ import annotations

import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

from .models import LockState
from .storage import SidecarPaths, modified_millis, now_millis

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL_SECONDS = 0.5


class LockCoordinator:
    """
    Advisory lock markers shared by cooperating instances. Only the marker's
    existence and modification time are read; nothing is cached, since the
    marker is created and removed by other processes.
    """

    def __init__(
        self,
        paths: Optional[SidecarPaths] = None,
        clock: Callable[[], int] = now_millis,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = LOCK_POLL_INTERVAL_SECONDS,
    ):
        self.paths = paths or SidecarPaths()
        self.clock = clock
        self.sleep = sleep
        self.poll_interval = poll_interval

    def has_lock(self, path: Path) -> bool:
        return self.paths.lock_path(path).exists()

    def lock_timestamp(self, path: Path) -> Optional[int]:
        return modified_millis(self.paths.lock_path(path))

    def lock_age(self, path: Path) -> Optional[timedelta]:
        stamp = self.lock_timestamp(path)
        if stamp is None:
            return None
        return timedelta(milliseconds=max(0, self.clock() - stamp))

    def state(self, path: Path) -> LockState:
        if not self.has_lock(path):
            return LockState(exists=False)
        stamp = self.lock_timestamp(path)
        age = None if stamp is None else max(0, self.clock() - stamp)
        return LockState(exists=True, age_millis=age)

    def wait_for_release(self, path: Path, timeout_seconds: float) -> bool:
        """Poll until the marker disappears. Returns True if it is gone."""
        polls = max(1, int(round(timeout_seconds / self.poll_interval)))
        for _ in range(polls):
            if not self.has_lock(path):
                return True
            self.sleep(self.poll_interval)
        return not self.has_lock(path)

    def force_remove(self, path: Path) -> None:
        lock_path = self.paths.lock_path(path)
        try:
            lock_path.unlink()
            logger.info("Removed lock marker %s", lock_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove lock marker %s: %s", lock_path, exc)
