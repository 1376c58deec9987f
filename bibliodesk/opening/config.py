from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

LOCK_WAIT_TIMEOUT_SECONDS = 5
LOCK_CRITICAL_AGE_MILLIS = 60_000


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OpenConfig:
    fallback_encoding: str = "UTF-8"
    prompt_before_using_autosave: bool = True
    keyword_sync: bool = True
    lock_wait_timeout_seconds: float = LOCK_WAIT_TIMEOUT_SECONDS
    lock_critical_age_millis: int = LOCK_CRITICAL_AGE_MILLIS
    history_size: int = 8
    max_workers: int = 4
    history_database_url: Optional[str] = None
    # Updated by every open attempt; file dialogs start here.
    working_directory: Optional[Path] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def remember_working_directory(self, directory: Path) -> None:
        # Sessions on different worker threads share one config.
        with self._lock:
            self.working_directory = directory

    @classmethod
    def from_env(cls) -> "OpenConfig":
        """
        Build a config from BIBLIODESK_* environment variables. Lock timing
        stays fixed; it is shared with cooperating instances.
        """
        return cls(
            fallback_encoding=os.getenv("BIBLIODESK_DEFAULT_ENCODING", "UTF-8"),
            prompt_before_using_autosave=_env_bool("BIBLIODESK_PROMPT_BEFORE_USING_AUTOSAVE", True),
            keyword_sync=_env_bool("BIBLIODESK_KEYWORD_SYNC", True),
            history_size=int(os.getenv("BIBLIODESK_HISTORY_SIZE", "8")),
            max_workers=int(os.getenv("BIBLIODESK_MAX_WORKERS", "4")),
            history_database_url=os.getenv("BIBLIODESK_HISTORY_DB"),
            working_directory=Path(os.getenv("BIBLIODESK_WORKING_DIRECTORY", ".")),
        )
