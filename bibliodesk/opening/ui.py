from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class UICollaborator(Protocol):
    def prompt_lock_override(self, path: Path, age_millis: Optional[int]) -> bool:
        ...

    def prompt_lock_timeout(self, path: Path) -> None:
        ...

    def prompt_use_autosave(self, path: Path) -> bool:
        ...

    def confirm(self, title: str, message: str) -> bool:
        ...

    def focus_or_create_panel(self, database: Any, file: Path, raise_panel: bool) -> None:
        ...

    def report_warnings(self, file: Path, warnings: Sequence[str]) -> None:
        ...

    def report_status(self, message: str) -> None:
        ...

    def report_error(self, file: Path, message: str) -> None:
        ...


def format_warnings(warnings: Sequence[str]) -> str:
    return "\n".join(f"{index}. {warning}" for index, warning in enumerate(warnings, start=1))


class HeadlessUI:
    """
    UI stand-in for scripts and batch runs. Prompts are answered from fixed
    defaults and everything else goes to the log.
    """

    def __init__(self, override_stale_locks: bool = False, use_autosave: bool = True, confirm_actions: bool = False):
        self.override_stale_locks = override_stale_locks
        self.use_autosave = use_autosave
        self.confirm_actions = confirm_actions
        self.panels: List[Path] = []

    def prompt_lock_override(self, path: Path, age_millis: Optional[int]) -> bool:
        logger.warning("File %s is locked (lock age %s ms); override=%s", path, age_millis, self.override_stale_locks)
        return self.override_stale_locks

    def prompt_lock_timeout(self, path: Path) -> None:
        logger.error("Error opening file '%s'. File is locked by another instance.", path)

    def prompt_use_autosave(self, path: Path) -> bool:
        logger.warning("An autosave file was found for %s; recover=%s", path, self.use_autosave)
        return self.use_autosave

    def confirm(self, title: str, message: str) -> bool:
        logger.info("%s: %s -> %s", title, message, self.confirm_actions)
        return self.confirm_actions

    def focus_or_create_panel(self, database: Any, file: Path, raise_panel: bool) -> None:
        if file not in self.panels:
            self.panels.append(file)

    def report_warnings(self, file: Path, warnings: Sequence[str]) -> None:
        logger.warning("Warnings (%s):\n%s", file.name, format_warnings(warnings))

    def report_status(self, message: str) -> None:
        logger.info(message)

    def report_error(self, file: Path, message: str) -> None:
        logger.error("Error opening file '%s': %s", file, message)
