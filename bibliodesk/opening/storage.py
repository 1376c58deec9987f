from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"
DATABASE_EXTENSION = "bib"


@dataclass(frozen=True)
class SidecarPaths:
    """
    Naming of the side-car files that live next to a database file. Both
    names are pure functions of the target path.
    """

    lock_suffix: str = LOCK_SUFFIX

    def lock_path(self, file: Path) -> Path:
        return file.with_name(file.name + self.lock_suffix)

    def autosave_path(self, file: Path) -> Path:
        return file.with_name(f".${file.name}$")


def modified_millis(path: Path) -> Optional[int]:
    try:
        return int(path.stat().st_mtime * 1000)
    except OSError:
        return None


def now_millis() -> int:
    return int(time.time() * 1000)


def canonical_path(path: Union[str, Path]) -> Path:
    """Absolute path with symlinks and `..` resolved; the registry key."""
    return Path(path).expanduser().resolve()


def correct_file_name(name: str, extension: str = DATABASE_EXTENSION) -> str:
    """
    Append `.extension` when the file name carries no extension at all. A
    leading dot (hidden file) does not count as an extension.
    """
    if not name:
        return name
    if name.lower().endswith("." + extension.lower()):
        return name
    base = Path(name).name
    if base.find(".", 1) < 1:
        return f"{name}.{extension}"
    return name
