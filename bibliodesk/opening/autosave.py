from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .storage import SidecarPaths, modified_millis

logger = logging.getLogger(__name__)


class AutosaveResolver:
    """
    Locates crash-recovery copies. An autosave only counts when it is
    strictly newer than the file it belongs to.
    """

    def __init__(self, paths: Optional[SidecarPaths] = None):
        self.paths = paths or SidecarPaths()

    def resolve(self, path: Path) -> Path:
        return self.paths.autosave_path(path)

    def exists(self, path: Path) -> bool:
        candidate = self.resolve(path)
        autosave_time = modified_millis(candidate)
        if autosave_time is None:
            return False
        target_time = modified_millis(path)
        if target_time is None:
            return False
        newer = autosave_time > target_time
        if newer:
            logger.info("Newer autosave found for %s at %s", path, candidate)
        return newer
