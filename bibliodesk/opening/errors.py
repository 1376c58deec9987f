"""Errors raised inside an open session. None of them is fatal to the process."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class OpenError(Exception):
    """Base exception for the open pipeline."""

    def __init__(self, message: str, suggestion: Optional[str] = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class EncodingUnavailable(OpenError):
    """A declared encoding is not a registered codec. Triggers the fallback."""

    def __init__(self, encoding: str) -> None:
        super().__init__(f"Encoding '{encoding}' is not available")
        self.encoding = encoding


class LockHeld(OpenError):
    """File is locked by another instance and the lock was not released."""

    def __init__(self, path: Path) -> None:
        super().__init__(
            f"Error opening file '{path}'. File is locked by another instance.",
            "Wait for the other instance to save, or override a stale lock",
        )
        self.path = path


class ParseInvalidFormat(OpenError):
    """Parser returned an invalid-format result."""

    pass


class ParseIOError(OpenError):
    """Reading or parsing the file raised."""

    pass


class PostOpenActionFailure(OpenError):
    """A post-open action raised while checking or applying itself."""

    def __init__(self, action_name: str, cause: BaseException) -> None:
        super().__init__(f"Post-open action '{action_name}' failed: {cause}")
        self.action_name = action_name
        self.cause = cause


class OpenCancelled(OpenError):
    """Raised by a UI collaborator to abort a pending prompt."""

    pass
