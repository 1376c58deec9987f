from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple


class OutcomeKind(str, Enum):
    OPENED = "opened"
    ALREADY_OPEN = "already_open"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OpenSessionState(str, Enum):
    RESOLVING_ENCODING = "resolving_encoding"
    NEGOTIATING_LOCK = "negotiating_lock"
    CHOOSING_SOURCE = "choosing_source"
    PARSING = "parsing"
    RETRYING_FALLBACK = "retrying_fallback"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {OpenSessionState.SUCCEEDED, OpenSessionState.FAILED, OpenSessionState.CANCELLED}
)


@dataclass(frozen=True)
class OpenRequest:
    paths: Tuple[Path, ...]
    raise_panel: bool = True
    fallback_encoding: str = "UTF-8"


@dataclass
class BibEntry:
    key: str
    entry_type: str
    fields: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        return self.fields.get(name.lower())

    def set(self, name: str, value: str) -> None:
        self.fields[name.lower()] = value

    def clear(self, name: str) -> None:
        self.fields.pop(name.lower(), None)


@dataclass
class MetaData:
    values: Dict[str, str] = field(default_factory=dict)
    group_tree_valid: bool = True


@dataclass
class ParserResult:
    """
    The parsed database handed from the parser collaborator through the open
    session to the UI layer. The session fills in `encoding`, `file` and
    `loaded_from_autosave` after a successful parse.
    """

    entries: List[BibEntry] = field(default_factory=list)
    metadata: MetaData = field(default_factory=MetaData)
    warnings: List[str] = field(default_factory=list)
    encoding: Optional[str] = None
    file: Optional[Path] = None
    invalid_format: bool = False
    duplicate_keys: List[str] = field(default_factory=list)
    entry_types: Set[str] = field(default_factory=set)
    loaded_from_autosave: bool = False

    @classmethod
    def invalid(cls, reason: str) -> "ParserResult":
        return cls(invalid_format=True, warnings=[reason])

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class LockState:
    exists: bool
    age_millis: Optional[int] = None


@dataclass
class OpenOutcome:
    path: Path
    kind: OutcomeKind
    database: Optional[ParserResult] = None
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def opened(self) -> bool:
        return self.kind == OutcomeKind.OPENED
