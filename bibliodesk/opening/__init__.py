"""
Open pipeline exports.
"""

from .actions import (
    ActionContext,
    CheckForNewEntryTypesAction,
    EntryTypeRegistry,
    FileLinksUpgradeAction,
    HandleDuplicateKeysAction,
    PostOpenAction,
    PostOpenActionChain,
    build_chain,
    default_actions,
)
from .autosave import AutosaveResolver
from .config import OpenConfig
from .encoding import open_reader, sniff_declared_encoding, sniff_encoding
from .engine import ParsingEngine, PybtexParsingEngine
from .errors import (
    EncodingUnavailable,
    LockHeld,
    OpenCancelled,
    OpenError,
    ParseInvalidFormat,
    ParseIOError,
    PostOpenActionFailure,
)
from .locking import LockCoordinator
from .models import (
    BibEntry,
    LockState,
    MetaData,
    OpenOutcome,
    OpenRequest,
    OpenSessionState,
    OutcomeKind,
    ParserResult,
)
from .orchestrator import BatchHandle, BatchOpenOrchestrator
from .registry import (
    HistoryRepository,
    InMemoryHistoryRepository,
    OpenRegistry,
    SqlAlchemyHistoryRepository,
)
from .session import OpenSession
from .storage import SidecarPaths
from .ui import HeadlessUI, UICollaborator

__all__ = [
    "ActionContext",
    "AutosaveResolver",
    "BatchHandle",
    "BatchOpenOrchestrator",
    "BibEntry",
    "CheckForNewEntryTypesAction",
    "EncodingUnavailable",
    "EntryTypeRegistry",
    "FileLinksUpgradeAction",
    "HandleDuplicateKeysAction",
    "HeadlessUI",
    "HistoryRepository",
    "InMemoryHistoryRepository",
    "LockCoordinator",
    "LockHeld",
    "LockState",
    "MetaData",
    "OpenCancelled",
    "OpenConfig",
    "OpenError",
    "OpenOutcome",
    "OpenRegistry",
    "OpenRequest",
    "OpenSession",
    "OpenSessionState",
    "OutcomeKind",
    "ParseIOError",
    "ParseInvalidFormat",
    "ParserResult",
    "ParsingEngine",
    "PostOpenAction",
    "PostOpenActionChain",
    "PostOpenActionFailure",
    "PybtexParsingEngine",
    "SidecarPaths",
    "SqlAlchemyHistoryRepository",
    "UICollaborator",
    "build_chain",
    "default_actions",
    "open_reader",
    "sniff_declared_encoding",
    "sniff_encoding",
]
