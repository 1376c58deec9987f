from __future__ import annotations

import logging
from concurrent import futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .actions import EntryTypeRegistry, PostOpenActionChain, build_chain
from .autosave import AutosaveResolver
from .config import OpenConfig
from .engine import ParsingEngine
from .locking import LockCoordinator
from .models import OpenOutcome, OpenRequest, OutcomeKind
from .registry import HistoryRepository, InMemoryHistoryRepository, OpenRegistry, SqlAlchemyHistoryRepository
from .session import OpenSession
from .storage import canonical_path, correct_file_name
from .ui import UICollaborator

logger = logging.getLogger(__name__)

IN_PROGRESS_REASON = "open already in progress"


@dataclass
class BatchHandle:
    """
    Result slots for one open request, in request order. Slots for files
    that were already open are filled immediately; the rest resolve when
    their session finishes.
    """

    request: OpenRequest
    slots: List[Union[OpenOutcome, "futures.Future[OpenOutcome]"]] = field(default_factory=list)

    @property
    def pending(self) -> List["futures.Future[OpenOutcome]"]:
        return [slot for slot in self.slots if isinstance(slot, futures.Future)]

    def done(self) -> bool:
        return all(future.done() for future in self.pending)

    def wait(self, timeout: Optional[float] = None) -> List[OpenOutcome]:
        futures.wait(self.pending, timeout=timeout)
        outcomes: List[OpenOutcome] = []
        for path, slot in zip(self.request.paths, self.slots):
            if isinstance(slot, OpenOutcome):
                outcomes.append(slot)
                continue
            outcome = slot.result(timeout=0)
            if outcome.path != path:
                # Same file requested twice; the later slot shares the session.
                outcome = OpenOutcome(
                    path=path,
                    kind=outcome.kind,
                    database=outcome.database,
                    reason=outcome.reason,
                    warnings=list(outcome.warnings),
                )
            outcomes.append(outcome)
        return outcomes


def build_history(config: OpenConfig) -> HistoryRepository:
    if config.history_database_url:
        return SqlAlchemyHistoryRepository(config.history_database_url, max_size=config.history_size)
    return InMemoryHistoryRepository(max_size=config.history_size)


class BatchOpenOrchestrator:
    """
    Entry point of the open pipeline. Files that are already open are
    answered from the registry; every other file gets its own OpenSession on
    a worker thread. Sessions of one batch share nothing but the registry
    and the history.
    """

    def __init__(
        self,
        engine: ParsingEngine,
        ui: UICollaborator,
        config: Optional[OpenConfig] = None,
        registry: Optional[OpenRegistry] = None,
        history: Optional[HistoryRepository] = None,
        chain: Optional[PostOpenActionChain] = None,
        entry_types: Optional[EntryTypeRegistry] = None,
        locks: Optional[LockCoordinator] = None,
        autosaves: Optional[AutosaveResolver] = None,
        executor: Optional[futures.Executor] = None,
    ):
        self.engine = engine
        self.ui = ui
        self.config = config if config is not None else OpenConfig()
        self.registry = registry if registry is not None else OpenRegistry()
        self.history = history if history is not None else build_history(self.config)
        self.entry_types = entry_types if entry_types is not None else EntryTypeRegistry()
        self.chain = chain if chain is not None else build_chain(self.entry_types)
        self.locks = locks if locks is not None else LockCoordinator()
        self.autosaves = autosaves if autosaves is not None else AutosaveResolver()
        self._owns_executor = executor is None
        self.executor = executor or futures.ThreadPoolExecutor(
            max_workers=max(1, self.config.max_workers), thread_name_prefix="bib-open"
        )

    def __enter__(self) -> "BatchOpenOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=True)

    def open(self, paths: Iterable[Union[str, Path]], raise_if_single_match: bool = True) -> List[OpenOutcome]:
        handle = self.dispatch(self.make_request(paths, raise_if_single_match))
        outcomes = handle.wait()
        opened = sum(1 for outcome in outcomes if outcome.kind == OutcomeKind.OPENED)
        self.ui.report_status(f"Files opened: {opened}")
        return outcomes

    def open_file(self, path: Union[str, Path], raise_panel: bool = True) -> OpenOutcome:
        return self.open([path], raise_panel)[0]

    def open_files_as_strings(self, names: Sequence[str], raise_panel: bool = True) -> List[OpenOutcome]:
        return self.open([correct_file_name(name) for name in names], raise_panel)

    def make_request(self, paths: Iterable[Union[str, Path]], raise_panel: bool = True) -> OpenRequest:
        return OpenRequest(
            paths=tuple(Path(p) for p in paths),
            raise_panel=raise_panel,
            fallback_encoding=self.config.fallback_encoding,
        )

    def dispatch(self, request: OpenRequest) -> BatchHandle:
        handle = BatchHandle(request=request)
        already_open: Dict[Path, OpenOutcome] = {}
        pending: Dict[Path, Path] = {}
        markers: List[Union[OpenOutcome, Path]] = []

        # First pass: registry lookups only, no file I/O.
        for path in request.paths:
            key = canonical_path(path)
            if key in pending:
                markers.append(key)
                continue
            existing = self.registry.get(key)
            if existing is not None:
                outcome = OpenOutcome(path=path, kind=OutcomeKind.ALREADY_OPEN, database=existing)
                already_open.setdefault(key, outcome)
                markers.append(outcome)
                continue
            if not self.registry.reserve(key):
                logger.info("Skipping %s: %s", path, IN_PROGRESS_REASON)
                markers.append(OpenOutcome(path=path, kind=OutcomeKind.ALREADY_OPEN, reason=IN_PROGRESS_REASON))
                continue
            pending[key] = path
            markers.append(key)

        if not pending and len(already_open) == 1 and request.raise_panel:
            (match,) = already_open.values()
            self.ui.report_status(f"File '{match.path}' is already open.")
            self.ui.focus_or_create_panel(match.database, match.path, True)

        # Second pass: one session per remaining file.
        submitted: Dict[Path, "futures.Future[OpenOutcome]"] = {
            key: self.executor.submit(self._run_session, path, request) for key, path in pending.items()
        }
        handle.slots = [submitted[m] if isinstance(m, Path) else m for m in markers]

        for key in submitted:
            self._record_history(key)
        return handle

    def _record_history(self, key: Path) -> None:
        try:
            self.history.record(str(key))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not add %s to the file history: %s", key, exc)

    def _run_session(self, path: Path, request: OpenRequest) -> OpenOutcome:
        session = OpenSession(
            path=path,
            engine=self.engine,
            ui=self.ui,
            chain=self.chain,
            config=self.config,
            locks=self.locks,
            autosaves=self.autosaves,
            raise_panel=request.raise_panel,
            fallback_encoding=request.fallback_encoding,
        )
        try:
            try:
                outcome = session.run()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Open session for %s crashed", path)
                self.ui.report_error(path, str(exc))
                outcome = OpenOutcome(path=path, kind=OutcomeKind.FAILED, reason=str(exc) or exc.__class__.__name__)
            if outcome.kind == OutcomeKind.OPENED and outcome.database is not None:
                self.registry.add(path, outcome.database)
            return outcome
        finally:
            self.registry.release(path)
