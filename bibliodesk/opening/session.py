from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from .actions import ActionContext, PostOpenActionChain
from .autosave import AutosaveResolver
from .config import OpenConfig
from .encoding import open_reader, sniff_encoding
from .engine import ParsingEngine
from .errors import EncodingUnavailable, LockHeld, OpenCancelled, OpenError, ParseInvalidFormat, ParseIOError
from .locking import LockCoordinator
from .models import TERMINAL_STATES, OpenOutcome, OpenSessionState, OutcomeKind, ParserResult
from .special_fields import sync_all
from .ui import UICollaborator

logger = logging.getLogger(__name__)

LOCKED_REASON = "locked"
NOT_FOUND_REASON = "file not found"
GROUP_TREE_WARNING = "Group tree could not be parsed. If you save the BibTeX database, all groups will be lost."


class OpenSession:
    """
    Drives one file through resolve encoding -> negotiate lock -> choose
    source -> parse, with a single fallback from the autosave copy to the
    original file. One instance per open attempt; not reusable.
    """

    def __init__(
        self,
        path: Path,
        engine: ParsingEngine,
        ui: UICollaborator,
        chain: PostOpenActionChain,
        config: Optional[OpenConfig] = None,
        locks: Optional[LockCoordinator] = None,
        autosaves: Optional[AutosaveResolver] = None,
        raise_panel: bool = True,
        fallback_encoding: Optional[str] = None,
    ):
        self.path = Path(path)
        self.engine = engine
        self.ui = ui
        self.chain = chain
        self.config = config or OpenConfig()
        self.locks = locks or LockCoordinator()
        self.autosaves = autosaves or AutosaveResolver()
        self.raise_panel = raise_panel
        self.fallback_encoding = fallback_encoding or self.config.fallback_encoding

        self.state = OpenSessionState.RESOLVING_ENCODING
        self.transitions: List[OpenSessionState] = []
        self.declared_encodings: Dict[Path, Optional[str]] = {}
        self.source: Path = self.path
        self.trying_autosave = False
        self.parse_attempts: List[Path] = []

    def _enter(self, state: OpenSessionState) -> None:
        logger.debug("%s: %s -> %s", self.path.name, self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def run(self) -> OpenOutcome:
        if self.transitions:
            raise RuntimeError(f"Open session for {self.path} already ran")
        if not self.path.exists():
            return self._fail(NOT_FOUND_REASON)

        self.ui.report_status(f"Opening: '{self.path}'")
        self.config.remember_working_directory(self.path.parent)
        try:
            self._enter(OpenSessionState.RESOLVING_ENCODING)
            self._declared_encoding(self.path)

            self._enter(OpenSessionState.NEGOTIATING_LOCK)
            overridden = self._negotiate_lock()

            self._enter(OpenSessionState.CHOOSING_SOURCE)
            if not overridden:
                self._choose_source()

            return self._parse_with_fallback()
        except LockHeld as exc:
            logger.info("%s", exc.message)
            return self._fail(LOCKED_REASON)
        except OpenCancelled as exc:
            logger.info("Open of %s cancelled: %s", self.path, exc)
            self._enter(OpenSessionState.CANCELLED)
            return OpenOutcome(path=self.path, kind=OutcomeKind.CANCELLED, reason=exc.message)

    def _declared_encoding(self, source: Path) -> Optional[str]:
        if source not in self.declared_encodings:
            self.declared_encodings[source] = sniff_encoding(source)
        return self.declared_encodings[source]

    def _negotiate_lock(self) -> bool:
        """
        Returns True if a stale lock was overridden, False if the file was
        free or got released while waiting. Raises LockHeld otherwise.
        """
        state = self.locks.state(self.path)
        if not state.exists:
            return False
        if state.age_millis is not None and state.age_millis > self.config.lock_critical_age_millis:
            if self.ui.prompt_lock_override(self.path, state.age_millis):
                self.locks.force_remove(self.path)
                return True
            logger.info("User kept the lock on %s", self.path)
            raise LockHeld(self.path)
        if self.locks.wait_for_release(self.path, self.config.lock_wait_timeout_seconds):
            return False
        self.ui.prompt_lock_timeout(self.path)
        raise LockHeld(self.path)

    def _choose_source(self) -> None:
        if not self.autosaves.exists(self.path):
            return
        autosave = self.autosaves.resolve(self.path)
        if not self.config.prompt_before_using_autosave or self.ui.prompt_use_autosave(self.path):
            self.source = autosave
            self.trying_autosave = True

    def _parse_with_fallback(self) -> OpenOutcome:
        self._enter(OpenSessionState.PARSING)
        try:
            result = self._parse(self.source)
        except OpenError as exc:
            if not self.trying_autosave:
                return self._fail(exc.message)
            self.ui.report_error(
                self.path,
                f"{exc.message}\nError opening autosave of '{self.path.name}'. "
                f"Trying to load '{self.path.name}' instead.",
            )
            self._enter(OpenSessionState.RETRYING_FALLBACK)
            self.trying_autosave = False
            self.source = self.path
            self._negotiate_lock()
            try:
                result = self._parse(self.source)
            except OpenError as retry_exc:
                return self._fail(retry_exc.message)
        return self._succeed(result)

    def _parse(self, source: Path) -> ParserResult:
        self.parse_attempts.append(source)
        declared = self._declared_encoding(source)
        try:
            reader, encoding = open_reader(source, declared, self.fallback_encoding)
        except (EncodingUnavailable, OSError) as exc:
            raise ParseIOError(str(exc)) from exc

        try:
            with reader:
                result = self.engine.parse(reader)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Parsing %s failed: %s", source, exc)
            raise ParseIOError(str(exc) or exc.__class__.__name__) from exc

        if result is None or result.invalid_format:
            detail = "; ".join(result.warnings) if result is not None and result.warnings else ""
            raise ParseInvalidFormat(f"Invalid file format{': ' + detail if detail else ''}")

        result.encoding = encoding
        result.file = self.path
        result.loaded_from_autosave = source != self.path

        if not result.metadata.group_tree_valid:
            result.add_warning(GROUP_TREE_WARNING)
        if self.config.keyword_sync:
            sync_all(result.entries)
        return result

    def _succeed(self, result: ParserResult) -> OpenOutcome:
        self._enter(OpenSessionState.SUCCEEDED)
        context = ActionContext(ui=self.ui, file=self.path, must_raise_panel=True)
        failures = self.chain.run_all(context, result)

        self.ui.focus_or_create_panel(result, self.path, self.raise_panel)
        if result.has_warnings():
            self.ui.report_warnings(self.path, list(result.warnings))
        self.ui.report_status(f"Opened database '{self.path}' with {result.entry_count} entries.")

        warnings = list(result.warnings)
        if failures:
            warnings.append("Some post-open actions failed: " + ", ".join(f.action_name for f in failures))
        return OpenOutcome(path=self.path, kind=OutcomeKind.OPENED, database=result, warnings=warnings)

    def _fail(self, reason: str) -> OpenOutcome:
        self._enter(OpenSessionState.FAILED)
        self.ui.report_error(self.path, reason)
        return OpenOutcome(path=self.path, kind=OutcomeKind.FAILED, reason=reason)
