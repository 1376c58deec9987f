"""
Post-open actions: checks and migrations that run against every freshly
parsed database, in registration order. Each action decides for itself
whether it applies, and applying it twice is the same as applying it once.
"""

from __future__ import annotations

import logging
import string
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from .errors import PostOpenActionFailure
from .models import BibEntry, ParserResult
from .ui import UICollaborator

logger = logging.getLogger(__name__)

STANDARD_ENTRY_TYPES = frozenset(
    {
        "article",
        "book",
        "booklet",
        "conference",
        "electronic",
        "inbook",
        "incollection",
        "inproceedings",
        "manual",
        "mastersthesis",
        "misc",
        "other",
        "patent",
        "periodical",
        "phdthesis",
        "proceedings",
        "standard",
        "techreport",
        "unpublished",
    }
)

LEGACY_LINK_FIELDS = (("pdf", "PDF"), ("ps", "PS"))
FILE_FIELD = "file"


class EntryTypeRegistry:
    """Entry types the application knows about. Shared across sessions."""

    def __init__(self, known: Iterable[str] = STANDARD_ENTRY_TYPES):
        self._types: Set[str] = {name.lower() for name in known}
        self._lock = threading.Lock()

    def unknown(self, names: Iterable[str]) -> List[str]:
        with self._lock:
            return sorted({name.lower() for name in names} - self._types)

    def register(self, names: Iterable[str]) -> None:
        with self._lock:
            self._types.update(name.lower() for name in names)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._types


@dataclass
class ActionContext:
    ui: UICollaborator
    file: Path
    must_raise_panel: bool = True


class PostOpenAction(Protocol):
    name: str

    def is_necessary(self, result: ParserResult) -> bool:
        ...

    def apply(self, context: ActionContext, result: ParserResult) -> None:
        ...


class CheckForNewEntryTypesAction:
    name = "new-entry-types"

    def __init__(self, registry: EntryTypeRegistry):
        self.registry = registry

    def is_necessary(self, result: ParserResult) -> bool:
        return bool(self.registry.unknown(result.entry_types))

    def apply(self, context: ActionContext, result: ParserResult) -> None:
        new_types = self.registry.unknown(result.entry_types)
        if not new_types:
            return
        message = "Custom entry types found in file: " + ", ".join(new_types) + ". Import them?"
        if context.ui.confirm("Custom entry types", message):
            self.registry.register(new_types)
            logger.info("Imported entry types %s from %s", new_types, context.file)


def _legacy_links(entry: BibEntry) -> List[Tuple[str, str]]:
    return [(name, file_type) for name, file_type in LEGACY_LINK_FIELDS if entry.get(name)]


def upgrade_file_links(entry: BibEntry) -> bool:
    """Move `pdf`/`ps` links into the `file` field. Returns True if changed."""
    links = _legacy_links(entry)
    if not links:
        return False
    parts = [part for part in (entry.get(FILE_FIELD) or "").split(";") if part]
    for name, file_type in links:
        link = f":{entry.get(name)}:{file_type}"
        if link not in parts:
            parts.append(link)
        entry.clear(name)
    entry.set(FILE_FIELD, ";".join(parts))
    return True


class FileLinksUpgradeAction:
    name = "file-links-upgrade"

    def is_necessary(self, result: ParserResult) -> bool:
        return any(_legacy_links(entry) for entry in result.entries)

    def apply(self, context: ActionContext, result: ParserResult) -> None:
        message = (
            "This database uses outdated file links (pdf/ps fields). "
            "Do you want to move them into the file field?"
        )
        if not context.ui.confirm("Upgrade file links", message):
            return
        upgraded = sum(1 for entry in result.entries if upgrade_file_links(entry))
        logger.info("Upgraded file links in %s entries of %s", upgraded, context.file)


def _key_suffixes():
    for letter in string.ascii_lowercase[1:]:
        yield letter
    counter = 2
    while True:
        yield str(counter)
        counter += 1


def resolve_duplicate_keys(entries: Sequence[BibEntry], duplicates: Iterable[str]) -> List[Tuple[str, str]]:
    """
    Rename the second and later holders of each duplicate key. Returns the
    list of (old, new) renames.
    """
    used = {entry.key.lower() for entry in entries}
    renames: List[Tuple[str, str]] = []
    for duplicate in duplicates:
        holders = [entry for entry in entries if entry.key.lower() == duplicate.lower()]
        suffixes = _key_suffixes()
        for entry in holders[1:]:
            candidate = duplicate + next(suffixes)
            while candidate.lower() in used:
                candidate = duplicate + next(suffixes)
            used.add(candidate.lower())
            renames.append((entry.key, candidate))
            entry.key = candidate
    return renames


class HandleDuplicateKeysAction:
    name = "duplicate-keys"

    def is_necessary(self, result: ParserResult) -> bool:
        return bool(result.duplicate_keys)

    def apply(self, context: ActionContext, result: ParserResult) -> None:
        keys = ", ".join(result.duplicate_keys)
        message = f"This database contains duplicate BibTeX keys ({keys}). Do you want to resolve them now?"
        if not context.ui.confirm("Duplicate BibTeX keys", message):
            return
        renames = resolve_duplicate_keys(result.entries, result.duplicate_keys)
        result.duplicate_keys = []
        logger.info("Resolved duplicate keys in %s: %s", context.file, renames)


def default_actions(registry: EntryTypeRegistry) -> Tuple[PostOpenAction, ...]:
    return (
        CheckForNewEntryTypesAction(registry),
        FileLinksUpgradeAction(),
        HandleDuplicateKeysAction(),
    )


class PostOpenActionChain:
    """
    Runs every registered action whose `is_necessary` holds. A failing action
    does not stop the chain; failures are collected and reported once.
    """

    def __init__(self, actions: Sequence[PostOpenAction]):
        self.actions: Tuple[PostOpenAction, ...] = tuple(actions)

    def run_all(self, context: ActionContext, result: ParserResult) -> List[PostOpenActionFailure]:
        failures: List[PostOpenActionFailure] = []
        for action in self.actions:
            try:
                if not action.is_necessary(result):
                    continue
                if context.must_raise_panel:
                    context.ui.focus_or_create_panel(result, context.file, True)
                action.apply(context, result)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Post-open action %s failed for %s", action.name, context.file)
                failures.append(PostOpenActionFailure(action.name, exc))
        if failures:
            names = ", ".join(failure.action_name for failure in failures)
            context.ui.report_warnings(context.file, [f"Some post-open actions failed: {names}"])
        return failures

    def names(self) -> List[str]:
        return [action.name for action in self.actions]


def build_chain(registry: Optional[EntryTypeRegistry] = None) -> PostOpenActionChain:
    return PostOpenActionChain(default_actions(registry or EntryTypeRegistry()))
