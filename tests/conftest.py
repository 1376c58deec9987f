import os
import re
import threading
import time
from pathlib import Path

import pytest

from bibliodesk.opening import (
    AutosaveResolver,
    BibEntry,
    LockCoordinator,
    OpenConfig,
    ParserResult,
    ParsingEngine,
    SidecarPaths,
)

ENTRY = re.compile(r"@(\w+)\s*\{\s*([^,\s]+)\s*,")
FIELD = re.compile(r"^\s*(\w+)\s*=\s*\{([^}]*)\}", re.MULTILINE)


class FakeParsingEngine(ParsingEngine):
    """
    Tiny stand-in for the BibTeX grammar: one `@type{key,` per entry and
    `name = {value}` fields. `INVALID` in the text yields an invalid-format
    result, `EXPLODE` makes parsing raise.
    """

    def __init__(self):
        self.seen = []
        self._lock = threading.Lock()

    def parse(self, reader):
        text = reader.read()
        with self._lock:
            self.seen.append(text)
        if "EXPLODE" in text:
            raise ValueError("parser exploded")
        if "INVALID" in text:
            return ParserResult.invalid("not a bibtex file")
        result = ParserResult()
        seen_keys = set()
        for chunk in re.split(r"(?=@\w+\s*\{)", text):
            match = ENTRY.search(chunk)
            if not match:
                continue
            entry_type, key = match.group(1).lower(), match.group(2)
            fields = {name.lower(): value for name, value in FIELD.findall(chunk)}
            if key in seen_keys and key not in result.duplicate_keys:
                result.duplicate_keys.append(key)
            seen_keys.add(key)
            result.entries.append(BibEntry(key=key, entry_type=entry_type, fields=fields))
            result.entry_types.add(entry_type)
        return result


class RecordingUI:
    def __init__(self, override=False, use_autosave=True, confirm=True):
        self.override = override
        self.use_autosave = use_autosave
        self.confirm_answer = confirm
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def named(self, name):
        return [call for call in self.calls if call[0] == name]

    def prompt_lock_override(self, path, age_millis):
        self._record("prompt_lock_override", path, age_millis)
        return self.override

    def prompt_lock_timeout(self, path):
        self._record("prompt_lock_timeout", path)

    def prompt_use_autosave(self, path):
        self._record("prompt_use_autosave", path)
        return self.use_autosave

    def confirm(self, title, message):
        self._record("confirm", title, message)
        return self.confirm_answer

    def focus_or_create_panel(self, database, file, raise_panel):
        self._record("focus_or_create_panel", file, raise_panel)

    def report_warnings(self, file, warnings):
        self._record("report_warnings", file, list(warnings))

    def report_status(self, message):
        self._record("report_status", message)

    def report_error(self, file, message):
        self._record("report_error", file, message)


def write_bib(path: Path, entries: int, header: str = "", marker: str = "") -> Path:
    body = "".join(
        f"@article{{key{i},\n  title = {{Title {i}}},\n  note = {{{marker}}},\n}}\n\n" for i in range(entries)
    )
    path.write_text(header + body, encoding="utf-8")
    return path


def age_file(path: Path, seconds: float) -> None:
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


@pytest.fixture
def engine():
    return FakeParsingEngine()


@pytest.fixture
def ui():
    return RecordingUI()


@pytest.fixture
def config():
    return OpenConfig(fallback_encoding="UTF-8", prompt_before_using_autosave=True, lock_wait_timeout_seconds=1)


@pytest.fixture
def sidecars():
    return SidecarPaths()


@pytest.fixture
def locks(sidecars):
    return LockCoordinator(paths=sidecars, sleep=lambda _: None, poll_interval=0.5)


@pytest.fixture
def autosaves(sidecars):
    return AutosaveResolver(paths=sidecars)
