from pathlib import Path

from bibliodesk.opening import BibEntry, OpenConfig
from bibliodesk.opening.config import LOCK_CRITICAL_AGE_MILLIS, LOCK_WAIT_TIMEOUT_SECONDS
from bibliodesk.opening.orchestrator import build_history
from bibliodesk.opening.registry import InMemoryHistoryRepository, SqlAlchemyHistoryRepository
from bibliodesk.opening.special_fields import parse_keywords, sync_special_fields_from_keywords


def test_config_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BIBLIODESK_DEFAULT_ENCODING", "ISO-8859-1")
    monkeypatch.setenv("BIBLIODESK_PROMPT_BEFORE_USING_AUTOSAVE", "no")
    monkeypatch.setenv("BIBLIODESK_HISTORY_SIZE", "3")
    monkeypatch.setenv("BIBLIODESK_HISTORY_DB", f"sqlite+pysqlite:///{tmp_path / 'h.db'}")

    config = OpenConfig.from_env()

    assert config.fallback_encoding == "ISO-8859-1"
    assert config.prompt_before_using_autosave is False
    assert config.keyword_sync is True
    assert config.history_size == 3
    assert config.lock_wait_timeout_seconds == LOCK_WAIT_TIMEOUT_SECONDS
    assert config.lock_critical_age_millis == LOCK_CRITICAL_AGE_MILLIS
    assert config.working_directory == Path(".")
    history = build_history(config)
    assert isinstance(history, SqlAlchemyHistoryRepository)
    assert history.max_size == 3


def test_default_history_is_in_memory():
    assert isinstance(build_history(OpenConfig()), InMemoryHistoryRepository)


def test_keyword_parsing_and_sync_round():
    assert parse_keywords("rank2; read , ,ml") == ["rank2", "read", "ml"]
    entry = BibEntry("k", "misc", {"keywords": "rank2, read", "readstatus": "skimmed"})
    assert sync_special_fields_from_keywords(entry)
    assert entry.get("ranking") == "rank2"
    assert entry.get("readstatus") == "read"
    assert not sync_special_fields_from_keywords(entry)


def test_headless_ui_answers_from_defaults(tmp_path):
    from bibliodesk.opening import HeadlessUI
    from bibliodesk.opening.ui import format_warnings

    ui = HeadlessUI(override_stale_locks=True, use_autosave=False)
    assert ui.prompt_lock_override(tmp_path / "a.bib", 70_000)
    assert not ui.prompt_use_autosave(tmp_path / "a.bib")
    assert not ui.confirm("title", "message")
    ui.focus_or_create_panel(None, tmp_path / "a.bib", True)
    ui.focus_or_create_panel(None, tmp_path / "a.bib", False)
    assert ui.panels == [tmp_path / "a.bib"]
    assert format_warnings(["first", "second"]) == "1. first\n2. second"


def test_sync_leaves_entries_without_keywords_alone():
    entry = BibEntry("k", "misc", {"ranking": "rank2", "priority": "prio1"})
    assert not sync_special_fields_from_keywords(entry)
    assert entry.fields == {"ranking": "rank2", "priority": "prio1"}


def test_working_directory_updates_from_many_threads(tmp_path):
    import threading

    config = OpenConfig()
    directories = [tmp_path / f"d{i}" for i in range(8)]
    threads = [threading.Thread(target=config.remember_working_directory, args=(d,)) for d in directories]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert config.working_directory in directories
