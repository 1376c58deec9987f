"""
Example: open one or more BibTeX files through the full open pipeline
(encoding sniffing, lock negotiation, autosave recovery, pybtex parsing and
post-open actions) without a GUI.

Usage:
    python3 opening_demo.py refs.bib other.bib --override-stale-locks --history-db ./data/history.db
"""

import argparse
import logging
from pathlib import Path

from bibliodesk.opening import (
    BatchOpenOrchestrator,
    HeadlessUI,
    OpenConfig,
    OutcomeKind,
    PybtexParsingEngine,
)


def setup_logging(log_file: Path = None):
    handlers = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("files", nargs="+", help="Database files to open")
    parser.add_argument("--encoding", default=None, help="Fallback encoding when a file declares none")
    parser.add_argument("--history-db", default=None, type=Path, help="SQLite file for the recent-files history")
    parser.add_argument("--override-stale-locks", action="store_true", help="Answer yes to stale lock prompts")
    parser.add_argument("--ignore-autosave", action="store_true", help="Answer no to autosave recovery prompts")
    parser.add_argument("--apply-actions", action="store_true", help="Answer yes to post-open migration prompts")
    parser.add_argument("--log-file", default=None, type=Path, help="Also write the log to this file")
    args = parser.parse_args()

    setup_logging(args.log_file)

    config = OpenConfig.from_env()
    if args.encoding:
        config.fallback_encoding = args.encoding
    if args.history_db:
        args.history_db.parent.mkdir(parents=True, exist_ok=True)
        config.history_database_url = f"sqlite+pysqlite:///{args.history_db}"

    ui = HeadlessUI(
        override_stale_locks=args.override_stale_locks,
        use_autosave=not args.ignore_autosave,
        confirm_actions=args.apply_actions,
    )
    with BatchOpenOrchestrator(engine=PybtexParsingEngine(), ui=ui, config=config) as orchestrator:
        outcomes = orchestrator.open_files_as_strings(args.files)
        for outcome in outcomes:
            if outcome.kind == OutcomeKind.OPENED:
                db = outcome.database
                print(f"{outcome.path}: opened {db.entry_count} entries ({db.encoding})")
            else:
                print(f"{outcome.path}: {outcome.kind.value} {outcome.reason or ''}".rstrip())
        print("Recent files:", ", ".join(orchestrator.history.list_recent()))


if __name__ == "__main__":
    main()
