from __future__ import annotations

import threading
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Set

from sqlalchemy import Column, DateTime, Integer, String, create_engine, delete, func, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import ParserResult
from .storage import canonical_path

Base = declarative_base()


class HistoryModel(Base):
    __tablename__ = "file_history"
    path = Column(String, primary_key=True)
    sequence = Column(Integer, index=True)
    opened_at = Column(DateTime)


class OpenRegistry:
    """
    Live registry of open databases keyed by canonical path, plus the set of
    paths with an open attempt in flight. Shared by all sessions of an
    orchestrator; every read-modify-write happens under one lock.
    """

    def __init__(self):
        self._open: Dict[Path, ParserResult] = {}
        self._in_flight: Set[Path] = set()
        self._lock = threading.Lock()

    def get(self, path: Path) -> Optional[ParserResult]:
        with self._lock:
            return self._open.get(canonical_path(path))

    def add(self, path: Path, database: ParserResult) -> ParserResult:
        """Register `database`; if the path is already registered, keep the first one."""
        key = canonical_path(path)
        with self._lock:
            return self._open.setdefault(key, database)

    def remove(self, path: Path) -> Optional[ParserResult]:
        with self._lock:
            return self._open.pop(canonical_path(path), None)

    def reserve(self, path: Path) -> bool:
        """Mark an attempt as in flight. False if open or already in flight."""
        key = canonical_path(path)
        with self._lock:
            if key in self._open or key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def release(self, path: Path) -> None:
        with self._lock:
            self._in_flight.discard(canonical_path(path))

    def open_paths(self) -> List[Path]:
        with self._lock:
            return list(self._open)

    def __len__(self) -> int:
        with self._lock:
            return len(self._open)


class HistoryRepository:
    """
    Recently opened files, most recent first. Re-recording a path moves it
    to the front; the list is capped at `max_size`.
    """

    max_size: int = 8

    def record(self, path: str) -> None:
        raise NotImplementedError

    def list_recent(self) -> List[str]:
        raise NotImplementedError

    def remove(self, path: str) -> None:
        raise NotImplementedError


class InMemoryHistoryRepository(HistoryRepository):
    def __init__(self, max_size: int = 8):
        self.max_size = max_size
        self.items: List[str] = []
        self._lock = threading.Lock()

    def record(self, path: str) -> None:
        with self._lock:
            if path in self.items:
                self.items.remove(path)
            self.items.insert(0, path)
            del self.items[self.max_size:]

    def list_recent(self) -> List[str]:
        with self._lock:
            return deepcopy(self.items)

    def remove(self, path: str) -> None:
        with self._lock:
            if path in self.items:
                self.items.remove(path)


class SqlAlchemyHistoryRepository(HistoryRepository):
    """
    SQL-backed history using SQLAlchemy, so the list survives restarts.
    Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str, max_size: int = 8):
        self.max_size = max_size
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        self._lock = threading.Lock()

    def _session(self) -> Session:
        return self.SessionLocal()

    def record(self, path: str) -> None:
        with self._lock, self._session() as session:
            top = session.execute(select(func.max(HistoryModel.sequence))).scalar() or 0
            session.merge(HistoryModel(path=path, sequence=top + 1, opened_at=datetime.utcnow()))
            session.flush()
            stale = (
                session.execute(select(HistoryModel.path).order_by(HistoryModel.sequence.desc()).offset(self.max_size))
                .scalars()
                .all()
            )
            if stale:
                session.execute(delete(HistoryModel).where(HistoryModel.path.in_(stale)))
            session.commit()

    def list_recent(self) -> List[str]:
        with self._session() as session:
            stmt = select(HistoryModel.path).order_by(HistoryModel.sequence.desc()).limit(self.max_size)
            return list(session.execute(stmt).scalars().all())

    def remove(self, path: str) -> None:
        with self._lock, self._session() as session:
            session.execute(delete(HistoryModel).where(HistoryModel.path == path))
            session.commit()
