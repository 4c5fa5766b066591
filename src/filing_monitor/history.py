"""History stores remembering which filings were already processed.

Two retention strategies share one contract:

* :class:`SqlHistoryStore` keeps an append-only log of every filing ever
  seen, keyed by the identity triple, plus the change log and the last
  holdings snapshot per category.
* :class:`MemoryHistoryStore` only retains the most recent ``retention``
  filings per category for the lifetime of the process.

``record`` and ``record_filing`` double as an atomic claim: exactly one
caller gets ``True`` for a given filing, however many cycles race on it.
``record_filing`` also writes the filing's snapshot and changes together
with the claim, so a failed write leaves the filing unseen.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from decimal import Decimal
from typing import TYPE_CHECKING, ContextManager, Deque, Dict, Iterable, List, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.engine import Connection, Engine

from .db import (
    change_log,
    create_db_engine,
    ensure_schema,
    filings,
    holding_snapshots,
    insert_if_absent,
    session,
)
from .models import (
    ChangeClassification,
    ChangeRecord,
    FilingCategory,
    FilingReference,
    HistoryEntry,
    Holding,
)

if TYPE_CHECKING:
    from .config import Settings

LOGGER = logging.getLogger(__name__)

Identity = tuple[str, str, str]


class HistoryStore(Protocol):
    #: How many of the newest listed filings per category the store tracks,
    #: ``None`` when it remembers everything.
    tracking_window: Optional[int]

    def has(self, identity: Identity) -> bool:
        ...

    def record(self, reference: FilingReference) -> bool:
        ...

    def record_holding_snapshot(self, category: FilingCategory, holdings: Iterable[Holding]) -> None:
        ...

    def last_holding_snapshot(self, category: FilingCategory) -> Optional[List[Holding]]:
        ...

    def record_changes(self, changes: Iterable[ChangeRecord]) -> None:
        ...

    def record_filing(
        self,
        reference: FilingReference,
        holdings: Optional[Iterable[Holding]] = None,
        changes: Iterable[ChangeRecord] = (),
    ) -> bool:
        ...

    def category_lock(self, category: FilingCategory) -> ContextManager[object]:
        ...

    def recent_entries(self, limit: int = 50) -> List[HistoryEntry]:
        ...

    def recent_changes(self, limit: int = 50) -> List[ChangeRecord]:
        ...


class _CategoryLocks:
    """One re-entrant lock per category, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[FilingCategory, threading.RLock] = {}

    def __call__(self, category: FilingCategory) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(category, threading.RLock())


class MemoryHistoryStore:
    """Bounded in-process history of the newest filings per category."""

    def __init__(self, retention: int = 2) -> None:
        if retention < 1:
            raise ValueError("retention must be at least 1")
        self.retention = retention
        self.tracking_window: Optional[int] = retention
        self._lock = threading.Lock()
        self._filings: Dict[FilingCategory, Deque[FilingReference]] = {}
        self._snapshots: Dict[FilingCategory, List[Holding]] = {}
        self._changes: Deque[ChangeRecord] = deque(maxlen=500)
        self.category_lock = _CategoryLocks()

    def has(self, identity: Identity) -> bool:
        category = FilingCategory.parse(identity[0])
        if category is None:
            return False
        with self._lock:
            retained = self._filings.get(category, ())
            return any(reference.identity == identity for reference in retained)

    def record(self, reference: FilingReference) -> bool:
        return self.record_filing(reference)

    def record_holding_snapshot(self, category: FilingCategory, holdings: Iterable[Holding]) -> None:
        snapshot = list(holdings)
        with self._lock:
            self._snapshots[category] = snapshot

    def last_holding_snapshot(self, category: FilingCategory) -> Optional[List[Holding]]:
        with self._lock:
            snapshot = self._snapshots.get(category)
            return list(snapshot) if snapshot is not None else None

    def record_changes(self, changes: Iterable[ChangeRecord]) -> None:
        with self._lock:
            self._changes.extend(changes)

    def record_filing(
        self,
        reference: FilingReference,
        holdings: Optional[Iterable[Holding]] = None,
        changes: Iterable[ChangeRecord] = (),
    ) -> bool:
        snapshot = list(holdings) if holdings is not None else None
        changes = list(changes)
        with self._lock:
            retained = self._filings.setdefault(
                reference.category, deque(maxlen=self.retention)
            )
            if any(existing.identity == reference.identity for existing in retained):
                return False
            retained.append(reference)
            if snapshot is not None:
                self._snapshots[reference.category] = snapshot
            self._changes.extend(changes)
        LOGGER.info(
            "Recorded %s filing from %s with %d change(s)",
            reference.category.value,
            reference.published_date,
            len(changes),
        )
        return True

    def recent_entries(self, limit: int = 50) -> List[HistoryEntry]:
        with self._lock:
            retained = [reference for queue in self._filings.values() for reference in queue]
        entries = [HistoryEntry.from_reference(reference) for reference in retained]
        entries.sort(key=lambda entry: entry.published_date, reverse=True)
        return entries[:limit]

    def recent_changes(self, limit: int = 50) -> List[ChangeRecord]:
        with self._lock:
            changes = list(self._changes)
        return list(reversed(changes))[:limit]


class SqlHistoryStore:
    """Durable append-only history backed by SQLAlchemy."""

    tracking_window: Optional[int] = None

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.category_lock = _CategoryLocks()
        ensure_schema(engine)

    def has(self, identity: Identity) -> bool:
        category, published_date, document_link = identity
        stmt = (
            select(filings.c.id)
            .where(
                filings.c.category == category,
                filings.c.published_date == published_date,
                filings.c.document_link == document_link,
            )
            .limit(1)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).first() is not None

    def record(self, reference: FilingReference) -> bool:
        return self.record_filing(reference)

    @staticmethod
    def _claim(conn: Connection, reference: FilingReference) -> bool:
        category, published_date, document_link = reference.identity
        return insert_if_absent(
            conn,
            filings,
            {
                "category": category,
                "published_date": published_date,
                "document_link": document_link,
            },
        )

    @staticmethod
    def _replace_snapshot(conn: Connection, category: FilingCategory, holdings: Iterable[Holding]) -> int:
        rows = [
            {
                "category": category.value,
                "position": position,
                "issuer_name": holding.issuer_name,
                "share_count": holding.share_count,
                "reported_value": holding.reported_value,
            }
            for position, holding in enumerate(holdings)
        ]
        conn.execute(delete(holding_snapshots).where(holding_snapshots.c.category == category.value))
        if rows:
            conn.execute(holding_snapshots.insert(), rows)
        return len(rows)

    @staticmethod
    def _append_changes(conn: Connection, changes: Iterable[ChangeRecord]) -> int:
        rows = [
            {
                "published_date": change.source.published_date,
                "category": change.source.category.value,
                "issuer_name": change.issuer_name,
                "previous_share_count": change.previous_share_count,
                "share_count": change.current_share_count,
                "reported_value": change.reported_value,
                "classification": change.classification.value,
                "document_link": change.source.document_link,
            }
            for change in changes
        ]
        if rows:
            conn.execute(change_log.insert(), rows)
        return len(rows)

    def record_holding_snapshot(self, category: FilingCategory, holdings: Iterable[Holding]) -> None:
        with session(self.engine) as conn:
            count = self._replace_snapshot(conn, category, holdings)
        LOGGER.debug("Stored %d-holding snapshot for %s", count, category.value)

    def last_holding_snapshot(self, category: FilingCategory) -> Optional[List[Holding]]:
        stmt = (
            select(
                holding_snapshots.c.issuer_name,
                holding_snapshots.c.share_count,
                holding_snapshots.c.reported_value,
            )
            .where(holding_snapshots.c.category == category.value)
            .order_by(holding_snapshots.c.position)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        if not rows:
            return None
        return [
            Holding(
                issuer_name=row.issuer_name,
                share_count=row.share_count,
                reported_value=Decimal(row.reported_value),
            )
            for row in rows
        ]

    def record_changes(self, changes: Iterable[ChangeRecord]) -> None:
        with session(self.engine) as conn:
            count = self._append_changes(conn, changes)
        if count:
            LOGGER.info("Appended %d change records to the log", count)

    def record_filing(
        self,
        reference: FilingReference,
        holdings: Optional[Iterable[Holding]] = None,
        changes: Iterable[ChangeRecord] = (),
    ) -> bool:
        """Claim ``reference`` and store its snapshot and changes in one transaction.

        Nothing is written when another caller already holds the claim, and a
        failing write rolls the claim back so a later cycle retries the filing.
        """

        with session(self.engine) as conn:
            if not self._claim(conn, reference):
                LOGGER.debug("Filing %s already recorded", reference.document_link)
                return False
            if holdings is not None:
                self._replace_snapshot(conn, reference.category, holdings)
            count = self._append_changes(conn, changes)
        LOGGER.info(
            "Recorded %s filing from %s with %d change(s)",
            reference.category.value,
            reference.published_date,
            count,
        )
        return True

    def recent_entries(self, limit: int = 50) -> List[HistoryEntry]:
        stmt = (
            select(filings.c.category, filings.c.published_date, filings.c.document_link)
            .order_by(filings.c.id.desc())
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        entries: List[HistoryEntry] = []
        for row in rows:
            category = FilingCategory.parse(row.category)
            if category is None:
                continue
            entries.append(
                HistoryEntry(
                    published_date=row.published_date,
                    category=category,
                    document_link=row.document_link,
                )
            )
        return entries

    def recent_changes(self, limit: int = 50) -> List[ChangeRecord]:
        stmt = select(change_log).order_by(change_log.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        changes: List[ChangeRecord] = []
        for row in rows:
            category = FilingCategory.parse(row.category)
            if category is None:
                continue
            changes.append(
                ChangeRecord(
                    issuer_name=row.issuer_name,
                    previous_share_count=row.previous_share_count,
                    current_share_count=row.share_count,
                    reported_value=Decimal(row.reported_value),
                    classification=ChangeClassification(row.classification),
                    source=FilingReference(
                        category=category,
                        published_date=row.published_date,
                        document_link=row.document_link,
                    ),
                )
            )
        return changes


def create_history_store(settings: "Settings") -> HistoryStore:
    """Build the store selected by ``settings.history_backend``."""

    if settings.history_backend == "memory":
        LOGGER.info("Using in-memory history keeping %d filings per category", settings.memory_retention)
        return MemoryHistoryStore(retention=settings.memory_retention)
    LOGGER.info("Using durable history store")
    return SqlHistoryStore(create_db_engine(settings.database_url))


__all__ = [
    "HistoryStore",
    "Identity",
    "MemoryHistoryStore",
    "SqlHistoryStore",
    "create_history_store",
]
