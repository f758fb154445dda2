"""SQLAlchemy-backed record store.

Maps production records onto a relational schema with a database-level
unique constraint on the identity key.  Every operation runs in its own
transaction; ``replace_all`` deletes and re-inserts inside one
transaction so a failure rolls back to the previous contents.

Surrogate ids are allocated from a ``store_meta`` counter rather than
the database's autoincrement so that an id is never handed out twice,
even after the highest row has been deleted.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.pool import StaticPool

from ..errors import ConflictError, NotFoundError
from ..models import (
    IdentityKey,
    ProductionRecord,
    RecordInput,
    SyncLogEntry,
    utc_now,
)
from .base import RecordStore, build_replacement

logger = logging.getLogger(__name__)

_NEXT_ID_KEY = "next_record_id"


class Base(DeclarativeBase):
    """Base class for the store's ORM models."""

    pass


class ProductionRecordRow(Base):
    """ORM model: maps to the 'production_records' table."""

    __tablename__ = "production_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    peer_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    animator: Mapped[str] = mapped_column(String(255), nullable=False)
    project_type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    scene: Mapped[str] = mapped_column(String(100), nullable=False)
    shot: Mapped[str] = mapped_column(String(100), nullable=False)
    week_code: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "project_type", "title", "scene", "shot", name="uq_production_identity"
        ),
        CheckConstraint(
            "project_type IN ('long-form', 'short-form')", name="ck_project_type"
        ),
        CheckConstraint(
            "status IN ('submitted', 'approved', 'revision')", name="ck_status"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ProductionRecordRow(id={self.id}, "
            f"key='{self.project_type}/{self.title}/{self.scene}/{self.shot}')>"
        )


class SyncLogRow(Base):
    """ORM model: maps to the append-only 'sync_log' table."""

    __tablename__ = "sync_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    local_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    peer_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StoreMetaRow(Base):
    """Key/value counters owned by the store."""

    __tablename__ = "store_meta"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def create_sql_engine(database_url: str) -> Engine:
    """Create an engine for *database_url*, preparing SQLite paths."""
    url = make_url(database_url)
    kwargs: dict[str, Any] = {}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if not url.database or url.database == ":memory:":
            kwargs["poolclass"] = StaticPool
        else:
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, **kwargs)


class SqlRecordStore(RecordStore):
    """Record store on any SQLAlchemy-supported database.

    Args:
        database_url: SQLAlchemy URL, e.g. ``sqlite:///data/records.db``.
        engine: Pre-built engine (takes precedence over *database_url*).
    """

    def __init__(
        self,
        database_url: str = "sqlite://",
        engine: Engine | None = None,
    ) -> None:
        self._engine = engine or create_sql_engine(database_url)
        self._lock = threading.RLock()
        Base.metadata.create_all(self._engine)
        logger.info("SQL record store ready: %s", self._engine.url.render_as_string(hide_password=True))

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_record(row: ProductionRecordRow) -> ProductionRecord:
        return ProductionRecord(
            id=row.id,
            peer_id=row.peer_id,
            animator=row.animator,
            project_type=row.project_type,
            title=row.title,
            scene=row.scene,
            shot=row.shot,
            week_code=row.week_code,
            status=row.status,
            notes=row.notes or "",
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
            last_synced_at=_aware(row.last_synced_at),
        )

    @staticmethod
    def _to_row(record: ProductionRecord) -> ProductionRecordRow:
        return ProductionRecordRow(
            id=record.id,
            peer_id=record.peer_id,
            animator=record.animator,
            project_type=record.project_type.value,
            title=record.title,
            scene=record.scene,
            shot=record.shot,
            week_code=record.week_code,
            status=record.status.value,
            notes=record.notes,
            created_at=record.created_at,
            updated_at=record.updated_at,
            last_synced_at=record.last_synced_at,
        )

    @staticmethod
    def _apply_fields(row: ProductionRecordRow, fields: RecordInput) -> None:
        row.animator = fields.animator
        row.project_type = fields.project_type.value
        row.title = fields.title
        row.scene = fields.scene
        row.shot = fields.shot
        row.week_code = fields.week_code
        row.status = fields.status.value
        row.notes = fields.notes

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self) -> list[ProductionRecord]:
        with self._lock, Session(self._engine) as session:
            rows = session.scalars(
                select(ProductionRecordRow).order_by(
                    ProductionRecordRow.updated_at.desc(),
                    ProductionRecordRow.id.desc(),
                )
            ).all()
            return [self._to_record(row) for row in rows]

    def get(self, record_id: int) -> ProductionRecord:
        with self._lock, Session(self._engine) as session:
            row = session.get(ProductionRecordRow, record_id)
            if row is None:
                raise NotFoundError(
                    f"Record {record_id} not found", record_id=record_id
                )
            return self._to_record(row)

    def find_by_identity(self, key: IdentityKey) -> ProductionRecord | None:
        with self._lock, Session(self._engine) as session:
            row = self._identity_row(session, key)
            return self._to_record(row) if row is not None else None

    def find_by_peer_id(self, peer_id: int) -> ProductionRecord | None:
        with self._lock, Session(self._engine) as session:
            row = session.scalars(
                select(ProductionRecordRow).where(
                    ProductionRecordRow.peer_id == peer_id
                )
            ).first()
            return self._to_record(row) if row is not None else None

    def get_unsynced(self) -> list[ProductionRecord]:
        with self._lock, Session(self._engine) as session:
            rows = session.scalars(
                select(ProductionRecordRow)
                .where(
                    or_(
                        ProductionRecordRow.last_synced_at.is_(None),
                        ProductionRecordRow.last_synced_at
                        < ProductionRecordRow.updated_at,
                    )
                )
                .order_by(ProductionRecordRow.updated_at, ProductionRecordRow.id)
            ).all()
            return [self._to_record(row) for row in rows]

    # ------------------------------------------------------------------
    # Point mutations
    # ------------------------------------------------------------------

    def insert(
        self,
        fields: RecordInput,
        *,
        peer_id: int | None = None,
        synced: bool = False,
    ) -> ProductionRecord:
        with self._lock, Session(self._engine) as session:
            existing = self._identity_row(session, fields.identity_key)
            if existing is not None:
                raise ConflictError(
                    "A record already exists for "
                    + " / ".join(fields.identity_key),
                    existing=self._to_record(existing),
                )
            now = utc_now()
            row = ProductionRecordRow(
                id=self._allocate_id(session),
                peer_id=peer_id,
                created_at=now,
                updated_at=now,
                last_synced_at=now if synced else None,
            )
            self._apply_fields(row, fields)
            session.add(row)
            self._commit(session, fields.identity_key)
            logger.debug("Inserted record %d", row.id)
            return self._to_record(row)

    def update(
        self,
        record_id: int,
        fields: RecordInput,
        *,
        peer_id: int | None = None,
        synced: bool = False,
    ) -> ProductionRecord:
        with self._lock, Session(self._engine) as session:
            row = session.get(ProductionRecordRow, record_id)
            if row is None:
                raise NotFoundError(
                    f"Record {record_id} not found", record_id=record_id
                )
            clash = self._identity_row(session, fields.identity_key)
            if clash is not None and clash.id != record_id:
                raise ConflictError(
                    "Another record already exists for "
                    + " / ".join(fields.identity_key),
                    existing=self._to_record(clash),
                )
            now = utc_now()
            self._apply_fields(row, fields)
            row.updated_at = now
            if peer_id is not None:
                row.peer_id = peer_id
            if synced:
                row.last_synced_at = now
            self._commit(session, fields.identity_key)
            return self._to_record(row)

    def delete(self, record_id: int) -> ProductionRecord:
        with self._lock, Session(self._engine) as session:
            row = session.get(ProductionRecordRow, record_id)
            if row is None:
                raise NotFoundError(
                    f"Record {record_id} not found", record_id=record_id
                )
            removed = self._to_record(row)
            session.delete(row)
            session.commit()
            return removed

    def replace_all(self, records: Sequence[ProductionRecord]) -> None:
        with self._lock, Session(self._engine) as session:
            try:
                replacement, next_id = build_replacement(
                    records, self._peek_next_id(session)
                )
                session.execute(delete(ProductionRecordRow))
                session.flush()
                session.add_all(self._to_row(r) for r in replacement.values())
                self._set_next_id(session, next_id)
                session.commit()
            except BaseException:
                session.rollback()
                raise
        logger.info("Replaced record set: %d records", len(replacement))

    # ------------------------------------------------------------------
    # Sync metadata
    # ------------------------------------------------------------------

    def mark_synced(
        self,
        record_ids: Iterable[int],
        *,
        synced_at: datetime | None = None,
    ) -> None:
        ids = list(record_ids)
        if not ids:
            return
        stamp = synced_at or utc_now()
        with self._lock, Session(self._engine) as session:
            rows = session.scalars(
                select(ProductionRecordRow).where(ProductionRecordRow.id.in_(ids))
            ).all()
            for row in rows:
                row.last_synced_at = stamp
            session.commit()

    def assign_peer_id(self, record_id: int, peer_id: int) -> ProductionRecord:
        with self._lock, Session(self._engine) as session:
            row = session.get(ProductionRecordRow, record_id)
            if row is None:
                raise NotFoundError(
                    f"Record {record_id} not found", record_id=record_id
                )
            row.peer_id = peer_id
            session.commit()
            return self._to_record(row)

    def append_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        with self._lock, Session(self._engine) as session:
            row = SyncLogRow(
                direction=entry.direction.value,
                action=entry.action.value,
                outcome=entry.outcome.value,
                local_id=entry.local_id,
                peer_id=entry.peer_id,
                error=entry.error,
                payload=entry.model_dump(mode="json")["payload"],
                severity=entry.severity.value,
                source=entry.source.value,
                created_at=entry.created_at,
            )
            session.add(row)
            session.commit()
            return entry.model_copy(update={"id": row.id})

    def get_sync_log(self, limit: int | None = None) -> list[SyncLogEntry]:
        with self._lock, Session(self._engine) as session:
            query = select(SyncLogRow).order_by(SyncLogRow.id.desc())
            if limit is not None:
                query = query.limit(max(limit, 0))
            rows = list(reversed(session.scalars(query).all()))
            return [
                SyncLogEntry(
                    id=row.id,
                    direction=row.direction,
                    action=row.action,
                    outcome=row.outcome,
                    local_id=row.local_id,
                    peer_id=row.peer_id,
                    error=row.error,
                    payload=row.payload or {},
                    severity=row.severity,
                    source=row.source,
                    created_at=_aware(row.created_at),
                )
                for row in rows
            ]

    def close(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _identity_row(
        session: Session, key: IdentityKey
    ) -> ProductionRecordRow | None:
        project_type, title, scene, shot = key
        return session.scalars(
            select(ProductionRecordRow).where(
                ProductionRecordRow.project_type == project_type,
                ProductionRecordRow.title == title,
                ProductionRecordRow.scene == scene,
                ProductionRecordRow.shot == shot,
            )
        ).first()

    def _peek_next_id(self, session: Session) -> int:
        meta = session.get(StoreMetaRow, _NEXT_ID_KEY)
        if meta is not None:
            return meta.value
        highest = session.scalar(select(func.max(ProductionRecordRow.id)))
        return (highest or 0) + 1

    def _set_next_id(self, session: Session, next_id: int) -> None:
        meta = session.get(StoreMetaRow, _NEXT_ID_KEY)
        if meta is None:
            session.add(StoreMetaRow(key=_NEXT_ID_KEY, value=next_id))
        else:
            meta.value = next_id

    def _allocate_id(self, session: Session) -> int:
        record_id = self._peek_next_id(session)
        self._set_next_id(session, record_id + 1)
        return record_id

    def _commit(self, session: Session, key: IdentityKey) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(
                "A record already exists for " + " / ".join(key)
            ) from exc
