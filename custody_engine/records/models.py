"""
Record Store — SQLAlchemy models for persisted actor records.

Each row holds one serialized record keyed by ``"{actor_id}-{record_kind}"``.
The payload is the JSON produced by the pydantic schema, so the table never
needs to change when the record shape grows.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, LargeBinary, String, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for record storage."""
    pass


class StoredRecordDB(Base):
    """A persisted actor record blob."""

    __tablename__ = "stored_records"

    key = Column(
        String(200),
        primary_key=True,
        comment="Composite key: {actor_id}-{record_kind}",
    )
    actor_id = Column(String(160), nullable=False, comment="Owning actor")
    record_kind = Column(String(40), nullable=False, comment="e.g. rapsheet")
    payload = Column(LargeBinary, nullable=False, comment="Serialized record (JSON)")
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Wall-clock time of the last save",
    )

    __table_args__ = (
        Index("ix_stored_records_actor_kind", "actor_id", "record_kind"),
    )

    def __repr__(self) -> str:
        return f"<StoredRecord {self.key} ({len(self.payload or b'')} bytes)>"
