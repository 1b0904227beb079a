"""
Record Repository — load/save of criminal records through a byte gateway.

The engine only needs two operations from storage:
- ``load(key) -> bytes | None``
- ``save(key, data) -> bool``

``InMemoryGateway`` and ``SqlGateway`` implement that contract. The
``RecordRepository`` on top of it creates a record on first lookup, keeps one
live instance per actor, and never lets a bad payload take the host down:
an undecodable record is salvaged field by field and the rest reset to
defaults.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from custody_engine.records.models import Base, StoredRecordDB
from custody_engine.records.schema import CrimeRecord, CriminalRecord, RiskTier
from custody_engine.supervision.record import SupervisionRecord

logger = logging.getLogger(__name__)

RAPSHEET_KIND = "rapsheet"


class RecordDecodeError(Exception):
    """Raised when a persisted payload does not match the record schema."""
    pass


def record_key(actor_id: str, record_kind: str = RAPSHEET_KIND) -> str:
    return f"{actor_id}-{record_kind}"


def split_record_key(key: str) -> tuple[str, str]:
    actor_id, _, record_kind = key.rpartition("-")
    return actor_id, record_kind


# ════════════════════════════════════════════════════════════════
# Gateways
# ════════════════════════════════════════════════════════════════


class PersistenceGateway(Protocol):
    def load(self, key: str) -> bytes | None: ...

    def save(self, key: str, data: bytes) -> bool: ...


class InMemoryGateway:
    """Dictionary-backed gateway for tests and ephemeral worlds."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}

    def load(self, key: str) -> bytes | None:
        return self.blobs.get(key)

    def save(self, key: str, data: bytes) -> bool:
        self.blobs[key] = bytes(data)
        return True


class SqlGateway:
    """
    SQLAlchemy-backed gateway.

    Usage:
        gateway = SqlGateway("sqlite:///custody_engine.db")
        gateway.initialize()
        repository = RecordRepository(gateway)
    """

    def __init__(self, database_url: str) -> None:
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        Base.metadata.create_all(self.engine)

    def load(self, key: str) -> bytes | None:
        with self.SessionLocal() as session:
            row = session.get(StoredRecordDB, key)
            return bytes(row.payload) if row is not None else None

    def save(self, key: str, data: bytes) -> bool:
        actor_id, record_kind = split_record_key(key)
        try:
            with self.SessionLocal() as session:
                row = session.get(StoredRecordDB, key)
                if row is None:
                    session.add(
                        StoredRecordDB(
                            key=key,
                            actor_id=actor_id,
                            record_kind=record_kind,
                            payload=data,
                        )
                    )
                else:
                    row.payload = data
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to save record %s: %s", key, exc)
            return False
        return True

    def actor_ids(self, record_kind: str = RAPSHEET_KIND) -> list[str]:
        with self.SessionLocal() as session:
            rows = session.execute(
                select(StoredRecordDB.actor_id)
                .where(StoredRecordDB.record_kind == record_kind)
                .order_by(StoredRecordDB.actor_id)
            ).scalars()
            return list(rows)


# ════════════════════════════════════════════════════════════════
# Encoding
# ════════════════════════════════════════════════════════════════


def encode_record(record: CriminalRecord) -> bytes:
    return record.model_dump_json().encode("utf-8")


def decode_record(data: bytes) -> CriminalRecord:
    try:
        return CriminalRecord.model_validate_json(data)
    except ValidationError as exc:
        raise RecordDecodeError(str(exc)) from exc


def salvage_record(actor_id: str, data: bytes) -> CriminalRecord:
    """
    Rebuild as much of a damaged record as validates.

    Individually invalid crimes or archived supervisions are dropped; an
    invalid current supervision or risk tier resets to its default.
    """
    record = CriminalRecord(actor_id=actor_id)
    try:
        raw = json.loads(data)
    except (ValueError, UnicodeDecodeError):
        return record
    if not isinstance(raw, dict):
        return record

    record.crimes = _validate_each(CrimeRecord, raw.get("crimes"))
    record.past_supervisions = _validate_each(SupervisionRecord, raw.get("past_supervisions"))

    current = raw.get("current_supervision")
    if current is not None:
        try:
            record.current_supervision = SupervisionRecord.model_validate(current)
        except ValidationError:
            record.current_supervision = None

    try:
        record.risk_tier = RiskTier(raw.get("risk_tier", RiskTier.NONE.value))
    except ValueError:
        record.risk_tier = RiskTier.NONE

    last = raw.get("last_assessment_time")
    if isinstance(last, (int, float)):
        record.last_assessment_time = float(last)

    return record


def _validate_each(model: Any, items: Any) -> list:
    if not isinstance(items, list):
        return []
    valid = []
    for item in items:
        try:
            valid.append(model.model_validate(item))
        except ValidationError:
            continue
    return valid


# ════════════════════════════════════════════════════════════════
# Repository
# ════════════════════════════════════════════════════════════════


class RecordRepository:
    """One live ``CriminalRecord`` per actor, backed by a gateway."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway
        self._records: dict[str, CriminalRecord] = {}

    def get(self, actor_id: str | None) -> CriminalRecord | None:
        """Return the actor's record, loading or creating it on first use."""
        if not actor_id:
            return None

        record = self.find(actor_id)
        if record is None:
            logger.info("No persisted record for %s; starting a clean record", actor_id)
            record = CriminalRecord(actor_id=actor_id)
            self._records[actor_id] = record
        return record

    def find(self, actor_id: str | None) -> CriminalRecord | None:
        """Return the actor's record if one is cached or stored. Never creates."""
        if not actor_id:
            return None

        record = self._records.get(actor_id)
        if record is not None:
            return record

        data = self.gateway.load(record_key(actor_id))
        if data is None:
            return None
        try:
            record = decode_record(data)
        except RecordDecodeError as exc:
            logger.warning(
                "Record for %s failed to decode, salvaging what validates: %s",
                actor_id,
                exc,
            )
            record = salvage_record(actor_id, data)
        record.actor_id = actor_id

        self._records[actor_id] = record
        return record

    def save(self, record: CriminalRecord) -> bool:
        saved = self.gateway.save(record_key(record.actor_id), encode_record(record))
        if not saved:
            logger.warning("Record for %s was not persisted", record.actor_id)
        return saved

    def forget(self, actor_id: str) -> None:
        """Drop the cached instance so the next ``get`` reloads from storage."""
        self._records.pop(actor_id, None)

    def cached_actor_ids(self) -> list[str]:
        return sorted(self._records)
