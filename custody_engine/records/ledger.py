"""
Crime Ledger — per-actor, time-decaying record of committed offenses.

The ledger wraps one persisted ``CriminalRecord`` and is the only writer of
it. Every mutation:
1. Prunes expired crimes (expiry is lazy; there is no background sweep)
2. Applies the change
3. Re-assesses risk if the actor is under supervision
4. Persists the record

Supervision transitions also go through the ledger, because a supervision
start or violation must re-run the risk assessment and archive completed
periods into the record's history.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import TYPE_CHECKING, Iterable

from custody_engine.records.schema import (
    CrimeRecord,
    CriminalRecord,
    OffenseType,
    Point3,
    RiskTier,
    fine_for,
    offense_tag,
)
from custody_engine.supervision.record import (
    SupervisionKind,
    SupervisionRecord,
    SupervisionStatus,
    Violation,
)

if TYPE_CHECKING:
    from custody_engine.assessment.risk import RiskAssessor
    from custody_engine.records.store import RecordRepository
    from custody_engine.world.clock import WorldClock
    from custody_engine.world.locks import ActorLocks

logger = logging.getLogger(__name__)

MAX_WANTED_LEVEL = 10.0


class CrimeLedger:
    """
    The crime ledger for a single actor.

    Usage:
        ledger = book.get("actor-7")
        crime = ledger.add_crime(OffenseType.THEFT, Point3(x=4, y=0, z=2))
        ledger.add_witness(crime, "npc-12")
        ledger.wanted_level()
    """

    def __init__(
        self,
        record: CriminalRecord,
        clock: WorldClock,
        assessor: RiskAssessor | None = None,
        repository: RecordRepository | None = None,
        lock: threading.RLock | None = None,
    ) -> None:
        self.record = record
        self.clock = clock
        self.assessor = assessor
        self.repository = repository
        self.lock = lock if lock is not None else threading.RLock()
        self._wanted_level = 0.0

    @property
    def actor_id(self) -> str:
        return self.record.actor_id

    def now(self) -> float:
        return self.clock.current_world_minutes()

    # ── Crimes ─────────────────────────────────────────────────

    def add_crime(
        self,
        offense: OffenseType | str,
        location: Point3 | None = None,
        severity: float = 1.0,
        description: str = "",
        witness_ids: Iterable[str] = (),
    ) -> CrimeRecord:
        """Append a crime stamped with the current world time."""
        with self.lock:
            self._prune_expired()
            crime = CrimeRecord(
                offense_type=offense_tag(offense),
                timestamp=self.now(),
                location=location or Point3(),
                severity=severity,
                description=description,
            )
            for witness_id in witness_ids:
                crime.add_witness(witness_id)
            self.record.crimes.append(crime)

            logger.info(
                "Crime recorded: actor=%s type=%s severity=%.1f witnesses=%d",
                self.actor_id,
                crime.offense_type,
                crime.severity,
                len(crime.witness_ids),
            )
            self._after_mutation()
            return crime

    def add_witness(self, crime: CrimeRecord | int, witness_id: str) -> bool:
        """Add a witness to a crime given by reference or index. Idempotent."""
        with self.lock:
            target = self._resolve(crime)
            if target is None or not target.add_witness(witness_id):
                return False
            self._after_mutation()
            return True

    def contribution_to_wanted_level(self, crime: CrimeRecord) -> float:
        return crime.contribution_to_wanted_level(self.now())

    def should_expire(self, crime: CrimeRecord) -> bool:
        return crime.should_expire(self.now())

    def wanted_level(self) -> float:
        with self.lock:
            self._prune_expired()
            now = self.now()
            total = sum(c.contribution_to_wanted_level(now) for c in self.record.crimes)
            self._wanted_level = min(MAX_WANTED_LEVEL, max(0.0, total))
            return self._wanted_level

    @property
    def cached_wanted_level(self) -> float:
        """Wanted level as of the last query, without re-evaluating decay."""
        return self._wanted_level

    def active_crimes(self) -> list[CrimeRecord]:
        with self.lock:
            self._prune_expired()
            return list(self.record.crimes)

    @property
    def crime_count(self) -> int:
        return len(self.active_crimes())

    def calculate_total_fines(self) -> float:
        return sum(fine_for(c.offense_type) * c.severity for c in self.active_crimes())

    def crime_counts_by_type(self) -> dict[str, int]:
        return dict(Counter(c.offense_type for c in self.active_crimes()))

    def count_of(self, offenses: Iterable[OffenseType | str]) -> int:
        tags = {offense_tag(o) for o in offenses}
        return sum(1 for c in self.active_crimes() if c.offense_type in tags)

    def summary(self) -> str:
        counts = self.crime_counts_by_type()
        if not counts:
            return "No active charges"
        return ", ".join(
            f"{name} x{count}" if count > 1 else name
            for name, count in sorted(counts.items())
        )

    def clear_all(self) -> None:
        """Empty the ledger after a sentence is served or paid."""
        with self.lock:
            removed = len(self.record.crimes)
            self.record.crimes.clear()
            self._wanted_level = 0.0
            logger.info("Ledger cleared: actor=%s removed=%d", self.actor_id, removed)
            self._after_mutation()

    # ── Supervision ────────────────────────────────────────────

    @property
    def supervision(self) -> SupervisionRecord | None:
        return self.record.current_supervision

    def start_supervision(
        self,
        duration_minutes: float,
        kind: SupervisionKind = SupervisionKind.PAROLE,
    ) -> bool:
        """Open a new supervision period and run the initial assessment."""
        with self.lock:
            current = self.record.current_supervision
            if current is not None and current.is_active:
                logger.info("Supervision already active for %s", self.actor_id)
                return False
            if current is not None and current.status in (
                SupervisionStatus.COMPLETED,
                SupervisionStatus.REVOKED,
            ):
                self.archive_current_supervision()

            supervision = SupervisionRecord(kind=kind)
            if not supervision.start(duration_minutes, self.now()):
                return False
            self.record.current_supervision = supervision
            self.reassess()
            self._persist()
            return True

    def pause_supervision(self) -> bool:
        return self._supervision_step(lambda s: s.pause(self.now()))

    def resume_supervision(self) -> bool:
        return self._supervision_step(lambda s: s.resume(self.now()))

    def extend_paused_supervision(self, delta_minutes: float) -> bool:
        return self._supervision_step(lambda s: s.extend_paused(delta_minutes))

    def extend_active_supervision(self, delta_minutes: float) -> bool:
        return self._supervision_step(lambda s: s.extend_active(delta_minutes))

    def record_check_in(self) -> bool:
        return self._supervision_step(lambda s: s.record_check_in(self.now()))

    def record_missed_check_in(self) -> bool:
        return self._supervision_step(lambda s: s.record_missed_check_in())

    def add_violation(self, violation: Violation) -> bool:
        """Append a violation and re-run the risk assessment."""
        with self.lock:
            supervision = self.record.current_supervision
            if supervision is None or not supervision.add_violation(violation):
                return False
            self.reassess()
            self._persist()
            return True

    def end_supervision(self) -> bool:
        """Complete the current period and archive it."""
        with self.lock:
            supervision = self.record.current_supervision
            if supervision is None or not supervision.end(self.now()):
                return False
            self.archive_current_supervision()
            return True

    def revoke_supervision(self) -> bool:
        """Revoke the current period and archive it."""
        with self.lock:
            supervision = self.record.current_supervision
            if supervision is None or not supervision.revoke(self.now()):
                return False
            self.archive_current_supervision()
            return True

    def archive_current_supervision(self) -> bool:
        with self.lock:
            supervision = self.record.current_supervision
            if supervision is None:
                return False
            self.record.past_supervisions.append(supervision)
            self.record.current_supervision = None
            logger.info(
                "Supervision archived: actor=%s status=%s past=%d",
                self.actor_id,
                supervision.status.value,
                self.record.past_supervision_count,
            )
            self._persist()
            return True

    # ── Risk ───────────────────────────────────────────────────

    @property
    def risk_tier(self) -> RiskTier:
        with self.lock:
            self._prune_expired()
            return self.record.risk_tier

    def reassess(self) -> RiskTier:
        with self.lock:
            if self.assessor is None:
                return self.record.risk_tier
            tier = self.assessor.reassess(self)
            self._persist()
            return tier

    # ── Internal ──────────────────────────────────────────────

    def _resolve(self, crime: CrimeRecord | int) -> CrimeRecord | None:
        crimes = self.record.crimes
        if isinstance(crime, int):
            return crimes[crime] if 0 <= crime < len(crimes) else None
        for candidate in crimes:
            if candidate is crime:
                return candidate
        return None

    def _prune_expired(self) -> None:
        now = self.now()
        kept = [c for c in self.record.crimes if not c.should_expire(now)]
        expired = len(self.record.crimes) - len(kept)
        if expired:
            self.record.crimes[:] = kept
            logger.debug("Expired %d crime(s) for %s", expired, self.actor_id)
            if self.record.is_under_supervision:
                self.reassess()
            self._persist()

    def _supervision_step(self, step) -> bool:
        with self.lock:
            supervision = self.record.current_supervision
            if supervision is None or not step(supervision):
                return False
            self._persist()
            return True

    def _after_mutation(self) -> None:
        if self.record.is_under_supervision:
            self.reassess()
        self._persist()

    def _persist(self) -> None:
        if self.repository is not None:
            self.repository.save(self.record)


class LedgerBook:
    """Hands out one ``CrimeLedger`` per actor, sharing the actor's lock."""

    def __init__(
        self,
        repository: RecordRepository,
        clock: WorldClock,
        assessor: RiskAssessor | None = None,
        locks: ActorLocks | None = None,
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.assessor = assessor
        self.locks = locks
        self._ledgers: dict[str, CrimeLedger] = {}

    def get(self, actor_id: str | None) -> CrimeLedger | None:
        if not actor_id:
            return None
        ledger = self._ledgers.get(actor_id)
        if ledger is not None:
            return ledger
        return self._wrap(self.repository.get(actor_id))

    def find(self, actor_id: str | None) -> CrimeLedger | None:
        """Like ``get``, but returns None for an actor with no record instead of creating one."""
        if not actor_id:
            return None
        ledger = self._ledgers.get(actor_id)
        if ledger is not None:
            return ledger
        return self._wrap(self.repository.find(actor_id))

    def _wrap(self, record: CriminalRecord | None) -> CrimeLedger | None:
        if record is None:
            return None
        actor_id = record.actor_id
        lock = self.locks.lock_for(actor_id) if self.locks is not None else None
        ledger = CrimeLedger(
            record,
            self.clock,
            assessor=self.assessor,
            repository=self.repository,
            lock=lock,
        )
        self._ledgers[actor_id] = ledger
        return ledger

    def forget(self, actor_id: str) -> None:
        self._ledgers.pop(actor_id, None)
        self.repository.forget(actor_id)

    def actor_ids(self) -> list[str]:
        return sorted(self._ledgers)
