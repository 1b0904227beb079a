"""
Supervision Monitor — drives active parole/probation periods forward.

On every world-minute tick, for each monitored actor:
1. A paused period is skipped (the actor is in custody)
2. An expired period is completed and archived
3. An overdue check-in is recorded as missed
4. When the search timer fires and the supervising officer is within range,
   a compliance search runs with the tier's search probability

A violation is applied in full (compliance, risk re-assessment, persistence,
revoke check) before the next search is scheduled. The configured number of
violations in one period revokes it, archives it and hands the actor back to
custody; fewer violations extend the active term instead.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Callable

from custody_engine.assessment.risk import CHECK_IN_INTERVALS, RiskAssessor
from custody_engine.supervision.record import (
    SupervisionKind,
    Violation,
    ViolationType,
)
from custody_engine.world.interfaces import OfficerLocator, SearchInspector

logger = logging.getLogger(__name__)


@dataclass
class MonitoredActor:
    """Scheduling state for one supervised actor. Not persisted."""

    actor_id: str
    next_search_at: float
    next_check_in_due: float
    searches: int = 0


@dataclass(frozen=True)
class ReleaseTerms:
    """Supervision consequences of a release, fixed before the ledger is cleared."""

    new_term_minutes: float
    paused_extension_minutes: float


class RandomSearchInspector:
    """Finds contraband on a fixed fraction of searches."""

    def __init__(self, clock: Any, rng: random.Random, detection_chance: float = 0.2) -> None:
        self.clock = clock
        self.rng = rng
        self.detection_chance = detection_chance

    def inspect(self, actor_id: str) -> Violation | None:
        if self.rng.random() >= self.detection_chance:
            return None
        return Violation(
            type=ViolationType.CONTRABAND_POSSESSION,
            time=self.clock.current_world_minutes(),
            details="Contraband found during routine search",
        )


class SupervisionMonitor:
    """
    Schedules searches and check-ins for supervised actors.

    ``on_revoked`` is called with the actor id after a revocation; the
    orchestrator wires it to ``CustodyController.arrest``.
    """

    def __init__(
        self,
        clock: Any,
        ledgers: Any,
        assessor: RiskAssessor,
        calculator: Any,
        officers: OfficerLocator | None = None,
        inspector: SearchInspector | None = None,
        rng: random.Random | None = None,
        search_interval_min: float = 30.0,
        search_interval_max: float = 120.0,
        search_radius: float = 50.0,
        max_violations_before_revoke: int = 3,
        violation_extension_fraction: float = 0.2,
        on_revoked: Callable[[str], Any] | None = None,
    ) -> None:
        self.clock = clock
        self.ledgers = ledgers
        self.assessor = assessor
        self.calculator = calculator
        self.officers = officers
        self.inspector = inspector
        self.rng = rng or random.Random()
        self.search_interval_min = search_interval_min
        self.search_interval_max = search_interval_max
        self.search_radius = search_radius
        self.max_violations_before_revoke = max_violations_before_revoke
        self.violation_extension_fraction = violation_extension_fraction
        self.on_revoked = on_revoked
        self.monitored: dict[str, MonitoredActor] = {}
        self._unsubscribe = clock.subscribe_on_minute_tick(self._on_minute_tick)

    # ── Lifecycle ──────────────────────────────────────────────

    def start_supervision(
        self,
        actor_id: str,
        duration_minutes: float,
        kind: SupervisionKind = SupervisionKind.PAROLE,
    ) -> bool:
        ledger = self.ledgers.get(actor_id)
        if ledger is None:
            return False
        with ledger.lock:
            if not ledger.start_supervision(duration_minutes, kind):
                return False
            self.track(actor_id)
        return True

    def track(self, actor_id: str) -> MonitoredActor | None:
        ledger = self.ledgers.get(actor_id)
        if ledger is None or not ledger.record.is_under_supervision:
            return None
        now = self.clock.current_world_minutes()
        entry = MonitoredActor(
            actor_id=actor_id,
            next_search_at=now + self._search_interval(),
            next_check_in_due=now + self._check_in_interval(ledger),
        )
        self.monitored[actor_id] = entry
        return entry

    def untrack(self, actor_id: str) -> None:
        self.monitored.pop(actor_id, None)

    def is_monitored(self, actor_id: str) -> bool:
        return actor_id in self.monitored

    def shutdown(self) -> None:
        self._unsubscribe()
        self.monitored.clear()

    # ── Custody hand-off ───────────────────────────────────────

    def pause_for_custody(self, actor_id: str) -> bool:
        ledger = self.ledgers.get(actor_id)
        if ledger is None:
            return False
        return ledger.pause_supervision()

    def plan_release(self, actor_id: str) -> ReleaseTerms | None:
        """Compute post-release supervision terms from the ledger as it stands."""
        ledger = self.ledgers.get(actor_id)
        if ledger is None:
            return None
        with ledger.lock:
            crime_count = ledger.crime_count
            tier = self.assessor.score(ledger).tier
            violations = ledger.record.current_violation_count
            return ReleaseTerms(
                new_term_minutes=self.calculator.supervision_term(crime_count, tier),
                paused_extension_minutes=self.calculator.supervision_extension(
                    crime_count, violations
                ),
            )

    def after_release(
        self,
        actor_id: str,
        time_served: bool,
        terms: ReleaseTerms | None,
    ) -> bool:
        """
        Continue supervision once an actor walks out of custody.

        After time served, a paused period is extended and resumed, and an
        actor with no period starts a new parole term. Other releases only
        resume a paused period.
        """
        ledger = self.ledgers.get(actor_id)
        if ledger is None:
            return False

        with ledger.lock:
            supervision = ledger.supervision
            paused = supervision is not None and supervision.is_paused

            if paused:
                if time_served and terms is not None:
                    ledger.extend_paused_supervision(terms.paused_extension_minutes)
                resumed = ledger.resume_supervision()
                if resumed:
                    self.track(actor_id)
                return resumed

            if time_served and terms is not None:
                return self.start_supervision(actor_id, terms.new_term_minutes)
        return False

    # ── Searches & violations ──────────────────────────────────

    def conduct_search(self, actor_id: str) -> Violation | None:
        """Attempt a compliance search. Returns the violation found, if any."""
        entry = self.monitored.get(actor_id)
        ledger = self.ledgers.get(actor_id)
        if entry is None or ledger is None or self.officers is None:
            return None

        distance = self.officers.distance_to_officer(actor_id)
        if distance is None or distance > self.search_radius:
            logger.debug("Search skipped for %s: officer out of range", actor_id)
            return None

        probability = self.assessor.search_probability(ledger.risk_tier)
        if self.rng.random() >= probability:
            return None

        entry.searches += 1
        violation = self.inspector.inspect(actor_id) if self.inspector is not None else None
        logger.info(
            "Search performed: actor=%s tier=%s found=%s",
            actor_id,
            ledger.risk_tier.value,
            violation.type.value if violation else "nothing",
        )
        if violation is not None:
            self.record_violation(actor_id, violation)
        return violation

    def record_violation(self, actor_id: str, violation: Violation) -> bool:
        ledger = self.ledgers.get(actor_id)
        if ledger is None:
            return False

        with ledger.lock:
            supervision = ledger.supervision
            if supervision is None or not ledger.add_violation(violation):
                return False

            if supervision.violation_count >= self.max_violations_before_revoke:
                self._revoke(actor_id)
                return True

            extension = supervision.term_minutes * self.violation_extension_fraction
            ledger.extend_active_supervision(extension)
        return True

    def record_check_in(self, actor_id: str) -> bool:
        ledger = self.ledgers.get(actor_id)
        if ledger is None or not ledger.record_check_in():
            return False
        entry = self.monitored.get(actor_id)
        if entry is not None:
            entry.next_check_in_due = self.clock.current_world_minutes() + self._check_in_interval(ledger)
        return True

    # ── Internal ──────────────────────────────────────────────

    def _on_minute_tick(self, now: float) -> None:
        for actor_id in list(self.monitored):
            ledger = self.ledgers.get(actor_id)
            if ledger is None:
                self.untrack(actor_id)
                continue

            with ledger.lock:
                supervision = ledger.supervision
                if supervision is None or not supervision.is_active:
                    self.untrack(actor_id)
                    continue
                if supervision.is_paused:
                    continue
                if supervision.is_expired(now):
                    ledger.end_supervision()
                    self.untrack(actor_id)
                    continue

                entry = self.monitored[actor_id]
                if now >= entry.next_check_in_due:
                    ledger.record_missed_check_in()
                    entry.next_check_in_due = now + self._check_in_interval(ledger)

                if now >= entry.next_search_at:
                    self.conduct_search(actor_id)
                    if actor_id in self.monitored:
                        entry.next_search_at = now + self._search_interval()

    def _revoke(self, actor_id: str) -> None:
        ledger = self.ledgers.get(actor_id)
        if ledger is None or not ledger.revoke_supervision():
            return
        self.untrack(actor_id)
        logger.warning("Supervision revoked for %s; returning to custody", actor_id)
        if self.on_revoked is not None:
            self.on_revoked(actor_id)

    def _search_interval(self) -> float:
        return self.rng.uniform(self.search_interval_min, self.search_interval_max)

    def _check_in_interval(self, ledger: Any) -> float:
        return CHECK_IN_INTERVALS[ledger.risk_tier]


class StaticOfficerLocator:
    """Reports the same officer distance for every actor."""

    def __init__(self, distance: float | None = 0.0) -> None:
        self.distance = distance

    def distance_to_officer(self, actor_id: str) -> float | None:
        return self.distance
