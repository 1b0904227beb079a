"""
Supervision Record — the parole/probation state machine.

A supervision period moves through:

    INACTIVE → ACTIVE ⇄ PAUSED → COMPLETED | REVOKED

- INACTIVE and COMPLETED may be restarted with ``start``.
- REVOKED is terminal; the record is archived and a fresh one is created
  for any later period.
- PAUSED keeps active semantics (the actor is still under supervision) but
  the clock is frozen in ``paused_remaining`` while the actor is in custody.

Every transition takes the current world time explicitly and returns a bool:
False means the transition was rejected and the record is unchanged.
"""

from __future__ import annotations

import enum
import logging

from pydantic import BaseModel, Field

from custody_engine.world.clock import format_world_time

logger = logging.getLogger(__name__)

MAX_COMPLIANCE = 100.0
CHECK_IN_BONUS = 2.0
MISSED_CHECK_IN_PENALTY = 5.0
VIOLATION_PENALTY = 10.0


class SupervisionStatus(str, enum.Enum):
    """Lifecycle status of a supervision period."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    REVOKED = "revoked"


class SupervisionKind(str, enum.Enum):
    PAROLE = "parole"
    PROBATION = "probation"


class ViolationType(str, enum.Enum):
    """Categories of supervision violation."""

    CONTRABAND_POSSESSION = "contraband_possession"
    MISSED_CHECK_IN = "missed_check_in"
    NEW_CRIME = "new_crime"
    RESTRICTED_AREA = "restricted_area"
    CURFEW = "curfew"
    CONTACT_WITH_KNOWN_CRIMINALS = "contact_with_known_criminals"
    OTHER = "other"


class Violation(BaseModel):
    """A single recorded violation. Immutable once created."""

    model_config = {"frozen": True}

    type: ViolationType = ViolationType.OTHER
    time: float = Field(description="World-minutes at which the violation was recorded")
    severity: float = Field(default=1.0, ge=0)
    details: str = ""
    location_description: str = ""


class SupervisionRecord(BaseModel):
    """
    One parole or probation period for an actor.

    ``end_time >= start_time`` holds whenever the record is ACTIVE. While
    PAUSED, ``paused_remaining`` is the authoritative remaining term and the
    start/end times are stale until ``resume``.
    """

    kind: SupervisionKind = SupervisionKind.PAROLE
    status: SupervisionStatus = SupervisionStatus.INACTIVE
    start_time: float = 0.0
    end_time: float = 0.0
    term_minutes: float = 0.0
    paused_remaining: float = 0.0
    violations: list[Violation] = Field(default_factory=list)
    compliance_score: float = Field(default=MAX_COMPLIANCE, ge=0, le=MAX_COMPLIANCE)
    check_in_count: int = 0
    missed_check_ins: int = 0
    last_check_in_time: float | None = None
    ended_at: float | None = None

    # ── Status ─────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        """True while the actor is under supervision, paused or not."""
        return self.status in (SupervisionStatus.ACTIVE, SupervisionStatus.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.status == SupervisionStatus.PAUSED

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    def remaining(self, now: float) -> float:
        if self.status == SupervisionStatus.PAUSED:
            return self.paused_remaining
        if self.status == SupervisionStatus.ACTIVE:
            return max(0.0, self.end_time - now)
        return 0.0

    def is_expired(self, now: float) -> bool:
        return self.status == SupervisionStatus.ACTIVE and now >= self.end_time

    def remaining_formatted(self, now: float) -> str:
        if not self.is_active:
            return f"Not on {self.kind.value}"
        if self.is_expired(now):
            return f"{self.kind.value.capitalize()} expired"
        return format_world_time(self.remaining(now))

    # ── Transitions ────────────────────────────────────────────

    def start(self, duration_minutes: float, now: float) -> bool:
        """Begin a new period. Rejected while active or once revoked."""
        if duration_minutes < 0:
            raise ValueError(f"Supervision duration must be non-negative, got {duration_minutes}")
        if self.is_active or self.status == SupervisionStatus.REVOKED:
            logger.info(
                "Supervision start rejected: status=%s", self.status.value
            )
            return False

        self.status = SupervisionStatus.ACTIVE
        self.start_time = now
        self.end_time = now + duration_minutes
        self.term_minutes = duration_minutes
        self.paused_remaining = 0.0
        self.violations = []
        self.compliance_score = MAX_COMPLIANCE
        self.check_in_count = 0
        self.missed_check_ins = 0
        self.last_check_in_time = None
        self.ended_at = None

        logger.info(
            "Supervision started: kind=%s term=%s ends_at=%.1f",
            self.kind.value,
            format_world_time(duration_minutes),
            self.end_time,
        )
        return True

    def pause(self, now: float) -> bool:
        if self.status != SupervisionStatus.ACTIVE:
            return False

        self.paused_remaining = max(0.0, self.end_time - now)
        self.status = SupervisionStatus.PAUSED
        logger.info("Supervision paused: remaining=%.1f", self.paused_remaining)
        return True

    def resume(self, now: float) -> bool:
        if self.status != SupervisionStatus.PAUSED:
            return False

        self.start_time = now
        self.end_time = now + self.paused_remaining
        self.paused_remaining = 0.0
        self.status = SupervisionStatus.ACTIVE
        logger.info("Supervision resumed: ends_at=%.1f", self.end_time)
        return True

    def extend_paused(self, delta_minutes: float) -> bool:
        if self.status != SupervisionStatus.PAUSED:
            return False

        self.paused_remaining += delta_minutes
        self.term_minutes += delta_minutes
        logger.info(
            "Paused supervision extended by %.1f (remaining=%.1f)",
            delta_minutes,
            self.paused_remaining,
        )
        return True

    def extend_active(self, delta_minutes: float) -> bool:
        if self.status != SupervisionStatus.ACTIVE:
            return False

        self.end_time += delta_minutes
        self.term_minutes += delta_minutes
        logger.info(
            "Active supervision extended by %.1f (ends_at=%.1f)",
            delta_minutes,
            self.end_time,
        )
        return True

    def end(self, now: float) -> bool:
        """Mark the period completed. The owner archives it."""
        if self.status != SupervisionStatus.ACTIVE:
            return False

        self.status = SupervisionStatus.COMPLETED
        self.ended_at = now
        logger.info(
            "Supervision completed: violations=%d compliance=%.0f",
            self.violation_count,
            self.compliance_score,
        )
        return True

    def revoke(self, now: float) -> bool:
        if not self.is_active:
            return False

        if self.status == SupervisionStatus.ACTIVE:
            self.paused_remaining = max(0.0, self.end_time - now)
        self.status = SupervisionStatus.REVOKED
        self.ended_at = now
        logger.warning(
            "Supervision revoked: violations=%d compliance=%.0f",
            self.violation_count,
            self.compliance_score,
        )
        return True

    # ── Compliance ─────────────────────────────────────────────

    def record_check_in(self, now: float) -> bool:
        if not self.is_active:
            return False

        self.check_in_count += 1
        self.last_check_in_time = now
        self.compliance_score = min(MAX_COMPLIANCE, self.compliance_score + CHECK_IN_BONUS)
        return True

    def record_missed_check_in(self) -> bool:
        if not self.is_active:
            return False

        self.missed_check_ins += 1
        self.compliance_score = max(0.0, self.compliance_score - MISSED_CHECK_IN_PENALTY)
        logger.info(
            "Missed check-in recorded: total=%d compliance=%.0f",
            self.missed_check_ins,
            self.compliance_score,
        )
        return True

    def add_violation(self, violation: Violation) -> bool:
        if not self.is_active:
            return False

        self.violations.append(violation)
        self.compliance_score = max(0.0, self.compliance_score - VIOLATION_PENALTY)
        logger.info(
            "Violation recorded: type=%s severity=%.1f count=%d",
            violation.type.value,
            violation.severity,
            self.violation_count,
        )
        return True

    def compliance_summary(self, now: float) -> dict[str, object]:
        """Read-only snapshot for presentation."""
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "remaining": self.remaining_formatted(now),
            "compliance_score": round(self.compliance_score, 1),
            "check_ins": self.check_in_count,
            "missed_check_ins": self.missed_check_ins,
            "violations": self.violation_count,
        }
