"""
Custody Controller — the arrest → booking → confinement → release machine.

Phases:

    ARRESTED → BOOKING → IN_HOLDING ─────────────→ RELEASING → FREE
                              └→ (processing) → IN_MAIN ─┘

- Short sentences (under one world-day) are served in holding.
- Long sentences start in holding and are transferred to main confinement
  once processing completes; the countdown runs through both.
- Booking is delegated to a ``BookingProcess``; the case waits in BOOKING
  until it reports completion.
- The countdown decrements on each world-minute tick and releases the actor
  with ``TIME_SERVED`` at zero.

A new arrest synchronously cancels any in-flight release, booking and escort
for the actor. Only TIME_SERVED and BAIL_PAYMENT releases clear the ledger;
a court order or emergency release leaves the charges on record.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable

from pydantic import BaseModel

from custody_engine.records.schema import Point3, Sentence
from custody_engine.sentencing.calculator import SentenceCalculator
from custody_engine.world.clock import ScheduledCall, format_world_time
from custody_engine.world.interfaces import BookingProcess, CellArea, CustodyEnvironment
from custody_engine.world.locks import ActorLocks

logger = logging.getLogger(__name__)


class CustodyPhase(str, enum.Enum):
    ARRESTED = "arrested"
    BOOKING = "booking"
    IN_HOLDING = "in_holding"
    IN_MAIN = "in_main"
    RELEASING = "releasing"
    FREE = "free"


class ReleaseReason(str, enum.Enum):
    TIME_SERVED = "time_served"
    BAIL_PAYMENT = "bail_payment"
    COURT_ORDER = "court_order"
    EMERGENCY = "emergency"


LEDGER_CLEARING_REASONS = frozenset({ReleaseReason.TIME_SERVED, ReleaseReason.BAIL_PAYMENT})
CONFINED_PHASES = frozenset({CustodyPhase.IN_HOLDING, CustodyPhase.IN_MAIN})


class CustodyCase(BaseModel):
    """Transient custody state for one actor; discarded on reaching FREE."""

    model_config = {"arbitrary_types_allowed": True}

    actor_id: str
    phase: CustodyPhase = CustodyPhase.ARRESTED
    sentence: Sentence
    arrested_at: float
    remaining_minutes: float
    cell_assignment: Any = None
    cell_area: CellArea | None = None
    countdown_active: bool = False
    transfer_due_at: float | None = None
    release_reason: ReleaseReason | None = None
    release_amount: float = 0.0
    exit_position: Point3 | None = None
    released_at: float | None = None


class CustodyController:
    """
    Owns every actor's custody case.

    ``supervision`` (a ``SupervisionMonitor``) and ``bail`` (a
    ``BailNegotiator``) are optional hand-off partners wired by the
    orchestrator.
    """

    def __init__(
        self,
        clock: Any,
        ledgers: Any,
        calculator: SentenceCalculator,
        environment: CustodyEnvironment | None = None,
        booking: BookingProcess | None = None,
        supervision: Any = None,
        bail: Any = None,
        locks: ActorLocks | None = None,
        holding_processing_minutes: float = 60.0,
        release_processing_minutes: float = 10.0,
    ) -> None:
        self.clock = clock
        self.ledgers = ledgers
        self.calculator = calculator
        self.environment = environment
        self.booking = booking
        self.supervision = supervision
        self.bail = bail
        self.locks = locks or ActorLocks()
        self.holding_processing_minutes = holding_processing_minutes
        self.release_processing_minutes = release_processing_minutes
        self.active_cases: dict[str, CustodyCase] = {}
        self.history: list[CustodyCase] = []
        self.release_listeners: list[Callable[[CustodyCase], None]] = []
        self._release_handles: dict[str, ScheduledCall] = {}
        self._release_terms: dict[str, Any] = {}
        self._unsubscribe = clock.subscribe_on_minute_tick(self._on_minute_tick)

    # ── Arrest & booking ───────────────────────────────────────

    def arrest(self, actor_id: str | None) -> CustodyCase | None:
        """
        Take an actor into custody.

        Rejected (returns None) while the actor already has a case that is
        not in the middle of being released.
        """
        ledger = self.ledgers.get(actor_id)
        if ledger is None:
            return None

        with self.locks.hold(actor_id):
            existing = self.active_cases.get(actor_id)
            if existing is not None and existing.phase != CustodyPhase.RELEASING:
                logger.info(
                    "Arrest rejected for %s: already in custody (%s)",
                    actor_id,
                    existing.phase.value,
                )
                return None

            self._reset(actor_id)

            if self.supervision is not None:
                self.supervision.pause_for_custody(actor_id)
            else:
                ledger.pause_supervision()

            sentence = self.calculator.calculate_sentence(ledger)
            case = CustodyCase(
                actor_id=actor_id,
                sentence=sentence,
                arrested_at=self.clock.current_world_minutes(),
                remaining_minutes=sentence.jail_time_minutes,
            )
            self.active_cases[actor_id] = case

            logger.info(
                "Actor arrested: %s sentence=%s fine=%.2f path=%s",
                actor_id,
                format_world_time(sentence.jail_time_minutes),
                sentence.fine_amount,
                "long" if sentence.is_long_sentence else "short",
            )

            case.phase = CustodyPhase.BOOKING
            if self.booking is None:
                self._on_booking_complete(actor_id)
            else:
                self.booking.begin(actor_id, lambda: self._on_booking_complete(actor_id))
            return case

    def _on_booking_complete(self, actor_id: str) -> None:
        with self.locks.hold(actor_id):
            case = self.active_cases.get(actor_id)
            if case is None or case.phase != CustodyPhase.BOOKING:
                return

            self._assign_cell(case, CellArea.HOLDING)
            case.phase = CustodyPhase.IN_HOLDING
            case.countdown_active = True
            if case.sentence.is_long_sentence:
                case.transfer_due_at = self.clock.current_world_minutes() + self.holding_processing_minutes

            logger.info("Booking complete: %s placed in holding", actor_id)

            if self.bail is not None and case.sentence.bail_eligible:
                self.bail.make_offer(actor_id, case.sentence)

    # ── Release ────────────────────────────────────────────────

    def release(
        self,
        actor_id: str | None,
        reason: ReleaseReason | str,
        amount: float = 0.0,
    ) -> bool:
        """
        Begin releasing an actor. A second request while one is in flight
        is a no-op and returns False.
        """
        reason = ReleaseReason(reason)
        if not actor_id:
            return False

        with self.locks.hold(actor_id):
            case = self.active_cases.get(actor_id)
            if case is None or case.phase in (CustodyPhase.RELEASING, CustodyPhase.FREE):
                return False

            if case.phase == CustodyPhase.BOOKING and self.booking is not None:
                self.booking.cancel(actor_id)

            case.countdown_active = False
            case.transfer_due_at = None
            case.release_reason = reason
            case.release_amount = amount
            if self.environment is not None:
                case.exit_position = self.environment.exit_point(actor_id)
                self.environment.begin_escort(actor_id)

            if reason == ReleaseReason.TIME_SERVED and self.supervision is not None:
                self._release_terms[actor_id] = self.supervision.plan_release(actor_id)

            if reason in LEDGER_CLEARING_REASONS:
                ledger = self.ledgers.get(actor_id)
                if ledger is not None:
                    ledger.clear_all()

            if self.bail is not None:
                self.bail.withdraw(actor_id)

            case.phase = CustodyPhase.RELEASING
            logger.info(
                "Release started: %s reason=%s amount=%.2f",
                actor_id,
                reason.value,
                amount,
            )

            if reason == ReleaseReason.EMERGENCY or self.release_processing_minutes <= 0:
                self._complete_release(actor_id)
            else:
                self._release_handles[actor_id] = self.clock.call_later(
                    self.release_processing_minutes,
                    lambda: self._complete_release(actor_id),
                )
            return True

    def _complete_release(self, actor_id: str) -> None:
        with self.locks.hold(actor_id):
            case = self.active_cases.get(actor_id)
            if case is None or case.phase != CustodyPhase.RELEASING:
                return

            self._release_handles.pop(actor_id, None)
            self._free_cell(case)
            if self.environment is not None:
                self.environment.cancel_escorts(actor_id)

            case.phase = CustodyPhase.FREE
            case.released_at = self.clock.current_world_minutes()
            del self.active_cases[actor_id]
            self.history.append(case)

            terms = self._release_terms.pop(actor_id, None)
            time_served = case.release_reason == ReleaseReason.TIME_SERVED
            if self.supervision is not None:
                self.supervision.after_release(actor_id, time_served, terms)
            else:
                ledger = self.ledgers.get(actor_id)
                if ledger is not None:
                    ledger.resume_supervision()

            logger.info(
                "Actor released: %s reason=%s",
                actor_id,
                case.release_reason.value if case.release_reason else "unknown",
            )

        for listener in list(self.release_listeners):
            listener(case)

    # ── Queries ────────────────────────────────────────────────

    def case(self, actor_id: str) -> CustodyCase | None:
        return self.active_cases.get(actor_id)

    def phase(self, actor_id: str) -> CustodyPhase:
        case = self.active_cases.get(actor_id)
        return case.phase if case is not None else CustodyPhase.FREE

    def is_in_custody(self, actor_id: str) -> bool:
        return actor_id in self.active_cases

    def remaining_minutes(self, actor_id: str) -> float:
        case = self.active_cases.get(actor_id)
        return case.remaining_minutes if case is not None else 0.0

    def remaining_formatted(self, actor_id: str) -> str:
        return format_world_time(self.remaining_minutes(actor_id))

    def snapshot(self, actor_id: str) -> dict[str, Any] | None:
        """Read-only view for presentation."""
        if actor_id not in self.active_cases:
            return None
        with self.locks.hold(actor_id):
            case = self.active_cases.get(actor_id)
            if case is None:
                return None
            return {
                "actor_id": actor_id,
                "phase": case.phase.value,
                "sentence": case.sentence.description,
                "jail_time": format_world_time(case.sentence.jail_time_minutes),
                "remaining": format_world_time(case.remaining_minutes),
                "fine": round(case.sentence.fine_amount, 2),
                "cell_area": case.cell_area.value if case.cell_area else None,
                "breakdown": case.sentence.breakdown,
            }

    def shutdown(self) -> None:
        self._unsubscribe()

    # ── Internal ──────────────────────────────────────────────

    def _on_minute_tick(self, now: float) -> None:
        for actor_id in list(self.active_cases):
            with self.locks.hold(actor_id):
                case = self.active_cases.get(actor_id)
                if case is None or case.phase not in CONFINED_PHASES or not case.countdown_active:
                    continue

                if case.transfer_due_at is not None and now >= case.transfer_due_at:
                    self._transfer_to_main(case)

                case.remaining_minutes = max(0.0, case.remaining_minutes - 1.0)
                if case.remaining_minutes <= 0:
                    case.countdown_active = False
                    self.release(actor_id, ReleaseReason.TIME_SERVED)

    def _transfer_to_main(self, case: CustodyCase) -> None:
        self._free_cell(case)
        self._assign_cell(case, CellArea.MAIN)
        case.phase = CustodyPhase.IN_MAIN
        case.transfer_due_at = None
        logger.info(
            "Actor transferred to main confinement: %s remaining=%s",
            case.actor_id,
            format_world_time(case.remaining_minutes),
        )

    def _assign_cell(self, case: CustodyCase, area: CellArea) -> None:
        if self.environment is None:
            return
        handle = self.environment.assign_cell(case.actor_id, area)
        if handle is None:
            logger.warning("No %s cell available for %s; continuing without one", area.value, case.actor_id)
            return
        self.environment.lock(handle)
        case.cell_assignment = handle
        case.cell_area = area

    def _free_cell(self, case: CustodyCase) -> None:
        if self.environment is None or case.cell_assignment is None:
            return
        self.environment.unlock(case.cell_assignment)
        self.environment.release(case.cell_assignment)
        case.cell_assignment = None
        case.cell_area = None

    def _reset(self, actor_id: str) -> None:
        """Cancel anything left over from a previous case for this actor."""
        handle = self._release_handles.pop(actor_id, None)
        if handle is not None:
            handle.cancel()
        self._release_terms.pop(actor_id, None)

        stale = self.active_cases.pop(actor_id, None)
        if stale is not None:
            self._free_cell(stale)
            logger.info("Discarded in-flight %s case for %s", stale.phase.value, actor_id)

        if self.booking is not None:
            self.booking.cancel(actor_id)
        if self.environment is not None:
            self.environment.cancel_escorts(actor_id)
        if self.bail is not None:
            self.bail.withdraw(actor_id)
