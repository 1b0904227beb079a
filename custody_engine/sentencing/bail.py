"""
Bail Negotiator — bail amounts, negotiation windows and bail payment.

Bail is the sentence fine scaled by a tier multiplier, with extra weight for
murders and witness intimidation on the ledger:

    bail = fine × (tier multiplier + 5 × murders + 3 × intimidations)

An offer is negotiable when the fine reaches the negotiable threshold. A
negotiation opens a fixed window on the world clock; the actor may submit
one skill-based negotiation inside it, and the amount is finalized when the
window closes. Paying the finalized (or current) amount releases the actor
through ``CustodyController.release``.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from pydantic import BaseModel

from custody_engine.records.schema import (
    MURDER_OFFENSES,
    BailOffer,
    OffenseType,
    Sentence,
    SeverityTier,
)

logger = logging.getLogger(__name__)

BASE_BAIL_MULTIPLIERS: dict[SeverityTier, float] = {
    SeverityTier.MINOR: 2.0,
    SeverityTier.MODERATE: 4.0,
    SeverityTier.MAJOR: 7.0,
    SeverityTier.SEVERE: 12.0,
}
MURDER_BAIL_WEIGHT = 5.0
INTIMIDATION_BAIL_WEIGHT = 3.0
SKILL_WEIGHT = 0.1


class NegotiationPhase(str, enum.Enum):
    OPEN = "open"
    NEGOTIATED = "negotiated"
    FINALIZED = "finalized"


class NegotiationSession(BaseModel):
    """A bail negotiation window for one actor."""

    actor_id: str
    original_amount: float
    opened_at: float
    deadline: float
    phase: NegotiationPhase = NegotiationPhase.OPEN
    negotiated_amount: float | None = None
    final_amount: float | None = None


def lerp(a: float, b: float, t: float) -> float:
    t = min(1.0, max(0.0, t))
    return a + (b - a) * t


class BailNegotiator:
    """
    Computes bail offers and runs negotiation windows.

    ``custody`` is wired after construction; it is the controller whose
    ``release`` entry point a bail payment calls.
    """

    def __init__(
        self,
        clock: Any,
        ledgers: Any,
        negotiation_range: float = 0.2,
        negotiable_threshold: float = 500.0,
        window_minutes: float = 60.0,
        floor_fraction: float = 0.5,
        multiplayer_enabled: bool = False,
        custody: Any = None,
    ) -> None:
        self.clock = clock
        self.ledgers = ledgers
        self.negotiation_range = negotiation_range
        self.negotiable_threshold = negotiable_threshold
        self.window_minutes = window_minutes
        self.floor_fraction = floor_fraction
        self.multiplayer_enabled = multiplayer_enabled
        self.custody = custody
        self.offers: dict[str, BailOffer] = {}
        self.sessions: dict[str, NegotiationSession] = {}
        self._window_handles: dict[str, Any] = {}

    # ── Pricing ────────────────────────────────────────────────

    @staticmethod
    def bail_multiplier(
        severity_tier: SeverityTier,
        murder_count: int = 0,
        intimidation_count: int = 0,
    ) -> float:
        return (
            BASE_BAIL_MULTIPLIERS[severity_tier]
            + MURDER_BAIL_WEIGHT * murder_count
            + INTIMIDATION_BAIL_WEIGHT * intimidation_count
        )

    def calculate_bail(
        self,
        fine: float,
        severity_tier: SeverityTier,
        murder_count: int = 0,
        intimidation_count: int = 0,
    ) -> float:
        return fine * self.bail_multiplier(severity_tier, murder_count, intimidation_count)

    @staticmethod
    def negotiate(original: float, negotiation_range: float, skill: float) -> float:
        """
        Skill-weighted bail reduction. Skill 0 yields the maximum, skill 10
        the minimum; the result always lies within ``original × (1 ± range)``.
        """
        minimum = original * (1.0 - negotiation_range)
        maximum = original * (1.0 + negotiation_range)
        result = lerp(maximum, minimum, skill * SKILL_WEIGHT)
        return min(maximum, max(minimum, result))

    def make_offer(self, actor_id: str, sentence: Sentence) -> BailOffer | None:
        """Price bail for a sentence and record it as the actor's current offer."""
        ledger = self.ledgers.get(actor_id)
        if ledger is None or not sentence.bail_eligible:
            return None

        amount = self.calculate_bail(
            sentence.fine_amount,
            sentence.severity_tier,
            murder_count=ledger.count_of(MURDER_OFFENSES),
            intimidation_count=ledger.count_of([OffenseType.WITNESS_INTIMIDATION]),
        )
        offer = BailOffer(
            actor_id=actor_id,
            amount=amount,
            original_amount=amount,
            is_negotiable=sentence.fine_amount >= self.negotiable_threshold,
            negotiation_range=self.negotiation_range,
        )
        self.withdraw(actor_id)
        self.offers[actor_id] = offer

        logger.info(
            "Bail offered: actor=%s amount=%.2f negotiable=%s",
            actor_id,
            amount,
            offer.is_negotiable,
        )
        return offer

    def current_offer(self, actor_id: str) -> BailOffer | None:
        return self.offers.get(actor_id)

    # ── Negotiation window ─────────────────────────────────────

    def open_negotiation(self, actor_id: str) -> NegotiationSession | None:
        offer = self.offers.get(actor_id)
        if offer is None or not offer.is_negotiable:
            return None
        if actor_id in self.sessions:
            return self.sessions[actor_id]

        now = self.clock.current_world_minutes()
        session = NegotiationSession(
            actor_id=actor_id,
            original_amount=offer.original_amount,
            opened_at=now,
            deadline=now + self.window_minutes,
        )
        self.sessions[actor_id] = session
        self._window_handles[actor_id] = self.clock.call_later(
            self.window_minutes, lambda: self.close_negotiation(actor_id)
        )
        logger.info(
            "Bail negotiation opened: actor=%s deadline=%.1f", actor_id, session.deadline
        )
        return session

    def submit_negotiation(self, actor_id: str, skill: float) -> float | None:
        """One negotiation attempt per window. Returns the negotiated amount."""
        session = self.sessions.get(actor_id)
        if session is None or session.phase != NegotiationPhase.OPEN:
            return None
        if self.clock.current_world_minutes() >= session.deadline:
            return None

        amount = self.negotiate(session.original_amount, self.negotiation_range, skill)
        amount = max(amount, session.original_amount * self.floor_fraction)
        session.negotiated_amount = amount
        session.phase = NegotiationPhase.NEGOTIATED
        self.offers[actor_id].amount = amount

        logger.info(
            "Bail negotiated: actor=%s skill=%.1f %.2f -> %.2f",
            actor_id,
            skill,
            session.original_amount,
            amount,
        )
        return amount

    def close_negotiation(self, actor_id: str) -> float | None:
        """Finalize the window. Runs automatically at the deadline."""
        session = self.sessions.get(actor_id)
        if session is None or session.phase == NegotiationPhase.FINALIZED:
            return None

        handle = self._window_handles.pop(actor_id, None)
        if handle is not None:
            handle.cancel()

        amount = session.negotiated_amount
        if amount is None:
            amount = session.original_amount
        amount = max(amount, session.original_amount * self.floor_fraction)
        session.final_amount = amount
        session.phase = NegotiationPhase.FINALIZED
        offer = self.offers.get(actor_id)
        if offer is not None:
            offer.amount = amount

        logger.info("Bail finalized: actor=%s amount=%.2f", actor_id, amount)
        return amount

    # ── Payment ────────────────────────────────────────────────

    def can_friends_pay_bail(self) -> bool:
        """Third-party bail payment is only available in multiplayer worlds."""
        return self.multiplayer_enabled

    def pay_bail(self, actor_id: str, amount: float, paid_by: str | None = None) -> bool:
        """Accept payment covering the current offer and release the actor."""
        offer = self.offers.get(actor_id)
        if offer is None or self.custody is None:
            return False
        if paid_by is not None and paid_by != actor_id and not self.can_friends_pay_bail():
            logger.info("Bail payment by %s for %s refused: friends cannot pay bail", paid_by, actor_id)
            return False
        if amount < offer.amount:
            logger.info(
                "Bail payment for %s short: offered %.2f, required %.2f",
                actor_id,
                amount,
                offer.amount,
            )
            return False

        if actor_id in self.sessions:
            self.close_negotiation(actor_id)
        released = self.custody.release(actor_id, "bail_payment", amount)
        if released:
            logger.info("Bail paid: actor=%s amount=%.2f payer=%s", actor_id, amount, paid_by or actor_id)
            self.withdraw(actor_id)
        return released

    def withdraw(self, actor_id: str) -> None:
        """Drop any offer and negotiation window for the actor."""
        self.offers.pop(actor_id, None)
        self.sessions.pop(actor_id, None)
        handle = self._window_handles.pop(actor_id, None)
        if handle is not None:
            handle.cancel()
