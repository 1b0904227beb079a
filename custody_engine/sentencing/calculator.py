"""
Sentence Calculator — fines and custodial time from an actor's ledger.

Custodial time is built in two stages:

1. Base minutes: each active crime's base sentence, sorted longest first,
   summed with diminishing returns (100%, 75%, 50%, then 25% each).
2. Multipliers: severity × repeat-offender × witness × global, then clamped
   to [min_sentence, max_sentence].

A sentence of one world-day or more takes the long custody path (holding,
processing, transfer to main confinement).

The fine is the ledger's total fine, scaled by the same repeat-offender
multiplier. Repeat-offender status counts completed or revoked supervision
periods: an actor with no history is a first offender.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from custody_engine.assessment.risk import SUPERVISION_TERM_MULTIPLIERS
from custody_engine.records.schema import (
    CrimeRecord,
    OffenseType,
    RiskTier,
    Sentence,
    SeverityTier,
)

if TYPE_CHECKING:
    from custody_engine.records.ledger import CrimeLedger

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# Sentencing Tables (world-minutes)
# ════════════════════════════════════════════════════════════════

DEFAULT_BASE_SENTENCE = 120.0

BASE_SENTENCE_MINUTES: dict[str, float] = {
    # Minor
    OffenseType.TRESPASSING.value: 15.0,
    OffenseType.VANDALISM.value: 30.0,
    OffenseType.PUBLIC_INTOXICATION.value: 30.0,
    OffenseType.DISTURBING_PEACE.value: 15.0,
    OffenseType.SPEEDING.value: 3.0,
    OffenseType.RECKLESS_DRIVING.value: 45.0,
    OffenseType.BRANDISHING_WEAPON.value: 30.0,
    OffenseType.DISCHARGE_FIREARM.value: 45.0,
    OffenseType.DRUG_POSSESSION_LOW.value: 30.0,
    OffenseType.WEAPON_POSSESSION.value: 30.0,
    # Moderate
    OffenseType.THEFT.value: 120.0,
    OffenseType.VEHICLE_THEFT.value: 240.0,
    OffenseType.ASSAULT.value: 180.0,
    OffenseType.ASSAULT_ON_CIVILIAN.value: 360.0,
    OffenseType.VEHICULAR_ASSAULT.value: 360.0,
    OffenseType.DRUG_POSSESSION_MODERATE.value: 180.0,
    OffenseType.EVADING.value: 360.0,
    OffenseType.FAILURE_TO_COMPLY.value: 180.0,
    OffenseType.HIT_AND_RUN.value: 480.0,
    OffenseType.VIOLATING_CURFEW.value: 120.0,
    # Major
    OffenseType.DEADLY_ASSAULT.value: 1440.0,
    OffenseType.ASSAULT_ON_OFFICER.value: 2880.0,
    OffenseType.BURGLARY.value: 2160.0,
    OffenseType.DRUG_POSSESSION_HIGH.value: 1440.0,
    OffenseType.DRUG_TRAFFICKING.value: 3600.0,
    OffenseType.ATTEMPTING_TO_SELL.value: 2160.0,
    OffenseType.WITNESS_INTIMIDATION.value: 2880.0,
    # Severe
    OffenseType.MANSLAUGHTER.value: 4320.0,
    OffenseType.MURDER.value: 5760.0,
    OffenseType.MURDER_OF_EMPLOYEE.value: 6480.0,
    OffenseType.MURDER_OF_OFFICER.value: 7200.0,
}

DIMINISHING_RETURNS = (1.0, 0.75, 0.5)
DIMINISHING_TAIL = 0.25

# (upper bound on average severity, multiplier)
SEVERITY_MULTIPLIERS = (
    (1.0, 1.0),
    (1.5, 1.5),
    (2.0, 2.0),
    (2.5, 2.5),
    (3.0, 3.0),
)
MAX_SEVERITY_MULTIPLIER = 4.0

REPEAT_OFFENDER_MULTIPLIERS = {1: 1.0, 2: 1.25, 3: 1.5}
MAX_REPEAT_OFFENDER_MULTIPLIER = 2.0

UNWITNESSED_MULTIPLIER = 0.8
WITNESS_BONUS = 0.1
MAX_WITNESS_BONUS = 0.3

# (upper bound on fine, tier)
SEVERITY_TIER_THRESHOLDS = (
    (100.0, SeverityTier.MINOR),
    (300.0, SeverityTier.MODERATE),
    (800.0, SeverityTier.MAJOR),
)

SEVERITY_TIER_LABELS: dict[SeverityTier, str] = {
    SeverityTier.MINOR: "Minor offenses",
    SeverityTier.MODERATE: "Moderate offenses",
    SeverityTier.MAJOR: "Major offenses",
    SeverityTier.SEVERE: "Severe offenses",
}


def base_sentence_for(offense_type: str) -> float:
    return BASE_SENTENCE_MINUTES.get(offense_type, DEFAULT_BASE_SENTENCE)


class SentenceCalculator:
    """
    Turns a ledger into a ``Sentence``.

    Usage:
        calculator = SentenceCalculator(global_multiplier=1.0)
        sentence = calculator.calculate_sentence(ledger)
        sentence.jail_time_minutes, sentence.fine_amount
    """

    def __init__(
        self,
        min_sentence_minutes: float = 120.0,
        max_sentence_minutes: float = 7200.0,
        global_multiplier: float = 1.0,
        enable_repeat_offender_penalties: bool = True,
        enable_witness_multipliers: bool = True,
        enable_severity_multipliers: bool = True,
        supervision_base_minutes: float = 2880.0,
        supervision_minutes_per_crime: float = 240.0,
        supervision_min_minutes: float = 1440.0,
        supervision_max_minutes: float = 10080.0,
        resume_minutes_per_crime: float = 240.0,
        resume_minutes_per_violation: float = 480.0,
    ) -> None:
        self.min_sentence_minutes = min_sentence_minutes
        self.max_sentence_minutes = max_sentence_minutes
        self.global_multiplier = global_multiplier
        self.enable_repeat_offender_penalties = enable_repeat_offender_penalties
        self.enable_witness_multipliers = enable_witness_multipliers
        self.enable_severity_multipliers = enable_severity_multipliers
        self.supervision_base_minutes = supervision_base_minutes
        self.supervision_minutes_per_crime = supervision_minutes_per_crime
        self.supervision_min_minutes = supervision_min_minutes
        self.supervision_max_minutes = supervision_max_minutes
        self.resume_minutes_per_crime = resume_minutes_per_crime
        self.resume_minutes_per_violation = resume_minutes_per_violation

    # ── Multipliers ────────────────────────────────────────────

    def repeat_offender_multiplier(self, past_supervision_count: int) -> float:
        if not self.enable_repeat_offender_penalties:
            return 1.0
        offense_number = past_supervision_count + 1
        return REPEAT_OFFENDER_MULTIPLIERS.get(offense_number, MAX_REPEAT_OFFENDER_MULTIPLIER)

    def severity_multiplier(self, crimes: list[CrimeRecord]) -> float:
        if not self.enable_severity_multipliers or not crimes:
            return 1.0
        average = sum(c.effective_severity for c in crimes) / len(crimes)
        for bound, multiplier in SEVERITY_MULTIPLIERS:
            if average <= bound:
                return multiplier
        return MAX_SEVERITY_MULTIPLIER

    def witness_multiplier(self, crimes: list[CrimeRecord]) -> float:
        if not self.enable_witness_multipliers or not crimes:
            return 1.0
        total_witnesses = sum(len(c.witness_ids) for c in crimes)
        average = total_witnesses // len(crimes)
        if average == 0:
            return UNWITNESSED_MULTIPLIER
        return 1.0 + min((average - 1) * WITNESS_BONUS, MAX_WITNESS_BONUS)

    @staticmethod
    def base_minutes(crimes: list[CrimeRecord]) -> float:
        ordered = sorted((base_sentence_for(c.offense_type) for c in crimes), reverse=True)
        total = 0.0
        for index, minutes in enumerate(ordered):
            weight = DIMINISHING_RETURNS[index] if index < len(DIMINISHING_RETURNS) else DIMINISHING_TAIL
            total += minutes * weight
        return total

    # ── Fines & Sentences ──────────────────────────────────────

    def calculate_fine(self, ledger: CrimeLedger) -> float:
        repeat = self.repeat_offender_multiplier(ledger.record.past_supervision_count)
        return ledger.calculate_total_fines() * repeat

    def calculate_sentence(self, ledger: CrimeLedger) -> Sentence:
        with ledger.lock:
            crimes = ledger.active_crimes()
            fine = self.calculate_fine(ledger)
            tier = self.severity_tier_for(fine)

            if not crimes:
                return Sentence(
                    severity_tier=tier,
                    jail_time_minutes=self.min_sentence_minutes,
                    fine_amount=fine,
                    description=self.describe(tier, fine),
                    bail_eligible=False,
                    base_minutes=self.min_sentence_minutes,
                    global_multiplier=self.global_multiplier,
                )

            base = self.base_minutes(crimes)
            severity = self.severity_multiplier(crimes)
            repeat = self.repeat_offender_multiplier(ledger.record.past_supervision_count)
            witness = self.witness_multiplier(crimes)
            total = base * severity * repeat * witness * self.global_multiplier
            total = min(self.max_sentence_minutes, max(self.min_sentence_minutes, total))

            sentence = Sentence(
                severity_tier=tier,
                jail_time_minutes=total,
                fine_amount=fine,
                description=self.describe(tier, fine),
                bail_eligible=fine > 0,
                crime_count=len(crimes),
                base_minutes=base,
                severity_multiplier=severity,
                repeat_offender_multiplier=repeat,
                witness_multiplier=witness,
                global_multiplier=self.global_multiplier,
            )

        logger.info(
            "Sentence for %s: %s fine=%.2f tier=%s",
            ledger.actor_id,
            sentence.breakdown,
            sentence.fine_amount,
            sentence.severity_tier.value,
        )
        return sentence

    @staticmethod
    def severity_tier_for(fine: float) -> SeverityTier:
        for bound, tier in SEVERITY_TIER_THRESHOLDS:
            if fine <= bound:
                return tier
        return SeverityTier.SEVERE

    @staticmethod
    def describe(tier: SeverityTier, fine: float) -> str:
        return f"{SEVERITY_TIER_LABELS[tier]} (${fine:,.0f} in fines)"

    # ── Post-release supervision ───────────────────────────────

    def supervision_term(self, crime_count: int, tier: RiskTier) -> float:
        """Length of a new supervision period after time served."""
        base = self.supervision_base_minutes + crime_count * self.supervision_minutes_per_crime
        term = base * SUPERVISION_TERM_MULTIPLIERS.get(tier, 1.0)
        return min(self.supervision_max_minutes, max(self.supervision_min_minutes, term))

    def supervision_extension(self, crime_count: int, violation_count: int) -> float:
        """Time added to a supervision period that was paused by an arrest."""
        return (
            crime_count * self.resume_minutes_per_crime
            + violation_count * self.resume_minutes_per_violation
        )
