"""
Risk Assessor — deterministic LSI scoring over a criminal record.

The score is the sum of four independent, capped factors (max 100):

    crime count      min(count × 2, 20)
    severity         floor(average severity × 10)
    violations       min(current violations × 5, 30)
    past failures    min(past supervision periods × 10, 20)

Tier mapping: <20 Minimum, <40 Medium, <70 High, otherwise Severe. An actor
with no active crimes is always Minimum; ``RiskTier.NONE`` only describes an
actor who has never been assessed.

The tier drives how often a supervised actor is searched and how long a
post-release supervision term runs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from custody_engine.records.schema import RiskTier

if TYPE_CHECKING:
    from custody_engine.records.ledger import CrimeLedger

logger = logging.getLogger(__name__)

MEDIUM_THRESHOLD = 20
HIGH_THRESHOLD = 40
SEVERE_THRESHOLD = 70
MAX_SCORE = 100

TIER_DESCRIPTIONS: dict[RiskTier, str] = {
    RiskTier.NONE: "No assessment",
    RiskTier.MINIMUM: "Minimum risk - Low supervision",
    RiskTier.MEDIUM: "Medium risk - Moderate supervision",
    RiskTier.HIGH: "High risk - Intensive supervision",
    RiskTier.SEVERE: "Severe risk - Maximum supervision",
}

# Minutes between required check-ins, by tier.
CHECK_IN_INTERVALS: dict[RiskTier, float] = {
    RiskTier.NONE: 10080.0,
    RiskTier.MINIMUM: 10080.0,
    RiskTier.MEDIUM: 5040.0,
    RiskTier.HIGH: 2880.0,
    RiskTier.SEVERE: 1440.0,
}

SUPERVISION_TERM_MULTIPLIERS: dict[RiskTier, float] = {
    RiskTier.NONE: 1.0,
    RiskTier.MINIMUM: 1.0,
    RiskTier.MEDIUM: 1.25,
    RiskTier.HIGH: 1.5,
    RiskTier.SEVERE: 2.0,
}


@dataclass(frozen=True)
class RiskScore:
    """Factor breakdown of a single assessment."""

    crime_count_score: int
    severity_score: int
    violation_score: int
    past_failure_score: int
    tier: RiskTier

    @property
    def total(self) -> int:
        return min(
            MAX_SCORE,
            self.crime_count_score
            + self.severity_score
            + self.violation_score
            + self.past_failure_score,
        )


class RiskAssessor:
    """Pure scoring plus the tier→search-probability table."""

    def __init__(self, minimum_search_probability: float = 0.10) -> None:
        self.search_probabilities: dict[RiskTier, float] = {
            RiskTier.NONE: 0.0,
            RiskTier.MINIMUM: minimum_search_probability,
            RiskTier.MEDIUM: 0.30,
            RiskTier.HIGH: 0.60,
            RiskTier.SEVERE: 0.90,
        }

    def score_factors(
        self,
        crime_count: int,
        average_severity: float,
        violation_count: int,
        past_supervision_count: int,
    ) -> RiskScore:
        crime_count_score = min(crime_count * 2, 20)
        severity_score = math.floor(average_severity * 10) if crime_count else 0
        violation_score = min(violation_count * 5, 30)
        past_failure_score = min(past_supervision_count * 10, 20)

        total = min(MAX_SCORE, crime_count_score + severity_score + violation_score + past_failure_score)
        tier = self.tier_for(total) if crime_count else RiskTier.MINIMUM

        return RiskScore(
            crime_count_score=crime_count_score,
            severity_score=severity_score,
            violation_score=violation_score,
            past_failure_score=past_failure_score,
            tier=tier,
        )

    def score(self, ledger: CrimeLedger) -> RiskScore:
        crimes = ledger.active_crimes()
        average = sum(c.effective_severity for c in crimes) / len(crimes) if crimes else 0.0
        record = ledger.record
        return self.score_factors(
            crime_count=len(crimes),
            average_severity=average,
            violation_count=record.current_violation_count,
            past_supervision_count=record.past_supervision_count,
        )

    @staticmethod
    def tier_for(total: int) -> RiskTier:
        if total < MEDIUM_THRESHOLD:
            return RiskTier.MINIMUM
        if total < HIGH_THRESHOLD:
            return RiskTier.MEDIUM
        if total < SEVERE_THRESHOLD:
            return RiskTier.HIGH
        return RiskTier.SEVERE

    def reassess(self, ledger: CrimeLedger) -> RiskTier:
        """Score the ledger and write the tier back onto its record."""
        result = self.score(ledger)
        record = ledger.record
        previous = record.risk_tier
        record.risk_tier = result.tier
        record.last_assessment_time = ledger.now()

        if previous != result.tier:
            logger.info(
                "Risk tier for %s: %s -> %s (score=%d)",
                record.actor_id,
                previous.value,
                result.tier.value,
                result.total,
            )
        return result.tier

    def search_probability(self, tier: RiskTier) -> float:
        return self.search_probabilities.get(tier, 0.0)

    @staticmethod
    def describe(tier: RiskTier) -> str:
        return TIER_DESCRIPTIONS[tier]
