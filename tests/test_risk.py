"""
Tests for the Risk Assessor.

Validates:
- Factor scoring and caps
- Tier thresholds
- Monotonicity in every factor
- Search probabilities per tier
- Assessment over a live ledger with supervision history
"""

from __future__ import annotations

import pytest

from custody_engine.assessment.risk import RiskAssessor
from custody_engine.records.ledger import LedgerBook
from custody_engine.records.schema import OffenseType, RiskTier
from custody_engine.records.store import InMemoryGateway, RecordRepository
from custody_engine.supervision.record import (
    SupervisionRecord,
    SupervisionStatus,
    Violation,
    ViolationType,
)
from custody_engine.world.clock import WorldClock


class TestRiskScoring:
    """Test the pure scoring function."""

    def setup_method(self):
        self.assessor = RiskAssessor()

    def test_reference_scenario_is_high(self):
        score = self.assessor.score_factors(
            crime_count=10,
            average_severity=2.0,
            violation_count=2,
            past_supervision_count=1,
        )
        assert score.crime_count_score == 20
        assert score.severity_score == 20
        assert score.violation_score == 10
        assert score.past_failure_score == 10
        assert score.total == 60
        assert score.tier == RiskTier.HIGH

    def test_factor_caps(self):
        score = self.assessor.score_factors(50, 3.0, 20, 9)
        assert score.crime_count_score == 20
        assert score.violation_score == 30
        assert score.past_failure_score == 20
        assert score.total == 100
        assert score.tier == RiskTier.SEVERE

    def test_total_never_exceeds_hundred(self):
        assert self.assessor.score_factors(50, 9.0, 20, 9).total == 100

    def test_empty_ledger_is_minimum(self):
        score = self.assessor.score_factors(0, 0.0, 6, 2)
        assert score.tier == RiskTier.MINIMUM, "No crimes always yields Minimum"

    @pytest.mark.parametrize(
        "total,tier",
        [
            (0, RiskTier.MINIMUM),
            (19, RiskTier.MINIMUM),
            (20, RiskTier.MEDIUM),
            (39, RiskTier.MEDIUM),
            (40, RiskTier.HIGH),
            (69, RiskTier.HIGH),
            (70, RiskTier.SEVERE),
            (100, RiskTier.SEVERE),
        ],
    )
    def test_tier_thresholds(self, total, tier):
        assert RiskAssessor.tier_for(total) == tier

    def test_monotonic_in_each_factor(self):
        base = {"crime_count": 3, "average_severity": 1.0, "violation_count": 1, "past_supervision_count": 1}
        sweeps = {
            "crime_count": [1, 2, 5, 10, 15, 30],
            "average_severity": [0.0, 0.5, 1.0, 1.5, 2.5, 4.0],
            "violation_count": [0, 1, 3, 6, 10],
            "past_supervision_count": [0, 1, 2, 5],
        }
        for factor, values in sweeps.items():
            totals = [
                self.assessor.score_factors(**{**base, factor: value}).total
                for value in values
            ]
            assert totals == sorted(totals), f"Score decreased while increasing {factor}: {totals}"

    def test_search_probabilities(self):
        assert self.assessor.search_probability(RiskTier.NONE) == 0.0
        assert self.assessor.search_probability(RiskTier.MINIMUM) == 0.10
        assert self.assessor.search_probability(RiskTier.MEDIUM) == 0.30
        assert self.assessor.search_probability(RiskTier.HIGH) == 0.60
        assert self.assessor.search_probability(RiskTier.SEVERE) == 0.90

    def test_configurable_minimum_probability(self):
        assessor = RiskAssessor(minimum_search_probability=0.15)
        assert assessor.search_probability(RiskTier.MINIMUM) == 0.15

    def test_descriptions(self):
        assert RiskAssessor.describe(RiskTier.NONE) == "No assessment"
        assert RiskAssessor.describe(RiskTier.HIGH) == "High risk - Intensive supervision"


class TestLedgerAssessment:
    """Test assessment against a real ledger."""

    def setup_method(self):
        self.clock = WorldClock()
        self.assessor = RiskAssessor()
        self.book = LedgerBook(RecordRepository(InMemoryGateway()), self.clock, assessor=self.assessor)
        self.ledger = self.book.get("actor-9")

    def test_reference_scenario_through_ledger(self):
        self.ledger.record.past_supervisions.append(
            SupervisionRecord(status=SupervisionStatus.COMPLETED)
        )
        for _ in range(10):
            self.ledger.add_crime(OffenseType.BURGLARY, severity=2.0)
        assert self.ledger.start_supervision(5000) is True

        for _ in range(2):
            self.ledger.add_violation(
                Violation(type=ViolationType.CURFEW, time=self.clock.current_world_minutes())
            )

        assert self.assessor.score(self.ledger).total == 60
        assert self.ledger.risk_tier == RiskTier.HIGH

    def test_expiry_under_supervision_reassesses(self):
        for _ in range(10):
            self.ledger.add_crime(OffenseType.THEFT, severity=1.0)
        assert self.ledger.start_supervision(5000) is True
        assert self.ledger.risk_tier == RiskTier.MEDIUM

        self.clock.advance(1500)
        assert self.ledger.risk_tier == RiskTier.MINIMUM, "Tier must follow expired crimes"
        assert self.ledger.crime_count == 0
        assert self.ledger.record.risk_tier == self.assessor.score(self.ledger).tier

    def test_zero_severity_uses_offense_default(self):
        self.ledger.add_crime(OffenseType.THEFT, severity=0.0)
        assert self.assessor.score(self.ledger).severity_score == 15

    def test_expired_crimes_do_not_count(self):
        self.ledger.add_crime(OffenseType.THEFT, severity=1.0)
        self.clock.advance(2000)
        score = self.assessor.score(self.ledger)
        assert score.crime_count_score == 0
        assert score.severity_score == 0
