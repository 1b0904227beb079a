"""
Tests for the Crime Ledger.

Validates:
- Expiry rules for witnessed, unwitnessed and high-severity crimes
- Wanted level aggregation, decay and cap
- Fine totals and type-grouped counts
- Idempotent witness insertion
- Persistence and risk re-assessment on mutation
"""

from __future__ import annotations

import pytest

from custody_engine.assessment.risk import RiskAssessor
from custody_engine.records.ledger import LedgerBook
from custody_engine.records.schema import CrimeRecord, OffenseType, Point3, RiskTier
from custody_engine.records.store import InMemoryGateway, RecordRepository
from custody_engine.world.clock import WorldClock


class TestCrimeExpiry:
    """Test the per-crime decay policy."""

    def test_high_severity_never_expires(self):
        crime = CrimeRecord(offense_type="Murder", timestamp=0.0, severity=2.0)
        for now in (0.0, 1441.0, 4321.0, 1_000_000.0):
            assert not crime.should_expire(now), f"Severity 2.0 crime expired at {now}"

    def test_unwitnessed_expires_after_one_day(self):
        crime = CrimeRecord(offense_type="Theft", timestamp=0.0, severity=1.0)
        assert not crime.should_expire(1440.0)
        assert crime.should_expire(1440.5)

    def test_witnessed_expires_after_three_days(self):
        crime = CrimeRecord(offense_type="Theft", timestamp=0.0, severity=1.9)
        crime.add_witness("npc-1")
        assert not crime.should_expire(1441.0)
        assert not crime.should_expire(4320.0)
        assert crime.should_expire(4320.5)

    def test_contribution_weights_witnesses(self):
        crime = CrimeRecord(offense_type="Theft", timestamp=0.0, severity=1.0)
        crime.add_witness("a")
        crime.add_witness("b")
        assert crime.contribution_to_wanted_level(0.0) == pytest.approx(1.4)


class TestCrimeLedger:
    """Test ledger queries and mutations."""

    def setup_method(self):
        self.clock = WorldClock()
        self.gateway = InMemoryGateway()
        self.repository = RecordRepository(self.gateway)
        self.book = LedgerBook(self.repository, self.clock, assessor=RiskAssessor())
        self.ledger = self.book.get("actor-1")

    def test_wanted_level_decays_to_zero_on_expiry(self):
        """Three fresh unwitnessed crimes give 3.0; all expire after one day."""
        for _ in range(3):
            self.ledger.add_crime(OffenseType.VANDALISM, Point3(), severity=1.0)
        assert self.ledger.wanted_level() == pytest.approx(3.0)

        self.clock.advance(1441)
        assert self.ledger.wanted_level() == 0
        assert self.ledger.crime_count == 0, "Expired crimes should be removed"

    def test_wanted_level_is_capped(self):
        for _ in range(5):
            self.ledger.add_crime(OffenseType.MURDER, severity=3.0, witness_ids=["a", "b"])
        assert self.ledger.wanted_level() == 10.0

    def test_contribution_decays_with_age(self):
        crime = self.ledger.add_crime(OffenseType.BURGLARY, severity=2.0)
        self.clock.advance(1440 * 3.5)
        assert self.ledger.contribution_to_wanted_level(crime) == pytest.approx(1.0)

        self.clock.advance(1440 * 4)
        assert self.ledger.contribution_to_wanted_level(crime) == 0
        assert self.ledger.crime_count == 1, "Severity 2.0 crime must stay on record"

    def test_add_witness_is_idempotent(self):
        crime = self.ledger.add_crime(OffenseType.THEFT)
        assert self.ledger.add_witness(crime, "w1") is True
        assert self.ledger.add_witness(crime, "w1") is False
        assert self.ledger.add_witness(crime, "") is False
        assert self.ledger.add_witness(0, "w2") is True
        assert crime.witness_ids == ["w1", "w2"]

    def test_add_witness_to_unknown_crime(self):
        stranger = CrimeRecord(offense_type="Theft", timestamp=0.0)
        assert self.ledger.add_witness(stranger, "w1") is False
        assert self.ledger.add_witness(5, "w1") is False

    def test_total_fines(self):
        self.ledger.add_crime(OffenseType.THEFT, severity=1.0)
        self.ledger.add_crime(OffenseType.ASSAULT, severity=1.5)
        self.ledger.add_crime("JaywalkingOnTheMoon", severity=2.0)
        # 200 + 300 × 1.5 + 25 × 2
        assert self.ledger.calculate_total_fines() == pytest.approx(700.0)

    def test_counts_and_summary(self):
        self.ledger.add_crime(OffenseType.THEFT)
        self.ledger.add_crime(OffenseType.THEFT)
        self.ledger.add_crime(OffenseType.ASSAULT)
        assert self.ledger.crime_counts_by_type() == {"Theft": 2, "Assault": 1}
        assert self.ledger.summary() == "Assault, Theft x2"
        assert self.ledger.count_of([OffenseType.THEFT]) == 2

    def test_empty_summary(self):
        assert self.ledger.summary() == "No active charges"

    def test_clear_all(self):
        self.ledger.add_crime(OffenseType.THEFT)
        self.ledger.wanted_level()
        self.ledger.clear_all()
        assert self.ledger.active_crimes() == []
        assert self.ledger.cached_wanted_level == 0.0

    def test_mutation_is_persisted(self):
        self.ledger.add_crime(OffenseType.THEFT)
        assert "actor-1-rapsheet" in self.gateway.blobs

    def test_risk_untouched_without_supervision(self):
        self.ledger.add_crime(OffenseType.THEFT)
        assert self.ledger.risk_tier == RiskTier.NONE

    def test_risk_reassessed_under_supervision(self):
        self.ledger.add_crime(OffenseType.THEFT, severity=1.0)
        assert self.ledger.start_supervision(1440) is True
        assert self.ledger.risk_tier == RiskTier.MINIMUM

        for _ in range(4):
            self.ledger.add_crime(OffenseType.BURGLARY, severity=3.0)
        # count 5 → 10, avg 2.6 → 26
        assert self.ledger.risk_tier == RiskTier.MEDIUM
        assert self.ledger.record.last_assessment_time == 0.0

    def test_book_returns_same_ledger(self):
        assert self.book.get("actor-1") is self.ledger
        assert self.book.get("") is None
        assert self.book.get(None) is None


class TestLedgerSupervision:
    """Test supervision transitions routed through the ledger."""

    def setup_method(self):
        self.clock = WorldClock()
        self.book = LedgerBook(RecordRepository(InMemoryGateway()), self.clock, assessor=RiskAssessor())
        self.ledger = self.book.get("actor-2")

    def test_double_start_rejected(self):
        assert self.ledger.start_supervision(1000) is True
        assert self.ledger.start_supervision(1000) is False

    def test_end_archives(self):
        self.ledger.start_supervision(1000)
        self.clock.advance(1000)
        assert self.ledger.end_supervision() is True
        assert self.ledger.supervision is None
        assert self.ledger.record.past_supervision_count == 1

    def test_revoke_archives(self):
        self.ledger.start_supervision(1000)
        assert self.ledger.revoke_supervision() is True
        assert self.ledger.record.past_supervisions[-1].status.value == "revoked"

    def test_operations_without_supervision_fail(self):
        assert self.ledger.pause_supervision() is False
        assert self.ledger.resume_supervision() is False
        assert self.ledger.end_supervision() is False
        assert self.ledger.record_check_in() is False
