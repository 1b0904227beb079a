"""
Tests for the Custody Controller.

Validates:
- Short path (holding only) and long path (holding → main) routing
- Booking suspension and countdown release on the world clock
- Double-arrest rejection and in-flight release no-ops
- Which release reasons clear the ledger
- Arrest resets a release in flight
- Supervision pause on arrest and resume/extension on release
"""

from __future__ import annotations

import random

import pytest

from custody_engine.config import CustodySettings
from custody_engine.custody.controller import CustodyPhase, ReleaseReason
from custody_engine.custody.environment import InMemoryCustodyEnvironment
from custody_engine.orchestrator import build_services
from custody_engine.records.schema import OffenseType
from custody_engine.records.store import InMemoryGateway
from custody_engine.supervision.record import SupervisionStatus
from custody_engine.world.interfaces import CellArea


class TestCustodyController:
    """Test the custody state machine."""

    def setup_method(self):
        self.config = CustodySettings(
            booking_minutes=5.0,
            holding_processing_minutes=60.0,
            release_processing_minutes=10.0,
        )
        self.environment = InMemoryCustodyEnvironment(holding_cells=2, main_cells=2)
        self.services = build_services(
            self.config,
            gateway=InMemoryGateway(),
            rng=random.Random(7),
            environment=self.environment,
        )
        self.clock = self.services.clock
        self.custody = self.services.custody
        self.ledger = self.services.ledgers.get("suspect")

    def test_short_sentence_served_in_holding(self):
        self.ledger.add_crime(OffenseType.THEFT, severity=1.0)
        case = self.custody.arrest("suspect")
        assert case is not None
        assert case.sentence.jail_time_minutes == 120.0
        assert not case.sentence.is_long_sentence
        assert self.custody.phase("suspect") == CustodyPhase.BOOKING

        self.clock.advance(5)
        assert self.custody.phase("suspect") == CustodyPhase.IN_HOLDING
        cell = self.environment.cell_of("suspect")
        assert cell is not None and cell.area == CellArea.HOLDING and cell.locked

        self.clock.advance(125)
        assert self.custody.phase("suspect") == CustodyPhase.RELEASING

        self.clock.advance(10)
        assert self.custody.phase("suspect") == CustodyPhase.FREE
        assert not self.custody.is_in_custody("suspect")
        assert self.environment.occupancy(CellArea.HOLDING) == 0
        assert self.ledger.crime_count == 0, "Time served clears the ledger"
        assert self.custody.history[-1].release_reason == ReleaseReason.TIME_SERVED

    def test_time_served_starts_parole(self):
        self.ledger.add_crime(OffenseType.THEFT, severity=1.0)
        self.custody.arrest("suspect")
        self.clock.advance(140)
        supervision = self.ledger.supervision
        assert supervision is not None
        assert supervision.status == SupervisionStatus.ACTIVE
        assert supervision.term_minutes == pytest.approx(3120.0)

    def test_long_sentence_transfers_to_main(self):
        self.ledger.add_crime(OffenseType.BURGLARY, severity=1.0, witness_ids=["npc-1"])
        case = self.custody.arrest("suspect")
        assert case.sentence.jail_time_minutes == pytest.approx(2160.0)
        assert case.sentence.is_long_sentence

        self.clock.advance(5)
        assert self.custody.phase("suspect") == CustodyPhase.IN_HOLDING

        self.clock.advance(61)
        assert self.custody.phase("suspect") == CustodyPhase.IN_MAIN
        assert self.environment.occupancy(CellArea.HOLDING) == 0
        assert self.environment.occupancy(CellArea.MAIN) == 1
        assert self.custody.remaining_minutes("suspect") < 2160.0

    def test_countdown_runs_through_transfer(self):
        self.ledger.add_crime(OffenseType.BURGLARY, severity=1.0, witness_ids=["npc-1"])
        self.custody.arrest("suspect")
        self.clock.advance(5 + 2160)
        assert self.custody.phase("suspect") == CustodyPhase.RELEASING

    def test_second_arrest_rejected(self):
        first = self.custody.arrest("suspect")
        assert first is not None
        assert self.custody.arrest("suspect") is None
        assert self.custody.case("suspect") is first

    def test_second_release_is_noop(self):
        self.ledger.add_crime(OffenseType.THEFT)
        self.custody.arrest("suspect")
        self.clock.advance(5)
        assert self.custody.release("suspect", ReleaseReason.COURT_ORDER) is True
        assert self.custody.release("suspect", ReleaseReason.BAIL_PAYMENT, 500.0) is False
        assert self.custody.case("suspect").release_reason == ReleaseReason.COURT_ORDER

    def test_court_order_keeps_charges(self):
        self.ledger.add_crime(OffenseType.BURGLARY, severity=2.0)
        self.custody.arrest("suspect")
        self.clock.advance(5)
        self.custody.release("suspect", "court_order")
        self.clock.advance(10)
        assert self.custody.phase("suspect") == CustodyPhase.FREE
        assert self.ledger.crime_count == 1
        assert self.ledger.supervision is None, "Only time served starts parole"

    def test_bail_payment_clears_ledger(self):
        self.ledger.add_crime(OffenseType.BURGLARY, severity=2.0)
        self.custody.arrest("suspect")
        self.clock.advance(5)
        self.custody.release("suspect", ReleaseReason.BAIL_PAYMENT, 1000.0)
        assert self.ledger.crime_count == 0

    def test_emergency_release_is_immediate(self):
        self.custody.arrest("suspect")
        self.clock.advance(5)
        assert self.custody.release("suspect", ReleaseReason.EMERGENCY)
        assert self.custody.phase("suspect") == CustodyPhase.FREE
        assert self.custody.history[-1].exit_position is not None

    def test_release_during_booking_cancels_booking(self):
        self.custody.arrest("suspect")
        assert self.custody.release("suspect", ReleaseReason.EMERGENCY)
        self.clock.advance(10)
        assert self.custody.phase("suspect") == CustodyPhase.FREE
        assert self.environment.occupancy(CellArea.HOLDING) == 0

    def test_arrest_cancels_release_in_flight(self):
        self.custody.arrest("suspect")
        self.clock.advance(5)
        self.custody.release("suspect", ReleaseReason.COURT_ORDER)
        assert self.custody.phase("suspect") == CustodyPhase.RELEASING

        case = self.custody.arrest("suspect")
        assert case is not None
        self.clock.advance(10)
        assert self.custody.phase("suspect") == CustodyPhase.IN_HOLDING
        assert self.environment.occupancy(CellArea.HOLDING) == 1

    def test_unknown_actor(self):
        assert self.custody.arrest(None) is None
        assert self.custody.arrest("") is None
        assert self.custody.release("nobody", ReleaseReason.COURT_ORDER) is False
        assert self.custody.phase("nobody") == CustodyPhase.FREE
        assert self.custody.snapshot("nobody") is None

    def test_full_facility_still_holds_actor(self):
        for actor in ("a", "b", "c"):
            self.services.ledgers.get(actor).add_crime(OffenseType.THEFT)
            self.custody.arrest(actor)
        self.clock.advance(5)
        assert self.custody.phase("c") == CustodyPhase.IN_HOLDING
        assert self.custody.case("c").cell_assignment is None

    def test_snapshot(self):
        self.ledger.add_crime(OffenseType.THEFT)
        self.custody.arrest("suspect")
        self.clock.advance(5)
        snapshot = self.custody.snapshot("suspect")
        assert snapshot["phase"] == "in_holding"
        assert snapshot["sentence"] == "Moderate offenses ($200 in fines)"
        assert snapshot["cell_area"] == "holding"


class TestCustodySupervisionHandOff:
    """Test the custody ⇄ supervision interaction."""

    def setup_method(self):
        config = CustodySettings(booking_minutes=5.0, release_processing_minutes=10.0)
        self.services = build_services(config, gateway=InMemoryGateway(), rng=random.Random(3))
        self.clock = self.services.clock
        self.ledger = self.services.ledgers.get("parolee")

    def test_arrest_pauses_supervision(self):
        self.services.supervision.start_supervision("parolee", 5000)
        self.services.custody.arrest("parolee")
        assert self.ledger.supervision.status == SupervisionStatus.PAUSED

    def test_court_order_resumes_without_extension(self):
        self.services.supervision.start_supervision("parolee", 5000)
        self.services.custody.arrest("parolee")
        self.clock.advance(5)
        self.services.custody.release("parolee", ReleaseReason.COURT_ORDER)
        self.clock.advance(10)
        supervision = self.ledger.supervision
        assert supervision.status == SupervisionStatus.ACTIVE
        assert supervision.end_time == pytest.approx(15.0 + 5000.0)

    def test_time_served_extends_paused_supervision(self):
        self.services.supervision.start_supervision("parolee", 5000)
        self.ledger.add_crime(OffenseType.THEFT, severity=1.0)
        self.services.custody.arrest("parolee")
        self.clock.advance(134)
        supervision = self.ledger.supervision
        assert supervision.status == SupervisionStatus.ACTIVE
        assert supervision.end_time == pytest.approx(134.0 + 5000.0 + 240.0)
