"""
Tests for the read-only presentation API.

Validates:
- Status and custody listings reflect live engine state
- Per-actor record, custody, bail and supervision views
- 404s for actors without the requested state
"""

from __future__ import annotations

import random

from fastapi.testclient import TestClient

from custody_engine.config import CustodySettings
from custody_engine.custody.environment import InMemoryCustodyEnvironment
from custody_engine.dashboard.app import app, state
from custody_engine.orchestrator import build_services
from custody_engine.records.schema import CrimeRecord, CriminalRecord, OffenseType
from custody_engine.records.store import InMemoryGateway, encode_record, record_key


class TestDashboard:
    """Test API routes against injected services."""

    def setup_method(self):
        self.services = build_services(
            CustodySettings(),
            gateway=InMemoryGateway(),
            rng=random.Random(11),
            environment=InMemoryCustodyEnvironment(),
        )
        state.services = self.services
        self.client = TestClient(app)

    def teardown_method(self):
        self.services.shutdown()
        state.services = None

    def _book(self, actor_id: str, offense: OffenseType, severity: float = 1.0) -> None:
        self.services.ledgers.get(actor_id).add_crime(offense, severity=severity)
        self.services.custody.arrest(actor_id)
        self.services.clock.advance(5)

    def test_status(self):
        self._book("inmate", OffenseType.THEFT)
        body = self.client.get("/api/status").json()
        assert body["world_minutes"] == 5.0
        assert body["world_time"] == "5m"
        assert body["in_custody"] == 1

    def test_custody_listing(self):
        self._book("inmate", OffenseType.THEFT)
        body = self.client.get("/api/custody").json()
        assert [case["actor_id"] for case in body] == ["inmate"]
        assert body[0]["phase"] == "in_holding"

    def test_actor_record(self):
        ledger = self.services.ledgers.get("suspect")
        ledger.add_crime(OffenseType.THEFT)
        ledger.add_crime(OffenseType.THEFT)
        body = self.client.get("/api/actors/suspect/record").json()
        assert body["charges"] == "Theft x2"
        assert body["total_fines"] == 400.0
        assert body["crime_counts"] == {"Theft": 2}
        assert body["risk_tier"] == "none"

    def test_actor_custody(self):
        self._book("inmate", OffenseType.THEFT)
        body = self.client.get("/api/actors/inmate/custody").json()
        assert body["sentence"] == "Moderate offenses ($200 in fines)"
        assert body["cell_area"] == "holding"

    def test_unknown_actor_record_is_not_created(self):
        statuses = {self.client.get(f"/api/actors/ghost-{i}/record").status_code for i in range(5)}
        assert statuses == {404}
        assert self.client.get("/api/actors/ghost-0/supervision").status_code == 404
        assert self.services.ledgers.actor_ids() == []
        assert self.services.repository.cached_actor_ids() == []
        assert self.services.repository.gateway.blobs == {}

    def test_stored_actor_record_found(self):
        stored = CriminalRecord(
            actor_id="stored",
            crimes=[CrimeRecord(offense_type="Burglary", timestamp=0.0, severity=2.0)],
        )
        self.services.repository.gateway.blobs[record_key("stored")] = encode_record(stored)
        body = self.client.get("/api/actors/stored/record").json()
        assert body["charges"] == "Burglary"

    def test_actor_not_in_custody(self):
        response = self.client.get("/api/actors/nobody/custody")
        assert response.status_code == 404

    def test_actor_bail(self):
        self._book("inmate", OffenseType.ASSAULT, severity=2.0)
        body = self.client.get("/api/actors/inmate/bail").json()
        assert body["amount"] == 4200.0
        assert body["is_negotiable"] is True

    def test_no_bail_offer(self):
        assert self.client.get("/api/actors/nobody/bail").status_code == 404

    def test_actor_supervision(self):
        self.services.supervision.start_supervision("parolee", 2880.0)
        body = self.client.get("/api/actors/parolee/supervision").json()
        assert body["status"] == "active"
        assert body["remaining"] == "2d 0h 0m"
        assert body["monitored"] is True

    def test_no_supervision(self):
        assert self.client.get("/api/actors/nobody/supervision").status_code == 404

    def test_unavailable_without_services(self):
        state.services = None
        assert self.client.get("/api/status").status_code == 503
