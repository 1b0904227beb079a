"""
Tests for the record inspector.

Validates:
- Rendering of charges, current supervision and history
- Listing stored actors and reporting missing ones
"""

from __future__ import annotations

from rich.console import Console

from custody_engine.records import audit
from custody_engine.records.schema import CrimeRecord, CriminalRecord, RiskTier
from custody_engine.records.store import RecordRepository, SqlGateway
from custody_engine.supervision.record import SupervisionRecord, SupervisionStatus


def _record() -> CriminalRecord:
    supervision = SupervisionRecord()
    supervision.start(2880.0, 0.0)
    completed = SupervisionRecord(status=SupervisionStatus.COMPLETED, term_minutes=1440.0)
    return CriminalRecord(
        actor_id="actor-9",
        crimes=[
            CrimeRecord(offense_type="Theft", timestamp=0.0, witness_ids=["npc"]),
            CrimeRecord(offense_type="Burglary", timestamp=30.0, severity=2.0),
        ],
        risk_tier=RiskTier.MEDIUM,
        current_supervision=supervision,
        past_supervisions=[completed],
    )


class TestRenderRecord:
    def test_render(self):
        out = Console(record=True, width=140)
        audit.render_record(_record(), now=90.0, out=out)
        text = out.export_text()

        assert "Record: actor-9" in text
        assert "Medium risk - Moderate supervision" in text
        assert "Theft" in text and "Burglary" in text
        assert "$3,000.00" in text
        assert "Current parole" in text
        assert "Supervision History" in text
        assert "completed" in text

    def test_render_empty(self):
        out = Console(record=True, width=140)
        audit.render_record(CriminalRecord(actor_id="clean"), now=0.0, out=out)
        assert "No charges on record" in out.export_text()


class TestRunInspection:
    def setup_method(self):
        self.original_console = audit.console
        audit.console = Console(record=True, width=140)

    def teardown_method(self):
        audit.console = self.original_console

    def _seed(self, url: str) -> None:
        gateway = SqlGateway(url)
        gateway.initialize()
        RecordRepository(gateway).save(_record())

    def test_list_actors(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'records.db'}"
        self._seed(url)
        assert audit.run_inspection(url)
        assert "actor-9" in audit.console.export_text()

    def test_inspect_actor(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'records.db'}"
        self._seed(url)
        assert audit.run_inspection(url, "actor-9", now=60.0)
        assert "Burglary" in audit.console.export_text()

    def test_missing_actor(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'records.db'}"
        assert not audit.run_inspection(url, "ghost")
        assert "No record stored for ghost" in audit.console.export_text()
