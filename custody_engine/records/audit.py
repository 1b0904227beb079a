"""
Record Inspector — print persisted criminal records from the command line.

Reads records straight from the record database, so it can be pointed at a
live world's store without loading the engine.

Usage:
    python -m custody_engine.records.audit
    python -m custody_engine.records.audit --actor actor-001
    python -m custody_engine.records.audit --database-url sqlite:///other.db --now 2880
"""

from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.table import Table

from custody_engine.assessment.risk import RiskAssessor
from custody_engine.config import settings
from custody_engine.records.schema import CriminalRecord, fine_for
from custody_engine.records.store import RecordRepository, SqlGateway, record_key
from custody_engine.world.clock import format_world_time

console = Console()


def render_record(record: CriminalRecord, now: float, out: Console | None = None) -> None:
    """Print one record: charges, current supervision and history."""
    out = out or console
    out.print(f"\n[bold blue]═══ Record: {record.actor_id} ═══[/bold blue]")
    out.print(
        f"  Risk tier: [bold]{record.risk_tier.value}[/bold]"
        f" ({RiskAssessor.describe(record.risk_tier)})"
    )

    if record.crimes:
        table = Table(title="Charges")
        table.add_column("Offense", style="bold")
        table.add_column("Age")
        table.add_column("Severity", justify="right")
        table.add_column("Witnesses", justify="right")
        table.add_column("Fine", justify="right")
        table.add_column("Expires", justify="center")
        for crime in record.crimes:
            table.add_row(
                crime.offense_type,
                format_world_time(crime.age(now)),
                f"{crime.severity:.1f}",
                str(len(crime.witness_ids)),
                f"${fine_for(crime.offense_type) * crime.severity:,.2f}",
                "yes" if crime.should_expire(now) else "no",
            )
        out.print(table)
    else:
        out.print("  [dim]No charges on record[/dim]")

    supervision = record.current_supervision
    if supervision is not None:
        summary = supervision.compliance_summary(now)
        out.print(
            f"  Current {summary['kind']}: [bold]{summary['status']}[/bold]"
            f" remaining={summary['remaining']}"
            f" compliance={summary['compliance_score']}"
            f" violations={summary['violations']}"
        )

    if record.past_supervisions:
        history = Table(title="Supervision History")
        history.add_column("#", justify="right")
        history.add_column("Kind")
        history.add_column("Outcome", style="bold")
        history.add_column("Term")
        history.add_column("Violations", justify="right")
        history.add_column("Compliance", justify="right")
        for index, past in enumerate(record.past_supervisions, start=1):
            history.add_row(
                str(index),
                past.kind.value,
                past.status.value,
                format_world_time(past.term_minutes),
                str(past.violation_count),
                f"{past.compliance_score:.0f}",
            )
        out.print(history)


def run_inspection(database_url: str, actor_id: str | None = None, now: float = 0.0) -> bool:
    """
    Inspect one actor, or list every actor with a stored record.

    Returns:
        False if a requested actor has no stored record, True otherwise.
    """
    gateway = SqlGateway(database_url)
    gateway.initialize()

    if actor_id is None:
        actors = gateway.actor_ids()
        if not actors:
            console.print("[yellow]⚠ No records stored[/yellow]")
            return True
        table = Table(title="Stored Records")
        table.add_column("Actor", style="bold")
        for actor in actors:
            table.add_row(actor)
        console.print(table)
        return True

    if gateway.load(record_key(actor_id)) is None:
        console.print(f"[red]✗ No record stored for {actor_id}[/red]")
        return False

    record = RecordRepository(gateway).get(actor_id)
    render_record(record, now)
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Custody Engine record inspector")
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="Record database URL",
    )
    parser.add_argument("--actor", default=None, help="Actor id to inspect")
    parser.add_argument(
        "--now",
        type=float,
        default=0.0,
        help="World-minutes to evaluate ages and expiry at",
    )
    args = parser.parse_args()

    ok = run_inspection(args.database_url, args.actor, args.now)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
