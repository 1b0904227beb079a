"""
Custody Engine — Orchestrator.

Central wiring entrypoint that:
1. Configures structured logging
2. Builds the world clock, persistence and every engine service once
3. Wires the custody ⇄ supervision ⇄ bail hand-offs
4. Runs a scripted world simulation driven by ``WorldClock.advance``

Services are constructed here and passed by reference; nothing in the
engine reaches for a global instance.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from dataclasses import dataclass
from typing import Any

import structlog

from custody_engine.assessment.risk import RiskAssessor
from custody_engine.config import CustodySettings, settings
from custody_engine.custody.controller import CustodyController
from custody_engine.custody.environment import InMemoryCustodyEnvironment, TimedBookingProcess
from custody_engine.records.ledger import LedgerBook
from custody_engine.records.schema import OffenseType, Point3
from custody_engine.records.store import PersistenceGateway, RecordRepository, SqlGateway
from custody_engine.sentencing.bail import BailNegotiator
from custody_engine.sentencing.calculator import SentenceCalculator
from custody_engine.supervision.monitor import (
    RandomSearchInspector,
    StaticOfficerLocator,
    SupervisionMonitor,
)
from custody_engine.world.clock import WorldClock, format_world_time
from custody_engine.world.interfaces import (
    BookingProcess,
    CustodyEnvironment,
    OfficerLocator,
    SearchInspector,
)
from custody_engine.world.locks import ActorLocks

logger = logging.getLogger(__name__)


def configure_logging(config: CustodySettings = settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@dataclass
class Services:
    """Every engine service for one world, constructed once."""

    config: CustodySettings
    clock: WorldClock
    locks: ActorLocks
    repository: RecordRepository
    ledgers: LedgerBook
    assessor: RiskAssessor
    calculator: SentenceCalculator
    bail: BailNegotiator
    supervision: SupervisionMonitor
    custody: CustodyController

    def shutdown(self) -> None:
        self.custody.shutdown()
        self.supervision.shutdown()


def build_services(
    config: CustodySettings = settings,
    gateway: PersistenceGateway | None = None,
    clock: WorldClock | None = None,
    rng: random.Random | None = None,
    environment: CustodyEnvironment | None = None,
    booking: BookingProcess | None = None,
    officers: OfficerLocator | None = None,
    inspector: SearchInspector | None = None,
) -> Services:
    """
    Construct and wire the engine.

    Args:
        config: Settings to read tunables from.
        gateway: Byte store for records. Defaults to a SQL gateway on
            ``config.database_url``.
        clock: World clock. A fresh one starting at minute 0 by default.
        rng: Random source for search scheduling and search rolls.
        environment, booking, officers, inspector: Host collaborators.
            Booking defaults to a timed process on the world clock.
    """
    clock = clock or WorldClock()
    rng = rng or random.Random()

    if gateway is None:
        sql_gateway = SqlGateway(config.database_url)
        sql_gateway.initialize()
        gateway = sql_gateway

    locks = ActorLocks()
    repository = RecordRepository(gateway)
    assessor = RiskAssessor(minimum_search_probability=config.minimum_search_probability)
    ledgers = LedgerBook(repository, clock, assessor=assessor, locks=locks)
    calculator = SentenceCalculator(
        min_sentence_minutes=config.min_sentence_minutes,
        max_sentence_minutes=config.max_sentence_minutes,
        global_multiplier=config.global_sentence_multiplier,
        enable_repeat_offender_penalties=config.enable_repeat_offender_penalties,
        enable_witness_multipliers=config.enable_witness_multipliers,
        enable_severity_multipliers=config.enable_severity_multipliers,
        supervision_base_minutes=config.supervision_base_minutes,
        supervision_minutes_per_crime=config.supervision_minutes_per_crime,
        supervision_min_minutes=config.supervision_min_minutes,
        supervision_max_minutes=config.supervision_max_minutes,
        resume_minutes_per_crime=config.resume_minutes_per_crime,
        resume_minutes_per_violation=config.resume_minutes_per_violation,
    )
    bail = BailNegotiator(
        clock,
        ledgers,
        negotiation_range=config.bail_negotiation_range,
        negotiable_threshold=config.bail_negotiable_threshold,
        window_minutes=config.negotiation_window_minutes,
        floor_fraction=config.negotiation_floor_fraction,
        multiplayer_enabled=config.multiplayer_enabled,
    )
    supervision = SupervisionMonitor(
        clock,
        ledgers,
        assessor,
        calculator,
        officers=officers,
        inspector=inspector,
        rng=rng,
        search_interval_min=config.search_interval_min,
        search_interval_max=config.search_interval_max,
        search_radius=config.search_radius,
        max_violations_before_revoke=config.max_violations_before_revoke,
        violation_extension_fraction=config.violation_extension_fraction,
    )
    custody = CustodyController(
        clock,
        ledgers,
        calculator,
        environment=environment,
        booking=booking if booking is not None else TimedBookingProcess(clock, config.booking_minutes),
        supervision=supervision,
        bail=bail,
        locks=locks,
        holding_processing_minutes=config.holding_processing_minutes,
        release_processing_minutes=config.release_processing_minutes,
    )

    bail.custody = custody
    supervision.on_revoked = custody.arrest

    return Services(
        config=config,
        clock=clock,
        locks=locks,
        repository=repository,
        ledgers=ledgers,
        assessor=assessor,
        calculator=calculator,
        bail=bail,
        supervision=supervision,
        custody=custody,
    )


def run_simulation(services: Services, actor_id: str, minutes: float, step: float = 60.0) -> dict[str, Any]:
    """
    Walk one actor through a crime spree, custody and supervision.

    Returns the final snapshot of the actor's record.
    """
    log = structlog.get_logger()
    ledger = services.ledgers.get(actor_id)

    ledger.add_crime(OffenseType.THEFT, Point3(x=12.0, z=-4.0), severity=1.0, witness_ids=["npc-clerk"])
    ledger.add_crime(OffenseType.ASSAULT, Point3(x=14.0, z=-3.0), severity=1.5)
    ledger.add_crime(OffenseType.DEADLY_ASSAULT, Point3(x=20.0, z=1.0), severity=2.5, witness_ids=["npc-1", "npc-2"])
    log.info(
        "custody_engine.simulation.crimes_recorded",
        actor=actor_id,
        wanted_level=round(ledger.wanted_level(), 2),
        fines=round(ledger.calculate_total_fines(), 2),
    )

    case = services.custody.arrest(actor_id)
    if case is not None:
        log.info(
            "custody_engine.simulation.arrested",
            actor=actor_id,
            sentence=case.sentence.description,
            jail_time=format_world_time(case.sentence.jail_time_minutes),
        )

    elapsed = 0.0
    while elapsed < minutes:
        advance = min(step, minutes - elapsed)
        services.clock.advance(advance)
        elapsed += advance
        supervision = ledger.supervision
        log.info(
            "custody_engine.simulation.tick",
            world_minutes=services.clock.current_world_minutes(),
            custody_phase=services.custody.phase(actor_id).value,
            custody_remaining=services.custody.remaining_formatted(actor_id),
            supervision=supervision.status.value if supervision else "none",
        )

    supervision = ledger.supervision
    return {
        "actor_id": actor_id,
        "custody_phase": services.custody.phase(actor_id).value,
        "risk_tier": ledger.risk_tier.value,
        "active_crimes": ledger.crime_count,
        "supervision": (
            supervision.compliance_summary(services.clock.current_world_minutes())
            if supervision
            else None
        ),
        "past_supervisions": ledger.record.past_supervision_count,
    }


def main(argv: list[str] | None = None) -> None:
    """Scripted simulation entrypoint."""
    parser = argparse.ArgumentParser(description="Custody Engine — world simulation")
    parser.add_argument("--actor", default="actor-001", help="Actor id to simulate")
    parser.add_argument("--minutes", type=float, default=4 * 1440, help="World-minutes to simulate")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--database-url", default=settings.database_url, help="Record database URL")
    args = parser.parse_args(argv)

    configure_logging()
    log = structlog.get_logger()
    log.info("custody_engine.orchestrator.starting", database_url=args.database_url, actor=args.actor)

    config = settings.model_copy(update={"database_url": args.database_url})
    rng = random.Random(args.seed)
    clock = WorldClock()
    inspector = RandomSearchInspector(clock, rng)
    services = build_services(
        config,
        clock=clock,
        rng=rng,
        environment=InMemoryCustodyEnvironment(config.holding_cells, config.main_cells),
        officers=StaticOfficerLocator(distance=10.0),
        inspector=inspector,
    )
    log.info("custody_engine.orchestrator.services_ready")

    result = run_simulation(services, args.actor, args.minutes)
    services.shutdown()
    log.info("custody_engine.orchestrator.finished", **result)
    sys.exit(0)


if __name__ == "__main__":
    main()
