"""
Custody Engine — Read-only presentation API.

FastAPI application exposing snapshot queries for a UI to render:
- Actor record (wanted level, fines, charges, risk tier)
- Custody case (phase, sentence description, remaining time)
- Bail offer (amount, negotiability, bounds)
- Supervision status and compliance summary

Nothing here mutates engine state; the engine never depends on it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from custody_engine.config import settings
from custody_engine.world.clock import format_world_time

logger = logging.getLogger(__name__)


class DashboardState:
    """Services injected at startup."""

    def __init__(self) -> None:
        self.services: Any = None


state = DashboardState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to the engine services unless a host already injected them."""
    if state.services is None:
        from custody_engine.orchestrator import build_services

        state.services = build_services(settings)
        logger.info("Dashboard built its own engine services (%s)", settings.database_url)
    yield
    logger.info("Dashboard shutting down")


app = FastAPI(
    title="Custody Engine",
    description="Read-only views of records, custody, bail and supervision",
    lifespan=lifespan,
)


def _services() -> Any:
    if state.services is None:
        raise HTTPException(status_code=503, detail="Engine services not available")
    return state.services


def _now() -> float:
    return _services().clock.current_world_minutes()


# ── API routes ─────────────────────────────────────────────────


@app.get("/api/status")
async def status() -> JSONResponse:
    services = _services()
    now = _now()
    return JSONResponse(
        {
            "world_minutes": now,
            "world_time": format_world_time(now),
            "in_custody": len(services.custody.active_cases),
            "under_supervision": len(services.supervision.monitored),
        }
    )


@app.get("/api/custody")
async def custody_cases() -> JSONResponse:
    services = _services()
    snapshots = [
        services.custody.snapshot(actor_id)
        for actor_id in sorted(services.custody.active_cases)
    ]
    return JSONResponse([s for s in snapshots if s is not None])


@app.get("/api/actors/{actor_id}/record")
async def actor_record(actor_id: str) -> JSONResponse:
    services = _services()
    ledger = services.ledgers.find(actor_id)
    if ledger is None:
        raise HTTPException(status_code=404, detail="Unknown actor")

    with ledger.lock:
        tier = ledger.risk_tier
        return JSONResponse(
            {
                "actor_id": actor_id,
                "wanted_level": round(ledger.wanted_level(), 2),
                "total_fines": round(services.calculator.calculate_fine(ledger), 2),
                "charges": ledger.summary(),
                "crime_counts": ledger.crime_counts_by_type(),
                "risk_tier": tier.value,
                "risk_description": services.assessor.describe(tier),
                "past_supervisions": ledger.record.past_supervision_count,
            }
        )


@app.get("/api/actors/{actor_id}/custody")
async def actor_custody(actor_id: str) -> JSONResponse:
    snapshot = _services().custody.snapshot(actor_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Actor is not in custody")
    return JSONResponse(snapshot)


@app.get("/api/actors/{actor_id}/bail")
async def actor_bail(actor_id: str) -> JSONResponse:
    offer = _services().bail.current_offer(actor_id)
    if offer is None:
        raise HTTPException(status_code=404, detail="No bail offer")
    return JSONResponse(offer.model_dump(mode="json"))


@app.get("/api/actors/{actor_id}/supervision")
async def actor_supervision(actor_id: str) -> JSONResponse:
    services = _services()
    ledger = services.ledgers.find(actor_id)
    if ledger is None or ledger.supervision is None:
        raise HTTPException(status_code=404, detail="No supervision on record")
    summary = ledger.supervision.compliance_summary(_now())
    summary["monitored"] = services.supervision.is_monitored(actor_id)
    return JSONResponse(summary)
