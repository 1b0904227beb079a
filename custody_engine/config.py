"""Custody Engine — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class CustodySettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CUSTODY_",
        "extra": "ignore",
    }

    # ── Persistence ────────────────────────────────────────────
    database_url: str = "sqlite:///custody_engine.db"

    # ── Sentencing ─────────────────────────────────────────────
    min_sentence_minutes: float = 120.0
    max_sentence_minutes: float = 7200.0
    global_sentence_multiplier: float = 1.0
    enable_repeat_offender_penalties: bool = True
    enable_witness_multipliers: bool = True
    enable_severity_multipliers: bool = True

    # ── Custody ────────────────────────────────────────────────
    booking_minutes: float = 5.0
    holding_processing_minutes: float = 60.0
    release_processing_minutes: float = 10.0
    holding_cells: int = 4
    main_cells: int = 12

    # ── Supervision ────────────────────────────────────────────
    search_interval_min: float = 30.0
    search_interval_max: float = 120.0
    search_radius: float = 50.0
    minimum_search_probability: float = 0.10
    max_violations_before_revoke: int = 3
    violation_extension_fraction: float = 0.2
    supervision_base_minutes: float = 2880.0
    supervision_minutes_per_crime: float = 240.0
    supervision_min_minutes: float = 1440.0
    supervision_max_minutes: float = 10080.0
    resume_minutes_per_crime: float = 240.0
    resume_minutes_per_violation: float = 480.0

    # ── Bail ───────────────────────────────────────────────────
    bail_negotiation_range: float = 0.2
    bail_negotiable_threshold: float = 500.0
    negotiation_window_minutes: float = 60.0
    negotiation_floor_fraction: float = 0.5
    multiplayer_enabled: bool = False

    # ── Dashboard ──────────────────────────────────────────────
    dashboard_host: str = "0.0.0.0"
    dashboard_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = CustodySettings()
