"""
Criminal Record Schema — typed models for everything the engine persists
or hands between components.

Persisted shapes (``CrimeRecord``, ``CriminalRecord`` and the supervision
records they embed) round-trip through ``model_dump(mode="json")`` and
``model_validate``; nothing depends on a particular storage engine.
Transient shapes (``Sentence``, ``BailOffer``) are recomputed on demand and
never stored on their own.

The offense tables here are the canonical ones: one fine per offense tag,
multiplied by crime severity, with a flat default for unknown tags.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field, computed_field

from custody_engine.supervision.record import SupervisionRecord

MINUTES_PER_DAY = 1440.0
NON_EXPIRING_SEVERITY = 2.0
UNWITNESSED_EXPIRY_MINUTES = 1440.0
WITNESSED_EXPIRY_MINUTES = 4320.0
WITNESS_WEIGHT = 0.2
WANTED_DECAY_DAYS = 7.0


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class OffenseType(str, enum.Enum):
    """Known offense tags. Ledgers also accept tags not listed here."""

    TRESPASSING = "Trespassing"
    VANDALISM = "Vandalism"
    PUBLIC_INTOXICATION = "PublicIntoxication"
    DISTURBING_PEACE = "DisturbingPeace"
    SPEEDING = "Speeding"
    RECKLESS_DRIVING = "RecklessDriving"
    BRANDISHING_WEAPON = "BrandishingWeapon"
    DISCHARGE_FIREARM = "DischargeFirearm"
    DRUG_POSSESSION_LOW = "DrugPossessionLow"
    WEAPON_POSSESSION = "WeaponPossession"
    THEFT = "Theft"
    VEHICLE_THEFT = "VehicleTheft"
    ASSAULT = "Assault"
    ASSAULT_ON_CIVILIAN = "AssaultOnCivilian"
    VEHICULAR_ASSAULT = "VehicularAssault"
    DRUG_POSSESSION_MODERATE = "DrugPossessionModerate"
    EVADING = "Evading"
    FAILURE_TO_COMPLY = "FailureToComply"
    HIT_AND_RUN = "HitAndRun"
    VIOLATING_CURFEW = "ViolatingCurfew"
    DEADLY_ASSAULT = "DeadlyAssault"
    ASSAULT_ON_OFFICER = "AssaultOnOfficer"
    BURGLARY = "Burglary"
    DRUG_POSSESSION_HIGH = "DrugPossessionHigh"
    DRUG_TRAFFICKING = "DrugTrafficking"
    ATTEMPTING_TO_SELL = "AttemptingToSell"
    WITNESS_INTIMIDATION = "WitnessIntimidation"
    MANSLAUGHTER = "Manslaughter"
    MURDER = "Murder"
    MURDER_OF_EMPLOYEE = "MurderOfEmployee"
    MURDER_OF_OFFICER = "MurderOfOfficer"


class RiskTier(str, enum.Enum):
    """LSI risk classification. NONE means no assessment has been performed."""

    NONE = "none"
    MINIMUM = "minimum"
    MEDIUM = "medium"
    HIGH = "high"
    SEVERE = "severe"


class SeverityTier(str, enum.Enum):
    """Sentence severity, derived from the total fine."""

    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    SEVERE = "severe"


# ════════════════════════════════════════════════════════════════
# Offense Tables
# ════════════════════════════════════════════════════════════════

DEFAULT_FINE = 25.0

FINE_TABLE: dict[str, float] = {
    # Minor
    OffenseType.TRESPASSING.value: 25.0,
    OffenseType.VANDALISM.value: 50.0,
    OffenseType.PUBLIC_INTOXICATION.value: 50.0,
    OffenseType.DISTURBING_PEACE.value: 25.0,
    OffenseType.SPEEDING.value: 15.0,
    OffenseType.RECKLESS_DRIVING.value: 75.0,
    OffenseType.BRANDISHING_WEAPON.value: 50.0,
    OffenseType.DISCHARGE_FIREARM.value: 50.0,
    OffenseType.DRUG_POSSESSION_LOW.value: 10.0,
    OffenseType.WEAPON_POSSESSION.value: 50.0,
    # Moderate
    OffenseType.THEFT.value: 200.0,
    OffenseType.VEHICLE_THEFT.value: 500.0,
    OffenseType.ASSAULT.value: 300.0,
    OffenseType.ASSAULT_ON_CIVILIAN.value: 400.0,
    OffenseType.VEHICULAR_ASSAULT.value: 400.0,
    OffenseType.DRUG_POSSESSION_MODERATE.value: 100.0,
    OffenseType.EVADING.value: 300.0,
    OffenseType.FAILURE_TO_COMPLY.value: 300.0,
    OffenseType.HIT_AND_RUN.value: 600.0,
    OffenseType.VIOLATING_CURFEW.value: 200.0,
    # Major
    OffenseType.DEADLY_ASSAULT.value: 1000.0,
    OffenseType.ASSAULT_ON_OFFICER.value: 2500.0,
    OffenseType.BURGLARY.value: 1500.0,
    OffenseType.DRUG_POSSESSION_HIGH.value: 500.0,
    OffenseType.DRUG_TRAFFICKING.value: 2000.0,
    OffenseType.ATTEMPTING_TO_SELL.value: 1500.0,
    OffenseType.WITNESS_INTIMIDATION.value: 1500.0,
    # Severe
    OffenseType.MANSLAUGHTER.value: 5000.0,
    OffenseType.MURDER.value: 15000.0,
    OffenseType.MURDER_OF_EMPLOYEE.value: 20000.0,
    OffenseType.MURDER_OF_OFFICER.value: 25000.0,
}

MURDER_OFFENSES: frozenset[str] = frozenset(
    {
        OffenseType.MURDER.value,
        OffenseType.MURDER_OF_EMPLOYEE.value,
        OffenseType.MURDER_OF_OFFICER.value,
    }
)


def offense_tag(offense: OffenseType | str) -> str:
    """Normalize an enum member or raw tag to the stored tag string."""
    return offense.value if isinstance(offense, OffenseType) else str(offense)


def fine_for(offense: OffenseType | str) -> float:
    return FINE_TABLE.get(offense_tag(offense), DEFAULT_FINE)


# Used when a crime is recorded without a positive severity.
DEFAULT_SEVERITY = 1.5

DEFAULT_SEVERITIES: dict[str, float] = {
    OffenseType.SPEEDING.value: 1.0,
    OffenseType.TRESPASSING.value: 1.0,
    OffenseType.DISTURBING_PEACE.value: 1.0,
    OffenseType.VANDALISM.value: 1.0,
    OffenseType.PUBLIC_INTOXICATION.value: 1.0,
    OffenseType.DRUG_POSSESSION_LOW.value: 1.0,
    OffenseType.RECKLESS_DRIVING.value: 1.5,
    OffenseType.DISCHARGE_FIREARM.value: 1.5,
    OffenseType.THEFT.value: 1.5,
    OffenseType.ASSAULT.value: 1.5,
    OffenseType.VEHICLE_THEFT.value: 2.0,
    OffenseType.ASSAULT_ON_CIVILIAN.value: 2.0,
    OffenseType.HIT_AND_RUN.value: 2.5,
    OffenseType.DEADLY_ASSAULT.value: 3.0,
    OffenseType.BURGLARY.value: 3.0,
    OffenseType.ASSAULT_ON_OFFICER.value: 3.5,
    OffenseType.WITNESS_INTIMIDATION.value: 3.5,
    OffenseType.DRUG_TRAFFICKING.value: 4.0,
    OffenseType.MANSLAUGHTER.value: 4.0,
    OffenseType.MURDER.value: 4.0,
    OffenseType.MURDER_OF_EMPLOYEE.value: 4.0,
    OffenseType.MURDER_OF_OFFICER.value: 4.0,
}


def default_severity_for(offense: OffenseType | str) -> float:
    return DEFAULT_SEVERITIES.get(offense_tag(offense), DEFAULT_SEVERITY)


# ════════════════════════════════════════════════════════════════
# Ledger Models
# ════════════════════════════════════════════════════════════════


class Point3(BaseModel):
    """A world position."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class CrimeRecord(BaseModel):
    """
    One committed offense. Only the witness set may change after creation.

    Decay rules:
    - severity >= 2.0 never expires
    - unwitnessed crimes expire once older than one world-day
    - witnessed crimes expire once older than three world-days
    """

    offense_type: str
    timestamp: float = Field(description="World-minutes at which the crime was committed")
    location: Point3 = Field(default_factory=Point3)
    witness_ids: list[str] = Field(default_factory=list)
    severity: float = Field(default=1.0, ge=0)
    description: str = ""

    @property
    def is_witnessed(self) -> bool:
        return bool(self.witness_ids)

    def add_witness(self, witness_id: str) -> bool:
        """Set-insert a witness. Empty ids and repeats are ignored."""
        if not witness_id or witness_id in self.witness_ids:
            return False
        self.witness_ids.append(witness_id)
        return True

    @property
    def effective_severity(self) -> float:
        """Recorded severity, or the offense default when none was given."""
        return self.severity if self.severity > 0 else default_severity_for(self.offense_type)

    def age(self, now: float) -> float:
        return now - self.timestamp

    def contribution_to_wanted_level(self, now: float) -> float:
        age_days = self.age(now) / MINUTES_PER_DAY
        age_factor = min(1.0, max(0.0, 1.0 - age_days / WANTED_DECAY_DAYS))
        return self.severity * (1.0 + WITNESS_WEIGHT * len(self.witness_ids)) * age_factor

    def should_expire(self, now: float) -> bool:
        if self.severity >= NON_EXPIRING_SEVERITY:
            return False
        limit = WITNESSED_EXPIRY_MINUTES if self.is_witnessed else UNWITNESSED_EXPIRY_MINUTES
        return self.age(now) > limit


class CriminalRecord(BaseModel):
    """
    An actor's full record: crimes, cached risk tier and supervision history.

    ``risk_tier`` is a cache of ``RiskAssessor`` output over the current
    contents and is recomputed whenever the record is mutated under
    supervision.
    """

    actor_id: str
    crimes: list[CrimeRecord] = Field(default_factory=list)
    risk_tier: RiskTier = RiskTier.NONE
    last_assessment_time: float | None = None
    current_supervision: SupervisionRecord | None = None
    past_supervisions: list[SupervisionRecord] = Field(default_factory=list)

    @property
    def past_supervision_count(self) -> int:
        return len(self.past_supervisions)

    @property
    def current_violation_count(self) -> int:
        if self.current_supervision is None:
            return 0
        return self.current_supervision.violation_count

    @property
    def is_under_supervision(self) -> bool:
        return self.current_supervision is not None and self.current_supervision.is_active


# ════════════════════════════════════════════════════════════════
# Derived Value Objects
# ════════════════════════════════════════════════════════════════


class Sentence(BaseModel):
    """A computed sentence. Never persisted; derived from the ledger on demand."""

    model_config = {"frozen": True}

    severity_tier: SeverityTier
    jail_time_minutes: float
    fine_amount: float
    description: str
    bail_eligible: bool
    crime_count: int = 0
    base_minutes: float = 0.0
    severity_multiplier: float = 1.0
    repeat_offender_multiplier: float = 1.0
    witness_multiplier: float = 1.0
    global_multiplier: float = 1.0

    @computed_field
    @property
    def is_long_sentence(self) -> bool:
        """Long sentences go through holding and are then transferred to main."""
        return self.jail_time_minutes >= MINUTES_PER_DAY

    @computed_field
    @property
    def breakdown(self) -> str:
        return (
            f"Base: {self.base_minutes:.0f}m"
            f" × Severity: {self.severity_multiplier:.2f}"
            f" × Repeat: {self.repeat_offender_multiplier:.2f}"
            f" × Witness: {self.witness_multiplier:.2f}"
            f" × Global: {self.global_multiplier:.2f}"
            f" = {self.jail_time_minutes:.0f}m"
        )


class BailOffer(BaseModel):
    """The bail amount presented to an actor, with its negotiation bounds."""

    actor_id: str
    amount: float
    original_amount: float
    is_negotiable: bool
    negotiation_range: float = 0.2

    @computed_field
    @property
    def minimum_amount(self) -> float:
        return self.original_amount * (1.0 - self.negotiation_range)

    @computed_field
    @property
    def maximum_amount(self) -> float:
        return self.original_amount * (1.0 + self.negotiation_range)

    @computed_field
    @property
    def description(self) -> str:
        suffix = "This amount may be negotiable." if self.is_negotiable else "This amount is non-negotiable."
        return f"Bail set at ${self.amount:,.0f} for your charges. {suffix}"
