"""
Collaborator contracts consumed by the custody and supervision engines.

The host world supplies these; the engine never reaches for scene objects,
doors or navigation directly. Each protocol is the minimum surface the
engine calls.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Callable, Protocol

if TYPE_CHECKING:
    from custody_engine.records.schema import Point3
    from custody_engine.supervision.record import Violation


class CellArea(str, enum.Enum):
    """Which part of the facility a cell belongs to."""

    HOLDING = "holding"
    MAIN = "main"


class CustodyEnvironment(Protocol):
    """Cells, doors and spawn points owned by the host."""

    def assign_cell(self, actor_id: str, area: CellArea = CellArea.HOLDING) -> Any | None: ...

    def lock(self, handle: Any) -> None: ...

    def unlock(self, handle: Any) -> None: ...

    def release(self, handle: Any) -> None: ...

    def exit_point(self, actor_id: str) -> Point3 | None: ...

    def begin_escort(self, actor_id: str) -> None: ...

    def cancel_escorts(self, actor_id: str) -> None: ...


class BookingProcess(Protocol):
    """Intake (mugshot, fingerprints, inventory); reports completion by callback."""

    def begin(self, actor_id: str, on_complete: Callable[[], None]) -> None: ...

    def cancel(self, actor_id: str) -> None: ...


class OfficerLocator(Protocol):
    """Distance from an actor to their supervising officer, if one is present."""

    def distance_to_officer(self, actor_id: str) -> float | None: ...


class SearchInspector(Protocol):
    """Performs a compliance search and returns the violation found, if any."""

    def inspect(self, actor_id: str) -> Violation | None: ...
