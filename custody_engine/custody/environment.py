"""
In-memory custody environment and timed booking process.

These stand in for the host's cells, doors and intake staff. They satisfy
the ``CustodyEnvironment`` and ``BookingProcess`` protocols so the
controller can run headless in simulations and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from custody_engine.records.schema import Point3
from custody_engine.world.clock import ScheduledCall, WorldClock
from custody_engine.world.interfaces import CellArea

logger = logging.getLogger(__name__)


@dataclass
class CellHandle:
    area: CellArea
    index: int
    occupant: str | None = None
    locked: bool = False

    @property
    def label(self) -> str:
        return f"{self.area.value}-{self.index}"


class InMemoryCustodyEnvironment:
    """A facility with a fixed number of holding and main cells."""

    def __init__(
        self,
        holding_cells: int = 4,
        main_cells: int = 12,
        exit_position: Point3 | None = None,
    ) -> None:
        self.cells: dict[CellArea, list[CellHandle]] = {
            CellArea.HOLDING: [CellHandle(CellArea.HOLDING, i) for i in range(holding_cells)],
            CellArea.MAIN: [CellHandle(CellArea.MAIN, i) for i in range(main_cells)],
        }
        self.exit_position = exit_position or Point3()
        self.escorts: set[str] = set()

    def assign_cell(self, actor_id: str, area: CellArea = CellArea.HOLDING) -> CellHandle | None:
        for cell in self.cells[area]:
            if cell.occupant is None:
                cell.occupant = actor_id
                logger.debug("Cell %s assigned to %s", cell.label, actor_id)
                return cell
        logger.warning("No free %s cell for %s", area.value, actor_id)
        return None

    def lock(self, handle: CellHandle) -> None:
        handle.locked = True

    def unlock(self, handle: CellHandle) -> None:
        handle.locked = False

    def release(self, handle: CellHandle) -> None:
        handle.locked = False
        handle.occupant = None

    def exit_point(self, actor_id: str) -> Point3 | None:
        return self.exit_position

    def begin_escort(self, actor_id: str) -> None:
        self.escorts.add(actor_id)

    def cancel_escorts(self, actor_id: str) -> None:
        self.escorts.discard(actor_id)

    def occupancy(self, area: CellArea) -> int:
        return sum(1 for cell in self.cells[area] if cell.occupant is not None)

    def cell_of(self, actor_id: str) -> CellHandle | None:
        for cells in self.cells.values():
            for cell in cells:
                if cell.occupant == actor_id:
                    return cell
        return None


class TimedBookingProcess:
    """Booking that completes a fixed number of world-minutes after it begins."""

    def __init__(self, clock: WorldClock, minutes: float = 5.0) -> None:
        self.clock = clock
        self.minutes = minutes
        self.pending: dict[str, ScheduledCall] = {}

    def begin(self, actor_id: str, on_complete: Callable[[], None]) -> None:
        self.cancel(actor_id)

        def finish() -> None:
            self.pending.pop(actor_id, None)
            on_complete()

        self.pending[actor_id] = self.clock.call_later(self.minutes, finish)

    def cancel(self, actor_id: str) -> None:
        handle = self.pending.pop(actor_id, None)
        if handle is not None:
            handle.cancel()

    def is_booking(self, actor_id: str) -> bool:
        return actor_id in self.pending
