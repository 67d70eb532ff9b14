"""Single-player board management for the naval combat engine."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from seabattle.telemetry import get_meter, get_tracer

from .ship import STANDARD_FLEET, Coordinate, Ship, ShipType

logger = logging.getLogger(__name__)
tracer = get_tracer("seabattle.engine.board")
meter = get_meter("seabattle.engine.board")

BOARD_SIZE = 10

PLACEMENT_COUNTER = meter.create_counter(
    "seabattle_engine_ship_placements",
    unit="1",
    description="Number of attempted ship placements",
)

SHOT_COUNTER = meter.create_counter(
    "seabattle_engine_shots",
    unit="1",
    description="Shots received by a board",
)


class ShotResult(Enum):
    """Outcome of a shot fired at a board."""

    INVALID = "invalid"
    MISS = "miss"
    HIT = "hit"
    SUNK = "sunk"

    @property
    def connected(self) -> bool:
        """True when the shot struck a ship and the shooter fires again."""
        return self in (ShotResult.HIT, ShotResult.SUNK)


@dataclass(eq=False)
class Board:
    """Represents one side's 10×10 waters: fleet, occupancy, and shot history."""

    owner: str = "unknown"
    occupancy: dict[Coordinate, Ship] = field(default_factory=dict)
    shots_fired: set[Coordinate] = field(default_factory=set)
    hit_history: list[Coordinate] = field(default_factory=list)
    fleet: list[Ship] = field(default_factory=list)
    sunk_count: int = 0

    def is_valid_coordinate(self, coord: Coordinate) -> bool:
        """Check whether a coordinate lies inside the board boundaries."""
        return 0 <= coord.row < BOARD_SIZE and 0 <= coord.col < BOARD_SIZE

    def candidate_cells(self, size: int, start: Coordinate, horizontal: bool) -> list[Coordinate]:
        """Return the cells a ship of ``size`` would cover from ``start``."""
        if horizontal:
            return [Coordinate(start.row, start.col + offset) for offset in range(size)]
        return [Coordinate(start.row + offset, start.col) for offset in range(size)]

    def can_place_ship(self, ship: Ship, start: Coordinate, horizontal: bool) -> bool:
        cells = self.candidate_cells(ship.ship_type.size, start, horizontal)
        return all(self.is_valid_coordinate(c) and c not in self.occupancy for c in cells)

    def place_ship(self, ship: Ship, start: Coordinate, horizontal: bool) -> bool:
        """Place ``ship`` on the board if every candidate cell is free and in bounds.

        Placement is all-or-nothing: on failure neither the board nor the ship
        is modified.
        """
        with tracer.start_as_current_span("board.place_ship") as span:
            span.set_attribute("ship.type", ship.ship_type.name)
            span.set_attribute("ship.size", ship.ship_type.size)
            span.set_attribute("ship.start.row", start.row)
            span.set_attribute("ship.start.col", start.col)
            span.set_attribute("board.owner", self.owner)
            details = {
                "owner": self.owner,
                "ship_type": ship.ship_type.name,
                "horizontal": horizontal,
                "row": start.row,
                "col": start.col,
            }
            if not self.can_place_ship(ship, start, horizontal):
                PLACEMENT_COUNTER.add(1, attributes={"result": "failed", "owner": self.owner})
                logger.warning("ship_placement_failed", extra=details)
                return False

            for coord in self.candidate_cells(ship.ship_type.size, start, horizontal):
                self.occupancy[coord] = ship
                ship.add_occupied_cell(coord)
            self.fleet.append(ship)
            PLACEMENT_COUNTER.add(1, attributes={"result": "success", "owner": self.owner})
            logger.info("ship_placed", extra=details)
            return True

    def place_ships_randomly(
        self,
        rng: random.Random | None = None,
        fleet: Mapping[ShipType, int] = STANDARD_FLEET,
    ) -> None:
        """Place ``fleet`` (the standard fleet by default) by rejection sampling.

        Each ship retries uniformly random positions until one fits; there is
        no backtracking across ships. Must not run concurrently on one board.
        """
        rng = rng or random.Random()
        with tracer.start_as_current_span("board.place_ships_randomly") as span:
            span.set_attribute("board.owner", self.owner)
            for ship_type, count in fleet.items():
                for _ in range(count):
                    attempts = 0
                    placed = False
                    while not placed:
                        start = Coordinate(rng.randrange(BOARD_SIZE), rng.randrange(BOARD_SIZE))
                        horizontal = rng.random() < 0.5
                        attempts += 1
                        candidate = Ship(ship_type)
                        if self.can_place_ship(candidate, start, horizontal):
                            placed = self.place_ship(candidate, start, horizontal)
                    logger.debug(
                        "random_ship_placed",
                        extra={"ship_type": ship_type.name, "attempts": attempts, "owner": self.owner},
                    )
            span.set_attribute("board.fleet_size", len(self.fleet))

    def receive_shot(self, coord: Coordinate) -> ShotResult:
        """Resolve a shot at this board.

        Out-of-bounds and repeated coordinates yield ``INVALID`` without touching
        any state, so a cell can never be counted twice.
        """
        with tracer.start_as_current_span("board.receive_shot") as span:
            span.set_attribute("shot.row", coord.row)
            span.set_attribute("shot.col", coord.col)
            span.set_attribute("board.owner", self.owner)
            details = {"row": coord.row, "col": coord.col, "owner": self.owner}

            if not self.is_valid_coordinate(coord) or coord in self.shots_fired:
                reason = "duplicate" if coord in self.shots_fired else "out_of_bounds"
                span.set_attribute("shot.outcome", ShotResult.INVALID.value)
                SHOT_COUNTER.add(1, attributes={"outcome": "invalid", "owner": self.owner})
                logger.warning("shot_rejected", extra={**details, "reason": reason})
                return ShotResult.INVALID

            self.shots_fired.add(coord)
            ship = self.occupancy.get(coord)
            if ship is None:
                result = ShotResult.MISS
            else:
                ship.register_hit()
                self.hit_history.append(coord)
                if ship.is_sunk():
                    self.sunk_count += 1
                    result = ShotResult.SUNK
                else:
                    result = ShotResult.HIT

            span.set_attribute("shot.outcome", result.value)
            SHOT_COUNTER.add(1, attributes={"outcome": result.value, "owner": self.owner})
            if ship is None:
                logger.info("shot_miss", extra=details)
            else:
                logger.info(
                    "shot_hit",
                    extra={**details, "ship_type": ship.ship_type.name, "sunk": ship.is_sunk()},
                )
            return result

    def ship_at(self, coord: Coordinate) -> Ship | None:
        """Return the ship occupying ``coord``, or None for open water."""
        return self.occupancy.get(coord)

    def all_ships_sunk(self) -> bool:
        """Check whether every ship is sunk; an empty fleet never counts as defeated."""
        return bool(self.fleet) and self.sunk_count == len(self.fleet)

    def unfired_coordinates(self) -> list[Coordinate]:
        """Return every in-bounds coordinate not yet fired upon, row-major."""
        return [
            Coordinate(row, col)
            for row in range(BOARD_SIZE)
            for col in range(BOARD_SIZE)
            if Coordinate(row, col) not in self.shots_fired
        ]
