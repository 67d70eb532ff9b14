"""Ship domain model for the naval combat engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True, order=True)
class Coordinate:
    """Immutable board coordinate."""

    row: int
    col: int


class ShipType(Enum):
    """All supported ship classes and their sizes."""

    CARRIER = 4
    SUBMARINE = 3
    DESTROYER = 2
    FRIGATE = 1

    @property
    def size(self) -> int:
        """Return the number of contiguous cells the ship occupies."""
        return self.value


# Standard fleet composition: one carrier, two submarines, three destroyers, four frigates.
STANDARD_FLEET: dict[ShipType, int] = {
    ShipType.CARRIER: 1,
    ShipType.SUBMARINE: 2,
    ShipType.DESTROYER: 3,
    ShipType.FRIGATE: 4,
}


@dataclass(eq=False)
class Ship:
    """A single ship instance, owned by the board it was placed on."""

    ship_type: ShipType
    positions: list[Coordinate] = field(default_factory=list)
    health: int = field(init=False)

    def __post_init__(self) -> None:
        self.health = self.ship_type.size

    def add_occupied_cell(self, coord: Coordinate) -> None:
        """Append a coordinate to the cells occupied by this ship."""
        self.positions.append(coord)

    def register_hit(self) -> None:
        """Take one point of damage; hitting a sunk ship changes nothing."""
        if self.health > 0:
            self.health -= 1

    def is_sunk(self) -> bool:
        return self.health == 0

    def is_horizontal(self) -> bool:
        """Return True when every occupied cell shares one row."""
        if len(self.positions) <= 1:
            return True
        first_row = self.positions[0].row
        return all(coord.row == first_row for coord in self.positions)

    def coordinates(self) -> list[Coordinate]:
        """Return a copy of the ordered list of occupied coordinates."""
        return list(self.positions)
