"""Shared fixtures for engine, storage and telemetry tests."""

from __future__ import annotations

import random
from typing import Callable, Iterator

import pytest

from seabattle.config import GameSettings
from seabattle.engine.board import Board
from seabattle.engine.events import GameEventListener
from seabattle.engine.session import GameSession
from seabattle.engine.ship import Coordinate, Ship, ShipType

# Full standard fleet, all horizontal; rows 8 and 9 stay open water.
FIXED_LAYOUT = [
    (ShipType.CARRIER, Coordinate(0, 0)),
    (ShipType.SUBMARINE, Coordinate(2, 0)),
    (ShipType.SUBMARINE, Coordinate(2, 5)),
    (ShipType.DESTROYER, Coordinate(4, 0)),
    (ShipType.DESTROYER, Coordinate(4, 3)),
    (ShipType.DESTROYER, Coordinate(4, 6)),
    (ShipType.FRIGATE, Coordinate(6, 0)),
    (ShipType.FRIGATE, Coordinate(6, 2)),
    (ShipType.FRIGATE, Coordinate(6, 4)),
    (ShipType.FRIGATE, Coordinate(6, 6)),
]


class RecordingListener(GameEventListener):
    """Collects every event; snapshots the turn owner when a shot is reported."""

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self.session: GameSession | None = None

    def on_shot_resolved(self, coord, result, side) -> None:
        owner = self.session.turn.owner if self.session else None
        self.events.append(("shot", coord, result, side, owner))

    def on_ship_sunk(self, ship, side) -> None:
        self.events.append(("sunk", ship.ship_type, side))

    def on_turn_changed(self, side) -> None:
        self.events.append(("turn", side))

    def on_timer_tick(self, elapsed_seconds) -> None:
        self.events.append(("tick", elapsed_seconds))

    def on_game_over(self, player_won) -> None:
        self.events.append(("game_over", player_won))

    def of_kind(self, kind: str) -> list[tuple]:
        return [event for event in self.events if event[0] == kind]


class ScriptedTargeting:
    """Fires at a fixed list of cells in order."""

    def __init__(self, targets: list[Coordinate]) -> None:
        self.targets = list(targets)

    def choose_target(self, board: Board) -> Coordinate:
        return self.targets.pop(0)


@pytest.fixture
def settings(tmp_path) -> GameSettings:
    return GameSettings(save_dir=tmp_path, ai_think_delay=0, tick_interval=60)


@pytest.fixture
def make_session(settings) -> Iterator[Callable[..., GameSession]]:
    created: list[GameSession] = []

    def factory(**kwargs) -> GameSession:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("rng", random.Random(7))
        listener = kwargs.setdefault("listener", RecordingListener())
        session = GameSession(kwargs.pop("nickname", "Daniel"), **kwargs)
        if isinstance(listener, RecordingListener):
            listener.session = session
        created.append(session)
        return session

    yield factory
    for session in created:
        session.close(timeout=5)


@pytest.fixture
def place_fixed_fleet() -> Callable[[GameSession], None]:
    def place(session: GameSession) -> None:
        for ship_type, start in FIXED_LAYOUT:
            session.place_ship(ship_type, start, horizontal=True)

    return place


@pytest.fixture
def fixed_ship_cells() -> list[Coordinate]:
    board = Board()
    for ship_type, start in FIXED_LAYOUT:
        board.place_ship(Ship(ship_type), start, horizontal=True)
    return sorted(board.occupancy)


def water_cell(board: Board) -> Coordinate:
    """First unfired cell of ``board`` that holds no ship."""
    return next(c for c in board.unfired_coordinates() if c not in board.occupancy)


@pytest.fixture
def find_water() -> Callable[[Board], Coordinate]:
    return water_cell


@pytest.fixture
def scripted() -> type[ScriptedTargeting]:
    return ScriptedTargeting
