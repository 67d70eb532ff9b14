"""Computer opponent that fires at the human's board until it misses."""

from __future__ import annotations

import logging
import random
import threading
from enum import Enum
from typing import Callable, Protocol

from seabattle.telemetry import get_tracer

from .board import BOARD_SIZE, Board, ShotResult
from .ship import Coordinate

logger = logging.getLogger(__name__)
tracer = get_tracer("seabattle.engine.opponent")

ShotCallback = Callable[[Coordinate, ShotResult], None]


class OpponentState(Enum):
    """Where the opponent is within its turn."""

    SELECTING = "selecting"
    FIRING = "firing"
    YIELDING = "yielding"


class TargetingStrategy(Protocol):
    """Chooses the next cell to fire at; must return a cell not yet fired upon."""

    def choose_target(self, board: Board) -> Coordinate: ...


class RandomTargeting:
    """Uniformly random choice among cells that have not been fired upon.

    Hits are not followed up: the board's hit history is ignored.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def choose_target(self, board: Board) -> Coordinate:
        if len(board.shots_fired) >= BOARD_SIZE * BOARD_SIZE:
            raise RuntimeError("Every cell has already been fired upon.")
        while True:
            target = Coordinate(self._rng.randrange(BOARD_SIZE), self._rng.randrange(BOARD_SIZE))
            if target not in board.shots_fired:
                return target


class MachineOpponent:
    """Runs one computer turn: keep firing while shots connect, yield on a miss.

    Each shot is preceded by ``think_delay`` seconds of waiting so a human can
    follow the pacing. Choosing, resolving and reporting a shot all happen
    while holding ``lock``, so a caller sharing that lock never observes a
    shot on the board before it has been reported. :meth:`stop` is
    cooperative; once it is set no further shot lands on the board.
    """

    def __init__(
        self,
        target_board: Board,
        on_shot: ShotCallback,
        strategy: TargetingStrategy | None = None,
        think_delay: float = 1.5,
        lock: threading.RLock | None = None,
    ) -> None:
        self.target_board = target_board
        self.strategy = strategy or RandomTargeting()
        self.think_delay = think_delay
        self.state = OpponentState.SELECTING
        self.shots: list[tuple[Coordinate, ShotResult]] = []
        self._on_shot = on_shot
        self._stop = threading.Event()
        self._lock = lock or threading.RLock()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request the loop to end after the current shot."""
        self._stop.set()

    def run(self) -> OpponentState:
        """Fire until a miss or a stop request; return the final state."""
        with tracer.start_as_current_span("opponent.turn") as span:
            self.state = OpponentState.SELECTING
            while not self._stop.is_set():
                if self._stop.wait(self.think_delay):
                    break

                with self._lock:
                    if self._stop.is_set():
                        break
                    target = self.strategy.choose_target(self.target_board)
                    self.state = OpponentState.FIRING
                    result = self.target_board.receive_shot(target)
                    if result is ShotResult.INVALID:
                        logger.warning(
                            "opponent_invalid_target",
                            extra={"row": target.row, "col": target.col},
                        )
                        self.state = OpponentState.SELECTING
                        continue

                    self.shots.append((target, result))
                    logger.info(
                        "opponent_fired",
                        extra={"row": target.row, "col": target.col, "result": result.value},
                    )
                    self._on_shot(target, result)

                if result is ShotResult.MISS:
                    self.state = OpponentState.YIELDING
                    break
                self.state = OpponentState.SELECTING

            span.set_attribute("opponent.shots", len(self.shots))
            span.set_attribute("opponent.final_state", self.state.value)
            return self.state
