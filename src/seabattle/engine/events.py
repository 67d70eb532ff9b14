"""Events the engine publishes to a presentation layer."""

from __future__ import annotations

import logging
import queue
from enum import Enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .board import ShotResult
    from .ship import Coordinate, Ship

logger = logging.getLogger(__name__)


class Side(Enum):
    """The two participants of a match."""

    HUMAN = "human"
    MACHINE = "machine"

    def opponent(self) -> Side:
        """Return the opposing side."""
        return Side.MACHINE if self is Side.HUMAN else Side.HUMAN


class GameEventListener:
    """Receives notifications from a game session.

    Every method is a no-op; presentation layers override the ones they need.
    ``side`` always names the owner of the board the event happened on.
    """

    def on_shot_resolved(self, coord: Coordinate, result: ShotResult, side: Side) -> None:
        pass

    def on_ship_sunk(self, ship: Ship, side: Side) -> None:
        pass

    def on_turn_changed(self, side: Side) -> None:
        pass

    def on_timer_tick(self, elapsed_seconds: int) -> None:
        pass

    def on_game_over(self, player_won: bool) -> None:
        pass


Dispatcher = Callable[[Callable[[], None]], None]


def dispatch_immediately(callback: Callable[[], None]) -> None:
    """Run the callback on the calling thread."""
    callback()


class EventQueue:
    """Hands callbacks from worker threads to a single consumer thread.

    Pass :meth:`post` as a session's dispatcher and call :meth:`pump` from the
    thread that owns the presentation layer.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[Callable[[], None]] = queue.Queue()

    def post(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    def pump(self, timeout: float | None = None) -> int:
        """Run queued callbacks, waiting up to ``timeout`` for the first one.

        Returns the number of callbacks executed.
        """
        executed = 0
        try:
            callback = self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return 0
        while True:
            try:
                callback()
            except Exception:
                logger.exception("event_callback_failed")
            executed += 1
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                return executed

    def __len__(self) -> int:
        return self._queue.qsize()
