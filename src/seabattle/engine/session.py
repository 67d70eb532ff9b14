"""Human-versus-machine match orchestration.

The session owns both boards and arbitrates turns. A shot that hits or sinks
lets the same side fire again; only a miss hands the turn over. While the
machine holds the turn it fires from its own thread, so the turn is modelled
as a :class:`TurnToken` that is handed explicitly between the two sides and
every state change happens under the session lock.
"""

from __future__ import annotations

import functools
import logging
import random
import threading
from concurrent.futures import Future
from enum import Enum
from typing import Callable

from seabattle.config import GameSettings, load_settings
from seabattle.storage import SaveQueue, SnapshotStore

from .board import Board, ShotResult
from .errors import PersistenceError, PlacementError, ShotError
from .events import Dispatcher, GameEventListener, Side, dispatch_immediately
from .opponent import MachineOpponent, RandomTargeting, TargetingStrategy
from .ship import STANDARD_FLEET, Coordinate, Ship, ShipType

logger = logging.getLogger(__name__)


class GamePhase(Enum):
    """High-level lifecycle of a match; transitions only move forward."""

    PLACING = "placing"
    BATTLE = "battle"
    GAME_OVER = "game_over"


class TurnToken:
    """The right to fire, held by exactly one side at a time."""

    def __init__(self, owner: Side = Side.HUMAN) -> None:
        self._owner = owner
        self._changed = threading.Condition()

    @property
    def owner(self) -> Side:
        return self._owner

    def held_by(self, side: Side) -> bool:
        return self._owner is side

    def hand_to(self, side: Side) -> None:
        with self._changed:
            self._owner = side
            self._changed.notify_all()

    def wait_for(self, side: Side, timeout: float | None = None) -> bool:
        """Block until ``side`` holds the token; False if ``timeout`` expires first."""
        with self._changed:
            return self._changed.wait_for(lambda: self._owner is side, timeout)


class BattleClock:
    """Calls ``on_tick`` every ``interval`` seconds from a daemon thread.

    Stopping is cooperative: a tick already running completes, but no further
    tick starts once :meth:`stop` has been called.
    """

    def __init__(self, on_tick: Callable[[], None], interval: float = 1.0) -> None:
        self.interval = interval
        self._on_tick = on_tick
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Clock already started.")
        self._thread = threading.Thread(target=self._run, name="seabattle-clock", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._on_tick()
            except Exception:
                logger.exception("clock_tick_failed")


class GameSession:
    """Coordinates placement, battle, timer and autosave for one player."""

    def __init__(
        self,
        nickname: str | None = None,
        *,
        settings: GameSettings | None = None,
        store: SnapshotStore | None = None,
        listener: GameEventListener | None = None,
        dispatcher: Dispatcher | None = None,
        strategy: TargetingStrategy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.nickname = nickname or self.settings.default_nickname
        self.store = store or SnapshotStore.from_settings(self.settings)
        self.listener = listener or GameEventListener()
        self.turn = TurnToken(Side.HUMAN)
        self._dispatch = dispatcher or dispatch_immediately
        self._rng = rng or random.Random()
        self.strategy = strategy or RandomTargeting(self._rng)
        self._saves = SaveQueue()
        self._lock = threading.RLock()
        self._clock: BattleClock | None = None
        self._opponent: MachineOpponent | None = None
        self._opponent_thread: threading.Thread | None = None
        self._reset()

    def _reset(self) -> None:
        self.player_board = Board(owner=Side.HUMAN.value)
        self.enemy_board = Board(owner=Side.MACHINE.value)
        self.phase = GamePhase.PLACING
        self.elapsed_seconds = 0
        self.winner: Side | None = None
        self._remaining = dict(STANDARD_FLEET)
        self.turn.hand_to(Side.HUMAN)

    # ----------------------------------------------------------------- state

    @property
    def is_my_turn(self) -> bool:
        return self.phase is GamePhase.BATTLE and self.turn.held_by(Side.HUMAN)

    def remaining_ships(self) -> dict[ShipType, int]:
        """Ships of each type the human still has to place."""
        return dict(self._remaining)

    def fleet_complete(self) -> bool:
        return not any(self._remaining.values())

    # ------------------------------------------------------------- placement

    def place_ship(self, ship_type: ShipType, start: Coordinate, horizontal: bool) -> Ship:
        """Place one of the human's remaining ships.

        Raises:
            PlacementError: wrong phase, no ship of that type left, or the board
                rejected the position (out of bounds or overlapping).
        """
        with self._lock:
            if self.phase is not GamePhase.PLACING:
                raise PlacementError("Ships can only be placed before the battle starts.")
            if self._remaining.get(ship_type, 0) <= 0:
                raise PlacementError(f"No {ship_type.name} remaining. Choose another ship.")
            ship = Ship(ship_type)
            if not self.player_board.place_ship(ship, start, horizontal):
                raise PlacementError("Invalid position! Try again.")
            self._remaining[ship_type] -= 1
            return ship

    def place_fleet_randomly(self) -> None:
        """Place every ship the human has not placed yet at random."""
        with self._lock:
            if self.phase is not GamePhase.PLACING:
                raise PlacementError("Ships can only be placed before the battle starts.")
            self.player_board.place_ships_randomly(self._rng, fleet=self._remaining)
            self._remaining = {ship_type: 0 for ship_type in STANDARD_FLEET}

    # ---------------------------------------------------------------- battle

    def start_battle(self) -> None:
        """Deploy the enemy fleet and give the human the first shot."""
        with self._lock:
            if self.phase is not GamePhase.PLACING:
                raise PlacementError("The battle has already started.")
            if not self.fleet_complete():
                raise PlacementError("Place your whole fleet before starting the battle.")
            self.enemy_board.place_ships_randomly(self._rng)
            self.phase = GamePhase.BATTLE
            logger.info("battle_started", extra={"nickname": self.nickname})
            self._hand_turn_to(Side.HUMAN)
            self._start_clock()
            self.autosave()

    def fire_at(self, coord: Coordinate) -> ShotResult:
        """Fire the human's shot at the enemy board.

        Raises:
            ShotError: not in battle, not the human's turn, or the target was
                already fired upon or lies off the board.
        """
        with self._lock:
            if self.phase is not GamePhase.BATTLE:
                raise ShotError("The battle is not in progress.")
            if not self.turn.held_by(Side.HUMAN):
                raise ShotError("Wait for your turn.")
            result = self.enemy_board.receive_shot(coord)
            if result is ShotResult.INVALID:
                if coord in self.enemy_board.shots_fired:
                    raise ShotError("You already shot there!")
                raise ShotError("That target is off the board.")

            finished = self._record_shot(self.enemy_board, Side.MACHINE, coord, result)
            if not finished and result is ShotResult.MISS:
                self._start_machine_turn()
            return result

    def _record_shot(self, board: Board, side: Side, coord: Coordinate, result: ShotResult) -> bool:
        """Publish a resolved shot, autosave, and end the game if a fleet is gone."""
        self._emit("on_shot_resolved", coord, result, side)
        if result is ShotResult.SUNK:
            self._emit("on_ship_sunk", board.ship_at(coord), side)
        self.autosave()
        if board.all_ships_sunk():
            self._finish(player_won=side is Side.MACHINE)
            return True
        return False

    def _finish(self, player_won: bool) -> None:
        self.phase = GamePhase.GAME_OVER
        self.winner = Side.HUMAN if player_won else Side.MACHINE
        self._stop_workers()
        logger.info(
            "game_over",
            extra={"winner": self.winner.value, "elapsed_seconds": self.elapsed_seconds},
        )
        self._emit("on_game_over", player_won)

    # --------------------------------------------------------------- machine

    def _start_machine_turn(self) -> None:
        self._hand_turn_to(Side.MACHINE)
        opponent = MachineOpponent(
            self.player_board,
            on_shot=lambda coord, result: self._on_machine_shot(opponent, coord, result),
            strategy=self.strategy,
            think_delay=self.settings.ai_think_delay,
            lock=self._lock,
        )
        self._opponent = opponent
        self._opponent_thread = threading.Thread(
            target=self._run_machine_turn,
            args=(opponent,),
            name="seabattle-opponent",
            daemon=True,
        )
        self._opponent_thread.start()

    def _run_machine_turn(self, opponent: MachineOpponent) -> None:
        try:
            opponent.run()
        except Exception:
            logger.exception("opponent_turn_failed")
            with self._lock:
                if opponent is self._opponent and self.phase is GamePhase.BATTLE:
                    self._hand_turn_to(Side.HUMAN)

    def _on_machine_shot(self, opponent: MachineOpponent, coord: Coordinate, result: ShotResult) -> None:
        with self._lock:
            if opponent is not self._opponent or self.phase is not GamePhase.BATTLE:
                return
            finished = self._record_shot(self.player_board, Side.HUMAN, coord, result)
            if not finished and result is ShotResult.MISS:
                self._hand_turn_to(Side.HUMAN)

    def wait_for_opponent(self, timeout: float | None = None) -> bool:
        """Wait for the machine's current turn to end; True if it has."""
        thread = self._opponent_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ----------------------------------------------------------------- clock

    def _start_clock(self) -> None:
        self._clock = BattleClock(self._tick, self.settings.tick_interval)
        self._clock.start()

    def _tick(self) -> None:
        with self._lock:
            if self.phase is not GamePhase.BATTLE:
                return
            self.elapsed_seconds += 1
            logger.debug("clock_tick", extra={"elapsed_seconds": self.elapsed_seconds})
            self._emit("on_timer_tick", self.elapsed_seconds)

    # ----------------------------------------------------------- persistence

    def autosave(self) -> Future[bool]:
        """Queue a snapshot of the current state without waiting for the write."""
        with self._lock:
            try:
                blob = self.store.encode(self.player_board, self.enemy_board, self.elapsed_seconds)
            except Exception:
                logger.exception("autosave_encode_failed")
                failed: Future[bool] = Future()
                failed.set_result(False)
                return failed
            summary = self.store.render_summary(
                self.player_board, self.enemy_board, self.nickname, self.elapsed_seconds
            )
        return self._saves.submit(functools.partial(self.store.write, blob, summary))

    def save(self) -> bool:
        """Save now and wait for the result; earlier queued saves land first."""
        return self.autosave().result()

    def load(self) -> bool:
        """Resume the saved game; False when there is nothing to resume.

        Raises:
            PersistenceError: the save exists but is unreadable. The current
                session is left untouched.
        """
        snapshot = self.store.load()
        if snapshot is None:
            return False
        if not snapshot.enemy_board.fleet:
            raise PersistenceError("Saved game has no enemy fleet.")

        with self._lock:
            self._stop_workers()
            self.player_board = snapshot.player_board
            self.enemy_board = snapshot.enemy_board
            self.nickname = snapshot.nickname
            self.elapsed_seconds = snapshot.elapsed_seconds
            self._remaining = {ship_type: 0 for ship_type in STANDARD_FLEET}
            self.winner = None
            logger.info(
                "game_loaded",
                extra={"nickname": self.nickname, "elapsed_seconds": self.elapsed_seconds},
            )
            if self.enemy_board.all_ships_sunk() or self.player_board.all_ships_sunk():
                self._finish(player_won=self.enemy_board.all_ships_sunk())
                return True
            self.phase = GamePhase.BATTLE
            self._hand_turn_to(Side.HUMAN)
            self._start_clock()
            return True

    # ------------------------------------------------------------- lifecycle

    def restart(self) -> None:
        """Abandon the current match and return to ship placement."""
        with self._lock:
            self._stop_workers()
            self._reset()
            logger.info("game_restarted", extra={"nickname": self.nickname})

    def close(self, timeout: float | None = 5.0) -> None:
        """End the session: stop the clock and opponent, then flush queued saves."""
        with self._lock:
            self._stop_workers()
        self.wait_for_opponent(timeout)
        self._saves.close(wait=True)

    def _stop_workers(self) -> None:
        if self._clock is not None:
            self._clock.stop()
            self._clock = None
        if self._opponent is not None:
            self._opponent.stop()
            self._opponent = None

    # ---------------------------------------------------------------- events

    def _hand_turn_to(self, side: Side) -> None:
        self.turn.hand_to(side)
        logger.info("turn_changed", extra={"side": side.value})
        self._emit("on_turn_changed", side)

    def _emit(self, event: str, *args) -> None:
        self._dispatch(functools.partial(getattr(self.listener, event), *args))
