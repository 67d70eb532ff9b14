"""Game session with tracing, metrics and logging hooks."""

from __future__ import annotations

import time

from opentelemetry import trace

from seabattle.engine.board import ShotResult
from seabattle.engine.errors import ShotError
from seabattle.engine.session import GameSession
from seabattle.engine.ship import Coordinate
from seabattle.telemetry import get_logger, get_tracer, record_game_metric


class InstrumentedGameSession(GameSession):
    """Wraps GameSession with tracing, metrics, and logging."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._logger = get_logger("seabattle.session")
        self._tracer = get_tracer("seabattle.session")
        self._game_span = None
        self._game_start_time: float | None = None
        self._game_id_counter = 0

    def start_battle(self) -> None:
        self._start_game_span()
        with self._child_span("seabattle.session.start_battle") as span:
            self._logger.info("Battle setup started for %s", self.nickname)
            super().start_battle()
            span.set_attribute("player_ships", len(self.player_board.fleet))
            span.set_attribute("enemy_ships", len(self.enemy_board.fleet))
            record_game_metric(
                "seabattle_battle_started_total",
                1,
                {"enemy_ships": len(self.enemy_board.fleet)},
            )
            self._logger.info("Battle setup finished")

    def fire_at(self, coord: Coordinate) -> ShotResult:
        with self._child_span("seabattle.session.fire_at") as span:
            span.set_attribute("game.id", self._game_id_counter)
            span.set_attribute("coord.row", coord.row)
            span.set_attribute("coord.col", coord.col)

            try:
                result = super().fire_at(coord)
            except ShotError as exc:
                record_game_metric(
                    "seabattle_invalid_shots_total",
                    1,
                    {"side": "human", "reason": exc.error_type.value},
                )
                span.record_exception(exc)
                span.set_attribute("error", True)
                self._logger.error("Invalid shot at (%d,%d): %s", coord.row, coord.col, exc)
                raise

            span.set_attribute("shot_outcome", result.name)
            span.set_attribute("hit", result.connected)
            record_game_metric("seabattle_shots_total", 1, {"side": "human"})
            record_game_metric(
                "seabattle_shots_by_result_total",
                1,
                {"side": "human", "result": result.value},
            )
            self._logger.info(
                "fire_at coord=(%d,%d) outcome=%s", coord.row, coord.col, result.name
            )
            return result

    def _on_machine_shot(self, opponent, coord: Coordinate, result: ShotResult) -> None:
        record_game_metric("seabattle_shots_total", 1, {"side": "machine"})
        record_game_metric(
            "seabattle_shots_by_result_total",
            1,
            {"side": "machine", "result": result.value},
        )
        super()._on_machine_shot(opponent, coord, result)

    def _finish(self, player_won: bool) -> None:
        super()._finish(player_won)
        duration = (time.perf_counter() - self._game_start_time) if self._game_start_time else 0.0
        total_shots = len(self.player_board.shots_fired) + len(self.enemy_board.shots_fired)
        winner = self.winner.value if self.winner else "unknown"

        record_game_metric("seabattle_game_completed_total", 1, {"winner": winner})
        record_game_metric("seabattle_game_duration_seconds", duration, {"winner": winner})

        with self._child_span("seabattle.session.game_complete") as span:
            span.set_attribute("game.id", self._game_id_counter)
            span.set_attribute("winner", winner)
            span.set_attribute("shots", total_shots)
            span.set_attribute("elapsed_seconds", self.elapsed_seconds)

        if self._game_span is not None:
            self._game_span.set_attribute("winner", winner)
            self._game_span.set_attribute("shots", total_shots)
            self._game_span.set_attribute("duration_ms", duration * 1000)

        self._logger.info(
            "Game finished. Winner=%s shots=%d duration_s=%.3f", winner, total_shots, duration
        )
        self._close_game_span()

    def restart(self) -> None:
        super().restart()
        self._close_game_span()

    def close(self, timeout: float | None = 5.0) -> None:
        super().close(timeout)
        self._close_game_span()

    def _child_span(self, name: str):
        # The game span is never made current; it may end on the opponent thread.
        if self._game_span is None:
            return self._tracer.start_as_current_span(name)
        parent = trace.set_span_in_context(self._game_span)
        return self._tracer.start_as_current_span(name, context=parent)

    def _start_game_span(self) -> None:
        self._close_game_span()
        self._game_start_time = time.perf_counter()
        self._game_id_counter += 1
        self._game_span = self._tracer.start_span("seabattle.session.game")
        self._game_span.set_attribute("game.id", self._game_id_counter)

    def _close_game_span(self) -> None:
        span, self._game_span = self._game_span, None
        if span is not None:
            span.end()
