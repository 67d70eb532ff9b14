"""Terminal front end for playing against the computer."""

from __future__ import annotations

import argparse
import random
from pathlib import Path

from seabattle.config import GameSettings
from seabattle.engine.board import BOARD_SIZE, Board, ShotResult
from seabattle.engine.errors import GameError, PersistenceError
from seabattle.engine.events import EventQueue, GameEventListener, Side
from seabattle.engine.instrumented_session import InstrumentedGameSession
from seabattle.engine.session import GamePhase, GameSession
from seabattle.engine.ship import Coordinate, Ship, ShipType
from seabattle.telemetry import configure_console_logging, init_telemetry

ROW_LABELS = "ABCDEFGHIJ"


def _coordinate_from_input(text: str) -> Coordinate:
    cleaned = text.strip().upper()
    if not cleaned:
        raise ValueError("Empty coordinate.")
    if cleaned[0].isalpha():
        if cleaned[0] not in ROW_LABELS:
            raise ValueError("Row must be between A and J.")
        row = ROW_LABELS.index(cleaned[0])
        try:
            col = int(cleaned[1:]) - 1
        except ValueError as exc:
            raise ValueError("Column must be a number between 1 and 10.") from exc
    else:
        parts = cleaned.split()
        if len(parts) != 2:
            raise ValueError("Use formats like A5 or '3 7'.")
        row, col = map(int, parts)
    if row not in range(BOARD_SIZE) or col not in range(BOARD_SIZE):
        raise ValueError("Coordinates must be within the 10x10 board.")
    return Coordinate(row, col)


def _label(coord: Coordinate) -> str:
    return f"{ROW_LABELS[coord.row]}{coord.col + 1}"


def _format_board(board: Board, show_ships: bool) -> str:
    header = "    " + " ".join(f"{col+1:>2}" for col in range(BOARD_SIZE))
    rows = [header]
    for row in range(BOARD_SIZE):
        symbols = []
        for col in range(BOARD_SIZE):
            coord = Coordinate(row, col)
            ship = board.ship_at(coord)
            if coord in board.shots_fired:
                if ship is None:
                    symbol = "o"
                else:
                    symbol = "#" if ship.is_sunk() else "X"
            else:
                symbol = "S" if ship is not None and show_ships else "."
            symbols.append(f"{symbol:>2}")
        rows.append(f"{ROW_LABELS[row]} |" + " ".join(symbols))
    return "\n".join(rows)


def _format_clock(elapsed_seconds: int) -> str:
    minutes, seconds = divmod(elapsed_seconds, 60)
    return f"Time: {minutes:02d}:{seconds:02d}"


class ConsoleListener(GameEventListener):
    """Prints engine events; runs on the main thread via an EventQueue."""

    def __init__(self, nickname: str) -> None:
        self.nickname = nickname

    def on_shot_resolved(self, coord: Coordinate, result: ShotResult, side: Side) -> None:
        shooter = "You" if side is Side.MACHINE else "Enemy"
        messages = {
            ShotResult.MISS: "miss.",
            ShotResult.HIT: "HIT! Shoots again.",
            ShotResult.SUNK: "SUNK a ship! Shoots again.",
        }
        print(f"{shooter} fired at {_label(coord)}: {messages.get(result, result.value)}")

    def on_ship_sunk(self, ship: Ship, side: Side) -> None:
        owner = "Enemy" if side is Side.MACHINE else "Your"
        print(f"{owner} {ship.ship_type.name.lower()} went down.")

    def on_turn_changed(self, side: Side) -> None:
        if side is Side.HUMAN:
            print("\nIt's YOUR turn.")
        else:
            print("\nComputer's turn...")

    def on_game_over(self, player_won: bool) -> None:
        if player_won:
            print(f"\nVICTORY! Congratulations Admiral {self.nickname}.")
        else:
            print("\nDEFEAT. Your fleet was destroyed.")


def _prompt_orientation(ship_type: ShipType) -> bool:
    while True:
        raw = (
            input(f"Place your {ship_type.name.title()} (size {ship_type.size}). Orientation [H/V]: ")
            .strip()
            .upper()
        )
        if raw in {"H", "HOR", "HORIZONTAL"}:
            return True
        if raw in {"V", "VER", "VERTICAL"}:
            return False
        print("Please enter H for horizontal or V for vertical.")


def _manual_ship_placement(session: GameSession) -> None:
    for ship_type, count in session.remaining_ships().items():
        for _ in range(count):
            while True:
                print("\nCurrent layout:")
                print(_format_board(session.player_board, show_ships=True))
                horizontal = _prompt_orientation(ship_type)
                start_raw = input("Enter starting coordinate (e.g., A1): ")
                try:
                    session.place_ship(ship_type, _coordinate_from_input(start_raw), horizontal)
                except (ValueError, GameError) as exc:
                    print(f"{exc} Try again.")
                    continue
                break


def _prompt_nickname() -> str:
    while True:
        nickname = input("Enter your nickname: ").strip()
        if nickname:
            return nickname
        print("Please enter a nickname to play!")


def _prompt_yes_no(question: str) -> bool:
    while True:
        raw = input(f"{question} [Y/n]: ").strip().lower()
        if raw in {"", "y", "yes"}:
            return True
        if raw in {"n", "no"}:
            return False
        print("Please answer with 'y' or 'n'.")


def _human_turn(session: GameSession) -> None:
    print(f"\n{_format_clock(session.elapsed_seconds)}")
    print("\nYour Board:")
    print(_format_board(session.player_board, show_ships=True))
    print("\nEnemy Waters:")
    print(_format_board(session.enemy_board, show_ships=False))
    while True:
        raw = input("Enter target coordinate (e.g., A5), 's' to save or 'q' to quit: ").strip()
        if raw.lower() == "q":
            raise SystemExit("Goodbye!")
        if raw.lower() == "s":
            print("Game saved." if session.save() else "Save failed; the game continues.")
            continue
        try:
            session.fire_at(_coordinate_from_input(raw))
        except (ValueError, GameError) as exc:
            print(f"Invalid shot: {exc}")
            continue
        return


def play_game(
    nickname: str | None,
    settings: GameSettings,
    resume: bool = False,
    seed: int | None = None,
) -> None:
    events = EventQueue()
    listener = ConsoleListener(nickname or settings.default_nickname)
    session = InstrumentedGameSession(
        nickname,
        settings=settings,
        listener=listener,
        dispatcher=events.post,
        rng=random.Random(seed),
    )
    try:
        loaded = False
        if resume:
            try:
                loaded = session.load()
            except PersistenceError as exc:
                print(f"{exc.title}: {exc}")
            if loaded:
                listener.nickname = session.nickname
                print(f"Game loaded! Welcome back, {session.nickname}.")
            else:
                print("No saved game was found; starting a new one.")

        if not loaded:
            if not nickname:
                session.nickname = _prompt_nickname()
            listener.nickname = session.nickname
            print(f"Welcome aboard, Admiral {session.nickname}!\n")
            if _prompt_yes_no("Would you like to place your ships manually?"):
                _manual_ship_placement(session)
            else:
                session.place_fleet_randomly()
                print("\nYour ships have been positioned automatically.")
            session.start_battle()

        while session.phase is GamePhase.BATTLE:
            events.pump()
            if session.is_my_turn:
                _human_turn(session)
            else:
                events.pump(timeout=0.2)
        events.pump()
        print(_format_clock(session.elapsed_seconds))
    finally:
        session.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Play a naval battle against the computer.")
    parser.add_argument("--nickname", default=None, help="Admiral name shown in saves.")
    parser.add_argument(
        "--continue", dest="resume", action="store_true", help="Resume the last saved game."
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Optional RNG seed for reproducibility."
    )
    parser.add_argument("--save-dir", type=Path, default=None, help="Directory for save files.")
    parser.add_argument(
        "--ai-delay", type=float, default=None, help="Seconds the computer waits before each shot."
    )
    parser.add_argument("--log-level", default="WARNING", help="Console log level.")
    args = parser.parse_args()

    configure_console_logging(args.log_level.upper())
    init_telemetry()
    settings = GameSettings.from_env(save_dir=args.save_dir, ai_think_delay=args.ai_delay)

    nickname = args.nickname
    if not args.resume and not nickname:
        nickname = _prompt_nickname()
    play_game(nickname, settings, resume=args.resume, seed=args.seed)


if __name__ == "__main__":
    main()
