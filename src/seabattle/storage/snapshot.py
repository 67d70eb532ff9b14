"""Save and restore a whole game session.

A snapshot is two cooperating files:

* the data file, a pickle stream holding the player board, the enemy board
  and the elapsed seconds, in that order. It is the source of truth.
* the status file, a plain-text summary whose ``Nickname:`` line is read
  back on load. Its statistics are informational only.

Both files are written to temporaries and moved into place while holding the
store lock, and :meth:`SnapshotStore.load` takes the same lock, so a reader
in this process never sees one file from an older save than the other.
"""

from __future__ import annotations

import contextlib
import io
import logging
import os
import pickle
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

from seabattle.config import GameSettings
from seabattle.engine.board import Board
from seabattle.engine.errors import PersistenceError
from seabattle.engine.ship import Coordinate, Ship, ShipType
from seabattle.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer("seabattle.storage.snapshot")

NICKNAME_PREFIX = "Nickname: "


@dataclass(frozen=True)
class SavedSnapshot:
    """A fully restored session state."""

    player_board: Board
    enemy_board: Board
    nickname: str
    elapsed_seconds: int


def _ship_type_member(owner: object, name: str) -> ShipType:
    """Stand-in for ``getattr``, which newer interpreters use to pickle enum members."""
    if owner is ShipType and name in ShipType.__members__:
        return ShipType[name]
    raise pickle.UnpicklingError(f"Unexpected attribute {name!r} in snapshot")


# Every global a snapshot may reference. Matching is exact, so dotted
# names never resolve to attributes of these modules.
_SNAPSHOT_TYPES = {
    ("seabattle.engine.board", "Board"): Board,
    ("seabattle.engine.ship", "Ship"): Ship,
    ("seabattle.engine.ship", "ShipType"): ShipType,
    ("seabattle.engine.ship", "Coordinate"): Coordinate,
    ("builtins", "getattr"): _ship_type_member,
}


class _SnapshotUnpickler(pickle.Unpickler):
    """Only rebuilds engine classes; anything else marks the file as corrupt."""

    def find_class(self, module: str, name: str):
        try:
            return _SNAPSHOT_TYPES[(module, name)]
        except KeyError:
            raise pickle.UnpicklingError(
                f"Unexpected type {module}.{name} in snapshot"
            ) from None


class SnapshotStore:
    """Reads and writes the snapshot file pair."""

    def __init__(
        self,
        data_path: Path | str,
        status_path: Path | str,
        default_nickname: str = "Unknown",
    ) -> None:
        self.data_path = Path(data_path)
        self.status_path = Path(status_path)
        self.default_nickname = default_nickname
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: GameSettings) -> SnapshotStore:
        return cls(settings.data_path, settings.status_path, settings.default_nickname)

    def exists(self) -> bool:
        return self.data_path.is_file()

    # ------------------------------------------------------------------ save

    @staticmethod
    def encode(player_board: Board, enemy_board: Board, elapsed_seconds: int) -> bytes:
        """Serialise the authoritative part of a snapshot."""
        buffer = io.BytesIO()
        pickler = pickle.Pickler(buffer, protocol=pickle.HIGHEST_PROTOCOL)
        pickler.dump(player_board)
        pickler.dump(enemy_board)
        pickler.dump(int(elapsed_seconds))
        return buffer.getvalue()

    @staticmethod
    def render_summary(
        player_board: Board, enemy_board: Board, nickname: str, elapsed_seconds: int
    ) -> str:
        lines = [
            f"{NICKNAME_PREFIX}{nickname}",
            f"Player_Shots_Received: {len(player_board.shots_fired)}",
            f"Enemy_Shots_Received: {len(enemy_board.shots_fired)}",
            f"Enemy_Sunk_Ships: {enemy_board.sunk_count}",
            f"Time_Elapsed_Seconds: {elapsed_seconds}",
        ]
        return "\n".join(lines) + "\n"

    def save(
        self, player_board: Board, enemy_board: Board, nickname: str, elapsed_seconds: int
    ) -> bool:
        """Encode and write a snapshot; return False instead of raising on failure."""
        try:
            blob = self.encode(player_board, enemy_board, elapsed_seconds)
        except (pickle.PicklingError, TypeError, AttributeError):
            logger.exception("snapshot_encode_failed")
            return False
        summary = self.render_summary(player_board, enemy_board, nickname, elapsed_seconds)
        return self.write(blob, summary)

    def write(self, blob: bytes, summary: str) -> bool:
        """Atomically replace both snapshot files with pre-encoded contents."""
        with tracer.start_as_current_span("snapshot.write") as span:
            span.set_attribute("snapshot.bytes", len(blob))
            with self._lock:
                try:
                    _replace_file(self.data_path, blob)
                    _replace_file(self.status_path, summary.encode("utf-8"))
                except OSError as exc:
                    span.record_exception(exc)
                    logger.exception(
                        "snapshot_save_failed", extra={"path": str(self.data_path)}
                    )
                    return False
            logger.info("snapshot_saved", extra={"path": str(self.data_path), "bytes": len(blob)})
            return True

    # ------------------------------------------------------------------ load

    def load(self) -> SavedSnapshot | None:
        """Return the saved snapshot, or None when nothing has been saved.

        Raises:
            PersistenceError: the data file exists but cannot be read or decoded.
        """
        with tracer.start_as_current_span("snapshot.load") as span:
            with self._lock:
                try:
                    blob = self.data_path.read_bytes()
                except FileNotFoundError:
                    span.set_attribute("snapshot.found", False)
                    logger.info("snapshot_missing", extra={"path": str(self.data_path)})
                    return None
                except OSError as exc:
                    logger.error("snapshot_unreadable", extra={"path": str(self.data_path)})
                    raise PersistenceError(f"Cannot read saved game: {exc}") from exc
                nickname = self._read_nickname()

            player_board, enemy_board, elapsed = self.decode(blob)
            span.set_attribute("snapshot.found", True)
            logger.info(
                "snapshot_loaded",
                extra={"path": str(self.data_path), "elapsed_seconds": elapsed},
            )
            return SavedSnapshot(player_board, enemy_board, nickname, elapsed)

    @staticmethod
    def decode(blob: bytes) -> tuple[Board, Board, int]:
        unpickler = _SnapshotUnpickler(io.BytesIO(blob))
        try:
            player_board = unpickler.load()
            enemy_board = unpickler.load()
            elapsed = unpickler.load()
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError,
                IndexError, KeyError, TypeError, ValueError) as exc:
            logger.error("snapshot_corrupt", extra={"error": str(exc)})
            raise PersistenceError(f"Saved game is corrupt: {exc}") from exc

        if not isinstance(player_board, Board) or not isinstance(enemy_board, Board):
            raise PersistenceError("Saved game does not contain two boards.")
        if isinstance(elapsed, bool) or not isinstance(elapsed, int) or elapsed < 0:
            raise PersistenceError("Saved game has an invalid elapsed time.")
        return player_board, enemy_board, elapsed

    def _read_nickname(self) -> str:
        try:
            with self.status_path.open(encoding="utf-8") as handle:
                first_line = handle.readline().rstrip("\r\n")
        except (OSError, UnicodeDecodeError):
            logger.warning("snapshot_status_missing", extra={"path": str(self.status_path)})
            return self.default_nickname
        if first_line.startswith(NICKNAME_PREFIX):
            return first_line[len(NICKNAME_PREFIX):]
        return self.default_nickname


def _replace_file(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
