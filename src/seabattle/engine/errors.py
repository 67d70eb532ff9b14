"""Exception hierarchy for the naval combat engine."""

from __future__ import annotations

from enum import Enum


class ErrorType(Enum):
    """Broad categories used to group game failures for presentation."""

    PLACEMENT = "placement"
    SHOT = "shot"
    SAVE_LOAD = "save_load"
    ASSET = "asset"
    SYSTEM = "system"

    @property
    def title(self) -> str:
        """Short heading a presentation layer can show above the message."""
        return _TITLES[self]


_TITLES = {
    ErrorType.PLACEMENT: "Invalid Ship Placement",
    ErrorType.SHOT: "Invalid Shot",
    ErrorType.SAVE_LOAD: "Save / Load Error",
    ErrorType.ASSET: "Asset Error",
    ErrorType.SYSTEM: "System Error",
}


class GameError(Exception):
    """Base class for every recoverable game failure."""

    error_type: ErrorType = ErrorType.SYSTEM

    def __init__(self, message: str, error_type: ErrorType | None = None) -> None:
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type

    @property
    def title(self) -> str:
        return self.error_type.title


class PlacementError(GameError, ValueError):
    """Ship placement out of bounds, overlapping, or outside the placement phase."""

    error_type = ErrorType.PLACEMENT


class ShotError(GameError, ValueError):
    """Shot at a repeated or out-of-bounds target, or fired out of turn."""

    error_type = ErrorType.SHOT


class PersistenceError(GameError):
    """Saved game data could not be written or read back."""

    error_type = ErrorType.SAVE_LOAD


class AssetError(GameError):
    """A presentation asset could not be resolved."""

    error_type = ErrorType.ASSET
