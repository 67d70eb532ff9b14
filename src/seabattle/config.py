"""Game runtime settings."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, Field


class GameSettings(BaseModel):
    """Where saves live and how fast the computer plays."""

    save_dir: Path = Field(default_factory=Path.cwd)
    data_file: str = "battleship_data.ser"
    status_file: str = "battleship_status.txt"
    ai_think_delay: float = Field(default=1.5, ge=0)
    tick_interval: float = Field(default=1.0, gt=0)
    default_nickname: str = "Unknown"

    @property
    def data_path(self) -> Path:
        return self.save_dir / self.data_file

    @property
    def status_path(self) -> Path:
        return self.save_dir / self.status_file

    @classmethod
    def from_env(cls, **overrides: Any) -> "GameSettings":
        """Construct settings from `SEABATTLE_*` env vars, then apply overrides."""

        data: Dict[str, Any] = {}
        env_fields = {
            "save_dir": "SEABATTLE_SAVE_DIR",
            "ai_think_delay": "SEABATTLE_AI_DELAY",
            "tick_interval": "SEABATTLE_TICK_SECONDS",
        }
        for field, env_name in env_fields.items():
            value = os.getenv(env_name)
            if value is not None and value.strip():
                data[field] = value.strip()
        data.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**data)


@lru_cache(maxsize=1)
def load_settings() -> GameSettings:
    """Load and cache game settings from the environment."""

    return GameSettings.from_env()
