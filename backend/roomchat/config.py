"""Roomchat application configuration.

Loads settings from a single YAML file, ``roomchat.settings.yaml`` in the
working directory. Set ``ROOMCHAT_SETTINGS`` to point somewhere else.
Every key is optional; missing sections fall back to the defaults below.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomchat.settings.yaml")
SETTINGS_ENV_VAR = "ROOMCHAT_SETTINGS"


def _settings_path() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    return Path(override) if override else SETTINGS_FILE


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3001
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    # Preview deployments on Vercel and GitHub Pages
    allowed_origin_regex: Optional[str] = r"https://.*\.(vercel\.app|github\.io)"


class LoggingSettings(BaseModel):
    level: str = "info"


class RoomSeed(BaseModel):
    id:   str
    name: str


def _default_rooms() -> List[RoomSeed]:
    return [
        RoomSeed(id="general", name="General"),
        RoomSeed(id="random",  name="Random"),
        RoomSeed(id="tech",    name="Tech Talk"),
    ]


class ChatSettings(BaseModel):
    """Rooms seeded at startup plus chat limits."""
    rooms:                    List[RoomSeed] = Field(default_factory=_default_rooms)
    default_room:             str            = "general"
    avatar_url_template:      str            = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"
    conversation_buffer_size: int            = 500     # per pair, 0 = unbounded
    reaction_cache_size:      int            = 10000

    @field_validator("rooms")
    @classmethod
    def _rooms_unique(cls, rooms: List[RoomSeed]) -> List[RoomSeed]:
        if not rooms:
            raise ValueError("at least one room must be configured")
        ids = [room.id for room in rooms]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate room ids in {ids}")
        return rooms

    @field_validator("conversation_buffer_size", "reaction_cache_size")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @model_validator(mode="after")
    def _default_room_is_seeded(self) -> "ChatSettings":
        if self.default_room not in {room.id for room in self.rooms}:
            raise ValueError(f"default_room {self.default_room!r} is not one of the rooms")
        return self


class MonitoringSettings(BaseModel):
    slow_request_ms: int = 1000


class AppSettings(BaseModel):
    server:     ServerSettings     = Field(default_factory=ServerSettings)
    logging:    LoggingSettings    = Field(default_factory=LoggingSettings)
    chat:       ChatSettings       = Field(default_factory=ChatSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load the settings file into an *AppSettings* object."""
    settings_data = _load_yaml(path or _settings_path())
    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, rooms=%s, default_room=%s)",
        app_settings.server.host,
        app_settings.server.port,
        [room.id for room in app_settings.chat.rooms],
        app_settings.chat.default_room,
    )
    return app_settings


@lru_cache(maxsize=1)
def get_config() -> AppSettings:
    """Process-wide settings, loaded once."""
    return load_settings()
