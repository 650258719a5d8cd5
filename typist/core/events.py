"""Typed event definitions (dataclasses)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


class EventType(Enum):
    # Foreground watcher
    APP_ACTIVATED = auto()
    # Engine results
    SOURCE_ACTIVATED = auto()
    BINDINGS_CHANGED = auto()
    # Control
    BINDINGS_RELOAD = auto()
    APP_QUIT = auto()


@dataclass
class Event:
    type: EventType
    data: Any
    timestamp: float


@dataclass
class SwitchEventData:
    app_id: str
    source_id: str
    switch_count: int


@dataclass
class BindingChangeData:
    app_id: str
    source_id: str | None   # None when the binding was removed
