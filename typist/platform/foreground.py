"""IForegroundWatcher interface and AppInfo dataclass."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class AppInfo:
    app_id: str             # WM_CLASS class on X11: 'firefox', 'Code'
    name: str               # display name
    regular: bool = True    # False for docks, panels and other background windows


ActivationCallback = Callable[[AppInfo], None]


class IForegroundWatcher(ABC):
    """Source of "application X became frontmost" notifications.

    ``start`` begins delivering activations to *on_activated* from a
    background thread; callers must hand them over to their own loop.
    """

    @abstractmethod
    def start(self, on_activated: ActivationCallback) -> bool: ...

    @abstractmethod
    def stop(self) -> None: ...

    @property
    @abstractmethod
    def is_running(self) -> bool: ...

    @abstractmethod
    def get_frontmost_app(self) -> AppInfo | None: ...

    @abstractmethod
    def list_running_apps(self) -> list[AppInfo]: ...
