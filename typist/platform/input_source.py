"""IInputSourceGateway interface and InputSourceInfo dataclass."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class InputSourceInfo:
    id: str     # 'us', 'de(neo)', ...
    name: str   # 'English (US)', 'German (Neo 2)', ...


class IInputSourceGateway(ABC):
    """Read/activate access to the system's keyboard input sources.

    Read operations never raise: an undeterminable answer is an empty list
    or None. ``activate`` is best effort and silently ignores unknown ids.
    """

    @abstractmethod
    def list_sources(self) -> list[InputSourceInfo]: ...

    @abstractmethod
    def get_current_source(self) -> str | None: ...

    @abstractmethod
    def activate(self, source_id: str) -> None: ...

    def close(self) -> None:
        """Release OS resources held by the gateway."""
