"""ISystemAdapter interface and its subprocess implementation.

Gateways run external tools (``setxkbmap``, ``gdbus``) only through this
seam so tests can substitute canned output.
"""

from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ISystemAdapter(ABC):
    @abstractmethod
    def run_command(self, args: list[str], timeout: float = 1.0) -> CommandResult: ...


class SubprocessSystemAdapter(ISystemAdapter):
    """Executes real subprocess calls; never raises."""

    def run_command(self, args: list[str], timeout: float = 1.0) -> CommandResult:
        try:
            r = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
            return CommandResult(stdout=r.stdout, stderr=r.stderr, returncode=r.returncode)
        except subprocess.TimeoutExpired:
            return CommandResult(stdout="", stderr="timeout", returncode=-1)
        except (OSError, ValueError) as e:
            return CommandResult(stdout="", stderr=str(e), returncode=-1)
