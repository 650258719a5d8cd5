"""Atomic JSON persistence and the state backend port used by BindingStore."""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod


def save_json(path: str, data: dict) -> None:
    """Atomically write data to path via a temp file."""
    dir_path = os.path.dirname(os.path.abspath(path))
    os.makedirs(dir_path, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path, suffix=".json.tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class StateBackend(ABC):
    """Where the binding record lives.

    ``read()`` returns the raw record or ``None`` when nothing has been
    stored yet; it may raise ``OSError``/``ValueError`` on a broken store.
    ``write()`` replaces the whole record or raises.
    """

    @abstractmethod
    def read(self) -> dict | None: ...

    @abstractmethod
    def write(self, record: dict) -> None: ...


class JsonFileBackend(StateBackend):
    """Keeps the record in a single JSON file, replaced atomically on write."""

    def __init__(self, path: str) -> None:
        self.path = os.path.abspath(os.path.expanduser(path))

    def read(self) -> dict | None:
        if not os.path.exists(self.path):
            return None
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path}: top-level JSON value is not an object")
        return data

    def write(self, record: dict) -> None:
        save_json(self.path, record)

    def __repr__(self) -> str:
        return f"JsonFileBackend({self.path!r})"
