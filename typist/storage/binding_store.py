"""BindingStore — durable app id → input source id table plus switch counter.

The whole state is one record::

    {"version": 1, "mappings": {"firefox": "us"}, "switchCount": 3}

Every mutation first re-reads the stored record, so edits made by another
process (the CLI next to a running daemon) are merged rather than
overwritten. It then builds the next record, writes it through the backend
and only then commits it to memory.
"""

from __future__ import annotations

import logging

import typist.log  # registers TRACE level and logger.trace()
from typist.storage.persistence import StateBackend

logger = logging.getLogger(__name__)

RECORD_VERSION = 1

KEY_VERSION = 'version'
KEY_MAPPINGS = 'mappings'
KEY_COUNT = 'switchCount'


class StorageError(Exception):
    """Persisting the binding record failed."""


def _sanitize_mappings(raw) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning("Stored mappings are not an object (%s) — ignoring", type(raw).__name__)
        return {}
    out: dict[str, str] = {}
    for app_id, source_id in raw.items():
        if not isinstance(app_id, str) or not app_id:
            logger.warning("Dropping binding with invalid app id %r", app_id)
            continue
        if not isinstance(source_id, str) or not source_id:
            logger.warning("Dropping binding %r → %r: empty or non-string source", app_id, source_id)
            continue
        out[app_id] = source_id
    return out


def _sanitize_count(raw) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        logger.warning("Stored switch count %r is invalid — resetting to 0", raw)
        return 0
    return raw


def parse_record(record: dict | None) -> tuple[dict[str, str], int]:
    """Turn a raw stored record into ``(mappings, count)``.

    Accepts version 0 (no ``version`` key) and the current version; newer
    records are read best-effort.
    """
    if not record:
        return {}, 0

    version = record.get(KEY_VERSION, 0)
    if not isinstance(version, int) or isinstance(version, bool):
        logger.warning("Stored record has invalid version %r — reading as legacy", version)
        version = 0
    if version > RECORD_VERSION:
        logger.warning(
            "Stored record version %d is newer than supported %d — reading known keys only",
            version, RECORD_VERSION,
        )
    elif version < RECORD_VERSION:
        logger.debug("Legacy record (version %d) will be upgraded on next write", version)

    return _sanitize_mappings(record.get(KEY_MAPPINGS)), _sanitize_count(record.get(KEY_COUNT))


class BindingStore:
    """Owns the binding table and switch counter; persists through *backend*."""

    def __init__(self, backend: StateBackend):
        self._backend = backend
        self._mappings: dict[str, str] = {}
        self._count: int = 0

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> tuple[dict[str, str], int]:
        """Read persisted state into memory and return ``(mappings, count)``.

        Missing state is the normal first-run case. A broken store is
        logged and treated the same way; this never raises.
        """
        try:
            record = self._backend.read()
        except Exception as exc:
            logger.warning("Cannot read bindings from %r: %s — starting empty", self._backend, exc)
            record = None

        self._mappings, self._count = parse_record(record)
        logger.debug(
            "Loaded %d binding(s), switch count %d from %r",
            len(self._mappings), self._count, self._backend,
        )
        return dict(self._mappings), self._count

    def reload(self) -> tuple[dict[str, str], int]:
        """Re-read persisted state, dropping the in-memory copy."""
        return self.load()

    def use_backend(self, backend: StateBackend) -> None:
        """Point the store at *backend*; call :meth:`reload` to read it."""
        logger.info("Bindings storage moved from %r to %r", self._backend, backend)
        self._backend = backend

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_binding(self, app_id: str) -> str | None:
        """Return the source bound to *app_id*, or None."""
        return self._mappings.get(app_id)

    @property
    def bindings(self) -> dict[str, str]:
        """Copy of the binding table."""
        return dict(self._mappings)

    @property
    def switch_count(self) -> int:
        return self._count

    def __len__(self) -> int:
        return len(self._mappings)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_binding(self, app_id: str, source_id: str | None) -> None:
        """Bind *app_id* to *source_id*, or remove its binding when None.

        Raises:
            ValueError: *app_id* is empty, or *source_id* is an empty string.
            StorageError: the record could not be written; memory is unchanged.
        """
        if not app_id:
            raise ValueError("app_id must be a non-empty string")
        if source_id is not None and not source_id:
            raise ValueError("source_id must be a non-empty string or None")

        self._sync()
        mappings = dict(self._mappings)
        if source_id is None:
            if app_id not in mappings:
                logger.trace("No binding to remove for %s", app_id)  # type: ignore[attr-defined]
            mappings.pop(app_id, None)
        else:
            mappings[app_id] = source_id

        self._write(mappings, self._count)
        self._mappings = mappings

    def increment_count(self) -> int:
        """Add one to the switch counter, persist it and return the new value.

        Raises:
            StorageError: the record could not be written; the counter is unchanged.
        """
        self._sync()
        count = self._count + 1
        self._write(self._mappings, count)
        self._count = count
        return count

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _sync(self) -> None:
        """Adopt the stored table if another writer changed it since we read it.

        The counter never goes backwards. An unreadable or missing record
        keeps the in-memory state.
        """
        try:
            record = self._backend.read()
        except Exception as exc:
            logger.debug("Cannot re-read %r before writing: %s", self._backend, exc)
            return
        if record is None:
            return
        mappings, count = parse_record(record)
        if mappings != self._mappings:
            logger.info("Bindings changed on disk (%d → %d), adopting them", len(self._mappings), len(mappings))
            self._mappings = mappings
        self._count = max(self._count, count)

    def _write(self, mappings: dict[str, str], count: int) -> None:
        record = {
            KEY_VERSION: RECORD_VERSION,
            KEY_MAPPINGS: dict(mappings),
            KEY_COUNT: count,
        }
        try:
            self._backend.write(record)
        except Exception as exc:
            raise StorageError(f"Cannot write bindings to {self._backend!r}: {exc}") from exc
        logger.trace("Persisted %d binding(s), count=%d", len(mappings), count)  # type: ignore[attr-defined]
