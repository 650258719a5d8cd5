"""BindingEngine — applies the configured input source when an app comes to front.

Per activation event ``(app_id, name)``:

1. remember it as the current application (even when ``app_id`` is empty);
2. look the app up in the BindingStore;
3. when bound, ask the gateway to activate the source and bump the counter.

The engine never compares the bound source with the active one before
calling ``activate``; de-duplication is the gateway's business. Every
activation of a bound source counts, whether or not the gateway actually
switched.

All methods are expected to run on one thread (the application loop).
"""

from __future__ import annotations

import logging
import time

import typist.log  # registers TRACE level and logger.trace()
from typist.core.event_bus import EventBus
from typist.core.events import (
    BindingChangeData,
    Event,
    EventType,
    SwitchEventData,
)
from typist.platform.foreground import AppInfo, IForegroundWatcher
from typist.platform.input_source import IInputSourceGateway, InputSourceInfo
from typist.storage.binding_store import BindingStore, StorageError

logger = logging.getLogger(__name__)

_NO_APP = AppInfo(app_id='', name='')


def short_label(identifier: str) -> str:
    """Fallback display label for an id: its last dot-separated component."""
    return identifier.rsplit('.', 1)[-1] or identifier


class BindingEngine:
    """Enforces app → input source bindings on foreground changes.

    Parameters:
        store:     BindingStore holding the table and counter.
        gateway:   Input source gateway used to read and activate sources.
        watcher:   Foreground watcher used for point queries and app listings.
        event_bus: Optional bus; results are published there for observers.
    """

    def __init__(
        self,
        store: BindingStore,
        gateway: IInputSourceGateway,
        watcher: IForegroundWatcher,
        event_bus: EventBus | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.watcher = watcher
        self.event_bus = event_bus
        self._current_app: AppInfo = _NO_APP
        self._last_source: InputSourceInfo | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Load persisted bindings and take the initial frontmost app."""
        mappings, count = self.store.load()
        logger.info("Engine started: %d binding(s), %d switch(es) so far", len(mappings), count)

        app = self.watcher.get_frontmost_app()
        if app is not None:
            self._current_app = app
            logger.debug("Frontmost app at start: %s (%s)", app.name, app.app_id)

    def subscribe(self, event_bus: EventBus) -> None:
        """Attach to *event_bus* and handle activations published on it."""
        self.event_bus = event_bus
        event_bus.subscribe(EventType.APP_ACTIVATED, self.on_app_activated)
        event_bus.subscribe(EventType.BINDINGS_RELOAD, self.on_bindings_reload)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def on_app_activated(self, event: Event) -> None:
        self.handle_activation(event.data)

    def on_bindings_reload(self, event: Event) -> None:
        mappings, count = self.store.reload()
        logger.info("Bindings reloaded: %d binding(s), %d switch(es)", len(mappings), count)
        self._publish(EventType.BINDINGS_CHANGED, None)

    def handle_activation(self, app: AppInfo) -> bool:
        """Apply the binding for *app*. Returns True if a switch was issued."""
        self._current_app = app
        logger.trace("Foreground: %r (%s)", app.name, app.app_id or '<no id>')  # type: ignore[attr-defined]

        if not app.app_id:
            return False

        source_id = self.store.get_binding(app.app_id)
        if source_id is None:
            logger.trace("No binding for %s", app.app_id)  # type: ignore[attr-defined]
            return False

        self.gateway.activate(source_id)

        try:
            count = self.store.increment_count()
        except StorageError as exc:
            logger.warning("Switched %s → %s but could not save counter: %s", app.app_id, source_id, exc)
            count = self.store.switch_count

        logger.info("%s → %s (switch #%d)", app.app_id, source_id, count)
        self._publish(
            EventType.SOURCE_ACTIVATED,
            SwitchEventData(app_id=app.app_id, source_id=source_id, switch_count=count),
        )
        return True

    # ------------------------------------------------------------------
    # User mutations
    # ------------------------------------------------------------------

    def set_binding(self, app_id: str, source_id: str | None) -> None:
        """Add, replace or (with None) remove the binding for *app_id*.

        Raises:
            ValueError: empty ids.
            StorageError: the table could not be persisted.
        """
        self.store.set_binding(app_id, source_id)
        if source_id is None:
            logger.info("Binding removed: %s", app_id)
        else:
            logger.info("Binding set: %s → %s", app_id, source_id)
        self._publish(EventType.BINDINGS_CHANGED, BindingChangeData(app_id=app_id, source_id=source_id))

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def current_app(self) -> tuple[str, str]:
        """Return ``(name, app_id)`` of the last known frontmost app."""
        return self._current_app.name, self._current_app.app_id

    def current_source(self) -> InputSourceInfo | None:
        """Return the active input source, re-read from the gateway."""
        source_id = self.gateway.get_current_source()
        if source_id is None:
            self._last_source = None
            return None
        self._last_source = InputSourceInfo(id=source_id, name=self.source_name(source_id))
        return self._last_source

    @property
    def last_source(self) -> InputSourceInfo | None:
        """Source seen by the last ``current_source()`` call (display only)."""
        return self._last_source

    def list_runnable_apps(self) -> list[tuple[str, str]]:
        """Running regular apps as ``(name, app_id)``, sorted by name."""
        apps = [
            (app.name, app.app_id)
            for app in self.watcher.list_running_apps()
            if app.regular and app.app_id and app.name
        ]
        return sorted(apps, key=lambda item: item[0])

    def list_sources(self) -> list[InputSourceInfo]:
        return self.gateway.list_sources()

    def bindings(self) -> dict[str, str]:
        return self.store.bindings

    @property
    def switch_count(self) -> int:
        return self.store.switch_count

    def source_name(self, source_id: str) -> str:
        for source in self.gateway.list_sources():
            if source.id == source_id:
                return source.name
        return short_label(source_id)

    def app_name(self, app_id: str) -> str:
        for name, running_id in self.list_runnable_apps():
            if running_id == app_id:
                return name
        return short_label(app_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _publish(self, event_type: EventType, data) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(Event(type=event_type, data=data, timestamp=time.time()))
