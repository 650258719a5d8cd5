"""TypistApp — wires watcher, engine, store and gateway into one daemon.

Threading model: the foreground watcher runs in its own thread and only
puts ``Event`` objects on ``self._events``. Everything else (binding lookup,
gateway calls, persistence) happens on the thread that runs the loop, in
queue order.
"""

from __future__ import annotations

import logging
import os
import queue
import signal
import time

import typist.log  # registers TRACE level and logger.trace()
from typist.config import ConfigManager
from typist.core.binding_engine import BindingEngine
from typist.core.event_bus import EventBus
from typist.core.events import Event, EventType
from typist.daemon import pid_file_for, remove_pid_file, write_pid_file
from typist.platform.foreground import AppInfo
from typist.storage.binding_store import BindingStore
from typist.storage.persistence import JsonFileBackend

logger = logging.getLogger(__name__)


class TypistApp:
    """Per-application input source switcher daemon.

    ``_init_platform()`` is separated from ``__init__`` so that tests
    can inject fakes without touching a real X server.
    """

    def __init__(
        self,
        debug: bool = False,
        config_path: str | None = None,
    ):
        self.debug = debug
        self._running = False

        # Configuration
        self.config = ConfigManager(config_path=config_path)
        if debug:
            self.config.set('debug', True)

        # Core components
        self.event_bus = EventBus()
        # SimpleQueue.put is reentrant, so signal handlers may post too
        self._events: queue.SimpleQueue = queue.SimpleQueue()
        self._state_file = self.config.state_file
        self.store = BindingStore(JsonFileBackend(self._state_file))
        self._pid_file: str | None = None
        self.session_switches = 0

        # Platform adapters, created by _init_platform()
        self.gateway = None
        self.watcher = None
        self.engine: BindingEngine | None = None

    # ------------------------------------------------------------------
    # Platform initialisation (lazy)
    # ------------------------------------------------------------------

    def _init_platform(self):
        """Create the X11 gateway and watcher and the engine on top of them."""
        from typist.platform.x11_watcher import X11ForegroundWatcher
        from typist.platform.xkb_gateway import XkbInputSourceGateway

        self.gateway = XkbInputSourceGateway(backend=self.config.get('gateway', 'auto'))
        self.watcher = X11ForegroundWatcher(poll_interval=self.config.get('poll_interval', 0.05))
        self._init_engine()

    def _init_engine(self):
        self.engine = BindingEngine(
            store=self.store,
            gateway=self.gateway,
            watcher=self.watcher,
        )
        # Subscribed ahead of the engine: the store must point at the new file before it re-reads
        self.event_bus.subscribe(EventType.BINDINGS_RELOAD, self._on_reload)
        self.event_bus.subscribe(EventType.SOURCE_ACTIVATED, self._on_source_activated)
        self.engine.subscribe(self.event_bus)

    def _on_reload(self, event: Event) -> None:
        if not self.config.reload():
            return
        if self.debug:
            self.config.set('debug', True)
        logger.debug("Config reloaded via SIGHUP")

        state_file = self.config.state_file
        if state_file != self._state_file:
            self._state_file = state_file
            self.store.use_backend(JsonFileBackend(state_file))
            if self._pid_file is not None:
                remove_pid_file(self._pid_file)
                self._publish_pid()

    def _on_source_activated(self, event: Event) -> None:
        self.session_switches += 1

    def _publish_pid(self) -> None:
        self._pid_file = pid_file_for(self._state_file)
        try:
            write_pid_file(self._pid_file)
        except OSError as exc:
            logger.warning("Cannot write pid file %s: %s (CLI edits need a manual reload)", self._pid_file, exc)

    # ------------------------------------------------------------------
    # Event channel
    # ------------------------------------------------------------------

    def post_event(self, event_type: EventType, data=None) -> None:
        """Queue an event for the loop. Safe from any thread and from signal handlers."""
        self._events.put(Event(type=event_type, data=data, timestamp=time.time()))

    def _on_app_activated(self, app: AppInfo) -> None:
        # Called on the watcher thread
        self.post_event(EventType.APP_ACTIVATED, app)

    def process_pending(self, timeout: float | None = None) -> int:
        """Dispatch queued events in arrival order. Returns how many were handled.

        With *timeout*, waits up to that long for the first event.
        """
        handled = 0
        block = timeout is not None
        while True:
            try:
                event = self._events.get(block=block, timeout=timeout)
            except queue.Empty:
                return handled
            block = False
            self.event_bus.publish(event)
            handled += 1
            if event.type == EventType.APP_QUIT:
                logger.debug("Quit requested")
                self._running = False
                return handled

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self):
        """Blocking main event loop."""
        if not os.environ.get('DISPLAY'):
            raise RuntimeError(
                "Typist requires X11 (DISPLAY is not set). "
                "For systemd: add ImportEnvironment=DISPLAY to the .service file."
            )

        self._init_platform()
        self.engine.start()

        if not self.watcher.start(self._on_app_activated):
            self.stop()
            raise RuntimeError("Foreground watcher could not start (no X display?)")

        self._running = True
        name, app_id = self.engine.current_app()
        logger.info(
            "Typist started (%d bindings, frontmost: %s)",
            len(self.store), app_id or name or '-',
        )

        def _reload_handler(signum, frame):
            self.post_event(EventType.BINDINGS_RELOAD)
        signal.signal(signal.SIGHUP, _reload_handler)
        self._publish_pid()

        self._run_loop()

    def _run_loop(self):
        try:
            while self._running:
                self.process_pending(timeout=0.5)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def request_quit(self) -> None:
        self.post_event(EventType.APP_QUIT)

    def stop(self):
        """Graceful shutdown — safe to call multiple times."""
        self._running = False
        if self._pid_file is not None:
            logger.info("Stopping after %d switch(es) this session", self.session_switches)
            remove_pid_file(self._pid_file)
            self._pid_file = None
        if self.watcher:
            try:
                self.watcher.stop()
            except Exception:
                logger.exception("Watcher stop failed")
        if self.gateway:
            try:
                self.gateway.close()
            except Exception:
                logger.exception("Gateway close failed")
