"""X11ForegroundWatcher — frontmost application tracking via EWMH properties.

Listens for ``PropertyNotify`` on the root window and reacts to
``_NET_ACTIVE_WINDOW``. The application of a window is its ``WM_CLASS``
class name. Focus moving between two windows of one application is not
reported; only application changes are.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from Xlib import X, Xatom
from Xlib import display as xdisplay
from Xlib import error as xerror

import typist.log  # registers TRACE level and logger.trace()
from typist.platform.foreground import ActivationCallback, AppInfo, IForegroundWatcher

logger = logging.getLogger(__name__)

NET_ACTIVE_WINDOW = '_NET_ACTIVE_WINDOW'
NET_CLIENT_LIST = '_NET_CLIENT_LIST'
NET_WM_WINDOW_TYPE = '_NET_WM_WINDOW_TYPE'
NET_WM_WINDOW_TYPE_NORMAL = '_NET_WM_WINDOW_TYPE_NORMAL'
NET_WM_STATE = '_NET_WM_STATE'
NET_WM_STATE_SKIP_TASKBAR = '_NET_WM_STATE_SKIP_TASKBAR'

# Errors a window may throw at us when it disappears mid-query.
_X_ERRORS = (xerror.XError, xerror.ConnectionClosedError)


class X11ForegroundWatcher(IForegroundWatcher):
    """Foreground watcher for EWMH window managers.

    Parameters:
        poll_interval:   Sleep between checks of the X event queue (seconds).
        display_factory: Returns a new ``Xlib.display.Display``; tests inject fakes.
    """

    def __init__(
        self,
        poll_interval: float = 0.05,
        display_factory: Callable[[], object] | None = None,
    ):
        self.poll_interval = poll_interval
        self._display_factory = display_factory or xdisplay.Display
        self._query_dpy = None      # display for point queries (caller's thread)
        self._thread: threading.Thread | None = None
        self._running = False
        self._last_app_id: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, on_activated: ActivationCallback) -> bool:
        """Start the watcher daemon thread.

        Returns:
            True if the thread was started, False if X is unreachable.
        """
        if self._thread is not None and self._thread.is_alive():
            return True

        try:
            dpy = self._display_factory()
        except Exception as exc:
            logger.error("Cannot connect to X display: %s", exc)
            return False

        self._running = True
        self._thread = threading.Thread(
            target=self._run, args=(dpy, on_activated), daemon=True, name="x11-watcher",
        )
        self._thread.start()
        return True

    def stop(self) -> None:
        """Signal the watch loop to stop and wait for it."""
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None
        if self._query_dpy is not None:
            try:
                self._query_dpy.close()
            except _X_ERRORS:
                pass
            self._query_dpy = None

    @property
    def is_running(self) -> bool:
        return self._running and self._thread is not None and self._thread.is_alive()

    def get_frontmost_app(self) -> AppInfo | None:
        dpy = self._get_query_display()
        if dpy is None:
            return None
        try:
            return self._active_app(dpy)
        except _X_ERRORS as exc:
            logger.debug("Frontmost app query failed: %s", exc)
            return None

    def list_running_apps(self) -> list[AppInfo]:
        dpy = self._get_query_display()
        if dpy is None:
            return []
        try:
            root = dpy.screen().root
            prop = root.get_full_property(dpy.intern_atom(NET_CLIENT_LIST), Xatom.WINDOW)
        except _X_ERRORS as exc:
            logger.debug("Client list query failed: %s", exc)
            return []
        if prop is None:
            return []

        apps: dict[str, AppInfo] = {}
        for wid in prop.value:
            try:
                app = self._app_for_window(dpy, dpy.create_resource_object('window', wid))
            except _X_ERRORS:
                continue  # window closed while we were looking
            if app is None or not app.app_id:
                continue
            known = apps.get(app.app_id)
            # One regular window is enough to call the whole app regular.
            if known is None or (app.regular and not known.regular):
                apps[app.app_id] = app
        return list(apps.values())

    # ------------------------------------------------------------------
    # Window inspection
    # ------------------------------------------------------------------

    def _get_query_display(self):
        if self._query_dpy is None:
            try:
                self._query_dpy = self._display_factory()
            except Exception as exc:
                logger.debug("Cannot connect to X display: %s", exc)
                return None
        return self._query_dpy

    def _active_window(self, dpy):
        root = dpy.screen().root
        prop = root.get_full_property(dpy.intern_atom(NET_ACTIVE_WINDOW), X.AnyPropertyType)
        if prop is None or not prop.value:
            return None
        wid = int(prop.value[0])
        if wid == 0:
            return None
        return dpy.create_resource_object('window', wid)

    def _active_app(self, dpy) -> AppInfo | None:
        window = self._active_window(dpy)
        if window is None:
            return None
        return self._app_for_window(dpy, window)

    def _app_for_window(self, dpy, window) -> AppInfo | None:
        wm_class = window.get_wm_class()
        if not wm_class:
            # Foreground window without WM_CLASS: still a foreground change.
            return AppInfo(app_id='', name='')
        res_class = wm_class[1] or wm_class[0]
        return AppInfo(app_id=res_class, name=res_class, regular=self._is_regular(dpy, window))

    def _is_regular(self, dpy, window) -> bool:
        types = window.get_full_property(dpy.intern_atom(NET_WM_WINDOW_TYPE), Xatom.ATOM)
        if types is not None and len(types.value):
            if dpy.intern_atom(NET_WM_WINDOW_TYPE_NORMAL) not in types.value:
                return False
        state = window.get_full_property(dpy.intern_atom(NET_WM_STATE), Xatom.ATOM)
        if state is not None and dpy.intern_atom(NET_WM_STATE_SKIP_TASKBAR) in state.value:
            return False
        return True

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    def _run(self, dpy, on_activated: ActivationCallback) -> None:
        """Main watch loop — runs in a daemon thread."""
        try:
            root = dpy.screen().root
            active_atom = dpy.intern_atom(NET_ACTIVE_WINDOW)
            root.change_attributes(event_mask=X.PropertyChangeMask)
            logger.debug("X11 watcher subscribed to %s", NET_ACTIVE_WINDOW)

            while self._running:
                changed = False
                while dpy.pending_events() > 0:
                    event = dpy.next_event()
                    if event.type == X.PropertyNotify and event.atom == active_atom:
                        changed = True
                if changed:
                    self._emit_if_changed(dpy, on_activated)
                time.sleep(self.poll_interval)
        except Exception as exc:
            logger.error("X11 watcher error: %s", exc)
        finally:
            self._running = False
            try:
                dpy.close()
            except _X_ERRORS:
                pass

    def _emit_if_changed(self, dpy, on_activated: ActivationCallback) -> None:
        try:
            app = self._active_app(dpy)
        except _X_ERRORS as exc:
            logger.trace("Active window vanished: %s", exc)  # type: ignore[attr-defined]
            return
        if app is None:
            # Nothing focused: the next application to come back counts as new
            self._last_app_id = None
            return
        if app.app_id == self._last_app_id:
            return
        self._last_app_id = app.app_id
        try:
            on_activated(app)
        except Exception:
            logger.exception("Activation callback failed for %s", app.app_id)
