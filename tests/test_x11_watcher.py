"""Tests for X11ForegroundWatcher using a fake python-xlib display."""

from __future__ import annotations

import os
import threading
import time
from types import SimpleNamespace

import pytest
from Xlib import X

from typist.platform.foreground import AppInfo, IForegroundWatcher
from typist.platform.x11_watcher import X11ForegroundWatcher

DISPLAY = os.environ.get("DISPLAY")


# ---------------------------------------------------------------------------
# Fake Xlib objects
# ---------------------------------------------------------------------------

class FakeProperty:
    def __init__(self, value):
        self.value = value


class FakeWindow:
    def __init__(self, dpy, wid, wm_class=None, types=None, state=None):
        self.dpy = dpy
        self.id = wid
        self.wm_class = wm_class
        self.properties = {}
        if types is not None:
            self.properties['_NET_WM_WINDOW_TYPE'] = [dpy.intern_atom(t) for t in types]
        if state is not None:
            self.properties['_NET_WM_STATE'] = [dpy.intern_atom(s) for s in state]
        self.attributes = {}

    def get_wm_class(self):
        return self.wm_class

    def get_full_property(self, atom, prop_type):
        name = self.dpy.atom_name(atom)
        if name not in self.properties:
            return None
        return FakeProperty(self.properties[name])

    def change_attributes(self, **kwargs):
        self.attributes.update(kwargs)


class FakeDisplay:
    def __init__(self):
        self._atoms: dict[str, int] = {}
        self.windows: dict[int, FakeWindow] = {}
        self.events: list = []
        self.closed = False
        self.root = FakeWindow(self, 1)

    def intern_atom(self, name):
        return self._atoms.setdefault(name, 100 + len(self._atoms))

    def atom_name(self, atom):
        return next(name for name, value in self._atoms.items() if value == atom)

    def screen(self):
        return SimpleNamespace(root=self.root)

    def create_resource_object(self, kind, wid):
        return self.windows[wid]

    def add_window(self, wid, wm_class, **kwargs) -> FakeWindow:
        window = FakeWindow(self, wid, wm_class, **kwargs)
        self.windows[wid] = window
        return window

    def set_active(self, wid):
        self.root.properties['_NET_ACTIVE_WINDOW'] = [wid]

    def set_client_list(self, wids):
        self.root.properties['_NET_CLIENT_LIST'] = list(wids)

    def notify_active_changed(self):
        self.events.append(SimpleNamespace(
            type=X.PropertyNotify, atom=self.intern_atom('_NET_ACTIVE_WINDOW'),
        ))

    def pending_events(self):
        return len(self.events)

    def next_event(self):
        return self.events.pop(0)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_display() -> FakeDisplay:
    dpy = FakeDisplay()
    dpy.add_window(10, ('Navigator', 'firefox'))
    dpy.add_window(11, ('telegram-desktop', 'TelegramDesktop'))
    dpy.add_window(12, ('plank', 'Plank'), types=['_NET_WM_WINDOW_TYPE_DOCK'])
    dpy.add_window(13, ('Navigator', 'firefox'), state=['_NET_WM_STATE_SKIP_TASKBAR'])
    dpy.add_window(14, None)
    dpy.set_client_list([10, 11, 12, 13])
    dpy.set_active(10)
    return dpy


@pytest.fixture
def watcher(fake_display) -> X11ForegroundWatcher:
    return X11ForegroundWatcher(poll_interval=0.01, display_factory=lambda: fake_display)


# ---------------------------------------------------------------------------
# Point queries
# ---------------------------------------------------------------------------

class TestQueries:
    def test_implements_interface(self, watcher):
        assert isinstance(watcher, IForegroundWatcher)

    def test_frontmost_app(self, watcher):
        assert watcher.get_frontmost_app() == AppInfo('firefox', 'firefox')

    def test_frontmost_none_when_no_active_window(self, watcher, fake_display):
        fake_display.set_active(0)
        assert watcher.get_frontmost_app() is None

    def test_frontmost_without_wm_class(self, watcher, fake_display):
        fake_display.set_active(14)
        assert watcher.get_frontmost_app() == AppInfo('', '')

    def test_instance_name_used_when_class_empty(self, watcher, fake_display):
        fake_display.add_window(20, ('xterm', ''))
        fake_display.set_active(20)
        assert watcher.get_frontmost_app().app_id == 'xterm'

    def test_frontmost_without_display(self):
        def no_display():
            raise ConnectionError("no display")

        watcher = X11ForegroundWatcher(display_factory=no_display)
        assert watcher.get_frontmost_app() is None
        assert watcher.list_running_apps() == []

    def test_list_running_apps(self, watcher):
        apps = {app.app_id: app for app in watcher.list_running_apps()}
        assert set(apps) == {'firefox', 'TelegramDesktop', 'Plank'}
        # A regular window wins over a skip-taskbar window of the same app
        assert apps['firefox'].regular is True
        assert apps['Plank'].regular is False

    def test_list_without_client_list(self, watcher, fake_display):
        del fake_display.root.properties['_NET_CLIENT_LIST']
        assert watcher.list_running_apps() == []

    def test_is_regular(self, watcher, fake_display):
        assert watcher._is_regular(fake_display, fake_display.windows[11]) is True
        assert watcher._is_regular(fake_display, fake_display.windows[12]) is False
        assert watcher._is_regular(fake_display, fake_display.windows[13]) is False

    def test_stop_closes_query_display(self, watcher, fake_display):
        watcher.get_frontmost_app()
        watcher.stop()
        assert fake_display.closed is True


# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------

class TestEmitIfChanged:
    def test_emits_only_on_app_change(self, watcher, fake_display):
        seen = []
        watcher._emit_if_changed(fake_display, seen.append)
        watcher._emit_if_changed(fake_display, seen.append)
        # Another window of the same application
        fake_display.set_active(13)
        watcher._emit_if_changed(fake_display, seen.append)
        fake_display.set_active(11)
        watcher._emit_if_changed(fake_display, seen.append)
        assert [app.app_id for app in seen] == ['firefox', 'TelegramDesktop']

    def test_same_app_after_empty_focus_is_reported_again(self, watcher, fake_display):
        seen = []
        watcher._emit_if_changed(fake_display, seen.append)
        # Desktop focused, nothing active
        fake_display.set_active(0)
        watcher._emit_if_changed(fake_display, seen.append)
        fake_display.set_active(10)
        watcher._emit_if_changed(fake_display, seen.append)
        assert [app.app_id for app in seen] == ['firefox', 'firefox']

    def test_nameless_window_is_reported(self, watcher, fake_display):
        seen = []
        watcher._emit_if_changed(fake_display, seen.append)
        fake_display.set_active(14)
        watcher._emit_if_changed(fake_display, seen.append)
        assert seen[-1] == AppInfo('', '')

    def test_callback_exception_does_not_propagate(self, watcher, fake_display):
        def boom(app):
            raise RuntimeError("handler failed")

        watcher._emit_if_changed(fake_display, boom)


# ---------------------------------------------------------------------------
# Watch thread
# ---------------------------------------------------------------------------

class TestWatchThread:
    def test_start_failure_returns_false(self):
        def no_display():
            raise ConnectionError("no display")

        watcher = X11ForegroundWatcher(display_factory=no_display)
        assert watcher.start(lambda app: None) is False
        assert watcher.is_running is False

    def test_reports_activation_from_thread(self, watcher, fake_display):
        seen = []
        got = threading.Event()

        def on_activated(app):
            seen.append((app.app_id, threading.current_thread().name))
            got.set()

        fake_display.set_active(11)
        fake_display.notify_active_changed()
        assert watcher.start(on_activated) is True
        try:
            assert got.wait(timeout=2)
            assert watcher.is_running is True
        finally:
            watcher.stop()

        assert seen == [('TelegramDesktop', 'x11-watcher')]
        assert fake_display.root.attributes['event_mask'] == X.PropertyChangeMask
        assert watcher.is_running is False

    def test_unrelated_property_ignored(self, watcher, fake_display):
        seen = []
        fake_display.events.append(SimpleNamespace(
            type=X.PropertyNotify, atom=fake_display.intern_atom('_NET_WM_NAME'),
        ))
        watcher.start(seen.append)
        try:
            # Let the loop drain the queue
            for _ in range(200):
                if not fake_display.events:
                    break
                time.sleep(0.01)
        finally:
            watcher.stop()
        assert seen == []


# ---------------------------------------------------------------------------
# Live X11 tests (skipped when no DISPLAY)
# ---------------------------------------------------------------------------

@pytest.mark.skipif(not DISPLAY, reason="No DISPLAY — X11 tests skipped")
class TestX11WatcherLive:
    def test_frontmost_app(self):
        watcher = X11ForegroundWatcher()
        app = watcher.get_frontmost_app()
        assert app is None or isinstance(app, AppInfo)
        watcher.stop()

    def test_list_running_apps(self):
        watcher = X11ForegroundWatcher()
        apps = watcher.list_running_apps()
        assert all(isinstance(app, AppInfo) for app in apps)
        assert len({app.app_id for app in apps}) == len(apps)
        watcher.stop()
