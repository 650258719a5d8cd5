"""Shared fakes for the platform seams and the persistence port."""

from __future__ import annotations

import pytest

from typist.core.binding_engine import BindingEngine
from typist.core.event_bus import EventBus
from typist.platform.foreground import ActivationCallback, AppInfo, IForegroundWatcher
from typist.platform.input_source import IInputSourceGateway, InputSourceInfo
from typist.platform.system_adapter import CommandResult, ISystemAdapter
from typist.storage.binding_store import BindingStore
from typist.storage.persistence import StateBackend


def pytest_addoption(parser):
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Enable live X11 tests that really switch the layout (skipped by default).",
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class MockInputSourceGateway(IInputSourceGateway):
    """Records activations; unknown ids are ignored like the real gateway."""

    def __init__(self, sources: list[tuple[str, str]] | None = None, current: str | None = None):
        if sources is None:
            sources = [("us", "English (US)"), ("ru", "Russian")]
        self.sources = [InputSourceInfo(id=sid, name=name) for sid, name in sources]
        self.current = current if current is not None else (self.sources[0].id if self.sources else None)
        self.activated: list[str] = []
        self.closed = False

    def list_sources(self) -> list[InputSourceInfo]:
        return list(self.sources)

    def get_current_source(self) -> str | None:
        return self.current

    def activate(self, source_id: str) -> None:
        self.activated.append(source_id)
        if any(s.id == source_id for s in self.sources):
            self.current = source_id

    def close(self) -> None:
        self.closed = True


class MockForegroundWatcher(IForegroundWatcher):
    """Foreground watcher driven by the test through ``emit()``."""

    def __init__(self, frontmost: AppInfo | None = None, running: list[AppInfo] | None = None):
        self.frontmost = frontmost
        self.running = list(running or [])
        self._callback: ActivationCallback | None = None
        self.started = False
        self.stopped = False

    def start(self, on_activated: ActivationCallback) -> bool:
        self._callback = on_activated
        self.started = True
        return True

    def stop(self) -> None:
        self.stopped = True
        self._callback = None

    @property
    def is_running(self) -> bool:
        return self._callback is not None

    def get_frontmost_app(self) -> AppInfo | None:
        return self.frontmost

    def list_running_apps(self) -> list[AppInfo]:
        return list(self.running)

    def emit(self, app_id: str, name: str = "") -> None:
        app = AppInfo(app_id=app_id, name=name or app_id)
        self.frontmost = app
        assert self._callback is not None, "watcher not started"
        self._callback(app)


class MemoryBackend(StateBackend):
    """In-memory persistence port with switchable failures."""

    def __init__(self, record: dict | None = None):
        self.record = record
        self.fail_reads = False
        self.fail_writes = False
        self.writes = 0

    def read(self) -> dict | None:
        if self.fail_reads:
            raise OSError("read failed")
        return None if self.record is None else dict(self.record)

    def write(self, record: dict) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.record = {k: (dict(v) if isinstance(v, dict) else v) for k, v in record.items()}
        self.writes += 1


class MockSystemAdapter(ISystemAdapter):
    """Returns canned output per command name (``args[0]``) and logs calls."""

    def __init__(self, outputs: dict[str, CommandResult] | None = None):
        self.outputs = dict(outputs or {})
        self.calls: list[list[str]] = []

    def run_command(self, args: list[str], timeout: float = 1.0) -> CommandResult:
        self.calls.append(list(args))
        return self.outputs.get(args[0], CommandResult(stdout="", stderr="not found", returncode=127))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def run_live(request) -> bool:
    return bool(request.config.getoption("--run-live"))


@pytest.fixture
def mock_gateway() -> MockInputSourceGateway:
    return MockInputSourceGateway()


@pytest.fixture
def mock_watcher() -> MockForegroundWatcher:
    return MockForegroundWatcher(frontmost=AppInfo(app_id="org.gnome.Terminal", name="Terminal"))


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(memory_backend) -> BindingStore:
    s = BindingStore(memory_backend)
    s.load()
    return s


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def engine(store, mock_gateway, mock_watcher, event_bus) -> BindingEngine:
    e = BindingEngine(store=store, gateway=mock_gateway, watcher=mock_watcher)
    e.subscribe(event_bus)
    e.start()
    return e
