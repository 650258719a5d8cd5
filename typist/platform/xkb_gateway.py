"""XkbInputSourceGateway — input sources are the XKB layouts of the X session.

Source ids use XKB notation: ``us``, ``ru``, ``de(neo)``.

Discovery prefers Cinnamon's D-Bus ``GetInputSources`` (exact list with
display names), falling back to ``setxkbmap -query``. Switching prefers
Cinnamon's ``ActivateInputSourceIndex`` (the window manager reverts a bare
``XkbLockGroup`` there) and falls back to ``XkbLockGroup`` through libX11.
"""

from __future__ import annotations

import ctypes
import logging
import re

import typist.log  # registers TRACE level and logger.trace()
from typist.platform.input_source import IInputSourceGateway, InputSourceInfo
from typist.platform.system_adapter import ISystemAdapter, SubprocessSystemAdapter
from typist.platform.xkb_bindings import XKB_USE_CORE_KBD, XkbStateRec, load_libx11

logger = logging.getLogger(__name__)

# Display names for setxkbmap-only sessions, where XKB gives us bare codes.
_LAYOUT_NAMES: dict[str, str] = {
    'us': 'English (US)',
    'gb': 'English (UK)',
    'ru': 'Russian',
    'ua': 'Ukrainian',
    'by': 'Belarusian',
    'de': 'German',
    'fr': 'French',
    'es': 'Spanish',
    'it': 'Italian',
    'pl': 'Polish',
    'cz': 'Czech',
    'tr': 'Turkish',
    'il': 'Hebrew',
    'ir': 'Persian',
    'ara': 'Arabic',
    'gr': 'Greek',
    'jp': 'Japanese',
    'kr': 'Korean',
    'cn': 'Chinese',
}

_CINNAMON_CALL = [
    "gdbus", "call", "--session",
    "--dest", "org.Cinnamon",
    "--object-path", "/org/Cinnamon",
]

# Each entry: ('xkb', 'us', 0, 'English (US)', ..., true|false)
# The display name may contain parens, so the tail allows one nesting level.
_CINNAMON_SOURCE_RE = re.compile(
    r"\('xkb',\s*'([^']+)',\s*(\d+),\s*'([^']*)'(?:[^()]|\([^)]*\))*?,\s*(true|false)\)"
)


def make_source_id(layout: str, variant: str = '') -> str:
    """``('de', 'neo')`` → ``'de(neo)'``; ``('us', '')`` → ``'us'``."""
    layout = layout.strip()
    variant = variant.strip()
    return f"{layout}({variant})" if variant else layout


def default_source_name(source_id: str) -> str:
    """Human-readable name for an XKB source id without desktop help."""
    m = re.fullmatch(r"([^()]+)(?:\(([^()]*)\))?", source_id)
    if not m:
        return source_id
    layout, variant = m.group(1), m.group(2)
    base = _LAYOUT_NAMES.get(layout, layout.upper())
    return f"{base} ({variant})" if variant else base


def parse_setxkbmap_query(output: str) -> list[str]:
    """Source ids from ``setxkbmap -query`` output, in group order."""
    layouts: list[str] = []
    variants: list[str] = []
    for line in output.splitlines():
        if line.startswith("layout:"):
            layouts = [part.strip() for part in line.split(":", 1)[1].split(",")]
        elif line.startswith("variant:"):
            variants = [part.strip() for part in line.split(":", 1)[1].split(",")]

    ids = []
    for i, layout in enumerate(layouts):
        if not layout:
            continue
        variant = variants[i] if i < len(variants) else ''
        ids.append(make_source_id(layout, variant))
    return ids


def parse_cinnamon_sources(output: str) -> list[tuple[int, str, str, bool]]:
    """Entries ``(index, source_id, display_name, is_active)`` from GetInputSources."""
    sources = []
    for m in _CINNAMON_SOURCE_RE.finditer(output):
        raw_id, idx, display, active = m.group(1), int(m.group(2)), m.group(3), m.group(4)
        # GNOME-style 'layout+variant'
        layout, _, variant = raw_id.partition('+')
        source_id = make_source_id(layout, variant)
        sources.append((idx, source_id, display or default_source_name(source_id), active == "true"))
    return sources


class XkbInputSourceGateway(IInputSourceGateway):
    """Input source gateway for X11 sessions.

    Parameters:
        system:   Runs ``gdbus``/``setxkbmap``; defaults to real subprocesses.
        backend:  ``'auto'`` (Cinnamon when reachable, else XKB), ``'cinnamon'``
                  or ``'xkb'``.
        load_x11: Load libX11 for XkbGetState/XkbLockGroup. Tests pass False.
    """

    def __init__(
        self,
        system: ISystemAdapter | None = None,
        backend: str = 'auto',
        load_x11: bool = True,
    ) -> None:
        self._system = system or SubprocessSystemAdapter()
        self._backend = backend
        self._libX11 = load_libx11() if load_x11 else None
        self._dpy = None  # cached Display*
        self._sources: list[InputSourceInfo] | None = None
        self._cinnamon_active: str | None = None
        self._use_cinnamon = backend in ('auto', 'cinnamon')
        # The watcher thread also talks to X; Xlib must be told before any call.
        if self._libX11 is not None:
            self._libX11.XInitThreads()

    # -- private helpers ----------------------------------------------------

    def _get_display(self):
        """Return cached Display* or open a new connection."""
        if self._libX11 is None:
            return None
        if self._dpy is None:
            ptr = self._libX11.XOpenDisplay(None)
            self._dpy = ptr if ptr else None
        return self._dpy

    def _cinnamon_sources(self) -> list[tuple[int, str, str, bool]] | None:
        result = self._system.run_command(
            _CINNAMON_CALL + ["--method", "org.Cinnamon.GetInputSources"],
            timeout=3,
        )
        if not result.ok or not result.stdout.strip():
            return None
        return parse_cinnamon_sources(result.stdout) or None

    def _cinnamon_activate(self, index: int) -> bool:
        result = self._system.run_command(
            _CINNAMON_CALL + ["--method", "org.Cinnamon.ActivateInputSourceIndex", str(index)],
            timeout=3,
        )
        return result.ok

    def _xkb_group(self) -> int | None:
        dpy = self._get_display()
        if not dpy:
            return None
        state = XkbStateRec()
        status = self._libX11.XkbGetState(dpy, XKB_USE_CORE_KBD, ctypes.byref(state))
        if status != 0:
            return None
        return int(state.group)

    def _xkb_lock_group(self, index: int) -> bool:
        dpy = self._get_display()
        if not dpy:
            return False
        self._libX11.XkbLockGroup(dpy, XKB_USE_CORE_KBD, index)
        self._libX11.XSync(dpy, 0)
        return True

    def _index_of(self, source_id: str) -> int | None:
        for i, source in enumerate(self.list_sources()):
            if source.id == source_id:
                return i
        return None

    # -- IInputSourceGateway ------------------------------------------------

    def refresh(self) -> None:
        """Forget the cached source list; the next call re-queries the session."""
        self._sources = None

    def list_sources(self) -> list[InputSourceInfo]:
        if self._sources is not None:
            return list(self._sources)

        if self._use_cinnamon:
            entries = self._cinnamon_sources()
            if entries:
                entries.sort(key=lambda e: e[0])
                self._sources = [InputSourceInfo(id=sid, name=name) for _i, sid, name, _a in entries]
                self._cinnamon_active = next((sid for _i, sid, _n, active in entries if active), None)
                return list(self._sources)
            if self._backend == 'cinnamon':
                logger.warning("Cinnamon input sources unavailable — falling back to setxkbmap")
            # auto mode stops probing Cinnamon after the first failure
            self._use_cinnamon = self._backend == 'cinnamon'

        result = self._system.run_command(["setxkbmap", "-query"], timeout=2)
        ids = parse_setxkbmap_query(result.stdout) if result.ok else []
        if not ids:
            logger.debug("No XKB layouts found (setxkbmap rc=%d)", result.returncode)
            return []
        self._sources = [InputSourceInfo(id=sid, name=default_source_name(sid)) for sid in ids]
        return list(self._sources)

    def get_current_source(self) -> str | None:
        sources = self.list_sources()
        if not sources:
            return None

        group = self._xkb_group()
        if group is not None and group < len(sources):
            return sources[group].id

        if self._use_cinnamon:
            # Only reliable right after a fresh query
            self.refresh()
            self.list_sources()
            return self._cinnamon_active
        return None

    def activate(self, source_id: str) -> None:
        index = self._index_of(source_id)
        if index is None:
            # Layouts may have been edited since we cached them.
            self.refresh()
            index = self._index_of(source_id)
        if index is None:
            logger.debug("Input source %r is not installed — ignoring", source_id)
            return

        if self._use_cinnamon and self._cinnamon_activate(index):
            logger.trace("Activated %s via Cinnamon (index %d)", source_id, index)  # type: ignore[attr-defined]
            return
        if self._xkb_lock_group(index):
            logger.trace("Activated %s via XkbLockGroup (group %d)", source_id, index)  # type: ignore[attr-defined]
            return
        logger.debug("No way to activate %r (no Cinnamon, no X display)", source_id)

    def close(self) -> None:
        """Close the cached X display connection if open."""
        # Also reached from __del__ when __init__ failed half-way
        dpy = getattr(self, "_dpy", None)
        lib = getattr(self, "_libX11", None)
        if dpy is not None and lib is not None:
            lib.XCloseDisplay(dpy)
            self._dpy = None

    def __del__(self) -> None:
        self.close()
