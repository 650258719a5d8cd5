#!/usr/bin/env python3
"""
Typist CLI entry point.

Without an action flag runs the daemon. The action flags inspect or edit
the binding table and exit; a running daemon picks up edits on SIGHUP.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys

from typist import __version__
from typist.config import ConfigManager
from typist.core.event_bus import EventBus
from typist.core.events import Event, EventType
from typist.daemon import pid_file_for, signal_daemon
from typist.log import setup_logging
from typist.storage.binding_store import BindingStore, StorageError
from typist.storage.persistence import JsonFileBackend

logger = logging.getLogger('typist.cli')


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='typist',
        description='Typist - switch the keyboard layout automatically for each application',
    )
    parser.add_argument('--debug', action='store_true', help='Enable debug mode with verbose logging')
    parser.add_argument('--trace', action='store_true', help='Log every foreground event (implies --debug)')
    parser.add_argument('--config', type=str, default=None, help='Path to config file')
    parser.add_argument('--logfile', type=str, default=None, help='Path to log file (default: ~/.typist.log)')
    parser.add_argument('--version', action='version', version='%(prog)s ' + __version__)

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument('--list-sources', action='store_true', help='List selectable input sources')
    actions.add_argument('--list-apps', action='store_true', help='List running applications')
    actions.add_argument('--status', action='store_true', help='Show frontmost app, input source and bindings')
    actions.add_argument(
        '--bind', nargs=2, metavar=('APP_ID', 'SOURCE_ID'),
        help='Bind an application to an input source',
    )
    actions.add_argument('--unbind', metavar='APP_ID', help='Remove the binding of an application')

    return parser.parse_args(argv)


# ------------------------------------------------------------------
# One-shot actions
# ------------------------------------------------------------------

def _make_engine(config: ConfigManager, event_bus: EventBus | None = None, start: bool = True):
    """Engine over the real X11 adapters.

    Without *start* only the bindings are loaded; nothing talks to X.
    """
    from typist.core.binding_engine import BindingEngine
    from typist.platform.x11_watcher import X11ForegroundWatcher
    from typist.platform.xkb_gateway import XkbInputSourceGateway

    store = BindingStore(JsonFileBackend(config.state_file))
    engine = BindingEngine(
        store=store,
        gateway=XkbInputSourceGateway(backend=config.get('gateway', 'auto')),
        watcher=X11ForegroundWatcher(poll_interval=config.get('poll_interval', 0.05)),
        event_bus=event_bus,
    )
    if start:
        engine.start()
    else:
        store.load()
    return engine


def _cmd_list_sources(engine, out) -> int:
    sources = engine.list_sources()
    if not sources:
        print("No input sources found", file=sys.stderr)
        return 1
    for source in sources:
        print(f"{source.id}\t{source.name}", file=out)
    return 0


def _cmd_list_apps(engine, out) -> int:
    for name, app_id in engine.list_runnable_apps():
        print(f"{app_id}\t{name}", file=out)
    return 0


def _cmd_status(engine, out) -> int:
    name, app_id = engine.current_app()
    source = engine.current_source()
    print(f"Application:  {name or '-'}" + (f" ({app_id})" if app_id else ""), file=out)
    print(f"Input source: {source.name if source else 'unknown'}", file=out)
    print(f"Switches:     {engine.switch_count}", file=out)

    bindings = engine.bindings()
    print(f"Bindings ({len(bindings)}):", file=out)
    for bound_app in sorted(bindings):
        print(
            f"  {engine.app_name(bound_app)} ({bound_app}) → "
            f"{engine.source_name(bindings[bound_app])}",
            file=out,
        )
    return 0


def _reload_daemon(config: ConfigManager, event: Event) -> None:
    """Make the daemon using the same bindings file pick up the change."""
    if signal_daemon(pid_file_for(config.state_file)) is None:
        logger.debug("No running daemon for %s", config.state_file)


def _cmd_set_binding(engine, app_id: str, source_id: str | None, out) -> int:
    try:
        engine.set_binding(app_id, source_id)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except StorageError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if source_id is None:
        print(f"Removed binding for {app_id}", file=out)
    else:
        print(f"Bound {app_id} → {source_id}", file=out)
    return 0


def _has_action(args: argparse.Namespace) -> bool:
    return bool(args.bind or args.unbind or args.list_sources or args.list_apps or args.status)


def run_action(args: argparse.Namespace, config: ConfigManager, out=None) -> int | None:
    """Run the one-shot action selected by *args*; None if there is none."""
    if not _has_action(args):
        return None
    out = out or sys.stdout

    editing = bool(args.bind or args.unbind)
    bus = EventBus()
    bus.subscribe(EventType.BINDINGS_CHANGED, lambda event: _reload_daemon(config, event))
    engine = _make_engine(config, event_bus=bus, start=not editing)
    try:
        if args.bind:
            return _cmd_set_binding(engine, args.bind[0], args.bind[1], out)
        if args.unbind:
            return _cmd_set_binding(engine, args.unbind, None, out)
        if args.list_sources:
            return _cmd_list_sources(engine, out)
        if args.list_apps:
            return _cmd_list_apps(engine, out)
        return _cmd_status(engine, out)
    finally:
        engine.watcher.stop()
        engine.gateway.close()


# ------------------------------------------------------------------
# Daemon
# ------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Main entry point for Typist"""
    args = parse_args(argv)

    config = ConfigManager(config_path=args.config)
    debug = args.debug or args.trace or bool(config.get('debug'))

    if _has_action(args):
        # One-shot commands log to stderr only
        setup_logging(debug=debug, trace=args.trace, log_file='')
        return run_action(args, config)

    log = setup_logging(debug=debug, trace=args.trace, log_file=args.logfile)
    log.info("=" * 60)
    log.info("Typist started (version %s, pid %d)", __version__, os.getpid())
    log.info("Config: %s, bindings: %s", config.config_path, config.state_file)
    log.info("=" * 60)

    from typist.app import TypistApp

    app = TypistApp(debug=debug, config_path=args.config)

    def signal_handler(signum: int, frame) -> None:
        log.info("Received %s — shutting down", signal.Signals(signum).name)
        app.request_quit()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run()
    except RuntimeError as exc:
        log.error("%s", exc)
        return 1
    except Exception:
        log.exception("Fatal error")
        return 1

    log.info("Typist stopped")
    return 0


if __name__ == '__main__':
    sys.exit(main())
