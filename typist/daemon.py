"""Finding and poking the running Typist daemon.

The daemon keeps its pid in ``typist.pid`` next to the bindings file, so a
CLI working on the same bindings file reaches the daemon that uses it.
"""

from __future__ import annotations

import logging
import os
import signal

logger = logging.getLogger(__name__)

PID_FILE_NAME = 'typist.pid'


def pid_file_for(state_file: str) -> str:
    return os.path.join(os.path.dirname(os.path.abspath(state_file)), PID_FILE_NAME)


def write_pid_file(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(f"{os.getpid()}\n")


def read_pid_file(path: str) -> int | None:
    try:
        with open(path, encoding='utf-8') as f:
            pid = int(f.read().strip())
    except (OSError, ValueError):
        return None
    return pid if pid > 0 else None


def remove_pid_file(path: str) -> None:
    """Remove *path* if it still names this process."""
    if read_pid_file(path) != os.getpid():
        return
    try:
        os.unlink(path)
    except OSError as exc:
        logger.debug("Cannot remove pid file %s: %s", path, exc)


def _is_typist_process(pid: int) -> bool:
    # A stale pid may belong to an unrelated process by now
    try:
        with open(f"/proc/{pid}/cmdline", 'rb') as f:
            cmdline = f.read()
    except OSError:
        return False
    return b'typist' in cmdline


def signal_daemon(pid_file: str) -> int | None:
    """Ask the daemon behind *pid_file* to reload. Returns its pid, or None."""
    pid = read_pid_file(pid_file)
    if pid is None or pid == os.getpid():
        return None
    if not _is_typist_process(pid):
        logger.debug("Stale pid file %s (pid %d)", pid_file, pid)
        return None
    try:
        os.kill(pid, signal.SIGHUP)
    except ProcessLookupError:
        logger.debug("Daemon pid %d is gone", pid)
        return None
    except PermissionError as exc:
        logger.warning("Cannot signal daemon pid %d: %s", pid, exc)
        return None
    logger.info("Sent SIGHUP to daemon (pid %d)", pid)
    return pid
