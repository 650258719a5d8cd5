"""Tests for typist.daemon — pid file handling and reload signalling."""

from __future__ import annotations

import os
import signal

import pytest

from typist import daemon
from typist.daemon import (
    PID_FILE_NAME,
    pid_file_for,
    read_pid_file,
    remove_pid_file,
    signal_daemon,
    write_pid_file,
)


@pytest.fixture
def pid_file(tmp_path) -> str:
    return str(tmp_path / "run" / PID_FILE_NAME)


def test_pid_file_next_to_state_file(tmp_path):
    state_file = str(tmp_path / "bindings.json")
    assert pid_file_for(state_file) == str(tmp_path / PID_FILE_NAME)


def test_write_and_read(pid_file):
    write_pid_file(pid_file)
    assert read_pid_file(pid_file) == os.getpid()


@pytest.mark.parametrize("content", ["", "abc", "0", "-5"])
def test_read_invalid(pid_file, content):
    os.makedirs(os.path.dirname(pid_file))
    with open(pid_file, "w", encoding="utf-8") as f:
        f.write(content)
    assert read_pid_file(pid_file) is None


def test_read_missing(pid_file):
    assert read_pid_file(pid_file) is None


def test_remove_own_pid_file(pid_file):
    write_pid_file(pid_file)
    remove_pid_file(pid_file)
    assert not os.path.exists(pid_file)


def test_remove_keeps_foreign_pid_file(pid_file):
    os.makedirs(os.path.dirname(pid_file))
    with open(pid_file, "w", encoding="utf-8") as f:
        f.write("4242\n")
    remove_pid_file(pid_file)
    assert read_pid_file(pid_file) == 4242


class TestSignalDaemon:
    @pytest.fixture
    def sent(self, pid_file, monkeypatch) -> list:
        os.makedirs(os.path.dirname(pid_file))
        with open(pid_file, "w", encoding="utf-8") as f:
            f.write("4242\n")
        calls = []
        monkeypatch.setattr(daemon, "_is_typist_process", lambda pid: True)
        monkeypatch.setattr(daemon.os, "kill", lambda pid, sig: calls.append((pid, sig)))
        return calls

    def test_sends_sighup(self, pid_file, sent):
        assert signal_daemon(pid_file) == 4242
        assert sent == [(4242, signal.SIGHUP)]

    def test_no_pid_file(self, tmp_path):
        assert signal_daemon(str(tmp_path / PID_FILE_NAME)) is None

    def test_own_pid_is_not_signalled(self, pid_file, monkeypatch):
        sent = []
        monkeypatch.setattr(daemon.os, "kill", lambda pid, sig: sent.append(pid))
        write_pid_file(pid_file)
        assert signal_daemon(pid_file) is None
        assert sent == []

    def test_foreign_process_is_not_signalled(self, pid_file, sent, monkeypatch):
        monkeypatch.setattr(daemon, "_is_typist_process", lambda pid: False)
        assert signal_daemon(pid_file) is None
        assert sent == []

    def test_vanished_process(self, pid_file, sent, monkeypatch):
        def gone(pid, sig):
            raise ProcessLookupError(pid)

        monkeypatch.setattr(daemon.os, "kill", gone)
        assert signal_daemon(pid_file) is None
