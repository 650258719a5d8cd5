"""Typist configuration: defaults, the JSON config file and validation.

The file lives at ``~/.config/typist/config.json`` unless ``--config``
points elsewhere. It may contain ``#``/``//`` comments and trailing commas.
Only keys present in the file override DEFAULT_CONFIG.
"""

from __future__ import annotations

import json
import logging
import os
import re

from typist.storage.persistence import save_json

logger = logging.getLogger(__name__)

USER_CONFIG_PATH = '~/.config/typist/config.json'

GATEWAY_BACKENDS = ('auto', 'cinnamon', 'xkb')

# Single source of truth for default configuration
DEFAULT_CONFIG: dict = {
    'debug': False,
    'state_file': '~/.config/typist/bindings.json',
    'poll_interval': 0.05,
    'gateway': 'auto',
}


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _sanitize_json_text(s: str) -> str:
    """Remove ``#``/``//`` comments and trailing commas from JSON-like text."""
    # Hash-style line comments
    s = re.sub(r"^[ \t]*#.*$", "", s, flags=re.MULTILINE)
    # C++-style line comments (not inside "scheme://" values)
    s = re.sub(r"(?<!:)//.*$", "", s, flags=re.MULTILINE)
    # Trailing commas before } or ]
    s = re.sub(r",[ \t\r\n]+(\}|\])", r"\1", s)
    return s


def state_file_path(conf: dict) -> str:
    """Return the absolute bindings file path from a config dict."""
    return os.path.abspath(os.path.expanduser(conf.get('state_file') or DEFAULT_CONFIG['state_file']))


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------

def validate_config(conf: dict | None) -> dict:
    """Return *conf* completed with defaults and normalized.

    Raises ``ValueError`` naming the first offending key.
    """
    if conf is None:
        conf = {}
    if not isinstance(conf, dict):
        raise ValueError("Invalid config: top-level value must be an object")

    out = dict(DEFAULT_CONFIG)

    # debug: boolean
    debug = conf.get('debug', DEFAULT_CONFIG['debug'])
    if not isinstance(debug, bool):
        raise ValueError("Invalid 'debug' flag: must be boolean")
    out['debug'] = debug

    # state_file: non-empty string
    state_file = conf.get('state_file', DEFAULT_CONFIG['state_file'])
    if not isinstance(state_file, str) or not state_file.strip():
        raise ValueError("Invalid 'state_file': must be a non-empty string")
    out['state_file'] = state_file

    # poll_interval: float in [0.01, 1.0]
    raw_interval = conf.get('poll_interval', DEFAULT_CONFIG['poll_interval'])
    if isinstance(raw_interval, bool):
        raise ValueError(f"Invalid 'poll_interval': {raw_interval}")
    try:
        interval = float(raw_interval)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid 'poll_interval': {raw_interval}")
    if not (0.01 <= interval <= 1.0):
        raise ValueError(f"Invalid 'poll_interval': {raw_interval} (must be between 0.01 and 1.0)")
    out['poll_interval'] = interval

    # gateway: one of GATEWAY_BACKENDS
    backend = conf.get('gateway', DEFAULT_CONFIG['gateway'])
    if backend not in GATEWAY_BACKENDS:
        raise ValueError(
            f"Invalid 'gateway': {backend!r} (expected one of {', '.join(GATEWAY_BACKENDS)})"
        )
    out['gateway'] = backend

    return out


def _read_and_merge(path: str, target_config: dict) -> bool:
    """Overlay the keys found in *path* onto *target_config*.

    Nothing is merged unless the whole file parses and validates.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = f.read()
    except OSError as exc:
        logger.warning("Cannot read config %s: %s", path, exc)
        return False

    try:
        cfg = json.loads(raw)
    except json.JSONDecodeError:
        try:
            cfg = json.loads(_sanitize_json_text(raw))
        except json.JSONDecodeError as exc:
            logger.warning("JSON parse error in %s: %s", path, exc)
            return False

    try:
        validated = validate_config(cfg)
    except ValueError as verr:
        logger.warning("Invalid config %s: %s", path, verr)
        return False

    # Only override keys explicitly present in source
    for k in cfg:
        if k in validated:
            target_config[k] = validated[k]
    return True


# ------------------------------------------------------------------
# Top-level loader
# ------------------------------------------------------------------

def load_config(config_path: str | None = None) -> dict:
    """Effective configuration from *config_path* (default: the user config).

    A missing or rejected file yields DEFAULT_CONFIG.
    """
    config = dict(DEFAULT_CONFIG)
    path = config_path if config_path is not None else os.path.expanduser(USER_CONFIG_PATH)
    if os.path.exists(path):
        _read_and_merge(path, config)
    return config


# ------------------------------------------------------------------
# ConfigManager
# ------------------------------------------------------------------

class ConfigManager:
    """Effective configuration of one Typist process.

    Values come from DEFAULT_CONFIG overlaid with the config file. The
    daemon calls :meth:`reload` on SIGHUP; a file that fails to parse or
    validate leaves the previous values in place.
    """

    def __init__(self, config_path: str | None = None):
        self._config_path = config_path or os.path.expanduser(USER_CONFIG_PATH)
        self._config: dict = load_config(self._config_path)

    def reload(self) -> bool:
        """Re-read the config file. Returns False if it was rejected."""
        if not os.path.exists(self._config_path):
            self._config = dict(DEFAULT_CONFIG)
            return True
        fresh = dict(DEFAULT_CONFIG)
        if not _read_and_merge(self._config_path, fresh):
            return False
        self._config = fresh
        return True

    def save(self) -> bool:
        """Write the known keys back to the config file."""
        try:
            save_json(self._config_path, {k: self._config[k] for k in DEFAULT_CONFIG})
        except OSError as exc:
            logger.warning("Cannot save config %s: %s", self._config_path, exc)
            return False
        return True

    def get(self, key: str, default=None):
        return self._config.get(key, default)

    def set(self, key: str, value) -> None:
        self._config[key] = value

    def update(self, updates: dict) -> None:
        self._config.update(updates)

    def as_dict(self) -> dict:
        return dict(self._config)

    def validate(self) -> bool:
        try:
            validate_config(self._config)
        except ValueError as exc:
            logger.warning("Invalid configuration: %s", exc)
            return False
        return True

    @property
    def config_path(self) -> str:
        return self._config_path

    @property
    def state_file(self) -> str:
        """Absolute path of the bindings file."""
        return state_file_path(self._config)
