# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Shared configuration loader for the CarMedia services.

Loads a single JSON config file per vehicle.  Search order:
  1. $CARMEDIA_CONFIG               (explicit override)
  2. /etc/carmedia/config.json      (deployed image)
  3. config.json                    (CWD — handy for local dev)
  4. ../../config/default.json      (repo fallback)

Usage:
    from carmedia.config import cfg

    port        = cfg("service", "port", default=4200)
    decoder     = cfg("decoder", "command", default=["mpg123", "-R"])
    max_retries = cfg("decoder", "max_retries")
    devices     = cfg("devices", default={})
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

TRANSPORT_MODES = ("none", "webhook", "mqtt", "both")


def _search_paths() -> list[str]:
    paths = []
    override = os.getenv("CARMEDIA_CONFIG")
    if override:
        paths.append(override)
    paths += [
        "/etc/carmedia/config.json",
        "config.json",
        os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
    ]
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about suspicious config values; unusable decoder values are dropped."""
    decoder = config.get("decoder")
    if not isinstance(decoder, dict):
        decoder = {}
    command = decoder.get("command")
    if command is not None and not (isinstance(command, list) and command):
        logger.warning("Config %s: decoder.command must be a non-empty list", path)
        decoder["command"] = None
    retries = decoder.get("max_retries")
    if retries is not None and (isinstance(retries, bool) or not isinstance(retries, int)
                                or retries < 0):
        logger.warning("Config %s: decoder.max_retries '%s' ignored", path, retries)
        decoder["max_retries"] = None
    mode = (config.get("transport") or {}).get("mode", "none")
    if mode not in TRANSPORT_MODES:
        logger.warning("Config %s: unknown transport.mode '%s'", path, mode)


def _read(path: str) -> dict | None:
    """Parsed JSON object at *path*, or None if missing or unusable."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.error("Config %s is not a JSON object, skipping", path)
        return None
    return data


def load_config() -> dict:
    """The first usable config file on the search path. Cached."""
    global _config
    if _config is None:
        for path in _search_paths():
            data = _read(path)
            if data is not None:
                logger.info("Config loaded from %s", path)
                _validate(data, path)
                _config = data
                break
        else:
            logger.warning("No config.json found, running on defaults")
            _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """One config value; a missing or null value yields *default*.

    cfg("devices")                          -> config["devices"]
    cfg("decoder", "command")               -> config["decoder"]["command"]
    cfg("status", "interval", default=0.2)  -> config["status"]["interval"] or 0.2
    """
    value = load_config().get(section)
    if key is not None:
        value = value.get(key) if isinstance(value, dict) else None
    return default if value is None else value


def reload_config():
    """Drop the cache and read again (used by tests)."""
    global _config
    _config = None
    return load_config()
