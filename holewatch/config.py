"""Configuration loading for holewatch.

Loads the server list and refresh settings from a TOML file (or JSON when the
file ends in ``.json``), merged over sensible defaults. Any problem with the
file is fatal: the dashboard has nothing to show without servers.
"""

from __future__ import annotations

import json
import sys
import tomllib
from pathlib import Path
from typing import Any

from holewatch.models import Target

DEFAULT_CONFIG: dict[str, Any] = {
    "update_delay": 5000,
    "top_limit": 25,
    "request_timeout": 5.0,
    "refresh_all": False,
    "servers": [],
}

DEFAULT_PATH = Path("holewatch.toml")


def _fail(message: str) -> SystemExit:
    print(f"holewatch: {message}", file=sys.stderr)
    return SystemExit(1)


def _merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base. Nested dicts are merged at the first level only."""
    merged = dict(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _parse(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = tomllib.loads(text)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise _fail(f"invalid config in {path}: {e}") from e
    if not isinstance(data, dict):
        raise _fail(f"invalid config in {path}: top level must be a table")
    return data


def _validate(config: dict[str, Any], path: Path) -> None:
    servers = config.get("servers")
    if not isinstance(servers, list) or not servers:
        raise _fail(f"no servers configured in {path}")
    for i, server in enumerate(servers):
        if not isinstance(server, dict):
            raise _fail(f"server #{i} in {path} is not a table")
        for key in ("name", "host"):
            if not isinstance(server.get(key), str) or not server[key]:
                raise _fail(f"server #{i} in {path} is missing '{key}'")
    try:
        delay = int(config["update_delay"])
    except (TypeError, ValueError) as e:
        raise _fail(f"update_delay in {path} must be an integer") from e
    if delay < 0:
        raise _fail(f"update_delay in {path} must not be negative")

    # bool is an int subclass; reject it explicitly
    top_limit = config["top_limit"]
    if isinstance(top_limit, bool) or not isinstance(top_limit, int) or top_limit <= 0:
        raise _fail(f"top_limit in {path} must be a positive integer")
    timeout = config["request_timeout"]
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise _fail(f"request_timeout in {path} must be a positive number")
    if not isinstance(config["refresh_all"], bool):
        raise _fail(f"refresh_all in {path} must be true or false")


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration, merging the user file over defaults.

    Args:
        path: Config file path from the command line. If None, uses
              ``holewatch.toml`` in the current directory.

    Returns:
        Merged configuration dict.

    Raises:
        SystemExit: If the file is missing, can't be parsed, or lists no servers.
    """
    path = path or DEFAULT_PATH
    if not path.is_file():
        raise _fail(f"config file not found: {path}")

    config = _merge(DEFAULT_CONFIG, _parse(path))
    _validate(config, path)
    return config


def build_targets(config: dict[str, Any]) -> list[Target]:
    """Turn the ``servers`` entries into immutable targets, in config order."""
    return [
        Target(
            id=i,
            display_name=server["name"],
            endpoint=server["host"],
            credential=server.get("api_key") or None,
        )
        for i, server in enumerate(config["servers"])
    ]


def refresh_interval(config: dict[str, Any]) -> float:
    """``update_delay`` (milliseconds) as seconds."""
    return int(config["update_delay"]) / 1000.0


def dump_default_config() -> str:
    """Return an example configuration as a TOML string."""
    lines = [
        "# holewatch configuration",
        "# Pass the path on the command line, or save as ./holewatch.toml",
        "",
        "# Milliseconds between refreshes of the selected server",
        f"update_delay = {DEFAULT_CONFIG['update_delay']}",
        f"top_limit = {DEFAULT_CONFIG['top_limit']}",
        f"request_timeout = {DEFAULT_CONFIG['request_timeout']}",
        f"refresh_all = {str(DEFAULT_CONFIG['refresh_all']).lower()}",
        "",
        "[[servers]]",
        'name = "Pi-hole"',
        'host = "http://pi.hole"',
        "# Without api_key the server is read-only: no top lists, no enable/disable",
        '# api_key = "..."',
    ]
    return "\n".join(lines) + "\n"
