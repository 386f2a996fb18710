"""Resolve pglock configuration from flags, environment and a JSON file.

Precedence, highest first: command-line flag, ``PGLOCK_*`` environment
variable, JSON config file, built-in default. The result is a single frozen
``LockConfig`` built once at startup.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple

from pglock.lib.errors import ConfigurationError
from pglock.models.lock import LockRequest

ENV_PREFIX = "PGLOCK_"
DEFAULT_CONFIG_FILE = "pglock.json"
SSL_MODES = ("disable", "allow", "prefer", "require", "verify-ca", "verify-full")

DEFAULTS: dict[str, Any] = {
    "lockid": 1,
    "host": "localhost",
    "port": 5432,
    "database": "postgres",
    "user": "",
    "pass": "",
    "sslmode": "disable",
    "wait": 0,
}

_INT_KEYS = ("lockid", "port", "wait")


@dataclass(frozen=True)
class LockConfig:
    user: str
    password: str = field(repr=False)
    host: str
    port: int
    database: str
    sslmode: str
    lock_id: int
    wait_seconds: int
    command: Tuple[str, ...]

    def __post_init__(self):
        if not self.command:
            raise ConfigurationError("Need at least one positional argument (command to run).")
        if not self.user:
            raise ConfigurationError("Username cannot be empty.")
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(f"port must be between 1 and 65535, got {self.port}")
        if self.sslmode not in SSL_MODES:
            raise ConfigurationError(
                f"unknown sslmode {self.sslmode!r}, expected one of: {', '.join(SSL_MODES)}"
            )
        # validates lock_id and wait_seconds
        self.request

    @property
    def request(self) -> LockRequest:
        return LockRequest(lock_id=self.lock_id, wait_seconds=self.wait_seconds)


def _load_config(path: str, required: bool = False, verbose: bool = False) -> dict[str, Any]:
    """Read a JSON config file into a dict.

    A missing file is only an error when the caller asked for it explicitly
    (``required``); a present but unreadable or malformed file always is.
    """
    p = Path(path)
    if not p.exists():
        if required:
            raise ConfigurationError(f"config file does not exist: {p}")
        return {}
    if verbose:
        print(f"Loading config from: {p}")
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as e:
        raise ConfigurationError(f"failed to read config file {p}: {e}") from e
    except ValueError as e:
        raise ConfigurationError(f"failed to parse JSON from {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {p} must contain a JSON object")
    return data


def _from_env(environ: Mapping[str, str]) -> dict[str, str]:
    out = {}
    for key in DEFAULTS:
        value = environ.get(ENV_PREFIX + key.upper())
        if value is not None and value != "":
            out[key] = value
    return out


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from None


def resolve_config(
    flags: Mapping[str, Any],
    command: Sequence[str],
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
    verbose: bool = False,
) -> LockConfig:
    """Merge every configuration source into a ``LockConfig``.

    ``flags`` holds command-line values keyed like ``DEFAULTS``; ``None``
    means the flag was not given. The password is never read from ``flags``.
    """
    environ = os.environ if environ is None else environ

    if config_path:
        file_cfg = _load_config(config_path, required=True, verbose=verbose)
    else:
        file_cfg = _load_config(DEFAULT_CONFIG_FILE, required=False, verbose=verbose)

    unknown = sorted(set(file_cfg) - set(DEFAULTS))
    if unknown:
        raise ConfigurationError(f"unknown config file keys: {', '.join(unknown)}")

    merged: dict[str, Any] = dict(DEFAULTS)
    merged.update(file_cfg)
    merged.update(_from_env(environ))
    merged.update({k: v for k, v in flags.items() if v is not None and k in DEFAULTS and k != "pass"})

    for key in _INT_KEYS:
        merged[key] = _to_int(key, merged[key])

    return LockConfig(
        user=str(merged["user"]),
        password=str(merged["pass"]),
        host=str(merged["host"]),
        port=merged["port"],
        database=str(merged["database"]),
        sslmode=str(merged["sslmode"]).lower(),
        lock_id=merged["lockid"],
        wait_seconds=merged["wait"],
        command=tuple(command),
    )
