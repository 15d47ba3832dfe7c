"""
Refresh service configuration.

Settings are read from the environment:

    VC_REFRESH_SUPPORTED_ISSUERS        did=url pairs, comma separated; "*" is the default
    VC_REFRESH_ISSUERS_BASIC_AUTH       did=user:password pairs, comma separated
    VC_REFRESH_PROVIDERS_DIR            directory of provider JSON configs
    VC_REFRESH_HTTP_TIMEOUT             seconds (default 30)
    VC_REFRESH_VERIFY_SSL               true/false (default true)
    VC_REFRESH_MERKLIZED_ROOT_POSITION  index/value (default index)
    VC_REFRESH_LOG_LEVEL                logging level (default INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from rich.console import Console
from rich.logging import RichHandler

from vc_refresh.claims import MerklizedRootPosition

ENV_PREFIX = "VC_REFRESH_"

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_PROVIDERS_DIR = "providers"
DEFAULT_LOG_LEVEL = "INFO"


def parse_mapping(value: str) -> dict[str, str]:
    """Parse "key=value,key=value" into a dict.

    Only the first "=" of a pair separates key from value.

    Raises:
        ValueError: If a pair has no "=" or an empty key.
    """
    result: dict[str, str] = {}
    for pair in value.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, sep, item = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid mapping entry: {pair!r}")
        result[key.strip()] = item.strip()
    return result


def parse_bool(value: str) -> bool:
    """Parse a boolean environment value."""
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean: {value!r}")


@dataclass
class Settings:
    """Runtime settings for the refresh service."""

    supported_issuers: dict[str, str] = field(default_factory=dict)
    issuers_basic_auth: dict[str, str] = field(default_factory=dict)
    providers_dir: Path = Path(DEFAULT_PROVIDERS_DIR)
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    verify_ssl: bool = True
    merklized_root_position: MerklizedRootPosition = MerklizedRootPosition.INDEX
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Load settings from environment variables.

        Raises:
            ValueError: If a variable is malformed.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        settings = cls()
        if (value := get("SUPPORTED_ISSUERS")) is not None:
            settings.supported_issuers = parse_mapping(value)
        if (value := get("ISSUERS_BASIC_AUTH")) is not None:
            settings.issuers_basic_auth = parse_mapping(value)
        if (value := get("PROVIDERS_DIR")):
            settings.providers_dir = Path(value)
        if (value := get("HTTP_TIMEOUT")):
            timeout = float(value)
            if timeout <= 0:
                raise ValueError(f"HTTP timeout must be positive: {value!r}")
            settings.http_timeout = timeout
        if (value := get("VERIFY_SSL")):
            settings.verify_ssl = parse_bool(value)
        if (value := get("MERKLIZED_ROOT_POSITION")):
            position = MerklizedRootPosition(value.strip().lower())
            if position == MerklizedRootPosition.NONE:
                raise ValueError("Merklized root position must be 'index' or 'value'")
            settings.merklized_root_position = position
        if (value := get("LOG_LEVEL")):
            settings.log_level = value.strip().upper()
        return settings


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Send vc_refresh logs to stderr through rich."""
    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger("vc_refresh")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
