"""Client configuration for WarpMind.

Config discovery (first match wins):
  1. explicit ``path`` argument
  2. ``./warpmind.yaml``
  3. ``~/.config/warpmind/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from warpmind.errors import ConfigurationError

_logger = logging.getLogger(__name__)

_AUTH_TYPES = ("bearer", "api-key")


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ClientConfig:
    """Connection and generation settings shared by every request.

    ``auth_type`` selects how the API key travels: ``"bearer"`` sends an
    ``Authorization: Bearer`` header, ``"api-key"`` sends an ``api-key``
    header (used by school proxy deployments).
    """

    base_url: str = "https://api.openai.com"
    api_key: str = ""
    model: str = "gpt-4o"
    temperature: float = 0.7
    timeout_ms: int = 30000
    max_retries: int = 5
    auth_type: str = "bearer"
    custom_headers: dict[str, str] = field(default_factory=dict)
    embedding_model: str = "text-embedding-3-small"
    tracker_history_limit: int | None = None

    def __post_init__(self) -> None:
        if self.auth_type not in _AUTH_TYPES:
            raise ConfigurationError(
                f"auth_type must be one of {', '.join(_AUTH_TYPES)}, got {self.auth_type!r}"
            )
        if self.timeout_ms <= 0:
            raise ConfigurationError("timeout_ms must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")

    def update(self, **params: Any) -> None:
        """Overlay non-None values; unknown keys raise ``ConfigurationError``."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(params) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration key: {unknown[0]}")
        # Validated on a copy so a rejected update leaves self untouched
        checked = replace(self, **{k: v for k, v in params.items() if v is not None})
        for f in fields(self):
            setattr(self, f.name, getattr(checked, f.name))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./warpmind.yaml"),
    Path.home() / ".config" / "warpmind" / "config.yaml",
]


def _parse_config(raw: dict[str, Any]) -> ClientConfig:
    known = {f.name for f in fields(ClientConfig)}
    values = {k: v for k, v in raw.items() if k in known and v is not None}
    ignored = sorted(set(raw) - known)
    if ignored:
        _logger.warning("Ignoring unknown config keys: %s", ", ".join(ignored))
    return ClientConfig(**values)


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return ClientConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ClientConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    return _parse_config(raw)
