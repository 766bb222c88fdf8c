"""mailfetch configuration package.

What:
  Provide a single import surface for loading and validating ``config.yaml``.

Why:
  Centralising the exports shields callers from the internal layout and makes
  sure they always go through schema validation before touching settings.

How:
  Re-export the loader helpers, their error types, and the Pydantic models.

Interfaces:
  - get_runtime_config / load_runtime_config / reset_runtime_config /
    parse_runtime_config: Resolve and validate ``config.yaml``.
  - ConfigLoadError / RuntimeConfigError: Failure types carrying the source.
  - RuntimeConfig / ImapSettings / FetchSettings / IdleSettings: Schema models.
"""

from .loader import (
    CONFIG_ENV,
    ConfigLoadError,
    RuntimeConfigError,
    get_runtime_config,
    load_runtime_config,
    parse_runtime_config,
    reset_runtime_config,
)
from .schema import FetchSettings, IdleSettings, ImapSettings, RuntimeConfig, ValidationError

__all__ = [
    "CONFIG_ENV",
    "ConfigLoadError",
    "RuntimeConfigError",
    "get_runtime_config",
    "load_runtime_config",
    "parse_runtime_config",
    "reset_runtime_config",
    "FetchSettings",
    "IdleSettings",
    "ImapSettings",
    "RuntimeConfig",
    "ValidationError",
]
