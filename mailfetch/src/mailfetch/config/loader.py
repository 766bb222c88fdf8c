"""Strict loader for the mailfetch runtime configuration.

What:
  Locate, parse, validate, and cache ``config.yaml``.

Why:
  Configuration lives outside the package and can be malformed. Centralising
  discovery and validation gives every entry point (library callers, the CLI,
  tests) the same precedence rules and the same error messages.

How:
  Resolve candidate file locations from an explicit argument, the
  ``MAILFETCH_CONFIG_PATH`` environment variable, and well-known defaults.
  Parse the first existing file with ``yaml.safe_load``, validate it with the
  Pydantic models in :mod:`.schema`, and memoise the result.

Interfaces:
  - :func:`load_runtime_config` / :func:`get_runtime_config` /
    :func:`reset_runtime_config`: Manage ``config.yaml`` discovery and caching.
  - :func:`parse_runtime_config`: Validate YAML text that did not come from disk.

Invariants:
  - All payloads pass strict Pydantic validation before they are returned.
  - The cache respects explicit reload requests and the precedence order of
    candidate paths.

Safety:
  - File and parse failures are converted into :class:`RuntimeConfigError`
    carrying the offending path.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError as _PydanticValidationError

from .schema import RuntimeConfig


class ConfigLoadError(Exception):
    """Base error for configuration parsing or validation failures.

    What:
      Represent fatal issues encountered while reading or validating
      configuration documents.

    Why:
      Grouping failures under a single type allows callers to handle user input
      mistakes separately from infrastructure errors such as IMAP connectivity
      problems.
    """


class RuntimeConfigError(ConfigLoadError):
    """Error raised when ``config.yaml`` cannot be located, read, or validated."""


CONFIG_ENV = "MAILFETCH_CONFIG_PATH"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (
    Path("config.yaml"),
    Path("~/.config/mailfetch/config.yaml"),
    Path("/etc/mailfetch/config.yaml"),
)
_RUNTIME_CACHE: Optional[Tuple[Path, RuntimeConfig]] = None


def _candidate_paths(path: Optional[Path]) -> Iterable[Path]:
    """Yield configuration file locations in priority order.

    What:
      Produce the ordered, deduplicated list of paths that should be inspected
      for ``config.yaml``.

    How:
      Check the explicit argument, the ``MAILFETCH_CONFIG_PATH`` environment
      variable, and the default locations, expanding ``~`` on each.

    Args:
      path: Explicit path requested by the caller, or ``None`` to rely on
        environment/defaults.

    Yields:
      Candidate paths ordered from most specific to least specific.
    """

    seen: set[Path] = set()
    candidates = []
    if path is not None:
        candidates.append(path)
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        candidates.append(Path(env_path))
    candidates.extend(_DEFAULT_LOCATIONS)
    for raw in candidates:
        candidate = raw.expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def _parse_config_payload(text: str, source: str) -> dict[str, Any]:
    """Parse ``config.yaml`` text into a mapping ready for validation.

    Raises:
      RuntimeConfigError: If the text is not valid YAML or is not a mapping.
    """

    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise RuntimeConfigError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise RuntimeConfigError(f"{source} must contain a mapping at the top-level")
    return payload


def parse_runtime_config(text: str, source: str = "<string>") -> RuntimeConfig:
    """Validate YAML ``text`` into a :class:`RuntimeConfig`.

    Args:
      text: Raw configuration contents.
      source: Label used in error messages.

    Returns:
      The validated configuration.

    Raises:
      RuntimeConfigError: If parsing or validation fails.
    """

    payload = _parse_config_payload(text, source)
    try:
        return RuntimeConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise RuntimeConfigError(f"Invalid configuration in {source}: {exc}") from exc


def _load_runtime_from_path(path: Path) -> RuntimeConfig:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise RuntimeConfigError(f"Configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise RuntimeConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    return parse_runtime_config(text, str(path))


def load_runtime_config(
    path: Optional[Path | str] = None,
    *,
    reload: bool = False,
) -> RuntimeConfig:
    """Resolve, parse, and cache the runtime configuration.

    What:
      Locate ``config.yaml`` using the precedence chain, parse it, and return
      a validated :class:`RuntimeConfig`.

    Why:
      The CLI and long-running watchers read settings repeatedly; caching
      avoids repeated disk IO while ``reload`` allows deterministic refreshes
      during tests.

    How:
      Consult the cache unless ``reload`` is requested or a different explicit
      path is asked for, then try candidate paths in order and cache the first
      one that exists. An explicit path must exist; it never falls back to the
      environment or the defaults.

    Args:
      path: Optional explicit location of ``config.yaml``.
      reload: When ``True`` forces a fresh load bypassing the cache.

    Returns:
      The validated runtime configuration.

    Raises:
      RuntimeConfigError: If no configuration file can be located or validated.
    """

    global _RUNTIME_CACHE

    requested_path = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _RUNTIME_CACHE is not None:
        cached_path, cached_config = _RUNTIME_CACHE
        if requested_path is None or cached_path == requested_path:
            return cached_config

    if requested_path is not None and not requested_path.exists():
        raise RuntimeConfigError(f"Configuration file missing: {requested_path}")

    searched: list[str] = []
    for candidate in _candidate_paths(requested_path):
        if not candidate.exists():
            searched.append(str(candidate))
            continue
        config = _load_runtime_from_path(candidate)
        _RUNTIME_CACHE = (candidate, config)
        return config

    listing = ", ".join(searched) if searched else "<none>"
    raise RuntimeConfigError(f"Unable to locate config.yaml (searched: {listing})")


def get_runtime_config() -> RuntimeConfig:
    """Return the cached runtime configuration, loading it on demand."""

    return load_runtime_config()


def reset_runtime_config() -> None:
    """Clear the runtime configuration cache (used by tests)."""

    global _RUNTIME_CACHE
    _RUNTIME_CACHE = None
