"""Expose the public utility surface for mailfetch.

What:
  Re-export the structured logger and the raw-message parsing helpers.

Why:
  Centralising exports provides a stable facade so downstream code can perform
  ``from mailfetch import utils`` imports without depending on internal
  filenames.

Interfaces:
  ``JsonLogger``, ``get_logger``, ``parse_message``, ``parse_headers``, and
  ``load_eml``.

Invariants & Safety:
  - The module only re-exports side-effect-free callables to keep import order
    predictable.
  - Logging defaults emit redacted JSON lines; consumers should avoid bypassing
    these helpers.
"""

from .logging import JsonLogger, get_logger
from .mime import load_eml, parse_headers, parse_message

__all__ = [
    "JsonLogger",
    "get_logger",
    "load_eml",
    "parse_headers",
    "parse_message",
]
