"""Structured JSON logging with redaction of message content.

What:
  Offer a tiny facade over Python streams so every mailfetch component can emit
  JSON log lines with consistent fields and automatic removal of message
  content and credentials.

Why:
  The push loop runs unattended for days; operators diagnose it by grepping
  logs. A structured layout keeps parsing trivial while preventing accidental
  leakage of subjects, bodies, or passwords when error sinks report failures.

How:
  Provide a :class:`JsonLogger` dataclass that accepts a target stream and
  enforces uppercase severity levels. ``extra`` dictionaries are copied and
  scrubbed via a recursive redaction helper before being serialised with
  ``json.dump``.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`.

Invariants & Safety:
  - Every payload includes an ISO8601 timestamp, severity, and component name.
  - Sensitive keys are replaced with ``[redacted]`` even inside nested
    dictionaries.
  - Writes are serialised with a lock because the push loop and its heartbeat
    log from different threads.
"""
from __future__ import annotations

import json
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({"subject", "body", "text", "html", "password", "token"})


@dataclass
class JsonLogger:
    """Structured JSON logger with automatic redaction.

    What:
      Encapsulates the logic required to emit single-line JSON log entries that
      include timestamps, severity, a component tag, and optional supplemental
      fields.

    Why:
      Centralising structured logging avoids duplicating the redaction logic and
      guarantees a uniform schema for tests asserting on log output.

    How:
      Stores the destination stream and component label, then exposes helper
      methods (:meth:`log`, :meth:`info`, :meth:`warning`, :meth:`error`) that
      merge a canonical payload with redacted extras before serialising the
      result using :mod:`json`.
    """

    stream: Any = field(default_factory=lambda: sys.stderr)
    component: str = "mailfetch"
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a structured JSON log entry.

        What:
          Serialises ``message`` and ``extra`` metadata to the configured stream
          using the log schema (``ts``, ``lvl``, ``msg``, ``component``).

        How:
          Builds a dictionary with the core fields, merges a redacted copy of
          ``extra`` (if provided), writes a JSON payload, and flushes the
          stream. Values that are not JSON-native are rendered with ``str``.

        Args:
          level: Human-readable severity (e.g., ``"info"`` or ``"error"``).
          message: Core log message.
          extra: Optional context dictionary that will be redacted recursively.
        """

        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        line = json.dumps(payload, separators=(",", ":"), default=str)
        with self._lock:
            self.stream.write(line)
            self.stream.write("\n")
            self.stream.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a ``DEBUG`` entry for state transitions and batch summaries."""

        self.log("DEBUG", message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an informational message with structured context.

        Args:
          message: Human-readable description of the event.
          **kwargs: Structured fields to attach to the log payload.
        """

        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning message while enforcing redaction.

        What:
          Emits a ``WARN`` level entry, used for recoverable conditions such as
          servers without IDLE support.

        Args:
          message: Description of the warning condition.
          **kwargs: Structured metadata describing the context.
        """

        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log an error entry suitable for alerting.

        Args:
          message: Summary of the failure condition.
          **kwargs: Additional fields for troubleshooting.
        """

        self.log("ERROR", message, extra=kwargs)

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        """Remove sensitive keys from a payload recursively.

        What:
          Produces a copy of ``data`` where :data:`SENSITIVE_KEYS` are replaced
          with the ``[redacted]`` sentinel.

        How:
          Walks the dictionary, applying the sentinel to known keys and recursing
          into nested dictionaries to keep the structure intact.

        Args:
          data: Arbitrary metadata to sanitise.

        Returns:
          A copy of ``data`` with sensitive values masked.
        """

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str) -> JsonLogger:
    """Construct a :class:`JsonLogger` for the requested component.

    What:
      Returns a ready-to-use :class:`JsonLogger` bound to ``component`` and
      writing to ``stderr`` so that ``stdout`` stays reserved for CLI output.

    Args:
      component: Logical subsystem name to include in log payloads.

    Returns:
      Configured :class:`JsonLogger` instance.
    """

    return JsonLogger(component=component)
