"""
Module: tests/unit/test_logging.py

What:
    Check the JSON log layout and the redaction of message content.

Why:
    Error sinks receive exceptions and context from the push loop; a subject
    or a password must never reach the log stream.
"""

import io
import json

from mailfetch.utils.logging import REDACTED, JsonLogger, get_logger


def test_log_line_layout_and_redaction():
    stream = io.StringIO()
    logger = JsonLogger(stream=stream, component="mailfetch.test")

    logger.error("idle loop error", folder="INBOX", subject="Salary", context={"password": "x", "uid": 4})

    payload = json.loads(stream.getvalue())
    assert payload["lvl"] == "ERROR"
    assert payload["msg"] == "idle loop error"
    assert payload["component"] == "mailfetch.test"
    assert payload["folder"] == "INBOX"
    assert payload["subject"] == REDACTED
    assert payload["context"] == {"password": REDACTED, "uid": 4}
    assert "ts" in payload


def test_get_logger_writes_one_line_per_entry(capsys):
    logger = get_logger("mailfetch.cli")

    logger.info("watch_started", folder="INBOX")
    logger.warning("no idle", folder="INBOX")

    lines = capsys.readouterr().err.splitlines()
    assert [json.loads(line)["lvl"] for line in lines] == ["INFO", "WARN"]
