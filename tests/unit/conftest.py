"""Pytest fixtures for unit tests requiring IMAP fakes.

What:
  Ensure ``tests/unit`` is importable and expose an ``imap_client`` fixture
  backed by :class:`FakeImapBackend`.

Why:
  Fetch and push tests drive the real client wrapper and folder handles; only
  the socket-level ``IMAPClient`` is replaced, so no test needs the network.

How:
  Append the unit directory to ``sys.path`` for local imports, monkeypatch
  ``mailfetch.imap.client.IMAPClient`` with a factory returning the shared fake,
  and yield both the connected wrapper and the backend for assertions.

Interfaces:
  :func:`backend`, :func:`imap_client` (pytest fixtures).

Invariants & Safety:
  - Each test receives a fresh backend instance to eliminate state leakage.
"""

import sys
from pathlib import Path

import pytest

from mailfetch.imap.client import ImapConfig, MailFetchImapClient

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import FakeImapBackend


@pytest.fixture
def backend() -> FakeImapBackend:
    """Return a fresh in-memory backend with ``INBOX`` only."""

    return FakeImapBackend()


@pytest.fixture
def imap_client(monkeypatch: pytest.MonkeyPatch, backend: FakeImapBackend):
    """Yield a connected :class:`MailFetchImapClient` over the fake backend.

    What:
      Returns a tuple ``(MailFetchImapClient, FakeImapBackend)``.

    How:
      Replaces the ``IMAPClient`` constructor, builds an :class:`ImapConfig`
      with dummy credentials, and yields the client within its context manager
      so the login/logout flow mirrors production.

    Args:
      monkeypatch: Pytest helper used to replace the IMAP client constructor.
      backend: Fake server shared with the test.
    """

    monkeypatch.setattr(
        "mailfetch.imap.client.IMAPClient",
        lambda host, port=None, ssl=True, timeout=None: backend,
    )
    config = ImapConfig(host="localhost", username="user", password="pass")
    with MailFetchImapClient(config) as client:
        yield client, backend
