"""Facade for the IMAP integration layer.

What:
  Surface the connection wrapper, folder handles, search compilation, the
  batch fetcher, and the push loop.

Why:
  Keeping the import surface minimal prevents call sites from depending on
  internal helper modules, making it easier to evolve the IMAP stack without
  sweeping refactors.

How:
  Re-exports the canonical classes and functions; the batch and push entry
  points stay namespaced as :mod:`.fetch` and :mod:`.idle`.

Interfaces:
  ``ImapConfig``, ``MailFetchImapClient``, ``FolderInfo``, ``Folder``,
  ``MessageHandle``, ``LAST_UID``, ``SearchCriteria``, ``build_search``,
  ``IdleState``, ``IdleSession``, ``idle``, ``idle_async``, and the error types.

Invariants & Safety:
  - Consumers operate in UID mode; sequence numbers are informational only.
  - Folders are opened read-only unless a caller explicitly asks otherwise.
"""

from . import fetch
from .client import FolderInfo, ImapConfig, MailFetchImapClient
from .errors import ConnectionClosedError, FolderClosedError, IdleNotSupportedError, MailFetchError
from .folder import LAST_UID, Folder, MessageHandle
from .idle import IdleSession, IdleState, idle, idle_async
from .search import SearchCriteria, build_search

__all__ = [
    "fetch",
    "FolderInfo",
    "ImapConfig",
    "MailFetchImapClient",
    "ConnectionClosedError",
    "FolderClosedError",
    "IdleNotSupportedError",
    "MailFetchError",
    "LAST_UID",
    "Folder",
    "MessageHandle",
    "IdleSession",
    "IdleState",
    "idle",
    "idle_async",
    "SearchCriteria",
    "build_search",
]
