"""Exception hierarchy for the IMAP adapter layer.

What:
  Name the conditions the push loop and the batch fetcher branch on.

Why:
  ``imapclient`` surfaces most failures as ``imaplib`` errors or raw socket
  errors. The push loop must tell "server has no IDLE" and "folder is gone"
  apart from ordinary transient errors, so the adapter translates those two
  conditions into dedicated types.

Interfaces:
  ``MailFetchError``, ``ConnectionClosedError``, ``FolderClosedError``,
  ``IdleNotSupportedError``.
"""
from __future__ import annotations


class MailFetchError(Exception):
    """Base class for errors raised by the mailfetch IMAP layer."""


class ConnectionClosedError(MailFetchError):
    """Raised when an operation needs a connection that is not open."""


class FolderClosedError(MailFetchError):
    """Raised when the folder was closed, locally or by the server.

    The push loop treats this as a terminal condition rather than an error.
    """


class IdleNotSupportedError(MailFetchError):
    """Raised by the IDLE primitive when the server lacks the capability.

    The push loop falls back to sleeping and polling when it sees this.
    """
