"""Read-only IMAP connection wrapper around ``imapclient``.

What:
  Wrap the third-party ``imapclient`` library with connection defaults
  (TLS, STARTTLS, XOAUTH2, socket timeout), folder opening, folder enumeration,
  and message counts.

Why:
  Direct use of ``imapclient`` exposes sharp edges: opening a second folder
  silently deselects the first, a dropped socket leaves the object looking
  usable, and the IDLE worker and its heartbeat share the same socket. A single
  wrapper owning the connection state and the command lock keeps every caller
  consistent.

How:
  :class:`ImapConfig` captures connection parameters. :class:`MailFetchImapClient`
  connects in :meth:`~MailFetchImapClient.connect` (or ``__enter__``), tracks
  whether the socket was observed broken, hands out
  :class:`~mailfetch.imap.folder.Folder` handles, and serialises commands with
  a re-entrant lock shared by those folders.

Interfaces:
  :class:`ImapConfig`, :class:`FolderInfo`, :class:`MailFetchImapClient`
  (``connect``, ``is_connected``, ``disconnect``, ``open_folder``,
  ``list_folders``, ``message_count``, ``unread_count``).

Invariants & Safety:
  - At most one folder is selected at a time; opening another folder marks the
    previous handle closed.
  - No method issues a mutating IMAP command; folders are opened read-only
    unless a caller explicitly asks otherwise.
"""
from __future__ import annotations

import imaplib
import os
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional

from .errors import ConnectionClosedError

try:  # pragma: no cover - optional dependency
    from imapclient import IMAPClient
except ImportError:  # pragma: no cover - fallback for test environment
    IMAPClient = None  # type: ignore[assignment]

if TYPE_CHECKING:  # pragma: no cover
    from ..config.schema import ImapSettings
    from .folder import Folder


# ``imapclient`` raises the ``imaplib`` exception classes (its
# ``IMAPClientError``/``IMAPClientAbortError`` are aliases of these).
TRANSPORT_ERRORS = (imaplib.IMAP4.error, OSError)


@dataclass
class ImapConfig:
    """Connection parameters for an IMAP server.

    What:
      Host, credentials, and transport options needed to open a session.

    Why:
      A typed configuration object makes explicit which fields are optional
      and lets defaults depend on each other (the port follows ``ssl``).

    How:
      :meth:`__post_init__` fills ``port`` from ``ssl`` when unset.
      :meth:`from_settings` builds an instance from the validated runtime
      configuration, resolving ``password_env`` from the environment.

    Attributes:
      host: IMAP hostname.
      username: Login name.
      password: Password or app-specific token.
      port: IMAP port (993 with TLS, 143 otherwise).
      ssl: Whether to use implicit TLS.
      starttls: Upgrade a plain connection with STARTTLS (ignored with ``ssl``).
      oauth2_token: When set, authenticate with XOAUTH2 instead of a password.
      timeout: Socket timeout in seconds for connect and reads.
      folder: Default folder for CLI commands.
    """

    host: str
    username: str
    password: Optional[str] = None
    port: Optional[int] = None
    ssl: bool = True
    starttls: bool = False
    oauth2_token: Optional[str] = None
    timeout: Optional[float] = 30.0
    folder: str = "INBOX"

    def __post_init__(self) -> None:
        if self.port is None:
            self.port = 993 if self.ssl else 143

    @classmethod
    def from_settings(cls, settings: "ImapSettings") -> "ImapConfig":
        """Create an :class:`ImapConfig` from validated ``imap`` settings.

        Args:
          settings: The ``imap`` section of the runtime configuration.

        Returns:
          A populated configuration object.
        """

        password = settings.password
        if password is None and settings.password_env:
            password = os.environ.get(settings.password_env)
        return cls(
            host=settings.host,
            username=settings.username,
            password=password,
            port=settings.port,
            ssl=settings.ssl,
            starttls=settings.starttls,
            oauth2_token=settings.oauth2_token,
            timeout=settings.timeout,
            folder=settings.folder,
        )


@dataclass(frozen=True)
class FolderInfo:
    """Summary of one server folder as returned by :meth:`list_folders`.

    Attributes:
      name: Last path segment of the folder.
      full_name: Full folder path as the server names it.
      kind: ``"holds-messages"``, ``"holds-folders"``, or ``"holds-both"``.
      message_count: Number of messages, ``-1`` when unavailable.
      unread_count: Number of unseen messages, ``-1`` when unavailable.
    """

    name: str
    full_name: str
    kind: str
    message_count: int
    unread_count: int


def _text(value: Any) -> str:
    return value.decode("utf-8", "replace") if isinstance(value, bytes) else str(value)


class MailFetchImapClient:
    """Context manager owning one ``imapclient.IMAPClient`` connection.

    What:
      Connects, authenticates, opens folders, and reports liveness for the
      fetch and IDLE layers.

    Why:
      The batch fetcher and the push loop need the same connection semantics;
      centralising them avoids each caller re-implementing login variants and
      broken-socket detection.

    How:
      Lazily connects in :meth:`connect` (also invoked by ``__enter__``).
      Folders report transport aborts back through :meth:`mark_broken`, after
      which :meth:`is_connected` is ``False`` and :meth:`disconnect` skips the
      ``LOGOUT`` round trip.
    """

    def __init__(self, config: ImapConfig):
        """Store the configuration without touching the network.

        Args:
          config: Fully-populated IMAP configuration dataclass.
        """

        self._config = config
        self._client: Optional[IMAPClient] = None
        self._broken = False
        self._selected: Optional["Folder"] = None
        self.lock = threading.RLock()

    def __enter__(self) -> "MailFetchImapClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @property
    def config(self) -> ImapConfig:
        """Return the :class:`ImapConfig` used to initialise the client."""

        return self._config

    @property
    def client(self) -> IMAPClient:
        """Expose the underlying ``IMAPClient`` connection.

        Raises:
          ConnectionClosedError: If accessed before :meth:`connect` or after
            :meth:`disconnect`.
        """

        if self._client is None:
            raise ConnectionClosedError("IMAP client not connected")
        return self._client

    def connect(self) -> "MailFetchImapClient":
        """Open the connection and authenticate.

        What:
          Creates the ``IMAPClient``, upgrades with STARTTLS when requested,
          and logs in with XOAUTH2 or a password.

        How:
          A failed login shuts the socket down before the error propagates so
          no half-open session is left behind.

        Returns:
          ``self`` for chaining.

        Raises:
          RuntimeError: When ``imapclient`` is not installed.
          imaplib.IMAP4.error: When authentication fails.
        """

        if IMAPClient is None:
            raise RuntimeError("imapclient dependency is not available")
        if self._client is not None:
            return self
        config = self._config
        client = IMAPClient(config.host, port=config.port, ssl=config.ssl, timeout=config.timeout)
        try:
            if config.starttls and not config.ssl:
                client.starttls()
            if config.oauth2_token:
                client.oauth2_login(config.username, config.oauth2_token)
            else:
                client.login(config.username, config.password or "")
        except BaseException:
            client.shutdown()
            raise
        self._client = client
        self._broken = False
        return self

    def is_connected(self) -> bool:
        """Return ``True`` while the session is open and not known broken."""

        return self._client is not None and not self._broken

    def mark_broken(self) -> None:
        """Record that the socket failed; later commands must not use it."""

        self._broken = True
        if self._selected is not None:
            self._selected.mark_closed()

    def disconnect(self) -> None:
        """Log out and release the socket. Safe on closed connections.

        What:
          Sends ``LOGOUT`` on a healthy session, or just shuts the socket down
          when the connection was already observed broken.
        """

        if self._client is None:
            return
        client = self._client
        try:
            if self._selected is not None:
                self._selected.mark_closed()
            if self._broken:
                client.shutdown()
            else:
                with self.lock:
                    client.logout()
        finally:
            self._client = None
            self._selected = None

    def open_folder(self, name: str, *, readonly: bool = True, wait_slice: float = 1.0) -> "Folder":
        """Select ``name`` and return a :class:`~mailfetch.imap.folder.Folder`.

        Args:
          name: Folder name as known to the server.
          readonly: Open with ``EXAMINE`` (default) instead of ``SELECT``.
          wait_slice: Granularity, in seconds, at which a blocked IDLE wait
            re-checks cancellation and heartbeat requests.

        Returns:
          The opened folder handle.
        """

        from .folder import Folder

        folder = Folder(self, name, readonly=readonly, wait_slice=wait_slice)
        folder.open()
        return folder

    def _set_selected(self, folder: Optional["Folder"]) -> None:
        previous = self._selected
        if previous is not None and previous is not folder:
            previous.mark_closed()
        self._selected = folder

    def _release_selected(self, folder: "Folder") -> None:
        if self._selected is folder:
            self._selected = None

    def list_folders(self) -> List[FolderInfo]:
        """Enumerate server folders with message and unread counts.

        What:
          Issues ``LIST`` and one ``STATUS`` per selectable folder.

        How:
          ``\\Noselect`` folders only hold other folders; ``\\HasNoChildren``
          folders only hold messages. Count failures degrade to ``-1``.

        Returns:
          One :class:`FolderInfo` per folder in server order.
        """

        infos: List[FolderInfo] = []
        with self.lock:
            listing = self.client.list_folders()
            for flags, delimiter, name in listing:
                full_name = _text(name)
                separator = _text(delimiter) if delimiter else ""
                short_name = full_name.rsplit(separator, 1)[-1] if separator else full_name
                flag_names = {_text(flag).lower() for flag in flags or ()}
                selectable = "\\noselect" not in flag_names and "\\nonexistent" not in flag_names
                if not selectable:
                    kind = "holds-folders"
                elif "\\hasnochildren" in flag_names:
                    kind = "holds-messages"
                else:
                    kind = "holds-both"
                messages, unseen = -1, -1
                if selectable:
                    try:
                        status = self.client.folder_status(full_name, [b"MESSAGES", b"UNSEEN"])
                    except TRANSPORT_ERRORS:
                        status = {}
                    messages = int(status.get(b"MESSAGES", -1))
                    unseen = int(status.get(b"UNSEEN", -1))
                infos.append(
                    FolderInfo(
                        name=short_name,
                        full_name=full_name,
                        kind=kind,
                        message_count=messages,
                        unread_count=unseen,
                    )
                )
        return infos

    def _status(self, name: str, item: bytes) -> int:
        with self.lock:
            status = self.client.folder_status(name, [item])
        return int(status[item])

    def message_count(self, name: str) -> int:
        """Return the number of messages in folder ``name``."""

        return self._status(name, b"MESSAGES")

    def unread_count(self, name: str) -> int:
        """Return the number of unseen messages in folder ``name``."""

        return self._status(name, b"UNSEEN")
