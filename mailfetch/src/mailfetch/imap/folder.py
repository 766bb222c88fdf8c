"""Selected-folder handle and lazily-populated message handles.

What:
  :class:`Folder` wraps one selected mailbox on a
  :class:`~mailfetch.imap.client.MailFetchImapClient` connection: listing,
  searching, UID lookups, bulk prefetch, new-message listeners, and the IDLE
  wait primitive. :class:`MessageHandle` is one message in that folder whose
  attributes are fetched once and cached.

Why:
  The batch fetcher needs one round trip for a whole result set, while the
  push loop needs to block in IDLE on one thread and still allow a heartbeat
  NOOP from another. Both depend on the same bookkeeping (highest UID seen,
  open/closed state, transport aborts), so it lives in one place.

How:
  Every IMAP command runs under the connection's re-entrant lock. New mail is
  detected from untagged ``EXISTS`` responses and resolved by searching
  ``UID <highest+1>:*``, so a message is handed to listeners at most once per
  folder handle. The IDLE wait polls ``idle_check`` in short slices so that a
  cancellation event or a heartbeat request ends it promptly.

Interfaces:
  :data:`LAST_UID`, :class:`Folder`, :class:`MessageHandle`.

Invariants & Safety:
  - ``close`` is idempotent and never expunges unless asked to.
  - A transport abort marks the connection broken and surfaces as
    :class:`~mailfetch.imap.errors.FolderClosedError`.
"""
from __future__ import annotations

import imaplib
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..utils.mime import parse_headers, parse_message
from .errors import FolderClosedError, IdleNotSupportedError, MailFetchError

if TYPE_CHECKING:  # pragma: no cover
    from .client import MailFetchImapClient


LAST_UID = None
"""Upper bound for :meth:`Folder.get_messages_by_uid_range` meaning "newest"."""

MessageListener = Callable[[List["MessageHandle"]], None]

_RESPONSE_KEYS = {
    "BODY.PEEK[]": b"BODY[]",
    "BODY[]": b"BODY[]",
    "BODY.PEEK[HEADER]": b"BODY[HEADER]",
    "BODY[HEADER]": b"BODY[HEADER]",
}


def response_key(item: str) -> bytes:
    """Return the key under which ``imapclient`` reports fetch ``item``."""

    return _RESPONSE_KEYS.get(item.upper(), item.upper().encode("ascii"))


class MessageHandle:
    """One message of an open :class:`Folder`.

    Attributes are read from ``data`` (the ``imapclient`` fetch response for
    this UID); anything missing is fetched from the server on first access.
    """

    def __init__(self, folder: "Folder", uid: int, data: Optional[Dict[bytes, Any]] = None):
        self.folder = folder
        self.uid = uid
        self.data: Dict[bytes, Any] = dict(data or {})
        self._message: Any = None
        self._headers: Any = None

    def __repr__(self) -> str:
        return f"MessageHandle(folder={self.folder.name!r}, uid={self.uid})"

    def has(self, item: str) -> bool:
        return response_key(item) in self.data

    def absorb(self, data: Dict[bytes, Any]) -> None:
        """Merge a fetch response into the cached attributes."""

        self.data.update(data)

    def _item(self, item: str) -> Any:
        key = response_key(item)
        if key not in self.data:
            self.folder.prefetch([self], [item])
        return self.data.get(key)

    @property
    def sequence_number(self) -> int:
        seq = self.data.get(b"SEQ")
        if seq is None:
            self._item("FLAGS")
            seq = self.data.get(b"SEQ", 0)
        return int(seq)

    @property
    def envelope(self) -> Any:
        return self._item("ENVELOPE")

    @property
    def flags(self) -> Sequence[Any]:
        return self._item("FLAGS") or ()

    @property
    def internal_date(self) -> Any:
        return self._item("INTERNALDATE")

    @property
    def size(self) -> Optional[int]:
        return self._item("RFC822.SIZE")

    def raw(self) -> bytes:
        """Return the full RFC 822 source, fetching it with ``BODY.PEEK[]``."""

        data = self._item("BODY.PEEK[]")
        if data is None:
            raise MailFetchError(f"message UID {self.uid} is no longer available")
        return data

    def message(self) -> Any:
        """Return the parsed message, parsing the source once."""

        if self._message is None:
            self._message = parse_message(self.raw())
        return self._message

    def header_message(self) -> Any:
        """Return a message exposing at least the headers.

        The full message is reused when its source is already loaded;
        otherwise only the header block is fetched and parsed.
        """

        if self._message is not None or b"BODY[]" in self.data:
            return self.message()
        if self._headers is None:
            data = self._item("BODY.PEEK[HEADER]")
            if data is None:
                raise MailFetchError(f"message UID {self.uid} is no longer available")
            self._headers = parse_headers(data)
        return self._headers


class Folder:
    """A selected IMAP folder.

    What:
      Exposes the read operations the fetcher and the push loop need on one
      mailbox, plus the listener registry for newly arrived messages.

    How:
      Commands share ``connection.lock`` so the IDLE wait and the heartbeat
      NOOP never interleave on the socket. ``_highest_uid`` is the largest
      UID already known to the handle and bounds new-mail detection.
    """

    def __init__(
        self,
        connection: "MailFetchImapClient",
        name: str,
        *,
        readonly: bool = True,
        wait_slice: float = 1.0,
    ):
        self.connection = connection
        self.name = name
        self.readonly = readonly
        self.wait_slice = wait_slice
        self._lock = connection.lock
        self._open = False
        self._exists = 0
        self._highest_uid = 0
        self._listeners: List[MessageListener] = []
        self._listeners_lock = threading.Lock()
        self._wake = threading.Event()
        self._ready = threading.Event()
        self._ready.set()

    def __repr__(self) -> str:
        return f"Folder({self.name!r}, open={self._open})"

    @property
    def _client(self) -> Any:
        return self.connection.client

    def is_open(self) -> bool:
        return self._open

    @property
    def exists(self) -> int:
        """Message count last reported by the server."""

        return self._exists

    @property
    def highest_uid(self) -> int:
        return self._highest_uid

    def open(self) -> "Folder":
        """Select the folder (``EXAMINE`` when read-only)."""

        with self._lock:
            info = self._guard(lambda: self._client.select_folder(self.name, readonly=self.readonly))
            self.connection._set_selected(self)
            self._open = True
            self._wake.clear()
            self._exists = int(info.get(b"EXISTS", 0))
            uid_next = info.get(b"UIDNEXT")
            if uid_next is not None:
                self._highest_uid = int(uid_next) - 1
            else:
                uids = self._guard(lambda: self._client.search(["ALL"]))
                self._highest_uid = max(uids) if uids else 0
        return self

    def mark_closed(self) -> None:
        """Mark the handle closed without talking to the server."""

        self._open = False
        self._wake.set()

    def close(self, expunge: bool = False) -> None:
        """Close the folder. Calling it again is a no-op.

        With ``expunge`` the folder is closed with ``CLOSE`` (which expunges
        on read-write folders). Otherwise the folder is released without
        expunging: ``CLOSE`` on read-only folders, ``UNSELECT`` when the server
        supports it, or a read-only re-select followed by ``CLOSE``.
        """

        if not self._open:
            return
        try:
            if not self.connection.is_connected():
                return
            with self._lock:
                client = self._client
                if expunge or self.readonly:
                    self._guard(client.close_folder)
                elif client.has_capability("UNSELECT"):
                    self._guard(client.unselect_folder)
                else:
                    self._guard(lambda: client.select_folder(self.name, readonly=True))
                    self._guard(client.close_folder)
        finally:
            self._open = False
            self.connection._release_selected(self)

    def _require_open(self) -> None:
        if not self._open:
            raise FolderClosedError(f"folder {self.name!r} is not open")

    def _guard(self, command: Callable[[], Any]) -> Any:
        try:
            return command()
        except imaplib.IMAP4.abort as exc:
            self.connection.mark_broken()
            self._open = False
            raise FolderClosedError(str(exc) or "connection aborted") from exc
        except OSError:
            self.connection.mark_broken()
            self._open = False
            raise

    def _handles(self, uids: Iterable[int]) -> List[MessageHandle]:
        return [MessageHandle(self, int(uid)) for uid in uids]

    def list_messages(self) -> List[MessageHandle]:
        """Return handles for every message in the folder, oldest first."""

        self._require_open()
        with self._lock:
            uids = self._guard(lambda: self._client.search(["ALL"]))
        return self._handles(sorted(uids))

    def search(self, criteria: Sequence[Any]) -> List[MessageHandle]:
        """Run a compiled ``SEARCH`` and return matching handles, oldest first.

        Args:
          criteria: Criteria list as produced by
            :func:`mailfetch.imap.search.build_search`.
        """

        self._require_open()
        with self._lock:
            uids = self._guard(lambda: self._client.search(list(criteria)))
        return self._handles(sorted(uids))

    def get_message_by_uid(self, uid: int) -> Optional[MessageHandle]:
        """Return the handle for ``uid`` or ``None`` when no such message exists."""

        self._require_open()
        with self._lock:
            response = self._guard(lambda: self._client.fetch([int(uid)], ["FLAGS"]))
        data = response.get(int(uid))
        if data is None:
            return None
        return MessageHandle(self, int(uid), data)

    def get_messages_by_uid_range(self, start: int, end: Optional[int] = LAST_UID) -> List[MessageHandle]:
        """Return handles with ``start <= uid <= end`` (``end=LAST_UID``: newest)."""

        self._require_open()
        upper = "*" if end is None else str(int(end))
        with self._lock:
            uids = self._guard(lambda: self._client.search(["UID", f"{int(start)}:{upper}"]))
        # ``n:*`` always matches the newest message, even when its UID is below n.
        selected = [uid for uid in uids if uid >= start and (end is None or uid <= end)]
        return self._handles(sorted(selected))

    def get_uid(self, handle: MessageHandle) -> int:
        if handle.folder is not self:
            raise MailFetchError("message handle belongs to another folder")
        return handle.uid

    def prefetch(self, handles: Sequence[MessageHandle], items: Sequence[str]) -> None:
        """Fetch ``items`` for all ``handles`` in a single ``FETCH`` command."""

        if not handles:
            return
        self._require_open()
        by_uid = {handle.uid: handle for handle in handles}
        with self._lock:
            response = self._guard(lambda: self._client.fetch(sorted(by_uid), list(items)))
        for uid, data in response.items():
            handle = by_uid.get(uid)
            if handle is not None:
                handle.absorb(data)

    def add_message_listener(self, listener: MessageListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listeners(self) -> List[MessageListener]:
        with self._listeners_lock:
            return list(self._listeners)

    def supports_idle(self) -> bool:
        with self._lock:
            return bool(self._guard(lambda: self._client.has_capability("IDLE")))

    def wait_for_push(self, timeout: Optional[float] = None, cancel: Optional[threading.Event] = None) -> List[Any]:
        """Block in ``IDLE`` until the server pushes something.

        What:
          Enters IDLE, waits for the first untagged response, the timeout,
          cancellation, or a :meth:`keepalive` request, then leaves IDLE and
          dispatches newly arrived messages to the listeners.

        How:
          ``idle_check`` is polled in ``wait_slice`` increments while holding
          the command lock; responses collected during IDLE and those returned
          by ``DONE`` are processed together.

        Args:
          timeout: Maximum seconds to stay in IDLE; ``None`` waits until woken.
          cancel: Event that ends the wait when set.

        Returns:
          The untagged responses received.

        Raises:
          IdleNotSupportedError: The server does not advertise ``IDLE``.
          FolderClosedError: The folder is closed or the connection aborted.
        """

        self._require_open()
        if not self.supports_idle():
            raise IdleNotSupportedError(f"server does not support IDLE on {self.name!r}")
        deadline = None if timeout is None else time.monotonic() + timeout
        # Let a pending keepalive take the lock before entering IDLE again.
        while not self._ready.wait(self.wait_slice):
            if cancel is not None and cancel.is_set():
                return []
        responses: List[Any] = []
        with self._lock:
            self._require_open()
            client = self._client
            self._guard(client.idle)
            try:
                while not self._wake.is_set() and not (cancel is not None and cancel.is_set()):
                    window = self.wait_slice
                    if deadline is not None:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            break
                        window = min(window, remaining)
                    batch = self._guard(lambda: client.idle_check(timeout=window))
                    if batch:
                        responses.extend(batch)
                        break
            except BaseException:
                # Leave IDLE best-effort; the wait error is the one raised.
                if self.connection.is_connected():
                    try:
                        self._guard(client.idle_done)
                    except (imaplib.IMAP4.error, OSError, FolderClosedError):
                        pass
                raise
            if self.connection.is_connected():
                _text, trailing = self._guard(client.idle_done)
                responses.extend(trailing or ())
            self._process(responses)
        return responses

    def check_messages(self) -> int:
        """Poll with ``NOOP``, dispatch new messages, return the message count."""

        self._require_open()
        with self._lock:
            _text, responses = self._guard(self._client.noop)
            self._process(responses)
        return self._exists

    def keepalive(self) -> None:
        """Interrupt a blocked :meth:`wait_for_push` and send ``NOOP``.

        Called from the heartbeat thread; the NOOP runs once the waiting
        thread has left IDLE and released the lock.
        """

        self._ready.clear()
        self._wake.set()
        try:
            with self._lock:
                if self._open and self.connection.is_connected():
                    _text, responses = self._guard(self._client.noop)
                    self._process(responses)
        finally:
            self._wake.clear()
            self._ready.set()

    def _process(self, responses: Iterable[Any]) -> None:
        arrived = False
        for response in responses or ():
            if not isinstance(response, tuple) or len(response) < 2:
                continue
            count, kind = response[0], response[1]
            if kind == b"EXISTS":
                arrived = arrived or int(count) > 0
                self._exists = int(count)
            elif kind == b"EXPUNGE":
                self._exists = max(0, self._exists - 1)
        if arrived and self._open:
            self._dispatch_new()

    def _dispatch_new(self) -> None:
        floor = self._highest_uid + 1
        uids = self._guard(lambda: self._client.search(["UID", f"{floor}:*"]))
        fresh = sorted(uid for uid in uids if uid >= floor)
        if not fresh:
            return
        self._highest_uid = fresh[-1]
        handles = self._handles(fresh)
        for listener in self.listeners:
            listener(handles)
