"""In-memory IMAP backend used by unit tests.

What:
  Provide a drop-in replacement for :class:`imapclient.IMAPClient` that stores
  messages in Python data structures while exposing the subset of the IMAP API
  that mailfetch relies on (select/search/fetch, IDLE, NOOP, LIST, STATUS).

Why:
  Unit tests must exercise fetch and push workflows without contacting real
  servers. The fake backend keeps behaviour deterministic and lets tests script
  exactly what the "server" pushes during IDLE.

How:
  Maintain per-mailbox dictionaries of :class:`_StoredMessage` entries keyed by
  UID. ``ENVELOPE`` responses are built from the stored bytes with the same
  field layout as ``imapclient.response_types.Envelope``. ``idle_check`` and
  ``noop`` pop scripted steps from :attr:`idle_script` / :attr:`noop_script`.

Interfaces:
  :class:`FakeImapBackend`, :func:`build_message`, ``Envelope``, ``Address``.

Invariants & Safety:
  - UIDs increment monotonically per backend instance.
  - ``UID n:*`` searches always include the newest message, as real servers do.
  - Methods avoid network calls and operate solely on in-memory data.
"""

from __future__ import annotations

import imaplib
import threading
import time
from collections import deque, namedtuple
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import format_datetime, getaddresses, parsedate_to_datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Tuple, Union

# Field layout of ``imapclient.response_types``.
Envelope = namedtuple(
    "Envelope",
    "date subject from_ sender reply_to to cc bcc in_reply_to message_id",
)
Address = namedtuple("Address", "name route mailbox host")

ScriptStep = Union[List[Any], BaseException, Callable[[], List[Any]]]


def build_message(
    subject: str = "Hello",
    sender: str = "Alice Example <alice@example.com>",
    to: Optional[str] = "bob@example.com",
    text: Optional[str] = "plain body",
    html: Optional[str] = None,
    attachments: Sequence[Tuple[str, str, bytes]] = (),
    message_id: Optional[str] = None,
    date: Optional[datetime] = None,
    headers: Sequence[Tuple[str, str]] = (),
) -> bytes:
    """Build RFC822 bytes with the ``email`` package.

    ``attachments`` entries are ``(filename, "maintype/subtype", data)``.
    """

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    if to is not None:
        message["To"] = to
    message["Date"] = format_datetime(date or datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc))
    message["Message-ID"] = message_id or "<msg@example.com>"
    for name, value in headers:
        message[name] = value
    if text is not None:
        message.set_content(text)
    if html is not None:
        if text is not None:
            message.add_alternative(html, subtype="html")
        else:
            message.set_content(html, subtype="html")
    for filename, content_type, data in attachments:
        maintype, subtype = content_type.split("/", 1)
        message.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)
    return message.as_bytes()


def _addresses(message: EmailMessage, name: str) -> Optional[Tuple[Address, ...]]:
    values = message.get_all(name)
    if not values:
        return None
    result = []
    for display, address in getaddresses([str(value) for value in values]):
        mailbox, _, host = address.partition("@")
        result.append(
            Address(
                name=display.encode("utf-8") if display else None,
                route=None,
                mailbox=mailbox.encode("utf-8"),
                host=host.encode("utf-8") if host else None,
            )
        )
    return tuple(result)


@dataclass
class _StoredMessage:
    """Internal representation of a stored message."""

    uid: int
    message_bytes: bytes
    flags: Tuple[bytes, ...] = ()
    internaldate: datetime = field(default_factory=lambda: datetime(2024, 5, 1, 9, 31, tzinfo=timezone.utc))

    @property
    def parsed(self) -> EmailMessage:
        return BytesParser(policy=policy.default).parsebytes(self.message_bytes)

    @property
    def header_bytes(self) -> bytes:
        head, _, _ = self.message_bytes.partition(b"\n\n")
        if b"\r\n\r\n" in self.message_bytes:
            head, _, _ = self.message_bytes.partition(b"\r\n\r\n")
        return head + b"\r\n\r\n"

    def envelope(self) -> Envelope:
        message = self.parsed
        date_header = message.get("Date")
        subject = message.get("Subject")
        message_id = message.get("Message-ID")
        return Envelope(
            date=parsedate_to_datetime(str(date_header)) if date_header else None,
            subject=_raw_header(self.message_bytes, "Subject") if subject is not None else None,
            from_=_addresses(message, "From"),
            sender=_addresses(message, "Sender") or _addresses(message, "From"),
            reply_to=_addresses(message, "Reply-To") or _addresses(message, "From"),
            to=_addresses(message, "To"),
            cc=_addresses(message, "Cc"),
            bcc=_addresses(message, "Bcc"),
            in_reply_to=None,
            message_id=str(message_id).encode("utf-8") if message_id else None,
        )


def _raw_header(message_bytes: bytes, name: str) -> Optional[bytes]:
    """Return the undecoded header value, as a server puts it in ENVELOPE."""

    prefix = name.lower().encode("ascii") + b":"
    lines = message_bytes.replace(b"\r\n", b"\n").split(b"\n")
    for index, line in enumerate(lines):
        if not line:
            break
        if line.lower().startswith(prefix):
            value = [line[len(prefix):].strip()]
            for continuation in lines[index + 1:]:
                if continuation[:1] in (b" ", b"\t"):
                    value.append(continuation.strip())
                else:
                    break
            return b" ".join(value)
    return None


class FakeImapBackend:
    """Minimal IMAP backend satisfying the subset mailfetch relies upon.

    What:
      Emulate enough of :class:`imapclient.IMAPClient` for the client wrapper,
      the batch fetcher, and the push loop.

    How:
      Stores messages per mailbox, records every command in :attr:`calls`, and
      replays scripted steps for IDLE and NOOP. Each script step is a list of
      untagged responses, an exception to raise, or a callable returning the
      responses (typically one that delivers a message first).
    """

    use_uid = True

    def __init__(self, capabilities: Iterable[str] = ("IMAP4REV1", "IDLE", "UNSELECT")) -> None:
        self.capabilities = {cap.upper() for cap in capabilities}
        self.mailboxes: Dict[str, Dict[int, _StoredMessage]] = {"INBOX": {}}
        self.folder_flags: Dict[str, Tuple[bytes, ...]] = {"INBOX": (b"\\HasNoChildren",)}
        self.status_failures: set[str] = set()
        self.selected: Optional[str] = None
        self.readonly: Optional[bool] = None
        self.uid_counter = 1
        self.idling = False
        self.idle_script: Deque[ScriptStep] = deque()
        self.noop_script: Deque[ScriptStep] = deque()
        self.calls: List[Tuple[Any, ...]] = []
        self.logged_in: Optional[Tuple[str, str]] = None
        self._lock = threading.Lock()

    # Session management -------------------------------------------------
    def login(self, username: str, password: str) -> None:
        self.calls.append(("login", username))
        self.logged_in = ("password", username)

    def oauth2_login(self, user: str, access_token: str) -> None:
        self.calls.append(("oauth2_login", user))
        self.logged_in = ("oauth2", user)

    def starttls(self, ssl_context: Any = None) -> None:
        self.calls.append(("starttls",))

    def logout(self) -> None:
        self.calls.append(("logout",))

    def shutdown(self) -> None:
        self.calls.append(("shutdown",))

    def has_capability(self, capability: str) -> bool:
        return capability.upper() in self.capabilities

    def count(self, name: str) -> int:
        """Return how many calls named ``name`` were recorded."""

        return sum(1 for call in list(self.calls) if call[0] == name)

    # Mailbox helpers ----------------------------------------------------
    def create_folder(self, name: str, flags: Tuple[bytes, ...] = (b"\\HasNoChildren",)) -> None:
        self.mailboxes.setdefault(name, {})
        self.folder_flags.setdefault(name, flags)

    def list_folders(self, directory: str = "", pattern: str = "*"):
        self.calls.append(("list_folders",))
        return [(self.folder_flags.get(name, ()), b"/", name) for name in sorted(self.folder_flags)]

    def folder_status(self, folder: str, what: Sequence[Any] = ()):
        self.calls.append(("folder_status", folder))
        if folder in self.status_failures or folder not in self.mailboxes:
            raise imaplib.IMAP4.error(f"STATUS failed for {folder}")
        messages = self.mailboxes[folder]
        unseen = sum(1 for msg in messages.values() if b"\\Seen" not in msg.flags)
        return {b"MESSAGES": len(messages), b"UNSEEN": unseen}

    def select_folder(self, folder: str, readonly: bool = False):
        self.calls.append(("select_folder", folder, readonly))
        if folder not in self.mailboxes:
            raise imaplib.IMAP4.error(f"no such folder: {folder}")
        self.selected = folder
        self.readonly = readonly
        return {
            b"EXISTS": len(self.mailboxes[folder]),
            b"UIDNEXT": self.uid_counter,
            b"READ-ONLY": [b""] if readonly else [],
        }

    def close_folder(self):
        self.calls.append(("close_folder", self.selected))
        self.selected = None
        return b"CLOSE completed"

    def unselect_folder(self):
        self.calls.append(("unselect_folder", self.selected))
        self.selected = None
        return b"UNSELECT completed"

    def _current(self) -> Dict[int, _StoredMessage]:
        if self.selected is None:
            raise imaplib.IMAP4.error("no folder selected")
        return self.mailboxes[self.selected]

    def deliver(
        self,
        message_bytes: bytes,
        folder: str = "INBOX",
        flags: Tuple[bytes, ...] = (),
    ) -> Tuple[int, bytes]:
        """Store a new message; return the matching untagged ``EXISTS``."""

        with self._lock:
            self.create_folder(folder)
            uid = self.uid_counter
            self.uid_counter += 1
            self.mailboxes[folder][uid] = _StoredMessage(uid=uid, message_bytes=message_bytes, flags=tuple(flags))
            return (len(self.mailboxes[folder]), b"EXISTS")

    # Message operations -------------------------------------------------
    def search(self, criteria: Any = "ALL", charset: Optional[str] = None):
        self.calls.append(("search", list(criteria) if isinstance(criteria, list) else criteria))
        messages = self._current()
        terms = list(criteria) if isinstance(criteria, (list, tuple)) else [criteria]
        uids = sorted(messages)
        index = 0
        while index < len(terms):
            term = str(terms[index]).upper()
            if term == "ALL":
                index += 1
            elif term == "UID":
                low, _, high = str(terms[index + 1]).partition(":")
                top = max(messages) if messages else 0
                start = int(low)
                if high == "*":
                    end = top
                else:
                    end = int(high or low)
                wanted = set(range(start, end + 1))
                if high == "*" and messages:
                    wanted.add(top)
                uids = [uid for uid in uids if uid in wanted]
                index += 2
            elif term in ("SUBJECT", "FROM", "TO", "BODY"):
                needle = str(terms[index + 1]).lower()
                uids = [uid for uid in uids if needle in self._field(messages[uid], term).lower()]
                index += 2
            elif term == "HEADER":
                name, value = str(terms[index + 1]), str(terms[index + 2])
                uids = [uid for uid in uids if value in str(messages[uid].parsed.get(name, ""))]
                index += 3
            elif term in ("UNSEEN", "SEEN", "FLAGGED"):
                flag = b"\\Flagged" if term == "FLAGGED" else b"\\Seen"
                expect = term != "UNSEEN"
                uids = [uid for uid in uids if (flag in messages[uid].flags) == expect]
                index += 1
            else:
                raise imaplib.IMAP4.error(f"unsupported search term {term}")
        return uids

    @staticmethod
    def _field(message: _StoredMessage, term: str) -> str:
        parsed = message.parsed
        if term == "BODY":
            body = parsed.get_body(preferencelist=("plain", "html"))
            return body.get_content() if body is not None else ""
        return str(parsed.get(term.capitalize(), ""))

    def fetch(self, messages: Iterable[int], data: Iterable[Any], modifiers: Any = None):
        items = [item.decode() if isinstance(item, bytes) else str(item) for item in data]
        uids = list(messages)
        self.calls.append(("fetch", uids, items))
        current = self._current()
        ordered = sorted(current)
        response: Dict[int, Dict[bytes, Any]] = {}
        for uid in uids:
            stored = current.get(uid)
            if stored is None:
                continue
            payload: Dict[bytes, Any] = {b"SEQ": ordered.index(uid) + 1}
            for item in items:
                upper = item.upper()
                if upper == "ENVELOPE":
                    payload[b"ENVELOPE"] = stored.envelope()
                elif upper == "FLAGS":
                    payload[b"FLAGS"] = stored.flags
                elif upper == "UID":
                    payload[b"UID"] = uid
                elif upper == "INTERNALDATE":
                    payload[b"INTERNALDATE"] = stored.internaldate
                elif upper == "RFC822.SIZE":
                    payload[b"RFC822.SIZE"] = len(stored.message_bytes)
                elif upper in ("BODY.PEEK[]", "BODY[]", "RFC822"):
                    payload[b"BODY[]"] = stored.message_bytes
                elif upper in ("BODY.PEEK[HEADER]", "BODY[HEADER]"):
                    payload[b"BODY[HEADER]"] = stored.header_bytes
            response[uid] = payload
        return response

    # IDLE / NOOP ----------------------------------------------------------
    @staticmethod
    def _play(step: ScriptStep) -> List[Any]:
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return list(step())
        return list(step)

    def idle(self) -> None:
        self.calls.append(("idle",))
        if self.idling:
            raise imaplib.IMAP4.error("already idling")
        self.idling = True

    def idle_check(self, timeout: Optional[float] = None) -> List[Any]:
        if not self.idling:
            raise imaplib.IMAP4.error("idle_check outside IDLE")
        if self.idle_script:
            return self._play(self.idle_script.popleft())
        time.sleep(min(timeout or 0.005, 0.005))
        return []

    def idle_done(self):
        self.calls.append(("idle_done",))
        self.idling = False
        return (b"IDLE terminated", [])

    def noop(self):
        self.calls.append(("noop",))
        if self.idling:
            raise imaplib.IMAP4.error("NOOP while idling")
        responses: List[Any] = []
        if self.noop_script:
            responses = self._play(self.noop_script.popleft())
        return (b"NOOP completed", responses)
