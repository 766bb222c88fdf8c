"""Project a message handle into a :class:`MessageRecord`.

What:
  Assemble envelope fields, flags, UID, body, and headers of one message into
  an immutable record.

Why:
  Callers want plain values, not protocol objects tied to an open folder. The
  projector is the single place that decides which IMAP attributes map to
  which record fields and how failures degrade.

How:
  Envelope data comes from the handle's prefetched ``ENVELOPE`` item, flags
  from ``FLAGS``, the received date from ``INTERNALDATE``. The body is produced
  by :func:`mailfetch.core.walker.parse_body` on the parsed message, and headers
  are collected from the raw header list so that repeated names keep their
  order. :func:`project_message` offers the same projection for a parsed
  :class:`~email.message.EmailMessage` without any IMAP handle.

Interfaces:
  :func:`project`, :func:`project_message`, :func:`collect_headers`,
  :func:`uid_of`, :func:`flags_from_imap`.

Invariants & Safety:
  - ``uid`` is ``None`` whenever the folder cannot provide one.
  - Header values are decoded with the codec and never raise.
"""
from __future__ import annotations

from email.utils import getaddresses, parsedate_to_datetime
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from .codec import decode_header_text, to_address_list
from .records import Address, BodyRecord, FetchOptions, Flag, HeaderValue, MessageRecord
from .walker import parse_body


_IMAP_FLAGS = {
    b"\\seen": Flag.SEEN,
    b"\\answered": Flag.ANSWERED,
    b"\\flagged": Flag.FLAGGED,
    b"\\deleted": Flag.DELETED,
    b"\\draft": Flag.DRAFT,
    b"\\recent": Flag.RECENT,
}


def flags_from_imap(values: Optional[Iterable[Any]]) -> FrozenSet[Flag]:
    """Map IMAP system flags (``b'\\Seen'`` ...) to :class:`Flag` members.

    Keywords and unknown flags are ignored.
    """

    result = set()
    for value in values or ():
        key = value.encode("ascii", "ignore") if isinstance(value, str) else bytes(value)
        flag = _IMAP_FLAGS.get(key.lower())
        if flag is not None:
            result.add(flag)
    return frozenset(result)


def collect_headers(message: Any) -> Dict[str, HeaderValue]:
    """Collect every header of ``message`` in encounter order.

    What:
      Returns ``{name: value}`` where a repeated header name maps to a tuple of
      its values in the order they appear.

    Why:
      ``Received`` chains and duplicated ``X-`` headers carry meaning in their
      order; a plain ``dict(message.items())`` would keep only one of them.

    How:
      Iterate ``raw_items()`` so the values are the undecoded source text, run
      each through :func:`decode_header_text`, store the first occurrence as a
      scalar, promote it to a tuple on the second, and append afterwards.

    Args:
      message: Parsed :class:`~email.message.EmailMessage`.

    Returns:
      Ordered header mapping.
    """

    headers: Dict[str, HeaderValue] = {}
    for name, raw in message.raw_items():
        value = decode_header_text(str(raw))
        previous = headers.get(name)
        if previous is None:
            headers[name] = value
        elif isinstance(previous, tuple):
            headers[name] = previous + (value,)
        else:
            headers[name] = (previous, value)
    return headers


def _raw_header(message: Any, name: str) -> Optional[str]:
    wanted = name.lower()
    for key, raw in message.raw_items():
        if key.lower() == wanted:
            return str(raw).strip()
    return None


def _content_type(message: Any) -> str:
    """Return the raw ``Content-Type`` value, or the RFC 2045 default when absent."""

    raw = _raw_header(message, "Content-Type")
    return raw if raw else message.get_content_type()


def uid_of(handle: Any) -> Optional[int]:
    """Return the UID of ``handle`` or ``None`` when the folder cannot tell."""

    try:
        return handle.folder.get_uid(handle)
    except Exception:
        return None


def _body_for(message: Any, options: FetchOptions) -> Optional[BodyRecord]:
    if not options.include_body:
        return None
    body = parse_body(message, options)
    if not options.include_attachments and body.attachments is not None:
        body = BodyRecord(text=body.text, html=body.html, attachments=None)
    return body


def project(handle: Any, options: Optional[FetchOptions] = None) -> MessageRecord:
    """Project a folder message handle into a :class:`MessageRecord`.

    What:
      Computes UID, message-id, sequence number, the five address fields,
      decoded subject, sent and received dates, raw content type, and flags
      for every message. ``body`` is included when ``include_body`` is set and
      ``headers`` when ``include_headers`` is set.

    Why:
      This is the boundary between the live IMAP session and the value
      records returned to callers; nothing past it holds a connection.

    How:
      Reads prefetched attributes from ``handle`` (missing ones are fetched on
      demand by the handle itself). The full message is only parsed when the
      body is requested; otherwise headers come from the header block.

    Args:
      handle: :class:`mailfetch.imap.folder.MessageHandle` (or compatible).
      options: Fetch switches; defaults to :class:`FetchOptions`.

    Returns:
      The immutable projection.
    """

    options = options or FetchOptions()
    envelope = handle.envelope
    message = handle.message() if options.include_body else None
    header_source = message if message is not None else handle.header_message()

    def envelope_field(name: str) -> Any:
        return getattr(envelope, name, None) if envelope is not None else None

    message_id = envelope_field("message_id")
    return MessageRecord(
        uid=uid_of(handle),
        message_id=decode_header_text(message_id) if message_id else None,
        sequence_number=handle.sequence_number,
        from_=to_address_list(envelope_field("from_")),
        to=to_address_list(envelope_field("to")),
        cc=to_address_list(envelope_field("cc")),
        bcc=to_address_list(envelope_field("bcc")),
        reply_to=to_address_list(envelope_field("reply_to")),
        subject=decode_header_text(envelope_field("subject")),
        date_sent=envelope_field("date"),
        date_received=handle.internal_date,
        content_type=_content_type(header_source),
        flags=flags_from_imap(handle.flags),
        body=_body_for(message, options) if message is not None else None,
        headers=collect_headers(header_source) if options.include_headers else None,
    )


def _header_addresses(message: Any, name: str) -> Optional[Tuple[Address, ...]]:
    values = [str(raw) for key, raw in message.raw_items() if key.lower() == name.lower()]
    if not values:
        return None
    pairs = [(display, address) for display, address in getaddresses(values) if display or address]
    return to_address_list(pairs)


def project_message(
    message: Any,
    options: Optional[FetchOptions] = None,
    *,
    uid: Optional[int] = None,
    sequence_number: int = 0,
    flags: Iterable[Any] = (),
    date_received: Any = None,
) -> MessageRecord:
    """Project a parsed message that did not come from a folder.

    What:
      Same record shape as :func:`project`, with envelope fields read from the
      message headers instead of an IMAP ``ENVELOPE``.

    Why:
      Used for ``.eml`` files and for exercising the decoder without a server.

    Args:
      message: Parsed :class:`~email.message.EmailMessage`.
      options: Fetch switches.
      uid: Optional UID to record.
      sequence_number: Sequence number to record (``0`` when unknown).
      flags: IMAP flags to map.
      date_received: Received timestamp, if known.

    Returns:
      The immutable projection.
    """

    options = options or FetchOptions()
    date_header = _raw_header(message, "Date")
    try:
        date_sent = parsedate_to_datetime(date_header) if date_header else None
    except (TypeError, ValueError):
        date_sent = None
    message_id = _raw_header(message, "Message-ID")
    return MessageRecord(
        uid=uid,
        message_id=message_id,
        sequence_number=sequence_number,
        from_=_header_addresses(message, "From"),
        to=_header_addresses(message, "To"),
        cc=_header_addresses(message, "Cc"),
        bcc=_header_addresses(message, "Bcc"),
        reply_to=_header_addresses(message, "Reply-To"),
        subject=decode_header_text(_raw_header(message, "Subject")),
        date_sent=date_sent,
        date_received=date_received,
        content_type=_content_type(message),
        flags=flags_from_imap(flags),
        body=_body_for(message, options),
        headers=collect_headers(message) if options.include_headers else None,
    )
