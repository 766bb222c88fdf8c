"""RFC 2047 header decoding and address normalisation.

What:
  Decode encoded-word header text and map IMAP envelope address entries to
  :class:`~mailfetch.core.records.Address` values.

Why:
  Subjects, display names, and filenames arrive MIME-encoded in arbitrary
  charsets, and some senders emit malformed encoded-words. Decoding must never
  break a fetch: the worst case is showing the raw header text.

How:
  Unfold continuation lines, run :func:`email.header.decode_header` and
  :func:`email.header.make_header`, and fall back to the raw input on any
  failure. Address entries are read by attribute (``name``, ``mailbox``,
  ``host``) so both ``imapclient`` envelope addresses and ``(name, address)``
  pairs are accepted.

Interfaces:
  :func:`decode_header_text`, :func:`to_address`, :func:`to_address_list`.

Invariants & Safety:
  - :func:`decode_header_text` never raises.
  - :func:`to_address_list` keeps ``None`` (header absent) distinct from an
    empty sequence (header present, no recipients).
"""
from __future__ import annotations

import re
from email.header import decode_header, make_header
from typing import Any, Iterable, Optional, Tuple, Union

from .records import Address


_FOLDING = re.compile(r"\r?\n[ \t]+")


def _as_text(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.decode("latin-1")
    return value


def decode_header_text(raw: Union[str, bytes, None]) -> Optional[str]:
    """Decode RFC 2047 encoded-words in ``raw``.

    What:
      Returns the human-readable form of a header value such as
      ``=?utf-8?q?Caf=C3=A9?=``.

    Why:
      Header decoding is best-effort. An unknown charset or a broken
      encoded-word must degrade to the raw value rather than abort the
      projection of the whole message.

    How:
      Bytes are first turned into text (UTF-8, then latin-1), folded lines are
      joined, and the result is decoded with :mod:`email.header`. Any exception
      returns the undecoded text.

    Args:
      raw: Header value as text or bytes, or ``None``.

    Returns:
      The decoded string, the raw text on failure, or ``None`` for ``None``.
    """

    if raw is None:
        return None
    text = _as_text(raw)
    try:
        unfolded = _FOLDING.sub(" ", text)
        return str(make_header(decode_header(unfolded)))
    except Exception:
        return text


def _split_entry(entry: Any) -> Tuple[Any, Optional[str]]:
    if isinstance(entry, (tuple, list)) and len(entry) == 2:
        name, address = entry
        return name, _as_text(address) if address is not None else None
    name = getattr(entry, "name", None)
    mailbox = getattr(entry, "mailbox", None)
    host = getattr(entry, "host", None)
    mailbox_text = _as_text(mailbox) if mailbox is not None else None
    if host is None:
        # Group start/end markers carry the group name in ``mailbox``.
        return name, mailbox_text
    host_text = _as_text(host)
    if mailbox_text is None:
        return name, host_text
    return name, f"{mailbox_text}@{host_text}"


def to_address(entry: Any) -> Optional[Address]:
    """Map a single envelope address entry to an :class:`Address`.

    Args:
      entry: An ``imapclient`` ``Address`` (``name``/``mailbox``/``host``
        attributes), a ``(name, address)`` pair, or ``None``.

    Returns:
      The normalised address, or ``None`` when ``entry`` is ``None`` or is a
      group end marker (no mailbox and no host).
    """

    if entry is None:
        return None
    name, address = _split_entry(entry)
    if not address:
        return None
    display_name = decode_header_text(name) if name else None
    return Address(display_name=display_name or None, address=address)


def to_address_list(entries: Optional[Iterable[Any]]) -> Optional[Tuple[Address, ...]]:
    """Map a sequence of address entries to a tuple of :class:`Address`.

    What:
      ``None`` stays ``None`` (field truly absent) and an empty sequence
      becomes ``()`` (field present, zero recipients). ``None`` entries inside
      the sequence and group end markers are skipped.

    Args:
      entries: Envelope address tuple as returned by ``imapclient``.

    Returns:
      Tuple of addresses, or ``None``.
    """

    if entries is None:
        return None
    mapped = (to_address(entry) for entry in entries)
    return tuple(address for address in mapped if address is not None)
