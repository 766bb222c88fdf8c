"""Immutable value records produced by the message decoder.

What:
  Define the plain data shapes returned to callers: :class:`Address`,
  :class:`Attachment`, :class:`BodyRecord`, :class:`MessageRecord`, the
  :class:`Flag` enumeration, and the :class:`FetchOptions` switches.

Why:
  Callers must be able to keep, copy, and share fetched messages after the IMAP
  connection is gone. Projecting into frozen dataclasses with no reference to a
  folder or connection makes that guarantee structural rather than a matter of
  discipline.

How:
  Every record is a ``frozen`` dataclass whose sequences are tuples. Header
  maps are wrapped in :class:`types.MappingProxyType` so they cannot be mutated
  in place. :meth:`MessageRecord.to_dict` renders a JSON-friendly mapping for
  the CLI.

Interfaces:
  ``Address``, ``Attachment``, ``BodyRecord``, ``MessageRecord``, ``Flag``,
  ``FetchOptions``, ``HeaderValue``.

Invariants & Safety:
  - ``None`` and an empty tuple are distinct for address fields: ``None``
    means the header is absent, ``()`` means present with zero recipients.
  - ``BodyRecord.attachments is None`` means attachments were not requested.
  - ``Attachment.error`` is set exactly when ``data`` could not be read.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union


HeaderValue = Union[str, Tuple[str, ...]]


class Flag(str, Enum):
    """System flags surfaced on :class:`MessageRecord`."""

    SEEN = "seen"
    ANSWERED = "answered"
    FLAGGED = "flagged"
    DELETED = "deleted"
    DRAFT = "draft"
    RECENT = "recent"


@dataclass(frozen=True)
class Address:
    """A single mailbox from an address header.

    Attributes:
      display_name: Decoded personal name, ``None`` when absent.
      address: ``local@domain`` string (or a group name for group markers).
    """

    display_name: Optional[str]
    address: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"name": self.display_name, "address": self.address}


@dataclass(frozen=True)
class Attachment:
    """Binary or non-body content extracted from a MIME part.

    What:
      Carries the decoded filename, base content type, byte size, and payload
      of an attachment-like part.

    Why:
      Read failures on a single part must not lose the fact that the part
      exists; the record is emitted with ``error`` describing the failure.

    Attributes:
      filename: Decoded filename, ``None`` when the part has none.
      content_type: Base content type (parameters stripped, lower-cased).
      size: Payload size in bytes, ``-1`` when unknown.
      data: Decoded payload bytes, ``None`` when reading failed.
      error: Failure description when reading the payload raised.
    """

    filename: Optional[str]
    content_type: Optional[str]
    size: int = -1
    data: Optional[bytes] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
        }
        if self.data is not None:
            payload["data"] = base64.b64encode(self.data).decode("ascii")
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class BodyRecord:
    """Flattened view of a message body.

    Attributes:
      text: First ``text/plain`` part found in depth-first order.
      html: First ``text/html`` part found in depth-first order.
      attachments: Attachments in traversal order, or ``None`` when removed.
    """

    text: Optional[str] = None
    html: Optional[str] = None
    attachments: Optional[Tuple[Attachment, ...]] = ()

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"text": self.text, "html": self.html}
        if self.attachments is not None:
            payload["attachments"] = [item.to_dict() for item in self.attachments]
        return payload


@dataclass(frozen=True)
class FetchOptions:
    """Switches controlling how much of a message is projected.

    What:
      Mirrors the ``fetch`` section of the runtime configuration. Disabling
      ``include_attachments`` removes the ``attachments`` field from the body
      but still computes ``text``/``html``.

    Attributes:
      include_headers: Populate :attr:`MessageRecord.headers`.
      include_body: Walk the MIME tree into :attr:`MessageRecord.body`.
      include_attachments: Keep attachment records inside the body.
    """

    include_headers: bool = True
    include_body: bool = True
    include_attachments: bool = True

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "FetchOptions":
        """Build options from a mapping, ignoring unknown keys.

        Args:
          values: Mapping such as ``FetchSettings.model_dump()``.

        Returns:
          A :class:`FetchOptions` with defaults for missing keys.
        """

        if not values:
            return cls()
        known = {"include_headers", "include_body", "include_attachments"}
        return cls(**{key: bool(value) for key, value in values.items() if key in known})


def _freeze_headers(headers: Optional[Mapping[str, HeaderValue]]) -> Optional[Mapping[str, HeaderValue]]:
    if headers is None:
        return None
    return MappingProxyType(dict(headers))


@dataclass(frozen=True)
class MessageRecord:
    """Projection of one IMAP message into plain values.

    What:
      Envelope fields, flags, UID, optional body, and optional header map of a
      message as seen at fetch time.

    Why:
      The record is a snapshot, not a live handle: mutating or keeping it has
      no effect on server state and it may outlive the connection.

    How:
      Created by :func:`mailfetch.core.projector.project`. The ``headers``
      mapping is frozen in ``__post_init__``.
    """

    uid: Optional[int]
    message_id: Optional[str]
    sequence_number: int
    from_: Optional[Tuple[Address, ...]] = None
    to: Optional[Tuple[Address, ...]] = None
    cc: Optional[Tuple[Address, ...]] = None
    bcc: Optional[Tuple[Address, ...]] = None
    reply_to: Optional[Tuple[Address, ...]] = None
    subject: Optional[str] = None
    date_sent: Optional[datetime] = None
    date_received: Optional[datetime] = None
    content_type: Optional[str] = None
    flags: FrozenSet[Flag] = field(default_factory=frozenset)
    body: Optional[BodyRecord] = None
    headers: Optional[Mapping[str, HeaderValue]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _freeze_headers(self.headers))
        object.__setattr__(self, "flags", frozenset(self.flags))

    def to_dict(self) -> Dict[str, Any]:
        """Render the record as JSON-friendly primitives.

        What:
          Converts addresses to dictionaries, datetimes to ISO8601 strings,
          flags to a sorted list, attachment payloads to base64, and tuples of
          header values to lists.

        Why:
          The CLI prints one JSON document per message; keeping the conversion
          next to the record keeps field names in one place.

        Returns:
          A dictionary with ``from``/``reply_to`` style keys. ``body`` and
          ``headers`` are omitted when they were not requested. Header order is
          preserved.
        """

        def addresses(values: Optional[Tuple[Address, ...]]) -> Optional[list]:
            if values is None:
                return None
            return [item.to_dict() for item in values]

        def moment(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value is not None else None

        payload: Dict[str, Any] = {
            "uid": self.uid,
            "message_id": self.message_id,
            "sequence_number": self.sequence_number,
            "from": addresses(self.from_),
            "to": addresses(self.to),
            "cc": addresses(self.cc),
            "bcc": addresses(self.bcc),
            "reply_to": addresses(self.reply_to),
            "subject": self.subject,
            "date_sent": moment(self.date_sent),
            "date_received": moment(self.date_received),
            "content_type": self.content_type,
            "flags": sorted(flag.value for flag in self.flags),
        }
        if self.body is not None:
            payload["body"] = self.body.to_dict()
        if self.headers is not None:
            payload["headers"] = {
                name: list(value) if isinstance(value, tuple) else value
                for name, value in self.headers.items()
            }
        return payload
