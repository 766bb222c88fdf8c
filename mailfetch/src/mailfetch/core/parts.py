"""Tagged view of a MIME tree and the per-part classifier.

What:
  Adapt :class:`email.message.EmailMessage` parts into a closed variant
  (:class:`Leaf` or :class:`Container`) carrying pre-computed metadata, and
  classify each part into exactly one :class:`PartKind`.

Why:
  Senders disagree on what "inline" means, omit content types, and produce
  multipart containers whose boundary is missing. Computing the metadata once
  and classifying with an explicit precedence keeps the walker free of
  ``try``/``except`` type probes and makes each decision testable in isolation.

How:
  :func:`to_part` recursively builds the variant. Containers whose nested
  content cannot be materialised get ``children=None``. :func:`classify`
  evaluates the precedence rules top to bottom. Payload access goes through
  :meth:`PartBase.read_bytes` and :meth:`PartBase.read_text`, the only methods
  that may raise.

Interfaces:
  ``PartKind``, ``Leaf``, ``Container``, ``Part``, :func:`to_part`,
  :func:`classify`, :func:`base_content_type`.

Invariants & Safety:
  - Classification precedence: attachment, container, ``text/plain``,
    ``text/html``, other ``text/*``, everything else.
  - An ``inline`` part with a filename counts as an attachment only when its
    base type is not ``text/*``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union


class PartKind(Enum):
    """Outcome of :func:`classify` for one MIME part."""

    ATTACHMENT = "attachment"
    CONTAINER = "container"
    PLAIN_TEXT = "plain_text"
    HTML = "html"
    OTHER_TEXT = "other_text"
    BINARY = "binary"


def base_content_type(raw: Optional[str]) -> Optional[str]:
    """Strip parameters from a content-type value.

    What:
      ``"Text/Plain; charset=utf-8"`` becomes ``"text/plain"``.

    Args:
      raw: Raw ``Content-Type`` header value, possibly ``None``.

    Returns:
      The lower-cased ``type/subtype``, or ``None`` when ``raw`` is missing or
      does not look like a media type.
    """

    if raw is None:
        return None
    base = str(raw).split(";", 1)[0].strip().lower()
    if "/" not in base:
        return None
    return base


@dataclass(frozen=True)
class PartBase:
    """Metadata shared by both part variants.

    Attributes:
      content_type: Raw ``Content-Type`` header value, if any.
      base_type: Result of :func:`base_content_type` (or the MIME default).
      disposition: Lower-cased ``Content-Disposition`` type, if any.
      filename: Undecoded filename parameter, if any.
      source: The underlying ``email`` part used for payload access.
    """

    content_type: Optional[str]
    base_type: Optional[str]
    disposition: Optional[str]
    filename: Optional[str]
    source: Any

    def read_bytes(self) -> bytes:
        """Return the decoded payload bytes.

        Raises:
          ValueError: When the part carries no decodable payload.
        """

        source = self.source
        if source.is_multipart():
            # message/rfc822 and attachment-marked containers: the nested
            # entity serialised back to bytes.
            payload = source.get_payload()
            container = (self.base_type or "").startswith("multipart/")
            if isinstance(payload, list) and len(payload) == 1 and not container:
                return payload[0].as_bytes()
            return source.as_bytes()
        data = source.get_payload(decode=True)
        if data is None:
            raise ValueError("part has no decodable payload")
        return data

    def read_text(self) -> str:
        """Return the decoded text content, stringifying non-text results."""

        content = self.source.get_content()
        if isinstance(content, str):
            return content
        return str(content)


@dataclass(frozen=True)
class Leaf(PartBase):
    """A part carrying content directly."""


@dataclass(frozen=True)
class Container(PartBase):
    """A ``multipart/*`` part.

    Attributes:
      children: Child parts in order, or ``None`` when the nested content could
        not be materialised (for example a missing boundary).
    """

    children: Optional[Tuple["Part", ...]] = None


Part = Union[Leaf, Container]


def _content_type_of(message: Any) -> Tuple[Optional[str], Optional[str]]:
    raw = message.get("Content-Type")
    if raw is None:
        # RFC 2045 defaults: text/plain, or message/rfc822 inside a digest.
        return None, message.get_default_type()
    raw_text = str(raw)
    return raw_text, base_content_type(raw_text)


def to_part(message: Any) -> Part:
    """Adapt an ``email`` message (or sub-part) into the tagged variant.

    What:
      Reads content type, disposition, and filename once per part and
      recursively adapts the children of ``multipart/*`` parts.

    Why:
      Downstream code branches on explicit values instead of calling into the
      ``email`` API and guarding each call.

    How:
      Metadata lookups that fail on malformed headers degrade to ``None``. A
      ``multipart/*`` part whose payload is not a list of parts becomes a
      :class:`Container` with ``children=None``.

    Args:
      message: :class:`email.message.EmailMessage` or one of its parts.

    Returns:
      A :class:`Leaf` or :class:`Container`.
    """

    content_type, base_type = _content_type_of(message)
    try:
        disposition = message.get_content_disposition()
    except Exception:
        disposition = None
    try:
        filename = message.get_filename()
    except Exception:
        filename = None
    if base_type is not None and base_type.startswith("multipart/"):
        payload = message.get_payload()
        children: Optional[Tuple[Part, ...]] = None
        if message.is_multipart() and isinstance(payload, list):
            children = tuple(to_part(child) for child in payload)
        return Container(
            content_type=content_type,
            base_type=base_type,
            disposition=disposition,
            filename=filename,
            source=message,
            children=children,
        )
    return Leaf(
        content_type=content_type,
        base_type=base_type,
        disposition=disposition,
        filename=filename,
        source=message,
    )


def is_attachment(part: PartBase) -> bool:
    """Apply the attachment heuristic to ``part``.

    What:
      True for an explicit ``attachment`` disposition, or for ``inline`` parts
      that carry a filename and are not ``text/*``.
    """

    if part.disposition == "attachment":
        return True
    if part.disposition == "inline" and part.filename is not None:
        return not (part.base_type or "").startswith("text/")
    return False


def classify(part: PartBase) -> PartKind:
    """Return the single :class:`PartKind` for ``part``.

    Args:
      part: Adapted part from :func:`to_part`.

    Returns:
      The first matching kind in precedence order.
    """

    base = part.base_type
    if is_attachment(part):
        return PartKind.ATTACHMENT
    if base is not None and base.startswith("multipart/"):
        return PartKind.CONTAINER
    if base == "text/plain":
        return PartKind.PLAIN_TEXT
    if base == "text/html":
        return PartKind.HTML
    if base is not None and base.startswith("text/"):
        return PartKind.OTHER_TEXT
    return PartKind.BINARY
