"""Depth-first fold over a MIME tree into a :class:`BodyRecord`.

What:
  Visit every part of a message in pre-order and accumulate the first
  ``text/plain`` body, the first ``text/html`` body, and every attachment-like
  part.

Why:
  ``multipart/alternative`` senders put the preferred rendering first, and
  nested forwards or signatures must not override the outer body. Binary
  content must never be lost, while a single unreadable part must not abort
  decoding of the rest of the message.

How:
  :func:`walk` threads an immutable :class:`BodyRecord` accumulator through the
  recursion and returns a new one per visited part, dispatching on
  :func:`mailfetch.core.parts.classify`. Attachment tuples are only converted
  to ``None`` at the very end when attachments were not requested.

Interfaces:
  :func:`walk`, :func:`parse_body`, :func:`materialize_attachment`.

Invariants & Safety:
  - First text and first HTML in traversal order win; later ones are ignored.
  - Attachment-classified parts always yield a record, with ``error`` set when
    their bytes could not be read.
  - Binary fallback parts whose bytes cannot be read are dropped.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

from .codec import decode_header_text
from .parts import Part, PartBase, PartKind, classify, to_part
from .records import Attachment, BodyRecord, FetchOptions


EMPTY_BODY = BodyRecord(text=None, html=None, attachments=())


def materialize_attachment(part: PartBase) -> Attachment:
    """Read an attachment-classified part into an :class:`Attachment`.

    What:
      Decodes the filename, records the base content type, and reads the
      payload bytes.

    Why:
      A classified attachment is user-visible content; if its bytes cannot be
      read the caller still needs to know it exists and why it is empty.

    Args:
      part: Part classified as :attr:`PartKind.ATTACHMENT`.

    Returns:
      An :class:`Attachment` with ``data`` or with ``error`` set.
    """

    filename = decode_header_text(part.filename)
    try:
        data = part.read_bytes()
    except Exception as exc:
        return Attachment(
            filename=filename,
            content_type=part.base_type,
            size=-1,
            data=None,
            error=str(exc) or exc.__class__.__name__,
        )
    return Attachment(filename=filename, content_type=part.base_type, size=len(data), data=data)


def _read_text(part: PartBase) -> Optional[str]:
    try:
        return part.read_text()
    except Exception:
        return None


def _append(acc: BodyRecord, attachment: Attachment) -> BodyRecord:
    return replace(acc, attachments=(acc.attachments or ()) + (attachment,))


def walk(part: Part, options: Optional[FetchOptions] = None, acc: BodyRecord = EMPTY_BODY) -> BodyRecord:
    """Fold ``part`` and its descendants into ``acc``.

    What:
      Returns a new :class:`BodyRecord` combining ``acc`` with everything found
      below ``part``.

    How:
      Classification decides the branch: attachments are materialised,
      containers recurse over their children in order, text and HTML fill empty
      slots only, other ``text/*`` subtypes become UTF-8 attachments, and
      anything else becomes a raw-bytes attachment when readable. With
      ``include_attachments`` disabled no payload bytes are read at all and the
      returned record has ``attachments=None``.

    Args:
      part: Root of the (sub)tree to visit.
      options: Fetch switches; defaults to :class:`FetchOptions`.
      acc: Accumulator carried from previously visited parts.

    Returns:
      The updated body record.
    """

    options = options or FetchOptions()
    result = _visit(part, options.include_attachments, acc)
    if not options.include_attachments:
        return replace(result, attachments=None)
    return result


def _visit(part: Part, keep_attachments: bool, acc: BodyRecord) -> BodyRecord:
    kind = classify(part)

    if kind is PartKind.ATTACHMENT:
        if not keep_attachments:
            return acc
        return _append(acc, materialize_attachment(part))

    if kind is PartKind.CONTAINER:
        children = getattr(part, "children", None)
        if children is None:
            return acc
        for child in children:
            acc = _visit(child, keep_attachments, acc)
        return acc

    if kind is PartKind.PLAIN_TEXT:
        if acc.text is not None:
            return acc
        text = _read_text(part)
        return acc if text is None else replace(acc, text=text)

    if kind is PartKind.HTML:
        if acc.html is not None:
            return acc
        html = _read_text(part)
        return acc if html is None else replace(acc, html=html)

    if not keep_attachments:
        return acc

    if kind is PartKind.OTHER_TEXT:
        data = (_read_text(part) or "").encode("utf-8")
        return _append(
            acc,
            Attachment(
                filename=decode_header_text(part.filename),
                content_type=part.base_type,
                size=len(data),
                data=data,
            ),
        )

    try:
        data = part.read_bytes()
    except Exception:
        return acc
    return _append(
        acc,
        Attachment(
            filename=decode_header_text(part.filename),
            content_type=part.base_type,
            size=len(data),
            data=data,
        ),
    )


def parse_body(message: Any, options: Optional[FetchOptions] = None) -> BodyRecord:
    """Adapt a parsed message and walk it from the root.

    Args:
      message: :class:`email.message.EmailMessage` to decode.
      options: Fetch switches controlling attachment handling.

    Returns:
      The flattened :class:`BodyRecord`.
    """

    return walk(to_part(message), options)
