"""Aggregated exports for the message decoding core.

What:
  Surface the value records, the header/address codec, the MIME walker, and the
  projector without requiring callers to know the module layout.

Why:
  The core is pure (no network access) and is used both by the IMAP layer and
  directly on ``.eml`` files; a flat import surface keeps both call sites short.

How:
  Re-export the public names of :mod:`.records`, :mod:`.codec`, :mod:`.parts`,
  :mod:`.walker`, and :mod:`.projector` and list them in ``__all__``.

Interfaces:
  ``Address``, ``Attachment``, ``BodyRecord``, ``MessageRecord``, ``Flag``,
  ``FetchOptions``, ``decode_header_text``, ``to_address``,
  ``to_address_list``, ``PartKind``, ``classify``, ``to_part``, ``walk``,
  ``parse_body``, ``project``, ``project_message``, ``collect_headers``.
"""

from .codec import decode_header_text, to_address, to_address_list
from .parts import Container, Leaf, PartKind, base_content_type, classify, to_part
from .projector import collect_headers, project, project_message
from .records import Address, Attachment, BodyRecord, FetchOptions, Flag, MessageRecord
from .walker import parse_body, walk

__all__ = [
    "Address",
    "Attachment",
    "BodyRecord",
    "FetchOptions",
    "Flag",
    "MessageRecord",
    "decode_header_text",
    "to_address",
    "to_address_list",
    "Container",
    "Leaf",
    "PartKind",
    "base_content_type",
    "classify",
    "to_part",
    "walk",
    "parse_body",
    "project",
    "project_message",
    "collect_headers",
]
