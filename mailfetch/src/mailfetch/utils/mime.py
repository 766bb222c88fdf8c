"""Raw RFC822 parsing helpers.

What:
  Turn raw IMAP ``BODY[]``/``BODY[HEADER]`` payloads and ``.eml`` files into
  :class:`email.message.EmailMessage` objects.

Why:
  The projector and the MIME walker operate on parsed message trees. Keeping
  the parser configuration in one place guarantees that every caller sees the
  same policy (and therefore the same header and content semantics).

How:
  Use the ``email`` package's :class:`~email.parser.BytesParser` with the
  default policy. Header-only payloads are parsed with ``headersonly=True`` so
  that a missing body never produces spurious defects.

Interfaces:
  :func:`parse_message`, :func:`parse_headers`, :func:`load_eml`.
"""
from __future__ import annotations

from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from pathlib import Path
from typing import Union


def parse_message(raw: bytes) -> EmailMessage:
    """Parse a full RFC822 payload into an :class:`EmailMessage`.

    Args:
      raw: Raw message bytes as retrieved from an IMAP ``BODY[]`` fetch.

    Returns:
      The parsed message tree.
    """

    return BytesParser(policy=policy.default).parsebytes(raw)


def parse_headers(raw: bytes) -> EmailMessage:
    """Parse a header block (``BODY[HEADER]``) without touching a body."""

    return BytesParser(policy=policy.default).parsebytes(raw, headersonly=True)


def load_eml(path: Union[str, Path]) -> EmailMessage:
    """Read and parse an ``.eml`` file from disk."""

    return parse_message(Path(path).read_bytes())
