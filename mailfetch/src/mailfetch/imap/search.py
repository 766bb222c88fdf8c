"""Translate filter mappings into IMAP search criteria.

What:
  Provide a deterministic mapping from :class:`SearchCriteria` (or a plain
  filter mapping from the CLI or YAML) to the criteria list consumed by
  ``imapclient.IMAPClient.search``.

Why:
  Keeping the translation centralised keeps queries consistent between the
  library API and the CLI, and isolates the tricky date handling so it can be
  unit tested without a server.

How:
  Walks the populated fields in a fixed order, emitting keyword/value pairs for
  text filters and bare keywords for flag filters. Dates are passed to
  ``imapclient`` as :class:`datetime.date` objects, which it renders in IMAP
  date syntax.

Interfaces:
  :class:`SearchCriteria`, :func:`parse_date`, :func:`build_search`.

Invariants & Safety:
  - Only whitelisted keys are translated; unknown mapping keys raise
    ``ValueError`` instead of being passed to the server.
  - Empty criteria compile to ``["ALL"]``.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Union


_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%d/%m/%Y")

DateLike = Union[date, datetime, str]


def parse_date(value: DateLike) -> date:
    """Coerce ``value`` to a :class:`datetime.date`.

    Accepts ``date``/``datetime`` objects and strings in ``YYYY-MM-DD``,
    ``YYYY-MM-DDTHH:MM:SS``, or ``DD/MM/YYYY`` form.

    Raises:
      ValueError: If the string matches none of the accepted formats.
    """

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognised date: {value!r}")


@dataclass(frozen=True)
class SearchCriteria:
    """Server-side filter for the batch fetcher.

    Text fields match substrings as defined by IMAP ``SEARCH``. Flag fields
    only emit a keyword when ``True``. ``since``/``before`` compare the
    ``Date:`` header, ``received_*`` the server's internal date.
    """

    subject: Optional[str] = None
    from_: Optional[str] = None
    to: Optional[str] = None
    cc: Optional[str] = None
    body: Optional[str] = None
    message_id: Optional[str] = None
    unseen: bool = False
    seen: bool = False
    answered: bool = False
    flagged: bool = False
    since: Optional[DateLike] = None
    before: Optional[DateLike] = None
    received_since: Optional[DateLike] = None
    received_before: Optional[DateLike] = None

    @classmethod
    def from_mapping(cls, filters: Mapping[str, Any]) -> "SearchCriteria":
        """Build criteria from a mapping.

        ``from`` is accepted for ``from_`` and dashed keys such as
        ``received-since`` or ``message-id`` for their underscored fields.

        ``None`` values are ignored.

        Raises:
          ValueError: On keys that are not criteria fields.
        """

        known = {field.name for field in fields(cls)}
        values = {}
        for key, value in filters.items():
            name = "from_" if key == "from" else key.replace("-", "_")
            if name not in known:
                raise ValueError(f"unsupported search filter: {key!r}")
            if value is not None:
                values[name] = value
        return cls(**values)

    def is_empty(self) -> bool:
        return build_search(self) == ["ALL"]


_TEXT_KEYS = (
    ("subject", "SUBJECT"),
    ("from_", "FROM"),
    ("to", "TO"),
    ("cc", "CC"),
    ("body", "BODY"),
)

_FLAG_KEYS = (
    ("unseen", "UNSEEN"),
    ("seen", "SEEN"),
    ("answered", "ANSWERED"),
    ("flagged", "FLAGGED"),
)

_DATE_KEYS = (
    ("since", "SENTSINCE"),
    ("before", "SENTBEFORE"),
    ("received_since", "SINCE"),
    ("received_before", "BEFORE"),
)


def build_search(criteria: Union[SearchCriteria, Mapping[str, Any], None]) -> List[Any]:
    """Compile ``criteria`` into an ``imapclient`` search list.

    What:
      Returns a flat list such as ``["FROM", "alice", "UNSEEN", "SINCE",
      date(2024, 1, 1)]``; the terms are ANDed by the server.

    Why:
      ``imapclient`` accepts criteria lists and quotes string arguments itself,
      so emitting structured values avoids hand-built query strings.

    Args:
      criteria: :class:`SearchCriteria`, a filter mapping, or ``None``.

    Returns:
      Criteria list, ``["ALL"]`` when nothing is set.
    """

    if criteria is None:
        return ["ALL"]
    if not isinstance(criteria, SearchCriteria):
        criteria = SearchCriteria.from_mapping(criteria)

    terms: List[Any] = []
    for attr, keyword in _TEXT_KEYS:
        value = getattr(criteria, attr)
        if value:
            terms.extend([keyword, str(value)])
    if criteria.message_id:
        terms.extend(["HEADER", "Message-ID", criteria.message_id])
    for attr, keyword in _FLAG_KEYS:
        if getattr(criteria, attr):
            terms.append(keyword)
    for attr, keyword in _DATE_KEYS:
        value = getattr(criteria, attr)
        if value is not None:
            terms.extend([keyword, parse_date(value)])
    return terms or ["ALL"]
