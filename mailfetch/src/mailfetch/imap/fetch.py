"""Batch retrieval of messages as :class:`~mailfetch.core.records.MessageRecord`.

What:
  Open a folder read-only, select messages (all, by search criteria, by UID,
  or by UID range), keep the newest ``limit`` of them, prefetch everything the
  projection needs in one round trip, and project each message.

Why:
  Fetching attributes message by message costs one server round trip each;
  a single ``FETCH`` over the UID set keeps large batches fast. Owning the
  folder lifecycle per call means callers never leak a selected folder.

How:
  :func:`fetch_profile` derives the ``FETCH`` items from
  :class:`~mailfetch.core.records.FetchOptions`; :func:`_run` wraps the
  open/select/prefetch/project sequence in ``try``/``finally`` so the folder is
  closed whether or not projection succeeds. Transport errors propagate; there
  are no partial results.

Interfaces:
  :func:`apply_limit`, :func:`fetch_profile`, :func:`messages`,
  :func:`by_uid`, :func:`by_uid_range`.
"""
from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from ..core.projector import project
from ..core.records import FetchOptions, MessageRecord
from ..utils.logging import get_logger
from .client import MailFetchImapClient
from .folder import LAST_UID, Folder, MessageHandle
from .search import SearchCriteria, build_search


T = TypeVar("T")

BASE_ITEMS = ("ENVELOPE", "FLAGS", "UID", "INTERNALDATE", "RFC822.SIZE")


def apply_limit(items: Sequence[T], limit: Optional[int]) -> List[T]:
    """Keep the last ``limit`` entries of ``items`` in their original order.

    ``None`` keeps everything; ``0`` or a negative limit keeps nothing.
    """

    items = list(items)
    if limit is None:
        return items
    if limit <= 0:
        return []
    return items[-limit:]


def fetch_profile(options: Optional[FetchOptions] = None) -> List[str]:
    """Return the ``FETCH`` items needed to project with ``options``.

    The full source is requested with ``BODY.PEEK[]`` when the body is parsed,
    otherwise only the header block. ``PEEK`` leaves ``\\Seen`` untouched.
    """

    options = options or FetchOptions()
    content = "BODY.PEEK[]" if options.include_body else "BODY.PEEK[HEADER]"
    return list(BASE_ITEMS) + [content]


def _run(
    client: MailFetchImapClient,
    folder_name: str,
    select: Callable[[Folder], List[MessageHandle]],
    *,
    limit: Optional[int],
    options: Optional[FetchOptions],
    raw: bool,
) -> Union[List[MessageRecord], List[MessageHandle]]:
    options = options or FetchOptions()
    log = get_logger("mailfetch.fetch")
    folder = client.open_folder(folder_name, readonly=True)
    try:
        handles = apply_limit(select(folder), limit)
        folder.prefetch(handles, fetch_profile(options))
        if raw:
            return handles
        records = [project(handle, options) for handle in handles]
        log.debug("batch fetched", folder=folder_name, count=len(records), limit=limit)
        return records
    finally:
        folder.close()


def messages(
    client: MailFetchImapClient,
    folder_name: str,
    criteria: Union[SearchCriteria, dict, None] = None,
    *,
    limit: Optional[int] = None,
    options: Optional[FetchOptions] = None,
    raw: bool = False,
):
    """Fetch messages from ``folder_name``.

    What:
      Lists every message, or the ones matching ``criteria``, keeps the newest
      ``limit``, and returns their projections oldest first.

    Args:
      client: Connected :class:`MailFetchImapClient`.
      folder_name: Folder to read.
      criteria: Optional :class:`SearchCriteria` or filter mapping.
      limit: Keep only the last ``limit`` messages.
      options: Projection switches.
      raw: Return the prefetched :class:`MessageHandle` objects instead of
        records. The handles are bound to a folder that is already closed, so
        only prefetched attributes are usable.

    Returns:
      List of :class:`MessageRecord` (or handles with ``raw=True``).
    """

    def select(folder: Folder) -> List[MessageHandle]:
        if criteria is None:
            return folder.list_messages()
        return folder.search(build_search(criteria))

    return _run(client, folder_name, select, limit=limit, options=options, raw=raw)


def by_uid(
    client: MailFetchImapClient,
    folder_name: str,
    uids: Union[int, Iterable[int]],
    *,
    options: Optional[FetchOptions] = None,
    raw: bool = False,
):
    """Fetch the messages with the given UID(s); unknown UIDs are skipped.

    Results follow the order of ``uids``.
    """

    wanted = [uids] if isinstance(uids, int) else [int(uid) for uid in uids]

    def select(folder: Folder) -> List[MessageHandle]:
        handles = []
        for uid in wanted:
            handle = folder.get_message_by_uid(uid)
            if handle is not None:
                handles.append(handle)
        return handles

    return _run(client, folder_name, select, limit=None, options=options, raw=raw)


def by_uid_range(
    client: MailFetchImapClient,
    folder_name: str,
    start: int,
    end: Optional[int] = LAST_UID,
    *,
    limit: Optional[int] = None,
    options: Optional[FetchOptions] = None,
    raw: bool = False,
):
    """Fetch messages with ``start <= uid <= end``; ``end=LAST_UID`` means newest."""

    def select(folder: Folder) -> List[MessageHandle]:
        return folder.get_messages_by_uid_range(start, end)

    return _run(client, folder_name, select, limit=limit, options=options, raw=raw)
