"""mailfetch command-line interface.

What:
  Provide a Typer-based entry point for reading a mailbox from the shell. The
  module exposes the ``fetch``, ``uid``, ``folders``, and ``watch`` commands;
  every command prints one JSON object per line on ``stdout``.

Why:
  Operators and scripts want mailbox contents as plain JSON without writing
  Python. Wiring the CLI to the same library calls keeps the command output
  identical to what library callers receive.

How:
  Load the runtime configuration (``--config`` or the usual discovery chain),
  open a :class:`~mailfetch.imap.client.MailFetchImapClient`, run the batch
  fetcher or the push loop, and serialise records with
  :meth:`~mailfetch.core.records.MessageRecord.to_dict`. Diagnostics go to
  ``stderr`` through :class:`~mailfetch.utils.logging.JsonLogger`.

Interfaces:
  ``app`` (Typer application), ``fetch``, ``uid``, ``folders``, ``watch``,
  ``main``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - ``stdout`` carries only JSON lines; logs never leak message content.
"""
from __future__ import annotations

import imaplib
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config.loader import ConfigLoadError, load_runtime_config
from .config.schema import RuntimeConfig
from .core.records import FetchOptions, MessageRecord
from .imap import fetch as batch
from .imap.client import ImapConfig, MailFetchImapClient
from .imap.errors import MailFetchError
from .imap.idle import idle
from .imap.search import SearchCriteria
from .utils.logging import JsonLogger, get_logger


app = typer.Typer(help="Read-only IMAP mailbox reader")

_OPERATIONAL_ERRORS = (MailFetchError, imaplib.IMAP4.error, OSError, RuntimeError, ValueError)


def _logger() -> JsonLogger:
    return get_logger("mailfetch.cli")


def _emit(payload: Dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str))


def _runtime(ctx: typer.Context) -> RuntimeConfig:
    path = (ctx.obj or {}).get("config_path")
    try:
        return load_runtime_config(path)
    except ConfigLoadError as exc:
        _logger().error("runtime_load_failed", error=str(exc))
        raise typer.Exit(code=1) from exc


def _client(runtime: RuntimeConfig) -> MailFetchImapClient:
    return MailFetchImapClient(ImapConfig.from_settings(runtime.imap))


def _options(runtime: RuntimeConfig, no_headers: bool, no_body: bool, no_attachments: bool) -> FetchOptions:
    defaults = runtime.fetch.options()
    return FetchOptions(
        include_headers=defaults.include_headers and not no_headers,
        include_body=defaults.include_body and not no_body,
        include_attachments=defaults.include_attachments and not no_attachments,
    )


def _fail(event: str, exc: BaseException) -> typer.Exit:
    _logger().error(event, error=repr(exc))
    return typer.Exit(code=1)


@app.callback()
def _main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config.yaml (defaults to MAILFETCH_CONFIG_PATH, then standard locations).",
    ),
) -> None:
    ctx.obj = {"config_path": config}


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    folder: Optional[str] = typer.Option(None, help="Folder to read (defaults to imap.folder)."),
    limit: Optional[int] = typer.Option(None, help="Keep only the newest N messages."),
    subject: Optional[str] = typer.Option(None, help="Subject contains."),
    sender: Optional[str] = typer.Option(None, "--from", help="From contains."),
    to: Optional[str] = typer.Option(None, help="To contains."),
    cc: Optional[str] = typer.Option(None, help="Cc contains."),
    text: Optional[str] = typer.Option(None, "--body-contains", help="Body contains."),
    message_id: Optional[str] = typer.Option(None, "--message-id", help="Message-ID equals."),
    unseen: bool = typer.Option(False, "--unseen", help="Only unseen messages."),
    flagged: bool = typer.Option(False, "--flagged", help="Only flagged messages."),
    since: Optional[str] = typer.Option(None, help="Sent on or after this date."),
    before: Optional[str] = typer.Option(None, help="Sent before this date."),
    no_headers: bool = typer.Option(False, "--no-headers", help="Omit the header map."),
    no_body: bool = typer.Option(False, "--no-body", help="Skip body decoding."),
    no_attachments: bool = typer.Option(False, "--no-attachments", help="Omit attachments."),
) -> None:
    """Print messages from a folder, optionally filtered by search criteria."""

    runtime = _runtime(ctx)
    options = _options(runtime, no_headers, no_body, no_attachments)
    try:
        criteria = SearchCriteria(
            subject=subject,
            from_=sender,
            to=to,
            cc=cc,
            body=text,
            message_id=message_id,
            unseen=unseen,
            flagged=flagged,
            since=since,
            before=before,
        )
        effective_limit = limit if limit is not None else runtime.fetch.limit
        with _client(runtime) as client:
            records: List[MessageRecord] = batch.messages(
                client,
                folder or runtime.imap.folder,
                None if criteria.is_empty() else criteria,
                limit=effective_limit,
                options=options,
            )
    except _OPERATIONAL_ERRORS as exc:
        raise _fail("fetch_failed", exc) from exc
    for record in records:
        _emit(record.to_dict())


@app.command("uid")
def uid(
    ctx: typer.Context,
    uids: List[int] = typer.Argument(..., help="One or more message UIDs."),
    folder: Optional[str] = typer.Option(None, help="Folder to read (defaults to imap.folder)."),
    no_headers: bool = typer.Option(False, "--no-headers", help="Omit the header map."),
    no_body: bool = typer.Option(False, "--no-body", help="Skip body decoding."),
    no_attachments: bool = typer.Option(False, "--no-attachments", help="Omit attachments."),
) -> None:
    """Print the messages with the given UIDs; unknown UIDs are skipped."""

    runtime = _runtime(ctx)
    options = _options(runtime, no_headers, no_body, no_attachments)
    try:
        with _client(runtime) as client:
            records = batch.by_uid(client, folder or runtime.imap.folder, uids, options=options)
    except _OPERATIONAL_ERRORS as exc:
        raise _fail("uid_fetch_failed", exc) from exc
    for record in records:
        _emit(record.to_dict())


@app.command("folders")
def folders(ctx: typer.Context) -> None:
    """Print every folder with its kind and message counts."""

    runtime = _runtime(ctx)
    try:
        with _client(runtime) as client:
            infos = client.list_folders()
    except _OPERATIONAL_ERRORS as exc:
        raise _fail("folders_failed", exc) from exc
    for info in infos:
        _emit(
            {
                "name": info.name,
                "full_name": info.full_name,
                "kind": info.kind,
                "message_count": info.message_count,
                "unread_count": info.unread_count,
            }
        )


@app.command("watch")
def watch(
    ctx: typer.Context,
    folder: Optional[str] = typer.Option(None, help="Folder to watch (defaults to imap.folder)."),
    keep_alive: Optional[float] = typer.Option(None, help="Seconds per IDLE cycle (defaults to idle.keep_alive_s)."),
    heartbeat: Optional[float] = typer.Option(None, help="Seconds between heartbeat NOOPs."),
    max_messages: Optional[int] = typer.Option(None, help="Stop after printing N messages."),
    no_headers: bool = typer.Option(False, "--no-headers", help="Omit the header map."),
    no_body: bool = typer.Option(False, "--no-body", help="Skip body decoding."),
    no_attachments: bool = typer.Option(False, "--no-attachments", help="Omit attachments."),
) -> None:
    """Print one JSON line per new message until interrupted.

    What:
      Runs the IDLE push loop on the selected folder and streams every newly
      delivered message.

    How:
      The loop runs on the calling thread; ``Ctrl-C`` closes the folder and
      exits with code ``0``. ``--max-messages`` sets the loop's cancel event
      once enough messages were printed.
    """

    runtime = _runtime(ctx)
    options = _options(runtime, no_headers, no_body, no_attachments)
    settings = runtime.idle
    cancel = threading.Event()
    log = _logger()
    delivered = 0

    def on_message(record: MessageRecord) -> None:
        nonlocal delivered
        _emit(record.to_dict())
        delivered += 1
        if max_messages is not None and delivered >= max_messages:
            cancel.set()

    target = folder or runtime.imap.folder
    try:
        with _client(runtime) as client:
            log.info("watch_started", folder=target)
            idle(
                client,
                target,
                on_message,
                options=options,
                keep_alive=keep_alive or settings.keep_alive_s,
                error_backoff=settings.error_backoff_s,
                heartbeat_interval=heartbeat or settings.heartbeat_interval_s,
                wait_slice=settings.wait_slice_s,
                cancel=cancel,
                logger=log,
            )
    except KeyboardInterrupt:
        log.info("watch_stopped", folder=target, delivered=delivered)
        raise typer.Exit(code=0) from None
    except _OPERATIONAL_ERRORS as exc:
        raise _fail("watch_failed", exc) from exc
    log.info("watch_stopped", folder=target, delivered=delivered)


def main() -> None:
    """Execute the Typer application entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
