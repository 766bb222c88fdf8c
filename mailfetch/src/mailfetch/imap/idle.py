"""Long-lived IMAP IDLE loop delivering new messages as records.

What:
  Keep one folder open, block in IDLE until the server announces new mail,
  project every new message, and hand it to a callback. Recover from servers
  without IDLE, from keep-alive timeouts, and from transient errors without
  tearing the session down.

Why:
  Servers drop idle connections after roughly thirty minutes and some never
  implement IDLE at all. A push consumer should not have to know either; it
  registers a callback and stops the loop when done.

How:
  :func:`idle` registers a listener on the
  :class:`~mailfetch.imap.folder.Folder`, then repeatedly calls
  :meth:`~mailfetch.imap.folder.Folder.wait_for_push` with the keep-alive
  period as timeout. Without IDLE it sleeps for the keep-alive period and polls
  with ``NOOP``. Other errors go to ``on_error`` followed by a back-off. All
  sleeps are ``Event.wait`` calls on the cancel event, so stopping is prompt.
  An optional heartbeat thread periodically interrupts the wait and issues a
  ``NOOP`` under the folder lock. :func:`idle_async` runs the loop on a daemon
  thread and returns an :class:`IdleSession` to stop it.

Interfaces:
  :class:`IdleState`, :func:`idle`, :func:`idle_async`, :class:`IdleSession`.

Invariants & Safety:
  - The listener is removed and the folder closed exactly once on every exit
    path, including exceptions raised by the loop itself.
  - A failing ``on_message`` callback is reported and never ends the loop.
  - Each message UID is delivered at most once per loop.
"""
from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, List, Optional

from ..core.projector import project
from ..core.records import FetchOptions, MessageRecord
from ..utils.logging import JsonLogger, get_logger
from .client import MailFetchImapClient
from .errors import FolderClosedError, IdleNotSupportedError
from .fetch import fetch_profile
from .folder import Folder, MessageHandle


DEFAULT_KEEP_ALIVE = 1680.0
DEFAULT_ERROR_BACKOFF = 5.0

MessageCallback = Callable[[MessageRecord], None]
ErrorCallback = Callable[[BaseException], None]
StateCallback = Callable[["IdleState"], None]


class IdleState(str, Enum):
    """Observable phases of the push loop."""

    IDLE = "idle"
    NOTIFIED = "notified"
    POLLING = "polling"
    CLOSED = "closed"


def _default_error_sink(logger: JsonLogger, folder_name: str) -> ErrorCallback:
    def report(exc: BaseException) -> None:
        logger.error("idle loop error", folder=folder_name, error=repr(exc))

    return report


class _Heartbeat:
    """Background thread calling :meth:`Folder.keepalive` periodically."""

    def __init__(
        self,
        client: MailFetchImapClient,
        folder: Folder,
        interval: float,
        cancel: threading.Event,
        on_error: ErrorCallback,
    ):
        self._client = client
        self._folder = folder
        self._interval = interval
        self._cancel = cancel
        self._on_error = on_error
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"mailfetch-heartbeat-{folder.name}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()

    def _alive(self) -> bool:
        return (
            not self._stopped.is_set()
            and not self._cancel.is_set()
            and self._client.is_connected()
            and self._folder.is_open()
        )

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            if not self._alive():
                return
            try:
                self._folder.keepalive()
            except FolderClosedError:
                return
            except Exception as exc:
                self._on_error(exc)


def idle(
    client: MailFetchImapClient,
    folder_name: str,
    on_message: MessageCallback,
    *,
    options: Optional[FetchOptions] = None,
    on_error: Optional[ErrorCallback] = None,
    keep_alive: float = DEFAULT_KEEP_ALIVE,
    error_backoff: float = DEFAULT_ERROR_BACKOFF,
    cancel: Optional[threading.Event] = None,
    heartbeat_interval: Optional[float] = None,
    on_state: Optional[StateCallback] = None,
    wait_slice: float = 1.0,
    logger: Optional[JsonLogger] = None,
) -> None:
    """Run the push loop on the calling thread until it ends.

    What:
      Opens ``folder_name`` read-only and delivers every message that arrives
      afterwards to ``on_message`` as a :class:`MessageRecord`. Returns when
      ``cancel`` is set, the folder is closed, or the connection is lost.

    How:
      Each iteration waits in IDLE for at most ``keep_alive`` seconds, which
      also re-issues IDLE before typical server timeouts. New messages are
      prefetched in one ``FETCH`` and projected with ``options`` inside the
      folder listener. Exceptions from ``on_message`` and from the loop body
      are passed to ``on_error`` (a structured error log by default).

    Args:
      client: Connected :class:`MailFetchImapClient`.
      folder_name: Folder to watch.
      on_message: Called once per new message.
      options: Projection switches for delivered messages.
      on_error: Error sink; defaults to logging through :class:`JsonLogger`.
      keep_alive: Maximum seconds per IDLE wait, and the sleep before polling
        when IDLE is unsupported.
      error_backoff: Seconds to wait after an error before the next attempt.
      cancel: Event that stops the loop; a private one is used when omitted.
      heartbeat_interval: When set, seconds between heartbeat ``NOOP``s.
      on_state: Optional hook receiving :class:`IdleState` transitions.
      wait_slice: Granularity at which a blocked wait notices cancellation.
      logger: Logger for state transitions and the default error sink.
    """

    options = options or FetchOptions()
    cancel = cancel if cancel is not None else threading.Event()
    log = logger or get_logger("mailfetch.idle")
    report = on_error or _default_error_sink(log, folder_name)
    profile = fetch_profile(options)

    def transition(state: IdleState) -> None:
        log.debug("idle state", folder=folder_name, state=state.value)
        if on_state is not None:
            on_state(state)

    folder = client.open_folder(folder_name, readonly=True, wait_slice=wait_slice)

    def listener(handles: List[MessageHandle]) -> None:
        transition(IdleState.NOTIFIED)
        try:
            folder.prefetch(handles, profile)
        except FolderClosedError:
            raise
        except Exception as exc:
            report(exc)
        for handle in handles:
            try:
                on_message(project(handle, options))
            except Exception as exc:
                report(exc)

    folder.add_message_listener(listener)
    heartbeat: Optional[_Heartbeat] = None
    try:
        if heartbeat_interval:
            heartbeat = _Heartbeat(client, folder, heartbeat_interval, cancel, report)
            heartbeat.start()
        while folder.is_open() and client.is_connected() and not cancel.is_set():
            try:
                try:
                    transition(IdleState.IDLE)
                    folder.wait_for_push(timeout=keep_alive, cancel=cancel)
                except IdleNotSupportedError:
                    transition(IdleState.POLLING)
                    if cancel.wait(keep_alive):
                        break
                    folder.check_messages()
            except FolderClosedError:
                break
            except Exception as exc:
                report(exc)
                cancel.wait(error_backoff)
    finally:
        if heartbeat is not None:
            heartbeat.stop()
        folder.remove_message_listener(listener)
        try:
            folder.close()
        finally:
            transition(IdleState.CLOSED)


class IdleSession:
    """Handle on a push loop running in a background thread."""

    def __init__(self, thread: threading.Thread, cancel: threading.Event):
        self.thread = thread
        self.cancel = cancel

    def is_running(self) -> bool:
        return self.thread.is_alive()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Request the loop to stop and wait up to ``timeout`` seconds.

        Returns:
          ``True`` when the thread has finished.
        """

        self.cancel.set()
        self.thread.join(timeout)
        return not self.thread.is_alive()


def idle_async(
    client: MailFetchImapClient,
    folder_name: str,
    on_message: MessageCallback,
    **kwargs: Any,
) -> IdleSession:
    """Start :func:`idle` on a daemon thread named ``mailfetch-idle-<folder>``.

    Accepts the same keyword arguments as :func:`idle`. A ``cancel`` event
    passed in is reused by the returned :class:`IdleSession`.
    """

    cancel = kwargs.pop("cancel", None) or threading.Event()
    thread = threading.Thread(
        target=idle,
        args=(client, folder_name, on_message),
        kwargs=dict(kwargs, cancel=cancel),
        name=f"mailfetch-idle-{folder_name}",
        daemon=True,
    )
    thread.start()
    return IdleSession(thread, cancel)
