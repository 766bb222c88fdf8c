"""
Module: tests/unit/test_projector.py

What:
    Verify the projection of folder handles and parsed messages into
    :class:`MessageRecord` values.

Why:
    The projector decides which IMAP attributes land in which record field and
    how much of the message is downloaded. Mistakes show up as wrong subjects,
    lost repeated headers, or full-body downloads when only headers were asked
    for.

How:
    Deliver messages to the in-memory backend, open the folder through the
    real client wrapper, and project handles with different
    :class:`FetchOptions`. Parsed-message projection is tested without any
    server at all.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from fakes import build_message

from mailfetch.core.projector import collect_headers, flags_from_imap, project, project_message, uid_of
from mailfetch.core.records import Address, FetchOptions, Flag
from mailfetch.utils.mime import load_eml, parse_message


def test_flags_from_imap_maps_system_flags_only():
    flags = flags_from_imap([b"\\Seen", "\\Flagged", b"$Label1", b"\\DRAFT"])
    assert flags == frozenset({Flag.SEEN, Flag.FLAGGED, Flag.DRAFT})
    assert flags_from_imap(None) == frozenset()


def test_collect_headers_promotes_repeats_to_tuples():
    """
    What:
        Repeated header names keep every value in encounter order.

    Why:
        ``Received`` chains are read top to bottom; collapsing them to the
        last value would hide the delivery path.
    """

    message = parse_message(
        build_message(headers=[("Received", "from a"), ("Received", "from b"), ("X-Tag", "one")])
    )

    headers = collect_headers(message)

    assert headers["Received"] == ("from a", "from b")
    assert headers["X-Tag"] == "one"
    assert list(headers)[:5] == ["Subject", "From", "To", "Date", "Message-ID"]


def test_project_message_reads_headers_without_server():
    message = parse_message(
        build_message(
            subject="Café menu",
            to="Bob <bob@example.com>, carol@example.org",
            html="<p>menu</p>",
        )
    )

    record = project_message(message, uid=7, flags=[b"\\Answered"])

    assert record.uid == 7
    assert record.sequence_number == 0
    assert record.subject == "Café menu"
    assert record.message_id == "<msg@example.com>"
    assert record.from_ == (Address(display_name="Alice Example", address="alice@example.com"),)
    assert record.to == (
        Address(display_name="Bob", address="bob@example.com"),
        Address(display_name=None, address="carol@example.org"),
    )
    assert record.cc is None
    assert record.date_sent == datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    assert record.flags == frozenset({Flag.ANSWERED})
    assert record.body.text == "plain body\n"
    assert record.body.html == "<p>menu</p>\n"
    assert record.content_type.startswith("multipart/alternative")


def test_project_handle_uses_envelope_and_flags(imap_client):
    """
    What:
        Project a handle from an opened folder with default options.

    How:
        Deliver a message with an encoded subject and ``\\Seen``, fetch it by
        UID, and compare envelope-derived fields and the received date.
    """

    client, backend = imap_client
    backend.deliver(
        build_message(subject="Café", attachments=[("notes.pdf", "application/pdf", b"%PDF")]),
        flags=(b"\\Seen",),
    )
    folder = client.open_folder("INBOX")
    handle = folder.get_message_by_uid(1)

    record = project(handle)

    assert record.uid == 1
    assert record.sequence_number == 1
    assert record.subject == "Café"
    assert record.message_id == "<msg@example.com>"
    assert record.from_ == (Address(display_name="Alice Example", address="alice@example.com"),)
    assert record.to == (Address(display_name=None, address="bob@example.com"),)
    assert record.date_received == datetime(2024, 5, 1, 9, 31, tzinfo=timezone.utc)
    assert record.flags == frozenset({Flag.SEEN})
    assert record.body.text == "plain body\n"
    assert [(item.filename, item.data) for item in record.body.attachments] == [("notes.pdf", b"%PDF")]
    assert record.headers["Subject"] == "Café"


def test_project_without_body_fetches_header_block_only(imap_client):
    client, backend = imap_client
    backend.deliver(build_message())
    folder = client.open_folder("INBOX")
    handle = folder.get_message_by_uid(1)

    record = project(handle, FetchOptions(include_body=False))

    fetched = [item for call in backend.calls if call[0] == "fetch" for item in call[2]]
    assert "BODY.PEEK[HEADER]" in fetched
    assert "BODY.PEEK[]" not in fetched
    assert record.body is None
    assert record.headers["Message-ID"] == "<msg@example.com>"
    assert record.content_type.startswith("text/plain")


def test_project_without_attachments_or_headers(imap_client):
    client, backend = imap_client
    backend.deliver(build_message(attachments=[("a.bin", "application/octet-stream", b"\x00")]))
    folder = client.open_folder("INBOX")

    record = project(
        folder.get_message_by_uid(1),
        FetchOptions(include_headers=False, include_attachments=False),
    )

    assert record.headers is None
    assert record.body.text == "plain body\n"
    assert record.body.attachments is None


def test_uid_of_returns_none_when_folder_cannot_tell():
    class _Folder:
        def get_uid(self, handle):
            raise RuntimeError("closed")

    assert uid_of(SimpleNamespace(folder=_Folder())) is None


def test_record_is_frozen_and_serialisable(imap_client):
    """
    What:
        The record outlives the connection and renders to JSON primitives.

    Why:
        The CLI prints ``to_dict()`` after the client has disconnected; the
        record must carry everything and refuse mutation.
    """

    client, backend = imap_client
    backend.deliver(
        build_message(
            headers=[("Received", "from a"), ("Received", "from b")],
            attachments=[("a.txt", "application/octet-stream", b"hi")],
        ),
        flags=(b"\\Flagged", b"\\Seen"),
    )
    folder = client.open_folder("INBOX")
    record = project(folder.get_message_by_uid(1))
    folder.close()

    payload = record.to_dict()

    assert payload["uid"] == 1
    assert payload["from"] == [{"name": "Alice Example", "address": "alice@example.com"}]
    assert payload["cc"] is None
    assert payload["flags"] == ["flagged", "seen"]
    assert payload["date_sent"] == "2024-05-01T09:30:00+00:00"
    assert payload["headers"]["Received"] == ["from a", "from b"]
    assert payload["body"]["attachments"] == [
        {"filename": "a.txt", "content_type": "application/octet-stream", "size": 2, "data": "aGk="}
    ]
    with pytest.raises(TypeError):
        record.headers["Subject"] = "changed"
    with pytest.raises(AttributeError):
        record.subject = "changed"


def test_project_message_from_eml_file(tmp_path):
    path = tmp_path / "saved.eml"
    path.write_bytes(build_message(subject="From disk", to=None))

    record = project_message(load_eml(path), FetchOptions(include_headers=False))

    assert record.subject == "From disk"
    assert record.to is None
    assert record.headers is None
    assert record.body.attachments == ()


def test_missing_content_type_reports_mime_default():
    """
    What:
        A message without a ``Content-Type`` header reports ``text/plain``.

    Why:
        RFC 2045 defines the default; callers branching on the content type
        must not special-case ``None`` for bare messages.
    """

    message = parse_message(b"Subject: bare\r\nMessage-ID: <bare@example.com>\r\n\r\nhello\r\n")

    record = project_message(message)

    assert record.content_type == "text/plain"
    assert record.body.text.rstrip() == "hello"
