"""Shared fixtures: small mailboxes in each format."""

import mailbox

import pytest

from emledit.store import Mailbox, OpenMode

ENVELOPE = b"From alice@example.com Thu Jan  4 10:00:00 2024\n"
FROM_BODY = "Hi\nFrom here on, things change\n"


def make_message(subject: str, body: str, sender: str = "alice@example.com", extra: str = "") -> bytes:
    """Build a raw message (no envelope line)."""
    return (
        f"From: {sender}\n"
        "To: bob@example.com\n"
        f"Subject: {subject}\n"
        "Date: Thu, 04 Jan 2024 10:00:00 +0000\n"
        f"Message-ID: <{subject.lower()}@example.com>\n"
        f"{extra}"
        "\n"
        f"{body}"
    ).encode()


def write_mbox(path, *messages: bytes) -> None:
    path.write_bytes(b"".join(ENVELOPE + msg + b"\n" for msg in messages))


def append_text(text: bytes):
    """Fake editor that appends text to the file."""
    calls = []

    def run(command, path):
        calls.append(path)
        with open(path, "ab") as f:
            f.write(text)
        return 0

    run.calls = calls
    return run


def untouched(command, path):
    return 0


@pytest.fixture
def tmpdir_(tmp_path):
    """Directory for surrogate files, so tests can check what is left behind."""
    path = tmp_path / "surrogates"
    path.mkdir()
    return path


@pytest.fixture
def mbox_path(tmp_path):
    path = tmp_path / "inbox"
    write_mbox(
        path,
        make_message("First", "hello\n"),
        make_message("Second", "two\n"),
        make_message("Third", "three\n"),
    )
    return path


@pytest.fixture
def inbox(mbox_path):
    box = Mailbox(mbox_path).open(OpenMode.APPEND)
    yield box
    box.close()


@pytest.fixture
def maildir_path(tmp_path):
    path = tmp_path / "Maildir"
    md = mailbox.Maildir(str(path), create=True)
    md.add(make_message("First", "hello\n", extra="Status: RO\n"))
    md.add(make_message("Second", "two\n"))
    md.close()
    return path


@pytest.fixture
def maildir(maildir_path):
    box = Mailbox(maildir_path).open(OpenMode.APPEND)
    yield box
    box.close()


@pytest.fixture
def mh_path(tmp_path):
    path = tmp_path / "mh"
    box = mailbox.MH(str(path), create=True)
    box.add(make_message("First", "hello\n"))
    box.close()
    return path
