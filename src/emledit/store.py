"""Message stores backed by the standard library mailbox module."""

import email.utils
import io
import logging
import mailbox
import os
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import Message
from email.parser import BytesHeaderParser
from enum import Enum
from pathlib import Path
from typing import Iterator

from .errors import AppendError, StoreOpenError, WriteError, describe
from .headers import CopyFlags, copy_header, is_from

logger = logging.getLogger(__name__)

MMDF_SEPARATOR = b"\x01\x01\x01\x01"


class StoreFormat(str, Enum):
    """On-disk mailbox formats."""
    MBOX = "mbox"
    MMDF = "mmdf"
    MAILDIR = "maildir"
    MH = "mh"

    @property
    def has_envelope(self) -> bool:
        """Records start with a "From " line and keep flags in Status: headers."""
        return self in (StoreFormat.MBOX, StoreFormat.MMDF)


class OpenMode(Enum):
    READ = "read"      # appends and sync are refused
    APPEND = "append"  # existing mailbox, open for changes
    NEW = "new"        # created empty


class Flag(str, Enum):
    """Message flags that can be set through Mailbox.set_flag()."""
    READ = "read"
    OLD = "old"
    FLAGGED = "flagged"
    REPLIED = "replied"
    TAGGED = "tagged"
    DELETED = "deleted"
    PURGED = "purged"


_BOX_CLASSES = {
    StoreFormat.MBOX: mailbox.mbox,
    StoreFormat.MMDF: mailbox.MMDF,
    StoreFormat.MAILDIR: mailbox.Maildir,
    StoreFormat.MH: mailbox.MH,
}

@dataclass(frozen=True)
class RecordFlags:
    """Flags a record is written with."""
    read: bool = False
    old: bool = False
    flagged: bool = False
    replied: bool = False

    @classmethod
    def from_message(cls, message: "StoredMessage") -> "RecordFlags":
        return cls(
            read=message.read,
            old=message.old,
            flagged=message.flagged,
            replied=message.replied,
        )


@dataclass(eq=False)
class StoredMessage:
    """A message in an open mailbox.

    `tagged`, `deleted` and `purged` only live in memory until
    Mailbox.sync() acts on them.
    """
    key: str | int
    index: int
    subject: str = ""
    from_addr: str = ""
    date: datetime | None = None
    size: int = 0
    read: bool = False
    old: bool = False
    flagged: bool = False
    replied: bool = False
    tagged: bool = False
    deleted: bool = False
    purged: bool = False
    mailbox: "Mailbox | None" = field(default=None, repr=False)
    saved_flags: RecordFlags = field(default_factory=RecordFlags, repr=False)

    @property
    def flags(self) -> RecordFlags:
        return RecordFlags.from_message(self)


@dataclass
class NewRecord:
    """A record being written, finished with Mailbox.commit_record()."""
    flags: RecordFlags
    add_from: bool = False
    fp: io.BytesIO = field(default_factory=io.BytesIO)


def detect_format(path: str | Path, default: StoreFormat = StoreFormat.MBOX) -> StoreFormat:
    """Guess the format of the mailbox at path.

    Missing or empty files take `default`.
    """
    path = Path(path)
    if path.is_dir():
        if all((path / sub).is_dir() for sub in ("cur", "new", "tmp")):
            return StoreFormat.MAILDIR
        if (path / ".mh_sequences").exists():
            return StoreFormat.MH
        raise StoreOpenError(f"{path}: not a Maildir or MH folder")
    if not path.exists():
        return default
    try:
        with open(path, "rb") as f:
            head = f.read(5)
    except OSError as exc:
        raise StoreOpenError(f"Can't open {path}: {describe(exc)}") from exc
    if not head:
        return default
    if head.startswith(MMDF_SEPARATOR):
        return StoreFormat.MMDF
    if head == b"From ":
        return StoreFormat.MBOX
    raise StoreOpenError(f"{path}: unknown mailbox format")


def _read_flags(fmt: StoreFormat, msg: Message) -> RecordFlags:
    if fmt.has_envelope:
        chars = msg.get_flags()
        return RecordFlags(read="R" in chars, old="O" in chars, flagged="F" in chars, replied="A" in chars)
    if fmt is StoreFormat.MAILDIR:
        chars = msg.get_flags()
        read = "S" in chars
        return RecordFlags(
            read=read,
            old=msg.get_subdir() == "cur" and not read,
            flagged="F" in chars,
            replied="R" in chars,
        )
    sequences = msg.get_sequences()
    return RecordFlags(
        read="unseen" not in sequences,
        flagged="flagged" in sequences,
        replied="replied" in sequences,
    )


def _apply_flags(fmt: StoreFormat, msg: Message, flags: RecordFlags) -> None:
    """Set flags on a mailbox message object, keeping flags we don't model."""
    if fmt.has_envelope:
        keep = "".join(c for c in msg.get_flags() if c not in "ROFA")
        wanted = [("R", flags.read), ("O", flags.old), ("F", flags.flagged), ("A", flags.replied)]
        msg.set_flags(keep + "".join(c for c, on in wanted if on))
    else:
        keep = "".join(c for c in msg.get_flags() if c not in "SFR")
        wanted = [("S", flags.read), ("F", flags.flagged), ("R", flags.replied)]
        msg.set_flags(keep + "".join(c for c, on in wanted if on))
        msg.set_subdir("cur" if flags.read or flags.old else "new")


def _update_sequences(sequences: dict[str, list[int]], key: int, flags: RecordFlags) -> None:
    """Update MH sequences in place so key carries flags."""
    for name, on in (("unseen", not flags.read), ("flagged", flags.flagged), ("replied", flags.replied)):
        members = sequences.setdefault(name, [])
        if on and key not in members:
            members.append(key)
        elif not on and key in members:
            members.remove(key)


def _parse_date(msg: Message) -> datetime | None:
    date_str = msg.get("Date", "")
    if not date_str:
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(str(date_str))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    except Exception:
        return None


def _envelope_line(data: bytes) -> bytes:
    """Build a "From " line for a record that lacks one."""
    headers = BytesHeaderParser().parsebytes(data)
    _, addr = email.utils.parseaddr(str(headers.get("From", "")))
    sender = addr.replace(" ", "") or "MAILER-DAEMON"
    return f"From {sender} {time.asctime(time.gmtime())}\n".encode("utf-8", "surrogateescape")


class Mailbox:
    """A mailbox and the messages it holds, in stored order.

    Usage:
        with Mailbox("~/Mail/inbox").open() as mbox:
            for message in mbox:
                ...
    """

    def __init__(
        self,
        path: str | Path,
        fmt: StoreFormat | None = None,
        default_format: StoreFormat = StoreFormat.MBOX,
        box_class: type[mailbox.Mailbox] | None = None,
    ):
        self.path = Path(path).expanduser()
        self.format = StoreFormat(fmt) if fmt else detect_format(self.path, default_format)
        self.mode: OpenMode | None = None
        self.messages: list[StoredMessage] = []
        self.box_class = box_class or _BOX_CLASSES[self.format]
        self._box: mailbox.Mailbox | None = None

    @property
    def box(self) -> mailbox.Mailbox:
        if self._box is None:
            raise RuntimeError("Mailbox not open")
        return self._box

    @property
    def is_open(self) -> bool:
        return self._box is not None

    def open(self, mode: OpenMode = OpenMode.READ) -> "Mailbox":
        """Open the mailbox. Only NEW creates it when missing."""
        if mode is OpenMode.NEW and self.path.is_file() and self.path.stat().st_size:
            raise StoreOpenError(f"Can't create {self.path}: mailbox is not empty")
        try:
            self._box = self.box_class(str(self.path), create=mode is OpenMode.NEW)
        except mailbox.NoSuchMailboxError as exc:
            raise StoreOpenError(f"Can't open {self.path}: no such mailbox") from exc
        except (OSError, mailbox.Error) as exc:
            raise StoreOpenError(f"Can't open {self.path}: {describe(exc)}") from exc
        self.mode = mode
        try:
            self._load()
        except (OSError, mailbox.Error) as exc:
            self.close()
            raise StoreOpenError(f"Can't read {self.path}: {describe(exc)}") from exc
        logger.debug("opened %s (%s, %s): %d messages", self.path, self.format.value, mode.value, len(self.messages))
        return self

    def close(self) -> None:
        """Flush pending appends and close."""
        if self._box is None:
            return
        try:
            self._box.close()
        finally:
            self._box = None
            self.mode = None

    def __enter__(self):
        if not self.is_open:
            self.open()
        return self

    def __exit__(self, *args):
        self.close()

    def __iter__(self) -> Iterator[StoredMessage]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def get(self, index: int) -> StoredMessage:
        """Get a message by its position in stored order."""
        if not 0 <= index < len(self.messages):
            raise IndexError(f"No message {index} in {self.path} ({len(self.messages)} messages)")
        return self.messages[index]

    def get_bytes(self, message: StoredMessage) -> bytes:
        """Raw record bytes, including the "From " line for envelope formats."""
        self._check(message)
        if self.format.has_envelope:
            return self.box.get_bytes(message.key, from_=True)
        return self.box.get_bytes(message.key)

    def set_flag(self, message: StoredMessage, flag: Flag, value: bool = True) -> None:
        """Set or clear a flag on one of this mailbox's messages."""
        self._check(message)
        flag = Flag(flag)
        setattr(message, flag.value, value)
        if flag is Flag.READ and value:
            message.old = False
        elif flag is Flag.DELETED and not value:
            message.purged = False

    @property
    def writable(self) -> bool:
        return self.is_open and self.mode is not OpenMode.READ

    @contextmanager
    def appending(self) -> Iterator["Mailbox"]:
        """Hold the mailbox lock around one append, flushing on success."""
        if not self.writable:
            raise AppendError(f"Can't append to folder: {self.path} is open read-only")
        try:
            self.box.lock()
        except (OSError, mailbox.Error) as exc:
            raise AppendError(f"Can't append to folder: {describe(exc)}") from exc
        try:
            yield self
            try:
                self.box.flush()
            except (OSError, mailbox.Error) as exc:
                raise WriteError(f"could not write message: {describe(exc)}") from exc
        finally:
            self.box.unlock()

    def open_new_record(self, flags: RecordFlags, add_from: bool = False) -> NewRecord:
        """Start a new record. Write the message to record.fp, then commit it."""
        return NewRecord(flags=flags, add_from=add_from)

    def commit_record(self, record: NewRecord) -> StoredMessage:
        """Add a finished record to the mailbox and return its handle.

        The bytes are stored as written. Envelope formats keep flags in
        their Status: header, and get a "From " line synthesized if the
        record asks for one. Maildir and MH get record.flags applied to the
        stored file afterwards.
        """
        data = record.fp.getvalue()
        if self.format.has_envelope and record.add_from and not data.startswith(b"From "):
            data = _envelope_line(data) + data
        try:
            key = self.box.add(data)
            if self.format is StoreFormat.MAILDIR:
                self._set_maildir_flags(key, record.flags)
            elif self.format is StoreFormat.MH:
                sequences = self.box.get_sequences()
                _update_sequences(sequences, key, record.flags)
                self.box.set_sequences(sequences)
            stored = self._stored(key, len(self.messages), self.box.get_message(key))
        except (OSError, mailbox.Error) as exc:
            raise WriteError(f"could not write message: {describe(exc)}") from exc
        self.messages.append(stored)
        logger.debug("committed %d bytes to %s as %s", len(data), self.path, key)
        return stored

    def append_message(
        self,
        source: "Mailbox",
        message: StoredMessage,
        chflags: CopyFlags = CopyFlags.NONE,
    ) -> StoredMessage:
        """Copy a message from another mailbox into this one."""
        try:
            raw = source.get_bytes(message)
        except (OSError, KeyError, mailbox.Error) as exc:
            raise WriteError(f"could not read message: {describe(exc)}") from exc
        src = io.BytesIO(raw)
        add_from = not is_from(src.readline())
        src.seek(0)
        if self.format.has_envelope:
            chflags |= CopyFlags.FROM

        record = self.open_new_record(RecordFlags.from_message(message), add_from=add_from)
        copy_header(src, record.fp, chflags)
        record.fp.write(b"\n")
        shutil.copyfileobj(src, record.fp)
        with self.appending():
            return self.commit_record(record)

    def sync(self) -> int:
        """Write changed flags, expunge deleted messages and reload.

        Returns the number of messages expunged.
        """
        if not self.writable:
            raise WriteError(f"could not sync {self.path}: mailbox is open read-only")
        tagged = {m.key for m in self.messages if m.tagged and not m.deleted}
        expunged = 0
        try:
            self.box.lock()
            try:
                changed = []
                for message in self.messages:
                    if message.deleted:
                        self.box.discard(message.key)
                        expunged += 1
                    elif message.flags != message.saved_flags:
                        changed.append(message)
                self._write_flags(changed)
                self.box.flush()
            finally:
                self.box.unlock()
            self._load()
        except (OSError, mailbox.Error) as exc:
            raise WriteError(f"could not sync {self.path}: {describe(exc)}") from exc
        for message in self.messages:
            message.tagged = message.key in tagged
        logger.info("synced %s: %d expunged", self.path, expunged)
        return expunged

    def _write_flags(self, messages: list[StoredMessage]) -> None:
        if not messages:
            return
        if self.format.has_envelope:
            for message in messages:
                stored = self.box.get_message(message.key)
                _apply_flags(self.format, stored, message.flags)
                self.box[message.key] = stored
        elif self.format is StoreFormat.MAILDIR:
            for message in messages:
                self._set_maildir_flags(message.key, message.flags)
        else:
            sequences = self.box.get_sequences()
            for message in messages:
                _update_sequences(sequences, message.key, message.flags)
            self.box.set_sequences(sequences)

    def _set_maildir_flags(self, key: str, flags: RecordFlags) -> None:
        """Rename a Maildir file so its subdir and info carry flags."""
        msg = self.box.get_message(key)
        old = self._maildir_file(key, msg)
        _apply_flags(self.format, msg, flags)
        new = self._maildir_file(key, msg)
        if new != old:
            os.rename(old, new)

    def _maildir_file(self, key: str, msg: mailbox.MaildirMessage) -> Path:
        info = msg.get_info()
        name = f"{key}{self.box.colon}{info}" if info else key
        return self.path / msg.get_subdir() / name

    def _check(self, message: StoredMessage) -> None:
        if message.mailbox is not self:
            raise ValueError(f"Message {message.key!r} does not belong to {self.path}")

    def _load(self) -> None:
        loaded = [(key, self.box.get_message(key)) for key in self.box.iterkeys()]
        if self.format is StoreFormat.MAILDIR:
            loaded.sort(key=lambda item: (item[1].get_date(), item[0]))
        else:
            loaded.sort(key=lambda item: item[0])
        self.messages = [self._stored(key, index, msg) for index, (key, msg) in enumerate(loaded)]

    def _stored(self, key: str | int, index: int, msg: Message) -> StoredMessage:
        flags = _read_flags(self.format, msg)
        return StoredMessage(
            key=key,
            index=index,
            subject=str(msg.get("Subject", "")),
            from_addr=str(msg.get("From", "")),
            date=_parse_date(msg),
            size=len(self.box.get_bytes(key)),
            read=flags.read,
            old=flags.old,
            flagged=flags.flagged,
            replied=flags.replied,
            mailbox=self,
            saved_flags=flags,
        )
