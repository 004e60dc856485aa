"""Move a message between a mailbox and its surrogate file.

The surrogate is always a one-message mbox, whatever the format of the
mailbox the message lives in. Going out, the message is appended to the
surrogate with length headers dropped. Coming back, the first line of the
surrogate decides how the record separator is handled:

- ``FORCE``: the surrogate starts with a valid "From " line and the mailbox
  uses one, so it is kept as the new record's separator.
- ``NONE``: there is a "From " line but the mailbox has no use for it.
- ``ADD``: the line is missing (the user removed it); envelope formats get a
  synthesized one, other formats don't need one.
"""

import logging
import shutil
from dataclasses import replace
from enum import Enum
from pathlib import Path

from .errors import EditError, WriteError, describe
from .headers import CopyFlags, copy_header, is_from
from .store import Mailbox, RecordFlags, StoreFormat, StoredMessage
from .surrogate import open_surrogate

logger = logging.getLogger(__name__)

SURROGATE_FORMAT = StoreFormat.MBOX


class SeparatorMode(Enum):
    ADD = "add"
    FORCE = "force"
    NONE = "none"


def classify_separator(first_line: bytes, fmt: StoreFormat) -> SeparatorMode:
    """Pick how the record separator is handled when writing into fmt."""
    if is_from(first_line):
        return SeparatorMode.FORCE if fmt.has_envelope else SeparatorMode.NONE
    return SeparatorMode.ADD


def extract_one(source: Mailbox, message: StoredMessage, path: Path) -> StoredMessage:
    """Write `message` into the (empty) surrogate at path."""
    chflags = CopyFlags.NOLEN
    if not source.format.has_envelope:
        chflags |= CopyFlags.NOSTATUS
    try:
        with open_surrogate(path, SURROGATE_FORMAT) as surrogate:
            return surrogate.append_message(source, message, chflags)
    except EditError as exc:
        raise WriteError(f"could not write temporary mail folder: {exc}") from exc
    except OSError as exc:
        raise WriteError(f"could not write temporary mail folder: {describe(exc)}") from exc


def reintegrate_one(dest: Mailbox, message: StoredMessage, path: Path) -> StoredMessage:
    """Append the surrogate at path to dest as a new record.

    The new record gets the message's flags with read/old cleared, so it
    shows up as new. `message` itself is not touched; flagging it is up to
    the caller once this returns.

    Raises WriteError or AppendError; dest is unchanged when that happens.
    """
    try:
        fp = open(path, "rb")
    except OSError as exc:
        raise WriteError(f"Can't open message file: {describe(exc)}") from exc

    with fp:
        mode = classify_separator(fp.readline(), dest.format)
        fp.seek(0)

        chflags = CopyFlags.NOLEN
        if mode is SeparatorMode.FORCE:
            chflags |= CopyFlags.FROM
        if not dest.format.has_envelope:
            chflags |= CopyFlags.NOSTATUS

        flags = replace(RecordFlags.from_message(message), read=False, old=False)
        record = dest.open_new_record(flags, add_from=mode is SeparatorMode.ADD)
        try:
            copy_header(fp, record.fp, chflags)
            record.fp.write(b"\n")
            shutil.copyfileobj(fp, record.fp)
        except OSError as exc:
            raise WriteError(f"could not write message: {describe(exc)}") from exc

    logger.debug("reintegrating %s into %s (separator: %s)", path, dest.path, mode.value)
    with dest.appending():
        return dest.commit_record(record)
