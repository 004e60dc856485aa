"""Temporary single-message folders handed to the editor."""

import logging
import mailbox
import os
import stat
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import SurrogateCreateError, TruncateError, describe
from .store import Mailbox, OpenMode, StoreFormat

logger = logging.getLogger(__name__)

SURROGATE_PREFIX = "emledit-"
WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


class SurrogateMbox(mailbox.mbox):
    """One-message mbox that stores body lines as they are.

    Only the first line of a surrogate is ever taken as an envelope, so
    body lines starting with "From " are not escaped to ">From ".
    """
    _mangle_from_ = False


def create_surrogate(tmpdir: str | Path | None = None) -> Path:
    """Allocate a unique, empty temporary file for one message."""
    try:
        fd, name = tempfile.mkstemp(prefix=SURROGATE_PREFIX, dir=tmpdir)
    except OSError as exc:
        raise SurrogateCreateError(f"could not create temporary folder: {describe(exc)}") from exc
    os.close(fd)
    return Path(name)


@contextmanager
def open_surrogate(path: Path, fmt: StoreFormat = StoreFormat.MBOX) -> Iterator[Mailbox]:
    """Open the surrogate as an empty mailbox of the given format."""
    box_class = SurrogateMbox if fmt is StoreFormat.MBOX else None
    box = Mailbox(path, fmt, box_class=box_class).open(OpenMode.NEW)
    try:
        yield box
    finally:
        box.close()


def trim_trailing_separator(path: Path, size: int) -> None:
    """Drop the last byte, which belongs to the mbox separator, not the message.

    Without this the message grows by one line every time it is edited.
    """
    if size == 0:
        return
    try:
        os.truncate(path, size - 1)
    except OSError as exc:
        raise TruncateError(f"could not truncate temporary mail folder: {describe(exc)}") from exc


def restrict_to_read_only(path: Path) -> bool:
    """Remove write permissions. Returns False (and logs) if that fails."""
    try:
        mode = os.stat(path).st_mode
        os.chmod(path, stat.S_IMODE(mode) & ~WRITE_BITS)
    except OSError as exc:
        logger.debug("Could not remove write permissions of %s: %s", path, describe(exc))
        return False
    return True


def discard(path: Path) -> None:
    """Remove the surrogate."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
