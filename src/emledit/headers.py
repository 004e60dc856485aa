"""Header block copying with per-format filtering."""

import re
from enum import IntFlag
from typing import BinaryIO

LENGTH_HEADERS = (b"content-length:", b"lines:")
STATUS_HEADERS = (b"status:", b"x-status:")

# From <sender> <Wkd> <Mon> <dd> <hh:mm[:ss]> [zone] <yyyy>
_FROM_RE = re.compile(
    rb"^From \S+\s+"
    rb"(?:[A-Za-z]{3},?\s+)?"
    rb"[A-Za-z]{3}\s+\d{1,2}\s+"
    rb"\d{1,2}:\d{2}(?::\d{2})?\s+"
    rb"(?:[A-Za-z+\-0-9]+\s+)?"
    rb"\d{2,4}\s*$"
)


class CopyFlags(IntFlag):
    """Options for copy_header."""
    NONE = 0
    FROM = 1      # keep a leading envelope ("From ") line
    NOLEN = 2     # drop Content-Length: and Lines:
    NOSTATUS = 4  # drop Status: and X-Status:


def is_from(line: bytes | str) -> bool:
    """Check whether a line is an mbox envelope line.

    Only a well-formed line counts, e.g.
    ``From alice@example.com Thu Jan  4 10:00:00 2024``. A body line that
    merely starts with "From " is not an envelope.
    """
    if isinstance(line, str):
        line = line.encode("utf-8", "surrogateescape")
    return bool(_FROM_RE.match(line.rstrip(b"\r\n")))


def _dropped(line: bytes, flags: CopyFlags) -> bool:
    lower = line.lower()
    if flags & CopyFlags.NOLEN and lower.startswith(LENGTH_HEADERS):
        return True
    if flags & CopyFlags.NOSTATUS and lower.startswith(STATUS_HEADERS):
        return True
    return False


def copy_header(
    src: BinaryIO,
    dst: BinaryIO,
    flags: CopyFlags = CopyFlags.NONE,
    limit: int | None = None,
) -> int:
    """Copy the header block of src to dst.

    Reads from the current position of src through the blank line that ends
    the header block. The blank line is consumed but not written, so src is
    left at the first body byte. Continuation lines follow the fate of the
    header they belong to. Reading stops early after `limit` bytes.

    Returns the number of bytes written.
    """
    written = 0
    consumed = 0
    first = True
    skipping = False
    while limit is None or consumed < limit:
        line = src.readline()
        if not line:
            break
        consumed += len(line)
        if line in (b"\n", b"\r\n"):
            break
        if not line.endswith(b"\n"):
            line += b"\n"

        if first:
            first = False
            if line.startswith(b"From "):
                if flags & CopyFlags.FROM:
                    dst.write(line)
                    written += len(line)
                continue

        if line[:1] in (b" ", b"\t"):
            if skipping:
                continue
        else:
            skipping = _dropped(line, flags)
            if skipping:
                continue
        dst.write(line)
        written += len(line)
    return written
