"""Detect edits by comparing modification times."""

import os
import time
from pathlib import Path

from .errors import StatError, describe

NS_PER_SEC = 1_000_000_000


def capture_baseline(path: Path) -> int:
    """Pin the file's mtime to a whole second in the past and return it (ns).

    The baseline is never the current second, so a save made right away
    still moves the mtime on filesystems with one-second timestamps.
    """
    try:
        st = os.stat(path)
        seconds = int(st.st_mtime)
        if seconds >= int(time.time()):
            seconds -= 1
        baseline = seconds * NS_PER_SEC
        os.utime(path, ns=(st.st_atime_ns, baseline))
    except OSError as exc:
        raise StatError(f"Can't stat {path}: {describe(exc)}") from exc
    return baseline


def has_changed(path: Path, baseline: int) -> bool:
    """Whether the file's mtime moved away from the baseline."""
    try:
        return os.stat(path).st_mtime_ns != baseline
    except OSError as exc:
        raise StatError(f"Can't stat {path}: {describe(exc)}") from exc
