"""Run the user's editor on a file."""

import logging
import os
import shlex
import subprocess
from pathlib import Path

from .errors import EditorError, describe

logger = logging.getLogger(__name__)

DEFAULT_EDITOR = "vi"


def resolve_editor(configured: str | None = None) -> str:
    """Editor command: configured value, then $VISUAL, $EDITOR, then vi."""
    for candidate in (configured, os.environ.get("VISUAL"), os.environ.get("EDITOR")):
        if candidate and candidate.strip():
            return candidate.strip()
    return DEFAULT_EDITOR


def run_editor(command: str, path: Path) -> int:
    """Open path in the editor and wait for it to exit.

    `command` may carry arguments ("emacs -nw"). Returns the exit status.
    """
    argv = shlex.split(command)
    if not argv:
        raise EditorError("Editor command is empty")
    try:
        result = subprocess.run([*argv, str(path)], check=False)
    except OSError as exc:
        raise EditorError(f"Error running \"{command}\": {describe(exc)}") from exc
    if result.returncode != 0:
        logger.debug("%s exited with status %d", argv[0], result.returncode)
    return result.returncode
