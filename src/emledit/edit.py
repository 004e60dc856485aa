"""Edit or view stored messages in an external editor.

A message is copied into a temporary one-message mbox (the surrogate), the
editor is run on it, and if the surrogate's mtime changed the content is
appended to the mailbox as a new message. The original is then flagged
deleted + purged, to be expunged by the next Mailbox.sync(). It is never
modified in place, so a failure at any point leaves it as it was; failures
after the editor ran keep the surrogate on disk so the edit isn't lost.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from .bridge import extract_one, reintegrate_one
from .editor import resolve_editor, run_editor as launch_editor
from .errors import EditError, EditorError, StatError, describe
from .mtime import capture_baseline, has_changed
from .store import Flag, Mailbox, StoredMessage
from .surrogate import create_surrogate, discard, restrict_to_read_only, trim_trailing_separator

logger = logging.getLogger(__name__)

EditorRunner = Callable[[str, Path], int]


class EditMode(Enum):
    EDIT = "edit"
    VIEW = "view"  # changes made in the editor are ignored


class ResultCode(Enum):
    UNCHANGED = "unchanged"  # nothing written back
    COMMITTED = "committed"  # surrogate replaced the message
    FAILED = "failed"        # aborted; surrogate kept if it held an edit


@dataclass
class EditResult:
    """Outcome of editing or viewing one message."""
    code: ResultCode
    message: StoredMessage
    reason: str | None = None
    surrogate: Path | None = None  # set when the surrogate was preserved
    empty: bool = False  # the user emptied the file; treated as a no-op
    replacement: StoredMessage | None = None

    @property
    def ok(self) -> bool:
        return self.code is not ResultCode.FAILED


def _size(path: Path) -> int:
    try:
        return os.stat(path).st_size
    except OSError as exc:
        raise StatError(f"Can't stat {path}: {describe(exc)}") from exc


def _edit_surrogate(
    mode: EditMode,
    mailbox: Mailbox,
    message: StoredMessage,
    path: Path,
    editor: str,
    run_editor: EditorRunner,
) -> EditResult:
    trim_trailing_separator(path, _size(path))
    if mode is EditMode.VIEW:
        restrict_to_read_only(path)

    baseline = capture_baseline(path)
    try:
        run_editor(editor, path)
    except EditorError as exc:
        logger.error("%s", exc)

    if _size(path) == 0:
        return EditResult(ResultCode.UNCHANGED, message, reason="Message file is empty", empty=True)

    changed = has_changed(path, baseline)
    if mode is EditMode.EDIT and not changed:
        return EditResult(ResultCode.UNCHANGED, message, reason="Message not modified")
    if mode is EditMode.VIEW:
        reason = "Message of read-only mailbox modified! Ignoring changes." if changed else None
        return EditResult(ResultCode.UNCHANGED, message, reason=reason)

    replacement = reintegrate_one(mailbox, message, path)
    return EditResult(ResultCode.COMMITTED, message, replacement=replacement)


def edit_or_view_one(
    mode: EditMode,
    mailbox: Mailbox,
    message: StoredMessage,
    *,
    editor: str | None = None,
    tmpdir: str | Path | None = None,
    delete_untag: bool = True,
    run_editor: EditorRunner = launch_editor,
) -> EditResult:
    """Edit (or view) one message of `mailbox` in an external editor.

    Args:
        mode: EDIT writes changes back, VIEW never touches the mailbox
        mailbox: Open mailbox that owns `message`
        message: The message to edit
        editor: Editor command (default: $VISUAL, $EDITOR, vi)
        tmpdir: Directory for the surrogate file (default: system temp dir)
        delete_untag: Untag the original once it has been replaced
        run_editor: Called as run_editor(editor, path); blocks until done

    Returns:
        EditResult. COMMITTED means a new message was appended and the
        original flagged deleted/purged/read; call mailbox.sync() to expunge it.
    """
    editor = resolve_editor(editor)

    try:
        path = create_surrogate(tmpdir)
    except EditError as exc:
        return EditResult(ResultCode.FAILED, message, reason=str(exc))

    try:
        extract_one(mailbox, message, path)
    except EditError as exc:
        # Nothing in the surrogate that isn't still in the mailbox.
        discard(path)
        return EditResult(ResultCode.FAILED, message, reason=str(exc))

    try:
        result = _edit_surrogate(mode, mailbox, message, path, editor, run_editor)
    except EditError as exc:
        result = EditResult(ResultCode.FAILED, message, reason=str(exc))

    if result.code is ResultCode.COMMITTED:
        mailbox.set_flag(message, Flag.DELETED)
        mailbox.set_flag(message, Flag.PURGED)
        mailbox.set_flag(message, Flag.READ)
        if delete_untag:
            mailbox.set_flag(message, Flag.TAGGED, False)
        logger.info("replaced message %s in %s", message.key, mailbox.path)

    if result.ok:
        try:
            discard(path)
        except OSError as exc:
            logger.warning("Could not remove %s: %s", path, describe(exc))
    else:
        result.surrogate = path
        logger.warning("Error. Preserving temporary file: %s", path)
    return result


def edit_or_view(
    mode: EditMode,
    mailbox: Mailbox,
    message: StoredMessage | None = None,
    **options,
) -> list[EditResult]:
    """Edit or view `message`, or every tagged message when it is None.

    Tagged messages are handled in stored order, one at a time. The first
    FAILED result ends the batch; messages already replaced stay replaced.
    Messages appended along the way are not visited.
    """
    if message is not None:
        return [edit_or_view_one(mode, mailbox, message, **options)]

    results = []
    for candidate in list(mailbox.messages):
        if not candidate.tagged:
            continue
        result = edit_or_view_one(mode, mailbox, candidate, **options)
        results.append(result)
        if result.code is ResultCode.FAILED:
            break
    return results


def edit_message(mailbox: Mailbox, message: StoredMessage | None = None, **options) -> list[EditResult]:
    """Edit a message (or the tagged messages)."""
    return edit_or_view(EditMode.EDIT, mailbox, message, **options)


def view_message(mailbox: Mailbox, message: StoredMessage | None = None, **options) -> list[EditResult]:
    """View a message (or the tagged messages); changes are discarded."""
    return edit_or_view(EditMode.VIEW, mailbox, message, **options)
