"""Message commands: ls, edit, view."""

import sys
from pathlib import Path

import click
import humanize
from click import argument, echo, option, style
from rich.console import Console
from rich.table import Table

from ..edit import EditMode, EditResult, ResultCode, edit_or_view
from ..errors import WriteError
from ..store import Flag, OpenMode

from .utils import (
    err,
    format_date,
    format_flags,
    format_option,
    get_config,
    open_mailbox,
)


def report(result: EditResult) -> None:
    """Print the outcome of one edit/view."""
    num = result.message.index + 1
    if result.code is ResultCode.COMMITTED:
        echo(f"{style('✓', fg='green')} {num}: message replaced")
    elif result.code is ResultCode.UNCHANGED:
        if result.reason:
            echo(f"{style('·', fg='bright_black')} {num}: {result.reason}")
    else:
        err(f"{style('✗', fg='red')} {num}: {result.reason}")
        if result.surrogate:
            err(f"Error. Preserving temporary file: {result.surrogate}")


def run(mode: EditMode, path: Path, numbers: tuple[int, ...], editor: str | None, fmt: str | None) -> None:
    """Shared body of `edit` and `view`."""
    config = get_config()
    open_mode = OpenMode.APPEND if mode is EditMode.EDIT else OpenMode.READ
    with open_mailbox(path, fmt, config, open_mode) as mailbox:
        try:
            targets = [mailbox.get(num - 1) for num in numbers]
        except IndexError as e:
            err(f"Error: {e}")
            sys.exit(1)

        options = dict(
            editor=editor or config.editor,
            tmpdir=config.tmpdir,
            delete_untag=config.delete_untag,
        )
        if len(targets) == 1:
            results = edit_or_view(mode, mailbox, targets[0], **options)
        else:
            for target in targets:
                mailbox.set_flag(target, Flag.TAGGED)
            results = edit_or_view(mode, mailbox, **options)

        for result in results:
            report(result)

        if any(r.code is ResultCode.COMMITTED for r in results):
            try:
                mailbox.sync()
            except WriteError as e:
                err(f"Error: {e}")
                sys.exit(1)

    if any(r.code is ResultCode.FAILED for r in results):
        sys.exit(1)


message_option = option(
    '-m', '--message', 'numbers', type=int, multiple=True, required=True,
    help="Message number as shown by `ls` (repeat to edit several)",
)
editor_option = option('-e', '--editor', help="Editor command (default: $VISUAL, $EDITOR, vi)")


@click.command()
@format_option
@argument('path', type=click.Path(path_type=Path))
def ls(fmt: str | None, path: Path):
    """List messages in a mailbox.

    \b
    Flags: N new, O old (unread), r replied, ! flagged, D deleted
    """
    config = get_config()
    with open_mailbox(path, fmt, config) as mailbox:
        if not mailbox.messages:
            echo(f"No messages in {path}")
            return

        table = Table(title=f"{path} ({mailbox.format.value})")
        table.add_column("#", justify="right")
        table.add_column("Flags")
        table.add_column("Date")
        table.add_column("From", style="cyan")
        table.add_column("Subject")
        table.add_column("Size", justify="right")
        for message in mailbox:
            table.add_row(
                str(message.index + 1),
                format_flags(message),
                format_date(message),
                message.from_addr[:30] or "?",
                message.subject or "(no subject)",
                humanize.naturalsize(message.size),
            )
        Console().print(table)


@click.command()
@format_option
@editor_option
@message_option
@argument('path', type=click.Path(path_type=Path))
def edit(fmt: str | None, editor: str | None, numbers: tuple[int, ...], path: Path):
    """Edit messages in an external editor.

    Saved changes replace the original message. Quitting without saving, or
    emptying the file, leaves the mailbox alone.

    \b
    Examples:
      emledit edit ~/Mail/inbox -m 3            # Edit message 3
      emledit edit ~/Mail/inbox -m 3 -m 5       # Edit messages 3 and 5
      emledit edit -e "emacs -nw" Maildir -m 1  # Use a specific editor
    """
    run(EditMode.EDIT, path, numbers, editor, fmt)


@click.command()
@format_option
@editor_option
@message_option
@argument('path', type=click.Path(path_type=Path))
def view(fmt: str | None, editor: str | None, numbers: tuple[int, ...], path: Path):
    """View messages in an external editor. Changes are discarded."""
    run(EditMode.VIEW, path, numbers, editor, fmt)
