"""Shared CLI utilities and helpers."""

import logging
import os
import sys
from pathlib import Path

import click

from ..config import EditConfig, load_config
from ..errors import StoreOpenError
from ..store import Mailbox, OpenMode, StoreFormat, StoredMessage

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def err(*args, **kwargs):
    """Print to stderr."""
    print(*args, file=sys.stderr, **kwargs)


def setup_logging(verbose: int = 0) -> None:
    """Configure logging from -v count, or EMLEDIT_LOG_LEVEL if set."""
    level_name = os.environ.get("EMLEDIT_LOG_LEVEL")
    if level_name:
        level = getattr(logging, level_name.upper(), logging.WARNING)
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S", level=level)
    logging.getLogger("emledit").setLevel(level)


def get_config() -> EditConfig:
    """Load config, exiting with an error if it is invalid."""
    try:
        return load_config()
    except (OSError, ValueError) as e:
        err(f"Error: {e}")
        sys.exit(1)


def open_mailbox(path: Path, fmt: str | None, config: EditConfig, mode: OpenMode = OpenMode.READ) -> Mailbox:
    """Open a mailbox, exiting with an error on failure."""
    try:
        mailbox = Mailbox(path, StoreFormat(fmt) if fmt else None, default_format=config.default_format)
        return mailbox.open(mode)
    except StoreOpenError as e:
        err(f"Error: {e}")
        sys.exit(1)


def format_flags(message: StoredMessage) -> str:
    """Flag column for message listings."""
    flags = ""
    if message.deleted:
        flags += "D"
    elif not message.read:
        flags += "O" if message.old else "N"
    if message.replied:
        flags += "r"
    if message.flagged:
        flags += "!"
    return flags


def format_date(message: StoredMessage) -> str:
    return message.date.strftime("%Y-%m-%d") if message.date else "?"


# Shared options
format_option = click.option(
    '-F', '--format', 'fmt',
    type=click.Choice([f.value for f in StoreFormat]),
    help="Mailbox format (default: detected)",
)


class AliasGroup(click.Group):
    """Click group whose commands can also be invoked by short aliases."""

    def __init__(self, *args, aliases: dict[str, str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}

    def aliases_of(self, name: str) -> list[str]:
        return sorted(alias for alias, target in self.aliases.items() if target == name)

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        name, cmd, rest = super().resolve_command(ctx, args)
        return self.aliases.get(name, name), cmd, rest

    def format_commands(self, ctx, formatter):
        """List commands as "name (alias, ...)"."""
        rows = []
        for name in self.list_commands(ctx):
            cmd = self.get_command(ctx, name)
            if cmd is None or cmd.hidden:
                continue
            aliases = self.aliases_of(name)
            label = f"{name} ({', '.join(aliases)})" if aliases else name
            rows.append((label, cmd.get_short_help_str(limit=formatter.width)))
        if rows:
            with formatter.section("Commands"):
                formatter.write_dl(rows)
