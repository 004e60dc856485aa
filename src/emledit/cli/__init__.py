"""CLI package for emledit.

This package organizes CLI commands into modules:
- messages.py: ls, edit, view
- utils.py: Shared utilities and helpers
"""

import click
from dotenv import load_dotenv

from .utils import AliasGroup, setup_logging

from .messages import edit, ls, view


@click.group(cls=AliasGroup, aliases={
    'e': 'edit',
    'l': 'ls',
    'v': 'view',
})
@click.option('-v', '--verbose', count=True, help="Log more (repeat for debug output)")
def main(verbose: int):
    """Edit or view stored messages in an external editor."""
    load_dotenv()
    setup_logging(verbose)


main.add_command(edit)
main.add_command(ls)
main.add_command(view)


__all__ = [
    'main',
    'edit',
    'ls',
    'view',
]
