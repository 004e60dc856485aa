"""Edit or view stored email messages in an external editor."""

from .edit import (
    EditMode,
    EditResult,
    ResultCode,
    edit_message,
    edit_or_view,
    edit_or_view_one,
    view_message,
)
from .store import Flag, Mailbox, OpenMode, RecordFlags, StoreFormat, StoredMessage

__all__ = [
    "EditMode",
    "EditResult",
    "Flag",
    "Mailbox",
    "OpenMode",
    "RecordFlags",
    "ResultCode",
    "StoreFormat",
    "StoredMessage",
    "edit_message",
    "edit_or_view",
    "edit_or_view_one",
    "view_message",
]
