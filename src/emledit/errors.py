"""Exceptions raised while editing stored messages."""


def describe(exc: BaseException) -> str:
    """Return the system error text for an exception (strerror when present)."""
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    return str(exc)


class EditError(Exception):
    """Base class for edit/view failures."""


class SurrogateCreateError(EditError):
    """The temporary single-message folder could not be created."""


class StatError(EditError):
    """A file could not be inspected."""


class TruncateError(EditError):
    """The trailing separator byte could not be removed."""


class StoreOpenError(EditError):
    """A mailbox could not be opened."""


class AppendError(StoreOpenError):
    """A mailbox could not be opened for appending."""


class WriteError(EditError):
    """Writing a record (header, body or commit) failed."""


class EditorError(EditError):
    """The external editor could not be started."""
