from __future__ import annotations


class UserError(Exception):
    """A rejected command. The message is shown to the invoking user as-is."""


class AlreadyActive(UserError):
    def __init__(self) -> None:
        super().__init__("You are already clocked in.")


class NotActive(UserError):
    def __init__(self, message: str = "You are not clocked in.") -> None:
        super().__init__(message)


class NotAuthorized(UserError):
    def __init__(self) -> None:
        super().__init__("Only managers can use this command.")


class InvalidDateRange(UserError):
    pass


class ClockSkew(UserError):
    def __init__(self) -> None:
        super().__init__("The current time is not after your clock-in time. Try again in a moment.")


class StorageError(Exception):
    """Local snapshot could not be written."""


class MirrorError(Exception):
    """Remote mirror request failed. Retried on the next push."""
