# src/filesift/errors.py
"""Exception types for the scan engine."""


class FilesiftError(Exception):
    """Base exception for filesift errors."""

    pass


class RootUnreadableError(FilesiftError):
    """The scan root itself could not be listed; fatal for the scan."""

    def __init__(self, root: str, cause: OSError):
        super().__init__(f"Cannot read directory {root}: {cause.strerror or cause}")
        self.root = root
        self.cause = cause

