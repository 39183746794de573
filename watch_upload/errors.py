"""
Error types for Watch Upload.

All errors inherit from WatchUploadError for easy catching.
"""


class WatchUploadError(Exception):
    """Base exception for all watch-folder failures."""


class SubscriptionError(WatchUploadError):
    """Raised when a directory subscription cannot be acquired."""

    def __init__(self, folder_path: str, reason: str):
        self.folder_path = folder_path
        self.reason = reason
        super().__init__(f"Cannot watch {folder_path}: {reason}")


class StagingError(WatchUploadError):
    """Raised when the staging directory cannot be created."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot create staging folder {path}: {reason}")


class MoveError(WatchUploadError):
    """Raised when a file cannot be moved into the staging folder."""

    def __init__(self, source: str, destination: str, reason: str):
        self.source = source
        self.destination = destination
        self.reason = reason
        super().__init__(f"Cannot move {source} -> {destination}: {reason}")


class UploadError(WatchUploadError):
    """Raised when a copied file does not match its source."""

    def __init__(self, source: str, destination: str, reason: str):
        self.source = source
        self.destination = destination
        self.reason = reason
        super().__init__(f"Upload of {source} -> {destination} failed: {reason}")
