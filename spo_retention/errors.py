"""Exceptions raised by the SharePoint and Blob clients."""

from typing import Optional


class RetentionToolError(Exception):
    """Base class for all tool errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ConnectionFailure(RetentionToolError):
    """Login rejected or no token could be obtained for a resource."""


class RemoteCallError(RetentionToolError):
    """A management API replied with a non-success status."""


class StoreNotFound(RetentionToolError):
    """The site has no Preservation Hold Library."""


class ItemFailure(RetentionToolError):
    """A single item could not be downloaded or uploaded."""
