"""Services package."""

from seven_sync.services.exceptions import FriendlyError, InternalError

__all__ = ["FriendlyError", "InternalError"]
