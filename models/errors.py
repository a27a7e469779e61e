"""
Error taxonomy for the sync pipeline

Configuration, provider and storage errors end a single sync and are shown
to the user. Enrichment item errors never leave the enrichment layer.
"""
from datetime import datetime
from typing import Optional


class SyncError(Exception):
    """Base class for errors a sync can end with"""

    kind = "sync_error"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message

    def to_dict(self) -> dict:
        return {"type": self.kind, "message": self.user_message}


class ConfigurationError(SyncError):
    """A required API key or per-business external identifier is missing. Not retried."""

    kind = "configuration_error"


class ProviderError(SyncError):
    """Network, auth or quota failure from an external review source. Safe to retry later."""

    kind = "provider_error"

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"[{provider}] {message}", user_message=f"{provider} sync failed: {message}")
        self.provider = provider
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["provider"] = self.provider
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data


class StorageError(SyncError):
    """Upsert failed (constraint violation, connectivity). Nothing from the batch was written."""

    kind = "storage_error"

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message, user_message=f"Failed to save reviews: {message}")
        self.constraint = constraint

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.constraint:
            data["constraint"] = self.constraint
        return data


class EnrichmentItemError(SyncError):
    """Analysis of a single review failed; the review keeps null enrichment"""

    kind = "enrichment_item_error"

    def __init__(self, item_ref: str, reason: str):
        super().__init__(f"Analysis failed for {item_ref}: {reason}")
        self.item_ref = item_ref
        self.reason = reason


class RateLimitedError(SyncError):
    """Sync deferred because the platform was synced too recently"""

    kind = "rate_limited"

    def __init__(self, platform: str, next_available_at: Optional[datetime], reason: str = ""):
        when = next_available_at.isoformat() if next_available_at else "later"
        message = reason or f"{platform} was synced recently. Next sync available at {when}"
        super().__init__(message)
        self.platform = platform
        self.next_available_at = next_available_at

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["next_available_at"] = self.next_available_at.isoformat() if self.next_available_at else None
        return data
