"""
Sync run record returned by the orchestrator
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from models.errors import SyncError


class SyncState(str, Enum):
    """Orchestrator states; the last five are terminal"""
    IDLE = "idle"
    RATE_CHECK = "rate_check"
    FETCHING = "fetching"
    UPSERTING = "upserting"
    ENRICHING = "enriching"
    DONE = "done"
    RATE_LIMITED = "rate_limited"
    CONFIG_ERROR = "config_error"
    FETCH_FAILED = "fetch_failed"
    UPSERT_FAILED = "upsert_failed"


TERMINAL_STATES = {
    SyncState.DONE,
    SyncState.RATE_LIMITED,
    SyncState.CONFIG_ERROR,
    SyncState.FETCH_FAILED,
    SyncState.UPSERT_FAILED,
}


@dataclass
class SyncFailure:
    """A single item that could not be processed"""
    item_ref: str
    reason: str


@dataclass
class SyncRun:
    """Outcome of one (business, platform) sync"""
    business_id: str
    platform: str
    started_at: datetime
    state: SyncState = SyncState.IDLE
    finished_at: Optional[datetime] = None
    fetched_count: int = 0
    new_count: int = 0
    updated_count: int = 0
    enriched_count: int = 0
    # None when enrichment did not run (disabled or aborted)
    enrichment_attempted: Optional[int] = None
    failures: List[SyncFailure] = field(default_factory=list)
    warning: Optional[str] = None
    error: Optional[SyncError] = None
    next_available_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.state == SyncState.DONE

    @property
    def enrichment_pending(self) -> int:
        """Stored reviews from this run that still lack enrichment"""
        if self.enrichment_attempted is None:
            return self.new_count
        return max(0, self.enrichment_attempted - self.enriched_count)

    def to_dict(self) -> dict:
        """Convert to the JSON shape the dashboard consumes"""
        data = {
            "business_id": self.business_id,
            "platform": self.platform,
            "state": self.state.value,
            "success": self.succeeded,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "fetched_count": self.fetched_count,
            "new_count": self.new_count,
            "updated_count": self.updated_count,
            "enriched_count": self.enriched_count,
            "failures": [{"item_ref": f.item_ref, "reason": f.reason} for f in self.failures],
        }
        if self.warning:
            data["warning"] = self.warning
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.next_available_at is not None:
            data["next_available_at"] = self.next_available_at.isoformat()
        return data

    def summary(self) -> str:
        """One-line message for toasts and logs"""
        if self.state == SyncState.DONE:
            message = f"{self.new_count + self.updated_count} {self.platform} review(s) synced"
            if self.enrichment_pending:
                message += f", enrichment pending for {self.enrichment_pending}"
            return message
        if self.error is not None:
            return self.error.user_message
        return f"{self.platform} sync ended in state {self.state.value}"
