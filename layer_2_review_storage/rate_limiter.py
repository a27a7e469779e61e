"""
Per-(business, platform) sync cooldown

The last successful sync time is stored in business_platforms so the
cooldown survives restarts. A reservation is held in memory while a sync is
running, which keeps two concurrent syncs of the same key from both
passing the check.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from layer_2_review_storage.database import upsert_insert
from layer_2_review_storage.db_models import BusinessPlatformRecord
from models.errors import StorageError
from utils.clock import utc_now
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitDecision:
    allowed: bool
    next_available_at: Optional[datetime] = None
    reason: str = ""


class SyncRateLimiter:
    """Gatekeeper deciding whether a platform may be synced now"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self._in_flight: Set[Tuple[str, str]] = set()
        self._lock = asyncio.Lock()

    async def check_and_reserve(self, business_id: str, platform: str, window_seconds: int) -> RateLimitDecision:
        """
        Allow the sync and reserve the key, or deny with the next allowed time

        A zero window always allows (apart from a sync already in flight).
        The window is only consumed by commit().
        """
        key = (business_id, platform)
        async with self._lock:
            if key in self._in_flight:
                return RateLimitDecision(
                    allowed=False,
                    reason=f"A {platform} sync for this business is already in progress",
                )

            if window_seconds > 0:
                last_synced_at = await self.last_synced_at(business_id, platform)
                if last_synced_at is not None:
                    next_available_at = last_synced_at + timedelta(seconds=window_seconds)
                    if self.clock() < next_available_at:
                        logger.info(
                            f"{platform} sync for {business_id} denied until {next_available_at.isoformat()}"
                        )
                        return RateLimitDecision(
                            allowed=False,
                            next_available_at=next_available_at,
                            reason=f"{platform} was synced recently. Next sync available at "
                                   f"{next_available_at.isoformat()}",
                        )

            self._in_flight.add(key)
            return RateLimitDecision(allowed=True)

    async def commit(self, business_id: str, platform: str) -> datetime:
        """Record a successful sync and drop the reservation"""
        now = self.clock()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    dialect = session.bind.dialect.name
                    stmt = upsert_insert(dialect, BusinessPlatformRecord).values(
                        business_id=business_id,
                        platform=platform,
                        last_synced_at=now,
                    )
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["business_id", "platform"],
                        set_={"last_synced_at": now},
                    )
                    await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Could not record {platform} sync for {business_id}: {e}")
            raise StorageError(f"could not record sync time: {e.__class__.__name__}") from e
        finally:
            self.release(business_id, platform)
        return now

    def release(self, business_id: str, platform: str) -> None:
        """Drop the reservation without consuming the window"""
        self._in_flight.discard((business_id, platform))

    async def last_synced_at(self, business_id: str, platform: str) -> Optional[datetime]:
        try:
            async with self.session_factory() as session:
                return await session.scalar(
                    select(BusinessPlatformRecord.last_synced_at).where(
                        BusinessPlatformRecord.business_id == business_id,
                        BusinessPlatformRecord.platform == platform,
                    )
                )
        except SQLAlchemyError as e:
            raise StorageError(f"could not read last sync time: {e.__class__.__name__}") from e
