"""Usage ledger: per-user daily generation counts and quota checks."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Dict, Any

from config.tiers import TierTable
from errors import PersistenceFailure
from schemas.context import Capability, Tier, utc_now
from schemas.responses import TokenUsage, UsageCheck
from .models import UsageRecord
from .sqlite_store import SQLiteMemoryStore

logger = logging.getLogger(__name__)


class UsageLedger:
    """
    Append-only ledger of generations, source of quota truth.

    Every generation appends an independent record and quota is the count of
    records in the current UTC day, so concurrent writers for the same user
    never lose an increment.
    """

    def __init__(
        self,
        store: SQLiteMemoryStore,
        tiers: TierTable,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize the ledger.

        Args:
            store: Persistent store holding usage records
            tiers: Tier limits table
            clock: Returns the current UTC time (injectable for tests)
        """
        self.store = store
        self.tiers = tiers
        self.clock = clock

    def _day_window(self) -> tuple[datetime, datetime]:
        now = self.clock().astimezone(timezone.utc)
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1)

    def _month_window(self) -> tuple[datetime, datetime]:
        now = self.clock().astimezone(timezone.utc)
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end

    def used_today(self, user_id: str, capability: Capability) -> int:
        """Number of records for (user, capability) in the current UTC day."""
        start, end = self._day_window()
        return self.store.count_usage(user_id, capability.value, start, end)

    def check_usage_limits(
        self,
        user_id: str,
        capability: Capability,
        tier: Tier
    ) -> UsageCheck:
        """
        Check a user's daily quota for a capability.

        Args:
            user_id: User ID
            capability: Capability to check
            tier: User's subscription tier

        Returns:
            UsageCheck with allowed flag and used/limit/remaining counts
        """
        limit = self.tiers.daily_limit(tier, capability)
        if limit <= 0:
            return UsageCheck(allowed=False, used=0, limit=0, remaining=0)

        if not user_id:
            return UsageCheck(allowed=True, used=0, limit=limit, remaining=limit)

        try:
            used = self.used_today(user_id, capability)
        except PersistenceFailure as e:
            # Quota storage is unreachable; let the turn proceed
            logger.warning(f"Usage check failed for {user_id}/{capability.value}, allowing: {e}")
            return UsageCheck(allowed=True, used=0, limit=limit, remaining=limit)

        remaining = max(0, limit - used)
        return UsageCheck(allowed=used < limit, used=used, limit=limit, remaining=remaining)

    def record_usage(
        self,
        user_id: str,
        capability: Capability,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Append one usage record.

        Args:
            user_id: User ID
            capability: Capability that produced output
            metadata: Optional details (model, tokens, prompt excerpt)

        Returns:
            True if the record was persisted
        """
        if not user_id:
            return False

        record = UsageRecord(
            user_id=user_id,
            capability=capability.value,
            timestamp=self.clock(),
            metadata=metadata
        )
        try:
            self.store.append_usage(record)
        except PersistenceFailure as e:
            logger.error(f"Failed to record {capability.value} usage for {user_id}: {e}")
            return False

        logger.info(f"Recorded {capability.value} usage for {user_id}")
        return True

    def token_usage(self, user_id: str, tier: Tier) -> TokenUsage:
        """
        Tokens consumed this UTC month against the tier's monthly budget.

        Args:
            user_id: User ID
            tier: Subscription tier

        Returns:
            TokenUsage summary
        """
        budget = self.tiers.monthly_token_budget(tier)
        start, end = self._month_window()
        try:
            records = self.store.list_usage(user_id, start, end)
        except PersistenceFailure as e:
            logger.warning(f"Token usage lookup failed for {user_id}: {e}")
            records = []

        used = sum(int((r.metadata or {}).get("tokens", 0)) for r in records)
        return TokenUsage(used=used, budget=budget, remaining=max(0, budget - used))
