import asyncio
import logging
from datetime import timedelta
from typing import Optional

from tierguard.services.subscription_resolver import SubscriptionResolver

logger = logging.getLogger(__name__)


class SubscriptionPoller:
    """Scheduled refresh of recently active users' subscription state."""

    def __init__(self, resolver: SubscriptionResolver, interval_seconds: int, idle_minutes: int):
        self.resolver = resolver
        self.interval_seconds = interval_seconds
        self.idle_cutoff = timedelta(minutes=idle_minutes)
        self._task: Optional[asyncio.Task] = None

    async def poll_once(self) -> int:
        """
        Forget idle users, then refresh every recently seen user once.
        Returns the number refreshed.
        """
        self.resolver.evict_idle(self.idle_cutoff)
        user_ids = self.resolver.recently_seen(self.idle_cutoff)
        if user_ids:
            await asyncio.gather(*(self.resolver.refresh(uid, scheduled=True) for uid in user_ids))
        logger.info(f"poll_once: Success - refreshed: {len(user_ids)}")
        return len(user_ids)

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.poll_once()

    def start(self):
        if self._task is None:
            logger.info(f"SubscriptionPoller: Starting - every {self.interval_seconds}s")
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("SubscriptionPoller: Stopped")
