import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from tierguard.core.error_logger import log_failure
from tierguard.core.exceptions import SubscriptionFetchError
from tierguard.models.entitlement import SubscriptionRecord, SubscriptionState
from tierguard.services.subscription_fetcher import SubscriptionFetcher

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(seconds=60)


@dataclass
class _CachedRecord:
    record: SubscriptionRecord
    error: Optional[str]
    fetched_at: datetime


class SubscriptionResolver:
    """
    Identity-keyed subscription cache with single-flight fetching.

    One instance is created per application (or per test) and injected where
    needed. The cache is written only by ``_run_fetch``; a result is stored
    only while its task is still the registered in-flight fetch of its user
    id, so a fetch issued before a logout, account switch or idle eviction
    can never land in the cache afterwards.

    Records older than ``max_age`` are still served, flagged as loading, while
    a background fetch replaces them.
    """

    def __init__(self, fetcher: SubscriptionFetcher, max_age: timedelta = DEFAULT_MAX_AGE):
        self._fetcher = fetcher
        self._max_age = max_age
        self._records: Dict[str, _CachedRecord] = {}
        self._in_flight: Dict[str, "asyncio.Task[None]"] = {}
        self._orphans: Set["asyncio.Task[None]"] = set()
        self._last_seen: Dict[str, datetime] = {}

    def peek(self, user_id: str) -> SubscriptionState:
        """Current snapshot; never starts a fetch."""
        cached = self._records.get(user_id)
        loading = cached is None or user_id in self._in_flight
        if cached is None:
            return SubscriptionState(record=None, is_loading=loading)
        # Stale-while-revalidate: keep serving the last record during a refresh
        return SubscriptionState(record=cached.record, is_loading=loading, error=cached.error)

    def state(self, user_id: str) -> SubscriptionState:
        """Non-blocking snapshot; starts a fetch when nothing fresh is cached."""
        self._touch(user_id)
        if user_id not in self._records or self._is_stale(user_id):
            self._ensure_fetch(user_id)
        return self.peek(user_id)

    async def resolve(self, user_id: str) -> SubscriptionState:
        """
        Return the cached state, fetching first if nothing is cached. A stale
        record is returned immediately while a revalidation runs.
        """
        logger.info(f"resolve: Entry - user: {user_id}")
        self._touch(user_id)
        if user_id not in self._records:
            await asyncio.shield(self._ensure_fetch(user_id))
        elif self._is_stale(user_id):
            logger.info(f"resolve: Revalidating - user: {user_id}")
            self._ensure_fetch(user_id)
        snapshot = self.peek(user_id)
        logger.info(f"resolve: Success - user: {user_id}, loading: {snapshot.is_loading}")
        return snapshot

    async def refresh(self, user_id: str, scheduled: bool = False) -> None:
        """
        Force a re-fetch. Joins a fetch already in flight for the user instead
        of issuing a second one. Never raises for fetch errors; they are
        stored as the fail-closed record.

        Scheduled refreshes do not count as activity, so a polled user still
        goes idle.
        """
        logger.info(f"refresh: Entry - user: {user_id}")
        if not scheduled:
            self._touch(user_id)
        await asyncio.shield(self._ensure_fetch(user_id))
        logger.info(f"refresh: Success - user: {user_id}")

    def invalidate(self, user_id: str) -> None:
        """Drop everything known about a user id and orphan its in-flight fetch."""
        logger.info(f"invalidate: Entry - user: {user_id}")
        self._records.pop(user_id, None)
        self._last_seen.pop(user_id, None)
        task = self._in_flight.pop(user_id, None)
        if task is not None and not task.done():
            # Orphans run to completion; their result is discarded
            self._orphans.add(task)
            task.add_done_callback(self._orphans.discard)

    def switch_identity(self, previous_user_id: Optional[str], new_user_id: Optional[str]) -> None:
        """Hard identity change (logout, account switch)."""
        if previous_user_id and previous_user_id != new_user_id:
            self.invalidate(previous_user_id)

    def recently_seen(self, idle_cutoff: timedelta) -> List[str]:
        """User ids resolved within ``idle_cutoff``; candidates for scheduled refresh."""
        threshold = datetime.now(timezone.utc) - idle_cutoff
        return [uid for uid, seen in self._last_seen.items() if seen >= threshold]

    def evict_idle(self, idle_cutoff: timedelta) -> List[str]:
        """Forget users not resolved within ``idle_cutoff``. Returns the evicted ids."""
        threshold = datetime.now(timezone.utc) - idle_cutoff
        idle = [uid for uid, seen in self._last_seen.items() if seen < threshold]
        for user_id in idle:
            self.invalidate(user_id)
        if idle:
            logger.info(f"evict_idle: Success - evicted: {len(idle)}")
        return idle

    def _touch(self, user_id: str) -> None:
        self._last_seen[user_id] = datetime.now(timezone.utc)

    def _is_stale(self, user_id: str) -> bool:
        cached = self._records[user_id]
        return datetime.now(timezone.utc) - cached.fetched_at > self._max_age

    def _ensure_fetch(self, user_id: str) -> "asyncio.Task[None]":
        task = self._in_flight.get(user_id)
        if task is not None:
            return task

        task = asyncio.get_running_loop().create_task(self._run_fetch(user_id))
        self._in_flight[user_id] = task
        return task

    async def _run_fetch(self, user_id: str) -> None:
        this_task = asyncio.current_task()
        try:
            try:
                record = await self._fetcher.fetch(user_id)
                error = None
            except Exception as e:
                log_failure(logger, "fetch_subscription", e, user=user_id)
                record = SubscriptionRecord.fail_closed()
                error = SubscriptionFetchError().message
        except BaseException:
            if self._in_flight.get(user_id) is this_task:
                del self._in_flight[user_id]
            raise

        if self._in_flight.get(user_id) is not this_task:
            logger.info(f"fetch_subscription: Discarded stale result - user: {user_id}")
            return

        del self._in_flight[user_id]
        self._records[user_id] = _CachedRecord(
            record=record,
            error=error,
            fetched_at=datetime.now(timezone.utc),
        )
        logger.info(f"fetch_subscription: Stored - user: {user_id}, subscribed: {record.subscribed}")
