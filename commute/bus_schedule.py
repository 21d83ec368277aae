"""
Bus Schedule Provider for Lakeland Route 46.

ScheduleCache owns the scraped timetable: it serves a fresh copy directly,
refreshes a stale one (falling back to it if the refresh fails) and, with
nothing usable at all, serves the hand-transcribed fallback timetable.
Refreshes are single-flight so concurrent route computations share one fetch.
"""

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional

from commute import config
from commute.config import NY_TZ
from commute.fallback_schedule import FALLBACK_FETCHED_AT, FALLBACK_SCHEDULES
from commute.schedule_downloader import LakelandScheduleFetcher, ScheduleFetchError

logger = logging.getLogger("commute.bus_schedule")


def _utc_now():
    return datetime.now(timezone.utc)


def fallback_schedule_data():
    return {
        "fetchedAt": FALLBACK_FETCHED_AT,
        "schedules": {
            day_type: {direction: list(times) for direction, times in by_dir.items()}
            for day_type, by_dir in FALLBACK_SCHEDULES.items()
        },
    }


class CacheEntry:
    def __init__(self, data, timestamp):
        self.data = data
        self.timestamp = timestamp  # epoch seconds


class ScheduleCache:
    def __init__(
        self,
        fetcher=None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_seconds: int = config.SCHEDULE_TTL_SECONDS,
        max_stale_seconds: int = config.SCHEDULE_MAX_STALE_SECONDS,
        path: Optional[str] = config.SCHEDULE_CACHE_PATH,
        key: str = config.SCHEDULE_CACHE_KEY,
    ):
        self.fetcher = fetcher or LakelandScheduleFetcher()
        self.clock = clock or _utc_now
        self.ttl_seconds = ttl_seconds
        self.max_stale_seconds = max_stale_seconds
        self.path = path
        self.key = key
        self._entry: Optional[CacheEntry] = None
        self._lock = asyncio.Lock()
        if self.path:
            self._load()

    # --- persistence ---

    def _load(self):
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, encoding='utf-8') as f:
                stored = json.load(f)
            entry = stored.get(self.key)
            if entry:
                self._entry = CacheEntry(entry["data"], float(entry["timestamp"]))
                logger.info(f"Loaded cached schedule from {self.path}")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable schedule cache {self.path}: {e}")

    def _save(self):
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump({self.key: {"data": self._entry.data, "timestamp": self._entry.timestamp}}, f)
        except OSError as e:
            logger.warning(f"Could not persist schedule cache to {self.path}: {e}")

    # --- state ---

    def peek(self) -> Optional[CacheEntry]:
        return self._entry

    def set(self, data, now: Optional[datetime] = None):
        now = now or self.clock()
        self._entry = CacheEntry(data, now.timestamp())
        if self.path:
            self._save()

    def age_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        if self._entry is None:
            return None
        now = now or self.clock()
        return now.timestamp() - self._entry.timestamp

    def is_fresh(self, now: Optional[datetime] = None) -> bool:
        age = self.age_seconds(now)
        return age is not None and age < self.ttl_seconds

    # --- operations ---

    async def refresh(self, now: Optional[datetime] = None):
        """Force a fetch. Raises ScheduleFetchError and leaves the cache untouched on failure."""
        async with self._lock:
            return await self._refresh(now or self.clock())

    async def _refresh(self, now):
        logger.info("Fetching fresh schedule from Lakeland...")
        data = await asyncio.to_thread(self.fetcher.fetch_all)
        self.set(data, now)
        return data

    async def get(self):
        now = self.clock()
        if self.is_fresh(now):
            return self._entry.data

        async with self._lock:
            # another caller may have refreshed while we waited
            now = self.clock()
            if self.is_fresh(now):
                return self._entry.data

            entry = self._entry
            try:
                return await self._refresh(now)
            except ScheduleFetchError as e:
                if entry is not None:
                    age = now.timestamp() - entry.timestamp
                    if age < self.max_stale_seconds:
                        logger.warning(f"Failed to refresh stale schedule, using cached data: {e}")
                    else:
                        logger.warning(f"Failed to fetch schedule, using very old cache: {e}")
                    return entry.data
                logger.error(f"Failed to fetch schedule and no cache available, using fallback: {e}")
                return fallback_schedule_data()


class BusScheduleProvider:
    def __init__(self, cache: Optional[ScheduleCache] = None, tz=NY_TZ):
        self.cache = cache or ScheduleCache()
        self.tz = tz

    async def get_schedule(self):
        """{"fetchedAt": ..., "schedules": {weekday|weekend: {eastbound|westbound: ["HH:MM", ...]}}}"""
        return await self.cache.get()

    def metadata(self):
        entry = self.cache.peek()
        if entry is None:
            return {"lastUpdated": None, "isStale": True}
        return {"lastUpdated": entry.data.get("fetchedAt"), "isStale": not self.cache.is_fresh()}

    async def find_next_bus(self, after: datetime, direction) -> Optional[datetime]:
        """
        First scheduled departure at or after `after` on the same New York
        civil day, as an aware UTC datetime; None once the day's service is over.
        """
        direction = getattr(direction, 'value', direction)
        schedule = await self.get_schedule()
        local = after.astimezone(self.tz)
        day_type = 'weekend' if local.weekday() >= 5 else 'weekday'
        times = schedule["schedules"].get(day_type, {}).get(direction) or []

        candidates = []
        for time_str in times:
            try:
                hour, minute = (int(part) for part in time_str.split(':'))
            except ValueError:
                logger.warning(f"Skipping malformed schedule time {time_str!r}")
                continue
            naive = datetime(local.year, local.month, local.day, hour, minute)
            candidates.append(self.tz.localize(naive))

        for departure in sorted(candidates):
            if departure >= after:
                return departure.astimezone(timezone.utc)
        return None
