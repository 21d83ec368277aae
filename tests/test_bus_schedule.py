import asyncio
from datetime import timedelta

from commute.bus_schedule import BusScheduleProvider, ScheduleCache
from commute.fallback_schedule import FALLBACK_FETCHED_AT
from commute.models import BusDirection
from commute.schedule_downloader import ScheduleFetchError
from fakes import Clock, at

DATA = {
    "fetchedAt": "2026-02-09T12:00:00+00:00",
    "schedules": {
        "weekday": {"eastbound": ["07:20", "17:20", "08:50", "bad"], "westbound": ["17:30"]},
        "weekend": {"eastbound": ["09:00"], "westbound": []},
    },
}


class StubFetcher:
    def __init__(self, data=DATA, error=None):
        self.data = data
        self.error = error
        self.calls = 0

    def fetch_all(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.data


def make_cache(fetcher, clock, **kwargs):
    kwargs.setdefault('path', None)
    return ScheduleCache(fetcher=fetcher, clock=clock, ttl_seconds=3600, max_stale_seconds=7200, **kwargs)


def test_fresh_cache_is_served_without_refetch():
    fetcher = StubFetcher()
    clock = Clock(at(8, 0))
    cache = make_cache(fetcher, clock)

    assert asyncio.run(cache.get()) == DATA
    clock.now += timedelta(minutes=30)
    assert asyncio.run(cache.get()) == DATA
    assert fetcher.calls == 1


def test_expired_cache_is_refetched():
    fetcher = StubFetcher()
    clock = Clock(at(8, 0))
    cache = make_cache(fetcher, clock)

    asyncio.run(cache.get())
    clock.now += timedelta(hours=2)
    asyncio.run(cache.get())
    assert fetcher.calls == 2


def test_failed_refresh_serves_stale_copy():
    fetcher = StubFetcher()
    clock = Clock(at(8, 0))
    cache = make_cache(fetcher, clock)
    asyncio.run(cache.get())

    fetcher.error = ScheduleFetchError('site down')
    clock.now += timedelta(hours=5)
    assert asyncio.run(cache.get()) == DATA

    provider = BusScheduleProvider(cache=cache)
    assert provider.metadata() == {"lastUpdated": DATA["fetchedAt"], "isStale": True}


def test_no_cache_and_no_site_serves_fallback():
    cache = make_cache(StubFetcher(error=ScheduleFetchError('site down')), Clock(at(8, 0)))
    data = asyncio.run(cache.get())
    assert data["fetchedAt"] == FALLBACK_FETCHED_AT
    assert data["schedules"]["weekday"]["eastbound"]
    assert cache.peek() is None


def test_concurrent_gets_share_one_fetch():
    fetcher = StubFetcher()
    cache = make_cache(fetcher, Clock(at(8, 0)))

    async def many():
        return await asyncio.gather(*(cache.get() for _ in range(5)))

    assert asyncio.run(many()) == [DATA] * 5
    assert fetcher.calls == 1


def test_cache_survives_restart(tmp_path):
    path = str(tmp_path / 'schedule.json')
    clock = Clock(at(8, 0))
    asyncio.run(make_cache(StubFetcher(), clock, path=path).get())

    fetcher = StubFetcher()
    reloaded = make_cache(fetcher, clock, path=path)
    assert reloaded.is_fresh()
    assert asyncio.run(reloaded.get()) == DATA
    assert fetcher.calls == 0


def test_unreadable_cache_file_is_ignored(tmp_path):
    path = tmp_path / 'schedule.json'
    path.write_text('{not json')
    cache = make_cache(StubFetcher(), Clock(at(8, 0)), path=str(path))
    assert cache.peek() is None


def find_next(after, direction=BusDirection.EASTBOUND):
    provider = BusScheduleProvider(cache=make_cache(StubFetcher(), Clock(at(8, 0))))
    return asyncio.run(provider.find_next_bus(after, direction))


def test_next_weekday_bus():
    assert find_next(at(8, 0)) == at(8, 50)
    assert find_next(at(17, 0)) == at(17, 20)


def test_bus_leaving_exactly_now_counts():
    assert find_next(at(17, 20)) == at(17, 20)


def test_no_bus_after_last_departure():
    assert find_next(at(17, 21)) is None


def test_weekend_uses_weekend_timetable():
    assert find_next(at(8, 0, day=14)) == at(9, 0, day=14)
    assert find_next(at(8, 0, day=14), BusDirection.WESTBOUND) is None


def test_metadata_before_first_fetch():
    provider = BusScheduleProvider(cache=make_cache(StubFetcher(), Clock(at(8, 0))))
    assert provider.metadata() == {"lastUpdated": None, "isStale": True}
