"""Scripted stand-ins for the directions and bus schedule providers."""

import asyncio
from datetime import datetime, timezone

from commute.config import NY_TZ
from commute.directions import DrivingEstimate, TransitEstimate


def at(hour, minute, day=9, month=2, year=2026):
    """New York wall time -> aware UTC. 2026-02-09 is a Monday, 2026-02-14 a Saturday."""
    return NY_TZ.localize(datetime(year, month, day, hour, minute)).astimezone(timezone.utc)


def transit_run(departure, arrival, line=None, delay_seconds=0):
    duration = int((arrival - departure).total_seconds())
    return TransitEstimate(
        duration_seconds=duration,
        distance_meters=40000,
        static_duration_seconds=duration - delay_seconds,
        departure_time=departure,
        arrival_time=arrival,
        line_label=line,
    )


class Timetable:
    """
    Answers transit queries from a list of (departure, arrival) runs.

    Forward queries get the first run leaving at or after depart_at, unless
    `early` is set, in which case that run is returned no matter what was asked.
    Backward queries get the latest run arriving by arrive_by.
    """

    def __init__(self, runs, early=None, line=None):
        self.runs = sorted(runs)
        self.early = early
        self.line = line

    def __call__(self, depart_at=None, arrive_by=None):
        if arrive_by is not None:
            arriving = [run for run in self.runs if run[1] <= arrive_by]
            return transit_run(*arriving[-1], line=self.line) if arriving else None
        if self.early is not None:
            return transit_run(*self.early, line=self.line)
        for departure, arrival in self.runs:
            if departure >= depart_at:
                return transit_run(departure, arrival, line=self.line)
        return None


class FakeDirections:
    def __init__(self, drives=None, transit=None, delay=0):
        # (origin, destination) -> seconds | None | Exception
        self.drives = dict(drives or {})
        # (origin, destination) -> callable(depart_at=, arrive_by=)
        self.transit = dict(transit or {})
        self.delay = delay
        self.calls = []

    async def compute_driving_route(self, origin, destination, at):
        self.calls.append(('drive', origin, destination, at))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.drives[(origin, destination)]
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return None
        if isinstance(outcome, tuple):
            duration, static = outcome
        else:
            duration = static = outcome
        return DrivingEstimate(duration_seconds=duration, distance_meters=10000, static_duration_seconds=static)

    async def compute_transit_route(self, origin, destination, mode='any', depart_at=None, arrive_by=None):
        self.calls.append(('transit', origin, destination, depart_at, arrive_by))
        outcome = self.transit[(origin, destination)]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome(depart_at=depart_at, arrive_by=arrive_by)

    def backward_calls(self):
        return [call for call in self.calls if call[0] == 'transit' and call[4] is not None]

    def drive_calls(self):
        return [call for call in self.calls if call[0] == 'drive']


class FakeBus:
    def __init__(self, departures=(), error=None, ignore_after=False):
        self.departures = sorted(departures)
        self.error = error
        self.ignore_after = ignore_after
        self.calls = []

    async def find_next_bus(self, after, direction):
        self.calls.append((after, direction))
        if self.error is not None:
            raise self.error
        for departure in self.departures:
            if self.ignore_after or departure >= after:
                return departure
        return None


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now
