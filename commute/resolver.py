"""
Segment Resolver: one SegmentDescriptor + one Anchor -> one ResolvedSegment.

Stateless apart from outbound provider queries, so concurrent calls are safe.
Provider failures (None, timeout, unexpected exception) never escape: they come
back as a ResolvedSegment with error="API error".
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from commute import config
from commute.config import NY_TZ
from commute.models import (
    Anchor,
    BusSegment,
    DriveSegment,
    ResolvedSegment,
    SegmentMode,
    TransitSegment,
    WalkSegment,
)

logger = logging.getLogger("commute.resolver")

API_ERROR = "API error"
NO_BUS = "No bus available"
INTERNAL_ERROR = "Internal error"

FAILED = object()


def traffic_status(static_seconds: int, actual_seconds: int) -> str:
    delay = actual_seconds - static_seconds
    if static_seconds <= 0:
        return 'Light traffic'
    pct = delay / static_seconds * 100
    if pct < 5:
        return 'Light traffic'
    if pct < 15:
        return 'Moderate traffic'
    if pct < 30:
        return 'Heavy traffic'
    return f'Severe delays (+{round(delay / 60)} min)'


def transit_status(delay_seconds: int) -> str:
    delay_minutes = round(delay_seconds / 60)
    return f'Delays (+{delay_minutes} min)' if delay_minutes > 2 else 'On time'


def clock_label(instant: datetime) -> str:
    """5:20 PM"""
    local = instant.astimezone(NY_TZ)
    return local.strftime('%I:%M %p').lstrip('0')


def is_fixed_schedule(descriptor) -> bool:
    return isinstance(descriptor, (TransitSegment, BusSegment))


def segment_mode(descriptor) -> SegmentMode:
    if isinstance(descriptor, TransitSegment):
        return SegmentMode(descriptor.mode.value)
    return SegmentMode(descriptor.type)


def failed_segment(descriptor, message: str = API_ERROR) -> ResolvedSegment:
    return ResolvedSegment(
        mode=segment_mode(descriptor),
        from_label=descriptor.from_label,
        to_label=descriptor.to_label,
        duration_seconds=0,
        error=message,
    )


def _timed(descriptor, anchor: Anchor, duration: int, **extra) -> ResolvedSegment:
    delta = timedelta(seconds=duration)
    if anchor.is_backward:
        departure, arrival = anchor.instant - delta, anchor.instant
    else:
        departure, arrival = anchor.instant, anchor.instant + delta
    return ResolvedSegment(
        mode=segment_mode(descriptor),
        from_label=descriptor.from_label,
        to_label=descriptor.to_label,
        duration_seconds=duration,
        departure_time=departure,
        arrival_time=arrival,
        **extra,
    )


class SegmentResolver:
    def __init__(self, directions, bus_schedule, timeout: Optional[float] = config.PROVIDER_TIMEOUT_SECONDS):
        self.directions = directions
        self.bus_schedule = bus_schedule
        self.timeout = timeout

    async def _call(self, what: str, coro):
        """Await a provider call under the per-call timeout. Timeouts and exceptions give FAILED."""
        try:
            if self.timeout:
                return await asyncio.wait_for(coro, self.timeout)
            return await coro
        except asyncio.TimeoutError:
            logger.warning(f"{what}: provider timed out after {self.timeout}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"{what}: provider failed: {type(e).__name__}: {e}")
        return FAILED

    async def resolve(self, descriptor, anchor: Anchor) -> ResolvedSegment:
        if isinstance(descriptor, WalkSegment):
            return _timed(descriptor, anchor, descriptor.duration_seconds, traffic_note='Walk')
        if isinstance(descriptor, DriveSegment):
            return await self._resolve_drive(descriptor, anchor)
        if isinstance(descriptor, TransitSegment):
            return await self._resolve_transit(descriptor, anchor)
        if isinstance(descriptor, BusSegment):
            return await self._resolve_bus(descriptor, anchor)
        raise TypeError(f"Unknown segment descriptor: {descriptor!r}")

    async def _resolve_drive(self, seg: DriveSegment, anchor: Anchor) -> ResolvedSegment:
        estimate = await self._call(
            f"drive {seg.origin}->{seg.destination}",
            self.directions.compute_driving_route(seg.origin, seg.destination, anchor.instant),
        )
        if estimate is None or estimate is FAILED:
            return failed_segment(seg)
        return _timed(
            seg, anchor, max(0, int(estimate.duration_seconds)),
            distance_meters=estimate.distance_meters,
            traffic_note=traffic_status(estimate.static_duration_seconds, estimate.duration_seconds),
        )

    async def _resolve_transit(self, seg: TransitSegment, anchor: Anchor) -> ResolvedSegment:
        what = f"{seg.mode.value} {seg.origin}->{seg.destination}"
        if anchor.is_backward:
            call = self.directions.compute_transit_route(
                seg.origin, seg.destination, seg.mode.value, arrive_by=anchor.instant)
        else:
            call = self.directions.compute_transit_route(
                seg.origin, seg.destination, seg.mode.value, depart_at=anchor.instant)
        estimate = await self._call(what, call)
        if estimate is None or estimate is FAILED:
            return failed_segment(seg)

        # The run keeps its own timetable; it may not line up with the anchor.
        departure = estimate.departure_time.replace(microsecond=0)
        arrival = estimate.arrival_time.replace(microsecond=0)
        duration = int((arrival - departure).total_seconds())
        if duration < 0:
            logger.error(f"{what}: provider returned arrival {arrival} before departure {departure}")
            return failed_segment(seg, INTERNAL_ERROR)
        return ResolvedSegment(
            mode=segment_mode(seg),
            from_label=seg.from_label,
            to_label=seg.to_label,
            duration_seconds=duration,
            departure_time=departure,
            arrival_time=arrival,
            distance_meters=estimate.distance_meters,
            traffic_note=transit_status(estimate.delay_seconds),
            line_label=estimate.line_label,
        )

    async def _resolve_bus(self, seg: BusSegment, anchor: Anchor) -> ResolvedSegment:
        if anchor.is_backward:
            raise ValueError("Bus segments are resolved forward only")
        what = f"bus {seg.direction.value} {seg.origin}->{seg.destination}"
        departure = await self._call(what, self.bus_schedule.find_next_bus(anchor.instant, seg.direction))
        if departure is FAILED:
            return failed_segment(seg)
        if departure is None:
            return failed_segment(seg, NO_BUS)

        # road time at the hour the bus actually leaves
        road = await self._call(
            what, self.directions.compute_driving_route(seg.origin, seg.destination, departure))
        if road is None or road is FAILED:
            return failed_segment(seg)

        duration = max(0, int(road.duration_seconds))
        return ResolvedSegment(
            mode=SegmentMode.BUS,
            from_label=seg.from_label,
            to_label=seg.to_label,
            duration_seconds=duration,
            departure_time=departure,
            arrival_time=departure + timedelta(seconds=duration),
            distance_meters=road.distance_meters,
            traffic_note=f'Departs {clock_label(departure)}',
        )
