"""
Multi-pass route scheduler.

Turns one RouteDescriptor plus a start instant into a RouteResult whose legs
chain without gaps running backwards in time: every leg departs no earlier than
the previous leg arrives.

Walks, drives and buses are anchored on the previous arrival. Trains and PATH
run on their own timetable, so the provider may hand back a run that left
before the rider reaches the platform. The forward pass keeps going anyway so
the rest of the route gets real departures to work with; validation then finds
the first such run and re-queries it once as "arrive by", constrained by the
next fixed departure downstream (or one headway past the anchor). If the
corrected run still leaves too early the route is an error. Otherwise
everything after it is resolved again from the corrected arrival, and
validation carries on from there.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from commute import config
from commute.models import (
    Anchor,
    BusSegment,
    DriveSegment,
    ResolvedSegment,
    RouteDescriptor,
    RouteResult,
    TransitSegment,
    WalkSegment,
)
from commute.resolver import INTERNAL_ERROR, SegmentResolver, is_fixed_schedule

logger = logging.getLogger("commute.scheduler")

MISSED_CONNECTION = "Missed connection"


def _check_invariants(seg: ResolvedSegment, what: str) -> ResolvedSegment:
    if not seg.ok:
        return seg
    if seg.departure_time is None or seg.arrival_time is None or seg.arrival_time < seg.departure_time:
        logger.error(f"{what}: resolved leg breaks the duration invariant "
                     f"({seg.departure_time} -> {seg.arrival_time})")
        return seg.with_error(INTERNAL_ERROR)
    return seg


def continuity_gaps(segments: List[ResolvedSegment]) -> List[Tuple[int, float]]:
    """(index, seconds) for every leg that departs before its predecessor arrives."""
    gaps = []
    for i in range(1, len(segments)):
        prev, curr = segments[i - 1], segments[i]
        if prev.arrival_time is None or curr.departure_time is None:
            continue
        if curr.departure_time < prev.arrival_time:
            gaps.append((i, (prev.arrival_time - curr.departure_time).total_seconds()))
    return gaps


class RouteScheduler:
    def __init__(self, resolver: SegmentResolver, headway_seconds: int = config.TRANSIT_HEADWAY_SECONDS):
        self.resolver = resolver
        self.headway_seconds = headway_seconds

    async def schedule(self, route: RouteDescriptor, as_of: datetime) -> RouteResult:
        as_of = as_of.replace(microsecond=0)
        if not route.segments:
            logger.error(f"[{route.name}] route has no segments")
            return RouteResult(name=route.name, has_error=True)

        prefetched = await self._prefetch(route, as_of)

        # --- PASS 1: forward ---
        segments, anchors = await self._forward(route, 0, as_of, prefetched)

        # --- PASS 2: validate, correct, propagate ---
        start = 0
        while True:
            k = self._first_violation(route, segments, anchors, start)
            if k is None:
                break
            desc = route.segments[k]
            anchor = anchors[k]
            if not isinstance(desc, TransitSegment):
                logger.warning(f"[{route.name}] {desc.from_label} -> {desc.to_label}: "
                               f"scheduled departure precedes arrival at the stop")
                segments[k] = segments[k].with_error(MISSED_CONNECTION)
                break

            logger.info(f"[{route.name}] {desc.from_label} -> {desc.to_label}: run departs "
                        f"{segments[k].departure_time.isoformat()} before rider arrives "
                        f"{anchor.isoformat()}; correcting")
            fixed = await self._correct(route, k, segments, anchor)
            if not fixed.ok:
                segments[k] = fixed
                break
            if fixed.departure_time < anchor:
                logger.warning(f"[{route.name}] no run of {desc.from_label} -> {desc.to_label} "
                               f"departs at or after {anchor.isoformat()}")
                segments[k] = fixed.with_error(MISSED_CONNECTION)
                break

            segments[k] = fixed
            tail, tail_anchors = await self._forward(route, k + 1, fixed.arrival_time, prefetched)
            segments[k + 1:] = tail
            anchors[k + 1:] = tail_anchors
            start = k + 1

        return self._assemble(route, segments, as_of)

    # --- passes ---

    async def _prefetch(self, route: RouteDescriptor, as_of: datetime) -> Dict[int, Tuple[datetime, ResolvedSegment]]:
        """
        Drives reached only through walks have an anchor known up front, so
        they are resolved concurrently before the forward pass.
        """
        jobs = {}
        offset = 0
        for i, desc in enumerate(route.segments):
            if isinstance(desc, WalkSegment):
                offset += desc.duration_seconds
                continue
            if isinstance(desc, DriveSegment):
                jobs[i] = as_of + timedelta(seconds=offset)
            break
        if not jobs:
            return {}
        results = await asyncio.gather(*(
            self.resolver.resolve(route.segments[i], Anchor.depart_after(at)) for i, at in jobs.items()
        ))
        return {i: (jobs[i], seg) for i, seg in zip(jobs, results)}

    async def _forward(
        self,
        route: RouteDescriptor,
        start: int,
        cursor: datetime,
        prefetched: Dict[int, Tuple[datetime, ResolvedSegment]],
    ) -> Tuple[List[ResolvedSegment], List[datetime]]:
        """Resolve segments[start:] in order, each anchored on the last known arrival."""
        segments: List[ResolvedSegment] = []
        anchors: List[datetime] = []
        for i in range(start, len(route.segments)):
            desc = route.segments[i]
            hit = prefetched.get(i)
            if hit is not None and hit[0] == cursor:
                seg = hit[1]
            else:
                seg = await self.resolver.resolve(desc, Anchor.depart_after(cursor))
            seg = _check_invariants(seg, f"[{route.name}] {desc.from_label} -> {desc.to_label}")
            segments.append(seg)
            anchors.append(cursor)
            if seg.ok:
                # a fixed run that left early does not move the rider back in time
                cursor = max(cursor, seg.arrival_time) if is_fixed_schedule(desc) else seg.arrival_time
        return segments, anchors

    def _first_violation(self, route, segments, anchors, start) -> Optional[int]:
        for i in range(start, len(segments)):
            desc, seg = route.segments[i], segments[i]
            if not is_fixed_schedule(desc) or not seg.ok:
                continue
            if seg.departure_time < anchors[i]:
                return i
        return None

    def _arrive_by(self, route, k, segments, anchor) -> datetime:
        """
        Latest acceptable arrival for the corrected run at index k: in time for
        the next fixed departure downstream if there is one we can still make,
        otherwise one headway after the earliest possible arrival.
        """
        ride = timedelta(seconds=segments[k].duration_seconds)
        between = 0
        for j in range(k + 1, len(route.segments)):
            seg = segments[j]
            if not seg.ok:
                break
            if is_fixed_schedule(route.segments[j]):
                if isinstance(route.segments[j], BusSegment):
                    break
                arrive_by = seg.departure_time - timedelta(seconds=between)
                if arrive_by - ride >= anchor:
                    return arrive_by
                break
            between += seg.duration_seconds
        return anchor + ride + timedelta(seconds=self.headway_seconds)

    async def _correct(self, route, k, segments, anchor) -> ResolvedSegment:
        arrive_by = self._arrive_by(route, k, segments, anchor)
        desc = route.segments[k]
        fixed = await self.resolver.resolve(desc, Anchor.arrive_by(arrive_by))
        return _check_invariants(fixed, f"[{route.name}] {desc.from_label} -> {desc.to_label}")

    # --- assembly ---

    def _assemble(self, route: RouteDescriptor, segments: List[ResolvedSegment], as_of: datetime) -> RouteResult:
        has_error = any(not seg.ok for seg in segments)
        if not has_error:
            gaps = continuity_gaps(segments)
            if gaps:
                logger.error(f"[{route.name}] continuity broken after scheduling: {gaps}")
                has_error = True
        if has_error:
            return RouteResult(name=route.name, segments=segments, has_error=True)

        start_time = segments[0].departure_time
        eta = segments[-1].arrival_time
        total = int((eta - start_time).total_seconds())
        lead_minutes = round((start_time - as_of).total_seconds() / 60)
        return RouteResult(
            name=route.name,
            segments=segments,
            total_duration_seconds=total,
            start_time=start_time,
            eta=eta,
            leave_in_minutes=lead_minutes - route.leave_buffer_minutes,
        )
