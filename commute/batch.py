"""Runs the scheduler for every configured route of a direction, concurrently."""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from commute import config
from commute.models import Direction, RouteDescriptor, RouteResult
from commute.route_engine import RouteScheduler
from commute.routes_config import ROUTES_CONFIG

logger = logging.getLogger("commute.batch")


def rank_routes(results: List[RouteResult]) -> List[RouteResult]:
    """
    Error-free routes first, the fastest of them flagged best and moved to the
    front (earliest configured wins a tie), the rest in configured order; then
    every errored route in configured order.
    """
    ok = [r.model_copy(update={"is_best": False}) for r in results if not r.has_error]
    bad = [r.model_copy(update={"is_best": False}) for r in results if r.has_error]
    if ok:
        best_idx = min(range(len(ok)), key=lambda i: (ok[i].total_duration_seconds, i))
        best = ok[best_idx].model_copy(update={"is_best": True})
        ok = [best] + ok[:best_idx] + ok[best_idx + 1:]
    return ok + bad


class RouteBatchProcessor:
    def __init__(
        self,
        scheduler: RouteScheduler,
        routes_config: Optional[Dict[Direction, List[RouteDescriptor]]] = None,
        deadline_seconds: Optional[float] = config.REQUEST_DEADLINE_SECONDS,
    ):
        self.scheduler = scheduler
        self.routes_config = routes_config if routes_config is not None else ROUTES_CONFIG
        self.deadline_seconds = deadline_seconds

    async def _run_one(self, route: RouteDescriptor, as_of: datetime) -> RouteResult:
        try:
            return await self.scheduler.schedule(route, as_of)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"[{route.name}] scheduling failed: {type(e).__name__}: {e}")
            return RouteResult(name=route.name, has_error=True)

    async def process(self, direction, as_of: datetime, deadline_seconds: Optional[float] = None) -> List[RouteResult]:
        direction = Direction(direction)
        routes = self.routes_config.get(direction, [])
        if not routes:
            return []
        deadline = deadline_seconds if deadline_seconds is not None else self.deadline_seconds

        tasks = [asyncio.create_task(self._run_one(route, as_of)) for route in routes]
        done, pending = await asyncio.wait(tasks, timeout=deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results = []
        for route, task in zip(routes, tasks):
            if task in pending:
                logger.warning(f"[{route.name}] not resolved within {deadline}s deadline")
                results.append(RouteResult(name=route.name, has_error=True))
            else:
                results.append(task.result())

        ranked = rank_routes(results)
        logger.info(f"{direction.value}: {sum(not r.has_error for r in ranked)}/{len(ranked)} routes resolved")
        return ranked
