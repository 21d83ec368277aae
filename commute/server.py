import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import socketio
import uvicorn
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from commute import __version__, config
from commute.batch import RouteBatchProcessor
from commute.bus_schedule import BusScheduleProvider
from commute.config import NY_TZ
from commute.directions import DirectionsProvider
from commute.logging_utils import configure_logging
from commute.models import CommuteResponse, Direction
from commute.resolver import SegmentResolver
from commute.route_engine import RouteScheduler
from commute.schedule_downloader import ScheduleFetchError

logger = logging.getLogger("commute.server")

# Socket.IO Setup
sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins='*')


def _utc_now():
    return datetime.now(timezone.utc)


def parse_as_of(value: Optional[str], now: datetime) -> datetime:
    """ISO-8601 instant -> aware UTC datetime. Naive values are New York wall time."""
    if not value:
        return now
    text = value.strip()
    if 'T' in text:
        # an unescaped '+' in the query string arrives as a space
        text = text.replace(' ', '+')
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = NY_TZ.localize(parsed)
    return parsed.astimezone(timezone.utc)


async def background_refresh_task(bus_schedule: BusScheduleProvider, interval: float):
    while True:
        try:
            if not bus_schedule.cache.is_fresh():
                await bus_schedule.cache.refresh()
                meta = bus_schedule.metadata()
                logger.info(f"Bus schedule refreshed (fetched {meta['lastUpdated']})")
                await sio.emit('schedule_refreshed', meta)
        except ScheduleFetchError as e:
            logger.warning(f"Scheduled bus schedule refresh failed: {e}")
        except Exception:
            logger.exception("ERROR IN SCHEDULE REFRESH TASK")

        await asyncio.sleep(interval)


def build_processor(directions, bus_schedule) -> RouteBatchProcessor:
    resolver = SegmentResolver(directions, bus_schedule)
    return RouteBatchProcessor(RouteScheduler(resolver))


def create_app(
    processor: Optional[RouteBatchProcessor] = None,
    bus_schedule: Optional[BusScheduleProvider] = None,
    directions: Optional[DirectionsProvider] = None,
    clock=None,
    refresh_interval: float = config.SCHEDULE_REFRESH_INTERVAL_SECONDS,
) -> FastAPI:
    bus_schedule = bus_schedule or BusScheduleProvider()
    if processor is None:
        directions = directions or DirectionsProvider()
        processor = build_processor(directions, bus_schedule)
    clock = clock or _utc_now

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        logger.info(f"--- COMMUTE SERVER VERSION {__version__} ---")

        task = None
        if refresh_interval and refresh_interval > 0:
            task = asyncio.create_task(background_refresh_task(bus_schedule, refresh_interval))

        yield

        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if directions is not None:
            await directions.aclose()

    app = FastAPI(lifespan=lifespan)

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.processor = processor
    app.state.bus_schedule = bus_schedule

    @app.get("/commute")
    async def get_commute(direction: Optional[str] = None, as_of: Optional[str] = Query(None, alias="asOf")):
        try:
            direction = Direction(direction)
        except ValueError:
            return JSONResponse({"error": "Invalid direction. Use toOffice or toHome."}, status_code=400)

        try:
            start = parse_as_of(as_of, clock())
        except ValueError:
            return JSONResponse({"error": f"Invalid asOf: {as_of!r}. Use an ISO-8601 instant."}, status_code=400)

        try:
            routes = await app.state.processor.process(direction, start)
        except Exception:
            logger.exception("API Error")
            return JSONResponse({"error": "Failed to calculate commute"}, status_code=500)

        response = CommuteResponse(direction=direction, as_of=start, last_updated=clock(), routes=routes)
        return response.to_json_dict()

    @app.get("/bus-schedule")
    async def get_bus_schedule():
        try:
            schedule = await app.state.bus_schedule.get_schedule()
            meta = app.state.bus_schedule.metadata()
        except Exception:
            logger.exception("Bus schedule error")
            return JSONResponse({"error": "Failed to load bus schedule"}, status_code=500)
        return {
            "lastUpdated": meta["lastUpdated"] or schedule.get("fetchedAt"),
            "isStale": meta["isStale"],
            "schedules": schedule["schedules"],
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()

# Wrap FastAPI with Socket.IO
socket_app = socketio.ASGIApp(sio, app)


def main():
    uvicorn.run("commute.server:socket_app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
