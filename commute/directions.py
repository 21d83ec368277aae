"""
Directions provider backed by the Google Routes API (v2 computeRoutes).

The wire format (duration strings like "1800s", nested legs/steps, RFC 3339
timestamps) stops here: callers get DrivingEstimate / TransitEstimate or None.
None is the only failure signal; network errors, HTTP errors, quota errors and
empty results all look the same to the caller.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

import httpx

from commute import config
from commute.models import Location

logger = logging.getLogger("commute.directions")

DRIVE_FIELD_MASK = 'routes.duration,routes.distanceMeters,routes.legs.staticDuration'
TRANSIT_FIELD_MASK = (
    'routes.duration,routes.distanceMeters,routes.legs.staticDuration,'
    'routes.legs.steps.transitDetails'
)

# Transit modes the provider may use for each configured segment mode
TRANSIT_MODE_PREFERENCES = {
    'train': ['TRAIN', 'RAIL', 'SUBWAY', 'LIGHT_RAIL'],
    'path': ['SUBWAY', 'TRAIN', 'RAIL'],
    'any': ['BUS', 'SUBWAY', 'TRAIN', 'LIGHT_RAIL', 'RAIL'],
}

_DURATION_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)s\s*$')
_FRACTION_RE = re.compile(r'\.(\d+)')


@dataclass(frozen=True)
class DrivingEstimate:
    duration_seconds: int
    distance_meters: int
    static_duration_seconds: int

    @property
    def traffic_delay_seconds(self) -> int:
        return max(0, self.duration_seconds - self.static_duration_seconds)


@dataclass(frozen=True)
class TransitEstimate:
    duration_seconds: int
    distance_meters: int
    static_duration_seconds: int
    departure_time: datetime
    arrival_time: datetime
    line_label: Optional[str] = None

    @property
    def delay_seconds(self) -> int:
        return self.duration_seconds - self.static_duration_seconds


def parse_duration(value) -> Optional[int]:
    """'1800s' -> 1800. Returns None for anything that is not a protobuf duration string."""
    if value is None:
        return None
    match = _DURATION_RE.match(str(value))
    if not match:
        return None
    return int(round(float(match.group(1))))


def parse_timestamp(value) -> Optional[datetime]:
    """RFC 3339 timestamp (nanosecond precision allowed) -> aware UTC datetime."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    # datetime.fromisoformat accepts at most microseconds
    text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(instant: datetime) -> str:
    return instant.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def waypoint(location: Location) -> dict:
    if location.has_coords:
        return {'location': {'latLng': {'latitude': location.latitude, 'longitude': location.longitude}}}
    return {'address': location.address}


def _transit_steps(leg: dict) -> List[dict]:
    return [step for step in leg.get('steps') or [] if step.get('transitDetails')]


def _line_label(details: dict) -> Optional[str]:
    line = details.get('transitLine') or {}
    return line.get('nameShort') or line.get('name')


def parse_driving_response(data: dict) -> Optional[DrivingEstimate]:
    routes = data.get('routes') or []
    if not routes:
        return None
    route = routes[0]
    duration = parse_duration(route.get('duration'))
    if duration is None:
        return None
    legs = route.get('legs') or []
    static = parse_duration(legs[0].get('staticDuration')) if legs else None
    return DrivingEstimate(
        duration_seconds=duration,
        distance_meters=int(route.get('distanceMeters') or 0),
        static_duration_seconds=static if static is not None else duration,
    )


def parse_transit_response(data: dict) -> Optional[TransitEstimate]:
    routes = data.get('routes') or []
    if not routes:
        return None
    route = routes[0]
    legs = route.get('legs') or []
    if not legs:
        return None
    steps = _transit_steps(legs[0])
    if not steps:
        return None

    first = steps[0]['transitDetails']
    last = steps[-1]['transitDetails']
    departure = parse_timestamp((first.get('stopDetails') or {}).get('departureTime'))
    arrival = parse_timestamp((last.get('stopDetails') or {}).get('arrivalTime'))
    if departure is None or arrival is None:
        return None

    duration = parse_duration(route.get('duration'))
    static = parse_duration(legs[0].get('staticDuration'))
    if duration is None:
        duration = int((arrival - departure).total_seconds())
    labels = [label for label in (_line_label(s['transitDetails']) for s in steps) if label]
    return TransitEstimate(
        duration_seconds=duration,
        distance_meters=int(route.get('distanceMeters') or 0),
        static_duration_seconds=static if static is not None else duration,
        departure_time=departure,
        arrival_time=arrival,
        line_label=' / '.join(dict.fromkeys(labels)) or None,
    )


class DirectionsProvider:
    """
    Async client for the Routes API.

    `clock` returns the current aware datetime; the API rejects past departure
    times for driving, so those are dropped and the provider estimates "now".
    """

    def __init__(
        self,
        api_key: str = config.GOOGLE_MAPS_API_KEY,
        url: str = config.ROUTES_API_URL,
        timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
        locations: Optional[dict] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        if locations is None:
            from commute.routes_config import LOCATIONS
            locations = LOCATIONS
        self.locations = locations

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _location(self, key: str) -> Location:
        return self.locations[key]

    async def _post(self, body: dict, field_mask: str) -> Optional[dict]:
        if not self.api_key:
            logger.warning("GOOGLE_MAPS_API_KEY is not set; directions request skipped")
            return None
        headers = {
            'Content-Type': 'application/json',
            'X-Goog-Api-Key': self.api_key,
            'X-Goog-FieldMask': field_mask,
        }
        try:
            resp = await self._get_client().post(self.url, json=body, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Routes API request failed: {type(e).__name__}: {e}")
            return None
        if resp.status_code != 200:
            logger.warning(f"Routes API returned {resp.status_code}: {resp.text[:200]}")
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Routes API returned a non-JSON body")
            return None
        if not isinstance(data, dict) or data.get('error'):
            logger.warning(f"Routes API error payload: {data}")
            return None
        return data

    async def compute_driving_route(self, origin: str, destination: str, at: datetime) -> Optional[DrivingEstimate]:
        body = {
            'origin': waypoint(self._location(origin)),
            'destination': waypoint(self._location(destination)),
            'travelMode': 'DRIVE',
            'routingPreference': 'TRAFFIC_AWARE',
            'computeAlternativeRoutes': False,
            'languageCode': 'en-US',
            'units': 'IMPERIAL',
        }
        if at > self.clock():
            body['departureTime'] = format_timestamp(at)
        data = await self._post(body, DRIVE_FIELD_MASK)
        if data is None:
            return None
        estimate = parse_driving_response(data)
        if estimate is None:
            logger.warning(f"No driving route {origin} -> {destination}")
        return estimate

    async def compute_transit_route(
        self,
        origin: str,
        destination: str,
        mode: str = 'any',
        depart_at: Optional[datetime] = None,
        arrive_by: Optional[datetime] = None,
    ) -> Optional[TransitEstimate]:
        if depart_at is not None and arrive_by is not None:
            raise ValueError("Pass either depart_at or arrive_by, not both")
        body = {
            'origin': waypoint(self._location(origin)),
            'destination': waypoint(self._location(destination)),
            'travelMode': 'TRANSIT',
            'computeAlternativeRoutes': False,
            'transitPreferences': {
                'allowedTravelModes': TRANSIT_MODE_PREFERENCES.get(mode, TRANSIT_MODE_PREFERENCES['any']),
            },
            'languageCode': 'en-US',
            'units': 'IMPERIAL',
        }
        if depart_at is not None:
            body['departureTime'] = format_timestamp(depart_at)
        if arrive_by is not None:
            body['arrivalTime'] = format_timestamp(arrive_by)
        data = await self._post(body, TRANSIT_FIELD_MASK)
        if data is None:
            return None
        estimate = parse_transit_response(data)
        if estimate is None:
            logger.warning(f"No transit run {origin} -> {destination} ({mode})")
        return estimate
