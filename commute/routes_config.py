"""
Static commute configuration: named locations and the route alternatives for
each direction. Route topology is fixed here; only timing is computed per request.
"""

from typing import Dict, List, Tuple

from commute.models import (
    BusDirection,
    BusSegment,
    Direction,
    DriveSegment,
    Location,
    RouteDescriptor,
    TransitMode,
    TransitSegment,
    WalkSegment,
)


def _loc(key, name, short_name, address, lat, lon):
    return Location(key=key, name=name, short_name=short_name, address=address, latitude=lat, longitude=lon)


LOCATIONS: Dict[str, Location] = {
    loc.key: loc
    for loc in (
        _loc('home', 'Home', 'Home', '411 Mountainway, Morris Plains, NJ', 40.8343, -74.4815),
        _loc('harrisonParking', 'Harrison Parking', 'Harrison P', 'Guyon St Parking Lot, Harrison, NJ', 40.7394, -74.1559),
        _loc('harrisonPath', 'Harrison PATH', 'Harrison', 'Harrison PATH Station, Harrison, NJ', 40.7392, -74.1556),
        _loc('morrisPlainsStation', 'Morris Plains Station', 'Morris Plains', 'Morris Plains Station, Morris Plains, NJ', 40.8371, -74.4816),
        _loc('hobokenStation', 'Hoboken Terminal', 'Hoboken', 'Hoboken Terminal, Hoboken, NJ', 40.7357, -74.0293),
        _loc('nyPennStation', 'NY Penn Station', 'Penn Station', 'Pennsylvania Station, New York, NY', 40.7505, -73.9934),
        _loc('waterviewParkRide', 'Waterview Blvd Park & Ride', 'Waterview P&R', 'Waterview Blvd Park and Ride, Parsippany, NJ', 40.8577, -74.4194),
        _loc('portAuthority', 'Port Authority Bus Terminal', 'Port Authority', '625 8th Ave, New York, NY', 40.7570, -73.9900),
        _loc('wtcPath', 'WTC PATH', 'WTC PATH', 'World Trade Center PATH Station, New York, NY', 40.7127, -74.0099),
        _loc('office', 'Office', 'Office', '200 West St, New York, NY', 40.7133, -74.0158),
    )
}

_TRAIN = TransitMode.TRAIN
_PATH = TransitMode.PATH


def _drive(origin, destination, from_label, to_label):
    return DriveSegment(origin=origin, destination=destination, from_label=from_label, to_label=to_label)


def _walk(from_label, to_label, minutes):
    return WalkSegment(from_label=from_label, to_label=to_label, duration_seconds=minutes * 60)


def _transit(origin, destination, from_label, to_label, mode):
    return TransitSegment(origin=origin, destination=destination, from_label=from_label, to_label=to_label, mode=mode)


def _bus(direction, origin, destination, from_label, to_label):
    return BusSegment(direction=direction, origin=origin, destination=destination, from_label=from_label, to_label=to_label)


ROUTES_CONFIG: Dict[Direction, List[RouteDescriptor]] = {
    Direction.TO_OFFICE: [
        RouteDescriptor(
            name='Via Harrison PATH',
            leave_buffer_minutes=5,
            segments=(
                _drive('home', 'harrisonParking', 'Home', 'Harrison P'),
                _walk('Harrison P', 'Harrison PATH', 5),
                _transit('harrisonPath', 'wtcPath', 'Harrison', 'WTC PATH', _PATH),
                _walk('WTC PATH', 'Office', 5),
            ),
        ),
        RouteDescriptor(
            name='Via Hoboken Station',
            segments=(
                _drive('home', 'morrisPlainsStation', 'Home', 'Morris Plains'),
                _walk('Morris Plains', 'Parking', 3),
                _transit('morrisPlainsStation', 'hobokenStation', 'Morris Plains', 'Hoboken', _TRAIN),
                _transit('hobokenStation', 'office', 'Hoboken', 'Office', _PATH),
            ),
        ),
        RouteDescriptor(
            name='Via NY Penn Station',
            segments=(
                _drive('home', 'morrisPlainsStation', 'Home', 'Morris Plains'),
                _walk('Morris Plains', 'Parking', 3),
                _transit('morrisPlainsStation', 'nyPennStation', 'Morris Plains', 'Penn Station', _TRAIN),
                _transit('nyPennStation', 'office', 'Penn Station', 'Office', _TRAIN),
            ),
        ),
        RouteDescriptor(
            name='Via Port Authority Bus',
            segments=(
                _drive('home', 'waterviewParkRide', 'Home', 'Waterview P&R'),
                _walk('Waterview P&R', 'Bus Stop', 3),
                _bus(BusDirection.EASTBOUND, 'waterviewParkRide', 'portAuthority', 'Waterview P&R', 'Port Authority'),
                _transit('portAuthority', 'office', 'Port Authority', 'Office', _TRAIN),
            ),
        ),
    ],
    Direction.TO_HOME: [
        RouteDescriptor(
            name='Via Harrison PATH',
            leave_buffer_minutes=5,
            segments=(
                _walk('Office', 'WTC PATH', 5),
                _transit('wtcPath', 'harrisonPath', 'WTC PATH', 'Harrison', _PATH),
                _walk('Harrison PATH', 'Harrison P', 5),
                _drive('harrisonParking', 'home', 'Harrison P', 'Home'),
            ),
        ),
        RouteDescriptor(
            name='Via Hoboken Station',
            segments=(
                _transit('office', 'hobokenStation', 'Office', 'Hoboken', _PATH),
                _transit('hobokenStation', 'morrisPlainsStation', 'Hoboken', 'Morris Plains', _TRAIN),
                _walk('Parking', 'Morris Plains', 3),
                _drive('morrisPlainsStation', 'home', 'Morris Plains', 'Home'),
            ),
        ),
        RouteDescriptor(
            name='Via NY Penn Station',
            segments=(
                _transit('office', 'nyPennStation', 'Office', 'Penn Station', _TRAIN),
                _transit('nyPennStation', 'morrisPlainsStation', 'NY Penn', 'Morris Plains', _TRAIN),
                _walk('Parking', 'Morris Plains', 3),
                _drive('morrisPlainsStation', 'home', 'Morris Plains', 'Home'),
            ),
        ),
        RouteDescriptor(
            name='Via Port Authority Bus',
            segments=(
                _transit('office', 'portAuthority', 'Office', 'Port Authority', _TRAIN),
                _bus(BusDirection.WESTBOUND, 'portAuthority', 'waterviewParkRide', 'Port Authority', 'Waterview P&R'),
                _walk('Bus Stop', 'Waterview P&R', 3),
                _drive('waterviewParkRide', 'home', 'Waterview P&R', 'Home'),
            ),
        ),
    ],
}


def routes_for(direction: Direction) -> List[RouteDescriptor]:
    return list(ROUTES_CONFIG[direction])


def _signature(route: RouteDescriptor) -> Tuple[str, ...]:
    sig = []
    for seg in route.segments:
        sig.append(seg.mode.value if seg.type == 'transit' else seg.type)
    return tuple(sig)


def mirror_mismatches(routes_config: Dict[Direction, List[RouteDescriptor]] = ROUTES_CONFIG) -> List[str]:
    """
    Names of toHome routes whose segment kinds are not the reverse of the
    same-named toOffice route (or that have no toOffice counterpart).
    The two lists are authored independently; this keeps them in step.
    """
    outbound = {r.name: r for r in routes_config.get(Direction.TO_OFFICE, [])}
    mismatches = []
    for route in routes_config.get(Direction.TO_HOME, []):
        twin = outbound.get(route.name)
        if twin is None or _signature(route) != tuple(reversed(_signature(twin))):
            mismatches.append(route.name)
    return mismatches


def all_location_keys_known(routes_config: Dict[Direction, List[RouteDescriptor]] = ROUTES_CONFIG) -> bool:
    for routes in routes_config.values():
        for route in routes:
            for seg in route.segments:
                for key in (getattr(seg, 'origin', None), getattr(seg, 'destination', None)):
                    if key is not None and key not in LOCATIONS:
                        return False
    return True
