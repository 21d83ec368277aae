import pytest
from pydantic import ValidationError

from commute.models import Direction, RouteDescriptor, WalkSegment
from commute.routes_config import LOCATIONS, ROUTES_CONFIG, all_location_keys_known, mirror_mismatches, routes_for


def test_both_directions_offer_the_same_routes():
    office = [r.name for r in routes_for(Direction.TO_OFFICE)]
    home = [r.name for r in routes_for(Direction.TO_HOME)]
    assert len(office) == 4
    assert office == home


def test_home_routes_mirror_office_routes():
    assert mirror_mismatches() == []


def test_mirror_check_catches_drift():
    config = {direction: list(routes) for direction, routes in ROUTES_CONFIG.items()}
    config[Direction.TO_HOME][0] = RouteDescriptor(
        name='Via Harrison PATH',
        segments=(WalkSegment(from_label='Office', to_label='Home', duration_seconds=60),),
    )
    assert mirror_mismatches(config) == ['Via Harrison PATH']


def test_every_location_key_resolves():
    assert all_location_keys_known()
    assert all(loc.has_coords for loc in LOCATIONS.values())


def test_harrison_routes_leave_a_longer_buffer():
    for direction in Direction:
        by_name = {r.name: r for r in routes_for(direction)}
        assert by_name['Via Harrison PATH'].leave_buffer_minutes == 5
        assert by_name['Via Hoboken Station'].leave_buffer_minutes == 2


def test_descriptors_parse_from_tagged_dicts():
    route = RouteDescriptor.model_validate({
        'name': 'Walk only',
        'segments': [{'type': 'walk', 'from_label': 'A', 'to_label': 'B', 'duration_seconds': 120}],
    })
    assert isinstance(route.segments[0], WalkSegment)


def test_negative_walk_is_rejected():
    with pytest.raises(ValidationError):
        WalkSegment(from_label='A', to_label='B', duration_seconds=-1)
