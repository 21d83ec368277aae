import asyncio
import json

import httpx
import pytest

from commute.directions import DirectionsProvider, parse_duration, parse_timestamp
from fakes import Clock, at

DRIVE_BODY = {"routes": [{"duration": "1800s", "distanceMeters": 42000, "legs": [{"staticDuration": "1500s"}]}]}

TRANSIT_BODY = {
    "routes": [{
        "duration": "4320s",
        "distanceMeters": 45000,
        "legs": [{
            "staticDuration": "4020s",
            "steps": [
                {"travelMode": "WALK"},
                {"transitDetails": {
                    "stopDetails": {
                        "departureTime": "2026-02-09T21:41:00Z",
                        "arrivalTime": "2026-02-09T22:30:00Z",
                    },
                    "transitLine": {"nameShort": "MOBO", "name": "Morristown Line"},
                }},
                {"transitDetails": {
                    "stopDetails": {
                        "departureTime": "2026-02-09T22:31:00Z",
                        "arrivalTime": "2026-02-09T22:48:00.500000000Z",
                    },
                    "transitLine": {"name": "Morristown Line"},
                }},
            ],
        }],
    }],
}


def call(handler, fn, now=at(8, 0), api_key='test-key'):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = DirectionsProvider(
                api_key=api_key, url='https://routes.test/compute', client=client, clock=Clock(now))
            return await fn(provider)
    return asyncio.run(go())


def recording(body, status=200):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(status, json=body)

    return handler, requests


def test_parse_duration():
    assert parse_duration("1800s") == 1800
    assert parse_duration("12.6s") == 13
    assert parse_duration("30 min") is None
    assert parse_duration(None) is None


def test_parse_timestamp_accepts_nanoseconds():
    parsed = parse_timestamp("2026-02-09T21:41:00.123456789Z")
    assert parsed == at(16, 41).replace(microsecond=123456)
    assert parse_timestamp("not a time") is None


def test_driving_estimate():
    handler, sent = recording(DRIVE_BODY)
    estimate = call(handler, lambda p: p.compute_driving_route('home', 'morrisPlainsStation', at(9, 0)))

    assert estimate.duration_seconds == 1800
    assert estimate.static_duration_seconds == 1500
    assert estimate.traffic_delay_seconds == 300
    assert estimate.distance_meters == 42000

    request = sent[0]
    body = json.loads(request.content)
    assert request.headers['X-Goog-Api-Key'] == 'test-key'
    assert 'routes.duration' in request.headers['X-Goog-FieldMask']
    assert body['travelMode'] == 'DRIVE'
    assert body['departureTime'] == '2026-02-09T14:00:00Z'
    assert body['origin']['location']['latLng']['latitude'] == pytest.approx(40.8343)


def test_driving_in_the_past_omits_departure_time():
    handler, sent = recording(DRIVE_BODY)
    call(handler, lambda p: p.compute_driving_route('home', 'morrisPlainsStation', at(7, 0)))
    assert 'departureTime' not in json.loads(sent[0].content)


def test_transit_arrive_by():
    handler, sent = recording(TRANSIT_BODY)
    estimate = call(handler, lambda p: p.compute_transit_route(
        'morrisPlainsStation', 'hobokenStation', 'train', arrive_by=at(17, 50)))

    assert estimate.departure_time == at(16, 41)
    assert estimate.arrival_time == at(17, 48).replace(microsecond=500000)
    assert estimate.line_label == 'MOBO / Morristown Line'
    assert estimate.delay_seconds == 300

    body = json.loads(sent[0].content)
    assert body['arrivalTime'] == '2026-02-09T22:50:00Z'
    assert 'departureTime' not in body
    assert 'TRAIN' in body['transitPreferences']['allowedTravelModes']


def test_transit_depart_at():
    handler, sent = recording(TRANSIT_BODY)
    call(handler, lambda p: p.compute_transit_route(
        'morrisPlainsStation', 'hobokenStation', 'train', depart_at=at(16, 29)))
    body = json.loads(sent[0].content)
    assert body['departureTime'] == '2026-02-09T21:29:00Z'
    assert 'arrivalTime' not in body


def test_transit_rejects_both_anchors():
    handler, _ = recording(TRANSIT_BODY)
    with pytest.raises(ValueError):
        call(handler, lambda p: p.compute_transit_route(
            'morrisPlainsStation', 'hobokenStation', depart_at=at(16, 0), arrive_by=at(17, 0)))


def test_transit_without_transit_steps_is_none():
    handler, _ = recording({"routes": [{"duration": "600s", "legs": [{"steps": [{"travelMode": "WALK"}]}]}]})
    assert call(handler, lambda p: p.compute_transit_route('hobokenStation', 'office', 'path')) is None


@pytest.mark.parametrize('status, body', [
    (500, {"error": {"message": "backend"}}),
    (200, {"error": {"code": 429, "message": "quota"}}),
    (200, {}),
])
def test_failures_are_none(status, body):
    handler, _ = recording(body, status=status)
    assert call(handler, lambda p: p.compute_driving_route('home', 'office', at(9, 0))) is None


def test_network_error_is_none():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert call(handler, lambda p: p.compute_driving_route('home', 'office', at(9, 0))) is None


def test_missing_api_key_skips_request():
    handler, sent = recording(DRIVE_BODY)
    assert call(handler, lambda p: p.compute_driving_route('home', 'office', at(9, 0)), api_key='') is None
    assert sent == []
