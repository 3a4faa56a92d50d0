from datetime import datetime, timezone

import pytest

from app.services.sources import build_sources
from app.services.sources.base import parse_timestamp
from app.services.sources.dot import DotFeedSource
from app.services.sources.nc_mecklenburg import NcMecklenburgSource, map_nc_category
from app.services.sources.tomtom import TomTomSource


def nc_record(**overrides):
    record = {
        "id": 9001,
        "incidentType": "Vehicle Crash",
        "latitude": 35.24,
        "longitude": -80.84,
        "eventDescription": "Crash on I-77 N near exit 10",
        "roadName": "I-77 N",
        "startTime": "2025-09-24T13:39:00Z",
    }
    record.update(overrides)
    return record


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Vehicle Crash", "accident"),
        ("Collision", "accident"),
        ("Disabled Vehicle", "disabled_vehicle"),
        ("Stalled vehicle", "disabled_vehicle"),
        ("Road Work", "hazard"),
        ("", "hazard"),
        (None, "hazard"),
    ],
)
def test_nc_category_mapping(raw, expected):
    assert map_nc_category(raw) == expected


def test_nc_normalizes_record():
    result = NcMecklenburgSource().normalize([nc_record()])

    assert result.skipped == 0
    (inc,) = result.incidents
    assert inc.source == "nc_mecklenburg"
    assert inc.external_id == "9001"
    assert inc.category == "accident"
    assert inc.road == "I-77 N"
    assert inc.city == "Charlotte"
    assert inc.state == "NC"
    assert inc.occurred_at == datetime(2025, 9, 24, 13, 39, tzinfo=timezone.utc)


def test_null_latitude_is_dropped_without_failing_batch():
    raw = [nc_record(latitude=None), nc_record(id=9002)]
    result = NcMecklenburgSource().normalize(raw)

    assert [i.external_id for i in result.incidents] == ["9002"]
    assert result.skipped == 1


def test_malformed_records_are_skipped():
    raw = ["not a record", 42, nc_record(id=9003)]
    result = NcMecklenburgSource().normalize(raw)

    assert len(result.incidents) == 1
    assert result.skipped == 2


def test_nc_accepts_wrapped_payload_and_ignores_unknown_shape():
    src = NcMecklenburgSource()
    assert len(src.normalize({"incidents": [nc_record()]}).incidents) == 1
    assert src.normalize({"unexpected": True}).incidents == []


def test_nc_fallback_external_id_is_stable():
    rec = nc_record(id=None, startTime=None)
    a = NcMecklenburgSource().normalize([rec]).incidents[0]
    b = NcMecklenburgSource().normalize([rec]).incidents[0]
    assert a.external_id == b.external_id == "35.24,-80.84,accident"
    assert a.time_reported is False


def test_nc_numeric_type_code_is_not_fatal():
    raw = [nc_record(), nc_record(id=9004, incidentType=7)]
    result = NcMecklenburgSource().normalize(raw)

    assert [i.category for i in result.incidents] == ["accident", "hazard"]
    assert result.skipped == 0


def test_tomtom_point_and_linestring():
    src = TomTomSource(api_key="k")
    raw = {
        "incidents": [
            {
                "geometry": {"type": "Point", "coordinates": [-80.84, 35.24]},
                "properties": {"id": "tt-1", "iconCategory": 1, "roadNumbers": ["I-85"]},
            },
            {
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[-80.85, 35.25], [-80.86, 35.26]],
                },
                "properties": {
                    "id": "tt-2",
                    "iconCategory": 14,
                    "events": [{"description": "Broken down vehicle"}],
                },
            },
            {
                "geometry": {"type": "Polygon", "coordinates": []},
                "properties": {"id": "tt-3"},
            },
        ]
    }
    result = src.normalize(raw)

    first, second = result.incidents
    assert (first.category, first.lat, first.lng, first.road) == ("accident", 35.24, -80.84, "I-85")
    assert (second.category, second.lat, second.lng) == ("disabled_vehicle", 35.25, -80.85)
    assert second.description == "Broken down vehicle"
    assert result.skipped == 1


def test_tomtom_needs_api_key():
    assert not TomTomSource(api_key=None).is_configured()


def test_unknown_category_defaults_to_hazard():
    src = DotFeedSource(url="https://dot.test/feed")
    result = src.normalize(
        {"items": [{"id": "d1", "eventType": "WILDLIFE", "latitude": 35.2, "longitude": -80.8}]}
    )
    assert result.incidents[0].category == "hazard"


def test_dot_record_without_id_is_malformed():
    src = DotFeedSource(url="https://dot.test/feed")
    result = src.normalize({"items": [{"eventType": "CRASH", "latitude": 35.2, "longitude": -80.8}]})
    assert result.incidents == []
    assert result.skipped == 1


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2025-09-24T13:39:00Z", datetime(2025, 9, 24, 13, 39, tzinfo=timezone.utc)),
        ("2025-09-24T09:39:00-04:00", datetime(2025, 9, 24, 13, 39, tzinfo=timezone.utc)),
        (1758721140, datetime(2025, 9, 24, 13, 39, tzinfo=timezone.utc)),
        (1758721140000, datetime(2025, 9, 24, 13, 39, tzinfo=timezone.utc)),
        ("yesterday", None),
        (None, None),
    ],
)
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == expected


def test_build_sources_skips_unknown_and_unconfigured():
    sources = build_sources("nc_mecklenburg,tomtom,bogus")
    # tomtom has no key in the test environment
    assert [s.name for s in sources] == ["nc_mecklenburg"]


def test_dot_numeric_event_type_maps_to_hazard():
    src = DotFeedSource(url="https://dot.test/feed")
    result = src.normalize(
        {"items": [{"id": "d2", "eventType": 3, "latitude": 35.2, "longitude": -80.8}]}
    )
    assert result.incidents[0].category == "hazard"


@pytest.mark.parametrize(
    "bad",
    [
        {"geometry": [[-80.84, 35.24]], "properties": {"id": "tt-bad"}},
        {"geometry": {"type": "Point", "coordinates": [-80.84, 35.24]}, "properties": {"events": {"x": 1}}},
        {"geometry": {"type": "Point", "coordinates": [-80.84, 35.24]}, "properties": ["tt-bad"]},
        {"geometry": {"type": "Point", "coordinates": -80.84}},
    ],
)
def test_tomtom_bad_shapes_are_skipped(bad):
    good = {
        "geometry": {"type": "Point", "coordinates": [-80.84, 35.24]},
        "properties": {"id": "tt-ok", "iconCategory": 1},
    }
    result = TomTomSource(api_key="k").normalize({"incidents": [bad, good]})

    assert [i.external_id for i in result.incidents] == ["tt-ok"]
    assert result.skipped == 1


def test_unexpected_adapter_error_only_drops_that_record():
    class BrittleSource(DotFeedSource):
        def normalize_record(self, item):
            if item.get("id") == "boom":
                return item["missing"]
            return super().normalize_record(item)

    src = BrittleSource(url="https://dot.test/feed")
    result = src.normalize(
        {
            "items": [
                {"id": "boom"},
                {"id": "d3", "eventType": "CRASH", "latitude": 35.2, "longitude": -80.8},
            ]
        }
    )
    assert [i.external_id for i in result.incidents] == ["d3"]
    assert result.skipped == 1
