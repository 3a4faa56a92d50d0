# app/services/sources/tomtom.py

from typing import Any, Iterable, Optional

import httpx

from ...config import TOMTOM_API_KEY, TOMTOM_BBOX
from ...errors import MalformedRecordError
from ..classify import ACCIDENT, DISABLED_VEHICLE, HAZARD
from ..geo import parse_coordinate
from .base import CanonicalIncident, IncidentSource, parse_timestamp, utcnow

TOMTOM_URL = "https://api.tomtom.com/traffic/services/5/incidentDetails"

TOMTOM_FIELDS = (
    "{incidents{type,geometry{type,coordinates},"
    "properties{id,iconCategory,magnitudeOfDelay,"
    "events{description,code,iconCategory},"
    "startTime,endTime,from,to,length,delay,roadNumbers}}}"
)

# TomTom iconCategory codes:
# 0 Unknown, 1 Accident, 2 Fog, 3 Dangerous Conditions, 4 Rain, 5 Ice,
# 6 Jam, 7 Lane Closed, 8 Road Closed, 9 Road Works, 10 Wind,
# 11 Flooding, 14 Broken Down Vehicle
TOMTOM_CATEGORY = {
    1: ACCIDENT,
    14: DISABLED_VEHICLE,
}


def map_tomtom_category(code: Any) -> str:
    try:
        return TOMTOM_CATEGORY.get(int(code), HAZARD)
    except (TypeError, ValueError):
        return HAZARD


class TomTomSource(IncidentSource):
    name = "tomtom"

    def __init__(
        self,
        api_key: Optional[str] = TOMTOM_API_KEY,
        bbox: str = TOMTOM_BBOX,
        city: str = "Charlotte",
        state: str = "NC",
    ):
        self.api_key = api_key
        self.bbox = bbox
        self.city = city
        self.state = state

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch(self, client: httpx.AsyncClient) -> Any:
        params = {
            "key": self.api_key,
            "bbox": self.bbox,
            "fields": TOMTOM_FIELDS,
            "language": "en-US",
            "categoryFilter": "0,1,2,3,4,5,6,7,8,9,10,11,14",
            "timeValidityFilter": "present",
        }
        return await self._get_json(client, TOMTOM_URL, params=params)

    def records(self, raw: Any) -> Iterable[Any]:
        if isinstance(raw, dict):
            return raw.get("incidents") or []
        return super().records(raw)

    def normalize_record(self, item: Any) -> Optional[CanonicalIncident]:
        if not isinstance(item, dict):
            raise MalformedRecordError("record is not an object")

        # GeoJSON: Point, or the first vertex of a LineString
        geometry = item.get("geometry") or {}
        if not isinstance(geometry, dict):
            raise MalformedRecordError("geometry is not an object")
        coords = geometry.get("coordinates")
        if geometry.get("type") == "Point":
            pair = coords
        elif geometry.get("type") == "LineString":
            pair = coords[0] if isinstance(coords, list) and coords else None
        else:
            raise MalformedRecordError(f"unsupported geometry {geometry.get('type')!r}")

        if not isinstance(pair, (list, tuple)) or len(pair) < 2:
            raise MalformedRecordError("geometry has no coordinate pair")

        lng = parse_coordinate(pair[0])
        lat = parse_coordinate(pair[1])
        if lat is None or lng is None:
            return None

        props = item.get("properties") or {}
        if not isinstance(props, dict):
            raise MalformedRecordError("properties is not an object")
        events = props.get("events") or []
        if not isinstance(events, list):
            raise MalformedRecordError("events is not a list")
        main_event = events[0] if events and isinstance(events[0], dict) else {}

        description = main_event.get("description") or props.get("from") or "Traffic incident"
        category = map_tomtom_category(
            props.get("iconCategory") or main_event.get("iconCategory") or 0
        )

        road_numbers = props.get("roadNumbers") or []
        if not isinstance(road_numbers, list):
            road_numbers = [road_numbers]
        road = (road_numbers[0] if road_numbers else None) or props.get("from")

        external_id = props.get("id") or f"tomtom-{lat}-{lng}"
        reported_at = parse_timestamp(props.get("startTime"))

        return CanonicalIncident(
            source=self.name,
            external_id=str(external_id),
            category=category,
            description=description,
            lat=lat,
            lng=lng,
            road=road,
            city=self.city,
            state=self.state,
            occurred_at=reported_at or utcnow(),
            time_reported=reported_at is not None,
        )
