# app/services/sources/dot.py

from typing import Any, Iterable, Optional

import httpx

from ...config import DOT_FEED_URL
from ...errors import MalformedRecordError
from ..classify import ACCIDENT, DISABLED_VEHICLE, HAZARD
from ..geo import parse_coordinate
from .base import CanonicalIncident, IncidentSource, parse_timestamp, utcnow

# Generic 511 / state DOT JSON:
# {"items": [{"id", "eventType", "latitude", "longitude", "description",
#             "roadName", "city", "state", "timestamp"}, ...]}
DOT_EVENT_TYPES = {
    "ACCIDENT": ACCIDENT,
    "CRASH": ACCIDENT,
    "DISABLED_VEHICLE": DISABLED_VEHICLE,
    "DISABLED": DISABLED_VEHICLE,
}


def map_dot_category(event_type: Any) -> str:
    code = str(event_type if event_type is not None else "").strip().upper()
    return DOT_EVENT_TYPES.get(code, HAZARD)


class DotFeedSource(IncidentSource):
    name = "dot"

    def __init__(self, url: Optional[str] = DOT_FEED_URL):
        self.url = url

    def is_configured(self) -> bool:
        return bool(self.url)

    async def fetch(self, client: httpx.AsyncClient) -> Any:
        return await self._get_json(client, self.url)

    def records(self, raw: Any) -> Iterable[Any]:
        if isinstance(raw, dict) and isinstance(raw.get("items"), list):
            return raw["items"]
        return super().records(raw)

    def normalize_record(self, item: Any) -> Optional[CanonicalIncident]:
        if not isinstance(item, dict):
            raise MalformedRecordError("record is not an object")

        if item.get("id") is None:
            raise MalformedRecordError("record has no id")

        lat = parse_coordinate(item.get("latitude"))
        lng = parse_coordinate(item.get("longitude"))
        if lat is None or lng is None:
            return None

        reported_at = parse_timestamp(item.get("timestamp"))

        return CanonicalIncident(
            source=self.name,
            external_id=str(item["id"]),
            category=map_dot_category(item.get("eventType")),
            description=item.get("description") or None,
            lat=lat,
            lng=lng,
            road=item.get("roadName") or None,
            city=item.get("city") or None,
            state=item.get("state") or None,
            occurred_at=reported_at or utcnow(),
            time_reported=reported_at is not None,
        )
