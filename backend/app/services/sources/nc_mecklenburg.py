# app/services/sources/nc_mecklenburg.py

import logging
from typing import Any, Iterable, Optional

import httpx

from ...config import NC_TIMS_URL
from ...errors import MalformedRecordError
from ..classify import ACCIDENT, DISABLED_VEHICLE, HAZARD
from ..geo import parse_coordinate
from .base import (
    CanonicalIncident,
    IncidentSource,
    first_present,
    parse_timestamp,
    utcnow,
)

log = logging.getLogger(__name__)


def map_nc_category(raw: Any) -> str:
    s = str(raw if raw is not None else "").lower()

    if "crash" in s or "accident" in s or "collision" in s:
        return ACCIDENT
    if "disabled" in s or "stall" in s:
        return DISABLED_VEHICLE
    return HAZARD


class NcMecklenburgSource(IncidentSource):
    """NCDOT TIMS incidents for Mecklenburg County (county 60)."""

    name = "nc_mecklenburg"

    def __init__(self, url: str = NC_TIMS_URL):
        self.url = url

    async def fetch(self, client: httpx.AsyncClient) -> Any:
        return await self._get_json(
            client,
            self.url,
            params={"recent": "true", "verbose": "true"},
        )

    def records(self, raw: Any) -> Iterable[Any]:
        # The feed has answered with a bare list and with wrapped objects
        if isinstance(raw, list):
            return raw
        if isinstance(raw, dict):
            for key in ("incidents", "items"):
                if isinstance(raw.get(key), list):
                    return raw[key]
            log.warning("[nc_mecklenburg] Unexpected response shape: %s", sorted(raw.keys()))
            return []
        return super().records(raw)

    def normalize_record(self, item: Any) -> Optional[CanonicalIncident]:
        if not isinstance(item, dict):
            raise MalformedRecordError("record is not an object")

        lat = parse_coordinate(first_present(item, "latitude", "lat"))
        lng = parse_coordinate(first_present(item, "longitude", "lon", "long"))
        if lat is None or lng is None:
            return None

        category = map_nc_category(first_present(item, "incidentType", "eventType"))

        description = first_present(
            item, "eventDescription", "description", "impactingRoadway"
        )
        road = first_present(item, "roadName", "routeId", "routeName", "roadwayName")

        reported_at = parse_timestamp(
            first_present(item, "startTime", "createDateTime", "lastUpdated", "timestamp")
        )

        external_id = first_present(item, "id", "eventId", "incidentId")
        if external_id is None:
            # Only fields the feed repeats unchanged on every poll
            external_id = f"{lat},{lng},{category}"

        return CanonicalIncident(
            source=self.name,
            external_id=str(external_id),
            category=category,
            description=str(description) if description is not None else None,
            lat=lat,
            lng=lng,
            road=str(road) if road is not None else None,
            city=item.get("city") or "Charlotte",
            state="NC",
            occurred_at=reported_at or utcnow(),
            time_reported=reported_at is not None,
        )
