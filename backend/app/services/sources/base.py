# app/services/sources/base.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Literal, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ...errors import MalformedRecordError, SourceFetchError

log = logging.getLogger(__name__)


class CanonicalIncident(BaseModel):
    """Source-independent incident, ready to upsert."""

    source: str
    external_id: str
    category: Literal["accident", "disabled_vehicle", "hazard"]
    description: Optional[str] = None
    lat: float
    lng: float
    road: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    occurred_at: datetime
    # False when the feed gave no event time and occurred_at is the poll time
    time_reported: bool = True


@dataclass
class NormalizeResult:
    incidents: List[CanonicalIncident] = field(default_factory=list)
    # Records dropped for missing coordinates or malformed content
    skipped: int = 0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse ISO-ish timestamps ('2025-09-24T13:39:00Z', with or without an
    offset) or epoch seconds / milliseconds into an aware UTC datetime.
    Return None if missing/invalid.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            seconds = value / 1000.0 if value > 1e11 else float(value)
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def first_present(item: dict, *keys: str) -> Any:
    """First value under `keys` that is not None (empty strings count as missing)."""
    for key in keys:
        value = item.get(key)
        if value is not None and value != "":
            return value
    return None


class IncidentSource:
    """
    One upstream feed.

    Subclasses implement `fetch` (raw JSON from the feed), `records` (the
    list of raw items inside that JSON) and `normalize_record` (one raw item
    to a CanonicalIncident, None when it has no usable coordinates, or
    MalformedRecordError). `normalize` never raises for a single bad record.
    """

    name = "base"

    def is_configured(self) -> bool:
        return True

    async def fetch(self, client: httpx.AsyncClient) -> Any:
        raise NotImplementedError

    def records(self, raw: Any) -> Iterable[Any]:
        if isinstance(raw, list):
            return raw
        log.warning("[%s] Unexpected response shape: %s", self.name, type(raw).__name__)
        return []

    def normalize_record(self, item: Any) -> Optional[CanonicalIncident]:
        raise NotImplementedError

    def normalize(self, raw: Any) -> NormalizeResult:
        result = NormalizeResult()

        for item in self.records(raw):
            try:
                incident = self.normalize_record(item)
            except (MalformedRecordError, ValidationError) as e:
                log.debug("[%s] Dropping malformed record: %s", self.name, e)
                result.skipped += 1
                continue
            except (TypeError, AttributeError, KeyError, IndexError) as e:
                # Shape the adapter did not anticipate; still just this record
                log.warning("[%s] Dropping unreadable record: %r", self.name, e)
                result.skipped += 1
                continue

            if incident is None:
                result.skipped += 1
                continue

            result.incidents.append(incident)

        return result

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[dict] = None,
    ) -> Any:
        try:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise SourceFetchError(
                self.name,
                f"HTTP {e.response.status_code} {e.response.reason_phrase}",
            ) from e
        except httpx.TimeoutException as e:
            raise SourceFetchError(self.name, "request timed out") from e
        except httpx.HTTPError as e:
            raise SourceFetchError(self.name, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise SourceFetchError(self.name, "response was not valid JSON") from e
