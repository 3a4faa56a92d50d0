# app/services/ingest.py

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import SOURCE_TIMEOUT_SECONDS
from ..db import insert_for
from ..errors import SourceFetchError
from ..models.incidents import Incident
from .sources import CanonicalIncident, IncidentSource, NormalizeResult
from .sources.base import utcnow

log = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

# Columns refreshed when an already-known (source, external_id) comes back
REFRESHED_COLUMNS = (
    "category",
    "description",
    "lat",
    "lng",
    "road",
    "city",
    "state",
    "occurred_at",
)


@dataclass
class IngestResult:
    fetched: int = 0
    # Successful upserts (new rows and refreshed rows)
    inserted: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    source_failures: List[Dict[str, str]] = field(default_factory=list)
    sources_attempted: int = 0

    @property
    def status(self) -> str:
        if not self.sources_attempted:
            return STATUS_FAILED
        if len(self.source_failures) == self.sources_attempted:
            return STATUS_FAILED
        if self.errors or self.source_failures:
            return STATUS_PARTIAL
        return STATUS_OK

    def to_dict(self) -> dict:
        return {
            "ok": self.status == STATUS_OK,
            "status": self.status,
            "fetched": self.fetched,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
            "source_failures": self.source_failures,
            "sources_attempted": self.sources_attempted,
        }


async def fetch_source(source: IncidentSource, client: httpx.AsyncClient) -> NormalizeResult:
    """Fetch + normalize one feed. Raises SourceFetchError only."""
    raw = await source.fetch(client)
    result = source.normalize(raw)
    log.info(
        "[ingest] %s returned %d incidents (%d skipped)",
        source.name,
        len(result.incidents),
        result.skipped,
    )
    return result


def upsert_incident(db: Session, incident: CanonicalIncident) -> None:
    """
    Insert or refresh one incident keyed on (source, external_id).

    A single INSERT ... ON CONFLICT DO UPDATE, so concurrent ingestion runs
    cannot create duplicates.
    """
    values = incident.model_dump(exclude={"time_reported"})
    now = utcnow()
    values["updated_at"] = now

    stmt = insert_for(db, Incident.__table__).values(**values)
    update_cols = {col: stmt.excluded[col] for col in REFRESHED_COLUMNS}
    if not incident.time_reported:
        # No event time from the feed: keep the first-seen time
        del update_cols["occurred_at"]
    update_cols["updated_at"] = now
    stmt = stmt.on_conflict_do_update(
        index_elements=["source", "external_id"],
        set_=update_cols,
    )
    db.execute(stmt)


async def run_ingestion(
    db: Session,
    sources: Sequence[IncidentSource],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> IngestResult:
    """
    Pull every configured feed and upsert into incidents.

    A failed source contributes nothing and is reported in
    `source_failures`; a failed record is rolled back on its own and
    reported in `errors`. Neither aborts the rest of the batch.
    """
    result = IngestResult(sources_attempted=len(sources))
    if not sources:
        log.warning("[ingest] No incident sources are configured; nothing to ingest.")
        return result

    batch: List[CanonicalIncident] = []

    async with httpx.AsyncClient(timeout=SOURCE_TIMEOUT_SECONDS, transport=transport) as client:
        outcomes = await asyncio.gather(
            *(fetch_source(source, client) for source in sources),
            return_exceptions=True,
        )

    for source, outcome in zip(sources, outcomes):
        if isinstance(outcome, SourceFetchError):
            log.error("[ingest] Source fetch failed: %s", outcome.message)
            result.source_failures.append({"source": source.name, "message": outcome.message})
            continue
        if isinstance(outcome, BaseException):
            # Adapter bug; keep the other sources going
            log.exception("[ingest] %s raised unexpectedly", source.name, exc_info=outcome)
            result.source_failures.append({"source": source.name, "message": repr(outcome)})
            continue

        batch.extend(outcome.incidents)
        result.skipped += outcome.skipped

    result.fetched = len(batch)

    for incident in batch:
        try:
            upsert_incident(db, incident)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.error(
                "[ingest] Upsert error for %s/%s: %s",
                incident.source,
                incident.external_id,
                e,
            )
            result.errors.append(
                {
                    "source": incident.source,
                    "external_id": incident.external_id,
                    "message": str(e.__cause__ or e),
                }
            )
            continue
        result.inserted += 1

    log.info(
        "[ingest] Upserted %d of %d incidents, %d skipped, %d errors, %d failed sources.",
        result.inserted,
        result.fetched,
        result.skipped,
        len(result.errors),
        len(result.source_failures),
    )
    return result
