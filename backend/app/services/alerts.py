# app/services/alerts.py

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import ALERT_LOOKBACK_MINUTES, CHANNEL_TIMEOUT_SECONDS
from ..db import insert_for
from ..errors import DeliveryError, TowRadarError
from ..models.companies import DEFAULT_ALERT_CATEGORIES, Company
from ..models.notifications import InAppAlert, NotificationRecord
from .channels import ALERT_TITLE, NotificationChannel, default_channels, describe
from .relevance import NearbyIncident, filter_within, recent_incidents
from .sources.base import utcnow

log = logging.getLogger(__name__)

IN_APP = "in_app"


def in_quiet_hours(now: time, start: Optional[time], end: Optional[time]) -> bool:
    """
    True when `now` falls in [start, end). A window with start > end spans
    midnight. No window configured -> never quiet.
    """
    if start is None or end is None:
        return False
    if start <= end:
        return start <= now < end
    return now >= start or now < end


def company_local_time(company: Company, now: datetime) -> time:
    tz_name = company.timezone or "UTC"
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("[alerts] Unknown timezone %r for company %s, using UTC", tz_name, company.id)
        tz = timezone.utc
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).time().replace(tzinfo=None)


@dataclass
class AlertRules:
    enabled: bool
    categories: Dict[str, bool]
    radius_km: float
    buffer_km: float

    @classmethod
    def from_company(cls, company: Company) -> "AlertRules":
        categories = dict(DEFAULT_ALERT_CATEGORIES)
        categories.update(company.alert_categories or {})
        return cls(
            enabled=bool(company.alert_enabled),
            categories=categories,
            radius_km=company.radius_km,
            buffer_km=company.alert_buffer_km or 0.0,
        )

    @property
    def max_distance_km(self) -> float:
        return self.radius_km + self.buffer_km

    def allows(self, nearby: NearbyIncident) -> bool:
        if not self.enabled:
            return False
        if not self.categories.get(nearby.display_category, False):
            return False
        return nearby.distance_km <= self.max_distance_km


@dataclass
class AlertRunResult:
    company_id: int
    candidates: int = 0
    notified: List[int] = field(default_factory=list)
    deliveries: Counter = field(default_factory=Counter)
    failures: List[Dict[str, str]] = field(default_factory=list)
    quiet_hours: bool = False

    def to_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "candidates": self.candidates,
            "notified": len(self.notified),
            "incident_ids": self.notified,
            "deliveries": dict(self.deliveries),
            "failures": self.failures,
            "quiet_hours": self.quiet_hours,
        }


class AlertEngine:
    """
    One alert pass per company per refresh cycle.

    The notification_records ledger decides who alerts: an incident is only
    dispatched by the evaluation whose conditional insert created its
    (company, incident) row. Delivery is at-most-once; failed sends are
    reported and never retried.
    """

    def __init__(
        self,
        channels: Optional[Sequence[NotificationChannel]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        lookback_minutes: int = ALERT_LOOKBACK_MINUTES,
    ):
        self.channels = list(channels) if channels is not None else default_channels()
        self.transport = transport
        self.lookback_minutes = lookback_minutes

    def find_alert_worthy(
        self,
        db: Session,
        company: Company,
        now: datetime,
        seen_ids: Optional[Iterable[int]] = None,
    ) -> List[NearbyIncident]:
        rules = AlertRules.from_company(company)
        if not rules.enabled:
            return []

        incidents = recent_incidents(db, self.lookback_minutes, now)
        nearby = filter_within(company, incidents, extra_km=rules.buffer_km)

        # Both of these only save work; record_notification is the real guard
        already = {
            row[0]
            for row in db.query(NotificationRecord.incident_id)
            .filter(NotificationRecord.company_id == company.id)
            .all()
        }
        seen = set(seen_ids or ())

        return [
            n
            for n in nearby
            if n.incident.id not in already and n.incident.id not in seen and rules.allows(n)
        ]

    def channel_names(self, company: Company) -> List[str]:
        names = [IN_APP]
        names.extend(c.name for c in self.channels if c.destination(company))
        return names

    def record_notification(
        self,
        db: Session,
        company_id: int,
        incident_id: int,
        channels: str,
    ) -> bool:
        """
        Atomically create the ledger row. True if this call created it,
        False if the pair was already notified.
        """
        stmt = (
            insert_for(db, NotificationRecord.__table__)
            .values(
                company_id=company_id,
                incident_id=incident_id,
                channels=channels,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["company_id", "incident_id"])
        )
        res = db.execute(stmt)
        db.commit()
        return res.rowcount == 1

    async def run_for_company(
        self,
        db: Session,
        company: Company,
        now: Optional[datetime] = None,
        seen_ids: Optional[Iterable[int]] = None,
    ) -> AlertRunResult:
        now = now or utcnow()
        result = AlertRunResult(company_id=company.id)

        worthy = self.find_alert_worthy(db, company, now, seen_ids)
        result.candidates = len(worthy)
        if not worthy:
            return result

        channels = ",".join(self.channel_names(company))
        fresh: List[NearbyIncident] = []
        for nearby in worthy:
            try:
                created = self.record_notification(db, company.id, nearby.incident.id, channels)
            except SQLAlchemyError as e:
                db.rollback()
                log.error(
                    "[alerts] Could not record notification %s/%s: %s",
                    company.id,
                    nearby.incident.id,
                    e,
                )
                result.failures.append({"channel": "ledger", "message": str(e)})
                continue
            if created:
                fresh.append(nearby)

        if not fresh:
            return result

        result.notified = [n.incident.id for n in fresh]
        result.quiet_hours = in_quiet_hours(
            company_local_time(company, now),
            company.quiet_hours_start,
            company.quiet_hours_end,
        )

        self._deliver_in_app(db, company, fresh, audible=not result.quiet_hours, result=result)
        await self._deliver_external(company, fresh, result)

        log.info(
            "[alerts] Company %s: %d new alerts, deliveries %s, %d failures",
            company.id,
            len(fresh),
            dict(result.deliveries),
            len(result.failures),
        )
        return result

    def _deliver_in_app(
        self,
        db: Session,
        company: Company,
        items: Sequence[NearbyIncident],
        audible: bool,
        result: AlertRunResult,
    ) -> None:
        try:
            for item in items:
                db.add(
                    InAppAlert(
                        company_id=company.id,
                        incident_id=item.incident.id,
                        title=ALERT_TITLE,
                        body=describe(item),
                        audible=audible,
                        created_at=utcnow(),
                    )
                )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.error("[alerts] In-app alert insert failed for company %s: %s", company.id, e)
            result.failures.append({"channel": IN_APP, "message": str(e)})
            return
        result.deliveries[IN_APP] += len(items)

    async def _deliver_external(
        self,
        company: Company,
        items: Sequence[NearbyIncident],
        result: AlertRunResult,
    ) -> None:
        async with httpx.AsyncClient(timeout=CHANNEL_TIMEOUT_SECONDS, transport=self.transport) as client:
            for channel in self.channels:
                destination = channel.destination(company)
                if not destination:
                    continue
                for message in channel.build_messages(company, items):
                    try:
                        await channel.send_message(client, destination, message)
                    except DeliveryError as e:
                        log.error("[alerts] Delivery failed for company %s: %s", company.id, e.message)
                        result.failures.append({"channel": channel.name, "message": e.message})
                        continue
                    result.deliveries[channel.name] += 1

    async def run_all(self, db: Session, now: Optional[datetime] = None) -> List[AlertRunResult]:
        """Alert pass over every company; one company failing does not stop the rest."""
        results = []
        for company in db.query(Company).order_by(Company.id).all():
            try:
                results.append(await self.run_for_company(db, company, now=now))
            except (TowRadarError, SQLAlchemyError) as e:
                db.rollback()
                log.error("[alerts] Alert pass failed for company %s: %s", company.id, e)
                failed = AlertRunResult(company_id=company.id)
                failed.failures.append({"channel": "engine", "message": str(e)})
                results.append(failed)
        return results
