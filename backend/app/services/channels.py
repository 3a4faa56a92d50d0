# app/services/channels.py

"""
Outbound notification channels (email, SMS, push).

Each channel knows where a company wants its messages (`destination`), how
to word them (`build_messages`) and how to hand one message to its provider
(`send_message`). Sends are fire-and-forget: a provider failure raises
DeliveryError and the caller logs it. With no provider configured the
message is logged instead, which is how development environments run.
"""

import logging
from typing import List, Optional, Sequence

import httpx

from ..config import (
    ALERT_FROM_EMAIL,
    ALERT_TO_FALLBACK,
    PUSH_WEBHOOK_URL,
    RESEND_API_KEY,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_FROM_NUMBER,
)
from ..errors import DeliveryError
from ..models.companies import Company
from .classify import CATEGORY_LABEL
from .relevance import NearbyIncident

log = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

ALERT_TITLE = "New tow opportunity"


def describe(item: NearbyIncident) -> str:
    """'Crash at I-77 N - ~1.5 km from your yard'"""
    label = CATEGORY_LABEL.get(item.display_category, "Incident")
    road = item.incident.road or "unknown road"
    return f"{label} at {road} - ~{item.distance_km:.1f} km from your yard"


class NotificationChannel:
    name = "base"

    def destination(self, company: Company) -> Optional[str]:
        raise NotImplementedError

    def build_messages(self, company: Company, items: Sequence[NearbyIncident]) -> List[dict]:
        raise NotImplementedError

    async def send_message(self, client: httpx.AsyncClient, destination: str, message: dict) -> None:
        raise NotImplementedError

    async def _post(self, client: httpx.AsyncClient, url: str, **kwargs) -> None:
        try:
            resp = await client.post(url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DeliveryError(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise DeliveryError(self.name, "request timed out") from e
        except httpx.HTTPError as e:
            raise DeliveryError(self.name, str(e) or type(e).__name__) from e


class EmailChannel(NotificationChannel):
    """One summary email per alert pass (Resend)."""

    name = "email"

    def __init__(
        self,
        api_key: Optional[str] = RESEND_API_KEY,
        from_email: str = ALERT_FROM_EMAIL,
        fallback_to: Optional[str] = ALERT_TO_FALLBACK,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.fallback_to = fallback_to

    def destination(self, company: Company) -> Optional[str]:
        return company.alert_email or self.fallback_to

    def build_messages(self, company: Company, items: Sequence[NearbyIncident]) -> List[dict]:
        n = len(items)
        plural = "s" if n > 1 else ""
        subject = f"[TowRadar] {n} new incident{plural} near your coverage area"

        lines = []
        for item in items:
            inc = item.incident
            when = inc.occurred_at.strftime("%Y-%m-%d %H:%M UTC") if inc.occurred_at else "unknown time"
            where = f"{inc.road or 'Unknown road'}, {inc.city or 'Unknown'} {inc.state or ''}".strip()
            label = CATEGORY_LABEL.get(item.display_category, "Incident").upper()
            lines.append(f"* {label} at {where} ({when}), ~{item.distance_km:.1f} km away")

        text = "\n".join(
            [
                f"Hi {company.name},",
                "",
                f"TowRadar detected {n} new incident{plural} near your coverage area:",
                "",
                *lines,
                "",
                "Log into your dashboard to see more details.",
            ]
        )
        return [{"subject": subject, "text": text}]

    async def send_message(self, client: httpx.AsyncClient, destination: str, message: dict) -> None:
        if not self.api_key:
            log.info(
                "[email] (no provider configured) to=%s subject=%s\n%s",
                destination,
                message["subject"],
                message["text"],
            )
            return

        await self._post(
            client,
            RESEND_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.from_email,
                "to": [destination],
                "subject": message["subject"],
                "text": message["text"],
            },
        )


class SmsChannel(NotificationChannel):
    """One text per incident (Twilio)."""

    name = "sms"

    def __init__(
        self,
        account_sid: Optional[str] = TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = TWILIO_AUTH_TOKEN,
        from_number: Optional[str] = TWILIO_FROM_NUMBER,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    def destination(self, company: Company) -> Optional[str]:
        return company.alert_phone

    def build_messages(self, company: Company, items: Sequence[NearbyIncident]) -> List[dict]:
        messages = []
        for item in items:
            inc = item.incident
            label = CATEGORY_LABEL.get(item.display_category, "Incident").upper()
            when = inc.occurred_at.strftime("%H:%M UTC") if inc.occurred_at else "just now"
            body = (
                f"[TowRadar] {label} near {inc.road or 'unknown road'} "
                f"in {inc.city or 'your area'} at ~{when}, "
                f"{item.distance_km:.1f} km away. Check dashboard for details."
            )
            messages.append({"incident_id": inc.id, "body": body})
        return messages

    async def send_message(self, client: httpx.AsyncClient, destination: str, message: dict) -> None:
        if not (self.account_sid and self.auth_token and self.from_number):
            log.info("[sms] (no provider configured) to=%s body=%s", destination, message["body"])
            return

        await self._post(
            client,
            TWILIO_URL.format(sid=self.account_sid),
            auth=(self.account_sid, self.auth_token),
            data={"From": self.from_number, "To": destination, "Body": message["body"]},
        )


class PushChannel(NotificationChannel):
    """One push per incident, posted to a push gateway webhook."""

    name = "push"

    def __init__(self, webhook_url: Optional[str] = PUSH_WEBHOOK_URL):
        self.webhook_url = webhook_url

    def destination(self, company: Company) -> Optional[str]:
        return company.push_token

    def build_messages(self, company: Company, items: Sequence[NearbyIncident]) -> List[dict]:
        return [
            {"incident_id": item.incident.id, "title": ALERT_TITLE, "body": describe(item)}
            for item in items
        ]

    async def send_message(self, client: httpx.AsyncClient, destination: str, message: dict) -> None:
        if not self.webhook_url:
            log.info(
                "[push] (no gateway configured) to=%s title=%s body=%s",
                destination,
                message["title"],
                message["body"],
            )
            return

        await self._post(
            client,
            self.webhook_url,
            json={
                "to": destination,
                "title": message["title"],
                "body": message["body"],
                "data": {"type": "new_incident", "incidentId": message["incident_id"]},
            },
        )


def default_channels() -> List[NotificationChannel]:
    return [EmailChannel(), SmsChannel(), PushChannel()]
