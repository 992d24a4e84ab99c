"""Notification sinks. Delivery is best-effort and never changes run status."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import requests
from rich.console import Console

if TYPE_CHECKING:
    from collections.abc import Sequence

    from deployx.status.aggregator import NotificationPayload

logger = logging.getLogger(__name__)

DELIVERY_SUCCESS = "success"
DELIVERY_PARTIAL = "partial_success"
DELIVERY_FAILURE = "failure"
DELIVERY_SKIPPED = "skipped"

WEBHOOK_TIMEOUT_SECONDS = 10


class NotifierSink(Protocol):
    name: str

    def send(self, payload: NotificationPayload) -> None: ...


class ConsoleNotifier:
    """Print the payload to the terminal."""

    name = "console"

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def send(self, payload: NotificationPayload) -> None:
        style = {"good": "green", "warning": "yellow", "danger": "bold red"}.get(payload.color, "white")
        self.console.print(f"[{style}]{payload.title}[/{style}]")
        for label, value in payload.details:
            self.console.print(f"[cyan]{label}:[/cyan] {value}")
        for item in payload.stages:
            self.console.print(f"  {item.stage}: {item.outcome} ({item.message})")
        if payload.canary is not None:
            self.console.print(f"  {payload.canary.message}")


class SlackWebhookNotifier:
    """Post an attachment-style message to a Slack incoming webhook."""

    name = "slack"

    def __init__(self, webhook_url: str, *, mention_on_failure: str | None = None, session: Any = None) -> None:
        self.webhook_url = webhook_url
        self.mention_on_failure = mention_on_failure
        self.session = session or requests

    def build_body(self, payload: NotificationPayload) -> dict[str, Any]:
        text = payload.title
        if self.mention_on_failure and not payload.succeeded:
            text = f"{self.mention_on_failure} {text}"
        fields = [{"title": label, "value": value, "short": False} for label, value in payload.details]
        fields.extend(
            {"title": item.stage, "value": f"{item.outcome}: {item.message}", "short": True}
            for item in payload.stages
        )
        if payload.canary is not None:
            fields.append({"title": "Canary", "value": payload.canary.message, "short": False})
        return {
            "text": text,
            "attachments": [{"color": payload.color, "text": payload.message, "fields": fields}],
        }

    def send(self, payload: NotificationPayload) -> None:
        response = self.session.post(self.webhook_url, json=self.build_body(payload), timeout=WEBHOOK_TIMEOUT_SECONDS)
        response.raise_for_status()


class TeamsWebhookNotifier:
    """Post a MessageCard to a Microsoft Teams incoming webhook."""

    name = "teams"

    _THEME = {"good": "2EB886", "warning": "DAA038", "danger": "A30200"}

    def __init__(self, webhook_url: str, *, session: Any = None) -> None:
        self.webhook_url = webhook_url
        self.session = session or requests

    def build_body(self, payload: NotificationPayload) -> dict[str, Any]:
        facts = [{"name": label, "value": value} for label, value in payload.details]
        facts.extend({"name": item.stage, "value": f"{item.outcome}: {item.message}"} for item in payload.stages)
        return {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "summary": payload.title,
            "themeColor": self._THEME.get(payload.color, "808080"),
            "title": payload.title,
            "sections": [{"text": payload.message, "facts": facts}],
            "potentialAction": [
                {"@type": "OpenUri", "name": label, "targets": [{"os": "default", "uri": url}]}
                for label, url in payload.links
            ],
        }

    def send(self, payload: NotificationPayload) -> None:
        response = self.session.post(self.webhook_url, json=self.build_body(payload), timeout=WEBHOOK_TIMEOUT_SECONDS)
        response.raise_for_status()


def deliver(payload: NotificationPayload, sinks: Sequence[NotifierSink]) -> str:
    """Send to every sink, logging failures. Returns the delivery status."""
    if not sinks:
        return DELIVERY_SKIPPED

    delivered = 0
    for sink in sinks:
        try:
            sink.send(payload)
            delivered += 1
        except Exception as e:
            logger.warning("notification via %s failed: %s", getattr(sink, "name", type(sink).__name__), e)

    if delivered == len(sinks):
        return DELIVERY_SUCCESS
    if delivered == 0:
        return DELIVERY_FAILURE
    return DELIVERY_PARTIAL
