"""Status aggregation and notification delivery."""

from deployx.status.aggregator import CanarySummary, NotificationPayload, StageSummary, render
from deployx.status.notifiers import (
    ConsoleNotifier,
    SlackWebhookNotifier,
    TeamsWebhookNotifier,
    deliver,
)
from deployx.status.reporting import payload_from_dict, payload_to_dict, render_status_markdown

__all__ = [
    "CanarySummary",
    "ConsoleNotifier",
    "NotificationPayload",
    "SlackWebhookNotifier",
    "StageSummary",
    "TeamsWebhookNotifier",
    "deliver",
    "payload_from_dict",
    "payload_to_dict",
    "render",
    "render_status_markdown",
]
