"""Deterministic status report writers."""

from __future__ import annotations

from typing import Any

from deployx.status.aggregator import CanarySummary, NotificationPayload, StageSummary

STATUS_SCHEMA_VERSION = "deployx.status.v1"


def payload_to_dict(payload: NotificationPayload) -> dict[str, Any]:
    """Convert a notification payload to a deterministic JSON payload."""
    return {
        "schema_version": STATUS_SCHEMA_VERSION,
        "status": payload.status,
        "environment": payload.environment,
        "version": payload.version,
        "title": payload.title,
        "message": payload.message,
        "icon": payload.icon,
        "color": payload.color,
        "details": [{"label": label, "value": value} for label, value in payload.details],
        "stages": [
            {"stage": item.stage, "outcome": item.outcome, "message": item.message}
            for item in payload.stages
        ],
        "canary": (
            {
                "health": payload.canary.health,
                "status": payload.canary.status,
                "message": payload.canary.message,
            }
            if payload.canary
            else None
        ),
        "links": [{"label": label, "url": url} for label, url in payload.links],
    }


def payload_from_dict(data: dict[str, Any]) -> NotificationPayload:
    canary_raw = data.get("canary")
    return NotificationPayload(
        status=str(data["status"]),
        environment=str(data["environment"]),
        version=str(data["version"]),
        title=str(data["title"]),
        message=str(data["message"]),
        icon=str(data.get("icon", "")),
        color=str(data.get("color", "")),
        details=tuple((str(item["label"]), str(item["value"])) for item in data.get("details", [])),
        stages=tuple(
            StageSummary(stage=str(item["stage"]), outcome=str(item["outcome"]), message=str(item["message"]))
            for item in data.get("stages", [])
        ),
        canary=(
            CanarySummary(
                health=str(canary_raw["health"]),
                status=canary_raw.get("status"),
                message=str(canary_raw["message"]),
            )
            if canary_raw
            else None
        ),
        links=tuple((str(item["label"]), str(item["url"])) for item in data.get("links", [])),
    )


def render_status_markdown(payload: NotificationPayload) -> str:
    """Render deterministic human-readable status summary."""
    lines = [
        "# DEPLOYMENT_STATUS",
        "",
        f"- status: {payload.status}",
        f"- environment: {payload.environment}",
        f"- version: {payload.version}",
        "",
        payload.message,
        "",
        "## Stages",
        "",
    ]
    for item in payload.stages:
        icon = {"success": "✓", "failure": "✗", "skipped": "—"}.get(item.outcome, "?")
        lines.append(f"- {icon} {item.stage}: {item.outcome} ({item.message})")

    if payload.canary is not None:
        lines.extend(["", "## Canary", "", f"- health: {payload.canary.health}", f"- {payload.canary.message}"])

    if payload.links:
        lines.extend(["", "## Links", ""])
        for label, url in payload.links:
            lines.append(f"- [{label}]({url})")

    lines.append("")
    return "\n".join(lines)
