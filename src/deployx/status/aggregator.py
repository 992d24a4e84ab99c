"""Render a finished run context into a notification payload."""

from __future__ import annotations

from dataclasses import dataclass

from deployx.context.types import CanaryHealth, EnvironmentOutcome, Outcome, RunContext, StageKind

STATUS_STYLE: dict[EnvironmentOutcome, tuple[str, str]] = {
    EnvironmentOutcome.SUCCESS: ("✅", "good"),
    EnvironmentOutcome.ROLLED_BACK: ("⚠️", "warning"),
    EnvironmentOutcome.FAILURE: ("❌", "danger"),
}


@dataclass(frozen=True)
class StageSummary:
    stage: str
    outcome: str
    message: str


@dataclass(frozen=True)
class CanarySummary:
    health: str
    status: str | None
    message: str


@dataclass(frozen=True)
class NotificationPayload:
    """Channel-agnostic status report for one environment run."""

    status: str
    environment: str
    version: str
    title: str
    message: str
    icon: str
    color: str
    details: tuple[tuple[str, str], ...]
    stages: tuple[StageSummary, ...]
    canary: CanarySummary | None
    links: tuple[tuple[str, str], ...]

    @property
    def succeeded(self) -> bool:
        return self.status == EnvironmentOutcome.SUCCESS.value


def render(
    ctx: RunContext,
    *,
    run_url: str | None = None,
    workflow_name: str = "deployx",
) -> NotificationPayload:
    """Build the payload for ``ctx``.

    Pure: the same context always renders to an equal payload. No clock is
    read here; stage timestamps come from the context.
    """
    outcome = ctx.aggregate_outcome()
    icon, color = STATUS_STYLE[outcome]
    environment = ctx.target_environment

    title = (
        f"{icon} Workflow *{workflow_name}* on *{ctx.source_branch}* "
        f"finished with status: *{outcome.value}*"
    )

    stages = tuple(
        StageSummary(stage=item.stage.value, outcome=item.outcome.value, message=item.message)
        for item in ctx.stage_results
    )
    canary = _canary_summary(ctx)

    details: list[tuple[str, str]] = [
        ("Environment", environment.display_name),
        ("Version Deployed", ctx.version),
        ("Artifact", ctx.artifact_reference),
        ("Source Branch", ctx.source_branch),
        ("Details", _message(ctx, outcome)),
    ]
    if run_url:
        details.insert(0, ("Run URL", run_url))

    links: list[tuple[str, str]] = []
    if run_url:
        links.append(("Run", run_url))
    if ctx.deployed_url:
        links.append(("Deployment", ctx.deployed_url))

    return NotificationPayload(
        status=outcome.value,
        environment=environment.value,
        version=ctx.version,
        title=title,
        message=_message(ctx, outcome),
        icon=icon,
        color=color,
        details=tuple(details),
        stages=stages,
        canary=canary,
        links=tuple(links),
    )


def _message(ctx: RunContext, outcome: EnvironmentOutcome) -> str:
    env_name = ctx.target_environment.display_name
    head = f"Deployment of {ctx.version} to {env_name}"

    if outcome is EnvironmentOutcome.SUCCESS:
        return f"{head} succeeded."

    deploy = ctx.result_for(StageKind.APP_DEPLOY)
    if outcome is EnvironmentOutcome.ROLLED_BACK:
        detail = deploy.message if deploy else "canary rolled back"
        return f"{head} was rolled back. Incident contained: {detail}."

    if ctx.canary_health is CanaryHealth.UNHEALTHY:
        detail = deploy.message if deploy else "canary unhealthy"
        return f"{head} failed. Incident NOT contained: {detail}."

    results = ctx.stage_results
    index = next((i for i, item in enumerate(results) if item.outcome is Outcome.FAILURE), None)
    if index is None:
        return f"{head} did not complete."
    failed = results[index]
    not_run = [item.stage.value for item in results[index + 1 :]]
    tail = f" Not run: {', '.join(not_run)}." if not_run else ""
    return f"{head} failed at {failed.stage.value}: {failed.message}.{tail}"


def _canary_summary(ctx: RunContext) -> CanarySummary | None:
    if not ctx.target_environment.uses_canary:
        return None
    health = ctx.canary_health or CanaryHealth.SKIPPED
    status = ctx.canary_status.value if ctx.canary_status else None
    if health is CanaryHealth.SKIPPED:
        message = "Canary deployment was skipped."
    else:
        message = f"Canary outcome: {status or 'unknown'} (health: {health.value})."
    return CanarySummary(health=health.value, status=status, message=message)
