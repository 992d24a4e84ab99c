"""Serialize run contexts across process boundaries."""

from __future__ import annotations

from typing import Any

from deployx.context.types import (
    CanaryHealth,
    Environment,
    EnvironmentOutcome,
    Outcome,
    RunContext,
    StageKind,
    StageResult,
)

RUN_CONTEXT_SCHEMA_VERSION = "deployx.run_context.v1"


def stage_result_to_dict(result: StageResult) -> dict[str, Any]:
    return {
        "stage": result.stage.value,
        "outcome": result.outcome.value,
        "message": result.message,
        "timestamp": result.timestamp,
        "url": result.url,
    }


def stage_result_from_dict(payload: dict[str, Any]) -> StageResult:
    return StageResult(
        stage=StageKind(str(payload["stage"])),
        outcome=Outcome(str(payload["outcome"])),
        message=str(payload.get("message", "")),
        timestamp=str(payload.get("timestamp", "")),
        url=payload.get("url"),
    )


def run_context_to_dict(ctx: RunContext) -> dict[str, Any]:
    """Convert a run context to a deterministic JSON payload."""
    return {
        "schema_version": RUN_CONTEXT_SCHEMA_VERSION,
        "version": ctx.version,
        "artifact_reference": ctx.artifact_reference,
        "source_branch": ctx.source_branch,
        "is_mainline_pipeline": ctx.is_mainline_pipeline,
        "target_environment": ctx.target_environment.value,
        "deployment_scope": ctx.deployment_scope,
        "db_migration_project_ref": ctx.db_migration_project_ref,
        "stage_results": [stage_result_to_dict(item) for item in ctx.stage_results],
        "canary_health": ctx.canary_health.value if ctx.canary_health else None,
        "canary_status": ctx.canary_status.value if ctx.canary_status else None,
        "deployed_url": ctx.deployed_url,
    }


def run_context_from_dict(payload: dict[str, Any]) -> RunContext:
    """Load a run context from its JSON payload, replaying stage results in order."""
    ctx = RunContext(
        version=str(payload["version"]),
        artifact_reference=str(payload["artifact_reference"]),
        source_branch=str(payload["source_branch"]),
        is_mainline_pipeline=bool(payload["is_mainline_pipeline"]),
        target_environment=Environment.parse(payload["target_environment"]),
        deployment_scope=str(payload["deployment_scope"]),
        db_migration_project_ref=payload.get("db_migration_project_ref"),
    )
    for item in payload.get("stage_results", []):
        ctx.record(stage_result_from_dict(item))

    canary_health = payload.get("canary_health")
    if canary_health:
        ctx.canary_health = CanaryHealth(canary_health)
    canary_status = payload.get("canary_status")
    if canary_status:
        ctx.canary_status = EnvironmentOutcome(canary_status)
    ctx.deployed_url = payload.get("deployed_url")
    return ctx
