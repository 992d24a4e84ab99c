"""Status rendering is pure and reflects the aggregate outcome."""

from __future__ import annotations

from deployx.context.types import (
    CanaryHealth,
    Environment,
    EnvironmentOutcome,
    Outcome,
    StageKind,
    StageResult,
)
from deployx.status.aggregator import render
from deployx.status.reporting import payload_from_dict, payload_to_dict, render_status_markdown
from tests.unit.deploy_test_utils import make_context

TS = "1970-01-01T00:00:00Z"


def _ctx(environment: Environment, *results: tuple[Outcome, str]):
    ctx = make_context(environment)
    for stage, (outcome, message) in zip(StageKind, results):
        ctx.record(StageResult(stage=stage, outcome=outcome, message=message, timestamp=TS))
    return ctx


def test_render_is_idempotent() -> None:
    ctx = _ctx(
        Environment.DEV,
        (Outcome.SUCCESS, "no changes"),
        (Outcome.SUCCESS, "migration applied"),
        (Outcome.SUCCESS, "deployed"),
    )
    assert render(ctx, run_url="https://ci/run/1") == render(ctx, run_url="https://ci/run/1")


def test_success_payload() -> None:
    ctx = _ctx(
        Environment.DEV,
        (Outcome.SUCCESS, "no changes"),
        (Outcome.SKIPPED, "not configured"),
        (Outcome.SUCCESS, "deployed"),
    )
    ctx.deployed_url = "https://app-dev.example.com"

    payload = render(ctx, run_url="https://ci/run/1")

    assert payload.status == "success"
    assert payload.succeeded
    assert payload.icon == "✅"
    assert payload.color == "good"
    assert payload.title == "✅ Workflow *deployx* on *main* finished with status: *success*"
    assert payload.message == "Deployment of 1.4.0 to Development succeeded."
    assert ("Environment", "Development") in payload.details
    assert payload.details[0] == ("Run URL", "https://ci/run/1")
    assert payload.links == (("Run", "https://ci/run/1"), ("Deployment", "https://app-dev.example.com"))
    assert payload.canary is None


def test_failure_names_failed_stage_and_not_run_stages() -> None:
    ctx = _ctx(
        Environment.DEV,
        (Outcome.FAILURE, "infrastructure operation reported error"),
        (Outcome.SKIPPED, "not run: infra-apply failed"),
        (Outcome.SKIPPED, "not run: infra-apply failed"),
    )
    payload = render(ctx)

    assert payload.status == "failure"
    assert payload.color == "danger"
    assert payload.message == (
        "Deployment of 1.4.0 to Development failed at infra-apply: infrastructure operation reported error. "
        "Not run: db-migrate, app-deploy."
    )


def test_rolled_back_prod_reports_contained_incident() -> None:
    ctx = _ctx(
        Environment.PROD,
        (Outcome.SUCCESS, "no changes"),
        (Outcome.SUCCESS, "migration applied"),
        (Outcome.FAILURE, "Canary unhealthy (health probe 3 failed); rolled back to 0% canary traffic"),
    )
    ctx.canary_health = CanaryHealth.UNHEALTHY
    ctx.canary_status = EnvironmentOutcome.ROLLED_BACK

    payload = render(ctx)

    assert payload.status == "rolled_back"
    assert payload.icon == "⚠️"
    assert payload.color == "warning"
    assert payload.message.startswith("Deployment of 1.4.0 to Production was rolled back. Incident contained:")
    assert payload.canary is not None
    assert payload.canary.message == "Canary outcome: rolled_back (health: unhealthy)."


def test_unhealthy_canary_without_rollback_is_not_contained() -> None:
    ctx = _ctx(
        Environment.PROD,
        (Outcome.SUCCESS, "no changes"),
        (Outcome.SUCCESS, "migration applied"),
        (Outcome.FAILURE, "Canary unhealthy (health probe 2 failed); rollback disabled, canary left in place"),
    )
    ctx.canary_health = CanaryHealth.UNHEALTHY
    ctx.canary_status = EnvironmentOutcome.FAILURE

    payload = render(ctx)

    assert payload.status == "failure"
    assert "Incident NOT contained" in payload.message


def test_prod_without_canary_reports_skipped() -> None:
    ctx = _ctx(
        Environment.PROD,
        (Outcome.FAILURE, "manual approval required"),
        (Outcome.SKIPPED, "not run: infra-apply failed"),
        (Outcome.SKIPPED, "not run: infra-apply failed"),
    )
    ctx.canary_health = CanaryHealth.SKIPPED
    payload = render(ctx)
    assert payload.canary is not None
    assert payload.canary.message == "Canary deployment was skipped."


def test_status_dict_and_markdown() -> None:
    ctx = _ctx(
        Environment.TEST,
        (Outcome.SUCCESS, "no changes"),
        (Outcome.SKIPPED, "not configured"),
        (Outcome.SUCCESS, "deployed"),
    )
    payload = render(ctx)

    data = payload_to_dict(payload)
    assert data["schema_version"] == "deployx.status.v1"
    assert payload_from_dict(data) == payload

    markdown = render_status_markdown(payload)
    assert markdown.startswith("# DEPLOYMENT_STATUS")
    assert "- ✓ infra-apply: success (no changes)" in markdown
    assert "- — db-migrate: skipped (not configured)" in markdown
