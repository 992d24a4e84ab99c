"""RunContext invariants and serialization."""

from __future__ import annotations

import pytest

from deployx.context.serialization import run_context_from_dict, run_context_to_dict
from deployx.context.types import (
    CanaryHealth,
    Environment,
    EnvironmentOutcome,
    Outcome,
    StageKind,
    StageResult,
)
from deployx.errors import ConfigurationError
from deployx.schemas.validator import validate_data
from tests.unit.deploy_test_utils import make_context

TS = "1970-01-01T00:00:00Z"


def _result(stage: StageKind, outcome: Outcome = Outcome.SUCCESS, message: str = "ok", url: str | None = None) -> StageResult:
    return StageResult(stage=stage, outcome=outcome, message=message, timestamp=TS, url=url)


def _record_all(ctx, *outcomes: Outcome) -> None:
    for stage, outcome in zip(StageKind, outcomes):
        ctx.record(_result(stage, outcome))


def test_identity_fields_are_immutable() -> None:
    ctx = make_context()
    with pytest.raises(AttributeError):
        ctx.version = "2.0.0"
    with pytest.raises(AttributeError):
        ctx.target_environment = Environment.PROD

    ctx.deployed_url = "https://app.example.com"
    assert ctx.deployed_url == "https://app.example.com"


def test_stage_results_are_recorded_once_and_in_order() -> None:
    ctx = make_context()
    with pytest.raises(ValueError, match="out of order"):
        ctx.record(_result(StageKind.DB_MIGRATE))

    ctx.record(_result(StageKind.INFRA_APPLY))
    with pytest.raises(ValueError, match="already recorded"):
        ctx.record(_result(StageKind.INFRA_APPLY))

    ctx.record(_result(StageKind.DB_MIGRATE))
    ctx.record(_result(StageKind.APP_DEPLOY))
    assert [item.stage for item in ctx.stage_results] == list(StageKind)


def test_stage_results_view_is_read_only() -> None:
    ctx = make_context()
    ctx.record(_result(StageKind.INFRA_APPLY))
    assert isinstance(ctx.stage_results, tuple)


def test_aggregate_success_allows_skipped_stages() -> None:
    ctx = make_context()
    _record_all(ctx, Outcome.SKIPPED, Outcome.SKIPPED, Outcome.SUCCESS)
    assert ctx.aggregate_outcome() is EnvironmentOutcome.SUCCESS


def test_aggregate_failure_on_any_failed_stage() -> None:
    ctx = make_context()
    _record_all(ctx, Outcome.SUCCESS, Outcome.FAILURE, Outcome.SKIPPED)
    assert ctx.aggregate_outcome() is EnvironmentOutcome.FAILURE


def test_aggregate_incomplete_run_is_failure() -> None:
    ctx = make_context()
    ctx.record(_result(StageKind.INFRA_APPLY))
    assert ctx.aggregate_outcome() is EnvironmentOutcome.FAILURE


def test_aggregate_rolled_back_wins() -> None:
    ctx = make_context(Environment.PROD)
    _record_all(ctx, Outcome.SUCCESS, Outcome.SUCCESS, Outcome.FAILURE)
    ctx.canary_health = CanaryHealth.UNHEALTHY
    ctx.canary_status = EnvironmentOutcome.ROLLED_BACK
    assert ctx.aggregate_outcome() is EnvironmentOutcome.ROLLED_BACK


def test_next_environment_context_copies_identity_only() -> None:
    ctx = make_context(db_project="App.Data")
    _record_all(ctx, Outcome.SUCCESS, Outcome.SUCCESS, Outcome.SUCCESS)
    ctx.deployed_url = "https://dev.example.com"

    next_ctx = ctx.for_next_environment(Environment.TEST)

    assert next_ctx.target_environment is Environment.TEST
    assert next_ctx.version == ctx.version
    assert next_ctx.db_migration_project_ref == "App.Data"
    assert next_ctx.stage_results == ()
    assert next_ctx.deployed_url is None
    assert len(ctx.stage_results) == 3


def test_run_context_round_trip_validates_against_schema() -> None:
    ctx = make_context(Environment.PROD)
    ctx.record(_result(StageKind.INFRA_APPLY, Outcome.SKIPPED, "not configured"))
    ctx.record(_result(StageKind.DB_MIGRATE))
    ctx.record(_result(StageKind.APP_DEPLOY, url="https://app.example.com"))
    ctx.canary_health = CanaryHealth.HEALTHY
    ctx.canary_status = EnvironmentOutcome.SUCCESS
    ctx.deployed_url = "https://app.example.com"

    payload = run_context_to_dict(ctx)
    valid, errors = validate_data(payload, "run_context")
    assert valid, errors

    loaded = run_context_from_dict(payload)
    assert loaded.stage_results == ctx.stage_results
    assert loaded.canary_health is CanaryHealth.HEALTHY
    assert loaded.aggregate_outcome() is EnvironmentOutcome.SUCCESS


def test_environment_parse_rejects_unknown_names() -> None:
    assert Environment.parse(" PROD ") is Environment.PROD
    with pytest.raises(ConfigurationError):
        Environment.parse("staging")
