"""StageExecutor outcome normalization."""

from __future__ import annotations

import threading

from deployx.context.types import Environment, InfraOutcome, Outcome, StageKind
from deployx.stages.executor import StageExecutor, get_timestamp
from deployx.stages.types import DeployParams, DeployTarget, InfraParams, MigrationParams, MigrationReport
from tests.unit.deploy_test_utils import FakeDeploy, FakeInfra, FakeMigration

TARGET = DeployTarget(target_type="custom-script", name="scripts/deploy.sh")
INFRA_PARAMS = InfraParams(var_file="terraform.dev.tfvars", auto_approve=True)


def _executor(**kwargs) -> StageExecutor:
    return StageExecutor(timestamp_mode="deterministic", **kwargs)


def test_deterministic_timestamp() -> None:
    assert get_timestamp("deterministic") == "1970-01-01T00:00:00Z"
    assert get_timestamp("wallclock") != "1970-01-01T00:00:00Z"


def test_infra_outcomes_map_to_stage_outcomes() -> None:
    no_changes = _executor(infra=FakeInfra(InfraOutcome.NO_CHANGES))
    result = no_changes.execute(StageKind.INFRA_APPLY, Environment.DEV, INFRA_PARAMS)
    assert result.outcome is Outcome.SUCCESS
    assert result.message == "no changes"
    assert result.timestamp == "1970-01-01T00:00:00Z"

    applied = _executor(infra=FakeInfra(InfraOutcome.APPLIED))
    assert applied.execute(StageKind.INFRA_APPLY, Environment.DEV, INFRA_PARAMS).message == "changes applied"

    planned = _executor(infra=FakeInfra(InfraOutcome.PLANNED))
    planned_result = planned.execute(StageKind.INFRA_APPLY, Environment.DEV, INFRA_PARAMS)
    assert planned_result.outcome is Outcome.SUCCESS
    assert planned_result.message == "changes planned; apply not approved"

    error = _executor(infra=FakeInfra(InfraOutcome.ERROR))
    assert error.execute(StageKind.INFRA_APPLY, Environment.DEV, INFRA_PARAMS).outcome is Outcome.FAILURE


def test_operation_exception_becomes_failure() -> None:
    executor = _executor(infra=FakeInfra(error=RuntimeError("state lock held")))
    result = executor.execute(StageKind.INFRA_APPLY, Environment.DEV, INFRA_PARAMS)
    assert result.outcome is Outcome.FAILURE
    assert result.message == "RuntimeError: state lock held"


def test_mismatched_params_fail_without_invoking_operation() -> None:
    infra = FakeInfra()
    result = _executor(infra=infra).execute(
        StageKind.INFRA_APPLY,
        Environment.DEV,
        MigrationParams(project_ref="p", connection_ref=None, backup_required=False),
    )
    assert result.outcome is Outcome.FAILURE
    assert infra.calls == []


def test_missing_operation_is_failure() -> None:
    result = _executor().execute(StageKind.INFRA_APPLY, Environment.DEV, INFRA_PARAMS)
    assert result.outcome is Outcome.FAILURE


def test_migration_requires_successful_backup_when_required() -> None:
    migration = FakeMigration(
        MigrationReport(outcome=Outcome.FAILURE, backup_outcome=Outcome.FAILURE, message="database backup failed"),
    )
    result = _executor(migration=migration).execute(
        StageKind.DB_MIGRATE,
        Environment.PROD,
        MigrationParams(project_ref="App.Data", connection_ref="PROD_DB", backup_required=True),
    )
    assert result.outcome is Outcome.FAILURE
    assert result.message.startswith("backup failure; migration not applied")


def test_migration_success_reports_backup_outcome() -> None:
    result = _executor(migration=FakeMigration()).execute(
        StageKind.DB_MIGRATE,
        Environment.PROD,
        MigrationParams(project_ref="App.Data", connection_ref="PROD_DB", backup_required=True),
    )
    assert result.outcome is Outcome.SUCCESS
    assert result.message == "migration applied (backup success)"


def test_deploy_success_carries_url() -> None:
    deploy = FakeDeploy(url="https://app-dev.example.com")
    result = _executor(deploy=deploy).execute(
        StageKind.APP_DEPLOY,
        Environment.DEV,
        DeployParams(artifact_reference="release-1.zip", target=TARGET, auto_approve=True),
    )
    assert result.outcome is Outcome.SUCCESS
    assert result.url == "https://app-dev.example.com"
    assert deploy.calls == [(Environment.DEV, "release-1.zip")]


def test_deploy_failure() -> None:
    result = _executor(deploy=FakeDeploy(outcome=Outcome.FAILURE)).execute(
        StageKind.APP_DEPLOY,
        Environment.DEV,
        DeployParams(artifact_reference="release-1.zip", target=TARGET, auto_approve=True),
    )
    assert result.outcome is Outcome.FAILURE
    assert result.url is None


def test_timeout_becomes_failure() -> None:
    release = threading.Event()

    def slow_infra(environment, var_file, auto_approve):
        release.wait(5)
        return InfraOutcome.APPLIED

    executor = _executor(infra=slow_infra, timeout_seconds=0.05)
    try:
        result = executor.execute(StageKind.INFRA_APPLY, Environment.DEV, INFRA_PARAMS)
    finally:
        release.set()
    assert result.outcome is Outcome.FAILURE
    assert result.message == "timed out after 0.05s"


def test_timed_out_worker_does_not_outlive_operation() -> None:
    release = threading.Event()

    def slow_deploy(environment, artifact_reference, target):
        release.wait(5)
        return FakeDeploy()(environment, artifact_reference, target)

    executor = _executor(deploy=slow_deploy, timeout_seconds=0.05)
    params = DeployParams(artifact_reference="release-1.zip", target=TARGET, auto_approve=True)
    result = executor.execute(StageKind.APP_DEPLOY, Environment.DEV, params)

    workers = [thread for thread in threading.enumerate() if thread.name == "deployx-stage"]
    assert result.outcome is Outcome.FAILURE
    assert workers
    assert all(worker.daemon for worker in workers)

    release.set()
    for worker in workers:
        worker.join(timeout=5)
    assert not any(worker.is_alive() for worker in workers)


def test_helper_results() -> None:
    executor = _executor()
    assert executor.skipped(StageKind.INFRA_APPLY, "not configured").outcome is Outcome.SKIPPED
    assert executor.failed(StageKind.APP_DEPLOY, "cancelled").outcome is Outcome.FAILURE
    assert executor.succeeded(StageKind.APP_DEPLOY, "promoted", url="https://x").url == "https://x"
