"""Run one stage and normalize its outcome into a StageResult."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Callable

from deployx.context.types import InfraOutcome, Outcome, StageKind, StageResult
from deployx.stages.types import DeployParams, InfraParams, MigrationParams

if TYPE_CHECKING:
    from deployx.context.types import Environment
    from deployx.stages.types import (
        DeployOperation,
        DeployReport,
        InfraOperation,
        MigrationOperation,
        MigrationReport,
        StageParams,
    )

logger = logging.getLogger(__name__)


def get_timestamp(mode: str) -> str:
    """Get timestamp based on mode."""
    if mode == "deterministic":
        return "1970-01-01T00:00:00Z"
    return datetime.now(UTC).isoformat()


class StageExecutor:
    """Invoke external stage operations without ever raising past ``execute``.

    Exceptions, error outcomes and timeouts all become ``Outcome.FAILURE``.
    The executor holds no run state; callers record the returned result.
    """

    def __init__(
        self,
        *,
        infra: InfraOperation | None = None,
        migration: MigrationOperation | None = None,
        deploy: DeployOperation | None = None,
        timeout_seconds: float | None = None,
        timestamp_mode: str = "wallclock",
    ) -> None:
        self._infra = infra
        self._migration = migration
        self._deploy = deploy
        self._timeout_seconds = timeout_seconds
        self._timestamp_mode = timestamp_mode

    def execute(self, kind: StageKind, environment: Environment, params: StageParams) -> StageResult:
        try:
            if kind is StageKind.INFRA_APPLY:
                return self._execute_infra(environment, params)
            if kind is StageKind.DB_MIGRATE:
                return self._execute_migration(params)
            if kind is StageKind.APP_DEPLOY:
                return self._execute_deploy(environment, params)
            return self._result(kind, Outcome.FAILURE, f"unknown stage kind: {kind}")
        except FutureTimeoutError:
            logger.error("%s timed out in %s after %ss", kind.value, environment.value, self._timeout_seconds)
            return self._result(kind, Outcome.FAILURE, f"timed out after {self._timeout_seconds}s")
        except Exception as e:
            logger.error("%s failed in %s: %s", kind.value, environment.value, e)
            return self._result(kind, Outcome.FAILURE, f"{type(e).__name__}: {e}")

    def skipped(self, kind: StageKind, message: str) -> StageResult:
        return self._result(kind, Outcome.SKIPPED, message)

    def failed(self, kind: StageKind, message: str) -> StageResult:
        return self._result(kind, Outcome.FAILURE, message)

    def succeeded(self, kind: StageKind, message: str, url: str | None = None) -> StageResult:
        return self._result(kind, Outcome.SUCCESS, message, url=url)

    def _execute_infra(self, environment: Environment, params: StageParams) -> StageResult:
        kind = StageKind.INFRA_APPLY
        if not isinstance(params, InfraParams):
            return self._result(kind, Outcome.FAILURE, "infra-apply requires InfraParams")
        if self._infra is None:
            return self._result(kind, Outcome.FAILURE, "no infrastructure operation configured")

        outcome = self._invoke(self._infra, environment, params.var_file, params.auto_approve)
        if outcome == InfraOutcome.NO_CHANGES:
            return self._result(kind, Outcome.SUCCESS, "no changes")
        if outcome == InfraOutcome.APPLIED:
            return self._result(kind, Outcome.SUCCESS, "changes applied")
        if outcome == InfraOutcome.PLANNED:
            return self._result(kind, Outcome.SUCCESS, "changes planned; apply not approved")
        return self._result(kind, Outcome.FAILURE, f"infrastructure operation reported {_value(outcome)}")

    def _execute_migration(self, params: StageParams) -> StageResult:
        kind = StageKind.DB_MIGRATE
        if not isinstance(params, MigrationParams):
            return self._result(kind, Outcome.FAILURE, "db-migrate requires MigrationParams")
        if self._migration is None:
            return self._result(kind, Outcome.FAILURE, "no migration operation configured")

        report: MigrationReport = self._invoke(
            self._migration,
            params.project_ref,
            params.connection_ref,
            params.backup_required,
        )
        if params.backup_required and report.backup_outcome != Outcome.SUCCESS:
            detail = f": {report.message}" if report.message else ""
            return self._result(
                kind,
                Outcome.FAILURE,
                f"backup {_value(report.backup_outcome)}; migration not applied{detail}",
            )
        if report.outcome != Outcome.SUCCESS:
            return self._result(kind, Outcome.FAILURE, report.message or "migration failed")
        return self._result(
            kind,
            Outcome.SUCCESS,
            f"migration applied (backup {_value(report.backup_outcome)})",
        )

    def _execute_deploy(self, environment: Environment, params: StageParams) -> StageResult:
        kind = StageKind.APP_DEPLOY
        if not isinstance(params, DeployParams):
            return self._result(kind, Outcome.FAILURE, "app-deploy requires DeployParams")
        if self._deploy is None:
            return self._result(kind, Outcome.FAILURE, "no deploy operation configured")

        report: DeployReport = self._invoke(self._deploy, environment, params.artifact_reference, params.target)
        if report.outcome != Outcome.SUCCESS:
            return self._result(kind, Outcome.FAILURE, report.message or "deployment failed")
        message = report.message or "deployed"
        return self._result(kind, Outcome.SUCCESS, message, url=report.deployed_url)

    def _invoke(self, operation: Callable[..., Any], *args: Any) -> Any:
        if self._timeout_seconds is None:
            return operation(*args)
        future: Future[Any] = Future()

        def work() -> None:
            try:
                future.set_result(operation(*args))
            except BaseException as e:
                future.set_exception(e)

        # Timed-out workers are daemons; adapter timeouts end their child processes.
        threading.Thread(target=work, name="deployx-stage", daemon=True).start()
        return future.result(timeout=self._timeout_seconds)

    def _result(self, kind: StageKind, outcome: Outcome, message: str, url: str | None = None) -> StageResult:
        return StageResult(
            stage=kind,
            outcome=outcome,
            message=message,
            timestamp=get_timestamp(self._timestamp_mode),
            url=url,
        )


def _value(item: Any) -> str:
    return str(getattr(item, "value", item))
