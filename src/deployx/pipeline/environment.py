"""Environment pipeline - runs infra-apply -> db-migrate -> app-deploy."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable

from deployx.canary.types import CanarySession
from deployx.context.types import CanaryHealth, EnvironmentOutcome, Outcome, StageKind
from deployx.stages.types import DeployParams, DeployTarget, InfraParams, MigrationParams

if TYPE_CHECKING:
    from collections.abc import Mapping

    from deployx.canary.controller import CanaryController
    from deployx.config.types import EnvironmentSettings
    from deployx.context.types import Environment, RunContext, StageResult
    from deployx.stages.executor import StageExecutor

logger = logging.getLogger(__name__)

Approver = Callable[["Environment", StageKind], bool]

NOT_CONFIGURED = "not configured"


class EnvironmentPipeline:
    """Run the fixed stage sequence for one environment.

    Every stage is recorded, in order. After the first failure the remaining
    stages are recorded as skipped and never invoked. Stages with no
    configuration are skipped without blocking; app-deploy is always required.
    """

    def __init__(
        self,
        executors: Mapping[Environment, StageExecutor],
        settings: Mapping[Environment, EnvironmentSettings],
        *,
        canary: CanaryController | None = None,
        approver: Approver | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._executors = executors
        self._settings = settings
        self._canary = canary
        self._approver = approver
        self._cancel_event = cancel_event or threading.Event()

    def run(self, environment: Environment, ctx: RunContext) -> RunContext:
        if ctx.target_environment is not environment:
            raise ValueError(
                f"run context targets {ctx.target_environment.value}, not {environment.value}"
            )
        settings = self._settings.get(environment)
        executor = self._executors.get(environment)
        if settings is None or executor is None:
            raise ValueError(f"environment {environment.value} is not configured")

        stop_reason: str | None = None
        for kind in (StageKind.INFRA_APPLY, StageKind.DB_MIGRATE, StageKind.APP_DEPLOY):
            if stop_reason is not None:
                result = executor.skipped(kind, stop_reason)
            elif self._cancel_event.is_set():
                logger.warning("%s: %s cancelled before start", environment.value, kind.value)
                result = executor.failed(kind, "cancelled")
            else:
                result = self._run_stage(executor, kind, environment, settings, ctx)

            ctx.record(result)
            if result.url:
                ctx.deployed_url = result.url
            if result.outcome is Outcome.FAILURE and stop_reason is None:
                logger.error("%s: %s failed: %s", environment.value, kind.value, result.message)
                stop_reason = f"not run: {kind.value} failed"
            else:
                logger.info("%s: %s %s", environment.value, kind.value, result.outcome.value)

        if environment.uses_canary and ctx.canary_health is None:
            ctx.canary_health = CanaryHealth.SKIPPED
        return ctx

    def _run_stage(
        self,
        executor: StageExecutor,
        kind: StageKind,
        environment: Environment,
        settings: EnvironmentSettings,
        ctx: RunContext,
    ) -> StageResult:
        if kind is StageKind.INFRA_APPLY:
            if not settings.infra.working_directory:
                return executor.skipped(kind, NOT_CONFIGURED)
            auto_approve = settings.infra.auto_approve
            if not auto_approve:
                if not self._approved(environment, kind):
                    return executor.failed(kind, "manual approval required")
                auto_approve = True
            return executor.execute(
                kind,
                environment,
                InfraParams(var_file=settings.infra.var_file, auto_approve=auto_approve),
            )

        if kind is StageKind.DB_MIGRATE:
            project = settings.migration.project or ctx.db_migration_project_ref
            if not project:
                return executor.skipped(kind, NOT_CONFIGURED)
            return executor.execute(
                kind,
                environment,
                MigrationParams(
                    project_ref=project,
                    connection_ref=settings.migration.connection_env,
                    backup_required=settings.migration.backup_required,
                ),
            )

        auto_approve = settings.deploy.auto_approve
        if not auto_approve:
            if not self._approved(environment, kind):
                return executor.failed(kind, "manual approval required")
            auto_approve = True

        target = DeployTarget(
            target_type=settings.deploy.target_type,
            name=settings.deploy.name,
            health_check_url=settings.deploy.health_check_url,
            settings=dict(settings.deploy.settings),
        )
        if environment.uses_canary:
            return self._run_canary(executor, environment, settings, ctx, target)
        return executor.execute(
            kind,
            environment,
            DeployParams(artifact_reference=ctx.artifact_reference, target=target, auto_approve=auto_approve),
        )

    def _run_canary(
        self,
        executor: StageExecutor,
        environment: Environment,
        settings: EnvironmentSettings,
        ctx: RunContext,
        target: DeployTarget,
    ) -> StageResult:
        kind = StageKind.APP_DEPLOY
        if self._canary is None:
            return executor.failed(kind, "no canary controller configured")

        try:
            session = CanarySession(
                percentage=settings.canary.percentage,
                observation_window_seconds=settings.canary.observation_period_minutes * 60,
                health_check_target=settings.canary.health_check_url,
                probe_interval_seconds=settings.canary.probe_interval_seconds,
                rollback_on_failure=settings.canary.rollback_on_failure,
            )
            report = self._canary.run(environment, ctx.artifact_reference, target, session)
        except Exception as e:
            logger.error("%s: canary raised: %s", environment.value, e)
            ctx.canary_health = CanaryHealth.SKIPPED
            ctx.canary_status = EnvironmentOutcome.FAILURE
            return executor.failed(kind, f"canary error: {type(e).__name__}: {e}")

        ctx.canary_health = report.health
        ctx.canary_status = report.status
        if report.status is EnvironmentOutcome.SUCCESS:
            return executor.succeeded(kind, report.message, url=report.deployed_url)
        return executor.failed(kind, report.message)

    def _approved(self, environment: Environment, kind: StageKind) -> bool:
        if self._approver is None:
            logger.warning("%s: %s requires manual approval and no approver is configured", environment.value, kind.value)
            return False
        try:
            return bool(self._approver(environment, kind))
        except Exception as e:
            logger.warning("%s: approver raised for %s: %s", environment.value, kind.value, e)
            return False

