"""deployx orchestrator kernel."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from deployx.artifacts.writer import environment_run_dir, write_environment_artifacts
from deployx.context.types import Environment, EnvironmentOutcome, RunContext
from deployx.errors import CONFIG_REASON_IDENTIFIER_MISSING, ConfigurationError, DispatchError
from deployx.orchestrator.dispatch import build_handoff
from deployx.planner.promotion import (
    DEFAULT_MAINLINE_ARTIFACT_PREFIX,
    MODE_DISPATCH,
    MODE_IN_PROCESS,
    BranchPolicy,
    check_branches,
    decide_promotion,
    is_mainline_artifact,
)
from deployx.planner.scope import DeploymentScope, plan
from deployx.status.aggregator import render
from deployx.status.notifiers import deliver

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from deployx.orchestrator.dispatch import Dispatcher, HandoffMessage
    from deployx.pipeline.environment import EnvironmentPipeline
    from deployx.status.aggregator import NotificationPayload
    from deployx.status.notifiers import NotifierSink

logger = logging.getLogger(__name__)

PROMOTION_CONTINUED = "continued"
PROMOTION_DISPATCHED = "dispatched"
PROMOTION_HALTED = "halted"
PROMOTION_DISPATCH_FAILED = "dispatch_failed"

RUN_STATUS_PROMOTION_FAILED = "promotion_failed"


@dataclass(frozen=True)
class DeploymentRequest:
    """Inputs for one orchestrated run."""

    version: str
    artifact_reference: str
    deployment_scope: str
    source_branch: str
    is_mainline_pipeline: bool | None = None
    db_migration_project_ref: str | None = None
    start_environment: Environment | None = None


@dataclass(frozen=True)
class EnvironmentReport:
    environment: Environment
    outcome: EnvironmentOutcome
    context: RunContext
    payload: NotificationPayload
    notification_status: str
    artifacts_dir: str | None = None


@dataclass(frozen=True)
class PromotionRecord:
    from_environment: Environment
    to_environment: Environment | None
    status: str
    reason: str
    reference: str | None = None


@dataclass
class OrchestrationReport:
    """What happened in one orchestrated run."""

    planned: tuple[Environment, ...]
    is_mainline_pipeline: bool
    environments: list[EnvironmentReport] = field(default_factory=list)
    promotions: list[PromotionRecord] = field(default_factory=list)

    @property
    def status(self) -> str:
        for report in self.environments:
            if report.outcome is not EnvironmentOutcome.SUCCESS:
                return report.outcome.value
        if any(item.status == PROMOTION_DISPATCH_FAILED for item in self.promotions):
            return RUN_STATUS_PROMOTION_FAILED
        return EnvironmentOutcome.SUCCESS.value


class Orchestrator:
    """Plan, branch-check, then run environments one at a time.

    In ``in-process`` mode the next environment runs in this call. In
    ``dispatch`` mode one environment runs and the next is handed to a
    dispatcher; a dispatch failure halts promotion but leaves the finished
    environment's outcome untouched.
    """

    def __init__(
        self,
        pipeline: EnvironmentPipeline,
        *,
        branch_policy: BranchPolicy | None = None,
        sinks: Sequence[NotifierSink] = (),
        mode: str = MODE_IN_PROCESS,
        dispatcher: Dispatcher | None = None,
        run_root: Path | None = None,
        run_url: str | None = None,
        mainline_artifact_prefix: str = DEFAULT_MAINLINE_ARTIFACT_PREFIX,
    ) -> None:
        if mode not in (MODE_IN_PROCESS, MODE_DISPATCH):
            raise ConfigurationError(f"unknown orchestration mode `{mode}`")
        if mode == MODE_DISPATCH and dispatcher is None:
            raise ConfigurationError("dispatch mode requires a dispatcher")
        self.pipeline = pipeline
        self.branch_policy = branch_policy or BranchPolicy()
        self.sinks = tuple(sinks)
        self.mode = mode
        self.dispatcher = dispatcher
        self.run_root = run_root
        self.run_url = run_url
        self.mainline_artifact_prefix = mainline_artifact_prefix

    def run(self, request: DeploymentRequest) -> OrchestrationReport:
        """Run a deployment request.

        Raises:
            ConfigurationError: invalid scope or missing identifiers
            PromotionRefusal: the source branch may not reach a planned environment
        """
        _require("version", request.version)
        _require("artifact_reference", request.artifact_reference)
        _require("source_branch", request.source_branch)
        scope = DeploymentScope.parse(request.deployment_scope)

        is_mainline = request.is_mainline_pipeline
        if is_mainline is None:
            is_mainline = is_mainline_artifact(request.artifact_reference, self.mainline_artifact_prefix)

        environments = plan(scope, is_mainline)
        check_branches(environments, request.source_branch, self.branch_policy)

        if request.start_environment is not None:
            if request.start_environment not in environments:
                raise ConfigurationError(
                    f"{request.start_environment.value} is not part of scope {scope.value}",
                )
            environments = environments[environments.index(request.start_environment) :]

        report = OrchestrationReport(planned=tuple(environments), is_mainline_pipeline=is_mainline)
        logger.info("planned %s for %s (mainline=%s)", [env.value for env in environments], request.version, is_mainline)

        ctx = RunContext(
            version=request.version,
            artifact_reference=request.artifact_reference,
            source_branch=request.source_branch,
            is_mainline_pipeline=is_mainline,
            target_environment=environments[0],
            deployment_scope=scope.value,
            db_migration_project_ref=request.db_migration_project_ref,
        )

        while True:
            environment = ctx.target_environment
            self.pipeline.run(environment, ctx)
            env_report = self._finish_environment(ctx)
            report.environments.append(env_report)

            decision = decide_promotion(scope, is_mainline, environment, env_report.outcome, self.mode)
            if decision.next_environment is None:
                if environment is not environments[-1]:
                    report.promotions.append(
                        PromotionRecord(environment, None, PROMOTION_HALTED, decision.reason)
                    )
                logger.info("promotion stops after %s: %s", environment.value, decision.reason)
                break

            if self.mode == MODE_IN_PROCESS:
                report.promotions.append(
                    PromotionRecord(environment, decision.next_environment, PROMOTION_CONTINUED, decision.reason)
                )
                ctx = ctx.for_next_environment(decision.next_environment)
                continue

            report.promotions.append(self._dispatch(build_handoff(ctx, decision.next_environment), decision.reason))
            break

        return report

    def resume(self, message: HandoffMessage) -> OrchestrationReport:
        """Run starting at the environment a handoff message targets."""
        return self.run(
            DeploymentRequest(
                version=message.version,
                artifact_reference=message.artifact_reference,
                deployment_scope=message.deployment_scope,
                source_branch=message.source_branch,
                is_mainline_pipeline=message.is_mainline_pipeline,
                db_migration_project_ref=message.db_migration_project_ref,
                start_environment=message.target_environment,
            )
        )

    def _finish_environment(self, ctx: RunContext) -> EnvironmentReport:
        outcome = ctx.aggregate_outcome()
        payload = render(ctx, run_url=self.run_url)
        notification_status = deliver(payload, self.sinks)
        logger.info("%s finished %s (notification: %s)", ctx.target_environment.value, outcome.value, notification_status)

        artifacts_dir: str | None = None
        if self.run_root is not None:
            run_dir = environment_run_dir(self.run_root, ctx.version, ctx.target_environment.value)
            write_environment_artifacts(
                run_dir,
                ctx=ctx,
                payload=payload,
                extra={"notification_status": notification_status},
            )
            artifacts_dir = str(run_dir)

        return EnvironmentReport(
            environment=ctx.target_environment,
            outcome=outcome,
            context=ctx,
            payload=payload,
            notification_status=notification_status,
            artifacts_dir=artifacts_dir,
        )

    def _dispatch(self, message: HandoffMessage, reason: str) -> PromotionRecord:
        assert self.dispatcher is not None
        source = message.previous_environment or message.target_environment
        try:
            reference = self.dispatcher.dispatch(message)
        except DispatchError as e:
            logger.warning("dispatch to %s failed: %s", message.target_environment.value, e)
            return PromotionRecord(source, message.target_environment, PROMOTION_DISPATCH_FAILED, str(e))
        except Exception as e:
            logger.warning("dispatch to %s raised: %s", message.target_environment.value, e)
            return PromotionRecord(
                source,
                message.target_environment,
                PROMOTION_DISPATCH_FAILED,
                f"{type(e).__name__}: {e}",
            )
        return PromotionRecord(source, message.target_environment, PROMOTION_DISPATCHED, reason, reference)


def _require(name: str, value: str | None) -> None:
    if not str(value or "").strip():
        raise ConfigurationError(f"missing required identifier `{name}`", CONFIG_REASON_IDENTIFIER_MISSING)


def orchestration_report_to_dict(report: OrchestrationReport) -> dict[str, Any]:
    """Convert an orchestration report to a deterministic JSON payload."""
    return {
        "schema_version": "deployx.orchestration.v1",
        "status": report.status,
        "planned": [env.value for env in report.planned],
        "is_mainline_pipeline": report.is_mainline_pipeline,
        "environments": [
            {
                "environment": item.environment.value,
                "outcome": item.outcome.value,
                "message": item.payload.message,
                "notification_status": item.notification_status,
                "artifacts_dir": item.artifacts_dir,
            }
            for item in report.environments
        ],
        "promotions": [
            {
                "from": item.from_environment.value,
                "to": item.to_environment.value if item.to_environment else None,
                "status": item.status,
                "reason": item.reason,
                "reference": item.reference,
            }
            for item in report.promotions
        ],
    }
