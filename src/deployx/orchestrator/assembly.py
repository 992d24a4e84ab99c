"""Wire configuration into a ready-to-run Orchestrator."""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING

from deployx.adapters.deploy import AzureAppServiceDeploy, CustomScriptDeploy
from deployx.adapters.efcore import EfCoreMigration
from deployx.adapters.http import http_health_probe
from deployx.adapters.terraform import TerraformInfra
from deployx.canary.controller import CanaryController
from deployx.context.types import Environment
from deployx.orchestrator.dispatch import CommandDispatcher, OutboxDispatcher
from deployx.orchestrator.kernel import Orchestrator
from deployx.pipeline.environment import EnvironmentPipeline
from deployx.planner.promotion import MODE_DISPATCH, MODE_IN_PROCESS, BranchPolicy
from deployx.stages.executor import StageExecutor
from deployx.stages.operations import HealthCheckedDeploy
from deployx.status.notifiers import ConsoleNotifier, SlackWebhookNotifier, TeamsWebhookNotifier

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

    from deployx.config.types import DeployxConfig, EnvironmentSettings
    from deployx.orchestrator.dispatch import Dispatcher
    from deployx.pipeline.environment import Approver
    from deployx.status.notifiers import NotifierSink

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: DeployxConfig,
    *,
    repo_root: Path,
    version: str,
    approver: Approver | None = None,
    cancel_event: threading.Event | None = None,
    console: Console | None = None,
    run_root: Path | None = None,
    run_url: str | None = None,
) -> Orchestrator:
    cancel_event = cancel_event or threading.Event()
    executors: dict[Environment, StageExecutor] = {}
    for environment, settings in config.environments.items():
        executors[environment] = _executor(settings, repo_root=repo_root, version=version, timeout=config.stage_timeout_seconds)

    prod_deployer = _deployer(
        config.environments[Environment.PROD],
        repo_root=repo_root,
        version=version,
        timeout=config.stage_timeout_seconds,
    )
    canary = CanaryController(
        deploy_slice=prod_deployer.deploy_slice,
        probe=http_health_probe,
        promote=prod_deployer.promote,
        rollback=prod_deployer.rollback,
        cancel_event=cancel_event,
    )
    pipeline = EnvironmentPipeline(
        executors,
        config.environments,
        canary=canary,
        approver=approver,
        cancel_event=cancel_event,
    )

    dispatcher: Dispatcher | None = None
    mode = MODE_IN_PROCESS
    if config.dispatch.mode == "outbox":
        dispatcher = OutboxDispatcher(repo_root / config.dispatch.outbox_dir)
        mode = MODE_DISPATCH
    elif config.dispatch.mode == "command":
        dispatcher = CommandDispatcher(config.dispatch.command, cwd=repo_root)
        mode = MODE_DISPATCH

    return Orchestrator(
        pipeline,
        branch_policy=BranchPolicy(trunk_branch=config.trunk_branch, feature_prefix=config.feature_branch_prefix),
        sinks=build_sinks(config, console=console),
        mode=mode,
        dispatcher=dispatcher,
        run_root=run_root,
        run_url=run_url,
        mainline_artifact_prefix=config.mainline_artifact_prefix,
    )


def build_sinks(config: DeployxConfig, *, console: Console | None = None) -> list[NotifierSink]:
    """Create configured sinks; webhook channels without a URL are skipped with a warning."""
    sinks: list[NotifierSink] = []
    for channel in config.channels:
        if channel.kind == "console":
            sinks.append(ConsoleNotifier(console))
            continue
        url = os.environ.get(channel.webhook_env or "")
        if not url:
            logger.warning("%s notifications disabled: $%s is not set", channel.kind, channel.webhook_env)
            continue
        if channel.kind == "slack":
            sinks.append(SlackWebhookNotifier(url, mention_on_failure=channel.mention_on_failure))
        elif channel.kind == "teams":
            sinks.append(TeamsWebhookNotifier(url))
    return sinks


def _adapter_timeout(timeout: float | None) -> dict[str, float]:
    """Bound adapter child processes by the stage timeout when one is configured."""
    return {} if timeout is None else {"timeout": timeout}


def _deployer(
    settings: EnvironmentSettings, *, repo_root: Path, version: str, timeout: float | None
) -> CustomScriptDeploy | AzureAppServiceDeploy:
    if settings.deploy.target_type == "azure-app-service":
        return AzureAppServiceDeploy(repo_root, **_adapter_timeout(timeout))
    return CustomScriptDeploy(repo_root, version=version, **_adapter_timeout(timeout))


def _executor(settings: EnvironmentSettings, *, repo_root: Path, version: str, timeout: float | None) -> StageExecutor:
    infra = None
    if settings.infra.working_directory:
        infra = TerraformInfra(
            {settings.environment: repo_root / settings.infra.working_directory},
            timeout=timeout,
        )

    migration = EfCoreMigration(
        repo_root,
        backup_command=settings.migration.backup_command,
        script_path=settings.migration.script_path,
        **_adapter_timeout(timeout),
    ).operation()

    deploy = HealthCheckedDeploy(
        _deployer(settings, repo_root=repo_root, version=version, timeout=timeout),
        http_health_probe,
        retries=settings.deploy.health_check_retries,
        retry_delay=settings.deploy.retry_delay_seconds,
    )
    return StageExecutor(infra=infra, migration=migration, deploy=deploy, timeout_seconds=timeout)
