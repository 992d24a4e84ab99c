"""Deploy targets: a repository script or an Azure App Service via the az CLI."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from deployx.adapters import exec as exec_adapter
from deployx.context.types import Outcome
from deployx.stages.types import DeployReport

if TYPE_CHECKING:
    from pathlib import Path

    from deployx.context.types import Environment
    from deployx.stages.types import DeployTarget

logger = logging.getLogger(__name__)

DEPLOY_TIMEOUT_SECONDS = 900.0
URL_MARKER = "deployment_url="


class CustomScriptDeploy:
    """Run ``target.name`` as a deploy script.

    The script sees VERSION_BEING_DEPLOYED, ARTIFACT_PATH_FOR_SCRIPT,
    TARGET_ENVIRONMENT and DEPLOY_ACTION (deploy, canary, promote, rollback).
    A ``deployment_url=<url>`` line on stdout sets the deployed URL.
    """

    def __init__(self, repo_root: Path, *, version: str, timeout: float | None = DEPLOY_TIMEOUT_SECONDS) -> None:
        self.repo_root = repo_root
        self.version = version
        self.timeout = timeout

    def __call__(self, environment: Environment, artifact_reference: str, target: DeployTarget) -> DeployReport:
        return self._run("deploy", environment, target, artifact_reference)

    def deploy_slice(
        self,
        environment: Environment,
        artifact_reference: str,
        target: DeployTarget,
        percentage: int,
    ) -> DeployReport:
        return self._run("canary", environment, target, artifact_reference, {"CANARY_PERCENTAGE": str(percentage)})

    def promote(self, environment: Environment, target: DeployTarget) -> Outcome:
        return self._run("promote", environment, target).outcome

    def rollback(self, environment: Environment, target: DeployTarget) -> Outcome:
        return self._run("rollback", environment, target, extra={"CANARY_PERCENTAGE": "0"}).outcome

    def _run(
        self,
        action: str,
        environment: Environment,
        target: DeployTarget,
        artifact_reference: str = "",
        extra: dict[str, str] | None = None,
    ) -> DeployReport:
        if not target.name:
            raise ValueError("custom-script deploy target requires `name` (the script path)")
        env = {
            "VERSION_BEING_DEPLOYED": self.version,
            "ARTIFACT_PATH_FOR_SCRIPT": artifact_reference,
            "TARGET_ENVIRONMENT": environment.value,
            "DEPLOY_ACTION": action,
            **(extra or {}),
        }
        result = exec_adapter.run_command(
            [target.name],
            cwd=self.repo_root,
            check=False,
            env=env,
            timeout=self.timeout,
        )
        if result.returncode != 0:
            logger.error("deploy script %s (%s) failed: %s", target.name, action, result.output)
            return DeployReport(outcome=Outcome.FAILURE, message=f"{action} script exited {result.returncode}")
        return DeployReport(
            outcome=Outcome.SUCCESS,
            deployed_url=_deployed_url(result.stdout) or target.settings.get("url"),
            message=f"{action} script succeeded",
        )


class AzureAppServiceDeploy:
    """Deploy to an App Service; canary traffic goes through a deployment slot."""

    def __init__(self, repo_root: Path, *, timeout: float | None = DEPLOY_TIMEOUT_SECONDS, binary: str = "az") -> None:
        self.repo_root = repo_root
        self.timeout = timeout
        self.binary = binary

    def __call__(self, environment: Environment, artifact_reference: str, target: DeployTarget) -> DeployReport:
        app, group = self._app(target)
        argv = [self.binary, "webapp", "deploy", "--resource-group", group, "--name", app, "--src-path", artifact_reference]
        if target.settings.get("slot") and not environment.uses_canary:
            argv.extend(["--slot", target.settings["slot"]])
        ok = self._run(argv, "deploy")
        return DeployReport(
            outcome=Outcome.SUCCESS if ok else Outcome.FAILURE,
            deployed_url=_app_url(app) if ok else None,
            message="deployed to app service" if ok else "az webapp deploy failed",
        )

    def deploy_slice(
        self,
        environment: Environment,
        artifact_reference: str,
        target: DeployTarget,
        percentage: int,
    ) -> DeployReport:
        app, group = self._app(target)
        slot = self._slot(target)
        deployed = self._run(
            [self.binary, "webapp", "deploy", "--resource-group", group, "--name", app, "--slot", slot, "--src-path", artifact_reference],
            "canary deploy",
        )
        if not deployed:
            return DeployReport(outcome=Outcome.FAILURE, message=f"deploy to slot {slot} failed")
        routed = self._route(app, group, slot, percentage)
        return DeployReport(
            outcome=Outcome.SUCCESS if routed else Outcome.FAILURE,
            deployed_url=_app_url(app, slot),
            message=f"{percentage}% of traffic routed to slot {slot}" if routed else "traffic routing failed",
        )

    def promote(self, environment: Environment, target: DeployTarget) -> Outcome:
        app, group = self._app(target)
        slot = self._slot(target)
        swapped = self._run(
            [self.binary, "webapp", "deployment", "slot", "swap", "--resource-group", group, "--name", app, "--slot", slot, "--target-slot", "production"],
            "slot swap",
        )
        if not swapped:
            return Outcome.FAILURE
        cleared = self._run(
            [self.binary, "webapp", "traffic-routing", "clear", "--resource-group", group, "--name", app],
            "traffic clear",
        )
        return Outcome.SUCCESS if cleared else Outcome.FAILURE

    def rollback(self, environment: Environment, target: DeployTarget) -> Outcome:
        app, group = self._app(target)
        return Outcome.SUCCESS if self._route(app, group, self._slot(target), 0) else Outcome.FAILURE

    def _route(self, app: str, group: str, slot: str, percentage: int) -> bool:
        return self._run(
            [self.binary, "webapp", "traffic-routing", "set", "--resource-group", group, "--name", app, "--distribution", f"{slot}={percentage}"],
            "traffic routing",
        )

    def _run(self, argv: list[str], label: str) -> bool:
        result = exec_adapter.run_command(argv, cwd=self.repo_root, check=False, timeout=self.timeout)
        if result.returncode != 0:
            logger.error("az %s failed: %s", label, result.output)
        return result.returncode == 0

    @staticmethod
    def _app(target: DeployTarget) -> tuple[str, str]:
        group = target.settings.get("resource_group")
        if not target.name or not group:
            raise ValueError("azure-app-service target requires `name` and settings.resource_group")
        return target.name, group

    @staticmethod
    def _slot(target: DeployTarget) -> str:
        return target.settings.get("slot", "canary")


def _deployed_url(stdout: str) -> str | None:
    for line in reversed(stdout.splitlines()):
        text = line.strip()
        if text.lower().startswith(URL_MARKER):
            return text[len(URL_MARKER) :].strip() or None
    return None


def _app_url(app: str, slot: str | None = None) -> str:
    host = f"{app}-{slot}" if slot else app
    return f"https://{host}.azurewebsites.net"
