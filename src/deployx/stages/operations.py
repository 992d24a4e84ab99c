"""Composite operations built from simpler steps."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from deployx.context.types import Outcome
from deployx.stages.types import DeployReport, MigrationReport

if TYPE_CHECKING:
    from deployx.context.types import Environment
    from deployx.stages.types import DeployOperation, DeployTarget, HealthProbe

logger = logging.getLogger(__name__)

BackupStep = Callable[[str | None], bool]
MigrateStep = Callable[[str, str | None], bool]


class GatedMigration:
    """Backup, then migrate; the migrate step never runs after a failed backup."""

    def __init__(self, *, backup: BackupStep | None, migrate: MigrateStep) -> None:
        self._backup = backup
        self._migrate = migrate

    def __call__(self, project_ref: str, connection_ref: str | None, backup_required: bool) -> MigrationReport:
        backup_outcome = Outcome.SKIPPED
        if backup_required:
            if self._backup is None:
                return MigrationReport(
                    outcome=Outcome.FAILURE,
                    backup_outcome=Outcome.FAILURE,
                    message="backup required but no backup step configured",
                )
            try:
                ok = self._backup(connection_ref)
            except Exception as e:
                logger.error("database backup raised: %s", e)
                ok = False
            if not ok:
                return MigrationReport(
                    outcome=Outcome.FAILURE,
                    backup_outcome=Outcome.FAILURE,
                    message="database backup failed",
                )
            backup_outcome = Outcome.SUCCESS

        applied = self._migrate(project_ref, connection_ref)
        return MigrationReport(
            outcome=Outcome.SUCCESS if applied else Outcome.FAILURE,
            backup_outcome=backup_outcome,
            message="" if applied else "migration command failed",
        )


class HealthCheckedDeploy:
    """Direct deploy followed by a post-deploy health check with retries.

    When ``target.health_check_url`` is set it is probed up to ``1 + retries``
    times, sleeping ``retry_delay`` seconds between attempts.
    """

    def __init__(
        self,
        deploy: DeployOperation,
        probe: HealthProbe,
        *,
        retries: int = 3,
        retry_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._deploy = deploy
        self._probe = probe
        self._retries = retries
        self._retry_delay = retry_delay
        self._sleep = sleep

    def __call__(self, environment: Environment, artifact_reference: str, target: DeployTarget) -> DeployReport:
        report = self._deploy(environment, artifact_reference, target)
        if report.outcome != Outcome.SUCCESS:
            return report

        url = target.health_check_url
        if not url:
            return report

        attempts = 1 + max(0, self._retries)
        for attempt in range(1, attempts + 1):
            if self._probe(url):
                logger.info("health check passed for %s (attempt %d/%d)", url, attempt, attempts)
                return DeployReport(
                    outcome=Outcome.SUCCESS,
                    deployed_url=report.deployed_url,
                    message=f"deployed; health check passed on attempt {attempt}",
                )
            logger.warning("health check failed for %s (attempt %d/%d)", url, attempt, attempts)
            if attempt < attempts:
                self._sleep(self._retry_delay)

        return DeployReport(
            outcome=Outcome.FAILURE,
            deployed_url=report.deployed_url,
            message=f"health check failed after {attempts} attempts: {url}",
        )
