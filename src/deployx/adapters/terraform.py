"""Terraform-backed infrastructure operation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from deployx.adapters import exec as exec_adapter
from deployx.context.types import InfraOutcome

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from deployx.context.types import Environment

logger = logging.getLogger(__name__)

PLAN_NO_CHANGES = 0
PLAN_CHANGES = 2


class TerraformInfra:
    """init -> workspace select -> plan -detailed-exitcode -> apply saved plan.

    Plan exit code 2 means changes are pending and is not a failure; the saved
    plan is applied only when ``auto_approve`` is set, otherwise the run is
    plan-only and reports ``PLANNED``.
    """

    def __init__(
        self,
        working_directories: Mapping[Environment, Path],
        *,
        binary: str = "terraform",
        timeout: float | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> None:
        self.working_directories = dict(working_directories)
        self.binary = binary
        self.timeout = timeout
        self.variables = dict(variables or {})

    def __call__(self, environment: Environment, var_file: str, auto_approve: bool) -> InfraOutcome:
        cwd = self.working_directories.get(environment)
        if cwd is None:
            raise ValueError(f"no terraform working directory for {environment.value}")
        plan_file = f"tfplan-{environment.value}"
        env = {f"TF_VAR_{key}": value for key, value in sorted(self.variables.items())}

        steps = [
            [self.binary, "init", "-input=false"],
            [self.binary, "workspace", "select", "-or-create", environment.value],
        ]
        for argv in steps:
            result = self._run(argv, cwd, env)
            if result.returncode != 0:
                logger.error("terraform %s failed: %s", argv[1], result.output)
                return InfraOutcome.ERROR

        plan = self._run(
            [
                self.binary,
                "plan",
                "-input=false",
                f"-var-file={var_file}",
                f"-out={plan_file}",
                "-detailed-exitcode",
            ],
            cwd,
            env,
        )
        if plan.returncode == PLAN_NO_CHANGES:
            logger.info("terraform plan for %s: no changes", environment.value)
            return InfraOutcome.NO_CHANGES
        if plan.returncode != PLAN_CHANGES:
            logger.error("terraform plan for %s failed: %s", environment.value, plan.output)
            return InfraOutcome.ERROR

        if not auto_approve:
            logger.warning("terraform plan for %s has pending changes; apply not approved", environment.value)
            return InfraOutcome.PLANNED

        apply = self._run([self.binary, "apply", "-input=false", "-auto-approve", plan_file], cwd, env)
        if apply.returncode != 0:
            logger.error("terraform apply for %s failed: %s", environment.value, apply.output)
            return InfraOutcome.ERROR
        return InfraOutcome.APPLIED

    def _run(self, argv: list[str], cwd: Path, env: dict[str, str]) -> exec_adapter.ExecResult:
        return exec_adapter.run_command(argv, cwd=cwd, check=False, env=env or None, timeout=self.timeout)
