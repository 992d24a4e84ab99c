"""Terraform infrastructure adapter."""

from __future__ import annotations

from pathlib import Path

import pytest

from deployx.adapters.exec import ExecResult
from deployx.adapters.terraform import TerraformInfra
from deployx.context.types import Environment, InfraOutcome, Outcome, StageKind
from deployx.stages.executor import StageExecutor
from deployx.stages.types import InfraParams


class _FakeTerraform:
    """Return codes keyed by terraform subcommand."""

    def __init__(self, **codes: int) -> None:
        self.codes = codes
        self.calls: list[list[str]] = []
        self.envs: list[dict | None] = []

    def __call__(self, argv, *, cwd, check=True, env=None, input_text=None, timeout=None):
        self.calls.append(argv)
        self.envs.append(env)
        code = self.codes.get(argv[1], 0)
        return ExecResult(argv=tuple(argv), cwd=cwd, returncode=code, stdout="", stderr="boom" if code == 1 else "")


@pytest.fixture
def infra(tmp_path: Path) -> TerraformInfra:
    return TerraformInfra({Environment.DEV: tmp_path}, variables={"app_version": "1.4.0"})


def test_no_changes_skips_apply(infra: TerraformInfra, monkeypatch) -> None:
    fake = _FakeTerraform(plan=0)
    monkeypatch.setattr("deployx.adapters.exec.run_command", fake)

    assert infra(Environment.DEV, "terraform.dev.tfvars", True) is InfraOutcome.NO_CHANGES
    assert [argv[1] for argv in fake.calls] == ["init", "workspace", "plan"]
    assert "-var-file=terraform.dev.tfvars" in fake.calls[2]
    assert "-detailed-exitcode" in fake.calls[2]
    assert fake.envs[0] == {"TF_VAR_app_version": "1.4.0"}


def test_pending_changes_are_applied_when_approved(infra: TerraformInfra, monkeypatch) -> None:
    fake = _FakeTerraform(plan=2)
    monkeypatch.setattr("deployx.adapters.exec.run_command", fake)

    assert infra(Environment.DEV, "terraform.dev.tfvars", True) is InfraOutcome.APPLIED
    assert fake.calls[-1] == ["terraform", "apply", "-input=false", "-auto-approve", "tfplan-dev"]


def test_pending_changes_without_approval_are_planned_only(infra: TerraformInfra, monkeypatch) -> None:
    fake = _FakeTerraform(plan=2)
    monkeypatch.setattr("deployx.adapters.exec.run_command", fake)

    assert infra(Environment.DEV, "terraform.dev.tfvars", False) is InfraOutcome.PLANNED
    assert [argv[1] for argv in fake.calls] == ["init", "workspace", "plan"]


def test_plan_only_run_is_not_a_stage_failure(infra: TerraformInfra, monkeypatch) -> None:
    monkeypatch.setattr("deployx.adapters.exec.run_command", _FakeTerraform(plan=2))

    result = StageExecutor(infra=infra).execute(
        StageKind.INFRA_APPLY,
        Environment.DEV,
        InfraParams(var_file="terraform.dev.tfvars", auto_approve=False),
    )

    assert result.outcome is Outcome.SUCCESS
    assert result.message == "changes planned; apply not approved"


@pytest.mark.parametrize("codes", [{"init": 1}, {"workspace": 1}, {"plan": 1}, {"plan": 2, "apply": 1}])
def test_command_failures_are_errors(infra: TerraformInfra, monkeypatch, codes: dict) -> None:
    monkeypatch.setattr("deployx.adapters.exec.run_command", _FakeTerraform(**codes))
    assert infra(Environment.DEV, "terraform.dev.tfvars", True) is InfraOutcome.ERROR


def test_unknown_environment_raises(infra: TerraformInfra) -> None:
    with pytest.raises(ValueError):
        infra(Environment.PROD, "terraform.prod.tfvars", True)
