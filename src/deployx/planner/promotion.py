"""Branch gating and promotion decisions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from deployx.context.types import Environment, EnvironmentOutcome
from deployx.errors import PromotionRefusal
from deployx.planner.scope import DeploymentScope, plan

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_TRUNK_BRANCH = "main"
DEFAULT_FEATURE_PREFIX = "feature/"
DEFAULT_MAINLINE_ARTIFACT_PREFIX = "release-"

MODE_IN_PROCESS = "in-process"
MODE_DISPATCH = "dispatch"


@dataclass(frozen=True)
class BranchPolicy:
    trunk_branch: str = DEFAULT_TRUNK_BRANCH
    feature_prefix: str = DEFAULT_FEATURE_PREFIX

    def allowed(self, environment: Environment, source_branch: str) -> bool:
        branch = _normalize_branch(source_branch)
        if environment is Environment.PROD:
            return branch == self.trunk_branch
        if environment is Environment.TEST:
            return branch == self.trunk_branch or branch.startswith(self.feature_prefix)
        return True

    def describe(self, environment: Environment) -> str:
        if environment is Environment.PROD:
            return f"Allowed branch: {self.trunk_branch}."
        if environment is Environment.TEST:
            return f"Allowed branches: {self.trunk_branch}, {self.feature_prefix}*."
        return "Any branch is allowed."


@dataclass(frozen=True)
class PromotionDecision:
    """Where to go after an environment finished, and why."""

    next_environment: Environment | None
    reason: str


def _normalize_branch(branch: str) -> str:
    value = str(branch or "").strip()
    if value.startswith("refs/heads/"):
        value = value[len("refs/heads/") :]
    return value


def check_branch(environment: Environment, source_branch: str, policy: BranchPolicy | None = None) -> None:
    """Raise PromotionRefusal when ``source_branch`` may not deploy to ``environment``."""
    policy = policy or BranchPolicy()
    if not policy.allowed(environment, source_branch):
        raise PromotionRefusal(
            f"Branch '{_normalize_branch(source_branch)}' is not allowed for "
            f"{environment.value.upper()} environment. {policy.describe(environment)}"
        )


def check_branches(
    environments: Iterable[Environment],
    source_branch: str,
    policy: BranchPolicy | None = None,
) -> None:
    """Check every planned environment up front, before any stage runs."""
    for environment in environments:
        check_branch(environment, source_branch, policy)


def is_mainline_artifact(artifact_reference: str, prefix: str = DEFAULT_MAINLINE_ARTIFACT_PREFIX) -> bool:
    return str(artifact_reference).startswith(prefix)


def decide_promotion(
    deployment_scope: str | DeploymentScope,
    is_mainline_pipeline: bool,
    current: Environment,
    outcome: EnvironmentOutcome,
    mode: str = MODE_IN_PROCESS,
) -> PromotionDecision:
    """Compute the next environment, if any.

    Always computed fresh from its inputs. In dispatch mode dev->test also
    requires a mainline pipeline; test->prod only requires test success.
    """
    environments = plan(deployment_scope, is_mainline_pipeline)
    if current not in environments:
        return PromotionDecision(None, f"{current.value} is not part of scope {DeploymentScope.parse(deployment_scope).value}")

    index = environments.index(current)
    if index + 1 >= len(environments):
        return PromotionDecision(None, f"{current.value} is the last environment in scope")

    next_environment = environments[index + 1]
    if outcome is not EnvironmentOutcome.SUCCESS:
        return PromotionDecision(
            None,
            f"{current.value} finished {outcome.value}; {next_environment.value} not started",
        )

    if mode == MODE_DISPATCH and current is Environment.DEV and next_environment is Environment.TEST:
        if not is_mainline_pipeline:
            return PromotionDecision(None, "dev->test promotion requires a mainline pipeline")

    return PromotionDecision(next_environment, f"{current.value} succeeded; promoting to {next_environment.value}")
