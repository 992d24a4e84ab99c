"""Deployment scope table."""

from __future__ import annotations

from enum import Enum

from deployx.context.types import Environment
from deployx.errors import CONFIG_REASON_SCOPE_INVALID, ConfigurationError


class DeploymentScope(str, Enum):
    DEV = "dev"
    TEST = "test"
    DEV_THEN_TEST = "dev-then-test"
    TEST_THEN_PROD = "test-then-prod"
    DEV_THEN_TEST_THEN_PROD = "dev-then-test-then-prod"

    @classmethod
    def parse(cls, value: str | DeploymentScope) -> DeploymentScope:
        if isinstance(value, DeploymentScope):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        allowed = ", ".join(member.value for member in cls)
        raise ConfigurationError(
            f"Invalid deployment_scope `{value}`. Allowed: {allowed}",
            CONFIG_REASON_SCOPE_INVALID,
        )


SCOPE_ENVIRONMENTS: dict[DeploymentScope, tuple[Environment, ...]] = {
    DeploymentScope.DEV: (Environment.DEV,),
    DeploymentScope.TEST: (Environment.TEST,),
    DeploymentScope.DEV_THEN_TEST: (Environment.DEV, Environment.TEST),
    DeploymentScope.TEST_THEN_PROD: (Environment.TEST, Environment.PROD),
    DeploymentScope.DEV_THEN_TEST_THEN_PROD: (Environment.DEV, Environment.TEST, Environment.PROD),
}


def plan(deployment_scope: str | DeploymentScope, is_mainline_pipeline: bool) -> list[Environment]:
    """Return the ordered environments for a scope.

    Raises ConfigurationError for any scope outside the table; no partial plan
    is ever returned. ``is_mainline_pipeline`` only matters for dispatched
    promotion (see ``decide_promotion``) and does not shorten the plan.
    """
    scope = DeploymentScope.parse(deployment_scope)
    return list(SCOPE_ENVIRONMENTS[scope])
