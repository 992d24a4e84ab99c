"""Promotion planning: scope table, branch gate and promotion decisions."""

from deployx.planner.promotion import (
    BranchPolicy,
    PromotionDecision,
    check_branch,
    check_branches,
    decide_promotion,
    is_mainline_artifact,
)
from deployx.planner.scope import DeploymentScope, plan

__all__ = [
    "BranchPolicy",
    "DeploymentScope",
    "PromotionDecision",
    "check_branch",
    "check_branches",
    "decide_promotion",
    "is_mainline_artifact",
    "plan",
]
