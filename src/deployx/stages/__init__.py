"""Stage execution: operation contracts and outcome normalization."""

from deployx.stages.executor import StageExecutor
from deployx.stages.operations import GatedMigration, HealthCheckedDeploy
from deployx.stages.types import (
    DeployParams,
    DeployReport,
    DeployTarget,
    InfraParams,
    MigrationParams,
    MigrationReport,
)

__all__ = [
    "DeployParams",
    "DeployReport",
    "DeployTarget",
    "GatedMigration",
    "HealthCheckedDeploy",
    "InfraParams",
    "MigrationParams",
    "MigrationReport",
    "StageExecutor",
]
