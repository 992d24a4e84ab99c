"""Stage parameter bags and external operation contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from deployx.context.types import Outcome

if TYPE_CHECKING:
    from deployx.context.types import Environment, InfraOutcome


@dataclass(frozen=True)
class DeployTarget:
    """Where and how an artifact is deployed."""

    target_type: str
    name: str | None = None
    health_check_url: str | None = None
    settings: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InfraParams:
    var_file: str
    auto_approve: bool


@dataclass(frozen=True)
class MigrationParams:
    project_ref: str
    connection_ref: str | None
    backup_required: bool


@dataclass(frozen=True)
class DeployParams:
    artifact_reference: str
    target: DeployTarget
    auto_approve: bool


StageParams = InfraParams | MigrationParams | DeployParams


@dataclass(frozen=True)
class MigrationReport:
    """Result reported by a migration operation."""

    outcome: Outcome
    backup_outcome: Outcome = Outcome.SKIPPED
    message: str = ""


@dataclass(frozen=True)
class DeployReport:
    """Result reported by a deploy operation."""

    outcome: Outcome
    deployed_url: str | None = None
    message: str = ""


class InfraOperation(Protocol):
    def __call__(self, environment: Environment, var_file: str, auto_approve: bool) -> InfraOutcome: ...


class MigrationOperation(Protocol):
    def __call__(
        self,
        project_ref: str,
        connection_ref: str | None,
        backup_required: bool,
    ) -> MigrationReport: ...


class DeployOperation(Protocol):
    def __call__(self, environment: Environment, artifact_reference: str, target: DeployTarget) -> DeployReport: ...


class HealthProbe(Protocol):
    def __call__(self, url: str) -> bool: ...
