"""Canary sub-protocol types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from deployx.context.types import CanaryHealth, Environment, EnvironmentOutcome, Outcome
    from deployx.stages.types import DeployReport, DeployTarget

DEFAULT_CANARY_PERCENTAGE = 10
DEFAULT_OBSERVATION_MINUTES = 30
DEFAULT_PROBE_INTERVAL_SECONDS = 60.0


class CanaryState(str, Enum):
    DEPLOYING = "deploying"
    MONITORING = "monitoring"
    PROMOTING = "promoting"
    ROLLING_BACK = "rolling_back"
    DONE = "done"


@dataclass(frozen=True)
class CanarySession:
    """Parameters for one canary rollout; discarded once it completes."""

    percentage: int
    observation_window_seconds: float
    health_check_target: str | None
    probe_interval_seconds: float = DEFAULT_PROBE_INTERVAL_SECONDS
    rollback_on_failure: bool = True

    def __post_init__(self) -> None:
        if not 0 < self.percentage <= 100:
            raise ValueError(f"canary percentage must be in (0, 100], got {self.percentage}")
        if self.observation_window_seconds < 0:
            raise ValueError("observation window must not be negative")
        if self.probe_interval_seconds <= 0:
            raise ValueError("probe interval must be positive")


@dataclass(frozen=True)
class CanaryReport:
    """Final result of a canary rollout."""

    status: EnvironmentOutcome
    health: CanaryHealth
    probes: int
    message: str
    states: tuple[CanaryState, ...]
    deployed_url: str | None = None
    aborted: bool = False


class SliceDeployOperation(Protocol):
    def __call__(
        self,
        environment: Environment,
        artifact_reference: str,
        target: DeployTarget,
        percentage: int,
    ) -> DeployReport: ...


class PromoteOperation(Protocol):
    def __call__(self, environment: Environment, target: DeployTarget) -> Outcome: ...


class RollbackOperation(Protocol):
    def __call__(self, environment: Environment, target: DeployTarget) -> Outcome: ...
