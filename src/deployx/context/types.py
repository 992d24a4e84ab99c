"""Domain types for environment runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from deployx.errors import CONFIG_REASON_INVALID, ConfigurationError

STAGE_ORDER: tuple[str, ...] = ("infra-apply", "db-migrate", "app-deploy")


class Environment(str, Enum):
    """Deployment target environments, in promotion order."""

    DEV = "dev"
    TEST = "test"
    PROD = "prod"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def uses_canary(self) -> bool:
        return self is Environment.PROD

    @classmethod
    def parse(cls, value: str) -> Environment:
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        allowed = ", ".join(member.value for member in cls)
        raise ConfigurationError(
            f"Invalid environment `{value}`. Allowed: {allowed}",
            CONFIG_REASON_INVALID,
        )


_DISPLAY_NAMES = {
    Environment.DEV: "Development",
    Environment.TEST: "Test",
    Environment.PROD: "Production",
}


class StageKind(str, Enum):
    """The three stages every environment runs, in this order."""

    INFRA_APPLY = "infra-apply"
    DB_MIGRATE = "db-migrate"
    APP_DEPLOY = "app-deploy"


class Outcome(str, Enum):
    """Tri-state stage outcome."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class InfraOutcome(str, Enum):
    """Result reported by infrastructure operations."""

    NO_CHANGES = "no_changes"
    APPLIED = "applied"
    PLANNED = "planned"
    ERROR = "error"


class CanaryHealth(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    SKIPPED = "skipped"


class EnvironmentOutcome(str, Enum):
    """Aggregate verdict for one environment's run."""

    SUCCESS = "success"
    FAILURE = "failure"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class StageResult:
    """Outcome of one stage attempt."""

    stage: StageKind
    outcome: Outcome
    message: str
    timestamp: str
    url: str | None = None

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILURE


_IDENTITY_FIELDS = frozenset(
    {
        "version",
        "artifact_reference",
        "source_branch",
        "is_mainline_pipeline",
        "target_environment",
        "deployment_scope",
        "db_migration_project_ref",
    }
)


@dataclass
class RunContext:
    """State for one environment run.

    Identity fields are fixed at construction. Stage results only grow, via
    ``record``. Promotion builds a fresh context with ``for_next_environment``
    so nothing mutable is shared between environments.
    """

    version: str
    artifact_reference: str
    source_branch: str
    is_mainline_pipeline: bool
    target_environment: Environment
    deployment_scope: str
    db_migration_project_ref: str | None = None
    canary_health: CanaryHealth | None = None
    canary_status: EnvironmentOutcome | None = None
    deployed_url: str | None = None
    _stage_results: list[StageResult] = field(default_factory=list, repr=False)

    def __setattr__(self, name: str, value: object) -> None:
        if name in _IDENTITY_FIELDS and name in self.__dict__:
            raise AttributeError(f"RunContext.{name} is immutable")
        super().__setattr__(name, value)

    @property
    def stage_results(self) -> tuple[StageResult, ...]:
        return tuple(self._stage_results)

    def record(self, result: StageResult) -> None:
        """Append a stage result; each stage is recorded at most once, in order."""
        recorded = {item.stage for item in self._stage_results}
        if result.stage in recorded:
            raise ValueError(f"stage `{result.stage.value}` already recorded for {self.target_environment.value}")
        expected = STAGE_ORDER[len(self._stage_results)] if len(self._stage_results) < len(STAGE_ORDER) else None
        if expected != result.stage.value:
            raise ValueError(f"stage `{result.stage.value}` recorded out of order (expected `{expected}`)")
        self._stage_results.append(result)

    def result_for(self, stage: StageKind) -> StageResult | None:
        for item in self._stage_results:
            if item.stage is stage:
                return item
        return None

    def aggregate_outcome(self) -> EnvironmentOutcome:
        """Compute Success / Failure / RolledBack for this environment."""
        if self.canary_status is EnvironmentOutcome.ROLLED_BACK:
            return EnvironmentOutcome.ROLLED_BACK
        if any(item.failed for item in self._stage_results):
            return EnvironmentOutcome.FAILURE
        if len(self._stage_results) < len(STAGE_ORDER):
            return EnvironmentOutcome.FAILURE
        return EnvironmentOutcome.SUCCESS

    def for_next_environment(self, environment: Environment) -> RunContext:
        """Build a fresh context for the next environment, copying identity only."""
        return RunContext(
            version=self.version,
            artifact_reference=self.artifact_reference,
            source_branch=self.source_branch,
            is_mainline_pipeline=self.is_mainline_pipeline,
            target_environment=environment,
            deployment_scope=self.deployment_scope,
            db_migration_project_ref=self.db_migration_project_ref,
        )
