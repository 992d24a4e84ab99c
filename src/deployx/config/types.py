"""Normalized configuration types."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from deployx.context.types import Environment

DEFAULT_CONFIG_RELATIVE_PATH = Path(".deployx/deployx.yaml")
DEFAULT_RUN_ROOT_RELATIVE_PATH = Path("out/deployx")

DEPLOY_TARGET_TYPES: tuple[str, ...] = ("custom-script", "azure-app-service")
NOTIFICATION_CHANNELS: tuple[str, ...] = ("console", "slack", "teams")
DISPATCH_MODES: tuple[str, ...] = ("in-process", "outbox", "command")


@dataclass(frozen=True)
class InfraSettings:
    working_directory: str | None
    var_file: str
    auto_approve: bool


@dataclass(frozen=True)
class MigrationSettings:
    project: str | None
    connection_env: str | None
    backup_required: bool
    backup_command: tuple[str, ...] = ()
    script_path: str | None = None


@dataclass(frozen=True)
class DeploySettings:
    target_type: str
    name: str | None
    auto_approve: bool
    health_check_url: str | None = None
    health_check_retries: int = 3
    retry_delay_seconds: float = 10.0
    settings: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CanarySettings:
    percentage: int
    observation_period_minutes: float
    probe_interval_seconds: float
    health_check_url: str | None
    rollback_on_failure: bool


@dataclass(frozen=True)
class EnvironmentSettings:
    """Everything one environment's pipeline needs."""

    environment: Environment
    infra: InfraSettings
    migration: MigrationSettings
    deploy: DeploySettings
    canary: CanarySettings


@dataclass(frozen=True)
class ChannelSettings:
    kind: str
    webhook_env: str | None = None
    mention_on_failure: str | None = None


@dataclass(frozen=True)
class DispatchSettings:
    mode: str = "in-process"
    outbox_dir: str = "out/deployx/outbox"
    command: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeployxConfig:
    """Normalized repository configuration."""

    deployment_scope: str
    trunk_branch: str
    feature_branch_prefix: str
    mainline_artifact_prefix: str
    db_migration_project: str | None
    stage_timeout_seconds: float | None
    environments: dict[Environment, EnvironmentSettings]
    channels: tuple[ChannelSettings, ...]
    dispatch: DispatchSettings
    path: Path | None = None
