"""Load and validate repository deployment configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from deployx.canary.types import (
    DEFAULT_CANARY_PERCENTAGE,
    DEFAULT_OBSERVATION_MINUTES,
    DEFAULT_PROBE_INTERVAL_SECONDS,
)
from deployx.config.types import (
    DEFAULT_CONFIG_RELATIVE_PATH,
    DEPLOY_TARGET_TYPES,
    DISPATCH_MODES,
    NOTIFICATION_CHANNELS,
    CanarySettings,
    ChannelSettings,
    DeploySettings,
    DeployxConfig,
    DispatchSettings,
    EnvironmentSettings,
    InfraSettings,
    MigrationSettings,
)
from deployx.context.types import Environment
from deployx.errors import (
    CONFIG_REASON_INVALID,
    CONFIG_REASON_MISSING,
    CONFIG_REASON_PARSE_ERROR,
    ConfigurationError,
)
from deployx.planner.promotion import (
    DEFAULT_FEATURE_PREFIX,
    DEFAULT_MAINLINE_ARTIFACT_PREFIX,
    DEFAULT_TRUNK_BRANCH,
)
from deployx.planner.scope import SCOPE_ENVIRONMENTS, DeploymentScope

# Keep this literal deterministic and sorted in write path.
CONFIG_TEMPLATE: dict[str, Any] = {
    "deployment_scope": "dev-then-test-then-prod",
    "trunk_branch": DEFAULT_TRUNK_BRANCH,
    "feature_branch_prefix": DEFAULT_FEATURE_PREFIX,
    "mainline_artifact_prefix": DEFAULT_MAINLINE_ARTIFACT_PREFIX,
    "db_migration_project": "src/App.Data/App.Data.csproj",
    "environments": {
        "dev": {
            "infra": {"working_directory": "Infra/dev"},
            "migration": {"connection_env": "DEV_DB_CONNECTION_STRING"},
            "deploy": {
                "target_type": "custom-script",
                "name": "scripts/deploy.sh",
                "health_check_url": "https://app-dev.example.com/health",
            },
        },
        "test": {
            "infra": {"working_directory": "Infra/test"},
            "migration": {"connection_env": "TEST_DB_CONNECTION_STRING"},
            "deploy": {
                "target_type": "custom-script",
                "name": "scripts/deploy.sh",
                "health_check_url": "https://app-test.example.com/health",
            },
        },
        "prod": {
            "infra": {"working_directory": "Infra/prod"},
            "migration": {
                "connection_env": "PROD_DB_CONNECTION_STRING",
                "backup_command": ["scripts/backup-db.sh"],
            },
            "deploy": {
                "target_type": "azure-app-service",
                "name": "app-prod",
                "settings": {"resource_group": "rg-prod", "slot": "canary"},
            },
            "canary": {
                "percentage": DEFAULT_CANARY_PERCENTAGE,
                "observation_period_minutes": DEFAULT_OBSERVATION_MINUTES,
                "health_check_url": "https://app-prod-canary.example.com/health",
            },
        },
    },
    "notifications": {"channels": [{"kind": "console"}]},
    "dispatch": {"mode": "in-process"},
}


def config_path_for_repo(repo_root: Path) -> Path:
    """Return canonical config file path for a repository."""
    return repo_root.resolve() / DEFAULT_CONFIG_RELATIVE_PATH


def ensure_default_config(repo_root: Path, *, force: bool = False) -> Path:
    """Create the default config YAML deterministically."""
    output_path = config_path_for_repo(repo_root)
    if output_path.exists() and not force:
        raise FileExistsError(f"Config file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(yaml.safe_dump(CONFIG_TEMPLATE, sort_keys=True), encoding="utf-8")
    return output_path


def load_config(repo_root: Path, path: Path | None = None) -> DeployxConfig:
    """Load, normalize and validate a deployx config file."""
    config_path = path or config_path_for_repo(repo_root)
    if not config_path.exists():
        raise ConfigurationError(
            f"Missing config at {config_path}. Run `deployx init --repo-root {repo_root}` first.",
            CONFIG_REASON_MISSING,
        )
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"deployx.yaml parse error: {exc}", CONFIG_REASON_PARSE_ERROR) from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(
            "deployx.yaml parse error: expected mapping at top level",
            CONFIG_REASON_PARSE_ERROR,
        )
    return parse_config(raw, path=config_path)


def parse_config(raw: dict[str, Any], *, path: Path | None = None) -> DeployxConfig:
    """Normalize a raw config mapping; every problem raises ConfigurationError."""
    if "deployment_scope" not in raw:
        raise ConfigurationError("deployx.yaml missing required `deployment_scope`")
    scope = DeploymentScope.parse(raw["deployment_scope"])

    environments_raw = raw.get("environments") or {}
    if not isinstance(environments_raw, dict):
        raise ConfigurationError("`environments` must be a mapping")
    unknown = sorted(set(environments_raw) - {env.value for env in Environment})
    if unknown:
        raise ConfigurationError(f"unknown environments: {', '.join(unknown)}")

    environments: dict[Environment, EnvironmentSettings] = {}
    for environment in Environment:
        entry = environments_raw.get(environment.value) or {}
        if not isinstance(entry, dict):
            raise ConfigurationError(f"environments.{environment.value} must be a mapping")
        environments[environment] = _environment_settings(environment, entry)

    prod = environments[Environment.PROD]
    if Environment.PROD in SCOPE_ENVIRONMENTS[scope] and prod.canary.health_check_url is None:
        raise ConfigurationError("environments.prod.canary.health_check_url is required for canary deployments")

    timeout = raw.get("stage_timeout_seconds")
    return DeployxConfig(
        deployment_scope=scope.value,
        trunk_branch=_string(raw.get("trunk_branch", DEFAULT_TRUNK_BRANCH), "trunk_branch"),
        feature_branch_prefix=_string(raw.get("feature_branch_prefix", DEFAULT_FEATURE_PREFIX), "feature_branch_prefix"),
        mainline_artifact_prefix=_string(
            raw.get("mainline_artifact_prefix", DEFAULT_MAINLINE_ARTIFACT_PREFIX),
            "mainline_artifact_prefix",
        ),
        db_migration_project=_optional_string(raw.get("db_migration_project")),
        stage_timeout_seconds=_positive_float(timeout, "stage_timeout_seconds") if timeout is not None else None,
        environments=environments,
        channels=_channels(raw.get("notifications") or {}),
        dispatch=_dispatch(raw.get("dispatch") or {}),
        path=path,
    )


def _environment_settings(environment: Environment, entry: dict[str, Any]) -> EnvironmentSettings:
    prefix = f"environments.{environment.value}"
    is_prod = environment is Environment.PROD

    infra_raw = _mapping(entry.get("infra"), f"{prefix}.infra")
    infra = InfraSettings(
        working_directory=_optional_string(infra_raw.get("working_directory")),
        var_file=_string(infra_raw.get("var_file", f"terraform.{environment.value}.tfvars"), f"{prefix}.infra.var_file"),
        auto_approve=bool(infra_raw.get("auto_approve", not is_prod)),
    )

    migration_raw = _mapping(entry.get("migration"), f"{prefix}.migration")
    migration = MigrationSettings(
        project=_optional_string(migration_raw.get("project")),
        connection_env=_optional_string(migration_raw.get("connection_env")),
        backup_required=bool(migration_raw.get("backup_required", is_prod)),
        backup_command=_argv(migration_raw.get("backup_command"), f"{prefix}.migration.backup_command"),
        script_path=_optional_string(migration_raw.get("script_path")),
    )

    deploy_raw = _mapping(entry.get("deploy"), f"{prefix}.deploy")
    target_type = str(deploy_raw.get("target_type", "custom-script")).strip().lower()
    if target_type not in DEPLOY_TARGET_TYPES:
        raise ConfigurationError(f"{prefix}.deploy.target_type must be one of {DEPLOY_TARGET_TYPES}, got `{target_type}`")
    retries = _int(deploy_raw.get("health_check_retries", 3), f"{prefix}.deploy.health_check_retries")
    if retries < 0:
        raise ConfigurationError(f"{prefix}.deploy.health_check_retries must be >= 0")
    settings_raw = _mapping(deploy_raw.get("settings"), f"{prefix}.deploy.settings")
    deploy = DeploySettings(
        target_type=target_type,
        name=_optional_string(deploy_raw.get("name")),
        auto_approve=bool(deploy_raw.get("auto_approve", not is_prod)),
        health_check_url=_optional_string(deploy_raw.get("health_check_url")),
        health_check_retries=retries,
        retry_delay_seconds=_non_negative_float(deploy_raw.get("retry_delay_seconds", 10), f"{prefix}.deploy.retry_delay_seconds"),
        settings={str(key): str(value) for key, value in sorted(settings_raw.items())},
    )

    canary_raw = _mapping(entry.get("canary"), f"{prefix}.canary")
    percentage = _int(canary_raw.get("percentage", DEFAULT_CANARY_PERCENTAGE), f"{prefix}.canary.percentage")
    if not 0 < percentage <= 100:
        raise ConfigurationError(f"{prefix}.canary.percentage must be in (0, 100], got {percentage}")
    canary = CanarySettings(
        percentage=percentage,
        observation_period_minutes=_non_negative_float(
            canary_raw.get("observation_period_minutes", DEFAULT_OBSERVATION_MINUTES),
            f"{prefix}.canary.observation_period_minutes",
        ),
        probe_interval_seconds=_positive_float(
            canary_raw.get("probe_interval_seconds", DEFAULT_PROBE_INTERVAL_SECONDS),
            f"{prefix}.canary.probe_interval_seconds",
        ),
        health_check_url=_optional_string(canary_raw.get("health_check_url")),
        rollback_on_failure=bool(canary_raw.get("rollback_on_failure", True)),
    )
    return EnvironmentSettings(
        environment=environment,
        infra=infra,
        migration=migration,
        deploy=deploy,
        canary=canary,
    )


def _channels(raw: Any) -> tuple[ChannelSettings, ...]:
    notifications = _mapping(raw, "notifications")
    channels_raw = notifications.get("channels") or []
    if not isinstance(channels_raw, list):
        raise ConfigurationError("notifications.channels must be a list")
    channels: list[ChannelSettings] = []
    for index, item in enumerate(channels_raw):
        entry = _mapping(item, f"notifications.channels[{index}]")
        kind = str(entry.get("kind", "")).strip().lower()
        if kind not in NOTIFICATION_CHANNELS:
            raise ConfigurationError(
                f"notifications.channels[{index}].kind must be one of {NOTIFICATION_CHANNELS}, got `{kind}`"
            )
        webhook_env = _optional_string(entry.get("webhook_env"))
        if kind != "console" and webhook_env is None:
            raise ConfigurationError(f"notifications.channels[{index}] ({kind}) requires `webhook_env`")
        channels.append(
            ChannelSettings(
                kind=kind,
                webhook_env=webhook_env,
                mention_on_failure=_optional_string(entry.get("mention_on_failure")),
            )
        )
    return tuple(channels)


def _dispatch(raw: Any) -> DispatchSettings:
    dispatch = _mapping(raw, "dispatch")
    mode = str(dispatch.get("mode", "in-process")).strip().lower()
    if mode not in DISPATCH_MODES:
        raise ConfigurationError(f"dispatch.mode must be one of {DISPATCH_MODES}, got `{mode}`")
    command = _argv(dispatch.get("command"), "dispatch.command")
    if mode == "command" and not command:
        raise ConfigurationError("dispatch.mode `command` requires a non-empty `dispatch.command`")
    return DispatchSettings(
        mode=mode,
        outbox_dir=_string(dispatch.get("outbox_dir", DispatchSettings.outbox_dir), "dispatch.outbox_dir"),
        command=command,
    )


def _mapping(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"`{field_name}` must be a mapping", CONFIG_REASON_INVALID)
    return value


def _argv(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split())
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigurationError(f"`{field_name}` must be a string or list of strings")
    return tuple(value)


def _string(value: Any, field_name: str) -> str:
    text = str(value if value is not None else "").strip()
    if not text:
        raise ConfigurationError(f"`{field_name}` must be a non-empty string")
    return text


def _optional_string(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _positive_float(value: Any, field_name: str) -> float:
    number = _float(value, field_name)
    if number <= 0:
        raise ConfigurationError(f"`{field_name}` must be positive")
    return number


def _non_negative_float(value: Any, field_name: str) -> float:
    number = _float(value, field_name)
    if number < 0:
        raise ConfigurationError(f"`{field_name}` must not be negative")
    return number


def _float(value: Any, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"`{field_name}` must be a number, got `{value}`") from exc


def _int(value: Any, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"`{field_name}` must be an integer, got `{value}`") from exc
