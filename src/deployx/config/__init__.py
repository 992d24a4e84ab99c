"""Repository deployment configuration."""

from deployx.config.loader import config_path_for_repo, ensure_default_config, load_config, parse_config
from deployx.config.types import DeployxConfig, EnvironmentSettings

__all__ = [
    "DeployxConfig",
    "EnvironmentSettings",
    "config_path_for_repo",
    "ensure_default_config",
    "load_config",
    "parse_config",
]
