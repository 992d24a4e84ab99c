"""EF Core style database migration with an optional pre-migration backup."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from deployx.adapters import exec as exec_adapter
from deployx.stages.operations import GatedMigration

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATION_TIMEOUT_SECONDS = 300.0
CONNECTION_ENV_FOR_TOOLS = "DB_CONNECTION_STRING"

_CONNECTION_KEYS = {
    "server": ("server", "data source", "datasource"),
    "database": ("initial catalog", "database"),
    "user": ("user id", "uid", "userid", "username"),
    "password": ("password", "pwd"),
}


def _connection_env(connection_ref: str | None) -> dict[str, str]:
    """Resolve a connection reference (an environment variable name) for child tools."""
    if not connection_ref:
        return {}
    value = os.environ.get(connection_ref)
    if not value:
        raise RuntimeError(f"connection string environment variable `{connection_ref}` is not set")
    return {CONNECTION_ENV_FOR_TOOLS: value}


def parse_connection_string(value: str) -> dict[str, str]:
    """Split a .NET ``key=value;`` connection string into server, database, user and password.

    Keys are matched case-insensitively and a ``tcp:`` server prefix is dropped.
    Parts that are absent are left out of the result.
    """
    pairs: dict[str, str] = {}
    for part in value.split(";"):
        key, sep, item = part.partition("=")
        if sep and key.strip():
            pairs[key.strip().lower()] = item.strip()

    parsed: dict[str, str] = {}
    for name, aliases in _CONNECTION_KEYS.items():
        for alias in aliases:
            if pairs.get(alias):
                parsed[name] = pairs[alias]
                break
    if parsed.get("server", "").startswith("tcp:"):
        parsed["server"] = parsed["server"][4:]
    return parsed


def sqlcmd_argv(script_path: str, connection_string: str | None) -> list[str]:
    if not connection_string:
        raise RuntimeError("a connection string is required to apply a SQL script")
    parts = parse_connection_string(connection_string)
    missing = [name for name in _CONNECTION_KEYS if name not in parts]
    if missing:
        raise RuntimeError(f"connection string is missing: {', '.join(missing)}")
    return [
        "sqlcmd",
        "-S",
        parts["server"],
        "-d",
        parts["database"],
        "-U",
        parts["user"],
        "-P",
        parts["password"],
        "-i",
        script_path,
        "-b",
        "-C",
    ]


class EfCoreMigration:
    """Build the backup and migrate steps for a repository."""

    def __init__(
        self,
        repo_root: Path,
        *,
        backup_command: tuple[str, ...] = (),
        script_path: str | None = None,
        timeout: float | None = MIGRATION_TIMEOUT_SECONDS,
    ) -> None:
        self.repo_root = repo_root
        self.backup_command = backup_command
        self.script_path = script_path
        self.timeout = timeout

    def backup(self, connection_ref: str | None) -> bool:
        result = exec_adapter.run_command(
            list(self.backup_command),
            cwd=self.repo_root,
            check=False,
            env=_connection_env(connection_ref),
            timeout=self.timeout,
        )
        if result.returncode != 0:
            logger.error("database backup failed: %s", result.output)
        return result.returncode == 0

    def migrate(self, project_ref: str, connection_ref: str | None) -> bool:
        env = _connection_env(connection_ref)
        if self.script_path:
            argv = sqlcmd_argv(self.script_path, env.get(CONNECTION_ENV_FOR_TOOLS))
            logger.info("applying %s with sqlcmd", self.script_path)
        else:
            argv = ["dotnet", "ef", "database", "update", "--project", project_ref]
            if env:
                argv.extend(["--connection", env[CONNECTION_ENV_FOR_TOOLS]])
        result = exec_adapter.run_command(argv, cwd=self.repo_root, check=False, env=env, timeout=self.timeout)
        if result.returncode != 0:
            logger.error("migration failed (%s): %s", argv[0], result.output)
        return result.returncode == 0

    def operation(self) -> GatedMigration:
        return GatedMigration(backup=self.backup if self.backup_command else None, migrate=self.migrate)
