"""Hand-off messages and dispatchers for running the next environment elsewhere."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from deployx.adapters import exec as exec_adapter
from deployx.artifacts.canonical_json import canonical_dumps, read_json
from deployx.context.types import Environment, EnvironmentOutcome
from deployx.errors import DispatchError
from deployx.schemas.validator import validate_data

if TYPE_CHECKING:
    from deployx.context.types import RunContext

logger = logging.getLogger(__name__)

HANDOFF_SCHEMA_VERSION = "deployx.handoff.v1"


@dataclass(frozen=True)
class HandoffMessage:
    """Everything the next environment's run needs; no mutable state crosses over."""

    version: str
    artifact_reference: str
    target_environment: Environment
    source_branch: str
    is_mainline_pipeline: bool
    deployment_scope: str
    db_migration_project_ref: str | None = None
    previous_environment: Environment | None = None
    previous_status: EnvironmentOutcome | None = None


def build_handoff(ctx: RunContext, next_environment: Environment) -> HandoffMessage:
    return HandoffMessage(
        version=ctx.version,
        artifact_reference=ctx.artifact_reference,
        target_environment=next_environment,
        source_branch=ctx.source_branch,
        is_mainline_pipeline=ctx.is_mainline_pipeline,
        deployment_scope=ctx.deployment_scope,
        db_migration_project_ref=ctx.db_migration_project_ref,
        previous_environment=ctx.target_environment,
        previous_status=ctx.aggregate_outcome(),
    )


def handoff_to_dict(message: HandoffMessage) -> dict[str, Any]:
    return {
        "schema_version": HANDOFF_SCHEMA_VERSION,
        "version_to_deploy": message.version,
        "source_artifact_name": message.artifact_reference,
        "target_environment_type": message.target_environment.value,
        "db_migration_project_path": message.db_migration_project_ref,
        "source_branch": message.source_branch,
        "is_mainline_pipeline": message.is_mainline_pipeline,
        "deployment_scope": message.deployment_scope,
        "previous_environment": message.previous_environment.value if message.previous_environment else None,
        "previous_status": message.previous_status.value if message.previous_status else None,
    }


def handoff_from_dict(payload: dict[str, Any]) -> HandoffMessage:
    """Validate and load a handoff payload. Raises ValueError when invalid."""
    validate_data(payload, "handoff")
    previous_environment = payload.get("previous_environment")
    previous_status = payload.get("previous_status")
    return HandoffMessage(
        version=str(payload["version_to_deploy"]),
        artifact_reference=str(payload["source_artifact_name"]),
        target_environment=Environment.parse(payload["target_environment_type"]),
        source_branch=str(payload["source_branch"]),
        is_mainline_pipeline=bool(payload["is_mainline_pipeline"]),
        deployment_scope=str(payload["deployment_scope"]),
        db_migration_project_ref=payload.get("db_migration_project_path"),
        previous_environment=Environment.parse(previous_environment) if previous_environment else None,
        previous_status=EnvironmentOutcome(previous_status) if previous_status else None,
    )


def load_handoff(path: Path) -> HandoffMessage:
    return handoff_from_dict(read_json(path))


class Dispatcher(Protocol):
    def dispatch(self, message: HandoffMessage) -> str: ...


class OutboxDispatcher:
    """Write the handoff as ``HANDOFF_<env>.json`` for an external scheduler to pick up."""

    def __init__(self, outbox_dir: Path) -> None:
        self.outbox_dir = outbox_dir

    def dispatch(self, message: HandoffMessage) -> str:
        path = self.outbox_dir / f"HANDOFF_{message.target_environment.value}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(canonical_dumps(handoff_to_dict(message)) + "\n", encoding="utf-8")
        except OSError as e:
            raise DispatchError(f"could not write handoff to {path}: {e}") from e
        logger.info("handoff for %s written to %s", message.target_environment.value, path)
        return str(path)


class CommandDispatcher:
    """Run a command with the handoff JSON on stdin.

    ``{target_environment}``, ``{version}`` and ``{artifact}`` in the argv
    template are substituted, e.g. ``gh workflow run deploy.yml --json``.
    """

    def __init__(self, argv_template: tuple[str, ...], *, cwd: Path, timeout: float | None = 120.0) -> None:
        if not argv_template:
            raise ValueError("dispatch command must not be empty")
        self.argv_template = argv_template
        self.cwd = cwd
        self.timeout = timeout

    def dispatch(self, message: HandoffMessage) -> str:
        substitutions = {
            "target_environment": message.target_environment.value,
            "version": message.version,
            "artifact": message.artifact_reference,
        }
        argv = [part.format(**substitutions) for part in self.argv_template]
        try:
            result = exec_adapter.run_command(
                argv,
                cwd=self.cwd,
                check=True,
                input_text=canonical_dumps(handoff_to_dict(message)),
                timeout=self.timeout,
            )
        except (exec_adapter.ExecError, OSError, subprocess.TimeoutExpired) as e:
            raise DispatchError(f"dispatch command failed: {e}") from e
        return result.stdout.strip() or " ".join(argv)
