"""Per-environment artifact writer."""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from deployx.artifacts.canonical_json import sha256_file, write_json
from deployx.context.serialization import run_context_to_dict
from deployx.status.reporting import payload_to_dict, render_status_markdown

if TYPE_CHECKING:
    from deployx.context.types import RunContext
    from deployx.status.aggregator import NotificationPayload

ARTIFACT_INDEX_SCHEMA_VERSION = "deployx.artifacts.v1"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def version_run_dir(run_root: Path, version: str) -> Path:
    """Return ``<run_root>/<version>`` with a filesystem-safe version."""
    return run_root / (_UNSAFE.sub("_", version).strip("._") or "unversioned")


def environment_run_dir(run_root: Path, version: str, environment: str) -> Path:
    return version_run_dir(run_root, version) / environment


def write_environment_artifacts(
    run_dir: Path,
    *,
    ctx: RunContext,
    payload: NotificationPayload,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Write RUN_CONTEXT.json, STATUS.json, STATUS.md and ARTIFACT_INDEX.json."""
    run_dir.mkdir(parents=True, exist_ok=True)

    context_path = write_json(run_dir / "RUN_CONTEXT.json", run_context_to_dict(ctx))
    status = payload_to_dict(payload)
    if extra:
        status.update(extra)
    status_path = write_json(run_dir / "STATUS.json", status)
    markdown_path = run_dir / "STATUS.md"
    markdown_path.write_text(render_status_markdown(payload), encoding="utf-8")

    artifacts: list[tuple[str, Path]] = [
        ("RUN_CONTEXT.json", context_path),
        ("STATUS.json", status_path),
        ("STATUS.md", markdown_path),
    ]
    index_payload: dict[str, Any] = {
        "schema_version": ARTIFACT_INDEX_SCHEMA_VERSION,
        "environment": ctx.target_environment.value,
        "version": ctx.version,
        "artifacts": [
            {"name": name, "path": name, "sha256": sha256_file(path)}
            for name, path in artifacts
        ],
    }
    write_json(run_dir / "ARTIFACT_INDEX.json", index_payload)
    return index_payload
