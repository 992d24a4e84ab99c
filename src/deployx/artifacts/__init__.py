"""Deterministic run artifacts."""

from deployx.artifacts.canonical_json import canonical_dumps, read_json, sha256_file, write_json
from deployx.artifacts.writer import environment_run_dir, version_run_dir, write_environment_artifacts

__all__ = [
    "canonical_dumps",
    "environment_run_dir",
    "read_json",
    "sha256_file",
    "version_run_dir",
    "write_environment_artifacts",
    "write_json",
]
