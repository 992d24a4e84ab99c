"""Pytest configuration for deployx tests."""
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_webhook_env(monkeypatch):
    """Keep real notification webhooks from leaking into tests."""
    for name in ("SLACK_WEBHOOK_URL", "TEAMS_WEBHOOK_URL"):
        monkeypatch.delenv(name, raising=False)


def pytest_sessionfinish(session, exitstatus):
    """Fail the run when --cov was requested but no coverage data was written."""
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)
    if not cov_enabled:
        return

    coverage_files = list(Path.cwd().glob(".coverage*"))
    if not coverage_files:
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'deployx' (the package) not 'src/deployx' (filesystem path).",
            returncode=1
        )
