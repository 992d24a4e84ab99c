"""Deploy target, migration and health probe adapters."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
import requests

from deployx.adapters.deploy import AzureAppServiceDeploy, CustomScriptDeploy
from deployx.adapters.efcore import EfCoreMigration, parse_connection_string
from deployx.adapters.exec import ExecResult
from deployx.adapters.http import http_health_probe
from deployx.context.types import Environment, Outcome
from deployx.stages.types import DeployTarget


class _Recorder:
    def __init__(self, returncode: int = 0, stdout: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.calls: list[dict] = []

    def __call__(self, argv, *, cwd, check=True, env=None, input_text=None, timeout=None):
        self.calls.append({"argv": argv, "env": env or {}})
        return ExecResult(argv=tuple(argv), cwd=cwd, returncode=self.returncode, stdout=self.stdout, stderr="")


SCRIPT_TARGET = DeployTarget(target_type="custom-script", name="scripts/deploy.sh")
APP_TARGET = DeployTarget(
    target_type="azure-app-service",
    name="app-prod",
    settings={"resource_group": "rg-prod", "slot": "canary"},
)


def test_custom_script_passes_deployment_environment(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder(stdout="uploading\ndeployment_url=https://app-dev.example.com\n")
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)

    report = CustomScriptDeploy(tmp_path, version="1.4.0")(Environment.DEV, "dist/app.zip", SCRIPT_TARGET)

    assert report.outcome is Outcome.SUCCESS
    assert report.deployed_url == "https://app-dev.example.com"
    env = recorder.calls[0]["env"]
    assert env["VERSION_BEING_DEPLOYED"] == "1.4.0"
    assert env["ARTIFACT_PATH_FOR_SCRIPT"] == "dist/app.zip"
    assert env["TARGET_ENVIRONMENT"] == "dev"
    assert env["DEPLOY_ACTION"] == "deploy"


def test_custom_script_canary_actions(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)
    deployer = CustomScriptDeploy(tmp_path, version="1.4.0")

    deployer.deploy_slice(Environment.PROD, "dist/app.zip", SCRIPT_TARGET, 10)
    assert deployer.promote(Environment.PROD, SCRIPT_TARGET) is Outcome.SUCCESS
    assert deployer.rollback(Environment.PROD, SCRIPT_TARGET) is Outcome.SUCCESS

    actions = [(call["env"]["DEPLOY_ACTION"], call["env"].get("CANARY_PERCENTAGE")) for call in recorder.calls]
    assert actions == [("canary", "10"), ("promote", None), ("rollback", "0")]


def test_custom_script_failure(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("deployx.adapters.exec.run_command", _Recorder(returncode=3))
    report = CustomScriptDeploy(tmp_path, version="1.4.0")(Environment.DEV, "dist/app.zip", SCRIPT_TARGET)
    assert report.outcome is Outcome.FAILURE
    assert report.message == "deploy script exited 3"


def test_custom_script_requires_name(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        CustomScriptDeploy(tmp_path, version="1")(Environment.DEV, "a.zip", DeployTarget(target_type="custom-script"))


def test_app_service_canary_routes_traffic_to_slot(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)
    deployer = AzureAppServiceDeploy(tmp_path)

    report = deployer.deploy_slice(Environment.PROD, "dist/app.zip", APP_TARGET, 10)

    assert report.outcome is Outcome.SUCCESS
    assert report.deployed_url == "https://app-prod-canary.azurewebsites.net"
    assert "--slot" in recorder.calls[0]["argv"]
    assert recorder.calls[1]["argv"][-2:] == ["--distribution", "canary=10"]


def test_app_service_promote_swaps_and_clears(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)

    assert AzureAppServiceDeploy(tmp_path).promote(Environment.PROD, APP_TARGET) is Outcome.SUCCESS
    assert recorder.calls[0]["argv"][1:5] == ["webapp", "deployment", "slot", "swap"]
    assert recorder.calls[1]["argv"][1:4] == ["webapp", "traffic-routing", "clear"]


def test_app_service_rollback_routes_zero_percent(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)

    assert AzureAppServiceDeploy(tmp_path).rollback(Environment.PROD, APP_TARGET) is Outcome.SUCCESS
    assert recorder.calls[0]["argv"][-1] == "canary=0"


def test_app_service_requires_resource_group(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        AzureAppServiceDeploy(tmp_path)(Environment.DEV, "a.zip", DeployTarget(target_type="azure-app-service", name="app"))


def test_migration_uses_dotnet_ef_with_connection(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)
    monkeypatch.setenv("PROD_DB", "Server=db;Database=app")

    assert EfCoreMigration(tmp_path).migrate("src/App.Data", "PROD_DB")
    argv = recorder.calls[0]["argv"]
    assert argv[:6] == ["dotnet", "ef", "database", "update", "--project", "src/App.Data"]
    assert argv[-2:] == ["--connection", "Server=db;Database=app"]
    assert recorder.calls[0]["env"] == {"DB_CONNECTION_STRING": "Server=db;Database=app"}


def test_migration_missing_connection_variable_raises(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("PROD_DB", raising=False)
    with pytest.raises(RuntimeError, match="PROD_DB"):
        EfCoreMigration(tmp_path).migrate("src/App.Data", "PROD_DB")


def test_sql_script_migration_targets_configured_database(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)
    monkeypatch.setenv(
        "PROD_DB",
        "Server=tcp:db.example,1433;Initial Catalog=app;User ID=deploy;Password=s3cret;Encrypt=True",
    )

    assert EfCoreMigration(tmp_path, script_path="migrations/migrate.sql").migrate("src/App.Data", "PROD_DB")
    assert recorder.calls[0]["argv"] == [
        "sqlcmd",
        "-S",
        "db.example,1433",
        "-d",
        "app",
        "-U",
        "deploy",
        "-P",
        "s3cret",
        "-i",
        "migrations/migrate.sql",
        "-b",
        "-C",
    ]


def test_sql_script_migration_rejects_incomplete_connection(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)
    monkeypatch.setenv("PROD_DB", "Server=db.example;Database=app")

    with pytest.raises(RuntimeError, match="user, password"):
        EfCoreMigration(tmp_path, script_path="migrate.sql").migrate("src/App.Data", "PROD_DB")
    assert recorder.calls == []


def test_parse_connection_string_aliases() -> None:
    parsed = parse_connection_string("Data Source=sql01; Database = app ;uid=ops;pwd=x=y;")
    assert parsed == {"server": "sql01", "database": "app", "user": "ops", "password": "x=y"}


def test_migration_operation_gates_on_backup(tmp_path: Path, monkeypatch) -> None:
    recorder = _Recorder(returncode=1)
    monkeypatch.setattr("deployx.adapters.exec.run_command", recorder)

    operation = EfCoreMigration(tmp_path, backup_command=("scripts/backup-db.sh",)).operation()
    report = operation("src/App.Data", None, True)

    assert report.outcome is Outcome.FAILURE
    assert [call["argv"] for call in recorder.calls] == [["scripts/backup-db.sh"]]


class _HeadSession:
    def __init__(self, status_code: int | None = None, error: Exception | None = None) -> None:
        self.status_code = status_code
        self.error = error
        self.kwargs: dict = {}

    def head(self, url, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return SimpleNamespace(status_code=self.status_code)


@pytest.mark.parametrize(("status_code", "healthy"), [(200, True), (301, True), (404, False), (503, False)])
def test_http_probe_status_codes(status_code: int, healthy: bool) -> None:
    session = _HeadSession(status_code=status_code)
    assert http_health_probe("https://app/health", session=session) is healthy
    assert session.kwargs == {"timeout": 10, "allow_redirects": True}


def test_http_probe_network_error_is_unhealthy() -> None:
    session = _HeadSession(error=requests.ConnectionError("refused"))
    assert http_health_probe("https://app/health", session=session) is False
