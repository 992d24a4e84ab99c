"""deployx CLI - plan, run and resume environment promotions."""

import json
import signal
import threading
from pathlib import Path
from typing import Any, Callable

import typer
from rich.console import Console

from deployx import __version__
from deployx.artifacts.canonical_json import read_json, write_json
from deployx.artifacts.writer import version_run_dir
from deployx.config.loader import ensure_default_config, load_config
from deployx.config.types import DEFAULT_RUN_ROOT_RELATIVE_PATH, DeployxConfig
from deployx.context.serialization import run_context_from_dict
from deployx.context.types import Environment, StageKind
from deployx.errors import ConfigurationError, PromotionRefusal
from deployx.orchestrator.assembly import build_orchestrator
from deployx.orchestrator.dispatch import load_handoff
from deployx.orchestrator.kernel import (
    DeploymentRequest,
    OrchestrationReport,
    Orchestrator,
    orchestration_report_to_dict,
)
from deployx.pipeline.environment import Approver
from deployx.planner.promotion import BranchPolicy, check_branches, is_mainline_artifact
from deployx.planner.scope import plan as plan_environments
from deployx.schemas.validator import validate_data
from deployx.status.aggregator import render
from deployx.status.reporting import payload_to_dict, render_status_markdown
from deployx.utils.logging import configure_logging

cli = typer.Typer(
    name="deployx",
    help="deployx - environment promotion and canary deployment orchestrator",
    no_args_is_help=True,
)
console = Console()


def _version_option_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@cli.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_option_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Configure logging for every command."""
    _ = version
    configure_logging(verbose)


@cli.command(name="init")
def init_command(
    repo_root: Path = typer.Option(Path("."), "--repo-root", help="Repository root path"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
) -> None:
    """Write the default .deployx/deployx.yaml."""
    try:
        path = ensure_default_config(repo_root, force=force)
    except FileExistsError as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        console.print("Use --force to overwrite.")
        raise typer.Exit(2) from exc
    console.print("[green]✓ Config written[/green]")
    console.print(f"[cyan]Path:[/cyan] {path}")


@cli.command(name="plan")
def plan_command(
    artifact: str = typer.Option(..., "--artifact", help="Artifact reference to deploy"),
    branch: str = typer.Option(..., "--branch", help="Source branch of the build"),
    scope: str | None = typer.Option(None, "--scope", help="Override deployment_scope from config"),
    mainline: bool | None = typer.Option(
        None,
        "--mainline/--no-mainline",
        help="Mainline pipeline (default: derived from the artifact name)",
    ),
    repo_root: Path = typer.Option(Path("."), "--repo-root", help="Repository root path"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Show which environments would run, without running anything."""
    try:
        config = load_config(repo_root, config_path)
        is_mainline = mainline if mainline is not None else is_mainline_artifact(artifact, config.mainline_artifact_prefix)
        environments = plan_environments(scope or config.deployment_scope, is_mainline)
        check_branches(
            environments,
            branch,
            BranchPolicy(trunk_branch=config.trunk_branch, feature_prefix=config.feature_branch_prefix),
        )
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error ({exc.reason_code}):[/bold red] {exc}")
        raise typer.Exit(2) from exc
    except PromotionRefusal as exc:
        console.print(f"[yellow]Refused:[/yellow] {exc}")
        raise typer.Exit(2) from exc

    console.print("[green]✓ Plan[/green]")
    console.print(f"[cyan]Mainline:[/cyan] {is_mainline}")
    for index, environment in enumerate(environments, start=1):
        mode = "canary" if environment.uses_canary else "direct"
        console.print(f"  {index}. {environment.display_name} ({environment.value}, {mode} deploy)")


@cli.command(name="run")
def run_command(
    version: str = typer.Option(..., "--version-id", help="Version being deployed"),
    artifact: str = typer.Option(..., "--artifact", help="Artifact reference to deploy"),
    branch: str = typer.Option(..., "--branch", help="Source branch of the build"),
    scope: str | None = typer.Option(None, "--scope", help="Override deployment_scope from config"),
    mainline: bool | None = typer.Option(
        None,
        "--mainline/--no-mainline",
        help="Mainline pipeline (default: derived from the artifact name)",
    ),
    db_project: str | None = typer.Option(None, "--db-project", help="Override db_migration_project"),
    approve: list[str] = typer.Option([], "--approve", help="Pre-approve manual gates for an environment (repeatable)"),
    yes: bool = typer.Option(False, "--yes", help="Approve every manual gate"),
    repo_root: Path = typer.Option(Path("."), "--repo-root", help="Repository root path"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    run_root: Path = typer.Option(DEFAULT_RUN_ROOT_RELATIVE_PATH, "--run-root", help="Artifact output root"),
    run_url: str | None = typer.Option(None, "--run-url", help="Link to this run for notifications"),
) -> None:
    """Deploy a version through the planned environments."""
    try:
        config = load_config(repo_root, config_path)
        request = DeploymentRequest(
            version=version,
            artifact_reference=artifact,
            deployment_scope=scope or config.deployment_scope,
            source_branch=branch,
            is_mainline_pipeline=mainline,
            db_migration_project_ref=db_project or config.db_migration_project,
        )
        approved = {Environment.parse(item) for item in approve}
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error ({exc.reason_code}):[/bold red] {exc}")
        raise typer.Exit(2) from exc

    _execute(
        lambda orchestrator: orchestrator.run(request),
        config=config,
        repo_root=repo_root,
        version=version,
        approved=approved,
        yes=yes,
        run_root=run_root,
        run_url=run_url,
    )


@cli.command(name="resume")
def resume_command(
    handoff: Path = typer.Option(..., "--handoff", help="HANDOFF_<env>.json written by a previous run"),
    approve: list[str] = typer.Option([], "--approve", help="Pre-approve manual gates for an environment (repeatable)"),
    yes: bool = typer.Option(False, "--yes", help="Approve every manual gate"),
    repo_root: Path = typer.Option(Path("."), "--repo-root", help="Repository root path"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    run_root: Path = typer.Option(DEFAULT_RUN_ROOT_RELATIVE_PATH, "--run-root", help="Artifact output root"),
    run_url: str | None = typer.Option(None, "--run-url", help="Link to this run for notifications"),
) -> None:
    """Continue a pipeline from a handoff message."""
    try:
        config = load_config(repo_root, config_path)
        message = load_handoff(handoff)
        approved = {Environment.parse(item) for item in approve}
    except (ValueError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(2) from exc

    _execute(
        lambda orchestrator: orchestrator.resume(message),
        config=config,
        repo_root=repo_root,
        version=message.version,
        approved=approved,
        yes=yes,
        run_root=run_root,
        run_url=run_url,
    )


@cli.command(name="render")
def render_command(
    run_context: Path = typer.Option(..., "--run-context", help="RUN_CONTEXT.json to render"),
    markdown: bool = typer.Option(False, "--markdown", help="Print markdown instead of JSON"),
    run_url: str | None = typer.Option(None, "--run-url", help="Link to the run"),
) -> None:
    """Re-render the status payload for a finished environment run."""
    try:
        payload_raw = read_json(run_context)
        validate_data(payload_raw, "run_context")
        ctx = run_context_from_dict(payload_raw)
    except (ValueError, OSError, KeyError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc

    payload = render(ctx, run_url=run_url)
    if markdown:
        typer.echo(render_status_markdown(payload))
    else:
        typer.echo(json.dumps(payload_to_dict(payload), indent=2, sort_keys=True, ensure_ascii=False))


def _execute(
    start: Callable[[Orchestrator], OrchestrationReport],
    *,
    config: DeployxConfig,
    repo_root: Path,
    version: str,
    approved: set[Environment],
    yes: bool,
    run_root: Path,
    run_url: str | None,
) -> None:
    resolved_run_root = run_root if run_root.is_absolute() else (repo_root / run_root)
    cancel_event = threading.Event()
    orchestrator = build_orchestrator(
        config,
        repo_root=repo_root.resolve(),
        version=version,
        approver=_approver(approved, yes),
        cancel_event=cancel_event,
        console=console,
        run_root=resolved_run_root.resolve(),
        run_url=run_url,
    )

    def _abort(signum: int, frame: Any) -> None:
        _ = (signum, frame)
        console.print("[yellow]Abort requested: stopping after the current step (active canary rolls back).[/yellow]")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, _abort)
    try:
        report = start(orchestrator)
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error ({exc.reason_code}):[/bold red] {exc}")
        raise typer.Exit(2) from exc
    except PromotionRefusal as exc:
        console.print(f"[yellow]Refused:[/yellow] {exc}")
        raise typer.Exit(2) from exc
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    report_path = version_run_dir(resolved_run_root, version) / "ORCHESTRATION.json"
    write_json(report_path, orchestration_report_to_dict(report))
    _print_report(report)
    console.print(f"[cyan]Report:[/cyan] {report_path}")
    if report.status != "success":
        raise typer.Exit(1)


def _approver(approved: set[Environment], yes: bool) -> Approver:
    def approve(environment: Environment, kind: StageKind) -> bool:
        if yes or environment in approved:
            console.print(f"[cyan]Approved:[/cyan] {kind.value} in {environment.value}")
            return True
        console.print(f"[yellow]Approval required:[/yellow] {kind.value} in {environment.value} (use --approve {environment.value})")
        return False

    return approve


def _print_report(report: OrchestrationReport) -> None:
    style = {"success": "green", "rolled_back": "yellow"}.get(report.status, "bold red")
    console.print(f"[{style}]Run status: {report.status}[/{style}]")
    for item in report.environments:
        console.print(f"  {item.environment.value}: {item.outcome.value} - {item.payload.message}")
    for promotion in report.promotions:
        target = promotion.to_environment.value if promotion.to_environment else "-"
        console.print(f"  promotion {promotion.from_environment.value} -> {target}: {promotion.status} ({promotion.reason})")
