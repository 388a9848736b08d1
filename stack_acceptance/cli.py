"""Command line entry point for acceptance runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from stack_acceptance.applier import ApplyMode, ManifestApplier
from stack_acceptance.core.config import Settings, get_settings
from stack_acceptance.core.exceptions import AcceptanceError, ConvergenceError, ManifestError
from stack_acceptance.core.logging import get_logger, run_id_var, setup_logging
from stack_acceptance.manifest import MetricsDashboardManifest
from stack_acceptance.report import RunReport
from stack_acceptance.verifier import HealthVerifier

app = typer.Typer(
    no_args_is_help=True,
    help="Apply the metrics dashboard manifest and verify the resulting stack.",
)

_console = Console()
logger = get_logger("cli")

ManifestOption = typer.Option(
    None, "--manifest", "-m", help="YAML or JSON file with class parameters."
)
HostOption = typer.Option(None, "--host", help="Override the target host.")


def _prepare(host: Optional[str]) -> Settings:
    settings = get_settings()
    if host:
        settings = settings.model_copy(update={"target_host": host})
    setup_logging(settings)
    run_id_var.set(uuid.uuid4().hex)
    return settings


def _load_manifest(path: Optional[Path]) -> MetricsDashboardManifest:
    try:
        if path is None:
            return MetricsDashboardManifest()
        return MetricsDashboardManifest.from_file(path)
    except ManifestError as e:
        _console.print(f"[red]{e.message}[/red]")
        for error in e.details.get("errors", []):
            _console.print(f"  - {error}")
        raise typer.Exit(code=2) from e


def _verification_settings(
    settings: Settings, manifest: MetricsDashboardManifest
) -> Settings:
    """Point the checks at the ports and database the manifest declares."""
    return settings.model_copy(
        update={
            "dashboard_port": manifest.dashboard_http_port,
            "database_name": manifest.primary_database,
        }
    )


@app.command()
def render(manifest: Optional[Path] = ManifestOption) -> None:
    """Print the Puppet code that would be applied."""
    settings = get_settings()
    loaded = _load_manifest(manifest)
    typer.echo(loaded.to_puppet(settings.puppet_class), nl=False)


@app.command()
def apply(
    manifest: Optional[Path] = ManifestOption,
    twice: bool = typer.Option(True, "--twice/--once", help="Apply a second time."),
    mode: ApplyMode = typer.Option(
        ApplyMode.DEFAULT, "--mode", help="Exit codes to accept for each run."
    ),
    idempotent: bool = typer.Option(
        False, "--idempotent", help="Finish with an apply that must change nothing."
    ),
    host: Optional[str] = HostOption,
) -> None:
    """Apply the manifest through the convergence engine."""
    settings = _prepare(host)
    loaded = _load_manifest(manifest)
    applier = ManifestApplier(settings)

    try:
        results = [applier.apply(loaded, mode) for _ in range(2 if twice else 1)]
        if idempotent:
            results.extend(applier.idempotent_apply(loaded))
    except ConvergenceError as e:
        _console.print(f"[red]Convergence failed:[/red] {e.message}")
        raise typer.Exit(code=1) from e

    for i, result in enumerate(results, start=1):
        _console.print(
            f"[green]Run {i}[/green] ({result.mode.value}): exit code {result.exit_code}"
        )


@app.command()
def verify(
    manifest: Optional[Path] = typer.Option(
        None,
        "--manifest",
        "-m",
        help="Take the dashboard port and database from this manifest.",
    ),
    host: Optional[str] = HostOption,
) -> None:
    """Probe the converged stack."""
    settings = _prepare(host)
    if manifest is not None:
        settings = _verification_settings(settings, _load_manifest(manifest))
    verifier = HealthVerifier(settings)
    results = verifier.check_all()
    verifier.print_status(results, console=_console)

    if not all(r.healthy for r in results):
        raise typer.Exit(code=1)


@app.command()
def run(
    manifest: Optional[Path] = ManifestOption,
    host: Optional[str] = HostOption,
    report: bool = typer.Option(True, "--report/--no-report", help="Save JSON and Markdown reports."),
) -> None:
    """Apply twice, check idempotence, then verify."""
    settings = _prepare(host)
    loaded = _load_manifest(manifest)

    run_report = RunReport(
        run_id=run_id_var.get() or uuid.uuid4().hex,
        started_at=datetime.now(timezone.utc),
        target_host=settings.target_host,
        manifest=loaded.parameters(),
    )

    applier = ManifestApplier(settings)
    try:
        run_report.applies.extend(applier.apply_twice(loaded))
        run_report.applies.extend(applier.idempotent_apply(loaded))
    except AcceptanceError as e:
        logger.error("Convergence failed: %s", e.message)
        run_report.error = e.message
        if isinstance(e, ConvergenceError) and e.result is not None:
            run_report.applies.append(e.result)
    else:
        verifier = HealthVerifier(_verification_settings(settings, loaded))
        run_report.checks = verifier.check_all()
        verifier.print_status(run_report.checks, console=_console)

    run_report.finish()
    _console.print(run_report.summary())

    if report:
        path = run_report.save(settings.report_dir)
        _console.print(f"[dim]Report saved to {path}[/dim]")

    if not run_report.passed:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
