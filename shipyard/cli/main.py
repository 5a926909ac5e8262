"""``shipyard`` command line.

Example:
    $ shipyard deploy --artifact client-prod-abc1234.tar.gz
    $ shipyard deploy --run-id 123456789 --package server
    $ shipyard rollback --package client --env prod --commit abc1234
    $ shipyard status --package server --env staging
    $ shipyard list --package server --env staging --limit 5
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from shipyard import __version__
from shipyard.cli.output import ExitCode, configure_logging, error_exit, fail, info, success, warn
from shipyard.config import ENVIRONMENTS, PACKAGES, Settings, load_settings
from shipyard.errors import DeployError
from shipyard.health.gate import HealthGate
from shipyard.models.target import DeploymentTarget
from shipyard.pipeline.promotion import PromotionEngine
from shipyard.pipeline.rollback import RollbackEngine, rollback_candidates
from shipyard.pipeline.status import describe_status, list_history
from shipyard.supervisor.base import ProcessSupervisor
from shipyard.supervisor.ecosystem import write_ecosystem
from shipyard.supervisor.pm2 import Pm2Supervisor

logger = logging.getLogger(__name__)

_verbose = click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
_package = click.option(
    "--package", "package", required=True, type=click.Choice(PACKAGES), help="Package to operate on.",
)
_env = click.option(
    "--env", "environment", required=True, type=click.Choice(ENVIRONMENTS), help="Target environment.",
)


def _settings(ctx: click.Context, verbose: bool) -> Settings:
    settings = load_settings(ctx.obj.get("base_path"))
    configure_logging(settings.log_level, verbose)
    logger.debug("Base path: %s", settings.base_path)
    return settings


def _supervisor(settings: Settings) -> ProcessSupervisor:
    return Pm2Supervisor(settings.supervisor.binary, timeout=settings.supervisor.command_timeout)


@click.group(
    name="shipyard",
    help="Zero-downtime deployment of pre-built artifacts.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option(
    "--base-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Deployment base path (default: $SHIPYARD_BASE_PATH or ~/shipyard).",
)
@click.version_option(version=__version__, prog_name="shipyard")
@click.pass_context
def cli(ctx: click.Context, base_path: Path | None) -> None:
    ctx.ensure_object(dict)
    ctx.obj["base_path"] = base_path


@cli.command(help="Deploy an artifact file or a CI run's artifact.")
@click.option("--artifact", type=click.Path(dir_okay=False, path_type=Path), help="Artifact tarball.")
@click.option("--run-id", help="GitHub Actions run ID to download the artifact from.")
@click.option("--package", type=click.Choice(PACKAGES), help="Package (required with --run-id).")
@click.option("--env", "environment", type=click.Choice(ENVIRONMENTS), help="Expected environment.")
@click.option("--deployment-id", help="Existing GitHub deployment ID to report status to.")
@click.option("--dry-run", is_flag=True, help="Validate the artifact without deploying.")
@_verbose
@click.pass_context
def deploy(
    ctx: click.Context,
    artifact: Path | None,
    run_id: str | None,
    package: str | None,
    environment: str | None,
    deployment_id: str | None,
    dry_run: bool,
    verbose: bool,
) -> None:
    if bool(artifact) == bool(run_id):
        error_exit("Specify exactly one of --artifact or --run-id", ExitCode.USAGE_ERROR)
    if run_id and not package:
        error_exit("--package is required with --run-id", ExitCode.USAGE_ERROR)
    if environment and not package:
        error_exit("--env requires --package", ExitCode.USAGE_ERROR)

    settings = _settings(ctx, verbose)
    engine = PromotionEngine(settings, supervisor=_supervisor(settings))
    try:
        if run_id:
            result = engine.deploy_from_run(
                run_id,
                package,
                environment=environment,
                deployment_id=deployment_id,
                dry_run=dry_run,
            )
        else:
            target = DeploymentTarget.of(environment, package) if environment and package else None
            result = engine.deploy(
                artifact,
                target=target,
                package=package,
                dry_run=dry_run,
                deployment_id=deployment_id,
            )
    except DeployError as exc:
        fail(exc)

    if result.dry_run:
        success(f"Dry run OK: {result.package}/{result.environment} at {result.commit[:7]}")
        return
    success(f"Deployed {result.package} to {result.environment}: {result.version}")
    if result.retention is not None and result.retention.errors:
        warn(f"Retention left {len(result.retention.errors)} directories behind")


@cli.command(help="Roll a target back to a previous release.")
@_package
@_env
@click.option("--commit", help="Commit (or prefix) to roll back to.")
@click.option("--attempt", help="Exact attempt stamp, e.g. 2024-05-01-12-00-00.")
@_verbose
@click.pass_context
def rollback(
    ctx: click.Context,
    package: str,
    environment: str,
    commit: str | None,
    attempt: str | None,
    verbose: bool,
) -> None:
    settings = _settings(ctx, verbose)
    target = DeploymentTarget.of(environment, package)
    engine = RollbackEngine(settings, supervisor=_supervisor(settings))
    try:
        result = engine.rollback(target, commit=commit, attempt=attempt)
    except DeployError as exc:
        candidates = rollback_candidates(engine.ledger.history(target))
        if candidates and exc.exit_code == ExitCode.ROLLBACK_ERROR:
            info("Available versions:")
            for c in candidates:
                info(f"  {c.version}  {c.commit[:7]}  {c.age}")
        fail(exc)

    success(
        f"Rolled back {package}/{environment} to {result.version}"
        + (f" (was {result.previous_version})" if result.previous_version else "")
    )


@cli.command(help="Show the live release of a target.")
@_package
@_env
@_verbose
@click.pass_context
def status(ctx: click.Context, package: str, environment: str, verbose: bool) -> None:
    settings = _settings(ctx, verbose)
    target = DeploymentTarget.of(environment, package)
    report = describe_status(
        settings, target, supervisor=_supervisor(settings), gate=HealthGate(settings),
    )
    if not report.found:
        success(f"No deployment found for {package}/{environment}")
        return

    lines = [f"{package}/{environment}"]
    if report.active is not None:
        lines += [
            f"  Version:    {report.active.version}",
            f"  Commit:     {report.active.commit}",
            f"  Deployed:   {report.active.timestamp}",
            f"  Release:    {report.active.release_path}",
        ]
    lines += [
        f"  Pointer:    {report.pointer_target or '-'}",
        f"  Service:    {report.supervisor_status}",
        f"  Health:     {'healthy' if report.healthy else 'unhealthy'} ({report.health_url})",
    ]
    success("\n".join(lines))
    for problem in report.problems:
        warn(problem)


@cli.command(name="list", help="List deployment history of a target.")
@_package
@_env
@click.option("--limit", default=10, show_default=True, type=click.IntRange(min=1))
@_verbose
@click.pass_context
def list_command(ctx: click.Context, package: str, environment: str, limit: int, verbose: bool) -> None:
    settings = _settings(ctx, verbose)
    listing = list_history(settings, DeploymentTarget.of(environment, package), limit)
    if not listing.total:
        success(f"No deployments found for {package}/{environment}")
        return
    for entry in listing.entries:
        label = "[ACTIVE]" if entry.is_active else "[INACTIVE]"
        success(f"{label:<10} {entry.version}  {entry.short_commit}  {entry.timestamp}")
    success(listing.summary)


@cli.command(help="Write pm2 ecosystem files.")
@click.option("--env", "environments", multiple=True, type=click.Choice(ENVIRONMENTS),
              help="Environment(s) to write; default all.")
@_verbose
@click.pass_context
def ecosystem(ctx: click.Context, environments: tuple[str, ...], verbose: bool) -> None:
    settings = _settings(ctx, verbose)
    try:
        written = write_ecosystem(settings, list(environments) or None)
    except OSError as exc:
        error_exit(f"Could not write ecosystem file: {exc}", ExitCode.GENERAL_ERROR)
    for path in written:
        success(str(path))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
