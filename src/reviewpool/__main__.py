"""CLI interface for Reviewpool.

This module provides a command-line interface for the reviewer assignment
engine: configuration, database setup, the deadline sweep, and admin
operations on assignments.
"""
import asyncio
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import click
import uvicorn

from . import __version__
from .core.config import ReviewpoolConfig, configure_logging, init_config
from .core.schemas import PoolOptions, ReshuffleResult
from .core.services import Services, create_services
from .core.storage.database import init_db

T = TypeVar("T")

config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file",
)


def _load_config(config: Optional[str]) -> ReviewpoolConfig:
    app_config = init_config(config) if config else init_config()
    configure_logging(app_config)
    return app_config


def _run_with_services(
    app_config: ReviewpoolConfig, action: Callable[[Services], Awaitable[T]]
) -> T:
    """Open the database, run ``action`` against fresh services, close again."""

    async def runner() -> T:
        db = init_db(app_config.get_database_url())
        try:
            await db.create_tables()
            return await action(create_services(db, app_config))
        finally:
            await db.close()

    return asyncio.run(runner())


@click.group()
@click.version_option(version=__version__)
def cli():
    """Reviewpool - Reviewer Assignment & Deadline Escalation Engine.

    Picks workload-balanced peer reviewers for submissions and enforces
    review deadlines with reminders, penalties and reassignment.
    """
    pass


@cli.command()
@click.option(
    "--config-path",
    "-c",
    type=click.Path(dir_okay=False),
    default="reviewpool.yaml",
    help="Path to configuration file",
)
@click.option("--force", "-f", is_flag=True, help="Force overwrite existing config")
def init(config_path: str, force: bool):
    """Initialize Reviewpool configuration.

    Creates a default configuration file with recommended settings.
    """
    config_file = Path(config_path)

    if config_file.exists() and not force:
        click.echo(f"Configuration file already exists: {config_path}")
        click.echo("Use --force to overwrite")
        return

    try:
        config = ReviewpoolConfig.create_default_config(config_file)

        click.echo(f"✓ Created configuration file: {config_path}")
        click.echo("\nDefault configuration:")
        click.echo(f"  API Server: {config.api_host}:{config.api_port}")
        click.echo(f"  Database: {config.get_database_url()}")
        click.echo(f"  Reviewers per submission: {config.minimum_reviewers}")
        click.echo(f"  Review window: {config.review_window_hours:g}h")
        click.echo(f"\nEdit {config_path} to customize settings.")

    except Exception as e:
        click.echo(f"Error creating configuration: {e}", err=True)
        sys.exit(1)


@cli.command("init-db")
@config_option
def init_database(config: Optional[str]):
    """Create the database tables."""
    try:
        app_config = _load_config(config)

        async def create():
            db = init_db(app_config.get_database_url())
            try:
                await db.create_tables()
            finally:
                await db.close()

        asyncio.run(create())
        click.echo(f"✓ Database ready: {app_config.get_database_url()}")

    except Exception as e:
        click.echo(f"Error initializing database: {e}", err=True)
        sys.exit(1)


@cli.command()
@config_option
def sweep(config: Optional[str]):
    """Run one deadline sweep.

    Sends due reminders, penalizes overdue reviews and reassigns reviews
    that have been missed for long enough.
    """
    try:
        app_config = _load_config(config)
        result = _run_with_services(app_config, lambda services: services.deadlines.process_deadlines())

        click.echo("Deadline sweep complete")
        click.echo("=" * 50)
        click.echo(f"Processed: {result.processed}")
        click.echo(f"Reminders: {result.reminders}")
        click.echo(f"Reassignments: {result.reassignments}")
        click.echo(f"Penalties: {result.penalties}")

        if result.errors:
            click.echo(f"\nErrors ({len(result.errors)}):")
            for error in result.errors:
                click.echo(f"  - {error}")
            sys.exit(1)

    except Exception as e:
        click.echo(f"Error running deadline sweep: {e}", err=True)
        sys.exit(1)


@cli.command()
@config_option
@click.option("--urgent", is_flag=True, help="Only show urgent and overdue assignments")
def deadlines(config: Optional[str], urgent: bool):
    """List open assignments by deadline."""
    try:
        app_config = _load_config(config)

        async def load(services: Services):
            if urgent:
                return await services.deadlines.get_urgent_assignments()
            return await services.deadlines.get_deadline_statuses()

        statuses = _run_with_services(app_config, load)

        if not statuses:
            click.echo("No open assignments")
            return

        status_icon = {
            "upcoming": "⏳",
            "urgent": "⚠️",
            "overdue": "❌",
        }

        click.echo(f"\nOpen assignments (showing {len(statuses)}):")
        click.echo("=" * 80)
        for status in statuses:
            click.echo(
                f"{status_icon.get(status.status.value, '❓')} Assignment #{status.assignment_id} "
                f"- submission {status.submission_id}, reviewer {status.reviewer_id} "
                f"[{status.status.value.upper()}] {status.hours_remaining:+.1f}h "
                f"(due {status.deadline:%Y-%m-%d %H:%M})"
            )

    except Exception as e:
        click.echo(f"Error listing deadlines: {e}", err=True)
        sys.exit(1)


@cli.command()
@config_option
@click.argument("assignment_id", type=int)
@click.option("--hours", type=float, required=True, help="Hours to add to the deadline")
@click.option("--reason", required=True, help="Why the extension is granted")
def extend(config: Optional[str], assignment_id: int, hours: float, reason: str):
    """Extend the deadline of an open assignment."""
    app_config = _load_config(config)
    extended = _run_with_services(
        app_config,
        lambda services: services.deadlines.extend_deadline(assignment_id, hours, reason),
    )

    if not extended:
        click.echo(f"Assignment {assignment_id} could not be extended", err=True)
        sys.exit(1)

    click.echo(f"✓ Extended assignment {assignment_id} by {hours:g}h")


def _echo_reshuffle(result: ReshuffleResult) -> None:
    if result.success:
        verb = "Would reassign" if result.dry_run else "Reassigned"
        click.echo(
            f"✓ {verb} assignment {result.assignment_id} from reviewer "
            f"{result.previous_reviewer_id} to {result.candidate_reviewer_id}"
        )
        if result.penalty_applied:
            click.echo(f"   Missed-review penalty applied to reviewer {result.previous_reviewer_id}")
    else:
        reason = result.reason.value if result.reason else "error"
        click.echo(f"✗ Assignment {result.assignment_id}: {reason}", err=True)
        if result.message:
            click.echo(f"   {result.message}", err=True)
        if result.needs_manual_follow_up:
            click.echo("   Needs manual follow-up", err=True)

    for warning in result.warnings:
        click.echo(f"Warning: {warning}")


@cli.command()
@config_option
@click.argument("assignment_id", type=int)
@click.option("--reason", default="manual:admin", show_default=True, help="Recorded in the audit log")
@click.option("--dry-run", is_flag=True, help="Only show who would be picked")
def reshuffle(config: Optional[str], assignment_id: int, reason: str, dry_run: bool):
    """Move an open or missed assignment to a different reviewer."""
    app_config = _load_config(config)
    result = _run_with_services(
        app_config,
        lambda services: services.deadlines.reshuffle_assignment(
            assignment_id, reason=reason, dry_run=dry_run
        ),
    )

    _echo_reshuffle(result)
    if not result.success:
        sys.exit(1)


@cli.command("reshuffle-submission")
@config_option
@click.argument("submission_id", type=int)
@click.option("--reason", default="manual:admin", show_default=True, help="Recorded in the audit log")
@click.option("--dry-run", is_flag=True, help="Only show who would be picked")
def reshuffle_submission(config: Optional[str], submission_id: int, reason: str, dry_run: bool):
    """Reshuffle every open or missed assignment on a submission."""
    app_config = _load_config(config)
    bulk = _run_with_services(
        app_config,
        lambda services: services.deadlines.reshuffle_submission(
            submission_id, reason=reason, dry_run=dry_run
        ),
    )

    if not bulk.total_processed:
        click.echo(f"Submission {submission_id} has no open or missed assignments")
        return

    for result in bulk.results:
        _echo_reshuffle(result)

    click.echo(f"\nReshuffled {bulk.reshuffled} of {bulk.total_processed}{' (dry run)' if dry_run else ''}")
    if bulk.reshuffled < bulk.total_processed:
        sys.exit(1)


@cli.command()
@config_option
@click.argument("submission_id", type=int)
@click.option("--author", "author_user_id", type=int, required=True, help="Submission author id")
@click.option("--reviewers", "-n", type=int, help="Number of reviewers to assign")
@click.option("--partial/--no-partial", default=None, help="Allow fewer reviewers than requested")
@click.option("--task-type", "task_types", multiple=True, help="Required task type (repeatable)")
@click.option("--exclude", "exclude_user_ids", type=int, multiple=True, help="User id to skip (repeatable)")
def assign(
    config: Optional[str],
    submission_id: int,
    author_user_id: int,
    reviewers: Optional[int],
    partial: Optional[bool],
    task_types: tuple[str, ...],
    exclude_user_ids: tuple[int, ...],
):
    """Assign reviewers to a submission."""
    app_config = _load_config(config)
    options = PoolOptions(
        minimum_reviewers=reviewers,
        allow_partial_assignment=partial,
        task_types=list(task_types),
        exclude_user_ids=list(exclude_user_ids),
    )
    result = _run_with_services(
        app_config,
        lambda services: services.pool.assign_reviewers(submission_id, author_user_id, options),
    )

    for warning in result.warnings:
        click.echo(f"Warning: {warning}")

    if not result.success:
        for error in result.errors:
            click.echo(f"Error: {error}", err=True)
        sys.exit(1)

    click.echo(f"✓ Assigned {len(result.assigned_reviewers)} reviewer(s) to submission {submission_id}")
    for reviewer in result.assigned_reviewers:
        click.echo(
            f"   {reviewer.username} (#{reviewer.id}) - {reviewer.active_assignments} active, "
            f"{reviewer.total_xp} XP"
        )


@cli.command()
@config_option
@click.argument("reviewer_id", type=int)
def workload(config: Optional[str], reviewer_id: int):
    """Show a reviewer's current workload."""
    app_config = _load_config(config)
    result = _run_with_services(
        app_config, lambda services: services.pool.get_reviewer_workload(reviewer_id)
    )

    if result is None:
        click.echo(f"Reviewer {reviewer_id} not found", err=True)
        sys.exit(1)

    click.echo(f"Reviewer #{reviewer_id}")
    click.echo("=" * 50)
    click.echo(f"Active assignments: {result.active_assignments}")
    click.echo(f"Completed this week: {result.completed_this_week}")
    click.echo(f"Missed reviews: {result.missed_reviews}")


@cli.command()
@config_option
@click.option("--host", help="Override API host")
@click.option("--port", type=int, help="Override API port")
def serve(config: Optional[str], host: Optional[str], port: Optional[int]):
    """Start the Reviewpool API server."""
    try:
        app_config = _load_config(config)

        # Override with CLI options
        if host:
            app_config.api_host = host
        if port:
            app_config.api_port = port

        click.echo("🚀 Starting Reviewpool...")
        click.echo(f"   API: http://{app_config.api_host}:{app_config.api_port}")
        click.echo("\nPress Ctrl+C to stop\n")

        uvicorn.run(
            "reviewpool.api.app:app",
            host=app_config.api_host,
            port=app_config.api_port,
            log_level=app_config.log_level.lower(),
        )

    except KeyboardInterrupt:
        click.echo("\n\nStopping Reviewpool...")
    except Exception as e:
        click.echo(f"Error starting server: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
