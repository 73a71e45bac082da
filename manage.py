#!/usr/bin/env python3
"""
fitcomp Management CLI

This script provides command-line management functionality for the
competition standings service.
"""

import logging
import os

# One-off commands run jobs in the foreground; no background scheduler
os.environ.setdefault("SCHEDULER_ENABLED", "False")

import click  # noqa: E402
from flask.cli import with_appcontext  # noqa: E402
from flask_migrate import downgrade, migrate, upgrade  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from fitcomp import create_app, db  # noqa: E402
from fitcomp.exceptions import ScoringError  # noqa: E402
from fitcomp.models import ActivityEntry, CalculationResult, Competition, CompetitionTeam  # noqa: E402
from fitcomp.services.calculation_service import (  # noqa: E402
    calculate_competition,
    make_logging_diagnostics,
)
from fitcomp.services.competition_lifecycle import (  # noqa: E402
    finalize_expired_competitions,
    recalculate_started_competitions,
    start_scheduled_competitions,
)
from fitcomp.services.scheduler_service import scheduler_service  # noqa: E402

app = create_app()


@click.group()
def cli():
    """fitcomp Management CLI"""
    pass


# Competition Commands
@cli.group()
def competition():
    """Competition management commands"""
    pass


@competition.command("list")
@click.option("--status", help="Only competitions with this status")
@with_appcontext
def list_competitions(status):
    """List competitions"""
    query = Competition.query
    if status:
        query = query.filter_by(status=status)
    competitions = query.order_by(Competition.created_at.desc()).all()

    if not competitions:
        click.echo("No competitions found.")
        return

    click.echo("Competitions:")
    for c in competitions:
        start_day, end_day = c.get_window()
        click.echo(
            f"  {c.id}: {c.name} [{c.status}] {c.competition_mode}/{c.activity_type} "
            f"{c.scoring_method} ({start_day or '?'} to {end_day or 'open'})"
        )


@competition.command()
@click.argument("competition_id")
@click.option(
    "--diagnose",
    is_flag=True,
    help="Log recent entries of participants with nothing inside the window",
)
@with_appcontext
def recalculate(competition_id, diagnose):
    """Recalculate one competition"""
    diagnostics = None
    if diagnose:
        diagnostics = make_logging_diagnostics(logging.getLogger("fitcomp.diagnostics"))

    try:
        summary = calculate_competition(competition_id, diagnostics=diagnostics)
    except ScoringError as e:
        db.session.rollback()
        click.echo(f"❌ Recalculation failed: {str(e)}")
        return

    if summary.success:
        click.echo(f"✅ {summary.message}")
    else:
        click.echo(f"❌ {summary.message}")


@competition.command("recalculate-all")
@with_appcontext
def recalculate_all():
    """Recalculate every started competition"""
    result = recalculate_started_competitions()
    click.echo(
        f"✅ Recalculated {result['recalculated']} competitions, {result['failed']} failed"
    )
    for detail in result["competitions"]:
        if detail.get("error") or not detail.get("success", True):
            click.echo(
                f"   ❌ {detail['competition_id']}: "
                f"{detail.get('error') or detail.get('message')}"
            )


@competition.command("start-scheduled")
@with_appcontext
def start_scheduled():
    """Start scheduled competitions whose start day has arrived"""
    result = start_scheduled_competitions()
    click.echo(f"✅ Started {result['started']} competitions, {result['failed']} failed")
    for error in result["errors"]:
        click.echo(f"   ❌ {error['competition_id']}: {error['error']}")


@competition.command("finalize-expired")
@with_appcontext
def finalize_expired():
    """Complete started competitions whose window has passed"""
    result = finalize_expired_competitions()
    click.echo(
        f"✅ Finalized {result['finalized']} competitions, {result['failed']} failed"
    )
    for detail in result["competitions"]:
        winner = detail.get("winner")
        if detail.get("error"):
            click.echo(f"   ❌ {detail['competition_id']}: {detail['error']}")
        elif winner:
            click.echo(
                f"   🏆 {detail['name']}: {winner['subject_type']} "
                f"{winner['subject_id']} ({winner['score']})"
            )


@competition.command()
@click.argument("competition_id")
@with_appcontext
def leaderboard(competition_id):
    """Show current standings"""
    comp = db.session.get(Competition, competition_id)
    if comp is None:
        click.echo(f"❌ Competition {competition_id} not found!")
        return

    click.echo(f"🏆 {comp.name} ({comp.competition_mode}, {comp.scoring_method})")
    click.echo("=" * 40)

    if comp.competition_mode == "team_v2":
        teams = (
            CompetitionTeam.query.filter_by(competition_id=comp.id, is_active=True)
            .order_by(CompetitionTeam.rank.is_(None), CompetitionTeam.rank)
            .all()
        )
        for team in teams:
            click.echo(
                f"  #{team.rank or '-'} {team.name}: {team.total_score} "
                f"({team.member_count} members)"
            )
        return

    subject_type = "team" if comp.competition_mode == "team" else "participant"
    results = (
        CalculationResult.query.filter_by(competition_id=comp.id, subject_type=subject_type)
        .order_by(CalculationResult.rank.is_(None), CalculationResult.rank)
        .all()
    )
    if not results:
        click.echo("No results yet.")
        return

    for result in results:
        click.echo(
            f"  #{result.rank or '-'} {result.subject_id}: {result.calculated_score} "
            f"({result.activity_entries_count} entries)"
        )

    if comp.competition_mode == "collaborative":
        click.echo(f"Progress: {comp.collaborative_progress} / {comp.goal_value or '-'}")


# Scheduler Commands
@cli.group()
def scheduler():
    """Background scheduler commands"""
    pass


@scheduler.command("status")
@with_appcontext
def scheduler_status():
    """Show scheduler jobs and statistics"""
    status_info = scheduler_service.get_status()
    click.echo(f"Running: {status_info['is_running']}")
    for job in status_info["jobs"]:
        click.echo(f"  {job['id']}: next run {job['next_run']} ({job['trigger']})")
    for key, value in status_info["stats"].items():
        click.echo(f"  {key}: {value}")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@with_appcontext
def init_migrations():
    """Initialize migrations repository"""
    if os.path.exists("migrations"):
        click.echo("❌ Migrations directory already exists!")
        return

    from flask_migrate import init as flask_migrate_init

    flask_migrate_init()
    click.echo("✅ Migrations repository initialized!")


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    migrate(message=message)
    click.echo(f"✅ Migration created: {message}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


@db_migrate.command()
@click.option("--revision", required=True, help="Revision to downgrade to")
@with_appcontext
def rollback_migration(revision):
    """Rollback migrations to specific revision"""
    downgrade(revision=revision)
    click.echo(f"✅ Rolled back to {revision}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏋️ fitcomp Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    for status_name in ("scheduled", "started", "completed"):
        count = Competition.query.filter_by(status=status_name).count()
        click.echo(f"🏆 {status_name.capitalize()} competitions: {count}")

    entry_count = ActivityEntry.query.filter(ActivityEntry.deleted_at.is_(None)).count()
    click.echo(f"📈 Activity entries: {entry_count}")


if __name__ == "__main__":
    with app.app_context():
        cli()
