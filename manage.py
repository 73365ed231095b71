#!/usr/bin/env python3
"""
Pick Pool Management CLI

This script provides command-line management functionality for the pick pool application.
"""

import json
import logging
import os
from datetime import datetime, timezone

import click
from flask import current_app
from flask.cli import with_appcontext
from flask_migrate import downgrade, migrate, upgrade
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pickpool import create_app, db
from pickpool.engine.errors import PickPoolError
from pickpool.engine.pick_config import PRESETS, get_preset
from pickpool.models import AuditEvent, Fixture, MatchResultHeader, Pool
from pickpool.models.audit_event import PHASE_LOCKED, PHASE_UNLOCKED
from pickpool.services import result_store
from pickpool.services.recompute import find_stale_pools, get_pool, get_pool_snapshot, recompute_pool
from pickpool.utils.cache_utils import CacheManager


@click.group()
def cli():
    """Pick Pool Management CLI"""
    pass


def _parse_kickoff(value):
    kickoff = datetime.fromisoformat(value)
    if kickoff.tzinfo is None:
        return kickoff.replace(tzinfo=timezone.utc)
    return kickoff.astimezone(timezone.utc)


# Pool Commands
@cli.group()
def pool():
    """Pool management commands"""
    pass


@pool.command("create")
@click.argument("name")
@click.option(
    "--preset",
    type=click.Choice(sorted(PRESETS)),
    default="BASIC",
    help="Scoring preset",
)
@click.option("--deadline-minutes", type=int, help="Pick deadline before kickoff")
@with_appcontext
def create_pool(name, preset, deadline_minutes):
    """Create a pool with a scoring preset"""
    try:
        phases = [phase.to_dict() for phase in get_preset(preset)]
        new_pool = Pool(
            name=name,
            pick_types_config=phases,
            deadline_minutes_before_kickoff=(
                deadline_minutes
                if deadline_minutes is not None
                else current_app.config["DEFAULT_DEADLINE_MINUTES"]
            ),
        )
        db.session.add(new_pool)
        db.session.commit()
        click.echo(f"✅ Created pool {new_pool.id} '{name}' with preset {preset}")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error creating pool: {str(e)}")
        logging.error(f"Pool creation failed - SQL error: {e}")


@pool.command("configure")
@click.argument("pool_id", type=int)
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def configure_pool(pool_id, path):
    """Replace a pool's scoring phases from a JSON file and rescore"""
    try:
        target = get_pool(pool_id)
        with open(path) as f:
            warnings = target.update_config(json.load(f))
        db.session.commit()

        for warning in warnings:
            click.echo(f"⚠️  {warning['field']}: {warning['message']}")

        snapshot = recompute_pool(target)
        click.echo(f"✅ Pool {pool_id} reconfigured ({snapshot.fingerprint[:12]})")

    except PickPoolError as e:
        db.session.rollback()
        click.echo(f"❌ {e.message}")
        for error in e.details.get("errors", []):
            click.echo(f"   {error['field']}: {error['message']}")
    except ValueError as e:
        click.echo(f"❌ Invalid configuration file: {str(e)}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error configuring pool: {str(e)}")
        logging.error(f"Pool configuration failed - SQL error: {e}")


@pool.command("import-fixtures")
@click.argument("pool_id", type=int)
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_fixtures(pool_id, path):
    """Load fixtures from a JSON list of {match_id, phase_id, ...} objects"""
    try:
        target = get_pool(pool_id)
        with open(path) as f:
            rows = json.load(f)

        for row in rows:
            kickoff = row.get("kickoff_utc")
            db.session.add(
                Fixture(
                    pool_id=pool_id,
                    match_id=row["match_id"],
                    phase_id=row["phase_id"],
                    group_id=row.get("group_id"),
                    home_team_id=row.get("home_team_id"),
                    away_team_id=row.get("away_team_id"),
                    home_source=row.get("home_source"),
                    away_source=row.get("away_source"),
                    external_id=row.get("external_id"),
                    kickoff_utc=_parse_kickoff(kickoff) if kickoff else None,
                )
            )

        target.bump_fixtures_revision()
        db.session.commit()
        click.echo(f"✅ Imported {len(rows)} fixtures into pool {pool_id}")

        snapshot = recompute_pool(target)
        click.echo(f"✅ Scores recomputed ({snapshot.fingerprint[:12]})")

    except IntegrityError as e:
        db.session.rollback()
        click.echo("❌ A fixture with one of these match ids already exists!")
        logging.error(f"Fixture import failed - integrity error: {e}")
    except (KeyError, ValueError) as e:
        db.session.rollback()
        click.echo(f"❌ Invalid fixture file: {str(e)}")
    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error importing fixtures: {str(e)}")
        logging.error(f"Fixture import failed - SQL error: {e}")


@pool.command("lock-phase")
@click.argument("pool_id", type=int)
@click.argument("phase_id")
@click.option("--unlock", is_flag=True, help="Release the lock instead")
@with_appcontext
def lock_phase(pool_id, phase_id, unlock):
    """Freeze a phase's scoring rules before its first deadline"""
    try:
        target = get_pool(pool_id)
        locked = target.set_phase_lock(phase_id, not unlock)
        AuditEvent.log_event(
            pool_id=pool_id,
            event_type=PHASE_UNLOCKED if unlock else PHASE_LOCKED,
            description=f"Phase {phase_id} {'unlocked' if unlock else 'locked'}",
            event_metadata={"phase_id": phase_id},
        )
        db.session.commit()
        click.echo(f"✅ Locked phases: {', '.join(locked) or 'none'}")

    except PickPoolError as e:
        db.session.rollback()
        click.echo(f"❌ {e.message}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error locking phase: {str(e)}")
        logging.error(f"Phase lock failed - SQL error: {e}")


# Result Commands
@cli.group()
def results():
    """Official result commands"""
    pass


@results.command()
@click.argument("pool_id", type=int)
@click.argument("match_id")
@click.argument("home_goals", type=int)
@click.argument("away_goals", type=int)
@click.option("--home-penalties", type=int)
@click.option("--away-penalties", type=int)
@click.option("--actor", help="Who is publishing")
@with_appcontext
def publish(pool_id, match_id, home_goals, away_goals, home_penalties, away_penalties, actor):
    """Publish the result of a match"""
    try:
        outcome = result_store.publish_result(
            pool_id,
            match_id,
            home_goals,
            away_goals,
            home_penalties=home_penalties,
            away_penalties=away_penalties,
            actor_id=actor,
        )
        if outcome.created:
            click.echo(f"✅ Published {match_id} v{outcome.result.version}: {home_goals}-{away_goals}")
        else:
            click.echo(f"ℹ️  {match_id} already at v{outcome.result.version} with this score")

    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
        logging.error(f"Result publish failed - {e.code}: {e.message}")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database error publishing result: {str(e)}")
        logging.error(f"Result publish failed - SQL error: {e}")


@results.command()
@click.argument("pool_id", type=int)
@click.argument("match_id")
@click.argument("home_goals", type=int)
@click.argument("away_goals", type=int)
@click.option("--reason", required=True, help="Why the result is corrected")
@click.option("--home-penalties", type=int)
@click.option("--away-penalties", type=int)
@click.option("--actor", help="Who is correcting")
@with_appcontext
def correct(pool_id, match_id, home_goals, away_goals, reason, home_penalties, away_penalties, actor):
    """Correct an already published result"""
    try:
        outcome = result_store.correct_result(
            pool_id,
            match_id,
            home_goals,
            away_goals,
            reason,
            home_penalties=home_penalties,
            away_penalties=away_penalties,
            actor_id=actor,
        )
        if outcome.created:
            click.echo(f"✅ Corrected {match_id} to v{outcome.result.version}: {home_goals}-{away_goals}")
        else:
            click.echo(f"ℹ️  {match_id} already at v{outcome.result.version} with this score")

    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
        logging.error(f"Result correction failed - {e.code}: {e.message}")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database error correcting result: {str(e)}")
        logging.error(f"Result correction failed - SQL error: {e}")


@results.command()
@click.argument("pool_id", type=int)
@click.argument("match_id")
@with_appcontext
def history(pool_id, match_id):
    """Show every version of a match result"""
    try:
        versions = result_store.get_history(pool_id, match_id)
    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
        return

    if not versions:
        click.echo(f"No result published for {match_id}")
        return

    for version in versions:
        penalties = ""
        if version["home_penalties"] is not None:
            penalties = f" ({version['home_penalties']}-{version['away_penalties']} pens)"
        click.echo(
            f"v{version['version']} {version['home_goals']}-{version['away_goals']}{penalties} "
            f"[{version['source']}] {version['published_at_utc']} {version['reason'] or ''}"
        )


# Score Commands
@cli.group()
def scores():
    """Score and standings commands"""
    pass


@scores.command()
@click.argument("pool_id", type=int)
@with_appcontext
def recompute(pool_id):
    """Force a full recomputation of a pool"""
    try:
        snapshot = recompute_pool(get_pool(pool_id))
        click.echo(f"✅ Recomputed pool {pool_id} ({snapshot.fingerprint[:12]})")
    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database error recomputing pool: {str(e)}")
        logging.error(f"Recompute failed - SQL error: {e}")


@scores.command()
@click.argument("pool_id", type=int)
@with_appcontext
def leaderboard(pool_id):
    """Print the pool leaderboard"""
    try:
        snapshot = get_pool_snapshot(pool_id)
    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
        return

    click.echo(f"🏆 Leaderboard for pool {pool_id}")
    click.echo("=" * 40)
    for entry in snapshot.leaderboard:
        click.echo(f"{entry['rank']:>3}. {entry['participant_id']:<24} {entry['total']:>5}")


@scores.command()
@click.argument("pool_id", type=int)
@with_appcontext
def standings(pool_id):
    """Print group tables"""
    try:
        snapshot = get_pool_snapshot(pool_id)
    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
        return

    for group_id, standing in sorted(snapshot.standings.items()):
        click.echo(f"Group {group_id}")
        for row in standing.to_dict()["table"]:
            click.echo(
                f"  {row['position']}. {row['team_id']:<12} "
                f"P{row['played']} GD{row['goal_difference']:+d} GF{row['goals_for']} "
                f"{row['points']} pts"
            )

    for group_id in snapshot.pending_groups:
        click.echo(f"Group {group_id}: pending")


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


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("⚽ Pick Pool Application Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    cache_stats = CacheManager.get_cache_stats()
    click.echo(f"🗄️  Cache: {cache_stats['type']} (timeout {cache_stats['timeout']}s)")

    pool_count = Pool.query.filter_by(is_active=True).count()
    click.echo(f"🏆 Active Pools: {pool_count}")

    result_count = MatchResultHeader.query.count()
    click.echo(f"⚽ Published Results: {result_count}")

    stale = find_stale_pools()
    if stale:
        click.echo(f"⚠️  Pools awaiting recomputation: {', '.join(str(p.id) for p in stale)}")
    else:
        click.echo("✅ All pool scores up to date")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        cli()
