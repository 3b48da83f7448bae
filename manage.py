"""
manage.py — CLI admin commands for itinerary generation.

Usage:
    python manage.py init-db
    python manage.py fail-stale-jobs --minutes 30

A run only ends when a stage fails or the last one succeeds. If the process
is killed mid-run its job stays 'running' and blocks the itinerary;
fail-stale-jobs marks such jobs failed so generation can start again.
"""

import os
from datetime import timedelta

import click
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), '.env'))

from database import SessionLocal, init_db  # noqa: E402  (reads DATABASE_URL)
from jobs import JobStore  # noqa: E402


@click.group()
def cli():
    """Itinerary generation admin commands."""


@cli.command('init-db')
def init_db_command():
    """Create any missing tables."""
    init_db()
    click.echo('✓ Database tables ready')


@cli.command('fail-stale-jobs')
@click.option('--minutes', default=30, show_default=True, type=click.IntRange(min=1),
              help='Fail running jobs started more than this many minutes ago')
def fail_stale_jobs(minutes: int):
    """Mark abandoned running jobs as failed."""
    ids = JobStore(SessionLocal).fail_stale(timedelta(minutes=minutes))
    if not ids:
        click.echo('No stale running jobs.')
        return
    click.echo(f'✓ Marked {len(ids)} job(s) failed: {", ".join(str(i) for i in ids)}')


if __name__ == '__main__':
    cli()
