#!/usr/bin/env python3
"""
CLI for the Enforcement Scraper

Commands:
    strategies  - List registered agency/record-type strategies
    scrape      - Run a scrape session in the foreground
    status      - Show a session's state and progress
    stop        - Request a cooperative stop
    logs        - Show a session's processing log rows

Usage:
    python cli.py strategies
    python cli.py scrape hse case --start-page 1 --max-pages 5
    python cli.py scrape hse notice --country England
    python cli.py scrape ea case --date-from 2024-01-01 --date-to 2024-01-31 --action-type caution
    python cli.py scrape hse case --start-page 3 --end-page 7     # page range, no early stop
    python cli.py status 3f9a0c1d2e4b5a69
"""

import click
import json
import sys


def get_app_context():
    """Get Flask app context for database access."""
    from app import create_app
    app = create_app()
    return app.app_context()


@click.group()
@click.version_option(version="1.0.0", prog_name="enforcement-scraper")
def cli():
    """Enforcement Scraper CLI - run and inspect scraping sessions."""
    pass


@cli.command("strategies")
def strategies():
    """List registered strategies."""
    from scraping.registry import describe_strategies

    for info in describe_strategies():
        click.echo(
            f"  {info['agency']:<20} {info['record_type']:<8} "
            f"{info['pagination']:<11} {info['display_name']}"
        )


@cli.command("scrape")
@click.argument("agency")
@click.argument("record_type")
@click.option("--start-page", type=int, default=None, help="First page (page-based agencies)")
@click.option("--max-pages", type=int, default=None, help="Pages to scrape (page-based agencies)")
@click.option("--end-page", type=int, default=None, help="Last page; scrapes the full range without early stop")
@click.option("--database", default=None, help="HSE case database: convictions or appeals")
@click.option("--country", default=None, help="HSE notice country filter")
@click.option("--date-from", default=None, help="Start date YYYY-MM-DD (date-based agencies)")
@click.option("--date-to", default=None, help="End date YYYY-MM-DD (date-based agencies)")
@click.option("--action-type", "action_types", multiple=True, help="EA action type (repeatable)")
@click.option("--actor", default="cli", help="Recorded as triggered_by")
@click.option("--json", "output_json", is_flag=True, help="Output summary as JSON")
def scrape(agency, record_type, start_page, max_pages, end_page, database, country,
           date_from, date_to, action_types, actor, output_json):
    """
    Run a scrape session synchronously and print its summary.

    AGENCY: hse, environment_agency (or ea)
    RECORD_TYPE: case or notice
    """
    from scraping.errors import InvalidParams, ScrapingDisabled, StrategyNotFoundError

    raw_params = {
        "start_page": start_page,
        "max_pages": max_pages,
        "database": database,
        "country": country,
        "date_from": date_from,
        "date_to": date_to,
        "action_types": list(action_types) or None,
    }
    raw_params = {k: v for k, v in raw_params.items() if v is not None}

    with get_app_context():
        from scraping.coordinator import ScrapeCoordinator

        coordinator = ScrapeCoordinator()
        try:
            if end_page is not None:
                session_id = coordinator.scrape_page_range(
                    agency, record_type, start_page or 1, end_page,
                    actor=actor, extra_params=raw_params, background=False,
                )
            else:
                session_id = coordinator.start_session(
                    agency, record_type, raw_params, actor=actor, background=False,
                )
        except (StrategyNotFoundError, InvalidParams, ScrapingDisabled) as e:
            click.secho(f"Error: {e}", fg="red")
            sys.exit(1)

        session = coordinator.get_session(session_id)
        summary = session.summary()

        if output_json:
            click.echo(json.dumps(summary, indent=2, default=str))
        else:
            _print_summary(summary, session.stop_reason, session.error_message)

        if session.status == "failed":
            sys.exit(1)


def _print_summary(summary, stop_reason=None, error_message=None):
    colors = {"completed": "green", "failed": "red", "stopped": "yellow"}

    click.echo("=" * 60)
    click.secho("SCRAPE SUMMARY", fg="cyan", bold=True)
    click.echo("=" * 60)
    click.echo(f"Session:  {summary['session_id']}")
    click.echo("Status:   " + click.style(summary["status"], fg=colors.get(summary["status"], "white")))
    if stop_reason:
        click.echo(f"Reason:   {stop_reason}")
    click.echo(f"Duration: {summary['duration_seconds']:.1f}s")
    click.echo(f"Pages:    {summary['pages_processed']}")
    click.echo()
    click.echo(f"  Found:    {summary['records_found']}")
    click.echo(click.style("  Created:  ", fg="white") + click.style(str(summary["records_created"]), fg="blue"))
    click.echo(click.style("  Updated:  ", fg="white") + click.style(str(summary["records_updated"]), fg="yellow"))
    click.echo(click.style("  Existing: ", fg="white") + click.style(str(summary["records_existing"]), fg="green"))
    click.echo(click.style("  Errors:   ", fg="white") + click.style(str(summary["errors_count"]), fg="red"))
    click.echo(f"  Success:  {summary['success_rate']}%")
    if error_message:
        click.echo()
        click.secho(f"Last error: {error_message}", fg="red")
    click.echo("=" * 60)


@cli.command("status")
@click.argument("session_id")
def status(session_id):
    """Show a session's state and progress."""
    from scraping.errors import SessionNotFound

    with get_app_context():
        from scraping.coordinator import ScrapeCoordinator

        coordinator = ScrapeCoordinator()
        try:
            session = coordinator.get_session(session_id)
            progress = coordinator.get_progress(session_id)
        except SessionNotFound as e:
            click.secho(f"Error: {e}", fg="red")
            sys.exit(1)

        _print_summary(session.summary(), session.stop_reason, session.error_message)
        click.echo(f"Progress: {progress.get('percentage', 0):.1f}%")


@cli.command("stop")
@click.argument("session_id")
def stop(session_id):
    """Request a cooperative stop of a running session."""
    from scraping.errors import SessionNotFound

    with get_app_context():
        from scraping.coordinator import ScrapeCoordinator

        try:
            session = ScrapeCoordinator().stop_session(session_id)
        except SessionNotFound as e:
            click.secho(f"Error: {e}", fg="red")
            sys.exit(1)

        click.echo(f"Session {session.session_id}: {session.status}")


@cli.command("logs")
@click.argument("session_id")
@click.option("--verbose", "-v", is_flag=True, help="Show per-item summaries and errors")
def logs(session_id, verbose):
    """Show processing log rows for a session."""
    with get_app_context():
        from models.processing_log import ProcessingLog

        rows = ProcessingLog.for_session(session_id)
        if not rows:
            click.echo(f"No processing logs for {session_id}")
            return

        for row in rows:
            click.echo(
                f"  batch {row.batch_or_page:>4}: found={row.items_found} created={row.items_created} "
                f"updated={row.items_updated} existing={row.items_existing} failed={row.items_failed}"
            )
            if verbose:
                for item in row.scraped_items or []:
                    click.echo(f"      {item.get('regulator_id')}: {item.get('outcome')} {item.get('name') or ''}")
                for error in row.creation_errors or []:
                    click.secho(f"      ! {error}", fg="red")


if __name__ == "__main__":
    cli()
