"""CLI commands for the feed recommendation system."""

import json
import logging
import sys
import threading
import uuid
from datetime import date
from pathlib import Path

import click
import structlog

from feedrec.config.loader import ConfigLoader, ConfigValidationError
from feedrec.config.schemas import RecommendationConfig
from feedrec.config.state_machine import ConfigState
from feedrec.jobs.daily_feed import DailyFeedJob
from feedrec.observability.logging import (
    bind_run_context,
    clear_run_context,
    configure_logging,
)
from feedrec.query.models import FeedRecommendations
from feedrec.query.service import RecommendationQueryService
from feedrec.recommendation.generator import RecommendationGenerator
from feedrec.recommendation.metrics import GenerationMetrics
from feedrec.settings import get_settings
from feedrec.signals.similarity import HttpSimilarityProvider
from feedrec.store.errors import UserNotFoundError
from feedrec.store.metrics import StoreMetrics
from feedrec.store.models import FeedType
from feedrec.store.store import SqliteStore


logger = structlog.get_logger()

FEED_TYPE_CHOICE = click.Choice([ft.value for ft in FeedType], case_sensitive=False)


def _parse_date(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        msg = f"Invalid date '{value}', expected YYYY-MM-DD"
        raise click.BadParameter(msg) from e


def _feed_type(value: str) -> FeedType:
    for feed_type in FeedType:
        if feed_type.value.lower() == value.lower():
            return feed_type
    msg = f"Unknown feed type '{value}'"
    raise click.BadParameter(msg)


def _resolve_db_path(db_path: Path | None) -> Path:
    return db_path or get_settings().db_path


def _load_config(
    config_path: Path | None,
    run_id: str,
) -> RecommendationConfig:
    """Load configuration, exit on failure.

    Args:
        config_path: Explicit config path; falls back to settings, then defaults.
        run_id: Run identifier.

    Returns:
        Validated configuration.
    """
    path = config_path or get_settings().config_path
    loader = ConfigLoader(run_id=run_id)

    try:
        config = loader.load(path)
    except (ConfigValidationError, FileNotFoundError):
        click.echo("Configuration validation failed:", err=True)
        for error in loader.validation_errors:
            click.echo(f"  - {error['loc']}: {error['msg']}", err=True)
        sys.exit(1)

    if loader.state != ConfigState.READY:
        click.echo(f"Unexpected config state: {loader.state.name}", err=True)
        sys.exit(1)

    return config


def _print_feed(feed: FeedRecommendations) -> None:
    click.echo(f"{feed.feed_type.value} ({feed.date.isoformat()})")
    if feed.is_empty:
        click.echo("  (no recommendations)")
    for view in feed.recommendations:
        click.echo(f"  {view.position:>2}. [{view.score:.3f}] {view.resource.title}")
        click.echo(f"      {view.resource.url}")


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to SQLite database (default: FEEDREC_DB_PATH).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    db_path: Path | None,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Learning resource feed recommendation CLI."""
    configure_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        json_format=json_logs,
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to recommendation.yaml (default: FEEDREC_CONFIG_PATH).",
)
@click.option("--date", "date_str", default=None, help="Target date (YYYY-MM-DD).")
@click.option(
    "--user",
    "user_ids",
    multiple=True,
    help="Only generate for these users (repeatable).",
)
@click.option(
    "--feed-type",
    "feed_types",
    multiple=True,
    type=FEED_TYPE_CHOICE,
    help="Only generate these feed types (repeatable).",
)
@click.option(
    "--max-workers",
    type=int,
    default=None,
    help="Parallel units (default: from config).",
)
@click.pass_context
def generate(  # noqa: PLR0913
    ctx: click.Context,
    config_path: Path | None,
    date_str: str | None,
    user_ids: tuple[str, ...],
    feed_types: tuple[str, ...],
    max_workers: int | None,
) -> None:
    """Generate daily recommendations for every user and feed type."""
    run_id = str(uuid.uuid4())
    bind_run_context(run_id)
    log = logger.bind(run_id=run_id, component="cli", command="generate")

    config = _load_config(config_path, run_id)
    target = _parse_date(date_str)
    similarity = HttpSimilarityProvider.from_settings(get_settings())
    cancel_event = threading.Event()

    with SqliteStore(_resolve_db_path(ctx.obj["db_path"]), run_id=run_id) as store:
        generator = RecommendationGenerator(
            resources=store,
            users=store,
            votes=store,
            recommendations=store,
            config=config,
            similarity_provider=similarity,
        )
        job = DailyFeedJob(generator, store, run_id=run_id, max_workers=max_workers)

        try:
            result = job.run(
                date=target,
                user_ids=list(user_ids) or None,
                feed_types=[_feed_type(ft) for ft in feed_types] or None,
                cancel_event=cancel_event,
            )
        except KeyboardInterrupt:
            cancel_event.set()
            log.warning("generate_interrupted")
            click.echo("Interrupted; unfinished feeds were not written.", err=True)
            sys.exit(130)

    click.echo(f"Generated feeds for {result.date.isoformat()}")
    click.echo(f"  Units succeeded: {result.units_succeeded}")
    click.echo(f"  Units failed: {result.units_failed}")
    click.echo(f"  Recommendations written: {result.recommendations_written}")
    for outcome in result.outcomes:
        if not outcome.success:
            click.echo(
                f"  - {outcome.user_id}/{outcome.feed_type.value}: {outcome.error}",
                err=True,
            )

    log.info(
        "generate_metrics",
        generation=GenerationMetrics.get_instance().to_dict(),
        store=StoreMetrics.get_instance().to_dict(),
    )
    clear_run_context()

    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--user", "user_id", required=True, help="User ID.")
@click.option(
    "--feed-type",
    type=FEED_TYPE_CHOICE,
    default=None,
    help="Feed type (default: all of today's feeds).",
)
@click.option("--date", "date_str", default=None, help="Requested date (YYYY-MM-DD).")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_context
def feed(
    ctx: click.Context,
    user_id: str,
    feed_type: str | None,
    date_str: str | None,
    json_output: bool,
) -> None:
    """Show a user's feed, falling back to the latest earlier date."""
    with SqliteStore(_resolve_db_path(ctx.obj["db_path"])) as store:
        service = RecommendationQueryService(store, store)
        requested = _parse_date(date_str)

        try:
            if feed_type is None and requested is None:
                feeds = service.get_todays_recommendations(user_id)
            elif feed_type is not None:
                feeds = [
                    service.get_feed_recommendations(
                        user_id, _feed_type(feed_type), requested or service.today()
                    )
                ]
            else:
                all_feeds = [
                    service.get_feed_recommendations(user_id, ft, requested)
                    for ft in FeedType
                ]
                feeds = [f for f in all_feeds if not f.is_empty]
        except UserNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if json_output:
        click.echo(json.dumps([f.model_dump(mode="json") for f in feeds], indent=2))
        return

    if not feeds:
        click.echo("No recommendations available.")
    for item in feeds:
        _print_feed(item)


@cli.command()
@click.option("--user", "user_id", required=True, help="User ID.")
@click.option("--feed-type", type=FEED_TYPE_CHOICE, default=None, help="Feed type.")
@click.option("--page-size", type=click.IntRange(min=1), default=30)
@click.option("--page", "page_number", type=click.IntRange(min=1), default=1)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(  # noqa: PLR0913
    ctx: click.Context,
    user_id: str,
    feed_type: str | None,
    page_size: int,
    page_number: int,
    json_output: bool,
) -> None:
    """Show a page of past recommendations, newest first."""
    with SqliteStore(_resolve_db_path(ctx.obj["db_path"])) as store:
        service = RecommendationQueryService(store, store)
        try:
            page = service.get_history(
                user_id,
                feed_type=_feed_type(feed_type) if feed_type else None,
                page_size=page_size,
                page_number=page_number,
            )
        except UserNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if json_output:
        click.echo(json.dumps(page.model_dump(mode="json"), indent=2))
        return

    click.echo(f"History for {user_id} (page {page.page_number})")
    for item in page.feeds:
        _print_feed(item)


@cli.command("db-stats")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_context
def db_stats(ctx: click.Context, json_output: bool) -> None:
    """Display database statistics.

    Shows row counts for all tables and the schema version.
    """
    with SqliteStore(_resolve_db_path(ctx.obj["db_path"])) as store:
        stats = store.get_stats()
        schema_version = store.get_schema_version()

    if json_output:
        output = {"schema_version": schema_version, "tables": stats}
        click.echo(json.dumps(output, indent=2))
        return

    click.echo("Database Statistics")
    click.echo("=" * 40)
    click.echo(f"  Schema Version: {schema_version}")
    click.echo("")
    click.echo("Table Row Counts:")
    for table, count in sorted(stats.items()):
        click.echo(f"  {table}: {count}")


@cli.command("validate-config")
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to recommendation.yaml.",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Print the validation summary as JSON.",
)
def validate_config(config_path: Path, json_output: bool) -> None:
    """Validate a configuration file without generating anything."""
    run_id = str(uuid.uuid4())

    if json_output:
        loader = ConfigLoader(run_id=run_id)
        try:
            loader.load(config_path)
        except ConfigValidationError:
            # Errors are reported in the summary below
            pass
        click.echo(loader.get_validation_summary_json())
        if loader.state != ConfigState.READY:
            sys.exit(1)
        return

    config = _load_config(config_path, run_id)

    click.echo("Configuration is valid!")
    click.echo(f"  Weights: {json.dumps(config.scoring.weights, sort_keys=True)}")
    click.echo(f"  Default count: {config.feeds.default_count}")
    click.echo(
        f"  Recently recommended days: {config.generation.recently_recommended_days}"
    )
    if config.diversity.enabled:
        click.echo(f"  Diversity: max {config.diversity.max_per_topic} per topic")
    else:
        click.echo("  Diversity: disabled")


@cli.command()
@click.option(
    "--days",
    type=click.IntRange(min=1),
    default=90,
    help="Days of recommendations to keep (default: 90).",
)
@click.pass_context
def prune(ctx: click.Context, days: int) -> None:
    """Delete recommendation sets older than the retention window."""
    with SqliteStore(_resolve_db_path(ctx.obj["db_path"])) as store:
        pruned = store.prune_old_recommendations(days=days)

    click.echo(f"Pruned {pruned} recommendation rows older than {days} days.")


if __name__ == "__main__":
    cli()
