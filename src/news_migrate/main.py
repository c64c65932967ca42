"""CLI entrypoint for news-migrate."""

import logging
from collections.abc import Callable
from datetime import datetime

import rich_click as click

from news_migrate import __version__
from news_migrate.etl.controllers import (
    CheckCommand,
    CommandResult,
    DeleteChannelCommand,
    JobStatusCommand,
    MigrationCliController,
    RunMigrationCommand,
    SearchCommand,
    StatsCommand,
)
from news_migrate.etl.sources.base import SourceError

click.rich_click.USE_MARKDOWN = True
MIGRATION_CONTROLLER = MigrationCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


@click.group()
@click.version_option(version=__version__, prog_name="news-migrate")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def news_migrate(log_level: str) -> None:
    """News archive migration CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@news_migrate.command("run")
@click.option("--database-url", default=None, help="SQLAlchemy URL of the relational target.")
@click.option(
    "--connection-string",
    default=None,
    help="MongoDB connection string. Defaults to MONGODB_CONNECTION_STRING.",
)
@click.option("--limit", type=click.IntRange(min=0), default=None, help="Max records; 0 = all.")
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Records per batch.")
@click.option("--from-cursor", default=None, help="Resume after this source record id.")
@click.option("--start-date", type=click.DateTime(formats=DATE_FORMATS), default=None)
@click.option("--end-date", type=click.DateTime(formats=DATE_FORMATS), default=None)
@click.option("--channel-name", default=None, help="Import channel name.")
@click.option("--dry-run", is_flag=True, default=False, help="Transform and count without writing.")
@click.option("--skip-relational", is_flag=True, default=False, help="Do not write articles.")
@click.option("--skip-vectors", is_flag=True, default=False, help="Do not write vectors.")
def run(  # noqa: PLR0913
    database_url: str | None,
    connection_string: str | None,
    limit: int | None,
    batch_size: int | None,
    from_cursor: str | None,
    start_date: datetime | None,
    end_date: datetime | None,
    channel_name: str | None,
    dry_run: bool,
    skip_relational: bool,
    skip_vectors: bool,
) -> None:
    """Migrate source posts into the relational and vector stores."""

    _emit_result(
        lambda: MIGRATION_CONTROLLER.run(
            RunMigrationCommand(
                database_url=database_url,
                connection_string=connection_string,
                limit=limit,
                batch_size=batch_size,
                from_cursor=from_cursor,
                start_date=start_date,
                end_date=end_date,
                channel_name=channel_name,
                dry_run=dry_run,
                skip_relational=skip_relational,
                skip_vectors=skip_vectors,
            ),
        ),
        failure_message="Migration did not complete.",
    )


@news_migrate.command("status")
@click.option("--database-url", default=None, help="SQLAlchemy URL of the relational target.")
@click.option("--job-id", default=None, help="Job to inspect. Defaults to recent jobs.")
@click.option(
    "--recent",
    type=click.IntRange(min=1, max=100),
    default=5,
    show_default=True,
    help="How many recent jobs to list when --job-id is omitted.",
)
def status(database_url: str | None, job_id: str | None, recent: int) -> None:
    """Show migration job progress."""

    _emit_result(
        lambda: MIGRATION_CONTROLLER.status(
            JobStatusCommand(database_url=database_url, job_id=job_id, recent=recent),
        ),
        failure_message="Job lookup failed.",
    )


@news_migrate.command("search")
@click.argument("query")
@click.option("--limit", type=click.IntRange(min=1, max=100), default=10, show_default=True)
@click.option(
    "--score-threshold",
    type=click.FloatRange(min=-1.0, max=1.0),
    default=0.7,
    show_default=True,
)
@click.option("--channel-id", default=None, help="Restrict to one channel.")
@click.option("--category", "categories", multiple=True, help="Category id. Can be repeated.")
@click.option("--topic", "topics", multiple=True, help="Topic id. Can be repeated.")
def search(  # noqa: PLR0913
    query: str,
    limit: int,
    score_threshold: float,
    channel_id: str | None,
    categories: tuple[str, ...],
    topics: tuple[str, ...],
) -> None:
    """Similarity search over migrated articles."""

    _emit_result(
        lambda: MIGRATION_CONTROLLER.search(
            SearchCommand(
                query=query,
                limit=limit,
                score_threshold=score_threshold,
                channel_id=channel_id,
                categories=categories,
                topics=topics,
            ),
        ),
        failure_message="Search failed.",
    )


@news_migrate.command("stats")
@click.option("--database-url", default=None, help="SQLAlchemy URL of the relational target.")
@click.option("--skip-vectors", is_flag=True, default=False, help="Only show relational stats.")
def stats(database_url: str | None, skip_vectors: bool) -> None:
    """Show article and vector collection statistics."""

    _emit_result(
        lambda: MIGRATION_CONTROLLER.stats(
            StatsCommand(database_url=database_url, skip_vectors=skip_vectors),
        ),
        failure_message="Stats failed.",
    )


@news_migrate.command("delete-channel")
@click.argument("channel_name")
@click.option("--database-url", default=None, help="SQLAlchemy URL of the relational target.")
@click.option("--keep-articles", is_flag=True, default=False, help="Only delete vectors.")
def delete_channel(channel_name: str, database_url: str | None, keep_articles: bool) -> None:
    """Delete a channel's vectors and migrated articles."""

    _emit_result(
        lambda: MIGRATION_CONTROLLER.delete_channel(
            DeleteChannelCommand(
                database_url=database_url,
                channel_name=channel_name,
                keep_articles=keep_articles,
            ),
        ),
        failure_message="Channel delete failed.",
    )


@news_migrate.command("check")
@click.option("--database-url", default=None, help="SQLAlchemy URL of the relational target.")
@click.option("--connection-string", default=None, help="MongoDB connection string.")
@click.option("--skip-vectors", is_flag=True, default=False, help="Do not check Qdrant.")
def check(database_url: str | None, connection_string: str | None, skip_vectors: bool) -> None:
    """Check connectivity of source, relational and vector stores."""

    _emit_result(
        lambda: MIGRATION_CONTROLLER.check(
            CheckCommand(
                database_url=database_url,
                connection_string=connection_string,
                skip_vectors=skip_vectors,
            ),
        ),
        failure_message="Connectivity check failed.",
    )


def _emit_result(action: Callable[[], CommandResult], *, failure_message: str) -> None:
    try:
        result = action()
    except (ValueError, SourceError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    news_migrate()
