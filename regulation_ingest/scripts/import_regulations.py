"""
Regulation Import CLI.

Commands:
    parse FILE [--json OUT]                  Parse and benchmark a file
    import FILE [--database-url URL]         Parse and import a file
           [--error-log CSV] [--result JSON]
    retry CSV [--database-url URL]           Retry the records of an error log
          [--report JSON]
    analyze CSV                              Group an error log by failure category

Example:
    $ regulation-import import data/regulations.txt --error-log tmp/import_errors.csv
    $ regulation-import analyze tmp/import_errors.csv
    $ regulation-import retry tmp/import_errors.csv
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import click

from regulation_ingest.core.config.logging import configure_logging
from regulation_ingest.core.config.settings import settings
from regulation_ingest.core.database.session import (
    create_all_tables,
    create_engine,
    create_session_factory,
)
from regulation_ingest.core.version import get_version
from regulation_ingest.parsers.core.exceptions import ParserError
from regulation_ingest.parsers.monitoring.benchmark import ParserBenchmark
from regulation_ingest.services.regulation_import_job import RegulationImportJob
from regulation_ingest.services.regulation_parser_service import RegulationParserService
from regulation_ingest.services.regulation_retry_handler import (
    RegulationRetryHandler,
    analyze_failure_patterns,
)

SEPARATOR = "=" * 60


def echo_progress(
    percentage: int,
    message: str,
    status: str,
    elapsed_seconds: float,
    data: Optional[dict[str, Any]] = None,
) -> None:
    click.echo(f"[{percentage:3d}%] {status:<16} {message} ({elapsed_seconds:.1f}s)")


def echo_stats(stats: dict[str, dict[str, int]]) -> None:
    for level, counts in stats.items():
        click.echo(
            f"  - {level:<12} created {counts['created']:>6}  "
            f"updated {counts['updated']:>6}  failed {counts['failed']:>4}"
        )


def echo_header(title: str) -> None:
    click.echo(SEPARATOR)
    click.echo(title)
    click.echo(SEPARATOR)


# =============================================================================
# CLI GROUP
# =============================================================================


@click.group()
@click.version_option(version=get_version(), prog_name="regulation-import")
def cli():
    """Parse and import regulation compendium text files."""
    configure_logging()


# =============================================================================
# COMMANDS
# =============================================================================


@cli.command("parse")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--json", "json_path", type=click.Path(dir_okay=False), help="Write the parsed document as JSON")
@click.pass_context
def parse_file(ctx, file, json_path):
    """Parse and benchmark a file."""
    service = RegulationParserService()
    benchmark = ParserBenchmark(checkpoint_interval=settings.BENCHMARK_CHECKPOINT_INTERVAL)

    try:
        result = service.parse_file_with_benchmark(file, benchmark=benchmark)
    except ParserError as e:
        click.echo(f"❌ {e.message}", err=True)
        ctx.exit(1)

    echo_header("Parse statistics")
    for key, value in result.statistics.to_dict().items():
        click.echo(f"  - {key}: {value}")
    click.echo(f"  - success_rate: {result.success_rate}%")
    click.echo()
    click.echo(benchmark.generate_report())

    if json_path:
        output = result.to_dict()
        output["benchmark"] = result.benchmark.to_dict() if result.benchmark else None
        path = Path(json_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(output, ensure_ascii=False, indent=2), encoding="utf-8")
        click.echo(f"\n📄 Parsed document saved: {path}")


@cli.command("import")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--database-url", default=None, help="Overrides DATABASE_URL")
@click.option("--error-log", type=click.Path(dir_okay=False), default=None, help="CSV file for node failures")
@click.option("--result", "result_path", type=click.Path(dir_okay=False), default=None, help="JSON file for the job outcome")
@click.pass_context
def import_file(ctx, file, database_url, error_log, result_path):
    """Parse and import a file."""

    async def run():
        engine = create_engine(database_url)
        try:
            await create_all_tables(engine)
            job = RegulationImportJob(create_session_factory(engine), sink=echo_progress)
            return await job.run(file, result_path=result_path, error_log_path=error_log)
        finally:
            await engine.dispose()

    outcome = asyncio.run(run())

    echo_header(f"Import {outcome.status.value} (job {outcome.job_id})")
    if outcome.import_result is not None:
        summary = outcome.import_result.summary()
        echo_stats(summary["stats"])
        click.echo(f"  - total_processed: {summary['total_processed']}")
        click.echo(f"  - total_errors: {summary['total_errors']}")
        click.echo(f"  - success_rate: {summary['success_rate']}%")
    if outcome.error:
        click.echo(f"❌ {outcome.error}", err=True)
    if outcome.error_log_path:
        click.echo(f"📄 Error log: {outcome.error_log_path}")
    if outcome.result_path:
        click.echo(f"📄 Result: {outcome.result_path}")

    ctx.exit(0 if outcome.status.value == "completed" else 1)


@cli.command("retry")
@click.argument("csv_path", metavar="CSV", type=click.Path(exists=True, dir_okay=False))
@click.option("--database-url", default=None, help="Overrides DATABASE_URL")
@click.option("--report", "report_path", type=click.Path(dir_okay=False), default=None, help="JSON file for the retry report")
@click.pass_context
def retry_errors(ctx, csv_path, database_url, report_path):
    """Retry the records of an error log."""

    async def run():
        engine = create_engine(database_url)
        try:
            await create_all_tables(engine)
            handler = RegulationRetryHandler(
                create_session_factory(engine),
                max_attempts=settings.RETRY_MAX_ATTEMPTS,
                delay_base=settings.RETRY_DELAY_BASE,
            )
            report = await handler.retry_failed_imports(handler.load_error_log(csv_path))
            return report, handler.save_report(report_path)
        finally:
            await engine.dispose()

    report, saved_path = asyncio.run(run())

    stats = report["retry_stats"]
    total = stats["total_retries"]
    success_rate = round(stats["successful_retries"] / total * 100, 2) if total else 0.0

    echo_header("Retry summary")
    for key, value in stats.items():
        click.echo(f"  - {key}: {value}")
    click.echo(f"  - success_rate: {success_rate}%")
    for advice in report["recommendations"]:
        click.echo(f"  💡 {advice}")
    click.echo(f"📄 Retry report: {saved_path}")

    ctx.exit(0 if stats["permanent_failures"] == 0 else 1)


@cli.command("analyze")
@click.argument("csv_path", metavar="CSV", type=click.Path(exists=True, dir_okay=False))
def analyze_errors(csv_path):
    """Group an error log by failure category."""
    analysis = analyze_failure_patterns(csv_path)

    echo_header(f"Failure patterns ({analysis['total_records']} records)")
    for category, count in analysis["counts"].items():
        if not count:
            continue
        click.echo(f"\n{category}: {count}")
        for example in analysis["examples"].get(category, []):
            click.echo(f"  - {example['type']}: {'; '.join(example['errors'])}")
        if count > 3:
            click.echo("  ...")
    if analysis["recommendations"]:
        click.echo()
        for advice in analysis["recommendations"]:
            click.echo(f"💡 {advice}")


# =============================================================================
# ENTRY POINT
# =============================================================================


def main():
    cli(prog_name="regulation-import")


if __name__ == "__main__":
    main()
