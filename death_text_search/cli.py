"""Command-line interface for the death certificate text search"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
import structlog

from death_text_search.config import settings
from death_text_search.ingestion.parsers._parser_kit import ParseError
from death_text_search.ingestion.parsers.death_record_parser import load_death_records
from death_text_search.ingestion.parsers.term_dictionary_parser import load_term_dictionary
from death_text_search.ingestion.publishers import ResultPublisher, read_published_table
from death_text_search.ingestion.quarantine import QuarantineManager
from death_text_search.observability import configure_logging
from death_text_search.search import run_text_search, summarize

logger = structlog.get_logger(__name__)

DATE = click.DateTime(formats=["%Y-%m-%d"])


def _echo_summary(summary) -> None:
    width = max(len(label) for label in summary['drug_category'])
    for label, count in zip(summary['drug_category'], summary['number_ods']):
        click.echo(f"   {label:<{width}}  {count}")


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
@click.option('--log-format', type=click.Choice(['json', 'console']), default=None,
              help='Override LOG_FORMAT')
def cli(log_level: Optional[str], log_format: Optional[str]):
    """Death certificate drug overdose text search"""
    overrides = {}
    if log_level:
        overrides['log_level'] = log_level
    if log_format:
        overrides['log_format'] = log_format
    configure_logging(settings.model_copy(update=overrides))


@cli.command()
@click.option('--records', 'records_path', default=lambda: settings.records_path,
              type=click.Path(exists=True, dir_okay=False), help='Death record extract (csv/xlsx/parquet)')
@click.option('--terms', 'terms_path', default=lambda: settings.terms_path,
              type=click.Path(exists=True, dir_okay=False), help='Key-term spreadsheet (xlsx/csv)')
@click.option('--sheet', default=lambda: settings.terms_sheet, help='Worksheet of the term spreadsheet')
@click.option('--start-date', type=DATE, default=None, help='First date of death (YYYY-MM-DD)')
@click.option('--end-date', type=DATE, default=None, help='Last date of death (YYYY-MM-DD)')
@click.option('--state', default=lambda: settings.resident_state, help='Resident state filter')
@click.option('--output-dir', default=lambda: settings.output_dir, help='Output directory')
@click.option('--format', 'output_format', type=click.Choice(['parquet', 'csv']),
              default=lambda: settings.output_format, help='Output format')
@click.option('--workers', type=int, default=lambda: settings.max_workers, help='Worker processes')
@click.option('--run-id', default=None, help='Run identifier (default: timestamp)')
def run(records_path: Optional[str], terms_path: Optional[str], sheet: str,
        start_date: Optional[datetime], end_date: Optional[datetime], state: Optional[str],
        output_dir: str, output_format: str, workers: int, run_id: Optional[str]):
    """Classify death records and publish overdose counts"""
    if not records_path or not terms_path:
        _fail("Both --records and --terms are required (or RECORDS_PATH / TERMS_PATH)")

    start = start_date.date() if start_date else settings.start_date
    end = end_date.date() if end_date else settings.end_date
    if start and end and start > end:
        _fail(f"start date {start} is after end date {end}")

    run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
    logger.info("run_start", run_id=run_id, records=records_path, terms=terms_path)

    try:
        dictionary = load_term_dictionary(terms_path, sheet_name=sheet)
        parsed = load_death_records(
            records_path,
            start_date=start,
            end_date=end,
            resident_state=state or None,
        )
    except ParseError as e:
        logger.error("run_failed", run_id=run_id, error=str(e))
        _fail(str(e))

    result = run_text_search(parsed.data, dictionary, max_workers=workers,
                             chunk_size=settings.chunk_size)

    published = ResultPublisher(output_dir, output_format=output_format).publish(result, run_id)

    quarantine = QuarantineManager(settings.quarantine_dir)
    if not result.skipped.empty:
        quarantine.quarantine_records(result.skipped, "skipped", run_id,
                                      total_records=result.metrics['records_in'])
    if not parsed.rejects.empty:
        quarantine.quarantine_records(parsed.rejects, "rejects", run_id,
                                      reason_column='reject_reason',
                                      total_records=parsed.metrics['total_rows'])

    click.echo(f"✅ Run {run_id} complete")
    click.echo(f"   Records in: {result.metrics['records_in']}")
    click.echo(f"   Eligible cases: {result.metrics['eligible_cases']}")
    click.echo(f"   Skipped: {result.metrics['records_skipped']}")
    click.echo(f"   Rejected: {len(parsed.rejects)}")
    _echo_summary(summarize(result.final_table))
    click.echo(f"   Output: {Path(published['final_table'].file_paths[0]).parent}")


@cli.command()
@click.option('--terms', 'terms_path', required=True,
              type=click.Path(exists=True, dir_okay=False), help='Key-term spreadsheet (xlsx/csv)')
@click.option('--sheet', default=lambda: settings.terms_sheet, help='Worksheet of the term spreadsheet')
def terms(terms_path: str, sheet: str):
    """Validate a key-term spreadsheet and show term counts"""
    try:
        dictionary = load_term_dictionary(terms_path, sheet_name=sheet)
    except ParseError as e:
        _fail(str(e))

    click.echo(f"✅ {terms_path}: term dictionary is valid")
    for category, count in dictionary.counts().items():
        click.echo(f"   {category:<16} {count}")


@cli.command(name='summarize')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
def summarize_command(path: str):
    """Show overdose counts per drug category for a published final table"""
    try:
        final_table = read_published_table(path)
    except ValueError as e:
        _fail(str(e))
    _echo_summary(summarize(final_table))


@cli.command()
@click.argument('dataset', type=click.Choice(['skipped', 'rejects']))
@click.option('--quarantine-dir', default=lambda: settings.quarantine_dir, help='Quarantine directory')
def quarantine(dataset: str, quarantine_dir: str):
    """List quarantine batches for skipped or rejected records"""
    batches = QuarantineManager(quarantine_dir).list_quarantine_batches(dataset)
    if not batches:
        click.echo(f"No quarantine batches for {dataset}")
        return
    for batch in batches:
        reasons = ", ".join(f"{code}={n}" for code, n in sorted(batch['error_summary'].items()))
        click.echo(f"   {batch['batch_id']}  {batch['quarantined_records']} record(s)  {reasons}")


if __name__ == '__main__':
    cli()
