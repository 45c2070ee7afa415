import logging
from typing import Optional

import typer
import yaml
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from scholar_alert_digest import aggregator
from scholar_alert_digest import mail_fetcher
from scholar_alert_digest import report_builder
from scholar_alert_digest.config import load_config

app = typer.Typer(help="Aggregates Google Scholar alert emails into a digest of papers.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages."),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Failures of config files, fixture files or Gmail end the run with exit code 1.
FAILURES = (OSError, yaml.YAMLError, HttpError, RefreshError, TypeError, ValueError)


def _fail(e):
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(code=1)


def _config():
    try:
        return load_config()
    except FAILURES as e:
        _fail(e)


def _gmail_credentials(config, need_write_access=False):
    gmail = config.get('gmail', {})
    token_key = 'token_rw_file' if need_write_access else 'token_file'
    try:
        return mail_fetcher.get_credentials(
            credentials_file=gmail.get('credentials_file', 'credentials.json'),
            token_file=gmail.get(token_key, 'token.json'),
            need_write_access=need_write_access,
        )
    except (FileNotFoundError, RefreshError) as e:
        _fail(e)


def _load_messages(config, fixtures, label, unread, concurrency, creds):
    try:
        if fixtures:
            return mail_fetcher.read_message_fixtures(fixtures)
        query = mail_fetcher.build_query(
            label=label,
            unread=unread,
            sender=config.get('gmail', {}).get('sender', 'scholaralerts-noreply@google.com'),
        )
        return mail_fetcher.fetch_messages(creds, query, concurrency=concurrency)
    except FAILURES as e:
        _fail(e)


@app.command()
def report(
    label: Optional[str] = typer.Option(None, "--label", "-l", help="Gmail label to aggregate (env SAD_LABEL)."),
    fmt: Optional[str] = typer.Option(None, "--format", "-f", help="Report format: md, html, json or jsonl."),
    compact: bool = typer.Option(False, "--compact", help="Compact layout for long reports."),
    authors: bool = typer.Option(False, "--authors", help="Extract paper authors."),
    no_refs: bool = typer.Option(False, "--no-refs", help="Do not link papers to the emails they come from."),
    read: bool = typer.Option(False, "--read", help="Add an archive section with papers from read emails."),
    mark: bool = typer.Option(False, "--mark", help="Mark all aggregated emails as read."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-n", help="Concurrent Gmail API requests."),
    fixtures: Optional[str] = typer.Option(None, "--fixtures", help="Read messages from a JSON file instead of Gmail."),
    save: bool = typer.Option(False, "--save", help="Save the report to output.report_dir instead of printing it."),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", help="Save the report there instead of printing it."),
):
    """Fetch alert emails, aggregate papers by title and print the report."""
    config = _config()
    gmail = config.get('gmail', {})
    output = config.get('output', {})
    extraction = config.get('extraction', {})

    label = label if label is not None else gmail.get('label', '')
    fmt = fmt or output.get('format', 'md')
    compact = compact or output.get('compact', False)
    authors = authors or extraction.get('authors', False)
    refs = extraction.get('refs', True) and not no_refs
    concurrency = concurrency or gmail.get('concurrency', 10)
    if save and not output_dir:
        output_dir = output.get('report_dir', 'reports')

    if fmt not in report_builder.FORMATS:
        typer.echo(f"Error: unsupported format {fmt!r}, use one of {', '.join(report_builder.FORMATS)}", err=True)
        raise typer.Exit(code=1)
    if mark and fixtures:
        typer.echo("Error: --mark can not be used with --fixtures", err=True)
        raise typer.Exit(code=1)

    creds = None if fixtures else _gmail_credentials(config, need_write_access=mark)

    unread_msgs = _load_messages(config, fixtures, label, True, concurrency, creds)
    stats, unread_papers = aggregator.extract_papers_from_msgs(
        unread_msgs, include_authors=authors, include_refs=refs,
    )

    read_papers = None
    if read and not fixtures:
        read_msgs = _load_messages(config, fixtures, label, False, concurrency, creds)
        _, read_papers = aggregator.extract_papers_from_msgs(
            read_msgs, include_authors=authors, include_refs=refs,
        )

    content = report_builder.render(fmt, stats, unread_papers, read_papers, compact=compact)
    if output_dir:
        try:
            report_file = report_builder.save_report(content, report_dir=output_dir, fmt=fmt)
        except OSError as e:
            _fail(e)
        typer.echo(f"Report generated: {report_file}", err=True)
    else:
        typer.echo(content, nl=False)

    if mark:
        try:
            mail_fetcher.mark_messages_read(mail_fetcher.build_service(creds), unread_msgs)
        except FAILURES as e:
            _fail(e)

    if stats.extraction_errors:
        typer.echo(f"Errors: {stats.extraction_errors}", err=True)


@app.command()
def subjects(
    label: Optional[str] = typer.Option(None, "--label", "-l", help="Gmail label to aggregate (env SAD_LABEL)."),
    read: bool = typer.Option(False, "--read", help="Include read emails."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-n", help="Concurrent Gmail API requests."),
    fixtures: Optional[str] = typer.Option(None, "--fixtures", help="Read messages from a JSON file instead of Gmail."),
):
    """List alert types and sources of the email subjects."""
    config = _config()
    gmail = config.get('gmail', {})
    label = label if label is not None else gmail.get('label', '')
    concurrency = concurrency or gmail.get('concurrency', 10)

    creds = None if fixtures else _gmail_credentials(config)
    messages = _load_messages(config, fixtures, label, True, concurrency, creds)
    if read and not fixtures:
        messages += _load_messages(config, fixtures, label, False, concurrency, creds)

    table = report_builder.subjects_table(messages)
    for row in table.itertuples(index=False):
        typer.echo(f"{row.emails:>4} {row.type:<22} | {row.source}")


@app.command()
def labels():
    """Print all Gmail labels, formatted as usable with --label."""
    config = _config()
    service = mail_fetcher.build_service(_gmail_credentials(config))
    try:
        names = mail_fetcher.list_labels(service)
    except FAILURES as e:
        _fail(e)
    for name in names:
        typer.echo(mail_fetcher.format_as_id(name))


if __name__ == "__main__":
    # This allows running `python -m scholar_alert_digest.cli report` for example
    app()
