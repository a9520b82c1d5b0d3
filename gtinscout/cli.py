"""gtinscout CLI: look up GTINs and harvest product document links.

Usage:
    gtinscout run gtins.csv                       # Look up every GTIN in the table
    gtinscout run gtins.csv --resume              # Continue an interrupted run
    gtinscout run gtins.csv --config site.json    # Use another site profile
    gtinscout lookup 3283950912914                # Look up one GTIN, print JSON
    gtinscout config > site.json                  # Dump the default configuration
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path

import click
from pydantic import ValidationError

from gtinscout.common.exceptions import FatalIOError
from gtinscout.common.page_driver import SessionFactory
from gtinscout.common.records import load_identifiers
from gtinscout.common.sink import CsvResultSink
from gtinscout.config import InputConfig, LookupConfig
from gtinscout.data_types import BatchSummary, LookupOutcome, ProgressEvent
from gtinscout.driver.batch_driver import BatchDriver
from gtinscout.driver.callbacks import (
    advance_bar,
    combine_callbacks,
    log_progress,
    write_outcomes_jsonl,
)
from gtinscout.lookup.workflow import LookupWorkflow

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("gtinscout")


def configure_logging(log_path: Path | None, verbose: bool) -> None:
    """Install the run log and the console handler.

    The run log is truncated here, once, at the start of a run.
    """
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.INFO if verbose else logging.WARNING)
    handlers: list[logging.Handler] = [console]

    if log_path is not None:
        try:
            run_log = logging.FileHandler(log_path, mode="w", encoding="utf-8")
        except OSError as e:
            raise click.ClickException(
                f"Cannot open run log {log_path}: {e}"
            ) from e
        run_log.setLevel(logging.DEBUG if verbose else logging.INFO)
        handlers.append(run_log)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def load_config(
    config_path: Path | None,
    headless: bool | None = None,
    delimiter: str | None = None,
    source_tag: str | None = None,
    encoding: str | None = None,
) -> LookupConfig:
    """Load the configuration file (or defaults) and apply CLI overrides.

    Raises:
        click.ClickException: If the file is unreadable or invalid.
    """
    try:
        config = (
            LookupConfig.from_file(config_path)
            if config_path is not None
            else LookupConfig()
        )
    except OSError as e:
        raise click.ClickException(
            f"Cannot read configuration {config_path}: {e}"
        ) from e
    except ValidationError as e:
        raise click.ClickException(
            f"Invalid configuration {config_path}:\n{e}"
        ) from e

    input_updates: dict[str, str] = {}
    if delimiter is not None:
        input_updates["delimiter"] = delimiter
    if source_tag is not None:
        input_updates["source_value"] = source_tag
    if encoding is not None:
        input_updates["encoding"] = encoding

    updates: dict[str, object] = {}
    if headless is not None:
        updates["headless"] = headless
    if input_updates:
        try:
            updates["input"] = InputConfig.model_validate(
                {**config.input.model_dump(), **input_updates}
            )
        except ValidationError as e:
            raise click.ClickException(f"Invalid input options:\n{e}") from e
    return config.model_copy(update=updates) if updates else config


def open_sessions(
    config: LookupConfig,
) -> AbstractAsyncContextManager[SessionFactory]:
    """Launch the browser for a run."""
    try:
        from gtinscout.driver.playwright_driver import (
            PlaywrightSessionFactory,
        )
    except ImportError as e:
        raise click.ClickException(
            f"Missing dependency: {e}. "
            "Install Playwright and its browsers: "
            "pip install playwright && playwright install chromium"
        ) from e

    return PlaywrightSessionFactory.open(
        browser_type=config.browser_type, headless=config.headless
    )


@click.group()
@click.version_option(package_name="gtinscout")
def cli() -> None:
    """gtinscout: GTIN lookup and product document harvester."""


@cli.command()
@click.argument("input_path", type=click.Path(path_type=Path))
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON configuration file (see 'gtinscout config').",
)
@click.option(
    "--output",
    "output_path",
    type=click.Path(path_type=Path),
    default=Path("results.csv"),
    show_default=True,
    help="Output table.",
)
@click.option(
    "--log",
    "log_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("gtinscout.log"),
    show_default=True,
    help="Run log (truncated at start).",
)
@click.option(
    "--outcomes",
    "outcomes_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write every outcome as JSON lines to this file.",
)
@click.option("--delimiter", default=None, help="Input table delimiter.")
@click.option(
    "--encoding",
    default=None,
    help="Input table encoding (default utf-8-sig), e.g. cp1252.",
)
@click.option(
    "--source-tag",
    default=None,
    help="Only read rows whose source column equals this value.",
)
@click.option(
    "--headless/--headed",
    default=None,
    help="Override the configured browser mode.",
)
@click.option(
    "--resume",
    is_flag=True,
    help="Keep the output table and skip GTINs already in it.",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def run(
    input_path: Path,
    config_path: Path | None,
    output_path: Path,
    log_path: Path,
    outcomes_path: Path | None,
    delimiter: str | None,
    encoding: str | None,
    source_tag: str | None,
    headless: bool | None,
    resume: bool,
    verbose: bool,
) -> None:
    """Look up every GTIN of INPUT_PATH and write the results table.

    \b
    Examples:
        gtinscout run gtins.csv
        gtinscout run gtins.csv --delimiter , --source-tag shopA
        gtinscout run gtins.csv --output out.csv --resume
    """
    config = load_config(
        config_path, headless, delimiter, source_tag, encoding
    )
    configure_logging(log_path, verbose)

    try:
        identifiers = load_identifiers(input_path, config.input)
        sink = CsvResultSink(output_path, config.output, resume=resume)
    except FatalIOError as e:
        logger.error(f"Fatal: {e}")
        raise click.ClickException(str(e)) from e

    click.echo(f"Identifiers: {len(identifiers)}")
    click.echo(f"Output:      {output_path}")
    click.echo(f"Run log:     {log_path}")

    with contextlib.ExitStack() as stack:
        outcome_callback = None
        if outcomes_path is not None:
            handle = stack.enter_context(
                outcomes_path.open("w", encoding="utf-8")
            )
            outcome_callback = write_outcomes_jsonl(handle)
        bar = stack.enter_context(
            click.progressbar(length=len(identifiers), label="Looking up")
        )
        try:
            summary = asyncio.run(
                _run_batch(
                    config,
                    identifiers,
                    sink,
                    on_progress=combine_callbacks(
                        log_progress(), advance_bar(bar)
                    ),
                    on_outcome=outcome_callback,
                )
            )
        except FatalIOError as e:
            raise click.ClickException(str(e)) from e

    click.echo(summary.describe())


async def _run_batch(
    config: LookupConfig,
    identifiers: list[str],
    sink: CsvResultSink,
    on_progress: Callable[[ProgressEvent], None],
    on_outcome: Callable[[LookupOutcome], None] | None,
) -> BatchSummary:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    # SIGINT finishes the identifier in flight, then stops.
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, stop_event.set)

    try:
        async with open_sessions(config) as factory:
            driver = BatchDriver(
                workflow=LookupWorkflow(config),
                session_factory=factory,
                sink=sink,
                on_progress=on_progress,
                on_outcome=on_outcome,
                stop_event=stop_event,
            )
            return await driver.run(identifiers)
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)


@cli.command()
@click.argument("gtin")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON configuration file.",
)
@click.option("--headless/--headed", default=None)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def lookup(
    gtin: str, config_path: Path | None, headless: bool | None, verbose: bool
) -> None:
    """Look up a single GTIN and print the outcome as JSON."""
    identifier = gtin.strip()
    if not identifier:
        raise click.BadParameter("GTIN must not be empty", param_hint="GTIN")

    config = load_config(config_path, headless)
    configure_logging(None, verbose)

    outcome = asyncio.run(_lookup_one(config, identifier))
    click.echo(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))


async def _lookup_one(config: LookupConfig, identifier: str) -> LookupOutcome:
    async with open_sessions(config) as factory:
        async with factory.session() as driver:
            return await LookupWorkflow(config).run(identifier, driver)


@cli.command("config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Validate and print this file instead of the defaults.",
)
def show_config(config_path: Path | None) -> None:
    """Print the effective configuration as JSON."""
    config = load_config(config_path)
    click.echo(config.model_dump_json(indent=2))


def main() -> None:
    """Entry point for the ``gtinscout`` console script."""
    cli()
