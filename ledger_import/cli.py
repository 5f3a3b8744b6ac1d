from __future__ import annotations

import logging
import signal
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

import httpx
import typer

from ledger_import.common.runtime import generate_run_id, getDurationMs
from ledger_import.common.text import maskSecret
from ledger_import.config import Settings, load_settings
from ledger_import.domain.cancellation import CancellationToken
from ledger_import.domain.exceptions import ImportAbortedError, RowSourceError
from ledger_import.domain.models import ImportOutcome, ImportResult
from ledger_import.domain.reporting.collector import ReportCollector
from ledger_import.domain.transform.request_builder import RecordTransformer
from ledger_import.infra.artifacts.report_writer import createEmptyReport, finalizeReport, writeReportJson
from ledger_import.infra.http.ledger_client import LedgerApiClient
from ledger_import.infra.http.submission_client import LedgerSubmissionClient
from ledger_import.infra.logging.setup import (
    closeCommandLogger,
    createCommandLogger,
    logEvent,
    mapLogLevel,
    teeStdStreams,
)
from ledger_import.infra.sources.csv_row_source import CsvRowSource
from ledger_import.usecases.import_pipeline import ImportPipeline

app = typer.Typer(no_args_is_help=True, add_completion=False, help="Imports ledger transactions from a csv file")

EXIT_CODES: dict[ImportOutcome, int] = {
    ImportOutcome.SUCCEEDED: 0,
    ImportOutcome.FILE_INVALID: 1,
    ImportOutcome.FATAL: 2,
    ImportOutcome.CANCELLED: 130,
}
EXIT_USAGE = 2

CommandRunner = Callable[[logging.Logger, ReportCollector], int]


def findInputProblem(settings: Settings, csvPath: str | None, requiresApiAccess: bool) -> tuple[str, str] | None:
    """
    Назначение:
        Проверка обязательных входов команды до чтения файла.

    Выходные данные:
        None, если всё на месте, иначе (component, message) для лога и stderr.
    """
    if requiresApiAccess:
        missing = [name for name in ("base_url", "api_key") if not getattr(settings, name)]
        if missing:
            return "config", f"missing API settings: {', '.join(missing)}"
    if not csvPath:
        return "csv", "--csv is required"
    if not Path(csvPath).is_file():
        return "csv", f"CSV file not found: {csvPath}"
    return None


def describeRun(runId: str, command: str, settings: Settings, sources: list[str], csvPath: str | None) -> str:
    return (
        f"run_id={runId} command={command} csv={csvPath} "
        f"base_url={settings.base_url} api_key={maskSecret(settings.api_key)} "
        f"sources={sources} log_level={settings.log_level}"
    )


def createLedgerClient(settings: Settings, transport: httpx.BaseTransport | None = None) -> LedgerApiClient:
    return LedgerApiClient(
        baseUrl=settings.base_url or "",
        apiKey=settings.api_key or "",
        timeoutSeconds=settings.timeout_seconds,
        tlsSkipVerify=settings.tls_skip_verify,
        caFile=settings.ca_file,
        retries=settings.retries,
        retryBackoffSeconds=settings.retry_backoff_seconds,
        transport=transport,
    )


@contextmanager
def cancelOnSignals(token: CancellationToken) -> Iterator[None]:
    """
    Назначение:
        На время прогона переводит SIGINT/SIGTERM в кооперативную отмену.
        Вне главного потока обработчики не ставятся (signal.signal бросает ValueError).
    """
    previous: dict[int, object] = {}

    def handler(signum, _frame) -> None:
        token.cancel()

    try:
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, handler)
    except ValueError:
        previous.clear()
    try:
        yield
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old)


def runWithReport(
    ctx: typer.Context,
    commandName: str,
    csvPath: str | None,
    requiresApiAccess: bool,
    runner: CommandRunner,
) -> None:
    """
    Назначение:
        Общая обвязка команд validate/import.

    Поведение:
        - лог-файл и tee stdout/stderr в него на всё время команды;
        - проверка входов, при нехватке exit code 2;
        - report_<command>_<runId>.json пишется при любом исходе, включая исключения runner.
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    started = time.monotonic()
    logger, logFilePath = createCommandLogger(commandName, settings.log_dir, runId, settings.log_level)
    report = createEmptyReport(runId=runId, command=commandName, configSources=sources)
    report.meta.csv_path = csvPath
    report.meta.items_limit = settings.report_items_limit

    exitCode = EXIT_USAGE
    try:
        with teeStdStreams(logger, runId):
            logEvent(logger, logging.INFO, runId, "core", "Command started")
            typer.echo(describeRun(runId, commandName, settings, sources, csvPath))
            problem = findInputProblem(settings, csvPath, requiresApiAccess)
            if problem is not None:
                component, message = problem
                logEvent(logger, logging.ERROR, runId, component, message)
                typer.echo(f"ERROR: {message}", err=True)
            else:
                exitCode = runner(logger, report)
    finally:
        finalizeReport(
            report=report,
            durationMs=getDurationMs(started, time.monotonic()),
            logFile=logFilePath,
            reportDir=settings.report_dir,
        )
        reportPath = writeReportJson(report, settings.report_dir, f"report_{commandName}_{runId}")
        logEvent(logger, logging.INFO, runId, "report", f"Report written: {reportPath}")
        logEvent(logger, logging.INFO, runId, "core", f"Exiting with code {exitCode}")
        closeCommandLogger(logger)

    raise typer.Exit(code=exitCode)


def printResult(result: ImportResult) -> None:
    typer.echo(
        f"outcome={result.outcome.value} rows_total={result.rows_validated} "
        f"invalid={len(result.invalid_rows)} submitted={result.submitted} rejected={result.rejected}"
    )


def executePipeline(call: Callable[[CancellationToken], ImportResult]) -> int:
    """Запускает проход пайплайна под обработкой сигналов и переводит итог в exit code."""
    token = CancellationToken()
    try:
        with cancelOnSignals(token):
            result = call(token)
    except RowSourceError as exc:
        typer.echo(f"ERROR: CSV read error: {exc}", err=True)
        return EXIT_USAGE
    except ImportAbortedError as exc:
        printResult(exc.result)
        typer.echo(f"ERROR: import aborted: {exc} (see logs/report)", err=True)
        return EXIT_CODES[ImportOutcome.FATAL]
    printResult(result)
    return EXIT_CODES[result.outcome]


def runValidateCommand(ctx: typer.Context, csvPath: str | None, delimiter: str | None) -> None:
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    csvPath = csvPath or settings.csv_file

    def execute(logger: logging.Logger, report: ReportCollector) -> int:
        pipeline = ImportPipeline(
            source=CsvRowSource(csvPath, delimiter=delimiter or settings.csv_delimiter),
            logger=logger,
            run_id=runId,
            report=report,
        )
        return executePipeline(pipeline.validate_only)

    runWithReport(ctx, "validate", csvPath, requiresApiAccess=False, runner=execute)


def runImportCommand(
    ctx: typer.Context,
    csvPath: str | None,
    delimiter: str | None,
    validateCoa: bool | None,
    autoApprove: bool | None,
) -> None:
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    csvPath = csvPath or settings.csv_file
    transformer = RecordTransformer(
        validate_coa=settings.validate_coa if validateCoa is None else validateCoa,
        auto_approve=settings.auto_approve if autoApprove is None else autoApprove,
    )

    def execute(logger: logging.Logger, report: ReportCollector) -> int:
        report.meta.api_base_url = settings.base_url
        report.meta.validate_coa = transformer.validate_coa
        report.meta.auto_approve = transformer.auto_approve

        client = createLedgerClient(settings)
        try:
            pipeline = ImportPipeline(
                source=CsvRowSource(csvPath, delimiter=delimiter or settings.csv_delimiter),
                client=LedgerSubmissionClient(client),
                transformer=transformer,
                logger=logger,
                run_id=runId,
                report=report,
            )
            return executePipeline(pipeline.run)
        finally:
            report.set_context("api", {"retries_total": client.getRetryAttempts()})
            client.close()

    runWithReport(ctx, "import", csvPath, requiresApiAccess=True, runner=execute)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    reportDir: str | None = typer.Option(None, "--report-dir", help="Directory for reports."),
    baseUrl: str | None = typer.Option(None, "--base-url", "-u", help="The base url of the ledger api"),
    apiKey: str | None = typer.Option(None, "--api-key", "-k", help="The api key to use (prefer env or --api-key-file)"),
    apiKeyFile: str | None = typer.Option(None, "--api-key-file", help="Read the api key from a file"),
    timeoutSeconds: float | None = typer.Option(None, "--timeout-seconds", help="API timeout in seconds"),
    retries: int | None = typer.Option(None, "--retries", help="Retry attempts for API calls"),
    retryBackoffSeconds: float | None = typer.Option(None, "--retry-backoff-seconds", help="Base backoff for retries"),
    tlsSkipVerify: bool | None = typer.Option(None, "--tls-skip-verify", help="Disable TLS verification"),
    caFile: str | None = typer.Option(None, "--ca-file", help="CA file path"),
    reportItemsLimit: int | None = typer.Option(None, "--report-items-limit", help="Limit report items stored"),
):
    """
    Назначение:
        Глобальная инициализация: run_id, настройки (CLI > ENV > config > defaults),
        каталоги логов и отчётов. Ошибка настроек -> exit code 2.
    """
    if apiKeyFile and not apiKey:
        keyPath = Path(apiKeyFile)
        if not keyPath.is_file():
            typer.echo(f"ERROR: api-key-file not found: {apiKeyFile}", err=True)
            raise typer.Exit(code=EXIT_USAGE)
        apiKey = keyPath.read_text(encoding="utf-8").strip()

    cliOverrides = {
        "base_url": baseUrl,
        "api_key": apiKey,
        "log_level": logLevel,
        "log_dir": logDir,
        "report_dir": reportDir,
        "timeout_seconds": timeoutSeconds,
        "retries": retries,
        "retry_backoff_seconds": retryBackoffSeconds,
        "tls_skip_verify": tlsSkipVerify,
        "ca_file": caFile,
        "report_items_limit": reportItemsLimit,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
        mapLogLevel(loaded.settings.log_level)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=EXIT_USAGE)

    for directory in (loaded.settings.log_dir, loaded.settings.report_dir):
        Path(directory).mkdir(parents=True, exist_ok=True)

    ctx.obj = {
        "runId": runId or generate_run_id(),
        "settings": loaded.settings,
        "sources": loaded.sources_used,
    }


@app.command()
def validate(
    ctx: typer.Context,
    csv: str | None = typer.Option(None, "--csv", "-f", help="The csv file to validate"),
    delimiter: str | None = typer.Option(None, "--delimiter", help="CSV delimiter (default ',')"),
):
    """Validates the csv file without sending anything."""
    runValidateCommand(ctx, csv, delimiter)


@app.command("import")
def importCommand(
    ctx: typer.Context,
    csv: str | None = typer.Option(None, "--csv", "-f", help="The csv file to import"),
    delimiter: str | None = typer.Option(None, "--delimiter", help="CSV delimiter (default ',')"),
    validateCoa: bool | None = typer.Option(
        None,
        "--validate-coa/--no-validate-coa",
        help="Ask the ledger to validate chart-of-accounts strings",
    ),
    autoApprove: bool | None = typer.Option(
        None,
        "--auto-approve/--no-auto-approve",
        help="Auto-approve imported transactions",
    ),
):
    """Validates the whole csv file, then submits its rows one by one."""
    runImportCommand(ctx, csv, delimiter, validateCoa, autoApprove)


if __name__ == "__main__":
    app()
