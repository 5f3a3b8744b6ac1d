from __future__ import annotations

import json
from pathlib import Path

from ledger_import.domain.reporting.collector import ReportCollector, asdict_report


def createEmptyReport(runId: str, command: str, configSources: list[str]) -> ReportCollector:
    """Отчёт запуска до обработки строк; источники настроек попадают в context.config."""
    collector = ReportCollector(run_id=runId, command=command)
    if configSources:
        collector.set_context("config", {"sources": list(configSources)})
    return collector


def finalizeReport(report: ReportCollector, durationMs: int, logFile: str | None, reportDir: str) -> None:
    report.set_context("runtime", {"log_file": logFile, "report_dir": reportDir})
    report.finish(duration_ms=durationMs)


def writeReportJson(report: ReportCollector, reportDir: str, fileBaseName: str) -> str:
    """
    Назначение:
        Сериализует отчёт в <reportDir>/<fileBaseName>.json.

    Выходные данные:
        Путь к записанному файлу.

    Ограничения:
        - Значения, не представимые в JSON (Decimal, Enum), пишутся строкой.
    """
    target = Path(reportDir)
    target.mkdir(parents=True, exist_ok=True)
    reportPath = target / f"{fileBaseName}.json"
    text = json.dumps(asdict_report(report.build()), ensure_ascii=False, indent=2, default=str)
    reportPath.write_text(text + "\n", encoding="utf-8")
    return str(reportPath)
