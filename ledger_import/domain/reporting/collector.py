from __future__ import annotations

from dataclasses import asdict
from typing import Any, Iterable, Mapping

from ledger_import.common.runtime import getNowIso
from ledger_import.domain.models import DiagnosticStage, ImportOutcome, ValidationErrorItem
from ledger_import.domain.reporting.models import (
    ReportDiagnostic,
    ReportEnvelope,
    ReportItem,
    ReportMeta,
    ReportSummary,
)

STATUS_INVALID = "INVALID"
STATUS_OK = "OK"
STATUS_REJECTED = "REJECTED"
STATUS_FAILED = "FAILED"

# FAILED не считается отдельно: такая строка прерывает прогон и видна в status отчёта.
STATUS_COUNTERS = {
    STATUS_INVALID: "rows_invalid",
    STATUS_OK: "rows_submitted",
    STATUS_REJECTED: "rows_rejected",
}


class ReportCollector:
    """
    Назначение/ответственность:
        Сборщик отчёта прогона: счётчики, диагностика по строкам, итог.
    """

    def __init__(self, run_id: str, command: str, started_at: str | None = None) -> None:
        self.meta = ReportMeta(run_id=run_id, command=command, started_at=started_at or getNowIso())
        self.summary = ReportSummary()
        self.items: list[ReportItem] = []
        self.context: dict[str, Any] = {}
        self.status: str | None = None

    def set_context(self, name: str, value: dict[str, Any]) -> None:
        self.context[name] = value

    def set_outcome(self, outcome: ImportOutcome) -> None:
        self.status = outcome.value

    def add_item(
        self,
        *,
        status: str,
        record_index: int,
        line_no: int | None = None,
        payload: Mapping[str, Any] | None = None,
        errors: Iterable[ValidationErrorItem] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        error_list = list(errors or [])

        counter = STATUS_COUNTERS.get(status)
        if counter is not None:
            setattr(self.summary, counter, getattr(self.summary, counter) + 1)

        self.summary.errors_total += len(error_list)
        for error in error_list:
            key = error.stage.value if isinstance(error.stage, DiagnosticStage) else str(error.stage)
            self.summary.by_stage[key] = self.summary.by_stage.get(key, 0) + 1

        if self._should_store_item():
            self.items.append(
                ReportItem(
                    status=status,
                    record_index=record_index,
                    line_no=line_no,
                    payload=payload,
                    diagnostics=[
                        ReportDiagnostic(stage=e.stage, code=e.code, field=e.field, message=e.message)
                        for e in error_list
                    ],
                    meta=meta or {},
                )
            )
        else:
            self.meta.items_truncated = True

    def finish(self, finished_at: str | None = None, duration_ms: int | None = None) -> None:
        self.meta.finished_at = finished_at or getNowIso()
        self.meta.duration_ms = duration_ms

    def build(self) -> ReportEnvelope:
        return ReportEnvelope(
            status=self.status or "UNKNOWN",
            meta=self.meta,
            summary=self.summary,
            items=self.items,
            context=self.context,
        )

    def _should_store_item(self) -> bool:
        limit = self.meta.items_limit
        if limit is None:
            return True
        return len(self.items) < limit


def asdict_report(envelope: ReportEnvelope) -> dict[str, Any]:
    """
    Назначение:
        Сериализация отчёта в JSON-совместимый dict.
    """
    return {
        "status": envelope.status,
        "meta": asdict(envelope.meta),
        "summary": asdict(envelope.summary),
        "items": [
            {
                "status": item.status,
                "record_index": item.record_index,
                "line_no": item.line_no,
                "payload": item.payload,
                "diagnostics": [
                    {**asdict(diag), "stage": diag.stage.value if isinstance(diag.stage, DiagnosticStage) else diag.stage}
                    for diag in item.diagnostics
                ],
                "meta": item.meta,
            }
            for item in envelope.items
        ],
        "context": envelope.context,
    }
