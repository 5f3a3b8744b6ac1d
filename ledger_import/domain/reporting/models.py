from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ledger_import.domain.models import DiagnosticStage


@dataclass
class ReportMeta:
    """
    Назначение:
        Метаданные запуска команды.
    """

    run_id: str
    command: str
    started_at: str
    csv_path: str | None = None
    api_base_url: str | None = None
    validate_coa: bool | None = None
    auto_approve: bool | None = None
    finished_at: str | None = None
    duration_ms: int | None = None
    items_limit: int | None = None
    items_truncated: bool = False


@dataclass
class ReportSummary:
    """
    Назначение:
        Счётчики выполнения.
    """

    rows_total: int = 0
    rows_invalid: int = 0
    rows_submitted: int = 0
    rows_rejected: int = 0
    errors_total: int = 0
    by_stage: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ReportDiagnostic:
    stage: DiagnosticStage
    code: str
    field: str | None
    message: str


@dataclass
class ReportItem:
    """
    Назначение:
        Единица отчёта, привязанная к строке файла.
    """

    status: str
    record_index: int
    line_no: int | None = None
    payload: Mapping[str, Any] | None = None
    diagnostics: list[ReportDiagnostic] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReportEnvelope:
    status: str
    meta: ReportMeta
    summary: ReportSummary
    items: list[ReportItem]
    context: dict[str, Any] = field(default_factory=dict)
