from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from ledger_import.domain.cancellation import CancellationToken
from ledger_import.domain.error_codes import ErrorCode
from ledger_import.domain.exceptions import ImportAbortedError, RowSourceError, SourceChangedError
from ledger_import.domain.models import (
    DiagnosticStage,
    ImportOutcome,
    ImportResult,
    InvalidRow,
    RawRow,
    SubmissionOutcome,
    ValidationErrorItem,
)
from ledger_import.domain.ports.api import SubmissionClientProtocol
from ledger_import.domain.ports.sources import RowSourceProtocol
from ledger_import.domain.reporting.collector import (
    STATUS_FAILED,
    STATUS_INVALID,
    STATUS_OK,
    STATUS_REJECTED,
    ReportCollector,
)
from ledger_import.domain.transform.record_parser import RecordParser
from ledger_import.domain.transform.request_builder import CreateTransactionRequest, RecordTransformer
from ledger_import.domain.validation.validator import Validator
from ledger_import.errors import AppError
from ledger_import.infra.logging.setup import logEvent


class PipelineState(str, Enum):
    IDLE = "IDLE"
    VALIDATING_FILE = "VALIDATING_FILE"
    FILE_INVALID = "FILE_INVALID"
    SUBMITTING = "SUBMITTING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"
    FATAL = "FATAL"


@dataclass
class FileValidation:
    """
    Назначение:
        Итог прохода валидации по всему файлу.
    """

    rows_total: int = 0
    invalid_rows: list[InvalidRow] = field(default_factory=list)
    cancelled: bool = False

    @property
    def valid(self) -> bool:
        return not self.cancelled and not self.invalid_rows

    def __bool__(self) -> bool:
        return self.valid


class ImportPipeline:
    """
    Назначение/ответственность:
        Оркестратор двухпроходного импорта:
        1) валидация всех строк файла без обращений к сервису;
        2) при полностью валидном файле: повторное чтение, преобразование
           и отправка строк по одной.

    Инварианты/гарантии:
        - Если хотя бы одна строка невалидна, createTransaction не вызывается ни разу.
        - Отказ сервиса по строке не прерывает прогон.
        - Исключение клиента прерывает прогон (ImportAbortedError, outcome=FATAL).
        - Во втором проходе строка проверяется заново; расхождение с первым проходом фатально.
        - Отмена проверяется перед каждой строкой обоих проходов; уже отправленные
          строки не откатываются.
        - Источник открывается заново на каждый проход и закрывается при любом исходе.
        - Единственный компонент, пишущий исходы строк в лог и отчёт.
    """

    def __init__(
        self,
        source: RowSourceProtocol,
        logger: logging.Logger,
        run_id: str,
        client: SubmissionClientProtocol | None = None,
        transformer: RecordTransformer | None = None,
        validator: Validator | None = None,
        parser: RecordParser | None = None,
        report: ReportCollector | None = None,
    ) -> None:
        self.source = source
        self.client = client
        self.transformer = transformer or RecordTransformer()
        self.logger = logger
        self.run_id = run_id
        self.validator = validator or Validator()
        self.parser = parser or self.validator.parser
        self.report = report
        self.state = PipelineState.IDLE

    def run(self, cancel: CancellationToken | None = None) -> ImportResult:
        """
        Назначение:
            Полный прогон импорта.

        Выходные данные:
            ImportResult с outcome SUCCEEDED / FILE_INVALID / CANCELLED.

        Ошибки/исключения:
            RowSourceError: файл не удалось открыть или прочитать.
            ImportAbortedError: непредвиденная ошибка отправки или изменение файла
                между проходами (outcome=FATAL в .result).
        """
        if self.client is None:
            raise ValueError("Submission client is not configured")
        cancel = cancel or CancellationToken()
        self._log(logging.INFO, "import", "Importing")

        checked = self._validation_pass(cancel)
        result = ImportResult(
            outcome=ImportOutcome.SUCCEEDED,
            rows_validated=checked.rows_total,
            invalid_rows=checked.invalid_rows,
        )
        if checked.cancelled:
            return self._cancelled(result)
        if not checked.valid:
            self.state = PipelineState.FILE_INVALID
            result.outcome = ImportOutcome.FILE_INVALID
            self._log(
                logging.ERROR,
                "validate",
                f"Validation errors found in source file: invalid_rows={len(checked.invalid_rows)} "
                f"rows_total={checked.rows_total}; nothing submitted",
            )
            return self._finish(result)

        self.state = PipelineState.SUBMITTING
        completed = self._submission_pass(cancel, result)
        if not completed:
            return self._cancelled(result)

        self.state = PipelineState.DONE
        self._log(
            logging.INFO,
            "submit",
            f"import done rows_total={len(result.outcomes)} submitted={result.submitted} rejected={result.rejected}",
        )
        return self._finish(result)

    def validate_only(self, cancel: CancellationToken | None = None) -> ImportResult:
        """
        Назначение:
            Только проход валидации (команда validate).
        """
        checked = self._validation_pass(cancel or CancellationToken())
        result = ImportResult(
            outcome=ImportOutcome.SUCCEEDED if checked.valid else ImportOutcome.FILE_INVALID,
            rows_validated=checked.rows_total,
            invalid_rows=checked.invalid_rows,
        )
        if checked.cancelled:
            return self._cancelled(result)
        self.state = PipelineState.DONE if checked.valid else PipelineState.FILE_INVALID
        self._log(
            logging.INFO,
            "validate",
            f"validate done rows_total={checked.rows_total} invalid={len(checked.invalid_rows)}",
        )
        return self._finish(result)

    def validate_file(self, rows: Iterable[RawRow], cancel: CancellationToken) -> FileValidation:
        """
        Назначение:
            Проверяет каждую строку, логирует нарушения невалидных строк
            с 0-based индексом. Сервис не вызывается.
        """
        checked = FileValidation()
        for raw in rows:
            if cancel.cancelled:
                checked.cancelled = True
                return checked
            checked.rows_total += 1
            validation = self.validator.validate_row(raw)
            if validation.valid:
                continue
            invalid = InvalidRow(record_index=raw.index, line_no=raw.line_no, errors=tuple(validation.errors))
            checked.invalid_rows.append(invalid)
            self._log(
                logging.ERROR,
                "validate",
                f"Validation errors found in row {raw.index} (line {raw.line_no}): "
                + "; ".join(validation.violations),
            )
            if self.report is not None:
                self.report.add_item(
                    status=STATUS_INVALID,
                    record_index=raw.index,
                    line_no=raw.line_no,
                    errors=validation.errors,
                )
        return checked

    def _validation_pass(self, cancel: CancellationToken) -> FileValidation:
        self.state = PipelineState.VALIDATING_FILE
        try:
            with self.source.open() as rows:
                checked = self.validate_file(rows, cancel)
        except RowSourceError as exc:
            self.state = PipelineState.FATAL
            self._log(logging.ERROR, "source", f"Source read failed: {exc}")
            raise
        if self.report is not None:
            self.report.summary.rows_total = checked.rows_total
        return checked

    def _submission_pass(self, cancel: CancellationToken, result: ImportResult) -> bool:
        try:
            with self.source.open() as rows:
                for raw in rows:
                    if cancel.cancelled:
                        return False
                    self._log(logging.INFO, "submit", f"Importing row {raw.index}")
                    result.outcomes.append(self._submit_row(raw, result))
        except RowSourceError as exc:
            self.state = PipelineState.FATAL
            self._log(logging.ERROR, "source", f"Source read failed: {exc}")
            raise
        return True

    def _build_request(self, raw: RawRow, result: ImportResult) -> CreateTransactionRequest:
        """
        Назначение:
            Повторная проверка строки второго прохода перед отправкой.
            Строка за пределами проверенных или ставшая невалидной -> SourceChangedError.
        """
        if raw.index >= result.rows_validated:
            raise SourceChangedError(
                f"Record {raw.index} was not present during validation",
                record_index=raw.index,
            )
        validation = self.validator.validate_row(raw)
        if not validation.valid:
            raise SourceChangedError(
                f"Record {raw.index} no longer passes validation: " + "; ".join(validation.violations),
                record_index=raw.index,
                violations=validation.violations,
            )
        return self.transformer.to_request(self.parser.parse(raw).record)

    def _submit_row(self, raw: RawRow, result: ImportResult) -> SubmissionOutcome:
        payload = None
        try:
            request = self._build_request(raw, result)
            payload = request.to_payload()
            response = self.client.createTransaction(request)
        except Exception as exc:
            self.state = PipelineState.FATAL
            result.outcome = ImportOutcome.FATAL
            self._log(
                logging.ERROR,
                "submit",
                f"Unexpected error sending import request for record {raw.index}: {exc}",
            )
            if self.report is not None:
                self.report.add_item(
                    status=STATUS_FAILED,
                    record_index=raw.index,
                    line_no=raw.line_no,
                    payload=payload,
                    errors=[
                        ValidationErrorItem(
                            stage=DiagnosticStage.SUBMIT,
                            code=getattr(exc, "code", None) or ErrorCode.UNEXPECTED_ERROR.value,
                            field=None,
                            message=str(exc),
                        )
                    ],
                    meta=exc.to_dict() if isinstance(exc, AppError) else {},
                )
                self.report.set_outcome(ImportOutcome.FATAL)
            raise ImportAbortedError(
                f"Import aborted at record {raw.index}: {exc}",
                result=result,
                record_index=raw.index,
            ) from exc

        if response.success:
            self._log(
                logging.INFO,
                "submit",
                f"Transaction id {response.transaction_id} imported from record {raw.index} successfully",
            )
            if self.report is not None:
                self.report.add_item(
                    status=STATUS_OK,
                    record_index=raw.index,
                    line_no=raw.line_no,
                    meta={"transaction_id": response.transaction_id, "status_code": response.status_code},
                )
            return SubmissionOutcome(
                record_index=raw.index,
                succeeded=True,
                transaction_id=response.transaction_id,
                status_code=response.status_code,
            )

        self._log(
            logging.ERROR,
            "submit",
            f"Transaction imported from record {raw.index} failed with status code "
            f"{response.status_code}, message {response.message}",
        )
        if self.report is not None:
            self.report.add_item(
                status=STATUS_REJECTED,
                record_index=raw.index,
                line_no=raw.line_no,
                payload=payload,
                errors=[
                    ValidationErrorItem(
                        stage=DiagnosticStage.SUBMIT,
                        code=ErrorCode.REJECTED.value,
                        field=None,
                        message=response.message or f"status {response.status_code}",
                    )
                ],
                meta={"status_code": response.status_code},
            )
        return SubmissionOutcome(
            record_index=raw.index,
            succeeded=False,
            status_code=response.status_code,
            message=response.message,
        )

    def _cancelled(self, result: ImportResult) -> ImportResult:
        self.state = PipelineState.CANCELLED
        result.outcome = ImportOutcome.CANCELLED
        self._log(logging.INFO, "import", "Operation cancelled")
        return self._finish(result)

    def _finish(self, result: ImportResult) -> ImportResult:
        if self.report is not None:
            self.report.set_outcome(result.outcome)
        return result

    def _log(self, level: int, component: str, message: str) -> None:
        logEvent(self.logger, level, self.run_id, component, message)
