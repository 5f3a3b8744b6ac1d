from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Mapping


class DiagnosticStage(str, Enum):
    """
    Назначение:
        Источник диагностического события в пайплайне.
    """

    READ = "READ"
    PARSE = "PARSE"
    VALIDATE = "VALIDATE"
    SUBMIT = "SUBMIT"


class Direction(str, Enum):
    CREDIT = "Credit"
    DEBIT = "Debit"


class ImportOutcome(str, Enum):
    """
    Назначение:
        Итог прогона импорта, который CLI отображает в exit code.
    """

    SUCCEEDED = "SUCCEEDED"
    FILE_INVALID = "FILE_INVALID"
    CANCELLED = "CANCELLED"
    FATAL = "FATAL"


@dataclass
class ValidationErrorItem:
    """
    Назначение:
        Диагностическое сообщение пайплайна (ошибка чтения/разбора/валидации).
    """

    stage: DiagnosticStage
    code: str
    field: str | None
    message: str


@dataclass(frozen=True)
class RawRow:
    """
    Назначение:
        Сырая строка источника: значения по именам колонок.

    Поля:
        index: 0-based номер записи (без заголовка)
        line_no: физический номер строки файла
        values: колонка -> значение (пустые ячейки уже приведены к None)
        errors: структурные ошибки строки (например, число колонок)
    """

    index: int
    line_no: int
    values: Mapping[str, str | None]
    errors: tuple[ValidationErrorItem, ...] = ()


@dataclass
class TransferLeg:
    amount: Decimal | None = None
    account: str | None = None
    description: str | None = None
    direction: Direction | None = None


@dataclass
class TransactionRecord:
    """
    Назначение:
        Типизированная строка файла импорта.

    Инварианты:
        - legs всегда содержит 4 элемента: 0 и 1 обязательные, 2 и 3 опциональные.
        - Значения не нормализуются дальше trim; пустые строки -> None.
    """

    source: str | None = None
    source_type: str | None = None
    txn_description: str | None = None
    merchant_tracking_number: str | None = None
    merchant_tracking_url: str | None = None
    processor_tracking_number: str | None = None
    kfs_tracking_number: str | None = None
    legs: list[TransferLeg] = field(default_factory=lambda: [TransferLeg() for _ in range(4)])
    metadata_name: str | None = None
    metadata_value: str | None = None


@dataclass
class ValidationResult:
    """
    Назначение:
        Результат валидации одной записи.

    Поля:
        errors: все нарушения (без short-circuit)
        violations: человекочитаемые сообщения тех же нарушений
    """

    errors: list[ValidationErrorItem] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def violations(self) -> list[str]:
        return [e.message for e in self.errors]


@dataclass(frozen=True)
class SubmissionResult:
    """
    Назначение:
        Ответ клиента ledger-сервиса на createTransaction.
    """

    success: bool
    transaction_id: str | None = None
    status_code: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class SubmissionOutcome:
    """
    Назначение:
        Итог отправки одной строки.
    """

    record_index: int
    succeeded: bool
    transaction_id: str | None = None
    status_code: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class InvalidRow:
    record_index: int
    line_no: int
    errors: tuple[ValidationErrorItem, ...]

    @property
    def violations(self) -> list[str]:
        return [e.message for e in self.errors]


@dataclass
class ImportResult:
    """
    Назначение:
        Результат прогона ImportPipeline.

    Поля:
        outcome: итог (SUCCEEDED/FILE_INVALID/CANCELLED/FATAL)
        rows_validated: количество строк, прошедших через проход валидации
        invalid_rows: невалидные строки с нарушениями
        outcomes: результаты отправки по строкам в порядке файла
    """

    outcome: ImportOutcome
    rows_validated: int = 0
    invalid_rows: list[InvalidRow] = field(default_factory=list)
    outcomes: list[SubmissionOutcome] = field(default_factory=list)

    @property
    def submitted(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def rejected(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)
