from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from ledger_import.domain.error_codes import ErrorCode
from ledger_import.domain.models import (
    DiagnosticStage,
    Direction,
    RawRow,
    TransactionRecord,
    ValidationErrorItem,
)
from ledger_import.domain.validation.schema import RECORD_SCHEMA, FieldSpec, OneOf

# NULL означает пустое значение только в числовых колонках и колонках направления.
NULL_MARKER = "null"
TYPED_KINDS = ("decimal", "direction")


@dataclass
class ParseResult:
    """
    Назначение:
        Результат разбора сырой строки в TransactionRecord.

    Поля:
        record: запись (поля, которые не удалось разобрать, остаются None)
        errors: структурные ошибки строки и ошибки разбора значений
        failed_fields: колонки, значения которых не удалось разобрать
    """

    record: TransactionRecord
    errors: list[ValidationErrorItem] = field(default_factory=list)
    failed_fields: set[str] = field(default_factory=set)


def parse_decimal(value: str) -> Decimal:
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal value: {value}") from exc
    if not parsed.is_finite():
        raise ValueError(f"Invalid decimal value: {value}")
    return parsed


def parse_direction(value: str) -> Direction:
    normalized = value.strip().lower()
    for direction in Direction:
        if direction.value.lower() == normalized:
            return direction
    raise ValueError(f"Invalid direction value: {value}")


def _choices_of(spec: FieldSpec) -> tuple[str, ...]:
    for rule in spec.rules:
        if isinstance(rule, OneOf):
            return rule.choices
    return tuple(d.value for d in Direction)


class RecordParser:
    """
    Назначение/ответственность:
        Преобразует RawRow в TransactionRecord по таблице полей схемы.

    Ограничения:
        - Не бросает исключений на плохих данных: нераспознанные числа и
          значения перечислений возвращаются как диагностика.
        - Не проверяет правила схемы (это делает Validator).
    """

    def __init__(self, schema: tuple[FieldSpec, ...] = RECORD_SCHEMA) -> None:
        self.schema = schema

    def parse(self, raw: RawRow) -> ParseResult:
        result = ParseResult(record=TransactionRecord(), errors=list(raw.errors))
        for spec in self.schema:
            value = raw.values.get(spec.column)
            if value is None or (spec.kind in TYPED_KINDS and value.lower() == NULL_MARKER):
                continue
            parsed = self._parse_value(spec, value, result)
            if parsed is not None:
                spec.set_value(result.record, parsed)
        return result

    def _parse_value(self, spec: FieldSpec, value: str, result: ParseResult) -> Any:
        if spec.kind == "decimal":
            try:
                return parse_decimal(value)
            except ValueError:
                self._fail(result, spec, ErrorCode.INVALID_DECIMAL, f"{spec.column} must be a decimal number")
                return None
        if spec.kind == "direction":
            try:
                return parse_direction(value)
            except ValueError:
                choices = ", ".join(_choices_of(spec))
                self._fail(result, spec, ErrorCode.INVALID_ENUM, f"{spec.column} must be one of {choices}")
                return None
        return value

    @staticmethod
    def _fail(result: ParseResult, spec: FieldSpec, code: ErrorCode, message: str) -> None:
        result.failed_fields.add(spec.column)
        result.errors.append(
            ValidationErrorItem(
                stage=DiagnosticStage.PARSE,
                code=code.value,
                field=spec.column,
                message=message,
            )
        )
