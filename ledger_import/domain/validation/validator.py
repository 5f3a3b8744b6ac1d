from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

from ledger_import.domain.error_codes import ErrorCode
from ledger_import.domain.models import (
    DiagnosticStage,
    RawRow,
    TransactionRecord,
    ValidationErrorItem,
    ValidationResult,
)
from ledger_import.domain.transform.record_parser import RecordParser
from ledger_import.domain.validation.schema import (
    RECORD_SCHEMA,
    FieldSpec,
    MaxLength,
    NumericRange,
    OneOf,
    Required,
    RuleDescriptor,
)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _format_decimal(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _error(spec: FieldSpec, code: ErrorCode, message: str) -> ValidationErrorItem:
    return ValidationErrorItem(
        stage=DiagnosticStage.VALIDATE,
        code=code.value,
        field=spec.column,
        message=message,
    )


def _check_required(spec: FieldSpec, rule: Required, value: Any) -> ValidationErrorItem | None:
    if _is_blank(value):
        return _error(spec, ErrorCode.REQUIRED_FIELD_MISSING, f"{spec.column} is required")
    return None


def _check_max_length(spec: FieldSpec, rule: MaxLength, value: Any) -> ValidationErrorItem | None:
    if value is None:
        return None
    if len(str(value)) > rule.limit:
        return _error(
            spec,
            ErrorCode.MAX_LENGTH_EXCEEDED,
            f"{spec.column} must be at most {rule.limit} characters",
        )
    return None


def _check_range(spec: FieldSpec, rule: NumericRange, value: Any) -> ValidationErrorItem | None:
    if value is None:
        return None
    if not isinstance(value, Decimal) or not (rule.minimum <= value <= rule.maximum):
        return _error(
            spec,
            ErrorCode.OUT_OF_RANGE,
            f"{spec.column} must be between {_format_decimal(rule.minimum)} and {_format_decimal(rule.maximum)}",
        )
    return None


def _check_one_of(spec: FieldSpec, rule: OneOf, value: Any) -> ValidationErrorItem | None:
    if value is None:
        return None
    raw = getattr(value, "value", value)
    if raw not in rule.choices:
        return _error(
            spec,
            ErrorCode.INVALID_ENUM,
            f"{spec.column} must be one of {', '.join(rule.choices)}",
        )
    return None


RULE_CHECKS: dict[type, Callable[[FieldSpec, Any, Any], ValidationErrorItem | None]] = {
    Required: _check_required,
    MaxLength: _check_max_length,
    NumericRange: _check_range,
    OneOf: _check_one_of,
}


class Validator:
    """
    Назначение/ответственность:
        Применяет таблицу правил схемы к записи.

    Инварианты/гарантии:
        - Проверяются все правила всех полей, ошибки объединяются.
        - Нет состояния между вызовами: результат зависит только от входа.
        - Не пишет в лог, логирует пайплайн.
    """

    def __init__(self, schema: tuple[FieldSpec, ...] = RECORD_SCHEMA, parser: RecordParser | None = None) -> None:
        self.schema = schema
        self.parser = parser or RecordParser(schema)

    def validate(self, record: TransactionRecord, skip_fields: set[str] | None = None) -> ValidationResult:
        result = ValidationResult()
        for spec in self.schema:
            if skip_fields and spec.column in skip_fields:
                continue
            value = spec.get_value(record)
            for rule in spec.rules:
                error = self._apply_rule(spec, rule, value)
                if error is not None:
                    result.errors.append(error)
        return result

    def validate_row(self, raw: RawRow) -> ValidationResult:
        """
        Назначение:
            Разбор + валидация сырой строки.

        Алгоритм:
            - Ошибки разбора и структуры строки идут в результат первыми.
            - Поля, которые не удалось разобрать, правилами не проверяются,
              чтобы не дублировать сообщение "is required".
        """
        parsed = self.parser.parse(raw)
        checked = self.validate(parsed.record, skip_fields=parsed.failed_fields)
        return ValidationResult(errors=[*parsed.errors, *checked.errors])

    @staticmethod
    def _apply_rule(spec: FieldSpec, rule: RuleDescriptor, value: Any) -> ValidationErrorItem | None:
        check = RULE_CHECKS.get(type(rule))
        if check is None:
            raise ValueError(f"Unsupported rule for {spec.column}: {rule!r}")
        return check(spec, rule, value)
