from __future__ import annotations

from typing import TYPE_CHECKING

from ledger_import.domain.error_codes import ErrorCode
from ledger_import.errors import AppError

if TYPE_CHECKING:
    from ledger_import.domain.models import ImportResult


class RowSourceError(AppError):
    """
    Назначение:
        Критическая ошибка источника строк: файл не найден, недоступен,
        не содержит заголовка или не читается (кодировка, формат CSV).
        Прерывает проход в любом месте файла.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.SOURCE_UNAVAILABLE, path: str | None = None):
        super().__init__(
            category="source",
            code=code.value,
            message=message,
            retryable=False,
            details={"path": path} if path else {},
        )
        self.path = path


class SourceChangedError(AppError):
    """
    Назначение:
        Строка второго прохода не совпадает с проверенной: файл изменён
        между проходами (строка стала невалидной или добавлена).
    """

    def __init__(self, message: str, record_index: int, violations: list[str] | None = None):
        super().__init__(
            category="source",
            code=ErrorCode.SOURCE_CHANGED.value,
            message=message,
            retryable=False,
            details={"record_index": record_index, "violations": list(violations or [])},
        )
        self.record_index = record_index


class ImportAbortedError(AppError):
    """
    Назначение:
        Непредвиденная ошибка при отправке строки (сеть, авторизация,
        изменение файла между проходами).
    Инварианты/гарантии:
        - result содержит частичный результат прогона с outcome=FATAL.
        - Исходное исключение доступно через __cause__.
    """

    def __init__(self, message: str, result: "ImportResult", record_index: int):
        super().__init__(
            category="import",
            code=ErrorCode.UNEXPECTED_ERROR.value,
            message=message,
            retryable=False,
            details={"record_index": record_index},
        )
        self.result = result
        self.record_index = record_index


__all__ = ["RowSourceError", "SourceChangedError", "ImportAbortedError"]
