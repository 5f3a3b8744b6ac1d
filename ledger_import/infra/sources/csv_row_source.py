from __future__ import annotations

import csv
from contextlib import contextmanager
from typing import Iterator, TextIO

from ledger_import.domain.error_codes import ErrorCode
from ledger_import.domain.exceptions import RowSourceError
from ledger_import.domain.models import DiagnosticStage, RawRow, ValidationErrorItem


def parseCell(value: str | None) -> str | None:
    """Обрезает пробелы; пустая ячейка -> None."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


class CsvRowSource:
    """
    Назначение/ответственность:
        CSV-источник строк с заголовком. Колонки связываются с полями записи по имени.

    Ограничения:
        - Неверное число колонок в строке не прерывает чтение: строка отдаётся
          с диагностикой INVALID_COLUMN_COUNT и становится невалидной.
        - Пропускаются только полностью пустые строки файла. Строка из одних
          разделителей остаётся записью с индексом.
        - Ошибка декодирования или разбора CSV прерывает чтение: RowSourceError(SOURCE_FORMAT_ERROR).
    """

    def __init__(self, path: str, delimiter: str = ",") -> None:
        self.path = path
        self.delimiter = delimiter

    @contextmanager
    def open(self) -> Iterator[Iterator[RawRow]]:
        try:
            f = open(self.path, "r", encoding="utf-8-sig", newline="")
        except OSError as exc:
            raise RowSourceError(f"Cannot open source file {self.path}: {exc}", path=self.path) from exc
        try:
            yield self._rows(f)
        finally:
            f.close()

    def _rows(self, f: TextIO) -> Iterator[RawRow]:
        reader = csv.DictReader(f, delimiter=self.delimiter)
        try:
            fieldnames = reader.fieldnames
            if fieldnames is None:
                raise RowSourceError(
                    f"Missing header in source file {self.path}",
                    code=ErrorCode.SOURCE_FORMAT_ERROR,
                    path=self.path,
                )
            header = [name.strip() for name in fieldnames]
            for index, row in enumerate(reader):
                yield self._toRawRow(index, reader.line_num, header, fieldnames, row)
        except (UnicodeDecodeError, csv.Error) as exc:
            raise RowSourceError(
                f"Cannot read source file {self.path} near line {reader.line_num + 1}: {exc}",
                code=ErrorCode.SOURCE_FORMAT_ERROR,
                path=self.path,
            ) from exc

    @staticmethod
    def _toRawRow(index: int, lineNo: int, header: list[str], fieldnames, row: dict) -> RawRow:
        errors: list[ValidationErrorItem] = []
        extra = row.pop(None, None)
        got = len(header) + len(extra or []) - sum(1 for v in row.values() if v is None)
        if extra or any(v is None for v in row.values()):
            errors.append(
                ValidationErrorItem(
                    stage=DiagnosticStage.READ,
                    code=ErrorCode.INVALID_COLUMN_COUNT.value,
                    field=None,
                    message=f"Invalid column count: expected {len(header)}, got {got}",
                )
            )
        values = {name: parseCell(row.get(key)) for name, key in zip(header, fieldnames)}
        return RawRow(index=index, line_no=lineNo, values=values, errors=tuple(errors))
