from __future__ import annotations

from typing import ContextManager, Iterator, Protocol

from ledger_import.domain.models import RawRow


class RowSourceProtocol(Protocol):
    """
    Назначение/ответственность:
        Перезапускаемый источник сырых строк для двухпроходного импорта.

    Контракт:
        - open() -> контекстный менеджер, выдающий ленивый итератор RawRow.
        - Каждый open() начинает чтение с первой строки; ресурс закрывается
          на выходе из контекста при любом исходе.
        - Ошибки открытия (файл отсутствует, нет доступа) -> RowSourceError.
    """

    def open(self) -> ContextManager[Iterator[RawRow]]: ...


__all__ = ["RowSourceProtocol"]
