from __future__ import annotations

import threading


class CancellationToken:
    """
    Назначение:
        Кооперативный сигнал отмены прогона импорта.

    Инварианты/гарантии:
        - После cancel() флаг не сбрасывается.
        - Безопасен для установки из обработчика сигнала или другого потока.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


__all__ = ["CancellationToken"]
