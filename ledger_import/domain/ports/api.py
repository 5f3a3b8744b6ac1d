from __future__ import annotations

from typing import Protocol, runtime_checkable

from ledger_import.domain.models import SubmissionResult
from ledger_import.domain.transform.request_builder import CreateTransactionRequest


@runtime_checkable
class SubmissionClientProtocol(Protocol):
    """
    Назначение:
        Контракт клиента ledger-сервиса для создания транзакций.

    Контракт:
        - createTransaction(request) -> SubmissionResult
        - Бизнес-отказ сервиса возвращается как SubmissionResult(success=False).
        - Транспортные ошибки и ошибки авторизации пробрасываются исключением.
    """

    def createTransaction(self, request: CreateTransactionRequest) -> SubmissionResult: ...


__all__ = ["SubmissionClientProtocol"]
