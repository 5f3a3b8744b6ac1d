from __future__ import annotations

from typing import Any

from ledger_import.common.text import truncateText
from ledger_import.domain.error_codes import ErrorCode
from ledger_import.domain.models import SubmissionResult
from ledger_import.domain.ports.api import SubmissionClientProtocol
from ledger_import.domain.transform.request_builder import CreateTransactionRequest
from ledger_import.infra.http.ledger_client import ApiError, ApiResponse, LedgerApiClient

TRANSACTIONS_PATH = "/v2/transactions"
AUTH_STATUSES = (401, 403)
ID_KEYS = ("id", "Id", "transactionId")
MESSAGE_KEYS = ("message", "detail", "title", "error")


class LedgerSubmissionClient(SubmissionClientProtocol):
    """
    Назначение/ответственность:
        Адаптер SubmissionClientProtocol поверх LedgerApiClient:
        POST /v2/transactions и разбор ответа в SubmissionResult.

    Ограничения:
        - 2xx с id транзакции -> успех.
        - 401/403 и 2xx без id -> ApiError (прогон прерывается).
        - Прочие статусы -> отказ по строке (success=False), прогон продолжается.
    """

    def __init__(self, client: LedgerApiClient, path: str = TRANSACTIONS_PATH):
        self.client = client
        self.path = path

    def createTransaction(self, request: CreateTransactionRequest) -> SubmissionResult:
        response = self.client.post(self.path, request.to_payload())

        if response.ok:
            transaction_id = _find_text(response.body, ID_KEYS)
            if transaction_id is None:
                raise ApiError(
                    f"Response {response.status_code} does not contain transaction id",
                    status_code=response.status_code,
                    body_snippet=response.snippet,
                    code=ErrorCode.INVALID_JSON.value,
                )
            return SubmissionResult(success=True, transaction_id=transaction_id, status_code=response.status_code)

        if response.status_code in AUTH_STATUSES:
            raise ApiError(
                f"Ledger api refused the api key (HTTP {response.status_code})",
                status_code=response.status_code,
                body_snippet=response.snippet,
                code=ErrorCode.from_status(response.status_code).value,
            )

        return SubmissionResult(
            success=False,
            status_code=response.status_code,
            message=_rejection_message(response),
        )


def _find_text(body: Any, keys: tuple[str, ...]) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in keys:
        value = body.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return None


def _rejection_message(response: ApiResponse) -> str:
    message = _find_text(response.body, MESSAGE_KEYS) or response.snippet
    return truncateText(message or f"Unexpected status {response.status_code}")
