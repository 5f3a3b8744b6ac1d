from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from ledger_import.domain.error_codes import ErrorCode
from ledger_import.errors import AppError

AUTH_HEADER = "X-Auth-Token"
SNIPPET_LIMIT = 200


class ApiError(AppError):
    """
    Назначение:
        Ошибка обращения к ledger API, после которой продолжать прогон нельзя.

    Контракт:
        - code: NETWORK_ERROR, UNAUTHORIZED, FORBIDDEN, INVALID_JSON или HTTP_<status>.
        - status_code отсутствует для сетевых ошибок.
        - body_snippet: начало тела ответа для логов и отчёта.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_snippet: str | None = None,
        code: str | None = None,
    ):
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if body_snippet:
            details["body_snippet"] = body_snippet
        super().__init__(
            category="api",
            code=code or (f"HTTP_{status_code}" if status_code else ErrorCode.HTTP_ERROR.value),
            message=message,
            retryable=False,
            details=details,
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


@dataclass(frozen=True)
class RetryPolicy:
    """
    Назначение:
        Повторы с экспоненциальной задержкой.

    Ограничения:
        - Идемпотентный запрос повторяется на 429/5xx и любой сетевой сбой.
        - Неидемпотентный (POST) повторяется только если сервис его точно не обработал:
          429 или сбой установки соединения. Таймаут чтения и 5xx не повторяются.
    """

    retries: int = 3
    backoff_seconds: float = 0.5

    def should_retry(self, status_code: int, idempotent: bool = True) -> bool:
        if status_code == 429:
            return True
        return idempotent and 500 <= status_code <= 599

    def should_retry_error(self, exc: httpx.TransportError, idempotent: bool = True) -> bool:
        return idempotent or isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))

    def delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** attempt)


@dataclass(frozen=True)
class ApiResponse:
    """
    Ответ сервиса после ретраев: статус, разобранное тело (JSON или текст), фрагмент тела.
    """

    status_code: int
    body: Any | None
    snippet: str | None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code <= 299


class LedgerApiClient:
    """
    Назначение/ответственность:
        Транспорт к ledger API: базовый URL, ключ в заголовке X-Auth-Token,
        TLS-настройки и ретраи.

    Ограничения:
        - Статус ответа не интерпретирует: любой ответ после ретраев возвращается как ApiResponse.
        - Сетевая ошибка без права на повтор или после исчерпания ретраев -> ApiError(NETWORK_ERROR).
    """

    def __init__(
        self,
        baseUrl: str,
        apiKey: str,
        timeoutSeconds: float = 20.0,
        tlsSkipVerify: bool = False,
        caFile: str | None = None,
        retries: int = 3,
        retryBackoffSeconds: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ):
        verify: bool | str = caFile or True
        if tlsSkipVerify:
            verify = False

        self.baseUrl = baseUrl.rstrip("/")
        self.policy = RetryPolicy(retries=retries, backoff_seconds=retryBackoffSeconds)
        self.retry_attempts = 0
        self.client = httpx.Client(
            base_url=self.baseUrl,
            timeout=timeoutSeconds,
            verify=verify,
            transport=transport,
            headers={"accept": "application/json", AUTH_HEADER: apiKey},
        )

    def close(self) -> None:
        self.client.close()

    def getRetryAttempts(self) -> int:
        """Сколько повторных попыток выполнено за время жизни клиента."""
        return self.retry_attempts

    def post(self, path: str, payload: Any) -> ApiResponse:
        return self.send("POST", path, json=payload, idempotent=False)

    def send(self, method: str, path: str, json: Any | None = None, idempotent: bool = True) -> ApiResponse:
        attempt = 0
        while True:
            try:
                resp = self.client.request(method, path, json=json)
            except httpx.TransportError as exc:
                if attempt >= self.policy.retries or not self.policy.should_retry_error(exc, idempotent):
                    raise ApiError(
                        f"Network error calling {method} {path}: {exc}",
                        code=ErrorCode.NETWORK_ERROR.value,
                    ) from exc
            else:
                if not (self.policy.should_retry(resp.status_code, idempotent) and attempt < self.policy.retries):
                    return self._to_response(resp)
            self.retry_attempts += 1
            time.sleep(self.policy.delay(attempt))
            attempt += 1

    @staticmethod
    def _to_response(resp: httpx.Response) -> ApiResponse:
        text = resp.text
        if not text:
            return ApiResponse(status_code=resp.status_code, body=None, snippet=None)
        try:
            body = resp.json()
        except ValueError:
            body = text
        return ApiResponse(status_code=resp.status_code, body=body, snippet=text[:SNIPPET_LIMIT])
