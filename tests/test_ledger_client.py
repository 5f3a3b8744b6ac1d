from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from ledger_import.domain.models import Direction
from ledger_import.domain.transform.request_builder import CreateTransactionRequest, CreateTransfer
from ledger_import.infra.http.ledger_client import ApiError, LedgerApiClient
from ledger_import.infra.http.submission_client import LedgerSubmissionClient


def make_client(transport: httpx.BaseTransport, *, retries: int = 0) -> LedgerApiClient:
    return LedgerApiClient(
        baseUrl="https://ledger.local/api/",
        apiKey="secret-key",
        retries=retries,
        retryBackoffSeconds=0,
        transport=transport,
    )


def make_request() -> CreateTransactionRequest:
    return CreateTransactionRequest(
        source="Recharge",
        source_type="Income",
        transfers=[
            CreateTransfer(Decimal("1.5"), "3-A", "a", Direction.DEBIT),
            CreateTransfer(Decimal("1.5"), "3-B", "b", Direction.CREDIT),
        ],
    )


def test_post_sends_api_key_and_json():
    payload = {"name": "x"}

    def responder(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Auth-Token"] == "secret-key"
        assert request.url.path == "/api/v2/transactions"
        assert json.loads(request.content.decode("utf-8")) == payload
        return httpx.Response(200, json={"id": "t-1"})

    client = make_client(httpx.MockTransport(responder))

    response = client.post("v2/transactions", payload)

    assert response.ok
    assert response.body == {"id": "t-1"}
    assert response.snippet.startswith("{")


def test_post_retries_on_429_and_succeeds():
    calls = {"count": 0}

    def responder(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(429, text="slow down")
        return httpx.Response(201, json={"id": "t-2"})

    client = make_client(httpx.MockTransport(responder), retries=2)

    response = client.post("/v2/transactions", {})

    assert response.status_code == 201
    assert response.body == {"id": "t-2"}
    assert client.getRetryAttempts() == 1


def test_post_raises_network_error_after_retries():
    def responder(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom")

    client = make_client(httpx.MockTransport(responder), retries=1)

    with pytest.raises(ApiError) as exc:
        client.post("/v2/transactions", {})

    assert exc.value.code == "NETWORK_ERROR"
    assert client.getRetryAttempts() == 1


def test_create_transaction_success():
    seen: dict = {}

    def responder(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(200, json={"id": "txn-42", "status": "Scheduled"})

    submission = LedgerSubmissionClient(make_client(httpx.MockTransport(responder)))

    result = submission.createTransaction(make_request())

    assert result.success is True
    assert result.transaction_id == "txn-42"
    assert seen["body"]["transfers"][0]["amount"] == "1.5"
    assert seen["body"]["sourceType"] == "Income"


def test_create_transaction_rejection_is_a_result():
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "Invalid financial segment string"})

    submission = LedgerSubmissionClient(make_client(httpx.MockTransport(responder)))

    result = submission.createTransaction(make_request())

    assert result.success is False
    assert result.status_code == 400
    assert result.message == "Invalid financial segment string"


def test_create_transaction_rejection_falls_back_to_body_text():
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, text="unprocessable")

    submission = LedgerSubmissionClient(make_client(httpx.MockTransport(responder)))

    result = submission.createTransaction(make_request())

    assert result.success is False
    assert result.message == "unprocessable"


@pytest.mark.parametrize("status,code", [(401, "UNAUTHORIZED"), (403, "FORBIDDEN")])
def test_create_transaction_auth_errors_raise(status, code):
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="denied")

    submission = LedgerSubmissionClient(make_client(httpx.MockTransport(responder)))

    with pytest.raises(ApiError) as exc:
        submission.createTransaction(make_request())

    assert exc.value.code == code
    assert exc.value.status_code == status


def test_create_transaction_success_without_id_raises():
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="ok")

    submission = LedgerSubmissionClient(make_client(httpx.MockTransport(responder)))

    with pytest.raises(ApiError) as exc:
        submission.createTransaction(make_request())

    assert exc.value.code == "INVALID_JSON"


def test_exhausted_429_retries_return_last_response():
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down")

    client = make_client(httpx.MockTransport(responder), retries=2)
    submission = LedgerSubmissionClient(client)

    result = submission.createTransaction(make_request())

    assert result.success is False
    assert result.status_code == 429
    assert result.message == "slow down"
    assert client.getRetryAttempts() == 2


def test_post_is_not_resent_after_server_error():
    calls = {"count": 0}

    def responder(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(503, text="maintenance")

    client = make_client(httpx.MockTransport(responder), retries=3)

    result = LedgerSubmissionClient(client).createTransaction(make_request())

    assert calls["count"] == 1
    assert result.success is False
    assert result.status_code == 503
    assert client.getRetryAttempts() == 0


def test_post_is_not_resent_after_read_timeout():
    calls = {"count": 0}

    def responder(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ReadTimeout("no answer", request=request)
        return httpx.Response(201, json={"id": "t-dup"})

    client = make_client(httpx.MockTransport(responder), retries=3)

    with pytest.raises(ApiError) as exc:
        LedgerSubmissionClient(client).createTransaction(make_request())

    assert exc.value.code == "NETWORK_ERROR"
    assert calls["count"] == 1


def test_post_is_resent_when_connection_was_never_made():
    calls = {"count": 0}

    def responder(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectTimeout("connect timeout", request=request)
        return httpx.Response(201, json={"id": "t-3"})

    client = make_client(httpx.MockTransport(responder), retries=1)

    result = LedgerSubmissionClient(client).createTransaction(make_request())

    assert result.transaction_id == "t-3"
    assert calls["count"] == 2


def test_idempotent_send_retries_server_errors():
    calls = {"count": 0}

    def responder(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json={"status": "ok"})

    client = make_client(httpx.MockTransport(responder), retries=1)

    response = client.send("GET", "/v2/transactions/t-1")

    assert response.ok
    assert calls["count"] == 2
