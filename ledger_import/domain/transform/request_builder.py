from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from ledger_import.domain.models import Direction, TransactionRecord, TransferLeg


@dataclass(frozen=True)
class CreateTransfer:
    amount: Decimal
    financial_segment_string: str
    description: str | None
    direction: Direction


@dataclass(frozen=True)
class MetadataEntry:
    name: str
    value: str


@dataclass
class CreateTransactionRequest:
    """
    Назначение:
        Запрос на создание транзакции в ledger-сервисе.
    """

    source: str
    source_type: str
    description: str | None = None
    merchant_tracking_number: str | None = None
    merchant_tracking_url: str | None = None
    processor_tracking_number: str | None = None
    kfs_tracking_number: str | None = None
    validate_financial_segment_strings: bool = False
    auto_approve: bool = False
    transfers: list[CreateTransfer] = field(default_factory=list)
    metadata: list[MetadataEntry] | None = None

    def to_payload(self) -> dict[str, Any]:
        """
        Строит JSON-тело POST /transactions строго по контракту сервиса.
        """
        payload: dict[str, Any] = {
            "source": self.source,
            "sourceType": self.source_type,
            "merchantTrackingNumber": _blank_to_none(self.merchant_tracking_number),
            "merchantTrackingUrl": _blank_to_none(self.merchant_tracking_url),
            "processorTrackingNumber": _blank_to_none(self.processor_tracking_number),
            "kfsTrackingNumber": _blank_to_none(self.kfs_tracking_number),
            "description": _blank_to_none(self.description),
            "validateFinancialSegmentStrings": self.validate_financial_segment_strings,
            "autoApprove": self.auto_approve,
            "transfers": [
                {
                    "amount": format(t.amount, "f"),
                    "financialSegmentString": t.financial_segment_string,
                    "description": _blank_to_none(t.description),
                    "direction": t.direction.value,
                }
                for t in self.transfers
            ],
        }
        if self.metadata:
            payload["metadata"] = [{"name": m.name, "value": m.value} for m in self.metadata]
        return payload


def _blank_to_none(value: str | None) -> str | None:
    if value is None or value.strip() == "":
        return None
    return value


def _is_present(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def _to_transfer(leg: TransferLeg) -> CreateTransfer:
    return CreateTransfer(
        amount=leg.amount,
        financial_segment_string=leg.account,
        description=leg.description,
        direction=leg.direction,
    )


def is_complete_leg(leg: TransferLeg) -> bool:
    """
    Назначение:
        Опциональный перевод отправляется только если заданы сумма, счёт и
        направление. Перевод с частично заполненными полями считается отсутствующим.
    """
    return leg.amount is not None and _is_present(leg.account) and leg.direction is not None


class RecordTransformer:
    """
    Назначение/ответственность:
        Маппинг валидной TransactionRecord в CreateTransactionRequest.

    Ограничения:
        - Флаги validate_coa/auto_approve задаются конфигурацией прогона, не строкой.
        - Ожидает запись, прошедшую Validator; сам ошибок не порождает.
    """

    def __init__(self, validate_coa: bool = False, auto_approve: bool = False) -> None:
        self.validate_coa = validate_coa
        self.auto_approve = auto_approve

    def to_request(self, record: TransactionRecord) -> CreateTransactionRequest:
        request = CreateTransactionRequest(
            source=record.source,
            source_type=record.source_type,
            description=record.txn_description,
            merchant_tracking_number=record.merchant_tracking_number,
            merchant_tracking_url=record.merchant_tracking_url,
            processor_tracking_number=record.processor_tracking_number,
            kfs_tracking_number=record.kfs_tracking_number,
            validate_financial_segment_strings=self.validate_coa,
            auto_approve=self.auto_approve,
            transfers=[_to_transfer(record.legs[0]), _to_transfer(record.legs[1])],
        )
        for leg in record.legs[2:]:
            if is_complete_leg(leg):
                request.transfers.append(_to_transfer(leg))
        if _is_present(record.metadata_name) and _is_present(record.metadata_value):
            request.metadata = [MetadataEntry(name=record.metadata_name, value=record.metadata_value)]
        return request
