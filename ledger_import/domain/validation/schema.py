from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ledger_import.domain.models import Direction, TransactionRecord

MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("1000000000")

REQUIRED_LEGS = (0, 1)
OPTIONAL_LEGS = (2, 3)


@dataclass(frozen=True)
class Required:
    pass


@dataclass(frozen=True)
class MaxLength:
    limit: int


@dataclass(frozen=True)
class NumericRange:
    minimum: Decimal
    maximum: Decimal


@dataclass(frozen=True)
class OneOf:
    choices: tuple[str, ...]


RuleDescriptor = Required | MaxLength | NumericRange | OneOf


@dataclass(frozen=True)
class FieldSpec:
    """
    Назначение:
        Описание одного поля записи: колонка источника, тип значения и правила.

    Поля:
        column: имя колонки в CSV (используется и в сообщениях об ошибках)
        attr: имя атрибута TransactionRecord или TransferLeg
        kind: text | decimal | direction
        leg: индекс перевода для полей TransferLeg, иначе None
        rules: декларативные правила, применяемые общим движком
    """

    column: str
    attr: str
    kind: str = "text"
    leg: int | None = None
    rules: tuple[RuleDescriptor, ...] = ()

    @property
    def required(self) -> bool:
        return any(isinstance(rule, Required) for rule in self.rules)

    def get_value(self, record: TransactionRecord) -> Any:
        target = record if self.leg is None else record.legs[self.leg]
        return getattr(target, self.attr, None)

    def set_value(self, record: TransactionRecord, value: Any) -> None:
        target = record if self.leg is None else record.legs[self.leg]
        setattr(target, self.attr, value)


def _with_required(required: bool, *rules: RuleDescriptor) -> tuple[RuleDescriptor, ...]:
    return ((Required(),) if required else ()) + rules


def transfer_leg_fields(leg: int, required: bool) -> tuple[FieldSpec, ...]:
    """
    Назначение:
        Единое описание полей перевода. Обязательные и опциональные переводы
        отличаются только наличием Required.
    """
    return (
        FieldSpec(
            f"Amount{leg}",
            "amount",
            kind="decimal",
            leg=leg,
            rules=_with_required(required, NumericRange(MIN_AMOUNT, MAX_AMOUNT)),
        ),
        FieldSpec(f"CoA{leg}", "account", leg=leg, rules=_with_required(required)),
        FieldSpec(f"Description{leg}", "description", leg=leg, rules=_with_required(required, MaxLength(40))),
        FieldSpec(
            f"Direction{leg}",
            "direction",
            kind="direction",
            leg=leg,
            rules=_with_required(required, OneOf(tuple(d.value for d in Direction))),
        ),
    )


RECORD_SCHEMA: tuple[FieldSpec, ...] = (
    FieldSpec("MerchantTrackingNumber", "merchant_tracking_number", rules=(MaxLength(128),)),
    FieldSpec("MerchantTrackingUrl", "merchant_tracking_url"),
    FieldSpec("ProcessorTrackingNumber", "processor_tracking_number", rules=(MaxLength(128),)),
    FieldSpec("KfsTrackingNumber", "kfs_tracking_number", rules=(MaxLength(10),)),
    FieldSpec("Source", "source", rules=(Required(),)),
    FieldSpec("SourceType", "source_type", rules=(Required(),)),
    FieldSpec("TxnDescription", "txn_description"),
    *(spec for leg in REQUIRED_LEGS for spec in transfer_leg_fields(leg, required=True)),
    *(spec for leg in OPTIONAL_LEGS for spec in transfer_leg_fields(leg, required=False)),
    FieldSpec("MetaDataName", "metadata_name", rules=(MaxLength(128),)),
    FieldSpec("MetaDataValue", "metadata_value"),
)

SOURCE_COLUMNS: tuple[str, ...] = tuple(spec.column for spec in RECORD_SCHEMA)


__all__ = [
    "FieldSpec",
    "MaxLength",
    "NumericRange",
    "OneOf",
    "RECORD_SCHEMA",
    "Required",
    "RuleDescriptor",
    "SOURCE_COLUMNS",
    "transfer_leg_fields",
]
