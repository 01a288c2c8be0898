# inventory_api/schemas.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    StringConstraints,
    field_validator,
)

from inventory_engines.deduction import ScalingMode
from inventory_kernel.db.types import round_minor
from inventory_kernel.domain.dtos import MovementType, TrackingMode

NameStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=200),
]

OptStr100 = (
    Annotated[
        str,
        StringConstraints(strip_whitespace=True, max_length=100),
    ]
    | None
)

OptStr200 = (
    Annotated[
        str,
        StringConstraints(strip_whitespace=True, max_length=200),
    ]
    | None
)

ReasonStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=2000),
]


def _plain_decimal(value: Decimal) -> str:
    if not value:
        return "0"
    return format(value.normalize(), "f")


# Stored quantities carry the column scale; responses drop trailing zeros.
Quantity = Annotated[
    Decimal,
    PlainSerializer(_plain_decimal, return_type=str, when_used="json"),
]


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _Response(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class ItemCreate(_Request):
    """
    New catalog item.

    - sku / barcode: empty strings from UI are normalized to None.
    - Quantities are validated by the catalog (422 INVALID_QUANTITY).
    """

    name: NameStr
    category: NameStr
    unit_of_measure: NameStr
    tracking_mode: TrackingMode = TrackingMode.SIMPLE
    is_consumable: bool = True
    min_stock: Decimal = Decimal("0")
    reorder_multiple: Decimal = Decimal("1")
    lead_time_days: int | None = Field(default=None, ge=0)
    sku: OptStr100 = None
    barcode: OptStr100 = None

    @field_validator("sku", "barcode", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ThresholdsUpdate(_Request):
    min_stock: Decimal | None = None
    reorder_multiple: Decimal | None = None


class ItemResponse(_Response):
    id: UUID
    name: str
    category: str
    unit_of_measure: str
    tracking_mode: TrackingMode
    is_consumable: bool
    min_stock: Quantity
    reorder_multiple: Quantity
    lead_time_days: int | None
    sku: str | None
    barcode: str | None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Movements
# ---------------------------------------------------------------------------


class BatchResponse(_Response):
    id: UUID
    item_id: UUID
    lot_number: str
    quantity: Quantity
    cost_per_unit_minor: int
    received_at: datetime
    expires_on: date | None


class MovementResponse(_Response):
    id: UUID
    item_id: UUID
    batch_id: UUID | None
    movement_type: MovementType
    quantity_delta: Quantity
    cost_per_unit_minor: int | None
    reason: str
    task_id: str | None
    external_key: str | None
    override_reason: str | None
    operation_id: UUID
    seq: int
    created_at: datetime


class ReceiveRequest(_Request):
    item_id: UUID
    quantity: Decimal
    reason: ReasonStr = "receipt"
    lot_number: OptStr100 = None
    cost_per_unit_minor: int | None = None
    expires_on: date | None = None
    received_at: datetime | None = None
    idempotency_key: OptStr200 = None


class ReceiveResponse(_Response):
    item_id: UUID
    batch: BatchResponse | None
    movement: MovementResponse | None
    is_replay: bool


class ConsumeRequest(_Request):
    item_id: UUID
    quantity: Decimal
    reason: ReasonStr
    allow_expired: bool = False
    override_reason: str | None = None
    idempotency_key: OptStr200 = None
    task_id: OptStr100 = None


class ConsumedLineResponse(_Response):
    movement_id: UUID
    batch_id: UUID | None
    lot_number: str | None
    quantity: Quantity
    cost_per_unit_minor: int | None


class ConsumeResponse(BaseModel):
    item_id: UUID
    operation_id: UUID
    total_quantity: Quantity
    total_cost_minor: int
    is_replay: bool
    lines: list[ConsumedLineResponse]

    @classmethod
    def from_result(cls, result) -> ConsumeResponse:
        return cls(
            item_id=result.item_id,
            operation_id=result.operation_id,
            total_quantity=result.total_quantity,
            total_cost_minor=round_minor(result.total_cost_minor),
            is_replay=result.is_replay,
            lines=[ConsumedLineResponse.model_validate(line) for line in result.lines],
        )


class DeductionEntryRequest(_Request):
    item_id: UUID
    per_task_quantity: Decimal | None = None
    per_plant_quantity: Decimal | None = None
    scaling_mode: ScalingMode = ScalingMode.FIXED
    label: OptStr100 = None


class DeductRequest(_Request):
    """
    Consume every item of a task at once.

    - per_plant entries are multiplied by plant_count.
    - Any short item fails the whole request (409 DEDUCTION_SHORTFALL).
    """

    entries: list[DeductionEntryRequest]
    reason: ReasonStr = "task deduction"
    task_id: OptStr100 = None
    plant_count: int | None = None
    allow_expired: bool = False
    override_reason: str | None = None
    idempotency_key: OptStr200 = None


class DeductResponse(BaseModel):
    task_id: str | None
    operation_id: UUID
    idempotency_key: str | None
    total_cost_minor: int
    is_replay: bool
    items: list[ConsumeResponse]

    @classmethod
    def from_result(cls, result) -> DeductResponse:
        return cls(
            task_id=result.task_id,
            operation_id=result.operation_id,
            idempotency_key=result.idempotency_key,
            total_cost_minor=round_minor(result.total_cost_minor),
            is_replay=result.is_replay,
            items=[ConsumeResponse.from_result(item) for item in result.items],
        )


class AdjustRequest(_Request):
    item_id: UUID
    quantity_delta: Decimal
    reason: ReasonStr
    batch_id: UUID | None = None
    idempotency_key: OptStr200 = None


class AdjustResponse(_Response):
    item_id: UUID
    movement: MovementResponse
    is_replay: bool


# ---------------------------------------------------------------------------
# Stock and reorder
# ---------------------------------------------------------------------------


class BatchStockResponse(_Response):
    batch_id: UUID
    lot_number: str
    remaining: Quantity
    cost_per_unit_minor: int
    received_at: datetime
    expires_on: date | None


class StockResponse(_Response):
    item_id: UUID
    on_hand: Quantity
    valuation_minor: int
    movement_count: int
    batches: list[BatchStockResponse]


class ReorderCandidateResponse(_Response):
    item_id: UUID
    name: str
    category: str
    unit_of_measure: str
    on_hand: Quantity
    min_stock: Quantity
    reorder_multiple: Quantity
    suggested_quantity: Quantity
    lead_time_days: int | None
