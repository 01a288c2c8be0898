# inventory_api/routes.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from inventory_api.dependencies import get_inventory_service
from inventory_api.schemas import (
    AdjustRequest,
    AdjustResponse,
    ConsumeRequest,
    ConsumeResponse,
    DeductRequest,
    DeductResponse,
    ItemCreate,
    ItemResponse,
    MovementResponse,
    ReceiveRequest,
    ReceiveResponse,
    ReorderCandidateResponse,
    StockResponse,
    ThresholdsUpdate,
)
from inventory_engines.deduction import DeductionEntry
from inventory_kernel.domain.dtos import ItemSpec, MovementType, TrackingMode
from inventory_services.inventory_service import InventoryService

router = APIRouter()


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@router.post(
    "/items",
    response_model=ItemResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["items"],
)
def create_item(
    payload: ItemCreate,
    service: InventoryService = Depends(get_inventory_service),
) -> ItemResponse:
    item = service.create_item(ItemSpec(**payload.model_dump()))
    return ItemResponse.model_validate(item)


@router.get("/items", response_model=list[ItemResponse], tags=["items"])
def list_items(
    category: str | None = Query(None, description="Filter by category"),
    tracking_mode: TrackingMode | None = Query(None, description="simple or batched"),
    service: InventoryService = Depends(get_inventory_service),
) -> list[ItemResponse]:
    items = service.list_items(category=category, tracking_mode=tracking_mode)
    return [ItemResponse.model_validate(item) for item in items]


@router.get("/items/{item_id}", response_model=ItemResponse, tags=["items"])
def get_item(
    item_id: UUID,
    service: InventoryService = Depends(get_inventory_service),
) -> ItemResponse:
    return ItemResponse.model_validate(service.get_item(item_id))


@router.patch("/items/{item_id}/thresholds", response_model=ItemResponse, tags=["items"])
def update_thresholds(
    item_id: UUID,
    payload: ThresholdsUpdate,
    service: InventoryService = Depends(get_inventory_service),
) -> ItemResponse:
    item = service.update_thresholds(
        item_id,
        min_stock=payload.min_stock,
        reorder_multiple=payload.reorder_multiple,
    )
    return ItemResponse.model_validate(item)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["items"])
def delete_item(
    item_id: UUID,
    service: InventoryService = Depends(get_inventory_service),
) -> Response:
    """Soft delete; history stays in the ledger."""
    service.soft_delete_item(item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/items/{item_id}/movements",
    response_model=list[MovementResponse],
    tags=["items"],
)
def list_movements(
    item_id: UUID,
    movement_type: MovementType | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: InventoryService = Depends(get_inventory_service),
) -> list[MovementResponse]:
    """Movement history, newest first."""
    movements = service.movements(
        item_id, movement_type=movement_type, limit=limit, offset=offset
    )
    return [MovementResponse.model_validate(m) for m in movements]


# ---------------------------------------------------------------------------
# Stock movements
# ---------------------------------------------------------------------------


@router.post("/receive", response_model=ReceiveResponse, tags=["stock"])
def receive(
    payload: ReceiveRequest,
    service: InventoryService = Depends(get_inventory_service),
) -> ReceiveResponse:
    result = service.receive(
        payload.item_id,
        payload.quantity,
        reason=payload.reason,
        lot_number=payload.lot_number,
        cost_per_unit_minor=payload.cost_per_unit_minor,
        expires_on=payload.expires_on,
        received_at=payload.received_at,
        idempotency_key=payload.idempotency_key,
    )
    return ReceiveResponse.model_validate(result)


@router.post("/consume", response_model=ConsumeResponse, tags=["stock"])
def consume(
    payload: ConsumeRequest,
    service: InventoryService = Depends(get_inventory_service),
) -> ConsumeResponse:
    result = service.consume(
        payload.item_id,
        payload.quantity,
        payload.reason,
        allow_expired=payload.allow_expired,
        override_reason=payload.override_reason,
        idempotency_key=payload.idempotency_key,
        task_id=payload.task_id,
    )
    return ConsumeResponse.from_result(result)


@router.post("/deduct", response_model=DeductResponse, tags=["stock"])
def deduct(
    payload: DeductRequest,
    service: InventoryService = Depends(get_inventory_service),
) -> DeductResponse:
    result = service.deduct_for_task(
        [DeductionEntry(**entry.model_dump()) for entry in payload.entries],
        reason=payload.reason,
        task_id=payload.task_id,
        plant_count=payload.plant_count,
        allow_expired=payload.allow_expired,
        override_reason=payload.override_reason,
        idempotency_key=payload.idempotency_key,
    )
    return DeductResponse.from_result(result)


@router.post("/adjust", response_model=AdjustResponse, tags=["stock"])
def adjust(
    payload: AdjustRequest,
    service: InventoryService = Depends(get_inventory_service),
) -> AdjustResponse:
    result = service.adjust(
        payload.item_id,
        payload.quantity_delta,
        payload.reason,
        batch_id=payload.batch_id,
        idempotency_key=payload.idempotency_key,
    )
    return AdjustResponse.model_validate(result)


@router.get("/stock/{item_id}", response_model=StockResponse, tags=["stock"])
def get_stock(
    item_id: UUID,
    service: InventoryService = Depends(get_inventory_service),
) -> StockResponse:
    return StockResponse.model_validate(service.stock(item_id))


@router.get(
    "/reorder-candidates",
    response_model=list[ReorderCandidateResponse],
    tags=["stock"],
)
def reorder_candidates(
    category: str | None = Query(None, description="Filter by category"),
    service: InventoryService = Depends(get_inventory_service),
) -> list[ReorderCandidateResponse]:
    candidates = service.reorder_candidates(category=category)
    return [ReorderCandidateResponse.model_validate(c) for c in candidates]
