from fastapi import Request

from inventory_services.inventory_service import InventoryService


def get_inventory_service(request: Request) -> InventoryService:
    """The InventoryService created by create_app()."""
    return request.app.state.inventory_service
