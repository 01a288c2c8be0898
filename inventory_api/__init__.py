"""
inventory_api -- HTTP surface over InventoryService.

    uvicorn --factory inventory_api:create_app
"""

from inventory_api.app import create_app

__all__ = ["create_app"]
