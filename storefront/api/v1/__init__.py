"""
API v1 package initialization.

Collects the v1 routers mounted by the application.
"""

from fastapi import APIRouter

from storefront.api.v1.erp import router as erp_router
from storefront.api.v1.orders import router as orders_router

api_router = APIRouter()
api_router.include_router(orders_router)
api_router.include_router(erp_router)

__all__ = ["api_router", "erp_router", "orders_router"]
