"""
Shared API dependencies.

Services live on ``app.state.services``, created by the application lifespan.
"""

from typing import Annotated

from fastapi import Depends, Request

from storefront.core.config import Settings
from storefront.services.container import ServiceContainer
from storefront.services.erp.client import ErpSyncClient
from storefront.services.orders.service import OrderService


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_order_service(request: Request) -> OrderService:
    return get_services(request).order_service


def get_erp_client(request: Request) -> ErpSyncClient:
    return get_services(request).erp_client


def get_app_settings(request: Request) -> Settings:
    return get_services(request).settings


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
ErpClientDep = Annotated[ErpSyncClient, Depends(get_erp_client)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
