"""Infraspeak field-system connector.

Implements FieldGateway on top of InfraspeakClient. Endpoint paths, filter
names and JSON:API payload shapes are confined to this module.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from connectors.base import (
    CostCenterRef,
    FieldGateway,
    FieldMaterialRef,
    FieldStockQuantity,
    FieldWarehouseRef,
    OrderDetail,
    UserContact,
)
from connectors.infraspeak.infraspeak_client import InfraspeakApiConfig, InfraspeakClient
from core.config import SyncSettings
from core.errors import RemoteCallError, ValidationError
from core.models.sync import ORDER_TYPE_WORK, MovementAction, SourceRequest


logger = logging.getLogger(__name__)


# =============================================================================
# Endpoints and filters
# =============================================================================

REQUESTS_ENDPOINT = "requests"
COST_CENTERS_ENDPOINT = "cost-centers"
USERS_ENDPOINT = "users"
MATERIALS_ENDPOINT = "materials"
ALL_MATERIALS_ENDPOINT = "materials/all"
WAREHOUSES_ENDPOINT = "warehouses"
QUANTITIES_ENDPOINT = "warehouses/material-quantities"
STOCK_MOVEMENTS_ENDPOINT = "stock-movements"

ORDER_EXPANSION = "stock.material,stockTasks.material"

MATERIAL_REQUEST_FILTERS = {
    "s_state_in": "COMPLETED",
    "s_related_to_type_in": "FAILURE,SCHEDULE_WORK",
    "s_type": "MATERIAL_REQUEST",
    "s_stock_consumed": "true",
}


def order_endpoint(order_id: str, order_type: str) -> str:
    """Work orders live under failures/, planned orders under works/scheduled/."""
    if order_type == ORDER_TYPE_WORK:
        return f"failures/{order_id}"
    return f"works/scheduled/{order_id}"


def _number(value: Decimal) -> float:
    return float(value)


def catalogue_payload(
    kind: str,
    name: str,
    code: str,
    warehouse_id: int,
    mean_price: Decimal = Decimal("0"),
    units: str = "",
    parent_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Body for POST materials (kind is FOLDER or MATERIAL)."""
    payload: Dict[str, Any] = {
        "_type": kind,
        "name": name,
        "code": code,
        "observation": "",
        "mean_price": _number(mean_price),
        "units": units,
        "material_warehouse": [{
            "warehouse_id": warehouse_id,
            "min_stock": 1,
            "mean_price": _number(mean_price),
            "observation": "string",
        }],
        "default_sell_price": 0,
        "default_sell_vat": 0,
    }
    if parent_id is not None:
        payload["parent_id"] = parent_id
    return payload


def stock_movement_payload(
    action: MovementAction,
    warehouse_id: int,
    material_id: int,
    quantity: Decimal,
    mean_price: Optional[Decimal] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "_type": "stock-movement",
        "action": MovementAction(action).value,
        "warehouse_id": warehouse_id,
        "stocks": [{"material_id": material_id, "quantity": _number(quantity)}],
    }
    if mean_price is not None:
        payload["mean_price"] = _number(mean_price)
    return payload


def _created_id(response: Dict[str, Any], what: str) -> str:
    data = response.get("data") or {}
    created = data.get("id") if isinstance(data, dict) else None
    if created is None:
        raise RemoteCallError(f"Infraspeak returned no id for created {what}", response_body=str(response))
    return str(created)


class InfraspeakConnector(FieldGateway):
    """Field gateway for Infraspeak.

    Usage:
        connector = InfraspeakConnector.from_settings(settings)
        await connector.connect()
        requests = await connector.fetch_completed_material_requests()
    """

    def __init__(self, client: InfraspeakClient, request_page_size: int = 300, catalogue_page_size: int = 1000):
        self.client = client
        self.request_page_size = request_page_size
        self.catalogue_page_size = catalogue_page_size

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "InfraspeakConnector":
        client = InfraspeakClient(InfraspeakApiConfig(
            api_key=settings.field_api_key,
            email=settings.field_email,
            base_url=settings.field_base_url,
            app_name=settings.app_name,
            timeout_seconds=settings.http_timeout_seconds,
        ))
        return cls(
            client,
            request_page_size=settings.request_page_size,
            catalogue_page_size=settings.field_material_page_size,
        )

    async def connect(self) -> None:
        await self.client.connect()

    async def disconnect(self) -> None:
        await self.client.disconnect()

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def fetch_completed_material_requests(self) -> List[SourceRequest]:
        params = dict(MATERIAL_REQUEST_FILTERS, limit=self.request_page_size)
        resources = await self.client.list_all(REQUESTS_ENDPOINT, params=params)
        requests = [SourceRequest.from_resource(resource) for resource in resources]
        logger.info(f"Fetched {len(requests)} completed material requests from Infraspeak")
        return requests

    async def fetch_order_detail(self, order_id: str, order_type: str) -> OrderDetail:
        response = await self.client.get(
            order_endpoint(order_id, order_type),
            params={"expanded": ORDER_EXPANSION},
        )
        data = response.get("data")
        if not isinstance(data, dict):
            raise ValidationError(
                "Invalid response structure from Infraspeak API.",
                order_id=order_id,
                order_type=order_type,
            )
        return OrderDetail(
            order_id=order_id,
            order_type=order_type,
            attributes=data.get("attributes") or {},
            included=response.get("included") or [],
        )

    async def fetch_cost_centers(self) -> List[CostCenterRef]:
        response = await self.client.get(COST_CENTERS_ENDPOINT)
        return [
            CostCenterRef(
                id=entry["id"],
                name=(entry.get("attributes") or {}).get("name"),
                code=(entry.get("attributes") or {}).get("code"),
            )
            for entry in response.get("data") or []
        ]

    async def fetch_user_contact(self) -> UserContact:
        response = await self.client.get(USERS_ENDPOINT)
        operator = (response.get("data") or {}).get("operator") or {}
        return UserContact(name=operator.get("full_name"), email=operator.get("email"))

    # -------------------------------------------------------------------------
    # Catalogue and stock
    # -------------------------------------------------------------------------

    async def fetch_materials(self, real_only: bool = True) -> List[FieldMaterialRef]:
        params: Dict[str, Any] = {"limit": self.catalogue_page_size}
        if real_only:
            params["s_is_real"] = "true"
        resources = await self.client.list_all(ALL_MATERIALS_ENDPOINT, params=params)
        materials = []
        for resource in resources:
            attributes = resource.get("attributes") or {}
            materials.append(FieldMaterialRef(
                id=resource["id"],
                code=attributes.get("code"),
                full_code=attributes.get("full_code"),
                name=attributes.get("name"),
                is_real=bool(attributes.get("is_real", True)),
            ))
        return materials

    async def fetch_warehouses(self) -> List[FieldWarehouseRef]:
        response = await self.client.get(WAREHOUSES_ENDPOINT, params={"s_is_real": "true"})
        warehouses = []
        for resource in response.get("data") or []:
            attributes = resource.get("attributes") or {}
            if attributes.get("warehouse_id") is None:
                logger.warning(f"Skipping Infraspeak warehouse {resource.get('id')} without warehouse_id")
                continue
            warehouses.append(FieldWarehouseRef(
                id=resource["id"],
                warehouse_id=attributes["warehouse_id"],
                full_code=attributes.get("full_code") or "",
                name=attributes.get("name"),
            ))
        return warehouses

    async def fetch_stock_quantities(self) -> List[FieldStockQuantity]:
        resources = await self.client.list_all(QUANTITIES_ENDPOINT, params={"limit": self.catalogue_page_size})
        return [
            FieldStockQuantity(
                material_id=resource["attributes"]["material_id"],
                warehouse_id=resource["attributes"]["warehouse_id"],
                stock_quantity=resource["attributes"].get("stock_quantity"),
            )
            for resource in resources
            if resource.get("attributes")
        ]

    async def create_folder(self, name: str, code: str, warehouse_id: int) -> str:
        response = await self.client.post(
            MATERIALS_ENDPOINT,
            catalogue_payload("FOLDER", name, code, warehouse_id),
        )
        folder_id = _created_id(response, "folder")
        logger.info(f"Created Infraspeak folder {code} ({folder_id})")
        return folder_id

    async def create_material(
        self,
        name: str,
        code: str,
        mean_price: Decimal,
        warehouse_id: int,
        folder_id: str,
    ) -> str:
        response = await self.client.post(
            MATERIALS_ENDPOINT,
            catalogue_payload("MATERIAL", name, code, warehouse_id, mean_price=mean_price, units="un", parent_id=folder_id),
        )
        material_id = _created_id(response, "material")
        logger.info(f"Created Infraspeak material {code} ({material_id}) under folder {folder_id}")
        return material_id

    async def create_stock_movement(
        self,
        action: MovementAction,
        warehouse_id: int,
        material_id: int,
        quantity: Decimal,
        mean_price: Optional[Decimal] = None,
    ) -> str:
        response = await self.client.post(
            STOCK_MOVEMENTS_ENDPOINT,
            stock_movement_payload(action, warehouse_id, material_id, quantity, mean_price),
        )
        data = response.get("data") or {}
        movement_id = (data.get("attributes") or {}).get("stock_movement_id") if isinstance(data, dict) else None
        if movement_id is not None:
            return str(movement_id)
        return _created_id(response, "stock movement")
