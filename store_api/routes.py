# store_api/routes.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Type

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from . import models, schemas
from .broadcast import ChangeBroadcaster
from .catalog import CatalogClient, CatalogError, GameNotFound
from .database import Gateway, Record, StoreError
from .security import hash_password

# This file contains the route logic. Every resource goes through the same
# validate -> derive -> persist -> shape pipeline in ResourceRoutes; the
# subclasses only fill in the hooks.

logger = logging.getLogger(__name__)

ORDER_MARKUP = 1.2


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway

def get_broadcaster(request: Request) -> Optional[ChangeBroadcaster]:
    return request.app.state.broadcaster

def get_catalog(request: Request) -> CatalogClient:
    return request.app.state.catalog


def order_total(prices: Iterable[float]) -> float:
    return round(sum(prices) * ORDER_MARKUP, 2)


class ResourceRoutes:
    resource = ""
    label = ""
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    out_model: Type[BaseModel]
    create_status = 201
    broadcast = False

    # ---------------------------
    # Hooks
    # ---------------------------
    async def prepare(self, gateway: Gateway, values: Dict[str, Any], current: Optional[Record] = None) -> Dict[str, Any]:
        """Derive computed fields. current is the stored record on PUT/PATCH."""
        return values

    async def present(self, gateway: Gateway, records: List[Record]) -> List[Record]:
        return records

    # ---------------------------
    # Helpers
    # ---------------------------
    def _not_found(self) -> HTTPException:
        return HTTPException(status_code=404, detail=f"{self.label} not found")

    def _failed(self, action: str) -> HTTPException:
        logger.exception("failed to %s %s", action, self.label.lower())
        return HTTPException(status_code=500, detail=f"Failed to {action} {self.label.lower()}")

    async def _present_one(self, gateway: Gateway, record: Record) -> Record:
        return (await self.present(gateway, [record]))[0]

    def _notify(self, broadcaster: Optional[ChangeBroadcaster], operation: str, record: Record) -> None:
        if not self.broadcast or broadcaster is None:
            return
        try:
            broadcaster.publish(operation, self.resource, self.out_model.model_validate(record).model_dump())
        except Exception:
            logger.exception("could not publish %s event for %s", operation, self.resource)

    # ---------------------------
    # Operations
    # ---------------------------
    async def create(self, gateway: Gateway, payload: BaseModel, broadcaster=None) -> Record:
        try:
            values = await self.prepare(gateway, schemas.payload_values(payload))
            record = await gateway.insert(self.resource, values)
            record = await self._present_one(gateway, record)
        except StoreError:
            raise self._failed("create")
        self._notify(broadcaster, "create", record)
        return record

    async def list_all(self, gateway: Gateway) -> List[Record]:
        try:
            return await self.present(gateway, await gateway.select_all(self.resource))
        except StoreError:
            raise self._failed("list")

    async def get(self, gateway: Gateway, record_id: str) -> Record:
        try:
            record = await gateway.select_by_id(self.resource, record_id)
            if record is None:
                raise self._not_found()
            return await self._present_one(gateway, record)
        except StoreError:
            raise self._failed("fetch")

    async def update(self, gateway: Gateway, record_id: str, payload: BaseModel, broadcaster=None) -> Record:
        """PUT sends the create schema (every field), PATCH the update schema (only changes)."""
        try:
            current = await gateway.select_by_id(self.resource, record_id)
            if current is None:
                raise self._not_found()
            values = await self.prepare(gateway, schemas.payload_values(payload), current)
            record = await gateway.update_by_id(self.resource, record_id, values)
            if record is None:
                raise self._not_found()
            record = await self._present_one(gateway, record)
        except StoreError:
            raise self._failed("update")
        self._notify(broadcaster, "update", record)
        return record

    async def delete(self, gateway: Gateway, record_id: str, broadcaster=None) -> Record:
        try:
            record = await gateway.delete_by_id(self.resource, record_id)
            if record is None:
                raise self._not_found()
            record = await self._present_one(gateway, record)
        except StoreError:
            raise self._failed("delete")
        self._notify(broadcaster, "delete", record)
        return record

    # ---------------------------
    # Router
    # ---------------------------
    def add_list_route(self, router: APIRouter) -> None:
        @router.get("", response_model=List[self.out_model], name=f"list_{self.resource}")
        async def list_route(gateway: Gateway = Depends(get_gateway)):
            return await self.list_all(gateway)

    def router(self) -> APIRouter:
        router = APIRouter(prefix=f"/{self.resource}", tags=[self.resource])
        create_schema, update_schema, out = self.create_schema, self.update_schema, self.out_model

        @router.post("", status_code=self.create_status, response_model=out, name=f"create_{self.resource}")
        async def create_route(payload: create_schema, gateway: Gateway = Depends(get_gateway),
                               broadcaster=Depends(get_broadcaster)):
            return await self.create(gateway, payload, broadcaster)

        self.add_list_route(router)

        @router.get("/{record_id}", response_model=out, name=f"get_{self.resource}")
        async def get_route(record_id: str, gateway: Gateway = Depends(get_gateway)):
            return await self.get(gateway, record_id)

        @router.put("/{record_id}", response_model=out, name=f"replace_{self.resource}")
        async def replace_route(record_id: str, payload: create_schema, gateway: Gateway = Depends(get_gateway),
                                broadcaster=Depends(get_broadcaster)):
            return await self.update(gateway, record_id, payload, broadcaster)

        @router.patch("/{record_id}", response_model=out, name=f"patch_{self.resource}")
        async def patch_route(record_id: str, payload: update_schema, gateway: Gateway = Depends(get_gateway),
                              broadcaster=Depends(get_broadcaster)):
            return await self.update(gateway, record_id, payload, broadcaster)

        @router.delete("/{record_id}", response_model=out, name=f"delete_{self.resource}")
        async def delete_route(record_id: str, gateway: Gateway = Depends(get_gateway),
                               broadcaster=Depends(get_broadcaster)):
            return await self.delete(gateway, record_id, broadcaster)

        return router


# ---------------------------
# Products
# ---------------------------
class ProductRoutes(ResourceRoutes):
    resource = "products"
    label = "Product"
    create_schema = schemas.ProductCreate
    update_schema = schemas.ProductUpdate
    out_model = models.Product
    broadcast = True

    async def present(self, gateway, records):
        return await gateway.expand("products", records)

    async def search(self, gateway: Gateway, name: Optional[str] = None, about: Optional[str] = None,
                     price: Optional[float] = None) -> List[Record]:
        contains = {k: v for k, v in (("name", name), ("about", about)) if v is not None}
        at_most = {"price": price} if price is not None else {}
        if not contains and not at_most:
            return await self.list_all(gateway)
        try:
            records = await gateway.select_by_filter(self.resource, contains=contains, at_most=at_most)
            return await self.present(gateway, records)
        except StoreError:
            raise self._failed("search")

    def add_list_route(self, router):
        @router.get("", response_model=List[models.Product], name="list_products")
        async def list_products(name: Optional[str] = None, about: Optional[str] = None,
                                price: Optional[float] = None, gateway: Gateway = Depends(get_gateway)):
            return await self.search(gateway, name=name, about=about, price=price)


# ---------------------------
# Users
# ---------------------------
class UserRoutes(ResourceRoutes):
    resource = "users"
    label = "User"
    create_schema = schemas.UserCreate
    update_schema = schemas.UserUpdate
    out_model = models.User

    async def prepare(self, gateway, values, current=None):
        # an absent or empty password on update leaves the stored digest alone
        if current is not None and not values.get("password"):
            values.pop("password", None)
        if "password" in values:
            values["password"] = hash_password(values["password"])
        return values


# ---------------------------
# Orders
# ---------------------------
class OrderRoutes(ResourceRoutes):
    resource = "orders"
    label = "Order"
    create_schema = schemas.OrderCreate
    update_schema = schemas.OrderUpdate
    out_model = models.Order

    async def prepare(self, gateway, values, current=None):
        if "userId" in values and await gateway.select_by_id("users", values["userId"]) is None:
            raise HTTPException(status_code=404, detail="User not found")

        product_ids = list(dict.fromkeys(values.get("productIds") or current["productIds"]))
        products = await gateway.select_by_ids("products", product_ids)
        if "productIds" in values and len(products) != len(product_ids):
            raise HTTPException(status_code=404, detail="Product not found")

        # client totals are never trusted; prices are read fresh on every write
        now = datetime.now(timezone.utc)
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)  # BSON keeps milliseconds
        values["productIds"] = product_ids
        values["total"] = order_total(p["price"] for p in products)
        values["updatedAt"] = now
        if current is None:
            values["createdAt"] = now
        return values

    async def present(self, gateway, records):
        user_ids = list(dict.fromkeys(r["userId"] for r in records))
        product_ids = list(dict.fromkeys(p for r in records for p in r["productIds"]))
        users = {u["id"]: u for u in await gateway.select_by_ids("users", user_ids)}
        products = await gateway.expand("products", await gateway.select_by_ids("products", product_ids))
        by_id = {p["id"]: p for p in products}
        for r in records:
            r["user"] = users.get(r["userId"])
            r["products"] = [by_id[p] for p in r["productIds"] if p in by_id]
        return records


# ---------------------------
# Categories
# ---------------------------
class CategoryRoutes(ResourceRoutes):
    resource = "categories"
    label = "Category"
    create_schema = schemas.CategoryCreate
    update_schema = schemas.CategoryUpdate
    out_model = models.Category
    create_status = 200


# ---------------------------
# Games catalog proxy
# ---------------------------
catalog_router = APIRouter(prefix="/f2p-games", tags=["f2p-games"])

@catalog_router.get("")
async def list_games(catalog: CatalogClient = Depends(get_catalog)):
    try:
        return await catalog.list_games()
    except CatalogError:
        logger.exception("catalog list failed")
        raise HTTPException(status_code=500, detail="fetch failed")

@catalog_router.get("/{game_id}")
async def get_game(game_id: str, catalog: CatalogClient = Depends(get_catalog)):
    try:
        return await catalog.get_game(game_id)
    except GameNotFound:
        raise HTTPException(status_code=404, detail="Game not found")
    except CatalogError:
        logger.exception("catalog lookup failed for game %s", game_id)
        raise HTTPException(status_code=500, detail="fetch failed")


RESOURCE_ROUTES = (ProductRoutes, UserRoutes, OrderRoutes, CategoryRoutes)
