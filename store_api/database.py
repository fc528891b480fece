# store_api/database.py
import logging
import re
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, MetaData, String, Table,
    create_engine, select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from starlette.concurrency import run_in_threadpool

from .config import Settings

# This file holds the persistence gateway: the only code allowed to talk to
# a store. Records crossing this boundary are plain dicts keyed by API field
# names with a string "id".

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

RESOURCES = ("products", "users", "orders", "categories")

# resource -> (reference field, target resource, key the expansion lands in)
RELATIONS = {
    "products": ("categoryIds", "categories", "categories"),
}


class StoreError(Exception):
    """The backing store failed. The message is meant for the server log."""


class Gateway:
    """
    Async facade over a blocking driver.

    Subclasses implement the underscore methods; each public coroutine runs
    its counterpart in the threadpool and turns driver errors into StoreError.
    A None result means no row matched.
    """

    driver_errors: tuple = ()
    backend = "?"

    async def _call(self, fn, *args):
        try:
            return await run_in_threadpool(fn, *args)
        except self.driver_errors as exc:
            raise StoreError(f"{self.backend} {fn.__name__} failed: {exc}") from exc

    @staticmethod
    def _check(resource: str) -> None:
        if resource not in RESOURCES:
            raise ValueError(f"unknown resource {resource!r}")

    # lifecycle
    async def connect(self) -> None:
        await self._call(self._connect)
        logger.info("connected to %s store", self.backend)

    async def close(self) -> None:
        await self._call(self._close)
        logger.info("closed %s store", self.backend)

    # operations
    async def insert(self, resource: str, values: Mapping[str, Any]) -> Record:
        self._check(resource)
        return await self._call(self._insert, resource, dict(values))

    async def select_all(self, resource: str) -> List[Record]:
        self._check(resource)
        return await self._call(self._select_all, resource)

    async def select_by_id(self, resource: str, record_id: str) -> Optional[Record]:
        self._check(resource)
        return await self._call(self._select_by_id, resource, record_id)

    async def select_by_ids(self, resource: str, ids: Sequence[str]) -> List[Record]:
        self._check(resource)
        if not ids:
            return []
        return await self._call(self._select_by_ids, resource, list(ids))

    async def select_by_filter(
        self,
        resource: str,
        contains: Optional[Mapping[str, str]] = None,
        at_most: Optional[Mapping[str, float]] = None,
    ) -> List[Record]:
        """contains: case-insensitive substring per field; at_most: field <= bound. ANDed."""
        self._check(resource)
        return await self._call(self._select_by_filter, resource, dict(contains or {}), dict(at_most or {}))

    async def update_by_id(self, resource: str, record_id: str, values: Mapping[str, Any]) -> Optional[Record]:
        self._check(resource)
        return await self._call(self._update_by_id, resource, record_id, dict(values))

    async def delete_by_id(self, resource: str, record_id: str) -> Optional[Record]:
        self._check(resource)
        return await self._call(self._delete_by_id, resource, record_id)

    async def expand(self, resource: str, records: List[Record]) -> List[Record]:
        relation = RELATIONS.get(resource)
        if relation is None or not records:
            return records
        field, target, key = relation
        ids = list(dict.fromkeys(i for r in records for i in r.get(field) or []))
        related = {r["id"]: r for r in await self.select_by_ids(target, ids)}
        for r in records:
            r[key] = [related[i] for i in r.get(field) or [] if i in related]
        return records


# ---------------------------
# Relational backend
# ---------------------------
metadata = MetaData()

Table(
    "products", metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String, nullable=False),
    Column("about", String, nullable=False),
    Column("price", Float, nullable=False),
    Column("category_ids", JSON, nullable=False, default=list),
)
Table(
    "users", metadata,
    Column("id", String(32), primary_key=True),
    Column("username", String, nullable=False),
    Column("password", String(128), nullable=False),
    Column("email", String, nullable=False),
)
Table(
    "orders", metadata,
    Column("id", String(32), primary_key=True),
    Column("user_id", String(32), nullable=False),
    Column("product_ids", JSON, nullable=False),
    Column("total", Float, nullable=False),
    Column("payment", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)
Table(
    "categories", metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String, nullable=False),
)

_COLUMNS = {
    "userId": "user_id",
    "productIds": "product_ids",
    "categoryIds": "category_ids",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
_FIELDS = {column: field for field, column in _COLUMNS.items()}


def _to_columns(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {_COLUMNS.get(k, k): v for k, v in values.items()}


def _row_to_record(row) -> Record:
    return {_FIELDS.get(k, k): v for k, v in row._mapping.items()}


class SQLGateway(Gateway):
    driver_errors = (SQLAlchemyError,)
    backend = "sql"

    def __init__(self, url: str):
        self.url = url
        self.engine = None

    def _connect(self):
        kwargs: Dict[str, Any] = {}
        if self.url.startswith("sqlite"):
            # one shared connection so an in-memory database survives across threads
            kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
        self.engine = create_engine(self.url, **kwargs)
        metadata.create_all(self.engine)

    def _close(self):
        if self.engine is not None:
            self.engine.dispose()

    @staticmethod
    def _table(resource: str) -> Table:
        return metadata.tables[resource]

    def _fetch(self, conn, table: Table, record_id: str) -> Optional[Record]:
        row = conn.execute(select(table).where(table.c.id == record_id)).first()
        return _row_to_record(row) if row is not None else None

    def _insert(self, resource, values):
        table = self._table(resource)
        row = {"id": uuid.uuid4().hex, **_to_columns(values)}
        with self.engine.begin() as conn:
            conn.execute(table.insert().values(**row))
            return self._fetch(conn, table, row["id"])

    def _select_all(self, resource):
        table = self._table(resource)
        with self.engine.connect() as conn:
            return [_row_to_record(r) for r in conn.execute(select(table))]

    def _select_by_id(self, resource, record_id):
        with self.engine.connect() as conn:
            return self._fetch(conn, self._table(resource), record_id)

    def _select_by_ids(self, resource, ids):
        table = self._table(resource)
        with self.engine.connect() as conn:
            return [_row_to_record(r) for r in conn.execute(select(table).where(table.c.id.in_(ids)))]

    def _select_by_filter(self, resource, contains, at_most):
        table = self._table(resource)
        stmt = select(table)
        for field, needle in contains.items():
            stmt = stmt.where(table.c[_COLUMNS.get(field, field)].icontains(needle, autoescape=True))
        for field, bound in at_most.items():
            stmt = stmt.where(table.c[_COLUMNS.get(field, field)] <= bound)
        with self.engine.connect() as conn:
            return [_row_to_record(r) for r in conn.execute(stmt)]

    def _update_by_id(self, resource, record_id, values):
        table = self._table(resource)
        with self.engine.begin() as conn:
            if values:
                result = conn.execute(
                    table.update().where(table.c.id == record_id).values(**_to_columns(values))
                )
                if result.rowcount == 0:
                    return None
            return self._fetch(conn, table, record_id)

    def _delete_by_id(self, resource, record_id):
        table = self._table(resource)
        with self.engine.begin() as conn:
            record = self._fetch(conn, table, record_id)
            if record is None:
                return None
            conn.execute(table.delete().where(table.c.id == record_id))
            return record


# ---------------------------
# Document backend
# ---------------------------
def _object_id(value: Any) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _doc_to_record(doc: Optional[Dict[str, Any]]) -> Optional[Record]:
    if doc is None:
        return None
    record = dict(doc)
    record["id"] = str(record.pop("_id"))
    return record


class MongoGateway(Gateway):
    driver_errors = (PyMongoError,)
    backend = "mongo"

    def __init__(self, url: str = "mongodb://localhost:27017", db_name: str = "myDB", client=None):
        self.url = url
        self.db_name = db_name
        self.client = client
        self.db = None

    def _connect(self):
        if self.client is None:
            self.client = MongoClient(self.url, tz_aware=True)
        self.db = self.client[self.db_name]

    def _close(self):
        if self.client is not None:
            self.client.close()

    def _insert(self, resource, values):
        result = self.db[resource].insert_one(dict(values))
        # read back what BSON actually kept (millisecond datetimes)
        return _doc_to_record(self.db[resource].find_one({"_id": result.inserted_id}))

    def _select_all(self, resource):
        return [_doc_to_record(d) for d in self.db[resource].find({})]

    def _select_by_id(self, resource, record_id):
        oid = _object_id(record_id)
        if oid is None:
            return None
        return _doc_to_record(self.db[resource].find_one({"_id": oid}))

    def _select_by_ids(self, resource, ids):
        oids = [oid for oid in map(_object_id, ids) if oid is not None]
        return [_doc_to_record(d) for d in self.db[resource].find({"_id": {"$in": oids}})]

    def _select_by_filter(self, resource, contains, at_most):
        query: Dict[str, Dict[str, Any]] = {}
        for field, needle in contains.items():
            query[field] = {"$regex": re.escape(needle), "$options": "i"}
        for field, bound in at_most.items():
            query.setdefault(field, {})["$lte"] = bound
        return [_doc_to_record(d) for d in self.db[resource].find(query)]

    def _update_by_id(self, resource, record_id, values):
        oid = _object_id(record_id)
        if oid is None:
            return None
        if not values:
            return _doc_to_record(self.db[resource].find_one({"_id": oid}))
        doc = self.db[resource].find_one_and_update(
            {"_id": oid}, {"$set": values}, return_document=ReturnDocument.AFTER
        )
        return _doc_to_record(doc)

    def _delete_by_id(self, resource, record_id):
        oid = _object_id(record_id)
        if oid is None:
            return None
        return _doc_to_record(self.db[resource].find_one_and_delete({"_id": oid}))


def create_gateway(settings: Settings) -> Gateway:
    if settings.store_backend == "mongo":
        return MongoGateway(settings.mongo_url, settings.mongo_db)
    return SQLGateway(settings.database_url)
