# app/db/repositories.py
"""
MongoDB repositories (Motor).

Aggregates are written whole with an optimistic version check: a save only
matches the document at the version it was read at. Every call forwards the
unit-of-work session so reads and writes join the open transaction.
"""
from typing import Any, Dict, List, Optional, Type

from pymongo.errors import DuplicateKeyError

from app.core.config import (
    COLLECTION_WAREHOUSE_STOCKS, COLLECTION_INSTITUTION_STOCKS, COLLECTION_REQUIREMENTS,
    COLLECTION_LOGISTICS, COLLECTION_USAGE_LOGS, COLLECTION_RECEIPT_LOGS,
    COLLECTION_MEDICINES, COLLECTION_WAREHOUSES, COLLECTION_INSTITUTIONS,
)
from app.models.base import DocumentModel
from app.models.logistic import Logistic
from app.models.logs import ReceiptLogEntry, UsageLogEntry
from app.models.requirement import Requirement
from app.models.stock import InstitutionStock, WarehouseStock
from app.utiles.exceptions import ConcurrentUpdate
from app.utiles.logger import get_logger

logger = get_logger(__name__)


class MongoRepository:
    collection_name: str = ""
    id_field: str = ""
    model: Type[DocumentModel] = DocumentModel

    def __init__(self, database, session=None):
        self._col = database[self.collection_name]
        self._session = session

    def _load(self, doc: Optional[Dict[str, Any]]):
        if not doc:
            return None
        doc.pop("_id", None)
        return self.model.model_validate(doc)

    async def get(self, entity_id: str, include_deleted: bool = False):
        query = {self.id_field: entity_id}
        if not include_deleted:
            query["is_deleted"] = False
        return self._load(await self._col.find_one(query, session=self._session))

    async def add(self, entity):
        try:
            await self._col.insert_one(entity.to_document(), session=self._session)
        except DuplicateKeyError as e:
            logger.warning("Duplicate key inserting into %s: %s", self.collection_name, e)
            raise ConcurrentUpdate(f"{self.model.__name__} already exists") from e
        return entity

    async def save(self, entity):
        entity_id = getattr(entity, self.id_field)
        expected = entity.version
        entity.version = expected + 1
        doc = entity.to_document()
        result = await self._col.update_one(
            {self.id_field: entity_id, "version": expected},
            {"$set": doc},
            session=self._session,
        )
        if result.matched_count == 0:
            entity.version = expected
            logger.warning("Version conflict on %s %s (expected version %s)", self.collection_name, entity_id, expected)
            raise ConcurrentUpdate(
                f"{self.model.__name__} {entity_id} was modified concurrently; retry the operation"
            )
        return entity


class WarehouseStockRepository(MongoRepository):
    collection_name = COLLECTION_WAREHOUSE_STOCKS
    id_field = "stock_id"
    model = WarehouseStock

    async def find_by_owner_and_medicine(self, warehouse_id: str, medicine_id: str) -> Optional[WarehouseStock]:
        doc = await self._col.find_one(
            {"warehouse_id": warehouse_id, "medicine_id": medicine_id, "is_deleted": False},
            session=self._session,
        )
        return self._load(doc)


class InstitutionStockRepository(MongoRepository):
    collection_name = COLLECTION_INSTITUTION_STOCKS
    id_field = "stock_id"
    model = InstitutionStock

    async def find_by_owner_and_medicine(self, institution_id: str, medicine_id: str) -> Optional[InstitutionStock]:
        doc = await self._col.find_one(
            {"institution_id": institution_id, "medicine_id": medicine_id, "is_deleted": False},
            session=self._session,
        )
        return self._load(doc)


class RequirementRepository(MongoRepository):
    collection_name = COLLECTION_REQUIREMENTS
    id_field = "requirement_id"
    model = Requirement


class LogisticRepository(MongoRepository):
    collection_name = COLLECTION_LOGISTICS
    id_field = "logistic_id"
    model = Logistic

    async def shipment_id_exists(self, shipment_id: str) -> bool:
        doc = await self._col.find_one({"shipment_id": shipment_id}, {"_id": 1}, session=self._session)
        return doc is not None


class AppendOnlyLogRepository:
    collection_name: str = ""

    def __init__(self, database, session=None):
        self._col = database[self.collection_name]
        self._session = session

    async def add_many(self, entries: List[DocumentModel]) -> None:
        if not entries:
            return
        await self._col.insert_many([e.to_document() for e in entries], session=self._session)


class UsageLogRepository(AppendOnlyLogRepository):
    collection_name = COLLECTION_USAGE_LOGS
    model = UsageLogEntry


class ReceiptLogRepository(AppendOnlyLogRepository):
    collection_name = COLLECTION_RECEIPT_LOGS
    model = ReceiptLogEntry


class CatalogRepository:
    """Read-only lookups into reference data owned by other services."""

    def __init__(self, database, session=None):
        self._db = database
        self._session = session

    async def _find_live(self, collection: str, id_field: str, entity_id: str) -> Optional[Dict[str, Any]]:
        doc = await self._db[collection].find_one(
            {id_field: entity_id, "is_deleted": {"$ne": True}}, {"_id": 0}, session=self._session
        )
        return doc

    async def get_medicine(self, medicine_id: str) -> Optional[Dict[str, Any]]:
        return await self._find_live(COLLECTION_MEDICINES, "medicine_id", medicine_id)

    async def get_warehouse(self, warehouse_id: str) -> Optional[Dict[str, Any]]:
        return await self._find_live(COLLECTION_WAREHOUSES, "warehouse_id", warehouse_id)

    async def get_institution(self, institution_id: str) -> Optional[Dict[str, Any]]:
        return await self._find_live(COLLECTION_INSTITUTIONS, "institution_id", institution_id)
