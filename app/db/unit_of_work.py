# app/db/unit_of_work.py
"""
Unit of work: one transaction spanning every document a workflow touches.

Workflows receive a UnitOfWork and run inside ``async with uow.transaction()``.
Leaving the block normally commits; any exception rolls everything back.
Entering ``transaction()`` while one is already open joins it, so helpers such
as the reservation allocator can be called alone or from inside a larger workflow.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager

from pymongo.errors import OperationFailure, PyMongoError

from app.db.repositories import (
    CatalogRepository, InstitutionStockRepository, LogisticRepository, ReceiptLogRepository,
    RequirementRepository, UsageLogRepository, WarehouseStockRepository,
)
from app.utiles.exceptions import ConcurrentUpdate
from app.utiles.logger import get_logger

logger = get_logger(__name__)


class UnitOfWork(ABC):
    warehouse_stocks = None
    institution_stocks = None
    requirements = None
    logistics = None
    usage_logs = None
    receipt_logs = None
    catalog = None

    def __init__(self):
        self._active = False

    @property
    def in_transaction(self) -> bool:
        return self._active

    @asynccontextmanager
    async def transaction(self):
        if self._active:
            yield self
            return
        await self._begin()
        self._active = True
        try:
            yield self
        except BaseException as exc:
            self._active = False
            await self.rollback()
            translated = self._translate(exc)
            if translated is not exc:
                raise translated from exc
            raise
        else:
            self._active = False
            await self.commit()

    def _translate(self, exc: BaseException) -> BaseException:
        return exc

    @abstractmethod
    async def _begin(self) -> None:
        ...

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, PyMongoError) and exc.has_error_label("TransientTransactionError")


class MongoUnitOfWork(UnitOfWork):
    def __init__(self, client=None, database=None):
        super().__init__()
        if client is None or database is None:
            from app.db import mongodb
            client = client or mongodb.client
            database = database if database is not None else mongodb.db
        self._client = client
        self._db = database
        self._session = None
        self._bind(None)

    def _bind(self, session) -> None:
        self.warehouse_stocks = WarehouseStockRepository(self._db, session)
        self.institution_stocks = InstitutionStockRepository(self._db, session)
        self.requirements = RequirementRepository(self._db, session)
        self.logistics = LogisticRepository(self._db, session)
        self.usage_logs = UsageLogRepository(self._db, session)
        self.receipt_logs = ReceiptLogRepository(self._db, session)
        self.catalog = CatalogRepository(self._db, session)

    async def _begin(self) -> None:
        self._session = await self._client.start_session()
        self._session.start_transaction()
        self._bind(self._session)

    async def commit(self) -> None:
        try:
            await self._session.commit_transaction()
        except OperationFailure as e:
            if _is_transient(e) or e.has_error_label("UnknownTransactionCommitResult"):
                logger.warning("Transaction commit conflict: %s", e)
                raise ConcurrentUpdate("Concurrent update detected while committing; retry the operation") from e
            raise
        finally:
            await self._end()

    async def rollback(self) -> None:
        try:
            if self._session is not None and self._session.in_transaction:
                await self._session.abort_transaction()
        finally:
            await self._end()

    async def _end(self) -> None:
        if self._session is not None:
            await self._session.end_session()
        self._session = None
        self._bind(None)

    def _translate(self, exc: BaseException) -> BaseException:
        if _is_transient(exc):
            logger.warning("Transient transaction error rolled back: %s", exc)
            return ConcurrentUpdate("Concurrent update detected; retry the operation")
        return exc
