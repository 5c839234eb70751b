"""Process-wide set of collection stores."""

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session_maker
from app.models import Branch, Company, Contract, Visit
from app.services.activity_log import VisitActivityLog
from app.store.backend import SqlCollectionBackend
from app.store.collection_store import RemoteCollectionStore, SnapshotStream
from app.store.contracts import ContractStore
from app.store.directory import BranchStore, CompanyStore
from app.store.visits import VisitStore

logger = logging.getLogger(__name__)

READY_TIMEOUT_SECONDS = 10


class StoreRegistry:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        debounce_seconds: Optional[float] = None,
        activity_log: Optional[VisitActivityLog] = None,
    ):
        self.activity_log = activity_log or VisitActivityLog(session_maker)
        self.visits = VisitStore(
            SqlCollectionBackend(Visit, session_maker),
            activity_log=self.activity_log,
            debounce_seconds=debounce_seconds,
        )
        self.contracts = ContractStore(SqlCollectionBackend(Contract, session_maker), debounce_seconds=debounce_seconds)
        self.companies = CompanyStore(SqlCollectionBackend(Company, session_maker), debounce_seconds=debounce_seconds)
        self.branches = BranchStore(SqlCollectionBackend(Branch, session_maker), debounce_seconds=debounce_seconds)
        self.streams: dict[str, SnapshotStream] = {}

    @property
    def stores(self) -> dict[str, RemoteCollectionStore]:
        return {
            "visits": self.visits,
            "contracts": self.contracts,
            "companies": self.companies,
            "branches": self.branches,
        }

    async def start(self, timeout: float = READY_TIMEOUT_SECONDS) -> None:
        """Subscribe every store and wait for the first snapshots."""
        for name, store in self.stores.items():
            self.streams[name] = store.subscribe()
        await asyncio.gather(*(store.wait_ready(timeout) for store in self.stores.values()))
        logger.info(
            "Stores ready: "
            + ", ".join(f"{name}={len(store.current_items())}" for name, store in self.stores.items())
        )

    async def stop(self) -> None:
        for store in self.stores.values():
            store.dispose()
        self.streams = {}
        await self.activity_log.flush()
