"""Visit activity log.

Secondary audit trail for visit completion and emergency intake. Writes
are fire-and-forget: the visit operation never waits for them and a
failed write is logged, not surfaced or retried.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import async_session_maker
from app.models.visit_log import VisitLog

logger = logging.getLogger(__name__)


class VisitActivityLog:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        enabled: Optional[bool] = None,
    ):
        self._session_maker = session_maker
        self.enabled = settings.ACTIVITY_LOG_ENABLED if enabled is None else enabled
        self._pending: set[asyncio.Task] = set()

    def record(self, visit_id: str, action: str, performed_by: Optional[str], details: Optional[dict] = None) -> None:
        """Schedule a log write and return immediately."""
        if not self.enabled:
            return
        task = asyncio.get_running_loop().create_task(
            self._write(visit_id, action, performed_by, details or {})
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, visit_id: str, action: str, performed_by: Optional[str], details: dict) -> None:
        try:
            async with self._session_maker() as session:
                session.add(VisitLog(
                    visit_id=visit_id,
                    action=action,
                    performed_by=performed_by,
                    details=details,
                ))
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Visit log write failed for {visit_id} ({action}): {e}")

    async def flush(self) -> None:
        """Wait for writes scheduled so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def entries_for(self, visit_id: str) -> list[VisitLog]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(VisitLog).where(VisitLog.visit_id == visit_id).order_by(VisitLog.created_at)
            )
            return list(result.scalars().all())
