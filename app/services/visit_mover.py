"""
Visit Mover

Moves a visit between day slots of the displayed planning week:

    new_date = scheduled_date + (to_day - from_day) days

Every check runs before the write. The mover never patches a grid; callers
rebuild from the store mirror after the move so concurrent edits by other
viewers are not overwritten by a stale local copy.
"""

import logging
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Callable, Optional

from app.config import settings
from app.exceptions import (
    InvalidVisitDateError,
    MoveOutOfBoundsError,
    StorePersistenceError,
    VisitValidationError,
)
from app.middleware.correlation import get_actor_id
from app.store.visits import VisitStore
from app.utils import dates
from app.utils.dates import ParseFailure

logger = logging.getLogger(__name__)

MOVEMENT_JOURNAL_SIZE = 1000


@dataclass(frozen=True)
class VisitMovement:
    """Audit record of one move. Kept in memory only."""

    visit_id: str
    from_day: int
    to_day: int
    from_date: str
    to_date: str
    performed_by: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return asdict(self)


class MovementJournal:
    """Bounded, process-local list of movements, newest last."""

    def __init__(self, maxlen: int = MOVEMENT_JOURNAL_SIZE):
        self._entries: deque[VisitMovement] = deque(maxlen=maxlen)

    def append(self, movement: VisitMovement) -> None:
        self._entries.append(movement)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self, visit_id: Optional[str] = None) -> list[VisitMovement]:
        if visit_id is None:
            return list(self._entries)
        return [m for m in self._entries if m.visit_id == visit_id]


class VisitMover:
    def __init__(
        self,
        store: VisitStore,
        journal: Optional[MovementJournal] = None,
        max_year_distance: Optional[int] = None,
        clock: Callable[[], date] = dates.today,
    ):
        self.store = store
        self.journal = journal if journal is not None else MovementJournal()
        self.max_year_distance = (
            settings.MOVE_MAX_YEAR_DISTANCE if max_year_distance is None else max_year_distance
        )
        self._clock = clock

    def target_date(self, visit: dict, from_day: int, to_day: int) -> date:
        for day in (from_day, to_day):
            if not 0 <= day <= 6:
                raise VisitValidationError(f"Day index {day} is outside the planning week (0-6)")

        parsed = dates.parse_date(visit.get("scheduled_date"))
        if isinstance(parsed, ParseFailure):
            raise InvalidVisitDateError(visit.get("visit_id") or visit["id"], visit.get("scheduled_date"))

        new_date = dates.add_days(parsed, to_day - from_day)
        if abs(new_date.year - self._clock().year) > self.max_year_distance:
            raise MoveOutOfBoundsError(
                visit.get("visit_id") or visit["id"], dates.format_date(new_date), self.max_year_distance
            )
        return new_date

    async def move(
        self,
        visit_key: str,
        from_day: int,
        to_day: int,
        performed_by: Optional[str] = None,
    ) -> VisitMovement:
        visit = self.store.resolve(visit_key)
        new_date = self.target_date(visit, from_day, to_day)
        new_text = dates.format_date(new_date)
        actor = performed_by or get_actor_id()

        result = await self.store.update(visit["id"], {"scheduled_date": new_text}, actor)
        if not result.success:
            raise StorePersistenceError(f"Could not move visit {visit.get('visit_id')}: {result.error}")

        movement = VisitMovement(
            visit_id=visit.get("visit_id") or visit["id"],
            from_day=from_day,
            to_day=to_day,
            from_date=visit.get("scheduled_date"),
            to_date=new_text,
            performed_by=actor,
        )
        self.journal.append(movement)
        logger.info(
            f"Moved visit {movement.visit_id} from {movement.from_date} (day {from_day}) "
            f"to {new_text} (day {to_day})"
        )
        return movement
