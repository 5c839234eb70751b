"""Weekly Planning API - the Saturday-to-Friday visit grid and drag-and-drop moves."""

from fastapi import APIRouter, Query
from typing import Optional
import logging

from app.api.deps import CurrentActor, Registry, Session
from app.schemas.planning import (
    MoveVisitRequest,
    MoveVisitResponse,
    MovementResponse,
    WeeklyGridResponse,
    WeekStatusResponse,
)
from app.services.visit_mover import VisitMover
from app.services.weekly_planning import PlanningSession, WeeklyPlanner
from app.store.registry import StoreRegistry

logger = logging.getLogger(__name__)
router = APIRouter()


def _planner(registry: StoreRegistry, session: PlanningSession, week: int, year: int) -> WeeklyPlanner:
    return WeeklyPlanner(
        registry.visits,
        registry.companies,
        registry.branches,
        session=session,
        week_number=week,
        year=year,
        mover=VisitMover(registry.visits, session.journal),
    )


@router.get("/weeks/{year}/{week}", response_model=WeeklyGridResponse)
async def get_week(year: int, week: int, registry: Registry, session: Session, current_actor: CurrentActor):
    """Visits of one planning week bucketed into seven days."""
    planner = _planner(registry, session, week, year)
    return WeeklyGridResponse.model_validate(planner.grid)


@router.get("/weeks/{year}/{week}/status", response_model=WeekStatusResponse)
async def get_week_status(year: int, week: int, registry: Registry, session: Session, current_actor: CurrentActor):
    planner = _planner(registry, session, week, year)
    return WeekStatusResponse.model_validate(planner.week_status())


@router.post("/weeks/{year}/{week}/approve", response_model=WeekStatusResponse)
async def approve_week(year: int, week: int, registry: Registry, session: Session, current_actor: CurrentActor):
    planner = _planner(registry, session, week, year)
    status = planner.approve_week()
    logger.info(f"Week {week}/{year} approved by {current_actor.id}")
    return WeekStatusResponse.model_validate(status)


@router.post("/weeks/{year}/{week}/moves", response_model=MoveVisitResponse)
async def move_visit(
    year: int,
    week: int,
    request: MoveVisitRequest,
    registry: Registry,
    session: Session,
    current_actor: CurrentActor,
):
    """
    Move a visit between day slots of the displayed week.

    The returned grid is rebuilt from the store after the write.
    """
    planner = _planner(registry, session, week, year)
    movement = await planner.move_visit(request.visit_id, request.from_day, request.to_day, current_actor.id)
    return MoveVisitResponse(
        movement=MovementResponse.model_validate(movement),
        grid=WeeklyGridResponse.model_validate(planner.grid),
    )


@router.get("/movements", response_model=list[MovementResponse])
async def list_movements(
    session: Session,
    current_actor: CurrentActor,
    visit_id: Optional[str] = Query(None, description="Only movements of this visit"),
):
    """Movements made since the process started (not persisted)."""
    return [MovementResponse.model_validate(m) for m in session.journal.entries(visit_id)]
