"""Visits API - planned and emergency maintenance visits."""

from fastapi import APIRouter, Query, status
from typing import Optional
import logging

from app.api.deps import CurrentActor, Registry
from app.exceptions import StorePersistenceError, VisitValidationError
from app.schemas.visit import (
    EmergencyVisitCreate,
    VisitCancel,
    VisitComplete,
    VisitCreate,
    VisitListResponse,
    VisitLogResponse,
    VisitReschedule,
    VisitResponse,
    VisitUpdate,
)
from app.store.collection_store import StoreResult

logger = logging.getLogger(__name__)
router = APIRouter()


def _item(result: StoreResult, action: str) -> dict:
    if not result.success:
        raise StorePersistenceError(f"Could not {action}: {result.error}")
    return result.item


@router.get("", response_model=VisitListResponse)
async def list_visits(
    registry: Registry,
    current_actor: CurrentActor,
    status: Optional[str] = None,
    type: Optional[str] = None,
    branch_id: Optional[str] = None,
    company_id: Optional[str] = None,
    contract_id: Optional[str] = None,
    date_from: Optional[str] = Query(None, description="Any recognizable date, inclusive"),
    date_to: Optional[str] = Query(None, description="Any recognizable date, inclusive"),
    search: Optional[str] = None,
    include_archived: bool = False,
):
    """List visits from the store mirror with filtering."""
    visits = registry.visits.filter_visits(
        status=status,
        visit_type=type,
        branch_id=branch_id,
        company_id=company_id,
        contract_id=contract_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
        include_archived=include_archived,
    )
    return {"items": visits, "total": len(visits)}


@router.get("/{visit_id}", response_model=VisitResponse)
async def get_visit(visit_id: str, registry: Registry, current_actor: CurrentActor):
    return registry.visits.resolve(visit_id)


@router.get("/{visit_id}/logs", response_model=list[VisitLogResponse])
async def get_visit_logs(visit_id: str, registry: Registry, current_actor: CurrentActor):
    visit = registry.visits.resolve(visit_id)
    return await registry.activity_log.entries_for(visit.get("visit_id") or visit["id"])


@router.post("", response_model=VisitResponse, status_code=status.HTTP_201_CREATED)
async def create_visit(request: VisitCreate, registry: Registry, current_actor: CurrentActor):
    result = await registry.visits.add_visit(request.model_dump(), current_actor.id)
    visit = _item(result, "create visit")
    logger.info(f"Visit {visit.get('visit_id')} created by {current_actor.id}")
    return visit


@router.post("/emergency", response_model=VisitResponse, status_code=status.HTTP_201_CREATED)
async def create_emergency_visit(request: EmergencyVisitCreate, registry: Registry, current_actor: CurrentActor):
    """Emergency intake; the ticket number comes from the branch city."""
    branch = registry.branches.find_by_branch_id(request.branch_id)
    if branch is None:
        raise VisitValidationError(f"Unknown branch {request.branch_id}")
    result = await registry.visits.create_emergency_visit(
        request.model_dump(), branch.get("city"), current_actor.id
    )
    return _item(result, "create emergency visit")


@router.patch("/{visit_id}", response_model=VisitResponse)
async def update_visit(visit_id: str, request: VisitUpdate, registry: Registry, current_actor: CurrentActor):
    visit = registry.visits.resolve(visit_id)
    result = await registry.visits.update_visit(
        visit["id"], request.model_dump(exclude_unset=True), current_actor.id
    )
    return _item(result, f"update visit {visit_id}")


@router.post("/{visit_id}/complete", response_model=VisitResponse)
async def complete_visit(visit_id: str, request: VisitComplete, registry: Registry, current_actor: CurrentActor):
    visit = registry.visits.resolve(visit_id)
    result = await registry.visits.complete_visit(
        visit["id"], request.model_dump(exclude_unset=True), current_actor.id
    )
    return _item(result, f"complete visit {visit_id}")


@router.post("/{visit_id}/cancel", response_model=VisitResponse)
async def cancel_visit(visit_id: str, request: VisitCancel, registry: Registry, current_actor: CurrentActor):
    visit = registry.visits.resolve(visit_id)
    result = await registry.visits.cancel_visit(visit["id"], request.reason, current_actor.id)
    return _item(result, f"cancel visit {visit_id}")


@router.post("/{visit_id}/reschedule", response_model=VisitResponse)
async def reschedule_visit(visit_id: str, request: VisitReschedule, registry: Registry, current_actor: CurrentActor):
    visit = registry.visits.resolve(visit_id)
    result = await registry.visits.reschedule_visit(
        visit["id"], request.new_date, request.reason, request.new_time, current_actor.id
    )
    return _item(result, f"reschedule visit {visit_id}")


@router.post("/{visit_id}/archive", response_model=VisitResponse)
async def archive_visit(visit_id: str, registry: Registry, current_actor: CurrentActor):
    visit = registry.visits.resolve(visit_id)
    result = await registry.visits.archive_visit(visit["id"], current_actor.id)
    return _item(result, f"archive visit {visit_id}")


@router.delete("/{visit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_visit(visit_id: str, registry: Registry, current_actor: CurrentActor):
    """Hard delete, for data correction only. Normal flow archives."""
    visit = registry.visits.resolve(visit_id)
    _item(await registry.visits.delete(visit["id"]), f"delete visit {visit_id}")
    logger.warning(f"Visit {visit_id} deleted by {current_actor.id}")
