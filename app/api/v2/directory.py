"""Companies and branches - the lookup entities labelling the planning grid."""

from fastapi import APIRouter, status
from typing import Optional
import logging

from app.api.deps import CurrentActor, Registry
from app.exceptions import NotFoundError, StorePersistenceError
from app.schemas.directory import BranchCreate, BranchResponse, CompanyCreate, CompanyResponse

logger = logging.getLogger(__name__)
companies_router = APIRouter()
branches_router = APIRouter()


@companies_router.get("", response_model=list[CompanyResponse])
async def list_companies(registry: Registry, current_actor: CurrentActor, include_archived: bool = False):
    return [c for c in registry.companies.current_items() if include_archived or not c.get("is_archived")]


@companies_router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
async def create_company(request: CompanyCreate, registry: Registry, current_actor: CurrentActor):
    result = await registry.companies.add_company(request.model_dump(), current_actor.id)
    if not result.success:
        raise StorePersistenceError(f"Could not create company: {result.error}")
    return result.item


@branches_router.get("", response_model=list[BranchResponse])
async def list_branches(
    registry: Registry,
    current_actor: CurrentActor,
    company_id: Optional[str] = None,
    include_archived: bool = False,
):
    branches = registry.branches.current_items()
    return [
        b for b in branches
        if (include_archived or not b.get("is_archived"))
        and (company_id is None or b.get("company_id") == company_id)
    ]


@branches_router.post("", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
async def create_branch(request: BranchCreate, registry: Registry, current_actor: CurrentActor):
    """Branch ids are derived from the company, city code and location."""
    if request.company_id not in registry.companies.name_lookup():
        raise NotFoundError("Company", request.company_id)
    result = await registry.branches.add_branch(request.model_dump(), current_actor.id)
    if not result.success:
        raise StorePersistenceError(f"Could not create branch: {result.error}")
    return result.item
