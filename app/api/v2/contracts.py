"""Contracts API - service contracts, renewal, archiving and addenda."""

from fastapi import APIRouter, status
from typing import Optional
import logging

from app.api.deps import CurrentActor, Registry
from app.exceptions import StorePersistenceError
from app.schemas.contract import (
    AddendumCreate,
    ArchiveRequest,
    ContractCreate,
    ContractListResponse,
    ContractResponse,
    ObligationResponse,
    RenewalResponse,
    RenewContractRequest,
)
from app.services.contract_renewal import ContractRenewalService, visit_obligations
from app.store.collection_store import StoreResult

logger = logging.getLogger(__name__)
router = APIRouter()


def _item(result: StoreResult, action: str) -> dict:
    if not result.success:
        raise StorePersistenceError(f"Could not {action}: {result.error}")
    return result.item


@router.get("", response_model=ContractListResponse)
async def list_contracts(
    registry: Registry,
    current_actor: CurrentActor,
    company_id: Optional[str] = None,
    include_archived: bool = False,
):
    """List contracts; archived ones only on request."""
    contracts = registry.contracts.all_contracts() if include_archived else registry.contracts.current_items()
    if company_id:
        contracts = [c for c in contracts if c.get("company_id") == company_id]
    return {"items": contracts, "total": len(contracts)}


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(contract_id: str, registry: Registry, current_actor: CurrentActor):
    return registry.contracts.require(contract_id)


@router.post("", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def create_contract(request: ContractCreate, registry: Registry, current_actor: CurrentActor):
    result = await registry.contracts.add_contract(request.model_dump(), current_actor.id)
    contract = _item(result, "create contract")
    logger.info(f"Contract {contract.get('contract_id')} created by {current_actor.id}")
    return contract


@router.post("/{contract_id}/renew", response_model=RenewalResponse)
async def renew_contract(
    contract_id: str,
    registry: Registry,
    current_actor: CurrentActor,
    request: Optional[RenewContractRequest] = None,
):
    """
    Renew a contract into a successor starting the day after it ends.

    A response with ``needs_reconciliation`` means the successor exists but
    the original is still active; the reconciler archives it later.
    """
    changes = request.model_dump(exclude_none=True) if request else None
    result = await ContractRenewalService(registry.contracts).renew_contract(contract_id, changes, current_actor.id)
    if not result.success and result.new_contract is None:
        raise StorePersistenceError(result.error)
    return result


@router.post("/{contract_id}/archive", response_model=ContractResponse)
async def archive_contract(
    contract_id: str,
    request: ArchiveRequest,
    registry: Registry,
    current_actor: CurrentActor,
):
    result = await ContractRenewalService(registry.contracts).archive_contract(
        contract_id, request.reason, current_actor.id
    )
    return _item(result, f"archive contract {contract_id}")


@router.post("/{contract_id}/addendums", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def add_addendum(
    contract_id: str,
    request: AddendumCreate,
    registry: Registry,
    current_actor: CurrentActor,
):
    result = await ContractRenewalService(registry.contracts).add_contract_addendum(
        contract_id, request.model_dump(), current_actor.id
    )
    return _item(result, f"add addendum to contract {contract_id}")


@router.get("/{contract_id}/obligations", response_model=list[ObligationResponse])
async def get_obligations(contract_id: str, registry: Registry, current_actor: CurrentActor):
    """Visits each service batch owes over the contract term."""
    return visit_obligations(registry.contracts.require(contract_id))
