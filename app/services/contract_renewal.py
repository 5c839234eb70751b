"""
Contract Renewal Service

Renewal creates a successor contract and then archives the predecessor.
The two writes are separate documents without a shared transaction, so a
failure between them leaves "successor exists, predecessor still active".
``reconcile_renewals`` detects and repairs exactly that state; the
scheduler in app/tasks/renewal_reconciler.py runs it periodically.

Date rules:
- duration: ``contract_period_months`` when positive, otherwise
  ceil(days / 30.44) between start and end
- new start: predecessor end + 1 day
- new end: new start + duration months (not reduced by a day)
"""

import copy
import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from app.exceptions import ContractValidationError, RenewalValidationError
from app.middleware.correlation import get_actor_id
from app.store.collection_store import StoreResult, utcnow
from app.store.contracts import ContractStore, history_entry, is_archived, normalize_batches
from app.utils import dates
from app.utils.dates import ParseFailure
from app.utils.ids import generate_addendum_id

logger = logging.getLogger(__name__)

RECONCILER_ACTOR = "renewal-reconciler"

# Fields a caller may override on the successor
RENEWAL_OVERRIDABLE_FIELDS = ("contract_value", "notes", "contract_document", "service_batches")


@dataclass
class RenewalPlan:
    duration_months: int
    predecessor_end: date
    new_start: date
    new_end: date


@dataclass
class RenewalResult:
    success: bool
    new_contract: Optional[dict] = None
    archived_contract: Optional[dict] = None
    error: Optional[str] = None
    # Successor written but predecessor not archived
    needs_reconciliation: bool = False


@dataclass
class BatchObligation:
    batch_id: str
    branch_ids: list[str]
    regular_visits: int
    emergency_visits: int
    emergency_budget: float = 0.0
    services: dict = field(default_factory=dict)


def _parse_contract_date(contract: dict, field_name: str) -> Optional[date]:
    value = contract.get(field_name)
    if value in (None, ""):
        return None
    parsed = dates.parse_date(value)
    if isinstance(parsed, ParseFailure):
        raise RenewalValidationError(
            f"Contract {contract.get('contract_id')} has an unparsable {field_name} {value!r}"
        )
    return parsed


def _period(contract: dict) -> Optional[int]:
    months = contract.get("contract_period_months")
    try:
        months = int(months) if months is not None else None
    except (TypeError, ValueError):
        raise RenewalValidationError(f"contract_period_months {months!r} is not a number")
    return months if months and months > 0 else None


def get_contract_duration(contract: dict) -> int:
    """Duration in months from the period, falling back to the start/end span."""
    months = _period(contract)
    if months:
        return months
    start = _parse_contract_date(contract, "contract_start_date")
    end = _parse_contract_date(contract, "contract_end_date")
    if start is None or end is None:
        raise RenewalValidationError(
            f"Contract {contract.get('contract_id')} has neither a period nor a start and end date"
        )
    months = dates.months_between(start, end)
    if months <= 0:
        raise RenewalValidationError(f"Contract {contract.get('contract_id')} ends before it starts")
    return months


def plan_renewal(contract: dict) -> RenewalPlan:
    """Pure date arithmetic for a renewal; raises before anything is written."""
    start = _parse_contract_date(contract, "contract_start_date")
    end = _parse_contract_date(contract, "contract_end_date")
    duration = get_contract_duration(contract)
    if end is None:
        if start is None:
            raise RenewalValidationError(f"Contract {contract.get('contract_id')} has no end date to renew from")
        end = dates.add_months(start, duration) - timedelta(days=1)

    new_start = dates.add_days(end, 1)
    return RenewalPlan(
        duration_months=duration,
        predecessor_end=end,
        new_start=new_start,
        new_end=dates.add_months(new_start, duration),
    )


def visit_obligations(contract: dict) -> list[BatchObligation]:
    """Visits each batch owes over the contract term (quota per year, pro rata, rounded up)."""
    duration = get_contract_duration(contract)
    obligations = []
    for batch in contract.get("service_batches") or []:
        regular = math.ceil((batch.get("regular_visits_per_year") or 0) * duration / 12)
        emergency = math.ceil((batch.get("emergency_visits_per_year") or 0) * duration / 12)
        obligations.append(BatchObligation(
            batch_id=batch.get("batch_id") or "",
            branch_ids=list(batch.get("branch_ids") or []),
            regular_visits=regular * max(len(batch.get("branch_ids") or []), 1),
            emergency_visits=emergency,
            emergency_budget=emergency * float(batch.get("emergency_visit_cost") or 0),
            services=dict(batch.get("services") or {}),
        ))
    return obligations


class ContractRenewalService:
    def __init__(self, store: ContractStore):
        self.store = store

    get_contract_duration = staticmethod(get_contract_duration)

    def _archive_payload(
        self,
        contract: dict,
        reason: str,
        actor: str,
        renewed_contract_id: Optional[str] = None,
    ) -> dict:
        details = {"archive_reason": reason}
        if renewed_contract_id:
            details["renewed_contract_id"] = renewed_contract_id
        payload = {
            "status": "archived",
            "is_archived": True,
            "archived_at": utcnow(),
            "archived_by": actor,
            "archive_reason": reason,
            "contract_history": list(contract.get("contract_history") or []) + [
                history_entry("archived", actor, f"Contract archived: {reason}", details)
            ],
        }
        if renewed_contract_id:
            payload["renewed_contract_id"] = renewed_contract_id
        return payload

    async def renew_contract(
        self,
        contract_key: str,
        changes: Optional[dict] = None,
        performed_by: Optional[str] = None,
    ) -> RenewalResult:
        contract = self.store.require(contract_key)
        if is_archived(contract) or contract.get("renewed_contract_id"):
            raise RenewalValidationError(f"Contract {contract.get('contract_id')} is already archived or renewed")
        plan = plan_renewal(contract)
        actor = performed_by or get_actor_id()

        changes = {k: v for k, v in (changes or {}).items() if k in RENEWAL_OVERRIDABLE_FIELDS and v is not None}
        new_contract_id = self.store.generate_contract_id(contract["company_id"])
        successor = {
            "contract_id": new_contract_id,
            "company_id": contract["company_id"],
            "contract_start_date": dates.format_date(plan.new_start),
            "contract_end_date": dates.format_date(plan.new_end),
            "contract_period_months": plan.duration_months,
            "contract_value": changes.get("contract_value", contract.get("contract_value")),
            "contract_document": copy.deepcopy(changes.get("contract_document", contract.get("contract_document"))),
            "notes": changes.get("notes", contract.get("notes")),
            "service_batches": normalize_batches(changes.get("service_batches", contract.get("service_batches"))),
            "status": "active",
            "is_archived": False,
            "is_renewed": True,
            "original_contract_id": contract["contract_id"],
            "addendums": [],
            "contract_history": [
                history_entry(
                    "renewed",
                    actor,
                    f"Renewed from contract {contract.get('contract_id')}",
                    {
                        "original_contract_id": contract["contract_id"],
                        "previous_end_date": dates.format_date(plan.predecessor_end),
                        "duration_months": plan.duration_months,
                    },
                )
            ],
        }

        created = await self.store.create(successor, actor)
        if not created.success:
            return RenewalResult(success=False, error=f"Could not create renewed contract: {created.error}")

        reason = f"Renewed into contract {new_contract_id}"
        archived = await self.store.update(
            contract["id"],
            self._archive_payload(contract, reason, actor, renewed_contract_id=created.item["id"]),
            actor,
        )
        if not archived.success:
            logger.error(
                f"Renewal of {contract.get('contract_id')} left the predecessor active "
                f"(successor {new_contract_id}): {archived.error}"
            )
            return RenewalResult(
                success=False,
                new_contract=created.item,
                error=f"Renewed contract created but the original could not be archived: {archived.error}",
                needs_reconciliation=True,
            )

        logger.info(f"Contract {contract.get('contract_id')} renewed into {new_contract_id}")
        return RenewalResult(success=True, new_contract=created.item, archived_contract=archived.item)

    async def archive_contract(
        self,
        contract_key: str,
        reason: str = "Contract archived",
        performed_by: Optional[str] = None,
    ) -> StoreResult:
        contract = self.store.require(contract_key)
        if is_archived(contract):
            return StoreResult(success=True, item=contract)
        actor = performed_by or get_actor_id()
        return await self.store.update(contract["id"], self._archive_payload(contract, reason, actor), actor)

    async def add_contract_addendum(
        self,
        contract_key: str,
        data: dict,
        performed_by: Optional[str] = None,
    ) -> StoreResult:
        contract = self.store.require(contract_key)
        description = (data.get("description") or "").strip()
        if not description:
            raise ContractValidationError("An addendum needs a description")
        effective_date = data.get("effective_date")
        if effective_date is not None:
            effective_date = self.store.canonical_date(effective_date, "effective_date")
        actor = performed_by or get_actor_id()

        addendum = {
            "addendum_id": generate_addendum_id(),
            "services": copy.deepcopy(data.get("services") or {}),
            "description": description,
            "effective_date": effective_date,
            "contract_value": data.get("contract_value"),
            "notes": data.get("notes"),
            "added_by": actor,
            "added_at": utcnow().isoformat(),
        }
        return await self.store.update(contract["id"], {
            "addendums": list(contract.get("addendums") or []) + [addendum],
            "contract_history": list(contract.get("contract_history") or []) + [
                history_entry(
                    "addendum_added",
                    actor,
                    f"Addendum added: {description}",
                    {"addendum_id": addendum["addendum_id"]},
                )
            ],
        }, actor)

    def pending_reconciliations(self) -> list[tuple[dict, dict]]:
        """(successor, predecessor) pairs whose predecessor was never archived."""
        pairs = []
        for successor in self.store.all_contracts():
            original_id = successor.get("original_contract_id")
            if not original_id or is_archived(successor):
                continue
            predecessor = self.store.find_by_contract_id(original_id)
            if predecessor is not None and not is_archived(predecessor):
                pairs.append((successor, predecessor))
        return pairs

    async def reconcile_renewals(self, performed_by: str = RECONCILER_ACTOR) -> list[str]:
        """Archive predecessors left active by a half-finished renewal."""
        repaired = []
        for successor, predecessor in self.pending_reconciliations():
            reason = f"Renewed into contract {successor.get('contract_id')} (reconciled)"
            result = await self.store.update(
                predecessor["id"],
                self._archive_payload(predecessor, reason, performed_by, renewed_contract_id=successor["id"]),
                performed_by,
            )
            if result.success:
                repaired.append(predecessor["id"])
                logger.info(f"Reconciled renewal: archived {predecessor.get('contract_id')}")
            else:
                logger.error(f"Reconciliation of {predecessor.get('contract_id')} failed: {result.error}")
        return repaired
