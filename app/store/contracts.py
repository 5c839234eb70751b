"""Contract store."""

import copy
import logging
from typing import Optional

from app.exceptions import ContractNotFoundError, ContractValidationError
from app.middleware.correlation import get_actor_id
from app.store.backend import CollectionBackend
from app.store.collection_store import RemoteCollectionStore, StoreResult, utcnow
from app.utils import dates
from app.utils.dates import ParseFailure
from app.utils.ids import generate_batch_id, next_contract_id

logger = logging.getLogger(__name__)

CONTRACT_STATUSES = ("active", "archived", "expired", "cancelled")
HISTORY_ACTIONS = ("created", "renewed", "modified", "addendum_added", "archived")

_BATCH_DEFAULTS = {
    "branch_ids": [],
    "services": {},
    "regular_visits_per_year": 0,
    "emergency_visits_per_year": 0,
    "emergency_visit_cost": 0,
}


def is_archived(contract: dict) -> bool:
    return bool(contract.get("is_archived")) or contract.get("status") == "archived"


def history_entry(action: str, performed_by: Optional[str], description: str, details: Optional[dict] = None) -> dict:
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown contract history action {action!r}")
    return {
        "action": action,
        "timestamp": utcnow().isoformat(),
        "performed_by": performed_by or get_actor_id(),
        "description": description,
        "details": details or {},
    }


def normalize_batches(batches: Optional[list]) -> list[dict]:
    """Deep copy batches and give each one a batch id."""
    normalized = []
    for batch in copy.deepcopy(batches or []):
        batch["batch_id"] = batch.get("batch_id") or generate_batch_id()
        for key, default in _BATCH_DEFAULTS.items():
            if batch.get(key) is None:
                batch[key] = copy.copy(default)
        normalized.append(batch)
    return normalized


class ContractStore(RemoteCollectionStore):
    """Mirrors contracts; archived ones are hidden unless ``include_archived``."""

    immutable_fields = frozenset({"id", "contract_id", "created_at", "created_by"})

    def __init__(self, backend: CollectionBackend, *, include_archived: bool = False, **kwargs):
        super().__init__(backend, **kwargs)
        self.include_archived = include_archived

    def accepts(self, item: dict) -> bool:
        return self.include_archived or not is_archived(item)

    def all_contracts(self) -> list[dict]:
        """Every mirrored contract, archived included."""
        return list(self._cursor.values())

    def require(self, doc_id: str) -> dict:
        contract = self.get(doc_id) or self.find_by_contract_id(doc_id)
        if contract is None:
            raise ContractNotFoundError(doc_id)
        return contract

    def find_by_contract_id(self, contract_id: str) -> Optional[dict]:
        for contract in self._cursor.values():
            if contract.get("contract_id") == contract_id:
                return contract
        return None

    def generate_contract_id(self, company_id: str) -> str:
        return next_contract_id(company_id, (c.get("contract_id") for c in self._cursor.values()))

    @staticmethod
    def canonical_date(value, field: str) -> Optional[str]:
        if value is None:
            return None
        parsed = dates.parse_date(value)
        if isinstance(parsed, ParseFailure):
            raise ContractValidationError(f"{field} {value!r} is not a recognizable date ({parsed.reason})")
        return dates.format_date(parsed)

    async def add_contract(self, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        payload = dict(data)
        if not payload.get("company_id"):
            raise ContractValidationError("A contract needs a company")
        for field in ("contract_start_date", "contract_end_date"):
            payload[field] = self.canonical_date(payload.get(field), field)
        if not payload.get("contract_end_date") and not payload.get("contract_period_months"):
            raise ContractValidationError("A contract needs an end date or a period in months")

        payload["contract_id"] = self.generate_contract_id(payload["company_id"])
        payload["service_batches"] = normalize_batches(payload.get("service_batches"))
        payload["status"] = "active"
        payload["is_archived"] = False
        payload.setdefault("is_renewed", False)
        payload["addendums"] = []
        payload["contract_history"] = [
            history_entry("created", performed_by, f"Contract {payload['contract_id']} created")
        ]
        return await self.create(payload, performed_by)
