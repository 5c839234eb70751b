"""Company and branch lookup stores used to label the planning grid."""

from typing import Optional

from app.exceptions import DirectoryValidationError
from app.store.collection_store import RemoteCollectionStore, StoreResult
from app.utils.ids import city_code, next_branch_id, next_company_id


def _live(item: dict) -> bool:
    return not item.get("is_archived")


class CompanyStore(RemoteCollectionStore):
    immutable_fields = frozenset({"id", "company_id", "created_at", "created_by"})

    def name_lookup(self) -> dict[str, str]:
        return {
            c["company_id"]: c.get("company_name") or c["company_id"]
            for c in self.current_items()
            if c.get("company_id") and _live(c)
        }

    async def add_company(self, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        payload = dict(data)
        payload["company_id"] = next_company_id(c.get("company_id") for c in self._cursor.values())
        payload["is_archived"] = False
        return await self.create(payload, performed_by)


class BranchStore(RemoteCollectionStore):
    immutable_fields = frozenset({"id", "branch_id", "company_id", "created_at", "created_by"})

    def name_lookup(self) -> dict[str, str]:
        return {
            b["branch_id"]: b.get("branch_name") or b["branch_id"]
            for b in self.current_items()
            if b.get("branch_id") and _live(b)
        }

    def find_by_branch_id(self, branch_id: str) -> Optional[dict]:
        for branch in self._cursor.values():
            if branch.get("branch_id") == branch_id:
                return branch
        return None

    def _location_number(self, city: str, location: Optional[str]) -> int:
        """Locations are numbered per city, shared across companies."""
        in_city = [b for b in self._cursor.values() if b.get("city") == city]
        for branch in in_city:
            if branch.get("location") == location:
                parts = (branch.get("branch_id") or "").split("-")
                if len(parts) == 4 and parts[2].isdigit():
                    return int(parts[2])
        return len({b.get("location") for b in in_city}) + 1

    async def add_branch(self, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        payload = dict(data)
        code = city_code(payload.get("city"))
        if code is None:
            raise DirectoryValidationError(f"Unknown branch city {payload.get('city')!r}")
        location_number = self._location_number(payload["city"], payload.get("location"))
        payload["branch_id"] = next_branch_id(
            payload["company_id"],
            code,
            location_number,
            (b.get("branch_id") for b in self._cursor.values()),
        )
        payload["is_archived"] = False
        return await self.create(payload, performed_by)
