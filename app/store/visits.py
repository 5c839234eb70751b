"""Visit store: the visit collection mirror plus visit lifecycle operations."""

import logging
from datetime import date
from typing import Any, Optional

from app.exceptions import VisitNotFoundError, VisitValidationError
from app.services.activity_log import VisitActivityLog
from app.store.backend import CollectionBackend
from app.store.collection_store import RemoteCollectionStore, StoreResult
from app.utils import dates
from app.utils.dates import ParseFailure
from app.utils.ids import city_code, generate_emergency_ticket_number, next_visit_id

logger = logging.getLogger(__name__)

VISIT_TYPES = ("regular", "emergency", "followup")
VISIT_STATUSES = ("scheduled", "in_progress", "completed", "cancelled", "rescheduled")
EMERGENCY_PRIORITIES = ("low", "medium", "high", "critical")


def append_note(existing: Optional[str], note: str) -> str:
    """Notes accumulate line by line; the last line is the most recent."""
    if existing:
        return f"{existing}\n{note}"
    return note


def _is_live(visit: dict) -> bool:
    return not visit.get("is_archived")


class VisitStore(RemoteCollectionStore):
    immutable_fields = frozenset({"id", "visit_id", "created_at", "created_by"})

    def __init__(self, backend: CollectionBackend, *, activity_log: Optional[VisitActivityLog] = None, **kwargs):
        super().__init__(backend, **kwargs)
        self.activity_log = activity_log

    def _require(self, doc_id: str) -> dict:
        visit = self.get(doc_id)
        if visit is None:
            raise VisitNotFoundError(doc_id)
        return visit

    def find_by_visit_id(self, visit_id: str) -> Optional[dict]:
        for visit in self._cursor.values():
            if visit.get("visit_id") == visit_id:
                return visit
        return None

    def resolve(self, key: str) -> dict:
        """Look a visit up by document id or business visit id."""
        visit = self.get(key) or self.find_by_visit_id(key)
        if visit is None:
            raise VisitNotFoundError(key)
        return visit

    def generate_visit_id(self, year: Optional[int] = None) -> str:
        year = year or dates.today().year
        return next_visit_id((visit.get("visit_id") for visit in self._cursor.values()), year)

    @staticmethod
    def _canonical(value: Any, field: str) -> Optional[str]:
        if value is None:
            return None
        parsed = dates.parse_date(value)
        if isinstance(parsed, ParseFailure):
            raise VisitValidationError(f"{field} {value!r} is not a recognizable date ({parsed.reason})")
        return dates.format_date(parsed)

    def _log(self, visit: dict, action: str, performed_by: Optional[str], details: dict) -> None:
        if self.activity_log is not None:
            self.activity_log.record(visit.get("visit_id") or visit["id"], action, performed_by, details)

    # Creation

    async def add_visit(self, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        payload = dict(data)
        visit_type = payload.get("type") or "regular"
        if visit_type not in VISIT_TYPES:
            raise VisitValidationError(f"Unknown visit type {visit_type!r}")
        if visit_type == "emergency":
            raise VisitValidationError("Emergency visits go through emergency intake")
        payload["type"] = visit_type
        payload["status"] = payload.get("status") or "scheduled"
        payload["scheduled_date"] = self._canonical(payload.get("scheduled_date"), "scheduled_date")
        payload["visit_id"] = self.generate_visit_id()
        payload["is_archived"] = False
        payload.setdefault("attachments", [])
        return await self.create(payload, performed_by)

    async def create_emergency_visit(
        self,
        data: dict,
        branch_city: Optional[str],
        performed_by: Optional[str] = None,
    ) -> StoreResult:
        """Emergency intake: ticket number, priority, reporter and complaints are mandatory."""
        code = city_code(branch_city)
        if code is None:
            raise VisitValidationError(f"Branch city {branch_city!r} has no known city code")
        priority = data.get("priority")
        if priority not in EMERGENCY_PRIORITIES:
            raise VisitValidationError(f"Emergency priority must be one of {', '.join(EMERGENCY_PRIORITIES)}")
        if not (data.get("reported_by") or "").strip():
            raise VisitValidationError("Emergency visits need the name of the reporter")
        complaints = [c.strip() for c in data.get("customer_complaints") or [] if c and c.strip()]
        if not complaints:
            raise VisitValidationError("Emergency visits need at least one customer complaint")

        ticket = generate_emergency_ticket_number(code)
        payload = dict(data)
        payload.update(
            type="emergency",
            status=payload.get("status") or "scheduled",
            visit_id=ticket,
            emergency_ticket_number=ticket,
            customer_complaints=complaints,
            scheduled_date=self._canonical(payload.get("scheduled_date"), "scheduled_date") or dates.today_text(),
            is_archived=False,
        )
        payload.setdefault("attachments", [])

        result = await self.create(payload, performed_by)
        if result.success:
            self._log(result.item, "emergency_created", performed_by, {
                "ticket": ticket,
                "priority": priority,
                "branch_id": payload.get("branch_id"),
            })
        return result

    # Lifecycle

    async def update_visit(self, doc_id: str, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        visit = self._require(doc_id)
        payload = dict(data)
        for field in ("scheduled_date", "completed_date"):
            if field in payload:
                payload[field] = self._canonical(payload[field], field)

        visit_type = payload.get("type")
        current_type = visit.get("type") or "regular"
        if visit_type is not None:
            if visit_type not in VISIT_TYPES:
                raise VisitValidationError(f"Unknown visit type {visit_type!r}")
            if visit_type != current_type and "emergency" in (visit_type, current_type):
                raise VisitValidationError("Emergency visits go through emergency intake and keep their type")

        status = payload.get("status")
        if status is not None and status not in VISIT_STATUSES:
            raise VisitValidationError(f"Unknown visit status {status!r}")
        if status == "rescheduled" and visit.get("status") != "rescheduled":
            raise VisitValidationError("Rescheduling needs a new date and a reason; use reschedule")
        if status == "completed" and not (payload.get("completed_date") or visit.get("completed_date")):
            payload["completed_date"] = dates.today_text()
        return await self.update(doc_id, payload, performed_by)

    async def schedule_visit(
        self, doc_id: str, scheduled_date: Any, scheduled_time: Optional[str] = None, performed_by: Optional[str] = None
    ) -> StoreResult:
        self._require(doc_id)
        return await self.update(doc_id, {
            "status": "scheduled",
            "scheduled_date": self._canonical(scheduled_date, "scheduled_date"),
            "scheduled_time": scheduled_time,
        }, performed_by)

    async def complete_visit(self, doc_id: str, completion: dict, performed_by: Optional[str] = None) -> StoreResult:
        visit = self._require(doc_id)
        payload = dict(completion)
        payload["status"] = "completed"
        payload["completed_date"] = (
            self._canonical(payload.get("completed_date"), "completed_date") or dates.today_text()
        )
        if payload.get("notes"):
            payload["notes"] = append_note(visit.get("notes"), payload["notes"])

        result = await self.update(doc_id, payload, performed_by)
        if result.success:
            self._log(result.item, "completed", performed_by, {
                "completed_date": payload["completed_date"],
                "overall_status": (payload.get("results") or {}).get("overall_status"),
            })
        return result

    async def cancel_visit(self, doc_id: str, reason: str, performed_by: Optional[str] = None) -> StoreResult:
        visit = self._require(doc_id)
        return await self.update(doc_id, {
            "status": "cancelled",
            "notes": append_note(visit.get("notes"), f"Cancelled: {reason}"),
        }, performed_by)

    async def reschedule_visit(
        self,
        doc_id: str,
        new_date: Any,
        reason: str,
        new_time: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> StoreResult:
        visit = self._require(doc_id)
        if not (reason or "").strip():
            raise VisitValidationError("Rescheduling a visit requires a reason")
        target = self._canonical(new_date, "new_date")
        note = f"Rescheduled from {visit.get('scheduled_date')} to {target}: {reason.strip()}"
        return await self.update(doc_id, {
            "status": "rescheduled",
            "scheduled_date": target,
            "scheduled_time": new_time,
            "notes": append_note(visit.get("notes"), note),
        }, performed_by)

    async def archive_visit(self, doc_id: str, performed_by: Optional[str] = None) -> StoreResult:
        self._require(doc_id)
        return await self.update(doc_id, {"is_archived": True}, performed_by)

    # Queries over the mirror, archived visits excluded

    def get_visits_by_branch(self, branch_id: str) -> list[dict]:
        return self.find(lambda v: _is_live(v) and v.get("branch_id") == branch_id)

    def get_visits_by_contract(self, contract_id: str) -> list[dict]:
        return self.find(lambda v: _is_live(v) and v.get("contract_id") == contract_id)

    def get_visits_by_company(self, company_id: str) -> list[dict]:
        return self.find(lambda v: _is_live(v) and v.get("company_id") == company_id)

    def get_visits_by_date(self, on: Any) -> list[dict]:
        target = dates.parse_date_strict(on)
        return self.find(lambda v: _is_live(v) and dates.parse_date(v.get("scheduled_date")) == target)

    def get_visits_by_date_range(self, start: Any, end: Any) -> list[dict]:
        first, last = dates.parse_date_strict(start), dates.parse_date_strict(end)

        def within(visit: dict) -> bool:
            parsed = dates.parse_date(visit.get("scheduled_date"))
            return isinstance(parsed, date) and first <= parsed <= last

        return self.find(lambda v: _is_live(v) and within(v))

    def filter_visits(
        self,
        *,
        status: Optional[str] = None,
        visit_type: Optional[str] = None,
        branch_id: Optional[str] = None,
        company_id: Optional[str] = None,
        contract_id: Optional[str] = None,
        date_from: Any = None,
        date_to: Any = None,
        search: Optional[str] = None,
        include_archived: bool = False,
    ) -> list[dict]:
        first = dates.parse_date_strict(date_from) if date_from else None
        last = dates.parse_date_strict(date_to) if date_to else None
        needle = search.lower() if search else None

        def matches(visit: dict) -> bool:
            if not include_archived and not _is_live(visit):
                return False
            if status and visit.get("status") != status:
                return False
            if visit_type and visit.get("type") != visit_type:
                return False
            if branch_id and visit.get("branch_id") != branch_id:
                return False
            if company_id and visit.get("company_id") != company_id:
                return False
            if contract_id and visit.get("contract_id") != contract_id:
                return False
            if first or last:
                parsed = dates.parse_date(visit.get("scheduled_date"))
                if not isinstance(parsed, date):
                    return False
                if (first and parsed < first) or (last and parsed > last):
                    return False
            if needle:
                haystack = " ".join(
                    str(visit.get(key) or "")
                    for key in ("visit_id", "notes", "assigned_team", "assigned_technician", "branch_id")
                ).lower()
                if needle not in haystack:
                    return False
            return True

        return self.find(matches)
