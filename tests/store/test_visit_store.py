"""Tests for visit lifecycle operations on the visit store."""

import pytest

from app.exceptions import VisitNotFoundError, VisitValidationError
from app.utils.ids import EMERGENCY_TICKET_PATTERN
from tests.factories import EmergencyVisitFactory, VisitFactory


class TestAddVisit:
    @pytest.mark.asyncio
    async def test_visit_ids_follow_the_sequence(self, registry):
        year = registry.visits.generate_visit_id().split("-")[1]

        first = (await registry.visits.add_visit(VisitFactory(visit_id=None))).item
        second = (await registry.visits.add_visit(VisitFactory(visit_id=None))).item

        assert first["visit_id"] == f"VISIT-{year}-0001"
        assert second["visit_id"] == f"VISIT-{year}-0002"

    @pytest.mark.asyncio
    async def test_dates_are_stored_canonical(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory(scheduled_date="2025-07-01"))).item
        assert visit["scheduled_date"] == "01-Jul-2025"
        assert visit["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_unparsable_date_is_rejected(self, registry):
        with pytest.raises(VisitValidationError):
            await registry.visits.add_visit(VisitFactory(scheduled_date="Invalid Date"))

    @pytest.mark.asyncio
    async def test_emergency_type_needs_intake(self, registry):
        with pytest.raises(VisitValidationError):
            await registry.visits.add_visit(VisitFactory(type="emergency"))


class TestEmergencyIntake:
    @pytest.mark.asyncio
    async def test_ticket_number_from_branch_city(self, registry):
        result = await registry.visits.create_emergency_visit(
            EmergencyVisitFactory(priority="high"), "جدة", performed_by="dispatcher-1"
        )

        visit = result.item
        assert result.success
        assert EMERGENCY_TICKET_PATTERN.match(visit["emergency_ticket_number"])
        assert visit["emergency_ticket_number"].startswith("EMG-JED-")
        assert visit["visit_id"] == visit["emergency_ticket_number"]
        assert visit["type"] == "emergency"
        assert visit["priority"] == "high"

    @pytest.mark.asyncio
    async def test_emergency_is_logged(self, registry):
        visit = (await registry.visits.create_emergency_visit(EmergencyVisitFactory(), "Riyadh")).item
        await registry.activity_log.flush()

        entries = await registry.activity_log.entries_for(visit["visit_id"])
        assert [entry.action for entry in entries] == ["emergency_created"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"priority": "urgent"},
            {"reported_by": "  "},
            {"customer_complaints": []},
            {"customer_complaints": ["", "   "]},
        ],
    )
    async def test_incomplete_intake_is_rejected(self, registry, overrides):
        with pytest.raises(VisitValidationError):
            await registry.visits.create_emergency_visit(EmergencyVisitFactory(**overrides), "جدة")
        assert registry.visits.current_items() == []

    @pytest.mark.asyncio
    async def test_unknown_city_is_rejected(self, registry):
        with pytest.raises(VisitValidationError):
            await registry.visits.create_emergency_visit(EmergencyVisitFactory(), "Atlantis")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_complete_sets_completed_date_and_logs(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory(notes="Gate code 1234"))).item
        result = await registry.visits.complete_visit(
            visit["id"],
            {"completed_date": "02-07-2025", "notes": "All extinguishers serviced", "results": {"overall_status": "passed"}},
            performed_by="tech-1",
        )
        await registry.activity_log.flush()

        completed = result.item
        assert completed["status"] == "completed"
        assert completed["completed_date"] == "02-Jul-2025"
        assert completed["notes"] == "Gate code 1234\nAll extinguishers serviced"
        entries = await registry.activity_log.entries_for(visit["visit_id"])
        assert entries[0].action == "completed"
        assert entries[0].performed_by == "tech-1"

    @pytest.mark.asyncio
    async def test_completed_status_update_fills_date(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item
        result = await registry.visits.update_visit(visit["id"], {"status": "completed"})
        assert result.item["completed_date"] is not None

    @pytest.mark.asyncio
    async def test_cancel_records_reason(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item
        result = await registry.visits.cancel_visit(visit["id"], "Branch closed for Eid")

        assert result.item["status"] == "cancelled"
        assert result.item["notes"].endswith("Cancelled: Branch closed for Eid")

    @pytest.mark.asyncio
    async def test_reschedule_requires_reason(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item
        with pytest.raises(VisitValidationError):
            await registry.visits.reschedule_visit(visit["id"], "03-Jul-2025", "  ")

    @pytest.mark.asyncio
    async def test_reschedule_records_old_and_new_date(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory(scheduled_date="01-Jul-2025"))).item
        result = await registry.visits.reschedule_visit(visit["id"], "2025-07-08", "Client request")

        assert result.item["status"] == "rescheduled"
        assert result.item["scheduled_date"] == "08-Jul-2025"
        assert "Rescheduled from 01-Jul-2025 to 08-Jul-2025: Client request" in result.item["notes"]

    @pytest.mark.asyncio
    async def test_update_cannot_turn_visit_into_emergency(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item
        with pytest.raises(VisitValidationError):
            await registry.visits.update_visit(visit["id"], {"type": "emergency"})
        assert registry.visits.get(visit["id"])["type"] == "regular"

    @pytest.mark.asyncio
    async def test_update_keeps_emergency_type(self, registry):
        emergency = (await registry.visits.create_emergency_visit(EmergencyVisitFactory(), "Jeddah")).item
        with pytest.raises(VisitValidationError):
            await registry.visits.update_visit(emergency["id"], {"type": "regular"})

        result = await registry.visits.update_visit(emergency["id"], {"type": "emergency", "notes": "Gate locked"})
        assert result.item["emergency_ticket_number"] == emergency["visit_id"]

    @pytest.mark.asyncio
    async def test_update_between_planned_types(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item
        result = await registry.visits.update_visit(visit["id"], {"type": "followup"})
        assert result.item["type"] == "followup"

    @pytest.mark.asyncio
    async def test_update_cannot_set_rescheduled(self, registry):
        visit = (await registry.visits.add_visit(VisitFactory(scheduled_date="01-Jul-2025"))).item
        with pytest.raises(VisitValidationError):
            await registry.visits.update_visit(visit["id"], {"status": "rescheduled"})
        assert registry.visits.get(visit["id"])["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_unknown_visit(self, registry):
        with pytest.raises(VisitNotFoundError):
            await registry.visits.cancel_visit("nope", "reason")


class TestQueries:
    @pytest.mark.asyncio
    async def test_filters_exclude_archived(self, registry):
        keep = (await registry.visits.add_visit(VisitFactory(branch_id="B-1", scheduled_date="01-Jul-2025"))).item
        archived = (await registry.visits.add_visit(VisitFactory(branch_id="B-1", scheduled_date="02-Jul-2025"))).item
        await registry.visits.add_visit(VisitFactory(branch_id="B-2", scheduled_date="20-Jul-2025"))
        await registry.visits.archive_visit(archived["id"])

        assert [v["id"] for v in registry.visits.get_visits_by_branch("B-1")] == [keep["id"]]
        assert [v["id"] for v in registry.visits.get_visits_by_date("2025-07-01")] == [keep["id"]]
        in_range = registry.visits.get_visits_by_date_range("01-Jul-2025", "31-Jul-2025")
        assert len(in_range) == 2
        assert len(registry.visits.filter_visits(include_archived=True)) == 3

    @pytest.mark.asyncio
    async def test_filter_by_search_and_status(self, registry):
        await registry.visits.add_visit(VisitFactory(assigned_team="Team Falcon"))
        await registry.visits.add_visit(VisitFactory(assigned_team="Team Hawk", status="in_progress"))

        assert len(registry.visits.filter_visits(search="falcon")) == 1
        assert len(registry.visits.filter_visits(status="in_progress")) == 1
