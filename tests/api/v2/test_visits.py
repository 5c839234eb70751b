"""
Tests for the visits API endpoints.
"""
import pytest
import pytest_asyncio

from tests.factories import BranchFactory, CompanyFactory, VisitFactory


@pytest_asyncio.fixture
async def jeddah_branch(registry):
    company = (await registry.companies.add_company(CompanyFactory())).item
    branch = (await registry.branches.add_branch(
        BranchFactory(company_id=company["company_id"], city="جدة")
    )).item
    return branch


class TestCreateVisit:
    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        response = await client.post("/api/v2/visits", json={"branch_id": "x", "company_id": "0001"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_visit(self, authenticated_client):
        response = await authenticated_client.post(
            "/api/v2/visits",
            json={
                "branch_id": "0001-JED-001-0001",
                "company_id": "0001",
                "scheduled_date": "2025-07-01",
                "assigned_team": "Team A",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["visit_id"].startswith("VISIT-")
        assert data["scheduled_date"] == "01-Jul-2025"
        assert data["status"] == "scheduled"
        assert data["type"] == "regular"
        assert data["created_by"] == "planner-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"scheduled_date": "Invalid Date"},
            {"scheduled_date": "31-Feb-2025"},
            {"type": "emergency"},
            {"branch_id": ""},
        ],
    )
    async def test_invalid_payload(self, authenticated_client, overrides):
        payload = {"branch_id": "0001-JED-001-0001", "company_id": "0001", "scheduled_date": "01-Jul-2025"}
        payload.update(overrides)
        response = await authenticated_client.post("/api/v2/visits", json=payload)
        assert response.status_code == 422


class TestEmergencyVisit:
    @pytest.mark.asyncio
    async def test_emergency_intake(self, authenticated_client, jeddah_branch):
        response = await authenticated_client.post(
            "/api/v2/visits/emergency",
            json={
                "branch_id": jeddah_branch["branch_id"],
                "company_id": jeddah_branch["company_id"],
                "priority": "critical",
                "reported_by": "Branch manager",
                "customer_complaints": ["Alarm panel beeping"],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["emergency_ticket_number"].startswith("EMG-JED-")
        assert data["type"] == "emergency"
        assert data["scheduled_date"] is not None

        logs = await authenticated_client.get(f"/api/v2/visits/{data['visit_id']}/logs")
        assert logs.status_code == 200

    @pytest.mark.asyncio
    async def test_emergency_without_complaints(self, authenticated_client, jeddah_branch):
        response = await authenticated_client.post(
            "/api/v2/visits/emergency",
            json={
                "branch_id": jeddah_branch["branch_id"],
                "company_id": jeddah_branch["company_id"],
                "priority": "high",
                "reported_by": "Branch manager",
                "customer_complaints": [],
            },
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_emergency_for_unknown_branch(self, authenticated_client):
        response = await authenticated_client.post(
            "/api/v2/visits/emergency",
            json={
                "branch_id": "0001-XXX-001-0001",
                "company_id": "0001",
                "priority": "high",
                "reported_by": "Branch manager",
                "customer_complaints": ["Smoke detector fault"],
            },
        )
        assert response.status_code == 422


class TestVisitLifecycle:
    @pytest.mark.asyncio
    async def test_get_by_visit_id_or_document_id(self, authenticated_client, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item

        by_doc = await authenticated_client.get(f"/api/v2/visits/{visit['id']}")
        by_business_id = await authenticated_client.get(f"/api/v2/visits/{visit['visit_id']}")

        assert by_doc.status_code == 200
        assert by_doc.json()["id"] == by_business_id.json()["id"]

    @pytest.mark.asyncio
    async def test_get_missing_visit(self, authenticated_client):
        response = await authenticated_client.get("/api/v2/visits/VISIT-2025-9999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_complete_visit(self, authenticated_client, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item

        response = await authenticated_client.post(
            f"/api/v2/visits/{visit['visit_id']}/complete",
            json={"completed_date": "2025-07-02", "results": {"overall_status": "passed"}},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["completed_date"] == "02-Jul-2025"
        assert response.json()["updated_by"] == "planner-1"

    @pytest.mark.asyncio
    async def test_reschedule_needs_reason(self, authenticated_client, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item
        response = await authenticated_client.post(
            f"/api/v2/visits/{visit['id']}/reschedule", json={"new_date": "08-Jul-2025", "reason": ""}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_reschedule(self, authenticated_client, registry):
        visit = (await registry.visits.add_visit(VisitFactory(scheduled_date="01-Jul-2025"))).item
        response = await authenticated_client.post(
            f"/api/v2/visits/{visit['id']}/reschedule", json={"new_date": "08/07/2025", "reason": "Branch closed"}
        )

        assert response.status_code == 200
        assert response.json()["scheduled_date"] == "08-Jul-2025"
        assert response.json()["status"] == "rescheduled"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"type": "emergency"}, {"status": "rescheduled"}])
    async def test_patch_cannot_bypass_intake_or_reschedule(self, authenticated_client, registry, payload):
        visit = (await registry.visits.add_visit(VisitFactory())).item

        response = await authenticated_client.patch(f"/api/v2/visits/{visit['id']}", json=payload)

        assert response.status_code == 422
        assert registry.visits.get(visit["id"])["type"] == "regular"
        assert registry.visits.get(visit["id"])["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_archive_hides_from_list(self, authenticated_client, registry):
        keep = (await registry.visits.add_visit(VisitFactory())).item
        gone = (await registry.visits.add_visit(VisitFactory())).item

        response = await authenticated_client.post(f"/api/v2/visits/{gone['id']}/archive")
        assert response.json()["is_archived"] is True

        listing = (await authenticated_client.get("/api/v2/visits")).json()
        assert [v["id"] for v in listing["items"]] == [keep["id"]]
        assert listing["total"] == 1

        listing = (await authenticated_client.get("/api/v2/visits", params={"include_archived": True})).json()
        assert listing["total"] == 2

    @pytest.mark.asyncio
    async def test_delete_visit(self, authenticated_client, registry):
        visit = (await registry.visits.add_visit(VisitFactory())).item

        response = await authenticated_client.delete(f"/api/v2/visits/{visit['id']}")

        assert response.status_code == 204
        assert registry.visits.get(visit["id"]) is None
