"""
Tests for the companies and branches API endpoints.
"""
import pytest


class TestCompanies:
    @pytest.mark.asyncio
    async def test_create_and_list(self, authenticated_client):
        first = await authenticated_client.post("/api/v2/companies", json={"company_name": "Al Noor Trading"})
        second = await authenticated_client.post("/api/v2/companies", json={"company_name": "Red Sea Malls"})

        assert first.status_code == 201
        assert first.json()["company_id"] == "0001"
        assert second.json()["company_id"] == "0002"

        listing = await authenticated_client.get("/api/v2/companies")
        assert {c["company_name"] for c in listing.json()} == {"Al Noor Trading", "Red Sea Malls"}

    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        response = await client.get("/api/v2/companies")
        assert response.status_code == 401


class TestBranches:
    @pytest.mark.asyncio
    async def test_branch_ids_follow_city_and_location(self, authenticated_client):
        company = (await authenticated_client.post("/api/v2/companies", json={"company_name": "Al Noor"})).json()

        first = await authenticated_client.post(
            "/api/v2/branches",
            json={"company_id": company["company_id"], "branch_name": "Corniche", "city": "جدة", "location": "Corniche"},
        )
        assert first.status_code == 201
        assert first.json()["branch_id"].startswith(f"{company['company_id']}-JED-")

        listing = await authenticated_client.get("/api/v2/branches", params={"company_id": company["company_id"]})
        assert [b["branch_name"] for b in listing.json()] == ["Corniche"]

    @pytest.mark.asyncio
    async def test_unknown_company(self, authenticated_client):
        response = await authenticated_client.post(
            "/api/v2/branches", json={"company_id": "0404", "branch_name": "Nowhere", "city": "جدة"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_city(self, authenticated_client):
        company = (await authenticated_client.post("/api/v2/companies", json={"company_name": "Al Noor"})).json()
        response = await authenticated_client.post(
            "/api/v2/branches", json={"company_id": company["company_id"], "branch_name": "X", "city": "Atlantis"}
        )
        assert response.status_code == 422
