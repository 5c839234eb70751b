"""Tests for business identifier generation."""

import re

from app.utils.ids import (
    EMERGENCY_TICKET_PATTERN,
    city_code,
    generate_addendum_id,
    generate_emergency_ticket_number,
    next_branch_id,
    next_company_id,
    next_contract_id,
    next_visit_id,
)


class TestCityCodes:
    def test_arabic_and_english_names(self):
        assert city_code("جدة") == "JED"
        assert city_code("الرياض") == "RYD"
        assert city_code("Jeddah") == "JED"
        assert city_code(" riyadh ") == "RYD"

    def test_code_passes_through(self):
        assert city_code("DAM") == "DAM"

    def test_unknown_city(self):
        assert city_code("Atlantis") is None
        assert city_code(None) is None


class TestEmergencyTicket:
    def test_format(self):
        for _ in range(20):
            ticket = generate_emergency_ticket_number("JED")
            assert EMERGENCY_TICKET_PATTERN.match(ticket), ticket

    def test_tickets_differ(self):
        tickets = {generate_emergency_ticket_number("RYD") for _ in range(50)}
        assert len(tickets) > 1


class TestSequences:
    def test_first_visit_of_year(self):
        assert next_visit_id([], 2025) == "VISIT-2025-0001"

    def test_visit_sequence_uses_highest_of_the_year(self):
        existing = ["VISIT-2025-0001", "VISIT-2025-0007", "VISIT-2024-0042", "EMG-JED-12345678", None]
        assert next_visit_id(existing, 2025) == "VISIT-2025-0008"
        assert next_visit_id(existing, 2024) == "VISIT-2024-0043"

    def test_company_ids(self):
        assert next_company_id([]) == "0001"
        assert next_company_id(["0001", "0003", "bogus"]) == "0004"

    def test_contract_ids_are_per_company(self):
        existing = ["0001-001", "0001-002", "0002-001"]
        assert next_contract_id("0001", existing) == "0001-003"
        assert next_contract_id("0003", existing) == "0003-001"

    def test_branch_ids(self):
        existing = ["0001-JED-001-0001"]
        assert next_branch_id("0001", "JED", 1, existing) == "0001-JED-001-0002"
        assert next_branch_id("0001", "JED", 2, existing) == "0001-JED-002-0001"

    def test_addendum_id_format(self):
        assert re.match(r"^ADD-\d{13}-[a-z0-9]{9}$", generate_addendum_id())
