"""Tests for the weekly planning grid and planner sessions."""

import asyncio
from datetime import date

import pytest

from app.exceptions import InvalidWeekError, VisitNotFoundError
from app.services.visit_mover import VisitMover
from app.services.weekly_planning import (
    UNKNOWN_BRANCH,
    UNKNOWN_COMPANY,
    PlanningSession,
    WeeklyPlanner,
    build_weekly_grid,
    summarize_week,
)
from tests.factories import BranchFactory, CompanyFactory, CompletedVisitFactory, VisitFactory


def _day(grid, index):
    return grid.daily_plans[index]


class TestBuildWeeklyGrid:
    def test_week_boundaries_and_labels(self):
        grid = build_weekly_grid(26, 2025, [])

        assert grid.week_start_date == "28-Jun-2025"
        assert grid.week_end_date == "04-Jul-2025"
        assert [plan.day_of_week for plan in grid.daily_plans] == [
            "Saturday", "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday",
        ]
        assert [plan.day_index for plan in grid.daily_plans] == list(range(7))
        assert all(plan.total_visits == 0 for plan in grid.daily_plans)

    def test_visits_land_on_their_day(self):
        visits = [
            VisitFactory(scheduled_date="01-Jul-2025", duration=2),
            VisitFactory(scheduled_date="2025-07-01", duration=1.5),
            VisitFactory(scheduled_date="28/06/2025", duration=1),
            VisitFactory(scheduled_date="05-Jul-2025"),
        ]
        grid = build_weekly_grid(26, 2025, visits)

        assert len(grid.visits) == 3
        assert _day(grid, 3).total_visits == 2
        assert _day(grid, 3).total_duration == 3.5
        assert _day(grid, 0).total_visits == 1
        assert grid.visits[0]["day_index"] == 3
        assert grid.visits[0]["week_number"] == 26

    def test_every_visit_in_exactly_one_day(self):
        visits = [VisitFactory(scheduled_date=f"{day:02d}-Jun-2025") for day in range(20, 31)]
        grid = build_weekly_grid(26, 2025, visits)

        bucketed = [v["id"] for plan in grid.daily_plans for v in plan.visits]
        assert sorted(bucketed) == sorted(v["id"] for v in grid.visits)
        assert len(bucketed) == 3  # 28, 29, 30 June

    def test_unparsable_dates_are_skipped_and_counted(self):
        visits = [
            VisitFactory(scheduled_date="Invalid Date"),
            VisitFactory(scheduled_date="NaN"),
            VisitFactory(scheduled_date=None),
            VisitFactory(scheduled_date="01-Jul-2025"),
        ]
        grid = build_weekly_grid(26, 2025, visits)

        assert grid.skipped_count == 3
        assert len(grid.visits) == 1

    def test_archived_visits_are_excluded(self):
        grid = build_weekly_grid(26, 2025, [VisitFactory(is_archived=True)])
        assert grid.visits == []

    def test_names_are_resolved_with_fallbacks(self):
        company = CompanyFactory(company_id="0001", company_name="Al Noor Trading")
        branch = BranchFactory(branch_id="0001-JED-001-0001", branch_name="Corniche")
        visits = [
            VisitFactory(),
            VisitFactory(company_id="0404", branch_id="0404-RYD-001-0001"),
        ]
        grid = build_weekly_grid(26, 2025, visits, [branch], [company])

        assert grid.visits[0]["company_name"] == "Al Noor Trading"
        assert grid.visits[0]["branch_name"] == "Corniche"
        assert grid.visits[1]["company_name"] == UNKNOWN_COMPANY
        assert grid.visits[1]["branch_name"] == UNKNOWN_BRANCH

    def test_week_that_straddles_new_year(self):
        grid = build_weekly_grid(53, 2024, [VisitFactory(scheduled_date="01-Jan-2025")])
        assert len(grid.visits) == 1
        assert grid.week_end_date == "03-Jan-2025"

    def test_invalid_week(self):
        with pytest.raises(InvalidWeekError):
            build_weekly_grid(53, 2025, [])


class TestSummarizeWeek:
    def test_empty_week_is_draft(self):
        assert summarize_week(build_weekly_grid(26, 2025, [])).status == "draft"

    def test_approved_week(self):
        grid = build_weekly_grid(26, 2025, [VisitFactory()])
        assert summarize_week(grid, approved=True).status == "approved"

    def test_started_week_is_in_progress(self):
        grid = build_weekly_grid(26, 2025, [VisitFactory(), CompletedVisitFactory()])
        status = summarize_week(grid, approved=True)

        assert status.status == "in-progress"
        assert status.completed_visits == 1
        assert status.pending_visits == 1

    def test_finished_week_is_completed(self):
        visits = [CompletedVisitFactory(), VisitFactory(status="cancelled"), VisitFactory(type="emergency", status="completed")]
        status = summarize_week(build_weekly_grid(26, 2025, visits))

        assert status.status == "completed"
        assert status.total_visits == 3
        assert status.cancelled_visits == 1
        assert status.emergency_visits == 1


class TestWeeklyPlanner:
    @pytest.mark.asyncio
    async def test_navigation_rolls_over_years(self, registry):
        planner = WeeklyPlanner(registry.visits, registry.companies, registry.branches, week_number=52, year=2025)

        grid = planner.next_week()
        assert (grid.week_number, grid.year) == (1, 2026)
        planner.go_to_week(1, 2025)
        grid = planner.previous_week()
        assert (grid.week_number, grid.year) == (53, 2024)

        grid = planner.go_to_date("2025-07-01")
        assert (grid.week_number, grid.year) == (26, 2025)

    @pytest.mark.asyncio
    async def test_defaults_to_current_week(self, registry):
        planner = WeeklyPlanner(registry.visits, registry.companies, registry.branches)
        assert (planner.week_number, planner.year) == (planner.grid.week_number, planner.grid.year)

    @pytest.mark.asyncio
    async def test_approval_is_per_week(self, registry):
        session = PlanningSession()
        planner = WeeklyPlanner(registry.visits, registry.companies, registry.branches, session, 26, 2025)

        assert planner.approve_week().status == "approved"
        planner.next_week()
        assert planner.week_status().status == "draft"
        assert session.is_approved(26, 2025)

    @pytest.mark.asyncio
    async def test_attached_planner_follows_snapshots(self, registry):
        planner = WeeklyPlanner(registry.visits, registry.companies, registry.branches, week_number=26, year=2025)
        planner.attach()
        try:
            await registry.visits.add_visit(VisitFactory(scheduled_date="01-Jul-2025"))
            for _ in range(200):
                if planner.grid.visits:
                    break
                await asyncio.sleep(0.01)
            assert len(planner.grid.visits) == 1
        finally:
            planner.detach()

    @pytest.mark.asyncio
    async def test_move_rebuilds_from_the_store(self, registry):
        session = PlanningSession()
        mover = VisitMover(registry.visits, session.journal, clock=lambda: date(2025, 7, 1))
        planner = WeeklyPlanner(
            registry.visits, registry.companies, registry.branches, session, 26, 2025, mover=mover
        )
        visit = (await registry.visits.add_visit(VisitFactory(scheduled_date="01-Jul-2025"))).item
        planner.rebuild()

        movement = await planner.move_visit(visit["visit_id"], 3, 6, performed_by="planner-1")

        assert movement.to_date == "04-Jul-2025"
        assert _day(planner.grid, 6).visits[0]["id"] == visit["id"]
        assert _day(planner.grid, 3).visits == []
        assert planner.movements == [movement]

    @pytest.mark.asyncio
    async def test_move_requires_visit_in_displayed_week(self, registry):
        planner = WeeklyPlanner(registry.visits, registry.companies, registry.branches, week_number=30, year=2025)
        visit = (await registry.visits.add_visit(VisitFactory(scheduled_date="01-Jul-2025"))).item

        with pytest.raises(VisitNotFoundError):
            await planner.move_visit(visit["id"], 3, 4)
