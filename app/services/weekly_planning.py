"""
Weekly Planning Service

Projects the visit collection onto a Saturday-first, 7-day planning grid
and runs planner sessions on top of it.

The grid is derived state only. It is rebuilt from the stores' cursors
whenever visits change; nothing here writes to the grid in place.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from app.exceptions import VisitNotFoundError
from app.services.visit_mover import MovementJournal, VisitMovement, VisitMover
from app.store.collection_store import StoreResult, StoreSnapshot, index_by
from app.store.directory import BranchStore, CompanyStore
from app.store.visits import VisitStore
from app.utils import dates
from app.utils.dates import ParseFailure, ParseFailureLog

logger = logging.getLogger(__name__)

UNKNOWN_COMPANY = "Unknown Company"
UNKNOWN_BRANCH = "Unknown Branch"

FINISHED_STATUSES = ("completed", "cancelled")
PENDING_STATUSES = ("scheduled", "in_progress", "rescheduled")


@dataclass
class DailyPlan:
    date: str
    day_index: int
    day_of_week: str
    visits: list[dict] = field(default_factory=list)
    total_visits: int = 0
    total_duration: float = 0.0


@dataclass
class WeeklyPlanningGrid:
    week_number: int
    year: int
    week_start_date: str
    week_end_date: str
    visits: list[dict]
    daily_plans: list[DailyPlan]
    skipped_count: int = 0


@dataclass
class WeekStatus:
    week_number: int
    year: int
    total_visits: int
    completed_visits: int
    pending_visits: int
    cancelled_visits: int
    emergency_visits: int
    status: str  # draft, approved, in-progress, completed


def build_weekly_grid(
    week_number: int,
    year: int,
    visits: Iterable[dict],
    branches: Iterable[dict] = (),
    companies: Iterable[dict] = (),
) -> WeeklyPlanningGrid:
    """Bucket the visits of one planning week into its seven days."""
    start = dates.week_start_date(week_number, year)
    branch_by_id = index_by(branches, "branch_id")
    company_by_id = index_by(companies, "company_id")
    failures = ParseFailureLog(f"Week {week_number}/{year}")

    by_day: dict[date, list[dict]] = {start + timedelta(days=offset): [] for offset in range(7)}
    kept: list[dict] = []

    for visit in visits:
        if visit.get("is_archived"):
            continue
        parsed = dates.parse_date(visit.get("scheduled_date"))
        if isinstance(parsed, ParseFailure):
            failures.record(visit.get("visit_id") or visit.get("id"), parsed)
            continue
        if dates.week_of(parsed) != (week_number, year):
            continue

        company = company_by_id.get(visit.get("company_id"))
        branch = branch_by_id.get(visit.get("branch_id"))
        enriched = {
            **visit,
            "company_name": (company or {}).get("company_name") or UNKNOWN_COMPANY,
            "branch_name": (branch or {}).get("branch_name") or UNKNOWN_BRANCH,
            "day_index": dates.day_index(parsed),
            "week_number": week_number,
            "year": year,
        }
        kept.append(enriched)
        by_day[parsed].append(enriched)

    skipped = failures.flush()

    daily_plans = []
    for day, day_visits in by_day.items():
        daily_plans.append(DailyPlan(
            date=dates.format_date(day),
            day_index=dates.day_index(day),
            day_of_week=dates.day_label(day),
            visits=day_visits,
            total_visits=len(day_visits),
            total_duration=sum(float(v.get("duration") or 0) for v in day_visits),
        ))

    return WeeklyPlanningGrid(
        week_number=week_number,
        year=year,
        week_start_date=dates.format_date(start),
        week_end_date=dates.format_date(start + timedelta(days=6)),
        visits=kept,
        daily_plans=daily_plans,
        skipped_count=skipped,
    )


def summarize_week(grid: WeeklyPlanningGrid, approved: bool = False) -> WeekStatus:
    statuses = [v.get("status") for v in grid.visits]
    total = len(statuses)
    completed = statuses.count("completed")
    cancelled = statuses.count("cancelled")
    pending = sum(1 for s in statuses if s in PENDING_STATUSES)
    started = completed + statuses.count("in_progress")

    if total and all(s in FINISHED_STATUSES for s in statuses):
        status = "completed"
    elif started:
        status = "in-progress"
    elif approved:
        status = "approved"
    else:
        status = "draft"

    return WeekStatus(
        week_number=grid.week_number,
        year=grid.year,
        total_visits=total,
        completed_visits=completed,
        pending_visits=pending,
        cancelled_visits=cancelled,
        emergency_visits=sum(1 for v in grid.visits if v.get("type") == "emergency"),
        status=status,
    )


class PlanningSession:
    """Process-local planner state: the movement journal and approved weeks."""

    def __init__(self, journal: Optional[MovementJournal] = None):
        self.journal = journal or MovementJournal()
        self._approved: set[tuple[int, int]] = set()

    def approve(self, week_number: int, year: int) -> None:
        self._approved.add((week_number, year))

    def is_approved(self, week_number: int, year: int) -> bool:
        return (week_number, year) in self._approved


class WeeklyPlanner:
    """
    One planner view: a (week, year) position plus its grid.

    ``attach()`` rebuilds the grid on every visit, company or branch
    snapshot. Without it the caller decides when to ``rebuild()``.
    """

    def __init__(
        self,
        visits: VisitStore,
        companies: CompanyStore,
        branches: BranchStore,
        session: Optional[PlanningSession] = None,
        week_number: Optional[int] = None,
        year: Optional[int] = None,
        mover: Optional[VisitMover] = None,
    ):
        self.visits = visits
        self.companies = companies
        self.branches = branches
        self.session = session or PlanningSession()
        self.mover = mover or VisitMover(visits, self.session.journal)
        if week_number is None or year is None:
            week_number, year = dates.week_of(dates.today())
        self.week_number = week_number
        self.year = year
        self.grid: Optional[WeeklyPlanningGrid] = None
        self._detach: list = []
        self.rebuild()

    def rebuild(self) -> WeeklyPlanningGrid:
        self.grid = build_weekly_grid(
            self.week_number,
            self.year,
            self.visits.current_items(),
            self.branches.current_items(),
            self.companies.current_items(),
        )
        return self.grid

    def _on_snapshot(self, snapshot: StoreSnapshot) -> None:
        self.rebuild()

    def attach(self) -> None:
        if not self._detach:
            self._detach = [
                store.add_listener(self._on_snapshot)
                for store in (self.visits, self.companies, self.branches)
            ]

    def detach(self) -> None:
        for remove in self._detach:
            remove()
        self._detach = []

    # Navigation

    def go_to_week(self, week_number: int, year: int) -> WeeklyPlanningGrid:
        dates.week_start_date(week_number, year)
        self.week_number, self.year = week_number, year
        return self.rebuild()

    def go_to_date(self, value) -> WeeklyPlanningGrid:
        return self.go_to_week(*dates.week_of(dates.parse_date_strict(value)))

    def next_week(self) -> WeeklyPlanningGrid:
        return self.go_to_week(*dates.shift_week(self.week_number, self.year, 1))

    def previous_week(self) -> WeeklyPlanningGrid:
        return self.go_to_week(*dates.shift_week(self.week_number, self.year, -1))

    # Status

    def week_status(self) -> WeekStatus:
        return summarize_week(self.grid, self.session.is_approved(self.week_number, self.year))

    def approve_week(self) -> WeekStatus:
        self.session.approve(self.week_number, self.year)
        return self.week_status()

    # Edits

    def _in_grid(self, visit_key: str) -> dict:
        for visit in self.grid.visits:
            if visit_key in (visit["id"], visit.get("visit_id")):
                return visit
        raise VisitNotFoundError(visit_key)

    async def update_visit(self, visit_key: str, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        visit = self.visits.resolve(visit_key)
        result = await self.visits.update_visit(visit["id"], data, performed_by)
        self.rebuild()
        return result

    async def move_visit(
        self, visit_key: str, from_day: int, to_day: int, performed_by: Optional[str] = None
    ) -> VisitMovement:
        self._in_grid(visit_key)
        movement = await self.mover.move(visit_key, from_day, to_day, performed_by)
        self.rebuild()
        return movement

    @property
    def movements(self) -> list[VisitMovement]:
        return self.session.journal.entries()
