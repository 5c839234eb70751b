"""
Shared Pydantic types for schema validation.

CanonicalDate: accepts any date shape the date normalizer understands and
renders it as canonical DD-Mon-YYYY text. Unrecognized text is a
validation error, never silently replaced with today.
"""

from typing import Annotated, Literal, Optional

from pydantic import BeforeValidator, Field

from app.utils import dates
from app.utils.dates import ParseFailure


def _canonical_date(value) -> Optional[str]:
    if value is None or value == "":
        return None
    parsed = dates.parse_date(value)
    if isinstance(parsed, ParseFailure):
        raise ValueError(f"not a recognizable date ({parsed.reason})")
    return dates.format_date(parsed)


CanonicalDate = Annotated[str, BeforeValidator(_canonical_date)]

# Day slot of a planning week, 0 = Saturday ... 6 = Friday
DayIndex = Annotated[int, Field(ge=0, le=6)]

VisitType = Literal["regular", "emergency", "followup"]
VisitStatus = Literal["scheduled", "in_progress", "completed", "cancelled", "rescheduled"]
EmergencyPriority = Literal["low", "medium", "high", "critical"]
ContractStatus = Literal["active", "archived", "expired", "cancelled"]
WeekState = Literal["draft", "approved", "in-progress", "completed"]
