from app.models.visit import Visit
from app.models.contract import Contract
from app.models.directory import Company, Branch
from app.models.visit_log import VisitLog

__all__ = [
    "Visit",
    "Contract",
    "Company",
    "Branch",
    "VisitLog",
]
