from app.schemas.visit import (
    VisitCreate,
    VisitUpdate,
    EmergencyVisitCreate,
    VisitComplete,
    VisitCancel,
    VisitReschedule,
    VisitResponse,
    VisitListResponse,
    VisitLogResponse,
)
from app.schemas.contract import (
    ServiceBatch,
    ContractCreate,
    RenewContractRequest,
    ArchiveRequest,
    AddendumCreate,
    ContractResponse,
    ContractListResponse,
    RenewalResponse,
    ObligationResponse,
)
from app.schemas.planning import (
    DailyPlanResponse,
    WeeklyGridResponse,
    WeekStatusResponse,
    MoveVisitRequest,
    MovementResponse,
    MoveVisitResponse,
)
from app.schemas.directory import (
    CompanyCreate,
    CompanyResponse,
    BranchCreate,
    BranchResponse,
)

__all__ = [
    "VisitCreate",
    "VisitUpdate",
    "EmergencyVisitCreate",
    "VisitComplete",
    "VisitCancel",
    "VisitReschedule",
    "VisitResponse",
    "VisitListResponse",
    "VisitLogResponse",
    "ServiceBatch",
    "ContractCreate",
    "RenewContractRequest",
    "ArchiveRequest",
    "AddendumCreate",
    "ContractResponse",
    "ContractListResponse",
    "RenewalResponse",
    "ObligationResponse",
    "DailyPlanResponse",
    "WeeklyGridResponse",
    "WeekStatusResponse",
    "MoveVisitRequest",
    "MovementResponse",
    "MoveVisitResponse",
    "CompanyCreate",
    "CompanyResponse",
    "BranchCreate",
    "BranchResponse",
]
