"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation. Every factory
builds a plain document dict, the shape the collection stores hold.
"""

from .directory import CompanyFactory, BranchFactory
from .visit import (
    VisitFactory,
    CompletedVisitFactory,
    EmergencyVisitFactory,
)
from .contract import (
    ServiceBatchFactory,
    ContractFactory,
    RenewedContractFactory,
)

__all__ = [
    "CompanyFactory",
    "BranchFactory",
    "VisitFactory",
    "CompletedVisitFactory",
    "EmergencyVisitFactory",
    "ServiceBatchFactory",
    "ContractFactory",
    "RenewedContractFactory",
]
