"""Governance layer: risk assessment, approval gate, permission oracles."""

from taskwarden.governance.approval import (
    ApprovalGate,
    ApprovalRequest,
    ApprovalStats,
    ApprovalStatus,
)
from taskwarden.governance.permissions import (
    AccountStanding,
    PermissionOracle,
    StaticPermissionOracle,
    TierPermissionOracle,
)
from taskwarden.governance.risk_assessor import (
    ImpactEstimate,
    RiskAssessment,
    RiskAssessor,
    RiskLevel,
)

__all__ = [
    "AccountStanding",
    "ApprovalGate",
    "ApprovalRequest",
    "ApprovalStats",
    "ApprovalStatus",
    "ImpactEstimate",
    "PermissionOracle",
    "RiskAssessment",
    "RiskAssessor",
    "RiskLevel",
    "StaticPermissionOracle",
    "TierPermissionOracle",
]
