from __future__ import annotations

from .challenge import (
    ChallengeCredential,
    DomainLockMarker,
    SolverSession,
    SolveResult,
    SolveStatus,
)
from .links import LinkCandidate

__all__ = [
    "ChallengeCredential",
    "DomainLockMarker",
    "LinkCandidate",
    "SolveResult",
    "SolveStatus",
    "SolverSession",
]
