"""Anti-bot challenge detection, locking, credential caching and solving."""

from .bypass import BypassState, ChallengeBypass, advance, is_challenged
from .credential_store import CredentialStore
from .domain_lock import DomainLock, LockLease
from .markers import challenge_markers, is_challenge_page
from .session_store import SolverSessionStore
from .solver_client import FlareSolverrClient
from .solver_gate import SlotLease, SolverGate

__all__ = [
    "BypassState",
    "ChallengeBypass",
    "CredentialStore",
    "DomainLock",
    "FlareSolverrClient",
    "LockLease",
    "SlotLease",
    "SolverGate",
    "SolverSessionStore",
    "advance",
    "challenge_markers",
    "is_challenge_page",
    "is_challenged",
]
