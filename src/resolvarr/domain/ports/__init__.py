from __future__ import annotations

from .cache import CachePort, cache_key
from .challenge_solver import ChallengeSolverPort
from .dispatcher import LinkDispatcherPort
from .extractor import LinkExtractorPort
from .link_validator import LinkValidatorPort

__all__ = [
    "CachePort",
    "ChallengeSolverPort",
    "LinkDispatcherPort",
    "LinkExtractorPort",
    "LinkValidatorPort",
    "cache_key",
]
