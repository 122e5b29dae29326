from .range_validator import TRUSTED_SERVER_TYPES, RangeProbeValidator, supports_ranges

__all__ = ["RangeProbeValidator", "TRUSTED_SERVER_TYPES", "supports_ranges"]
