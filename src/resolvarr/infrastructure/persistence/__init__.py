from .extraction_cache import ExtractionCache

__all__ = ["ExtractionCache"]
