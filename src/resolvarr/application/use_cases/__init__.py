from .resolve_links import ResolveLinksUseCase

__all__ = ["ResolveLinksUseCase"]
