"""Composition root and caller-facing wiring."""

from .composition import ResolverState, build_resolver, wire_resolver

__all__ = ["ResolverState", "build_resolver", "wire_resolver"]
