"""Console runtime helpers."""

from .ticks import TickDependencies, TickProcessor

__all__ = ["TickDependencies", "TickProcessor"]
