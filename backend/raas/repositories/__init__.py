"""
Repository layer for rollup state.
"""
from raas.repositories.rollup_registry import RollupRegistry

__all__ = [
    "RollupRegistry",
]
