"""
Physics kernels for lsirrig irrigation modeling.

Design Rules:
1. Functions take numpy arrays or scalars as input
2. Functions return numpy arrays or scalars as output
3. No file I/O, no `self`, no state mutation
4. All physical constraints documented in docstrings
5. Numba JIT compiled with cache=True for performance
"""

from lsirrig.process.kernels import (
    aggregate,
    deficit,
    river_limit,
    scheduler,
    trigger,
)

__all__ = [
    "deficit",
    "trigger",
    "scheduler",
    "river_limit",
    "aggregate",
]
