"""
lsirrig Process Package

Irrigation demand and scheduling with:
- Pure physics kernels (numba JIT)
- Typed state containers
- HDF5 forcing input and restart files
- Structured logging
"""

from lsirrig.process import kernels
from lsirrig.process.input import IrrigationInput, build_irrigation_input
from lsirrig.process.loop import (
    IrrigationEngine,
    IrrigationOutput,
    run_irrigation_loop,
    step_irrigation,
)
from lsirrig.process.state import (
    IrrigationState,
    SubgridGeometry,
    VegetationTable,
)

__all__ = [
    "kernels",
    "IrrigationState",
    "SubgridGeometry",
    "VegetationTable",
    "IrrigationInput",
    "build_irrigation_input",
    "IrrigationEngine",
    "IrrigationOutput",
    "run_irrigation_loop",
    "step_irrigation",
]
