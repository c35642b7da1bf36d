"""
lsirrig: Supplemental irrigation for land-surface hydrology models.

Computes, schedules and applies irrigation water flux for vegetated
units (patches) nested in soil columns and grid cells. Each timestep the
engine decides whether an irrigation event starts, integrates the soil
moisture deficit over the eligible soil layers, holds the resulting rate
for the event duration, throttles it by available river volume and
aggregates it to column and grid cell scale.

Subpackages:
    process: Numba kernels, state containers and the timestep loop.

Example:
    >>> from lsirrig.config import IrrigationParameters
    >>> from lsirrig.process import IrrigationEngine
    >>>
    >>> params = IrrigationParameters.from_toml("irrigation.toml")
    >>> engine = IrrigationEngine(params, geometry, vegetation)
    >>> out = engine.step(tod=25200, elai=elai, t_soisno=t_soisno, ...)
    >>> out["qflx_irrig_col"]
"""

__version__ = "0.1.0"
