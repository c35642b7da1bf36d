"""River-volume limiting of irrigation.

Irrigation water is withdrawn from the river channel of each grid cell.
When the irrigation demand of a grid cell exceeds the river volume that
may be withdrawn, every irrigating patch on that grid cell is scaled
down by the same factor.

Two-phase: the gridcell demand is accumulated from every patch's
unthrottled flux before any patch is scaled.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange
from numpy.typing import NDArray

__all__ = [
    "gridcell_irrigation_demand",
    "river_volume_scale_factor",
    "apply_scale_factor",
]

# m3 of water per (mm of depth * km2 of area)
M3_PER_MM_KM2 = 1000.0


@njit(cache=True)
def gridcell_irrigation_demand(
    qflx_demand: NDArray[np.float64],
    patch_gridcell: NDArray[np.int64],
    patch_col_wtgcell: NDArray[np.float64],
    irrig_length: float,
    n_gridcells: int,
) -> NDArray[np.float64]:
    """
    Gridcell-average irrigation demand as a water depth.

    Each irrigating patch demands the full deficit of its event,
    qflx_demand * irrig_length, weighted by the weight of its column on
    the grid cell. Each irrigating patch counts with the full weight of its
    column, so two irrigating patches sharing a column both count that
    column weight.

    Parameters
    ----------
    qflx_demand : (n_patches,)
        Unthrottled irrigation flux (kg/m2/s)
    patch_gridcell : (n_patches,)
        Grid cell index of each patch
    patch_col_wtgcell : (n_patches,)
        Weight of each patch's column on its grid cell
    irrig_length : float
        Event duration (s)
    n_gridcells : int
        Number of grid cells

    Returns
    -------
    demand : (n_gridcells,)
        Demand depth (mm over the grid cell)
    """
    demand = np.zeros(n_gridcells, dtype=np.float64)
    for p in range(qflx_demand.shape[0]):
        if qflx_demand[p] > 0.0:
            demand[patch_gridcell[p]] += qflx_demand[p] * irrig_length * patch_col_wtgcell[p]
    return demand


@njit(cache=True, parallel=True)
def river_volume_scale_factor(
    demand: NDArray[np.float64],
    volr: NDArray[np.float64],
    area: NDArray[np.float64],
    river_volume_threshold: float,
) -> NDArray[np.float64]:
    """
    Scale factor limiting irrigation to the available river volume.

    demand_volume = demand * area * 1000          (m3)
    available     = max(volr, 0) * (1 - threshold) (m3)
    factor        = 1                       if available >= demand_volume
                    available / demand_volume otherwise

    Physical constraints:
        - 0 <= factor <= 1
        - factor = 1 for grid cells with no demand

    Parameters
    ----------
    demand : (n_gridcells,)
        Demand depth (mm)
    volr : (n_gridcells,)
        River water volume (m3)
    area : (n_gridcells,)
        Grid cell area (km2)
    river_volume_threshold : float
        Fraction of river volume that must remain in the channel

    Returns
    -------
    factor : (n_gridcells,)
        Multiplicative scale factor for irrigation on each grid cell
    """
    n = demand.shape[0]
    factor = np.ones(n, dtype=np.float64)

    for g in prange(n):
        demand_volume = demand[g] * area[g] * M3_PER_MM_KM2
        if demand_volume <= 0.0:
            continue
        available = volr[g]
        if available < 0.0:
            available = 0.0
        available = available * (1.0 - river_volume_threshold)
        if available < demand_volume:
            factor[g] = available / demand_volume

    return factor


@njit(cache=True, parallel=True)
def apply_scale_factor(
    qflx: NDArray[np.float64],
    patch_gridcell: NDArray[np.int64],
    factor: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Scale each patch's flux by its grid cell's factor, clamped at zero."""
    n = qflx.shape[0]
    limited = np.empty(n, dtype=np.float64)

    for p in prange(n):
        q = qflx[p] * factor[patch_gridcell[p]]
        limited[p] = q if q > 0.0 else 0.0

    return limited
