"""Soil water deficit calculations for irrigation demand.

Pure physics kernels for converting relative saturation to layer water
mass, deciding which soil layers count toward the irrigation deficit,
and integrating the deficit over those layers.

Soil arrays are shaped (n_columns, n_levels) with level 0 the shallowest
layer. Water masses are kg/m2 (equivalently mm of water).
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange
from numpy.typing import NDArray

__all__ = [
    "DENH2O",
    "TFRZ",
    "relsat_to_h2osoi",
    "relsat_from_smp",
    "layer_deficit",
    "eligible_layers",
    "patch_deficit",
]

# Density of liquid water (kg/m3)
DENH2O = 1000.0
# Freezing temperature of water (K)
TFRZ = 273.15


@njit(cache=True)
def relsat_to_h2osoi(
    relsat: NDArray[np.float64],
    eff_porosity: NDArray[np.float64],
    dz: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Convert relative saturation to liquid water mass per unit area.

    h2osoi = relsat * eff_porosity * dz * DENH2O

    Parameters
    ----------
    relsat : (n_columns, n_levels)
        Relative saturation [0, 1]
    eff_porosity : (n_columns, n_levels)
        Effective porosity (porosity minus ice volume) [0, 1]
    dz : (n_columns, n_levels)
        Layer thickness (m)

    Returns
    -------
    h2osoi : (n_columns, n_levels)
        Liquid water (kg/m2), directly comparable to h2osoi_liq
    """
    return relsat * eff_porosity * dz * DENH2O


@njit(cache=True)
def relsat_from_smp(
    smp: float,
    sucsat: NDArray[np.float64],
    bsw: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Relative saturation at a given soil matric potential.

    Inverts the Clapp-Hornberger retention curve
    smp = -sucsat * s ** (-bsw):

        s = (smp / -sucsat) ** (-1 / bsw)

    Physical constraints:
        - 0 <= s <= 1 (potentials wetter than saturation give s = 1)

    Parameters
    ----------
    smp : float
        Target soil matric potential (mm), negative
    sucsat : (n_columns, n_levels)
        Saturated soil suction (mm), positive
    bsw : (n_columns, n_levels)
        Clapp-Hornberger "b" exponent

    Returns
    -------
    relsat : (n_columns, n_levels)
        Relative saturation [0, 1]
    """
    n_col, n_lev = sucsat.shape
    relsat = np.empty((n_col, n_lev), dtype=np.float64)

    for c in range(n_col):
        for j in range(n_lev):
            s = (smp / -sucsat[c, j]) ** (-1.0 / bsw[c, j])
            if s > 1.0:
                s = 1.0
            elif s < 0.0:
                s = 0.0
            relsat[c, j] = s

    return relsat


@njit(cache=True)
def layer_deficit(
    relsat_target: NDArray[np.float64],
    eff_porosity: NDArray[np.float64],
    dz: NDArray[np.float64],
    h2osoi_liq: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Per-layer water deficit relative to the target saturation.

    Negative values (surplus) are kept; they offset deficits in other
    layers when summed.

    Parameters
    ----------
    relsat_target : (n_columns, n_levels)
        Target relative saturation
    eff_porosity : (n_columns, n_levels)
        Effective porosity
    dz : (n_columns, n_levels)
        Layer thickness (m)
    h2osoi_liq : (n_columns, n_levels)
        Current liquid water (kg/m2)

    Returns
    -------
    deficit : (n_columns, n_levels)
        Target minus current liquid water (kg/m2)
    """
    return relsat_to_h2osoi(relsat_target, eff_porosity, dz) - h2osoi_liq


@njit(cache=True, parallel=True)
def eligible_layers(
    patch_column: NDArray[np.int64],
    column_nbedrock: NDArray[np.int64],
    z: NDArray[np.float64],
    t_soisno: NDArray[np.float64],
    irrig_depth: float,
) -> NDArray[np.bool_]:
    """
    Soil layers that count toward each patch's irrigation deficit.

    Each patch scans its own column from the surface down and stops at
    the first layer that is:
    1. Deeper than irrig_depth (layer midpoint), OR
    2. At or below the bedrock interface (j >= nbedrock), OR
    3. Frozen (t_soisno <= TFRZ)

    A frozen layer excludes itself and every deeper layer, even if the
    deeper layers are thawed. Patches are evaluated independently, so the
    result does not depend on the order patches are visited.

    Parameters
    ----------
    patch_column : (n_patches,)
        Column index of each patch
    column_nbedrock : (n_columns,)
        Number of soil layers above bedrock (>= 1)
    z : (n_columns, n_levels)
        Layer midpoint depth (m), increasing with level
    t_soisno : (n_columns, n_levels)
        Soil temperature (K)
    irrig_depth : float
        Maximum midpoint depth considered (m)

    Returns
    -------
    eligible : (n_patches, n_levels)
        True where the layer contributes to the patch deficit
    """
    n = patch_column.shape[0]
    n_lev = z.shape[1]
    eligible = np.zeros((n, n_lev), dtype=np.bool_)

    for p in prange(n):
        c = patch_column[p]
        for j in range(n_lev):
            if z[c, j] > irrig_depth:
                break
            if j >= column_nbedrock[c]:
                break
            if t_soisno[c, j] <= TFRZ:
                break
            eligible[p, j] = True

    return eligible

@njit(cache=True, parallel=True)
def patch_deficit(
    need: NDArray[np.bool_],
    eligible: NDArray[np.bool_],
    patch_column: NDArray[np.int64],
    dz: NDArray[np.float64],
    eff_porosity: NDArray[np.float64],
    h2osoi_liq: NDArray[np.float64],
    relsat_target: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Integrate the soil water deficit over each patch's eligible layers.

    deficit = sum_j (relsat_target * eff_porosity * dz * DENH2O - h2osoi_liq)

    The sum is algebraic: a surplus in one layer offsets a deficit in
    another. Only patches flagged in ``need`` are computed; the rest
    return zeros.

    Parameters
    ----------
    need : (n_patches,)
        Patches whose deficit is required this step
    eligible : (n_patches, n_levels)
        Layer eligibility from eligible_layers()
    patch_column : (n_patches,)
        Column index of each patch
    dz, eff_porosity, h2osoi_liq : (n_columns, n_levels)
        Layer thickness (m), effective porosity, liquid water (kg/m2)
    relsat_target : (n_columns, n_levels)
        Target relative saturation

    Returns
    -------
    deficit : (n_patches,)
        Deficit summed over eligible layers (kg/m2), may be negative
    target_tot : (n_patches,)
        Target water over eligible layers (kg/m2)
    """
    n = need.shape[0]
    n_lev = eligible.shape[1]
    deficit = np.zeros(n, dtype=np.float64)
    target_tot = np.zeros(n, dtype=np.float64)

    for p in prange(n):
        if not need[p]:
            continue
        c = patch_column[p]
        d = 0.0
        t = 0.0
        for j in range(n_lev):
            if not eligible[p, j]:
                continue
            target = relsat_target[c, j] * eff_porosity[c, j] * dz[c, j] * DENH2O
            d += target - h2osoi_liq[c, j]
            t += target
        deficit[p] = d
        target_tot[p] = t

    return deficit, target_tot
