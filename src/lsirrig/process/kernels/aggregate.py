"""Spatial aggregation of patch irrigation fluxes.

Rolls patch fluxes up to column and grid cell averages using subgrid
area weights, and partitions patch flux by application method.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange
from numpy.typing import NDArray

__all__ = ["IRRIG_METHOD_DRIP", "IRRIG_METHOD_SPRINKLER", "patch_to_column",
           "patch_to_gridcell", "split_by_method"]

IRRIG_METHOD_DRIP = 1
IRRIG_METHOD_SPRINKLER = 2


@njit(cache=True)
def patch_to_column(
    qflx_patch: NDArray[np.float64],
    patch_column: NDArray[np.int64],
    patch_wtcol: NDArray[np.float64],
    n_columns: int,
) -> NDArray[np.float64]:
    """
    Column-average flux from patch fluxes.

    qflx_col[c] = sum over patches p on c of patch_wtcol[p] * qflx_patch[p]

    Weights of all patches on a column (irrigated or not) sum to 1, so
    unirrigated patches dilute the column average.

    Parameters
    ----------
    qflx_patch : (n_patches,)
        Patch flux (kg/m2/s)
    patch_column : (n_patches,)
        Column index of each patch
    patch_wtcol : (n_patches,)
        Patch weight on its column
    n_columns : int
        Number of columns

    Returns
    -------
    qflx_col : (n_columns,)
        Column-average flux (kg/m2/s)
    """
    qflx_col = np.zeros(n_columns, dtype=np.float64)
    for p in range(qflx_patch.shape[0]):
        qflx_col[patch_column[p]] += patch_wtcol[p] * qflx_patch[p]
    return qflx_col


@njit(cache=True)
def patch_to_gridcell(
    qflx_patch: NDArray[np.float64],
    patch_gridcell: NDArray[np.int64],
    patch_wtgcell: NDArray[np.float64],
    n_gridcells: int,
) -> NDArray[np.float64]:
    """Gridcell-average flux, weighting each patch by its gridcell area fraction."""
    qflx_grc = np.zeros(n_gridcells, dtype=np.float64)
    for p in range(qflx_patch.shape[0]):
        qflx_grc[patch_gridcell[p]] += patch_wtgcell[p] * qflx_patch[p]
    return qflx_grc


@njit(cache=True, parallel=True)
def split_by_method(
    qflx_patch: NDArray[np.float64],
    patch_itype: NDArray[np.int64],
    type_method: NDArray[np.int64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Partition patch flux into drip and sprinkler components.

    Drip water is applied to the soil surface below the canopy; sprinkler
    water is applied above the canopy. Types with an unset method (0)
    are treated as drip.

    Returns
    -------
    qflx_drip : (n_patches,)
    qflx_sprinkler : (n_patches,)
    """
    n = qflx_patch.shape[0]
    qflx_drip = np.zeros(n, dtype=np.float64)
    qflx_sprinkler = np.zeros(n, dtype=np.float64)

    for p in prange(n):
        if type_method[patch_itype[p]] == IRRIG_METHOD_SPRINKLER:
            qflx_sprinkler[p] = qflx_patch[p]
        else:
            qflx_drip[p] = qflx_patch[p]

    return qflx_drip, qflx_sprinkler
