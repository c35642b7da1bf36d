"""Irrigation trigger decisions.

Kernels deciding whether a new irrigation event starts for a patch:
the time-of-day window, the leaf area and vegetation type checks, and
the minimum-deficit threshold applied once the deficit is known.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange
from numpy.typing import NDArray

__all__ = ["local_time_offset", "irrigation_trigger", "sufficient_deficit"]

SECONDS_PER_DAY = 86400.0
# Degrees of longitude per second of solar time
DEGREES_PER_SECOND = 15.0 / 3600.0


def local_time_offset(lon: NDArray[np.float64]) -> NDArray[np.int64]:
    """Seconds to add to model (UTC) time of day to get local solar time."""
    return np.rint(np.asarray(lon, dtype=np.float64) / DEGREES_PER_SECOND).astype(np.int64)


@njit(cache=True, parallel=True)
def irrigation_trigger(
    tod: float,
    dtime: float,
    irrig_start_time: float,
    local_offset: NDArray[np.int64],
    elai: NDArray[np.float64],
    irrig_min_lai: float,
    patch_itype: NDArray[np.int64],
    irrigated_type: NDArray[np.bool_],
    in_filter: NDArray[np.bool_],
) -> NDArray[np.bool_]:
    """
    Decide which patches start an irrigation event this timestep.

    A patch triggers when ALL of:
    1. It is in the active filter
    2. Its vegetation type is flagged as irrigated
    3. elai > irrig_min_lai (strict)
    4. The previous timestep's local time of day was irrig_start_time

    Condition 4 is evaluated as a window so that longitude offsets that
    are not a multiple of dtime still trigger exactly once per day:

        (tod + offset - dtime - irrig_start_time) mod 86400 < dtime

    For zero offset and step-aligned times this fires only on the step
    whose tod equals irrig_start_time + dtime.

    Parameters
    ----------
    tod : float
        Model time of day at the current timestep (s)
    dtime : float
        Timestep length (s)
    irrig_start_time : float
        Local time of day irrigation starts (s)
    local_offset : (n_patches,)
        Local solar time offset of each patch's grid cell (s)
    elai : (n_patches,)
        Exposed leaf area index
    irrig_min_lai : float
        LAI threshold
    patch_itype : (n_patches,)
        Vegetation type of each patch
    irrigated_type : (n_types,)
        True for vegetation types that receive irrigation
    in_filter : (n_patches,)
        Active-vegetation filter mask

    Returns
    -------
    fire : (n_patches,)
        True where a new event should start
    """
    n = elai.shape[0]
    fire = np.zeros(n, dtype=np.bool_)

    for p in prange(n):
        if not in_filter[p]:
            continue
        if not irrigated_type[patch_itype[p]]:
            continue
        if elai[p] <= irrig_min_lai:
            continue

        since_start = (tod + local_offset[p] - dtime - irrig_start_time) % SECONDS_PER_DAY
        if since_start < dtime:
            fire[p] = True

    return fire


@njit(cache=True, parallel=True)
def sufficient_deficit(
    deficit: NDArray[np.float64],
    target_tot: NDArray[np.float64],
    threshold_fraction: float,
) -> NDArray[np.bool_]:
    """
    Whether a deficit is large enough to justify an irrigation event.

    deficit > 0 AND deficit >= threshold_fraction * target_tot

    Guards against starting events on nearly saturated soil where the
    deficit is noise. With threshold_fraction = 0 any positive deficit
    qualifies.

    Parameters
    ----------
    deficit : (n_patches,)
        Deficit over the eligible layers (kg/m2)
    target_tot : (n_patches,)
        Target water over the same layers (kg/m2)
    threshold_fraction : float
        Minimum relative deficit

    Returns
    -------
    ok : (n_patches,)
        True where an event may start
    """
    n = deficit.shape[0]
    ok = np.zeros(n, dtype=np.bool_)

    for p in prange(n):
        if deficit[p] <= 0.0:
            continue
        if deficit[p] >= threshold_fraction * target_tot[p]:
            ok[p] = True

    return ok
