"""Irrigation event scheduling.

Each patch is either Inactive or Active{rate, remaining}. An event holds
the rate computed at trigger time, unchanged, for a fixed number of
timesteps and then returns the patch to Inactive, from which it may
trigger again on a later day.

Kernels return new arrays; the caller stores them back into
IrrigationState.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange
from numpy.typing import NDArray

__all__ = ["start_events", "advance_events"]


@njit(cache=True, parallel=True)
def start_events(
    start: NDArray[np.bool_],
    deficit: NDArray[np.float64],
    active: NDArray[np.bool_],
    rate: NDArray[np.float64],
    remaining: NDArray[np.int64],
    irrig_length: float,
    n_irrig_steps: int,
) -> tuple[NDArray[np.bool_], NDArray[np.float64], NDArray[np.int64]]:
    """
    Move triggered patches from Inactive to Active.

    rate = deficit / irrig_length
    remaining = ceil(irrig_length / dtime)

    Physical constraints:
        - Patches already Active are left untouched (one event at a time,
          rate fixed for the life of the event)
        - rate >= 0

    Parameters
    ----------
    start : (n_patches,)
        Patches whose trigger fired with a sufficient deficit
    deficit : (n_patches,)
        Eligible-layer deficit (kg/m2)
    active, rate, remaining : (n_patches,)
        Current event state
    irrig_length : float
        Event duration (s)
    n_irrig_steps : int
        Timesteps per event

    Returns
    -------
    active_new, rate_new, remaining_new : (n_patches,)
        Updated event state
    """
    n = start.shape[0]
    active_new = active.copy()
    rate_new = rate.copy()
    remaining_new = remaining.copy()

    for p in prange(n):
        if start[p] and not active[p]:
            r = deficit[p] / irrig_length
            if r < 0.0:
                r = 0.0
            active_new[p] = True
            rate_new[p] = r
            remaining_new[p] = n_irrig_steps

    return active_new, rate_new, remaining_new


@njit(cache=True, parallel=True)
def advance_events(
    active: NDArray[np.bool_],
    rate: NDArray[np.float64],
    remaining: NDArray[np.int64],
    in_filter: NDArray[np.bool_],
) -> tuple[
    NDArray[np.float64], NDArray[np.bool_], NDArray[np.float64], NDArray[np.int64]
]:
    """
    Emit the held rate for active patches and count the event down.

    For each patch in the filter:
    - Active with remaining > 0: emit rate, remaining -= 1. When this
      was the last step the patch returns to Inactive and its rate is
      cleared, so the next step emits 0.
    - Otherwise: emit 0.

    Patches outside the filter emit 0 and keep their state unchanged.

    Returns
    -------
    qflx : (n_patches,)
        Unthrottled irrigation flux (kg/m2/s)
    active_new, rate_new, remaining_new : (n_patches,)
        Updated event state
    """
    n = active.shape[0]
    qflx = np.zeros(n, dtype=np.float64)
    active_new = active.copy()
    rate_new = rate.copy()
    remaining_new = remaining.copy()

    for p in prange(n):
        if not in_filter[p]:
            continue

        if active[p] and remaining[p] > 0:
            qflx[p] = rate[p]
            remaining_new[p] = remaining[p] - 1
            if remaining_new[p] == 0:
                active_new[p] = False
                rate_new[p] = 0.0
        else:
            active_new[p] = False
            rate_new[p] = 0.0
            remaining_new[p] = 0

    return qflx, active_new, rate_new, remaining_new
