"""Timestep orchestration for lsirrig irrigation modeling.

Provides the per-timestep entry point that calls the irrigation kernels
in sequence, the engine that owns IrrigationState for the host model,
and an offline loop that drives the engine from an HDF5 forcing file.

Per-step sequence:
1. Trigger check (time of day, LAI, vegetation type)
2. Deficit over eligible layers for newly triggered patches
3. Event scheduler: start new events, emit held rates, count down
4. River-volume limiting (two-phase: gridcell demand, then scale)
5. Aggregation to column and grid cell
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from lsirrig.config import IrrigationConfigError, IrrigationParameters
from lsirrig.logging import get_logger
from lsirrig.process.kernels.aggregate import (
    patch_to_column,
    patch_to_gridcell,
    split_by_method,
)
from lsirrig.process.kernels.deficit import eligible_layers, patch_deficit, relsat_from_smp
from lsirrig.process.kernels.river_limit import (
    apply_scale_factor,
    gridcell_irrigation_demand,
    river_volume_scale_factor,
)
from lsirrig.process.kernels.scheduler import advance_events, start_events
from lsirrig.process.kernels.trigger import irrigation_trigger, sufficient_deficit
from lsirrig.process.state import IrrigationState

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from lsirrig.process.input import IrrigationInput
    from lsirrig.process.state import SubgridGeometry, VegetationTable

__all__ = [
    "IrrigationEngine",
    "IrrigationOutput",
    "run_irrigation_loop",
    "step_irrigation",
]

logger = get_logger("engine")


@dataclass
class IrrigationOutput:
    """Container for per-timestep output arrays.

    Attributes
    ----------
    n_steps : int
        Number of timesteps
    n_patches, n_columns, n_gridcells : int
        Subgrid sizes
    qflx_irrig_patch : NDArray[np.float64]
        Emitted irrigation flux (kg/m2/s), shape (n_steps, n_patches)
    qflx_irrig_demand_patch : NDArray[np.float64]
        Unthrottled irrigation flux (kg/m2/s), shape (n_steps, n_patches)
    qflx_irrig_col : NDArray[np.float64]
        Column irrigation flux (kg/m2/s), shape (n_steps, n_columns)
    qflx_irrig_grc : NDArray[np.float64]
        Gridcell irrigation flux (kg/m2/s), shape (n_steps, n_gridcells)
    river_limit_factor : NDArray[np.float64]
        River-volume scale factor, shape (n_steps, n_gridcells)
    """

    n_steps: int
    n_patches: int
    n_columns: int
    n_gridcells: int
    qflx_irrig_patch: NDArray[np.float64] = field(default=None)
    qflx_irrig_demand_patch: NDArray[np.float64] = field(default=None)
    qflx_irrig_col: NDArray[np.float64] = field(default=None)
    qflx_irrig_grc: NDArray[np.float64] = field(default=None)
    river_limit_factor: NDArray[np.float64] = field(default=None)

    def __post_init__(self):
        """Initialize output arrays."""
        patch_shape = (self.n_steps, self.n_patches)
        if self.qflx_irrig_patch is None:
            self.qflx_irrig_patch = np.zeros(patch_shape, dtype=np.float64)
        if self.qflx_irrig_demand_patch is None:
            self.qflx_irrig_demand_patch = np.zeros(patch_shape, dtype=np.float64)
        if self.qflx_irrig_col is None:
            self.qflx_irrig_col = np.zeros((self.n_steps, self.n_columns), dtype=np.float64)
        if self.qflx_irrig_grc is None:
            self.qflx_irrig_grc = np.zeros((self.n_steps, self.n_gridcells), dtype=np.float64)
        if self.river_limit_factor is None:
            self.river_limit_factor = np.ones((self.n_steps, self.n_gridcells), dtype=np.float64)


def _filter_mask(filter_patches: NDArray | None, n_patches: int) -> NDArray[np.bool_]:
    """Active-vegetation filter as a boolean mask.

    Accepts None (all patches), a boolean mask, or an array of patch indices.
    """
    if filter_patches is None:
        return np.ones(n_patches, dtype=np.bool_)

    arr = np.asarray(filter_patches)
    if arr.dtype == np.bool_:
        if arr.shape != (n_patches,):
            raise ValueError(f"filter mask has shape {arr.shape}, expected ({n_patches},)")
        return arr

    mask = np.zeros(n_patches, dtype=np.bool_)
    if arr.size:
        if arr.min() < 0 or arr.max() >= n_patches:
            raise ValueError("filter contains patch indices out of range")
        mask[arr.astype(np.int64)] = True
    return mask


def _as_float(name: str, values, shape: tuple[int, ...]) -> NDArray[np.float64]:
    arr = np.ascontiguousarray(values, dtype=np.float64)
    if arr.shape != shape:
        raise ValueError(f"{name} has shape {arr.shape}, expected {shape}")
    return arr


def step_irrigation(
    state: IrrigationState,
    geometry: SubgridGeometry,
    vegetation: VegetationTable,
    params: IrrigationParameters,
    tod: float,
    elai: NDArray[np.float64],
    t_soisno: NDArray[np.float64],
    eff_porosity: NDArray[np.float64],
    h2osoi_liq: NDArray[np.float64],
    volr: NDArray[np.float64],
    rof_prognostic: bool,
    filter_patches: NDArray | None = None,
    relsat_target: NDArray[np.float64] | None = None,
) -> dict[str, NDArray[np.float64]]:
    """Execute a single irrigation timestep.

    Parameters
    ----------
    state : IrrigationState
        Current event state (modified in-place)
    geometry : SubgridGeometry
        Subgrid hierarchy
    vegetation : VegetationTable
        Vegetation type table
    params : IrrigationParameters
        Irrigation configuration
    tod : float
        Model time of day at this timestep (s)
    elai : (n_patches,)
        Exposed leaf area index
    t_soisno : (n_columns, n_levels)
        Soil temperature (K)
    eff_porosity : (n_columns, n_levels)
        Effective porosity
    h2osoi_liq : (n_columns, n_levels)
        Soil liquid water (kg/m2)
    volr : (n_gridcells,)
        River water volume (m3)
    rof_prognostic : bool
        Whether river routing is prognostic this step
    filter_patches : optional
        Active vegetated patches (indices or mask); default all patches
    relsat_target : (n_columns, n_levels), optional
        Target relative saturation. When omitted it is derived from
        params.irrig_target_smp and the geometry's sucsat / bsw.

    Returns
    -------
    dict
        qflx_irrig_patch, qflx_irrig_demand_patch, qflx_irrig_drip_patch,
        qflx_irrig_sprinkler_patch, qflx_irrig_col, qflx_irrig_grc,
        river_limit_factor, deficit, started
    """
    n_p = geometry.n_patches
    soil_shape = (geometry.n_columns, geometry.n_levels)

    in_filter = _filter_mask(filter_patches, n_p)
    elai = _as_float("elai", elai, (n_p,))
    t_soisno = _as_float("t_soisno", t_soisno, soil_shape)
    eff_porosity = _as_float("eff_porosity", eff_porosity, soil_shape)
    h2osoi_liq = _as_float("h2osoi_liq", h2osoi_liq, soil_shape)
    volr = _as_float("volr", volr, (geometry.n_gridcells,))
    if relsat_target is not None:
        relsat_target = _as_float("relsat_target", relsat_target, soil_shape)
    elif not geometry.has_retention:
        raise ValueError("relsat_target is required when geometry has no sucsat / bsw")

    # 1. Trigger: previous step's local time of day was the start time
    fire = irrigation_trigger(
        float(tod), params.dtime, float(params.irrig_start_time),
        geometry.patch_local_offset, elai, params.irrig_min_lai,
        geometry.patch_itype, vegetation.irrigated, in_filter,
    )

    # Triggers during an event are ignored; its rate stays fixed
    need = fire & ~state.active

    # 2. Deficit for newly triggered patches only
    deficit = np.zeros(n_p, dtype=np.float64)
    started = np.zeros(n_p, dtype=np.bool_)
    if np.any(need):
        eligible = eligible_layers(
            geometry.patch_column, geometry.column_nbedrock,
            geometry.z, t_soisno, params.irrig_depth,
        )
        if relsat_target is None:
            relsat_target = relsat_from_smp(
                params.irrig_target_smp, geometry.sucsat, geometry.bsw
            )
        deficit, target_tot = patch_deficit(
            need, eligible, geometry.patch_column, geometry.dz,
            eff_porosity, h2osoi_liq, relsat_target,
        )
        started = need & sufficient_deficit(
            deficit, target_tot, params.irrig_threshold_fraction
        )

        # 3a. Inactive -> Active
        state.active, state.rate, state.remaining = start_events(
            started, deficit, state.active, state.rate, state.remaining,
            params.irrig_length, params.n_irrig_steps,
        )

    # 3b. Emit held rates and count down
    qflx_demand, state.active, state.rate, state.remaining = advance_events(
        state.active, state.rate, state.remaining, in_filter
    )

    # 4. River-volume limiting
    if params.limit_irrigation_if_rof_enabled and rof_prognostic:
        demand = gridcell_irrigation_demand(
            qflx_demand, geometry.patch_gridcell, geometry.patch_col_wtgcell,
            params.irrig_length, geometry.n_gridcells,
        )
        factor = river_volume_scale_factor(
            demand, volr, geometry.gridcell_area, params.irrig_river_volume_threshold
        )
        qflx = apply_scale_factor(qflx_demand, geometry.patch_gridcell, factor)

        limited = factor < 1.0
        if np.any(limited):
            logger.debug(
                "river_volume_limited",
                tod=tod,
                n_gridcells=int(limited.sum()),
                min_factor=float(factor.min()),
            )
    else:
        factor = np.ones(geometry.n_gridcells, dtype=np.float64)
        qflx = np.maximum(qflx_demand, 0.0)

    # 5. Method split and aggregation
    qflx_drip, qflx_sprinkler = split_by_method(
        qflx, geometry.patch_itype, vegetation.irrig_method
    )
    qflx_col = patch_to_column(
        qflx, geometry.patch_column, geometry.patch_wtcol, geometry.n_columns
    )
    qflx_grc = patch_to_gridcell(
        qflx, geometry.patch_gridcell, geometry.patch_wtgcell, geometry.n_gridcells
    )

    state.qflx_irrig_patch = qflx
    state.qflx_irrig_demand_patch = qflx_demand
    state.qflx_irrig_drip_patch = qflx_drip
    state.qflx_irrig_sprinkler_patch = qflx_sprinkler

    logger.debug(
        "irrigation_step",
        tod=tod,
        n_triggered=int(fire.sum()),
        n_started=int(started.sum()),
        n_active=int(state.active.sum()),
    )

    return {
        "qflx_irrig_patch": qflx,
        "qflx_irrig_demand_patch": qflx_demand,
        "qflx_irrig_drip_patch": qflx_drip,
        "qflx_irrig_sprinkler_patch": qflx_sprinkler,
        "qflx_irrig_col": qflx_col,
        "qflx_irrig_grc": qflx_grc,
        "river_limit_factor": factor,
        "deficit": deficit,
        "started": started,
    }


class IrrigationEngine:
    """Owns the irrigation state for a fixed subgrid and configuration.

    The host model constructs one engine at initialization and calls
    step() once per timestep with the current soil, vegetation and river
    state. Outputs are read from the returned dict or from the
    qflx_irrig_patch / qflx_irrig_col properties.

    Example:
        engine = IrrigationEngine(params, geometry, vegetation)
        for tod in range(0, 86400, int(params.dtime)):
            out = engine.step(tod=tod, elai=elai, t_soisno=t_soisno, ...)
    """

    def __init__(
        self,
        params: IrrigationParameters,
        geometry: SubgridGeometry,
        vegetation: VegetationTable,
        state: IrrigationState | None = None,
    ):
        vegetation.check_covers(geometry.patch_itype)

        if state is None:
            state = IrrigationState(n_patches=geometry.n_patches)
        elif state.n_patches != geometry.n_patches:
            raise IrrigationConfigError(
                f"state has {state.n_patches} patches, geometry has {geometry.n_patches}"
            )

        self.params = params
        self.geometry = geometry
        self.vegetation = vegetation
        self.state = state

        logger.info(
            "engine_initialized",
            n_patches=geometry.n_patches,
            n_columns=geometry.n_columns,
            n_gridcells=geometry.n_gridcells,
            n_levels=geometry.n_levels,
            n_irrig_steps=params.n_irrig_steps,
            river_limiting=params.limit_irrigation_if_rof_enabled,
        )

    def step(
        self,
        tod: float,
        elai: NDArray[np.float64],
        t_soisno: NDArray[np.float64],
        eff_porosity: NDArray[np.float64],
        h2osoi_liq: NDArray[np.float64],
        volr: NDArray[np.float64],
        rof_prognostic: bool = True,
        filter_patches: NDArray | None = None,
        relsat_target: NDArray[np.float64] | None = None,
    ) -> dict[str, NDArray[np.float64]]:
        """Advance the engine by one timestep; see step_irrigation()."""
        return step_irrigation(
            state=self.state,
            geometry=self.geometry,
            vegetation=self.vegetation,
            params=self.params,
            tod=tod,
            elai=elai,
            t_soisno=t_soisno,
            eff_porosity=eff_porosity,
            h2osoi_liq=h2osoi_liq,
            volr=volr,
            rof_prognostic=rof_prognostic,
            filter_patches=filter_patches,
            relsat_target=relsat_target,
        )

    def reset(self) -> None:
        """Return every patch to Inactive."""
        self.state = IrrigationState(n_patches=self.geometry.n_patches)

    @property
    def qflx_irrig_patch(self) -> NDArray[np.float64]:
        return self.state.qflx_irrig_patch

    @property
    def qflx_irrig_col(self) -> NDArray[np.float64]:
        """Column flux derived from the current patch flux."""
        return patch_to_column(
            self.state.qflx_irrig_patch,
            self.geometry.patch_column,
            self.geometry.patch_wtcol,
            self.geometry.n_columns,
        )


def run_irrigation_loop(
    irr_input: IrrigationInput,
    params: IrrigationParameters | None = None,
    state: IrrigationState | None = None,
) -> tuple[IrrigationOutput, IrrigationState]:
    """Run the engine over every timestep of an HDF5 forcing file.

    Parameters
    ----------
    irr_input : IrrigationInput
        Forcing container
    params : IrrigationParameters, optional
        Irrigation configuration. Defaults to default parameters at the
        input's timestep.
    state : IrrigationState, optional
        Initial state (e.g. from a restart). Defaults to all Inactive.

    Returns
    -------
    output : IrrigationOutput
        Per-step output arrays
    final_state : IrrigationState
        State after the last step
    """
    if params is None:
        params = IrrigationParameters(dtime=irr_input.dtime)
    elif params.dtime != irr_input.dtime:
        raise IrrigationConfigError(
            f"params.dtime={params.dtime} does not match input dtime={irr_input.dtime}"
        )

    geometry = irr_input.geometry
    engine = IrrigationEngine(params, geometry, irr_input.vegetation, state=state)

    output = IrrigationOutput(
        n_steps=irr_input.n_steps,
        n_patches=geometry.n_patches,
        n_columns=geometry.n_columns,
        n_gridcells=geometry.n_gridcells,
    )

    for step_idx in range(irr_input.n_steps):
        step_out = engine.step(
            tod=irr_input.get_tod(step_idx),
            elai=irr_input.get_time_series("elai", step_idx),
            t_soisno=irr_input.get_time_series("t_soisno", step_idx),
            eff_porosity=irr_input.get_time_series("eff_porosity", step_idx),
            h2osoi_liq=irr_input.get_time_series("h2osoi_liq", step_idx),
            volr=irr_input.get_time_series("volr", step_idx),
            rof_prognostic=irr_input.get_rof_prognostic(step_idx),
            filter_patches=irr_input.get_time_series("in_filter", step_idx),
            relsat_target=irr_input.get_time_series("relsat_target", step_idx),
        )

        output.qflx_irrig_patch[step_idx, :] = step_out["qflx_irrig_patch"]
        output.qflx_irrig_demand_patch[step_idx, :] = step_out["qflx_irrig_demand_patch"]
        output.qflx_irrig_col[step_idx, :] = step_out["qflx_irrig_col"]
        output.qflx_irrig_grc[step_idx, :] = step_out["qflx_irrig_grc"]
        output.river_limit_factor[step_idx, :] = step_out["river_limit_factor"]

    logger.info(
        "irrigation_loop_complete",
        n_steps=irr_input.n_steps,
        total_irrigation=float(output.qflx_irrig_grc.sum() * params.dtime),
    )

    return output, engine.state
