"""Typed state containers for lsirrig irrigation modeling.

Provides dataclass-based containers for:
- IrrigationState: Mutable per-patch event state, owned by the engine
- SubgridGeometry: Static gridcell -> column -> patch hierarchy and weights
- VegetationTable: Static per-vegetation-type irrigation settings

Patch arrays have shape (n_patches,), column arrays (n_columns,) and
soil layer arrays (n_columns, n_levels), so they can be handed to the
numba kernels without conversion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING

import h5py
import numpy as np
import pandas as pd

from lsirrig.config import IrrigationConfigError
from lsirrig.logging import get_logger
from lsirrig.process.kernels.aggregate import IRRIG_METHOD_DRIP, IRRIG_METHOD_SPRINKLER
from lsirrig.process.kernels.trigger import local_time_offset

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = [
    "IrrigationState",
    "SubgridGeometry",
    "VegetationTable",
]

logger = get_logger("state")

# Tolerance on weights that must sum to one
WEIGHT_SUM_TOL = 1.0e-6


@dataclass
class IrrigationState:
    """Per-patch irrigation event state, persisted across timesteps.

    All arrays have shape (n_patches,). Kernel outputs are stored back
    into the container after every step.

    Attributes
    ----------
    n_patches : int
        Number of vegetated patches
    active : NDArray[np.bool_]
        Whether an irrigation event is in progress
    rate : NDArray[np.float64]
        Irrigation rate held for the current event (kg/m2/s)
    remaining : NDArray[np.int64]
        Timesteps left in the current event
    qflx_irrig_patch : NDArray[np.float64]
        Emitted (river-limited) irrigation flux this step (kg/m2/s)
    qflx_irrig_demand_patch : NDArray[np.float64]
        Unthrottled irrigation flux this step (kg/m2/s)
    qflx_irrig_drip_patch : NDArray[np.float64]
        Part of qflx_irrig_patch applied by drip (kg/m2/s)
    qflx_irrig_sprinkler_patch : NDArray[np.float64]
        Part of qflx_irrig_patch applied by sprinkler (kg/m2/s)
    """

    n_patches: int
    active: NDArray[np.bool_] = field(default=None)
    rate: NDArray[np.float64] = field(default=None)
    remaining: NDArray[np.int64] = field(default=None)
    qflx_irrig_patch: NDArray[np.float64] = field(default=None)
    qflx_irrig_demand_patch: NDArray[np.float64] = field(default=None)
    qflx_irrig_drip_patch: NDArray[np.float64] = field(default=None)
    qflx_irrig_sprinkler_patch: NDArray[np.float64] = field(default=None)

    def __post_init__(self):
        """Initialize every patch as Inactive with zero flux."""
        n = self.n_patches
        if self.active is None:
            self.active = np.zeros(n, dtype=np.bool_)
        if self.rate is None:
            self.rate = np.zeros(n, dtype=np.float64)
        if self.remaining is None:
            self.remaining = np.zeros(n, dtype=np.int64)
        if self.qflx_irrig_patch is None:
            self.qflx_irrig_patch = np.zeros(n, dtype=np.float64)
        if self.qflx_irrig_demand_patch is None:
            self.qflx_irrig_demand_patch = np.zeros(n, dtype=np.float64)
        if self.qflx_irrig_drip_patch is None:
            self.qflx_irrig_drip_patch = np.zeros(n, dtype=np.float64)
        if self.qflx_irrig_sprinkler_patch is None:
            self.qflx_irrig_sprinkler_patch = np.zeros(n, dtype=np.float64)

    def copy(self) -> IrrigationState:
        """Create a deep copy of the state."""
        return IrrigationState(
            n_patches=self.n_patches,
            active=self.active.copy(),
            rate=self.rate.copy(),
            remaining=self.remaining.copy(),
            qflx_irrig_patch=self.qflx_irrig_patch.copy(),
            qflx_irrig_demand_patch=self.qflx_irrig_demand_patch.copy(),
            qflx_irrig_drip_patch=self.qflx_irrig_drip_patch.copy(),
            qflx_irrig_sprinkler_patch=self.qflx_irrig_sprinkler_patch.copy(),
        )

    def save_restart(self, path: Path | str) -> None:
        """Write the event state to an HDF5 restart file.

        Only the event state (active, rate, remaining) is written; fluxes
        are recomputed on the first step after restart.
        """
        with h5py.File(path, "w") as h5:
            h5.attrs["n_patches"] = self.n_patches
            group = h5.create_group("irrigation")
            group.create_dataset("active", data=self.active.astype(np.uint8))
            group.create_dataset("rate", data=self.rate)
            group.create_dataset("remaining", data=self.remaining)

        logger.info("restart_written", path=str(path), n_active=int(self.active.sum()))

    @classmethod
    def from_restart(cls, path: Path | str) -> IrrigationState:
        """Load event state from an HDF5 restart file.

        Parameters
        ----------
        path : Path | str
            Restart file written by save_restart()

        Returns
        -------
        IrrigationState
            State with the restart's event arrays and zero fluxes
        """
        with h5py.File(path, "r") as h5:
            n_patches = int(h5.attrs["n_patches"])
            group = h5["irrigation"]
            state = cls(
                n_patches=n_patches,
                active=group["active"][:].astype(bool),
                rate=group["rate"][:].astype(np.float64),
                remaining=group["remaining"][:].astype(np.int64),
            )

        logger.info("restart_read", path=str(path), n_active=int(state.active.sum()))
        return state


@dataclass
class SubgridGeometry:
    """Static subgrid hierarchy: grid cell -> column -> patch.

    Attributes
    ----------
    patch_column : NDArray[np.int64]
        Column index of each patch, shape (n_patches,)
    patch_itype : NDArray[np.int64]
        Vegetation type of each patch, shape (n_patches,)
    patch_wtcol : NDArray[np.float64]
        Patch weight on its column; weights on a column sum to 1
    column_gridcell : NDArray[np.int64]
        Grid cell index of each column, shape (n_columns,)
    column_wtgcell : NDArray[np.float64]
        Column weight on its grid cell, shape (n_columns,)
    column_nbedrock : NDArray[np.int64]
        Number of soil layers above bedrock (1-based), shape (n_columns,)
    z : NDArray[np.float64]
        Layer midpoint depth (m), shape (n_columns, n_levels)
    dz : NDArray[np.float64]
        Layer thickness (m), shape (n_columns, n_levels)
    gridcell_area : NDArray[np.float64]
        Grid cell area (km2), shape (n_gridcells,)
    gridcell_lon : NDArray[np.float64]
        Grid cell longitude (degrees east); defaults to zeros so that
        model time equals local time
    sucsat : NDArray[np.float64], optional
        Saturated soil suction (mm), shape (n_columns, n_levels)
    bsw : NDArray[np.float64], optional
        Clapp-Hornberger "b" exponent, shape (n_columns, n_levels)

    When sucsat and bsw are given, the target relative saturation can be
    derived from irrig_target_smp instead of being passed every step.
    """

    patch_column: NDArray[np.int64]
    patch_itype: NDArray[np.int64]
    patch_wtcol: NDArray[np.float64]
    column_gridcell: NDArray[np.int64]
    column_wtgcell: NDArray[np.float64]
    column_nbedrock: NDArray[np.int64]
    z: NDArray[np.float64]
    dz: NDArray[np.float64]
    gridcell_area: NDArray[np.float64]
    gridcell_lon: NDArray[np.float64] = field(default=None)
    sucsat: NDArray[np.float64] = field(default=None)
    bsw: NDArray[np.float64] = field(default=None)

    def __post_init__(self):
        """Coerce dtypes for the kernels and validate the hierarchy."""
        self.patch_column = np.asarray(self.patch_column, dtype=np.int64)
        self.patch_itype = np.asarray(self.patch_itype, dtype=np.int64)
        self.patch_wtcol = np.asarray(self.patch_wtcol, dtype=np.float64)
        self.column_gridcell = np.asarray(self.column_gridcell, dtype=np.int64)
        self.column_wtgcell = np.asarray(self.column_wtgcell, dtype=np.float64)
        self.column_nbedrock = np.asarray(self.column_nbedrock, dtype=np.int64)
        self.z = np.atleast_2d(np.asarray(self.z, dtype=np.float64))
        self.dz = np.atleast_2d(np.asarray(self.dz, dtype=np.float64))
        self.gridcell_area = np.asarray(self.gridcell_area, dtype=np.float64)
        if self.gridcell_lon is None:
            self.gridcell_lon = np.zeros(self.n_gridcells, dtype=np.float64)
        else:
            self.gridcell_lon = np.asarray(self.gridcell_lon, dtype=np.float64)
        if self.sucsat is not None:
            self.sucsat = np.atleast_2d(np.asarray(self.sucsat, dtype=np.float64))
        if self.bsw is not None:
            self.bsw = np.atleast_2d(np.asarray(self.bsw, dtype=np.float64))

        self.validate()

    @property
    def n_patches(self) -> int:
        return self.patch_column.shape[0]

    @property
    def n_columns(self) -> int:
        return self.column_gridcell.shape[0]

    @property
    def n_gridcells(self) -> int:
        return self.gridcell_area.shape[0]

    @property
    def n_levels(self) -> int:
        return self.z.shape[1]

    @cached_property
    def patch_gridcell(self) -> NDArray[np.int64]:
        """Grid cell index of each patch."""
        return self.column_gridcell[self.patch_column]

    @cached_property
    def patch_wtgcell(self) -> NDArray[np.float64]:
        """Patch weight on its grid cell."""
        return self.patch_wtcol * self.column_wtgcell[self.patch_column]

    @cached_property
    def patch_col_wtgcell(self) -> NDArray[np.float64]:
        """Weight of each patch's column on its grid cell."""
        return self.column_wtgcell[self.patch_column]

    @property
    def has_retention(self) -> bool:
        """Whether retention curve parameters were supplied."""
        return self.sucsat is not None

    @cached_property
    def patch_local_offset(self) -> NDArray[np.int64]:
        """Local solar time offset (s) of each patch's grid cell."""
        return local_time_offset(self.gridcell_lon)[self.patch_gridcell]

    def validate(self) -> None:
        """Check shapes, indices and weights; raise IrrigationConfigError."""
        n_p, n_c, n_g = self.n_patches, self.n_columns, self.n_gridcells

        for name, arr, size in (
            ("patch_itype", self.patch_itype, n_p),
            ("patch_wtcol", self.patch_wtcol, n_p),
            ("column_wtgcell", self.column_wtgcell, n_c),
            ("column_nbedrock", self.column_nbedrock, n_c),
            ("gridcell_lon", self.gridcell_lon, n_g),
        ):
            if arr.shape != (size,):
                raise IrrigationConfigError(
                    f"{name} has shape {arr.shape}, expected ({size},)"
                )

        if self.z.shape[0] != n_c or self.dz.shape != self.z.shape:
            raise IrrigationConfigError(
                f"z {self.z.shape} and dz {self.dz.shape} must both be "
                f"(n_columns={n_c}, n_levels)"
            )

        if n_p and (self.patch_column.min() < 0 or self.patch_column.max() >= n_c):
            raise IrrigationConfigError("patch_column index out of range")
        if n_c and (self.column_gridcell.min() < 0 or self.column_gridcell.max() >= n_g):
            raise IrrigationConfigError("column_gridcell index out of range")
        if n_p and self.patch_itype.min() < 0:
            raise IrrigationConfigError("patch_itype must be non-negative")

        if np.any(self.column_nbedrock < 1) or np.any(self.column_nbedrock > self.n_levels):
            raise IrrigationConfigError(
                f"column_nbedrock must be in [1, {self.n_levels}]"
            )

        if np.any(self.dz <= 0.0):
            raise IrrigationConfigError("dz must be positive")
        if np.any(np.diff(self.z, axis=1) <= 0.0):
            raise IrrigationConfigError("z must increase with layer index")
        if np.any(self.gridcell_area <= 0.0):
            raise IrrigationConfigError("gridcell_area must be positive")

        if (self.sucsat is None) != (self.bsw is None):
            raise IrrigationConfigError("sucsat and bsw must be given together")
        if self.sucsat is not None:
            if self.sucsat.shape != self.z.shape or self.bsw.shape != self.z.shape:
                raise IrrigationConfigError(
                    f"sucsat {self.sucsat.shape} and bsw {self.bsw.shape} must match "
                    f"z {self.z.shape}"
                )
            if np.any(self.sucsat <= 0.0) or np.any(self.bsw <= 0.0):
                raise IrrigationConfigError("sucsat and bsw must be positive")

        if np.any(self.patch_wtcol < 0.0) or np.any(self.column_wtgcell < 0.0):
            raise IrrigationConfigError("subgrid weights must be non-negative")

        wt_sum = np.bincount(self.patch_column, weights=self.patch_wtcol, minlength=n_c)
        has_patches = np.bincount(self.patch_column, minlength=n_c) > 0
        bad = has_patches & (np.abs(wt_sum - 1.0) > WEIGHT_SUM_TOL)
        if np.any(bad):
            raise IrrigationConfigError(
                f"patch weights on columns {np.flatnonzero(bad).tolist()} do not sum to 1"
            )


@dataclass
class VegetationTable:
    """Per-vegetation-type irrigation settings.

    Attributes
    ----------
    irrigated : NDArray[np.bool_]
        True for vegetation types that receive irrigation, shape (n_types,)
    irrig_method : NDArray[np.int64]
        Application method per type: 0 unset (drip), 1 drip, 2 sprinkler
    names : list
        Optional type names, for display
    """

    irrigated: NDArray[np.bool_]
    irrig_method: NDArray[np.int64] = field(default=None)
    names: list = field(default_factory=list)

    def __post_init__(self):
        self.irrigated = np.asarray(self.irrigated, dtype=np.bool_)
        if self.irrig_method is None:
            self.irrig_method = np.full(self.n_types, IRRIG_METHOD_DRIP, dtype=np.int64)
        else:
            self.irrig_method = np.asarray(self.irrig_method, dtype=np.int64)

        if self.irrig_method.shape != self.irrigated.shape:
            raise IrrigationConfigError("irrig_method and irrigated must have the same length")
        valid = (0, IRRIG_METHOD_DRIP, IRRIG_METHOD_SPRINKLER)
        if not np.all(np.isin(self.irrig_method, valid)):
            raise IrrigationConfigError(f"irrig_method values must be in {valid}")

    @property
    def n_types(self) -> int:
        return self.irrigated.shape[0]

    def check_covers(self, patch_itype: NDArray[np.int64]) -> None:
        """Raise if a patch vegetation type is missing from the table."""
        if patch_itype.size and patch_itype.max() >= self.n_types:
            raise IrrigationConfigError(
                f"vegetation type {int(patch_itype.max())} not in table "
                f"of {self.n_types} types"
            )

    @classmethod
    def from_csv(cls, csv_path: Path | str) -> VegetationTable:
        """Load the table from CSV.

        Expected columns: ``itype, name, irrigated, irrig_method``. Rows
        may appear in any order but ``itype`` must cover 0..n_types-1.
        ``irrig_method`` accepts ``drip``, ``sprinkler`` or the integer
        codes; blank means unset.
        """
        df = pd.read_csv(csv_path)
        missing = {"itype", "irrigated"} - set(df.columns)
        if missing:
            raise IrrigationConfigError(f"{csv_path} missing columns {sorted(missing)}")

        df = df.sort_values("itype").reset_index(drop=True)
        if not np.array_equal(df["itype"].to_numpy(), np.arange(len(df))):
            raise IrrigationConfigError(f"{csv_path} itype must cover 0..{len(df) - 1}")

        irrigated = df["irrigated"].fillna("").astype(str).str.strip().str.lower().isin(
            ["1", "true", "yes", "y"]
        )

        method = np.zeros(len(df), dtype=np.int64)
        if "irrig_method" in df.columns:
            codes = {"": 0, "nan": 0, "0": 0, "unset": 0,
                     "1": IRRIG_METHOD_DRIP, "drip": IRRIG_METHOD_DRIP,
                     "2": IRRIG_METHOD_SPRINKLER, "sprinkler": IRRIG_METHOD_SPRINKLER}
            raw = df["irrig_method"].fillna("").astype(str).str.strip().str.lower()
            raw = raw.str.replace(r"\.0$", "", regex=True)
            unknown = sorted(set(raw) - set(codes))
            if unknown:
                raise IrrigationConfigError(f"Unknown irrig_method values {unknown}")
            method = raw.map(codes).to_numpy(dtype=np.int64)

        names = df["name"].astype(str).tolist() if "name" in df.columns else []
        return cls(irrigated=irrigated.to_numpy(), irrig_method=method, names=names)
