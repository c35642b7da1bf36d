"""HDF5-backed forcing container for offline irrigation runs.

The host land model normally calls the engine once per timestep with
arrays it already holds. For offline runs and regression tests the same
inputs can be written to a single HDF5 file:

    /attrs/config                JSON: dtime, n_steps
    /geometry/...                SubgridGeometry arrays (sucsat, bsw optional)
    /vegetation/irrigated        (n_types,) uint8
    /vegetation/irrig_method     (n_types,) int64
    /forcing/tod                 (n_steps,) time of day (s)
    /forcing/elai                (n_steps, n_patches)
    /forcing/in_filter           (n_steps, n_patches) uint8, optional
    /forcing/t_soisno            (n_steps, n_columns, n_levels)
    /forcing/eff_porosity        (n_steps, n_columns, n_levels)
    /forcing/h2osoi_liq          (n_steps, n_columns, n_levels)
    /forcing/relsat_target       (n_steps, n_columns, n_levels), optional
    /forcing/volr                (n_steps, n_gridcells)
    /forcing/rof_prognostic      (n_steps,) uint8
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import h5py
import numpy as np

from lsirrig.config import IrrigationConfigError
from lsirrig.process.state import SubgridGeometry, VegetationTable

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = ["IrrigationInput", "build_irrigation_input", "FORCING_VARIABLES"]

FORCING_VARIABLES = (
    "elai",
    "in_filter",
    "t_soisno",
    "eff_porosity",
    "h2osoi_liq",
    "relsat_target",
    "volr",
)

_GEOMETRY_FIELDS = (
    "patch_column",
    "patch_itype",
    "patch_wtcol",
    "column_gridcell",
    "column_wtgcell",
    "column_nbedrock",
    "z",
    "dz",
    "gridcell_area",
    "gridcell_lon",
)

_OPTIONAL_GEOMETRY_FIELDS = ("sucsat", "bsw")


@dataclass
class IrrigationInput:
    """Forcing container backed by an HDF5 file.

    Attributes
    ----------
    h5_path : Path
        Path to HDF5 input file
    dtime : float
        Timestep (s) the forcing was written for
    n_steps : int
        Number of timesteps
    geometry : SubgridGeometry
        Subgrid hierarchy
    vegetation : VegetationTable
        Vegetation type table

    Example
    -------
        >>> with IrrigationInput(h5_path="forcing.h5") as irr_input:
        ...     elai = irr_input.get_time_series("elai", step_idx=0)
    """

    h5_path: Path
    dtime: float = field(default=None)
    n_steps: int = field(default=0)
    geometry: SubgridGeometry = field(default=None)
    vegetation: VegetationTable = field(default=None)
    _h5_file: h5py.File = field(default=None, repr=False)

    def __post_init__(self):
        """Open HDF5 file and load metadata if path exists."""
        if self.h5_path is not None and Path(self.h5_path).exists():
            self._load_from_h5()

    def _load_from_h5(self):
        """Load metadata and static arrays from HDF5."""
        self._h5_file = h5py.File(self.h5_path, "r")
        h5 = self._h5_file

        config = json.loads(h5.attrs["config"])
        self.dtime = float(config["dtime"])
        self.n_steps = int(config["n_steps"])

        geom = h5["geometry"]
        arrays = {name: geom[name][:] for name in _GEOMETRY_FIELDS}
        for name in _OPTIONAL_GEOMETRY_FIELDS:
            if name in geom:
                arrays[name] = geom[name][:]
        self.geometry = SubgridGeometry(**arrays)

        veg = h5["vegetation"]
        self.vegetation = VegetationTable(
            irrigated=veg["irrigated"][:].astype(bool),
            irrig_method=veg["irrig_method"][:],
        )

    def close(self):
        """Close the HDF5 file."""
        if self._h5_file is not None:
            self._h5_file.close()
            self._h5_file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def has_variable(self, variable: str) -> bool:
        return f"forcing/{variable}" in self._h5_file

    def get_tod(self, step_idx: int) -> float:
        """Time of day (s) at a timestep."""
        return float(self._h5_file["forcing/tod"][step_idx])

    def get_rof_prognostic(self, step_idx: int) -> bool:
        """Whether river routing was prognostic at a timestep."""
        return bool(self._h5_file["forcing/rof_prognostic"][step_idx])

    def get_time_series(self, variable: str, step_idx: int) -> NDArray | None:
        """Get one timestep of a forcing variable.

        Parameters
        ----------
        variable : str
            One of FORCING_VARIABLES
        step_idx : int
            Timestep index

        Returns
        -------
        NDArray or None
            The variable at step_idx, or None for absent optional variables
        """
        if variable not in FORCING_VARIABLES:
            raise KeyError(f"Unknown forcing variable: {variable}")
        if not self.has_variable(variable):
            return None

        data = self._h5_file[f"forcing/{variable}"][step_idx]
        if variable == "in_filter":
            return data.astype(bool)
        return data.astype(np.float64)


def build_irrigation_input(
    output_h5: Path | str,
    geometry: SubgridGeometry,
    vegetation: VegetationTable,
    dtime: float,
    tod: NDArray,
    forcing: dict[str, Any],
    rof_prognostic: NDArray | bool = True,
) -> IrrigationInput:
    """Write forcing arrays to HDF5 and return the loaded container.

    Parameters
    ----------
    output_h5 : Path | str
        Path for output HDF5 file
    geometry : SubgridGeometry
        Subgrid hierarchy
    vegetation : VegetationTable
        Vegetation type table
    dtime : float
        Timestep (s)
    tod : (n_steps,)
        Time of day at each step (s)
    forcing : dict
        Variable name -> array with leading n_steps axis. Required:
        elai, t_soisno, eff_porosity, h2osoi_liq, volr. Optional:
        in_filter, and relsat_target when the geometry carries sucsat / bsw.
    rof_prognostic : (n_steps,) or bool
        River routing prognostic flag per step

    Returns
    -------
    IrrigationInput
        Loaded input container
    """
    output_h5 = Path(output_h5)
    tod = np.asarray(tod, dtype=np.float64)
    n_steps = tod.shape[0]

    required = {"elai", "t_soisno", "eff_porosity", "h2osoi_liq", "volr"}
    if not geometry.has_retention:
        required.add("relsat_target")
    missing = required - set(forcing)
    if missing:
        raise IrrigationConfigError(f"Missing forcing variables: {sorted(missing)}")
    unknown = set(forcing) - set(FORCING_VARIABLES)
    if unknown:
        raise IrrigationConfigError(f"Unknown forcing variables: {sorted(unknown)}")

    rof = np.broadcast_to(np.asarray(rof_prognostic, dtype=bool), (n_steps,))

    soil_shape = (geometry.n_columns, geometry.n_levels)
    expected_shapes = {
        "elai": (geometry.n_patches,),
        "in_filter": (geometry.n_patches,),
        "volr": (geometry.n_gridcells,),
    }

    arrays = {}
    for name, values in forcing.items():
        arr = np.asarray(values)
        expected = (n_steps,) + expected_shapes.get(name, soil_shape)
        if arr.shape != expected:
            raise IrrigationConfigError(
                f"forcing '{name}' has shape {arr.shape}, expected {expected}"
            )
        if name == "in_filter":
            arrays[name] = arr.astype(np.uint8)
        else:
            arrays[name] = arr.astype(np.float64)

    with h5py.File(output_h5, "w") as h5:
        h5.attrs["config"] = json.dumps({"dtime": float(dtime), "n_steps": int(n_steps)})

        geom = h5.create_group("geometry")
        for name in _GEOMETRY_FIELDS:
            geom.create_dataset(name, data=getattr(geometry, name))
        if geometry.has_retention:
            for name in _OPTIONAL_GEOMETRY_FIELDS:
                geom.create_dataset(name, data=getattr(geometry, name))

        veg = h5.create_group("vegetation")
        veg.create_dataset("irrigated", data=vegetation.irrigated.astype(np.uint8))
        veg.create_dataset("irrig_method", data=vegetation.irrig_method)

        ts_group = h5.create_group("forcing")
        ts_group.create_dataset("tod", data=tod)
        ts_group.create_dataset("rof_prognostic", data=rof.astype(np.uint8))

        for name, arr in arrays.items():
            ts_group.create_dataset(name, data=arr, compression="gzip")

    return IrrigationInput(h5_path=output_h5)
