"""Irrigation parameter configuration.

``IrrigationParameters`` is set once at engine construction and never
mutated. Values can come from keyword arguments, a mapping, or the
``[irrigation]`` table of a TOML file:

    [irrigation]
    dtime = 1800
    irrig_min_lai = 0.0
    irrig_start_time = 21600
    irrig_length = 14400
    irrig_target_smp = -3400.0
    irrig_depth = 0.6
    irrig_threshold_fraction = 0.0
    irrig_river_volume_threshold = 0.1
    limit_irrigation_if_rof_enabled = true
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import toml

__all__ = [
    "IrrigationConfigError",
    "IrrigationParameters",
    "SECONDS_PER_DAY",
]

SECONDS_PER_DAY = 86400


class IrrigationConfigError(ValueError):
    """Raised at setup time when parameters, geometry or tables are invalid."""


@dataclass(frozen=True)
class IrrigationParameters:
    """Immutable irrigation configuration.

    Attributes
    ----------
    dtime : float
        Model timestep (s)
    irrig_min_lai : float
        Leaf area index a patch must exceed to be irrigated
    irrig_start_time : int
        Local time of day irrigation starts (s since midnight)
    irrig_length : float
        Duration of one irrigation event (s)
    irrig_target_smp : float
        Target soil matric potential (mm), negative. Used to derive the
        target relative saturation when it is not passed per step
    irrig_depth : float
        Maximum layer midpoint depth considered for the deficit (m)
    irrig_threshold_fraction : float
        Minimum deficit, as a fraction of the target water over the
        eligible layers, for an event to start [0, 1]
    irrig_river_volume_threshold : float
        Fraction of river volume that may not be withdrawn [0, 1]
    limit_irrigation_if_rof_enabled : bool
        Throttle irrigation by available river volume when river routing
        is prognostic
    """

    dtime: float = 1800.0
    irrig_min_lai: float = 0.0
    irrig_start_time: int = 21600
    irrig_length: float = 14400.0
    irrig_target_smp: float = -3400.0
    irrig_depth: float = 0.6
    irrig_threshold_fraction: float = 0.0
    irrig_river_volume_threshold: float = 0.1
    limit_irrigation_if_rof_enabled: bool = False

    def __post_init__(self):
        """Coerce types (TOML integers become floats) and validate ranges."""
        for f in fields(self):
            value = getattr(self, f.name)
            try:
                if f.type == "float":
                    object.__setattr__(self, f.name, float(value))
                elif f.type == "int":
                    as_int = int(value)
                    integral = as_int == float(value)
            except (TypeError, ValueError) as exc:
                raise IrrigationConfigError(f"{f.name}: {exc}") from exc
            if f.type == "int":
                if not integral:
                    raise IrrigationConfigError(
                        f"{f.name} must be a whole number of seconds, got {value}"
                    )
                object.__setattr__(self, f.name, as_int)
        if not isinstance(self.limit_irrigation_if_rof_enabled, (bool, np.bool_)):
            raise IrrigationConfigError("limit_irrigation_if_rof_enabled must be a boolean")
        object.__setattr__(
            self, "limit_irrigation_if_rof_enabled", bool(self.limit_irrigation_if_rof_enabled)
        )

        for name in ("dtime", "irrig_length", "irrig_depth"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0.0:
                raise IrrigationConfigError(f"{name} must be positive, got {value}")

        if not 0 <= self.irrig_start_time < SECONDS_PER_DAY:
            raise IrrigationConfigError(
                f"irrig_start_time must be in [0, {SECONDS_PER_DAY}), "
                f"got {self.irrig_start_time}"
            )

        if self.irrig_min_lai < 0.0:
            raise IrrigationConfigError(
                f"irrig_min_lai must be non-negative, got {self.irrig_min_lai}"
            )

        if self.irrig_target_smp >= 0.0:
            raise IrrigationConfigError(
                f"irrig_target_smp must be negative (suction), got {self.irrig_target_smp}"
            )

        for name in ("irrig_threshold_fraction", "irrig_river_volume_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise IrrigationConfigError(f"{name} must be in [0, 1], got {value}")

    @property
    def n_irrig_steps(self) -> int:
        """Number of timesteps an event lasts (partial last step rounds up)."""
        return int(math.ceil(self.irrig_length / self.dtime))

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> IrrigationParameters:
        """Build parameters from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise IrrigationConfigError(f"Unknown irrigation parameters: {unknown}")
        return cls(**dict(values))

    @classmethod
    def from_toml(cls, path: str | Path, table: str = "irrigation") -> IrrigationParameters:
        """Load parameters from the ``[irrigation]`` table of a TOML file.

        Parameters
        ----------
        path : str | Path
            TOML file path
        table : str
            Name of the table holding the parameters

        Returns
        -------
        IrrigationParameters
            Validated parameters
        """
        with open(path, "r") as f:
            try:
                raw_config = toml.load(f)
            except toml.TomlDecodeError as exc:
                raise IrrigationConfigError(f"Could not parse {path}: {exc}") from exc

        if table not in raw_config:
            raise IrrigationConfigError(f"{path} has no [{table}] table")

        return cls.from_dict(raw_config[table])

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
