"""
Shared pytest fixtures for lsirrig tests.

This module provides:
- A small two-column, three-patch subgrid on one grid cell
- A vegetation table with unirrigated, drip and sprinkler types
- Uniform soil profiles with a known deficit
"""

import numpy as np
import pytest

from lsirrig.config import IrrigationParameters
from lsirrig.process.kernels.deficit import relsat_to_h2osoi
from lsirrig.process.state import SubgridGeometry, VegetationTable


# =============================================================================
# Tolerance Settings
# =============================================================================

DEFAULT_RTOL = 1e-10
DEFAULT_ATOL = 1e-12


@pytest.fixture
def tolerance():
    """Default tolerance settings for floating-point comparisons."""
    return {"rtol": DEFAULT_RTOL, "atol": DEFAULT_ATOL}


# =============================================================================
# Subgrid Fixtures
# =============================================================================

# Layer interfaces 0, 0.1, 0.2, 0.5, 1.0 m
LAYER_Z = np.array([0.05, 0.15, 0.35, 0.75])
LAYER_DZ = np.array([0.1, 0.1, 0.3, 0.5])

# Vegetation types
UNIRRIGATED = 0
CROP_DRIP = 1
CROP_SPRINKLER = 2


@pytest.fixture
def geometry():
    """One grid cell (100 km2) with two columns and three patches.

    column 0 (60% of grid cell): patch 0, drip crop, weight 1.0
    column 1 (40% of grid cell): patch 1, sprinkler crop, weight 0.5
                                 patch 2, unirrigated, weight 0.5
    """
    n_col = 2
    return SubgridGeometry(
        patch_column=np.array([0, 1, 1]),
        patch_itype=np.array([CROP_DRIP, CROP_SPRINKLER, UNIRRIGATED]),
        patch_wtcol=np.array([1.0, 0.5, 0.5]),
        column_gridcell=np.array([0, 0]),
        column_wtgcell=np.array([0.6, 0.4]),
        column_nbedrock=np.array([4, 4]),
        z=np.tile(LAYER_Z, (n_col, 1)),
        dz=np.tile(LAYER_DZ, (n_col, 1)),
        gridcell_area=np.array([100.0]),
    )


@pytest.fixture
def vegetation():
    """Type 0 unirrigated, type 1 drip-irrigated, type 2 sprinkler-irrigated."""
    return VegetationTable(
        irrigated=np.array([False, True, True]),
        irrig_method=np.array([0, 1, 2]),
        names=["grass", "corn", "soybean"],
    )


@pytest.fixture
def params():
    """30-minute timestep, events start at 06:00 and last 4 hours (8 steps)."""
    return IrrigationParameters(
        dtime=1800.0,
        irrig_min_lai=0.1,
        irrig_start_time=21600,
        irrig_length=14400.0,
        irrig_depth=0.6,
    )


# =============================================================================
# Soil Fixtures
# =============================================================================

def make_soil(n_col, relsat_current=0.5, relsat_target=0.8, porosity=0.4, t_soisno=290.0):
    """Uniform soil state dict for step_irrigation / IrrigationEngine.step."""
    shape = (n_col, LAYER_Z.shape[0])
    eff_porosity = np.full(shape, porosity)
    dz = np.tile(LAYER_DZ, (n_col, 1))
    return {
        "t_soisno": np.full(shape, t_soisno),
        "eff_porosity": eff_porosity,
        "h2osoi_liq": relsat_to_h2osoi(np.full(shape, relsat_current), eff_porosity, dz),
        "relsat_target": np.full(shape, relsat_target),
    }


@pytest.fixture
def soil():
    """Soil at 50% saturation against an 80% target.

    Per-layer deficit = 0.3 * 0.4 * dz * 1000 = 120 * dz, so the three
    layers above irrig_depth=0.6 m hold 12 + 12 + 36 = 60 kg/m2.
    """
    return make_soil(n_col=2)


@pytest.fixture
def expected_rate():
    """Rate for the default soil and params: 60 kg/m2 over 14400 s."""
    return 60.0 / 14400.0


@pytest.fixture
def forcing(soil):
    """Everything step() needs besides tod."""
    return {
        "elai": np.array([2.0, 2.0, 2.0]),
        "volr": np.array([1.0e12]),
        "rof_prognostic": True,
        **soil,
    }


@pytest.fixture
def soil_factory():
    """make_soil for tests that need a second soil state."""
    return make_soil
