"""Tests for lsirrig.config module."""

import dataclasses

import pytest

from lsirrig.config import IrrigationConfigError, IrrigationParameters


class TestIrrigationParametersInit:
    """Tests for IrrigationParameters construction."""

    def test_defaults(self):
        """Default parameters are valid."""
        params = IrrigationParameters()

        assert params.dtime == 1800.0
        assert params.irrig_start_time == 21600
        assert params.irrig_length == 14400.0
        assert params.limit_irrigation_if_rof_enabled is False

    def test_frozen(self):
        """Parameters cannot be changed after construction."""
        params = IrrigationParameters()

        with pytest.raises(dataclasses.FrozenInstanceError):
            params.irrig_length = 100.0

    def test_integers_coerced(self):
        """Integer inputs for float fields become floats."""
        params = IrrigationParameters(dtime=3600, irrig_length=7200, irrig_depth=1)

        assert isinstance(params.dtime, float)
        assert isinstance(params.irrig_depth, float)
        assert isinstance(params.irrig_start_time, int)


class TestIrrigStepCount:
    """Tests for the event length in timesteps."""

    def test_exact_multiple(self):
        params = IrrigationParameters(dtime=1800.0, irrig_length=14400.0)
        assert params.n_irrig_steps == 8

    def test_partial_step_rounds_up(self):
        """A remainder gives one extra full step."""
        params = IrrigationParameters(dtime=1800.0, irrig_length=10000.0)
        assert params.n_irrig_steps == 6

    def test_shorter_than_timestep(self):
        params = IrrigationParameters(dtime=3600.0, irrig_length=600.0)
        assert params.n_irrig_steps == 1


class TestIrrigationParametersValidation:
    """Invalid configuration is rejected at construction."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"irrig_length": -3600.0},
            {"irrig_length": 0.0},
            {"dtime": 0.0},
            {"irrig_depth": -0.1},
            {"irrig_start_time": 86400},
            {"irrig_start_time": -1},
            {"irrig_min_lai": -0.5},
            {"irrig_target_smp": 100.0},
            {"irrig_start_time": 21600.5},
            {"irrig_threshold_fraction": 1.5},
            {"irrig_river_volume_threshold": -0.1},
            {"limit_irrigation_if_rof_enabled": "yes"},
            {"dtime": "fast"},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(IrrigationConfigError):
            IrrigationParameters(**kwargs)

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            IrrigationParameters(irrig_length=-1.0)


class TestIrrigationParametersFromToml:
    """Tests for IrrigationParameters.from_toml."""

    @pytest.fixture
    def irrigation_toml(self, tmp_path):
        """Create a valid TOML config file."""
        toml_content = """
[irrigation]
dtime = 3600
irrig_start_time = 18000
irrig_length = 10800
irrig_depth = 0.8
irrig_min_lai = 0.2
irrig_river_volume_threshold = 0.05
limit_irrigation_if_rof_enabled = true
"""
        toml_file = tmp_path / "irrigation.toml"
        toml_file.write_text(toml_content)
        return toml_file

    def test_loads_values(self, irrigation_toml):
        params = IrrigationParameters.from_toml(irrigation_toml)

        assert params.dtime == 3600.0
        assert params.irrig_start_time == 18000
        assert params.irrig_length == 10800.0
        assert params.irrig_depth == 0.8
        assert params.limit_irrigation_if_rof_enabled is True
        assert params.n_irrig_steps == 3

    def test_unspecified_values_default(self, irrigation_toml):
        params = IrrigationParameters.from_toml(irrigation_toml)

        assert params.irrig_target_smp == -3400.0
        assert params.irrig_threshold_fraction == 0.0

    def test_fractional_start_time(self, tmp_path):
        """A start time with a fractional second is rejected, not truncated."""
        toml_file = tmp_path / "fractional.toml"
        toml_file.write_text("[irrigation]\nirrig_start_time = 21600.5\n")

        with pytest.raises(IrrigationConfigError, match="whole number"):
            IrrigationParameters.from_toml(toml_file)

    def test_integral_float_start_time(self):
        params = IrrigationParameters(irrig_start_time=21600.0)

        assert params.irrig_start_time == 21600
        assert isinstance(params.irrig_start_time, int)

    def test_unknown_key(self, tmp_path):
        toml_file = tmp_path / "bad.toml"
        toml_file.write_text("[irrigation]\nirrig_lenght = 100\n")

        with pytest.raises(IrrigationConfigError, match="irrig_lenght"):
            IrrigationParameters.from_toml(toml_file)

    def test_missing_table(self, tmp_path):
        toml_file = tmp_path / "empty.toml"
        toml_file.write_text("[other]\nvalue = 1\n")

        with pytest.raises(IrrigationConfigError, match="no \\[irrigation\\] table"):
            IrrigationParameters.from_toml(toml_file)

    def test_unparseable(self, tmp_path):
        toml_file = tmp_path / "broken.toml"
        toml_file.write_text("[irrigation\n")

        with pytest.raises(IrrigationConfigError, match="Could not parse"):
            IrrigationParameters.from_toml(toml_file)

    def test_round_trip_dict(self):
        params = IrrigationParameters(irrig_length=7200.0)

        assert IrrigationParameters.from_dict(params.to_dict()) == params
