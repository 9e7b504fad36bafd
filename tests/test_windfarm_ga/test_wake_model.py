"""
Tests for the wake and energy model.
"""

import math
import unittest
import numpy as np

from windfarm_ga.data_models import GridCell, TerrainContext
from windfarm_ga.errors import ConfigurationError
from windfarm_ga.wake_model import (
    PowerCurve,
    WakeEnergyModel,
    air_density_at,
    circle_overlap_area,
    downwind_frame,
    log_profile_factor,
    weibull_mean_speed,
)


class TestHelpers(unittest.TestCase):
    """Test geometric and atmospheric helpers."""

    def test_circle_overlap_contained(self):
        """Concentric circles overlap by the smaller disk."""
        area = circle_overlap_area(0.0, 50.0, 30.0)
        self.assertAlmostEqual(float(area), math.pi * 30.0**2)

    def test_circle_overlap_disjoint(self):
        """Distant circles do not overlap."""
        self.assertEqual(float(circle_overlap_area(100.0, 30.0, 30.0)), 0.0)

    def test_circle_overlap_partial(self):
        """Partial overlap lies strictly between zero and the smaller disk."""
        area = float(circle_overlap_area(30.0, 30.0, 30.0))
        self.assertGreater(area, 0.0)
        self.assertLess(area, math.pi * 30.0**2)

    def test_downwind_frame_north_wind(self):
        """Wind from north: the southern cell is downwind."""
        downwind, crosswind = downwind_frame([0.0, 0.0], [500.0, 0.0], 0.0)
        self.assertGreater(downwind[1], downwind[0])
        self.assertAlmostEqual(crosswind[0], crosswind[1])

    def test_log_profile_equal_heights(self):
        """No correction when measurement and hub heights match."""
        self.assertAlmostEqual(float(log_profile_factor(80.0, 80.0, 0.3)), 1.0)

    def test_log_profile_increases_with_height(self):
        """Hub above measurement height raises the speed."""
        self.assertGreater(float(log_profile_factor(50.0, 100.0, 0.3)), 1.0)

    def test_log_profile_invalid_roughness(self):
        """Missing roughness keeps the factor at 1."""
        factor = log_profile_factor(50.0, 100.0, [np.nan, 0.0, 0.3])
        self.assertEqual(factor[0], 1.0)
        self.assertEqual(factor[1], 1.0)
        self.assertGreater(factor[2], 1.0)

    def test_weibull_mean_speed(self):
        """Shape 1 is the exponential distribution: mean equals scale."""
        self.assertAlmostEqual(weibull_mean_speed(1.0, 8.0), 8.0)
        self.assertAlmostEqual(weibull_mean_speed(2.0, 10.0), 10.0 * math.gamma(1.5))
        with self.assertRaises(ValueError):
            weibull_mean_speed(0.0, 8.0)

    def test_air_density_decreases_with_height(self):
        """Air density drops with altitude."""
        self.assertAlmostEqual(air_density_at(0.0), 1.225)
        self.assertLess(air_density_at(1000.0), air_density_at(0.0))


class TestPowerCurve(unittest.TestCase):
    """Test the piecewise power curve."""

    def setUp(self):
        self.curve = PowerCurve(rated_power=2000.0, cut_in=3.0, rated_speed=13.0, cut_out=25.0)

    def test_regions(self):
        """Zero below cut-in, ramp, rated plateau, zero above cut-out."""
        power = self.curve.power([0.0, 2.9, 3.0, 8.0, 13.0, 25.0, 25.1])
        self.assertEqual(power[0], 0.0)
        self.assertEqual(power[1], 0.0)
        self.assertAlmostEqual(power[2], 0.0)
        self.assertGreater(power[3], 0.0)
        self.assertLess(power[3], 2000.0)
        self.assertEqual(power[4], 2000.0)
        self.assertEqual(power[5], 2000.0)
        self.assertEqual(power[6], 0.0)

    def test_ramp_is_increasing(self):
        """Power grows with speed on the ramp."""
        power = self.curve.power(np.linspace(3.5, 12.5, 10))
        self.assertTrue(np.all(np.diff(power) > 0))

    def test_invalid_curve(self):
        """Inconsistent speeds are rejected."""
        with self.assertRaises(ConfigurationError):
            PowerCurve(rated_power=2000.0, cut_in=14.0, rated_speed=13.0)
        with self.assertRaises(ConfigurationError):
            PowerCurve(rated_power=0.0)

    def test_for_rotor(self):
        """Rated power follows from the rotor area."""
        curve = PowerCurve.for_rotor(30.0)
        expected = 0.5 * 1.225 * math.pi * 30.0**2 * 13.0**3 / 1000.0
        self.assertAlmostEqual(curve.rated_power, expected)


class TestWakeEnergyModel(unittest.TestCase):
    """Test wake deficits and directional energy."""

    def setUp(self):
        self.model = WakeEnergyModel(rotor_radius=30.0, hub_height=80.0)

    def test_invalid_parameters(self):
        """Non-positive rotor radius or bad thrust coefficient are rejected."""
        with self.assertRaises(ConfigurationError):
            WakeEnergyModel(rotor_radius=0.0, hub_height=80.0)
        with self.assertRaises(ConfigurationError):
            WakeEnergyModel(rotor_radius=30.0, hub_height=80.0, thrust_coefficient=1.0)
        with self.assertRaises(ConfigurationError):
            WakeEnergyModel(rotor_radius=30.0, hub_height=-1.0)

    def test_single_turbine_full_efficiency(self):
        """A lone turbine is never waked, for any direction."""
        cell = [GridCell(id=1, x=123.0, y=456.0)]
        for direction in (0.0, 45.0, 90.0, 180.0, 271.5, 359.0):
            result = self.model.evaluate(cell, direction, 10.0)
            self.assertEqual(result.efficiency, 100.0)
            self.assertEqual(result.deficits[0], 0.0)

    def test_downwind_turbine_is_waked(self):
        """Wind from north: the southern turbine loses speed, the northern one does not."""
        cells = [GridCell(id=1, x=0.0, y=500.0), GridCell(id=2, x=0.0, y=0.0)]
        result = self.model.evaluate(cells, 0.0, 10.0)

        self.assertEqual(result.deficits[0], 0.0)
        self.assertGreater(result.deficits[1], 0.0)
        self.assertLess(result.net_speeds[1], result.free_speeds[1])
        self.assertLess(result.efficiency, 100.0)

    def test_side_by_side_not_waked(self):
        """Turbines abreast of the wind do not shade each other."""
        cells = [GridCell(id=1, x=0.0, y=0.0), GridCell(id=2, x=200.0, y=0.0)]
        result = self.model.evaluate(cells, 0.0, 10.0)
        self.assertEqual(result.efficiency, 100.0)

    def test_coincident_cells_do_not_fail(self):
        """Zero-distance turbines shade each other fully without dividing by zero."""
        cells = [GridCell(id=1, x=10.0, y=10.0), GridCell(id=2, x=10.0, y=10.0)]
        result = self.model.evaluate(cells, 90.0, 10.0)

        self.assertTrue(np.all(np.isfinite(result.deficits)))
        self.assertAlmostEqual(result.deficits[0], self.model.deficit_factor)
        self.assertAlmostEqual(result.deficits[1], self.model.deficit_factor)
        self.assertTrue(np.all(result.net_speeds >= 0.0))

    def test_efficiency_decreases_with_packing(self):
        """Efficiency never increases as turbines move closer along the wind."""
        efficiencies = []
        for spacing in (2000.0, 1000.0, 500.0, 250.0, 100.0):
            cells = [GridCell(id=1, x=0.0, y=spacing), GridCell(id=2, x=0.0, y=0.0)]
            efficiencies.append(self.model.evaluate(cells, 0.0, 10.0).efficiency)

        for looser, tighter in zip(efficiencies, efficiencies[1:]):
            self.assertLessEqual(tighter, looser)
        self.assertLess(efficiencies[-1], efficiencies[0])

    def test_multiple_wakes_combine(self):
        """Two upstream rotors produce a larger deficit than one."""
        single = self.model.evaluate(
            [GridCell(1, 0.0, 400.0), GridCell(3, 0.0, 0.0)], 0.0, 10.0
        ).deficits[-1]
        double = self.model.evaluate(
            [GridCell(1, 0.0, 400.0), GridCell(2, 0.0, 200.0), GridCell(3, 0.0, 0.0)], 0.0, 10.0
        ).deficits[-1]
        self.assertGreater(double, single)
        self.assertLessEqual(double, 1.0)

    def test_weibull_speeds_override(self):
        """Per-cell mean speeds replace the directional speed."""
        cells = [GridCell(id=1, x=0.0, y=0.0), GridCell(id=2, x=1000.0, y=0.0)]
        terrain = TerrainContext(mean_speeds={1: 7.0})
        speeds = self.model.free_stream_speeds(cells, 10.0, terrain)
        self.assertAlmostEqual(speeds[0], 7.0)
        self.assertAlmostEqual(speeds[1], 10.0)

    def test_terrain_roughness_changes_expansion(self):
        """Per-cell roughness sets the expansion coefficient to 0.5 / ln(h / z0)."""
        cells = [GridCell(id=1, x=0.0, y=0.0), GridCell(id=2, x=0.0, y=500.0)]
        terrain = TerrainContext(roughness={1: 0.1})
        k = self.model.expansion_coefficients(cells, terrain)
        self.assertAlmostEqual(k[0], 0.5 / math.log(80.0 / 0.1))
        self.assertAlmostEqual(k[1], self.model.expansion_coefficient)

    def test_elevation_orography_and_density(self):
        """Higher cells see more wind and thinner air."""
        cells = [GridCell(id=1, x=0.0, y=0.0), GridCell(id=2, x=1000.0, y=0.0)]
        terrain = TerrainContext(elevation={1: 100.0, 2: 300.0})
        speeds = self.model.free_stream_speeds(cells, 10.0, terrain)
        density = self.model.air_density_ratios(cells, terrain)

        self.assertGreater(speeds[1], speeds[0])
        self.assertLess(density[1], density[0])
        self.assertLess(density[0], 1.0)


if __name__ == '__main__':
    unittest.main()
