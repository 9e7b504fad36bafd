"""
Wake and energy model.

Top-hat (Jensen) wake model: wakes expand linearly behind each rotor, the
speed deficit a wake induces on a downstream rotor is weighted by the
fraction of the rotor disk it covers, and multiple wakes are combined by
sum of squares. Free-stream speeds are corrected from the measurement height
to hub height with a logarithmic profile, and per-turbine speeds are turned
into power with a piecewise cubic power curve.
"""

import math
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .data_models import GridCell, DirectionalResult, TerrainContext
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

THRUST_COEFFICIENT = 0.88
EXPANSION_COEFFICIENT = 0.075
AIR_DENSITY = 1.225  # kg/m^3 at sea level
DISTANCE_TOLERANCE = 1e-6  # m


def air_density_at(height: float) -> float:
    """
    Air density (kg/m^3) at a height above sea level.

    Barometric formula of the ISA troposphere (T0 = 288.15 K,
    lapse rate 0.0065 K/m).
    """
    return AIR_DENSITY * (1.0 - 0.0065 * height / 288.15) ** 4.2559


def weibull_mean_speed(shape: float, scale: float) -> float:
    """Mean wind speed of a Weibull distribution: scale * Gamma(1 + 1/shape)."""
    if shape <= 0 or scale < 0:
        raise ValueError(f"Invalid Weibull parameters: shape={shape}, scale={scale}")
    return scale * math.gamma(1.0 + 1.0 / shape)


def log_profile_factor(
    reference_height: float,
    hub_height: float,
    roughness
) -> np.ndarray:
    """
    Ratio between hub-height and reference-height speed of a logarithmic profile.

    Cells whose roughness is missing, non-positive or not below both heights
    keep a factor of 1.
    """
    z0 = np.asarray(roughness, dtype=float)
    valid = np.isfinite(z0) & (z0 > 0) & (z0 < min(reference_height, hub_height))
    safe = np.where(valid, z0, 1.0)
    factor = np.log(hub_height / safe) / np.log(reference_height / safe)
    return np.where(valid, factor, 1.0)


def circle_overlap_area(distance, radius_a, radius_b) -> np.ndarray:
    """
    Intersection area of two circles given their center distance and radii.

    Works element-wise on broadcastable arrays.
    """
    d, ra, rb = np.broadcast_arrays(
        np.asarray(distance, dtype=float),
        np.asarray(radius_a, dtype=float),
        np.asarray(radius_b, dtype=float),
    )
    area = np.zeros(d.shape)

    contained = d <= np.abs(ra - rb)
    area[contained] = math.pi * np.minimum(ra, rb)[contained] ** 2

    partial = ~contained & (d < ra + rb)
    if np.any(partial):
        dp, ap, bp = d[partial], ra[partial], rb[partial]
        alpha = np.arccos(np.clip((dp**2 + ap**2 - bp**2) / (2 * dp * ap), -1.0, 1.0))
        beta = np.arccos(np.clip((dp**2 + bp**2 - ap**2) / (2 * dp * bp), -1.0, 1.0))
        kite = (-dp + ap + bp) * (dp + ap - bp) * (dp - ap + bp) * (dp + ap + bp)
        area[partial] = ap**2 * alpha + bp**2 * beta - 0.5 * np.sqrt(np.maximum(kite, 0.0))

    return area


def downwind_frame(x, y, direction: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Project coordinates onto the downwind/crosswind axes of a wind direction.

    The direction is meteorological (the wind blows FROM it, clockwise from
    north). Coordinates are centered first to keep rounding errors small.

    Returns:
        Tuple of (downwind, crosswind) coordinates
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    x = x - x.mean()
    y = y - y.mean()
    theta = math.radians(direction)
    downwind = -(x * math.sin(theta) + y * math.cos(theta))
    crosswind = x * math.cos(theta) - y * math.sin(theta)
    return downwind, crosswind


@dataclass(frozen=True)
class PowerCurve:
    """
    Piecewise power curve: zero below cut-in, cubic ramp up to the rated
    speed, rated plateau up to cut-out, zero above cut-out.

    Attributes:
        rated_power: Rated power (kW)
        cut_in: Cut-in speed (m/s)
        rated_speed: Rated speed (m/s)
        cut_out: Cut-out speed (m/s)
    """
    rated_power: float
    cut_in: float = 3.0
    rated_speed: float = 13.0
    cut_out: float = 25.0

    def __post_init__(self):
        if self.rated_power <= 0:
            raise ConfigurationError(f"Rated power must be positive, got {self.rated_power}")
        if not 0 <= self.cut_in < self.rated_speed <= self.cut_out:
            raise ConfigurationError(
                "Power curve speeds must satisfy 0 <= cut_in < rated_speed <= cut_out, got "
                f"{self.cut_in}, {self.rated_speed}, {self.cut_out}"
            )

    @classmethod
    def for_rotor(
        cls,
        rotor_radius: float,
        cut_in: float = 3.0,
        rated_speed: float = 13.0,
        cut_out: float = 25.0,
        air_density: float = AIR_DENSITY
    ) -> "PowerCurve":
        """Curve whose rated power is the kinetic power through the rotor at rated speed."""
        rated_power = 0.5 * air_density * math.pi * rotor_radius**2 * rated_speed**3 / 1000.0
        return cls(rated_power, cut_in, rated_speed, cut_out)

    def power(self, speeds) -> np.ndarray:
        """Power (kW) for each speed."""
        v = np.asarray(speeds, dtype=float)
        span = self.rated_speed**3 - self.cut_in**3
        ramp = self.rated_power * (v**3 - self.cut_in**3) / span
        return np.select(
            [v < self.cut_in, v < self.rated_speed, v <= self.cut_out],
            [0.0, ramp, self.rated_power],
            default=0.0,
        )


class WakeEnergyModel:
    """
    Computes per-turbine wake deficits, net speeds and power of one layout
    under one wind direction.
    """

    def __init__(
        self,
        rotor_radius: float,
        hub_height: float,
        reference_height: Optional[float] = None,
        surface_roughness: Optional[float] = 0.3,
        thrust_coefficient: float = THRUST_COEFFICIENT,
        expansion_coefficient: float = EXPANSION_COEFFICIENT,
        power_curve: Optional[PowerCurve] = None
    ):
        """
        Args:
            rotor_radius: Rotor radius (m)
            hub_height: Hub height (m)
            reference_height: Height at which wind speeds were measured (defaults to hub height)
            surface_roughness: Roughness length for the log profile; None disables it
            thrust_coefficient: Rotor thrust coefficient in [0, 1)
            expansion_coefficient: Linear wake expansion per metre downwind
            power_curve: Turbine power curve (defaults to PowerCurve.for_rotor)

        Raises:
            ConfigurationError: If any parameter is out of range
        """
        if reference_height is None:
            reference_height = hub_height

        if rotor_radius <= 0:
            raise ConfigurationError(f"Rotor radius must be positive, got {rotor_radius}")
        if hub_height <= 0 or reference_height <= 0:
            raise ConfigurationError("Hub and reference heights must be positive")
        if not 0 <= thrust_coefficient < 1:
            raise ConfigurationError(f"Thrust coefficient must be in [0, 1), got {thrust_coefficient}")
        if expansion_coefficient <= 0:
            raise ConfigurationError(
                f"Expansion coefficient must be positive, got {expansion_coefficient}"
            )

        self.rotor_radius = rotor_radius
        self.hub_height = hub_height
        self.reference_height = reference_height
        self.surface_roughness = surface_roughness
        self.thrust_coefficient = thrust_coefficient
        self.expansion_coefficient = expansion_coefficient
        self.power_curve = power_curve or PowerCurve.for_rotor(rotor_radius)

    @property
    def deficit_factor(self) -> float:
        """Initial velocity deficit directly behind a rotor: 1 - sqrt(1 - Ct)."""
        return 1.0 - math.sqrt(1.0 - self.thrust_coefficient)

    def free_stream_speeds(
        self,
        cells: Sequence[GridCell],
        speed: float,
        terrain: Optional[TerrainContext] = None
    ) -> np.ndarray:
        """Un-waked hub-height speed at each cell."""
        if terrain is not None and terrain.mean_speeds:
            speeds = np.array([terrain.mean_speeds.get(c.id, speed) for c in cells], dtype=float)
        else:
            speeds = np.full(len(cells), float(speed))

        if terrain is not None and terrain.roughness:
            default = np.nan if self.surface_roughness is None else self.surface_roughness
            roughness = [terrain.roughness.get(c.id, default) for c in cells]
            speeds = speeds * log_profile_factor(self.reference_height, self.hub_height, roughness)
        elif self.surface_roughness is not None:
            speeds = speeds * log_profile_factor(
                self.reference_height, self.hub_height, self.surface_roughness
            )

        if terrain is not None and terrain.elevation:
            mean_elevation = terrain.mean_elevation
            if mean_elevation and mean_elevation > 0:
                orography = np.array(
                    [terrain.elevation.get(c.id, mean_elevation) / mean_elevation for c in cells]
                )
                speeds = speeds * orography

        return speeds

    def expansion_coefficients(
        self,
        cells: Sequence[GridCell],
        terrain: Optional[TerrainContext] = None
    ) -> np.ndarray:
        """Wake expansion coefficient of each (upwind) turbine."""
        k = np.full(len(cells), self.expansion_coefficient)
        if terrain is None or not terrain.roughness:
            return k

        for i, cell in enumerate(cells):
            z0 = terrain.roughness.get(cell.id)
            if z0 is not None and 0 < z0 < self.hub_height:
                k[i] = 0.5 / math.log(self.hub_height / z0)
        return k

    def air_density_ratios(
        self,
        cells: Sequence[GridCell],
        terrain: Optional[TerrainContext] = None
    ) -> np.ndarray:
        """Air density at hub height relative to sea level, per cell."""
        if terrain is None or not terrain.elevation:
            return np.ones(len(cells))
        return np.array([
            air_density_at(terrain.elevation.get(c.id, 0.0) + self.hub_height) / AIR_DENSITY
            for c in cells
        ])

    def wake_deficits(self, x, y, direction: float, expansion=None) -> np.ndarray:
        """
        Combined fractional speed deficit at each turbine.

        Entry [i, j] of the pairwise matrices describes turbine j relative to
        upwind turbine i. Turbine j is shaded by i when it lies downwind of i
        and its rotor disk intersects the wake cross-section of i. Coincident
        turbines shade each other fully.

        Args:
            x: Turbine x coordinates
            y: Turbine y coordinates
            direction: Wind direction in degrees
            expansion: Expansion coefficient per turbine (defaults to the model's)

        Returns:
            Array of deficits in [0, 1]
        """
        n = len(x)
        if n < 2:
            return np.zeros(n)

        if expansion is None:
            expansion = np.full(n, self.expansion_coefficient)
        k = np.asarray(expansion, dtype=float)

        downwind, crosswind = downwind_frame(x, y, direction)
        distance = downwind[None, :] - downwind[:, None]
        offset = np.abs(crosswind[None, :] - crosswind[:, None])
        distance[np.abs(distance) < DISTANCE_TOLERANCE] = 0.0
        offset[offset < DISTANCE_TOLERANCE] = 0.0

        coincident = (distance == 0.0) & (offset == 0.0)
        np.fill_diagonal(coincident, False)
        downstream = (distance > 0.0) | coincident

        r = self.rotor_radius
        wake_radius = r + k[:, None] * np.where(downstream, distance, 0.0)
        overlap = circle_overlap_area(offset, wake_radius, r) / (math.pi * r**2)
        overlap = np.where(downstream, np.minimum(overlap, 1.0), 0.0)

        single = self.deficit_factor * (r / wake_radius) ** 2 * overlap
        combined = np.sqrt(np.sum(single**2, axis=0))
        return np.minimum(combined, 1.0)

    def evaluate(
        self,
        cells: Sequence[GridCell],
        direction: float,
        speed: float,
        terrain: Optional[TerrainContext] = None
    ) -> DirectionalResult:
        """
        Evaluate a layout for one wind direction and speed.

        Args:
            cells: Occupied grid cells
            direction: Wind direction in degrees
            speed: Mean wind speed at the reference height (m/s)
            terrain: Optional per-cell terrain/resource data

        Returns:
            DirectionalResult with per-turbine speeds and power
        """
        cells = list(cells)
        free = self.free_stream_speeds(cells, speed, terrain)

        x = np.array([c.x for c in cells], dtype=float)
        y = np.array([c.y for c in cells], dtype=float)
        deficits = self.wake_deficits(x, y, direction, self.expansion_coefficients(cells, terrain))
        net = np.maximum(free * (1.0 - deficits), 0.0)

        density = self.air_density_ratios(cells, terrain)
        power = self.power_curve.power(net) * density
        potential = self.power_curve.power(free) * density

        return DirectionalResult(
            direction=direction,
            speed=speed,
            free_speeds=free,
            net_speeds=net,
            deficits=deficits,
            power=power,
            energy=math.fsum(power),
            potential_energy=math.fsum(potential),
        )
