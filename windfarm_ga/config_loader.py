"""
Configuration Loading System

Loads GA configuration from YAML, converts it to a typed GAConfig and
validates it, together with the grid and wind scenario, before a run starts.
"""

import yaml
from dataclasses import dataclass, field, fields
from typing import Dict, List, Any, Optional, Sequence
from pathlib import Path

from .data_models import GridCell, WindScenario
from .errors import ConfigurationError, ConfigValidationError
from .fuzzy_control import FuzzyControlSettings, SELECTION_METHODS
from .crossover import CROSSOVER_METHODS
from .wake_model import (
    PowerCurve,
    WakeEnergyModel,
    THRUST_COEFFICIENT,
    EXPANSION_COEFFICIENT,
)


@dataclass
class GAConfig:
    """
    Turbine and operator parameters of one optimization run.

    Attributes:
        n_turbines: Required number of turbines in every layout
        rotor_radius: Rotor radius (m)
        hub_height: Hub height (m)
        reference_height: Measurement height of the wind data (defaults to hub_height)
        surface_roughness: Roughness length for the height correction (None disables it)
        selection_method: 'FIX' or 'VAR'
        crossover_method: 'EQU' or 'RAN'
        mutation_rate: Bit-flip probability
        variable_mutation: Raise the mutation rate in local optima
        trim_force: Weighted (True) or uniform (False) repair
        elitism: Keep the best elite_count layouts in selection
        elite_count: Number of elites
        max_iterations: Number of generations
        max_population: Upper bound on crossover output
        initial_population: Size of the first generation (derived when None)
        thrust_coefficient: Rotor thrust coefficient
        expansion_coefficient: Wake expansion per metre downwind
        cut_in_speed: Power curve cut-in speed (m/s)
        rated_speed: Power curve rated speed (m/s)
        cut_out_speed: Power curve cut-out speed (m/s)
        n_workers: Worker processes for fitness evaluation
        random_seed: Seed of the run's random generator
        fuzzy: Adaptive controller settings
    """
    n_turbines: int
    rotor_radius: float
    hub_height: float
    reference_height: Optional[float] = None
    surface_roughness: Optional[float] = 0.3
    selection_method: str = "FIX"
    crossover_method: str = "EQU"
    mutation_rate: float = 0.008
    variable_mutation: bool = True
    trim_force: bool = False
    elitism: bool = True
    elite_count: int = 7
    max_iterations: int = 20
    max_population: int = 300
    initial_population: Optional[int] = None
    thrust_coefficient: float = THRUST_COEFFICIENT
    expansion_coefficient: float = EXPANSION_COEFFICIENT
    cut_in_speed: float = 3.0
    rated_speed: float = 13.0
    cut_out_speed: float = 25.0
    n_workers: int = 1
    random_seed: Optional[int] = None
    fuzzy: FuzzyControlSettings = field(default_factory=FuzzyControlSettings)

    def __post_init__(self):
        """Normalize method names and defaults."""
        if isinstance(self.selection_method, str):
            self.selection_method = self.selection_method.upper()
        if isinstance(self.crossover_method, str):
            self.crossover_method = self.crossover_method.upper()
        if self.reference_height is None:
            self.reference_height = self.hub_height
        if isinstance(self.fuzzy, dict):
            self.fuzzy = FuzzyControlSettings.from_dict(self.fuzzy)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GAConfig":
        """
        Build a GAConfig from a YAML mapping.

        Raises:
            ConfigValidationError: If the mapping is empty, lacks required keys
                or contains unknown keys
        """
        if not data:
            raise ConfigValidationError("GA configuration is empty")
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"GA configuration must be a mapping, got {type(data).__name__}"
            )

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigValidationError(f"Unknown GA configuration keys: {unknown}")

        missing = [key for key in ("n_turbines", "rotor_radius", "hub_height") if key not in data]
        if missing:
            raise ConfigValidationError(f"Missing required GA configuration keys: {missing}")

        return cls(**data)

    def build_wake_model(self) -> WakeEnergyModel:
        """Wake/energy model for this configuration."""
        power_curve = PowerCurve.for_rotor(
            self.rotor_radius,
            cut_in=self.cut_in_speed,
            rated_speed=self.rated_speed,
            cut_out=self.cut_out_speed,
        )
        return WakeEnergyModel(
            rotor_radius=self.rotor_radius,
            hub_height=self.hub_height,
            reference_height=self.reference_height,
            surface_roughness=self.surface_roughness,
            thrust_coefficient=self.thrust_coefficient,
            expansion_coefficient=self.expansion_coefficient,
            power_curve=power_curve,
        )


def load_config(config_path: str) -> GAConfig:
    """Load a GA configuration from a YAML file"""
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    return GAConfig.from_dict(data)


def resolve_config(source: Any) -> GAConfig:
    """GAConfig from an instance, a mapping or a YAML path."""
    if isinstance(source, GAConfig):
        return source
    if isinstance(source, dict):
        return GAConfig.from_dict(source)
    if isinstance(source, (str, Path)):
        return load_config(str(source))
    raise ConfigValidationError(f"Cannot build GA configuration from {type(source).__name__}")


def validate_config(config: GAConfig) -> List[str]:
    """
    Validate configuration and return list of issues

    Returns:
        List of validation error messages (empty if valid)
    """
    issues = []

    if not isinstance(config.n_turbines, int) or isinstance(config.n_turbines, bool):
        issues.append(f"n_turbines must be an integer, got {config.n_turbines!r}")
    elif config.n_turbines <= 0:
        issues.append("n_turbines must be positive")

    if config.rotor_radius <= 0:
        issues.append("rotor_radius must be positive")
    if config.hub_height <= 0:
        issues.append("hub_height must be positive")
    if config.reference_height is not None and config.reference_height <= 0:
        issues.append("reference_height must be positive")
    if config.surface_roughness is not None and config.surface_roughness < 0:
        issues.append("surface_roughness must be non-negative")

    if config.selection_method not in SELECTION_METHODS:
        issues.append(
            f"Invalid selection_method: '{config.selection_method}'. Must be 'FIX' or 'VAR'"
        )
    if config.crossover_method not in CROSSOVER_METHODS:
        issues.append(
            f"Invalid crossover_method: '{config.crossover_method}'. Must be 'EQU' or 'RAN'"
        )

    if not 0 <= config.mutation_rate <= 1:
        issues.append(f"mutation_rate must be in [0, 1], got {config.mutation_rate}")
    if config.elite_count < 0:
        issues.append("elite_count must be non-negative")
    if config.max_iterations <= 0:
        issues.append("max_iterations must be positive")
    if config.max_population <= 0:
        issues.append("max_population must be positive")
    if config.initial_population is not None and config.initial_population <= 0:
        issues.append("initial_population must be positive")
    if config.n_workers <= 0:
        issues.append("n_workers must be positive")

    if not 0 <= config.thrust_coefficient < 1:
        issues.append(f"thrust_coefficient must be in [0, 1), got {config.thrust_coefficient}")
    if config.expansion_coefficient <= 0:
        issues.append("expansion_coefficient must be positive")
    if not 0 <= config.cut_in_speed < config.rated_speed <= config.cut_out_speed:
        issues.append("Power curve speeds must satisfy 0 <= cut_in < rated <= cut_out")

    return issues


def check_inputs(
    grid: Sequence[GridCell],
    wind_scenario: WindScenario,
    config: GAConfig
) -> None:
    """
    Validate grid, wind scenario and configuration together.

    Raises:
        ConfigurationError: Listing every issue found
    """
    issues = validate_config(config)

    if not grid:
        issues.append("Grid has no cells")
    else:
        ids = [cell.id for cell in grid]
        if len(set(ids)) != len(ids):
            issues.append("Grid cell ids must be unique")
        if isinstance(config.n_turbines, int) and config.n_turbines > len(grid):
            issues.append(
                f"n_turbines ({config.n_turbines}) exceeds available grid cells ({len(grid)})"
            )

    if not isinstance(wind_scenario, WindScenario):
        issues.append("Wind scenario must be a WindScenario")

    if issues:
        raise ConfigurationError(
            "Invalid optimization inputs:\n" + "\n".join(f"  - {issue}" for issue in issues)
        )
