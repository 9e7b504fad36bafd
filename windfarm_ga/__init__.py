"""
Wind Farm Layout GA

This package searches, by simulated evolution, for the placement of a fixed
number of wind turbines on a set of candidate grid cells that maximizes the
expected energy yield over a wind scenario.

Key Features:
- Jensen-type wake model with circle-overlap shading and sum-of-squares combination
- Optional terrain effects (roughness, elevation, air density) and Weibull speeds
- Adaptive ("fuzzy") control of selection and crossover intensity
- Stagnation recovery and variable mutation rate
- Parallel fitness evaluation over a process pool

Modules:
- data_models: Core data structures (GridCell, WindScenario, LayoutEvaluation, GenerationRecord)
- wake_model: Wake deficits, power curve and directional energy
- fitness: Population fitness evaluation
- selection: Fitness-ranked selection with elitism
- crossover: Equal/random split-point crossover
- mutation: Bit-flip mutation and variable mutation rate
- repair: Restores the exact turbine count (trimton)
- fuzzy_control: Adaptive controller of the operator parameters
- orchestration: Initial population and generation loop
- random_search: Post-optimization local search
- config_loader: YAML configuration and input validation
- io_utils: CSV grid/wind loading and result export
- cli: Command-line interface driven by run YAML files
"""

__version__ = "0.1.0"
__author__ = "Wind Farm Optimization Team"

from .errors import ConfigurationError, ConfigValidationError, EvaluationError
from .data_models import (
    GridCell,
    WindDirection,
    WindScenario,
    TerrainContext,
    LayoutEvaluation,
    GenerationRecord,
    OptimizationHistory,
)
from .wake_model import PowerCurve, WakeEnergyModel
from .fitness import FitnessEvaluator
from .config_loader import GAConfig, load_config
from .orchestration import GenerationLoop, run_optimization

__all__ = [
    "ConfigurationError",
    "ConfigValidationError",
    "EvaluationError",
    "GridCell",
    "WindDirection",
    "WindScenario",
    "TerrainContext",
    "LayoutEvaluation",
    "GenerationRecord",
    "OptimizationHistory",
    "PowerCurve",
    "WakeEnergyModel",
    "FitnessEvaluator",
    "GAConfig",
    "load_config",
    "GenerationLoop",
    "run_optimization",
]
