"""
CLI module for the wind farm GA.

Handles run configuration loading, validation, and execution.
"""

import logging
from typing import Dict, Any
from pathlib import Path
import yaml

from .config_loader import resolve_config, check_inputs
from .data_models import OptimizationHistory, TerrainContext
from .errors import ConfigValidationError
from .io_utils import load_grid_csv, load_wind_csv, save_history_csv, save_layout_csv
from .orchestration import GenerationLoop
from .random_search import random_search


def load_run_config(config_path: str) -> Dict[str, Any]:
    """
    Load run configuration from YAML file.

    Args:
        config_path: Path to run configuration YAML file

    Returns:
        Dictionary containing run configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in configuration file: {e}")

    if config is None:
        raise ConfigValidationError("Configuration file is empty")

    return config


def validate_run_config(config: Dict[str, Any]) -> None:
    """
    Validate run configuration structure.

    Args:
        config: Run configuration dictionary

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Run configuration must be a mapping")

    for field in ['grid', 'wind', 'ga', 'output']:
        if field not in config:
            raise ConfigValidationError(f"Missing required field: '{field}'")

    for field in ['grid', 'wind']:
        path = Path(config[field])
        if not path.exists():
            raise ConfigValidationError(f"{field.capitalize()} file not found: {path}")

    if not isinstance(config['ga'], (dict, str)):
        raise ConfigValidationError("'ga' must be a dictionary or a path to a GA YAML file")

    if not isinstance(config['output'], dict):
        raise ConfigValidationError("'output' must be a dictionary")

    if 'root' not in config['output']:
        raise ConfigValidationError("Missing required field: 'output.root'")

    if 'random_search' in config:
        search = config['random_search']
        if not isinstance(search, dict):
            raise ConfigValidationError("'random_search' must be a dictionary")
        trials = search.get('trials', 20)
        if not isinstance(trials, int) or trials <= 0:
            raise ConfigValidationError(
                f"'random_search.trials' must be a positive integer, got: {trials}"
            )


def _print_summary(history: OptimizationHistory) -> None:
    best_energy = history.best_by_energy()
    best_efficiency = history.best_by_efficiency()

    print()
    print("=" * 70)
    print("OPTIMIZATION SUMMARY")
    print("=" * 70)
    print(f"Generations: {len(history)} ({history.metadata.get('termination')})")
    print(f"Best energy: {best_energy.energy:.2f} (efficiency {best_energy.efficiency:.2f}%)")
    print(f"Best efficiency: {best_efficiency.efficiency:.2f}% (energy {best_efficiency.energy:.2f})")
    print(f"Turbine cells (best energy): {list(best_energy.turbine_ids)}")
    print("=" * 70)


def run_from_config(config_path: str, verbose: bool = False) -> OptimizationHistory:
    """
    Load run configuration, optimize the layout and write the results.

    This is the main entry point called by ga_cli.py.

    Args:
        config_path: Path to run configuration YAML file
        verbose: Log per-generation progress

    Returns:
        OptimizationHistory of the run

    Raises:
        FileNotFoundError: If config file doesn't exist
        FileExistsError: If the output directory exists and overwrite is not set
        ConfigValidationError: If config is invalid
        ConfigurationError: If the optimization inputs are invalid
    """
    print(f"Loading configuration from: {config_path}")
    config = load_run_config(config_path)

    print("Validating configuration...")
    validate_run_config(config)

    if verbose or config.get('verbose', False):
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    grid = load_grid_csv(config['grid'])
    wind = load_wind_csv(config['wind'])
    ga_config = resolve_config(config['ga'])
    check_inputs(grid, wind, ga_config)
    terrain = TerrainContext.from_grid(grid)

    output_root = Path(config['output']['root'])
    overwrite = config['output'].get('overwrite', False)

    if output_root.exists() and not overwrite:
        raise FileExistsError(
            f"Output directory already exists: {output_root}\n"
            f"Set 'output.overwrite: true' in config to overwrite"
        )

    output_root.mkdir(parents=True, exist_ok=overwrite)

    print("=" * 70)
    print("WIND FARM LAYOUT OPTIMIZATION")
    print("=" * 70)
    print(f"Grid cells: {len(grid)}")
    print(f"Wind directions: {len(wind)}")
    print(f"Turbines: {ga_config.n_turbines}")
    print(f"Selection: {ga_config.selection_method}, crossover: {ga_config.crossover_method}")
    print(f"Iterations: {ga_config.max_iterations}")
    print(f"Random seed: {ga_config.random_seed}")
    print(f"Output directory: {output_root}\n")

    loop = GenerationLoop(grid, wind, ga_config, terrain=terrain)
    history = loop.run()

    _print_summary(history)

    save_history_csv(history, output_root / "history.csv", overwrite=overwrite)
    save_layout_csv(
        history.best_by_energy(), grid,
        output_root / "best_energy_layout.csv", overwrite=overwrite
    )
    save_layout_csv(
        history.best_by_efficiency(), grid,
        output_root / "best_efficiency_layout.csv", overwrite=overwrite
    )

    if 'random_search' in config:
        search = config['random_search']
        improvements = random_search(
            history, grid, loop.evaluator,
            n_trials=search.get('trials', 20),
            max_distance=search.get('max_distance', 2.5),
            rng=loop.rng,
        )
        print(f"Random search: {len(improvements)} improving layouts")
        if improvements:
            save_layout_csv(
                improvements[0], grid,
                output_root / "random_search_layout.csv", overwrite=overwrite
            )
            print(f"Random search best energy: {improvements[0].energy:.2f}")

    print(f"\nResults written to: {output_root}")
    print("\nRun completed successfully!")
    return history
