"""
I/O utilities for the wind farm GA.

Handles CSV parsing of candidate grids and wind scenarios, and CSV
serialization of the generation history and optimized layouts.
"""

import csv
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .data_models import (
    GridCell,
    WindScenario,
    LayoutEvaluation,
    OptimizationHistory,
)

GRID_COLUMNS = ['id', 'x', 'y']
WIND_COLUMNS = ['direction', 'speed', 'probability']
LAYOUT_COLUMNS = ['run', 'id', 'x', 'y', 'energy', 'wake_loss']


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == '':
        return None
    return float(value)


def load_grid_csv(csv_path: Union[str, Path]) -> List[GridCell]:
    """
    Load candidate grid cells from a CSV file.

    CSV format:
        id,x,y[,roughness,elevation]
        1,0.0,0.0,0.3,120
        2,100.0,0.0,0.3,125
        ...

    Args:
        csv_path: Path to CSV file

    Returns:
        GridCells in file order

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If CSV format is invalid
    """
    csv_path = Path(csv_path)

    if not csv_path.exists():
        raise FileNotFoundError(f"Grid file not found: {csv_path}")

    cells = []
    with open(csv_path, 'r', newline='') as f:
        reader = csv.DictReader(f)

        if reader.fieldnames is None or not all(col in reader.fieldnames for col in GRID_COLUMNS):
            raise ValueError(f"Invalid CSV format in {csv_path}. Expected columns: id,x,y")

        for line, row in enumerate(reader, start=2):
            try:
                cells.append(GridCell(
                    id=int(row['id']),
                    x=float(row['x']),
                    y=float(row['y']),
                    roughness=_optional_float(row.get('roughness')),
                    elevation=_optional_float(row.get('elevation')),
                ))
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid grid row at {csv_path}:{line}: {e}")

    return cells


def load_wind_csv(csv_path: Union[str, Path]) -> WindScenario:
    """
    Load a normalized wind scenario from a CSV file.

    CSV format:
        direction,speed,probability
        0,12,40
        90,10,60

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If CSV format is invalid
        ConfigurationError: If the scenario is not normalized
    """
    csv_path = Path(csv_path)

    if not csv_path.exists():
        raise FileNotFoundError(f"Wind file not found: {csv_path}")

    with open(csv_path, 'r', newline='') as f:
        reader = csv.DictReader(f)

        if reader.fieldnames is None or not all(col in reader.fieldnames for col in WIND_COLUMNS):
            raise ValueError(
                f"Invalid CSV format in {csv_path}. Expected columns: direction,speed,probability"
            )
        records = [
            {col: row[col] for col in WIND_COLUMNS}
            for row in reader
        ]

    return WindScenario.from_records(records)


def _check_target(output_path: Path, overwrite: bool) -> None:
    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {output_path}")
    output_path.parent.mkdir(parents=True, exist_ok=True)


def save_history_csv(
    history: OptimizationHistory,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save one summary row per generation.

    Raises:
        FileExistsError: If file exists and overwrite=False
        ValueError: If the history is empty
    """
    output_path = Path(output_path)
    rows = history.summary_rows()
    if not rows:
        raise ValueError("Cannot save an empty history")

    _check_target(output_path, overwrite)

    with open(output_path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)

    return output_path


def save_layout_csv(
    evaluation: LayoutEvaluation,
    grid: Sequence[GridCell],
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save the turbines of one layout with their energy and wake loss.

    Args:
        evaluation: Evaluated layout
        grid: Grid the layout's genome refers to
        output_path: Path for output CSV
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved CSV file

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = Path(output_path)
    _check_target(output_path, overwrite)

    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(LAYOUT_COLUMNS)

        for index, energy, loss in zip(
            evaluation.turbine_indices, evaluation.turbine_energy, evaluation.turbine_wake_loss
        ):
            cell = grid[index]
            writer.writerow([evaluation.run, cell.id, cell.x, cell.y, energy, loss])

    return output_path
