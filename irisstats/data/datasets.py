"""
Datasets for the irisstats walkthrough.

This module loads the iris flower measurements, generates the synthetic
environmental table that accompanies them, and simulates missing values
for the imputation step.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.datasets import load_iris

from irisstats.utils.general import numeric_columns

logger = logging.getLogger(__name__)


MEASUREMENTS = ['sepal_length', 'sepal_width', 'petal_length', 'petal_width']
SPECIES = ['setosa', 'versicolor', 'virginica']

SOIL_TYPES = ['clay', 'loam', 'sand']
EXPOSURES = ['shade', 'partial', 'sun']

# Per-species generating parameters for the environmental table
ALTITUDE_MEAN = {'setosa': 400.0, 'versicolor': 800.0, 'virginica': 1200.0}
ALTITUDE_SD = 150.0
LAPSE_RATE = 0.0065  # degrees C lost per metre of altitude
SOIL_PROBS = {
    'setosa': [0.6, 0.3, 0.1],
    'versicolor': [0.2, 0.5, 0.3],
    'virginica': [0.1, 0.3, 0.6],
}
EXPOSURE_PROBS = {
    'setosa': [0.5, 0.3, 0.2],
    'versicolor': [0.3, 0.4, 0.3],
    'virginica': [0.1, 0.3, 0.6],
}


def load_iris_frame() -> pd.DataFrame:
    """
    Load the iris measurements as a tidy DataFrame.

    Returns:
        DataFrame with the four measurements in cm and a categorical
        ``species`` column, indexed by sample id 1..150
    """
    bunch = load_iris()

    df = pd.DataFrame(bunch.data, columns=MEASUREMENTS)
    names = [str(bunch.target_names[t]) for t in bunch.target]
    df['species'] = pd.Categorical(names, categories=SPECIES)
    df.index = pd.RangeIndex(1, len(df) + 1, name='sample')

    logger.info(f"Loaded iris data: {df.shape[0]} rows, {len(MEASUREMENTS)} measurements")
    return df


def make_environment(iris: pd.DataFrame, seed: int = 123) -> pd.DataFrame:
    """
    Generate the synthetic environmental table for the iris samples.

    Altitude depends on species, temperature falls with altitude, soil type
    and exposure are drawn with species-dependent probabilities and soil pH
    is pure noise. The same seed always yields the same table.

    Args:
        iris: Iris frame with a ``species`` column
        seed: Random seed

    Returns:
        DataFrame aligned on the iris index
    """
    if 'species' not in iris.columns:
        raise KeyError("Column 'species' not found")

    rng = np.random.default_rng(seed)
    species = iris['species'].astype(str).tolist()
    n_rows = len(species)

    altitude_means = np.array([ALTITUDE_MEAN[s] for s in species])
    altitude = rng.normal(altitude_means, ALTITUDE_SD)
    temperature = 20.0 - LAPSE_RATE * altitude + rng.normal(0.0, 1.0, n_rows)
    soil_ph = rng.normal(6.5, 0.5, n_rows)

    soil_type = [rng.choice(SOIL_TYPES, p=SOIL_PROBS[s]) for s in species]
    exposure = [rng.choice(EXPOSURES, p=EXPOSURE_PROBS[s]) for s in species]

    env = pd.DataFrame({
        'altitude': np.round(altitude, 1),
        'temperature': np.round(temperature, 2),
        'soil_ph': np.round(soil_ph, 2),
        'soil_type': pd.Categorical(soil_type, categories=SOIL_TYPES),
        'exposure': pd.Categorical(exposure, categories=EXPOSURES, ordered=True),
    }, index=iris.index)

    return env


def split_features(df: pd.DataFrame, label: str = 'species') -> Tuple[pd.DataFrame, pd.Series]:
    """
    Separate the numeric measurements from the label column.

    Args:
        df: Frame containing measurements and a label
        label: Name of the label column

    Returns:
        Tuple of (numeric frame, label series)
    """
    if label not in df.columns:
        raise KeyError(f"Column '{label}' not found")

    features = df[[col for col in numeric_columns(df) if col != label]]
    return features, df[label]


def inject_missing(df: pd.DataFrame,
                   fraction: float,
                   seed: int = 1,
                   columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Blank out a random fraction of cells, completely at random.

    A row never loses every one of the selected columns, so each row keeps
    at least one observed value to impute from.

    Args:
        df: Source frame
        fraction: Fraction of the selected cells to blank, in [0, 1)
        seed: Random seed
        columns: Columns eligible for blanking (defaults to the numeric ones)

    Returns:
        Copy of df with NaN in the blanked cells
    """
    if not 0 <= fraction < 1:
        raise ValueError(f"fraction must lie in [0, 1), got {fraction}")

    if columns is None:
        columns = numeric_columns(df)
    missing_cols = [col for col in columns if col not in df.columns]
    if missing_cols:
        raise KeyError(f"Columns not found: {missing_cols}")

    result = df.copy()
    n_rows, n_cols = len(df), len(columns)
    n_cells = n_rows * n_cols
    n_missing = int(round(fraction * n_cells))

    per_row_limit = max(n_cols - 1, 0)
    if n_missing > n_rows * per_row_limit:
        raise ValueError(
            f"Cannot blank {n_missing} cells without emptying rows "
            f"(at most {n_rows * per_row_limit})")

    rng = np.random.default_rng(seed)
    row_counts = np.zeros(n_rows, dtype=int)
    blanked = []
    for cell in rng.permutation(n_cells):
        if len(blanked) == n_missing:
            break
        row, col = divmod(int(cell), n_cols)
        if row_counts[row] < per_row_limit:
            row_counts[row] += 1
            blanked.append((row, col))

    for row, col in blanked:
        result.iloc[row, result.columns.get_loc(columns[col])] = np.nan

    logger.info(f"Injected {len(blanked)} missing cells ({fraction:.0%} of {n_cells})")
    return result
