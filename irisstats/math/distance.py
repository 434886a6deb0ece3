"""
Dissimilarity matrices for irisstats.

Gower's coefficient handles the mixed measurement/environment table;
Euclidean distances go through scipy's pdist.
"""

import numpy as np
import pandas as pd
from typing import Dict, Optional, Union
from scipy.spatial.distance import pdist, squareform


def _column_kind(series: pd.Series) -> str:
    """Classify a column as 'numeric' (interval-scaled) or 'nominal'."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        return 'numeric' if series.dtype.ordered else 'nominal'
    if pd.api.types.is_bool_dtype(series):
        return 'nominal'
    if pd.api.types.is_numeric_dtype(series):
        return 'numeric'
    return 'nominal'


def _numeric_values(series: pd.Series) -> np.ndarray:
    """Values of an interval-scaled column; ordered categories become ranks."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        codes = series.cat.codes.to_numpy().astype(float)
        codes[codes < 0] = np.nan
        return codes
    return series.to_numpy(dtype=float, na_value=np.nan)


def _nominal_codes(series: pd.Series) -> np.ndarray:
    """Integer codes of a nominal column, with NaN where missing."""
    codes = pd.Categorical(series).codes.astype(float)
    codes[codes < 0] = np.nan
    return codes


def gower_distance(df: pd.DataFrame,
                   weights: Optional[Dict[str, float]] = None) -> pd.DataFrame:
    """
    Compute Gower's dissimilarity between every pair of rows.

    Numeric columns (and ordered categoricals, via their ranks) contribute
    |x_i - x_j| / range; nominal columns contribute 0 on a match and 1
    otherwise. A column with a missing value in either row is left out of
    that pair's average, and a pair sharing no observed column gets NaN.

    Args:
        df: Mixed-type frame, one row per object
        weights: Optional per-column weights (default 1 for every column)

    Returns:
        Square symmetric DataFrame of dissimilarities in [0, 1]
    """
    if weights is None:
        weights = {}
    unknown = [col for col in weights if col not in df.columns]
    if unknown:
        raise KeyError(f"Weights given for unknown columns: {unknown}")

    n_rows = len(df)
    numerator = np.zeros((n_rows, n_rows))
    denominator = np.zeros((n_rows, n_rows))

    for col in df.columns:
        weight = float(weights.get(col, 1.0))
        if weight < 0:
            raise ValueError(f"Weight for column '{col}' must be non-negative")

        series = df[col]
        if _column_kind(series) == 'numeric':
            values = _numeric_values(series)
            value_range = np.nanmax(values) - np.nanmin(values) if np.any(~np.isnan(values)) else 0.0
            diff = np.abs(values[:, None] - values[None, :])
            if value_range > 0:
                diff = diff / value_range
            else:
                diff = np.zeros_like(diff)
        else:
            values = _nominal_codes(series)
            diff = (values[:, None] != values[None, :]).astype(float)

        observed = ~np.isnan(values)
        valid = observed[:, None] & observed[None, :]

        numerator += weight * np.where(valid, diff, 0.0)
        denominator += weight * valid

    with np.errstate(invalid='ignore', divide='ignore'):
        distances = np.where(denominator > 0, numerator / denominator, np.nan)
    np.fill_diagonal(distances, 0.0)

    return pd.DataFrame(distances, index=df.index, columns=df.index)


def euclidean_distance(df: Union[pd.DataFrame, np.ndarray]) -> pd.DataFrame:
    """
    Compute the Euclidean distance matrix for a set of points.

    Args:
        df: Numeric frame (rows are points)

    Returns:
        Square DataFrame of pairwise distances
    """
    if not isinstance(df, pd.DataFrame):
        df = pd.DataFrame(np.asarray(df, dtype=float))
    if df.isna().any().any():
        raise ValueError("Euclidean distance input contains missing values")

    distances = squareform(pdist(df.values.astype(float), metric='euclidean'))
    return pd.DataFrame(distances, index=df.index, columns=df.index)


def check_distance_matrix(d: Union[pd.DataFrame, np.ndarray], tol: float = 1e-8) -> np.ndarray:
    """
    Validate a dissimilarity matrix.

    Args:
        d: Candidate distance matrix
        tol: Tolerance for symmetry and zero-diagonal checks

    Returns:
        The matrix as a float numpy array
    """
    values = np.asarray(d, dtype=float)

    if values.ndim != 2 or values.shape[0] != values.shape[1]:
        raise ValueError(f"Distance matrix must be square, got shape {values.shape}")
    if np.isnan(values).any():
        raise ValueError("Distance matrix contains missing values")
    if not np.allclose(values, values.T, atol=tol):
        raise ValueError("Distance matrix is not symmetric")
    if np.any(np.abs(np.diag(values)) > tol):
        raise ValueError("Distance matrix has a non-zero diagonal")
    if np.any(values < -tol):
        raise ValueError("Distance matrix has negative entries")

    return values
