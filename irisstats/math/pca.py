"""
PCA (Principal Component Analysis) for irisstats.

The decomposition itself is scikit-learn's; this module standardises the
input, fixes component signs, and derives the tables used to interpret
an ordination (eigenvalues, loadings, variable correlations,
contributions, component-selection rules, biplot coordinates).
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Optional, Tuple, Any
from sklearn.decomposition import PCA

from irisstats.math.scaling import scale as scale_frame, unscale

logger = logging.getLogger(__name__)


def _component_names(n: int, prefix: str = 'PC') -> list:
    return [f"{prefix}{i + 1}" for i in range(n)]


def _fix_signs(loadings: np.ndarray) -> np.ndarray:
    """
    Sign vector making the largest-magnitude loading of each component positive.

    Args:
        loadings: Variables x components matrix

    Returns:
        Array of +1/-1, one per component
    """
    idx = np.argmax(np.abs(loadings), axis=0)
    signs = np.sign(loadings[idx, np.arange(loadings.shape[1])])
    signs[signs == 0] = 1.0
    return signs


def pca(df: pd.DataFrame,
        n_comps: Optional[int] = None,
        scale: bool = True) -> Dict[str, Any]:
    """
    Run a PCA on a numeric frame.

    With ``scale`` the analysis is on the correlation matrix (standardised
    variables); without it, on the covariance matrix of the centred data.

    Args:
        df: Numeric DataFrame without missing values
        n_comps: Number of components to keep (defaults to all)
        scale: Standardise variables to unit variance first

    Returns:
        Dictionary with center, scale, eigenvalues, explained_variance_ratio,
        cumulative_variance_ratio, loadings, scores, variable_correlations,
        contributions and n_comps
    """
    n_rows, n_cols = df.shape
    if n_rows < 2:
        raise ValueError(f"PCA needs at least 2 rows, got {n_rows}")
    if df.isna().any().any():
        raise ValueError("PCA input contains missing values; impute them first")

    prepared = scale_frame(df, center=True, scale=scale)
    X = prepared.values

    max_comps = min(n_rows, n_cols)
    if n_comps is None:
        n_comps = max_comps
    elif n_comps > max_comps:
        logger.warning(f"Requested {n_comps} components, data supports {max_comps}")
        n_comps = max_comps
    elif n_comps < 1:
        raise ValueError(f"n_comps must be positive, got {n_comps}")

    model = PCA(n_components=max_comps, svd_solver='full')
    model.fit(X)

    loadings = model.components_.T
    signs = _fix_signs(loadings)
    loadings = loadings * signs
    scores = (X - model.mean_) @ loadings

    eigenvalues = model.explained_variance_
    ratio = model.explained_variance_ratio_

    sds = X.std(axis=0, ddof=1)
    sds[sds == 0] = 1.0
    correlations = loadings * np.sqrt(eigenvalues) / sds[:, None]

    names = _component_names(max_comps)
    keep = names[:n_comps]

    loadings_df = pd.DataFrame(loadings, index=df.columns, columns=names)[keep]

    return {
        'center': pd.Series(prepared.attrs['center']),
        'scale': pd.Series(prepared.attrs['scale']),
        'scaled': scale,
        'eigenvalues': pd.Series(eigenvalues, index=names),
        'explained_variance_ratio': pd.Series(ratio, index=names),
        'cumulative_variance_ratio': pd.Series(np.cumsum(ratio), index=names),
        'loadings': loadings_df,
        'scores': pd.DataFrame(scores, index=df.index, columns=names)[keep],
        'variable_correlations': pd.DataFrame(correlations, index=df.columns, columns=names)[keep],
        'contributions': loadings_df ** 2 * 100,
        'n_comps': n_comps,
    }


def eigenvalue_table(result: Dict[str, Any]) -> pd.DataFrame:
    """
    Tabulate eigenvalues with percent and cumulative percent of variance.

    Args:
        result: Result from pca

    Returns:
        DataFrame indexed by component
    """
    return pd.DataFrame({
        'eigenvalue': result['eigenvalues'],
        'percent': result['explained_variance_ratio'] * 100,
        'cumulative_percent': result['cumulative_variance_ratio'] * 100,
    })


def kaiser_criterion(result: Dict[str, Any]) -> int:
    """
    Count components whose eigenvalue exceeds the mean eigenvalue.

    On standardised data the mean eigenvalue is 1, which gives the usual
    Kaiser-Guttman rule.

    Args:
        result: Result from pca

    Returns:
        Number of components to retain
    """
    eigenvalues = result['eigenvalues'].values
    return int(np.sum(eigenvalues > eigenvalues.mean()))


def broken_stick(n: int) -> np.ndarray:
    """
    Expected variance proportions under the broken-stick model.

    Args:
        n: Number of components

    Returns:
        Array of n proportions summing to 1, in decreasing order
    """
    if n < 1:
        raise ValueError(f"n must be positive, got {n}")
    inverse = 1.0 / np.arange(1, n + 1)
    return np.array([inverse[k:].sum() / n for k in range(n)])


def broken_stick_criterion(result: Dict[str, Any]) -> int:
    """
    Count leading components explaining more than the broken-stick expectation.

    Args:
        result: Result from pca

    Returns:
        Number of components to retain
    """
    observed = result['explained_variance_ratio'].values
    expected = broken_stick(len(observed))

    count = 0
    for obs, exp in zip(observed, expected):
        if obs <= exp:
            break
        count += 1
    return count


def project(result: Dict[str, Any], new_df: pd.DataFrame) -> pd.DataFrame:
    """
    Project new observations onto the retained components.

    Args:
        result: Result from pca
        new_df: Frame with the same columns as the fitted data

    Returns:
        Scores of the new observations
    """
    columns = list(result['loadings'].index)
    missing = [col for col in columns if col not in new_df.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")

    X = (new_df[columns].values - result['center'][columns].values) / result['scale'][columns].values
    scores = X @ result['loadings'].values
    return pd.DataFrame(scores, index=new_df.index, columns=result['loadings'].columns)


def biplot_coords(result: Dict[str, Any], axes: Tuple[int, int] = (0, 1)) -> Dict[str, pd.DataFrame]:
    """
    Coordinates for a correlation biplot.

    Rows are scores divided by the square root of the eigenvalue, variables
    are loadings multiplied by it, so variable arrows approximate
    correlations between variables.

    Args:
        result: Result from pca
        axes: Pair of component indices (0-based)

    Returns:
        Dictionary with 'rows' and 'variables' DataFrames
    """
    names = [result['loadings'].columns[a] for a in axes]
    root = np.sqrt(result['eigenvalues'][names].values)

    return {
        'rows': result['scores'][names] / root,
        'variables': result['loadings'][names] * root,
    }


def reconstruct(result: Dict[str, Any], n_comps: Optional[int] = None) -> pd.DataFrame:
    """
    Rebuild the data from its leading components.

    Args:
        result: Result from pca
        n_comps: Components to use (defaults to all retained)

    Returns:
        Low-rank approximation in original units
    """
    if n_comps is None:
        n_comps = result['n_comps']
    if not 1 <= n_comps <= result['n_comps']:
        raise ValueError(f"n_comps must lie in [1, {result['n_comps']}], got {n_comps}")

    scores = result['scores'].values[:, :n_comps]
    loadings = result['loadings'].values[:, :n_comps]
    approx = pd.DataFrame(scores @ loadings.T,
                          index=result['scores'].index,
                          columns=result['loadings'].index)
    return unscale(approx, result['center'], result['scale'])
