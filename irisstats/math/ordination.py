"""
Distance-based ordination for irisstats.

This module provides principal coordinates analysis (classical scaling)
with Lingoes/Cailliez corrections for non-Euclidean dissimilarities,
non-metric multidimensional scaling through scikit-learn's SMACOF,
fitting of environmental variables onto an ordination, and Procrustes
comparison of two configurations.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Union, Any
from scipy.spatial import procrustes as scipy_procrustes
from scipy.spatial.distance import pdist
from sklearn.isotonic import IsotonicRegression
from sklearn.manifold import smacof

from irisstats.math.distance import check_distance_matrix
from irisstats.utils.general import numeric_columns

logger = logging.getLogger(__name__)


PCOA_CORRECTIONS = ('none', 'lingoes', 'cailliez')


def _axis_names(n: int, prefix: str) -> List[str]:
    return [f"{prefix}{i + 1}" for i in range(n)]


def _labels(d: Union[pd.DataFrame, np.ndarray]) -> pd.Index:
    if isinstance(d, pd.DataFrame):
        return d.index
    return pd.RangeIndex(len(d))


def gower_centre(m: np.ndarray) -> np.ndarray:
    """
    Double-centre a square matrix (rows and columns sum to zero).

    Args:
        m: Square matrix

    Returns:
        Gower-centred matrix
    """
    row_means = m.mean(axis=1, keepdims=True)
    col_means = m.mean(axis=0, keepdims=True)
    return m - row_means - col_means + m.mean()


def _orient(coords: np.ndarray) -> np.ndarray:
    """Flip axes so that each axis' largest-magnitude coordinate is positive."""
    if coords.size == 0:
        return coords
    idx = np.argmax(np.abs(coords), axis=0)
    signs = np.sign(coords[idx, np.arange(coords.shape[1])])
    signs[signs == 0] = 1.0
    return coords * signs


def _correction_constant(D: np.ndarray, correction: str) -> float:
    """
    Constant that makes a dissimilarity matrix Euclidean.

    Args:
        D: Distance matrix
        correction: 'lingoes' or 'cailliez'

    Returns:
        The additive constant (0 when no correction is needed)
    """
    n = D.shape[0]
    delta1 = gower_centre(-0.5 * D ** 2)

    if correction == 'lingoes':
        smallest = np.linalg.eigvalsh(delta1).min()
        return float(abs(smallest)) if smallest < 0 else 0.0

    # Cailliez: largest real eigenvalue of [[0, 2*delta1], [-I, -4*delta2]]
    delta2 = gower_centre(-0.5 * D)
    block = np.block([
        [np.zeros((n, n)), 2 * delta1],
        [-np.eye(n), -4 * delta2],
    ])
    return float(np.max(np.real(np.linalg.eigvals(block))))


def pcoa(d: Union[pd.DataFrame, np.ndarray],
         n_comps: Optional[int] = None,
         correction: str = 'none') -> Dict[str, Any]:
    """
    Principal coordinates analysis of a distance matrix.

    Args:
        d: Square symmetric distance matrix
        n_comps: Number of axes to keep (defaults to all axes with a
            positive eigenvalue)
        correction: 'none', 'lingoes' or 'cailliez'

    Returns:
        Dictionary with eigenvalues, relative_eigenvalues,
        cumulative_relative, coordinates, negative_eigenvalues,
        correction and correction_constant
    """
    if correction not in PCOA_CORRECTIONS:
        raise ValueError(f"Unknown PCoA correction: {correction}")

    D = check_distance_matrix(d)
    labels = _labels(d)
    n = D.shape[0]
    if n < 3:
        raise ValueError(f"PCoA needs at least 3 objects, got {n}")

    constant = 0.0
    if correction != 'none':
        constant = _correction_constant(D, correction)
        off_diagonal = ~np.eye(n, dtype=bool)
        if correction == 'lingoes':
            D = np.where(off_diagonal, np.sqrt(D ** 2 + 2 * constant), 0.0)
        else:
            D = np.where(off_diagonal, D + constant, 0.0)
        logger.info(f"PCoA {correction} correction constant: {constant:.6g}")

    delta1 = gower_centre(-0.5 * D ** 2)
    values, vectors = np.linalg.eigh(delta1)
    order = np.argsort(values)[::-1]
    values = values[order]
    vectors = vectors[:, order]

    tol = 1e-8 * max(np.abs(values).max(), 1.0)
    positive = values > tol
    n_negative = int(np.sum(values < -tol))
    if n_negative and correction == 'none':
        logger.warning(f"PCoA found {n_negative} negative eigenvalues; "
                       f"consider the lingoes or cailliez correction")

    n_positive = int(positive.sum())
    if n_comps is None:
        n_comps = n_positive
    elif n_comps > n_positive:
        logger.warning(f"Requested {n_comps} axes, only {n_positive} have positive eigenvalues")
        n_comps = n_positive

    coords = vectors[:, :n_comps] * np.sqrt(values[:n_comps])
    coords = _orient(coords)

    trace = np.trace(delta1)
    relative = values / trace
    names = _axis_names(len(values), 'Axis')

    return {
        'eigenvalues': pd.Series(values, index=names),
        'relative_eigenvalues': pd.Series(relative, index=names),
        'cumulative_relative': pd.Series(np.cumsum(relative), index=names),
        'coordinates': pd.DataFrame(coords, index=labels, columns=names[:n_comps]),
        'negative_eigenvalues': n_negative,
        'correction': correction,
        'correction_constant': constant,
    }


def shepard(D: np.ndarray, coords: np.ndarray) -> pd.DataFrame:
    """
    Shepard diagram data for an ordination.

    Args:
        D: Original distance matrix
        coords: Ordination coordinates

    Returns:
        DataFrame of dissimilarity, distance and isotonic fitted distance
        for every pair, ordered by dissimilarity
    """
    iu = np.triu_indices(D.shape[0], k=1)
    dissimilarity = D[iu]
    distance = pdist(coords)

    fitted = IsotonicRegression().fit_transform(dissimilarity, distance)
    frame = pd.DataFrame({
        'dissimilarity': dissimilarity,
        'distance': distance,
        'fitted': fitted,
    })
    return frame.sort_values('dissimilarity', kind='mergesort').reset_index(drop=True)


def kruskal_stress(shepard_frame: pd.DataFrame) -> float:
    """
    Kruskal's stress-1 from Shepard diagram data.

    Args:
        shepard_frame: Output of shepard

    Returns:
        sqrt(sum((d - d_hat)^2) / sum(d^2))
    """
    distance = shepard_frame['distance'].values
    fitted = shepard_frame['fitted'].values
    total = np.sum(distance ** 2)
    if total == 0:
        return 0.0
    return float(np.sqrt(np.sum((distance - fitted) ** 2) / total))


def nmds(d: Union[pd.DataFrame, np.ndarray],
         n_comps: int = 2,
         n_init: int = 20,
         max_iter: int = 300,
         random_state: Optional[int] = None) -> Dict[str, Any]:
    """
    Non-metric multidimensional scaling of a distance matrix.

    The best of ``n_init`` random SMACOF starts is kept, then centred and
    rotated onto its principal axes.

    Args:
        d: Square symmetric distance matrix
        n_comps: Number of dimensions
        n_init: Number of random starts
        max_iter: Maximum SMACOF iterations per start
        random_state: Seed for the random starts

    Returns:
        Dictionary with coordinates, stress, n_iter, shepard,
        nonmetric_r2 and linear_r2
    """
    D = check_distance_matrix(d)
    labels = _labels(d)
    if n_comps < 1 or n_comps >= D.shape[0]:
        raise ValueError(f"n_comps must lie in [1, {D.shape[0] - 1}], got {n_comps}")

    coords, smacof_stress, n_iter = smacof(
        D,
        metric=False,
        n_components=n_comps,
        n_init=n_init,
        max_iter=max_iter,
        random_state=random_state,
        return_n_iter=True,
    )

    # Principal-axis rotation
    coords = coords - coords.mean(axis=0)
    _, _, vt = np.linalg.svd(coords, full_matrices=False)
    coords = _orient(coords @ vt.T)

    shepard_frame = shepard(D, coords)
    stress = kruskal_stress(shepard_frame)
    linear_r = np.corrcoef(shepard_frame['distance'], shepard_frame['fitted'])[0, 1]

    logger.info(f"NMDS stress: {stress:.4f} after {n_iter} iterations")
    if stress > 0.2:
        logger.warning(f"NMDS stress {stress:.3f} is high; the configuration is unreliable")

    return {
        'coordinates': pd.DataFrame(coords, index=labels, columns=_axis_names(n_comps, 'NMDS')),
        'stress': stress,
        'smacof_stress': float(smacof_stress),
        'n_iter': int(n_iter),
        'shepard': shepard_frame,
        'nonmetric_r2': 1.0 - stress ** 2,
        'linear_r2': float(linear_r ** 2) if np.isfinite(linear_r) else np.nan,
    }


def _r2_columns(X: np.ndarray, Y: np.ndarray) -> np.ndarray:
    """R-squared of regressing each column of Y on centred X."""
    coefs, _, _, _ = np.linalg.lstsq(X, Y, rcond=None)
    residuals = Y - X @ coefs
    total = np.sum(Y ** 2, axis=0)
    with np.errstate(invalid='ignore', divide='ignore'):
        return np.where(total > 0, 1.0 - np.sum(residuals ** 2, axis=0) / total, 0.0)


def _between_ratio(X: np.ndarray, codes: np.ndarray, n_levels: int) -> float:
    """Between-group share of the total sum of squares of centred X."""
    counts = np.bincount(codes, minlength=n_levels).astype(float)
    sums = np.zeros((n_levels, X.shape[1]))
    np.add.at(sums, codes, X)
    nonempty = counts > 0
    between = np.sum(sums[nonempty] ** 2 / counts[nonempty, None])
    total = np.sum(X ** 2)
    return float(between / total) if total > 0 else 0.0


def envfit(coords: pd.DataFrame,
           env: pd.DataFrame,
           permutations: int = 999,
           random_state: Optional[int] = None) -> Dict[str, pd.DataFrame]:
    """
    Fit environmental variables onto an ordination.

    Numeric variables are regressed on the ordination axes and reported as
    unit direction vectors with their r-squared. Categorical variables are
    reported as level centroids with the between-group share of the
    ordination's variance. Significance comes from permuting the
    variable against the scores.

    Args:
        coords: Ordination scores (rows x axes)
        env: Environmental table aligned on the same index
        permutations: Number of permutations (0 disables the test)
        random_state: Seed for the permutations

    Returns:
        Dictionary with 'vectors' (one row per numeric variable) and
        'factors' (one row per categorical variable) DataFrames, plus
        'centroids' (one row per level)
    """
    if len(coords) != len(env):
        raise ValueError(f"Row count mismatch: {len(coords)} scores, {len(env)} environment rows")
    if permutations < 0:
        raise ValueError(f"permutations must be non-negative, got {permutations}")
    if not env.index.equals(coords.index) and set(env.index) == set(coords.index):
        env = env.loc[coords.index]

    rng = np.random.default_rng(random_state)
    axes = list(coords.columns)
    numeric = numeric_columns(env)

    vector_rows = []
    factor_rows = []
    centroid_rows = []

    for col in env.columns:
        observed = env[col].notna().values
        X = coords.values[observed].astype(float)
        X = X - X.mean(axis=0)

        if col in numeric:
            y = env[col].values[observed].astype(float)
            y = y - y.mean()

            coefs, _, _, _ = np.linalg.lstsq(X, y, rcond=None)
            norm = np.linalg.norm(coefs)
            direction = coefs / norm if norm > 0 else coefs
            r2 = float(_r2_columns(X, y[:, None])[0])

            p_value = np.nan
            if permutations:
                shuffled = np.column_stack([rng.permutation(y) for _ in range(permutations)])
                perm_r2 = _r2_columns(X, shuffled)
                p_value = (np.sum(perm_r2 >= r2 - 1e-12) + 1) / (permutations + 1)

            row = {'variable': col}
            row.update({axis: float(v) for axis, v in zip(axes, direction)})
            row.update({'r2': r2, 'p_value': p_value})
            vector_rows.append(row)
        else:
            levels = pd.Categorical(env[col].values[observed])
            codes = levels.codes
            n_levels = len(levels.categories)
            r2 = _between_ratio(X, codes, n_levels)

            p_value = np.nan
            if permutations:
                perm_r2 = np.array([_between_ratio(X, rng.permutation(codes), n_levels)
                                    for _ in range(permutations)])
                p_value = (np.sum(perm_r2 >= r2 - 1e-12) + 1) / (permutations + 1)

            factor_rows.append({'variable': col, 'r2': r2, 'p_value': p_value})

            raw = coords.values[observed]
            for code, level in enumerate(levels.categories):
                members = codes == code
                if not members.any():
                    continue
                row = {'variable': col, 'level': level}
                row.update({axis: float(v) for axis, v in zip(axes, raw[members].mean(axis=0))})
                centroid_rows.append(row)

    return {
        'vectors': pd.DataFrame(vector_rows, columns=['variable'] + axes + ['r2', 'p_value']),
        'factors': pd.DataFrame(factor_rows, columns=['variable', 'r2', 'p_value']),
        'centroids': pd.DataFrame(centroid_rows, columns=['variable', 'level'] + axes),
    }


def procrustes(a: pd.DataFrame, b: pd.DataFrame, n_axes: int = 2) -> Dict[str, Any]:
    """
    Compare two ordinations of the same objects by Procrustes rotation.

    Args:
        a: First configuration (rows x axes)
        b: Second configuration, same rows
        n_axes: Number of leading axes to compare

    Returns:
        Dictionary with disparity (sum of squared differences after
        fitting), correlation (sqrt(1 - disparity)) and the two
        standardised configurations
    """
    if len(a) != len(b):
        raise ValueError(f"Row count mismatch: {len(a)} vs {len(b)}")

    n_axes = min(n_axes, a.shape[1], b.shape[1])
    mtx1, mtx2, disparity = scipy_procrustes(a.values[:, :n_axes], b.values[:, :n_axes])

    return {
        'disparity': float(disparity),
        'correlation': float(np.sqrt(max(0.0, 1.0 - disparity))),
        'reference': pd.DataFrame(mtx1, index=a.index, columns=list(a.columns[:n_axes])),
        'fitted': pd.DataFrame(mtx2, index=b.index, columns=list(a.columns[:n_axes])),
    }
