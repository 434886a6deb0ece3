"""
Missing-data imputation for irisstats.

Simple, k-nearest-neighbour and chained-equation imputers come from
scikit-learn. PCA imputation follows the iterative scheme used for
ordination data: fill with means, fit a low-rank PCA, replace the missing
cells by the reconstruction and repeat until the filled values settle.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Any
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import IterativeImputer, KNNImputer, SimpleImputer

from irisstats.math.scaling import scale, unscale
from irisstats.utils.general import numeric_columns

logger = logging.getLogger(__name__)


IMPUTE_METHODS = ('mean', 'median', 'knn', 'iterative', 'pca')


def missing_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Count missing values per column.

    Args:
        df: Frame to inspect

    Returns:
        Dictionary with a per-column table (n_missing, percent), the total
        number of missing cells and the number of complete rows
    """
    counts = df.isna().sum()
    table = pd.DataFrame({
        'n_missing': counts,
        'percent': counts / max(len(df), 1) * 100,
    })

    return {
        'columns': table,
        'total_missing': int(counts.sum()),
        'complete_rows': int(df.notna().all(axis=1).sum()),
    }


def impute_pca(df: pd.DataFrame,
               n_comps: int = 2,
               max_iter: int = 1000,
               tol: float = 1e-6,
               regularized: bool = True) -> pd.DataFrame:
    """
    Impute missing cells by iterative low-rank PCA reconstruction.

    Each pass standardises the completed data, takes its leading
    ``n_comps`` singular vectors and overwrites the missing cells with the
    reconstruction. With ``regularized`` the retained singular values are
    shrunk by the mean of the discarded eigenvalues, which keeps the fit
    from chasing noise when many cells are missing.

    Args:
        df: Numeric frame with NaN in the cells to impute
        n_comps: Rank of the reconstruction
        max_iter: Maximum number of passes
        tol: Relative change in the filled cells below which to stop
        regularized: Shrink singular values

    Returns:
        Completed frame
    """
    n_rows, n_cols = df.shape
    if n_cols < 2:
        raise ValueError("PCA imputation needs at least 2 columns")
    n_comps = max(1, min(n_comps, n_cols - 1, n_rows - 1))

    mask = df.isna().values
    X = df.values.astype(float).copy()
    col_means = np.nanmean(X, axis=0)
    X[mask] = np.take(col_means, np.nonzero(mask)[1])

    if not mask.any():
        return df.copy()

    for iteration in range(max_iter):
        mu = X.mean(axis=0)
        sd = X.std(axis=0, ddof=1)
        sd[sd == 0] = 1.0
        Z = (X - mu) / sd

        U, S, Vt = np.linalg.svd(Z, full_matrices=False)
        S_kept = S[:n_comps].copy()
        if regularized and len(S) > n_comps:
            eigenvalues = S ** 2 / n_rows
            sigma2 = eigenvalues[n_comps:].mean()
            lam = eigenvalues[:n_comps]
            shrink = np.where(lam > 0, np.maximum(lam - sigma2, 0.0) / lam, 0.0)
            S_kept = S_kept * shrink

        Z_hat = (U[:, :n_comps] * S_kept) @ Vt[:n_comps]
        X_hat = Z_hat * sd + mu

        previous = X[mask]
        X[mask] = X_hat[mask]

        denominator = np.sum(previous ** 2)
        change = np.sum((X[mask] - previous) ** 2) / denominator if denominator > 0 else 0.0
        if change < tol:
            logger.info(f"PCA imputation converged after {iteration + 1} iterations")
            break
    else:
        logger.warning(f"PCA imputation did not converge in {max_iter} iterations")

    return pd.DataFrame(X, index=df.index, columns=df.columns)


def impute(df: pd.DataFrame,
           method: str = 'mean',
           random_state: Optional[int] = None,
           **kwargs) -> pd.DataFrame:
    """
    Fill missing values in a numeric frame.

    Observed cells are returned unchanged whatever the method.

    Args:
        df: Numeric frame with NaN for missing cells
        method: One of 'mean', 'median', 'knn', 'iterative', 'pca'
        random_state: Seed for the iterative imputer
        **kwargs: Method options (n_neighbors for knn, max_iter for
            iterative and pca, n_comps for pca)

    Returns:
        Completed copy of df
    """
    if method not in IMPUTE_METHODS:
        raise ValueError(f"Unknown imputation method: {method}")

    non_numeric = [col for col in df.columns if col not in numeric_columns(df)]
    if non_numeric:
        raise ValueError(f"Cannot impute non-numeric columns: {non_numeric}")

    empty = [col for col in df.columns if df[col].isna().all()]
    if empty:
        raise ValueError(f"Columns with no observed values: {empty}")

    if not df.isna().any().any():
        return df.copy()

    if method in ('mean', 'median'):
        values = SimpleImputer(strategy=method).fit_transform(df.values)
        filled = pd.DataFrame(values, index=df.index, columns=df.columns)
    elif method == 'knn':
        # Distances on standardised variables
        scaled = scale(df)
        imputer = KNNImputer(n_neighbors=kwargs.get('n_neighbors', 5))
        values = imputer.fit_transform(scaled.values)
        filled = unscale(pd.DataFrame(values, index=df.index, columns=df.columns),
                         scaled.attrs['center'], scaled.attrs['scale'])
    elif method == 'iterative':
        imputer = IterativeImputer(max_iter=kwargs.get('max_iter', 10),
                                   random_state=random_state)
        values = imputer.fit_transform(df.values)
        filled = pd.DataFrame(values, index=df.index, columns=df.columns)
    else:
        filled = impute_pca(df,
                            n_comps=kwargs.get('n_comps', 2),
                            max_iter=kwargs.get('max_iter', 1000),
                            regularized=kwargs.get('regularized', True))

    return df.where(df.notna(), filled)


def imputation_error(true_df: pd.DataFrame,
                     imputed_df: pd.DataFrame,
                     mask: pd.DataFrame) -> Dict[str, Any]:
    """
    Measure how close imputed cells are to the values they replaced.

    Args:
        true_df: Complete original data
        imputed_df: Completed data
        mask: Boolean frame, True where a cell had been blanked

    Returns:
        Dictionary with overall rmse and nrmse (error in units of each
        column's standard deviation) and a per-column table
    """
    if true_df.shape != imputed_df.shape or true_df.shape != mask.shape:
        raise ValueError("true, imputed and mask frames must have the same shape")

    m = mask.values.astype(bool)
    diff = imputed_df.values.astype(float) - true_df.values.astype(float)
    sds = true_df.std(axis=0, ddof=1).to_numpy(dtype=float, copy=True)
    sds[sds == 0] = 1.0

    rows = []
    for j, col in enumerate(true_df.columns):
        cells = diff[m[:, j], j]
        rmse = float(np.sqrt(np.mean(cells ** 2))) if cells.size else np.nan
        rows.append({'variable': col, 'n_missing': int(cells.size),
                     'rmse': rmse, 'nrmse': rmse / sds[j] if cells.size else np.nan})

    if not m.any():
        return {'rmse': np.nan, 'nrmse': np.nan, 'per_column': pd.DataFrame(rows)}

    standardized = diff / sds
    return {
        'rmse': float(np.sqrt(np.mean(diff[m] ** 2))),
        'nrmse': float(np.sqrt(np.mean(standardized[m] ** 2))),
        'per_column': pd.DataFrame(rows),
    }


def compare_imputations(true_df: pd.DataFrame,
                        missing_df: pd.DataFrame,
                        methods: Optional[List[str]] = None,
                        random_state: Optional[int] = None) -> Dict[str, Any]:
    """
    Impute the same gaps with several methods and rank them.

    Args:
        true_df: Complete original data
        missing_df: Same data with blanked cells
        methods: Methods to compare (defaults to all)
        random_state: Seed passed to stochastic imputers

    Returns:
        Dictionary with 'errors' (one row per method, sorted by nrmse),
        'imputed' (completed frame per method) and 'best' (method name)
    """
    if methods is None:
        methods = list(IMPUTE_METHODS)
    if not methods:
        raise ValueError("No imputation methods given")

    mask = missing_df.isna()
    imputed = {}
    rows = []
    for method in methods:
        completed = impute(missing_df, method, random_state=random_state)
        error = imputation_error(true_df, completed, mask)
        imputed[method] = completed
        rows.append({'method': method, 'rmse': error['rmse'], 'nrmse': error['nrmse']})
        logger.info(f"Imputation {method}: nrmse={error['nrmse']:.4f}")

    errors = pd.DataFrame(rows).sort_values('nrmse', kind='mergesort').reset_index(drop=True)

    return {
        'errors': errors,
        'imputed': imputed,
        'best': str(errors['method'].iloc[0]),
    }
