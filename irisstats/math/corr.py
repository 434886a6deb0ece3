"""
Descriptive statistics and correlation analysis for irisstats.

This module provides per-group summaries, correlation matrices with
significance tests, and a hierarchical ordering of variables used to
present correlation tables in blocks.
"""

import itertools
import numpy as np
import pandas as pd
from typing import Dict, List, Any
import scipy.stats
import scipy.cluster.hierarchy as hcluster
from scipy.spatial.distance import squareform

from irisstats.utils.general import numeric_columns


CORRELATION_METHODS = ('pearson', 'spearman', 'kendall')


def describe_by_group(df: pd.DataFrame, group: str) -> pd.DataFrame:
    """
    Summarise every numeric column within each group.

    Args:
        df: Frame with numeric columns and a grouping column
        group: Name of the grouping column

    Returns:
        Long DataFrame with one row per (group, variable) and columns
        n, mean, sd, min, median, max
    """
    if group not in df.columns:
        raise KeyError(f"Column '{group}' not found")

    columns = [col for col in numeric_columns(df) if col != group]
    rows = []
    for name, sub in df.groupby(group, observed=True):
        for col in columns:
            values = sub[col].dropna()
            rows.append({
                group: name,
                'variable': col,
                'n': int(values.size),
                'mean': values.mean(),
                'sd': values.std(ddof=1),
                'min': values.min(),
                'median': values.median(),
                'max': values.max(),
            })

    return pd.DataFrame(rows)


def correlation_matrix(df: pd.DataFrame, method: str = 'pearson') -> pd.DataFrame:
    """
    Compute the correlation matrix between the numeric columns.

    Args:
        df: Frame of variables
        method: Correlation method ('pearson', 'spearman', or 'kendall')

    Returns:
        Square correlation DataFrame
    """
    if method not in CORRELATION_METHODS:
        raise ValueError(f"Unknown correlation method: {method}")

    return df[numeric_columns(df)].corr(method=method)


def correlation_tests(df: pd.DataFrame, method: str = 'pearson') -> pd.DataFrame:
    """
    Test every pair of numeric columns for correlation.

    Args:
        df: Frame of variables
        method: Correlation method

    Returns:
        DataFrame with var1, var2, r, p_value, n for every pair
    """
    tests = {
        'pearson': scipy.stats.pearsonr,
        'spearman': scipy.stats.spearmanr,
        'kendall': scipy.stats.kendalltau,
    }
    if method not in tests:
        raise ValueError(f"Unknown correlation method: {method}")

    rows = []
    for a, b in itertools.combinations(numeric_columns(df), 2):
        pair = df[[a, b]].dropna()
        if len(pair) < 3:
            r, p = np.nan, np.nan
        else:
            r, p = tests[method](pair[a], pair[b])
        rows.append({'var1': a, 'var2': b, 'r': float(r), 'p_value': float(p), 'n': len(pair)})

    return pd.DataFrame(rows)


def hierarchical_order(corr: pd.DataFrame, method: str = 'average') -> List[Any]:
    """
    Order variables so that strongly correlated ones sit together.

    Distances are 1 - |r|, clustered with scipy's linkage.

    Args:
        corr: Square correlation DataFrame
        method: Linkage method

    Returns:
        Variable names in leaf order
    """
    names = list(corr.columns)
    if len(names) < 3:
        return names

    dist = 1.0 - np.abs(corr.values)
    dist = (dist + dist.T) / 2
    np.fill_diagonal(dist, 0.0)
    dist = np.clip(dist, 0.0, None)

    linkage = hcluster.linkage(squareform(dist, checks=False), method=method)
    return [names[i] for i in hcluster.leaves_list(linkage)]


def blockify_correlation_matrix(corr: pd.DataFrame, order: List[Any]) -> pd.DataFrame:
    """
    Reorder rows and columns of a correlation matrix.

    Args:
        corr: Correlation matrix to reorder
        order: Variable names in desired order

    Returns:
        Reordered correlation matrix
    """
    return corr.loc[order, order]


def compute_correlation(df: pd.DataFrame, method: str = 'pearson') -> Dict[str, Any]:
    """
    Compute correlations, their tests and a block ordering.

    Args:
        df: Frame of variables
        method: Correlation method

    Returns:
        Dictionary with correlation, tests, order and reordered correlation
    """
    corr = correlation_matrix(df, method)
    order = hierarchical_order(corr)

    return {
        'method': method,
        'correlation': corr,
        'tests': correlation_tests(df, method),
        'order': order,
        'reordered_correlation': blockify_correlation_matrix(corr, order),
    }
