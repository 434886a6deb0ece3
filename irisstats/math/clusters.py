"""
Clustering for irisstats.

This module provides model-based clustering (Gaussian mixtures fitted by
EM, with the number of components and covariance structure chosen by
BIC), k-means and hierarchical clustering, plus the measures used to
compare a partition with the known species.

Cluster labels are 1-based everywhere.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Iterable, List, Optional, Sequence, Union, Any
import scipy.cluster.hierarchy as hcluster
from scipy.optimize import linear_sum_assignment
from scipy.spatial.distance import pdist, squareform
from sklearn.cluster import KMeans
from sklearn.metrics import adjusted_rand_score, silhouette_score
from sklearn.mixture import GaussianMixture

from irisstats.math.distance import check_distance_matrix

logger = logging.getLogger(__name__)


COVARIANCE_TYPES = ('spherical', 'diag', 'tied', 'full')
LINKAGE_METHODS = ('single', 'complete', 'average', 'weighted', 'centroid', 'median', 'ward')

# Linkages whose merge heights only make sense for Euclidean input
EUCLIDEAN_LINKAGES = ('centroid', 'median', 'ward')


def _cluster_names(k: int) -> List[str]:
    return [f"C{i + 1}" for i in range(k)]


def gaussian_mixture(df: pd.DataFrame,
                     k_range: Iterable[int] = range(1, 10),
                     covariance_types: Sequence[str] = COVARIANCE_TYPES,
                     random_state: Optional[int] = None,
                     n_init: int = 1) -> Dict[str, Any]:
    """
    Fit Gaussian mixtures by EM and keep the one with the lowest BIC.

    Every combination of number of components and covariance structure is
    fitted. Fits that fail or do not converge get a NaN BIC and are not
    eligible. Ties go to the smaller model (earlier k, then earlier
    covariance type).

    Args:
        df: Numeric frame
        k_range: Numbers of components to try
        covariance_types: scikit-learn covariance types to try
        random_state: Seed for initialisation
        n_init: EM restarts per fit

    Returns:
        Dictionary with bic (k x covariance type), best, labels,
        probabilities, uncertainty, means, weights and model
    """
    unknown = [ct for ct in covariance_types if ct not in COVARIANCE_TYPES]
    if unknown:
        raise ValueError(f"Unknown covariance types: {unknown}")

    k_values = list(k_range)
    if not k_values:
        raise ValueError("k_range is empty")

    X = df.values.astype(float)
    n_rows = X.shape[0]

    bic = pd.DataFrame(np.nan, index=pd.Index(k_values, name='k'), columns=list(covariance_types))
    best = None
    best_model = None

    for k in k_values:
        if k < 1 or k > n_rows:
            continue
        for covariance_type in covariance_types:
            model = GaussianMixture(n_components=k,
                                    covariance_type=covariance_type,
                                    n_init=n_init,
                                    random_state=random_state)
            try:
                model.fit(X)
            except ValueError as e:
                logger.warning(f"GMM k={k} {covariance_type} failed: {e}")
                continue

            if not model.converged_:
                logger.warning(f"GMM k={k} {covariance_type} did not converge")
                continue

            score = float(model.bic(X))
            bic.loc[k, covariance_type] = score
            if best is None or score < best['bic']:
                best = {'k': k, 'covariance_type': covariance_type, 'bic': score}
                best_model = model

    if best_model is None:
        raise ValueError("No Gaussian mixture could be fitted")

    logger.info(f"Best GMM: k={best['k']} covariance={best['covariance_type']} BIC={best['bic']:.2f}")

    names = _cluster_names(best['k'])
    probabilities = pd.DataFrame(best_model.predict_proba(X), index=df.index, columns=names)

    return {
        'bic': bic,
        'best': best,
        'labels': pd.Series(best_model.predict(X) + 1, index=df.index, name='cluster'),
        'probabilities': probabilities,
        'uncertainty': 1.0 - probabilities.max(axis=1),
        'means': pd.DataFrame(best_model.means_, index=names, columns=df.columns),
        'weights': pd.Series(best_model.weights_, index=names),
        'model': best_model,
    }


def kmeans(df: pd.DataFrame,
           k: int,
           n_init: int = 25,
           random_state: Optional[int] = None) -> Dict[str, Any]:
    """
    Perform K-means clustering on the data.

    Args:
        df: Numeric frame
        k: Number of clusters
        n_init: Number of random starts
        random_state: Seed for the starts

    Returns:
        Dictionary with labels, centers, inertia and clusters
    """
    if not 1 <= k <= len(df):
        raise ValueError(f"k must lie in [1, {len(df)}], got {k}")

    model = KMeans(n_clusters=k, n_init=n_init, random_state=random_state)
    raw = model.fit_predict(df.values.astype(float))
    labels = pd.Series(raw + 1, index=df.index, name='cluster')

    return {
        'labels': labels,
        'centers': pd.DataFrame(model.cluster_centers_, index=_cluster_names(k), columns=df.columns),
        'inertia': float(model.inertia_),
        'clusters': clusters_to_dict(labels, df),
    }


def elbow(df: pd.DataFrame,
          k_range: Iterable[int] = range(1, 10),
          random_state: Optional[int] = None) -> pd.DataFrame:
    """
    K-means total within-cluster sum of squares for a range of k.

    Args:
        df: Numeric frame
        k_range: Values of k
        random_state: Seed

    Returns:
        DataFrame with columns k and inertia
    """
    rows = [{'k': k, 'inertia': kmeans(df, k, random_state=random_state)['inertia']}
            for k in k_range if 1 <= k <= len(df)]
    return pd.DataFrame(rows, columns=['k', 'inertia'])


def hierarchical(data: pd.DataFrame,
                 k: int,
                 method: str = 'ward',
                 metric: str = 'euclidean',
                 precomputed: bool = False) -> Dict[str, Any]:
    """
    Agglomerative clustering cut into k groups.

    Args:
        data: Numeric frame, or a square distance matrix when precomputed
        k: Number of groups to cut the tree into
        method: Linkage method
        metric: Distance metric for raw data (ignored when precomputed)
        precomputed: data is already a distance matrix

    Returns:
        Dictionary with linkage, labels, heights and cophenetic correlation
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(f"Unknown linkage method: {method}")

    if precomputed:
        if method in EUCLIDEAN_LINKAGES:
            raise ValueError(f"Linkage '{method}' requires raw Euclidean data, not a distance matrix")
        condensed = squareform(check_distance_matrix(data), checks=False)
    else:
        if method in EUCLIDEAN_LINKAGES and metric != 'euclidean':
            raise ValueError(f"Linkage '{method}' requires the euclidean metric")
        condensed = pdist(data.values.astype(float), metric=metric)

    n_rows = len(data)
    if not 1 <= k <= n_rows:
        raise ValueError(f"k must lie in [1, {n_rows}], got {k}")

    linkage = hcluster.linkage(condensed, method=method)
    labels = hcluster.fcluster(linkage, t=k, criterion='maxclust')
    cophenetic, _ = hcluster.cophenet(linkage, condensed)

    return {
        'linkage': linkage,
        'labels': pd.Series(labels, index=data.index, name='cluster'),
        'heights': linkage[:, 2],
        'cophenetic_correlation': float(cophenetic),
        'leaves': [data.index[i] for i in hcluster.leaves_list(linkage)],
    }


def silhouette(data: Union[pd.DataFrame, np.ndarray],
               labels: Sequence[Any],
               precomputed: bool = False) -> float:
    """
    Mean silhouette width of a partition.

    Args:
        data: Numeric frame, or a distance matrix when precomputed
        labels: Cluster label per row
        precomputed: data is a distance matrix

    Returns:
        Silhouette coefficient (between -1 and 1); 0.0 when there are fewer
        than two clusters or every point is its own cluster
    """
    labels = np.asarray(labels)
    n_labels = len(np.unique(labels))
    if n_labels < 2 or n_labels >= len(labels):
        return 0.0

    values = np.asarray(data, dtype=float)
    return float(silhouette_score(values, labels, metric='precomputed' if precomputed else 'euclidean'))


def contingency(labels: Sequence[Any], truth: Sequence[Any]) -> pd.DataFrame:
    """
    Cross-tabulate cluster labels against known classes.

    Args:
        labels: Cluster label per row
        truth: Known class per row

    Returns:
        Crosstab with clusters as rows and classes as columns
    """
    if len(labels) != len(truth):
        raise ValueError(f"Length mismatch: {len(labels)} labels, {len(truth)} classes")

    return pd.crosstab(pd.Series(np.asarray(labels), name='cluster'),
                       pd.Series(np.asarray(truth), name='class'))


def agreement(labels: Sequence[Any], truth: Sequence[Any]) -> Dict[str, Any]:
    """
    Compare a partition with known classes.

    Clusters are matched to classes one-to-one so as to maximise the
    number of agreeing rows; rows outside the matching count as errors.

    Args:
        labels: Cluster label per row
        truth: Known class per row

    Returns:
        Dictionary with adjusted_rand, classification_error and mapping
        (cluster -> class)
    """
    table = contingency(labels, truth)
    rows, cols = linear_sum_assignment(-table.values)
    matched = table.values[rows, cols].sum()

    return {
        'adjusted_rand': float(adjusted_rand_score(np.asarray(truth), np.asarray(labels))),
        'classification_error': float(1.0 - matched / len(labels)),
        'mapping': {table.index[r]: table.columns[c] for r, c in zip(rows, cols)},
    }


def clusters_to_dict(labels: pd.Series, data: pd.DataFrame) -> List[Dict[str, Any]]:
    """
    Convert a partition to a list of cluster dictionaries for serialization.

    Args:
        labels: Cluster label per row, aligned with data
        data: Numeric frame the clusters were computed on

    Returns:
        List of dictionaries with id, size, center and members, sorted by id
    """
    result = []
    for cluster_id in sorted(pd.unique(labels)):
        members = labels.index[labels.values == cluster_id]
        result.append({
            'id': int(cluster_id),
            'size': len(members),
            'center': data.loc[members].mean(axis=0).tolist(),
            'members': list(members),
        })
    return result
