"""
Classification trees (CART) for irisstats.

Trees are grown with scikit-learn and pruned by cost complexity: every
alpha on the pruning path is cross-validated, and the simplest tree whose
cross-validated error is within one standard error of the best is kept.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Sequence, Any
from sklearn.model_selection import StratifiedKFold, cross_val_score, train_test_split
from sklearn.tree import DecisionTreeClassifier, export_text

from irisstats.utils.general import confusion_table

logger = logging.getLogger(__name__)


def train_test_split_frame(df: pd.DataFrame,
                           labels: Sequence[Any],
                           test_size: float = 0.3,
                           random_state: Optional[int] = None) -> Dict[str, Any]:
    """
    Stratified split of predictors and labels.

    Args:
        df: Predictors
        labels: Class per row
        test_size: Fraction held out
        random_state: Seed

    Returns:
        Dictionary with train, test, train_labels and test_labels
    """
    if not 0 < test_size < 1:
        raise ValueError(f"test_size must lie in (0, 1), got {test_size}")

    y = pd.Series(np.asarray(labels), index=df.index, name='label')
    X_train, X_test, y_train, y_test = train_test_split(
        df, y, test_size=test_size, random_state=random_state, stratify=y)

    return {
        'train': X_train,
        'test': X_test,
        'train_labels': y_train,
        'test_labels': y_test,
    }


def complexity_table(X: np.ndarray,
                     y: np.ndarray,
                     params: Dict[str, Any],
                     cv_folds: int = 10,
                     random_state: Optional[int] = None) -> pd.DataFrame:
    """
    Cross-validate every alpha on the cost-complexity pruning path.

    Args:
        X: Predictor matrix
        y: Labels
        params: DecisionTreeClassifier parameters other than ccp_alpha
        cv_folds: Number of stratified folds (reduced to the smallest class size)
        random_state: Seed for the fold assignment

    Returns:
        DataFrame with alpha, n_leaves, train_error, cv_error and cv_std
        (standard error of cv_error), one row per alpha
    """
    _, class_counts = np.unique(y, return_counts=True)
    n_splits = min(cv_folds, int(class_counts.min()))
    if n_splits < 2:
        raise ValueError("Cross-validation needs at least 2 rows in every class")

    path = DecisionTreeClassifier(**params).cost_complexity_pruning_path(X, y)
    alphas = np.unique(np.clip(path.ccp_alphas, 0.0, None))

    folds = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=random_state)

    rows = []
    for alpha in alphas:
        errors = 1.0 - cross_val_score(DecisionTreeClassifier(ccp_alpha=alpha, **params), X, y, cv=folds)
        fitted = DecisionTreeClassifier(ccp_alpha=alpha, **params).fit(X, y)
        rows.append({
            'alpha': float(alpha),
            'n_leaves': int(fitted.get_n_leaves()),
            'train_error': float(1.0 - fitted.score(X, y)),
            'cv_error': float(errors.mean()),
            'cv_std': float(errors.std(ddof=1) / np.sqrt(n_splits)),
        })

    return pd.DataFrame(rows)


def one_se_alpha(table: pd.DataFrame) -> float:
    """
    Largest alpha whose cv error is within one standard error of the minimum.

    Args:
        table: Output of complexity_table

    Returns:
        Chosen alpha
    """
    best = table['cv_error'].idxmin()
    threshold = table.loc[best, 'cv_error'] + table.loc[best, 'cv_std']
    return float(table.loc[table['cv_error'] <= threshold, 'alpha'].max())


def cart(df: pd.DataFrame,
         labels: Sequence[Any],
         min_samples_split: int = 20,
         min_samples_leaf: int = 7,
         cv_folds: int = 10,
         random_state: Optional[int] = None,
         prune: bool = True) -> Dict[str, Any]:
    """
    Grow a Gini classification tree, optionally pruned by the 1-SE rule.

    Args:
        df: Predictors
        labels: Class per row
        min_samples_split: Smallest node that may be split
        min_samples_leaf: Smallest allowed leaf
        cv_folds: Folds used to cross-validate the pruning path
        random_state: Seed for tie-breaking between splits and for folds
        prune: Select ccp_alpha by cross-validation

    Returns:
        Dictionary with model, cp_table, chosen_alpha, rules,
        feature_importances, n_leaves, depth, predicted, confusion, accuracy
        and tree (nested-dictionary export)
    """
    y = np.asarray(labels)
    if len(y) != len(df):
        raise ValueError(f"Length mismatch: {len(df)} rows, {len(y)} labels")

    X = df.values.astype(float)
    params = {
        'criterion': 'gini',
        'min_samples_split': min_samples_split,
        'min_samples_leaf': min_samples_leaf,
        'random_state': random_state,
    }

    cp_table = None
    chosen_alpha = 0.0
    if prune:
        cp_table = complexity_table(X, y, params, cv_folds, random_state)
        chosen_alpha = one_se_alpha(cp_table)
        logger.info(f"CART pruning chose alpha={chosen_alpha:.5f}")

    model = DecisionTreeClassifier(ccp_alpha=chosen_alpha, **params).fit(X, y)
    classes = list(model.classes_)
    predicted = model.predict(X)

    return {
        'model': model,
        'cp_table': cp_table,
        'chosen_alpha': chosen_alpha,
        'rules': export_text(model, feature_names=[str(c) for c in df.columns]),
        'feature_importances': pd.Series(model.feature_importances_, index=df.columns),
        'n_leaves': int(model.get_n_leaves()),
        'depth': int(model.get_depth()),
        'predicted': pd.Series(predicted, index=df.index, name='predicted'),
        'confusion': confusion_table(y, predicted, classes),
        'accuracy': float(np.mean(predicted == y)),
        'tree': tree_to_dict(model, list(df.columns), classes),
    }


def evaluate(result: Dict[str, Any], test_df: pd.DataFrame, test_labels: Sequence[Any]) -> Dict[str, Any]:
    """
    Score a fitted tree on held-out data.

    Args:
        result: Result from cart
        test_df: Held-out predictors
        test_labels: Held-out classes

    Returns:
        Dictionary with predicted, confusion and accuracy
    """
    model = result['model']
    y = np.asarray(test_labels)
    predicted = model.predict(test_df.values.astype(float))

    return {
        'predicted': pd.Series(predicted, index=test_df.index, name='predicted'),
        'confusion': confusion_table(y, predicted, list(model.classes_)),
        'accuracy': float(np.mean(predicted == y)),
    }


def tree_to_dict(model: DecisionTreeClassifier,
                 feature_names: List[Any],
                 class_names: List[Any]) -> Dict[str, Any]:
    """
    Convert a fitted tree into nested dictionaries.

    Args:
        model: Fitted classifier
        feature_names: Predictor names in column order
        class_names: Class names in model order

    Returns:
        Root node; internal nodes carry feature, threshold, left (<=) and
        right (>), leaves carry class and per-class counts
    """
    tree = model.tree_

    def node(i: int) -> Dict[str, Any]:
        n_samples = int(tree.n_node_samples[i])
        value = tree.value[i][0]
        proportions = value / value.sum() if value.sum() > 0 else value
        counts = {str(c): int(round(p * n_samples)) for c, p in zip(class_names, proportions)}

        if tree.children_left[i] == tree.children_right[i]:
            return {
                'leaf': True,
                'class': str(class_names[int(np.argmax(proportions))]),
                'n_samples': n_samples,
                'counts': counts,
            }

        return {
            'leaf': False,
            'feature': str(feature_names[tree.feature[i]]),
            'threshold': float(tree.threshold[i]),
            'n_samples': n_samples,
            'counts': counts,
            'left': node(tree.children_left[i]),
            'right': node(tree.children_right[i]),
        }

    return node(0)
