"""
Linear discriminant analysis for irisstats.

Fits scikit-learn's LDA on the measurements, reports the discriminant
coefficients, the share of between-group variance each discriminant
carries, resubstitution and leave-one-out classification results.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Sequence, Any
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.model_selection import LeaveOneOut, cross_val_predict

from irisstats.utils.general import confusion_table

logger = logging.getLogger(__name__)


def lda(df: pd.DataFrame, labels: Sequence[Any], cv: bool = True) -> Dict[str, Any]:
    """
    Fit a linear discriminant analysis.

    Args:
        df: Numeric predictors
        labels: Known class per row
        cv: Also run leave-one-out cross-validation

    Returns:
        Dictionary with priors, group_means, scalings, proportion_of_trace,
        scores, predicted, posterior, confusion, accuracy, model and, with
        cv, cv_predicted, cv_confusion and cv_accuracy
    """
    y = np.asarray(labels)
    if len(y) != len(df):
        raise ValueError(f"Length mismatch: {len(df)} rows, {len(y)} labels")

    if len(pd.unique(y)) < 2:
        raise ValueError("LDA needs at least two classes")

    X = df.values.astype(float)
    model = LinearDiscriminantAnalysis(solver='svd', store_covariance=True)
    model.fit(X, y)
    classes = list(model.classes_)

    scores = model.transform(X)
    n_ld = scores.shape[1]
    names = [f"LD{i + 1}" for i in range(n_ld)]

    predicted = model.predict(X)
    accuracy = float(np.mean(predicted == y))

    result = {
        'priors': pd.Series(model.priors_, index=classes),
        'group_means': pd.DataFrame(model.means_, index=classes, columns=df.columns),
        'scalings': pd.DataFrame(model.scalings_[:, :n_ld], index=df.columns, columns=names),
        'proportion_of_trace': pd.Series(model.explained_variance_ratio_[:n_ld], index=names),
        'scores': pd.DataFrame(scores, index=df.index, columns=names),
        'predicted': pd.Series(predicted, index=df.index, name='predicted'),
        'posterior': pd.DataFrame(model.predict_proba(X), index=df.index, columns=classes),
        'confusion': confusion_table(y, predicted, classes),
        'accuracy': accuracy,
        'model': model,
    }

    if cv:
        cv_predicted = cross_val_predict(LinearDiscriminantAnalysis(solver='svd'), X, y, cv=LeaveOneOut())
        result['cv_predicted'] = pd.Series(cv_predicted, index=df.index, name='predicted')
        result['cv_confusion'] = confusion_table(y, cv_predicted, classes)
        result['cv_accuracy'] = float(np.mean(cv_predicted == y))
        logger.info(f"LDA accuracy {accuracy:.3f}, leave-one-out {result['cv_accuracy']:.3f}")
    else:
        logger.info(f"LDA accuracy {accuracy:.3f}")

    return result


def predict(result: Dict[str, Any], new_df: pd.DataFrame) -> Dict[str, Any]:
    """
    Classify new observations with a fitted LDA.

    Args:
        result: Result from lda
        new_df: Frame with the same predictor columns

    Returns:
        Dictionary with predicted classes, posterior probabilities and
        discriminant scores
    """
    columns = list(result['scalings'].index)
    missing = [col for col in columns if col not in new_df.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")

    model = result['model']
    X = new_df[columns].values.astype(float)

    return {
        'predicted': pd.Series(model.predict(X), index=new_df.index, name='predicted'),
        'posterior': pd.DataFrame(model.predict_proba(X), index=new_df.index, columns=list(model.classes_)),
        'scores': pd.DataFrame(model.transform(X), index=new_df.index, columns=result['scalings'].columns),
    }
