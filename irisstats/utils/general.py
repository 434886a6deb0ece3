"""
General utility functions for the irisstats package.

Serialization of analysis results and small helpers shared by the
math modules.
"""

import logging
import math
import time
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def to_serializable(obj: Any) -> Any:
    """
    Recursively convert numpy and pandas objects into JSON-compatible values.

    DataFrames become a dict with ``index``, ``columns`` and ``data`` (row
    lists), Series become dicts keyed by index, NaN becomes None.

    Args:
        obj: Object to convert

    Returns:
        JSON-compatible version of obj
    """
    if isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple, set)):
        return [to_serializable(v) for v in obj]

    if isinstance(obj, pd.DataFrame):
        return {
            'index': [to_serializable(i) for i in obj.index],
            'columns': [str(c) for c in obj.columns],
            'data': [[to_serializable(v) for v in row] for row in obj.itertuples(index=False, name=None)]
        }

    if isinstance(obj, pd.Series):
        return {str(k): to_serializable(v) for k, v in obj.items()}

    if isinstance(obj, pd.Categorical):
        return [to_serializable(v) for v in obj]

    if isinstance(obj, np.ndarray):
        return [to_serializable(v) for v in obj.tolist()]

    if isinstance(obj, (np.bool_, bool)):
        return bool(obj)

    if isinstance(obj, np.integer):
        return int(obj)

    if isinstance(obj, (np.floating, float)):
        value = float(obj)
        return None if math.isnan(value) or math.isinf(value) else value

    if obj is None or isinstance(obj, (str, int)):
        return obj

    if obj is pd.NA or obj is pd.NaT:
        return None

    # Fitted estimators and anything else exotic
    return repr(obj)


@contextmanager
def timed(label: str) -> Iterator[None]:
    """
    Log the wall-clock duration of a block at INFO.

    Args:
        label: Name of the step being timed
    """
    start_time = time.time()
    logger.info(f"Starting {label}")
    try:
        yield
    finally:
        logger.info(f"[{time.time() - start_time:.2f}s] Finished {label}")


def ensure_frame(data: Union[np.ndarray, pd.DataFrame],
                 columns: Optional[List[Any]] = None) -> pd.DataFrame:
    """
    Accept either a numpy array or a DataFrame and return a DataFrame.

    Args:
        data: Matrix data
        columns: Column names used when data is an array

    Returns:
        DataFrame view of the data
    """
    if isinstance(data, pd.DataFrame):
        return data

    values = np.asarray(data, dtype=float)
    if values.ndim == 1:
        values = values.reshape(-1, 1)
    if columns is None:
        columns = [f"V{i + 1}" for i in range(values.shape[1])]
    return pd.DataFrame(values, columns=columns)


def numeric_columns(df: pd.DataFrame) -> List[Any]:
    """
    List the numeric columns of a DataFrame.

    Args:
        df: DataFrame to inspect

    Returns:
        Column names with a numeric (non-boolean) dtype
    """
    return [col for col in df.columns
            if pd.api.types.is_numeric_dtype(df[col]) and not pd.api.types.is_bool_dtype(df[col])]


def confusion_table(actual: Sequence[Any],
                    predicted: Sequence[Any],
                    classes: Sequence[Any]) -> pd.DataFrame:
    """
    Cross-tabulate known against predicted classes.

    Args:
        actual: Known class per row
        predicted: Predicted class per row
        classes: Class order for both axes

    Returns:
        Square count table with every class on both axes, zero-filled
    """
    table = pd.crosstab(pd.Series(np.asarray(actual), name='actual'),
                        pd.Series(np.asarray(predicted), name='predicted'))
    return table.reindex(index=classes, columns=classes, fill_value=0)
