"""
Column scaling for the irisstats math modules.

Centring uses column means and scaling uses the sample standard
deviation (ddof=1), both ignoring missing values.
"""

import numpy as np
import pandas as pd
from typing import Any, Dict, Union

from irisstats.utils.general import numeric_columns


def scale(df: pd.DataFrame, center: bool = True, scale: bool = True) -> pd.DataFrame:
    """
    Centre and/or scale every column of a numeric frame.

    Columns with zero variance keep a divisor of 1 so they stay at zero
    after centring instead of turning into NaN.

    Args:
        df: Numeric DataFrame (may contain NaN)
        center: Subtract column means
        scale: Divide by column standard deviations

    Returns:
        Scaled DataFrame with ``attrs['center']`` and ``attrs['scale']``
        holding the per-column values that were applied
    """
    non_numeric = [col for col in df.columns if col not in numeric_columns(df)]
    if non_numeric:
        raise ValueError(f"Cannot scale non-numeric columns: {non_numeric}")

    values = df.astype(float)

    if center:
        centers = values.mean(axis=0, skipna=True)
    else:
        centers = pd.Series(0.0, index=df.columns)

    if scale:
        scales = values.std(axis=0, ddof=1, skipna=True)
        scales = scales.where(scales > 0, 1.0).fillna(1.0)
    else:
        scales = pd.Series(1.0, index=df.columns)

    result = (values - centers) / scales
    result.attrs['center'] = centers.to_dict()
    result.attrs['scale'] = scales.to_dict()
    return result


def _per_column(values: Union[Dict[Any, float], pd.Series, np.ndarray], columns) -> np.ndarray:
    if isinstance(values, dict):
        return np.array([values[col] for col in columns], dtype=float)
    if isinstance(values, pd.Series):
        return values.reindex(columns).to_numpy(dtype=float)
    return np.asarray(values, dtype=float)


def unscale(df: pd.DataFrame,
            center: Union[Dict[Any, float], pd.Series, np.ndarray],
            scale: Union[Dict[Any, float], pd.Series, np.ndarray]) -> pd.DataFrame:
    """
    Undo :func:`scale`.

    Args:
        df: Scaled frame
        center: Centres that were subtracted (dict, Series or array)
        scale: Scales that were divided by

    Returns:
        Frame in original units
    """
    center = _per_column(center, df.columns)
    scale = _per_column(scale, df.columns)
    return pd.DataFrame(df.values * scale + center, index=df.index, columns=df.columns)


def range_scale(df: pd.DataFrame) -> pd.DataFrame:
    """
    Map every column onto [0, 1] by its observed range.

    Args:
        df: Numeric DataFrame

    Returns:
        Range-scaled DataFrame; constant columns become 0
    """
    values = df.astype(float)
    mins = values.min(axis=0)
    ranges = values.max(axis=0) - mins
    ranges = ranges.where(ranges > 0, 1.0)
    return (values - mins) / ranges
