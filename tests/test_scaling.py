"""
Tests for the scaling module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from irisstats.math.scaling import scale, unscale, range_scale


@pytest.fixture
def frame():
    return pd.DataFrame({'a': [1.0, 2.0, 3.0, 4.0], 'b': [10.0, 10.0, 10.0, 10.0], 'c': [0.0, 5.0, np.nan, 15.0]})


class TestScale:
    """Tests for centring and scaling."""

    def test_standardised(self, frame):
        scaled = scale(frame)
        assert np.isclose(scaled['a'].mean(), 0.0)
        assert np.isclose(scaled['a'].std(ddof=1), 1.0)

    def test_constant_column(self, frame):
        scaled = scale(frame)
        assert (scaled['b'] == 0.0).all()
        assert scaled.attrs['scale']['b'] == 1.0

    def test_missing_values_ignored(self, frame):
        scaled = scale(frame)
        assert np.isnan(scaled.loc[2, 'c'])
        assert np.isclose(scaled['c'].mean(), 0.0)

    def test_attrs(self, frame):
        scaled = scale(frame)
        assert scaled.attrs['center']['a'] == 2.5
        assert np.isclose(scaled.attrs['scale']['a'], frame['a'].std(ddof=1))

    def test_center_only(self, frame):
        scaled = scale(frame, scale=False)
        assert list(scaled['a']) == [-1.5, -0.5, 0.5, 1.5]

    def test_scale_only(self, frame):
        scaled = scale(frame, center=False)
        assert np.isclose(scaled['a'].iloc[0], 1.0 / frame['a'].std(ddof=1))

    def test_non_numeric(self):
        with pytest.raises(ValueError):
            scale(pd.DataFrame({'a': [1.0, 2.0], 'b': ['x', 'y']}))


class TestUnscale:
    """Tests for undoing scaling."""

    def test_round_trip(self, frame):
        scaled = scale(frame)
        restored = unscale(scaled, scaled.attrs['center'], scaled.attrs['scale'])
        pd.testing.assert_frame_equal(restored, frame)

    def test_series_and_arrays(self, frame):
        scaled = scale(frame[['a']])
        center = pd.Series(scaled.attrs['center'])
        sds = np.array([scaled.attrs['scale']['a']])
        restored = unscale(scaled, center, sds)
        assert np.allclose(restored['a'], frame['a'])


class TestRangeScale:
    """Tests for range scaling."""

    def test_unit_range(self, frame):
        scaled = range_scale(frame)
        assert list(scaled['a']) == [0.0, 1 / 3, 2 / 3, 1.0]
        assert scaled['c'].max() == 1.0

    def test_constant_column(self, frame):
        assert (range_scale(frame)['b'] == 0.0).all()
