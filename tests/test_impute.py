"""
Tests for the imputation module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from irisstats.math.impute import (
    IMPUTE_METHODS, missing_summary, impute_pca, impute, imputation_error, compare_imputations
)
from irisstats.data.datasets import load_iris_frame, inject_missing, MEASUREMENTS


@pytest.fixture(scope='module')
def measurements():
    return load_iris_frame()[MEASUREMENTS]


@pytest.fixture(scope='module')
def with_gaps(measurements):
    return inject_missing(measurements, fraction=0.1, seed=1)


class TestMissingSummary:
    """Tests for missing-value counts."""

    def test_counts(self):
        df = pd.DataFrame({'a': [1.0, np.nan, 3.0, np.nan], 'b': [1.0, 2.0, np.nan, 4.0]})
        summary = missing_summary(df)
        assert summary['total_missing'] == 3
        assert summary['complete_rows'] == 1
        assert summary['columns'].loc['a', 'n_missing'] == 2
        assert np.isclose(summary['columns'].loc['a', 'percent'], 50.0)


class TestImpute:
    """Tests for the individual imputation methods."""

    @pytest.mark.parametrize('method', IMPUTE_METHODS)
    def test_observed_cells_unchanged(self, method, measurements, with_gaps):
        completed = impute(with_gaps, method, random_state=0)
        assert not completed.isna().any().any()

        observed = with_gaps.notna().values
        assert np.allclose(completed.values[observed], with_gaps.values[observed])
        assert list(completed.columns) == list(measurements.columns)
        assert completed.index.equals(measurements.index)

    @pytest.mark.parametrize('method', IMPUTE_METHODS)
    def test_reasonable_values(self, method, measurements, with_gaps):
        """Imputed cells stay within a plausible range of the column."""
        completed = impute(with_gaps, method, random_state=0)
        lo = measurements.min() - measurements.std()
        hi = measurements.max() + measurements.std()
        assert (completed.ge(lo) & completed.le(hi)).all().all()

    def test_mean(self):
        df = pd.DataFrame({'a': [1.0, np.nan, 5.0], 'b': [2.0, 4.0, np.nan]})
        completed = impute(df, 'mean')
        assert completed.loc[1, 'a'] == 3.0
        assert completed.loc[2, 'b'] == 3.0

    def test_median(self):
        df = pd.DataFrame({'a': [1.0, 2.0, 10.0, np.nan], 'b': [1.0, 1.0, 1.0, 1.0]})
        completed = impute(df, 'median')
        assert completed.loc[3, 'a'] == 2.0

    def test_no_missing_values(self, measurements):
        completed = impute(measurements, 'knn')
        assert completed.equals(measurements)
        assert completed is not measurements

    def test_errors(self):
        df = pd.DataFrame({'a': [1.0, np.nan], 'b': [1.0, 2.0]})
        with pytest.raises(ValueError):
            impute(df, 'hot-deck')

        with pytest.raises(ValueError):
            impute(pd.DataFrame({'a': [1.0, np.nan], 'b': ['x', 'y']}), 'mean')

        with pytest.raises(ValueError):
            impute(pd.DataFrame({'a': [np.nan, np.nan], 'b': [1.0, 2.0]}), 'mean')


class TestImputePCA:
    """Tests for iterative PCA imputation."""

    def test_low_rank_data(self):
        """On rank-one data PCA imputation beats the column means."""
        rng = np.random.RandomState(4)
        t = rng.randn(60)
        truth = pd.DataFrame({'a': t, 'b': 2 * t + 1, 'c': -t + 3, 'd': 0.5 * t})
        gaps = inject_missing(truth, fraction=0.1, seed=2)
        mask = gaps.isna()

        pca_error = imputation_error(truth, impute_pca(gaps, n_comps=1, regularized=False), mask)
        mean_error = imputation_error(truth, impute(gaps, 'mean'), mask)
        assert pca_error['nrmse'] < 0.05
        assert pca_error['nrmse'] < mean_error['nrmse']

    def test_one_column(self):
        with pytest.raises(ValueError):
            impute_pca(pd.DataFrame({'a': [1.0, np.nan, 3.0]}))


class TestImputationError:
    """Tests for imputation error and method comparison."""

    def test_zero_error_on_truth(self, measurements, with_gaps):
        error = imputation_error(measurements, measurements, with_gaps.isna())
        assert error['rmse'] == 0.0
        assert error['nrmse'] == 0.0
        assert (error['per_column']['n_missing'].sum()) == with_gaps.isna().values.sum()

    def test_known_error(self):
        truth = pd.DataFrame({'a': [0.0, 1.0, 2.0, 3.0]})
        imputed = pd.DataFrame({'a': [0.0, 3.0, 2.0, 3.0]})
        mask = pd.DataFrame({'a': [False, True, False, False]})
        error = imputation_error(truth, imputed, mask)
        assert np.isclose(error['rmse'], 2.0)
        assert np.isclose(error['nrmse'], 2.0 / truth['a'].std())

    def test_constant_column(self):
        """A zero-spread column is measured in its own units."""
        truth = pd.DataFrame({'a': [0.0, 1.0, 2.0, 3.0], 'b': [5.0, 5.0, 5.0, 5.0]})
        imputed = pd.DataFrame({'a': [0.0, 1.0, 2.0, 3.0], 'b': [5.0, 7.0, 5.0, 5.0]})
        mask = pd.DataFrame({'a': [False] * 4, 'b': [False, True, False, False]})
        error = imputation_error(truth, imputed, mask)
        assert np.isclose(error['rmse'], 2.0)
        assert np.isclose(error['nrmse'], 2.0)
        assert truth['b'].std() == 0.0

    def test_shape_mismatch(self, measurements):
        with pytest.raises(ValueError):
            imputation_error(measurements, measurements.iloc[:10], measurements.isna())

    def test_compare(self, measurements, with_gaps):
        """Model-based methods beat the column means on iris."""
        comparison = compare_imputations(measurements, with_gaps,
                                         methods=['mean', 'knn', 'iterative', 'pca'],
                                         random_state=0)
        errors = comparison['errors']
        assert list(errors.columns) == ['method', 'rmse', 'nrmse']
        assert errors['nrmse'].is_monotonic_increasing
        assert comparison['best'] == errors['method'].iloc[0]
        assert comparison['best'] != 'mean'
        assert set(comparison['imputed']) == {'mean', 'knn', 'iterative', 'pca'}

    def test_compare_no_methods(self, measurements, with_gaps):
        with pytest.raises(ValueError):
            compare_imputations(measurements, with_gaps, methods=[])
