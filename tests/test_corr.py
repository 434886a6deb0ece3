"""
Tests for the correlation module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from irisstats.math.corr import (
    describe_by_group, correlation_matrix, correlation_tests,
    hierarchical_order, blockify_correlation_matrix, compute_correlation
)
from irisstats.data.datasets import load_iris_frame, MEASUREMENTS


@pytest.fixture(scope='module')
def iris():
    return load_iris_frame()


class TestDescribe:
    """Tests for per-group summaries."""

    def test_by_species(self, iris):
        table = describe_by_group(iris, 'species')
        assert len(table) == 12
        assert (table['n'] == 50).all()

        setosa = table[(table['species'] == 'setosa') & (table['variable'] == 'petal_length')].iloc[0]
        assert np.isclose(setosa['mean'], 1.462)
        assert setosa['min'] == 1.0
        assert setosa['max'] == 1.9

    def test_missing_group(self, iris):
        with pytest.raises(KeyError):
            describe_by_group(iris, 'genus')


class TestCorrelation:
    """Tests for correlation matrices and tests."""

    def test_iris_pearson(self, iris):
        corr = correlation_matrix(iris)
        assert list(corr.columns) == MEASUREMENTS
        assert np.isclose(corr.loc['petal_length', 'petal_width'], 0.963, atol=0.001)
        assert np.isclose(corr.loc['sepal_length', 'sepal_width'], -0.118, atol=0.001)

    def test_unknown_method(self, iris):
        with pytest.raises(ValueError):
            correlation_matrix(iris, 'distance')
        with pytest.raises(ValueError):
            correlation_tests(iris, 'distance')

    @pytest.mark.parametrize('method', ['pearson', 'spearman', 'kendall'])
    def test_tests_agree_with_matrix(self, iris, method):
        corr = correlation_matrix(iris, method)
        tests = correlation_tests(iris, method)
        assert len(tests) == 6
        for _, row in tests.iterrows():
            assert np.isclose(row['r'], corr.loc[row['var1'], row['var2']])

    def test_p_values(self, iris):
        tests = correlation_tests(iris).set_index(['var1', 'var2'])
        assert tests.loc[('petal_length', 'petal_width'), 'p_value'] < 1e-50
        assert tests.loc[('sepal_length', 'sepal_width'), 'p_value'] > 0.1

    def test_too_few_pairs(self):
        df = pd.DataFrame({'a': [1.0, 2.0, np.nan, np.nan], 'b': [1.0, 3.0, 2.0, np.nan]})
        row = correlation_tests(df).iloc[0]
        assert row['n'] == 2
        assert np.isnan(row['r'])


class TestOrdering:
    """Tests for hierarchical ordering of variables."""

    def test_correlated_variables_adjacent(self):
        corr = pd.DataFrame(
            [[1.0, 0.1, 0.9, 0.0],
             [0.1, 1.0, 0.0, -0.95],
             [0.9, 0.0, 1.0, 0.1],
             [0.0, -0.95, 0.1, 1.0]],
            index=list('wxyz'), columns=list('wxyz'))
        order = hierarchical_order(corr)
        assert sorted(order) == list('wxyz')
        assert abs(order.index('w') - order.index('y')) == 1
        assert abs(order.index('x') - order.index('z')) == 1

    def test_small_matrix(self):
        corr = pd.DataFrame([[1.0, 0.5], [0.5, 1.0]], index=['a', 'b'], columns=['a', 'b'])
        assert hierarchical_order(corr) == ['a', 'b']

    def test_blockify(self):
        corr = pd.DataFrame([[1.0, 0.5], [0.5, 1.0]], index=['a', 'b'], columns=['a', 'b'])
        reordered = blockify_correlation_matrix(corr, ['b', 'a'])
        assert list(reordered.index) == ['b', 'a']
        assert list(reordered.columns) == ['b', 'a']

    def test_compute_correlation(self, iris):
        result = compute_correlation(iris[MEASUREMENTS], 'spearman')
        assert result['method'] == 'spearman'
        assert sorted(result['order']) == sorted(MEASUREMENTS)
        assert list(result['reordered_correlation'].index) == result['order']
