"""
Tests for the PCA module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from irisstats.math.pca import (
    pca, eigenvalue_table, kaiser_criterion, broken_stick,
    broken_stick_criterion, project, biplot_coords, reconstruct
)
from irisstats.data.datasets import load_iris_frame, MEASUREMENTS


@pytest.fixture(scope='module')
def measurements():
    return load_iris_frame()[MEASUREMENTS]


@pytest.fixture(scope='module')
def iris_pca(measurements):
    return pca(measurements, scale=True)


class TestIrisPCA:
    """PCA on the standardised iris measurements."""

    def test_eigenvalues(self, iris_pca):
        """Eigenvalues of the correlation matrix are the textbook ones."""
        eig = iris_pca['eigenvalues'].values
        assert np.allclose(eig, [2.918, 0.914, 0.147, 0.021], atol=0.01)

        # Correlation PCA: eigenvalues sum to the number of variables
        assert np.isclose(eig.sum(), 4.0)

    def test_explained_variance(self, iris_pca):
        """PC1 carries about 73% of the variance, PC1-2 about 96%."""
        ratio = iris_pca['explained_variance_ratio']
        assert np.isclose(ratio.iloc[0], 0.73, atol=0.01)
        assert np.isclose(iris_pca['cumulative_variance_ratio'].iloc[1], 0.958, atol=0.01)
        assert np.isclose(iris_pca['cumulative_variance_ratio'].iloc[-1], 1.0)

    def test_loadings_orthonormal_and_oriented(self, iris_pca):
        """Loadings are orthonormal with the dominant entry positive."""
        L = iris_pca['loadings'].values
        assert np.allclose(L.T @ L, np.eye(L.shape[1]), atol=1e-10)

        idx = np.argmax(np.abs(L), axis=0)
        assert np.all(L[idx, np.arange(L.shape[1])] > 0)

    def test_scores_variance(self, iris_pca):
        """Score variances equal the eigenvalues."""
        variances = iris_pca['scores'].var(ddof=1).values
        assert np.allclose(variances, iris_pca['eigenvalues'].values)

    def test_variable_correlations(self, iris_pca, measurements):
        """Variable-component correlations match direct correlations."""
        direct = np.corrcoef(measurements['petal_length'], iris_pca['scores']['PC1'])[0, 1]
        assert np.isclose(iris_pca['variable_correlations'].loc['petal_length', 'PC1'], direct)

    def test_contributions(self, iris_pca):
        """Contributions per component sum to 100."""
        assert np.allclose(iris_pca['contributions'].sum(axis=0).values, 100.0)

    def test_eigenvalue_table(self, iris_pca):
        table = eigenvalue_table(iris_pca)
        assert list(table.columns) == ['eigenvalue', 'percent', 'cumulative_percent']
        assert np.isclose(table['cumulative_percent'].iloc[-1], 100.0)


class TestComponentSelection:
    """Tests for the component-selection rules."""

    def test_kaiser(self, iris_pca):
        """Only PC1 has an eigenvalue above 1."""
        assert kaiser_criterion(iris_pca) == 1

    def test_broken_stick_values(self):
        expected = broken_stick(4)
        assert np.isclose(expected.sum(), 1.0)
        assert np.isclose(expected[0], (1 + 1 / 2 + 1 / 3 + 1 / 4) / 4)
        assert np.all(np.diff(expected) < 0)

        with pytest.raises(ValueError):
            broken_stick(0)

    def test_broken_stick_criterion(self, iris_pca):
        """PC2 falls below its broken-stick expectation."""
        assert broken_stick_criterion(iris_pca) == 1


class TestProjection:
    """Tests for projection, biplots and reconstruction."""

    def test_project_training_data(self, iris_pca, measurements):
        """Projecting the fitted rows reproduces their scores."""
        projected = project(iris_pca, measurements)
        assert np.allclose(projected.values, iris_pca['scores'].values)

    def test_project_missing_column(self, iris_pca, measurements):
        with pytest.raises(KeyError):
            project(iris_pca, measurements.drop(columns=['sepal_width']))

    def test_reconstruct_full_rank(self, iris_pca, measurements):
        """All components rebuild the data exactly."""
        rebuilt = reconstruct(iris_pca)
        assert np.allclose(rebuilt.values, measurements.values)

    def test_reconstruct_low_rank(self, iris_pca, measurements):
        """Two components leave a small but non-zero residual."""
        rebuilt = reconstruct(iris_pca, 2)
        residual = np.abs(rebuilt.values - measurements.values).max()
        assert 0 < residual < 1.5

        with pytest.raises(ValueError):
            reconstruct(iris_pca, 5)

    def test_biplot(self, iris_pca):
        coords = biplot_coords(iris_pca)
        assert coords['rows'].shape == (150, 2)
        assert coords['variables'].shape == (4, 2)

        # Scaled scores have unit variance on each axis
        assert np.allclose(coords['rows'].var(ddof=1).values, 1.0)


class TestEdgeCases:
    """Tests for PCA argument handling."""

    def test_too_few_rows(self):
        with pytest.raises(ValueError):
            pca(pd.DataFrame({'a': [1.0], 'b': [2.0]}))

    def test_missing_values(self):
        df = pd.DataFrame({'a': [1.0, np.nan, 3.0], 'b': [2.0, 1.0, 0.0]})
        with pytest.raises(ValueError):
            pca(df)

    def test_n_comps_clipped(self):
        df = pd.DataFrame(np.random.RandomState(0).randn(10, 3), columns=['a', 'b', 'c'])
        result = pca(df, n_comps=10)
        assert result['n_comps'] == 3
        assert result['loadings'].shape == (3, 3)

    def test_unscaled_uses_covariance(self):
        """Without scaling the eigenvalues are those of the covariance matrix."""
        df = pd.DataFrame(np.random.RandomState(1).randn(30, 3) * [1.0, 5.0, 10.0],
                          columns=['a', 'b', 'c'])
        result = pca(df, scale=False)
        expected = np.sort(np.linalg.eigvalsh(np.cov(df.values, rowvar=False)))[::-1]
        assert np.allclose(result['eigenvalues'].values, expected)
