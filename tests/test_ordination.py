"""
Tests for the ordination module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os
from scipy.spatial.distance import pdist, squareform

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from irisstats.math.ordination import (
    gower_centre, pcoa, nmds, shepard, kruskal_stress, envfit, procrustes
)


@pytest.fixture
def points():
    rng = np.random.RandomState(0)
    return pd.DataFrame(rng.randn(20, 2) * [3.0, 1.0], columns=['x', 'y'],
                        index=[f"s{i}" for i in range(20)])


@pytest.fixture
def point_distances(points):
    d = squareform(pdist(points.values))
    return pd.DataFrame(d, index=points.index, columns=points.index)


NON_EUCLIDEAN = np.array([
    [0.0, 1.0, 5.0],
    [1.0, 0.0, 1.0],
    [5.0, 1.0, 0.0],
])


class TestGowerCentre:
    """Tests for double centring."""

    def test_rows_and_columns_sum_to_zero(self):
        m = np.random.RandomState(1).rand(5, 5)
        centred = gower_centre(m)
        assert np.allclose(centred.sum(axis=0), 0.0)
        assert np.allclose(centred.sum(axis=1), 0.0)


class TestPCoA:
    """Tests for principal coordinates analysis."""

    def test_recovers_euclidean_distances(self, point_distances):
        """Euclidean input is reproduced exactly by the coordinates."""
        result = pcoa(point_distances)
        coords = result['coordinates']
        assert coords.shape[1] == 2
        assert np.allclose(squareform(pdist(coords.values)), point_distances.values)
        assert result['negative_eigenvalues'] == 0
        assert list(coords.index) == list(point_distances.index)

    def test_relative_eigenvalues(self, point_distances):
        result = pcoa(point_distances)
        assert np.isclose(result['relative_eigenvalues'].sum(), 1.0)
        assert np.isclose(result['cumulative_relative'].loc['Axis2'], 1.0)

    def test_matches_pca_on_euclidean_input(self, points, point_distances):
        """PCoA eigenvalues are (n - 1) times the covariance eigenvalues."""
        result = pcoa(point_distances)
        cov_eig = np.sort(np.linalg.eigvalsh(np.cov(points.values, rowvar=False)))[::-1]
        assert np.allclose(result['eigenvalues'].values[:2], cov_eig * (len(points) - 1))

    def test_negative_eigenvalues_detected(self):
        result = pcoa(NON_EUCLIDEAN)
        assert result['negative_eigenvalues'] == 1
        assert result['eigenvalues'].iloc[-1] < 0
        assert result['correction_constant'] == 0.0

    @pytest.mark.parametrize('correction', ['lingoes', 'cailliez'])
    def test_corrections_remove_negative_eigenvalues(self, correction):
        result = pcoa(NON_EUCLIDEAN, correction=correction)
        assert result['negative_eigenvalues'] == 0
        assert result['correction_constant'] > 0
        assert result['correction'] == correction

    def test_n_comps(self, point_distances):
        result = pcoa(point_distances, n_comps=1)
        assert list(result['coordinates'].columns) == ['Axis1']

    def test_bad_arguments(self, point_distances):
        with pytest.raises(ValueError):
            pcoa(point_distances, correction='bogus')

        with pytest.raises(ValueError):
            pcoa(np.array([[0.0, 1.0], [1.0, 0.0]]))


class TestNMDS:
    """Tests for non-metric multidimensional scaling."""

    def test_two_dimensional_points(self, point_distances):
        """Points that truly live in 2-D are embedded with low stress."""
        result = nmds(point_distances, n_comps=2, n_init=4, random_state=0)
        assert result['stress'] < 0.1
        assert result['nonmetric_r2'] > 0.99
        assert list(result['coordinates'].columns) == ['NMDS1', 'NMDS2']
        assert list(result['coordinates'].index) == list(point_distances.index)

    def test_shepard_fit_is_monotone(self, point_distances):
        result = nmds(point_distances, n_comps=2, n_init=2, random_state=0)
        frame = result['shepard']
        assert len(frame) == 20 * 19 // 2
        assert np.all(np.diff(frame['dissimilarity'].values) >= 0)
        assert np.all(np.diff(frame['fitted'].values) >= -1e-10)

    def test_coordinates_centred(self, point_distances):
        result = nmds(point_distances, n_comps=2, n_init=2, random_state=0)
        assert np.allclose(result['coordinates'].mean().values, 0.0)

    def test_deterministic(self, point_distances):
        a = nmds(point_distances, n_init=2, random_state=3)
        b = nmds(point_distances, n_init=2, random_state=3)
        assert np.allclose(a['coordinates'].values, b['coordinates'].values)

    def test_bad_n_comps(self, point_distances):
        with pytest.raises(ValueError):
            nmds(point_distances, n_comps=0)
        with pytest.raises(ValueError):
            nmds(point_distances, n_comps=20)


class TestStress:
    """Tests for Shepard data and Kruskal stress."""

    def test_perfect_configuration(self, points, point_distances):
        frame = shepard(point_distances.values, points.values)
        assert np.isclose(kruskal_stress(frame), 0.0)


class TestEnvfit:
    """Tests for fitting environmental variables."""

    def test_linear_variable(self, points):
        """A variable that is a linear function of the axes fits perfectly."""
        env = pd.DataFrame({'gradient': 2 * points['x'] + 0.5 * points['y']}, index=points.index)
        result = envfit(points, env, permutations=99, random_state=0)
        row = result['vectors'].iloc[0]
        assert np.isclose(row['r2'], 1.0)
        assert np.isclose(np.hypot(row['x'], row['y']), 1.0)
        assert row['p_value'] == pytest.approx(0.01)

    def test_noise_variable(self, points):
        env = pd.DataFrame({'noise': np.random.RandomState(5).randn(20)}, index=points.index)
        result = envfit(points, env, permutations=99, random_state=0)
        assert result['vectors'].iloc[0]['r2'] < 0.5

    def test_factor(self, points):
        """A factor splitting the first axis explains much of the variance."""
        groups = np.where(points['x'] > points['x'].median(), 'east', 'west')
        env = pd.DataFrame({'side': pd.Categorical(groups)}, index=points.index)
        result = envfit(points, env, permutations=0)

        factor = result['factors'].iloc[0]
        assert factor['variable'] == 'side'
        assert 0.3 < factor['r2'] <= 1.0
        assert np.isnan(factor['p_value'])

        centroids = result['centroids'].set_index('level')
        assert centroids.loc['east', 'x'] > centroids.loc['west', 'x']

    def test_missing_values_dropped(self, points):
        values = points['x'].copy()
        values.iloc[0] = np.nan
        env = pd.DataFrame({'x_like': values}, index=points.index)
        result = envfit(points, env, permutations=0)
        assert np.isclose(result['vectors'].iloc[0]['r2'], 1.0)

    def test_bad_arguments(self, points):
        env = pd.DataFrame({'v': np.arange(5.0)})
        with pytest.raises(ValueError):
            envfit(points, env)

        env = pd.DataFrame({'v': np.arange(20.0)}, index=points.index)
        with pytest.raises(ValueError):
            envfit(points, env, permutations=-1)


class TestProcrustes:
    """Tests for Procrustes comparison."""

    def test_rotated_copy(self, points):
        theta = 0.7
        rotation = np.array([[np.cos(theta), -np.sin(theta)], [np.sin(theta), np.cos(theta)]])
        rotated = pd.DataFrame(points.values @ rotation * 3.0 + 1.0, index=points.index,
                               columns=['a', 'b'])
        result = procrustes(points, rotated)
        assert result['disparity'] < 1e-10
        assert np.isclose(result['correlation'], 1.0)

    def test_unrelated(self, points):
        other = pd.DataFrame(np.random.RandomState(9).randn(20, 2), index=points.index)
        result = procrustes(points, other)
        assert result['disparity'] > 0.1

    def test_mismatch(self, points):
        with pytest.raises(ValueError):
            procrustes(points, points.iloc[:5])
