"""
The irisstats walkthrough, run top to bottom.

Each step reads the tables produced by earlier steps and stores its own
results on the Analysis object. Steps are executed in a fixed order;
asking for a step also runs the steps it depends on.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from irisstats.components.config import Config, ConfigManager
from irisstats.data.datasets import (
    MEASUREMENTS, load_iris_frame, make_environment, split_features, inject_missing
)
from irisstats.math import clusters, corr, discriminant, distance, impute, ordination, pca, tree
from irisstats.math.scaling import scale
from irisstats.utils.general import timed, to_serializable

logger = logging.getLogger(__name__)


STEPS = ['data', 'pca', 'ordination', 'imputation', 'clustering', 'discriminant', 'tree']

DEPENDENCIES = {
    'data': [],
    'pca': ['data'],
    'ordination': ['data', 'pca'],
    'imputation': ['data'],
    'clustering': ['data'],
    'discriminant': ['data'],
    'tree': ['data'],
}


def resolve_steps(steps: Optional[Iterable[str]] = None) -> List[str]:
    """
    Expand requested steps with their dependencies, in execution order.

    Args:
        steps: Step names (defaults to every step)

    Returns:
        Ordered list of steps to run
    """
    if steps is None:
        return list(STEPS)

    wanted = set()
    pending = list(steps)
    while pending:
        step = pending.pop()
        if step not in DEPENDENCIES:
            raise ValueError(f"Unknown analysis step: {step}")
        if step not in wanted:
            wanted.add(step)
            pending.extend(DEPENDENCIES[step])

    return [step for step in STEPS if step in wanted]


def _strip_models(obj: Any) -> Any:
    """Drop fitted estimator objects before export."""
    if isinstance(obj, dict):
        return {k: _strip_models(v) for k, v in obj.items() if k != 'model'}
    return obj


class Analysis:
    """
    Runs the multivariate walkthrough on the iris measurements.
    """

    def __init__(self,
                 config: Optional[Config] = None,
                 data: Optional[pd.DataFrame] = None):
        """
        Initialize an analysis.

        Args:
            config: Configuration (defaults to the shared instance)
            data: Iris-shaped frame to use instead of the bundled data
        """
        self.config = config or ConfigManager.get_config()
        self._input = data
        self.random_state = self.config.get('random-state')

        self.completed: List[str] = []

        self.iris = None
        self.environment = None
        self.measurements = None
        self.species = None
        self.scaled = None

        self.descriptive = None
        self.pca = None
        self.ordination = None
        self.imputation = None
        self.clustering = None
        self.discriminant = None
        self.tree = None

    def run(self, steps: Optional[Iterable[str]] = None) -> 'Analysis':
        """
        Run the requested steps (and their dependencies).

        Args:
            steps: Step names (defaults to every step)

        Returns:
            This analysis
        """
        for step in resolve_steps(steps):
            if step in self.completed:
                continue
            with timed(f"{step} step"):
                getattr(self, f"_compute_{step}")()
            self.completed.append(step)

        return self

    def _compute_data(self) -> None:
        """
        Load the measurements, build the environment table and describe both.
        """
        self.iris = self._input.copy() if self._input is not None else load_iris_frame()
        self.environment = make_environment(self.iris, seed=self.config.get('environment.seed'))

        self.measurements, self.species = split_features(self.iris)
        self.scaled = scale(self.measurements)

        self.descriptive = {
            'n_rows': len(self.iris),
            'species_counts': self.species.value_counts(sort=False),
            'by_species': corr.describe_by_group(self.iris, 'species'),
            'correlation': corr.compute_correlation(self.measurements, 'pearson'),
            'environment_correlation': corr.compute_correlation(self.environment, 'spearman'),
        }

    def _compute_pca(self) -> None:
        """
        Compute PCA on the measurements and the component-selection rules.
        """
        result = pca.pca(self.measurements,
                         n_comps=self.config.get('pca.n-comps'),
                         scale=self.config.get('pca.scale'))

        self.pca = {
            'result': result,
            'eigenvalues': pca.eigenvalue_table(result),
            'kaiser': pca.kaiser_criterion(result),
            'broken_stick': pca.broken_stick_criterion(result),
            'biplot': pca.biplot_coords(result) if result['n_comps'] >= 2 else None,
        }

    def _compute_ordination(self) -> None:
        """
        Ordinate the mixed measurement/environment table by PCoA and NMDS.
        """
        mixed = pd.concat([self.measurements, self.environment], axis=1)
        gower = distance.gower_distance(mixed)

        n_comps = self.config.get('ordination.n-comps')
        pcoa_result = ordination.pcoa(gower, correction=self.config.get('ordination.correction'))
        nmds_result = ordination.nmds(gower,
                                      n_comps=n_comps,
                                      n_init=self.config.get('ordination.n-init'),
                                      random_state=self.random_state)
        fit = ordination.envfit(nmds_result['coordinates'],
                                self.environment,
                                permutations=self.config.get('ordination.permutations'),
                                random_state=self.random_state)

        pca_scores = self.pca['result']['scores']
        self.ordination = {
            'gower': gower,
            'pcoa': pcoa_result,
            'nmds': nmds_result,
            'envfit': fit,
            'procrustes_pca_pcoa': ordination.procrustes(pca_scores, pcoa_result['coordinates'], n_comps),
            'procrustes_pcoa_nmds': ordination.procrustes(pcoa_result['coordinates'],
                                                          nmds_result['coordinates'], n_comps),
        }

    def _compute_imputation(self) -> None:
        """
        Blank cells at random, impute them back and compare methods.
        """
        missing = inject_missing(self.measurements,
                                 fraction=self.config.get('missing.fraction'),
                                 seed=self.config.get('missing.seed'))
        comparison = impute.compare_imputations(self.measurements,
                                                missing,
                                                methods=self.config.get('missing.methods'),
                                                random_state=self.random_state)
        best = comparison['imputed'][comparison['best']]

        self.imputation = {
            'missing': missing,
            'summary': impute.missing_summary(missing),
            'errors': comparison['errors'],
            'best': comparison['best'],
            'imputed': best,
            'pca': pca.pca(best, n_comps=self.config.get('pca.n-comps'), scale=self.config.get('pca.scale')),
        }

    def _compute_clustering(self) -> None:
        """
        Cluster the standardised measurements and compare with the species.
        """
        k_range = range(self.config.get('clustering.k-min'), self.config.get('clustering.k-max') + 1)
        k = self.config.get('clustering.k')

        gmm = clusters.gaussian_mixture(self.scaled, k_range=k_range, random_state=self.random_state)
        km = clusters.kmeans(self.scaled, k, random_state=self.random_state)
        hc = clusters.hierarchical(self.scaled, k, method=self.config.get('clustering.linkage'))

        partitions = {'gmm': gmm['labels'], 'kmeans': km['labels'], 'hierarchical': hc['labels']}
        comparison = {}
        for name, labels in partitions.items():
            comparison[name] = {
                'silhouette': clusters.silhouette(self.scaled, labels),
                'contingency': clusters.contingency(labels, self.species),
                'agreement': clusters.agreement(labels, self.species),
            }

        self.clustering = {
            'gmm': gmm,
            'kmeans': km,
            'hierarchical': hc,
            'elbow': clusters.elbow(self.scaled, k_range, random_state=self.random_state),
            'comparison': comparison,
        }

    def _compute_discriminant(self) -> None:
        """
        Discriminate the species with LDA.
        """
        self.discriminant = discriminant.lda(self.measurements,
                                             self.species,
                                             cv=self.config.get('discriminant.cv'))

    def _compute_tree(self) -> None:
        """
        Grow a pruned classification tree and score it on held-out flowers.
        """
        split = tree.train_test_split_frame(self.measurements,
                                            self.species,
                                            test_size=self.config.get('tree.test-size'),
                                            random_state=self.random_state)
        fitted = tree.cart(split['train'],
                           split['train_labels'],
                           cv_folds=self.config.get('tree.cv-folds'),
                           random_state=self.random_state)

        self.tree = {
            'fit': fitted,
            'test': tree.evaluate(fitted, split['test'], split['test_labels']),
            'n_train': len(split['train']),
            'n_test': len(split['test']),
        }

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a compact summary of the completed steps.

        Returns:
            Dictionary with one headline figure per step
        """
        summary: Dict[str, Any] = {'steps': list(self.completed)}

        if self.descriptive:
            summary['n_rows'] = self.descriptive['n_rows']
        if self.pca:
            ratio = self.pca['result']['explained_variance_ratio']
            summary['pca_variance_pc1_pc2'] = float(ratio.iloc[:2].sum())
            summary['pca_kaiser'] = self.pca['kaiser']
        if self.ordination:
            summary['pcoa_relative_axis1_axis2'] = float(
                self.ordination['pcoa']['relative_eigenvalues'].iloc[:2].sum())
            summary['nmds_stress'] = self.ordination['nmds']['stress']
        if self.imputation:
            summary['best_imputation'] = self.imputation['best']
        if self.clustering:
            summary['gmm_best'] = self.clustering['gmm']['best']
            summary['gmm_adjusted_rand'] = self.clustering['comparison']['gmm']['agreement']['adjusted_rand']
        if self.discriminant:
            summary['lda_accuracy'] = self.discriminant['accuracy']
            if 'cv_accuracy' in self.discriminant:
                summary['lda_cv_accuracy'] = self.discriminant['cv_accuracy']
        if self.tree:
            summary['tree_leaves'] = self.tree['fit']['n_leaves']
            summary['tree_test_accuracy'] = self.tree['test']['accuracy']

        return to_serializable(summary)

    def to_dict(self) -> Dict[str, Any]:
        """
        Full report of every completed step.

        Returns:
            JSON-compatible dictionary
        """
        report = {
            'config': self.config.to_dict(),
            'summary': self.get_summary(),
        }
        sections = {
            'data': self.descriptive,
            'pca': self.pca,
            'ordination': self.ordination,
            'imputation': self.imputation,
            'clustering': self.clustering,
            'discriminant': self.discriminant,
            'tree': self.tree,
        }
        for name, section in sections.items():
            if section is not None:
                report[name] = to_serializable(_strip_models(section))

        return report

    def save_to_json(self, filepath: str) -> None:
        """
        Write the full report to a JSON file.

        Args:
            filepath: Destination path
        """
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Report written to {filepath}")
