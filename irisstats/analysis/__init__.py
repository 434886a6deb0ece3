"""
Analysis runner for irisstats.

This module sequences the walkthrough: data, PCA, ordination,
imputation, clustering, discriminant analysis and classification trees.
"""

from irisstats.analysis.notebook import Analysis, STEPS, resolve_steps
