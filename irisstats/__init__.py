"""
irisstats package for exploratory multivariate analysis.

This is a walkthrough of ordination, imputation, clustering and
classification methods applied to the iris flower measurements.
"""

__version__ = '0.1.0'

from irisstats.analysis import Analysis
from irisstats.components.config import Config, ConfigManager
