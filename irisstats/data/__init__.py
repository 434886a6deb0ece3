"""
Input data for the irisstats walkthrough.
"""

from irisstats.data.datasets import (
    MEASUREMENTS, SPECIES, load_iris_frame, make_environment,
    split_features, inject_missing
)
