"""
Utility helpers for irisstats.
"""

from irisstats.utils.general import (
    to_serializable, timed, ensure_frame, numeric_columns, confusion_table
)
