"""
Shared components for irisstats.

This module provides configuration handling for the analysis runner.
"""

from irisstats.components.config import Config, ConfigManager
