"""
Configuration management for irisstats.

This module provides functionality for managing configuration,
including loading from environment variables and default values.
"""

import os
import json
import logging
import threading
from typing import Dict, List, Optional, Any
from copy import deepcopy
import yaml

# Set up logging
logger = logging.getLogger(__name__)


def to_int(value: Any) -> Optional[int]:
    """
    Convert a value to an integer.

    Args:
        value: Value to convert

    Returns:
        Integer value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def to_float(value: Any) -> Optional[float]:
    """
    Convert a value to a float.

    Args:
        value: Value to convert

    Returns:
        Float value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def to_bool(value: Any) -> Optional[bool]:
    """
    Convert a value to a boolean.

    Args:
        value: Value to convert

    Returns:
        Boolean value, or None if conversion failed
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return value

    if isinstance(value, (int, float)):
        return bool(value)

    if isinstance(value, str):
        value = value.lower().strip()
        if value in ('true', 'yes', 'y', '1', 't'):
            return True
        if value in ('false', 'no', 'n', '0', 'f'):
            return False

    return None


def to_list(value: Any, separator: str = ',') -> Optional[List[str]]:
    """
    Convert a value to a list.

    Args:
        value: Value to convert
        separator: Separator for string values

    Returns:
        List value, or None if conversion failed
    """
    if value is None:
        return None

    if isinstance(value, list):
        return value

    if isinstance(value, str):
        return [item.strip() for item in value.split(separator) if item.strip()]

    return None


def _env(name: str, convert, current: Any) -> Any:
    """Read an environment variable through a converter, keeping current on failure."""
    if name not in os.environ:
        return current
    converted = convert(os.environ[name])
    if converted is None:
        logger.warning(f"Ignoring unparseable value for {name}: {os.environ[name]!r}")
        return current
    return converted


class Config:
    """
    Configuration for an irisstats analysis run.
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            overrides: Optional configuration overrides
        """
        self._lock = threading.RLock()
        self._config = {}
        self._initialized = False

        self.load_config(overrides)

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> None:
        """
        Load configuration from all sources.

        Args:
            overrides: Optional configuration overrides
        """
        with self._lock:
            config = self._get_defaults()
            config = self._apply_env_vars(config)

            if overrides:
                config = self._apply_overrides(config, overrides)

            config = self._apply_inferred_values(config)

            self._config = config
            self._initialized = True

            logger.info("Configuration loaded")

    def _get_defaults(self) -> Dict[str, Any]:
        """
        Get default configuration values.

        Returns:
            Default configuration
        """
        return {
            'analysis-env': 'dev',

            # Seed shared by every stochastic model fit
            'random-state': 42,

            # Synthetic environmental table
            'environment': {
                'seed': 123
            },

            'pca': {
                'n-comps': 4,
                'scale': True
            },

            # PCoA / NMDS / envfit
            'ordination': {
                'n-comps': 2,
                'correction': 'none',   # none, lingoes, cailliez
                'n-init': 20,
                'permutations': 999
            },

            'missing': {
                'fraction': 0.1,
                'seed': 1,
                'methods': ['mean', 'knn', 'iterative', 'pca']
            },

            'clustering': {
                'k-min': 1,
                'k-max': 9,
                'k': 3,
                'linkage': 'ward'
            },

            'discriminant': {
                'cv': True
            },

            'tree': {
                'test-size': 0.3,
                'cv-folds': 10
            },

            'logging': {
                'level': 'warn'
            }
        }

    def _apply_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variables to configuration.

        Args:
            config: Current configuration

        Returns:
            Updated configuration
        """
        config = deepcopy(config)

        if 'IRIS_ENV' in os.environ:
            config['analysis-env'] = os.environ['IRIS_ENV']

        config['random-state'] = _env('IRIS_RANDOM_STATE', to_int, config['random-state'])
        config['environment']['seed'] = _env('IRIS_ENV_SEED', to_int, config['environment']['seed'])

        # PCA
        config['pca']['n-comps'] = _env('IRIS_PCA_N_COMPS', to_int, config['pca']['n-comps'])
        config['pca']['scale'] = _env('IRIS_PCA_SCALE', to_bool, config['pca']['scale'])

        # Ordination
        ordination = config['ordination']
        ordination['n-comps'] = _env('IRIS_ORD_N_COMPS', to_int, ordination['n-comps'])
        ordination['correction'] = os.environ.get('IRIS_PCOA_CORRECTION', ordination['correction']).lower()
        ordination['n-init'] = _env('IRIS_NMDS_N_INIT', to_int, ordination['n-init'])
        ordination['permutations'] = _env('IRIS_ENVFIT_PERMUTATIONS', to_int, ordination['permutations'])

        # Missing data
        config['missing']['fraction'] = _env('IRIS_MISSING_FRACTION', to_float, config['missing']['fraction'])
        config['missing']['seed'] = _env('IRIS_MISSING_SEED', to_int, config['missing']['seed'])
        config['missing']['methods'] = _env('IRIS_IMPUTE_METHODS', to_list, config['missing']['methods'])

        # Clustering
        clustering = config['clustering']
        clustering['k-min'] = _env('IRIS_K_MIN', to_int, clustering['k-min'])
        clustering['k-max'] = _env('IRIS_K_MAX', to_int, clustering['k-max'])
        clustering['k'] = _env('IRIS_K', to_int, clustering['k'])
        clustering['linkage'] = os.environ.get('IRIS_LINKAGE', clustering['linkage'])

        # Supervised methods
        config['discriminant']['cv'] = _env('IRIS_LDA_CV', to_bool, config['discriminant']['cv'])
        config['tree']['test-size'] = _env('IRIS_TREE_TEST_SIZE', to_float, config['tree']['test-size'])
        config['tree']['cv-folds'] = _env('IRIS_TREE_CV_FOLDS', to_int, config['tree']['cv-folds'])

        # Logging
        config['logging']['level'] = os.environ.get('LOG_LEVEL', config['logging']['level']).lower()

        return config

    def _apply_overrides(self, config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply configuration overrides.

        Args:
            config: Current configuration
            overrides: Configuration overrides

        Returns:
            Updated configuration
        """
        config = deepcopy(config)

        def deep_update(d, u):
            for k, v in u.items():
                if isinstance(v, dict) and k in d and isinstance(d[k], dict):
                    d[k] = deep_update(d[k], v)
                else:
                    d[k] = v
            return d

        return deep_update(config, deepcopy(overrides))

    def _apply_inferred_values(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply inferred configuration values.

        Args:
            config: Current configuration

        Returns:
            Updated configuration
        """
        config = deepcopy(config)

        config['analysis-env-string'] = str(config['analysis-env'])

        # An inverted k range would fit no mixture at all
        clustering = config['clustering']
        if clustering['k-max'] < clustering['k-min']:
            logger.warning(f"clustering.k-max {clustering['k-max']} below k-min {clustering['k-min']}, raising it")
            clustering['k-max'] = clustering['k-min']

        return config

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            path: Configuration path (dot-separated)
            default: Default value if not found

        Returns:
            Configuration value, or default if not found
        """
        if not self._initialized:
            self.load_config()

        value = self._config
        for component in path.split('.'):
            if isinstance(value, dict) and component in value:
                value = value[component]
            else:
                return default

        return value

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            path: Configuration path (dot-separated)
            value: Configuration value
        """
        with self._lock:
            if not self._initialized:
                self.load_config()

            components = path.split('.')
            config = self._config
            for component in components[:-1]:
                if component not in config:
                    config[component] = {}
                config = config[component]

            config[components[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to a dictionary.

        Returns:
            Configuration dictionary
        """
        if not self._initialized:
            self.load_config()

        return deepcopy(self._config)

    def save_to_file(self, filepath: str) -> None:
        """
        Save configuration to a file.

        Args:
            filepath: Path to save configuration
        """
        if not self._initialized:
            self.load_config()

        if filepath.endswith('.json'):
            with open(filepath, 'w') as f:
                json.dump(self._config, f, indent=2)
        elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
            with open(filepath, 'w') as f:
                yaml.dump(self._config, f, default_flow_style=False)
        else:
            raise ValueError(f"Unsupported file format: {filepath}")

    def load_from_file(self, filepath: str) -> None:
        """
        Load configuration from a file.

        Args:
            filepath: Path to load configuration from
        """
        self.load_config(load_config_file(filepath))


def load_config_file(filepath: str) -> Dict[str, Any]:
    """
    Read configuration overrides from a JSON or YAML file.

    Args:
        filepath: Path to configuration file

    Returns:
        Configuration dictionary
    """
    if filepath.endswith('.json'):
        with open(filepath, 'r') as f:
            return json.load(f)
    elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
        with open(filepath, 'r') as f:
            return yaml.safe_load(f) or {}
    else:
        raise ValueError(f"Unsupported configuration file format: {filepath}")


class ConfigManager:
    """
    Singleton manager for configuration.
    """

    _instance = None
    _lock = threading.RLock()

    @classmethod
    def get_config(cls, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """
        Get the configuration instance.

        Args:
            overrides: Optional configuration overrides

        Returns:
            Config instance
        """
        with cls._lock:
            if cls._instance is None:
                cls._instance = Config(overrides)
            elif overrides:
                cls._instance.load_config(overrides)

            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared instance so the next call reloads from scratch."""
        with cls._lock:
            cls._instance = None
