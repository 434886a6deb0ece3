"""
Main entry point for irisstats.

This module runs the multivariate walkthrough from the command line and
either prints a summary or writes the full JSON report.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from irisstats.analysis import Analysis, STEPS
from irisstats.components.config import ConfigManager, load_config_file, to_list


def setup_logging(level: str = 'INFO') -> None:
    """
    Set up logging.

    Args:
        level: Logging level
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown logging level: {level}")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        argv: Argument list (defaults to sys.argv)

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description='Multivariate walkthrough on the iris measurements')

    parser.add_argument(
        '--config',
        help='Path to configuration file (json or yaml)'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (defaults to logging.level from the configuration)'
    )

    parser.add_argument(
        '--random-state',
        type=int,
        help='Seed for every stochastic model fit'
    )

    parser.add_argument(
        '--steps',
        help=f"Comma-separated steps to run ({', '.join(STEPS)}); dependencies are added"
    )

    parser.add_argument(
        '--output',
        help='Write the full JSON report to this file'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point.
    """
    args = parse_args(argv)

    overrides = {}

    if args.config:
        overrides.update(load_config_file(args.config))

    if args.random_state is not None:
        overrides['random-state'] = args.random_state

    config = ConfigManager.get_config(overrides)
    setup_logging(args.log_level or config.get('logging.level'))

    steps = to_list(args.steps) if args.steps else None
    analysis = Analysis(config).run(steps)

    if args.output:
        analysis.save_to_json(args.output)
    else:
        json.dump(analysis.get_summary(), sys.stdout, indent=2)
        sys.stdout.write('\n')


if __name__ == '__main__':
    main()
