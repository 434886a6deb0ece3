"""
Setup script for irisstats package.
"""

from setuptools import setup, find_packages

setup(
    name="irisstats",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        # Core numerical dependencies
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",
        "scikit-learn>=1.2.0",

        # Utilities
        "pyyaml>=6.0.0",
    ],
    extras_require={
        # Testing
        "test": [
            "pytest>=6.0.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'irisstats=irisstats.__main__:main',
        ],
    },
    author="irisstats contributors",
    description="Exploratory multivariate statistics walkthrough on the iris measurements",
    keywords="iris, pca, pcoa, nmds, imputation, clustering, lda, cart",
    python_requires=">=3.8",
)
