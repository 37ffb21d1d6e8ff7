"""
Processing package for the Migration Flow Map

This package contains the dataset loading utilities used by the map pipeline.
"""

__version__ = "0.1.0"

from .data_utils import (
    DatasetLoadError,
    clean_numeric,
    ensure_output_directory,
    load_boundaries,
    load_datasets,
    load_migration_records,
    validate_required_columns,
)

__all__ = [
    "DatasetLoadError",
    "clean_numeric",
    "ensure_output_directory",
    "load_boundaries",
    "load_datasets",
    "load_migration_records",
    "validate_required_columns",
]
