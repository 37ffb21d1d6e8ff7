#!/usr/bin/env python3
"""
data_utils.py - Dataset Loading Utilities

Loads the two static inputs of the flow map (state boundaries and per-state
migration counts), either from local files or over HTTP, and coerces the
numeric-as-string counts into numbers.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import geopandas as gpd
import pandas as pd
import requests
from loguru import logger

from ops.config_loader import Config, is_remote_source

Source = Union[str, Path]


class DatasetLoadError(RuntimeError):
    """Raised when an input dataset cannot be read or is structurally invalid."""

    def __init__(self, dataset: str, source: Source, reason: str):
        self.dataset = dataset
        self.source = source
        self.reason = reason
        super().__init__(f"Could not load {dataset} from {source}: {reason}")


def clean_numeric(series: pd.Series, blank_as_zero: bool = False) -> pd.Series:
    """
    Cleans a pandas Series to numeric type, handling thousands separators.

    Values that cannot be parsed become NaN rather than raising.

    Args:
        series: The pandas Series to clean.
        blank_as_zero: Read empty strings as 0 instead of NaN.

    Returns:
        A pandas Series with numeric data.
    """
    s = series.astype(str).str.replace(",", "", regex=False).str.strip()
    values = pd.to_numeric(s, errors="coerce")
    if blank_as_zero:
        values = values.mask(s == "", 0)
    return values


def validate_required_columns(df: pd.DataFrame, required: List[str], description: str) -> List[str]:
    """Return the required columns missing from df, logging them if any."""
    missing = [col for col in required if col not in df.columns]
    if missing:
        logger.error(f"❌ Missing required {description} columns: {missing}")
        logger.info(f"Available columns: {list(df.columns)}")
    return missing


def _read_json(source: Source, timeout: Optional[float] = None) -> Any:
    if is_remote_source(source):
        response = requests.get(str(source), timeout=timeout)
        response.raise_for_status()
        return response.json()

    with open(source) as f:
        return json.load(f)


def load_boundaries(source: Source, name_column: str = "name") -> gpd.GeoDataFrame:
    """
    Load state boundary features (GeoJSON) into a GeoDataFrame in WGS84.

    Args:
        source: Local path or http(s) URL
        name_column: Property holding the region name

    Returns:
        GeoDataFrame with one row per feature

    Raises:
        DatasetLoadError: if the file is missing, unreadable or lacks names
    """
    logger.info(f"🗺️ Loading boundaries from {source}")

    if not is_remote_source(source) and not Path(source).exists():
        raise DatasetLoadError("boundaries", source, "file not found")

    try:
        gdf = gpd.read_file(source)
    except Exception as e:
        raise DatasetLoadError("boundaries", source, str(e)) from e

    if validate_required_columns(gdf, [name_column], "boundary"):
        raise DatasetLoadError("boundaries", source, f"features have no '{name_column}' property")

    if gdf.crs is None:
        gdf = gdf.set_crs("EPSG:4326")
        logger.debug("  🌍 Set CRS to WGS84 (was None)")
    elif gdf.crs.to_epsg() != 4326:
        logger.debug(f"  🔄 Reprojecting from {gdf.crs} to WGS84")
        gdf = gdf.to_crs("EPSG:4326")

    invalid_geom = gdf.geometry.notna() & ~gdf.geometry.is_valid
    if invalid_geom.any():
        logger.warning(f"  ⚠️ Found {int(invalid_geom.sum())} invalid geometries, fixing...")
        gdf.loc[invalid_geom, "geometry"] = gdf.loc[invalid_geom, "geometry"].buffer(0)

    logger.success(f"  ✅ Loaded {len(gdf):,} boundary features")
    return gdf


def load_migration_records(
    source: Source,
    count_columns: Tuple[str, str] = ("coming_from_california", "going_to_california"),
    timeout: Optional[float] = None,
) -> pd.DataFrame:
    """
    Load the per-state migration counts.

    The dataset is a JSON object mapping state name to an object of counts.
    Null counts are read as blank strings, so the join treats them as 0.

    Returns:
        DataFrame indexed by state name
    """
    logger.info(f"📊 Loading migration records from {source}")

    if not is_remote_source(source) and not Path(source).exists():
        raise DatasetLoadError("migration records", source, "file not found")

    try:
        raw = _read_json(source, timeout=timeout)
    except (OSError, ValueError, requests.RequestException) as e:
        raise DatasetLoadError("migration records", source, str(e)) from e

    if not isinstance(raw, dict):
        raise DatasetLoadError(
            "migration records", source, "expected an object keyed by state name"
        )

    records: Dict[str, Dict[str, Any]] = {}
    for name, counts in raw.items():
        if not isinstance(counts, dict):
            logger.warning(f"  ⚠️ Skipping {name!r}: record is not an object")
            continue
        # A null count reads as a blank one; an absent count stays missing
        records[name] = {
            key: "" if key in count_columns and value is None else value
            for key, value in counts.items()
        }

    df = pd.DataFrame.from_dict(records, orient="index")
    df.index.name = "name"

    if validate_required_columns(df, list(count_columns), "migration"):
        raise DatasetLoadError("migration records", source, "missing count fields")

    logger.success(f"  ✅ Loaded migration records for {len(df):,} states")
    return df


def load_datasets(config: Config) -> Tuple[gpd.GeoDataFrame, pd.DataFrame]:
    """
    Load both datasets concurrently and wait for both.

    Either failure aborts the whole load; no partial result is returned.

    Raises:
        DatasetLoadError: if either dataset fails to load
    """
    boundaries_source = config.get_input_source("boundaries_geojson")
    migration_source = config.get_input_source("migration_json")
    name_column = config.get_column_name("region_name")
    count_columns = (
        config.get_column_name("coming_from_reference"),
        config.get_column_name("going_to_reference"),
    )
    timeout = config.get_system_setting("request_timeout")
    workers = config.get_system_setting("load_workers") or 2

    with ThreadPoolExecutor(max_workers=workers) as executor:
        boundaries_future = executor.submit(load_boundaries, boundaries_source, name_column)
        migration_future = executor.submit(
            load_migration_records, migration_source, count_columns, timeout
        )
        # result() re-raises the worker's exception
        boundaries = boundaries_future.result()
        migration = migration_future.result()

    return boundaries, migration


def ensure_output_directory(output_path: Union[str, Path]) -> Path:
    """Ensure output directory exists and return Path object."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path
