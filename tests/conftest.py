"""Shared fixtures: a handful of box-shaped states and their migration counts."""

import json
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
import yaml
from shapely.geometry import box, mapping

from ops.config_loader import Config

# (name, minx, miny, maxx, maxy) in lon/lat
STATE_BOXES = [
    ("California", -124.0, 32.5, -114.5, 42.0),
    ("Texas", -106.5, 26.0, -93.5, 36.5),
    ("New York", -79.5, 40.5, -72.0, 45.0),
    ("Nevada", -120.0, 35.0, -114.0, 42.0),
    ("Florida", -87.5, 25.0, -80.0, 31.0),
]

MIGRATION_COUNTS = {
    "California": {"coming_from_california": "100", "going_to_california": "50"},
    "Texas": {"coming_from_california": "50000", "going_to_california": "30000"},
    "New York": {"coming_from_california": "10000", "going_to_california": "20000"},
    "Nevada": {"coming_from_california": "12000", "going_to_california": "9000"},
    "Puerto Rico": {"coming_from_california": "800", "going_to_california": "700"},
}


@pytest.fixture
def boundaries() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"name": [s[0] for s in STATE_BOXES]},
        geometry=[box(*s[1:]) for s in STATE_BOXES],
        crs="EPSG:4326",
    )


@pytest.fixture
def migration() -> pd.DataFrame:
    df = pd.DataFrame.from_dict(MIGRATION_COUNTS, orient="index")
    df.index.name = "name"
    return df


def write_inputs(data_dir: Path) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    features = [
        {"type": "Feature", "properties": {"name": name}, "geometry": mapping(box(*bounds))}
        for name, *bounds in STATE_BOXES
    ]
    with open(data_dir / "us-states.geojson", "w") as f:
        json.dump({"type": "FeatureCollection", "features": features}, f)
    with open(data_dir / "2008_data.json", "w") as f:
        json.dump(MIGRATION_COUNTS, f)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project root with ops/config.yaml and both input datasets under data/."""
    write_inputs(tmp_path / "data")
    (tmp_path / "ops").mkdir()
    config_data = {
        "project_name": "Test Migration Flows",
        "description": "Fixture project",
        "metadata": {"data_source": "fixture"},
        "input_files": {
            "boundaries_geojson": "data/us-states.geojson",
            "migration_json": "data/2008_data.json",
        },
        "directories": {"data": "data", "geospatial": "data/geospatial", "html": "html"},
        "visualization": {"map_dpi": 50, "figure_width": 4},
    }
    with open(tmp_path / "ops" / "config.yaml", "w") as f:
        yaml.dump(config_data, f)
    return tmp_path


@pytest.fixture
def config(project_dir: Path) -> Config:
    return Config(str(project_dir / "ops" / "config.yaml"), project_root_override=project_dir)
