import json
import math

import pandas as pd
import pytest

from processing.data_utils import (
    DatasetLoadError,
    clean_numeric,
    load_boundaries,
    load_datasets,
    load_migration_records,
)


def test_clean_numeric():
    values = clean_numeric(pd.Series(["1,234", " 56 ", "abc", None]))
    assert values.iloc[0] == 1234
    assert values.iloc[1] == 56
    assert math.isnan(values.iloc[2])
    assert math.isnan(values.iloc[3])


def test_load_migration_records(project_dir):
    df = load_migration_records(project_dir / "data" / "2008_data.json")
    assert df.index.name == "name"
    assert df.loc["Texas", "coming_from_california"] == "50000"
    assert len(df) == 5


def test_load_migration_records_skips_non_object_entries(tmp_path):
    path = tmp_path / "migration.json"
    path.write_text(
        json.dumps(
            {
                "Texas": {"coming_from_california": "1", "going_to_california": "2"},
                "note": "generated 2008",
            }
        )
    )
    df = load_migration_records(path)
    assert list(df.index) == ["Texas"]


def test_load_migration_records_missing_file(tmp_path):
    with pytest.raises(DatasetLoadError, match="file not found"):
        load_migration_records(tmp_path / "missing.json")


def test_load_migration_records_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(DatasetLoadError):
        load_migration_records(path)


def test_load_migration_records_requires_count_fields(tmp_path):
    path = tmp_path / "migration.json"
    path.write_text(json.dumps({"Texas": {"coming_from_california": "1"}}))
    with pytest.raises(DatasetLoadError, match="missing count fields"):
        load_migration_records(path)


def test_load_migration_records_rejects_arrays(tmp_path):
    path = tmp_path / "migration.json"
    path.write_text(json.dumps([1, 2, 3]))
    with pytest.raises(DatasetLoadError, match="keyed by state name"):
        load_migration_records(path)


def test_load_boundaries(project_dir):
    gdf = load_boundaries(project_dir / "data" / "us-states.geojson")
    assert set(gdf["name"]) == {"California", "Texas", "New York", "Nevada", "Florida"}
    assert gdf.crs.to_epsg() == 4326


def test_load_boundaries_requires_names(tmp_path):
    path = tmp_path / "states.geojson"
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "properties": {"NAME": "Texas"},
                        "geometry": {"type": "Point", "coordinates": [-99, 31]},
                    }
                ],
            }
        )
    )
    with pytest.raises(DatasetLoadError, match="no 'name' property"):
        load_boundaries(path)


def test_load_boundaries_missing_file(tmp_path):
    with pytest.raises(DatasetLoadError):
        load_boundaries(tmp_path / "missing.geojson")


def test_load_datasets(config):
    boundaries, migration = load_datasets(config)
    assert len(boundaries) == 5
    assert "Texas" in migration.index


def test_load_datasets_fails_when_either_input_is_missing(config, project_dir):
    (project_dir / "data" / "2008_data.json").unlink()
    with pytest.raises(DatasetLoadError) as excinfo:
        load_datasets(config)
    assert excinfo.value.dataset == "migration records"


def test_clean_numeric_blank_as_zero():
    values = clean_numeric(pd.Series(["", "12", "abc"]), blank_as_zero=True)
    assert values.tolist()[:2] == [0, 12]
    assert math.isnan(values.iloc[2])


def test_load_migration_records_reads_null_counts_as_blank(tmp_path):
    path = tmp_path / "migration.json"
    path.write_text(
        json.dumps(
            {
                "Texas": {"coming_from_california": "50000", "going_to_california": None},
                "Ohio": {"coming_from_california": "10"},
            }
        )
    )
    df = load_migration_records(path)
    assert df.loc["Texas", "going_to_california"] == ""
    # An absent count is still missing rather than blank
    assert pd.isna(df.loc["Ohio", "going_to_california"])
