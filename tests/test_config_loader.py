import pytest
import yaml

from ops.config_loader import Config, is_remote_source


def test_defaults_fill_missing_keys(config):
    assert config.get_analysis_setting("reference_region") == "California"
    assert config.get_analysis_setting("outbound_threshold") == 10000
    assert config.get_visualization_setting("hover_color") == "#ff9ee7"
    assert config.get_projection_setting("scale") == 1000
    assert config.get("does.not.exist", "fallback") == "fallback"


def test_yaml_values_override_defaults(config):
    assert config.get_visualization_setting("map_dpi") == 50
    assert config.get("project_name") == "Test Migration Flows"
    assert config.get_metadata("data_source") == "fixture"


def test_input_sources(config, project_dir):
    expected = project_dir.resolve() / "data" / "us-states.geojson"
    assert config.get_input_source("boundaries_geojson") == expected
    with pytest.raises(ValueError):
        config.get_input_source("votes_csv")


def test_remote_input_source_is_returned_unchanged(project_dir):
    path = project_dir / "ops" / "config.yaml"
    data = yaml.safe_load(path.read_text())
    data["input_files"]["migration_json"] = "https://example.org/2008_data.json"
    path.write_text(yaml.dump(data))

    config = Config(str(path), project_root_override=project_dir)
    assert config.get_input_source("migration_json") == "https://example.org/2008_data.json"
    assert config.validate_input_files() == {"boundaries_geojson": True, "migration_json": True}


def test_output_paths(config, project_dir):
    assert config.get_flow_map_path() == project_dir.resolve() / "html" / "migration_flows.html"
    assert config.get_static_map_path() == project_dir.resolve() / "html" / "migration_flows.png"
    assert config.get_flows_geojson_path() == (
        project_dir.resolve() / "data" / "geospatial" / "migration_flows.geojson"
    )
    with pytest.raises(ValueError):
        config.get_output_dir("maps")


def test_project_root_detection(project_dir):
    config = Config(str(project_dir / "ops" / "config.yaml"))
    assert config.project_root == project_dir.resolve()


def test_missing_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MIGRATION_MAP_CONFIG_PATH", raising=False)
    with pytest.raises(FileNotFoundError):
        Config()


def test_is_remote_source():
    assert is_remote_source("https://example.org/a.json")
    assert is_remote_source("HTTP://example.org/a.json")
    assert not is_remote_source("data/a.json")
