"""
Configuration Loader for the Migration Flow Map

This module provides a centralized way to load and access configuration
settings from the config.yaml file.

Usage:
    from ops.config_loader import Config

    config = Config()
    boundaries = config.get_input_source('boundaries_geojson')
    output_dir = config.get_output_dir('html')
"""

import os
import pathlib
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger


class Config:
    """Configuration manager for the migration flow map."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "columns": {
            "region_name": "name",
            "coming_from_reference": "coming_from_california",
            "going_to_reference": "going_to_california",
        },
        "analysis": {
            "reference_region": "California",
            "outbound_threshold": 10000,
            "inbound_threshold": -4500,
            "arc_curvature": 1.5,
            "arc_samples": 48,
        },
        "visualization": {
            "reference_color": "#8953fc",
            "inbound_color": "blue",
            "outbound_color": "pink",
            "unmatched_fill_color": None,
            "hover_color": "#ff9ee7",
            "region_stroke_color": "white",
            "region_stroke_width": 2.5,
            "outbound_arc_color": "yellow",
            "inbound_arc_color": "red",
            "stroke_width_range": [1, 5],
            "marker_size": 6,
            "tooltip_offset": [20, -20],
            "map_dpi": 200,
            "figure_width": 12,
            "tiles": "CartoDB Positron",
            "zoom_start": 4,
        },
        "projection": {
            "crs": (
                "+proj=aea +lat_1=29.5 +lat_2=45.5 +lat_0=37.5 +lon_0=-96 "
                "+x_0=0 +y_0=0 +R=6378137 +units=m +no_defs"
            ),
            "scale": 1000,
            "translate": [730 / 1.75, 350 / 1.45],
            "center": [-96.6, 38.7],
        },
        "system": {
            "output_crs": "EPSG:4326",
            "load_workers": 2,
            "request_timeout": None,
        },
    }

    def __init__(
        self,
        config_file: Optional[str] = None,
        project_root_override: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable MIGRATION_MAP_CONFIG_PATH
                        2. config.yaml in current directory
                        3. ops/config.yaml (if running from the project root)
            project_root_override: Override project root detection (useful for temp configs)
        """
        if config_file is None:
            env_config = os.environ.get("MIGRATION_MAP_CONFIG_PATH")
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif Path("ops/config.yaml").exists():
                config_file = "ops/config.yaml"
                logger.debug("Using ops/config.yaml from project root")
            else:
                raise FileNotFoundError(
                    "No config.yaml found. Check current directory or set MIGRATION_MAP_CONFIG_PATH"
                )

        self.config_path = Path(config_file).resolve()
        self.config_dir = self.config_path.parent

        if project_root_override:
            self.project_root = Path(project_root_override).resolve()
            logger.debug(f"Using project root override: {self.project_root}")
        elif os.environ.get("PROJECT_ROOT_OVERRIDE"):
            self.project_root = Path(os.environ["PROJECT_ROOT_OVERRIDE"]).resolve()
            logger.debug(f"Using project root from environment: {self.project_root}")
        else:
            self.project_root = self._find_project_root()

        logger.debug(f"Loading config from: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        with open(self.config_path, "r") as f:
            self.data = yaml.safe_load(f) or {}

        self._setup_paths()

    def _setup_paths(self) -> None:
        """Setup base directory paths relative to project root."""
        dirs = self.data.get("directories", {})

        self.data_dir = self.project_root / dirs.get("data", "data")
        self.geospatial_dir = self.project_root / dirs.get("geospatial", "data/geospatial")
        self.html_dir = self.project_root / dirs.get("html", "html")

    def get_input_source(self, filename_key: str) -> Union[str, pathlib.Path]:
        """
        Get the location of an input dataset.

        Remote sources (http/https URLs) are returned unchanged; anything else is
        treated as a path relative to the project root.

        Args:
            filename_key: Key for the filename in input_files

        Returns:
            URL string or absolute path to the input file
        """
        relative_path_str = self.data.get("input_files", {}).get(filename_key)
        if not relative_path_str:
            raise ValueError(
                f"Input filename key '{filename_key}' not found in config: input_files"
            )

        if is_remote_source(relative_path_str):
            return relative_path_str

        return self.project_root / relative_path_str

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        value: Any = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break

        if value is None:
            value = self.DEFAULTS
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default

        return value

    def get_flow_map_path(self) -> pathlib.Path:
        """Get path to the interactive flow map HTML file."""
        filename = self.get("output_files.flow_map_html") or "migration_flows.html"
        return pathlib.Path(self.html_dir) / filename

    def get_static_map_path(self) -> pathlib.Path:
        """Get path to the static flow map image."""
        filename = self.get("output_files.static_map_png") or "migration_flows.png"
        return pathlib.Path(self.html_dir) / filename

    def get_flows_geojson_path(self) -> pathlib.Path:
        """Get path to the exported flows GeoJSON."""
        filename = self.get("output_files.flows_geojson") or "migration_flows.geojson"
        return pathlib.Path(self.geospatial_dir) / filename

    def get_output_dir(self, dir_key: str) -> pathlib.Path:
        """
        Get full path to an output directory.

        Args:
            dir_key: Directory key ('data', 'geospatial' or 'html')

        Returns:
            Full path to the directory
        """
        if dir_key == "geospatial":
            return pathlib.Path(self.geospatial_dir)
        elif dir_key == "data":
            return pathlib.Path(self.data_dir)
        elif dir_key == "html":
            return pathlib.Path(self.html_dir)
        else:
            raise ValueError(f"Unknown directory key: {dir_key}")

    def get_column_name(self, column_key: str) -> str:
        """Get column name with intelligent defaults."""
        result = self.get(f"columns.{column_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"Column name not found or not a string: {column_key}")

    def get_analysis_setting(self, setting_key: str) -> Any:
        """Get analysis setting with intelligent defaults."""
        return self.get(f"analysis.{setting_key}")

    def get_visualization_setting(self, setting_key: str) -> Any:
        """Get visualization setting with intelligent defaults."""
        return self.get(f"visualization.{setting_key}")

    def get_projection_setting(self, setting_key: str) -> Any:
        """Get projection setting with intelligent defaults."""
        return self.get(f"projection.{setting_key}")

    def get_system_setting(self, setting_key: str) -> Any:
        """Get system setting with intelligent defaults."""
        return self.get(f"system.{setting_key}")

    def get_metadata(self, key: str) -> str:
        """Get metadata value."""
        result = self.get(f"metadata.{key}", "")
        if isinstance(result, str):
            return result
        return str(result)

    def validate_input_files(self) -> Dict[str, bool]:
        """Validate that local input files exist. Remote sources are reported as available."""
        results: Dict[str, bool] = {}
        input_files = self.data.get("input_files", {})

        for filename_key in input_files:
            try:
                source = self.get_input_source(filename_key)
                results[filename_key] = isinstance(source, str) or source.exists()
            except ValueError:
                results[filename_key] = False

        return results

    def print_config_summary(self) -> None:
        """Print a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Project: {self.get('project_name', 'Unknown')}")
        logger.debug(f"Description: {self.get('description', 'No description')}")
        logger.debug(f"Config file: {self.config_path}")
        logger.debug(f"Reference region: {self.get_analysis_setting('reference_region')}")

        logger.debug("📁 Directories:")
        for key in ["data", "geospatial", "html"]:
            dir_path = self.get_output_dir(key)
            exists = "✅" if dir_path.exists() else "❌"
            logger.debug(f"  {exists} {key}: {dir_path}")

        logger.debug("📊 Input Files:")
        validation = self.validate_input_files()
        for file_key, exists in validation.items():
            status = "✅" if exists else "❌"
            logger.debug(f"  {status} {file_key}")

    def _find_project_root(self) -> Path:
        """Find the project root directory by looking for characteristic files/directories."""
        current = self.config_path.parent

        project_markers = ["analysis", "data", "ops", "pyproject.toml", ".git"]

        for _ in range(5):  # Limit to 5 levels up
            markers_found = sum(1 for marker in project_markers if (current / marker).exists())

            if markers_found >= 2:
                return current

            parent = current.parent
            if parent == current:
                break
            current = parent

        # Fallback: if config is in ops/, project root is parent
        if self.config_path.parent.name == "ops":
            return self.config_path.parent.parent

        logger.warning(
            f"Could not reliably detect project root, using config directory: {self.config_path.parent}"
        )
        return self.config_path.parent


def is_remote_source(source: Union[str, Path]) -> bool:
    """True for http(s) URLs."""
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))

