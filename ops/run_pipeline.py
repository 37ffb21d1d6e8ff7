#!/usr/bin/env python3
"""
Migration Flow Map Pipeline with Click CLI

Loads the state boundaries and migration counts, builds the flow render plan
and writes the interactive map (plus optional static map and flows GeoJSON).
Configuration values can be overridden on the command line without editing
config.yaml.

Usage:
    migration-map [OPTIONS] [COMMAND]

    # Different input files:
    migration-map --migration "data/2009_data.json"

    # Only the interactive map:
    migration-map render --no-static --no-geojson

    # Print the classification table:
    migration-map summary

    # Verbose logging:
    migration-map --verbose
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import yaml
from loguru import logger

from ops.config_loader import Config

# Project structure
PROJECT_DIR = Path(__file__).parent.parent
SCRIPT_DIR = Path(__file__).parent


class ConfigContext:
    """Click context object for config management."""

    def __init__(self, base_config_path: Optional[Path] = None, project_root: Optional[Path] = None):
        self.overrides: Dict[str, Any] = {}
        if base_config_path is None:
            base_config_path = SCRIPT_DIR / "config.yaml"
            project_root = project_root or PROJECT_DIR
        self.base_config_path = Path(base_config_path)
        self.project_root = Path(project_root) if project_root else None
        self.temp_config_path: Optional[Path] = None
        self.config: Optional[Config] = None
        self.kwargs: Dict[str, Any] = {}

    def add_override(self, key: str, value: Any):
        """Add config override using dot notation."""
        keys = key.split(".")
        current = self.overrides
        for k in keys[:-1]:
            if k not in current:
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value
        logger.debug(f"Added override: {key} = {value}")

    def get_config(self) -> Config:
        """Get config with overrides applied."""
        base = Config(str(self.base_config_path), project_root_override=self.project_root)
        if not self.overrides:
            return base

        config_data = dict(base.data)
        self._apply_nested_override(config_data, self.overrides)

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config_data, f)
            self.temp_config_path = Path(f.name)

        # Paths in the temp config stay relative to the base config's project
        return Config(str(self.temp_config_path), project_root_override=base.project_root)

    def cleanup(self):
        """Clean up temporary config file."""
        if self.temp_config_path and self.temp_config_path.exists():
            self.temp_config_path.unlink()
            logger.debug(f"Cleaned up temporary config: {self.temp_config_path}")

    def _apply_nested_override(self, base_dict: Dict, override_dict: Dict):
        """Apply nested overrides."""
        for key, value in override_dict.items():
            if isinstance(value, dict) and key in base_dict and isinstance(base_dict[key], dict):
                self._apply_nested_override(base_dict[key], value)
            else:
                base_dict[key] = value


class ConfigOverride(click.ParamType):
    """Custom parameter type for config overrides."""

    name = "config_override"

    def convert(self, value, param, ctx) -> Tuple[str, Any]:
        if "=" not in value:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        key, val = value.split("=", 1)

        if val.lower() in ("true", "false"):
            parsed_val: Any = val.lower() == "true"
        elif val.lstrip("-").isdigit():
            parsed_val = int(val)
        elif "." in val and val.lstrip("-").replace(".", "", 1).isdigit():
            parsed_val = float(val)
        else:
            parsed_val = val

        return key, parsed_val


@click.group(invoke_without_command=True)
@click.option("--dry-run", is_flag=True, help="Show what would be run without executing")
@click.option("--boundaries", help="Override boundaries GeoJSON path or URL")
@click.option("--migration", help="Override migration JSON path or URL")
@click.option("--reference-region", help="Override the reference region (default: California)")
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Base config.yaml (default: ops/config.yaml)",
)
@click.option(
    "--config",
    "config_overrides",
    multiple=True,
    type=ConfigOverride(),
    help="Set config values using dot notation (e.g., analysis.outbound_threshold=20000)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option(
    "--trace", is_flag=True, help="Enable TRACE level logging for deep debugging (maximum detail)"
)
@click.option("--log-file", type=str, help="Also log to specified file")
@click.pass_context
def cli(ctx, **kwargs):
    """
    California Migration Flow Map

    Draw a choropleth of net migration relative to the reference region with
    curved arcs for the largest flows in each direction.

    \b
    Examples:
      migration-map                                         # Render every output
      migration-map render --no-static                      # Skip the PNG
      migration-map summary                                 # Classification table
      migration-map --config analysis.inbound_threshold=-8000
    """
    setup_logging(verbose=kwargs.get("verbose", False), enable_trace=kwargs.get("trace", False))

    if kwargs.get("log_file"):
        log_file = kwargs["log_file"]
        log_level = (
            "TRACE" if kwargs.get("trace") else ("DEBUG" if kwargs.get("verbose") else "INFO")
        )
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )
        logger.info(f"📄 Also logging to file: {log_file}")

    logger.info("🗺️ Migration Flow Map Pipeline")
    logger.debug(f"🔧 CLI arguments received: {kwargs}")

    config_ctx = ConfigContext(base_config_path=kwargs.get("config_file"))
    ctx.obj = config_ctx
    ctx.call_on_close(config_ctx.cleanup)

    if not config_ctx.base_config_path.exists():
        logger.critical(f"Base configuration file not found: {config_ctx.base_config_path}")
        logger.info("💡 Make sure config.yaml exists in the ops directory")
        ctx.exit(1)

    if kwargs["boundaries"]:
        config_ctx.add_override("input_files.boundaries_geojson", kwargs["boundaries"])
    if kwargs["migration"]:
        config_ctx.add_override("input_files.migration_json", kwargs["migration"])
    if kwargs["reference_region"]:
        config_ctx.add_override("analysis.reference_region", kwargs["reference_region"])

    for key, value in kwargs["config_overrides"]:
        config_ctx.add_override(key, value)

    try:
        config = config_ctx.get_config()
        logger.info(f"📋 Project: {config.get('project_name')}")
        logger.info(f"📋 Description: {config.get('description')}")
        config.print_config_summary()
    except Exception as e:
        logger.critical(f"Configuration error: {e}")
        logger.info("💡 Make sure config.yaml exists and is valid")
        ctx.exit(1)

    config_ctx.config = config
    config_ctx.kwargs = kwargs

    if ctx.invoked_subcommand is None:
        ctx.invoke(render)


@cli.command()
@click.option("--static/--no-static", default=True, help="Also write the static PNG map")
@click.option("--geojson/--no-geojson", default=True, help="Also export the flows GeoJSON")
@click.pass_context
def render(ctx, static=True, geojson=True):
    """Render the interactive flow map and optional outputs."""
    from analysis.map_migration_flows import render_flow_maps

    config = ctx.obj.config
    kwargs = ctx.obj.kwargs

    if kwargs.get("dry_run"):
        show_dry_run_info(config, static, geojson)
        return

    try:
        outputs = render_flow_maps(config, static=static, geojson=geojson)
    except Exception as e:
        handle_critical_error(e, "Rendering migration flow map")
        ctx.exit(1)

    logger.info("=" * 60)
    logger.success("🎉 MIGRATION FLOW MAP COMPLETE")
    logger.info("=" * 60)
    for label, path in outputs.items():
        if path is not None:
            logger.info(f"   📄 {label}: {path}")


@cli.command()
@click.pass_context
def summary(ctx):
    """Log each state's counts, fill colour and arc."""
    from analysis.migration_flows import MigrationFlowRenderer
    from processing.data_utils import load_datasets

    config = ctx.obj.config

    try:
        boundaries, migration = load_datasets(config)
        plan = MigrationFlowRenderer.from_config(config).plan(boundaries, migration)
    except Exception as e:
        handle_critical_error(e, "Building migration flow summary")
        ctx.exit(1)

    table = plan.summary()
    logger.info(f"📊 {len(table)} states, {len(plan.outbound_arcs)} outbound arcs, "
                f"{len(plan.inbound_arcs)} inbound arcs")
    for line in table.to_string(index=False).splitlines():
        logger.info(f"   {line}")


def show_dry_run_info(config: Config, static: bool, geojson: bool) -> None:
    """Log what a render would read and write."""
    logger.info("🔍 DRY RUN MODE - No files will be written")
    logger.info("Inputs:")
    for key, exists in config.validate_input_files().items():
        status = "✅" if exists else "❌"
        logger.info(f"  {status} {key}: {config.get_input_source(key)}")
    logger.info("Outputs:")
    logger.info(f"  1. Interactive map: {config.get_flow_map_path()}")
    if static:
        logger.info(f"  2. Static map: {config.get_static_map_path()}")
    if geojson:
        logger.info(f"  3. Flows GeoJSON: {config.get_flows_geojson_path()}")


def setup_logging(verbose: bool = False, enable_trace: bool = False) -> None:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging
    """
    logger.remove()

    if enable_trace:
        log_level = "TRACE"
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    elif verbose:
        log_level = "DEBUG"
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    else:
        log_level = "INFO"
        log_format = (
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
        )

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )

    os.environ["LOGURU_LEVEL"] = log_level

    if verbose:
        logger.debug("🔧 Verbose logging enabled (DEBUG level)")
    if enable_trace:
        logger.trace("🔍 Trace logging enabled - maximum detail mode")


def handle_critical_error(error: Exception, context: str = "") -> None:
    """
    Handle critical errors with optional trace logging.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
    """
    enable_trace = os.environ.get("LOGURU_LEVEL", "INFO") == "TRACE"

    if enable_trace:
        logger.trace(f"Error context: {context}")
        logger.trace(f"Error type: {type(error).__name__}")
        import traceback

        logger.trace("Full traceback:")
        logger.trace(traceback.format_exc())

    logger.critical(f"💥 CRITICAL ERROR: {context}")
    logger.critical(f"Exception: {type(error).__name__}: {error}")

    if not enable_trace:
        logger.info("💡 For detailed debugging, run with --trace flag")


if __name__ == "__main__":
    cli()
