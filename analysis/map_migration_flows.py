"""
Migration Flow Maps

Draws the render plan built by MigrationFlowRenderer:

- An interactive Leaflet map (folium) with hoverable states and flow arcs
- A static Tufte-style PNG (matplotlib) in the projected screen frame
- A GeoJSON of the flow arcs with metadata for web consumption

When either input dataset fails to load nothing is drawn; an error page is
written to the interactive map path instead so the failure is visible to
whoever opens the map.
"""

import html
import json
import math
import time
from pathlib import Path
from typing import Dict, List, Optional

import folium
import geopandas as gpd
import matplotlib.pyplot as plt
from loguru import logger
from matplotlib.patches import Polygon as MplPolygon
from shapely.geometry import LineString, mapping

from analysis.flow_geometry import Point, ScreenProjection
from analysis.migration_flows import (
    INBOUND,
    OUTBOUND,
    FlowArc,
    HoverController,
    MigrationFlowRenderer,
    RenderPlan,
    plan_properties,
)
from ops.config_loader import Config
from processing.data_utils import DatasetLoadError, ensure_output_directory, load_datasets


def _latlon(projection: ScreenProjection, points: List[Point]) -> List[List[float]]:
    """Screen points to folium [lat, lon] pairs."""
    return [[lat, lon] for lon, lat in projection.to_lonlat(points)]


def regions_feature_collection(plan: RenderPlan) -> Dict:
    """States as a GeoJSON FeatureCollection carrying fill and tooltip properties."""
    controller = HoverController(plan.style)
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": plan_properties(region, controller),
                "geometry": mapping(region.geometry) if region.geometry is not None else None,
            }
            for region in plan.regions
        ],
    }


def _add_arc(group: folium.FeatureGroup, arc: FlowArc, projection: ScreenProjection) -> None:
    folium.PolyLine(
        locations=_latlon(projection, arc.points),
        color=arc.stroke,
        weight=arc.stroke_width,
        opacity=0.9,
        tooltip=f"{arc.name}: {arc.difference:+,.0f}",
    ).add_to(group)
    folium.Polygon(
        locations=_latlon(projection, arc.arrowhead),
        color=arc.stroke,
        weight=0,
        fill=True,
        fill_color=arc.stroke,
        fill_opacity=1.0,
    ).add_to(group)


def create_interactive_flow_map(plan: RenderPlan, output_path: Path, config: Config) -> bool:
    """
    Create the interactive folium map.

    Args:
        plan: Render plan
        output_path: Output HTML path
        config: Configuration instance

    Returns:
        Success status
    """
    logger.info("🗺️ Creating interactive migration flow map...")

    try:
        style = plan.style
        features = regions_feature_collection(plan)
        regions_gdf = gpd.GeoDataFrame.from_features(features["features"], crs="EPSG:4326")

        bounds = regions_gdf.total_bounds
        center = [(bounds[1] + bounds[3]) / 2, (bounds[0] + bounds[2]) / 2]
        logger.debug(f"     Map center: {center[0]:.4f}, {center[1]:.4f}")

        m = folium.Map(
            location=center,
            zoom_start=config.get_visualization_setting("zoom_start"),
            tiles=config.get_visualization_setting("tiles"),
        )

        folium.GeoJson(
            data=features,
            name="States",
            style_function=lambda feature: {
                "fillColor": feature["properties"]["fill_color"],
                "color": style.region_stroke_color,
                "weight": style.region_stroke_width,
                "fillOpacity": 0.8,
            },
            highlight_function=lambda feature: {"fillColor": style.hover_color},
            tooltip=folium.GeoJsonTooltip(
                fields=["tooltip_html"],
                labels=False,
                sticky=True,
                offset=tuple(style.tooltip_offset),
            ),
        ).add_to(m)

        ref = html.escape(style.reference_region)
        outbound_group = folium.FeatureGroup(name=f"Moving out of {ref}")
        inbound_group = folium.FeatureGroup(name=f"Moving to {ref}")
        for arc in plan.outbound_arcs:
            _add_arc(outbound_group, arc, plan.projection)
        for arc in plan.inbound_arcs:
            _add_arc(inbound_group, arc, plan.projection)
        outbound_group.add_to(m)
        inbound_group.add_to(m)

        folium.LayerControl(collapsed=False).add_to(m)

        title = html.escape(config.get("project_name", "Migration Flows"))
        title_html = f"""
        <h3 align="center" style="font-size:20px; color: #333333; margin-top:10px;">
        <b>{title}</b><br>
        <span style="font-size:14px;">
        <span style="color:{style.outbound_arc_color};">&#9632;</span> more people moved from {ref}
        &nbsp;
        <span style="color:{style.inbound_arc_color};">&#9632;</span> more people moved to {ref}
        </span>
        </h3>
        """
        m.get_root().html.add_child(folium.Element(title_html))

        m.fit_bounds([[bounds[1], bounds[0]], [bounds[3], bounds[2]]])

        ensure_output_directory(output_path)
        m.save(str(output_path))
        logger.success(f"  ✅ Interactive flow map saved: {output_path}")
        return True

    except Exception as e:
        logger.critical(f"❌ Error creating interactive flow map: {e}")
        logger.trace("Detailed interactive map error:")
        import traceback

        logger.trace(traceback.format_exc())
        return False


def create_static_flow_map(plan: RenderPlan, output_path: Path, config: Config) -> bool:
    """
    Generate a minimalist static map in the screen frame (y grows downward).

    Returns:
        Success status
    """
    logger.info("🎨 Creating static migration flow map...")

    try:
        map_dpi = config.get_visualization_setting("map_dpi")
        fig_width = config.get_visualization_setting("figure_width")

        screen = gpd.GeoDataFrame(
            {"fill": [r.fill for r in plan.regions]},
            geometry=[r.screen_geometry for r in plan.regions],
        )
        screen = screen[screen.geometry.notna() & ~screen.geometry.is_empty]

        minx, miny, maxx, maxy = screen.total_bounds
        aspect = (maxx - minx) / (maxy - miny) if maxy > miny else 1.0
        fig, ax = plt.subplots(figsize=(fig_width, fig_width / aspect), dpi=map_dpi)

        screen.plot(
            ax=ax,
            color=screen["fill"].tolist(),
            edgecolor=plan.style.region_stroke_color,
            linewidth=plan.style.region_stroke_width,
        )

        for arc in plan.arcs:
            xs, ys = zip(*arc.points)
            ax.plot(xs, ys, color=arc.stroke, linewidth=arc.stroke_width, solid_capstyle="round")
            ax.add_patch(MplPolygon(arc.arrowhead, closed=True, color=arc.stroke))

        ax.set_aspect("equal")
        ax.invert_yaxis()
        ax.axis("off")

        title = config.get("project_name", "")
        if title:
            ax.set_title(title, fontsize=14, loc="left")
        note = config.get_metadata("data_source")
        if note:
            fig.text(0.01, 0.01, f"Source: {note}", fontsize=8, color="#666666")

        ensure_output_directory(output_path)
        fig.savefig(output_path, bbox_inches="tight", facecolor="white")
        plt.close(fig)
        logger.success(f"  ✅ Static flow map saved: {output_path}")
        return True

    except Exception as e:
        logger.critical(f"❌ Error creating static flow map: {e}")
        logger.trace("Detailed static map error:")
        import traceback

        logger.trace(traceback.format_exc())
        return False


def export_flows_geojson(plan: RenderPlan, output_path: Path, config: Config) -> bool:
    """
    Export the flow arcs as GeoJSON LineStrings (WGS84) with metadata.

    Returns:
        Success status
    """
    logger.info(f"💾 Exporting flows GeoJSON: {output_path}")

    try:
        records = []
        geometries = []
        for arc in plan.arcs:
            geometries.append(LineString(plan.projection.to_lonlat(arc.points)))
            records.append(
                {
                    "name": arc.name,
                    "direction": arc.direction,
                    "difference": int(arc.difference),
                    "stroke": arc.stroke,
                    "stroke_width": round(arc.stroke_width, 3),
                    "svg_path": arc.path,
                }
            )

        gdf = gpd.GeoDataFrame(
            records,
            geometry=geometries,
            crs=config.get_system_setting("output_crs"),
            columns=["name", "direction", "difference", "stroke", "stroke_width", "svg_path"],
        )

        ensure_output_directory(output_path)
        if gdf.empty:
            geojson_data = {"type": "FeatureCollection", "features": []}
        else:
            gdf.to_file(output_path, driver="GeoJSON")
            with open(output_path, "r") as f:
                geojson_data = json.load(f)

        domain_max = plan.stroke_scale.domain_max
        geojson_data["metadata"] = {
            "title": f"{config.get('project_name')} - migration flows",
            "source": config.get_metadata("data_source"),
            "created": time.strftime("%Y-%m-%d"),
            "crs": config.get_system_setting("output_crs"),
            "reference_region": plan.style.reference_region,
            "features_count": len(gdf),
            "summary_statistics": {
                "outbound_arcs": len(plan.outbound_arcs),
                "inbound_arcs": len(plan.inbound_arcs),
                "outbound_threshold": plan.style.outbound_threshold,
                "inbound_threshold": plan.style.inbound_threshold,
                "max_abs_difference": domain_max if math.isfinite(domain_max) else None,
            },
            "field_descriptions": {
                "name": "State at the far end of the flow",
                "direction": f"'{OUTBOUND}' = from the reference region, '{INBOUND}' = to it",
                "difference": "Net migration: coming from minus going to the reference region",
                "stroke_width": "Arc stroke width, linear in |difference|",
                "svg_path": "Arc as SVG path data in screen coordinates",
            },
        }

        with open(output_path, "w") as f:
            json.dump(geojson_data, f, separators=(",", ":"), allow_nan=False)

        logger.success(f"  ✅ Exported {len(gdf):,} flow arcs")
        return True

    except Exception as e:
        logger.critical(f"❌ Flows GeoJSON export failed: {e}")
        logger.trace("Detailed export error:")
        import traceback

        logger.trace(traceback.format_exc())
        return False


def render_error_page(output_path: Path, message: str, title: str = "Migration Flows") -> Path:
    """Write a map page that shows the load failure instead of the flows."""
    m = folium.Map(location=[39.5, -98.35], zoom_start=4, tiles="CartoDB Positron")
    error_html = f"""
    <div style="position: fixed; top: 20px; left: 50%; transform: translateX(-50%);
                z-index: 9999; background: #fff3f3; border: 2px solid #cc0000;
                border-radius: 5px; padding: 12px 20px; font-family: Arial, sans-serif;">
      <b>{html.escape(title)}: the map could not be drawn.</b><br>
      <span style="font-size: 13px;">{html.escape(message)}</span>
    </div>
    """
    m.get_root().html.add_child(folium.Element(error_html))
    ensure_output_directory(output_path)
    m.save(str(output_path))
    logger.info(f"  📄 Error page written: {output_path}")
    return output_path


def render_flow_maps(
    config: Config, static: bool = True, geojson: bool = True
) -> Dict[str, Optional[Path]]:
    """
    Load both datasets, build the render plan and write every output.

    Raises:
        DatasetLoadError: when either dataset fails to load (error page written first)
        ReferenceRegionError: when the reference region has no boundary feature
    """
    map_path = config.get_flow_map_path()

    try:
        boundaries, migration = load_datasets(config)
    except DatasetLoadError as e:
        render_error_page(map_path, str(e), config.get("project_name", "Migration Flows"))
        raise

    plan = MigrationFlowRenderer.from_config(config).plan(boundaries, migration)

    outputs: Dict[str, Optional[Path]] = {"map": None, "static": None, "geojson": None}

    if create_interactive_flow_map(plan, map_path, config):
        outputs["map"] = map_path
    else:
        raise RuntimeError(f"Interactive map could not be written to {map_path}")

    if static:
        static_path = config.get_static_map_path()
        if create_static_flow_map(plan, static_path, config):
            outputs["static"] = static_path
        else:
            logger.warning("⚠️ Static map creation failed, continuing...")

    if geojson:
        geojson_path = config.get_flows_geojson_path()
        if export_flows_geojson(plan, geojson_path, config):
            outputs["geojson"] = geojson_path
        else:
            logger.warning("⚠️ Flows GeoJSON export failed, continuing...")

    return outputs
