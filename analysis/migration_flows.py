"""
Migration Flow Analysis

Joins per-state migration counts onto state boundaries, classifies each state
by the direction of its net migration relative to the reference region
(California), and builds the render plan: one fill-coloured shape per state
plus curved arcs for the strongest flows in each direction.

Key Analysis:
- difference = coming_from_reference - going_to_reference
- States with difference > outbound_threshold get an arc from the reference region
- States with difference < inbound_threshold get an arc back to the reference region
- The reference region never receives an arc, whatever its own counts
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import geopandas as gpd
import pandas as pd
from loguru import logger
from shapely.geometry.base import BaseGeometry

from analysis.flow_geometry import (
    Point,
    ScreenProjection,
    StrokeWidthScale,
    arrowhead,
    curve_path,
    is_finite_point,
    sample_arc,
)
from ops.config_loader import Config
from processing.data_utils import clean_numeric

OUTBOUND = "to"
INBOUND = "from"


class ReferenceRegionError(LookupError):
    """Raised when the reference region is missing from the boundary data."""


@dataclass(frozen=True)
class FlowStyle:
    """Thresholds, colours and column names for one render."""

    reference_region: str = "California"
    outbound_threshold: float = 10000
    inbound_threshold: float = -4500
    curvature: float = 1.5
    arc_samples: int = 48
    reference_color: str = "#8953fc"
    inbound_color: str = "blue"
    outbound_color: str = "pink"
    unmatched_fill_color: Optional[str] = None
    hover_color: str = "#ff9ee7"
    region_stroke_color: str = "white"
    region_stroke_width: float = 2.5
    outbound_arc_color: str = "yellow"
    inbound_arc_color: str = "red"
    stroke_width_range: Tuple[float, float] = (1.0, 5.0)
    marker_size: float = 6
    tooltip_offset: Tuple[float, float] = (20, -20)
    name_column: str = "name"
    coming_column: str = "coming_from_california"
    going_column: str = "going_to_california"

    @classmethod
    def from_config(cls, config: Config) -> "FlowStyle":
        viz = config.get_visualization_setting
        analysis = config.get_analysis_setting
        return cls(
            reference_region=analysis("reference_region"),
            outbound_threshold=analysis("outbound_threshold"),
            inbound_threshold=analysis("inbound_threshold"),
            curvature=analysis("arc_curvature"),
            arc_samples=int(analysis("arc_samples")),
            reference_color=viz("reference_color"),
            inbound_color=viz("inbound_color"),
            outbound_color=viz("outbound_color"),
            unmatched_fill_color=viz("unmatched_fill_color") or None,
            hover_color=viz("hover_color"),
            region_stroke_color=viz("region_stroke_color"),
            region_stroke_width=viz("region_stroke_width"),
            outbound_arc_color=viz("outbound_arc_color"),
            inbound_arc_color=viz("inbound_arc_color"),
            stroke_width_range=tuple(viz("stroke_width_range")),
            marker_size=viz("marker_size"),
            tooltip_offset=tuple(viz("tooltip_offset")),
            name_column=config.get_column_name("region_name"),
            coming_column=config.get_column_name("coming_from_reference"),
            going_column=config.get_column_name("going_to_reference"),
        )

    def arc_color(self, direction: str) -> str:
        return self.outbound_arc_color if direction == OUTBOUND else self.inbound_arc_color

    def marker_id(self, direction: str) -> str:
        # The inbound marker keeps the id "arrowhead-pink" although it is drawn in the inbound arc colour
        return "arrowhead-yellow" if direction == OUTBOUND else "arrowhead-pink"


@dataclass
class RegionStyle:
    """Render instruction for one state shape."""

    name: str
    fill: str
    stroke: str
    stroke_width: float
    difference: float
    coming_from_reference: float
    going_to_reference: float
    geometry: BaseGeometry
    screen_geometry: BaseGeometry

    @property
    def has_record(self) -> bool:
        return not math.isnan(self.difference)


@dataclass
class FlowArc:
    """Render instruction for one directional flow arc."""

    name: str
    direction: str
    source: Point
    target: Point
    difference: float
    path: str
    points: List[Point]
    arrowhead: List[Point]
    stroke: str
    stroke_width: float
    marker_id: str


@dataclass
class RenderPlan:
    """Everything a renderer needs to draw the flow map."""

    regions: List[RegionStyle]
    outbound_arcs: List[FlowArc]
    inbound_arcs: List[FlowArc]
    reference_point: Point
    stroke_scale: StrokeWidthScale
    projection: ScreenProjection
    style: FlowStyle = field(default_factory=FlowStyle)

    @property
    def arcs(self) -> List[FlowArc]:
        return self.outbound_arcs + self.inbound_arcs

    def region(self, name: str) -> RegionStyle:
        for region in self.regions:
            if region.name == name:
                return region
        raise KeyError(name)

    def summary(self) -> pd.DataFrame:
        """One row per state: counts, fill and arc (if any), sorted by difference."""
        arcs = {arc.name: arc for arc in self.arcs}
        rows = []
        for region in self.regions:
            arc = arcs.get(region.name)
            rows.append(
                {
                    "name": region.name,
                    "coming_from_reference": region.coming_from_reference,
                    "going_to_reference": region.going_to_reference,
                    "difference": region.difference,
                    "fill": region.fill,
                    "arc": arc.direction if arc else "",
                    "stroke_width": round(arc.stroke_width, 2) if arc else math.nan,
                }
            )
        return pd.DataFrame(rows).sort_values("difference", ascending=False, na_position="last")


def join_migration_data(
    boundaries: gpd.GeoDataFrame, migration: pd.DataFrame, style: FlowStyle
) -> gpd.GeoDataFrame:
    """
    Attach migration counts and net difference to each boundary feature.

    States without a record keep NaN counts and a NaN difference. Blank counts
    read as 0; other counts that cannot be parsed as numbers become NaN.

    Args:
        boundaries: GeoDataFrame with a name column
        migration: DataFrame of counts indexed by state name
        style: Column names

    Returns:
        Copy of boundaries with count and difference columns added
    """
    logger.info("🔗 Joining migration records onto state boundaries...")

    gdf = boundaries.copy()
    names = gdf[style.name_column]

    coming = clean_numeric(migration[style.coming_column], blank_as_zero=True)
    going = clean_numeric(migration[style.going_column], blank_as_zero=True)

    malformed = migration.index[
        (coming.isna() & migration[style.coming_column].notna())
        | (going.isna() & migration[style.going_column].notna())
    ]
    if len(malformed) > 0:
        logger.warning(f"  ⚠️ Non-numeric counts for {len(malformed)} states: {list(malformed)}")

    gdf[style.coming_column] = names.map(coming).astype(float)
    gdf[style.going_column] = names.map(going).astype(float)
    gdf["difference"] = gdf[style.coming_column] - gdf[style.going_column]

    boundary_names = set(names)
    record_names = set(migration.index)
    boundary_only = sorted(boundary_names - record_names)
    record_only = sorted(record_names - boundary_names)

    logger.debug(f"     Boundary features: {len(boundary_names):,}")
    logger.debug(f"     Migration records: {len(record_names):,}")
    logger.debug(f"     Matched: {len(boundary_names & record_names):,}")
    if boundary_only:
        logger.warning(f"  ⚠️ {len(boundary_only)} states without migration data: {boundary_only}")
    if record_only:
        logger.debug(f"  📍 {len(record_only)} migration records without a boundary: {record_only}")

    logger.success(f"  ✅ Joined migration data for {int(gdf['difference'].notna().sum())} states")
    return gdf


def classify_fill(name: str, difference: float, style: FlowStyle) -> str:
    """
    Fill colour of a state.

    The reference region is always highlighted. Other states are coloured by
    the sign of their difference; an unset difference is not >= 0 and falls
    into the outbound colour unless unmatched_fill_color is configured.
    """
    if name == style.reference_region:
        return style.reference_color
    if difference >= 0:
        return style.inbound_color
    if style.unmatched_fill_color and math.isnan(difference):
        return style.unmatched_fill_color
    return style.outbound_color


def compute_centroids(
    joined: gpd.GeoDataFrame, screen_geometry: gpd.GeoSeries, style: FlowStyle
) -> pd.DataFrame:
    """Screen-space centroid, name and difference for every state."""
    centroids = screen_geometry.centroid
    return pd.DataFrame(
        {
            "name": joined[style.name_column].values,
            "x": centroids.x.values,
            "y": centroids.y.values,
            "difference": joined["difference"].values,
        },
        index=joined.index,
    )


def select_outbound(centroids: pd.DataFrame, style: FlowStyle) -> pd.DataFrame:
    """States that draw an arc from the reference region."""
    mask = (centroids["difference"] > style.outbound_threshold) & (
        centroids["name"] != style.reference_region
    )
    return centroids[mask]


def select_inbound(centroids: pd.DataFrame, style: FlowStyle) -> pd.DataFrame:
    """States that draw an arc back to the reference region."""
    mask = (centroids["difference"] < style.inbound_threshold) & (
        centroids["name"] != style.reference_region
    )
    return centroids[mask]


def reference_point(centroids: pd.DataFrame, style: FlowStyle) -> Point:
    match = centroids[centroids["name"] == style.reference_region]
    if match.empty:
        raise ReferenceRegionError(
            f"Reference region '{style.reference_region}' not found in boundary data"
        )
    row = match.iloc[0]
    point = (float(row["x"]), float(row["y"]))
    if not is_finite_point(point):
        raise ReferenceRegionError(
            f"Reference region '{style.reference_region}' has no usable geometry"
        )
    return point


def build_arc(
    name: str,
    direction: str,
    source: Point,
    target: Point,
    difference: float,
    stroke_scale: StrokeWidthScale,
    style: FlowStyle,
) -> FlowArc:
    stroke_width = stroke_scale(abs(difference))
    points = sample_arc(source, target, style.curvature, style.arc_samples)
    return FlowArc(
        name=name,
        direction=direction,
        source=source,
        target=target,
        difference=difference,
        path=curve_path(source, target, style.curvature),
        points=points,
        arrowhead=arrowhead(points, stroke_width, style.marker_size),
        stroke=style.arc_color(direction),
        stroke_width=stroke_width,
        marker_id=style.marker_id(direction),
    )


@dataclass(frozen=True)
class TooltipState:
    left: float
    top: float
    visible: bool
    html: str = ""


@dataclass(frozen=True)
class HoverState:
    region: str
    fill: str
    tooltip: TooltipState


def format_count(value: float) -> str:
    if value is None or math.isnan(value):
        return "No data"
    return str(int(value)) if float(value).is_integer() else str(value)


class HoverController:
    """Pointer interaction over a state: highlight and tooltip."""

    def __init__(self, style: FlowStyle):
        self.style = style

    def tooltip_html(self, region: RegionStyle) -> str:
        ref = self.style.reference_region
        return (
            f"State: {region.name}<br>"
            f"Coming from {ref}: {format_count(region.coming_from_reference)}<br>"
            f"Going to {ref}: {format_count(region.going_to_reference)}"
        )

    def _position(self, position: Point) -> Tuple[float, float]:
        dx, dy = self.style.tooltip_offset
        return position[0] + dx, position[1] + dy

    def on_hover(self, region: RegionStyle, position: Point) -> HoverState:
        left, top = self._position(position)
        return HoverState(
            region=region.name,
            fill=self.style.hover_color,
            tooltip=TooltipState(left, top, True, self.tooltip_html(region)),
        )

    def on_move(self, tooltip: TooltipState, position: Point) -> TooltipState:
        left, top = self._position(position)
        return TooltipState(left, top, tooltip.visible, tooltip.html)

    def on_leave(self, region: RegionStyle) -> HoverState:
        return HoverState(
            region=region.name,
            fill=classify_fill(region.name, region.difference, self.style),
            tooltip=TooltipState(0, 0, False),
        )


class MigrationFlowRenderer:
    """Builds the render plan from the boundary and migration datasets."""

    def __init__(self, style: Optional[FlowStyle] = None, projection: Optional[ScreenProjection] = None):
        self.style = style or FlowStyle()
        self.projection = projection or ScreenProjection()

    @classmethod
    def from_config(cls, config: Config) -> "MigrationFlowRenderer":
        return cls(FlowStyle.from_config(config), ScreenProjection.from_config(config))

    def plan(self, boundaries: gpd.GeoDataFrame, migration: pd.DataFrame) -> RenderPlan:
        """
        Join, classify, project and filter.

        Raises:
            ReferenceRegionError: if the reference region has no boundary feature
        """
        style = self.style
        joined = join_migration_data(boundaries, migration, style)

        logger.info("📐 Projecting states to screen space...")
        screen = self.projection.project(joined)
        centroids = compute_centroids(joined, screen, style)
        origin = reference_point(centroids, style)

        stroke_scale = StrokeWidthScale.from_differences(
            joined["difference"], style.stroke_width_range
        )
        logger.debug(f"     Stroke scale domain: [0, {stroke_scale.domain_max}]")

        regions = [
            RegionStyle(
                name=row[style.name_column],
                fill=classify_fill(row[style.name_column], row["difference"], style),
                stroke=style.region_stroke_color,
                stroke_width=style.region_stroke_width,
                difference=float(row["difference"]),
                coming_from_reference=float(row[style.coming_column]),
                going_to_reference=float(row[style.going_column]),
                geometry=row[joined.geometry.name],
                screen_geometry=screen.loc[idx],
            )
            for idx, row in joined.iterrows()
        ]

        outbound = self._arcs(select_outbound(centroids, style), OUTBOUND, origin, stroke_scale)
        inbound = self._arcs(select_inbound(centroids, style), INBOUND, origin, stroke_scale)

        logger.success(
            f"  ✅ Render plan: {len(regions)} states, {len(outbound)} outbound arcs, "
            f"{len(inbound)} inbound arcs"
        )
        return RenderPlan(
            regions=regions,
            outbound_arcs=outbound,
            inbound_arcs=inbound,
            reference_point=origin,
            stroke_scale=stroke_scale,
            projection=self.projection,
            style=style,
        )

    def _arcs(
        self, selected: pd.DataFrame, direction: str, origin: Point, stroke_scale: StrokeWidthScale
    ) -> List[FlowArc]:
        arcs = []
        for _, row in selected.iterrows():
            point = (float(row["x"]), float(row["y"]))
            if not is_finite_point(point):
                logger.warning(f"  ⚠️ Skipping arc for {row['name']}: empty geometry")
                continue
            source, target = (origin, point) if direction == OUTBOUND else (point, origin)
            arcs.append(
                build_arc(
                    row["name"], direction, source, target, float(row["difference"]),
                    stroke_scale, self.style,
                )
            )
        return arcs


def plan_properties(region: RegionStyle, controller: HoverController) -> Dict[str, Any]:
    """GeoJSON properties of a region, including its tooltip text."""
    return {
        "name": region.name,
        "fill_color": region.fill,
        "difference": None if not region.has_record else region.difference,
        "coming_from_reference": format_count(region.coming_from_reference),
        "going_to_reference": format_count(region.going_to_reference),
        "tooltip_html": controller.tooltip_html(region),
    }
