"""
Flow Geometry

Pure planar geometry for the migration flow arcs. All points are in the
y-down screen frame produced by ScreenProjection, so an arc drawn with the
sweep flag set bends the same way it does in an SVG viewport.
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
from pyproj import Transformer

from ops.config_loader import Config

Point = Tuple[float, float]

# Sphere radius used to turn projected metres into unit-sphere units
EARTH_RADIUS_M = 6378137.0

# Spherical Albers with the USA standard parallels; the sphere radius matches
# EARTH_RADIUS_M so one projected metre is exactly 1 / EARTH_RADIUS_M units
ALBERS_USA_CRS = (
    "+proj=aea +lat_1=29.5 +lat_2=45.5 +lat_0=37.5 +lon_0=-96 "
    "+x_0=0 +y_0=0 +R=6378137 +units=m +no_defs"
)
# Lon/lat that geoAlbersUsa places at its translate point
ALBERS_USA_CENTER: Point = (-96.6, 38.7)

# Arrow marker shape in its own viewBox: "M 0 0 L 10 5 L 0 10 Z", anchored at (5, 5)
MARKER_PATH: Tuple[Point, ...] = ((0.0, 0.0), (10.0, 5.0), (0.0, 10.0))
MARKER_REF: Point = (5.0, 5.0)
MARKER_VIEWBOX = 10.0


def distance(source: Point, target: Point) -> float:
    """Euclidean distance between two screen points."""
    return math.hypot(target[0] - source[0], target[1] - source[1])


def arc_radius(source: Point, target: Point, curvature: float = 1.5) -> float:
    """Radius of the flow arc: a fixed multiple of the chord length."""
    return distance(source, target) * curvature


def _fmt(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def curve_path(source: Point, target: Point, curvature: float = 1.5) -> str:
    """
    SVG path data for a single circular arc from source to target.

    Uses the small arc (large-arc flag 0) with the sweep flag set, so every
    flow bends in the same direction.
    """
    dr = arc_radius(source, target, curvature)
    return (
        f"M{_fmt(source[0])},{_fmt(source[1])}"
        f"A{_fmt(dr)},{_fmt(dr)} 0 0,1 {_fmt(target[0])},{_fmt(target[1])}"
    )


def arc_center(
    source: Point, target: Point, radius: float, large_arc: bool = False, sweep: bool = True
) -> Tuple[Point, float]:
    """
    Centre of the SVG arc through source and target.

    Follows the endpoint-to-centre conversion of the SVG implementation notes
    for a circle with no rotation. A radius shorter than half the chord is
    scaled up to exactly half the chord, as SVG renderers do.

    Returns:
        (centre, radius actually used)
    """
    x1, y1 = source
    x2, y2 = target
    hx = (x1 - x2) / 2.0
    hy = (y1 - y2) / 2.0
    half_sq = hx * hx + hy * hy
    if half_sq == 0:
        raise ValueError("Arc endpoints coincide")

    r = max(radius, math.sqrt(half_sq))
    coef = math.sqrt(max(r * r - half_sq, 0.0) / half_sq)
    if large_arc == sweep:
        coef = -coef

    cx = coef * hy + (x1 + x2) / 2.0
    cy = -coef * hx + (y1 + y2) / 2.0
    return (cx, cy), r


def sample_arc(
    source: Point, target: Point, curvature: float = 1.5, samples: int = 48
) -> List[Point]:
    """
    Polyline approximation of curve_path(source, target).

    The first and last points are exactly source and target. Coincident
    endpoints yield the two-point degenerate line.
    """
    if source == target:
        return [source, target]

    (cx, cy), r = arc_center(source, target, arc_radius(source, target, curvature))
    theta1 = math.atan2(source[1] - cy, source[0] - cx)
    theta2 = math.atan2(target[1] - cy, target[0] - cx)

    # sweep flag 1: angle increases from source to target
    delta = (theta2 - theta1) % (2 * math.pi)

    samples = max(samples, 2)
    points = [
        (cx + r * math.cos(theta1 + delta * i / (samples - 1)),
         cy + r * math.sin(theta1 + delta * i / (samples - 1)))
        for i in range(samples)
    ]
    points[0] = source
    points[-1] = target
    return points


def arrowhead(points: Sequence[Point], stroke_width: float, marker_size: float = 6) -> List[Point]:
    """
    Triangle of the end marker, oriented along the last segment of the path.

    The marker scales with the stroke width the way an SVG marker with
    markerUnits="strokeWidth" does.
    """
    (px, py), (ex, ey) = points[-2], points[-1]
    angle = math.atan2(ey - py, ex - px)
    scale = marker_size * stroke_width / MARKER_VIEWBOX
    cos_a, sin_a = math.cos(angle), math.sin(angle)

    triangle = []
    for mx, my in MARKER_PATH:
        dx = (mx - MARKER_REF[0]) * scale
        dy = (my - MARKER_REF[1]) * scale
        triangle.append((ex + dx * cos_a - dy * sin_a, ey + dx * sin_a + dy * cos_a))
    return triangle


class StrokeWidthScale:
    """Linear map from |difference| in [0, domain_max] to a stroke width range, clamped."""

    def __init__(self, domain_max: float, output_range: Tuple[float, float] = (1.0, 5.0)):
        self.domain_max = domain_max
        self.output_range = (float(output_range[0]), float(output_range[1]))

    @classmethod
    def from_differences(
        cls, differences: Iterable[float], output_range: Tuple[float, float] = (1.0, 5.0)
    ) -> "StrokeWidthScale":
        """Build the scale from all region differences; NaN values are ignored."""
        values = np.abs(np.asarray(list(differences), dtype=float))
        values = values[np.isfinite(values)]
        domain_max = float(values.max()) if values.size else math.nan
        return cls(domain_max, output_range)

    def __call__(self, value: float) -> float:
        lo, hi = self.output_range
        if not math.isfinite(self.domain_max) or self.domain_max == 0:
            return (lo + hi) / 2.0
        if value is None or math.isnan(value):
            return math.nan
        t = min(max(value / self.domain_max, 0.0), 1.0)
        return lo + t * (hi - lo)


class ScreenProjection:
    """
    Longitude/latitude to y-down screen coordinates.

    States are projected with a spherical Albers equal-area conic, converted to
    unit-sphere units and multiplied by scale. The frame is then shifted so the
    center point lands on translate, and the y axis is flipped so larger y is
    further south. With the defaults this reproduces the lower-48 frame of
    d3's geoAlbersUsa at scale 1000 (Alaska and Hawaii are not inset).
    """

    def __init__(
        self,
        crs: str = ALBERS_USA_CRS,
        scale: float = 1000,
        translate: Sequence[float] = (730 / 1.75, 350 / 1.45),
        center: Sequence[float] = ALBERS_USA_CENTER,
    ):
        self.crs = crs
        self.scale = float(scale)
        self.translate = (float(translate[0]), float(translate[1]))
        self.center = (float(center[0]), float(center[1]))
        self.meters_per_pixel = EARTH_RADIUS_M / self.scale
        self._forward = Transformer.from_crs("EPSG:4326", crs, always_xy=True)
        self._inverse = Transformer.from_crs(crs, "EPSG:4326", always_xy=True)

        cx, cy = self._forward.transform(*self.center)
        k = 1.0 / self.meters_per_pixel
        self.offset = (self.translate[0] - cx * k, self.translate[1] + cy * k)

    @classmethod
    def from_config(cls, config: Config) -> "ScreenProjection":
        return cls(
            crs=config.get_projection_setting("crs"),
            scale=config.get_projection_setting("scale"),
            translate=config.get_projection_setting("translate"),
            center=config.get_projection_setting("center"),
        )

    @property
    def affine(self) -> List[float]:
        """Shapely affine matrix [a, b, d, e, xoff, yoff] from projected metres to screen."""
        k = 1.0 / self.meters_per_pixel
        return [k, 0.0, 0.0, -k, self.offset[0], self.offset[1]]

    def project(self, gdf: gpd.GeoDataFrame) -> gpd.GeoSeries:
        """Screen-space geometries for every row of gdf (no CRS attached)."""
        source = gdf if gdf.crs is not None else gdf.set_crs("EPSG:4326")
        projected = source.to_crs(self.crs).geometry.affine_transform(self.affine)
        return gpd.GeoSeries(list(projected), index=gdf.index)

    def to_screen(self, lon: float, lat: float) -> Point:
        x, y = self._forward.transform(lon, lat)
        k = 1.0 / self.meters_per_pixel
        return (x * k + self.offset[0], -y * k + self.offset[1])

    def to_lonlat(self, points: Sequence[Point]) -> List[Point]:
        """Invert screen points back to (lon, lat)."""
        if not points:
            return []
        xy = np.asarray(points, dtype=float)
        mx = (xy[:, 0] - self.offset[0]) * self.meters_per_pixel
        my = -(xy[:, 1] - self.offset[1]) * self.meters_per_pixel
        lon, lat = self._inverse.transform(mx, my)
        return list(zip(np.atleast_1d(lon).tolist(), np.atleast_1d(lat).tolist()))


def is_finite_point(point: Optional[Point]) -> bool:
    return point is not None and all(math.isfinite(v) for v in point)
