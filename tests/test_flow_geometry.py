import math

import pytest

from analysis.flow_geometry import (
    ALBERS_USA_CENTER,
    ScreenProjection,
    StrokeWidthScale,
    arc_center,
    arc_radius,
    arrowhead,
    curve_path,
    distance,
    sample_arc,
)


@pytest.mark.parametrize(
    "source,target",
    [((0, 0), (3, 4)), ((10.5, -2), (-7, 13)), ((100, 100), (100, 250))],
)
def test_arc_radius_is_one_and_a_half_times_distance(source, target):
    assert arc_radius(source, target) == pytest.approx(1.5 * distance(source, target))


def test_curve_path_format():
    assert curve_path((0, 0), (3, 4)) == "M0,0A7.5,7.5 0 0,1 3,4"
    assert curve_path((1.25, 2), (4.25, 6)) == "M1.25,2A7.5,7.5 0 0,1 4.25,6"


def test_sampled_arc_lies_on_circle_and_hits_endpoints():
    source, target = (120.0, 300.0), (560.0, 180.0)
    points = sample_arc(source, target, samples=32)

    assert len(points) == 32
    assert points[0] == source
    assert points[-1] == target

    (cx, cy), r = arc_center(source, target, arc_radius(source, target))
    for x, y in points:
        assert math.hypot(x - cx, y - cy) == pytest.approx(r, rel=1e-9)


def test_arc_bends_upward_in_screen_space():
    # Left to right with the sweep flag set bows toward negative y (up on screen)
    points = sample_arc((0.0, 0.0), (100.0, 0.0), samples=21)
    assert points[10][1] < 0

    # Reversing the direction bows the other way
    points = sample_arc((100.0, 0.0), (0.0, 0.0), samples=21)
    assert points[10][1] > 0


def test_sample_arc_with_coincident_endpoints():
    assert sample_arc((5.0, 5.0), (5.0, 5.0)) == [(5.0, 5.0), (5.0, 5.0)]


def test_arrowhead_points_along_last_segment():
    top, tip, bottom = arrowhead([(0.0, 0.0), (10.0, 0.0)], stroke_width=1, marker_size=6)
    # Marker is 6 stroke widths across a viewBox of 10, anchored at its centre
    assert tip == pytest.approx((13.0, 0.0))
    assert top == pytest.approx((7.0, -3.0))
    assert bottom == pytest.approx((7.0, 3.0))


def test_arrowhead_scales_with_stroke_width():
    _, tip, _ = arrowhead([(0.0, 0.0), (0.0, 10.0)], stroke_width=2, marker_size=6)
    assert tip == pytest.approx((0.0, 16.0))


def test_stroke_width_scale_maps_to_range():
    scale = StrokeWidthScale.from_differences([20000, -10000, float("nan"), 0, 50])

    assert scale.domain_max == 20000
    assert scale(0) == 1
    assert scale(10000) == pytest.approx(3)
    assert scale(20000) == 5
    assert scale(40000) == 5


def test_stroke_width_scale_is_monotonic():
    scale = StrokeWidthScale(12000)
    widths = [scale(v) for v in (0, 1000, 4500, 9000, 12000)]
    assert widths == sorted(widths)
    assert all(1 <= w <= 5 for w in widths)


def test_stroke_width_scale_degenerate_domain_uses_midpoint():
    assert StrokeWidthScale.from_differences([0, 0])(0) == 3
    assert StrokeWidthScale.from_differences([float("nan")])(100) == 3


def test_screen_projection_orientation():
    projection = ScreenProjection()
    la = projection.to_screen(-118.2, 34.0)
    nyc = projection.to_screen(-74.0, 40.7)
    seattle = projection.to_screen(-122.3, 47.6)

    assert la[0] < nyc[0]
    # y grows southward
    assert seattle[1] < la[1]


def test_screen_projection_inverts_points():
    projection = ScreenProjection()
    point = projection.to_screen(-98.5, 39.8)
    [(lon, lat)] = projection.to_lonlat([point])

    assert lon == pytest.approx(-98.5, abs=1e-6)
    assert lat == pytest.approx(39.8, abs=1e-6)


def test_screen_projection_places_center_at_translate():
    projection = ScreenProjection()
    x, y = projection.to_screen(*ALBERS_USA_CENTER)
    assert x == pytest.approx(730 / 1.75, abs=1e-6)
    assert y == pytest.approx(350 / 1.45, abs=1e-6)


def test_screen_projection_uses_unit_sphere_scale():
    # One degree of latitude on the central meridian is 1/57.3 sphere units
    projection = ScreenProjection(scale=1000)
    _, y_south = projection.to_screen(-96.0, 38.0)
    _, y_north = projection.to_screen(-96.0, 39.0)
    assert y_south - y_north == pytest.approx(1000 * math.pi / 180, rel=0.05)


def test_screen_projection_translate_follows_config(config):
    projection = ScreenProjection.from_config(config)
    assert projection.center == ALBERS_USA_CENTER
    assert projection.to_screen(*ALBERS_USA_CENTER) == pytest.approx(projection.translate)
