import math

import numpy as np
import numpy.testing as npt

from utils import (barycentric_coords, closest_point_on_polyline, project_onto_polyline,
                   smoothstep_falloff, wrap_angle)


def test_closest_point_on_segment_interior_and_ends() -> None:
    poly = [[0.0, 0.0], [2.0, 0.0]]
    p, d = closest_point_on_polyline([1.0, 1.0], poly)
    npt.assert_allclose(p, [1.0, 0.0])
    assert d == 1.0
    p, d = closest_point_on_polyline([-1.0, 0.0], poly)
    npt.assert_allclose(p, [0.0, 0.0])
    assert d == 1.0


def test_closest_point_picks_nearest_segment() -> None:
    poly = [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]]
    p, d = closest_point_on_polyline([1.4, 0.6], poly)
    npt.assert_allclose(p, [1.0, 0.6])
    assert math.isclose(d, 0.4)


def test_degenerate_polylines() -> None:
    p, d = closest_point_on_polyline([3.0, 4.0], [[0.0, 0.0]])
    npt.assert_allclose(p, [0.0, 0.0])
    assert d == 5.0
    p, _ = closest_point_on_polyline([3.0, 4.0], [[0.0, 0.0], [0.0, 0.0], [0.0, 2.0]])
    npt.assert_allclose(p, [0.0, 2.0])


def test_project_many_points() -> None:
    pts = np.array([[0.5, 1.0], [0.5, -2.0]])
    proj, dist = project_onto_polyline(pts, [[0.0, 0.0], [1.0, 0.0]])
    npt.assert_allclose(proj, [[0.5, 0.0], [0.5, 0.0]])
    npt.assert_allclose(dist, [1.0, 2.0])


def test_smoothstep_falloff() -> None:
    npt.assert_allclose(smoothstep_falloff([0.0, 0.5, 1.0, 2.0], 1.0), [1.0, 0.5, 0.0, 0.0])
    npt.assert_allclose(smoothstep_falloff([0.0, 0.1], 0.0), [1.0, 0.0])


def test_wrap_angle() -> None:
    assert math.isclose(wrap_angle(3 * math.pi / 2), -math.pi / 2)
    assert math.isclose(wrap_angle(-math.pi), math.pi)
    assert math.isclose(wrap_angle(0.25), 0.25)
    npt.assert_allclose(wrap_angle(np.array([0.0, 2.0 * math.pi + 0.5, -3.0 * math.pi / 2])),
                        [0.0, 0.5, math.pi / 2])


def test_barycentric_coords() -> None:
    a, b, c = np.array([0.0, 0.0]), np.array([1.0, 0.0]), np.array([0.0, 1.0])
    npt.assert_allclose(barycentric_coords(np.array([0.25, 0.25]), a, b, c), [0.5, 0.25, 0.25])
    npt.assert_allclose(barycentric_coords(a, a, a, a), [1.0, 0.0, 0.0])
