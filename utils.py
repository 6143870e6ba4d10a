import math

import numpy as np


def vec2(v):
    return np.array(v, dtype=np.float64).reshape(2, )


def cross2(a, b):
    # z component of the 3D cross product, works row-wise on (N, 2) arrays
    return a[..., 0] * b[..., 1] - a[..., 1] * b[..., 0]


def rotation_matrix(angle):
    c = math.cos(angle)
    s = math.sin(angle)
    return np.array([[c, -s], [s, c]], dtype=np.float64)


def wrap_angle(angle):
    """Wrap to (-pi, pi], element-wise for arrays."""
    return np.pi - np.mod(np.pi - angle, 2.0 * np.pi)


def smoothstep_falloff(dist, radius):
    """1 at the centre, 0 at radius and beyond, smoothstep in between."""
    if radius <= 0:
        return np.where(np.asarray(dist) <= 0, 1.0, 0.0)
    t = np.clip(np.asarray(dist, dtype=np.float64) / radius, 0.0, 1.0)
    return 1.0 - t * t * (3.0 - 2.0 * t)


def project_onto_polyline(points, poly):
    """
    Perpendicular projection of every row of points onto a polyline.

    Returns (closest points (N, 2), distances (N,)). Degenerate segments
    are skipped; a polyline made of a single point (or only degenerate
    segments) projects everything onto its first point.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    poly = np.asarray(poly, dtype=np.float64).reshape(-1, 2)
    best = np.repeat(poly[:1], len(points), axis=0)
    best_dist = np.linalg.norm(points - best, axis=1)

    for i in range(len(poly) - 1):
        p0 = poly[i]
        seg = poly[i + 1] - p0
        seg_len2 = float(seg @ seg)
        if seg_len2 < 1e-12:
            continue
        t = np.clip((points - p0) @ seg / seg_len2, 0.0, 1.0)
        proj = p0 + t[:, None] * seg
        dist = np.linalg.norm(points - proj, axis=1)
        closer = dist < best_dist
        best[closer] = proj[closer]
        best_dist[closer] = dist[closer]
    return best, best_dist


def closest_point_on_polyline(p, poly):
    best, dist = project_onto_polyline(p, poly)
    return best[0], float(dist[0])


def barycentric_coords(p, a, b, c):
    # 2D barycentric
    v0 = b - a
    v1 = c - a
    v2 = p - a
    d00 = np.dot(v0, v0)
    d01 = np.dot(v0, v1)
    d11 = np.dot(v1, v1)
    d20 = np.dot(v2, v0)
    d21 = np.dot(v2, v1)
    denom = d00 * d11 - d01 * d01
    if abs(denom) < 1e-20:
        return np.array([1.0, 0.0, 0.0], dtype=np.float64)
    v = (d11 * d20 - d01 * d21) / denom
    w = (d00 * d21 - d01 * d20) / denom
    u = 1.0 - v - w
    return np.array([u, v, w], dtype=np.float64)
