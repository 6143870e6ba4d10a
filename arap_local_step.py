import numpy as np

from utils import cross2, wrap_angle


def fit_rotations(rest_edges, deformed_edges, weights, edge_cells, n_cells, out=None):
    """
    Best-fit rotation angle per cell (2x2 orthogonal Procrustes).

    For every cell the angle is atan2(sum w (e x f), sum w (e . f)) over
    its edges, e the rest edge vector and f the deformed one. Only the
    rotation is kept, scale and shear are discarded.
    """
    dots = weights * np.einsum('ij,ij->i', rest_edges, deformed_edges)
    crosses = weights * cross2(rest_edges, deformed_edges)
    sum_dot = np.bincount(edge_cells, weights=dots, minlength=n_cells)
    sum_cross = np.bincount(edge_cells, weights=crosses, minlength=n_cells)
    if out is None:
        out = np.empty(n_cells, dtype=np.float64)
    np.arctan2(sum_cross, sum_dot, out=out)
    return out


def apply_pose_rotations(angles, pose_weight, pose_angle):
    """Blend cell angles toward pose pin angles along the shortest arc."""
    mask = pose_weight > 0
    if not np.any(mask):
        return angles
    diff = wrap_angle(pose_angle[mask] - angles[mask])
    angles[mask] += pose_weight[mask] * diff
    return angles


def rotation_matrices(angles, out=None):
    c = np.cos(angles)
    s = np.sin(angles)
    if out is None:
        out = np.empty((len(angles), 2, 2), dtype=np.float64)
    out[:, 0, 0] = c
    out[:, 0, 1] = -s
    out[:, 1, 0] = s
    out[:, 1, 1] = c
    return out
