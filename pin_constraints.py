"""
Pin constraint model.

Each pin is bound once to the mesh vertices it influences (rest space,
smoothstep falloff inside its radius). Every global step the bound pins
are turned into soft penalty terms: a diagonal weight per vertex and a
weighted target added to the right-hand side.
"""
import logging
import math
from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from elements import PinKind
from utils import project_onto_polyline, rotation_matrix, smoothstep_falloff

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class PinBinding:
    vertices: np.ndarray  # bound vertex indices
    falloff: np.ndarray  # per bound vertex, in (0, 1]
    cells: np.ndarray  # cells rotated by a pose pin (empty otherwise)
    cell_falloff: np.ndarray


def validate_pin(pin, nVerts):
    """Returns a reason string when the pin cannot be used on this mesh, else None."""
    scalars = {"radius": pin.radius, "stiffness": pin.stiffness}
    if pin.kind is PinKind.POSE:
        scalars.update(angle=pin.angle, scale=pin.scale)
    for name, value in scalars.items():
        try:
            finite = math.isfinite(value)
        except TypeError:
            finite = False
        if not finite:
            return f"pin {pin.id} has a non-finite {name} ({value!r})"
    if pin.radius < 0:
        return f"pin {pin.id} has a negative radius"
    if pin.stiffness < 0:
        return f"pin {pin.id} has a negative stiffness"
    if pin.kind is PinKind.RAIL:
        if not np.all(np.isfinite(pin.poly)):
            return f"rail pin {pin.id} has a non-finite polyline"
        return None
    if pin.vertex is not None and not 0 <= pin.vertex < nVerts:
        return f"pin {pin.id} references vertex {pin.vertex}, mesh has {nVerts}"
    if not (np.all(np.isfinite(pin.pos)) and np.all(np.isfinite(pin.target))):
        return f"pin {pin.id} has a non-finite position"
    return None


def _empty_cells():
    return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.float64)


def _bind_point(pin, tree: cKDTree, rest):
    if pin.vertex is not None:
        return np.array([pin.vertex], dtype=np.int64), np.ones(1)
    idx = np.array(sorted(tree.query_ball_point(pin.pos, pin.radius)), dtype=np.int64)
    if len(idx) > 0:
        falloff = smoothstep_falloff(np.linalg.norm(rest[idx] - pin.pos, axis=1), pin.radius)
        keep = falloff > 0
        if np.any(keep):
            return idx[keep], falloff[keep]
    # nothing strictly inside the radius: fall back to the nearest vertex
    _, nearest = tree.query(pin.pos)
    return np.array([nearest], dtype=np.int64), np.ones(1)


def bind_pin(pin, tree: cKDTree, rest, cells):
    if pin.kind is PinKind.ANCHOR:
        vertices, falloff = _bind_point(pin, tree, rest)
        return PinBinding(vertices, falloff, *_empty_cells())

    if pin.kind is PinKind.POSE:
        vertices, falloff = _bind_point(pin, tree, rest)
        centroids = rest[cells].mean(axis=1)
        cell_falloff = smoothstep_falloff(np.linalg.norm(centroids - pin.pos, axis=1), pin.radius)
        cell_idx = np.flatnonzero(cell_falloff > 0)
        if len(cell_idx) == 0:
            cell_idx = np.flatnonzero(np.isin(cells, vertices).any(axis=1))
            return PinBinding(vertices, falloff, cell_idx, np.ones(len(cell_idx)))
        return PinBinding(vertices, falloff, cell_idx, cell_falloff[cell_idx])

    if pin.kind is PinKind.RAIL:
        _, dist = project_onto_polyline(rest, pin.poly)
        falloff = smoothstep_falloff(dist, pin.radius)
        vertices = np.flatnonzero(falloff > 0)
        if len(vertices) == 0:
            vertices = np.array([int(np.argmin(dist))], dtype=np.int64)
            return PinBinding(vertices, np.ones(1), *_empty_cells())
        return PinBinding(vertices, falloff[vertices], *_empty_cells())

    raise TypeError(f"unhandled pin kind {pin.kind!r}")


def pin_targets(pin, binding: PinBinding, rest, current):
    """Target point of every bound vertex for the current deformation."""
    if pin.kind is PinKind.ANCHOR:
        return np.repeat(pin.target[None, :], len(binding.vertices), axis=0)

    if pin.kind is PinKind.POSE:
        local = (rest[binding.vertices] - pin.pos) * pin.scale
        return pin.target + local @ rotation_matrix(pin.angle).T

    if pin.kind is PinKind.RAIL:
        # re-projected from the deformed positions on every call
        targets, _ = project_onto_polyline(current[binding.vertices], pin.poly)
        return targets

    raise TypeError(f"unhandled pin kind {pin.kind!r}")


def pin_contribution(pin, binding: PinBinding, rest, current, pin_weight):
    """(vertex indices, diagonal weights, rhs contributions) of one pin."""
    weights = pin_weight * pin.stiffness * binding.falloff
    targets = pin_targets(pin, binding, rest, current)
    return binding.vertices, weights, weights[:, None] * targets


def accumulate_pins(pins, bindings, rest, current, pin_weight, pin_w, pin_b):
    """Sum all pin contributions into the pin_w (N,) and pin_b (N, 2) buffers."""
    pin_w[:] = 0.0
    pin_b[:] = 0.0
    for pin, binding in zip(pins, bindings):
        idx, w, b = pin_contribution(pin, binding, rest, current, pin_weight)
        np.add.at(pin_w, idx, w)
        np.add.at(pin_b, idx, b)
    return pin_w, pin_b


def pose_cell_rotations(pins, bindings, nCells):
    """Per cell (blend weight, target angle) from the pose pins covering it."""
    weight = np.zeros(nCells, dtype=np.float64)
    angle = np.zeros(nCells, dtype=np.float64)
    for pin, binding in zip(pins, bindings):
        if pin.kind is not PinKind.POSE or len(binding.cells) == 0:
            continue
        w = np.minimum(1.0, pin.stiffness * binding.cell_falloff)
        # strongest pose pin wins where several overlap
        stronger = w > weight[binding.cells]
        weight[binding.cells[stronger]] = w[stronger]
        angle[binding.cells[stronger]] = pin.angle
    return weight, angle
