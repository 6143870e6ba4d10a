import logging

import numpy as np

from conjugate_gradient import CGWorkspace, cg_solve_preconditioned
from csr import CSRMatrix
from utils import cross2

logger: logging.Logger = logging.getLogger(__name__)

# cotangent weights are clamped here so the Laplacian stays positive semi-definite
MIN_EDGE_WEIGHT = 1e-3


def cell_edges(vertices, cells):
    """
    Per-cell edge list of a mesh.

    Returns (edge_i, edge_j, edge_w, edge_cell): one row per edge of every
    cell, so interior edges appear once per adjacent cell. Triangle edges
    carry half the cotangent of the opposite angle, edge cells weight 1.
    """
    nCells, k = cells.shape
    if k == 2:
        return (cells[:, 0].copy(), cells[:, 1].copy(),
                np.ones(nCells, dtype=np.float64), np.arange(nCells, dtype=np.int64))

    edge_i = []
    edge_j = []
    edge_w = []
    for j in range(3):
        nA = cells[:, j]
        nB = cells[:, (j + 1) % 3]
        nO = cells[:, (j + 2) % 3]
        vA = vertices[nA] - vertices[nO]
        vB = vertices[nB] - vertices[nO]
        dot = np.einsum('ij,ij->i', vA, vB)
        crs = np.abs(cross2(vA, vB))
        cot = np.divide(dot, crs, out=np.zeros_like(dot), where=crs > 1e-12)
        edge_i.append(nA)
        edge_j.append(nB)
        edge_w.append(np.maximum(0.5 * cot, MIN_EDGE_WEIGHT))

    edge_cell = np.tile(np.arange(nCells, dtype=np.int64), 3)
    return (np.concatenate(edge_i), np.concatenate(edge_j),
            np.concatenate(edge_w), edge_cell)


def seam_barrier_factors(vertices, edge_i, edge_j, boundary_field, strength, samples=8):
    """
    exp(-strength * mean boundary strength) per edge.

    The field is sampled at samples + 1 evenly spaced points along each edge,
    rounded to the nearest pixel and clamped to the image.
    """
    field = np.asarray(boundary_field)
    scale = 1.0 / 255.0 if np.issubdtype(field.dtype, np.integer) else 1.0
    nRows, nCols = field.shape
    t = np.linspace(0.0, 1.0, samples + 1)
    a = vertices[edge_i]
    d = vertices[edge_j] - a
    pts = a[:, None, :] + d[:, None, :] * t[None, :, None]
    x = np.clip(np.floor(pts[..., 0] + 0.5), 0, nCols - 1).astype(np.int64)
    y = np.clip(np.floor(pts[..., 1] + 0.5), 0, nRows - 1).astype(np.int64)
    boundary = field[y, x].astype(np.float64) * scale
    return np.exp(-strength * boundary.mean(axis=1))


class GlobalSystem:
    """
    Linear system of the ARAP global step, L + diag(pin weights).

    The sparse structure and all buffers are allocated once per mesh and
    material; solves only rewrite diagonal values and right-hand sides.

    Edge weights are the cotangent weights times the mean stiffness
    multiplier of the two endpoints times the seam barrier factor, floored at
    MIN_EDGE_WEIGHT and scaled by the material stiffness. The same weights
    drive the Laplacian, the right-hand side and the rotation fit.
    """

    def __init__(self, vertices, cells, stiffness=1.0, vertex_stiffness=None, seam=None):
        self.rest = np.asarray(vertices, dtype=np.float64)
        self.cells = np.asarray(cells, dtype=np.int64)
        self.n = self.rest.shape[0]
        self.nCells = self.cells.shape[0]
        self.stiffness = float(stiffness)

        self.edge_i, self.edge_j, w, self.edge_cell = cell_edges(self.rest, self.cells)
        if vertex_stiffness is not None:
            s = np.asarray(vertex_stiffness, dtype=np.float64)
            w = w * (0.5 * (s[self.edge_i] + s[self.edge_j]))
        if seam is not None and seam.active:
            w = w * seam_barrier_factors(self.rest, self.edge_i, self.edge_j,
                                         seam.boundary_field, seam.strength)
        self.edge_w = np.maximum(w, MIN_EDGE_WEIGHT) * self.stiffness
        self.rest_edges = self.rest[self.edge_i] - self.rest[self.edge_j]

        self.A = self._build_laplacian()
        self.lap_diag = self.A.diagonal()
        self.diag = self.lap_diag.copy()
        self.pin_w = np.zeros(self.n, dtype=np.float64)

        self.rhs = np.zeros((self.n, 2), dtype=np.float64)
        self.rhs_x = np.zeros(self.n, dtype=np.float64)
        self.rhs_y = np.zeros(self.n, dtype=np.float64)
        self.sol_x = np.zeros(self.n, dtype=np.float64)
        self.sol_y = np.zeros(self.n, dtype=np.float64)
        self.rotated = np.zeros((len(self.edge_i), 2), dtype=np.float64)
        self.deformed = np.zeros((len(self.edge_i), 2), dtype=np.float64)
        self.deformed_j = np.zeros((len(self.edge_i), 2), dtype=np.float64)
        self.workspace = CGWorkspace(self.n)

    def _build_laplacian(self):
        nA = self.edge_i
        nB = self.edge_j
        w = self.edge_w
        seed = np.arange(self.n, dtype=np.int64)
        # explicit zero diagonal for every row so set_diagonal always finds a slot
        rows = np.concatenate([seed, nA, nB, nA, nB])
        cols = np.concatenate([seed, nA, nB, nB, nA])
        vals = np.concatenate([np.zeros(self.n), w, w, -w, -w])
        A = CSRMatrix.from_arrays(self.n, rows, cols, vals)
        logger.debug("Assembled %dx%d Laplacian, nnz %d", self.n, self.n, A.nnz)
        return A

    def set_pin_weights(self, pin_w):
        changed = np.flatnonzero(pin_w != self.pin_w)
        for i in changed:
            self.A.set_diagonal(i, self.lap_diag[i] + pin_w[i])
        self.pin_w[:] = pin_w
        np.add(self.lap_diag, self.pin_w, out=self.diag)

    def assemble_rhs(self, rotations, pin_b):
        """b = sum over cell edges of +-w R_c (p_i - p_j), plus the pin terms."""
        np.einsum('eab,eb->ea', rotations[self.edge_cell], self.rest_edges, out=self.rotated)
        self.rotated *= self.edge_w[:, None]
        self.rhs[:] = pin_b
        np.add.at(self.rhs, self.edge_i, self.rotated)
        np.subtract.at(self.rhs, self.edge_j, self.rotated)
        self.rhs_x[:] = self.rhs[:, 0]
        self.rhs_y[:] = self.rhs[:, 1]
        return self.rhs

    def deformed_edges(self, positions):
        """p_i - p_j for every cell edge, written into a reused buffer."""
        np.take(positions, self.edge_i, axis=0, out=self.deformed)
        np.take(positions, self.edge_j, axis=0, out=self.deformed_j)
        self.deformed -= self.deformed_j
        return self.deformed

    def solve(self, x0, max_iters, tol, out=None):
        """Warm-started CG solve for both coordinates; returns (positions, iterations)."""
        self.sol_x[:] = x0[:, 0]
        self.sol_y[:] = x0[:, 1]
        itersX = cg_solve_preconditioned(self.A, self.rhs_x, self.sol_x, self.diag,
                                         max_iters, tol, self.workspace)
        itersY = cg_solve_preconditioned(self.A, self.rhs_y, self.sol_y, self.diag,
                                         max_iters, tol, self.workspace)
        if out is None:
            out = np.empty((self.n, 2), dtype=np.float64)
        out[:, 0] = self.sol_x
        out[:, 1] = self.sol_y
        return out, max(itersX, itersY)

    def energy(self, positions, rotations, pin_terms=()):
        """
        ARAP energy of positions under the given per-cell rotations.

        pin_terms is an iterable of (vertex indices, weights, targets).
        """
        deformed = positions[self.edge_i] - positions[self.edge_j]
        rotated = np.einsum('eab,eb->ea', rotations[self.edge_cell], self.rest_edges)
        e = float(np.sum(self.edge_w * np.sum((deformed - rotated) ** 2, axis=1)))
        for idx, w, targets in pin_terms:
            e += float(np.sum(w * np.sum((positions[idx] - targets) ** 2, axis=1)))
        return e
