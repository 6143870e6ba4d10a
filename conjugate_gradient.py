import logging

import numpy as np

from csr import CSRMatrix

logger: logging.Logger = logging.getLogger(__name__)

# below this the system is considered solved / the direction degenerate
CG_EPSILON = 1e-20


class CGWorkspace:
    """Work vectors for one n-sized system, reused between solves."""

    def __init__(self, n):
        self.n = int(n)
        self.r = np.zeros(self.n, dtype=np.float64)
        self.z = np.zeros(self.n, dtype=np.float64)
        self.p = np.zeros(self.n, dtype=np.float64)
        self.Ap = np.zeros(self.n, dtype=np.float64)
        self.inv_diag = np.ones(self.n, dtype=np.float64)

    def ensure(self, n):
        if n != self.n:
            self.__init__(n)
        return self


def cg_solve(A: CSRMatrix, b, x, max_iters=40, tol=1e-4, workspace=None):
    """
    Conjugate gradient for the SPD system A x = b.

    x holds the starting guess and is refined in place. Returns the
    number of iterations performed; running out of iterations is not an
    error, x then holds the last iterate.
    """
    n = A.n
    ws = (workspace or CGWorkspace(n)).ensure(n)
    r, p, Ap = ws.r, ws.p, ws.Ap

    # r = b - A x
    A.multiply(x, out=Ap)
    np.subtract(b, Ap, out=r)
    p[:] = r
    rr = float(r @ r)

    if rr < CG_EPSILON:
        return 0
    tol_sq = tol * tol * rr

    for k in range(max_iters):
        A.multiply(p, out=Ap)
        pAp = float(p @ Ap)
        if abs(pAp) < CG_EPSILON:
            return k + 1

        alpha = rr / pAp
        x += alpha * p
        r -= alpha * Ap
        rr_new = float(r @ r)

        if rr_new <= tol_sq:
            return k + 1

        beta = rr_new / rr
        p *= beta
        p += r
        rr = rr_new

    logger.debug("CG stopped at %d iterations, residual^2 %.3e", max_iters, rr)
    return max_iters


def cg_solve_preconditioned(A: CSRMatrix, b, x, diag=None, max_iters=40, tol=1e-4,
                            workspace=None):
    """Conjugate gradient with a Jacobi (diagonal) preconditioner."""
    n = A.n
    ws = (workspace or CGWorkspace(n)).ensure(n)
    r, z, p, Ap, inv_diag = ws.r, ws.z, ws.p, ws.Ap, ws.inv_diag

    if diag is None:
        diag = A.diagonal(out=z)
    inv_diag[:] = 1.0
    nonzero = diag != 0
    inv_diag[nonzero] = 1.0 / diag[nonzero]

    A.multiply(x, out=Ap)
    np.subtract(b, Ap, out=r)
    np.multiply(inv_diag, r, out=z)
    p[:] = z
    rz = float(r @ z)

    if abs(rz) < CG_EPSILON:
        return 0
    tol_sq = tol * tol * abs(rz)

    for k in range(max_iters):
        A.multiply(p, out=Ap)
        pAp = float(p @ Ap)
        if abs(pAp) < CG_EPSILON:
            return k + 1

        alpha = rz / pAp
        x += alpha * p
        r -= alpha * Ap
        np.multiply(inv_diag, r, out=z)
        rz_new = float(r @ z)

        if abs(rz_new) <= tol_sq:
            return k + 1

        beta = rz_new / rz
        p *= beta
        p += z
        rz = rz_new

    logger.debug("PCG stopped at %d iterations, r.z %.3e", max_iters, rz)
    return max_iters
