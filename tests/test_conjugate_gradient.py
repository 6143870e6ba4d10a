import numpy as np
import numpy.testing as npt

from conjugate_gradient import CGWorkspace, cg_solve, cg_solve_preconditioned
from csr import build_csr


def laplacian_1d(n, shift=0.1):
    entries = []
    for i in range(n):
        entries.append((i, i, 2.0 + shift))
        if i > 0:
            entries.append((i, i - 1, -1.0))
        if i < n - 1:
            entries.append((i, i + 1, -1.0))
    return build_csr(n, entries)


def test_identity_converges_in_one_iteration() -> None:
    A = build_csr(4, [(i, i, 1.0) for i in range(4)])
    b = np.array([1.0, 2.0, 3.0, 4.0])

    x = np.zeros(4)
    assert cg_solve(A, b, x) == 1
    npt.assert_allclose(x, b)

    x = np.zeros(4)
    assert cg_solve_preconditioned(A, b, x) == 1
    npt.assert_allclose(x, b)


def test_already_solved_returns_zero() -> None:
    A = build_csr(3, [(i, i, 2.0) for i in range(3)])
    b = np.array([2.0, 4.0, 6.0])
    x = np.array([1.0, 2.0, 3.0])
    assert cg_solve(A, b, x) == 0
    assert cg_solve_preconditioned(A, b, x) == 0
    npt.assert_array_equal(x, [1.0, 2.0, 3.0])


def test_spd_system_matches_dense_solve() -> None:
    A = laplacian_1d(10)
    b = np.linspace(-1.0, 1.0, 10)
    expected = np.linalg.solve(A.to_dense(), b)

    x = np.zeros(10)
    cg_solve(A, b, x, max_iters=50, tol=1e-12)
    npt.assert_allclose(x, expected, atol=1e-8)

    x = np.zeros(10)
    cg_solve_preconditioned(A, b, x, max_iters=50, tol=1e-12)
    npt.assert_allclose(x, expected, atol=1e-8)


def test_iteration_cap_returns_best_iterate() -> None:
    A = laplacian_1d(10)
    dense = A.to_dense()
    b = np.ones(10)
    exact = np.linalg.solve(dense, b)

    x = np.zeros(10)
    assert cg_solve(A, b, x, max_iters=1, tol=1e-12) == 1
    assert np.all(np.isfinite(x))

    # CG decreases the error in the A-norm
    e0 = exact
    e1 = exact - x
    assert e1 @ dense @ e1 < e0 @ dense @ e0


def test_jacobi_preconditioner_handles_scaling() -> None:
    diag = np.array([1.0, 1e2, 1e4])
    A = build_csr(3, [(i, i, d) for i, d in enumerate(diag)])
    b = np.array([1.0, 1.0, 1.0])

    x = np.zeros(3)
    assert cg_solve_preconditioned(A, b, x, diag=diag) == 1
    npt.assert_allclose(x, b / diag)

    x = np.zeros(3)
    assert cg_solve(A, b, x, tol=1e-12) > 1


def test_workspace_is_reused_and_resized() -> None:
    ws = CGWorkspace(2)
    A = laplacian_1d(5)
    b = np.ones(5)
    x = np.zeros(5)
    cg_solve_preconditioned(A, b, x, max_iters=20, tol=1e-12, workspace=ws)
    assert ws.n == 5
    npt.assert_allclose(A.multiply(x), b, atol=1e-8)
