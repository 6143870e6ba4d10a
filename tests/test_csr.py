import numpy as np
import numpy.testing as npt
import pytest

from csr import CSRMatrix, build_csr


def test_nnz_counts_distinct_pairs() -> None:
    rng = np.random.default_rng(0)
    rows = rng.integers(0, 6, size=50)
    cols = rng.integers(0, 6, size=50)
    vals = rng.normal(size=50)
    entries = list(zip(rows.tolist(), cols.tolist(), vals.tolist()))

    A = build_csr(6, entries)

    assert A.nnz == len(set(zip(rows.tolist(), cols.tolist())))
    assert A.row_ptr[0] == 0
    assert A.row_ptr[-1] == A.nnz
    assert np.all(np.diff(A.row_ptr) >= 0)


def test_duplicates_are_summed() -> None:
    A = build_csr(1, [(0, 0, 2.0), (0, 0, 3.0)])
    assert A.nnz == 1
    npt.assert_array_equal(A.values, [5.0])


def test_columns_sorted_within_rows() -> None:
    A = build_csr(3, [(1, 2, 1.0), (0, 1, 1.0), (1, 0, 1.0), (0, 0, 1.0), (1, 1, 1.0)])
    for i in range(A.n):
        run = A.col_ind[A.row_ptr[i]:A.row_ptr[i + 1]]
        assert np.all(np.diff(run) > 0)
    npt.assert_array_equal(A.row_ptr, [0, 2, 5, 5])


def test_multiply_matches_dense() -> None:
    dense = np.array([[4.0, 1.0, 0.0],
                      [1.0, 3.0, 0.0],
                      [0.0, 0.0, 2.0]])
    entries = [(i, j, dense[i, j]) for i in range(3) for j in range(3) if dense[i, j] != 0]
    A = build_csr(3, entries)
    x = np.array([1.0, 2.0, 3.0])

    npt.assert_allclose(A.multiply(x), [6.0, 7.0, 6.0])
    npt.assert_allclose(A.multiply(x), dense @ x)
    npt.assert_allclose(A.to_scipy() @ x, dense @ x)
    npt.assert_allclose(A.to_dense(), dense)


def test_multiply_overwrites_output() -> None:
    A = build_csr(2, [(0, 0, 1.0), (1, 1, 2.0)])
    out = np.full(2, 100.0)
    A.multiply(np.array([1.0, 1.0]), out=out)
    npt.assert_array_equal(out, [1.0, 2.0])


def test_empty_matrix() -> None:
    A = build_csr(3, [])
    assert A.n == 3
    assert A.nnz == 0
    npt.assert_array_equal(A.row_ptr, [0, 0, 0, 0])
    npt.assert_array_equal(A.multiply(np.ones(3)), np.zeros(3))
    assert A.get_diagonal(1) == 0.0


def test_set_diagonal_round_trip() -> None:
    A = build_csr(2, [(0, 0, 0.0), (0, 1, 1.0), (1, 1, 2.0)])
    A.set_diagonal(0, 7.5)
    assert A.get_diagonal(0) == 7.5
    assert A.get_diagonal(1) == 2.0


def test_set_diagonal_without_slot_is_noop() -> None:
    A = build_csr(2, [(0, 1, 1.0), (1, 1, 2.0)])
    before = A.values.copy()
    A.set_diagonal(0, 7.0)
    assert A.get_diagonal(0) == 0.0
    npt.assert_array_equal(A.values, before)


def test_diagonal_vector() -> None:
    A = build_csr(3, [(0, 0, 1.0), (1, 0, 4.0), (2, 2, 3.0)])
    npt.assert_array_equal(A.diagonal(), [1.0, 0.0, 3.0])


def test_out_of_range_entry_raises() -> None:
    with pytest.raises(ValueError):
        build_csr(2, [(0, 2, 1.0)])


def test_from_arrays_matches_from_coo() -> None:
    rows = [2, 0, 2, 1]
    cols = [1, 0, 1, 1]
    vals = [1.0, 2.0, 3.0, 4.0]
    a = CSRMatrix.from_arrays(3, rows, cols, vals)
    b = CSRMatrix.from_coo(3, zip(rows, cols, vals))
    npt.assert_array_equal(a.row_ptr, b.row_ptr)
    npt.assert_array_equal(a.col_ind, b.col_ind)
    npt.assert_array_equal(a.values, b.values)
    assert a.get_diagonal(1) == 4.0
