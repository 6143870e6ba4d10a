import numpy as np
from scipy.sparse import csr_matrix


class CSRMatrix:
    """
    Compressed sparse row matrix (square, n x n).

    Column structure is fixed once built; only diagonal values are
    meant to change afterwards (see set_diagonal).
    """

    def __init__(self, n, row_ptr, col_ind, values):
        self.n = int(n)
        self.row_ptr = np.asarray(row_ptr, dtype=np.int64)
        self.col_ind = np.asarray(col_ind, dtype=np.int64)
        self.values = np.asarray(values, dtype=np.float64)
        # row index of every stored entry, used by multiply
        self._rows = np.repeat(np.arange(self.n, dtype=np.int64), np.diff(self.row_ptr))

    @classmethod
    def empty(cls, n):
        return cls(n, np.zeros(n + 1, dtype=np.int64),
                   np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.float64))

    @classmethod
    def from_coo(cls, n, entries):
        entries = list(entries)
        if len(entries) == 0:
            return cls.empty(n)
        rows = np.array([e[0] for e in entries], dtype=np.int64)
        cols = np.array([e[1] for e in entries], dtype=np.int64)
        vals = np.array([e[2] for e in entries], dtype=np.float64)
        return cls.from_arrays(n, rows, cols, vals)

    @classmethod
    def from_arrays(cls, n, rows, cols, vals):
        rows = np.asarray(rows, dtype=np.int64).ravel()
        cols = np.asarray(cols, dtype=np.int64).ravel()
        vals = np.asarray(vals, dtype=np.float64).ravel()
        if not (rows.shape == cols.shape == vals.shape):
            raise ValueError("rows, cols and vals must have the same length")
        if rows.size == 0:
            return cls.empty(n)
        if rows.min() < 0 or rows.max() >= n or cols.min() < 0 or cols.max() >= n:
            raise ValueError(f"COO entry index out of range for {n}x{n} matrix")

        # stable sort by (row, col); duplicates end up adjacent
        order = np.lexsort((cols, rows))
        rows = rows[order]
        cols = cols[order]
        vals = vals[order]

        first = np.ones(rows.size, dtype=bool)
        first[1:] = (rows[1:] != rows[:-1]) | (cols[1:] != cols[:-1])
        starts = np.flatnonzero(first)
        summed = np.add.reduceat(vals, starts)

        row_ptr = np.zeros(n + 1, dtype=np.int64)
        np.cumsum(np.bincount(rows[starts], minlength=n), out=row_ptr[1:])
        return cls(n, row_ptr, cols[starts], summed)

    @property
    def nnz(self):
        return int(self.row_ptr[self.n])

    def multiply(self, x, out=None):
        x = np.asarray(x, dtype=np.float64)
        if out is None:
            out = np.empty(self.n, dtype=np.float64)
        if self.nnz == 0:
            out[:] = 0.0
            return out
        out[:] = np.bincount(self._rows, weights=self.values * x[self.col_ind], minlength=self.n)
        return out

    def _diagonal_slot(self, i):
        start = self.row_ptr[i]
        end = self.row_ptr[i + 1]
        k = start + np.searchsorted(self.col_ind[start:end], i)
        if k < end and self.col_ind[k] == i:
            return int(k)
        return -1

    def get_diagonal(self, i):
        k = self._diagonal_slot(i)
        return float(self.values[k]) if k >= 0 else 0.0

    def set_diagonal(self, i, value):
        k = self._diagonal_slot(i)
        if k >= 0:
            self.values[k] = value

    def diagonal(self, out=None):
        if out is None:
            out = np.zeros(self.n, dtype=np.float64)
        else:
            out[:] = 0.0
        on_diag = self._rows == self.col_ind
        out[self._rows[on_diag]] = self.values[on_diag]
        return out

    def to_dense(self):
        dense = np.zeros((self.n, self.n), dtype=np.float64)
        dense[self._rows, self.col_ind] = self.values
        return dense

    def to_scipy(self):
        return csr_matrix((self.values, self.col_ind, self.row_ptr), shape=(self.n, self.n))

    def __repr__(self):
        return f"CSRMatrix(n={self.n}, nnz={self.nnz})"


def build_csr(n, entries):
    return CSRMatrix.from_coo(n, entries)
