import numpy as np


class TriangleMesh:
    """
    Fixed 2D mesh topology: rest vertices plus cells.

    Cells are triangles (M x 3) or, for wire-like layers, plain edges (M x 2).
    """

    def __init__(self, cell_size=3):
        if cell_size not in (2, 3):
            raise ValueError("cells are triangles (3) or edges (2)")
        self.vertices = np.zeros((0, 2), dtype=np.float64)
        self.cells = np.zeros((0, cell_size), dtype=np.int64)

    @classmethod
    def from_arrays(cls, vertices, cells):
        cells = np.asarray(cells, dtype=np.int64)
        mesh = cls(cells.shape[1] if cells.ndim == 2 else 3)
        vertices = np.asarray(vertices, dtype=np.float64)
        mesh.vertices = vertices[:, :2].copy()
        mesh.cells = cells.reshape(-1, mesh.cell_size).copy()
        return mesh

    @property
    def cell_size(self):
        return self.cells.shape[1]

    def clear(self):
        self.vertices = np.zeros((0, 2), dtype=np.float64)
        self.cells = np.zeros((0, self.cell_size), dtype=np.int64)

    def append_vertex(self, v):
        self.vertices = np.vstack([self.vertices, np.array(v, dtype=np.float64)[:2]])

    def append_cell(self, idx):
        self.cells = np.vstack([self.cells, np.array(idx, dtype=np.int64)])

    def get_num_vertices(self):
        return self.vertices.shape[0]

    def get_num_cells(self):
        return self.cells.shape[0]

    def get_vertex(self, i):
        return self.vertices[i].copy()

    def set_vertex(self, i, v):
        self.vertices[i] = np.asarray(v, dtype=np.float64)[:2]

    def get_cell_indices(self, i):
        return self.cells[i].copy()

    def get_cell_vertices(self, i):
        idx = self.cells[i]
        return self.vertices[idx].copy()

    def get_bounding_box(self):
        if self.get_num_vertices() == 0:
            return np.array([0, 0, 0, 0], dtype=np.float64)
        mn = self.vertices.min(axis=0)
        mx = self.vertices.max(axis=0)
        return np.array([mn[0], mx[0], mn[1], mx[1]], dtype=np.float64)

    def is_valid(self):
        if self.get_num_vertices() == 0 or self.get_num_cells() == 0:
            return False
        return bool(self.cells.min() >= 0 and self.cells.max() < self.get_num_vertices())

    def edges(self):
        """Unique undirected edges (i < j), sorted."""
        if self.cell_size == 2:
            pairs = self.cells
        else:
            pairs = np.concatenate([self.cells[:, [0, 1]], self.cells[:, [1, 2]], self.cells[:, [2, 0]]])
        pairs = np.sort(pairs, axis=1)
        return np.unique(pairs, axis=0)

    def read_obj(self, path):
        verts = []
        faces = []
        lines = []
        with open(path, 'r') as f:
            for nLine, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                parts = line.split()
                try:
                    if parts[0] == 'v':
                        verts.append([float(parts[1]), float(parts[2])])
                    elif parts[0] == 'f':
                        idxs = [int(t.split('/')[0]) - 1 for t in parts[1:]]
                        # fan-triangulate polygons
                        for j in range(1, len(idxs) - 1):
                            faces.append([idxs[0], idxs[j], idxs[j + 1]])
                    elif parts[0] == 'l':
                        idxs = [int(t.split('/')[0]) - 1 for t in parts[1:]]
                        for j in range(len(idxs) - 1):
                            lines.append([idxs[j], idxs[j + 1]])
                except (IndexError, ValueError) as e:
                    raise ValueError(f"{path}:{nLine}: malformed OBJ record {line!r}") from e

        if faces and lines:
            raise ValueError(f"{path}: mixing faces and line elements is not supported")
        cells = faces if faces else lines
        if len(verts) == 0 or len(cells) == 0:
            self.clear()
            return
        self.vertices = np.array(verts, dtype=np.float64)
        self.cells = np.array(cells, dtype=np.int64)

    def write_obj(self, path):
        tag = 'f' if self.cell_size == 3 else 'l'
        with open(path, 'w') as f:
            for v in self.vertices:
                f.write(f"v {v[0]:.9g} {v[1]:.9g} 0\n")
            for c in self.cells:
                f.write(tag + " " + " ".join(str(int(i) + 1) for i in c) + "\n")


def make_grid_mesh(nCols=5, nRows=5, width=2.0, height=2.0, origin=(-1.0, -1.0)):
    mesh = TriangleMesh()
    xStep = width / float(nCols - 1)
    yStep = height / float(nRows - 1)
    verts = []
    for yi in range(nRows):
        y = origin[1] + yi * yStep
        for xi in range(nCols):
            x = origin[0] + xi * xStep
            verts.append([x, y])
    tris = []
    for yi in range(nRows - 1):
        row1 = yi * nCols
        row2 = (yi + 1) * nCols
        for xi in range(nCols - 1):
            tris.append([row1 + xi, row2 + xi + 1, row1 + xi + 1])
            tris.append([row1 + xi, row2 + xi, row2 + xi + 1])
    mesh.vertices = np.array(verts, dtype=np.float64)
    mesh.cells = np.array(tris, dtype=np.int64)
    return mesh
