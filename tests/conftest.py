"""
Shared fixtures: a small regular grid over [-1, 1]^2 and a deformer
loaded with it.
"""
import pytest

from rigid_mesh_deformer import RigidMeshDeformer
from triangle_mesh import make_grid_mesh

# 5x5 grid, vertex (xi, yi) has index yi * 5 + xi
GRID_SIZE = 5
CORNER_LOWER_LEFT = 0
CORNER_LOWER_RIGHT = 4
CENTER = 12
CORNER_UPPER_RIGHT = 24


@pytest.fixture
def grid_mesh():
    return make_grid_mesh(GRID_SIZE, GRID_SIZE)


@pytest.fixture
def deformer(grid_mesh):
    d = RigidMeshDeformer()
    assert d.initialize_from_mesh(grid_mesh)
    return d
