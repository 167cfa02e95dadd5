import numpy as np
import pytest
from itertools import combinations, product

from nd_geometry_kernel import NdGeometry, GeometryMetadata


def make_hypercube(dimension, half_width=1.0):
    """Hypercube {-h, h}^D with its square 2-faces as face cycles."""
    bits = list(product([0, 1], repeat=dimension))
    vertices = (np.array(bits, dtype=float) * 2 - 1) * half_width

    def index(b):
        return int(sum(bit << (dimension - 1 - k) for k, bit in enumerate(b)))

    edges = [(i, j) for i, j in combinations(range(len(bits)), 2)
             if sum(a != b for a, b in zip(bits[i], bits[j])) == 1]

    cycles = []
    for a, b in combinations(range(dimension), 2):
        rest = [k for k in range(dimension) if k not in (a, b)]
        for fixed in product([0, 1], repeat=dimension - 2):
            corner = [0] * dimension
            for k, bit in zip(rest, fixed):
                corner[k] = bit
            square = []
            for da, db in [(0, 0), (1, 0), (1, 1), (0, 1)]:
                v = list(corner)
                v[a], v[b] = da, db
                square.append(index(v))
            cycles.append(tuple(square))

    return NdGeometry(vertices=vertices, edges=edges, dimension=dimension, type='polytope',
                      face_cycles=cycles,
                      metadata=GeometryMetadata(name=f"{dimension}-cube"))


def make_simplex_4d():
    """Corner simplex: the origin plus the four unit vectors."""
    vertices = np.vstack([np.zeros(4), np.eye(4)])
    edges = list(combinations(range(5), 2))
    return NdGeometry(vertices=vertices, edges=edges, dimension=4, type='polytope',
                      metadata=GeometryMetadata(name="4-simplex"))


def cross_polytope_vertices(dimension):
    eye = np.eye(dimension)
    return np.vstack([eye, -eye])


@pytest.fixture
def tesseract():
    return make_hypercube(4)


@pytest.fixture
def simplex_4d():
    return make_simplex_4d()


@pytest.fixture
def unit_cube():
    return np.array(list(product([0.0, 1.0], repeat=3)))


@pytest.fixture
def tetrahedron():
    return np.array([[1, 1, 1], [1, -1, -1], [-1, 1, -1], [-1, -1, 1]], dtype=float)
