import dataclasses

import numpy as np
import pytest

import nd_geometry_kernel as ngk
from nd_geometry_kernel import (
    GeometryMetadata,
    NdGeometry,
    clamp,
    distance,
    dot,
    norm,
    norm_squared,
    normalize,
    scale,
    subtract,
    vectors_equal,
)


def test_vector_helpers():
    a = np.array([3.0, 4.0, 0.0, 0.0])
    b = np.array([1.0, 0.0, 0.0, 1.0])
    assert dot(a, b) == 3.0
    assert norm_squared(a) == 25.0
    assert norm(a) == 5.0
    assert distance(a, a) == 0.0
    np.testing.assert_allclose(normalize(a), [0.6, 0.8, 0.0, 0.0])
    assert clamp(5.0, -1.0, 1.0) == 1.0
    assert clamp(-5.0, -1.0, 1.0) == -1.0
    assert clamp(0.25, -1.0, 1.0) == 0.25
    assert vectors_equal(a, a + 1e-12)
    assert not vectors_equal(a, b)
    assert not vectors_equal(a, a[:3])
    np.testing.assert_array_equal(subtract(a, b), [2.0, 4.0, 0.0, -1.0])
    np.testing.assert_array_equal(scale(a, 0.5), [1.5, 2.0, 0.0, 0.0])
    assert subtract([1, 2], [1, 2]).dtype == np.float64


@pytest.mark.parametrize("dimension", range(3, 12))
def test_normalize_zero_vector_falls_back_to_axis(dimension):
    out = normalize(np.zeros(dimension))
    assert np.all(np.isfinite(out))
    expected = np.zeros(dimension)
    expected[0] = 1.0
    np.testing.assert_array_equal(out, expected)

    out = normalize(np.full(dimension, 1e-14), default_axis=2)
    assert out[2] == 1.0 and norm(out) == 1.0


def test_normalize_does_not_modify_input():
    v = np.array([2.0, 0.0, 0.0])
    normalize(v)
    assert v[0] == 2.0


def test_geometry_is_a_read_only_snapshot():
    vertices = np.eye(4)
    geometry = NdGeometry(vertices=vertices, edges=[(0, 1), (2, 3)], dimension=4, type='polytope')
    vertices[0, 0] = 7.0
    assert geometry.vertices[0, 0] == 1.0
    with pytest.raises(ValueError):
        geometry.vertices[1, 1] = 0.0
    with pytest.raises(ValueError):
        geometry.edges[0, 0] = 3
    assert "4D polytope" in geometry.summary()


def test_geometry_fields_cannot_be_rebound():
    geometry = NdGeometry(vertices=np.eye(4), edges=[(0, 1)], dimension=4, type='polytope',
                          face_cycles=[(0, 1, 2)])
    with pytest.raises(dataclasses.FrozenInstanceError):
        geometry.vertices = np.zeros((4, 4))
    with pytest.raises(dataclasses.FrozenInstanceError):
        geometry.face_cycles = None
    assert geometry.face_cycles == [(0, 1, 2)]

    moved = dataclasses.replace(geometry, vertices=np.eye(4) * 2)
    assert moved.vertices[0, 0] == 2.0
    assert geometry.vertices[0, 0] == 1.0
    assert not moved.vertices.flags.writeable


def test_geometry_validation():
    with pytest.raises(ValueError):
        NdGeometry(vertices=np.eye(3), edges=[(0, 3)], dimension=3, type='polytope')
    with pytest.raises(ValueError):
        NdGeometry(vertices=np.eye(3), edges=[(0, 1)], dimension=3, type='cloud', is_point_cloud=True)
    with pytest.raises(ValueError):
        NdGeometry(vertices=np.eye(3), edges=[], dimension=4, type='polytope')
    with pytest.raises(ValueError):
        NdGeometry(vertices=np.eye(3), edges=[], dimension=3, type='polytope', faces=[(0, 1, 5)])
    with pytest.raises(ValueError):
        NdGeometry(vertices=np.eye(3), edges=[], dimension=3, type='polytope', face_cycles=[(0, 1)])
    with pytest.raises(ngk.DimensionContractError):
        NdGeometry(vertices=[], edges=[], dimension=0, type='polytope')


def test_empty_geometry():
    geometry = NdGeometry(vertices=[], edges=[], dimension=5, type='polytope',
                          metadata=GeometryMetadata(name="nothing"))
    assert geometry.vertices.shape == (0, 5)
    assert geometry.edges.shape == (0, 2)
    assert not ngk.cross_section(geometry, value=0.0).has_intersection
    assert ngk.project_vertices(geometry.vertices).shape == (0, 3)
    assert ngk.extract_hull_faces(geometry.vertices).shape == (0, 3)


@pytest.mark.parametrize("dimension", range(3, 12))
def test_pipeline_stays_finite_at_extreme_scales(dimension):
    """Rotate, project and hull points spanning many orders of magnitude."""
    rng = np.random.default_rng(dimension)
    points = rng.normal(size=(40, dimension)) * np.logspace(-6, 6, 40)[:, None]
    angles = {p.name: rng.uniform(0, 2 * np.pi) for p in ngk.get_rotation_planes(dimension)}
    rotated = points @ ngk.compose_rotation(dimension, angles).T
    for mode in ngk.PROJECTION_MODES:
        assert np.all(np.isfinite(ngk.project_vertices(rotated, mode)))
