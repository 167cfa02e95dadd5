import math

import numpy as np
import pytest

from nd_geometry_kernel import (
    DEFAULT_PROJECTION_DISTANCE,
    DegenerateInputWarning,
    Projector,
    calculate_depth,
    calculate_projection_distance,
    project_orthographic,
    project_perspective,
    project_vertices,
    sort_by_depth,
)


def test_perspective_3d_divides_by_distance():
    np.testing.assert_allclose(project_perspective([1.0, 2.0, 3.0], 4.0), [0.25, 0.5, 0.75])


def test_perspective_uses_effective_depth():
    # depth = sum(v[3:]) / sqrt(D - 3)
    np.testing.assert_allclose(project_perspective([1.0, 1.0, 1.0, 2.0], 4.0), [0.5, 0.5, 0.5])
    v = np.array([1.0, 0.0, 0.0, 1.0, 1.0])
    expected = 1.0 / (4.0 - 2.0 / math.sqrt(2.0))
    np.testing.assert_allclose(project_perspective(v, 4.0), [expected, 0.0, 0.0])


def test_perspective_clamps_singular_denominator():
    out = project_perspective([1.0, 1.0, 1.0, 4.0], 4.0)
    assert np.all(np.isfinite(out))
    np.testing.assert_allclose(out, [100.0, 100.0, 100.0])

    # just past the viewer the sign of the denominator is kept
    out = project_perspective([1.0, 1.0, 1.0, 4.005], 4.0)
    np.testing.assert_allclose(out, [-100.0, -100.0, -100.0])


def test_orthographic_keeps_first_three():
    np.testing.assert_array_equal(project_orthographic([1.0, 2.0, 3.0, 4.0, 5.0]), [1.0, 2.0, 3.0])


def test_two_dimensional_input_maps_to_xz_plane():
    np.testing.assert_allclose(project_orthographic([2.0, 4.0]), [2.0, 0.0, 4.0])
    np.testing.assert_allclose(project_perspective([2.0, 4.0], 4.0), [0.5, 0.0, 1.0])


@pytest.mark.parametrize("projector", [project_orthographic, project_perspective])
def test_one_dimensional_input_is_logged_not_raised(projector):
    with pytest.warns(DegenerateInputWarning):
        out = projector([1.0])
    assert out.size == 0


def test_non_positive_distance_raises():
    with pytest.raises(ValueError):
        project_perspective([1.0, 2.0, 3.0], 0.0)
    with pytest.raises(ValueError):
        Projector(distance=-1.0)
    with pytest.raises(ValueError):
        project_vertices(np.zeros((2, 4)), mode='fisheye')


@pytest.mark.parametrize("dimension", range(3, 12))
def test_batch_matches_single_vector(dimension):
    rng = np.random.default_rng(dimension)
    points = rng.normal(scale=3.0, size=(50, dimension))
    batch = project_vertices(points, 'perspective', 4.0)
    single = np.array([project_perspective(p, 4.0) for p in points])
    np.testing.assert_allclose(batch, single)
    assert batch.shape == (50, 3)
    assert np.all(np.isfinite(batch))


def test_projection_returns_new_array():
    points = np.ones((3, 4))
    out = project_vertices(points, 'orthographic')
    out[0, 0] = 42.0
    assert points[0, 0] == 1.0


def test_depth_helpers():
    assert calculate_depth([1.0, 2.0, 3.0]) == 0.0
    assert calculate_depth([0.0, 0.0, 0.0, 3.0, 4.0]) == pytest.approx(5.0)

    vertices = np.array([[0, 0, 0, 1.0], [0, 0, 0, -3.0], [0, 0, 0, 2.0]])
    assert list(sort_by_depth(vertices)) == [1, 2, 0]

    assert calculate_projection_distance(vertices) == pytest.approx(3.0 * 2.0 + 1.0)
    assert calculate_projection_distance(np.zeros((4, 3))) == DEFAULT_PROJECTION_DISTANCE
    assert calculate_projection_distance(np.empty((0, 5))) == DEFAULT_PROJECTION_DISTANCE


def test_projector_for_vertices_avoids_singularity():
    vertices = np.array([[1.0, 1.0, 1.0, 5.0], [1.0, 1.0, 1.0, -5.0]])
    projector = Projector.for_vertices(vertices)
    assert projector.distance == pytest.approx(11.0)
    out = projector.project_vertices(vertices)
    assert np.all(np.isfinite(out))
    np.testing.assert_allclose(out[0], [1 / 6, 1 / 6, 1 / 6])
    np.testing.assert_allclose(projector.project(vertices[1]), [1 / 16, 1 / 16, 1 / 16])

    flat = Projector(mode='orthographic')
    np.testing.assert_array_equal(flat.project(vertices[0]), [1.0, 1.0, 1.0])
