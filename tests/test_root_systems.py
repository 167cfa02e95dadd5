import numpy as np
import pytest

from nd_geometry_kernel import (
    DimensionContractError,
    RootSystemConfig,
    RootSystemGenerator,
    build_short_edges,
    find_triangle_faces,
    generate_e8_roots,
    generate_root_system,
    get_root_count,
    validate_root_system_type,
    verify_e8_roots,
)


@pytest.mark.parametrize("dimension", range(3, 12))
def test_a_root_count(dimension):
    geometry = generate_root_system(dimension, RootSystemConfig(root_type='A'))
    assert geometry.vertex_count == dimension * (dimension - 1) == get_root_count('A', dimension)
    # A roots live in the sum-zero hyperplane
    np.testing.assert_allclose(geometry.vertices.sum(axis=1), 0.0, atol=1e-12)


@pytest.mark.parametrize("dimension", range(4, 12))
def test_d_root_count(dimension):
    geometry = generate_root_system(dimension, RootSystemConfig(root_type='D'))
    assert geometry.vertex_count == 2 * dimension * (dimension - 1) == get_root_count('D', dimension)


def test_e8_root_count_and_verification():
    geometry = generate_root_system(8, RootSystemConfig(root_type='E8'))
    assert geometry.vertex_count == 240 == get_root_count('E8', 8)
    check = verify_e8_roots(geometry.vertices)
    assert check.valid, check.issues
    assert check.root_count == 240
    assert check.all_same_length


@pytest.mark.parametrize("root_type,dimension", [('A', 3), ('A', 7), ('D', 4), ('D', 9), ('E8', 8)])
@pytest.mark.parametrize("scale", [1.0, 2.0, 3.5])
def test_roots_share_the_configured_length(root_type, dimension, scale):
    geometry = generate_root_system(dimension, RootSystemConfig(root_type=root_type, scale=scale))
    np.testing.assert_allclose(np.linalg.norm(geometry.vertices, axis=1), scale, rtol=1e-12)


def test_d3_is_rejected():
    with pytest.raises(DimensionContractError, match="dimension >= 4"):
        generate_root_system(3, RootSystemConfig(root_type='D'))


@pytest.mark.parametrize("dimension", [4, 7, 9, 11])
def test_e8_outside_eight_is_rejected(dimension):
    with pytest.raises(DimensionContractError, match="dimension = 8"):
        generate_root_system(dimension, RootSystemConfig(root_type='E8'))


@pytest.mark.parametrize("dimension", [0, 2, 12])
def test_dimension_outside_supported_range(dimension):
    with pytest.raises(DimensionContractError):
        generate_root_system(dimension)


def test_unknown_root_type():
    with pytest.raises(ValueError):
        RootSystemGenerator(RootSystemConfig(root_type='B'))
    assert not validate_root_system_type('G2', 4).valid
    with pytest.raises(ValueError):
        get_root_count('F4', 4)


def test_validate_root_system_type():
    assert validate_root_system_type('A', 3).valid
    assert validate_root_system_type('D', 4).valid
    assert validate_root_system_type('E8', 8).valid
    result = validate_root_system_type('D', 3)
    assert not result.valid and "D_n" in result.message
    result = validate_root_system_type('E8', 7)
    assert not result.valid and "E8" in result.message


def test_d4_is_the_24_cell():
    geometry = generate_root_system(4, RootSystemConfig(root_type='D'))
    assert geometry.edge_count == 96
    assert len(geometry.faces) == 96
    degrees = np.bincount(geometry.edges.ravel(), minlength=24)
    assert np.all(degrees == 8)


def test_a_root_neighbours():
    # e_i - e_j has 2(n - 2) neighbours at 60 degrees
    geometry = generate_root_system(5, RootSystemConfig(root_type='A'))
    degrees = np.bincount(geometry.edges.ravel(), minlength=geometry.vertex_count)
    assert np.all(degrees == 6)


def test_e8_edges():
    geometry = generate_root_system(8, RootSystemConfig(root_type='E8'))
    assert geometry.edge_count == 240 * 56 // 2
    degrees = np.bincount(geometry.edges.ravel(), minlength=240)
    assert np.all(degrees == 56)


@pytest.mark.parametrize("root_type,dimension", [('A', 4), ('D', 5), ('E8', 8)])
def test_edges_are_short_and_faces_are_triangles_of_edges(root_type, dimension):
    geometry = generate_root_system(dimension, RootSystemConfig(root_type=root_type))
    v = geometry.vertices
    lengths = np.linalg.norm(v[geometry.edges[:, 0]] - v[geometry.edges[:, 1]], axis=1)
    assert lengths.max() <= lengths.min() * 1.01
    assert np.all(geometry.edges[:, 0] < geometry.edges[:, 1])

    edge_set = {tuple(e) for e in geometry.edges.tolist()}
    for a, b, c in geometry.faces.tolist():
        assert a < b < c
        assert {(a, b), (a, c), (b, c)} <= edge_set
    assert len({tuple(f) for f in geometry.faces.tolist()}) == len(geometry.faces)


def test_root_system_record():
    geometry = generate_root_system(6, RootSystemConfig(root_type='D', scale=1.0))
    assert geometry.type == 'root-system'
    assert not geometry.is_point_cloud
    assert geometry.dimension == 6
    assert geometry.metadata.name == "D6 Root System"
    assert geometry.metadata.properties['root_count'] == 60


def test_verify_e8_reports_problems():
    roots = generate_e8_roots()
    check = verify_e8_roots(roots[:-1])
    assert not check.valid
    assert any("Expected 240" in issue for issue in check.issues)

    stretched = roots.copy()
    stretched[0] *= 2
    assert not verify_e8_roots(stretched).all_same_length


def test_short_edges_and_triangles_on_a_square():
    square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=float)
    edges = build_short_edges(square)
    assert sorted(map(tuple, edges.tolist())) == [(0, 1), (0, 3), (1, 2), (2, 3)]
    assert find_triangle_faces(edges, 4).shape == (0, 3)
    with_diagonal = np.vstack([edges, [[0, 2]]])
    assert sorted(map(tuple, find_triangle_faces(with_diagonal, 4).tolist())) == [(0, 1, 2), (0, 2, 3)]
