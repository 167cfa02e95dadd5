"""
N-Dimensional Geometry Kernel

Dimension-generic numeric core for interactive n-dimensional (3D-11D) polytopes
and escape-time fractals. Every component is a pure function of its inputs (or a
small object whose only state is a version-gated cache), operating on numpy
arrays: a VectorND is a 1-D float64 array, a point set is an (N, D) array.

AVAILABLE COMPONENTS:

  Vector space:
    - dot, norm, normalize, clamp: small helpers on VectorND arrays

  Rotation:
    - compose_rotation(dimension, angles): simultaneous plane rotations folded
      into one orthonormal matrix, in ascending lexical order of plane names
    - RotationComposer: caches the composed matrix and the images of e0, e1, e2,
      recomputing only when the (dimension, active angles) signature changes

  Projection:
    - project_perspective / project_orthographic / project_vertices: D -> 3
    - Projector: mode + viewer distance, with auto-distance from a vertex set

  Cross sections:
    - cross_section(geometry, value, axis): slice a polytope by axis = value,
      connecting intersection points through the polytope's 2-faces

  Convex hull faces:
    - extract_hull_faces(points): triangular boundary faces via Qhull facets,
      after projecting to the affine hull of the point set

  Root systems:
    - generate_root_system(dimension, RootSystemConfig): A_n, D_n, E8 roots with
      short edges and 3-clique faces
    - verify_e8_roots, validate_root_system_type, get_root_count

  Hyperbulb fractals:
    - escape_time / smooth_escape_time: generalized Mandelbulb iteration
      z -> z^p + c in hyperspherical coordinates
    - generate_hyperbulb(dimension, HyperbulbConfig): 3D slab of sample points,
      filtered by color mode into a point cloud

  Transfer:
    - flatten_geometry / inflate_geometry: flat float64/uint32 buffers for
      handing geometry (face cycles included) to another process, with
      corruption checks
    - compute_faces(flat_vertices, dimension, method): face entry point for a
      worker that receives flat buffers

Usage:
    from nd_geometry_kernel import (
        compose_rotation, project_vertices, generate_root_system,
        RootSystemConfig, extract_hull_faces, cross_section,
        HyperbulbConfig, generate_hyperbulb,
    )

    # Rotate the D4 root system in the XW and YZ planes, then project to 3D
    geometry = generate_root_system(4, RootSystemConfig(root_type='D'))
    matrix = compose_rotation(4, {"XW": 0.3, "YZ": 1.1})
    projected = project_vertices(geometry.vertices @ matrix.T)

    # Hull faces of an arbitrary point set
    faces = extract_hull_faces(geometry.vertices)

    # Slice a 4D polytope at W = 0.25
    result = cross_section(geometry, value=0.25)
    print(result.has_intersection, len(result.points))

    # A 5D hyperbulb at draft quality, boundary shell only
    config = HyperbulbConfig.from_preset('draft', color_mode='boundary_only')
    cloud = generate_hyperbulb(5, config)
"""

import math
import re
import warnings
import numpy as np
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import List, Dict, Any, Optional, Tuple, Mapping, Sequence, NamedTuple
from itertools import combinations, product


# =============================================================================
# CONSTANTS, WARNINGS AND ERRORS
# =============================================================================

MIN_DIMENSION = 3
MAX_DIMENSION = 11

EPSILON = 1e-10
PARALLEL_EPSILON = 1e-8
HULL_RANK_TOLERANCE = 1e-9
HYPERSPHERICAL_EPSILON = 1e-12

DEFAULT_PROJECTION_DISTANCE = 4.0
MIN_SAFE_DISTANCE = 0.01
PROJECTION_MODES = ('perspective', 'orthographic')

W_AXIS = 3
SHORT_EDGE_TOLERANCE = 0.01

AXIS_NAMES = ('X', 'Y', 'Z', 'W', 'V', 'U')
TAU = 2.0 * math.pi

ROOT_TYPES = ('A', 'D', 'E8')

COLOR_MODES = ('escape_time', 'smooth_coloring', 'interior_only', 'boundary_only')

QUALITY_PRESETS = {
    'draft': {'max_iterations': 30, 'resolution': 24},
    'standard': {'max_iterations': 80, 'resolution': 32},
    'high': {'max_iterations': 200, 'resolution': 64},
    'ultra': {'max_iterations': 500, 'resolution': 96},
}


class DimensionContractError(ValueError):
    """A dimension or type argument violates a documented contract."""


class DegenerateInputWarning(UserWarning):
    """Input was degenerate and an empty or neutral result was returned."""


class HullCoverageWarning(UserWarning):
    """Some input points are not a vertex of any extracted hull face."""


def _check_dimension(dimension: int, minimum: int = MIN_DIMENSION,
                     maximum: Optional[int] = None) -> int:
    if isinstance(dimension, bool) or int(dimension) != dimension:
        raise DimensionContractError(f"Dimension must be an integer, got {dimension!r}")
    dimension = int(dimension)
    if dimension < minimum:
        raise DimensionContractError(f"Dimension must be >= {minimum}, got {dimension}")
    if maximum is not None and dimension > maximum:
        raise DimensionContractError(f"Dimension must be <= {maximum}, got {dimension}")
    return dimension


def _frozen(values, dtype) -> np.ndarray:
    out = np.array(values, dtype=dtype, copy=True)
    out.flags.writeable = False
    return out


# =============================================================================
# DATA RECORDS
# =============================================================================

@dataclass
class GeometryMetadata:
    """Name, formula and free-form properties attached to a geometry."""
    name: str
    formula: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NdGeometry:
    """Immutable snapshot of an n-dimensional object.

    vertices are (N, D) float64, edges (E, 2) int64 indices into vertices,
    faces (F, 3) int64 triangles or None. face_cycles optionally lists the
    polygonal 2-faces (as vertex-index cycles) that cross sections use to
    connect intersection points. Arrays are copied and made read-only.
    """
    vertices: np.ndarray
    edges: np.ndarray
    dimension: int
    type: str
    faces: Optional[np.ndarray] = None
    is_point_cloud: bool = False
    metadata: GeometryMetadata = field(default_factory=lambda: GeometryMetadata(name=""))
    face_cycles: Optional[List[Tuple[int, ...]]] = None

    def __post_init__(self):
        dimension = _check_dimension(self.dimension, minimum=1)
        vertices = np.asarray(self.vertices, dtype=float)
        if vertices.size == 0:
            vertices = vertices.reshape(0, dimension)
        if vertices.ndim != 2 or vertices.shape[1] != dimension:
            raise ValueError(
                f"vertices must have shape (N, {dimension}), got {vertices.shape}")

        n_vertices = len(vertices)
        edges = np.asarray(self.edges, dtype=np.int64).reshape(-1, 2)
        if len(edges) and (edges.min() < 0 or edges.max() >= n_vertices):
            raise ValueError(f"edge index out of range for {n_vertices} vertices")
        if self.is_point_cloud and len(edges):
            raise ValueError("point-cloud geometry cannot carry edges")

        faces = None
        if self.faces is not None:
            faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
            if len(faces) and (faces.min() < 0 or faces.max() >= n_vertices):
                raise ValueError(f"face index out of range for {n_vertices} vertices")
            faces = _frozen(faces, np.int64)

        if self.face_cycles is not None:
            cycles = [tuple(int(i) for i in cycle) for cycle in self.face_cycles]
            for cycle in cycles:
                if len(cycle) < 3 or min(cycle) < 0 or max(cycle) >= n_vertices:
                    raise ValueError(f"invalid face cycle {cycle}")
            object.__setattr__(self, "face_cycles", cycles)

        object.__setattr__(self, "dimension", dimension)
        object.__setattr__(self, "vertices", _frozen(vertices, float))
        object.__setattr__(self, "edges", _frozen(edges, np.int64))
        object.__setattr__(self, "faces", faces)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def summary(self) -> str:
        faces = "none" if self.faces is None else str(len(self.faces))
        name = self.metadata.name or self.type
        return (f"{name} ({self.dimension}D {self.type}): "
                f"{self.vertex_count} vertices, {self.edge_count} edges, {faces} faces")


@dataclass
class CrossSectionResult:
    """Points and edges where a hyperplane cuts a polytope."""
    points: np.ndarray
    edges: np.ndarray
    has_intersection: bool

    @classmethod
    def empty(cls, dimension: int) -> 'CrossSectionResult':
        return cls(points=_frozen(np.empty((0, dimension)), float),
                   edges=_frozen(np.empty((0, 2)), np.int64),
                   has_intersection=False)


@dataclass
class RootSystemConfig:
    root_type: str = 'A'
    scale: float = 2.0


@dataclass
class HyperbulbConfig:
    """Parameters of a hyperbulb sample grid.

    The grid spans 'extent' either side of 'center' on the three
    visualization_axes; every other axis is held at the matching entry of
    parameter_values (0 when missing).
    """
    power: float = 8.0
    max_iterations: int = 80
    escape_radius: float = 4.0
    resolution: int = 32
    center: Sequence[float] = ()
    extent: float = 2.0
    visualization_axes: Tuple[int, int, int] = (0, 1, 2)
    parameter_values: Sequence[float] = ()
    color_mode: str = 'escape_time'
    boundary_threshold: Tuple[float, float] = (0.1, 0.9)
    epsilon: float = HYPERSPHERICAL_EPSILON

    @classmethod
    def from_preset(cls, preset: str, **overrides) -> 'HyperbulbConfig':
        if preset not in QUALITY_PRESETS:
            raise ValueError(f"Unknown quality preset {preset!r}; "
                             f"choose from {sorted(QUALITY_PRESETS)}")
        return cls(**{**QUALITY_PRESETS[preset], **overrides})


@dataclass
class HyperbulbSamples:
    """Struct-of-arrays view of grid samples: positions in the 3D slab,
    full D-dimensional c vectors, and their escape times."""
    world_pos: np.ndarray
    c_vectors: np.ndarray
    escape_times: np.ndarray

    def __len__(self):
        return len(self.escape_times)

    def subset(self, mask: np.ndarray) -> 'HyperbulbSamples':
        return HyperbulbSamples(world_pos=self.world_pos[mask],
                                c_vectors=self.c_vectors[mask],
                                escape_times=self.escape_times[mask])


# =============================================================================
# VECTOR SPACE UTILITIES
# =============================================================================

def dot(a, b) -> float:
    return float(np.dot(np.asarray(a, dtype=float), np.asarray(b, dtype=float)))


def norm_squared(v) -> float:
    v = np.asarray(v, dtype=float)
    return float(np.dot(v, v))


def norm(v) -> float:
    return math.sqrt(norm_squared(v))


def distance(a, b) -> float:
    return norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def normalize(v, default_axis: int = 0) -> np.ndarray:
    """Unit vector along v; near-zero input yields the unit vector on default_axis."""
    v = np.asarray(v, dtype=float)
    length = norm(v)
    if length < EPSILON:
        out = np.zeros_like(v)
        if out.size:
            out[default_axis % out.size] = 1.0
        return out
    return v / length


def subtract(a, b) -> np.ndarray:
    return np.asarray(a, dtype=float) - np.asarray(b, dtype=float)


def scale(v, factor: float) -> np.ndarray:
    return np.asarray(v, dtype=float) * float(factor)


def vectors_equal(a, b, tolerance: float = EPSILON) -> bool:
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return a.shape == b.shape and bool(np.all(np.abs(a - b) < tolerance))


# =============================================================================
# ROTATION
# =============================================================================

class RotationPlane(NamedTuple):
    name: str
    i: int
    j: int


_AXIS_TOKEN = re.compile(r"[A-Z][0-9]*")


def get_axis_name(index: int) -> str:
    """X, Y, Z, W, V, U for the first six axes, then A6, A7, ..."""
    if index < 0:
        raise ValueError(f"Axis index must be non-negative, got {index}")
    if index < len(AXIS_NAMES):
        return AXIS_NAMES[index]
    return f"A{index}"


def parse_axis_name(token: str) -> int:
    if token in AXIS_NAMES:
        return AXIS_NAMES.index(token)
    if token.startswith('A') and token[1:].isdigit():
        index = int(token[1:])
        if index >= len(AXIS_NAMES):
            return index
    raise ValueError(f"Invalid axis name: {token!r}")


def create_plane_name(i: int, j: int) -> str:
    if i == j:
        raise ValueError(f"A rotation plane needs two distinct axes, got {i} twice")
    i, j = min(i, j), max(i, j)
    return get_axis_name(i) + get_axis_name(j)


def parse_plane_name(name: str) -> Tuple[int, int]:
    """'XW' -> (0, 3), 'A6A7' -> (6, 7). Raises ValueError for anything else."""
    tokens = _AXIS_TOKEN.findall(name) if isinstance(name, str) else []
    if len(tokens) != 2 or ''.join(tokens) != name:
        raise ValueError(f"Invalid rotation plane name: {name!r}")
    i, j = parse_axis_name(tokens[0]), parse_axis_name(tokens[1])
    if i >= j:
        raise ValueError(f"Invalid rotation plane name: {name!r} (axes must be ascending)")
    return i, j


def get_rotation_planes(dimension: int) -> List[RotationPlane]:
    """All D(D-1)/2 coordinate planes of D-space, in axis order."""
    return [RotationPlane(create_plane_name(i, j), i, j)
            for i, j in combinations(range(dimension), 2)]


def get_rotation_plane_count(dimension: int) -> int:
    return dimension * (dimension - 1) // 2


def normalize_angle(angle: float) -> float:
    """Wrap to [0, 2*pi)."""
    wrapped = float(angle) % TAU
    return 0.0 if wrapped >= TAU else wrapped


def create_rotation_matrix(dimension: int, i: int, j: int, angle: float) -> np.ndarray:
    """Identity except the (i, j) block: [[cos, -sin], [sin, cos]]."""
    if not (0 <= i < dimension and 0 <= j < dimension) or i == j:
        raise DimensionContractError(
            f"Plane ({i}, {j}) is not a rotation plane of {dimension}-space")
    c, s = math.cos(angle), math.sin(angle)
    matrix = np.eye(dimension)
    matrix[i, i] = c
    matrix[j, j] = c
    matrix[i, j] = -s
    matrix[j, i] = s
    return matrix


def _active_rotations(dimension: int, angles: Mapping[str, float]) -> List[Tuple[str, int, int, float]]:
    """Valid (name, i, j, angle) entries in ascending lexical order of name.

    Malformed names raise; planes that need an axis beyond the dimension are
    dropped.
    """
    active = []
    for name in sorted(angles):
        i, j = parse_plane_name(name)
        if j >= dimension:
            continue
        active.append((name, i, j, normalize_angle(angles[name])))
    return active


def compose_rotation(dimension: int, angles: Mapping[str, float]) -> np.ndarray:
    """Fold the plane rotations in 'angles' into one D x D orthonormal matrix.

    Planes are applied in ascending lexical order of their names, right-
    multiplying the running product, so the result does not depend on the
    mapping's insertion order.
    """
    dimension = _check_dimension(dimension, minimum=2)
    matrix = np.eye(dimension)
    for _, i, j, theta in _active_rotations(dimension, angles):
        if theta == 0.0:
            continue
        c, s = math.cos(theta), math.sin(theta)
        block = np.array([[c, -s], [s, c]])
        matrix[:, [i, j]] = matrix[:, [i, j]] @ block
    return matrix


@dataclass
class RotationState:
    """Composed matrix plus the images of the first three basis vectors."""
    matrix: np.ndarray
    basis_x: np.ndarray
    basis_y: np.ndarray
    basis_z: np.ndarray
    version: int
    changed: bool = True


class RotationComposer:
    """Version-gated rotation cache.

    update() returns the cached state while the (dimension, active angles)
    signature is unchanged. Every recomputation bumps the version, so callers
    can key their own caches on it.
    """

    def __init__(self, plane_cache_size: int = 16):
        self.plane_cache_size = plane_cache_size
        self._plane_cache: 'OrderedDict[int, List[RotationPlane]]' = OrderedDict()
        self._signature = None
        self._state: Optional[RotationState] = None
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def state(self) -> Optional[RotationState]:
        return self._state

    def planes(self, dimension: int) -> List[RotationPlane]:
        """Rotation planes for a dimension, from a small per-instance LRU."""
        if dimension in self._plane_cache:
            self._plane_cache.move_to_end(dimension)
            return self._plane_cache[dimension]
        planes = get_rotation_planes(dimension)
        self._plane_cache[dimension] = planes
        while len(self._plane_cache) > self.plane_cache_size:
            self._plane_cache.popitem(last=False)
        return planes

    def mark_dirty(self):
        self._signature = None

    def update(self, dimension: int, angles: Mapping[str, float]) -> RotationState:
        dimension = _check_dimension(dimension)
        valid = {plane.name for plane in self.planes(dimension)}
        active = _active_rotations(dimension, angles)
        signature = (dimension, tuple((name, theta) for name, _, _, theta in active
                                      if name in valid and theta != 0.0))

        if self._state is not None and signature == self._signature:
            self._state = replace(self._state, changed=False)
            return self._state

        matrix = compose_rotation(dimension, dict(signature[1]))
        matrix.flags.writeable = False
        self._version += 1
        self._signature = signature
        # M @ e_k is column k
        self._state = RotationState(matrix=matrix,
                                    basis_x=matrix[:, 0].copy(),
                                    basis_y=matrix[:, 1].copy(),
                                    basis_z=matrix[:, 2].copy(),
                                    version=self._version,
                                    changed=True)
        return self._state

    def rotate_origin(self, parameter_values: Sequence[float] = ()) -> np.ndarray:
        """Rotated slice origin: zero on X, Y, Z and parameter_values on W, V, ..."""
        if self._state is None:
            raise RuntimeError("update() must be called before rotate_origin()")
        dimension = self._state.matrix.shape[0]
        origin = np.zeros(dimension)
        extra = np.asarray(parameter_values, dtype=float)[:max(0, dimension - 3)]
        origin[3:3 + len(extra)] = extra
        return self._state.matrix @ origin


# =============================================================================
# PROJECTION
# =============================================================================

def _safe_denominator(denominator):
    """Clamp |denominator| to at least MIN_SAFE_DISTANCE, keeping its sign."""
    denominator = np.asarray(denominator, dtype=float)
    sign = np.where(denominator >= 0, MIN_SAFE_DISTANCE, -MIN_SAFE_DISTANCE)
    return np.where(np.abs(denominator) < MIN_SAFE_DISTANCE, sign, denominator)


def _check_distance(distance: float):
    if not distance > 0:
        raise ValueError(f"Projection distance must be positive, got {distance}")


def _warn_too_few_dimensions(dimension: int):
    warnings.warn(f"Cannot project {dimension}-dimensional input to 3D; "
                  f"returning an empty result", DegenerateInputWarning, stacklevel=3)


def project_vertices(vertices, mode: str = 'perspective',
                     distance: float = DEFAULT_PROJECTION_DISTANCE) -> np.ndarray:
    """Project an (N, D) point set to (N, 3).

    Perspective divides X, Y, Z by (distance - effective_depth), where the
    effective depth is the sum of the coordinates beyond Z scaled by
    1/sqrt(D - 3). Two-dimensional input lands in the XZ plane.
    """
    if mode not in PROJECTION_MODES:
        raise ValueError(f"Unknown projection mode {mode!r}; choose from {PROJECTION_MODES}")
    _check_distance(distance)
    vertices = np.asarray(vertices, dtype=float)
    if vertices.ndim == 1:
        vertices = vertices.reshape(1, -1)
    n_points, dimension = vertices.shape
    if dimension < 2:
        _warn_too_few_dimensions(dimension)
        return np.empty((0, 3))

    if dimension == 2:
        out = np.zeros((n_points, 3))
        out[:, 0] = vertices[:, 0]
        out[:, 2] = vertices[:, 1]
        return out / distance if mode == 'perspective' else out

    xyz = vertices[:, :3].copy()
    if mode == 'orthographic':
        return xyz
    if dimension > 3:
        depth = vertices[:, 3:].sum(axis=1) / math.sqrt(dimension - 3)
    else:
        depth = np.zeros(n_points)
    denominator = _safe_denominator(distance - depth)
    return xyz / denominator[:, None]


def project_perspective(vector, distance: float = DEFAULT_PROJECTION_DISTANCE) -> np.ndarray:
    vector = np.asarray(vector, dtype=float).ravel()
    if vector.size < 2:
        _check_distance(distance)
        _warn_too_few_dimensions(vector.size)
        return np.empty(0)
    return project_vertices(vector, 'perspective', distance)[0]


def project_orthographic(vector) -> np.ndarray:
    vector = np.asarray(vector, dtype=float).ravel()
    if vector.size < 2:
        _warn_too_few_dimensions(vector.size)
        return np.empty(0)
    return project_vertices(vector, 'orthographic')[0]


def calculate_depth(vector) -> float:
    """Distance from the 3D subspace: norm of the coordinates beyond Z."""
    vector = np.asarray(vector, dtype=float).ravel()
    return norm(vector[3:]) if vector.size > 3 else 0.0


def sort_by_depth(vertices) -> np.ndarray:
    """Vertex indices ordered furthest-first, for back-to-front drawing."""
    vertices = np.asarray(vertices, dtype=float)
    if len(vertices) == 0:
        return np.empty(0, dtype=np.int64)
    depths = np.linalg.norm(vertices[:, 3:], axis=1) if vertices.shape[1] > 3 \
        else np.zeros(len(vertices))
    return np.argsort(-depths, kind='stable')


def calculate_projection_distance(vertices, margin: float = 2.0) -> float:
    """A viewer distance comfortably beyond the extent in W, V, ..."""
    vertices = np.asarray(vertices, dtype=float)
    if vertices.ndim != 2 or len(vertices) == 0 or vertices.shape[1] <= 3:
        return DEFAULT_PROJECTION_DISTANCE
    return float(np.abs(vertices[:, 3:]).max() * margin + 1.0)


class Projector:
    """Projection mode and viewer distance bundled for repeated use."""

    def __init__(self, mode: str = 'perspective', distance: float = DEFAULT_PROJECTION_DISTANCE):
        if mode not in PROJECTION_MODES:
            raise ValueError(f"Unknown projection mode {mode!r}; choose from {PROJECTION_MODES}")
        _check_distance(distance)
        self.mode = mode
        self.distance = distance

    @classmethod
    def for_vertices(cls, vertices, mode: str = 'perspective', margin: float = 2.0) -> 'Projector':
        return cls(mode=mode, distance=calculate_projection_distance(vertices, margin))

    def project(self, vector) -> np.ndarray:
        if self.mode == 'orthographic':
            return project_orthographic(vector)
        return project_perspective(vector, self.distance)

    def project_vertices(self, vertices) -> np.ndarray:
        return project_vertices(vertices, self.mode, self.distance)

    def __repr__(self):
        return f"Projector(mode={self.mode!r}, distance={self.distance})"


# =============================================================================
# CROSS SECTIONS
# =============================================================================

def axis_range(geometry: NdGeometry, axis: int = W_AXIS) -> Tuple[float, float]:
    """(min, max) of one coordinate over the vertices; (0, 0) when unavailable."""
    if geometry.dimension <= axis or geometry.vertex_count == 0:
        return 0.0, 0.0
    column = geometry.vertices[:, axis]
    return float(column.min()), float(column.max())


def _edge_key(a: int, b: int) -> Tuple[int, int]:
    return (a, b) if a < b else (b, a)


def _edges_from_faces(face_list, edge_to_point: Dict[Tuple[int, int], int]) -> List[Tuple[int, int]]:
    """One segment per face whose boundary is crossed at exactly two points."""
    segments = set()
    for face in face_list:
        face = [int(i) for i in face]
        hits = []
        for k in range(len(face)):
            key = _edge_key(face[k], face[(k + 1) % len(face)])
            point = edge_to_point.get(key)
            if point is not None and point not in hits:
                hits.append(point)
        if len(hits) == 2:
            segments.add(_edge_key(hits[0], hits[1]))
    return sorted(segments)


def _edges_from_shared_vertices(edge_to_point: Dict[Tuple[int, int], int]) -> List[Tuple[int, int]]:
    """Join points whose source edges share a vertex.

    Exact for simplicial 2-faces only; quads get their diagonals joined too.
    """
    by_vertex: Dict[int, List[int]] = {}
    for (a, b), point in edge_to_point.items():
        by_vertex.setdefault(a, []).append(point)
        by_vertex.setdefault(b, []).append(point)
    segments = set()
    for points in by_vertex.values():
        for p, q in combinations(points, 2):
            segments.add(_edge_key(p, q))
    return sorted(segments)


def cross_section(geometry: NdGeometry, value: float = 0.0, axis: int = W_AXIS,
                  faces: Optional[Sequence[Sequence[int]]] = None) -> CrossSectionResult:
    """Slice a polytope by the hyperplane x[axis] = value.

    Every edge whose endpoints straddle the plane (inclusive) contributes one
    interpolated point with its sliced coordinate pinned to value; edges lying
    entirely in the plane are skipped. Points are connected through 2-faces:
    'faces' if given, else geometry.face_cycles, else geometry.faces. With no
    face information, points whose source edges share a vertex are joined.

    Geometry of dimension < 4, or a value outside the axis range, gives an
    empty result with has_intersection False.
    """
    dimension = geometry.dimension
    if dimension < 4:
        return CrossSectionResult.empty(dimension)
    if not 0 <= axis < dimension:
        raise DimensionContractError(
            f"Slice axis {axis} is out of range for {dimension}-dimensional geometry")
    if geometry.vertex_count == 0 or geometry.edge_count == 0:
        return CrossSectionResult.empty(dimension)

    low, high = axis_range(geometry, axis)
    if value < low or value > high:
        return CrossSectionResult.empty(dimension)

    vertices = geometry.vertices
    edges = geometry.edges
    w = vertices[:, axis]
    wa, wb = w[edges[:, 0]], w[edges[:, 1]]

    in_plane = (np.abs(wa - value) < PARALLEL_EPSILON) & (np.abs(wb - value) < PARALLEL_EPSILON)
    crossing = (np.minimum(wa, wb) <= value) & (value <= np.maximum(wa, wb)) & ~in_plane
    hit = np.flatnonzero(crossing)
    if hit.size == 0:
        return CrossSectionResult.empty(dimension)

    span = wb[hit] - wa[hit]
    parallel = np.abs(span) < PARALLEL_EPSILON
    t = np.where(parallel, 0.0, (value - wa[hit]) / np.where(parallel, 1.0, span))
    t = np.clip(t, 0.0, 1.0)

    start = vertices[edges[hit, 0]]
    end = vertices[edges[hit, 1]]
    points = start + t[:, None] * (end - start)
    points[:, axis] = value

    edge_to_point = {_edge_key(int(edges[e, 0]), int(edges[e, 1])): k for k, e in enumerate(hit)}

    face_list = faces
    if face_list is None:
        face_list = geometry.face_cycles
    if face_list is None and geometry.faces is not None and len(geometry.faces):
        face_list = geometry.faces.tolist()

    if face_list:
        segments = _edges_from_faces(face_list, edge_to_point)
    else:
        segments = _edges_from_shared_vertices(edge_to_point)

    return CrossSectionResult(points=_frozen(points, float),
                              edges=_frozen(np.array(segments, dtype=np.int64).reshape(-1, 2), np.int64),
                              has_intersection=True)


def project_cross_section_to_3d(result: CrossSectionResult) -> np.ndarray:
    """Drop every coordinate after Z."""
    points = np.asarray(result.points, dtype=float)
    out = np.zeros((len(points), 3))
    width = min(3, points.shape[1]) if points.ndim == 2 else 0
    out[:, :width] = points[:, :width]
    return out


# =============================================================================
# CONVEX HULL FACES
# =============================================================================

def _affine_frame(points: np.ndarray, tolerance: float = HULL_RANK_TOLERANCE) -> Tuple[np.ndarray, np.ndarray]:
    """Centroid and an orthonormal basis (k, D) of the affine hull of points."""
    centroid = points.mean(axis=0)
    centered = points - centroid
    _, singular, vt = np.linalg.svd(centered, full_matrices=False)
    if singular.size == 0 or singular[0] < tolerance:
        return centroid, np.empty((0, points.shape[1]))
    rank = int(np.sum(singular > tolerance * max(1.0, singular[0])))
    return centroid, vt[:rank]


def effective_dimension(points, tolerance: float = HULL_RANK_TOLERANCE) -> int:
    """Dimension of the affine subspace spanned by points."""
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or len(points) < 2:
        return 0
    _, basis = _affine_frame(points, tolerance)
    return len(basis)


@dataclass
class _HullTriangulation:
    faces: np.ndarray
    normals: np.ndarray
    facet_count: int
    actual_dimension: int


def _triangulate_hull(points) -> Optional[_HullTriangulation]:
    from scipy.spatial import ConvexHull, QhullError

    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or len(points) < 4 or points.shape[1] < 3:
        return None
    dimension = points.shape[1]
    centroid, basis = _affine_frame(points)
    k = len(basis)
    if k < 3:
        return None

    # Full-rank input keeps its own frame so winding matches the caller's orientation
    full_rank = k == dimension
    local = points - centroid if full_rank else (points - centroid) @ basis.T
    try:
        hull = ConvexHull(local)
    except (QhullError, ValueError) as e:
        warnings.warn(f"Convex hull failed: {e}", DegenerateInputWarning, stacklevel=3)
        return None

    simplices = hull.simplices
    facet_normals = hull.equations[:, :-1]

    if k == 3:
        triangles = simplices.copy()
        corners = local[triangles]
        winding = np.cross(corners[:, 1] - corners[:, 0], corners[:, 2] - corners[:, 0])
        flip = np.einsum('ij,ij->i', winding, facet_normals) < 0
        triangles[flip] = triangles[flip][:, [0, 2, 1]]
        facet_of = np.arange(len(simplices))
    else:
        combos = np.array(list(combinations(range(k), 3)))
        triangles = simplices[:, combos].reshape(-1, 3)
        facet_of = np.repeat(np.arange(len(simplices)), len(combos))

    _, first = np.unique(np.sort(triangles, axis=1), axis=0, return_index=True)
    first = np.sort(first)
    normals = facet_normals[facet_of[first]]
    if not full_rank:
        normals = normals @ basis

    return _HullTriangulation(faces=triangles[first].astype(np.int64),
                              normals=normals,
                              facet_count=len(simplices),
                              actual_dimension=k)


def extract_hull_faces_with_normals(points) -> Tuple[np.ndarray, np.ndarray]:
    """Hull triangles (F, 3) and one outward unit normal per triangle (F, D).

    Normals of triangles from an effectively higher-dimensional hull are the
    outward normals of the facet they came from, lifted back to D-space.
    """
    points = np.asarray(points, dtype=float)
    width = points.shape[1] if points.ndim == 2 else 0
    hull = _triangulate_hull(points)
    if hull is None:
        return np.empty((0, 3), dtype=np.int64), np.empty((0, width))

    missing = np.setdiff1d(np.arange(len(points)), hull.faces.ravel())
    if missing.size:
        warnings.warn(f"{missing.size} of {len(points)} points are not on any hull face",
                      HullCoverageWarning, stacklevel=2)
    return hull.faces, hull.normals


def extract_hull_faces(points) -> np.ndarray:
    """Triangular boundary faces of the convex hull of an (N, D) point set.

    The points are first projected onto their affine hull. Effective
    dimension 3 yields outward-wound hull triangles directly; higher
    effective dimensions contribute every 3-subset of each simplicial facet,
    deduplicated by vertex set. Fewer than 4 points, D < 3 or an effective
    dimension below 3 give an empty (0, 3) array.
    """
    faces, _ = extract_hull_faces_with_normals(points)
    return faces


def has_valid_convex_hull(points) -> bool:
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', DegenerateInputWarning)
        return _triangulate_hull(points) is not None


def get_convex_hull_stats(points) -> Optional[Dict[str, int]]:
    """Facet/triangle counts and dimensions of the hull, or None when degenerate."""
    points = np.asarray(points, dtype=float)
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', DegenerateInputWarning)
        hull = _triangulate_hull(points)
    if hull is None:
        return None
    return {
        'facet_count': hull.facet_count,
        'triangle_count': len(hull.faces),
        'dimension': points.shape[1],
        'actual_dimension': hull.actual_dimension,
        'vertex_count': len(points),
    }


def count_inward_faces(points, faces, normals=None) -> int:
    """Faces whose normal points toward the centroid of points.

    Without explicit normals the points must be 3D and the normal is the
    winding cross product.
    """
    points = np.asarray(points, dtype=float)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        return 0
    corners = points[faces]
    if normals is None:
        if points.shape[1] != 3:
            raise DimensionContractError("Winding normals need 3D points; pass normals explicitly")
        normals = np.cross(corners[:, 1] - corners[:, 0], corners[:, 2] - corners[:, 0])
    outward = corners.mean(axis=1) - points.mean(axis=0)
    return int(np.sum(np.einsum('ij,ij->i', np.asarray(normals, dtype=float), outward) <= 0))


# =============================================================================
# ROOT SYSTEMS
# =============================================================================

class RootSystemValidation(NamedTuple):
    valid: bool
    message: str = ""


class E8Verification(NamedTuple):
    valid: bool
    root_count: int
    all_same_length: bool
    issues: List[str]


def get_root_count(root_type: str, dimension: int) -> int:
    if root_type == 'A':
        return dimension * (dimension - 1)
    if root_type == 'D':
        return 2 * dimension * (dimension - 1)
    if root_type == 'E8':
        return 240
    raise ValueError(f"Unknown root system type {root_type!r}")


def validate_root_system_type(root_type: str, dimension: int) -> RootSystemValidation:
    if root_type not in ROOT_TYPES:
        return RootSystemValidation(False, f"Unknown root system type {root_type!r}; "
                                           f"choose from {ROOT_TYPES}")
    if dimension < MIN_DIMENSION or dimension > MAX_DIMENSION:
        return RootSystemValidation(False, f"Root systems are generated for dimensions "
                                           f"{MIN_DIMENSION}-{MAX_DIMENSION}, got {dimension}")
    if root_type == 'D' and dimension < 4:
        return RootSystemValidation(False, "D_n root system requires dimension >= 4")
    if root_type == 'E8' and dimension != 8:
        return RootSystemValidation(False, "E8 root system requires dimension = 8")
    return RootSystemValidation(True)


def generate_a_roots(dimension: int, scale: float = 2.0) -> np.ndarray:
    """e_i - e_j for all ordered pairs i != j: D(D-1) roots of length scale."""
    eye = np.eye(dimension)
    i, j = np.nonzero(~np.eye(dimension, dtype=bool))
    return (eye[i] - eye[j]) * (scale / math.sqrt(2.0))


def _signed_pairs(dimension: int) -> np.ndarray:
    """The 2D(D-1) vectors +-e_i +-e_j, i < j."""
    roots = []
    for pos in combinations(range(dimension), 2):
        for signs in product([1, -1], repeat=2):
            root = np.zeros(dimension)
            root[pos[0]] = signs[0]
            root[pos[1]] = signs[1]
            roots.append(root)
    return np.array(roots).reshape(-1, dimension)


def generate_d_roots(dimension: int, scale: float = 2.0) -> np.ndarray:
    if dimension < 4:
        raise DimensionContractError("D_n root system requires dimension >= 4")
    return _signed_pairs(dimension) * (scale / math.sqrt(2.0))


def generate_e8_roots(scale: float = 2.0) -> np.ndarray:
    """The 240 roots of E8, all of length scale."""
    # 112 of the form +-e_i +-e_j, 128 of the form (+-1/2)^8 with an even number of minus signs
    half = np.array([signs for signs in product([0.5, -0.5], repeat=8)
                     if sum(1 for s in signs if s < 0) % 2 == 0])
    roots = np.vstack([_signed_pairs(8), half])
    return roots * (scale / math.sqrt(2.0))


def verify_e8_roots(roots, tolerance: float = 1e-6) -> E8Verification:
    """Check count, common length, and that inner products take E8 values."""
    roots = np.asarray(roots, dtype=float)
    issues = []
    count = len(roots)
    if count != 240:
        issues.append(f"Expected 240 roots, found {count}")
    if roots.ndim != 2 or roots.shape[1] != 8:
        issues.append(f"Expected 8-dimensional roots, got shape {roots.shape}")
        return E8Verification(False, count, False, issues)

    lengths = np.linalg.norm(roots, axis=1)
    same_length = bool(count) and bool(np.all(np.abs(lengths - lengths[0]) < tolerance))
    if not same_length:
        issues.append("Roots do not all have the same length")
    elif count:
        gram = roots @ roots.T / lengths[0] ** 2
        allowed = np.array([-1.0, -0.5, 0.0, 0.5, 1.0])
        off = np.min(np.abs(gram[..., None] - allowed), axis=-1) > tolerance
        if off.any():
            issues.append(f"{int(off.sum()) // 2} root pairs have non-E8 inner products")
        if len(np.unique(np.round(roots / lengths[0], 6), axis=0)) != count:
            issues.append("Duplicate roots found")
    return E8Verification(not issues, count, same_length, issues)


def build_short_edges(vertices, tolerance: float = SHORT_EDGE_TOLERANCE) -> np.ndarray:
    """Pairs (i < j) within (1 + tolerance) of the minimum pairwise distance."""
    from scipy.spatial.distance import pdist

    vertices = np.asarray(vertices, dtype=float)
    if len(vertices) < 2:
        return np.empty((0, 2), dtype=np.int64)
    distances = pdist(vertices)
    positive = distances[distances > EPSILON]
    if positive.size == 0:
        return np.empty((0, 2), dtype=np.int64)
    i, j = np.triu_indices(len(vertices), k=1)
    keep = (distances > EPSILON) & (distances <= positive.min() * (1.0 + tolerance))
    return np.stack([i[keep], j[keep]], axis=1).astype(np.int64)


def find_triangle_faces(edges, vertex_count: int) -> np.ndarray:
    """Every 3-clique (i < j < k) of an undirected edge graph."""
    edges = np.sort(np.asarray(edges, dtype=np.int64).reshape(-1, 2), axis=1)
    if len(edges) == 0:
        return np.empty((0, 3), dtype=np.int64)
    adjacency = np.zeros((vertex_count, vertex_count), dtype=bool)
    adjacency[edges[:, 0], edges[:, 1]] = True
    adjacency[edges[:, 1], edges[:, 0]] = True
    np.fill_diagonal(adjacency, False)
    edges = np.unique(edges[edges[:, 0] != edges[:, 1]], axis=0)

    common = adjacency[edges[:, 0]] & adjacency[edges[:, 1]]
    common &= np.arange(vertex_count)[None, :] > edges[:, 1][:, None]
    edge_idx, third = np.nonzero(common)
    return np.stack([edges[edge_idx, 0], edges[edge_idx, 1], third], axis=1).astype(np.int64)


class NdGeometryGenerator(ABC):
    """Base class for generators of n-dimensional objects."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the generated family."""
        pass

    @property
    def description(self) -> str:
        return ""

    @property
    def min_dimension(self) -> int:
        return MIN_DIMENSION

    @property
    def max_dimension(self) -> int:
        return MAX_DIMENSION

    def supports(self, dimension: int) -> bool:
        return self.min_dimension <= dimension <= self.max_dimension

    @abstractmethod
    def generate(self, dimension: int) -> NdGeometry:
        """Build the object in the given dimension."""
        pass

    def metadata(self) -> dict:
        return {
            "class": type(self).__name__,
            "name": self.name,
            "description": self.description,
            "dimensions": [self.min_dimension, self.max_dimension],
        }


class RootSystemGenerator(NdGeometryGenerator):
    """
    Root systems A_{n-1}, D_n and E8 as polytope-like objects.

    Vertices are the roots, scaled to a common length; edges join roots at the
    minimum pairwise distance (the 60-degree neighbours), and faces are the
    triangles of that edge graph.

    A in n-space has n(n-1) roots spanning an (n-1)-dimensional subspace,
    D_n has 2n(n-1) roots (n >= 4), E8 has 240 (n = 8 only).
    """

    def __init__(self, config: Optional[RootSystemConfig] = None, **kwargs):
        self.config = config if config is not None else RootSystemConfig(**kwargs)
        if self.config.root_type not in ROOT_TYPES:
            raise ValueError(f"Unknown root system type {self.config.root_type!r}; "
                             f"choose from {ROOT_TYPES}")

    @property
    def name(self) -> str:
        return f"Root System {self.config.root_type}"

    @property
    def description(self) -> str:
        return "Lie-algebra root vectors with nearest-neighbour edges and triangle faces."

    @property
    def min_dimension(self) -> int:
        return {'A': 3, 'D': 4, 'E8': 8}[self.config.root_type]

    @property
    def max_dimension(self) -> int:
        return 8 if self.config.root_type == 'E8' else MAX_DIMENSION

    def roots(self, dimension: int) -> np.ndarray:
        root_type, scale = self.config.root_type, self.config.scale
        if root_type == 'A':
            return generate_a_roots(dimension, scale)
        if root_type == 'D':
            return generate_d_roots(dimension, scale)
        return generate_e8_roots(scale)

    def generate(self, dimension: int) -> NdGeometry:
        check = validate_root_system_type(self.config.root_type, dimension)
        if not check.valid:
            raise DimensionContractError(check.message)

        root_type = self.config.root_type
        vertices = self.roots(dimension)
        edges = build_short_edges(vertices)
        faces = find_triangle_faces(edges, len(vertices))

        if root_type == 'E8':
            label, formula = "E8 Root System", "240 roots: +-e_i +-e_j and (+-1/2)^8, even minus count"
        elif root_type == 'D':
            label, formula = f"D{dimension} Root System", "+-e_i +-e_j, i < j"
        else:
            label, formula = f"A{dimension - 1} Root System", "e_i - e_j, i != j"

        return NdGeometry(
            vertices=vertices,
            edges=edges,
            dimension=dimension,
            type='root-system',
            faces=faces,
            is_point_cloud=False,
            metadata=GeometryMetadata(name=label, formula=formula, properties={
                'root_type': root_type,
                'root_count': len(vertices),
                'edge_count': len(edges),
                'face_count': len(faces),
                'scale': self.config.scale,
            }),
        )


def generate_root_system(dimension: int, config: Optional[RootSystemConfig] = None) -> NdGeometry:
    return RootSystemGenerator(config).generate(dimension)


# =============================================================================
# HYPERBULB FRACTALS
# =============================================================================

def _to_hyperspherical(z: np.ndarray, epsilon: float) -> Tuple[np.ndarray, np.ndarray]:
    """Batched (N, D) -> radii (N,) and angles (N, D-1)."""
    n_points, dimension = z.shape
    squares = z * z
    # tails[:, i] = x_i^2 + ... + x_{D-1}^2
    tails = np.cumsum(squares[:, ::-1], axis=1)[:, ::-1]
    r = np.sqrt(tails[:, 0])
    theta = np.zeros((n_points, dimension - 1))
    if dimension > 2:
        denom = np.sqrt(np.maximum(tails[:, :dimension - 2], epsilon))
        theta[:, :dimension - 2] = np.arccos(np.clip(z[:, :dimension - 2] / denom, -1.0, 1.0))
    theta[:, dimension - 2] = np.arctan2(z[:, dimension - 1], z[:, dimension - 2])
    tiny = r < epsilon
    r[tiny] = 0.0
    theta[tiny] = 0.0
    return r, theta


def _from_hyperspherical(r: np.ndarray, theta: np.ndarray) -> np.ndarray:
    n_points, n_angles = theta.shape
    dimension = n_angles + 1
    out = np.empty((n_points, dimension))
    sin_product = np.array(r, dtype=float, copy=True)
    for i in range(dimension - 2):
        out[:, i] = sin_product * np.cos(theta[:, i])
        sin_product = sin_product * np.sin(theta[:, i])
    out[:, dimension - 2] = sin_product * np.cos(theta[:, dimension - 2])
    out[:, dimension - 1] = sin_product * np.sin(theta[:, dimension - 2])
    return out


def _as_batch(v) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    if v.ndim != 1 or v.size < 2:
        raise DimensionContractError(f"Expected a vector with at least 2 components, got shape {v.shape}")
    return v.reshape(1, -1)


def to_hyperspherical(v, epsilon: float = HYPERSPHERICAL_EPSILON) -> Tuple[float, np.ndarray]:
    """Radius and D-1 angles: theta_i = acos(x_i / |x_i..x_{D-1}|) for
    i < D-2, and the last angle is atan2(x_{D-1}, x_{D-2})."""
    r, theta = _to_hyperspherical(_as_batch(v), epsilon)
    return float(r[0]), theta[0]


def from_hyperspherical(r: float, theta) -> np.ndarray:
    theta = np.asarray(theta, dtype=float).reshape(1, -1)
    if theta.shape[1] < 1:
        raise DimensionContractError("Need at least one angle")
    return _from_hyperspherical(np.array([float(r)]), theta)[0]


def _pow_map(z: np.ndarray, power: float, epsilon: float) -> np.ndarray:
    r, theta = _to_hyperspherical(z, epsilon)
    return _from_hyperspherical(r ** power, theta * power)


def _mandelbulb_pow(z: np.ndarray, power: float, epsilon: float) -> np.ndarray:
    """Classic 3D Mandelbulb power: theta from the Z axis, phi in the XY plane."""
    r = np.linalg.norm(z, axis=1)
    safe_r = np.where(r < epsilon, 1.0, r)
    theta = np.arccos(np.clip(z[:, 2] / safe_r, -1.0, 1.0)) * power
    phi = np.arctan2(z[:, 1], z[:, 0]) * power
    rn = np.where(r < epsilon, 0.0, r ** power)
    return np.stack([rn * np.sin(theta) * np.cos(phi),
                     rn * np.sin(theta) * np.sin(phi),
                     rn * np.cos(theta)], axis=1)


def pow_map(z, power: float = 8.0, epsilon: float = HYPERSPHERICAL_EPSILON) -> np.ndarray:
    """Raise r to 'power' and multiply every angle by it."""
    return _pow_map(_as_batch(z), power, epsilon)[0]


def hyperbulb_step(z, c, power: float = 8.0, epsilon: float = HYPERSPHERICAL_EPSILON) -> np.ndarray:
    return pow_map(z, power, epsilon) + np.asarray(c, dtype=float)


def mandelbulb_step(z, c, power: float = 8.0, epsilon: float = HYPERSPHERICAL_EPSILON) -> np.ndarray:
    z = np.asarray(z, dtype=float)
    if z.shape != (3,):
        raise DimensionContractError(f"mandelbulb_step is 3-dimensional, got shape {z.shape}")
    return _mandelbulb_pow(z.reshape(1, 3), power, epsilon)[0] + np.asarray(c, dtype=float)


def _validate_iteration(power: float, max_iterations: int, escape_radius: float):
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
    if not escape_radius > 1.0:
        raise ValueError(f"escape_radius must be > 1, got {escape_radius}")
    if not power > 1.0:
        raise ValueError(f"power must be > 1, got {power}")


def escape_times(c_vectors, power: float = 8.0, max_iterations: int = 80,
                 escape_radius: float = 4.0, epsilon: float = HYPERSPHERICAL_EPSILON,
                 smooth: bool = False) -> np.ndarray:
    """Batched escape-time iteration of z -> z^power + c from z = 0.

    Each step is applied before the bailout test |z|^2 > R^2. A point that
    escapes on the n-th step (0-based) scores n, or with smooth=True
    max(0, n + 1 - log(log|z| / log R) / log(power)). Points still bounded
    after max_iterations score exactly max_iterations. Three-dimensional input
    uses the classic Mandelbulb power; other dimensions use hyperspherical
    coordinates.
    """
    _validate_iteration(power, max_iterations, escape_radius)
    c = np.asarray(c_vectors, dtype=float)
    if c.ndim == 1:
        c = c.reshape(1, -1)
    n_points, dimension = c.shape
    if dimension < 2:
        raise DimensionContractError(f"Escape time needs at least 2 dimensions, got {dimension}")

    step = _mandelbulb_pow if dimension == 3 else _pow_map
    result = np.full(n_points, float(max_iterations))
    z = np.zeros_like(c)
    active = np.arange(n_points)
    bailout = escape_radius * escape_radius
    log_radius = math.log(escape_radius)
    log_power = math.log(power)

    with np.errstate(over='ignore', invalid='ignore'):
        for iteration in range(max_iterations):
            if active.size == 0:
                break
            z_active = step(z[active], power, epsilon) + c[active]
            z[active] = z_active
            norm2 = np.einsum('ij,ij->i', z_active, z_active)
            escaped = norm2 > bailout
            if escaped.any():
                idx = active[escaped]
                if smooth:
                    magnitude = np.sqrt(norm2[escaped])
                    nu = np.log(np.log(magnitude) / log_radius) / log_power
                    result[idx] = np.maximum(0.0, np.nan_to_num(iteration + 1 - nu, nan=0.0, neginf=0.0))
                else:
                    result[idx] = iteration
                active = active[~escaped]
    return result


def smooth_escape_times(c_vectors, power: float = 8.0, max_iterations: int = 80,
                        escape_radius: float = 4.0,
                        epsilon: float = HYPERSPHERICAL_EPSILON) -> np.ndarray:
    """Fractional escape times for a (N, D) batch."""
    return escape_times(c_vectors, power, max_iterations, escape_radius, epsilon, smooth=True)


def escape_time(c, power: float = 8.0, max_iterations: int = 80,
                escape_radius: float = 4.0, epsilon: float = HYPERSPHERICAL_EPSILON) -> int:
    """Integer escape time of a single parameter vector c."""
    return int(escape_times(_as_batch(c), power, max_iterations, escape_radius, epsilon)[0])


def smooth_escape_time(c, power: float = 8.0, max_iterations: int = 80,
                       escape_radius: float = 4.0, epsilon: float = HYPERSPHERICAL_EPSILON) -> float:
    return float(escape_times(_as_batch(c), power, max_iterations, escape_radius, epsilon,
                              smooth=True)[0])


def _validate_hyperbulb(dimension: int, config: HyperbulbConfig) -> int:
    dimension = _check_dimension(dimension, MIN_DIMENSION, MAX_DIMENSION)
    _validate_iteration(config.power, config.max_iterations, config.escape_radius)
    axes = tuple(config.visualization_axes)
    if len(axes) != 3 or len(set(axes)) != 3:
        raise ValueError(f"visualization_axes must be three distinct axes, got {axes}")
    if min(axes) < 0 or max(axes) >= dimension:
        raise DimensionContractError(
            f"visualization_axes {axes} out of range for dimension {dimension}")
    if config.resolution < 2:
        raise ValueError(f"resolution must be >= 2, got {config.resolution}")
    if config.color_mode not in COLOR_MODES:
        raise ValueError(f"Unknown color mode {config.color_mode!r}; choose from {COLOR_MODES}")
    lo, hi = config.boundary_threshold
    if lo > hi:
        raise ValueError(f"boundary_threshold must be (low, high), got {config.boundary_threshold}")
    return dimension


def generate_sample_grid(dimension: int, config: Optional[HyperbulbConfig] = None) -> HyperbulbSamples:
    """resolution^3 samples over the visualization axes, with escape times."""
    config = config if config is not None else HyperbulbConfig()
    dimension = _validate_hyperbulb(dimension, config)

    axes = list(config.visualization_axes)
    center = np.zeros(dimension)
    given = np.asarray(config.center, dtype=float)[:dimension]
    center[:len(given)] = given

    offsets = np.linspace(-config.extent, config.extent, config.resolution)
    gx, gy, gz = np.meshgrid(offsets, offsets, offsets, indexing='ij')
    world = np.stack([gx.ravel(), gy.ravel(), gz.ravel()], axis=1)

    c = np.zeros((len(world), dimension))
    c[:, axes] = world + center[axes]
    others = [a for a in range(dimension) if a not in axes]
    params = list(config.parameter_values)
    for k, a in enumerate(others):
        c[:, a] = params[k] if k < len(params) else 0.0

    times = escape_times(c, config.power, config.max_iterations, config.escape_radius,
                         config.epsilon, smooth=config.color_mode == 'smooth_coloring')
    return HyperbulbSamples(world_pos=world, c_vectors=c, escape_times=times)


def filter_samples(samples: HyperbulbSamples, config: HyperbulbConfig) -> HyperbulbSamples:
    """Keep the samples the color mode shows.

    escape_time / smooth_coloring keep everything, interior_only keeps the
    bounded samples, boundary_only keeps lo <= escape / max_iterations <= hi.
    """
    mode = config.color_mode
    if mode in ('escape_time', 'smooth_coloring'):
        return samples
    if mode == 'interior_only':
        return samples.subset(samples.escape_times >= config.max_iterations)
    if mode == 'boundary_only':
        lo, hi = config.boundary_threshold
        fraction = samples.escape_times / config.max_iterations
        return samples.subset((fraction >= lo) & (fraction <= hi))
    raise ValueError(f"Unknown color mode {mode!r}; choose from {COLOR_MODES}")


def get_hyperbulb_stats(samples: HyperbulbSamples, max_iterations: int) -> Dict[str, float]:
    """Bounded/escaped counts; escape-time stats cover escaped samples only."""
    times = np.asarray(samples.escape_times, dtype=float)
    total = len(times)
    escaped_times = times[times < max_iterations]
    escaped = len(escaped_times)
    bounded = total - escaped
    return {
        'total': total,
        'bounded': bounded,
        'escaped': escaped,
        'bounded_ratio': bounded / total if total else 0.0,
        'min_escape_time': float(escaped_times.min()) if escaped else 0.0,
        'max_escape_time': float(escaped_times.max()) if escaped else 0.0,
        'avg_escape_time': float(escaped_times.mean()) if escaped else 0.0,
    }


class HyperbulbGenerator(NdGeometryGenerator):
    """
    Generalized Mandelbulb point clouds.

    Samples a 3D slab of c-space (the visualization axes, every other axis
    held at its parameter value), scores each sample by escape time under
    z -> z^p + c, and keeps the samples the color mode selects. In 3D this is
    the classic Mandelbulb; above that, powers act on hyperspherical
    coordinates.
    """

    def __init__(self, config: Optional[HyperbulbConfig] = None, **kwargs):
        self.config = config if config is not None else HyperbulbConfig(**kwargs)

    @property
    def name(self) -> str:
        return "Hyperbulb"

    @property
    def description(self) -> str:
        return "Escape-time fractal z -> z^p + c sampled on a 3D slab of c-space."

    def samples(self, dimension: int) -> HyperbulbSamples:
        return generate_sample_grid(dimension, self.config)

    def generate(self, dimension: int) -> NdGeometry:
        config = self.config
        all_samples = self.samples(dimension)
        kept = filter_samples(all_samples, config)
        return NdGeometry(
            vertices=kept.c_vectors,
            edges=np.empty((0, 2), dtype=np.int64),
            dimension=dimension,
            type='hyperbulb',
            is_point_cloud=True,
            metadata=GeometryMetadata(
                name="Mandelbulb" if dimension == 3 else "Hyperbulb",
                formula=f"z -> z^{config.power:g} + c",
                properties={
                    'power': config.power,
                    'max_iterations': config.max_iterations,
                    'escape_radius': config.escape_radius,
                    'resolution': config.resolution,
                    'color_mode': config.color_mode,
                    'sample_count': len(all_samples),
                    'point_count': len(kept),
                    'escape_times': _frozen(kept.escape_times, float),
                    'world_positions': _frozen(kept.world_pos, float),
                }),
        )


def generate_hyperbulb(dimension: int, config: Optional[HyperbulbConfig] = None) -> NdGeometry:
    return HyperbulbGenerator(config).generate(dimension)


# =============================================================================
# TRANSFER BUFFERS
# =============================================================================

@dataclass
class TransferableGeometry:
    """NdGeometry with its arrays flattened into float64/uint32 buffers.

    face_cycles is the concatenation of every polygonal face cycle and
    face_cycle_lengths holds the vertex count of each cycle in order.
    """
    vertices: np.ndarray
    edges: np.ndarray
    dimension: int
    type: str
    is_point_cloud: bool = False
    metadata: GeometryMetadata = field(default_factory=lambda: GeometryMetadata(name=""))
    faces: Optional[np.ndarray] = None
    face_cycles: Optional[np.ndarray] = None
    face_cycle_lengths: Optional[np.ndarray] = None


def flatten_vertices(vertices) -> Tuple[np.ndarray, int]:
    vertices = np.asarray(vertices, dtype=np.float64)
    if vertices.ndim != 2:
        raise ValueError(f"Expected an (N, D) vertex array, got shape {vertices.shape}")
    return np.ascontiguousarray(vertices).ravel().copy(), vertices.shape[1]


def inflate_vertices(buffer, dimension: int) -> np.ndarray:
    if dimension <= 0:
        raise ValueError(f"Invalid dimension: {dimension}")
    buffer = np.asarray(buffer, dtype=np.float64)
    if buffer.size % dimension:
        raise ValueError(f"Vertex buffer length {buffer.size} is not divisible by dimension {dimension}")
    return buffer.reshape(-1, dimension).copy()


def flatten_faces(faces) -> np.ndarray:
    return np.asarray(faces, dtype=np.uint32).reshape(-1, 3).ravel().copy()


def inflate_faces(buffer, vertex_count: Optional[int] = None) -> np.ndarray:
    buffer = np.asarray(buffer)
    if buffer.size % 3:
        raise ValueError(f"Face buffer length {buffer.size} is not divisible by 3")
    faces = buffer.astype(np.int64).reshape(-1, 3)
    if vertex_count is not None and len(faces) and faces.max() >= vertex_count:
        raise ValueError(f"Face buffer references vertex {int(faces.max())} "
                         f"but only {vertex_count} vertices exist")
    return faces


def flatten_face_cycles(cycles) -> Tuple[np.ndarray, np.ndarray]:
    lengths = np.array([len(cycle) for cycle in cycles], dtype=np.uint32)
    if not len(lengths):
        return np.zeros(0, dtype=np.uint32), lengths
    flat = np.concatenate([np.asarray(cycle, dtype=np.uint32) for cycle in cycles])
    return flat, lengths


def inflate_face_cycles(buffer, lengths, vertex_count: Optional[int] = None) -> List[Tuple[int, ...]]:
    buffer = np.asarray(buffer).astype(np.int64).ravel()
    lengths = np.asarray(lengths).astype(np.int64).ravel()
    if len(lengths) and lengths.min() < 3:
        raise ValueError(f"Face cycle length {int(lengths.min())} is below 3")
    if int(lengths.sum()) != buffer.size:
        raise ValueError(f"Face cycle lengths sum to {int(lengths.sum())}, "
                         f"which does not match buffer length {buffer.size}")
    if vertex_count is not None and buffer.size and buffer.max() >= vertex_count:
        raise ValueError(f"Face cycle buffer references vertex {int(buffer.max())} "
                         f"but only {vertex_count} vertices exist")
    offsets = np.concatenate([[0], np.cumsum(lengths)])
    return [tuple(int(i) for i in buffer[start:stop])
            for start, stop in zip(offsets[:-1], offsets[1:])]


def flatten_geometry(geometry: NdGeometry) -> Tuple[TransferableGeometry, List[np.ndarray]]:
    """Flatten into a TransferableGeometry plus the buffers it owns.

    The buffers (vertices, edges, then faces and the two face cycle buffers
    when present) are the arrays a caller hands to another process without
    copying again.
    """
    vertices, _ = flatten_vertices(geometry.vertices)
    edges = np.asarray(geometry.edges, dtype=np.uint32).ravel().copy()
    faces = flatten_faces(geometry.faces) if geometry.faces is not None else None
    cycles = cycle_lengths = None
    if geometry.face_cycles is not None:
        cycles, cycle_lengths = flatten_face_cycles(geometry.face_cycles)
    transferable = TransferableGeometry(
        vertices=vertices,
        edges=edges,
        dimension=geometry.dimension,
        type=geometry.type,
        is_point_cloud=geometry.is_point_cloud,
        metadata=geometry.metadata,
        faces=faces,
        face_cycles=cycles,
        face_cycle_lengths=cycle_lengths,
    )
    buffers = [vertices, edges] + ([faces] if faces is not None else [])
    if cycles is not None:
        buffers += [cycles, cycle_lengths]
    return transferable, buffers


def inflate_geometry(transferable: TransferableGeometry) -> NdGeometry:
    """Rebuild an NdGeometry, rejecting buffers that do not describe one."""
    dimension = transferable.dimension
    vertices = inflate_vertices(transferable.vertices, dimension)

    edge_buffer = np.asarray(transferable.edges)
    if edge_buffer.size % 2:
        raise ValueError(f"Edge buffer length {edge_buffer.size} is not divisible by 2")
    edges = edge_buffer.astype(np.int64).reshape(-1, 2)
    if len(edges) and edges.max() >= len(vertices):
        raise ValueError(f"Edge buffer references vertex {int(edges.max())} "
                         f"but only {len(vertices)} vertices exist")

    faces = None
    if transferable.faces is not None:
        faces = inflate_faces(transferable.faces, len(vertices))

    cycles = None
    if (transferable.face_cycles is None) != (transferable.face_cycle_lengths is None):
        raise ValueError("Face cycle buffer and face cycle lengths must be sent together")
    if transferable.face_cycles is not None:
        cycles = inflate_face_cycles(transferable.face_cycles,
                                     transferable.face_cycle_lengths, len(vertices))

    return NdGeometry(vertices=vertices, edges=edges, dimension=dimension,
                      type=transferable.type, faces=faces,
                      is_point_cloud=transferable.is_point_cloud,
                      metadata=transferable.metadata, face_cycles=cycles)


FACE_METHODS = ('convex-hull', 'triangles')


def compute_faces(flat_vertices, dimension: int, method: str = 'convex-hull',
                  flat_edges=None) -> np.ndarray:
    """Faces for flat buffers, returned as a flat uint32 buffer.

    'convex-hull' runs extract_hull_faces on the vertices; 'triangles' finds
    the 3-cliques of the edge graph given in flat_edges.
    """
    vertices = inflate_vertices(flat_vertices, dimension)
    if method == 'convex-hull':
        faces = extract_hull_faces(vertices)
    elif method == 'triangles':
        if flat_edges is None:
            raise ValueError("The 'triangles' method needs an edge buffer")
        edge_buffer = np.asarray(flat_edges)
        if edge_buffer.size % 2:
            raise ValueError(f"Edge buffer length {edge_buffer.size} is not divisible by 2")
        edges = edge_buffer.astype(np.int64).reshape(-1, 2)
        if len(edges) and edges.max() >= len(vertices):
            raise ValueError(f"Edge buffer references vertex {int(edges.max())} "
                             f"but only {len(vertices)} vertices exist")
        faces = find_triangle_faces(edges, len(vertices))
    else:
        raise ValueError(f"Unknown face method {method!r}; choose from {FACE_METHODS}")
    return flatten_faces(faces)
