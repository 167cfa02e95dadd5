#!/usr/bin/env python3
"""
N-Dimensional Geometry Kernel Quickstart - Run this to verify the kernel and see examples.

Usage:
    pip install -e .
    python quickstart.py
"""

import math

import numpy as np

print("=" * 70)
print("N-DIMENSIONAL GEOMETRY KERNEL - QUICKSTART")
print("=" * 70)

from nd_geometry_kernel import (
    RotationComposer, Projector, RootSystemConfig, HyperbulbConfig,
    generate_root_system, generate_hyperbulb, extract_hull_faces,
    get_convex_hull_stats, cross_section, get_rotation_plane_count,
    escape_time, smooth_escape_time, flatten_geometry, inflate_geometry,
)
print("\n[OK] Kernel imported successfully")

# Rotation planes per dimension
print("\n" + "-" * 70)
print("ROTATION PLANES")
print("-" * 70)
for d in (3, 4, 5, 8, 11):
    print(f"  {d:>2}D: {get_rotation_plane_count(d):>2} planes")

composer = RotationComposer()
state = composer.update(4, {"XW": math.pi / 6, "YZ": math.pi / 4})
print(f"  4D rotation (XW, YZ) orthonormal: "
      f"{np.allclose(state.matrix @ state.matrix.T, np.eye(4))}, version {state.version}")

# Root systems
print("\n" + "-" * 70)
print("ROOT SYSTEMS")
print("-" * 70)

print("\n{:<20} | {:>6} | {:>6} | {:>6} | {:>10} | {:>6}".format(
    "System", "Roots", "Edges", "Faces", "Hull tris", "Dim"))
print("-" * 70)

for root_type, dim in [("A", 4), ("D", 4), ("D", 5), ("E8", 8)]:
    geom = generate_root_system(dim, RootSystemConfig(root_type=root_type))
    stats = get_convex_hull_stats(geom.vertices)
    print("{:<20} | {:>6} | {:>6} | {:>6} | {:>10} | {:>6}".format(
        geom.metadata.name, geom.vertex_count, geom.edge_count, len(geom.faces),
        stats["triangle_count"], f"{stats['actual_dimension']}/{dim}"))

# Projection and cross sections
print("\n" + "-" * 70)
print("PROJECTION AND CROSS SECTIONS (24-cell)")
print("-" * 70)

cell24 = generate_root_system(4, RootSystemConfig(root_type="D", scale=1.0))
rotated = cell24.vertices @ state.matrix.T
projector = Projector.for_vertices(rotated)
projected = projector.project_vertices(rotated)
print(f"  {projector}: {projected.shape[0]} points, all finite: {np.all(np.isfinite(projected))}")

for w in (-0.5, 0.0, 0.5, 1.5):
    result = cross_section(cell24, value=w)
    print(f"  W = {w:+.1f}: intersects={result.has_intersection!s:<5} "
          f"points={len(result.points):>2} edges={len(result.edges):>2}")

# Hull of a random point cloud
rng = np.random.default_rng(42)
cloud = rng.normal(size=(60, 5))
print(f"\n  Hull of 60 random points in 5D: {len(extract_hull_faces(cloud))} triangles")

# Hyperbulb
print("\n" + "-" * 70)
print("HYPERBULB ESCAPE TIMES")
print("-" * 70)

for c in ([0.0, 0.0, 0.0, 0.0], [0.3, -0.2, 0.4, 0.1], [0.9, 0.4, -0.5, 0.2], [5.0, 0.0, 0.0, 0.0]):
    print(f"  c = {str(c):<26}: escape={escape_time(c):>3}  smooth={smooth_escape_time(c):7.3f}")

config = HyperbulbConfig.from_preset("draft", color_mode="boundary_only")
bulb = generate_hyperbulb(4, config)
props = bulb.metadata.properties
print(f"\n  4D {bulb.metadata.name}: kept {props['point_count']} of {props['sample_count']} samples "
      f"({config.color_mode})")

# Transfer round trip
transferable, buffers = flatten_geometry(cell24)
restored = inflate_geometry(transferable)
print(f"\n  Transfer round trip: {len(buffers)} buffers, "
      f"exact={np.array_equal(restored.vertices, cell24.vertices)}")

# What to explore next
print("\n" + "=" * 70)
print("NEXT STEPS")
print("=" * 70)
print("""
Inspect a component from the command line:
    python tools/kernel_report.py roots --type E8 --dim 8 --verify
    python tools/kernel_report.py slice --dim 4 --value 0.25 --rotate XW=0.4
    python tools/kernel_report.py preview --type D --dim 4 --rotate XW=0.6

Use the kernel in your own code:
    from nd_geometry_kernel import generate_root_system, RootSystemConfig
    geometry = generate_root_system(8, RootSystemConfig(root_type='E8'))
""")

print("[OK] Quickstart complete!")
