#!/usr/bin/env python3
"""
CLI wrapper for the n-dimensional geometry kernel.

Usage:
    python tools/kernel_report.py roots --type D --dim 5       # root counts, edges, faces, hull stats
    python tools/kernel_report.py roots --type E8 --dim 8 --verify
    python tools/kernel_report.py hull --cube 4                # hull faces of a hypercube
    python tools/kernel_report.py slice --dim 4 --value 0.25   # slice a hypercube at W = 0.25
    python tools/kernel_report.py hyperbulb --dim 5 --quality draft --mode boundary_only
    python tools/kernel_report.py preview --type D --dim 4 --rotate XW=0.6 --rotate YZ=0.3
"""

import argparse
import os
import sys
from itertools import product

import numpy as np

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

import nd_geometry_kernel as ngk  # noqa: E402


def section(title):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def hypercube(dimension):
    """{-1, 1}^D with unit-step edges and square face cycles."""
    vertices = np.array(list(product([-1.0, 1.0], repeat=dimension)))
    n = len(vertices)
    differs = (vertices[:, None, :] != vertices[None, :, :]).sum(axis=2)
    i, j = np.nonzero(np.triu(differs == 1))
    cycles = []
    for a in range(dimension):
        for b in range(a + 1, dimension):
            for k in range(n):
                # the square spanned by axes a, b whose low corner is vertex k
                if vertices[k, a] < 0 and vertices[k, b] < 0:
                    step_a = 1 << (dimension - 1 - a)
                    step_b = 1 << (dimension - 1 - b)
                    cycles.append((k, k + step_a, k + step_a + step_b, k + step_b))
    return ngk.NdGeometry(vertices=vertices, edges=np.stack([i, j], axis=1), dimension=dimension,
                          type='polytope', face_cycles=cycles,
                          metadata=ngk.GeometryMetadata(name=f"{dimension}-cube"))


def parse_rotations(items):
    angles = {}
    for item in items or []:
        plane, _, value = item.partition('=')
        angles[plane.strip()] = float(value)
    return angles


def cmd_roots(args):
    config = ngk.RootSystemConfig(root_type=args.type, scale=args.scale)
    geometry = ngk.generate_root_system(args.dim, config)
    section(geometry.metadata.name)
    print(f"  {geometry.summary()}")
    print(f"  Formula: {geometry.metadata.formula}")
    print(f"  Expected roots: {ngk.get_root_count(args.type, args.dim)}")
    stats = ngk.get_convex_hull_stats(geometry.vertices)
    if stats is None:
        print("  Hull: degenerate (effective dimension < 3)")
    else:
        for key, value in stats.items():
            print(f"  hull.{key:<17} {value}")
    if args.verify and args.type == 'E8':
        check = ngk.verify_e8_roots(geometry.vertices)
        print(f"  E8 verification: {'OK' if check.valid else 'FAILED'}")
        for issue in check.issues:
            print(f"    - {issue}")


def cmd_hull(args):
    geometry = hypercube(args.cube)
    faces, normals = ngk.extract_hull_faces_with_normals(geometry.vertices)
    section(f"Hull of the {args.cube}-cube")
    print(f"  {len(faces)} triangles over {geometry.vertex_count} vertices")
    print(f"  inward-facing: {ngk.count_inward_faces(geometry.vertices, faces, normals)}")


def cmd_slice(args):
    geometry = hypercube(args.dim)
    matrix = ngk.compose_rotation(args.dim, parse_rotations(args.rotate))
    rotated = ngk.NdGeometry(vertices=geometry.vertices @ matrix.T, edges=geometry.edges,
                             dimension=args.dim, type='polytope', face_cycles=geometry.face_cycles)
    low, high = ngk.axis_range(rotated, args.axis)
    result = ngk.cross_section(rotated, value=args.value, axis=args.axis)
    section(f"Slice of the {args.dim}-cube at {ngk.get_axis_name(args.axis)} = {args.value}")
    print(f"  axis range: [{low:.4f}, {high:.4f}]")
    print(f"  intersects: {result.has_intersection}")
    print(f"  points: {len(result.points)}  edges: {len(result.edges)}")


def cmd_hyperbulb(args):
    config = ngk.HyperbulbConfig.from_preset(args.quality, color_mode=args.mode, power=args.power)
    samples = ngk.generate_sample_grid(args.dim, config)
    kept = ngk.filter_samples(samples, config)
    stats = ngk.get_hyperbulb_stats(samples, config.max_iterations)
    section(f"{args.dim}D hyperbulb, power {args.power:g}, {args.quality} quality")
    for key, value in stats.items():
        print(f"  {key:<16} {value:.4f}" if isinstance(value, float) else f"  {key:<16} {value}")
    print(f"  kept by {args.mode}: {len(kept)}")


def cmd_preview(args):
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt

    if args.type == 'cube':
        geometry = hypercube(args.dim)
    else:
        geometry = ngk.generate_root_system(args.dim, ngk.RootSystemConfig(root_type=args.type))

    composer = ngk.RotationComposer()
    state = composer.update(args.dim, parse_rotations(args.rotate))
    rotated = geometry.vertices @ state.matrix.T
    projector = ngk.Projector.for_vertices(rotated, mode=args.projection)
    points = projector.project_vertices(rotated)
    depth = np.array([ngk.calculate_depth(v) for v in rotated])

    fig = plt.figure(figsize=(8, 8), facecolor='#181818')
    ax = fig.add_subplot(projection='3d')
    ax.set_facecolor('#181818')
    for a, b in geometry.edges:
        ax.plot(*points[[a, b]].T, color='#5dade2', linewidth=0.6, alpha=0.6)
    ax.scatter(*points.T, c=depth, cmap='plasma', s=14)
    ax.set_title(f"{geometry.metadata.name} ({projector.mode})", color='#cccccc')
    ax.set_axis_off()

    fig_dir = os.path.join(ROOT, 'figures')
    os.makedirs(fig_dir, exist_ok=True)
    name = args.output or f"preview_{args.type.lower()}{args.dim}.png"
    out = os.path.join(fig_dir, name)
    fig.savefig(out, dpi=150, facecolor='#181818')
    plt.close(fig)
    print(f"\nFigure saved: {out}")


def main():
    parser = argparse.ArgumentParser(
        description="N-dimensional geometry kernel CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest='command')

    p_roots = sub.add_parser('roots', help='Generate a root system and report counts')
    p_roots.add_argument('--type', default='A', choices=list(ngk.ROOT_TYPES))
    p_roots.add_argument('--dim', type=int, default=4)
    p_roots.add_argument('--scale', type=float, default=2.0)
    p_roots.add_argument('--verify', action='store_true', help='Run the E8 checks')

    p_hull = sub.add_parser('hull', help='Hull faces of a hypercube')
    p_hull.add_argument('--cube', type=int, default=4, help='Hypercube dimension')

    p_slice = sub.add_parser('slice', help='Cross section of a rotated hypercube')
    p_slice.add_argument('--dim', type=int, default=4)
    p_slice.add_argument('--value', type=float, default=0.0)
    p_slice.add_argument('--axis', type=int, default=ngk.W_AXIS)
    p_slice.add_argument('--rotate', action='append', metavar='PLANE=ANGLE')

    p_bulb = sub.add_parser('hyperbulb', help='Escape-time statistics of a hyperbulb grid')
    p_bulb.add_argument('--dim', type=int, default=4)
    p_bulb.add_argument('--power', type=float, default=8.0)
    p_bulb.add_argument('--quality', default='draft', choices=sorted(ngk.QUALITY_PRESETS))
    p_bulb.add_argument('--mode', default='escape_time', choices=list(ngk.COLOR_MODES))

    p_prev = sub.add_parser('preview', help='Render a rotated, projected geometry to figures/')
    p_prev.add_argument('--type', default='D', choices=list(ngk.ROOT_TYPES) + ['cube'])
    p_prev.add_argument('--dim', type=int, default=4)
    p_prev.add_argument('--rotate', action='append', metavar='PLANE=ANGLE')
    p_prev.add_argument('--projection', default='perspective', choices=list(ngk.PROJECTION_MODES))
    p_prev.add_argument('--output', help='File name under figures/')

    args = parser.parse_args()

    commands = {
        'roots': cmd_roots,
        'hull': cmd_hull,
        'slice': cmd_slice,
        'hyperbulb': cmd_hyperbulb,
        'preview': cmd_preview,
    }
    if args.command in commands:
        try:
            commands[args.command](args)
        except ValueError as e:
            print(f"error: {e}", file=sys.stderr)
            sys.exit(2)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
