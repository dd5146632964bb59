"""
Interactive cutting: sever every constraint a drawn path crosses.

Pipeline (one call per finished stroke):
1. max_layer = floor(cut_depth_factor × (layers - 1))
2. For every unbroken constraint with depth ≤ max_layer (sticks of layers
   0..max_layer and struts whose lower layer is ≤ max_layer):
   project both endpoints, test against each path segment
3. First crossing marks the constraint broken; it is not tested again

Crossing uses a strict counter-clockwise orientation test: both segments
must straddle each other's line. Collinear and touching configurations are
not guaranteed to register.

No particle is removed and nothing is re-triangulated. Broken constraints
stay inert until the mesh is rebuilt.
"""

import numpy as np
import taichi as ti

from projection import project, view_basis


# ==============================================================================
# Geometry helpers
# ==============================================================================

@ti.func
def ccw(p: ti.math.vec2, q: ti.math.vec2, r: ti.math.vec2) -> ti.i32:
    """1 if p → q → r turns strictly counter-clockwise (y-down screen)."""
    return ti.cast((r.y - p.y) * (q.x - p.x) > (q.y - p.y) * (r.x - p.x), ti.i32)


@ti.func
def segments_cross(a: ti.math.vec2, b: ti.math.vec2,
                   c: ti.math.vec2, d: ti.math.vec2) -> ti.i32:
    """1 if segment ab properly crosses segment cd."""
    hit = 0
    if ccw(a, c, d) != ccw(b, c, d):
        if ccw(a, b, c) != ccw(a, b, d):
            hit = 1
    return hit


@ti.kernel
def segments_cross_kernel(ax: ti.f32, ay: ti.f32, bx: ti.f32, by: ti.f32,
                          cx: ti.f32, cy: ti.f32, dx: ti.f32, dy: ti.f32) -> ti.i32:
    return segments_cross(ti.math.vec2(ax, ay), ti.math.vec2(bx, by),
                          ti.math.vec2(cx, cy), ti.math.vec2(dx, dy))


def segments_intersect(a, b, c, d):
    """Host query: does segment a-b cross segment c-d? Points are (x, y)."""
    return bool(segments_cross_kernel(float(a[0]), float(a[1]), float(b[0]), float(b[1]),
                                      float(c[0]), float(c[1]), float(d[0]), float(d[1])))


# ==============================================================================
# Kernel: cut
# ==============================================================================

@ti.kernel
def cut_constraints(pos: ti.template(), c_a: ti.template(), c_b: ti.template(),
                    depth: ti.template(), broken: ti.template(), n: ti.i32,
                    path: ti.types.ndarray(), n_points: ti.i32, max_layer: ti.i32,
                    cos_a: ti.f32, sin_a: ti.f32, center_x: ti.f32) -> ti.i32:
    """
    Mark every eligible constraint crossed by the path as broken.

    Parallel over constraints: each thread writes only its own flag.

    Returns:
        Number of constraints broken by this call
    """
    hits = 0
    for c in range(n):
        if broken[c] == 0 and depth[c] <= max_layer:
            a = c_a[c]
            b = c_b[c]
            p1 = project(pos[a[0], a[1]], cos_a, sin_a, center_x)
            p2 = project(pos[b[0], b[1]], cos_a, sin_a, center_x)
            s1 = ti.math.vec2(p1.x, p1.y)
            s2 = ti.math.vec2(p2.x, p2.y)

            for k in range(n_points - 1):
                pa = ti.math.vec2(path[k, 0], path[k, 1])
                pb = ti.math.vec2(path[k + 1, 0], path[k + 1, 1])
                if segments_cross(pa, pb, s1, s2):
                    broken[c] = 1
                    hits += 1
                    break
    return hits


def perform_cut(mesh, path, settings):
    """
    Cut the mesh along a finished stroke.

    Args:
        mesh: ClothMesh
        path: sequence of (x, y) points in projected screen space
        settings: ClothSettings (reads cut_depth_factor, view_angle_deg)

    Returns:
        Number of newly broken constraints (0 for paths shorter than 2 points)
    """
    if len(path) < 2:
        return 0

    pts = np.ascontiguousarray(path, dtype=np.float32).reshape(-1, 2)
    max_layer = settings.max_cut_layer(mesh.layers)
    cos_a, sin_a = view_basis(settings.view_angle_deg)

    hits = cut_constraints(mesh.pos, mesh.c_a, mesh.c_b, mesh.depth, mesh.broken,
                           mesh.n_constraints, pts, len(pts), max_layer,
                           cos_a, sin_a, mesh.center_x)

    print(f"[Cut] {len(pts) - 1} segments, layers 0..{max_layer}, broke {hits} constraints")
    return hits
