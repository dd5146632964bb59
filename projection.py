"""
Pseudo-3D projection shared by rendering and cut hit-testing.

The (x, z) pair is rotated about the vertical axis through the pivot
x = center_x by the view angle, then screen y is shifted by PARALLAX times
the rotated depth:

    u  = x - cx,            w  = z
    u' = u·cos + w·sin,     w' = -u·sin + w·cos
    screen = (cx + u', y - PARALLAX·w'),  depth = w'

Both the cut kernel and the host wrappers below call `project`, so what the
user sees is exactly what gets tested for intersection.
"""

import math

import numpy as np
import taichi as ti

from config import PARALLAX


def view_basis(view_angle_deg):
    """(cos, sin) of the view angle, computed once per frame on the host."""
    ang = math.radians(view_angle_deg)
    return math.cos(ang), math.sin(ang)


@ti.func
def project(p: ti.math.vec3, cos_a: ti.f32, sin_a: ti.f32, center_x: ti.f32) -> ti.math.vec3:
    """
    Project a world position.

    Returns:
        vec3(screen_x, screen_y, rotated_depth)
    """
    u = p.x - center_x
    w = p.z
    u_rot = u * cos_a + w * sin_a
    w_rot = -u * sin_a + w * cos_a
    return ti.math.vec3(center_x + u_rot, p.y - w_rot * PARALLAX, w_rot)


@ti.kernel
def project_point_kernel(x: ti.f32, y: ti.f32, z: ti.f32,
                         cos_a: ti.f32, sin_a: ti.f32, center_x: ti.f32) -> ti.math.vec3:
    return project(ti.math.vec3(x, y, z), cos_a, sin_a, center_x)


@ti.kernel
def project_array(points: ti.types.ndarray(), out: ti.types.ndarray(), n: ti.i32,
                  cos_a: ti.f32, sin_a: ti.f32, center_x: ti.f32):
    for k in range(n):
        q = project(ti.math.vec3(points[k, 0], points[k, 1], points[k, 2]),
                    cos_a, sin_a, center_x)
        out[k, 0] = q.x
        out[k, 1] = q.y
        out[k, 2] = q.z


def project_point(p, view_angle_deg, center_x):
    """
    Project a single (x, y, z) point.

    Returns:
        (screen_x, screen_y, depth) tuple of floats
    """
    cos_a, sin_a = view_basis(view_angle_deg)
    q = project_point_kernel(float(p[0]), float(p[1]), float(p[2]), cos_a, sin_a, center_x)
    return float(q[0]), float(q[1]), float(q[2])


def project_points(points, view_angle_deg, center_x):
    """
    Project an (n, 3) array of world positions.

    Returns:
        (n, 3) float32 array of (screen_x, screen_y, depth)
    """
    pts = np.ascontiguousarray(points, dtype=np.float32).reshape(-1, 3)
    out = np.empty_like(pts)
    if len(pts) == 0:
        return out

    cos_a, sin_a = view_basis(view_angle_deg)
    project_array(pts, out, len(pts), cos_a, sin_a, center_x)
    return out
