"""
Dynamics kernels for the volumetric cloth.

This module provides:
1. Verlet integration (damping, gravity, drag, bounds clamp)
2. Constraint relaxation, two schedules:
   - serial: ordered Gauss-Seidel sweep over the constraint table
   - colored: colour batches of particle-disjoint constraints, each batch
     in parallel with the full correction (parallel Gauss-Seidel)
3. update: one full frame (integrate + ITERATIONS relaxation passes)

Pinned particles are never written by any kernel here.
"""

import taichi as ti

from config import (
    DAMPING, CLOTH_DRAG, BOUNDS_MARGIN,
    ITERATIONS, STIFFNESS_STRUCTURAL, STIFFNESS_VOLUME, SLACK_MAX, RELAX_MODE, RELAX_MODES,
)
from mesh import stick_length, NUM_COLORS


# ==============================================================================
# Kernel 1: Verlet integration
# ==============================================================================

@ti.kernel
def integrate(pos: ti.template(), prev: ti.template(), pinned: ti.template(),
              gravity: ti.f32, width: ti.f32, height: ti.f32):
    """
    Advance every free particle one frame.

    For each unpinned particle:
      1. v = (pos - prev) × DAMPING
      2. v.y += gravity (0 when gravity is off)
      3. v -= v × CLOTH_DRAG
      4. prev = pos, pos += v
      5. Clamp x into [margin, width - margin], y into [margin, height - margin]

    z is untouched: each layer stays in its own plane.
    """
    for d, i in pos:
        if pinned[d, i] == 0:
            p = pos[d, i]
            cur = ti.math.vec2(p.x, p.y)

            v = (cur - prev[d, i]) * DAMPING
            v.y += gravity
            v -= v * CLOTH_DRAG

            prev[d, i] = cur

            x = ti.min(width - BOUNDS_MARGIN, ti.max(BOUNDS_MARGIN, p.x + v.x))
            y = ti.min(height - BOUNDS_MARGIN, ti.max(BOUNDS_MARGIN, p.y + v.y))
            pos[d, i] = ti.math.vec3(x, y, p.z)


# ==============================================================================
# Constraint correction (shared by both schedules)
# ==============================================================================

@ti.func
def target_length(rest: ti.f32, tension: ti.f32) -> ti.f32:
    """
    Slack-adjusted target: rest × (1 + SLACK_MAX × (1 - tension)).

    tension 1 → exactly rest. Lower tension lets sticks elongate up to 35%.
    """
    return rest * (1.0 + SLACK_MAX * (1.0 - tension))


@ti.func
def stick_offset(pa: ti.math.vec3, pb: ti.math.vec3, rest: ti.f32,
                 is_volume: ti.i32, tension: ti.f32) -> ti.math.vec2:
    """
    Displacement for one stick: a moves by -offset, b by +offset.

    Zero-length sticks return a zero offset (overlapping particles are a
    normal degenerate case, not an error).
    """
    offset = ti.math.vec2(0.0, 0.0)
    dist = stick_length(pa, pb)
    if dist != 0.0:
        diff = (target_length(rest, tension) - dist) / dist
        stiffness = STIFFNESS_STRUCTURAL
        if is_volume != 0:
            stiffness = STIFFNESS_VOLUME
        offset = ti.math.vec2(pb.x - pa.x, pb.y - pa.y) * diff * 0.5 * stiffness
    return offset


@ti.func
def apply_stick(pos, pinned, c_a, c_b, rest, volume, c, tension):
    """Full correction of constraint c, written straight into pos."""
    a = c_a[c]
    b = c_b[c]
    off = stick_offset(pos[a[0], a[1]], pos[b[0], b[1]], rest[c], volume[c], tension)

    if pinned[a[0], a[1]] == 0:
        pos[a[0], a[1]] -= ti.math.vec3(off.x, off.y, 0.0)
    if pinned[b[0], b[1]] == 0:
        pos[b[0], b[1]] += ti.math.vec3(off.x, off.y, 0.0)


# ==============================================================================
# Kernel 2: Serial relaxation pass (Gauss-Seidel)
# ==============================================================================

@ti.kernel
def relax_serial(pos: ti.template(), pinned: ti.template(),
                 c_a: ti.template(), c_b: ti.template(), rest: ti.template(),
                 volume: ti.template(), broken: ti.template(),
                 n: ti.i32, tension: ti.f32):
    """
    One ordered sweep over the constraint table.

    Serialized so each stick sees the corrections of the sticks before it
    (layer 0, layer 1, …, then struts).
    """
    ti.loop_config(serialize=True)
    for c in range(n):
        if broken[c] == 0:
            apply_stick(pos, pinned, c_a, c_b, rest, volume, c, tension)


# ==============================================================================
# Kernel 3: Coloured relaxation pass (parallel Gauss-Seidel)
# ==============================================================================

@ti.kernel
def relax_colored(pos: ti.template(), pinned: ti.template(),
                  c_a: ti.template(), c_b: ti.template(), rest: ti.template(),
                  volume: ti.template(), broken: ti.template(),
                  order: ti.template(), batch_start: ti.template(), tension: ti.f32):
    """
    One sweep, colour batch by colour batch.

    Constraints of one colour never share a particle, so each batch runs in
    parallel with the full per-constraint correction. Batches run in order;
    each static iteration below is its own top-level (parallel) loop.
    """
    for k in ti.static(range(NUM_COLORS)):
        for j in range(batch_start[k], batch_start[k + 1]):
            c = order[j]
            if broken[c] == 0:
                apply_stick(pos, pinned, c_a, c_b, rest, volume, c, tension)


# ==============================================================================
# Host-side queries
# ==============================================================================

@ti.kernel
def effective_length_kernel(rest: ti.f32, tension: ti.f32) -> ti.f32:
    return target_length(rest, tension)


def effective_length(rest, tension):
    """Target length the solver uses for a stick of the given rest length."""
    return effective_length_kernel(rest, tension)


# ==============================================================================
# Frame driver
# ==============================================================================

def relax(mesh, settings, iterations=ITERATIONS, mode=RELAX_MODE):
    """
    Run `iterations` relaxation passes over every unbroken constraint.

    Args:
        mesh: ClothMesh
        settings: ClothSettings (reads tension_factor)
        iterations: number of passes
        mode: "serial" or "colored"
    """
    tension = settings.tension_factor

    if mode == "serial":
        for _ in range(iterations):
            relax_serial(mesh.pos, mesh.pinned, mesh.c_a, mesh.c_b, mesh.rest,
                         mesh.volume, mesh.broken, mesh.n_constraints, tension)
    elif mode == "colored":
        for _ in range(iterations):
            relax_colored(mesh.pos, mesh.pinned, mesh.c_a, mesh.c_b, mesh.rest,
                          mesh.volume, mesh.broken, mesh.order, mesh.batch_start, tension)
    else:
        raise ValueError(f"Unknown relaxation mode {mode!r} (expected one of {RELAX_MODES})")


def update(mesh, settings, iterations=ITERATIONS, mode=RELAX_MODE):
    """One frame: Verlet integration, then constraint relaxation."""
    integrate(mesh.pos, mesh.prev, mesh.pinned,
              settings.gravity_impulse(), settings.width, settings.height)
    relax(mesh, settings, iterations, mode)


def preferred_arch(mode):
    """
    Backend that suits a relaxation mode.

    The serial sweep runs on one thread whatever the backend, so it stays on
    the CPU. The coloured sweep is parallel and goes to the GPU.
    """
    if mode not in RELAX_MODES:
        raise ValueError(f"Unknown relaxation mode {mode!r} (expected one of {RELAX_MODES})")
    return ti.cpu if mode == "serial" else ti.gpu
