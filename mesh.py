"""
Volumetric cloth mesh: particle arenas, constraint table and builder.

Layout:
- Particles live in per-layer arenas: Taichi fields of shape (layers, points),
  where points = (rows+1)·(cols+1) and index i = y·(cols+1) + x.
- Constraints are index records in one flat table. Each endpoint is an ivec2
  (layer, index). Table order: layer 0 sticks, layer 1 sticks, …, then all
  volume struts. This order is also the serial relaxation order.

Build pipeline:
1. grid_sticks: (i, j) pairs for one layer (host, NumPy)
2. build_constraint_table: stack layers + volume struts (host, NumPy)
3. seed_particles: grid positions, pins (host, NumPy → from_numpy)
4. compute_rest_lengths: planar length of every constraint (kernel)
5. check_mesh: index/rest-length/colouring self-check (asserts)

Colouring (parallel relaxation):
    Every constraint gets one of NUM_COLORS colours such that no two
    constraints of the same colour share a particle. Sticks are coloured by
    direction and grid parity, struts by the parity of their lower layer.
    `order` lists constraint ids grouped by colour, `batch_start[k]` is where
    colour k starts.

Rest lengths are planar (x, y). z is fixed per layer, so volume struts rest
at length 0 and pull corresponding particles of adjacent layers together.
"""

import numpy as np
import taichi as ti

from config import COLS, ROWS, SPACING, ORIGIN_X, ORIGIN_Y, DEPTH_LAYERS, DEPTH_GAP

NUM_COLORS = 14             # 6 stick directions × 2 parities + 2 strut parities


# ==============================================================================
# Shared length helper (rest lengths and relaxation must agree bit-for-bit)
# ==============================================================================

@ti.func
def stick_length(p: ti.math.vec3, q: ti.math.vec3) -> ti.f32:
    """Planar distance between two particles (z is static per layer)."""
    dx = q.x - p.x
    dy = q.y - p.y
    return ti.sqrt(dx * dx + dy * dy)


# ==============================================================================
# Host-side topology (NumPy)
# ==============================================================================

def grid_sticks(cols, rows):
    """
    Particle index pairs for one layer.

    Per cell (4 structural, two triangles):
        p → right, p → below, p → below-right, right → below
    Bending (skip-one), for y < rows-1 and x < cols-1:
        p → two columns right, p → two rows down

    Returns:
        (n, 2) int32 array, structural cells first, then bending.
    """
    w = cols + 1

    y, x = np.meshgrid(np.arange(rows), np.arange(cols), indexing="ij")
    i = (y * w + x).ravel()
    structural = np.stack([
        np.stack([i, i + 1], axis=1),
        np.stack([i, i + w], axis=1),
        np.stack([i, i + w + 1], axis=1),
        np.stack([i + 1, i + w], axis=1),
    ], axis=1).reshape(-1, 2)

    y, x = np.meshgrid(np.arange(max(rows - 1, 0)), np.arange(max(cols - 1, 0)), indexing="ij")
    i = (y * w + x).ravel()
    bending = np.stack([
        np.stack([i, i + 2], axis=1),
        np.stack([i, i + 2 * w], axis=1),
    ], axis=1).reshape(-1, 2)

    return np.concatenate([structural, bending]).astype(np.int32)


def grid_stick_colors(cols, rows):
    """
    Colour of every pair from grid_sticks(cols, rows), same order.

    right/down/diagonal/anti-diagonal: 0-7, by x or y parity
    bending right/down: 8-11, by (x // 2) or (y // 2) parity
    """
    y, x = np.meshgrid(np.arange(rows), np.arange(cols), indexing="ij")
    x = x.ravel()
    y = y.ravel()
    structural = np.stack([
        x % 2,
        2 + y % 2,
        4 + x % 2,
        6 + x % 2,
    ], axis=1).reshape(-1)

    y, x = np.meshgrid(np.arange(max(rows - 1, 0)), np.arange(max(cols - 1, 0)), indexing="ij")
    x = x.ravel()
    y = y.ravel()
    bending = np.stack([
        8 + (x // 2) % 2,
        10 + (y // 2) % 2,
    ], axis=1).reshape(-1)

    return np.concatenate([structural, bending]).astype(np.int32)


def color_batches(colors):
    """
    Group constraint ids by colour.

    Returns:
        order: (n,) int32 constraint ids, colour-major, table order within a colour
        batch_start: (NUM_COLORS + 1,) int32 offsets into order
    """
    order = np.argsort(colors, kind="stable").astype(np.int32)
    counts = np.bincount(colors, minlength=NUM_COLORS)
    batch_start = np.zeros(NUM_COLORS + 1, dtype=np.int32)
    batch_start[1:] = np.cumsum(counts)
    return order, batch_start


def build_constraint_table(cols, rows, layers):
    """
    Stack per-layer sticks and inter-layer struts into one table.

    Returns:
        (a, b, depth, volume, sticks_per_layer)
        a, b: (n, 2) int32 endpoints as (layer, index)
        depth: (n,) int32 owning layer (lower layer for struts)
        volume: (n,) int32, 1 for struts
    """
    pairs = grid_sticks(cols, rows)
    sticks_per_layer = len(pairs)
    points = (rows + 1) * (cols + 1)

    a_parts, b_parts, depth_parts = [], [], []
    for d in range(layers):
        layer_col = np.full(sticks_per_layer, d, dtype=np.int32)
        a_parts.append(np.stack([layer_col, pairs[:, 0]], axis=1))
        b_parts.append(np.stack([layer_col, pairs[:, 1]], axis=1))
        depth_parts.append(layer_col)

    idx = np.arange(points, dtype=np.int32)
    for d in range(layers - 1):
        a_parts.append(np.stack([np.full(points, d, dtype=np.int32), idx], axis=1))
        b_parts.append(np.stack([np.full(points, d + 1, dtype=np.int32), idx], axis=1))
        depth_parts.append(np.full(points, d, dtype=np.int32))

    a = np.concatenate(a_parts).astype(np.int32)
    b = np.concatenate(b_parts).astype(np.int32)
    depth = np.concatenate(depth_parts).astype(np.int32)

    volume = np.zeros(len(depth), dtype=np.int32)
    volume[layers * sticks_per_layer:] = 1

    return a, b, depth, volume, sticks_per_layer


def constraint_colors(cols, rows, layers):
    """Colour per row of build_constraint_table(cols, rows, layers)."""
    sticks = np.tile(grid_stick_colors(cols, rows), layers)
    points = (rows + 1) * (cols + 1)
    struts = np.repeat(12 + np.arange(max(layers - 1, 0)) % 2, points)
    return np.concatenate([sticks, struts]).astype(np.int32)


# ==============================================================================
# Kernels
# ==============================================================================

@ti.kernel
def compute_rest_lengths(pos: ti.template(), c_a: ti.template(), c_b: ti.template(),
                         rest: ti.template(), n: ti.i32):
    """Rest length = planar distance at build time. Written once per build."""
    for c in range(n):
        a = c_a[c]
        b = c_b[c]
        rest[c] = stick_length(pos[a[0], a[1]], pos[b[0], b[1]])


@ti.kernel
def clear_broken(broken: ti.template(), n: ti.i32):
    for c in range(n):
        broken[c] = 0


# ==============================================================================
# Mesh container
# ==============================================================================

class ClothMesh:
    """
    Owns every field of one cloth: particle arenas + constraint table.

    Fields are allocated once here; reset_mesh rewrites all of them.
    The immutable table columns are also kept on the host (a_np, b_np,
    depth_np, volume_np) so snapshots only need to fetch positions and
    broken flags.
    """

    def __init__(self, cols=COLS, rows=ROWS, layers=DEPTH_LAYERS,
                 spacing=SPACING, depth_gap=DEPTH_GAP, origin=(ORIGIN_X, ORIGIN_Y)):
        assert cols >= 1 and rows >= 1 and layers >= 1, \
            f"Mesh needs at least one cell and one layer (cols={cols}, rows={rows}, layers={layers})"

        self.cols = cols
        self.rows = rows
        self.layers = layers
        self.spacing = spacing
        self.depth_gap = depth_gap
        self.origin = origin
        self.points = (rows + 1) * (cols + 1)

        (self.a_np, self.b_np, self.depth_np, self.volume_np,
         self.sticks_per_layer) = build_constraint_table(cols, rows, layers)
        self.n_constraints = len(self.depth_np)
        self.n_struts = self.n_constraints - layers * self.sticks_per_layer

        self.color_np = constraint_colors(cols, rows, layers)
        self.order_np, self.batch_start_np = color_batches(self.color_np)

        # Particle arenas
        self.pos = ti.Vector.field(3, dtype=ti.f32, shape=(layers, self.points))
        self.prev = ti.Vector.field(2, dtype=ti.f32, shape=(layers, self.points))
        self.pinned = ti.field(dtype=ti.i32, shape=(layers, self.points))

        # Constraint table
        self.c_a = ti.Vector.field(2, dtype=ti.i32, shape=self.n_constraints)
        self.c_b = ti.Vector.field(2, dtype=ti.i32, shape=self.n_constraints)
        self.rest = ti.field(dtype=ti.f32, shape=self.n_constraints)
        self.depth = ti.field(dtype=ti.i32, shape=self.n_constraints)
        self.volume = ti.field(dtype=ti.i32, shape=self.n_constraints)
        self.broken = ti.field(dtype=ti.i32, shape=self.n_constraints)

        # Colour batches (parallel relaxation)
        self.order = ti.field(dtype=ti.i32, shape=self.n_constraints)
        self.batch_start = ti.field(dtype=ti.i32, shape=NUM_COLORS + 1)

        self.center_x = 0.0

    def layer_slice(self, d):
        """Table range holding layer d's structural + bending sticks."""
        start = d * self.sticks_per_layer
        return slice(start, start + self.sticks_per_layer)

    def volume_slice(self):
        return slice(self.layers * self.sticks_per_layer, self.n_constraints)

    def initial_positions(self):
        """(layers, points, 3) float32 rest positions of the grid."""
        w = self.cols + 1
        idx = np.arange(self.points)
        gx = idx % w
        gy = idx // w

        pos = np.empty((self.layers, self.points, 3), dtype=np.float32)
        pos[:, :, 0] = gx * self.spacing + self.origin[0]
        pos[:, :, 1] = gy * self.spacing + self.origin[1]
        pos[:, :, 2] = (np.arange(self.layers) * self.depth_gap)[:, None]
        return pos

    def pin_mask(self):
        """(layers, points) int32, 1 on the leftmost and rightmost columns."""
        gx = np.arange(self.points) % (self.cols + 1)
        row = ((gx == 0) | (gx == self.cols)).astype(np.int32)
        return np.tile(row, (self.layers, 1))

    def broken_count(self):
        return int(self.broken.to_numpy().sum())


# ==============================================================================
# Builder
# ==============================================================================

def seed_particles(mesh):
    """Write grid positions, previous positions and pins into the arenas."""
    pos_np = mesh.initial_positions()

    mesh.pos.from_numpy(pos_np)
    mesh.prev.from_numpy(np.ascontiguousarray(pos_np[:, :, :2]))
    mesh.pinned.from_numpy(mesh.pin_mask())

    # Projection pivot: horizontal midpoint of the front layer
    front_x = pos_np[0, :, 0]
    mesh.center_x = float(front_x.min() + front_x.max()) / 2.0


def check_mesh(mesh):
    """
    Startup self-check (contract violations fail loudly).

    Check 1: every endpoint (layer, index) is inside the arenas
    Check 2: struts link (d, i) to (d+1, i); sticks stay inside one layer
    Check 3: rest lengths are finite and non-negative
    Check 4: no two constraints of one colour batch share a particle
    """
    for ends in (mesh.a_np, mesh.b_np):
        assert np.all((ends[:, 0] >= 0) & (ends[:, 0] < mesh.layers)), \
            "Constraint references a layer outside the mesh"
        assert np.all((ends[:, 1] >= 0) & (ends[:, 1] < mesh.points)), \
            "Constraint references a particle outside its layer"

    struts = mesh.volume_np == 1
    assert np.all(mesh.b_np[struts, 0] == mesh.a_np[struts, 0] + 1), \
        "Volume strut does not link adjacent layers"
    assert np.all(mesh.b_np[struts, 1] == mesh.a_np[struts, 1]), \
        "Volume strut does not link matching grid positions"
    assert np.all(mesh.a_np[~struts, 0] == mesh.b_np[~struts, 0]), \
        "Structural stick spans two layers"

    rest_np = mesh.rest.to_numpy()
    assert np.all(np.isfinite(rest_np)) and np.all(rest_np >= 0.0), \
        f"Invalid rest lengths: range [{rest_np.min()}, {rest_np.max()}]"

    keys_a = mesh.a_np[:, 0] * mesh.points + mesh.a_np[:, 1]
    keys_b = mesh.b_np[:, 0] * mesh.points + mesh.b_np[:, 1]
    for k in range(NUM_COLORS):
        batch = mesh.order_np[mesh.batch_start_np[k]:mesh.batch_start_np[k + 1]]
        ends = np.concatenate([keys_a[batch], keys_b[batch]])
        assert len(np.unique(ends)) == len(ends), \
            f"Colour batch {k} has two constraints sharing a particle"

    print(f"[Mesh Check] ✓ {mesh.n_constraints} constraints, "
          f"rest ∈ [{rest_np.min():.3f}, {rest_np.max():.3f}]")


def reset_mesh(mesh):
    """
    Rebuild the whole graph in place.

    Every field is rewritten: positions, previous positions, pins, the
    constraint table, colour batches, rest lengths and broken flags.
    Nothing from the previous session survives.
    """
    seed_particles(mesh)

    mesh.c_a.from_numpy(mesh.a_np)
    mesh.c_b.from_numpy(mesh.b_np)
    mesh.depth.from_numpy(mesh.depth_np)
    mesh.volume.from_numpy(mesh.volume_np)
    mesh.order.from_numpy(mesh.order_np)
    mesh.batch_start.from_numpy(mesh.batch_start_np)
    clear_broken(mesh.broken, mesh.n_constraints)

    compute_rest_lengths(mesh.pos, mesh.c_a, mesh.c_b, mesh.rest, mesh.n_constraints)

    check_mesh(mesh)
    print(f"[Mesh] {mesh.layers} layers × {mesh.points} particles "
          f"({mesh.rows + 1}×{mesh.cols + 1} grid), "
          f"{mesh.layers * mesh.sticks_per_layer} sticks + {mesh.n_struts} struts, "
          f"pivot x={mesh.center_x:.1f}")
    return mesh


def build_mesh(cols=COLS, rows=ROWS, layers=DEPTH_LAYERS, spacing=SPACING,
               depth_gap=DEPTH_GAP, origin=(ORIGIN_X, ORIGIN_Y)):
    """
    Allocate and build a complete cloth.

    Args:
        cols, rows: grid cells per layer
        layers: number of depth slices
        spacing: rest distance between grid neighbours
        depth_gap: z distance between slices
        origin: screen position of particle (0, 0)

    Returns:
        ClothMesh ready for integration
    """
    mesh = ClothMesh(cols, rows, layers, spacing, depth_gap, origin)
    return reset_mesh(mesh)
