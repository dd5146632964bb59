"""
Cloth session: the core's interface to a host.

A host (GUI loop, benchmark, test) owns a ClothSettings value and a
ClothSession, and drives it:

    snap = session.step(settings)      # once per tick
    session.begin_path((x, y))         # pointer down
    session.extend_path((x, y))        # pointer drag
    session.finalize_path(settings)    # pointer up / leaves canvas → cut
    session.reset()                    # rebuild the whole cloth

Snapshots are plain NumPy copies, safe to keep across frames.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from config import COLS, ROWS, DEPTH_LAYERS, SPACING, DEPTH_GAP, ORIGIN_X, ORIGIN_Y, RELAX_MODE
from cutting import perform_cut
from dynamics import update
from mesh import build_mesh, reset_mesh


@dataclass
class ConstraintBatch:
    """Ordered constraints of one layer (or of the strut set)."""
    p1: np.ndarray          # (n, 3) world position of endpoint a
    p2: np.ndarray          # (n, 3) world position of endpoint b
    depth: np.ndarray       # (n,) int32 owning layer
    volume: np.ndarray      # (n,) bool
    broken: np.ndarray      # (n,) bool

    def __len__(self):
        return len(self.depth)


@dataclass
class Snapshot:
    """Everything a renderer needs for one frame."""
    frame: int
    layers: List[ConstraintBatch]
    volume: ConstraintBatch
    path: Optional[np.ndarray]  # (k, 2) in-progress stroke, None when idle
    center_x: float

    def broken_count(self):
        """Broken constraints in this frame, counted from the copied flags."""
        return sum(int(b.broken.sum()) for b in self.layers) + int(self.volume.broken.sum())


class ClothSession:
    """
    Owns one cloth and the stroke being drawn.

    Particles and constraints belong to the session's ClothMesh; nothing
    outside holds references into it, so reset() can rewrite it freely.
    """

    def __init__(self, cols=COLS, rows=ROWS, layers=DEPTH_LAYERS, spacing=SPACING,
                 depth_gap=DEPTH_GAP, origin=(ORIGIN_X, ORIGIN_Y), relax_mode=RELAX_MODE):
        self.mesh = build_mesh(cols, rows, layers, spacing, depth_gap, origin)
        self.relax_mode = relax_mode
        self.frame = 0
        self._path = None

    # --------------------------------------------------------------------------
    # Simulation
    # --------------------------------------------------------------------------

    def step(self, settings):
        """Advance one frame and return the new snapshot."""
        update(self.mesh, settings, mode=self.relax_mode)
        self.frame += 1
        return self.snapshot()

    def reset(self):
        """Rebuild the whole particle/constraint graph from scratch."""
        reset_mesh(self.mesh)
        self.frame = 0
        self._path = None
        print("[Control] Cloth reset")

    # --------------------------------------------------------------------------
    # Cut stroke
    # --------------------------------------------------------------------------

    @property
    def path_active(self):
        return self._path is not None

    def begin_path(self, point):
        self._path = [(float(point[0]), float(point[1]))]

    def extend_path(self, point):
        if self._path is None:
            return
        self._path.append((float(point[0]), float(point[1])))

    def cancel_path(self):
        self._path = None

    def finalize_path(self, settings):
        """
        Cut along the current stroke and clear it.

        Returns:
            Number of newly broken constraints (0 when no stroke is active)
        """
        if self._path is None:
            return 0
        path, self._path = self._path, None
        return perform_cut(self.mesh, path, settings)

    # --------------------------------------------------------------------------
    # Output
    # --------------------------------------------------------------------------

    def _batch(self, pos_np, broken_np, sl):
        mesh = self.mesh
        a = mesh.a_np[sl]
        b = mesh.b_np[sl]
        return ConstraintBatch(
            p1=pos_np[a[:, 0], a[:, 1]],
            p2=pos_np[b[:, 0], b[:, 1]],
            depth=mesh.depth_np[sl].copy(),
            volume=mesh.volume_np[sl].astype(bool),
            broken=broken_np[sl].astype(bool),
        )

    def snapshot(self):
        """Pull the current constraint geometry (and stroke preview)."""
        pos_np = self.mesh.pos.to_numpy()
        broken_np = self.mesh.broken.to_numpy()

        layers = [self._batch(pos_np, broken_np, self.mesh.layer_slice(d))
                  for d in range(self.mesh.layers)]
        volume = self._batch(pos_np, broken_np, self.mesh.volume_slice())

        path = None
        if self._path is not None and len(self._path) > 1:
            path = np.array(self._path, dtype=np.float32)

        return Snapshot(frame=self.frame, layers=layers, volume=volume,
                        path=path, center_x=self.mesh.center_x)

    def stats(self):
        """Telemetry counters for HUD / console."""
        mesh = self.mesh
        return {
            "frame": self.frame,
            "particles": mesh.layers * mesh.points,
            "constraints": mesh.n_constraints,
            "broken": mesh.broken_count(),
        }
