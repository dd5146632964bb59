"""
Configuration parameters for the volumetric cloth cutter.

This module defines all simulation parameters:
- Mesh layout (grid size, spacing, depth layers)
- Verlet integration (gravity, damping, drag, bounds)
- Constraint relaxation (passes, stiffness, slack, schedule)
- Projection (parallax)
- Runtime settings (tension, view angle, gravity, cut depth)
- Rendering (FPS, window size)

Units are screen pixels with y pointing down. One simulation step is one frame.
"""

import math
from dataclasses import dataclass

# ==============================================================================
# Mesh layout
# ==============================================================================

COLS = 80                   # Grid cells per row (COLS+1 particles across)
ROWS = 60                   # Grid cells per column (ROWS+1 particles down)
SPACING = 8                 # Rest distance between neighbouring particles (px)

ORIGIN_X = 140              # Screen position of particle (0, 0)
ORIGIN_Y = 80

DEPTH_LAYERS = 6            # Number of stacked slices (cloth thickness)
DEPTH_GAP = 4               # Distance between slices along z

# ═══════════════════════════════════════════════════════════════════════════════
# SIZE TABLE (per full mesh)
# ═══════════════════════════════════════════════════════════════════════════════
#   particles   = DEPTH_LAYERS × (ROWS+1) × (COLS+1)          = 29,646
#   sticks      = DEPTH_LAYERS × (4·ROWS·COLS + 2·(ROWS-1)·(COLS-1)) = 171,132
#   struts      = (DEPTH_LAYERS-1) × (ROWS+1) × (COLS+1)      = 24,705
# ═══════════════════════════════════════════════════════════════════════════════

# ==============================================================================
# Verlet integration
# ==============================================================================

GRAVITY_BASE = 0.8          # Downward impulse per frame at multiplier 1.0
DAMPING = 0.96              # Fraction of implicit velocity kept per frame (4% loss)
CLOTH_DRAG = 0.002          # Proportional drag (subtracts v × CLOTH_DRAG)
BOUNDS_MARGIN = 5           # Particles are clamped to [margin, size - margin]

# ==============================================================================
# Constraint relaxation
# ==============================================================================

ITERATIONS = 14             # Relaxation passes per frame

STIFFNESS_STRUCTURAL = 0.45 # Structural + bending sticks
STIFFNESS_VOLUME = 0.28     # Inter-layer struts (softer so depth doesn't fight draping)

SLACK_MAX = 0.35            # Max elongation at tension 0: target = rest × (1 + 0.35)
                            # tension 1 → target = rest, tension 2 → target = 0.65 × rest

# Pass schedule
#   "serial": one ordered sweep per pass (layer 0 … layer N, then struts).
#             Gauss-Seidel, deterministic trajectory.
#   "colored": one sweep per pass over colour batches; constraints in a batch
#             share no particle and run in parallel with the full correction.
#             Same stiffness, so it settles to the same shape, not the same trajectory.
RELAX_MODES = ("serial", "colored")
RELAX_MODE = "serial"

# ==============================================================================
# Projection (pseudo-3D)
# ==============================================================================

PARALLAX = 0.18             # Screen y shift per unit of rotated depth

# ==============================================================================
# Runtime settings (defaults only; GUI edits runtime copies)
# ==============================================================================

TENSION_DEFAULT = 1.0           # 0 = loose (35% slack), 1 = rest length, 2 = tight
VIEW_ANGLE_DEFAULT = 0.0        # Degrees about the vertical axis
GRAVITY_ENABLED_DEFAULT = True
GRAVITY_MULTIPLIER_DEFAULT = 1.0
CUT_DEPTH_DEFAULT = 1.0         # 0 = front slice only, 1 = full thickness

# ==============================================================================
# Rendering
# ==============================================================================

FPS_TARGET = 60             # Target frames per second for GUI
PANEL_WIDTH = 260           # Pixels reserved for the control panel
WINDOW_RES = (1280, 800)    # GGUI window size

BACKGROUND = (0.06, 0.06, 0.09)
PATH_COLOR = (1.0, 0.0, 0.0)


@dataclass
class ClothSettings:
    """
    Runtime settings read by the solver every frame.

    Passed explicitly into integrate/relax/cut/project calls. The host owns
    one instance and edits it in place; the next frame sees the change.
    Values are expected to be range-checked by whoever edits them.
    """
    tension_factor: float = TENSION_DEFAULT
    view_angle_deg: float = VIEW_ANGLE_DEFAULT
    gravity_enabled: bool = GRAVITY_ENABLED_DEFAULT
    gravity_multiplier: float = GRAVITY_MULTIPLIER_DEFAULT
    cut_depth_factor: float = CUT_DEPTH_DEFAULT
    width: float = WINDOW_RES[0] - PANEL_WIDTH
    height: float = WINDOW_RES[1]

    def gravity_impulse(self) -> float:
        """Per-frame downward velocity added to free particles."""
        if not self.gravity_enabled:
            return 0.0
        return GRAVITY_BASE * self.gravity_multiplier

    def max_cut_layer(self, layers: int) -> int:
        """
        Deepest layer index a cut may reach.

        0.0 → only layer 0, 1.0 → layers - 1 (every slice and every strut).
        """
        return int(math.floor(self.cut_depth_factor * (layers - 1)))
