"""
Main entry point for the volumetric cloth cutter.

This script:
1. Initializes Taichi and builds the cloth
2. Runs the main loop: step → pointer → draw → control panel
3. Turns left-button drags into cut strokes

Controls:
  - Left-click drag: Draw a cut (released or leaving the cloth area = cut)
  - SPACE: Pause/Resume
  - R: Reset the cloth
  - ESC: Exit
"""

import numpy as np
import taichi as ti

from config import (
    WINDOW_RES, PANEL_WIDTH, FPS_TARGET, BACKGROUND, PATH_COLOR, RELAX_MODE,
    ClothSettings,
)
from dynamics import preferred_arch
from projection import project_points
from session import ClothSession

MAX_PATH_POINTS = 4096      # Preview buffer; longer strokes still cut, only the tail is drawn
HUD_EVERY = 300             # Console telemetry every N frames

OFFSCREEN = -1.0            # Normalized coordinate for hidden (broken) lines

# ==============================================================================
# Initialize Taichi
# ==============================================================================

ti.init(arch=preferred_arch(RELAX_MODE))  # serial → CPU, colored → GPU (Metal, CUDA or Vulkan)

print(f"[Taichi] Initialized with backend: {ti.cfg.arch}")

settings = ClothSettings(width=WINDOW_RES[0] - PANEL_WIDTH, height=WINDOW_RES[1])
session = ClothSession(relax_mode=RELAX_MODE)
mesh = session.mesh

print(f"[Config] {mesh.layers} layers, {mesh.rows}×{mesh.cols} cells, relax={RELAX_MODE}")

# ==============================================================================
# Line buffers (GGUI needs Taichi fields for vertices and colors)
# ==============================================================================

layer_verts = [ti.Vector.field(2, dtype=ti.f32, shape=2 * mesh.sticks_per_layer)
               for _ in range(mesh.layers)]
layer_colors = [ti.Vector.field(3, dtype=ti.f32, shape=2 * mesh.sticks_per_layer)
                for _ in range(mesh.layers)]
strut_verts = ti.Vector.field(2, dtype=ti.f32, shape=max(2 * mesh.n_struts, 2))
strut_colors = ti.Vector.field(3, dtype=ti.f32, shape=max(2 * mesh.n_struts, 2))
path_verts = ti.Vector.field(2, dtype=ti.f32, shape=2 * MAX_PATH_POINTS)


def to_canvas(xy):
    """Screen pixels (y down) → GGUI normalized coordinates (y up)."""
    out = np.empty_like(xy, dtype=np.float32)
    out[:, 0] = xy[:, 0] / WINDOW_RES[0]
    out[:, 1] = 1.0 - xy[:, 1] / WINDOW_RES[1]
    return out


def shade(batch, s1, s2, layers, height):
    """
    Per-constraint colour: front slices and higher lines are brighter.

    lambert = max(0.25, 0.35·depthFactor + 0.65·heightFactor)
    colour  = (230, 230, 255) × lambert
    """
    mid_y = 0.5 * (s1[:, 1] + s2[:, 1])
    depth_factor = 1.0 - batch.depth / max(layers - 1, 1)
    height_factor = 1.0 - mid_y / height
    lambert = np.clip(np.maximum(0.25, 0.35 * depth_factor + 0.65 * height_factor), 0.0, 1.0)
    base = np.array([230.0, 230.0, 255.0], dtype=np.float32) / 255.0
    return (lambert[:, None] * base).astype(np.float32)


def fill_batch(batch, verts, colors, view_angle_deg, center_x):
    """Project one batch and upload interleaved (p1, p2) vertices + colours."""
    n = len(batch)
    if n == 0:
        return
    s1 = project_points(batch.p1, view_angle_deg, center_x)
    s2 = project_points(batch.p2, view_angle_deg, center_x)

    v = np.stack([to_canvas(s1[:, :2]), to_canvas(s2[:, :2])], axis=1)
    v[batch.broken] = OFFSCREEN
    c = shade(batch, s1, s2, mesh.layers, settings.height)

    verts.from_numpy(v.reshape(-1, 2))
    colors.from_numpy(np.repeat(c, 2, axis=0))


def draw(canvas, snap):
    """Back slice first, then struts, then the stroke preview on top."""
    for d in reversed(range(len(snap.layers))):
        batch = snap.layers[d]
        fill_batch(batch, layer_verts[d], layer_colors[d], settings.view_angle_deg, snap.center_x)
        width_px = 2.0 + d * 0.25
        canvas.lines(layer_verts[d], width=width_px / WINDOW_RES[1],
                     per_vertex_color=layer_colors[d])

    if len(snap.volume) > 0:
        fill_batch(snap.volume, strut_verts, strut_colors, settings.view_angle_deg, snap.center_x)
        canvas.lines(strut_verts, width=1.2 / WINDOW_RES[1], per_vertex_color=strut_colors)

    if snap.path is not None:
        pts = snap.path[-MAX_PATH_POINTS:]
        seg = np.stack([pts[:-1], pts[1:]], axis=1).reshape(-1, 2)
        buf = np.full((2 * MAX_PATH_POINTS, 2), OFFSCREEN, dtype=np.float32)
        buf[:len(seg)] = to_canvas(seg)
        path_verts.from_numpy(buf)
        canvas.lines(path_verts, width=2.0 / WINDOW_RES[1], color=PATH_COLOR)


def cursor_pixels(window):
    """Cursor in screen pixels (y down)."""
    cx, cy = window.get_cursor_pos()
    return cx * WINDOW_RES[0], (1.0 - cy) * WINDOW_RES[1]


def in_cloth_area(point):
    x, y = point
    return 0.0 <= x < settings.width and 0.0 <= y < settings.height


# ==============================================================================
# Main loop
# ==============================================================================

window = ti.ui.Window("Volumetric Cloth Cutter", WINDOW_RES, vsync=True, fps_limit=FPS_TARGET)
canvas = window.get_canvas()
canvas.set_background_color(BACKGROUND)

print("\n" + "=" * 70)
print("VOLUMETRIC CLOTH CUTTER")
print("=" * 70)
print(f"Controls:")
print(f"  - Left-click + drag: Cut")
print(f"  - SPACE: Pause/Resume")
print(f"  - R: Reset cloth")
print(f"  - ESC: Exit")
print("=" * 70 + "\n")

paused = False
reset_requested = False
mouse_was_down = False
snap = session.snapshot()

while window.running:
    # === 1. Keyboard ===
    if window.get_event(ti.ui.PRESS):
        if window.event.key == ti.ui.SPACE:
            paused = not paused
            print(f"[Control] {'Paused' if paused else 'Resumed'}")
        elif window.event.key == 'r' or window.event.key == 'R':
            reset_requested = True
        elif window.event.key == ti.ui.ESCAPE:
            print("[Control] Exiting...")
            break

    if reset_requested:
        session.reset()
        reset_requested = False

    # === 2. Pointer → cut stroke (cuts land between frames) ===
    point = cursor_pixels(window)
    mouse_down = window.is_pressed(ti.ui.LMB)
    if mouse_down and not mouse_was_down and in_cloth_area(point):
        session.begin_path(point)
    elif mouse_down and session.path_active:
        if in_cloth_area(point):
            session.extend_path(point)
        else:
            session.finalize_path(settings)
    elif not mouse_down and session.path_active:
        session.finalize_path(settings)
    mouse_was_down = mouse_down

    # === 3. Physics ===
    if not paused:
        snap = session.step(settings)
    else:
        snap = session.snapshot()

    # === 4. Draw ===
    draw(canvas, snap)

    # === 5. Control panel ===
    broken = snap.broken_count()
    panel_x = 1.0 - PANEL_WIDTH / WINDOW_RES[0]
    window.GUI.begin("Controls", panel_x, 0.01, PANEL_WIDTH / WINDOW_RES[0] - 0.01, 0.60)

    window.GUI.text("=== Cloth ===")
    settings.tension_factor = window.GUI.slider_float("Tension", settings.tension_factor, 0.0, 2.0)
    settings.view_angle_deg = window.GUI.slider_float("View angle", settings.view_angle_deg, -90.0, 90.0)
    window.GUI.text("")

    window.GUI.text("=== Gravity ===")
    settings.gravity_enabled = window.GUI.checkbox("Enabled", settings.gravity_enabled)
    settings.gravity_multiplier = window.GUI.slider_float("Strength", settings.gravity_multiplier, 0.0, 2.0)
    window.GUI.text("")

    window.GUI.text("=== Cutting ===")
    settings.cut_depth_factor = window.GUI.slider_float("Cut depth", settings.cut_depth_factor, 0.0, 1.0)
    max_layer = settings.max_cut_layer(mesh.layers)
    window.GUI.text(f"Cuts reach layers 0..{max_layer}")
    window.GUI.text(f"Broken: {broken} / {mesh.n_constraints}")
    window.GUI.text("")

    if window.GUI.button("RESET"):
        reset_requested = True
    window.GUI.text(f"Frame {snap.frame}{' (paused)' if paused else ''}")
    window.GUI.end()

    window.show()

    if snap.frame > 0 and snap.frame % HUD_EVERY == 0 and not paused:
        stats = session.stats()
        print(f"[Frame {stats['frame']:5d}] particles={stats['particles']} "
              f"broken={stats['broken']}/{stats['constraints']} "
              f"tension={settings.tension_factor:.2f} angle={settings.view_angle_deg:.0f}°")
