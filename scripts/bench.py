#!/usr/bin/env python3
"""
Benchmark script for the cloth cutter - Reproducible Performance Testing
=========================================================================

Runs a fixed number of headless frames with seeded random cut strokes and
reports:
- FPS (frames per second)
- Time breakdown (integrate+relax, cut, snapshot)
- Broken constraint count
- Configuration used

Usage:
    python scripts/bench.py [--frames N] [--layers N] [--mode serial|colored] [--arch auto|cpu|gpu]

Example:
    python scripts/bench.py --frames 200 --cut-every 20 --mode colored
"""

import sys
import os
import time
import argparse
import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import taichi as ti

from config import COLS, ROWS, DEPTH_LAYERS, ITERATIONS, RELAX_MODE, RELAX_MODES, ClothSettings
from dynamics import update, preferred_arch
from session import ClothSession


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Benchmark cloth cutter performance')
    parser.add_argument('--frames', type=int, default=100,
                        help='Number of frames to run (default: 100)')
    parser.add_argument('--cols', type=int, default=COLS,
                        help=f'Grid columns (default: {COLS})')
    parser.add_argument('--rows', type=int, default=ROWS,
                        help=f'Grid rows (default: {ROWS})')
    parser.add_argument('--layers', type=int, default=DEPTH_LAYERS,
                        help=f'Depth layers (default: {DEPTH_LAYERS})')
    parser.add_argument('--mode', choices=list(RELAX_MODES), default=RELAX_MODE,
                        help=f'Relaxation schedule (default: {RELAX_MODE})')
    parser.add_argument('--cut-every', type=int, default=25,
                        help='Cut a random stroke every N frames, 0 = never (default: 25)')
    parser.add_argument('--no-snapshot', action='store_true',
                        help='Skip pulling snapshots (pure solver timing)')
    parser.add_argument('--arch', choices=['auto', 'cpu', 'gpu'], default='auto',
                        help='Taichi backend; auto = CPU for serial, GPU for colored (default: auto)')
    parser.add_argument('--seed', type=int, default=42,
                        help='Random seed for reproducibility (default: 42)')
    return parser.parse_args()


def random_stroke(rng, settings, points=12):
    """A jittery left-to-right stroke across the cloth area."""
    x = np.linspace(0.1, 0.9, points) * settings.width
    y = rng.uniform(0.2, 0.8) * settings.height + rng.normal(0.0, 15.0, points)
    return np.stack([x, y], axis=1).astype(np.float32)


def run_benchmark(args):
    """
    Run benchmark and collect performance statistics.

    Args:
        args: Parsed command line arguments

    Returns:
        Dictionary with benchmark results
    """
    print(f"\n{'='*70}")
    print(f"CLOTH CUTTER BENCHMARK")
    print(f"{'='*70}\n")

    print(f"Configuration:")
    print(f"  Grid:          {args.rows}×{args.cols} cells × {args.layers} layers")
    print(f"  Frames:        {args.frames}")
    print(f"  Relaxation:    {args.mode}, {ITERATIONS} passes")
    print(f"  Cut every:     {args.cut_every or 'never'}")
    print(f"  Snapshot:      {'Disabled' if args.no_snapshot else 'Enabled'}")
    print(f"  Seed:          {args.seed}")
    print(f"\n")

    if args.arch == 'auto':
        arch = preferred_arch(args.mode)
    else:
        arch = ti.gpu if args.arch == 'gpu' else ti.cpu
    ti.init(arch=arch)
    rng = np.random.default_rng(args.seed)

    settings = ClothSettings()
    session = ClothSession(args.cols, args.rows, args.layers, relax_mode=args.mode)

    # Warm-up (first frames pay for JIT compilation)
    warmup_frames = 5
    for _ in range(warmup_frames):
        session.step(settings)
    ti.sync()
    print(f"[Bench] Warm-up complete ({warmup_frames} frames)\n")

    times_step = []
    times_cut = []
    times_snap = []
    times_total = []

    start_time_total = time.perf_counter()

    for frame in range(args.frames):
        t0 = time.perf_counter()

        # 1. Cut (between frames)
        t_cut_start = time.perf_counter()
        if args.cut_every and frame % args.cut_every == 0:
            stroke = random_stroke(rng, settings)
            session.begin_path(stroke[0])
            for p in stroke[1:]:
                session.extend_path(p)
            session.finalize_path(settings)
            ti.sync()
        t_cut = time.perf_counter() - t_cut_start

        # 2. Integrate + relax
        t_step_start = time.perf_counter()
        update(session.mesh, settings, mode=args.mode)
        session.frame += 1
        ti.sync()
        t_step = time.perf_counter() - t_step_start

        # 3. Snapshot (host copy a renderer would pull)
        t_snap_start = time.perf_counter()
        if not args.no_snapshot:
            session.snapshot()
        t_snap = time.perf_counter() - t_snap_start

        t_frame = time.perf_counter() - t0
        times_step.append(t_step)
        times_cut.append(t_cut)
        times_snap.append(t_snap)
        times_total.append(t_frame)

        if (frame + 1) % 10 == 0 or frame == args.frames - 1:
            fps_current = 1.0 / t_frame if t_frame > 0 else 0
            print(f"  Frame {frame+1:4d}/{args.frames}: {fps_current:5.1f} FPS")

    end_time_total = time.perf_counter()

    total_time = end_time_total - start_time_total
    avg_fps = args.frames / total_time

    avg_step = np.mean(times_step)
    avg_cut = np.mean(times_cut)
    avg_snap = np.mean(times_snap)
    avg_total = np.mean(times_total)
    total_avg = max(avg_step + avg_cut + avg_snap, 1e-12)

    stats = session.stats()

    print(f"\n{'='*70}")
    print(f"BENCHMARK RESULTS")
    print(f"{'='*70}\n")

    print(f"Overall Performance:")
    print(f"  Average FPS:   {avg_fps:.2f}")
    print(f"  Total Time:    {total_time:.2f}s")
    print(f"  Avg Frame:     {avg_total*1000:.2f}ms")
    print(f"\n")

    print(f"Time Breakdown (averages):")
    print(f"  Step:          {avg_step*1000:6.2f}ms  ({100*avg_step/total_avg:5.1f}%)")
    print(f"  Cut:           {avg_cut*1000:6.2f}ms  ({100*avg_cut/total_avg:5.1f}%)")
    print(f"  Snapshot:      {avg_snap*1000:6.2f}ms  ({100*avg_snap/total_avg:5.1f}%)")
    print(f"\n")

    print(f"Mesh:")
    print(f"  Particles:     {stats['particles']}")
    print(f"  Broken:        {stats['broken']} / {stats['constraints']}")
    print(f"\n")

    return {
        'avg_fps': avg_fps,
        'total_time': total_time,
        'avg_frame_ms': avg_total * 1000,
        'avg_step_ms': avg_step * 1000,
        'avg_cut_ms': avg_cut * 1000,
        'avg_snapshot_ms': avg_snap * 1000,
        'broken': stats['broken'],
        'config': {
            'cols': args.cols,
            'rows': args.rows,
            'layers': args.layers,
            'frames': args.frames,
            'mode': args.mode,
            'seed': args.seed,
        }
    }


def main():
    """Main entry point."""
    args = parse_args()
    run_benchmark(args)

    print(f"Benchmark complete!")
    print(f"{'='*70}\n")

    return 0


if __name__ == '__main__':
    sys.exit(main())
