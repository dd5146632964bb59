"""Tests for mesh module (topology, builder, self-check)."""
import math

import numpy as np
import pytest

from config import SPACING, DEPTH_GAP, ORIGIN_X, ORIGIN_Y
from mesh import (
    grid_sticks, grid_stick_colors, build_constraint_table, constraint_colors,
    color_batches, build_mesh, check_mesh, NUM_COLORS,
)

from conftest import TEST_COLS, TEST_ROWS, TEST_LAYERS


class TestGridSticks:
    """Test per-layer stick topology."""

    def test_single_cell_is_two_triangles(self):
        pairs = grid_sticks(1, 1)
        # right, below, below-right, right→below; no room for bending
        assert pairs.tolist() == [[0, 1], [0, 2], [0, 3], [1, 2]]

    def test_counts(self):
        pairs = grid_sticks(TEST_COLS, TEST_ROWS)
        structural = 4 * TEST_COLS * TEST_ROWS
        bending = 2 * (TEST_COLS - 1) * (TEST_ROWS - 1)
        assert len(pairs) == structural + bending

    def test_bending_skips_one(self):
        cols, rows = 3, 3
        w = cols + 1
        pairs = grid_sticks(cols, rows)
        bending = pairs[4 * cols * rows:]
        # First bending pair from particle 0: two right, then two down
        assert bending[0].tolist() == [0, 2]
        assert bending[1].tolist() == [0, 2 * w]
        for i, j in bending:
            assert j - i in (2, 2 * w)

    def test_no_bending_on_narrow_grid(self):
        pairs = grid_sticks(1, 5)
        assert len(pairs) == 4 * 5


class TestConstraintTable:
    """Test stacking layers and volume struts."""

    def test_table_order(self):
        a, b, depth, volume, per_layer = build_constraint_table(2, 2, 3)
        points = 9
        assert len(depth) == 3 * per_layer + 2 * points
        # Layers in order, then struts
        assert np.all(depth[:per_layer] == 0)
        assert np.all(depth[per_layer:2 * per_layer] == 1)
        assert np.all(volume[:3 * per_layer] == 0)
        assert np.all(volume[3 * per_layer:] == 1)

    def test_struts_link_matching_positions(self):
        a, b, depth, volume, per_layer = build_constraint_table(2, 2, 3)
        struts = volume == 1
        assert np.all(b[struts, 0] == a[struts, 0] + 1)
        assert np.all(b[struts, 1] == a[struts, 1])
        assert np.all(depth[struts] == a[struts, 0])

    def test_single_layer_has_no_struts(self):
        a, b, depth, volume, per_layer = build_constraint_table(2, 2, 1)
        assert len(depth) == per_layer
        assert not np.any(volume)


class TestBuildMesh:
    """Test building a complete cloth."""

    def test_sizes(self, small_mesh):
        points = (TEST_ROWS + 1) * (TEST_COLS + 1)
        assert small_mesh.points == points
        assert small_mesh.pos.shape == (TEST_LAYERS, points)
        assert small_mesh.n_struts == (TEST_LAYERS - 1) * points
        assert small_mesh.n_constraints == TEST_LAYERS * small_mesh.sticks_per_layer + small_mesh.n_struts

    def test_positions(self, small_mesh):
        pos = small_mesh.pos.to_numpy()
        # Particle (x=2, y=1) of layer 2
        i = 1 * (TEST_COLS + 1) + 2
        assert pos[2, i].tolist() == pytest.approx(
            [ORIGIN_X + 2 * SPACING, ORIGIN_Y + 1 * SPACING, 2 * DEPTH_GAP])

    def test_starts_at_rest(self, small_mesh):
        pos = small_mesh.pos.to_numpy()
        prev = small_mesh.prev.to_numpy()
        np.testing.assert_array_equal(pos[:, :, :2], prev)

    def test_edge_columns_pinned(self, small_mesh):
        pinned = small_mesh.pinned.to_numpy()
        gx = np.arange(small_mesh.points) % (TEST_COLS + 1)
        expected = (gx == 0) | (gx == TEST_COLS)
        for d in range(TEST_LAYERS):
            np.testing.assert_array_equal(pinned[d].astype(bool), expected)

    def test_rest_lengths(self, small_mesh):
        rest = small_mesh.rest.to_numpy()
        layer0 = rest[small_mesh.layer_slice(0)]
        # First cell: right, below, diagonal, reverse diagonal
        assert layer0[0] == pytest.approx(SPACING)
        assert layer0[1] == pytest.approx(SPACING)
        assert layer0[2] == pytest.approx(SPACING * math.sqrt(2))
        assert layer0[3] == pytest.approx(SPACING * math.sqrt(2))
        # Bending spans two cells
        bending = layer0[4 * TEST_COLS * TEST_ROWS:]
        assert np.allclose(bending, 2 * SPACING)
        # Struts are planar-zero (layers differ only in z)
        assert np.all(rest[small_mesh.volume_slice()] == 0.0)

    def test_pivot_is_front_layer_midpoint(self, small_mesh):
        assert small_mesh.center_x == pytest.approx(ORIGIN_X + TEST_COLS * SPACING / 2.0)

    def test_nothing_broken(self, small_mesh):
        assert small_mesh.broken_count() == 0

    def test_single_layer(self):
        mesh = build_mesh(cols=2, rows=2, layers=1)
        assert mesh.n_struts == 0
        assert len(mesh.depth_np[mesh.volume_slice()]) == 0

    def test_rejects_empty_grid(self):
        with pytest.raises(AssertionError):
            build_mesh(cols=0, rows=2, layers=1)


class TestCheckMesh:
    """Test the post-build self-check."""

    def test_passes_on_fresh_mesh(self, small_mesh):
        check_mesh(small_mesh)

    def test_out_of_range_index(self, small_mesh):
        small_mesh.a_np[0, 1] = small_mesh.points
        with pytest.raises(AssertionError):
            check_mesh(small_mesh)

    def test_strut_skipping_a_layer(self, small_mesh):
        first_strut = small_mesh.volume_slice().start
        small_mesh.b_np[first_strut, 0] = 2
        with pytest.raises(AssertionError):
            check_mesh(small_mesh)


class TestColoring:
    """Test colour batches used by the parallel relaxation schedule."""

    def test_one_color_per_stick(self):
        assert len(grid_stick_colors(5, 4)) == len(grid_sticks(5, 4))

    def test_batches_cover_table_once(self, small_mesh):
        assert sorted(small_mesh.order_np.tolist()) == list(range(small_mesh.n_constraints))
        assert small_mesh.batch_start_np[0] == 0
        assert small_mesh.batch_start_np[-1] == small_mesh.n_constraints
        assert len(small_mesh.batch_start_np) == NUM_COLORS + 1

    @pytest.mark.parametrize("cols, rows, layers", [(1, 1, 1), (4, 3, 3), (7, 5, 4)])
    def test_batches_share_no_particle(self, cols, rows, layers):
        a, b, depth, volume, per_layer = build_constraint_table(cols, rows, layers)
        points = (rows + 1) * (cols + 1)
        order, start = color_batches(constraint_colors(cols, rows, layers))
        for k in range(NUM_COLORS):
            batch = order[start[k]:start[k + 1]]
            ends = np.concatenate([a[batch, 0] * points + a[batch, 1],
                                   b[batch, 0] * points + b[batch, 1]])
            assert len(np.unique(ends)) == len(ends)

    def test_struts_alternate_by_layer(self):
        colors = constraint_colors(2, 2, 4)
        struts = colors[-3 * 9:].reshape(3, 9)
        assert np.all(struts[0] == 12)
        assert np.all(struts[1] == 13)
        assert np.all(struts[2] == 12)

    def test_check_rejects_conflicting_batch(self, small_mesh):
        # Move stick 1 (0→w) into the batch holding stick 0 (0→1)
        order = small_mesh.order_np
        assert order[0] == 0
        i, j = int(np.where(order == 1)[0][0]), 1
        order[i], order[j] = order[j], order[i]
        with pytest.raises(AssertionError, match="Colour batch"):
            check_mesh(small_mesh)
