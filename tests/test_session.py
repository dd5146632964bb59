"""Tests for session module (host interface)."""
import numpy as np

from config import ClothSettings
from session import Snapshot

from conftest import TEST_LAYERS


class TestSnapshot:
    """Test the per-frame geometry handed to a renderer."""

    def test_shapes(self, session):
        snap = session.snapshot()
        mesh = session.mesh

        assert isinstance(snap, Snapshot)
        assert snap.frame == 0
        assert len(snap.layers) == TEST_LAYERS
        for d, batch in enumerate(snap.layers):
            assert len(batch) == mesh.sticks_per_layer
            assert batch.p1.shape == (mesh.sticks_per_layer, 3)
            assert batch.p2.shape == (mesh.sticks_per_layer, 3)
            assert np.all(batch.depth == d)
            assert not batch.volume.any()
            assert not batch.broken.any()
        assert len(snap.volume) == mesh.n_struts
        assert snap.volume.volume.all()
        assert snap.center_x == mesh.center_x

    def test_endpoints_follow_table(self, session):
        snap = session.snapshot()
        batch = snap.layers[1]
        # First stick of a layer links particle 0 to its right neighbour
        np.testing.assert_allclose(batch.p2[0] - batch.p1[0], [session.mesh.spacing, 0.0, 0.0])
        # Struts differ only in z
        strut = snap.volume
        np.testing.assert_allclose(strut.p2[:, :2], strut.p1[:, :2])
        np.testing.assert_allclose(strut.p2[:, 2] - strut.p1[:, 2], session.mesh.depth_gap)

    def test_is_a_copy(self, session, settings):
        snap = session.snapshot()
        before = snap.layers[0].p1.copy()

        session.step(settings)

        np.testing.assert_array_equal(snap.layers[0].p1, before)

    def test_broken_flags_reported(self, session, settings):
        session.begin_path((152.0, 0.0))
        session.extend_path((152.0, 300.0))
        hits = session.finalize_path(settings)

        snap = session.snapshot()
        total = sum(int(b.broken.sum()) for b in snap.layers) + int(snap.volume.broken.sum())
        assert total == hits > 0
        assert snap.broken_count() == session.mesh.broken_count() == hits


class TestStep:

    def test_advances_frame(self, session, settings):
        snap = session.step(settings)
        assert snap.frame == 1
        assert session.step(settings).frame == 2

    def test_gravity_moves_cloth(self, session, settings):
        before = session.snapshot().layers[0].p1[:, 1].mean()
        for _ in range(5):
            snap = session.step(settings)
        assert snap.layers[0].p1[:, 1].mean() > before


class TestPath:
    """Test stroke lifecycle: begin → extend → finalize / cancel."""

    def test_idle_by_default(self, session):
        assert not session.path_active
        assert session.snapshot().path is None

    def test_extend_without_begin_is_ignored(self, session):
        session.extend_path((10.0, 10.0))
        assert not session.path_active

    def test_single_point_not_previewed(self, session):
        session.begin_path((10.0, 10.0))
        assert session.path_active
        assert session.snapshot().path is None

    def test_preview(self, session):
        session.begin_path((10.0, 10.0))
        session.extend_path((20.0, 15.0))
        session.extend_path((30.0, 12.0))

        path = session.snapshot().path
        assert path.shape == (3, 2)
        assert path.dtype == np.float32
        assert path[1].tolist() == [20.0, 15.0]

    def test_finalize_clears_path(self, session, settings):
        session.begin_path((152.0, 0.0))
        session.extend_path((152.0, 300.0))

        assert session.finalize_path(settings) > 0
        assert not session.path_active
        assert session.snapshot().path is None

    def test_finalize_without_path(self, session, settings):
        assert session.finalize_path(settings) == 0

    def test_single_point_cuts_nothing(self, session, settings):
        session.begin_path((152.0, 90.0))
        assert session.finalize_path(settings) == 0
        assert not session.path_active

    def test_cancel(self, session, settings):
        session.begin_path((152.0, 0.0))
        session.extend_path((152.0, 300.0))
        session.cancel_path()

        assert session.finalize_path(settings) == 0
        assert session.mesh.broken_count() == 0


class TestReset:
    """Test rebuilding the cloth from scratch."""

    def test_restores_everything(self, session):
        settings = ClothSettings(gravity_multiplier=2.0, tension_factor=0.0)
        initial = session.mesh.pos.to_numpy()

        session.begin_path((152.0, 0.0))
        session.extend_path((152.0, 300.0))
        session.finalize_path(settings)
        for _ in range(10):
            session.step(settings)
        session.begin_path((1.0, 1.0))

        session.reset()

        np.testing.assert_array_equal(session.mesh.pos.to_numpy(), initial)
        np.testing.assert_array_equal(session.mesh.prev.to_numpy(), initial[:, :, :2])
        assert session.mesh.broken_count() == 0
        assert session.frame == 0
        assert not session.path_active

    def test_stats(self, session, settings):
        session.step(settings)
        stats = session.stats()

        assert stats["frame"] == 1
        assert stats["particles"] == TEST_LAYERS * session.mesh.points
        assert stats["constraints"] == session.mesh.n_constraints
        assert stats["broken"] == 0
