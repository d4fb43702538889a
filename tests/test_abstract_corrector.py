"""Unit tests for the particle snapshot buffer and particle types."""
import math

import pytest

from vml_localizer.localization.particle_filter.abstract_corrector import AbstractCorrector
from vml_localizer.localization.particle_filter.particle_types import Particle, ParticleArray, Pose, mean_pose
from vml_localizer.utils.errors import UnsynchronizedStateError


class TestSnapshotBuffer:
    """Test suite for AbstractCorrector buffering and commit."""

    def test_closest_stamp_wins(self, particle_array_factory):
        corrector = AbstractCorrector()
        for stamp in (0.0, 0.3, 0.6, 0.9):
            corrector.add_particle_array(particle_array_factory([(stamp, 0.0, 0.0)], stamp=stamp))
        assert corrector.get_synchronized_particle_array(0.65).stamp == 0.6
        assert corrector.get_synchronized_particle_array(1.5).stamp == 0.9

    def test_returns_copy(self, particle_array_factory):
        corrector = AbstractCorrector()
        original = particle_array_factory([(1.0, 2.0, 0.0)], stamp=1.0)
        corrector.add_particle_array(original)
        snapshot = corrector.get_synchronized_particle_array(1.0)
        snapshot.particles[0].weight = 42.0
        assert original.particles[0].weight == 1.0
        assert snapshot is not original

    def test_stale_snapshots_dropped(self, particle_array_factory):
        corrector = AbstractCorrector({'acceptable_max_delay': 1.0})
        corrector.add_particle_array(particle_array_factory([(0.0, 0.0, 0.0)], stamp=0.0))
        corrector.add_particle_array(particle_array_factory([(0.0, 0.0, 0.0)], stamp=2.0))
        assert corrector.get_synchronized_particle_array(2.5).stamp == 2.0
        with pytest.raises(UnsynchronizedStateError):
            corrector.get_synchronized_particle_array(10.0)

    def test_empty_buffer_raises(self):
        with pytest.raises(UnsynchronizedStateError):
            AbstractCorrector().get_synchronized_particle_array(0.0)

    def test_buffer_size_limit(self, particle_array_factory):
        corrector = AbstractCorrector({'buffer_size': 2})
        for stamp in (0.0, 0.1, 0.2):
            corrector.add_particle_array(particle_array_factory([(0.0, 0.0, 0.0)], stamp=stamp))
        assert corrector.get_synchronized_particle_array(0.0).stamp == pytest.approx(0.1)

    def test_clear_buffer(self, particle_array_factory):
        corrector = AbstractCorrector()
        corrector.add_particle_array(particle_array_factory([(0.0, 0.0, 0.0)]))
        corrector.clear_buffer()
        with pytest.raises(UnsynchronizedStateError):
            corrector.get_synchronized_particle_array(0.0)

    def test_commit_invokes_callback(self, particle_array_factory):
        committed = []
        corrector = AbstractCorrector(commit_callback=committed.append)
        array = particle_array_factory([(0.0, 0.0, 0.0)])
        corrector.set_weighted_particle_array(array)
        assert committed == [array]
        assert corrector.last_committed is array


class TestParticleTypes:
    """Test suite for Pose, ParticleArray and mean_pose."""

    def test_weights_and_copy(self):
        array = ParticleArray(1.5, [Particle(Pose(1.0, 2.0), 0.25), Particle(Pose(3.0, 4.0), 0.75)])
        assert array.weights.tolist() == [0.25, 0.75]
        clone = array.copy()
        clone.particles[0].pose.x = 9.0
        assert array.particles[0].pose.x == 1.0
        assert clone.stamp == 1.5
        assert clone.frame_id == "map"

    def test_weighted_mean(self):
        array = ParticleArray(0.0, [Particle(Pose(0.0, 0.0), 1.0), Particle(Pose(4.0, 8.0), 3.0)])
        mean = mean_pose(array)
        assert mean.x == pytest.approx(3.0)
        assert mean.y == pytest.approx(6.0)

    def test_mean_yaw_wraps(self):
        yaws = (math.radians(179.0), math.radians(-179.0))
        array = ParticleArray(0.0, [Particle(Pose(0.0, 0.0, 0.0, yaw), 1.0) for yaw in yaws])
        mean = mean_pose(array)
        assert abs(abs(mean.yaw) - math.pi) < 1e-9

    def test_degenerate_weights_fall_back_to_uniform(self):
        array = ParticleArray(0.0, [Particle(Pose(0.0, 0.0), 0.0), Particle(Pose(2.0, 0.0), 0.0)])
        assert mean_pose(array).x == pytest.approx(1.0)

    def test_non_finite_poses_left_out(self):
        array = ParticleArray(0.0, [Particle(Pose(2.0, 4.0), 1.0), Particle(Pose(float('nan'), 0.0), 1.0),
                                    Particle(Pose(0.0, 0.0, 0.0, float('inf')), 1.0)])
        mean = mean_pose(array)
        assert mean.x == pytest.approx(2.0)
        assert mean.y == pytest.approx(4.0)
        assert mean_pose(ParticleArray(0.0, [Particle(Pose(float('nan'), 0.0), 1.0)])) is None

    def test_empty_mean(self):
        assert mean_pose(ParticleArray(0.0, [])) is None
