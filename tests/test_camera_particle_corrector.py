"""Unit tests for line-segment particle scoring and re-weighting."""
import math
import warnings

import numpy as np
import pytest

from vml_localizer.localization.particle_corrector.camera_particle_corrector import CameraParticleCorrector
from vml_localizer.localization.particle_corrector.line_scoring import LineSegmentScorer
from vml_localizer.localization.particle_filter.particle_types import Pose
from vml_localizer.perception.line_segments import LineSegmentCloud
from vml_localizer.utils.errors import DegenerateInputWarning


def expected_aligned_score():
    """Score of the marking (0, 0)-(10, 0) seen exactly from (5, 5): 100 samples at cost 255."""
    x = np.arange(0.0, 10.0, 0.1)
    return float(np.sum(191.0 * np.exp(-0.001 * ((x - 5.0) ** 2 + 25.0))))


@pytest.fixture
def aligned_detection():
    """The fixture marking as seen from (5, 5) with yaw 0."""
    return LineSegmentCloud.from_segments([((-5.0, -5.0), (5.0, -5.0))])


class TestScoreToWeight:
    """Test suite for the raw-score to weight mapping."""

    def test_zero_and_bounds(self, corrector):
        assert corrector.score_to_weight(0.0) == pytest.approx(0.1)
        assert corrector.score_to_weight(5000.0) == pytest.approx(1.0)
        assert corrector.score_to_weight(-5000.0) == pytest.approx(0.01)
        assert corrector.max_weight == pytest.approx(1.0)

    def test_clamped(self, corrector):
        assert corrector.score_to_weight(1e6) == pytest.approx(corrector.score_to_weight(5000.0))
        assert corrector.score_to_weight(-1e6) == pytest.approx(corrector.score_to_weight(-5000.0))

    def test_monotonic_and_positive(self, corrector):
        raw = np.linspace(-6000.0, 6000.0, 101)
        weights = [corrector.score_to_weight(r) for r in raw]
        assert all(w > 0.0 for w in weights)
        assert all(b >= a for a, b in zip(weights, weights[1:]))

    def test_nan_counts_as_zero(self, corrector):
        assert corrector.score_to_weight(float('nan')) == pytest.approx(0.1)

    @pytest.mark.parametrize("config", [{'max_raw_score': 0.0}, {'min_prob': 0.0}, {'min_prob': 1.0}])
    def test_invalid_parameters(self, cost_map, config):
        with pytest.raises(ValueError):
            CameraParticleCorrector(cost_map, config)


class TestScoring:
    """Test suite for per-particle scores."""

    def test_aligned_score(self, corrector, aligned_detection):
        score = corrector.compute_raw_score(aligned_detection, Pose(5.0, 5.0, 0.0, 0.0))
        assert score == pytest.approx(expected_aligned_score(), rel=1e-6)

    def test_rotated_pose(self, corrector):
        # the same marking seen from (5, 5) facing -y
        detection = LineSegmentCloud.from_segments([((5.0, -5.0), (5.0, 5.0))])
        score = corrector.compute_raw_score(detection, Pose(5.0, 5.0, 0.0, -math.pi / 2))
        expected = expected_aligned_score()
        assert 0.7 * expected < score <= 1.0001 * expected

    def test_perpendicular_scores_lower(self, corrector, aligned_detection):
        perpendicular = LineSegmentCloud.from_segments([((0.0, -10.0), (0.0, 0.0))])
        pose = Pose(5.0, 5.0, 0.0, 0.0)
        assert corrector.compute_raw_score(perpendicular, pose) < corrector.compute_raw_score(aligned_detection, pose)

    def test_misplaced_pose_scores_lower(self, corrector, aligned_detection):
        good = corrector.compute_raw_score(aligned_detection, Pose(5.0, 5.0, 0.0, 0.0))
        bad = corrector.compute_raw_score(aligned_detection, Pose(5.0, 9.0, 0.0, 0.0))
        assert bad < 0.0 < good

    def test_empty_detection_scores_zero(self, corrector):
        assert corrector.compute_raw_score(LineSegmentCloud(), Pose(5.0, 5.0)) == 0.0

    def test_zero_length_segment_yields_no_samples(self, cost_map):
        scorer = LineSegmentScorer(cost_map)
        cloud = LineSegmentCloud.from_segments([((1.0, 0.0), (1.0, 0.0))])
        chunks = list(scorer.iter_segment_scores(cloud, np.zeros(3)))
        assert len(chunks) == 1
        assert len(chunks[0][1]) == 0
        assert scorer.score(cloud, np.zeros(3)) == 0.0

    def test_scored_samples_match_total(self, cost_map):
        scorer = LineSegmentScorer(cost_map)
        cloud = LineSegmentCloud.from_segments([((0.0, 0.0), (10.0, 0.0)), ((0.0, 5.0), (3.0, 5.0))])
        samples = list(scorer.iter_scored_samples(cloud, np.array([5.0, 5.0, 0.0])))
        assert len(samples) == 130
        assert sum(s[3] for s in samples) == pytest.approx(scorer.score(cloud, np.array([5.0, 5.0, 0.0])))

    def test_scored_cloud_colors(self, cost_map):
        scorer = LineSegmentScorer(cost_map)
        cloud = LineSegmentCloud.from_segments([((0.0, 0.0), (10.0, 0.0)), ((0.0, 5.0), (3.0, 5.0))])
        scored = scorer.evaluate(cloud, np.array([5.0, 5.0, 0.0]))
        assert len(scored) == 130
        assert scored.colors.shape == (130, 3)
        # on the marking: blue dominant; off the map: red dominant
        assert scored.colors[0, 2] > scored.colors[0, 0]
        assert scored.colors[-1, 0] > scored.colors[-1, 2]


class TestReweight:
    """Test suite for the correction cycle."""

    def test_weights_follow_alignment(self, corrector, aligned_detection, particle_array_factory):
        particles = particle_array_factory([(5.0, 5.0, 0.0), (5.0, 9.0, 0.0), (5.0, 5.0, math.pi / 2)])
        weighted = corrector.reweight(aligned_detection, 0.0, particles)
        weights = weighted.weights
        assert weights[0] == pytest.approx(corrector.max_weight)
        assert weights[0] > weights[2]
        assert weights[0] > weights[1]
        assert np.all(weights >= corrector.min_prob)

    def test_size_and_order_preserved(self, corrector, aligned_detection, particle_array_factory):
        poses = [(5.0, 5.0 + 0.5 * i, 0.0) for i in range(8)]
        particles = particle_array_factory(poses)
        weighted = corrector.reweight(aligned_detection, 0.0, particles)
        assert len(weighted) == len(particles)
        assert [p.pose for p in weighted] == [p.pose for p in particles]
        # input array is left untouched
        assert particles.weights.tolist() == [1.0 / 8] * 8

    def test_empty_detection_gives_uniform_floor(self, corrector, particle_array_factory):
        particles = particle_array_factory([(5.0, 5.0, 0.0), (50.0, 50.0, 1.0)])
        weighted = corrector.reweight(LineSegmentCloud(), 0.0, particles)
        assert weighted.weights == pytest.approx([0.1, 0.1])

    def test_non_finite_segment_gives_finite_weight(self, corrector, particle_array_factory):
        detection = LineSegmentCloud.from_segments([((float('nan'), 0.0), (1.0, 0.0))])
        particles = particle_array_factory([(5.0, 5.0, 0.0)])
        with pytest.warns(DegenerateInputWarning):
            weighted = corrector.reweight(detection, 0.0, particles)
        assert np.isfinite(weighted.weights).all()
        assert weighted.weights[0] == pytest.approx(0.1)

    def test_non_finite_pose_gets_floor_weight(self, corrector, aligned_detection, particle_array_factory):
        particles = particle_array_factory([(5.0, 5.0, 0.0), (5.0, 5.0, float('inf')), (float('nan'), 5.0, 0.0)])
        with pytest.warns(DegenerateInputWarning, match="non-finite pose"):
            weighted = corrector.reweight(aligned_detection, 0.0, particles)
        weights = weighted.weights
        assert np.isfinite(weights).all()
        assert weights[0] == pytest.approx(corrector.max_weight)
        assert weights[1] == pytest.approx(corrector.min_prob)
        assert weights[2] == pytest.approx(corrector.min_prob)

    def test_non_finite_pose_does_not_block_commit(self, corrector, aligned_detection, particle_array_factory):
        corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0)]))
        assert corrector.last_update_committed

        moved = particle_array_factory([(50.0, 5.0, 0.0), (float('nan'), 5.0, 0.0)])
        with pytest.warns(DegenerateInputWarning):
            weighted = corrector.reweight(aligned_detection, 0.0, moved)
        assert corrector.last_update_committed
        assert corrector.last_committed is weighted
        assert corrector.last_mean_position[:2].tolist() == [50.0, 5.0]
        assert weighted.weights[1] <= weighted.weights[0]

    def test_zero_length_segment_warns(self, corrector, particle_array_factory):
        detection = LineSegmentCloud.from_segments([((1.0, 1.0), (1.0, 1.0))])
        with pytest.warns(DegenerateInputWarning, match="zero-length"):
            corrector.reweight(detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0)]))

    def test_timestamp_gap_warns(self, corrector, aligned_detection, particle_array_factory):
        particles = particle_array_factory([(5.0, 5.0, 0.0)], stamp=0.0)
        with pytest.warns(DegenerateInputWarning, match="Timestamp gap"):
            result = corrector.reweight(aligned_detection, 0.5, particles)
        assert result is not None

    def test_update_suppressed_when_not_moved(self, corrector, aligned_detection, particle_array_factory):
        first = corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0)]))
        assert corrector.last_update_committed
        assert corrector.last_committed is first

        second = corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.5, 5.0, 0.0)]))
        assert second is not None
        assert not corrector.last_update_committed
        assert corrector.last_committed is first

        third = corrector.reweight(aligned_detection, 0.0, particle_array_factory([(7.0, 5.0, 0.0)]))
        assert corrector.last_update_committed
        assert corrector.last_committed is third

    def test_commit_callback(self, cost_map, aligned_detection, particle_array_factory):
        committed = []
        corrector = CameraParticleCorrector(cost_map, commit_callback=committed.append)
        weighted = corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0)]))
        assert committed == [weighted]

    def test_unsynchronized_skips_cycle(self, corrector, aligned_detection):
        assert corrector.reweight(aligned_detection, 1.0) is None
        assert corrector.last_committed is None

    def test_uses_closest_buffered_snapshot(self, corrector, aligned_detection, particle_array_factory):
        corrector.add_particle_array(particle_array_factory([(5.0, 5.0, 0.0)], stamp=0.0))
        corrector.add_particle_array(particle_array_factory([(5.0, 5.0, 0.0)], stamp=0.5))
        weighted = corrector.reweight(aligned_detection, 0.45)
        assert weighted.stamp == 0.5

    def test_disabled_corrector(self, corrector, aligned_detection, particle_array_factory):
        corrector.enabled = False
        assert corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0)])) is None
        assert corrector.last_committed is None

    def test_erase_obsolete_once_per_cycle(self, corrector, aligned_detection, particle_array_factory, monkeypatch):
        calls = []
        original = corrector.cost_map.erase_obsolete
        monkeypatch.setattr(corrector.cost_map, 'erase_obsolete', lambda: calls.append(1) or original())
        corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0), (6.0, 5.0, 0.0)]))
        assert len(calls) == 1

    def test_parallel_scoring_matches_sequential(self, cost_map, aligned_detection, particle_array_factory):
        poses = [(5.0 + 0.3 * i, 5.0 - 0.2 * i, 0.05 * i) for i in range(12)]
        sequential = CameraParticleCorrector(cost_map, {'score_workers': 1})
        parallel = CameraParticleCorrector(cost_map, {'score_workers': 4})
        expected = sequential.reweight(aligned_detection, 0.0, particle_array_factory(poses)).weights
        actual = parallel.reweight(aligned_detection, 0.0, particle_array_factory(poses)).weights
        assert np.allclose(actual, expected)

    def test_scored_cloud_of_mean_pose(self, corrector, aligned_detection, particle_array_factory):
        corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0)]))
        scored = corrector.last_scored_cloud
        assert len(scored) == 100
        assert scored.colors.shape == (100, 3)
        assert scored.total == pytest.approx(expected_aligned_score(), rel=1e-6)

    def test_no_warning_for_clean_input(self, corrector, aligned_detection, particle_array_factory):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DegenerateInputWarning)
            corrector.reweight(aligned_detection, 0.0, particle_array_factory([(5.0, 5.0, 0.0)]))
