# vml_localizer/localization/particle_corrector/camera_particle_corrector.py

import logging
import math
import warnings
from concurrent.futures import ThreadPoolExecutor
import numpy as np

from vml_localizer.localization.particle_corrector.line_scoring import LineSegmentScorer
from vml_localizer.localization.particle_filter.abstract_corrector import AbstractCorrector
from vml_localizer.localization.particle_filter.particle_types import mean_pose
from vml_localizer.utils.coordinate_transformer import RigidTransform
from vml_localizer.utils.errors import DegenerateInputWarning, UnsynchronizedStateError
from vml_localizer.utils.geometry_utils import planar_squared_distance

logger = logging.getLogger(__name__)

class CameraParticleCorrector(AbstractCorrector):
    """
    Re-weights particles by how well camera line-segment detections, moved
    into each particle's frame, line up with the vector-map cost map.

    Raw scores are clamped to [-max_raw_score, max_raw_score] and mapped to
    weights in [min_prob, min_prob * exp(2k)] with k = -ln(min_prob) / 2,
    so no particle ever gets a zero weight. Weights are only committed when
    the weighted mean position moved more than sqrt(commit_distance_sq)
    since the last commit.
    """
    def __init__(self, cost_map, config=None, filter_config=None, commit_callback=None):
        """
        Initializes the CameraParticleCorrector.

        Args:
            cost_map (HierarchicalCostMap): Cost map of the road markings.
            config (dict, optional): 'particle_corrector' section.
            filter_config (dict, optional): 'particle_filter' section for the snapshot buffer.
            commit_callback (callable, optional): Receives each committed ParticleArray.
        """
        super().__init__(filter_config, commit_callback)
        config = config or {}
        self.cost_map = cost_map
        self.score_offset = float(config.get('score_offset', -64.0))
        self.max_raw_score = float(config.get('max_raw_score', 5000.0))
        self.min_prob = float(config.get('min_prob', 0.01))
        self.far_weight_gain = float(config.get('far_weight_gain', 0.001))
        self.commit_distance_sq = float(config.get('commit_distance_sq', 1.0))
        self.timestamp_gap_warning = float(config.get('timestamp_gap_warning', 0.1))
        self.score_workers = max(1, int(config.get('score_workers', 1)))

        if not self.max_raw_score > 0:
            raise ValueError(f"max_raw_score must be positive, got {self.max_raw_score}")
        if not 0.0 < self.min_prob < 1.0:
            raise ValueError(f"min_prob must be in (0, 1), got {self.min_prob}")
        self._k = -math.log(self.min_prob) / 2.0

        self.scorer = LineSegmentScorer(cost_map, self.score_offset, self.far_weight_gain,
                                        config.get('sample_step', 0.1))
        self.enabled = True
        self.last_mean_position = None
        self.last_update_committed = False
        self.last_scored_cloud = None

        logger.info(f"CameraParticleCorrector initialized: score_offset={self.score_offset}, "
                    f"max_raw_score={self.max_raw_score}, min_prob={self.min_prob}, "
                    f"far_weight_gain={self.far_weight_gain}, workers={self.score_workers}")

    @property
    def max_weight(self):
        return self.min_prob * math.exp(2.0 * self._k)

    def score_to_weight(self, raw_score):
        """
        Converts a raw alignment score into a bounded, strictly positive weight.

        Args:
            raw_score (float): Summed per-sample score. NaN counts as 0.

        Returns:
            float: Weight in [min_prob, min_prob * exp(2k)].
        """
        if math.isnan(raw_score):
            raw_score = 0.0
        raw_score = min(max(raw_score, -self.max_raw_score), self.max_raw_score)
        return self.min_prob * math.exp(self._k * (raw_score / self.max_raw_score + 1.0))

    def compute_raw_score(self, detection, pose):
        """
        Scores a sensor-frame detection against the cost map as seen from one pose.

        Args:
            detection (LineSegmentCloud): Detected segments in the vehicle frame.
            pose (Pose): The hypothesis.

        Returns:
            float: The raw score. A pose with a non-finite component gets -max_raw_score,
                   so it ends at the weight floor.
        """
        if not pose.is_finite():
            return -self.max_raw_score
        transform = RigidTransform.from_pose(pose)
        return self.scorer.score(detection.transformed(transform), transform.translation)

    def evaluate_cloud(self, detection, pose):
        """Per-sample scores of a detection seen from one pose, for diagnostics."""
        transform = RigidTransform.from_pose(pose)
        return self.scorer.evaluate(detection.transformed(transform), transform.translation)

    def reweight(self, detection, detection_timestamp, particle_array=None):
        """
        Runs one correction cycle for a line-segment detection.

        Args:
            detection (LineSegmentCloud): Detected segments in the vehicle frame.
            detection_timestamp (float): Capture time of the detection in seconds.
            particle_array (ParticleArray, optional): Particle set to weight. If omitted the
                                                      buffered snapshot closest to the timestamp is used.

        Returns:
            ParticleArray or None: The re-weighted set (same size and order), or None when
                                   the corrector is disabled or no snapshot is available.
        """
        if not self.enabled:
            logger.debug("Corrector disabled, skipping detection.")
            return None

        if particle_array is None:
            try:
                particle_array = self.get_synchronized_particle_array(detection_timestamp)
            except UnsynchronizedStateError as e:
                logger.debug(f"Skipping detection: {e}")
                return None
        else:
            particle_array = particle_array.copy()

        dt = detection_timestamp - particle_array.stamp
        if abs(dt) > self.timestamp_gap_warning:
            self._warn_degenerate(f"Timestamp gap between detection and particles is LARGE {dt:.3f} sec")

        lengths = detection.lengths
        degenerate = int(np.count_nonzero(~(lengths > 0.0)))
        if degenerate:
            self._warn_degenerate(f"{degenerate} of {len(detection)} detected segments are zero-length or non-finite")

        raw_scores = self._score_particles(detection, particle_array)
        for particle, raw_score in zip(particle_array.particles, raw_scores):
            particle.weight = self.score_to_weight(raw_score)

        self.cost_map.erase_obsolete()

        mean = mean_pose(particle_array)
        self.last_update_committed = False
        if mean is not None:
            mean_position = mean.position
            if self.last_mean_position is None or \
                    planar_squared_distance(mean_position, self.last_mean_position) > self.commit_distance_sq:
                self.set_weighted_particle_array(particle_array)
                self.last_mean_position = mean_position
                self.last_update_committed = True
            else:
                logger.warning("Skip weighting because almost same position")
            self.last_scored_cloud = self.evaluate_cloud(detection, mean)

        logger.debug(f"Re-weighted {len(particle_array)} particles, raw score range "
                     f"[{min(raw_scores, default=0.0):.1f}, {max(raw_scores, default=0.0):.1f}]")
        return particle_array

    def _score_particles(self, detection, particle_array):
        poses = [particle.pose for particle in particle_array.particles]
        invalid = sum(1 for pose in poses if not pose.is_finite())
        if invalid:
            self._warn_degenerate(f"{invalid} of {len(poses)} particles have a non-finite pose")
        if self.score_workers > 1 and len(poses) > 1:
            with ThreadPoolExecutor(max_workers=self.score_workers) as executor:
                return list(executor.map(lambda pose: self.compute_raw_score(detection, pose), poses))
        return [self.compute_raw_score(detection, pose) for pose in poses]

    def _warn_degenerate(self, message):
        logger.warning(message)
        warnings.warn(message, DegenerateInputWarning, stacklevel=3)
