# vml_localizer/localization/particle_corrector/line_scoring.py

import logging
import numpy as np

from vml_localizer.utils.color_scale import blue_red_bytes
from vml_localizer.utils.geometry_utils import abs_cos, planar_squared_distance

logger = logging.getLogger(__name__)

class ScoredCloud:
    """Per-sample scores of one transformed detection, kept for diagnostics."""
    def __init__(self, points, scores, colors):
        self.points = points # (N, 3) world positions
        self.scores = scores # (N,)
        self.colors = colors # (N, 3) uint8 RGB

    @property
    def total(self):
        return float(self.scores.sum())

    def __len__(self):
        return len(self.scores)

    def __repr__(self):
        return f"ScoredCloud(Samples={len(self)}, Total={self.total:.1f})"


class LineSegmentScorer:
    """
    Walks sample points along world-frame line segments and scores each one
    against the cost map:

        score = exp(-far_weight_gain * d^2) * (|cos(segment, map direction)| * cost + score_offset)

    where d is the planar distance from the hypothesis position. The single
    traversal `iter_segment_scores` backs both the aggregate score and the
    per-sample diagnostic cloud.
    """
    def __init__(self, cost_map, score_offset=-64.0, far_weight_gain=0.001, sample_step=0.1):
        if not sample_step > 0:
            raise ValueError(f"sample_step must be positive, got {sample_step}")
        self.cost_map = cost_map
        self.score_offset = float(score_offset)
        self.far_weight_gain = float(far_weight_gain)
        self.sample_step = float(sample_step)

    def iter_segment_scores(self, cloud, self_position):
        """
        Lazily scores a transformed cloud one segment at a time.

        Zero-length and non-finite segments yield no samples. Non-finite
        sample points are kept with score 0.

        Args:
            cloud (LineSegmentCloud): Segments in world frame.
            self_position (array-like): Hypothesis position [x, y(, z)].

        Yields:
            tuple: ((M, 3) sample points, (M,) scores) for each segment.
        """
        for start, end in cloud:
            vector = end - start
            length = float(np.linalg.norm(vector))
            if length == 0.0 or not np.isfinite(length):
                yield np.zeros((0, 3)), np.zeros(0)
                continue

            tangent = vector / length
            distances = np.arange(0.0, length, self.sample_step)
            points = start + distances[:, None] * tangent
            scores = np.zeros(len(points))

            finite = np.all(np.isfinite(points), axis=1)
            if np.any(finite):
                valid = points[finite]
                gain = np.exp(-self.far_weight_gain * planar_squared_distance(valid, self_position))
                costs, directions = self.cost_map.query_many(valid)
                alignment = abs_cos(tangent, directions.astype(np.float64))
                scores[finite] = gain * (alignment * costs + self.score_offset)
            yield points, scores

    def score(self, cloud, self_position):
        """Returns the summed score of all samples of a transformed cloud."""
        total = 0.0
        for _, scores in self.iter_segment_scores(cloud, self_position):
            total += float(scores.sum())
        return total

    def iter_scored_samples(self, cloud, self_position):
        """Yields (x, y, z, score) per sample without materializing the whole cloud."""
        for points, scores in self.iter_segment_scores(cloud, self_position):
            for point, score in zip(points, scores):
                yield point[0], point[1], point[2], score

    def evaluate(self, cloud, self_position):
        """
        Materializes the per-sample scores of a transformed cloud with diagnostic colors
        (blue = well aligned, red = penalized).

        Returns:
            ScoredCloud: Points, scores and RGB colors.
        """
        chunks = list(self.iter_segment_scores(cloud, self_position))
        if chunks:
            points = np.concatenate([p for p, _ in chunks], axis=0)
            scores = np.concatenate([s for _, s in chunks])
        else:
            points = np.zeros((0, 3))
            scores = np.zeros(0)
        span = 255.0 + abs(self.score_offset)
        colors = blue_red_bytes(0.5 + 0.5 * np.clip(scores / span, -1.0, 1.0))
        return ScoredCloud(points, scores, colors)
