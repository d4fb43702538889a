# vml_localizer/perception/line_segments.py

import logging
import numpy as np

logger = logging.getLogger(__name__)

class LineSegmentCloud:
    """
    Ordered sequence of oriented 3D line segments (start -> end).

    Used both for the static vector-map road markings (world frame) and for
    the per-image line-segment detections (sensor/vehicle frame). The
    direction of a segment is implied by end - start.
    """
    def __init__(self, starts=None, ends=None):
        """
        Initializes the LineSegmentCloud.

        Args:
            starts (array-like, optional): (N, 3) segment start points.
            ends (array-like, optional): (N, 3) segment end points.
        """
        starts = np.zeros((0, 3)) if starts is None else np.array(starts, dtype=np.float64).reshape(-1, 3)
        ends = np.zeros((0, 3)) if ends is None else np.array(ends, dtype=np.float64).reshape(-1, 3)
        if starts.shape != ends.shape:
            raise ValueError(f"starts and ends must have the same shape, got {starts.shape} and {ends.shape}")
        starts.setflags(write=False)
        ends.setflags(write=False)
        self._starts = starts
        self._ends = ends

    @classmethod
    def from_segments(cls, segments):
        """
        Builds a cloud from an iterable of (start, end) pairs.
        2D points are lifted to z = 0.
        """
        starts = []
        ends = []
        for start, end in segments:
            starts.append(_lift(start))
            ends.append(_lift(end))
        return cls(starts, ends)

    @property
    def starts(self):
        return self._starts

    @property
    def ends(self):
        return self._ends

    @property
    def vectors(self):
        """Returns the (N, 3) array of end - start."""
        return self._ends - self._starts

    @property
    def lengths(self):
        return np.linalg.norm(self.vectors, axis=1)

    def transformed(self, transform):
        """
        Returns a new cloud with both endpoints of every segment moved by a RigidTransform.
        """
        if len(self) == 0:
            return LineSegmentCloud()
        return LineSegmentCloud(transform.apply(self._starts), transform.apply(self._ends))

    def within_height(self, height, tolerance):
        """
        Returns the sub-cloud whose both endpoints lie within `tolerance` of `height` on the z axis.
        """
        keep = (np.abs(self._starts[:, 2] - height) <= tolerance) & (np.abs(self._ends[:, 2] - height) <= tolerance)
        return LineSegmentCloud(self._starts[keep], self._ends[keep])

    def bounding_boxes(self):
        """Returns (N, 2) min corners and (N, 2) max corners of the planar segment bounding boxes."""
        mins = np.minimum(self._starts[:, :2], self._ends[:, :2])
        maxs = np.maximum(self._starts[:, :2], self._ends[:, :2])
        return mins, maxs

    def __len__(self):
        return self._starts.shape[0]

    def __iter__(self):
        for start, end in zip(self._starts, self._ends):
            yield start, end

    def __repr__(self):
        return f"LineSegmentCloud(Segments={len(self)})"


def _lift(point):
    p = np.asarray(point, dtype=np.float64).ravel()
    if p.shape[0] == 2:
        return np.array([p[0], p[1], 0.0])
    if p.shape[0] != 3:
        raise ValueError(f"segment endpoint must have 2 or 3 components, got {p.shape[0]}")
    return p
