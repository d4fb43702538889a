# vml_localizer/localization/particle_filter/particle_types.py

import copy
import logging
import math
import numpy as np

logger = logging.getLogger(__name__)

class Pose:
    """Planar vehicle pose in the world frame: position (x, y, z) and yaw in radians."""
    def __init__(self, x=0.0, y=0.0, z=0.0, yaw=0.0):
        self.x = float(x)
        self.y = float(y)
        self.z = float(z)
        self.yaw = float(yaw)

    @property
    def position(self):
        return np.array([self.x, self.y, self.z])

    def is_finite(self):
        return bool(np.all(np.isfinite(self.position))) and math.isfinite(self.yaw)

    def __eq__(self, other):
        if not isinstance(other, Pose):
            return NotImplemented
        return (self.x, self.y, self.z, self.yaw) == (other.x, other.y, other.z, other.yaw)

    def __repr__(self):
        return f"Pose(x={self.x:.2f}, y={self.y:.2f}, z={self.z:.2f}, yaw={math.degrees(self.yaw):.1f}deg)"


class Particle:
    """One pose hypothesis and its weight."""
    def __init__(self, pose, weight=1.0):
        self.pose = pose
        self.weight = float(weight)

    def __repr__(self):
        return f"Particle({self.pose}, weight={self.weight:.4g})"


class ParticleArray:
    """
    Ordered set of weighted particles with the timestamp it was produced for.
    A particle's identity is its index; correction keeps size and order.
    """
    def __init__(self, stamp, particles, frame_id="map"):
        """
        Initializes the ParticleArray.

        Args:
            stamp (float): Timestamp in seconds.
            particles (list): Particle instances.
            frame_id (str): Frame of the poses.
        """
        self.stamp = float(stamp)
        self.particles = list(particles)
        self.frame_id = frame_id

    @property
    def weights(self):
        return np.array([p.weight for p in self.particles], dtype=np.float64)

    def copy(self):
        """Returns a deep copy; weights of the copy can be changed without touching the original."""
        return copy.deepcopy(self)

    def __len__(self):
        return len(self.particles)

    def __iter__(self):
        return iter(self.particles)

    def __repr__(self):
        return f"ParticleArray(stamp={self.stamp:.3f}, Particles={len(self.particles)})"


def mean_pose(particle_array):
    """
    Weighted mean pose of a particle set. Yaw is averaged on the unit circle.
    Particles with a non-finite pose are left out.
    Falls back to uniform weights if the weights do not sum to a positive finite value.

    Args:
        particle_array (ParticleArray): The particle set.

    Returns:
        Pose or None: The mean pose, None if no particle has a finite pose.
    """
    particles = [p for p in particle_array if p.pose.is_finite()]
    if not particles:
        return None

    weights = np.array([p.weight for p in particles], dtype=np.float64)
    total = weights.sum()
    if not np.isfinite(total) or total <= 0.0:
        logger.debug("Particle weights are degenerate, using uniform weights for the mean pose.")
        weights = np.ones(len(particles))
        total = float(len(particles))
    weights = weights / total

    xyz = np.array([p.pose.position for p in particles], dtype=np.float64)
    yaws = np.array([p.pose.yaw for p in particles], dtype=np.float64)
    mean_xyz = weights @ xyz
    mean_yaw = math.atan2(float(weights @ np.sin(yaws)), float(weights @ np.cos(yaws)))
    return Pose(mean_xyz[0], mean_xyz[1], mean_xyz[2], mean_yaw)
