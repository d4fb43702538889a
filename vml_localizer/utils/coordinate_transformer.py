# vml_localizer/utils/coordinate_transformer.py

import logging
import math
import numpy as np

logger = logging.getLogger(__name__)

class RigidTransform:
    """
    Immutable rigid transform (rotation + translation) between two frames.

    Used to move detected line segments from the sensor/vehicle local frame
    (x-forward, y-left, z-up) into the world frame of one pose hypothesis.
    Instances are cheap to create per particle and never mutated.
    """
    def __init__(self, rotation=None, translation=None):
        """
        Initializes the RigidTransform.

        Args:
            rotation (array-like, optional): 3x3 rotation matrix. Identity if omitted.
            translation (array-like, optional): Translation [x, y, z]. Zero if omitted.
        """
        rotation = np.eye(3) if rotation is None else np.array(rotation, dtype=np.float64)
        translation = np.zeros(3) if translation is None else np.array(translation, dtype=np.float64)
        if rotation.shape != (3, 3):
            raise ValueError(f"rotation must be 3x3, got shape {rotation.shape}")
        if translation.shape != (3,):
            raise ValueError(f"translation must have 3 components, got shape {translation.shape}")
        rotation.setflags(write=False)
        translation.setflags(write=False)
        self._rotation = rotation
        self._translation = translation

    @classmethod
    def from_pose(cls, pose):
        """
        Builds the local-to-world transform of a planar vehicle pose.

        Args:
            pose (Pose): Pose with x, y, z and yaw (radians).

        Returns:
            RigidTransform: Transform taking local-frame points into the world frame.
        """
        return cls.from_xyz_yaw(pose.x, pose.y, pose.z, pose.yaw)

    @classmethod
    def from_xyz_yaw(cls, x, y, z, yaw):
        c = math.cos(yaw)
        s = math.sin(yaw)
        rotation = [[c, -s, 0.0],
                    [s, c, 0.0],
                    [0.0, 0.0, 1.0]]
        return cls(rotation, [x, y, z])

    @property
    def rotation(self):
        return self._rotation

    @property
    def translation(self):
        return self._translation

    def apply(self, points):
        """
        Transforms one point [x, y, z] or an (N, 3) array of points.

        Args:
            points (array-like): A single point or N points in the source frame.

        Returns:
            numpy.ndarray: The transformed point(s), same shape as the input.
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.shape[-1] != 3:
            raise ValueError(f"points must have 3 components, got shape {pts.shape}")
        return pts @ self._rotation.T + self._translation

    def inverse(self):
        """Returns the world-to-local transform that undoes this one."""
        rot_t = self._rotation.T
        return RigidTransform(rot_t, -rot_t @ self._translation)

    def __repr__(self):
        yaw = math.atan2(self._rotation[1, 0], self._rotation[0, 0])
        t = self._translation
        return f"RigidTransform(t=({t[0]:.2f}, {t[1]:.2f}, {t[2]:.2f}), yaw={math.degrees(yaw):.1f}deg)"
