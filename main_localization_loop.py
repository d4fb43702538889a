import logging
import os
import sys
import cv2
import numpy as np

from vml_localizer.localization.localization_pipeline import LocalizationPipeline
from vml_localizer.localization.particle_filter.particle_types import Particle, ParticleArray, Pose, mean_pose
from vml_localizer.perception.line_segments import LineSegmentCloud
from vml_localizer.utils.config_reader import ConfigReader
from vml_localizer.utils.coordinate_transformer import RigidTransform
from vml_localizer.utils.geometry_utils import normalize_angle

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

LANE_HALF_WIDTH = 1.75
ROAD_START_X = -50.0
ROAD_END_X = 250.0
DETECTION_RANGE = 20.0


def build_road_markings():
    """Straight two-lane road: solid outer lines and a dashed center line (world frame)."""
    segments = [
        ((ROAD_START_X, -LANE_HALF_WIDTH * 2), (ROAD_END_X, -LANE_HALF_WIDTH * 2)),
        ((ROAD_START_X, LANE_HALF_WIDTH * 2), (ROAD_END_X, LANE_HALF_WIDTH * 2)),
    ]
    for x in np.arange(ROAD_START_X, ROAD_END_X, 6.0):
        segments.append(((x, 0.0), (x + 3.0, 0.0)))
    return LineSegmentCloud.from_segments(segments)


def simulate_detection(road, true_pose):
    """
    Returns the road-marking parts within DETECTION_RANGE ahead of the vehicle,
    expressed in the vehicle frame.
    """
    world_to_vehicle = RigidTransform.from_pose(true_pose).inverse()
    local = road.transformed(world_to_vehicle)
    starts = local.starts.copy()
    ends = local.ends.copy()
    keep = []
    for i in range(len(local)):
        lo = max(min(starts[i, 0], ends[i, 0]), 0.0)
        hi = min(max(starts[i, 0], ends[i, 0]), DETECTION_RANGE)
        if hi <= lo:
            continue
        forward = ends[i, 0] >= starts[i, 0]
        a, b = (starts[i], ends[i]) if forward else (ends[i], starts[i])
        span = b[0] - a[0]
        clipped_a = a + (b - a) * ((lo - a[0]) / span)
        clipped_b = a + (b - a) * ((hi - a[0]) / span)
        starts[i], ends[i] = clipped_a, clipped_b
        keep.append(i)
    return LineSegmentCloud(starts[keep], ends[keep])


def sample_particles(true_pose, count, rng, stamp):
    particles = []
    for _ in range(count):
        pose = Pose(true_pose.x + rng.normal(0.0, 1.0),
                    true_pose.y + rng.normal(0.0, 1.0),
                    true_pose.z,
                    normalize_angle(true_pose.yaw + rng.normal(0.0, 0.03)))
        particles.append(Particle(pose, 1.0 / count))
    return ParticleArray(stamp, particles)


def main(config_path="config/localizer_config.yaml", output_dir=None, steps=30):
    logger.info("Starting camera particle correction loop on a synthetic road...")

    config_reader = ConfigReader(config_path)
    config = config_reader.load_config()
    if config is None:
        logger.error("Failed to load configuration. Exiting.")
        return

    committed = []
    pipeline = LocalizationPipeline(config, commit_callback=committed.append)
    road = build_road_markings()
    pipeline.on_map_segments(road)

    rng = np.random.default_rng(0)
    true_pose = Pose(0.0, 0.0, 0.0, 0.0)
    particles = sample_particles(true_pose, 100, rng, 0.0)

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    for step in range(steps):
        stamp = step * 0.1
        particles.stamp = stamp
        pipeline.on_particle_array(particles)

        detection = simulate_detection(road, true_pose)
        weighted = pipeline.on_line_segments(detection, stamp)
        if weighted is None:
            logger.warning(f"Step {step}: correction skipped.")
        else:
            best = max(weighted.particles, key=lambda p: p.weight)
            estimate = mean_pose(weighted)
            logger.info(f"Step {step}: best particle lateral error {abs(best.pose.y - true_pose.y):.2f} m, "
                        f"mean lateral error {abs(estimate.y - true_pose.y):.2f} m, "
                        f"committed={pipeline.diagnostics()['last_update_committed']}")
            particles = weighted

        image = pipeline.on_pose(true_pose)
        if output_dir:
            cv2.imwrite(os.path.join(output_dir, f"cost_map_{step:04d}.png"), image)

        # external motion: the vehicle and every hypothesis move 2 m forward
        true_pose = Pose(true_pose.x + 2.0, true_pose.y, true_pose.z, true_pose.yaw)
        for particle in particles.particles:
            particle.pose = Pose(particle.pose.x + 2.0, particle.pose.y, particle.pose.z, particle.pose.yaw)

    logger.info(f"Finished: {len(committed)} weight updates committed, "
                f"{len(pipeline.diagnostics()['tile_bounds'])} tiles resident.")


if __name__ == '__main__':
    main(output_dir=sys.argv[1] if len(sys.argv) > 1 else None)
