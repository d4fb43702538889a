"""Pytest configuration and shared fixtures for the localizer tests."""
import logging
import sys
from pathlib import Path

import pytest

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from vml_localizer.localization.particle_corrector.camera_particle_corrector import CameraParticleCorrector
from vml_localizer.localization.particle_filter.particle_types import Particle, ParticleArray, Pose
from vml_localizer.maps.cost_map.hierarchical_cost_map import HierarchicalCostMap
from vml_localizer.maps.cost_map.tile_coordinate import TileConfig
from vml_localizer.perception.line_segments import LineSegmentCloud


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)


@pytest.fixture
def cost_map_config():
    """Small tiles: 20 m at 10 px/m, cost falls to zero 2 m from a marking."""
    return {
        'unit_length': 20.0,
        'image_size': 200,
        'max_tile_count': 4,
        'gamma': 4.0,
        'falloff_pixels': 20,
        'height_tolerance': 4.0,
    }


@pytest.fixture
def tile_config(cost_map_config):
    return TileConfig.from_config(cost_map_config)


@pytest.fixture
def straight_cloud():
    """Single road marking from (0, 0) to (10, 0)."""
    return LineSegmentCloud.from_segments([((0.0, 0.0, 0.0), (10.0, 0.0, 0.0))])


@pytest.fixture
def cost_map(tile_config, cost_map_config, straight_cloud):
    cost_map = HierarchicalCostMap(tile_config, cost_map_config)
    cost_map.set_source_cloud(straight_cloud)
    return cost_map


@pytest.fixture
def corrector(cost_map):
    return CameraParticleCorrector(cost_map)


@pytest.fixture
def particle_array_factory():
    """Builds a ParticleArray from (x, y, yaw) tuples with uniform weights."""
    def factory(poses, stamp=0.0):
        weight = 1.0 / max(1, len(poses))
        return ParticleArray(stamp, [Particle(Pose(x, y, 0.0, yaw), weight) for x, y, yaw in poses])
    return factory
