# vml_localizer/localization/localization_pipeline.py

import logging

from vml_localizer.localization.geofence.init_area import InitArea
from vml_localizer.localization.particle_corrector.camera_particle_corrector import CameraParticleCorrector
from vml_localizer.maps.cost_map.hierarchical_cost_map import HierarchicalCostMap
from vml_localizer.maps.cost_map.tile_coordinate import TileConfig
from vml_localizer.utils.config_reader import ConfigReader

logger = logging.getLogger(__name__)

class LocalizationPipeline:
    """
    Wires the cost map, the camera particle corrector and the geofence to the
    inputs and outputs of the localizer: map segments, restriction and
    geofence polygons, particle snapshots, line-segment detections, and the
    diagnostic image / scored cloud / tile coverage.
    """
    def __init__(self, config=None, commit_callback=None):
        """
        Initializes the LocalizationPipeline.

        Args:
            config (dict, optional): Full localizer configuration (see config/localizer_config.yaml).
            commit_callback (callable, optional): Receives each committed ParticleArray.

        Raises:
            ConfigurationError: If the tile geometry is invalid.
        """
        cost_map_config = ConfigReader.section(config, 'cost_map')
        geofence_config = ConfigReader.section(config, 'geofence')
        diagnostics_config = ConfigReader.section(config, 'diagnostics')

        self.tile_config = TileConfig.from_config(cost_map_config)
        self.cost_map = HierarchicalCostMap(self.tile_config, cost_map_config)
        self.corrector = CameraParticleCorrector(
            self.cost_map,
            ConfigReader.section(config, 'particle_corrector'),
            ConfigReader.section(config, 'particle_filter'),
            commit_callback,
        )
        self.corrector.enabled = bool(geofence_config.get('initially_enabled', True))
        self.render_image_size = diagnostics_config.get('render_image_size')
        self.init_area = None
        logger.info("LocalizationPipeline initialized.")

    # --- Inputs ---

    def on_map_segments(self, cloud):
        """Static road-marking segments (world frame) replace the cost map source."""
        self.cost_map.set_source_cloud(cloud)

    def on_restriction_points(self, labeled_points):
        """Drivable-area polygons as a label-grouped point list."""
        self.cost_map.set_restriction_points(labeled_points)

    def on_init_area_points(self, labeled_points):
        """Geofence polygons as a label-grouped point list."""
        self.init_area = InitArea(labeled_points)

    def on_height(self, height):
        self.cost_map.set_height(height)

    def on_particle_array(self, particle_array):
        self.corrector.add_particle_array(particle_array)

    def on_line_segments(self, cloud, stamp):
        """
        Runs one correction cycle.

        Returns:
            ParticleArray or None: The re-weighted particles, None if the cycle was skipped.
        """
        return self.corrector.reweight(cloud, stamp)

    def on_pose(self, pose):
        """
        Updates the geofence state from the current pose estimate and renders the
        cost map around it.

        Returns:
            numpy.ndarray: BGR cost/direction image centered on the pose.
        """
        self._update_geofence(pose)
        return self.cost_map.render_around_pose(pose, self.render_image_size)

    # --- Outputs ---

    def diagnostics(self):
        """Returns the latest scored cloud, the resident tile rectangles and the corrector state."""
        return {
            'scored_cloud': self.corrector.last_scored_cloud,
            'tile_bounds': self.cost_map.current_tile_bounds(),
            'localization_enabled': self.corrector.enabled,
            'last_update_committed': self.corrector.last_update_committed,
        }

    def _update_geofence(self, pose):
        if self.init_area is None:
            return
        inside, is_init_area = self.init_area.is_inside((pose.x, pose.y, pose.z))
        if not inside or self.corrector.enabled == is_init_area:
            return
        self.corrector.enabled = is_init_area
        logger.info(f"Entered {'init' if is_init_area else 'deinit'} area, localization {'enabled' if is_init_area else 'disabled'}.")
