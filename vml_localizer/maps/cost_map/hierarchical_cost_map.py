# vml_localizer/maps/cost_map/hierarchical_cost_map.py

import logging
import threading
import cv2
import numpy as np

from vml_localizer.maps.cost_map.cost_tile_generator import CostTileGenerator
from vml_localizer.maps.cost_map.tile_coordinate import TileCoordinate
from vml_localizer.maps.labeled_polygons import polygons_from_labeled_points

logger = logging.getLogger(__name__)

class HierarchicalCostMap:
    """
    Lazily generated, evicting cache of cost/direction tiles built from the
    vector-map road markings.

    Tiles are generated on the first query that lands in them. Every query
    marks its tile as accessed; `erase_obsolete()` (once per correction
    cycle) drops tiles that were not accessed since the previous call, then
    drops the oldest survivors until at most `max_tile_count` remain.

    Queries may run from several threads. Generation on a miss is done under
    a lock with a second lookup, so each tile is built once. `erase_obsolete`
    and `set_source_cloud` must not run concurrently with queries.
    """
    def __init__(self, tile_config, config=None):
        """
        Initializes the HierarchicalCostMap.

        Args:
            tile_config (TileConfig): Shared tile geometry.
            config (dict, optional): 'cost_map' section. Keys used here: 'max_tile_count';
                                     generator keys are forwarded to CostTileGenerator.
        """
        config = config or {}
        self.tile_config = tile_config
        self.max_tile_count = int(config.get('max_tile_count', 10))
        if self.max_tile_count <= 0:
            raise ValueError(f"max_tile_count must be positive, got {self.max_tile_count}")
        self.generator = CostTileGenerator(tile_config, config)

        self._cost_maps = {} # TileCoordinate -> CostTile
        self._map_accessed = {} # TileCoordinate -> bool
        self._generated_map_history = [] # insertion order, oldest first
        self._cloud = None
        self._height = None
        self._polygons = []
        self._lock = threading.RLock()
        self.generated_tile_count = 0 # total generations, for diagnostics

        logger.info(f"HierarchicalCostMap initialized: {tile_config}, max_tile_count={self.max_tile_count}")

    # --- Generation source and constraints ---

    def set_source_cloud(self, cloud):
        """
        Replaces the static map segments and evicts every resident tile.

        Args:
            cloud (LineSegmentCloud): Road-marking segments in world frame.
        """
        with self._lock:
            self._cloud = cloud
            evicted = len(self._cost_maps)
            self._cost_maps.clear()
            self._map_accessed.clear()
            self._generated_map_history.clear()
        logger.info(f"Set source cloud with {len(cloud) if cloud is not None else 0} segments, evicted {evicted} tiles.")

    def set_restriction_polygons(self, polygons):
        """
        Sets the polygons outside of which generated tiles have zero cost.
        Already resident tiles are not regenerated.

        Args:
            polygons (list): shapely Polygons. An empty list makes the whole plane eligible.
        """
        with self._lock:
            self._polygons = list(polygons or [])
        logger.info(f"Set {len(self._polygons)} restriction polygons.")

    def set_restriction_points(self, labeled_points):
        """Sets restriction polygons from a label-grouped point list ([x, y, z, label] rows)."""
        self.set_restriction_polygons([polygon for _, polygon in polygons_from_labeled_points(labeled_points)])

    def set_height(self, height):
        """
        Sets the elevation constraint for newly generated tiles. None removes it.
        Already resident tiles are not regenerated.
        """
        with self._lock:
            self._height = None if height is None else float(height)
        logger.debug(f"Cost map height constraint set to {self._height}")

    @property
    def height(self):
        return self._height

    # --- Queries ---

    def query_cost_and_direction(self, position):
        """
        Returns the (cost, direction) bytes of the cell containing a world position,
        generating its tile on a miss and marking the tile accessed.

        Args:
            position (array-like): World position [x, y(, z)].

        Returns:
            tuple: (cost, direction) ints; direction is in degrees [0, 180).
        """
        coordinate = TileCoordinate.from_position(position, self.tile_config)
        tile = self._tile_at(coordinate)
        self._map_accessed[coordinate] = True
        rows, cols = tile.pixel_of(position)
        return int(tile.cost[rows[0], cols[0]]), int(tile.direction[rows[0], cols[0]])

    def query_many(self, positions):
        """
        Vectorized `query_cost_and_direction` over an (N, 2+) array of finite world positions.

        Returns:
            tuple: (costs, directions) uint8 arrays of length N.
        """
        pts = np.asarray(positions, dtype=np.float64).reshape(-1, np.shape(positions)[-1])
        costs = np.zeros(len(pts), dtype=np.uint8)
        directions = np.zeros(len(pts), dtype=np.uint8)
        if len(pts) == 0:
            return costs, directions

        keys = np.floor(pts[:, :2] / self.tile_config.unit_length).astype(np.int64)
        unique_keys, inverse = np.unique(keys, axis=0, return_inverse=True)
        inverse = np.asarray(inverse).ravel()
        for index, (tx, ty) in enumerate(unique_keys):
            coordinate = TileCoordinate(tx, ty, self.tile_config.unit_length)
            tile = self._tile_at(coordinate)
            self._map_accessed[coordinate] = True
            members = inverse == index
            rows, cols = tile.pixel_of(pts[members])
            costs[members] = tile.cost[rows, cols]
            directions[members] = tile.direction[rows, cols]
        return costs, directions

    def query_color_sample(self, position):
        """
        Returns a diagnostic BGR color for a world position: direction drives hue,
        cost drives value (brightness).

        Returns:
            numpy.ndarray: uint8 [b, g, r].
        """
        cost, direction = self.query_cost_and_direction(position)
        hsv = np.array([[[direction, 255, cost]]], dtype=np.uint8)
        return cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR)[0, 0]

    def render_around_pose(self, pose, image_size=None):
        """
        Renders a square cost/direction image centered on a pose, covering one tile edge
        of world extent, north (world +y) up.

        Args:
            pose: Any object with `x` and `y` attributes (e.g. Pose).
            image_size (int, optional): Output size in pixels. Defaults to the tile raster size.

        Returns:
            numpy.ndarray: (image_size, image_size, 3) uint8 BGR image.
        """
        size = int(image_size or self.tile_config.image_size)
        step = self.tile_config.unit_length / size
        offsets = (np.arange(size, dtype=np.float64) + 0.5 - size / 2.0) * step
        xs, ys = np.meshgrid(pose.x + offsets, pose.y - offsets)
        costs, directions = self.query_many(np.stack([xs.ravel(), ys.ravel()], axis=1))

        hsv = np.empty((size, size, 3), dtype=np.uint8)
        hsv[:, :, 0] = directions.reshape(size, size)
        hsv[:, :, 1] = 255
        hsv[:, :, 2] = costs.reshape(size, size)
        return cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR)

    def current_tile_bounds(self):
        """
        Returns the world rectangles of all resident tiles, oldest first.

        Returns:
            list: (min_corner, max_corner) numpy array pairs.
        """
        with self._lock:
            return [coordinate.to_world_bounds() for coordinate in self._generated_map_history]

    def resident_tiles(self):
        """Returns the resident tile coordinates, oldest first."""
        with self._lock:
            return list(self._generated_map_history)

    def was_accessed(self, coordinate):
        return self._map_accessed.get(coordinate, False)

    def __len__(self):
        return len(self._cost_maps)

    # --- Eviction ---

    def erase_obsolete(self):
        """
        Evicts tiles not accessed since the previous call, then the oldest survivors
        beyond `max_tile_count`, and resets the accessed flag of every remaining tile.
        """
        with self._lock:
            survivors = []
            for coordinate in self._generated_map_history:
                if self._map_accessed.get(coordinate, False):
                    survivors.append(coordinate)
                else:
                    self._evict(coordinate)
            unused = len(self._generated_map_history) - len(survivors)

            over = len(survivors) - self.max_tile_count
            if over > 0:
                logger.warning(f"{len(survivors)} tiles accessed in one cycle exceed max_tile_count={self.max_tile_count}; evicting {over} oldest.")
                for coordinate in survivors[:over]:
                    self._evict(coordinate)
                survivors = survivors[over:]

            self._generated_map_history = survivors
            for coordinate in survivors:
                self._map_accessed[coordinate] = False

        if unused:
            logger.debug(f"Evicted {unused} unused tiles, {len(survivors)} resident.")

    # --- Internals ---

    def _tile_at(self, coordinate):
        tile = self._cost_maps.get(coordinate)
        if tile is not None:
            return tile
        with self._lock:
            tile = self._cost_maps.get(coordinate)
            if tile is None:
                tile = self.generator.generate(coordinate, self._cloud, self._height, self._polygons)
                self._cost_maps[coordinate] = tile
                self._map_accessed[coordinate] = False
                self._generated_map_history.append(coordinate)
                self.generated_tile_count += 1
        return tile

    def _evict(self, coordinate):
        self._cost_maps.pop(coordinate, None)
        self._map_accessed.pop(coordinate, None)
