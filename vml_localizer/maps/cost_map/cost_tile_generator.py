# vml_localizer/maps/cost_map/cost_tile_generator.py

import logging
import math
import cv2
import numpy as np
from shapely.geometry import box
from shapely.ops import unary_union

from vml_localizer.maps.cost_map.gamma_converter import GammaConverter
from vml_localizer.perception.line_segments import LineSegmentCloud
from vml_localizer.utils.geometry_utils import segment_heading_deg

logger = logging.getLogger(__name__)

class CostTile:
    """
    Cost and direction rasters of one tile.

    `cost[row, col]` is 0..255 (higher = closer to a road marking) and
    `direction[row, col]` is the unsigned heading of the nearest marking in
    whole degrees, 0..179. Row index grows with world y, column with world x.
    Both arrays are read-only.
    """
    def __init__(self, coordinate, cost, direction):
        cost = np.ascontiguousarray(cost, dtype=np.uint8)
        direction = np.ascontiguousarray(direction, dtype=np.uint8)
        if cost.shape != direction.shape or cost.ndim != 2 or cost.shape[0] != cost.shape[1]:
            raise ValueError(f"cost and direction must be equal square rasters, got {cost.shape} and {direction.shape}")
        cost.setflags(write=False)
        direction.setflags(write=False)
        self.coordinate = coordinate
        self.cost = cost
        self.direction = direction

    @property
    def image_size(self):
        return self.cost.shape[0]

    def pixel_of(self, positions):
        """
        Returns (rows, cols) of the cells containing world position(s), clamped to the raster.
        """
        pts = np.asarray(positions, dtype=np.float64).reshape(-1, np.shape(positions)[-1])
        lo = self.coordinate.min_corner()
        scale = self.image_size / self.coordinate.unit_length
        px = np.floor((pts[:, :2] - lo) * scale)
        px = np.clip(px, 0, self.image_size - 1).astype(np.int64)
        return px[:, 1], px[:, 0]

    def __repr__(self):
        return f"CostTile({self.coordinate}, size={self.image_size})"


class CostTileGenerator:
    """
    Rasterizes map line segments into the cost/direction rasters of one tile.

    Each pixel takes the distance to its nearest source segment (in pixel
    units, truncated at `falloff_pixels`), maps it linearly to 255..0 and
    passes the result through a gamma lookup table. The direction of the
    nearest segment is written alongside. Ties in distance keep the smaller
    direction, so the output does not depend on segment order.
    """
    def __init__(self, tile_config, config=None):
        """
        Initializes the CostTileGenerator.

        Args:
            tile_config (TileConfig): Shared tile geometry.
            config (dict, optional): 'cost_map' section. Keys used: 'gamma',
                                     'falloff_pixels', 'height_tolerance'.
        """
        config = config or {}
        self.tile_config = tile_config
        self.falloff_pixels = float(config.get('falloff_pixels', 100.0))
        self.height_tolerance = float(config.get('height_tolerance', 4.0))
        self.gamma_converter = GammaConverter(config.get('gamma', 4.0))
        if self.falloff_pixels <= 0:
            raise ValueError(f"falloff_pixels must be positive, got {self.falloff_pixels}")
        logger.info(f"CostTileGenerator initialized: {tile_config}, falloff={self.falloff_pixels}px, gamma={self.gamma_converter.gamma}")

    def generate(self, coordinate, source_cloud, height=None, polygons=None):
        """
        Builds the CostTile of one tile coordinate.

        Args:
            coordinate (TileCoordinate): Tile to build.
            source_cloud (LineSegmentCloud or None): Static map segments in world frame.
            height (float, optional): Elevation constraint; segments with an endpoint farther
                                      than `height_tolerance` from it on z are ignored.
            polygons (list, optional): shapely Polygons; cost is zeroed outside their union.

        Returns:
            CostTile: The generated tile. Empty source gives an all-zero tile.
        """
        size = self.tile_config.image_size
        distance = np.full((size, size), np.inf)
        direction = np.zeros((size, size), dtype=np.uint8)

        segments = self._relevant_segments(coordinate, source_cloud, height)
        if segments is not None:
            lo = coordinate.min_corner()
            scale = self.tile_config.pixels_per_unit
            starts_px = np.floor((segments.starts[:, :2] - lo) * scale)
            ends_px = np.floor((segments.ends[:, :2] - lo) * scale)
            for (start, end), a, b in zip(segments, starts_px, ends_px):
                degree = int(round(segment_heading_deg(start, end))) % 180
                self._rasterize_segment(distance, direction, a, b, degree)

        cost = np.zeros((size, size), dtype=np.uint8)
        near = distance < self.falloff_pixels
        cost[near] = np.rint(255.0 - 255.0 * distance[near] / self.falloff_pixels).astype(np.uint8)
        direction[~near] = 0
        cost = self.gamma_converter(cost)

        if polygons:
            cost = cv2.bitwise_and(cost, self.available_area_mask(coordinate, polygons))

        logger.debug(f"Generated {coordinate} from {0 if segments is None else len(segments)} segments.")
        return CostTile(coordinate, cost, direction)

    def _relevant_segments(self, coordinate, source_cloud, height):
        if source_cloud is None or len(source_cloud) == 0:
            return None
        segments = source_cloud
        if height is not None:
            segments = segments.within_height(height, self.height_tolerance)
            if len(segments) == 0:
                return None
        lo, hi = coordinate.to_world_bounds()
        margin = self.falloff_pixels / self.tile_config.pixels_per_unit
        mins, maxs = segments.bounding_boxes()
        hit = np.all(maxs >= lo - margin, axis=1) & np.all(mins <= hi + margin, axis=1)
        if not np.any(hit):
            return None
        return LineSegmentCloud(segments.starts[hit], segments.ends[hit])

    def _rasterize_segment(self, distance, direction, a, b, degree):
        size = distance.shape[0]
        reach = self.falloff_pixels
        c0 = max(0, int(math.floor(min(a[0], b[0]) - reach)))
        c1 = min(size, int(math.ceil(max(a[0], b[0]) + reach)) + 1)
        r0 = max(0, int(math.floor(min(a[1], b[1]) - reach)))
        r1 = min(size, int(math.ceil(max(a[1], b[1]) + reach)) + 1)
        if c0 >= c1 or r0 >= r1:
            return

        cols, rows = np.meshgrid(np.arange(c0, c1, dtype=np.float64), np.arange(r0, r1, dtype=np.float64))
        d = _point_segment_distance(cols, rows, a, b)

        window = distance[r0:r1, c0:c1]
        dir_window = direction[r0:r1, c0:c1]
        better = (d < window) | ((d == window) & (degree < dir_window))
        window[better] = d[better]
        dir_window[better] = degree

    def available_area_mask(self, coordinate, polygons):
        """
        Rasterizes the union of restriction polygons over one tile.

        Returns:
            numpy.ndarray: uint8 mask, 255 inside any polygon and 0 elsewhere.
        """
        size = self.tile_config.image_size
        mask = np.zeros((size, size), dtype=np.uint8)
        lo, hi = coordinate.to_world_bounds()
        # polygon edges clipped to the padded box fall outside the raster
        pad = 2.0 / self.tile_config.pixels_per_unit
        tile_box = box(lo[0] - pad, lo[1] - pad, hi[0] + pad, hi[1] + pad)
        scale = self.tile_config.pixels_per_unit

        def to_pixels(coords):
            xy = np.asarray(coords, dtype=np.float64)[:, :2]
            return np.floor((xy - lo) * scale).astype(np.int32).reshape(-1, 1, 2)

        touching = [polygon for polygon in polygons if polygon.intersects(tile_box)]
        if not touching:
            return mask
        area = unary_union(touching).intersection(tile_box)
        for part in getattr(area, 'geoms', [area]):
            if part.geom_type != 'Polygon' or part.is_empty:
                continue
            cv2.fillPoly(mask, [to_pixels(part.exterior.coords)], 255)
            holes = [to_pixels(ring.coords) for ring in part.interiors]
            if holes:
                cv2.fillPoly(mask, holes, 0)
        return mask


def _point_segment_distance(px, py, a, b):
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0.0:
        return np.hypot(px - a[0], py - a[1])
    t = np.clip(((px - a[0]) * dx + (py - a[1]) * dy) / length_sq, 0.0, 1.0)
    return np.hypot(px - (a[0] + t * dx), py - (a[1] + t * dy))
