# vml_localizer/maps/cost_map/tile_coordinate.py

import logging
import math
import numpy as np

from vml_localizer.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

class TileConfig:
    """
    Shared tile geometry: world edge length of a tile and its raster size in pixels.

    Passed explicitly to the cost map and to TileCoordinate; there is no
    process-wide default.
    """
    def __init__(self, unit_length, image_size):
        """
        Initializes the TileConfig.

        Args:
            unit_length (float): Tile edge length in world units. Must be positive.
            image_size (int): Raster width and height in pixels. Must be positive.

        Raises:
            ConfigurationError: If either value is missing or not positive.
        """
        if unit_length is None or not unit_length > 0:
            raise ConfigurationError(f"tile unit_length must be positive, got {unit_length}")
        if image_size is None or int(image_size) <= 0:
            raise ConfigurationError(f"tile image_size must be positive, got {image_size}")
        self._unit_length = float(unit_length)
        self._image_size = int(image_size)

    @classmethod
    def from_config(cls, config):
        """
        Builds a TileConfig from the 'cost_map' configuration section.

        Args:
            config (dict): Section with 'unit_length' and 'image_size'.

        Raises:
            ConfigurationError: If the geometry is absent or invalid.
        """
        if config is None:
            raise ConfigurationError("cost_map configuration is missing")
        return cls(config.get('unit_length', 40.0), config.get('image_size', 800))

    @property
    def unit_length(self):
        return self._unit_length

    @property
    def image_size(self):
        return self._image_size

    @property
    def pixels_per_unit(self):
        return self._image_size / self._unit_length

    def __eq__(self, other):
        if not isinstance(other, TileConfig):
            return NotImplemented
        return self._unit_length == other._unit_length and self._image_size == other._image_size

    def __hash__(self):
        return hash((self._unit_length, self._image_size))

    def __repr__(self):
        return f"TileConfig(unit_length={self._unit_length}, image_size={self._image_size})"


class TileCoordinate:
    """
    Integer grid cell (x, y) of a square tile of edge `unit_length`.

    Equality and hashing use only the integer components, so a coordinate
    is usable as a cache key.
    """
    __slots__ = ('x', 'y', '_unit_length')

    def __init__(self, x, y, unit_length):
        if unit_length is None or not unit_length > 0:
            raise ConfigurationError(f"TileCoordinate unit_length is not initialized: {unit_length}")
        self.x = int(x)
        self.y = int(y)
        self._unit_length = float(unit_length)

    @classmethod
    def from_position(cls, position, tile_config):
        """
        Computes the tile containing a world position by floor division.

        Args:
            position (array-like): World position [x, y(, z)].
            tile_config (TileConfig): Shared tile geometry.

        Returns:
            TileCoordinate: The owning tile.

        Raises:
            ConfigurationError: If no tile configuration is given.
        """
        if tile_config is None:
            raise ConfigurationError("TileCoordinate requires a TileConfig")
        unit = tile_config.unit_length
        return cls(math.floor(position[0] / unit), math.floor(position[1] / unit), unit)

    @property
    def unit_length(self):
        return self._unit_length

    def min_corner(self):
        return np.array([self.x * self._unit_length, self.y * self._unit_length])

    def to_world_bounds(self):
        """
        Returns the axis-aligned world rectangle covered by this tile.

        Returns:
            tuple: (min_corner, max_corner) numpy arrays, max = min + (unit_length, unit_length).
        """
        lo = self.min_corner()
        return lo, lo + self._unit_length

    def __eq__(self, other):
        if not isinstance(other, TileCoordinate):
            return NotImplemented
        return self.x == other.x and self.y == other.y

    def __hash__(self):
        return hash((self.x, self.y))

    def __repr__(self):
        return f"TileCoordinate(x={self.x}, y={self.y})"
