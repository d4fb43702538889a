# vml_localizer/localization/geofence/init_area.py

import logging
from shapely.geometry import Point

from vml_localizer.maps.labeled_polygons import polygons_from_labeled_points

logger = logging.getLogger(__name__)

DEINIT_LABEL_THRESHOLD = 512

class InitArea:
    """
    Geofence of areas where localization is switched on (init areas) or off
    (deinit areas). Polygons come from a label-grouped point list; labels
    below 512 are init areas, the rest deinit areas.
    """
    def __init__(self, labeled_points):
        """
        Initializes the InitArea.

        Args:
            labeled_points (array-like): (N, 4) rows of [x, y, z, label].
        """
        self.init_areas = []
        self.deinit_areas = []
        for label, polygon in polygons_from_labeled_points(labeled_points):
            if label < DEINIT_LABEL_THRESHOLD:
                self.init_areas.append(polygon)
            else:
                self.deinit_areas.append(polygon)
        logger.info(f"InitArea initialized with {len(self.init_areas)} init and {len(self.deinit_areas)} deinit areas.")

    def is_inside(self, xyz):
        """
        Checks a position against the areas. Init areas are checked first.

        Args:
            xyz (array-like): Position [x, y(, z)]; only x, y are used.

        Returns:
            tuple: (inside, is_init_area). (False, False) when outside every area.
        """
        if not self.init_areas and not self.deinit_areas:
            return False, False

        query = Point(float(xyz[0]), float(xyz[1]))
        for polygon in self.init_areas:
            if query.within(polygon):
                return True, True
        for polygon in self.deinit_areas:
            if query.within(polygon):
                return True, False
        return False, False
