# vml_localizer/maps/labeled_polygons.py

import logging
import numpy as np
from shapely.geometry import Polygon

logger = logging.getLogger(__name__)

def polygons_from_labeled_points(points):
    """
    Groups a labeled point list into polygons.

    Consecutive points sharing a label form the outer ring of one polygon;
    a change of label starts the next polygon. Rings with fewer than three
    points or with zero area are dropped.

    Args:
        points (array-like): (N, 4) rows of [x, y, z, label] or (N, 3) rows of [x, y, label].

    Returns:
        list: (label, shapely.geometry.Polygon) pairs in input order.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.size == 0:
        return []
    if pts.ndim != 2 or pts.shape[1] not in (3, 4):
        raise ValueError(f"labeled points must be (N, 3) or (N, 4), got shape {pts.shape}")

    labels = pts[:, -1].astype(np.int64)
    polygons = []
    ring = []
    last_label = None
    for row, label in zip(pts, labels):
        if last_label is not None and label != last_label:
            _append_polygon(polygons, last_label, ring)
            ring = []
        ring.append((row[0], row[1]))
        last_label = label
    _append_polygon(polygons, last_label, ring)

    logger.debug(f"Built {len(polygons)} polygons from {len(pts)} labeled points.")
    return polygons

def _append_polygon(polygons, label, ring):
    if len(ring) < 3:
        logger.warning(f"Dropping polygon with label {label}: only {len(ring)} points.")
        return
    polygon = Polygon(ring)
    if polygon.area <= 0.0:
        logger.warning(f"Dropping polygon with label {label}: zero area.")
        return
    if not polygon.is_valid:
        # self-intersecting rings are repaired rather than dropped
        polygon = polygon.buffer(0)
    polygons.append((int(label), polygon))
