"""
Marker box rig support.

A box rig is three marker maps printed on three orthogonal faces. Each map
is defined in its own plane-local frame; unify() moves those points into one
shared box frame with small integer coordinates so that the same physical
corner seen from two cameras compares exactly equal.

Pure functions - no classes, no state.
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

import rigcal.logger
from ..types import (
    BoxGeometry,
    Plane,
    PlaneMarkerMap,
    PointCorrespondences,
    concat_correspondences,
)
from .markers import detect_markers, marker_correspondences

logger = rigcal.logger.get(__name__)

# (image, dictionary name) -> (ids (k,), corners (k, 4, 2))
MarkerDetector = Callable[[np.ndarray, str], tuple[np.ndarray, np.ndarray]]


# ============================================================================
# Plane Unifier
# ============================================================================


def unify(
    points: np.ndarray,
    plane: Plane | str,
    geometry: BoxGeometry = BoxGeometry(),
) -> np.ndarray:
    """
    Map plane-local marker points into the shared box frame.

        XY: ((x + off) / den, (y + off) / den, 0)
        YZ: (0, (y + off) / den, (-x + off) / den)
        XZ: ((x + off) / den, 0, (-y + off) / den)

    Args:
        points: (n, 3) points in the marker map's local frame (z ignored)
        plane: Plane, or its label
        geometry: Offset and denominator shared by all planes

    Returns:
        (n, 3) float32 points in the box frame

    Raises:
        InvalidConfiguration: if plane is not XY, YZ or XZ
    """
    plane = Plane.parse(plane)
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)

    off = geometry.offset
    den = geometry.denominator
    x = points[:, 0]
    y = points[:, 1]
    zero = np.zeros(len(points))

    if plane is Plane.XY:
        unified = np.column_stack([(x + off) / den, (y + off) / den, zero])
    elif plane is Plane.YZ:
        unified = np.column_stack([zero, (y + off) / den, (-x + off) / den])
    else:
        unified = np.column_stack([(x + off) / den, zero, (-y + off) / den])

    return unified.astype(np.float32)


# ============================================================================
# Box Correspondence Builder
# ============================================================================


def detect_plane_points(
    image: np.ndarray,
    plane_map: PlaneMarkerMap,
    detector: MarkerDetector = detect_markers,
    geometry: BoxGeometry = BoxGeometry(),
) -> PointCorrespondences:
    """
    Detect one marker map in an image and return its unified correspondences.

    A map with no detected markers yields an empty set.
    """
    ids, corners = detector(image, plane_map.marker_map.dictionary)
    local = marker_correspondences(plane_map.marker_map, ids, corners)

    if len(local) == 0:
        logger.debug(f"No {plane_map.plane.value} markers found")
        return local

    return PointCorrespondences(
        image_points=local.image_points,
        object_points=unify(local.object_points, plane_map.plane, geometry),
    )


def build_box_correspondences(
    image: np.ndarray,
    plane_maps: Sequence[PlaneMarkerMap],
    detector: MarkerDetector = detect_markers,
    geometry: BoxGeometry = BoxGeometry(),
) -> PointCorrespondences:
    """
    Collect unified correspondences from every marker map of a rig.

    Maps are processed in the given order and their points appended.
    If no map finds anything, the result is an empty set rather than an
    error, so the image keeps its slot in the collection.

    Args:
        image: Image to detect in
        plane_maps: Up to three marker maps with their planes
        detector: Marker detection function
        geometry: Box frame constants

    Returns:
        PointCorrespondences in the box frame
    """
    per_plane = [
        detect_plane_points(image, plane_map, detector, geometry)
        for plane_map in plane_maps
    ]
    return concat_correspondences(per_plane)
