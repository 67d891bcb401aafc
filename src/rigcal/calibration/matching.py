"""
Shared-point matching between two cameras' correspondence collections.

Stereo calibration needs the same object points in both views of each image
pair. Marker patterns rarely show every marker to both cameras, so each pair
is cut down to the points both cameras saw.

Pure functions - inputs are never modified.
"""

from __future__ import annotations

import numpy as np

from ..errors import InvalidConfiguration
from ..types import CorrespondenceCollection, PointCorrespondences


def match_shared_points(
    a: PointCorrespondences,
    b: PointCorrespondences,
) -> tuple[PointCorrespondences, PointCorrespondences]:
    """
    Keep only the object points present in both sets.

    Points are compared by exact equality. Output order follows a. Every
    point of b is matched at most once, so a physical point is never paired
    twice.

    Returns:
        (a_shared, b_shared) with equal lengths and identical object points
    """
    if len(a) == 0 or len(b) == 0:
        return PointCorrespondences.empty(), PointCorrespondences.empty()

    consumed = np.zeros(len(b), dtype=bool)
    index_a = []
    index_b = []

    for i, point in enumerate(a.object_points):
        candidates = np.flatnonzero(np.all(b.object_points == point, axis=1) & ~consumed)
        if candidates.size == 0:
            continue
        j = candidates[0]
        consumed[j] = True
        index_a.append(i)
        index_b.append(j)

    if not index_a:
        return PointCorrespondences.empty(), PointCorrespondences.empty()

    shared_obj = a.object_points[index_a]
    a_shared = PointCorrespondences(
        image_points=a.image_points[index_a],
        object_points=shared_obj,
    )
    b_shared = PointCorrespondences(
        image_points=b.image_points[index_b],
        object_points=shared_obj.copy(),
    )
    return a_shared, b_shared


def match_shared(
    a: CorrespondenceCollection,
    b: CorrespondenceCollection,
) -> tuple[CorrespondenceCollection, CorrespondenceCollection]:
    """
    Reduce two index-aligned collections to their shared points, per image.

    Args:
        a: Camera A collection, one set per image pair
        b: Camera B collection, same length and order as a

    Returns:
        New (a_shared, b_shared) collections, same length as the inputs

    Raises:
        InvalidConfiguration: if the collections differ in length
    """
    if len(a) != len(b):
        raise InvalidConfiguration(
            f"Stereo collections are misaligned: {len(a)} vs {len(b)} images"
        )

    a_shared = []
    b_shared = []
    for set_a, set_b in zip(a, b):
        shared_a, shared_b = match_shared_points(set_a, set_b)
        a_shared.append(shared_a)
        b_shared.append(shared_b)

    return a_shared, b_shared
