import numpy as np

from arrow_pip.data_structures.polygon_dataset import PolygonDataset


def point_in_polygon(x: float, y: float, dataset: PolygonDataset, feature_index: int) -> bool:
    """Crossing-number (even-odd) test of one point against one feature.

    A ray is cast from the point towards +x and every edge of every ring of
    the feature that it crosses flips a parity flag. The flag is shared by
    all rings, so a point inside the outer ring and inside a hole flips twice
    and ends up outside without any notion of ring orientation.

    An edge counts as crossed when the point's y lies in the half-open span
    ``[min(y0, y1), max(y0, y1))``. A ray through a vertex shared by two
    edges is therefore counted by exactly one of them, horizontal edges are
    never counted, and points on the boundary resolve deterministically:
    left and bottom edges are inside, right and top edges are outside.

    Arithmetic runs in the dataset's precision, so a float32 dataset rounds
    the way a float32 kernel does. NaN coordinates fail every comparison and
    produce no crossings.

    Args:
        x: Point x coordinate.
        y: Point y coordinate.
        dataset: Polygons to test against.
        feature_index: Feature to test, ``0 <= feature_index < num_features``.

    Returns:
        True if the point is inside the feature, False otherwise.

    Raises:
        IndexOutOfRangeError: If ``feature_index`` is not a valid feature.
    """
    rings = dataset.feature_rings(feature_index)
    scalar = dataset.dtype.to_pandas_dtype()
    x, y = scalar(x), scalar(y)

    in_polygon = False
    for ring_index in rings:
        if _crossings(x, y, dataset, ring_index) % 2:
            in_polygon = not in_polygon
    return in_polygon


def ring_crossings(x: float, y: float, dataset: PolygonDataset, ring_index: int) -> int:
    """Number of edges of one ring crossed by the +x ray from (x, y)"""
    scalar = dataset.dtype.to_pandas_dtype()
    return _crossings(scalar(x), scalar(y), dataset, ring_index)


def _crossings(x: np.floating, y: np.floating, dataset: PolygonDataset, ring_index: int) -> int:
    xs, ys = dataset.coordinates()
    vertices = dataset.ring_vertices(ring_index)

    count = 0
    # Edges join consecutive vertices; the last vertex does not wrap to the first
    for m in range(vertices.start, vertices.stop - 1):
        x0, y0 = xs[m], ys[m]
        x1, y1 = xs[m + 1], ys[m + 1]
        if ((y0 <= y < y1) or (y1 <= y < y0)) and x < (x1 - x0) * (y - y0) / (y1 - y0) + x0:
            count += 1
    return count
