import logging
from multiprocessing.pool import ThreadPool
from typing import List, Optional, Tuple

import numpy as np
import pyarrow as pa

from arrow_pip.algorithms.point_in_polygon import point_in_polygon
from arrow_pip.config import MAX_FEATURES, EvaluatorConfig
from arrow_pip.data_structures.polygon_dataset import PolygonDataset
from arrow_pip.errors import IndexOutOfRangeError, PointArrayMismatchError

logger = logging.getLogger(__name__)

MASK_TYPE = pa.uint32()


class BatchContainmentEvaluator:
    """Multi-point / multi-polygon containment producing one bitmask per point.

    Every point is tested against every feature of the dataset with
    :func:`point_in_polygon`; bit ``j`` of a point's mask is set when the
    point lies inside feature ``j``. The dataset holds at most 32 features,
    so a mask always fits in a uint32.

    This is the sequential reference that accelerated implementations are
    checked against. Each point only reads its own coordinates and the
    shared read-only dataset, so the point range is cut into chunks that
    can run on a thread pool and write disjoint slices of the output
    without locking. The result does not depend on how the work is split.

    Attributes:
        dataset (PolygonDataset): Polygons every point is tested against.
        config (EvaluatorConfig): Chunking and worker settings.

    Example:
        >>> squares = [[[(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)]],
        ...            [[(2, 0), (3, 0), (3, 1), (2, 1), (2, 0)]]]
        >>> evaluator = BatchContainmentEvaluator(PolygonDataset.from_features(squares))
        >>> evaluator.evaluate([(0.5, 0.5), (2.5, 0.5), (9, 9)]).to_pylist()
        [1, 2, 0]
    """

    def __init__(self, dataset: PolygonDataset, config: Optional[EvaluatorConfig] = None):
        if not isinstance(dataset, PolygonDataset):
            raise TypeError(f"dataset must be a PolygonDataset, got {type(dataset).__name__}")
        self.dataset = dataset
        self.config = config or EvaluatorConfig()
        self._scalar = dataset.dtype.to_pandas_dtype()

    def evaluate(self, points) -> pa.UInt32Array:
        """Masks for a batch of (x, y) points, in input order

        Args:
        points: Sequence of (x, y) pairs, an (N, 2) array, or an Arrow
                struct array with ``x`` and ``y`` fields
        """
        xs, ys = _split_points(points)
        return self.evaluate_xy(xs, ys)

    def evaluate_xy(self, xs, ys) -> pa.UInt32Array:
        """Masks for points given as parallel x and y arrays of equal length"""
        xs, ys = self._point_columns(xs, ys)
        num_points = len(xs)
        masks = np.zeros(num_points, dtype=np.uint32)

        size = self.config.chunk_size
        chunks = [(start, min(start + size, num_points)) for start in range(0, num_points, size)]
        workers = min(self.config.workers, len(chunks)) or 1
        logger.debug(
            "Evaluating %d points against %d features in %d chunks on %d workers",
            num_points, self.dataset.num_features, len(chunks), workers,
        )

        def fill(bounds: Tuple[int, int]):
            start, stop = bounds
            masks[start:stop] = self._masks(xs, ys, start, stop)

        if workers == 1:
            for bounds in chunks:
                fill(bounds)
        else:
            with ThreadPool(workers) as pool:
                pool.map(fill, chunks)

        return pa.array(masks, type=MASK_TYPE)

    def evaluate_range(self, xs, ys, start: int, stop: int) -> pa.UInt32Array:
        """Masks for points ``start`` to ``stop`` (exclusive) of the x/y arrays

        Lets a caller split a large query into pieces it can schedule,
        cancel or resume on its own.
        """
        xs, ys = self._point_columns(xs, ys)
        if not 0 <= start <= stop <= len(xs):
            raise IndexOutOfRangeError(
                f"point range [{start}, {stop}) outside [0, {len(xs)})"
            )
        return pa.array(self._masks(xs, ys, start, stop), type=MASK_TYPE)

    def point_mask(self, x: float, y: float) -> int:
        """Mask of a single point"""
        mask = 0
        for j in range(self.dataset.num_features):
            if point_in_polygon(x, y, self.dataset, j):
                mask |= 1 << j
        return mask

    def _masks(self, xs: np.ndarray, ys: np.ndarray, start: int, stop: int) -> np.ndarray:
        out = np.zeros(stop - start, dtype=np.uint32)
        for i in range(start, stop):
            out[i - start] = self.point_mask(xs[i], ys[i])
        return out

    def _point_columns(self, xs, ys) -> Tuple[np.ndarray, np.ndarray]:
        xs = _point_column(xs, self._scalar, "xs")
        ys = _point_column(ys, self._scalar, "ys")
        if len(xs) != len(ys):
            raise PointArrayMismatchError(
                f"xs and ys must have equal length, got {len(xs)} and {len(ys)}"
            )
        return xs, ys


def evaluate(points, dataset: PolygonDataset, config: Optional[EvaluatorConfig] = None) -> pa.UInt32Array:
    """One uint32 mask per point; bit j set iff the point is inside feature j"""
    return BatchContainmentEvaluator(dataset, config).evaluate(points)


def evaluate_xy(xs, ys, dataset: PolygonDataset, config: Optional[EvaluatorConfig] = None) -> pa.UInt32Array:
    """Same as :func:`evaluate` for parallel x and y arrays"""
    return BatchContainmentEvaluator(dataset, config).evaluate_xy(xs, ys)


def features_in_mask(mask: int, num_features: int = MAX_FEATURES) -> List[int]:
    """Indices of the features whose bit is set in ``mask``"""
    if not 0 <= num_features <= MAX_FEATURES:
        raise ValueError(f"num_features must be in [0, {MAX_FEATURES}], got {num_features}")
    mask = int(mask)
    return [j for j in range(num_features) if mask >> j & 1]


def _split_points(points) -> Tuple[object, object]:
    """Separate point pairs into x and y columns"""
    if isinstance(points, pa.ChunkedArray):
        points = points.combine_chunks()
    if isinstance(points, pa.StructArray):
        names = {points.type.field(i).name for i in range(points.type.num_fields)}
        if not {"x", "y"} <= names:
            raise PointArrayMismatchError("struct points need 'x' and 'y' fields")
        # flatten() carries struct-level nulls into the children
        columns = points.flatten()
        return (
            columns[points.type.get_field_index("x")],
            columns[points.type.get_field_index("y")],
        )

    try:
        arr = np.asarray(points)
    except (TypeError, ValueError) as exc:
        raise PointArrayMismatchError(f"points must be (x, y) pairs: {exc}") from exc
    if arr.size == 0:
        return arr.reshape(0), arr.reshape(0)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise PointArrayMismatchError(f"points must be (x, y) pairs, got shape {arr.shape}")
    return arr[:, 0], arr[:, 1]


def _point_column(values, scalar, name: str) -> np.ndarray:
    """Coerce one coordinate column to a 1-d array in the dataset's precision"""
    if isinstance(values, pa.ChunkedArray):
        values = values.combine_chunks()
    if isinstance(values, pa.Array):
        # Arrow nulls come back as NaN, which never crosses an edge
        values = values.to_numpy(zero_copy_only=False)
    try:
        column = np.asarray(values, dtype=scalar)
    except (TypeError, ValueError) as exc:
        raise PointArrayMismatchError(f"{name} is not a numeric column: {exc}") from exc
    if column.ndim != 1:
        raise PointArrayMismatchError(f"{name} must be one-dimensional, got shape {column.shape}")
    return column
