import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import pyarrow as pa
import pyarrow.compute as pc

from arrow_pip.config import MAX_FEATURES
from arrow_pip.errors import IndexOutOfRangeError, InvalidDatasetError

logger = logging.getLogger(__name__)

COORDINATE_TYPES = (pa.float32(), pa.float64())
OFFSET_TYPE = pa.uint32()


@dataclass(frozen=True, eq=False)
class PolygonDataset:
    """Immutable columnar collection of polygons (features) and their rings.

    Vertices of every ring of every feature are stored back to back in two
    coordinate columns. Two offset columns slice them up again: ``ring_end``
    holds the exclusive end vertex of each ring and ``feature_end`` the
    exclusive end ring of each feature. This is the same flattened layout an
    accelerated kernel reads, so both sides can share one dataset.

    Rings are not closed implicitly. An edge exists between each pair of
    consecutive vertices of a ring; the closing edge only exists when the
    data repeats the first vertex at the end. Rings after the first in a
    feature act as holes under the even-odd rule.

    The dataset is validated once at construction and never changes
    afterwards, so it can be shared between any number of readers.

    Attributes:
        x (pyarrow.Array): Vertex x coordinates, float32 or float64.
        y (pyarrow.Array): Vertex y coordinates, same type as ``x``.
        ring_end (pyarrow.UInt32Array): Exclusive end vertex per ring.
        feature_end (pyarrow.UInt32Array): Exclusive end ring per feature.
        dtype (pyarrow.DataType): Coordinate type. Casts the coordinates when
                                  given, otherwise inferred from ``x``.

    Example:
        >>> square = [(0, 0), (4, 0), (4, 4), (0, 4), (0, 0)]
        >>> dataset = PolygonDataset.from_features([[square]])
        >>> dataset.num_features, dataset.num_rings, dataset.num_vertices
        (1, 1, 5)
        >>> dataset.ring_vertices(0)
        range(0, 5)
    """

    x: pa.Array = field(repr=False)
    y: pa.Array = field(repr=False)
    ring_end: pa.Array = field(repr=False)
    feature_end: pa.Array = field(repr=False)
    dtype: Optional[pa.DataType] = None

    def __post_init__(self):
        """Normalise the columns to Arrow arrays and check every invariant."""
        x = _coordinate_array(self.x, self.dtype, "x")
        y = _coordinate_array(self.y, self.dtype if self.dtype is not None else x.type, "y")
        if x.type != y.type:
            _reject(f"x and y must share one coordinate type, got {x.type} and {y.type}")
        if len(x) != len(y):
            _reject(f"x and y must have equal length, got {len(x)} and {len(y)}")

        ring_end = _offset_array(self.ring_end, "ring_end")
        feature_end = _offset_array(self.feature_end, "feature_end")

        # A ring needs two vertices to form an edge, a feature one ring
        _check_offsets(ring_end, 2, len(x), "ring_end", "vertices")
        _check_offsets(feature_end, 1, len(ring_end), "feature_end", "rings")
        if len(feature_end) > MAX_FEATURES:
            _reject(
                f"a dataset holds at most {MAX_FEATURES} features, got {len(feature_end)}"
            )

        # frozen dataclass, so bypass __setattr__ for the normalised columns
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "ring_end", ring_end.cast(OFFSET_TYPE))
        object.__setattr__(self, "feature_end", feature_end.cast(OFFSET_TYPE))
        object.__setattr__(self, "dtype", x.type)

        # Zero-copy views the predicate reads from
        object.__setattr__(self, "_xs", _readonly_view(self.x))
        object.__setattr__(self, "_ys", _readonly_view(self.y))
        object.__setattr__(self, "_ring_ends", _readonly_view(self.ring_end))
        object.__setattr__(self, "_feature_ends", _readonly_view(self.feature_end))

        logger.debug(
            "Built polygon dataset: %d features, %d rings, %d vertices (%s)",
            self.num_features, self.num_rings, self.num_vertices, self.dtype,
        )

    @classmethod
    def from_features(
        cls,
        features: Sequence[Sequence[Sequence[Sequence[float]]]],
        dtype: pa.DataType = pa.float64(),
    ) -> "PolygonDataset":
        """Flatten nested ``feature -> ring -> (x, y)`` sequences.

        The nesting matches GeoJSON Polygon coordinates: the first ring of a
        feature is its outer boundary, the remaining rings are holes. Rings
        are copied verbatim, so repeat the first vertex to close a ring.
        """
        xs, ys, ring_end, feature_end = [], [], [], []
        for rings in features:
            for ring in rings:
                for vertex in ring:
                    if len(vertex) != 2:
                        _reject(f"vertices must be (x, y) pairs, got {vertex!r}")
                    xs.append(vertex[0])
                    ys.append(vertex[1])
                ring_end.append(len(xs))
            feature_end.append(len(ring_end))
        return cls(xs, ys, ring_end, feature_end, dtype=dtype)

    @classmethod
    def from_record_batch(cls, batch: pa.RecordBatch) -> "PolygonDataset":
        """Rebuild a dataset from one row per vertex.

        The batch needs ``x``, ``y``, ``ring`` and ``feature`` columns. Ring
        ids must count up from 0 in vertex order and every vertex of a ring
        must carry the same feature id; feature ids count up from 0 in ring
        order. This is the inverse of :meth:`to_record_batch`.
        """
        missing = {"x", "y", "ring", "feature"} - set(batch.schema.names)
        if missing:
            _reject(f"record batch is missing columns {sorted(missing)}")

        ring_ids = batch.column("ring")
        feature_ids = batch.column("feature")
        if len(batch) == 0:
            return cls(batch.column("x"), batch.column("y"), [], [])

        ring_runs = pc.run_end_encode(ring_ids, run_end_type=pa.int64())
        if ring_runs.values.to_pylist() != list(range(len(ring_runs.values))):
            _reject("ring ids must count up from 0 in vertex order")
        ring_end = ring_runs.run_ends

        ring_start = pa.concat_arrays([pa.array([0], pa.int64()), ring_end[:-1]])
        ring_feature = pc.take(feature_ids, ring_start)
        per_vertex = pc.take(ring_feature, ring_ids)
        if not pc.all(pc.equal(per_vertex, feature_ids)).as_py():
            _reject("all vertices of a ring must belong to the same feature")

        feature_runs = pc.run_end_encode(ring_feature, run_end_type=pa.int64())
        if feature_runs.values.to_pylist() != list(range(len(feature_runs.values))):
            _reject("feature ids must count up from 0 in ring order")

        return cls(batch.column("x"), batch.column("y"), ring_end, feature_runs.run_ends)

    def to_record_batch(self) -> pa.RecordBatch:
        """One row per vertex with its coordinates, ring id and feature id."""
        ring_sizes = np.diff(self._ring_ends, prepend=0)
        feature_sizes = np.diff(self._feature_ends, prepend=0)
        ring_ids = np.repeat(np.arange(self.num_rings, dtype=np.uint32), ring_sizes)
        ring_feature = np.repeat(np.arange(self.num_features, dtype=np.uint32), feature_sizes)
        return pa.RecordBatch.from_arrays(
            [self.x, self.y, pa.array(ring_ids, OFFSET_TYPE), pa.array(ring_feature[ring_ids], OFFSET_TYPE)],
            names=["x", "y", "ring", "feature"],
        )

    @property
    def num_features(self) -> int:
        return len(self.feature_end)

    @property
    def num_rings(self) -> int:
        return len(self.ring_end)

    @property
    def num_vertices(self) -> int:
        return len(self.x)

    def __len__(self) -> int:
        return self.num_features

    def __repr__(self) -> str:
        return (
            f"PolygonDataset(features={self.num_features}, rings={self.num_rings}, "
            f"vertices={self.num_vertices}, dtype={self.dtype})"
        )

    def feature_rings(self, feature_index: int) -> range:
        """Indices of the rings that make up a feature."""
        _check_index(feature_index, self.num_features, "feature")
        start = 0 if feature_index == 0 else int(self._feature_ends[feature_index - 1])
        return range(start, int(self._feature_ends[feature_index]))

    def ring_vertices(self, ring_index: int) -> range:
        """Indices of the vertices of a ring, in traversal order."""
        _check_index(ring_index, self.num_rings, "ring")
        start = 0 if ring_index == 0 else int(self._ring_ends[ring_index - 1])
        return range(start, int(self._ring_ends[ring_index]))

    def coordinates(self):
        """Read-only numpy views of the x and y columns."""
        return self._xs, self._ys


def _reject(reason: str):
    logger.warning("Rejected polygon dataset: %s", reason)
    raise InvalidDatasetError(reason)


def _check_index(index, count: int, kind: str):
    if isinstance(index, (bool, np.bool_)) or not isinstance(index, (int, np.integer)):
        raise IndexOutOfRangeError(f"{kind} index must be an integer, got {index!r}")
    if not 0 <= index < count:
        raise IndexOutOfRangeError(f"{kind} index {index} out of range [0, {count})")


def _coordinate_array(values, dtype: Optional[pa.DataType], name: str) -> pa.Array:
    """Coerce a coordinate column to a null-free float32/float64 Arrow array"""
    if isinstance(values, pa.ChunkedArray):
        values = values.combine_chunks()
    try:
        arr = values if isinstance(values, pa.Array) else pa.array(values)
        if dtype is not None:
            arr = arr.cast(dtype, safe=False)
        elif pa.types.is_integer(arr.type) or pa.types.is_null(arr.type):
            arr = arr.cast(pa.float64())
    except (TypeError, ValueError, pa.ArrowException) as exc:
        _reject(f"{name} is not a numeric column: {exc}")

    if arr.type not in COORDINATE_TYPES:
        _reject(f"{name} must be float32 or float64, got {arr.type}")
    if arr.null_count:
        _reject(f"{name} contains {arr.null_count} null coordinates")
    return arr


def _offset_array(values, name: str) -> pa.Array:
    """Coerce an offset column to a null-free int64 Arrow array"""
    if isinstance(values, pa.ChunkedArray):
        values = values.combine_chunks()
    try:
        arr = values if isinstance(values, pa.Array) else pa.array(values)
    except (TypeError, ValueError, pa.ArrowException) as exc:
        _reject(f"{name} is not an integer column: {exc}")

    if len(arr) == 0:
        return pa.array([], type=pa.int64())
    if not pa.types.is_integer(arr.type):
        _reject(f"{name} must hold integers, got {arr.type}")
    if arr.null_count:
        _reject(f"{name} contains {arr.null_count} nulls")
    try:
        return arr.cast(pa.int64())
    except (TypeError, ValueError, pa.ArrowException) as exc:
        _reject(f"{name} does not fit in int64: {exc}")


def _check_offsets(ends: pa.Array, min_step: int, total: int, name: str, unit: str):
    """Offsets must grow by at least ``min_step`` and end at ``total``"""
    if len(ends) == 0:
        if total != 0:
            _reject(f"{name} is empty but {total} {unit} were given")
        return

    smallest = ends[0].as_py()
    if len(ends) > 1:
        steps = pc.subtract(ends[1:], ends[:-1])
        smallest = min(smallest, pc.min(steps).as_py())
    if smallest < min_step:
        _reject(f"{name} must increase by at least {min_step} {unit} per entry")

    last = ends[-1].as_py()
    if last != total:
        _reject(f"{name} ends at {last} but {total} {unit} were given")


def _readonly_view(arr: pa.Array) -> np.ndarray:
    view = arr.to_numpy(zero_copy_only=True)
    if view.flags.writeable:
        view = view.view()
        view.flags.writeable = False
    return view
