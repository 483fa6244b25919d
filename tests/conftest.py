"""
conftest.py — Shared pytest fixtures for the arrow_pip test suite.

Datasets are immutable, so they are built once per session; that also makes
them usable from Hypothesis tests.
"""

import pyarrow as pa
import pytest

from arrow_pip.data_structures.polygon_dataset import PolygonDataset


# ── Rings ───────────────────────────────────────────────────────────────────

SQUARE = [(0, 0), (4, 0), (4, 4), (0, 4), (0, 0)]   # closed ring

OUTER = [(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)]
HOLE = [(4, 4), (6, 4), (6, 6), (4, 6), (4, 4)]

# Concave "U" shape with integer vertices
U_SHAPE = [(0, 0), (9, 0), (9, 9), (6, 9), (6, 3), (3, 3), (3, 9), (0, 9), (0, 0)]


def unit_square(left: float, bottom: float):
    return [(left, bottom), (left + 1, bottom), (left + 1, bottom + 1),
            (left, bottom + 1), (left, bottom)]


# ── Dataset fixtures ────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def square_dataset() -> PolygonDataset:
    """One 4x4 square feature."""
    return PolygonDataset.from_features([[SQUARE]])


@pytest.fixture(scope="session")
def hole_dataset() -> PolygonDataset:
    """A 10x10 square with a 2x2 hole in the middle."""
    return PolygonDataset.from_features([[OUTER, HOLE]])


@pytest.fixture(scope="session")
def three_squares() -> PolygonDataset:
    """Three disjoint unit squares along the x axis, features 0, 1, 2."""
    return PolygonDataset.from_features([
        [unit_square(0, 0)],
        [unit_square(2, 0)],
        [unit_square(4, 0)],
    ])


@pytest.fixture(scope="session")
def u_shape_float32() -> PolygonDataset:
    return PolygonDataset.from_features([[U_SHAPE]], dtype=pa.float32())


@pytest.fixture(scope="session")
def u_shape_float64() -> PolygonDataset:
    return PolygonDataset.from_features([[U_SHAPE]], dtype=pa.float64())
