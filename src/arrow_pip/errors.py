"""Exception types raised by arrow_pip.

Each error also derives from the matching builtin so callers that already
catch ``ValueError`` or ``IndexError`` keep working.
"""


class ArrowPipError(Exception):
    """Base class for every error raised by this package."""


class InvalidDatasetError(ArrowPipError, ValueError):
    """A PolygonDataset was built from columns that break its invariants."""


class IndexOutOfRangeError(ArrowPipError, IndexError):
    """A feature or ring index lies outside the dataset."""


class PointArrayMismatchError(ArrowPipError, ValueError):
    """Point coordinates are not shaped as (x, y) pairs of equal length."""
