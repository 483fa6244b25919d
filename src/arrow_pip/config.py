"""
Configuration for batch containment evaluation.
"""

from dataclasses import dataclass

# One bit per feature in a uint32 mask
MAX_FEATURES = 32


@dataclass(frozen=True)
class EvaluatorConfig:
    """
    Tuning knobs for BatchContainmentEvaluator.

    The result never depends on these values, only how the point range is
    split up and scheduled.

    Attributes:
        chunk_size: Number of points handled by one unit of work.
        workers: Size of the thread pool. 1 evaluates chunks sequentially
                 on the calling thread.
    """

    chunk_size: int = 65536
    workers: int = 1

    def __post_init__(self):
        """Validate configuration values."""
        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, int):
            raise ValueError(f"chunk_size must be an int, got {self.chunk_size!r}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")

        if isinstance(self.workers, bool) or not isinstance(self.workers, int):
            raise ValueError(f"workers must be an int, got {self.workers!r}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
