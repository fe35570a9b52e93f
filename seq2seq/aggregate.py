"""
Embedding gradient aggregation: many (index, vector) contributions collected over
time, layers and positional channels, reduced to one summed row per unique index.
"""

import numpy as np

from . import shared
from .errors import AggregationOverflowError, ShapeError


def aggregate_rows(indices: np.ndarray, grads: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Segment-sum grads (n, d) by indices (n,). Returns (unique_indices ascending, summed (n_unique, d))."""
    indices = np.asarray(indices, dtype=np.intp)
    if grads.ndim != 2 or grads.shape[0] != indices.shape[0]:
        raise ShapeError(f"embedding grads: {grads.shape} vs ({indices.shape[0]}, d)")
    unique, inverse = np.unique(indices, return_inverse=True)
    summed = shared.segment_sum(grads, inverse.reshape(-1), unique.shape[0])
    return unique, summed


class EmbeddingGradAccumulator:
    """Append-only list of (indices, grads) chunks, compacted once by aggregate().

    capacity, when given, is the pre-counted number of contributions; exceeding it
    means the caller miscounted and raises AggregationOverflowError.
    """

    def __init__(self, hidden_size: int, capacity: int | None = None, dtype=np.float64):
        self.hidden_size = hidden_size
        self.capacity = capacity
        self.dtype = dtype
        self._indices: list[np.ndarray] = []
        self._grads: list[np.ndarray] = []
        self.count = 0

    def add(self, indices, grads: np.ndarray) -> None:
        """Add rows grads (n, H) under embedding indices (n,)."""
        indices = np.atleast_1d(np.asarray(indices, dtype=np.intp))
        if grads.shape != (indices.shape[0], self.hidden_size):
            raise ShapeError(f"embedding grads: {grads.shape} vs {(indices.shape[0], self.hidden_size)}")
        if indices.shape[0] == 0:
            return
        if self.capacity is not None and self.count + indices.shape[0] > self.capacity:
            raise AggregationOverflowError(
                f"{self.count + indices.shape[0]} embedding contributions exceed capacity {self.capacity}"
            )
        self._indices.append(indices)
        self._grads.append(np.asarray(grads, dtype=self.dtype))
        self.count += indices.shape[0]

    def aggregate(self) -> tuple[np.ndarray, np.ndarray]:
        if not self._indices:
            return np.zeros(0, dtype=np.intp), np.zeros((0, self.hidden_size), dtype=self.dtype)
        return aggregate_rows(np.concatenate(self._indices), np.concatenate(self._grads, axis=0))
