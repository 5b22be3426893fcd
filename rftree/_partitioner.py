"""Partition samples in the construction of a tree.

This module contains the routines that order the sample indices of a node
by one variable while the splitter searches for a split, and that move
sample indices to the left and right child once the split is chosen.
Samples sent left always come first: ``samples[start:pos]``.
"""

import numpy as np

from ._utils import level_in_mask


class DensePartitioner:
    """Partitioner over a node's range of the shared ``samples`` array."""

    def __init__(self, data, samples, feature_values):
        self.data = data
        self.samples = samples
        self.feature_values = feature_values
        self.start = 0
        self.end = 0

    def init_node_split(self, start, end):
        """Initialize partitioner at the beginning of node_split."""
        self.start = start
        self.end = end

    def load_feature_values(self, current_feature):
        """Copy the node's values of ``current_feature`` into feature_values."""
        start, end = self.start, self.end
        self.feature_values[start:end] = self.data.column(
            current_feature, self.samples[start:end])
        return self.feature_values[start:end]

    def sort_samples_and_feature_values(self, current_feature):
        """Simultaneously sort samples and feature_values by the feature value.

        The sort is stable so equal values keep their relative sample order.
        """
        start, end = self.start, self.end
        values = self.load_feature_values(current_feature)
        order = np.argsort(values, kind="mergesort")
        self.feature_values[start:end] = values[order]
        self.samples[start:end] = self.samples[start:end][order]

    def next_p(self, p_prev, p):
        """Advance to the next position where the sorted value changes.

        Returns ``(p_prev, p)`` with ``feature_values[p_prev] < feature_values[p]``
        or ``p == end``.
        """
        feature_values = self.feature_values
        end = self.end

        while p + 1 < end and feature_values[p + 1] == feature_values[p]:
            p += 1

        p_prev = p
        p += 1
        return p_prev, p

    def partition_samples_final(self, best_feature, best_value, is_ordered):
        """Move samples satisfying the split predicate to the front of the range.

        Ordered variables go left when ``value <= best_value``, unordered ones
        when their level bit is set in the ``best_value`` mask. Relative order
        inside each child is preserved. Returns the split position.
        """
        start, end = self.start, self.end
        node_samples = self.samples[start:end].copy()
        values = self.data.column(best_feature, node_samples)

        if is_ordered:
            goes_left = values <= best_value
        else:
            goes_left = np.fromiter(
                (level_in_mask(v, best_value) for v in values),
                dtype=bool, count=len(values))

        n_left = int(np.count_nonzero(goes_left))
        self.samples[start:start + n_left] = node_samples[goes_left]
        self.samples[start + n_left:end] = node_samples[~goes_left]
        return start + n_left
