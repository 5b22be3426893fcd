# rftree/_splitter.py
import numpy as np
from loguru import logger

from ._criterion import gini_decrease
from ._partitioner import DensePartitioner
from ._utils import levels_to_mask, most_frequent_class

INFINITY = np.inf
EPSILON = np.finfo('double').eps

# Candidates must beat the current best by more than this to replace it, so
# the first of several near-equal splits is kept.
TIE_TOLERANCE = 1e-12


class SplitRecord:
    """Record of a split for a node."""

    __slots__ = ('impurity_left', 'impurity_right', 'pos', 'feature', 'value',
                 'is_ordered', 'improvement', 'n_left', 'n_right')

    def __init__(self, start_pos=0):
        self.impurity_left = INFINITY
        self.impurity_right = INFINITY
        self.pos = start_pos
        self.feature = 0
        self.value = 0.0
        self.is_ordered = True
        self.improvement = -INFINITY
        self.n_left = 0
        self.n_right = 0

    def __repr__(self):
        kind = "threshold" if self.is_ordered else "mask"
        return (f"SplitRecord(feature={self.feature}, {kind}={self.value!r}, "
                f"pos={self.pos}, improvement={self.improvement:.6f})")


class BestSplitter:
    """Find the best split of a node among a set of candidate variables.

    Splitters are called by the tree builder one node at a time. Ordered
    variables are split at midpoints between consecutive distinct values,
    unordered variables by subsets of their observed levels.
    """

    def __init__(self, criterion, min_node_size, max_exhaustive_levels):
        self.criterion = criterion
        self.min_node_size = min_node_size
        self.max_exhaustive_levels = max_exhaustive_levels

        self.data = None
        self.samples = None
        self.feature_values = None
        self.response_class_ids = None
        self.partitioner = None

        self.last_split = SplitRecord()

        self.start = 0
        self.end = 0

    def init(self, data, samples, response_class_ids):
        """Bind the splitter to the tree's in-bag ``samples`` array."""
        self.data = data
        self.samples = samples
        self.response_class_ids = response_class_ids
        self.feature_values = np.empty(len(samples), dtype=np.float64)
        self.partitioner = DensePartitioner(data, samples, self.feature_values)
        return 0

    def node_reset(self, start, end):
        """Reset splitter on node samples[start:end]."""
        self.start = start
        self.end = end
        self.criterion.init(self.response_class_ids, self.samples, start, end)
        return 0

    def node_is_pure(self):
        return self.criterion.is_pure()

    def node_value(self, dest):
        self.criterion.node_value(dest)

    def node_split(self, possible_split_var_ids):
        """Find the best split on node samples[start:end].

        Candidates are visited in ascending variable ID. On success the
        samples are reorganized into samples[start:split.pos] (left) and
        samples[split.pos:end] (right) and True is returned. The chosen split
        is kept in ``last_split``.
        """
        best_split = SplitRecord(self.end)
        self.partitioner.init_node_split(self.start, self.end)

        for feature in sorted(possible_split_var_ids):
            if self.data.is_ordered(feature):
                node_split_ordered(self, feature, best_split)
            else:
                node_split_unordered(self, feature, best_split)

        if best_split.improvement <= EPSILON:
            self.last_split = best_split
            return False

        best_split.pos = self.partitioner.partition_samples_final(
            best_split.feature, best_split.value, best_split.is_ordered)

        criterion = self.criterion
        criterion.reset()
        criterion.update(best_split.pos)
        best_split.impurity_left, best_split.impurity_right = criterion.children_impurity()
        best_split.improvement = criterion.impurity_improvement()

        self.last_split = best_split
        return True


def node_split_ordered(splitter, feature, best_split):
    """Scan every threshold between consecutive distinct values of ``feature``."""
    partitioner = splitter.partitioner
    criterion = splitter.criterion
    feature_values = splitter.feature_values
    min_node_size = splitter.min_node_size
    start = splitter.start
    end = splitter.end

    partitioner.sort_samples_and_feature_values(feature)

    if feature_values[end - 1] == feature_values[start]:
        logger.trace("variable {} is constant on {} samples, skipped", feature, end - start)
        return

    criterion.reset()
    p_prev = start
    p = start

    while p < end:
        p_prev, p = partitioner.next_p(p_prev, p)

        if p >= end:
            break

        n_left = p - start
        n_right = end - p

        # Reject if min_node_size is not guaranteed
        if n_left < min_node_size:
            continue
        if n_right < min_node_size:
            break

        criterion.update(p)
        improvement = criterion.impurity_improvement()

        if improvement > best_split.improvement + TIE_TOLERANCE:
            # sum of halves is used to avoid infinite value
            threshold = feature_values[p_prev] / 2.0 + feature_values[p] / 2.0
            if threshold == feature_values[p] or threshold in (INFINITY, -INFINITY):
                threshold = feature_values[p_prev]

            best_split.feature = feature
            best_split.value = float(threshold)
            best_split.is_ordered = True
            best_split.improvement = improvement
            best_split.pos = p
            best_split.n_left = n_left
            best_split.n_right = n_right


def node_split_unordered(splitter, feature, best_split):
    """Search bipartitions of the levels of ``feature`` observed at the node."""
    criterion = splitter.criterion
    min_node_size = splitter.min_node_size
    start = splitter.start
    end = splitter.end

    values = splitter.partitioner.load_feature_values(feature)
    levels, level_index = np.unique(values.astype(np.intp), return_inverse=True)
    n_levels = len(levels)

    if n_levels < 2:
        logger.trace("variable {} has a single level at this node, skipped", feature)
        return

    node_classes = splitter.response_class_ids[splitter.samples[start:end]]
    level_counts = np.zeros((n_levels, criterion.n_classes), dtype=np.int64)
    np.add.at(level_counts, (level_index.ravel(), node_classes), 1)
    level_sizes = level_counts.sum(axis=1)
    n_node_samples = end - start

    if n_levels <= splitter.max_exhaustive_levels:
        candidates = _all_level_bipartitions(n_levels)
    else:
        candidates = _ordered_level_bipartitions(
            level_counts, level_sizes, levels, criterion.node_counts)

    for goes_left in candidates:
        n_left = int(level_sizes[goes_left].sum())
        n_right = n_node_samples - n_left

        if n_left < min_node_size or n_right < min_node_size:
            continue

        left_counts = level_counts[goes_left].sum(axis=0)
        improvement = gini_decrease(criterion.node_counts, left_counts)

        if improvement > best_split.improvement + TIE_TOLERANCE:
            best_split.feature = feature
            best_split.value = levels_to_mask(levels[goes_left])
            best_split.is_ordered = False
            best_split.improvement = improvement
            best_split.pos = start + n_left
            best_split.n_left = n_left
            best_split.n_right = n_right


def _all_level_bipartitions(n_levels):
    """Yield every split of ``n_levels`` levels into two non-empty groups once.

    Masks run over the first ``n_levels - 1`` levels in increasing order; the
    last level always stays right, which skips mirrored duplicates.
    """
    bits = np.arange(n_levels)
    for mask in range(1, 2 ** (n_levels - 1)):
        yield ((mask >> bits) & 1).astype(bool)


def _ordered_level_bipartitions(level_counts, level_sizes, levels, node_counts):
    """Yield the prefix splits of levels sorted by their share of the majority class.

    Ties in the share are broken by level code.
    """
    majority = most_frequent_class(node_counts)
    share = level_counts[:, majority] / level_sizes
    order = np.lexsort((levels, share))
    for i in range(1, len(levels)):
        goes_left = np.zeros(len(levels), dtype=bool)
        goes_left[order[:i]] = True
        yield goes_left
