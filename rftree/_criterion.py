# rftree/_criterion.py
import numpy as np


def gini_impurity(class_counts):
    """Gini impurity ``1 - sum(p_c ** 2)`` of integer class counts."""
    n = int(class_counts.sum())
    if n == 0:
        return 0.0
    # integer dot product keeps the result identical wherever the counts match
    return 1.0 - float(np.dot(class_counts, class_counts)) / (n * n)


def gini_decrease(parent_counts, left_counts):
    """Impurity decrease of splitting ``parent_counts`` into left and the rest."""
    right_counts = parent_counts - left_counts
    n = int(parent_counts.sum())
    n_left = int(left_counts.sum())
    n_right = n - n_left
    return (gini_impurity(parent_counts)
            - n_left / n * gini_impurity(left_counts)
            - n_right / n * gini_impurity(right_counts))


class GiniCriterion:
    """Gini impurity criterion over class counts.

    The criterion follows the node's sample range ``samples[start:end]`` and
    keeps the class counts of the left part ``samples[start:pos]`` up to
    date as ``pos`` moves right.
    """

    def __init__(self, n_classes):
        self.n_classes = n_classes

        self.response_class_ids = None
        self.sample_indices = None

        self.node_counts = np.zeros(n_classes, dtype=np.int64)
        self.left_counts = np.zeros(n_classes, dtype=np.int64)

        self.start = 0
        self.end = 0
        self.pos = 0
        self.n_node_samples = 0

    def init(self, response_class_ids, sample_indices, start, end):
        """Initialize the criterion at node samples[start:end]."""
        self.response_class_ids = response_class_ids
        self.sample_indices = sample_indices
        self.start = start
        self.end = end
        self.n_node_samples = end - start

        self.node_counts = np.bincount(
            response_class_ids[sample_indices[start:end]],
            minlength=self.n_classes,
        ).astype(np.int64)

        self.reset()
        return 0

    def reset(self):
        """Reset the criterion at pos=start."""
        self.left_counts = np.zeros(self.n_classes, dtype=np.int64)
        self.pos = self.start
        return 0

    def update(self, new_pos):
        """Move samples[pos:new_pos] to the left child."""
        if new_pos < self.pos:
            self.reset()
        moved = self.sample_indices[self.pos:new_pos]
        self.left_counts += np.bincount(
            self.response_class_ids[moved], minlength=self.n_classes)
        self.pos = new_pos
        return 0

    @property
    def n_left(self):
        return int(self.left_counts.sum())

    @property
    def n_right(self):
        return self.n_node_samples - self.n_left

    def is_pure(self):
        return np.count_nonzero(self.node_counts) <= 1

    def node_impurity(self):
        """Evaluate the impurity of the current node."""
        return gini_impurity(self.node_counts)

    def children_impurity(self):
        """Evaluate the impurity in children nodes."""
        return (gini_impurity(self.left_counts),
                gini_impurity(self.node_counts - self.left_counts))

    def impurity_improvement(self):
        """Impurity decrease of the split at the current position."""
        return gini_decrease(self.node_counts, self.left_counts)

    def node_value(self, dest):
        """Class frequencies of samples[start:end] into dest."""
        if self.n_node_samples > 0:
            dest[:] = self.node_counts / self.n_node_samples
        else:
            dest[:] = 0.0
