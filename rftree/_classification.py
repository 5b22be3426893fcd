# rftree/_classification.py
import io
import struct

import numpy as np
from loguru import logger
from sklearn.utils import check_random_state

from ._criterion import GiniCriterion, gini_decrease
from ._io import read_exact, read_float_table, write_float_table
from ._params import ESTIMATE_MODES
from ._splitter import BestSplitter
from ._tree import TREE_LEAF, Tree
from ._utils import class_counts_of, most_frequent_class
from .exceptions import TreeError, TreeLoadError, TreeNotGrownError

# estimate mode code and number of classes, written after the node table
TRAILER = struct.Struct("<BI")


class ClassificationTree(Tree):
    """Classification tree grown with the Gini criterion.

    Leaves store the majority class value of their training samples in
    ``split_values``. In ``"probability"`` mode they additionally keep the
    class frequencies in ``terminal_class_counts`` and predictions are rows
    of class probabilities.

    Parameters
    ----------
    class_values : ndarray
        Ordered distinct class labels shared by all trees of the ensemble.
    response_class_ids : ndarray of intp, optional
        Index into ``class_values`` for every training sample. Not needed for
        a loaded tree that only predicts.
    """

    def __init__(self, class_values, response_class_ids=None):
        super().__init__()
        self.class_values = np.asarray(class_values, dtype=np.float64)
        if response_class_ids is not None:
            response_class_ids = np.asarray(response_class_ids, dtype=np.intp)
        self.response_class_ids = response_class_ids
        self.estimate_mode = "class"
        self.terminal_class_counts = []

    @classmethod
    def from_arrays(cls, child_node_ids, split_var_ids, split_values, class_values,
                    response_class_ids=None, terminal_class_counts=None):
        """Reconstruct a grown tree from its flat node arrays."""
        tree = cls(class_values, response_class_ids)
        tree._set_node_arrays(child_node_ids, split_var_ids, split_values)

        if terminal_class_counts is not None:
            terminal_class_counts = np.asarray(terminal_class_counts, dtype=np.float64)
            expected_shape = (tree.num_nodes, tree.n_classes)
            if terminal_class_counts.shape != expected_shape:
                raise TreeLoadError(
                    "wrong shape for terminal class counts: "
                    f"expected {expected_shape}, got {terminal_class_counts.shape}")
            tree.estimate_mode = "probability"
            tree.terminal_class_counts = list(terminal_class_counts)
        return tree

    @property
    def n_classes(self):
        return len(self.class_values)

    # ------------------------------------------------------------------
    # Tree Builder
    # ------------------------------------------------------------------

    def _init_internal(self):
        if self.response_class_ids is None:
            raise ValueError("response_class_ids are required to grow a tree")
        if len(self.response_class_ids) < self.data.num_rows:
            raise ValueError(
                f"got {len(self.response_class_ids)} response class IDs "
                f"for {self.data.num_rows} samples")

        params = self.params
        self.estimate_mode = params.estimate_mode
        self.terminal_class_counts = []
        self.splitter = BestSplitter(
            GiniCriterion(self.n_classes),
            min_node_size=params.min_node_size,
            max_exhaustive_levels=params.max_exhaustive_levels,
        )
        self.splitter.init(self.data, self.samples, self.response_class_ids)

    def _create_empty_node_internal(self):
        self.terminal_class_counts.append(np.zeros(self.n_classes, dtype=np.float64))

    def _split_node_internal(self, node_id, possible_split_var_ids):
        start, end = self._node_ranges[node_id]
        params = self.params
        splitter = self.splitter
        splitter.node_reset(start, end)

        # Stop if node too small to hold two children, pure or at max depth
        if (end - start < 2 * params.min_node_size
                or splitter.node_is_pure()
                or (params.max_depth is not None and self.depths[node_id] >= params.max_depth)):
            self._set_leaf_value(node_id)
            return True

        if not self.find_best_split(node_id, possible_split_var_ids):
            self._set_leaf_value(node_id)
            return True

        return False

    def _set_leaf_value(self, node_id):
        self.split_values[node_id] = self.estimate(node_id)
        if self.estimate_mode == "probability":
            self.splitter.node_value(self.terminal_class_counts[node_id])

    # ------------------------------------------------------------------
    # Split Finder
    # ------------------------------------------------------------------

    def find_best_split(self, node_id, possible_split_var_ids):
        """Install the best split of ``node_id`` among the candidate variables.

        Returns True iff a split with positive impurity decrease was found.
        The node's samples are then partitioned so the left child's samples
        come first.
        """
        start, end = self._node_ranges[node_id]
        splitter = self.splitter
        splitter.node_reset(start, end)

        if not splitter.node_split(possible_split_var_ids):
            return False

        split = splitter.last_split
        self.split_var_ids[node_id] = split.feature
        self.split_values[node_id] = split.value
        self.add_gini_importance(node_id, split.feature, split.improvement)
        return True

    # ------------------------------------------------------------------
    # Importance Accumulator
    # ------------------------------------------------------------------

    def _gini_weight(self, n_node, n_root, scale):
        return n_node / n_root if scale else 1.0

    def add_gini_importance(self, node_id, var_id, decrease):
        """Add the impurity decrease of the split at ``node_id`` to ``var_id``."""
        start, end = self._node_ranges[node_id]
        value = decrease * self._gini_weight(
            end - start, len(self.samples), self.params.scale_gini_importance)

        self.gini_importance[var_id] += value
        if self.variable_importance is not None:
            self.variable_importance.add(var_id, value)

    def recompute_gini_importance(self, data, sample_ids, scale=None):
        """Gini importance of the finished tree for ``sample_ids`` of ``data``.

        Routes the samples through the tree and recomputes every split's
        impurity decrease. For the tree's own in-bag samples this reproduces
        the contributions made while growing.
        """
        self._check_grown()
        if self.response_class_ids is None:
            raise ValueError("response_class_ids are required to compute Gini importance")
        if scale is None:
            scale = True if self.params is None else self.params.scale_gini_importance

        node_counts = np.zeros((self.num_nodes, self.n_classes), dtype=np.int64)
        for sample_id in sample_ids:
            class_id = self.response_class_ids[sample_id]
            row = data.row(sample_id)
            node_id = 0
            node_counts[node_id, class_id] += 1
            while not self.is_leaf(node_id):
                left, right = self.child_node_ids[node_id]
                value = row[self.split_var_ids[node_id]]
                node_id = left if self.goes_left(node_id, value, data) else right
                node_counts[node_id, class_id] += 1

        importance = np.zeros(data.num_cols, dtype=np.float64)
        n_root = int(node_counts[0].sum())
        for node_id, (left, right) in enumerate(self.child_node_ids):
            if left == TREE_LEAF:
                continue
            n_node = int(node_counts[node_id].sum())
            if n_node == 0:
                continue
            decrease = gini_decrease(node_counts[node_id], node_counts[left])
            importance[self.split_var_ids[node_id]] += decrease * self._gini_weight(
                n_node, n_root, scale)
        return importance

    def compute_permutation_importance_internal(self, permutations, variable_importance=None):
        """Accuracy drop on the OOB samples when each variable is permuted.

        Parameters
        ----------
        permutations : sequence
            ``permutations[var_id]`` is a permutation of the OOB positions
            ``0..n_oob-1`` or None to skip the variable.
        variable_importance : VariableImportance, optional
            Shared accumulator receiving the per-variable drops.

        Returns
        -------
        ndarray of shape (num_variables,)
            NaN for skipped variables.
        """
        self._check_oob_ready()
        n_oob = len(self.oob_sample_ids)
        num_variables = self.data.num_cols
        if len(permutations) > num_variables:
            raise ValueError(
                f"got {len(permutations)} permutations for {num_variables} variables")

        self._predict_oob()
        baseline_accuracy = self.compute_prediction_accuracy_internal()

        importance = np.full(num_variables, np.nan)
        for var_id, permutation in enumerate(permutations):
            if permutation is None:
                continue
            permutation = np.asarray(permutation, dtype=np.intp)
            if not np.array_equal(np.sort(permutation), np.arange(n_oob)):
                raise ValueError(
                    f"permutation for variable {var_id} is not a permutation of "
                    f"{n_oob} OOB positions")

            self._predict_oob(var_id, permutation)
            importance[var_id] = baseline_accuracy - self.compute_prediction_accuracy_internal()
            if variable_importance is not None:
                variable_importance.add(var_id, importance[var_id])

        self.permutation_importance = importance
        logger.debug("permutation importance on {} OOB samples, baseline accuracy {:.4f}",
                     n_oob, baseline_accuracy)
        return importance

    def compute_permutation_importance(self, n_repeats=1, random_state=None,
                                       variable_importance=None):
        """Permutation importance averaged over ``n_repeats`` random permutations.

        Only splittable variables are permuted; the rest are NaN.
        """
        self._check_oob_ready()
        if n_repeats < 1:
            raise ValueError(f"n_repeats must be positive, got {n_repeats}")
        rng = check_random_state(random_state)
        n_oob = len(self.oob_sample_ids)
        splittable = set(self.splittable_var_ids)

        total = np.zeros(self.data.num_cols, dtype=np.float64)
        for _ in range(n_repeats):
            permutations = [rng.permutation(n_oob) if var_id in splittable else None
                            for var_id in range(self.data.num_cols)]
            total += self.compute_permutation_importance_internal(permutations)

        importance = total / n_repeats
        if variable_importance is not None:
            variable_importance.add_array(importance)
        self.permutation_importance = importance
        return importance

    def _check_oob_ready(self):
        self._check_grown()
        if self.data is None:
            raise TreeNotGrownError("permutation importance needs a tree grown with init()")
        if len(self.oob_sample_ids) == 0:
            raise TreeError("tree has no out-of-bag samples")

    # ------------------------------------------------------------------
    # Predictor
    # ------------------------------------------------------------------

    def estimate(self, node_id):
        """Majority class value among the training samples routed to ``node_id``.

        Ties resolve to the smallest class ID.
        """
        if not self._node_ranges:
            raise TreeNotGrownError("estimate needs the samples routed during growing")
        sample_ids = self.node_sample_ids(node_id)
        if len(sample_ids) == 0:
            raise TreeError(f"node {node_id} has no samples")
        class_counts = class_counts_of(self.response_class_ids, sample_ids, self.n_classes)
        return float(self.class_values[most_frequent_class(class_counts)])

    def reserve_prediction_memory(self, num_predictions):
        if self.estimate_mode == "probability":
            self.predictions = np.zeros((num_predictions, self.n_classes), dtype=np.float64)
        else:
            self.predictions = np.zeros(num_predictions, dtype=np.float64)

    def add_prediction(self, node_id, sample_id):
        if self.estimate_mode == "probability":
            self.predictions[sample_id] = self.terminal_class_counts[node_id]
        else:
            self.predictions[sample_id] = self.split_values[node_id]

    def predicted_classes(self):
        """Class values of the current prediction round."""
        if self.estimate_mode == "probability":
            return self.class_values[np.argmax(self.predictions, axis=1)]
        return self.predictions

    def compute_prediction_accuracy_internal(self):
        """Fraction of OOB samples whose current prediction is their true class."""
        n_oob = len(self.oob_sample_ids)
        if n_oob == 0:
            raise TreeError("tree has no out-of-bag samples")
        true_values = self.class_values[self.response_class_ids[self.oob_sample_ids]]
        return np.count_nonzero(self.predicted_classes() == true_values) / n_oob

    # ------------------------------------------------------------------
    # Serializer
    # ------------------------------------------------------------------

    def append_to_file_internal(self, file):
        mode_code = ESTIMATE_MODES.index(self.estimate_mode)
        file.write(TRAILER.pack(mode_code, self.n_classes))
        if self.estimate_mode == "probability":
            write_float_table(file, self.terminal_class_counts, self.n_classes)

    @classmethod
    def load(cls, file, class_values, response_class_ids=None):
        """Reconstruct a tree written by ``append_to_file``."""
        child_node_ids, split_var_ids, split_values = cls._read_node_arrays(file)

        mode_code, n_classes = TRAILER.unpack(read_exact(file, TRAILER.size, "trailer"))
        if mode_code >= len(ESTIMATE_MODES):
            raise TreeLoadError(f"unknown estimate mode code {mode_code}")
        if n_classes != len(class_values):
            raise TreeLoadError(
                f"tree was grown with {n_classes} classes, got {len(class_values)} class values")

        terminal_class_counts = None
        if ESTIMATE_MODES[mode_code] == "probability":
            terminal_class_counts = read_float_table(
                file, len(child_node_ids), n_classes, "terminal class counts")

        return cls.from_arrays(child_node_ids, split_var_ids, split_values, class_values,
                               response_class_ids, terminal_class_counts)

    @classmethod
    def loads(cls, buf, class_values, response_class_ids=None):
        return cls.load(io.BytesIO(buf), class_values, response_class_ids)
