# rftree/_tree.py
import io

import numpy as np
from loguru import logger

from ._io import read_node_table, write_node_table
from ._params import TreeParameters
from ._utils import RandomState, level_in_mask
from .exceptions import TreeError, TreeLoadError, TreeNotGrownError

TREE_LEAF = -1
TREE_UNDEFINED = -2


class Tree:
    """Array-based representation of a binary decision tree.

    Node ``i`` is described by ``child_node_ids[i]`` (``[left, right]``, both
    ``TREE_LEAF`` for a leaf), ``split_var_ids[i]`` and ``split_values[i]``.
    Node 0 is the root and children always have larger IDs than their
    parent. Nodes are only ever appended.

    Subclasses provide the response-specific parts: ``_init_internal``,
    ``_create_empty_node_internal``, ``_split_node_internal``,
    ``reserve_prediction_memory``, ``add_prediction`` and
    ``append_to_file_internal``.
    """

    def __init__(self):
        self.child_node_ids = []
        self.split_var_ids = []
        self.split_values = []
        self.depths = []

        # Build state, set by init()
        self.data = None
        self.params = None
        self.mtry = 0
        self.splittable_var_ids = []
        self.samples = None
        self.oob_sample_ids = None
        self.random_state = None
        self.splitter = None
        self._node_ranges = []

        self.variable_importance = None
        self.gini_importance = None
        self.permutation_importance = None
        self.predictions = None

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def num_nodes(self):
        return len(self.child_node_ids)

    @property
    def num_leaves(self):
        return sum(1 for left, _ in self.child_node_ids if left == TREE_LEAF)

    @property
    def max_depth(self):
        """Depth of the deepest node; a single leaf has depth 0."""
        return max(self.depths) if self.depths else 0

    def is_leaf(self, node_id):
        left, right = self.child_node_ids[node_id]
        return left == TREE_LEAF and right == TREE_LEAF

    def _set_node_arrays(self, child_node_ids, split_var_ids, split_values):
        """Install node arrays of a previously grown tree after validating them."""
        depths = check_node_arrays(child_node_ids, split_var_ids, split_values)
        self.child_node_ids = [[int(left), int(right)] for left, right in child_node_ids]
        self.split_var_ids = [int(v) for v in split_var_ids]
        self.split_values = [float(v) for v in split_values]
        self.depths = depths

    def _check_grown(self):
        if not self.child_node_ids:
            raise TreeNotGrownError("tree has no nodes; grow or load it first")

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def init(self, data, sample_ids, oob_sample_ids=None, params=None,
             no_split_variables=()):
        """Prepare the tree for growing on ``data``.

        Parameters
        ----------
        data : Data
        sample_ids : array-like of int
            In-bag sample indices, repeats allowed.
        oob_sample_ids : array-like of int, optional
            Out-of-bag sample indices used for accuracy and permutation
            importance.
        params : TreeParameters, optional
        no_split_variables : iterable of int
            Variables never drawn as split candidates.
        """
        if self.child_node_ids:
            raise TreeError("tree is already grown")
        if params is None:
            params = TreeParameters()

        sample_ids = np.array(sample_ids, dtype=np.intp)
        if sample_ids.ndim != 1 or sample_ids.size == 0:
            raise ValueError("sample_ids must be a non-empty 1-d sequence")
        if sample_ids.min() < 0 or sample_ids.max() >= data.num_rows:
            raise ValueError("sample_ids out of range")

        excluded = {int(v) for v in no_split_variables}
        self.splittable_var_ids = [v for v in range(data.num_cols) if v not in excluded]
        self.mtry = params.resolve_mtry(len(self.splittable_var_ids))

        self.data = data
        self.params = params
        self.samples = sample_ids
        self.oob_sample_ids = (np.empty(0, dtype=np.intp) if oob_sample_ids is None
                               else np.array(oob_sample_ids, dtype=np.intp))
        self.random_state = RandomState(params.seed)
        self.gini_importance = np.zeros(data.num_cols, dtype=np.float64)
        self._init_internal()

    def grow(self, variable_importance=None):
        """Grow the tree to completion.

        Open nodes are processed in increasing nodeID order; each split
        appends its two children at the end, so the loop ends when the last
        appended node has been processed.

        Parameters
        ----------
        variable_importance : VariableImportance, optional
            Shared accumulator receiving this tree's Gini importance.
        """
        if self.data is None:
            raise TreeNotGrownError("init() must be called before grow()")
        if self.child_node_ids:
            raise TreeError("tree is already grown")

        self.variable_importance = variable_importance
        self._node_ranges = []
        self.create_empty_node(0, len(self.samples), depth=0)

        node_id = 0
        while node_id < self.num_nodes:
            self.split_node(node_id)
            node_id += 1

        logger.debug(
            "grew tree on {} samples: {} nodes, {} leaves, depth {}",
            len(self.samples), self.num_nodes, self.num_leaves, self.max_depth)

    def create_empty_node(self, start, end, depth):
        """Append a leaf covering samples[start:end]; returns its nodeID."""
        node_id = self.num_nodes
        self.child_node_ids.append([TREE_LEAF, TREE_LEAF])
        self.split_var_ids.append(TREE_UNDEFINED)
        self.split_values.append(0.0)
        self.depths.append(depth)
        self._node_ranges.append((start, end))
        self._create_empty_node_internal()
        return node_id

    def create_possible_split_var_subset(self):
        """Draw ``mtry`` distinct candidate variables for the next node."""
        return self.random_state.sample_without_replacement(
            self.splittable_var_ids, self.mtry)

    def split_node(self, node_id):
        """Split ``node_id`` or make it a leaf. Returns True for a leaf."""
        possible_split_var_ids = self.create_possible_split_var_subset()

        if self._split_node_internal(node_id, possible_split_var_ids):
            return True

        start, end = self._node_ranges[node_id]
        pos = self.splitter.last_split.pos
        depth = self.depths[node_id] + 1

        left_child = self.create_empty_node(start, pos, depth)
        right_child = self.create_empty_node(pos, end, depth)
        self.child_node_ids[node_id] = [left_child, right_child]
        return False

    def node_sample_ids(self, node_id):
        """In-bag samples routed to ``node_id`` during the build."""
        start, end = self._node_ranges[node_id]
        return self.samples[start:end]

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def goes_left(self, node_id, value, data):
        var_id = self.split_var_ids[node_id]
        if data.is_ordered(var_id):
            return value <= self.split_values[node_id]
        return level_in_mask(value, self.split_values[node_id])

    def find_terminal_node(self, row, data):
        """Walk from the root to the leaf reached by one dense feature row."""
        child_node_ids = self.child_node_ids
        node_id = 0
        while True:
            left, right = child_node_ids[node_id]
            if left == TREE_LEAF:
                return node_id
            value = row[self.split_var_ids[node_id]]
            node_id = left if self.goes_left(node_id, value, data) else right

    def apply(self, data, sample_ids=None):
        """Terminal nodeID for each sample of ``data``."""
        self._check_grown()
        if sample_ids is None:
            sample_ids = range(data.num_rows)
        return np.array([self.find_terminal_node(data.row(i), data) for i in sample_ids],
                        dtype=np.intp)

    def predict(self, data, sample_ids=None):
        """Leaf estimates for each sample of ``data`` (a fresh prediction round)."""
        terminal_nodes = self.apply(data, sample_ids)
        self.reserve_prediction_memory(len(terminal_nodes))
        for i, node_id in enumerate(terminal_nodes):
            self.add_prediction(node_id, i)
        return self.predictions.copy()

    def _predict_oob(self, permuted_var_id=None, permutation=None):
        """Prediction round over the OOB samples, optionally with one variable permuted.

        With a permutation, OOB sample ``i`` sees the value of ``permuted_var_id``
        taken from OOB sample ``permutation[i]``.
        """
        data = self.data
        oob_sample_ids = self.oob_sample_ids
        self.reserve_prediction_memory(len(oob_sample_ids))

        for i, sample_id in enumerate(oob_sample_ids):
            row = data.row(sample_id)
            if permuted_var_id is not None:
                row[permuted_var_id] = data.get(oob_sample_ids[permutation[i]], permuted_var_id)
            self.add_prediction(self.find_terminal_node(row, data), i)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def append_to_file(self, file):
        """Write the tree body to a binary file object."""
        self._check_grown()
        write_node_table(file, self.child_node_ids, self.split_var_ids, self.split_values)
        self.append_to_file_internal(file)

    def dumps(self):
        buf = io.BytesIO()
        self.append_to_file(buf)
        return buf.getvalue()

    @staticmethod
    def _read_node_arrays(file):
        child_node_ids, split_var_ids, split_values = read_node_table(file)
        logger.debug("read tree body with {} nodes", len(child_node_ids))
        return child_node_ids, split_var_ids, split_values

    # ------------------------------------------------------------------
    # Response-specific hooks
    # ------------------------------------------------------------------

    def _init_internal(self):
        raise NotImplementedError()

    def _create_empty_node_internal(self):
        pass

    def _split_node_internal(self, node_id, possible_split_var_ids):
        raise NotImplementedError()

    def reserve_prediction_memory(self, num_predictions):
        raise NotImplementedError()

    def add_prediction(self, node_id, sample_id):
        raise NotImplementedError()

    def append_to_file_internal(self, file):
        pass


def check_node_arrays(child_node_ids, split_var_ids, split_values):
    """Validate flat node arrays and return the depth of every node.

    Raises TreeLoadError on length mismatch, out-of-range or one-sided
    children, children not numbered after their parent (which rules out
    cycles), nodes with two parents and unreachable nodes.
    """
    n_nodes = len(child_node_ids)
    if not n_nodes == len(split_var_ids) == len(split_values):
        raise TreeLoadError(
            "node arrays differ in length: "
            f"{n_nodes} child pairs, {len(split_var_ids)} split variables, "
            f"{len(split_values)} split values")
    if n_nodes == 0:
        raise TreeLoadError("tree body has no nodes")

    depths = [0] * n_nodes
    has_parent = [False] * n_nodes

    for node_id, pair in enumerate(child_node_ids):
        if len(pair) != 2:
            raise TreeLoadError(f"expected 2 child IDs, got {len(pair)}", node_id)
        left, right = int(pair[0]), int(pair[1])

        if left == TREE_LEAF and right == TREE_LEAF:
            continue
        if left == TREE_LEAF or right == TREE_LEAF:
            raise TreeLoadError("exactly one child is a leaf sentinel", node_id)
        if int(split_var_ids[node_id]) < 0:
            raise TreeLoadError(
                f"internal node has split variable {split_var_ids[node_id]}", node_id)

        for child in (left, right):
            if not 0 <= child < n_nodes:
                raise TreeLoadError(f"child ID {child} out of range", node_id)
            if child <= node_id:
                raise TreeLoadError(
                    f"child ID {child} does not follow its parent (cycle)", node_id)
            if has_parent[child]:
                raise TreeLoadError(f"node {child} has more than one parent", node_id)
            has_parent[child] = True
            depths[child] = depths[node_id] + 1

    for node_id in range(1, n_nodes):
        if not has_parent[node_id]:
            raise TreeLoadError("node is not reachable from the root", node_id)

    return depths
