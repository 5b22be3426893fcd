"""Tests for growing ClassificationTree: structure, split search and leaf rules."""

import numpy as np
import pytest
from pytest_check import check

from rftree import TREE_LEAF, TREE_UNDEFINED, ClassificationTree, Data, TreeParameters
from rftree._criterion import gini_impurity
from rftree._splitter import BestSplitter, _all_level_bipartitions
from rftree.exceptions import TreeError, TreeNotGrownError


def _brute_force_best_decrease(x, y):
    """Largest Gini decrease over every threshold of every ordered column."""
    classes = np.unique(y)

    def impurity(labels):
        if len(labels) == 0:
            return 0.0
        p = np.array([np.mean(labels == c) for c in classes])
        return 1.0 - np.sum(p ** 2)

    parent = impurity(y)
    best = 0.0
    for j in range(x.shape[1]):
        values = np.unique(x[:, j])
        for threshold in values[:-1]:
            left = x[:, j] <= threshold
            decrease = (parent
                        - left.mean() * impurity(y[left])
                        - (~left).mean() * impurity(y[~left]))
            best = max(best, decrease)
    return best


class TestTreeStructure:
    """Tests for the flat node arrays of a grown tree."""

    def test_grow_node_arrays_have_equal_length(self, mixed_data, grow_tree) -> None:
        """Given mixed data, When grown, Then all node arrays have one entry per node."""
        # Act
        tree = grow_tree(mixed_data, mtry=2)

        # Assert
        with check:
            assert len(tree.child_node_ids) == tree.num_nodes
        with check:
            assert len(tree.split_var_ids) == tree.num_nodes
        with check:
            assert len(tree.split_values) == tree.num_nodes
        with check:
            assert len(tree.depths) == tree.num_nodes

    def test_grow_children_follow_parent(self, mixed_data, grow_tree) -> None:
        """Given a grown tree, When inspecting internal nodes, Then children IDs exceed the parent."""
        # Act
        tree = grow_tree(mixed_data, mtry=2)

        # Assert
        for node_id, (left, right) in enumerate(tree.child_node_ids):
            if left == TREE_LEAF:
                with check:
                    assert right == TREE_LEAF
                with check:
                    assert tree.split_var_ids[node_id] == TREE_UNDEFINED
                continue
            with check:
                assert node_id < left < tree.num_nodes
            with check:
                assert node_id < right < tree.num_nodes
            with check:
                assert tree.split_var_ids[node_id] >= 0

    def test_grow_every_node_but_root_has_one_parent(self, mixed_data, grow_tree) -> None:
        """Given a grown tree, When counting parents, Then each non-root node has exactly one."""
        # Act
        tree = grow_tree(mixed_data, mtry=3)

        # Assert
        children = [c for pair in tree.child_node_ids for c in pair if c != TREE_LEAF]
        assert sorted(children) == list(range(1, tree.num_nodes))

    def test_grow_leaves_are_pure_without_limits(self, mixed_data, grow_tree) -> None:
        """Given distinct feature rows and no limits, When grown, Then every leaf is pure."""
        # Act
        tree = grow_tree(mixed_data, mtry=4)

        # Assert
        for node_id in range(tree.num_nodes):
            if tree.is_leaf(node_id):
                classes = mixed_data.response_class_ids[tree.node_sample_ids(node_id)]
                with check:
                    assert len(np.unique(classes)) == 1

    def test_grow_same_seed_gives_same_tree(self, mixed_data, grow_tree) -> None:
        """Given the same seed twice, When grown, Then both trees are identical."""
        # Arrange
        sample_ids, _ = mixed_data.bootstrap(random_state=3)

        # Act
        tree1 = grow_tree(mixed_data, sample_ids, mtry=2, seed=123)
        tree2 = grow_tree(mixed_data, sample_ids, mtry=2, seed=123)

        # Assert
        with check:
            assert tree1.child_node_ids == tree2.child_node_ids
        with check:
            assert tree1.split_var_ids == tree2.split_var_ids
        with check:
            assert tree1.split_values == tree2.split_values
        with check:
            assert np.array_equal(tree1.gini_importance, tree2.gini_importance)

    def test_grow_twice_raises(self, binary_data, grow_tree) -> None:
        """Given a grown tree, When grow is called again, Then TreeError is raised."""
        # Arrange
        tree = grow_tree(binary_data)

        # Act & Assert
        with pytest.raises(TreeError, match="already grown"):
            tree.grow()

    def test_grow_without_init_raises(self, binary_data) -> None:
        """Given a fresh tree, When grow is called, Then TreeNotGrownError is raised."""
        # Arrange
        tree = ClassificationTree(binary_data.class_values, binary_data.response_class_ids)

        # Act & Assert
        with pytest.raises(TreeNotGrownError):
            tree.grow()

    def test_init_rejects_out_of_range_samples(self, binary_data) -> None:
        """Given sample IDs past the last row, When init is called, Then ValueError is raised."""
        # Arrange
        tree = ClassificationTree(binary_data.class_values, binary_data.response_class_ids)

        # Act & Assert
        with pytest.raises(ValueError, match="out of range"):
            tree.init(binary_data, [0, 1, binary_data.num_rows], params=TreeParameters(seed=1))


class TestSingleBinaryFeature:
    """Tests for a label that equals its only binary feature."""

    def test_single_split_with_pure_children(self, binary_data, grow_tree) -> None:
        """Given y == x, When grown, Then the root splits once at 0.5 into pure leaves."""
        # Act
        tree = grow_tree(binary_data)

        # Assert
        with check:
            assert tree.num_nodes == 3
        with check:
            assert tree.child_node_ids == [[1, 2], [TREE_LEAF, TREE_LEAF], [TREE_LEAF, TREE_LEAF]]
        with check:
            assert tree.split_var_ids[0] == 0
        with check:
            assert tree.split_values[0] == 0.5
        with check:
            assert tree.split_values[1] == 0.0
        with check:
            assert tree.split_values[2] == 1.0
        with check:
            assert tree.max_depth == 1

    def test_predicts_held_out_rows_perfectly(self, binary_data, grow_tree) -> None:
        """Given y == x, When predicting new rows, Then every prediction equals x."""
        # Arrange
        tree = grow_tree(binary_data)
        new_x = np.array([[0.0], [1.0], [1.0], [0.0]])

        # Act
        predictions = tree.predict(Data(new_x))

        # Assert
        assert np.array_equal(predictions, new_x.ravel())

    def test_root_gini_importance_is_root_impurity(self, binary_data, grow_tree) -> None:
        """Given a perfect root split, When grown, Then the importance equals the root impurity."""
        # Arrange
        counts = np.bincount(binary_data.response_class_ids)

        # Act
        tree = grow_tree(binary_data)

        # Assert
        assert tree.gini_importance[0] == pytest.approx(gini_impurity(counts))

    def test_duplicate_columns_keep_lower_variable(self, grow_tree) -> None:
        """Given two identical columns, When both are candidates, Then the lower ID wins the tie."""
        # Arrange
        x = np.tile(np.array([0.0, 1.0, 0.0, 1.0, 1.0, 0.0]), 5)
        data = Data(np.column_stack([x, x]), y=x)

        # Act
        tree = grow_tree(data, mtry=2)

        # Assert
        assert tree.split_var_ids[0] == 0


class TestLeafRules:
    """Tests for the conditions that turn a node into a leaf."""

    def test_pure_root_is_leaf_without_split_search(self, monkeypatch, grow_tree) -> None:
        """Given a single class, When grown, Then the root is a leaf and no split is searched."""
        # Arrange
        def _fail(self, possible_split_var_ids):
            raise AssertionError("split search should not run on a pure node")

        monkeypatch.setattr(BestSplitter, "node_split", _fail)
        data = Data(np.arange(20.0).reshape(10, 2), y=np.full(10, 4.0))

        # Act
        tree = grow_tree(data, mtry=2)

        # Assert
        with check:
            assert tree.num_nodes == 1
        with check:
            assert tree.is_leaf(0)
        with check:
            assert tree.split_values[0] == 4.0

    def test_constant_features_give_single_leaf(self, grow_tree) -> None:
        """Given constant features and mixed labels, When grown, Then the root is a leaf."""
        # Arrange
        data = Data(np.ones((6, 2)), y=[2, 2, 1, 2, 1, 2])

        # Act
        tree = grow_tree(data, mtry=2)

        # Assert
        with check:
            assert tree.num_nodes == 1
        with check:
            assert tree.split_values[0] == 2.0

    def test_majority_tie_resolves_to_smallest_class(self, grow_tree) -> None:
        """Given a class tie at a leaf, When estimated, Then the smallest class value wins."""
        # Arrange
        data = Data(np.zeros((4, 1)), y=[5, 3, 5, 3])

        # Act
        tree = grow_tree(data)

        # Assert
        assert tree.split_values[0] == 3.0

    @pytest.mark.parametrize("max_depth", [0, 1, 2, 3])
    def test_max_depth_limits_depth(self, mixed_data, grow_tree, max_depth) -> None:
        """Given max_depth, When grown, Then no node is deeper than max_depth."""
        # Act
        tree = grow_tree(mixed_data, mtry=2, max_depth=max_depth)

        # Assert
        assert tree.max_depth <= max_depth

    @pytest.mark.parametrize("min_node_size", [1, 5, 20])
    def test_min_node_size_bounds_children(self, mixed_data, grow_tree, min_node_size) -> None:
        """Given min_node_size, When grown, Then every child holds at least that many samples."""
        # Act
        tree = grow_tree(mixed_data, mtry=2, min_node_size=min_node_size)

        # Assert
        for node_id in range(1, tree.num_nodes):
            with check:
                assert len(tree.node_sample_ids(node_id)) >= min_node_size

    def test_small_node_is_leaf(self, grow_tree) -> None:
        """Given fewer than 2 * min_node_size samples, When grown, Then the root stays a leaf."""
        # Arrange
        data = Data(np.arange(9.0).reshape(-1, 1), y=[0, 1, 0, 1, 0, 1, 0, 1, 0])

        # Act
        tree = grow_tree(data, min_node_size=5)

        # Assert
        assert tree.num_nodes == 1

    def test_no_split_variables_are_never_used(self, mixed_data, grow_tree) -> None:
        """Given excluded variables, When grown, Then no split uses them."""
        # Act
        tree = grow_tree(mixed_data, mtry=2, no_split_variables=[0, 2])

        # Assert
        with check:
            assert tree.splittable_var_ids == [1, 3]
        with check:
            assert not {0, 2} & set(tree.split_var_ids)


class TestOrderedSplitSearch:
    """Tests for threshold splits on ordered variables."""

    def test_root_split_matches_brute_force(self, grow_tree) -> None:
        """Given all variables as candidates, When the root is split, Then its decrease is optimal."""
        # Arrange
        rng = np.random.default_rng(5)
        x = np.column_stack([
            rng.integers(0, 8, size=120),
            rng.normal(size=120),
            rng.uniform(size=120),
        ]).astype(np.float64)
        y = ((x[:, 0] > 3) ^ (rng.uniform(size=120) < 0.2)).astype(int) + (x[:, 2] > 0.8)
        data = Data(x, y=y)

        # Act
        tree = grow_tree(data, mtry=3, max_depth=1)

        # Assert
        with check:
            assert tree.num_nodes == 3
        with check:
            assert tree.gini_importance.sum() == pytest.approx(
                _brute_force_best_decrease(x, y), abs=1e-9)

    def test_threshold_is_midpoint(self, grow_tree) -> None:
        """Given classes separated between 2 and 7, When grown, Then the threshold is 4.5."""
        # Arrange
        data = Data(np.array([[1.0], [2.0], [2.0], [7.0], [9.0]]), y=[0, 0, 0, 1, 1])

        # Act
        tree = grow_tree(data)

        # Assert
        assert tree.split_values[0] == 4.5

    def test_equal_values_stay_together(self, grow_tree) -> None:
        """Given repeated feature values, When split, Then equal values go to the same child."""
        # Arrange
        x = np.array([0.0, 0.0, 1.0, 1.0, 1.0, 2.0, 2.0])
        data = Data(x.reshape(-1, 1), y=[0, 0, 0, 1, 1, 1, 1])

        # Act
        tree = grow_tree(data)

        # Assert
        for node_id in range(1, tree.num_nodes):
            node_values = x[tree.node_sample_ids(node_id)]
            sibling_pairs = [pair for pair in tree.child_node_ids if node_id in pair]
            sibling = [c for c in sibling_pairs[0] if c != node_id][0]
            with check:
                assert not set(node_values) & set(x[tree.node_sample_ids(sibling)])


class TestUnorderedSplitSearch:
    """Tests for level-subset splits on unordered variables."""

    def test_exhaustive_split_separates_level_groups(self, grow_tree) -> None:
        """Given levels {0, 3} vs {1, 2}, When grown, Then the mask sends {1, 2} left."""
        # Arrange
        levels = np.repeat(np.arange(4), 5)
        y = np.isin(levels, [0, 3]).astype(int)
        data = Data(levels.reshape(-1, 1), y=y, unordered_variables=[0])

        # Act
        tree = grow_tree(data)

        # Assert
        with check:
            assert tree.num_nodes == 3
        with check:
            assert tree.split_values[0] == 6.0
        with check:
            assert np.array_equal(tree.predict(data), y.astype(np.float64))

    def test_many_levels_use_majority_share_ordering(self, grow_tree) -> None:
        """Given 12 levels with even levels in class 1, When grown, Then one split sends even levels left."""
        # Arrange
        levels = np.repeat(np.arange(12), 10)
        y = (levels % 2 == 0).astype(int)
        data = Data(levels.reshape(-1, 1), y=y, unordered_variables=[0])

        # Act
        tree = grow_tree(data, max_exhaustive_levels=10)

        # Assert
        with check:
            assert tree.num_nodes == 3
        with check:
            assert tree.split_values[0] == float(sum(1 << level for level in range(0, 12, 2)))
        with check:
            assert np.array_equal(tree.predict(data), y.astype(np.float64))

    def test_single_level_variable_is_not_split(self, grow_tree) -> None:
        """Given an unordered variable with one level, When grown, Then the root is a leaf."""
        # Arrange
        data = Data(np.full((8, 1), 3.0), y=[0, 1] * 4, unordered_variables=[0])

        # Act
        tree = grow_tree(data)

        # Assert
        assert tree.num_nodes == 1

    def test_unseen_level_goes_right(self, grow_tree) -> None:
        """Given a level never seen in training, When predicting, Then it follows the right child."""
        # Arrange
        levels = np.repeat(np.arange(4), 5)
        data = Data(levels.reshape(-1, 1), y=np.isin(levels, [0, 3]).astype(int),
                    unordered_variables=[0])
        tree = grow_tree(data)

        # Act
        terminal = tree.apply(Data(np.array([[40.0]]), unordered_variables=[0]))

        # Assert
        assert terminal[0] == tree.child_node_ids[0][1]

    @pytest.mark.parametrize("n_levels", [2, 3, 5, 10])
    def test_all_bipartitions_count(self, n_levels) -> None:
        """Given k levels, When enumerating bipartitions, Then 2^(k-1) - 1 distinct ones appear."""
        # Act
        partitions = [tuple(p) for p in _all_level_bipartitions(n_levels)]

        # Assert
        with check:
            assert len(partitions) == 2 ** (n_levels - 1) - 1
        with check:
            assert len(set(partitions)) == len(partitions)
        with check:
            assert not any(p[-1] for p in partitions)


class TestEstimate:
    """Tests for ClassificationTree.estimate."""

    def test_estimate_is_idempotent_and_matches_leaf_value(self, mixed_data, grow_tree) -> None:
        """Given a grown tree, When estimating each leaf twice, Then both match the stored value."""
        # Arrange
        tree = grow_tree(mixed_data, mtry=2, max_depth=3)

        # Act & Assert
        for node_id in range(tree.num_nodes):
            if not tree.is_leaf(node_id):
                continue
            first = tree.estimate(node_id)
            with check:
                assert first == tree.estimate(node_id)
            with check:
                assert first == tree.split_values[node_id]

    def test_estimate_on_loaded_tree_raises(self, binary_data, grow_tree) -> None:
        """Given a tree loaded from bytes, When estimate is called, Then TreeNotGrownError is raised."""
        # Arrange
        loaded = ClassificationTree.loads(grow_tree(binary_data).dumps(), binary_data.class_values)

        # Act & Assert
        with pytest.raises(TreeNotGrownError):
            loaded.estimate(0)
