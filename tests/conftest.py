"""Shared fixtures for the rftree test suite."""

import numpy as np
import pytest

from rftree import ClassificationTree, Data, TreeParameters


def _grow_tree(data, sample_ids=None, oob_sample_ids=None, variable_importance=None,
               no_split_variables=(), **params):
    params.setdefault("seed", 42)
    tree = ClassificationTree(data.class_values, data.response_class_ids)
    if sample_ids is None:
        sample_ids = np.arange(data.num_rows)
    tree.init(data, sample_ids, oob_sample_ids, TreeParameters(**params), no_split_variables)
    tree.grow(variable_importance)
    return tree


@pytest.fixture
def grow_tree():
    """Factory that inits and grows a ClassificationTree on a Data object."""
    return _grow_tree


@pytest.fixture
def binary_data():
    """One binary feature with the label equal to the feature."""
    rng = np.random.default_rng(0)
    x = rng.integers(0, 2, size=200)
    return Data(x.reshape(-1, 1), y=x)


@pytest.fixture
def mixed_data():
    """Three-class data with numeric and one unordered (categorical) column.

    Columns: 0 uniform numeric, 1 normal numeric, 2 level codes 0..5,
    3 small integers treated as numeric.
    """
    rng = np.random.default_rng(7)
    n = 300
    x0 = rng.uniform(0.0, 1.0, size=n)
    x1 = rng.normal(size=n)
    x2 = rng.integers(0, 6, size=n)
    x3 = rng.integers(0, 4, size=n)
    score = x0 + 0.5 * np.isin(x2, [1, 4]) + 0.1 * x1
    y = np.digitize(score, [0.6, 1.1])
    x = np.column_stack([x0, x1, x2, x3]).astype(np.float64)
    return Data(x, y=y, unordered_variables=[2],
                variable_names=["usage", "noise", "plan", "tickets"])


@pytest.fixture
def signal_and_noise_data():
    """Label equals a binary feature; the second feature is pure noise."""
    rng = np.random.default_rng(11)
    n = 400
    signal = rng.integers(0, 2, size=n)
    noise = rng.uniform(0.0, 1.0, size=n)
    return Data(np.column_stack([signal, noise]), y=signal)
