"""
rftree - classification decision trees for random forests

Trees are stored as flat arrays indexed by nodeID, grown with the Gini
criterion over a per-node random subset of candidate variables, and
serialized to a fixed binary layout.
"""

from loguru import logger

from ._classification import ClassificationTree
from ._data import Data
from ._importance import VariableImportance
from ._params import TreeParameters
from ._tree import TREE_LEAF, TREE_UNDEFINED, Tree
from .exceptions import (
    InvalidParameterError,
    TreeError,
    TreeLoadError,
    TreeNotGrownError,
)
from .logging import PACKAGE_NAME, enable_logging

logger.disable(PACKAGE_NAME)

__all__ = [
    'ClassificationTree',
    'Data',
    'InvalidParameterError',
    'TREE_LEAF',
    'TREE_UNDEFINED',
    'Tree',
    'TreeError',
    'TreeLoadError',
    'TreeNotGrownError',
    'TreeParameters',
    'VariableImportance',
    'enable_logging',
]
