# rftree/_params.py
import math
import numbers

from .exceptions import InvalidParameterError

ESTIMATE_MODES = ("class", "probability")


class TreeParameters:
    """Growth and estimation settings handed to a tree by its ensemble.

    Parameters
    ----------
    mtry : int or None
        Number of candidate split variables drawn per node. ``None`` means
        ``floor(sqrt(n_splittable))``.
    min_node_size : int
        Minimum number of samples in each child of a split.
    max_depth : int or None
        Nodes at this depth become leaves. ``None`` grows until pure.
    estimate_mode : {"class", "probability"}
        Whether leaves predict the majority class or class frequencies.
    max_exhaustive_levels : int
        Unordered variables with at most this many observed levels at a node
        are split by trying every bipartition.
    scale_gini_importance : bool
        Weight each split's impurity decrease by the fraction of in-bag
        samples reaching the node.
    seed : int or None
        Seed for the per-node candidate variable draws.
    """

    __slots__ = ('mtry', 'min_node_size', 'max_depth', 'estimate_mode',
                 'max_exhaustive_levels', 'scale_gini_importance', 'seed')

    def __init__(self, mtry=None, min_node_size=1, max_depth=None,
                 estimate_mode="class", max_exhaustive_levels=10,
                 scale_gini_importance=True, seed=None):
        self.mtry = mtry
        self.min_node_size = min_node_size
        self.max_depth = max_depth
        self.estimate_mode = estimate_mode
        self.max_exhaustive_levels = max_exhaustive_levels
        self.scale_gini_importance = scale_gini_importance
        self.seed = seed
        self.validate()

    def __repr__(self):
        fields = ", ".join(f"{name}={getattr(self, name)!r}" for name in self.__slots__)
        return f"TreeParameters({fields})"

    def validate(self):
        if self.mtry is not None and not _is_positive_int(self.mtry):
            raise InvalidParameterError("mtry", self.mtry, "must be a positive integer or None")
        if not _is_positive_int(self.min_node_size):
            raise InvalidParameterError("min_node_size", self.min_node_size,
                                        "must be a positive integer")
        if self.max_depth is not None and not (
                isinstance(self.max_depth, numbers.Integral) and self.max_depth >= 0):
            raise InvalidParameterError("max_depth", self.max_depth,
                                        "must be a non-negative integer or None")
        if self.estimate_mode not in ESTIMATE_MODES:
            raise InvalidParameterError("estimate_mode", self.estimate_mode,
                                        f"must be one of {ESTIMATE_MODES}")
        if not _is_positive_int(self.max_exhaustive_levels) or self.max_exhaustive_levels < 2:
            raise InvalidParameterError("max_exhaustive_levels", self.max_exhaustive_levels,
                                        "must be an integer >= 2")
        if self.seed is not None and not isinstance(self.seed, numbers.Integral):
            raise InvalidParameterError("seed", self.seed, "must be an integer or None")

    def resolve_mtry(self, n_splittable):
        """Number of candidates to draw given ``n_splittable`` variables."""
        if n_splittable < 1:
            raise InvalidParameterError("mtry", self.mtry, "no splittable variables")
        if self.mtry is None:
            return max(1, int(math.floor(math.sqrt(n_splittable))))
        if self.mtry > n_splittable:
            raise InvalidParameterError(
                "mtry", self.mtry,
                f"larger than the number of splittable variables ({n_splittable})")
        return self.mtry


def _is_positive_int(value):
    return isinstance(value, numbers.Integral) and not isinstance(value, bool) and value >= 1
