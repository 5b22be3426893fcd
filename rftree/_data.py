# rftree/_data.py
import numpy as np
from scipy.sparse import issparse
from sklearn.utils import check_array, check_random_state, column_or_1d

from ._utils import MAX_LEVEL_CODE

DOUBLE = np.float64


class Data:
    """Feature matrix and class response consumed by the trees.

    Parameters
    ----------
    x : array-like or scipy sparse matrix of shape (n_samples, n_features)
        Feature values. Unordered (categorical) columns hold integer level
        codes in ``[0, 52]``.
    y : array-like of shape (n_samples,), optional
        Numeric class labels. Required for growing trees, not for prediction.
    unordered_variables : iterable of int
        Column indices to split by level subsets instead of thresholds.
    variable_names : sequence of str, optional
    """

    def __init__(self, x, y=None, unordered_variables=(), variable_names=None):
        if issparse(x):
            x = check_array(x, accept_sparse=("csr", "csc"), dtype=DOUBLE)
            self._csr = x.tocsr()
            self._csc = x.tocsc()
            self._dense = None
        else:
            x = check_array(x, dtype=DOUBLE)
            self._dense = x
            self._csr = self._csc = None

        self.num_rows, self.num_cols = x.shape

        if variable_names is None:
            variable_names = [f"x{j}" for j in range(self.num_cols)]
        elif len(variable_names) != self.num_cols:
            raise ValueError(
                f"got {len(variable_names)} variable names for {self.num_cols} columns")
        self.variable_names = list(variable_names)

        self.unordered_variables = frozenset(int(j) for j in unordered_variables)
        for var_id in sorted(self.unordered_variables):
            if not 0 <= var_id < self.num_cols:
                raise ValueError(f"unordered variable {var_id} out of range")
            self._check_level_codes(var_id)

        self.class_values = None
        self.response_class_ids = None
        if y is not None:
            y = column_or_1d(y, warn=True)
            if y.shape[0] != self.num_rows:
                raise ValueError(
                    f"y has {y.shape[0]} samples, expected {self.num_rows}")
            class_values, response_class_ids = np.unique(
                np.asarray(y, dtype=DOUBLE), return_inverse=True)
            self.class_values = class_values
            self.response_class_ids = response_class_ids.astype(np.intp)

    def _check_level_codes(self, var_id):
        values = self.column(var_id)
        if np.any(values != np.floor(values)) or np.any(values < 0) or np.any(values > MAX_LEVEL_CODE):
            raise ValueError(
                f"unordered variable {var_id} must hold integer level codes "
                f"in [0, {MAX_LEVEL_CODE}]")

    @property
    def is_sparse(self):
        return self._dense is None

    def is_ordered(self, var_id):
        return var_id not in self.unordered_variables

    def get(self, row, col):
        if self._dense is not None:
            return self._dense[row, col]
        return self._csr[row, col]

    def row(self, row):
        """Dense copy of one sample's feature values."""
        if self._dense is not None:
            return self._dense[row].copy()
        return self._csr[row].toarray().ravel()

    def column(self, col, rows=None):
        """Values of one variable, optionally restricted to ``rows``."""
        if self._dense is not None:
            values = self._dense[:, col]
            return values.copy() if rows is None else values[rows]
        values = self._csc[:, [col]].toarray().ravel()
        return values if rows is None else values[rows]

    def bootstrap(self, random_state=None, sample_fraction=1.0, replace=True):
        """Draw in-bag samples for one tree.

        Returns
        -------
        sample_ids : ndarray of intp
            Sorted in-bag sample indices (with repeats when ``replace``).
        oob_sample_ids : ndarray of intp
            Sorted indices of samples never drawn.
        """
        if not 0.0 < sample_fraction <= 1.0:
            raise ValueError(f"sample_fraction must be in (0, 1], got {sample_fraction}")
        rng = check_random_state(random_state)
        n_inbag = max(1, int(self.num_rows * sample_fraction))

        if replace:
            sample_ids = rng.randint(0, self.num_rows, size=n_inbag)
        else:
            sample_ids = rng.permutation(self.num_rows)[:n_inbag]

        inbag_counts = np.bincount(sample_ids, minlength=self.num_rows)
        oob_sample_ids = np.flatnonzero(inbag_counts == 0)
        return np.sort(sample_ids).astype(np.intp), oob_sample_ids.astype(np.intp)
