# rftree/_importance.py
import threading

import numpy as np


class VariableImportance:
    """Per-variable importance totals shared by all trees of an ensemble.

    Trees grown in separate threads add their contributions concurrently;
    each variable slot has its own lock so updates to different variables
    never wait on each other. Trees only ever add.
    """

    def __init__(self, num_variables):
        self.num_variables = num_variables
        self._values = np.zeros(num_variables, dtype=np.float64)
        self._counts = np.zeros(num_variables, dtype=np.int64)
        self._locks = [threading.Lock() for _ in range(num_variables)]

    def add(self, var_id, value):
        """Add ``value`` to the total of ``var_id``."""
        with self._locks[var_id]:
            self._values[var_id] += value
            self._counts[var_id] += 1

    def add_array(self, values):
        """Add one contribution per variable, skipping NaN entries."""
        for var_id, value in enumerate(values):
            if not np.isnan(value):
                self.add(var_id, value)

    def values(self):
        """Snapshot of the accumulated totals."""
        out = np.empty(self.num_variables, dtype=np.float64)
        for var_id, lock in enumerate(self._locks):
            with lock:
                out[var_id] = self._values[var_id]
        return out

    def counts(self):
        """Number of contributions added per variable."""
        out = np.empty(self.num_variables, dtype=np.int64)
        for var_id, lock in enumerate(self._locks):
            with lock:
                out[var_id] = self._counts[var_id]
        return out

    def mean(self, num_trees):
        """Totals divided by the number of trees that contributed."""
        if num_trees <= 0:
            raise ValueError(f"num_trees must be positive, got {num_trees}")
        return self.values() / num_trees

    def reset(self):
        for var_id, lock in enumerate(self._locks):
            with lock:
                self._values[var_id] = 0.0
                self._counts[var_id] = 0
