# rftree/_utils.py
import numpy as np

# =============================================================================
# Random number generation
# =============================================================================

RAND_R_MAX = 2**31 - 1

_RAND_R_MULTIPLIER = 1103515245
_RAND_R_INCREMENT = 12345
_UINT32_MASK = 0xFFFFFFFF


def our_rand_r(state_ptr):
    """Linear congruential generator with 32-bit wraparound.

    The state lives in a one-element list so it can be advanced in place,
    which keeps candidate-variable draws identical across platforms for a
    given seed.
    """
    state = (state_ptr[0] * _RAND_R_MULTIPLIER + _RAND_R_INCREMENT) & _UINT32_MASK
    state_ptr[0] = state
    return state & 0x7FFFFFFF


def rand_int(low, high, random_state_ptr):
    """Generate a random integer in [low; high).

    Parameters
    ----------
    low : int
        Lower bound (inclusive)
    high : int
        Upper bound (exclusive)
    random_state_ptr : list with one element
        Random state that gets updated
    """
    if high <= low:
        return low
    return low + our_rand_r(random_state_ptr) % (high - low)


class RandomState:
    """Seeded source of the per-node candidate variable draws."""

    def __init__(self, seed=None):
        if seed is None:
            seed = np.random.randint(0, RAND_R_MAX)
        elif isinstance(seed, np.random.RandomState):
            seed = seed.randint(0, RAND_R_MAX)
        self.state = [int(seed) & _UINT32_MASK]

    def randint(self, low, high=None):
        if high is None:
            high = low
            low = 0
        return rand_int(low, high, self.state)

    def sample_without_replacement(self, population, k):
        """Draw ``k`` distinct items of ``population`` with a partial Fisher-Yates shuffle."""
        pool = list(population)
        n = len(pool)
        if k > n:
            raise ValueError(f"cannot draw {k} items from a population of {n}")
        for i in range(k):
            j = self.randint(i, n)
            pool[i], pool[j] = pool[j], pool[i]
        return pool[:k]


# =============================================================================
# Helper functions
# =============================================================================

def most_frequent_class(class_counts):
    """Index of the largest count; ties go to the smallest class index."""
    # np.argmax returns the first maximum
    return int(np.argmax(class_counts))


def class_counts_of(response_class_ids, sample_ids, n_classes):
    """Count class occurrences among ``sample_ids``."""
    return np.bincount(response_class_ids[sample_ids], minlength=n_classes).astype(np.int64)


MAX_LEVEL_CODE = 52


def levels_to_mask(levels):
    """Encode integer level codes as an exact float64 bitmask."""
    mask = 0
    for level in levels:
        mask |= 1 << int(level)
    return float(mask)


def level_in_mask(level, mask):
    """True if the bit for ``level`` is set in ``mask``."""
    return (int(mask) >> int(level)) & 1 == 1


def mask_to_levels(mask):
    """Decode a bitmask back into the sorted list of level codes it holds."""
    mask = int(mask)
    return [level for level in range(MAX_LEVEL_CODE + 1) if (mask >> level) & 1]
