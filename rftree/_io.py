"""Binary layout of a serialized tree body.

    header      struct "<4sHQ": magic b"RFCT", format version, node count
    node table  node count records of NODE_DTYPE, in nodeID order
    trailer     written by the tree variant (see append_to_file_internal)

All fields are little endian. Split values are stored as raw float64 so
thresholds survive a round trip bit for bit.
"""

import struct

import numpy as np

from .exceptions import TreeLoadError

MAGIC = b"RFCT"
FORMAT_VERSION = 1

HEADER = struct.Struct("<4sHQ")

NODE_DTYPE = np.dtype([
    ('left_child', '<i8'),
    ('right_child', '<i8'),
    ('split_var_id', '<i8'),
    ('split_value', '<f8'),
])


def read_exact(file, n_bytes, what):
    """Read ``n_bytes`` or fail with TreeLoadError."""
    buf = file.read(n_bytes)
    if len(buf) != n_bytes:
        raise TreeLoadError(
            f"truncated {what}: expected {n_bytes} bytes, got {len(buf)}")
    return buf


def write_node_table(file, child_node_ids, split_var_ids, split_values):
    """Write the header and node table."""
    n_nodes = len(child_node_ids)
    if not n_nodes == len(split_var_ids) == len(split_values):
        raise ValueError(
            "node arrays differ in length: "
            f"{n_nodes}, {len(split_var_ids)}, {len(split_values)}")

    table = np.zeros(n_nodes, dtype=NODE_DTYPE)
    if n_nodes:
        children = np.asarray(child_node_ids, dtype=np.int64).reshape(n_nodes, 2)
        table['left_child'] = children[:, 0]
        table['right_child'] = children[:, 1]
        table['split_var_id'] = split_var_ids
        table['split_value'] = split_values

    file.write(HEADER.pack(MAGIC, FORMAT_VERSION, n_nodes))
    file.write(table.tobytes())


def read_node_table(file):
    """Read the header and node table.

    Returns
    -------
    child_node_ids : list of [left, right]
    split_var_ids : list of int
    split_values : list of float
    """
    magic, version, n_nodes = HEADER.unpack(read_exact(file, HEADER.size, "header"))
    if magic != MAGIC:
        raise TreeLoadError(f"bad magic {magic!r}, expected {MAGIC!r}")
    if version != FORMAT_VERSION:
        raise TreeLoadError(f"unsupported format version {version}")

    buf = read_exact(file, n_nodes * NODE_DTYPE.itemsize, "node table")
    table = np.frombuffer(buf, dtype=NODE_DTYPE, count=n_nodes)

    child_node_ids = [[int(left), int(right)]
                      for left, right in zip(table['left_child'], table['right_child'])]
    split_var_ids = [int(v) for v in table['split_var_id']]
    split_values = [float(v) for v in table['split_value']]
    return child_node_ids, split_var_ids, split_values


def write_float_table(file, rows, n_cols):
    """Write a 2-d float64 table row by row."""
    table = np.asarray(rows, dtype='<f8').reshape(len(rows), n_cols)
    file.write(table.tobytes())


def read_float_table(file, n_rows, n_cols, what):
    buf = read_exact(file, n_rows * n_cols * 8, what)
    return np.frombuffer(buf, dtype='<f8').reshape(n_rows, n_cols).copy()
