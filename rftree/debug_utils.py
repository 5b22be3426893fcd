# rftree/debug_utils.py
import numpy as np

from ._utils import mask_to_levels


def format_tree_structure(tree, variable_names=None, unordered_variables=(), node_id=0, depth=0):
    """Render the tree as indented text, one node per line."""
    indent = "  " * depth
    left, right = tree.child_node_ids[node_id]

    if tree.is_leaf(node_id):
        line = f"{indent}leaf {node_id}: predict {tree.split_values[node_id]!r}"
        counts = getattr(tree, "terminal_class_counts", None)
        if getattr(tree, "estimate_mode", "class") == "probability" and counts:
            line += f" {np.round(counts[node_id], 4).tolist()}"
        return line

    var_id = tree.split_var_ids[node_id]
    name = variable_names[var_id] if variable_names is not None else f"x{var_id}"
    if var_id in unordered_variables:
        condition = f"{name} in {mask_to_levels(tree.split_values[node_id])}"
    else:
        condition = f"{name} <= {tree.split_values[node_id]!r}"

    lines = [f"{indent}node {node_id}: {condition}"]
    for child in (left, right):
        lines.append(format_tree_structure(
            tree, variable_names, unordered_variables, child, depth + 1))
    return "\n".join(lines)


def compare_tree_structures(tree1, tree2):
    """NodeIDs whose children, split variable or split value differ.

    Split values are compared bit for bit. Nodes present in only one tree
    are reported too.
    """
    n_common = min(tree1.num_nodes, tree2.num_nodes)
    differing = []

    for i in range(n_common):
        same_value = (np.float64(tree1.split_values[i]).tobytes()
                      == np.float64(tree2.split_values[i]).tobytes())
        if (list(tree1.child_node_ids[i]) != list(tree2.child_node_ids[i])
                or tree1.split_var_ids[i] != tree2.split_var_ids[i]
                or not same_value):
            differing.append(i)

    differing.extend(range(n_common, max(tree1.num_nodes, tree2.num_nodes)))
    return differing
