"""Exceptions raised by rftree.

- TreeError: Base class for every error raised by a tree.
- TreeLoadError: A serialized tree body is malformed (subclass ValueError).
- TreeNotGrownError: An operation needs a grown or initialized tree
  (subclass RuntimeError).
- InvalidParameterError: A tree parameter is out of range (subclass ValueError).
"""


class TreeError(Exception):
    """Base class for all tree errors."""


class TreeLoadError(TreeError, ValueError):
    """Raised when a serialized tree cannot be reconstructed.

    Attributes:
        node_id (int | None): Offending node, when the error is tied to one.
    """

    def __init__(self, message, node_id=None):
        if node_id is not None:
            message = f"node {node_id}: {message}"
        super().__init__(message)
        self.node_id = node_id


class TreeNotGrownError(TreeError, RuntimeError):
    """Raised when predicting or scoring before the tree has any nodes."""


class InvalidParameterError(TreeError, ValueError):
    """Raised when a tree parameter is invalid.

    Attributes:
        name (str): Parameter name.
        value: The rejected value.
    """

    def __init__(self, name, value, reason):
        super().__init__(f"invalid value for {name!r}: {value!r} ({reason})")
        self.name = name
        self.value = value
