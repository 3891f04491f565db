"""Exception types raised while building scenes and configuring renders.

Kernels never raise: degenerate numeric cases inside the trace are treated as
a miss or an absorbed path. Everything that can be rejected up front is
rejected here, before any ray is traced.
"""


class SceneConstructionError(ValueError):
    """Raised when a primitive or material cannot be added to a scene."""


class ConfigurationError(ValueError):
    """Raised when camera or render settings are invalid."""
