"""Oracle registry.

Every registered oracle is a pure, JAX-traceable map from a vector of
shape ``(d,)`` to a scalar, so it works with both the threaded batch
mode and the scanned recursive mode.
"""

from expbary.oracles.quadratic import ShiftedQuadratic, sum_of_squares
from expbary.oracles.rastrigin import Rastrigin
from expbary.oracles.rosenbrock import Rosenbrock

ORACLES = {
    "sum_of_squares": sum_of_squares,
    "shifted_quadratic": ShiftedQuadratic,
    "rosenbrock": Rosenbrock,
    "rastrigin": Rastrigin,
}


def get_oracle(name: str, **params):
    """Look up an oracle by name.

    Plain functions are returned as-is (they take no parameters);
    classes are instantiated with *params*.

    Args:
        name: Oracle name (e.g. ``"sum_of_squares"``, ``"rosenbrock"``).
        **params: Forwarded to the oracle constructor.

    Returns:
        A callable satisfying the :class:`~expbary.types.Oracle` protocol.

    Raises:
        KeyError: If *name* is not in the registry.
        TypeError: If *params* are given for a parameterless oracle.
    """
    if name not in ORACLES:
        raise KeyError(f"Unknown oracle '{name}'. Available: {list(ORACLES)}")
    entry = ORACLES[name]
    if isinstance(entry, type):
        return entry(**params)
    if params:
        raise TypeError(f"Oracle '{name}' takes no parameters, got {sorted(params)}")
    return entry


__all__ = [
    "ORACLES",
    "get_oracle",
    "Rastrigin",
    "Rosenbrock",
    "ShiftedQuadratic",
    "sum_of_squares",
]
