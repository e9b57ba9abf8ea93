"""Exponential weights and the weight-sum stability floors.

Costs become weights through ``w = exp(-nu * cost)``.  Sums of such
weights are divided by, so a batch sum that underflows (every candidate
catastrophically bad) is clamped to :data:`WEIGHT_FLOOR` and reported
with a :class:`~expbary.errors.NumericalDegeneracyWarning`.  A sum that
overflows cannot be recovered and is an oracle error.

The recursive running total uses :data:`TOTAL_FLOOR` instead.  Its
update ``step = curiosity * w / m'`` only depends on the ratio of the
weights, so a small but representable total is divided by as is and
only a total that underflowed to zero or a subnormal is replaced.
"""

import math
import warnings
from typing import Tuple

import jax.numpy as jnp
import numpy as np

from expbary.errors import InvalidOracle, NumericalDegeneracyWarning

WEIGHT_FLOOR = 1e-10
TOTAL_FLOOR = float(np.finfo(np.float64).tiny)   # smallest normal float64


def exponential_weights(
    costs: jnp.ndarray,   # (N,)
    nu: float,
) -> jnp.ndarray:         # (N,)
    """Map costs to unnormalized weights ``exp(-nu * cost)``."""
    return jnp.exp(-nu * jnp.asarray(costs))


def clamp_total(
    total: float,
    floor: float = WEIGHT_FLOOR,
    what: str = "weight_sum",
    stacklevel: int = 2,
) -> Tuple[float, bool]:
    """Clamp a weight sum from below so it is safe to divide by.

    Args:
        total: Sum of non-negative weights.
        floor: Smallest value allowed through.
        what: Name used in diagnostics.
        stacklevel: Passed to :func:`warnings.warn`.  The default
            points at the caller of this function.

    Returns:
        Tuple ``(total, clamped)`` where ``clamped`` tells whether the
        floor was applied.

    Raises:
        InvalidOracle: If *total* is NaN or infinite.
    """
    total = float(total)
    if not math.isfinite(total):
        raise InvalidOracle(
            f"{what} is {total}; oracle costs are too negative for this nu"
        )
    if total < floor:
        warnings.warn(
            f"{what} ({total:.3e}) is too small, adjusting to {floor:g} "
            "to avoid division by zero",
            NumericalDegeneracyWarning,
            stacklevel=stacklevel,
        )
        return floor, True
    return total, False


def normalize_weights(
    weights: jnp.ndarray,   # (N,)
    floor: float = WEIGHT_FLOOR,
    stacklevel: int = 2,
) -> jnp.ndarray:           # (N,)
    """Divide weights by their (clamped) sum.

    The result sums to 1 except when the floor was applied, in which
    case it sums to less than 1.  The default *stacklevel* points the
    warning at the caller.
    """
    total, _ = clamp_total(jnp.sum(weights), floor, stacklevel=stacklevel + 1)
    return weights / total


def effective_sample_size(
    weights: jnp.ndarray,   # (N,)
) -> float:
    """Kish effective sample size ``(Σw)² / Σw²``.

    Equals N for uniform weights and 1 when a single weight dominates.
    Returns 0.0 when every weight is zero.
    """
    w = jnp.asarray(weights)
    sq = float(jnp.sum(w ** 2))
    if sq == 0.0:
        return 0.0
    return float(jnp.sum(w)) ** 2 / sq
