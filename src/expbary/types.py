"""Core types for exponentially-weighted barycenter estimation.

Defines the Oracle protocol, the two frozen configs, and the state
carried across recursive iterations.  Input validation for vectors,
candidate sets, and oracle outputs lives here too so that batch and
recursive mode reject bad inputs the same way.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import NamedTuple, Optional, Protocol, Sequence, Union, runtime_checkable

import jax
import jax.numpy as jnp
import numpy as np

from expbary.errors import InvalidArgument, InvalidOracle

DEFAULT_NU = 3.0
DEFAULT_LAMBDA = 1.0
DEFAULT_SIGMA = 0.5
DEFAULT_ZETA = 0.0
DEFAULT_ITERATIONS = 1000

ArrayLike = Union[jax.Array, np.ndarray, Sequence[float]]


# ---------------------------------------------------------------------------
# Oracle protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class Oracle(Protocol):
    """Protocol for scalar cost functions.

    Any callable mapping a vector of shape ``(d,)`` to a scalar satisfies
    this protocol.  Oracles must be pure: batch mode calls them from
    several threads at once without synchronization.
    """

    def __call__(self, x: jnp.ndarray) -> Union[float, jnp.ndarray]:
        ...


def evaluate_cost(oracle: Oracle, x: jnp.ndarray) -> float:
    """Call *oracle* on *x* and check that the result is a usable cost.

    Exceptions raised by the oracle itself propagate unchanged.

    Args:
        oracle: Scalar cost function.
        x: Point to evaluate, shape ``(d,)``.

    Returns:
        The cost as a Python float.

    Raises:
        InvalidOracle: If the oracle returns a non-scalar or a
            non-finite value.
    """
    value = oracle(x)
    if jnp.ndim(value) != 0:
        raise InvalidOracle(
            "Oracle function must evaluate as a scalar value, "
            f"got shape {jnp.shape(value)}"
        )
    cost = float(value)
    if not math.isfinite(cost):
        raise InvalidOracle(f"Oracle returned a non-finite cost ({cost})")
    return cost


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def as_vector(x: ArrayLike, name: str = "x") -> jnp.ndarray:
    """Convert *x* to a finite float64 vector of shape ``(d,)``, d >= 1."""
    arr = jnp.asarray(x, dtype=jnp.float64)
    if arr.ndim != 1 or arr.shape[0] == 0:
        raise InvalidArgument(
            f"{name} must be a non-empty 1-D vector, got shape {arr.shape}"
        )
    if not bool(jnp.all(jnp.isfinite(arr))):
        raise InvalidArgument(f"{name} contains non-finite entries")
    return arr


def as_candidates(candidates: Union[ArrayLike, Sequence[ArrayLike]]) -> jnp.ndarray:
    """Stack a candidate set into an array of shape ``(N, d)``.

    Accepts a sequence of vectors or an existing 2-D array.

    Raises:
        InvalidArgument: If the set is empty, a candidate is not a
            vector, or the candidates do not share one length.
    """
    if getattr(candidates, "ndim", None) == 2:
        arr = jnp.asarray(candidates, dtype=jnp.float64)
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise InvalidArgument(f"Candidate set is empty (shape {arr.shape})")
        if not bool(jnp.all(jnp.isfinite(arr))):
            raise InvalidArgument("Candidates contain non-finite entries")
        return arr

    rows = [as_vector(c, name=f"candidates[{i}]") for i, c in enumerate(candidates)]
    if not rows:
        raise InvalidArgument("Candidate set is empty")

    lengths = sorted({int(r.shape[0]) for r in rows})
    if len(lengths) > 1:
        raise InvalidArgument(
            f"All candidates must have the same length, got lengths {lengths}"
        )
    return jnp.stack(rows)


def _require_finite(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidArgument(f"{name} must be a real number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidArgument(f"{name} must be finite, got {value}")


# ---------------------------------------------------------------------------
# Batch config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BatchConfig:
    """Configuration for one batch barycenter computation.

    Attributes:
        nu: Inverse temperature.  Higher values concentrate weight on
            low-cost candidates.
        allow_zero_cost: Skip the legacy check that rejects a first
            candidate whose cost is exactly ``0.0``.  The check fires on
            legitimate zero-cost optima, so callers who know their
            oracle can reach zero should set this.
        max_workers: Thread pool size for oracle evaluation.  ``None``
            runs one worker per candidate.
    """

    nu: float = DEFAULT_NU
    allow_zero_cost: bool = False
    max_workers: Optional[int] = None

    def __post_init__(self):
        _require_finite("nu", self.nu)
        if self.max_workers is not None and (
            isinstance(self.max_workers, bool)
            or not isinstance(self.max_workers, numbers.Integral)
            or self.max_workers <= 0
        ):
            raise InvalidArgument(
                f"max_workers must be a positive integer or None, got {self.max_workers!r}"
            )


# ---------------------------------------------------------------------------
# Recursive config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecursiveConfig:
    """Configuration for a recursive barycenter run.

    Frozen so it can be passed as a static argument to ``jax.jit``.

    Attributes:
        nu: Inverse temperature, as in batch mode.
        sigma: Standard deviation of the per-component Gaussian
            curiosity.  ``0.0`` leaves the estimate where it started.
        zeta: Coefficient on the previous step subtracted from fresh
            noise.  ``0.0`` gives i.i.d. curiosity.
        lambda_: Decay applied to the accumulated weight total before
            the new weight is added.  ``1.0`` is a plain running sum.
        iterations: Exact number of updates.  There is no early stop.
    """

    nu: float = DEFAULT_NU
    sigma: float = DEFAULT_SIGMA
    zeta: float = DEFAULT_ZETA
    lambda_: float = DEFAULT_LAMBDA
    iterations: int = DEFAULT_ITERATIONS

    def __post_init__(self):
        for name in ("nu", "sigma", "zeta", "lambda_"):
            _require_finite(name, getattr(self, name))
        if self.sigma < 0.0:
            raise InvalidArgument(f"sigma must be >= 0, got {self.sigma}")
        if self.lambda_ < 0.0:
            raise InvalidArgument(f"lambda_ must be >= 0, got {self.lambda_}")
        if isinstance(self.iterations, bool) or not isinstance(
            self.iterations, numbers.Integral
        ):
            raise InvalidArgument(
                f"iterations must be an integer, got {self.iterations!r}"
            )
        if self.iterations <= 0:
            raise InvalidArgument(
                f"iterations must be positive, got {self.iterations}"
            )


# ---------------------------------------------------------------------------
# Recursive state - a JAX-compatible NamedTuple (native pytree)
# ---------------------------------------------------------------------------

class RecursiveState(NamedTuple):
    """State carried across recursive iterations.

    All fields are concrete arrays so the pytree structure is stable
    under ``jax.lax.scan``.

    Attributes:
        weight_total: Decayed running sum of weights, scalar.
        estimate: Current barycenter estimate, shape ``(d,)``.
        prev_step: Displacement applied by the previous iteration,
            shape ``(d,)``.  Zeros before the first update; never read
            while ``step == 0``.
        step: Number of completed iterations, scalar int32.
    """

    weight_total: jnp.ndarray  # ()
    estimate: jnp.ndarray      # (d,)
    prev_step: jnp.ndarray     # (d,)
    step: jnp.ndarray          # () int32
