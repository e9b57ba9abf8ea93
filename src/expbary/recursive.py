"""Recursive (online) barycenter estimation.

Starting from ``x0``, each iteration perturbs the running estimate,
scores the perturbed probe, and folds the result into a decayed
running weight total:

    curiosity = sigma * noise - zeta * prev_step     (zeta term dropped on iteration 1)
    probe     = estimate + curiosity
    weight    = exp(-nu * oracle(probe))
    m'        = lambda_ * m + weight                 (floored only if it underflows)
    step      = curiosity * weight / m'
    estimate' = estimate + step

The loop runs for exactly ``config.iterations`` steps.  The per-step
key is ``fold_in(key, t)``, so :func:`run` (Python loop, any oracle) and
:func:`run_scan` (fused ``lax.scan``, JAX-traceable oracles only) give
the same trajectory for the same key.
"""

import secrets
import warnings
from typing import Callable, Dict, Optional, Tuple

import jax
import jax.numpy as jnp

from expbary.errors import DimensionMismatch, InvalidOracle, NumericalDegeneracyWarning
from expbary.types import (
    DEFAULT_ITERATIONS,
    DEFAULT_LAMBDA,
    DEFAULT_NU,
    DEFAULT_SIGMA,
    DEFAULT_ZETA,
    ArrayLike,
    Oracle,
    RecursiveConfig,
    RecursiveState,
    as_vector,
    evaluate_cost,
)
from expbary.weights import TOTAL_FLOOR, clamp_total


def resolve_key(
    key: Optional[jax.Array] = None,
    seed: Optional[int] = None,
) -> jax.Array:
    """Pick the PRNG key for one run.

    An explicit *key* wins, then *seed*.  With neither, a fresh key is
    drawn from OS entropy, so unseeded runs are not reproducible.
    """
    if key is not None:
        return key
    if seed is not None:
        return jax.random.PRNGKey(seed)
    return jax.random.PRNGKey(secrets.randbits(32))


# ---------------------------------------------------------------------------
# Init / propose / fold
# ---------------------------------------------------------------------------

def init(x0: ArrayLike) -> RecursiveState:
    """Initial state: zero weight total, estimate ``x0``, no history.

    Raises:
        InvalidArgument: If *x0* is not a non-empty finite vector.
    """
    estimate = as_vector(x0, name="x0")
    return RecursiveState(
        weight_total=jnp.zeros((), dtype=estimate.dtype),
        estimate=estimate,
        prev_step=jnp.zeros_like(estimate),
        step=jnp.zeros((), dtype=jnp.int32),
    )


def propose(
    key: jax.Array,
    state: RecursiveState,
    config: RecursiveConfig,
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Sample curiosity and form the probe point.

    Args:
        key: JAX PRNG key (consumed; do not reuse).
        state: Current state.
        config: Run configuration.

    Returns:
        Tuple ``(curiosity, probe)``, both shape ``(d,)``.

    Raises:
        DimensionMismatch: If ``prev_step`` and ``estimate`` differ in
            length.
    """
    if state.prev_step.shape != state.estimate.shape:
        raise DimensionMismatch(
            "prev_step and estimate vectors must have the same size. "
            f"Estimate size: {state.estimate.shape[0]}, "
            f"prev_step size: {state.prev_step.shape[0]}"
        )
    d = state.estimate.shape[0]
    noise = config.sigma * jax.random.normal(key, (d,), dtype=state.estimate.dtype)
    # Before the first update there is no previous step to damp against.
    curiosity = jnp.where(
        state.step > 0, noise - config.zeta * state.prev_step, noise,
    )
    return curiosity, state.estimate + curiosity


def fold(
    state: RecursiveState,
    curiosity: jnp.ndarray,   # (d,)
    cost: float,
    config: RecursiveConfig,
) -> Tuple[RecursiveState, Dict[str, jnp.ndarray]]:
    """Fold one scored probe into the running estimate.

    Pure array code with no Python branching on values, so it can run
    inside ``jax.lax.scan``.  Validation of *cost* and of the new total
    is left to the caller.

    Returns:
        Tuple ``(new_state, info)`` with info keys ``"cost"``,
        ``"weight"``, ``"raw_total"`` (before the floor) and
        ``"clamped"``.
    """
    dtype = state.estimate.dtype
    cost = jnp.asarray(cost, dtype=dtype)
    weight = jnp.exp(-config.nu * cost)
    raw_total = config.lambda_ * state.weight_total + weight
    # Only the ratio weight / m' matters, so a small total is kept as is.
    # A total that underflowed to zero or a subnormal is replaced.
    weight_total = jnp.maximum(raw_total, TOTAL_FLOOR)

    step_vec = curiosity * weight / weight_total

    new_state = RecursiveState(
        weight_total=weight_total,
        estimate=state.estimate + step_vec,
        prev_step=step_vec,
        step=state.step + 1,
    )
    info = {
        "cost": cost,
        "weight": weight,
        "raw_total": raw_total,
        "clamped": raw_total < TOTAL_FLOOR,
    }
    return new_state, info


_propose_jit = jax.jit(propose, static_argnames="config")
_fold_jit = jax.jit(fold, static_argnames="config")


# ---------------------------------------------------------------------------
# Step / run
# ---------------------------------------------------------------------------

def step(
    key: jax.Array,
    state: RecursiveState,
    oracle: Oracle,
    config: RecursiveConfig,
) -> Tuple[RecursiveState, Dict[str, jnp.ndarray]]:
    """Execute one recursive iteration eagerly.

    The oracle is called once, outside of any JAX trace, so it may be
    arbitrary Python.

    Raises:
        InvalidOracle: Non-scalar or non-finite cost, or a weight total
            that overflowed.
    """
    curiosity, probe = _propose_jit(key, state, config=config)
    cost = evaluate_cost(oracle, probe)
    new_state, info = _fold_jit(state, curiosity, cost, config=config)
    clamp_total(
        info["raw_total"], floor=TOTAL_FLOOR, what="weight_total", stacklevel=3,
    )
    return new_state, info


def run(
    oracle: Oracle,
    x0: ArrayLike,
    config: Optional[RecursiveConfig] = None,
    key: Optional[jax.Array] = None,
    seed: Optional[int] = None,
) -> RecursiveState:
    """Run the recursive estimator as a Python loop.

    Args:
        oracle: Scalar cost function.
        x0: Initial point, shape ``(d,)``.
        config: Run configuration.  Defaults to :class:`RecursiveConfig`.
        key: PRNG key.  See :func:`resolve_key`.
        seed: Integer seed used when *key* is not given.

    Returns:
        Final :class:`RecursiveState`.
    """
    config = RecursiveConfig() if config is None else config
    key = resolve_key(key, seed)
    state = init(x0)
    for t in range(config.iterations):
        state, _ = step(jax.random.fold_in(key, t), state, oracle, config)
    return state


def make_scan(oracle: Oracle, config: RecursiveConfig) -> Callable:
    """Build a JIT-compiled scan runner for one oracle/config pair.

    The returned function compiles on its first call and is reused for
    later calls with the same state shape, so several seeds can share
    one compilation.

    Args:
        oracle: JAX-traceable cost function (captured by closure).
        config: Run configuration (captured by closure, static for JIT).

    Returns:
        ``scan_all(state, key_base) -> (final_state, bad, n_clamped)``
        where ``bad`` flags a non-finite cost or total and ``n_clamped``
        counts underflowed totals.
    """
    @jax.jit
    def scan_all(state, key_base):
        def scan_body(carry, t):
            state, bad, n_clamped = carry
            curiosity, probe = propose(jax.random.fold_in(key_base, t), state, config)
            cost = oracle(probe)
            if jnp.ndim(cost) != 0:
                raise InvalidOracle(
                    "Oracle function must evaluate as a scalar value, "
                    f"got shape {jnp.shape(cost)}"
                )
            new_state, info = fold(state, curiosity, cost, config)
            bad = bad | ~jnp.isfinite(info["cost"]) | ~jnp.isfinite(new_state.weight_total)
            n_clamped = n_clamped + info["clamped"].astype(jnp.int32)
            return (new_state, bad, n_clamped), None

        carry = (state, jnp.array(False), jnp.zeros((), dtype=jnp.int32))
        (final, bad, n_clamped), _ = jax.lax.scan(
            scan_body, carry, jnp.arange(config.iterations),
        )
        return final, bad, n_clamped

    return scan_all


def run_scan(
    oracle: Oracle,
    x0: ArrayLike,
    config: Optional[RecursiveConfig] = None,
    key: Optional[jax.Array] = None,
    seed: Optional[int] = None,
    scan: Optional[Callable] = None,
) -> RecursiveState:
    """Run the recursive estimator as one JIT-compiled ``lax.scan``.

    *oracle* must be traceable by JAX.  Errors cannot be raised from
    inside the scan, so non-finite costs and overflowed totals are
    flagged in the carry and raised once the scan returns; underflow
    clamps are counted and reported with a single warning.

    Same arguments and return value as :func:`run`, plus *scan*: a
    runner from :func:`make_scan` built for the same *oracle* and
    *config*, reused to skip recompilation.  Built fresh when omitted.
    """
    config = RecursiveConfig() if config is None else config
    key = resolve_key(key, seed)
    state = init(x0)
    if scan is None:
        scan = make_scan(oracle, config)

    final, bad, n_clamped = scan(state, key)

    if bool(bad):
        raise InvalidOracle(
            "Oracle returned a non-finite cost or the weight total overflowed "
            "during the run"
        )
    if int(n_clamped) > 0:
        warnings.warn(
            f"weight_total underflowed below {TOTAL_FLOOR:g} on {int(n_clamped)} of "
            f"{config.iterations} iterations and was clamped",
            NumericalDegeneracyWarning,
            stacklevel=2,
        )
    return final


def bary_recursive(
    oracle: Oracle,
    x0: ArrayLike,
    nu: float = DEFAULT_NU,
    sigma: float = DEFAULT_SIGMA,
    zeta: float = DEFAULT_ZETA,
    lambda_: float = DEFAULT_LAMBDA,
    iterations: int = DEFAULT_ITERATIONS,
    *,
    key: Optional[jax.Array] = None,
    seed: Optional[int] = None,
    jit: bool = False,
) -> Tuple[float, jnp.ndarray]:
    """Recursive barycenter with keyword configuration.

    Args:
        oracle: Scalar cost function.
        x0: Initial point.
        nu: Inverse temperature.
        sigma: Curiosity standard deviation.
        zeta: Damping on the previous step.
        lambda_: Decay on the accumulated weight total.
        iterations: Exact number of updates (must be positive).
        key: PRNG key.  Takes precedence over *seed*.
        seed: Integer seed.
        jit: Use :func:`run_scan` (oracle must be JAX-traceable).

    Returns:
        Tuple ``(weight_total, estimate)``.

    Raises:
        InvalidArgument: Bad configuration, including ``iterations <= 0``.
        InvalidOracle: Unusable oracle output.
    """
    config = RecursiveConfig(
        nu=nu, sigma=sigma, zeta=zeta, lambda_=lambda_, iterations=iterations,
    )
    runner = run_scan if jit else run
    state = runner(oracle, x0, config, key=resolve_key(key, seed))
    return float(state.weight_total), state.estimate
