"""Batch barycenter over a fixed candidate set.

Every candidate is scored once by the oracle, the scores become
exponential weights, and the result is the weighted mean:

    w_i = exp(-nu * oracle(x_i))
    x_bar = sum_i (w_i / sum_j w_j) * x_i

Oracle evaluations are independent, so they run as one task per
candidate on a thread pool.  All tasks are submitted before any result
is awaited, and aggregation starts only after every task has finished.
No cancellation or timeout is applied: a hung oracle blocks the batch.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

import jax.numpy as jnp

from expbary.errors import InvalidOracle
from expbary.types import (
    DEFAULT_NU,
    ArrayLike,
    BatchConfig,
    Oracle,
    as_candidates,
    evaluate_cost,
)
from expbary.weights import exponential_weights, normalize_weights


def evaluate_costs(
    oracle: Oracle,
    candidates: jnp.ndarray,            # (N, d)
    max_workers: Optional[int] = None,
) -> jnp.ndarray:                       # (N,)
    """Evaluate the oracle on every candidate in parallel.

    The oracle is called exactly once per candidate.  Results are
    returned in candidate order regardless of completion order.  The
    first failing task (in candidate order) re-raises its exception.

    Args:
        oracle: Scalar cost function, safe to call from several threads.
        candidates: Candidate set, shape ``(N, d)``.
        max_workers: Pool size.  ``None`` means one worker per candidate.

    Returns:
        Costs, shape ``(N,)``.
    """
    n = candidates.shape[0]
    workers = n if max_workers is None else min(max_workers, n)
    rows = [candidates[i] for i in range(n)]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(evaluate_cost, oracle, row) for row in rows]
        costs = [f.result() for f in futures]

    return jnp.asarray(costs, dtype=candidates.dtype)


def _checked_costs(
    oracle: Oracle,
    candidates: jnp.ndarray,
    config: BatchConfig,
) -> jnp.ndarray:
    costs = evaluate_costs(oracle, candidates, config.max_workers)
    # Legacy guard: a first cost of exactly zero is treated as misuse.
    # It also rejects genuine zero-cost optima; see BatchConfig.allow_zero_cost.
    if not config.allow_zero_cost and float(costs[0]) == 0.0:
        raise InvalidOracle(
            "Oracle function must evaluate as a scalar value "
            "(first candidate evaluated to exactly 0.0)"
        )
    return costs


def _weights(oracle, xs, config, stacklevel):
    costs = _checked_costs(oracle, xs, config)
    return normalize_weights(
        exponential_weights(costs, config.nu), stacklevel=stacklevel + 1,
    )


def _barycenter(oracle, candidates, config, stacklevel):
    xs = as_candidates(candidates)
    w = _weights(oracle, xs, config, stacklevel + 1)  # (N,)
    return w @ xs                                     # (d,)


def batch_weights(
    oracle: Oracle,
    candidates: Sequence[ArrayLike],
    config: Optional[BatchConfig] = None,
) -> jnp.ndarray:
    """Normalized weights the batch barycenter assigns to each candidate.

    Args:
        oracle: Scalar cost function.
        candidates: Non-empty set of equal-length vectors.
        config: Batch configuration.  Defaults to :class:`BatchConfig`.

    Returns:
        Weights, shape ``(N,)``.  They sum to 1 unless the weight sum
        was clamped to the stability floor.
    """
    config = BatchConfig() if config is None else config
    return _weights(oracle, as_candidates(candidates), config, stacklevel=3)


def batch_barycenter(
    oracle: Oracle,
    candidates: Sequence[ArrayLike],
    config: Optional[BatchConfig] = None,
) -> jnp.ndarray:
    """Exponentially-weighted barycenter of a fixed candidate set.

    Deterministic for a deterministic oracle.

    Args:
        oracle: Scalar cost function.
        candidates: Non-empty set of equal-length vectors, or an array
            of shape ``(N, d)``.
        config: Batch configuration.  Defaults to :class:`BatchConfig`.

    Returns:
        Barycenter, shape ``(d,)``.

    Raises:
        InvalidArgument: Empty set or mismatched candidate lengths.
        InvalidOracle: Non-scalar or non-finite cost, weight overflow,
            or a zero cost on the first candidate.
    """
    config = BatchConfig() if config is None else config
    return _barycenter(oracle, candidates, config, stacklevel=3)


def bary_batch(
    oracle: Oracle,
    candidates: Sequence[ArrayLike],
    nu: float = DEFAULT_NU,
    *,
    allow_zero_cost: bool = False,
    max_workers: Optional[int] = None,
) -> jnp.ndarray:
    """Keyword front end for :func:`batch_barycenter`."""
    config = BatchConfig(
        nu=nu, allow_zero_cost=allow_zero_cost, max_workers=max_workers,
    )
    return _barycenter(oracle, candidates, config, stacklevel=3)
