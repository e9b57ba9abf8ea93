"""Exponentially-weighted barycenter estimation.

Two estimators weight candidate points by ``exp(-nu * oracle(x))``:

- :func:`bary_batch` averages a fixed candidate set, scoring candidates
  in parallel.
- :func:`bary_recursive` walks a single estimate with Gaussian
  curiosity and folds each scored probe into a running average.

Vectors are float64, so importing this package enables JAX's 64-bit mode.
"""

import jax

jax.config.update("jax_enable_x64", True)

from expbary.batch import batch_barycenter, batch_weights, bary_batch, evaluate_costs  # noqa: E402
from expbary.errors import (  # noqa: E402
    BarycenterError,
    DimensionMismatch,
    InvalidArgument,
    InvalidOracle,
    NumericalDegeneracyWarning,
)
from expbary.oracles import ORACLES, get_oracle  # noqa: E402
from expbary.recursive import bary_recursive, make_scan, resolve_key, run, run_scan  # noqa: E402
from expbary.types import (  # noqa: E402
    DEFAULT_ITERATIONS,
    DEFAULT_LAMBDA,
    DEFAULT_NU,
    DEFAULT_SIGMA,
    DEFAULT_ZETA,
    BatchConfig,
    Oracle,
    RecursiveConfig,
    RecursiveState,
)
from expbary.weights import TOTAL_FLOOR, WEIGHT_FLOOR, effective_sample_size  # noqa: E402

__version__ = "0.1.0"

__all__ = [
    "bary_batch",
    "bary_recursive",
    "batch_barycenter",
    "batch_weights",
    "evaluate_costs",
    "run",
    "run_scan",
    "make_scan",
    "resolve_key",
    "BatchConfig",
    "RecursiveConfig",
    "RecursiveState",
    "Oracle",
    "ORACLES",
    "get_oracle",
    "effective_sample_size",
    "WEIGHT_FLOOR",
    "TOTAL_FLOOR",
    "DEFAULT_NU",
    "DEFAULT_LAMBDA",
    "DEFAULT_SIGMA",
    "DEFAULT_ZETA",
    "DEFAULT_ITERATIONS",
    "BarycenterError",
    "DimensionMismatch",
    "InvalidArgument",
    "InvalidOracle",
    "NumericalDegeneracyWarning",
]
