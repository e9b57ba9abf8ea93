"""Shared test helpers.

Provides oracle wrappers used across the suite: a thread-safe call
counter and a few deliberately broken oracles for error-path tests.
"""

import threading

import jax.numpy as jnp

from expbary.oracles import sum_of_squares


class CountingOracle:
    """Wrap an oracle and count calls.  Safe to call from many threads."""

    def __init__(self, fn=sum_of_squares):
        self.fn = fn
        self.calls = 0
        self.seen = []
        self._lock = threading.Lock()

    def __call__(self, x):
        with self._lock:
            self.calls += 1
            self.seen.append(tuple(float(v) for v in x))
        return self.fn(x)


def offset_quadratic(offset):
    """``sum_of_squares(x) + offset``, never exactly zero when offset > 0."""
    def oracle(x):
        return jnp.sum(x ** 2) + offset
    return oracle


def constant_oracle(value):
    """Oracle returning *value* everywhere."""
    def oracle(x):
        return jnp.asarray(value, dtype=jnp.float64) + 0.0 * jnp.sum(x)
    return oracle


def vector_oracle(x):
    """Not an oracle: returns a vector instead of a scalar."""
    return x ** 2


def failing_oracle(x):
    raise RuntimeError("oracle exploded")
