"""Rosenbrock banana valley.

``cost(x) = Σ_{j<d-1} b (x_{j+1} - x_j²)² + (a - x_j)²``

Global minimum 0 at ``x = (a, a², ...)``; for the default ``a = 1`` that
is the all-ones vector.  The narrow curved valley makes it a hard case
for isotropic curiosity.
"""

import jax.numpy as jnp


class Rosenbrock:
    """Generalized Rosenbrock function for ``d >= 2``.

    Attributes:
        a: Location parameter of the valley.
        b: Valley steepness.
    """

    def __init__(self, a: float = 1.0, b: float = 100.0):
        self.a = a
        self.b = b

    def __call__(self, x: jnp.ndarray) -> jnp.ndarray:
        head, tail = x[:-1], x[1:]
        return jnp.sum(self.b * (tail - head ** 2) ** 2 + (self.a - head) ** 2)
