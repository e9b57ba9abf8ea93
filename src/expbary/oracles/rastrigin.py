"""Rastrigin function: a quadratic bowl covered in cosine ripples.

``cost(x) = A d + Σ_j (x_j² - A cos(2π x_j))``

Global minimum 0 at the origin, with a local minimum near every
integer lattice point.
"""

import jax.numpy as jnp


class Rastrigin:
    """Rastrigin function with ripple amplitude ``amplitude``."""

    def __init__(self, amplitude: float = 10.0):
        self.amplitude = amplitude

    def __call__(self, x: jnp.ndarray) -> jnp.ndarray:
        d = x.shape[0]
        return self.amplitude * d + jnp.sum(
            x ** 2 - self.amplitude * jnp.cos(2.0 * jnp.pi * x)
        )
