"""Quadratic oracles.

``sum_of_squares`` is the squared L2 norm, minimized at the origin.
:class:`ShiftedQuadratic` moves the minimum to an arbitrary center and
adds an optional floor so the optimum need not cost exactly zero.
"""

from typing import Optional, Sequence

import jax.numpy as jnp


def sum_of_squares(x: jnp.ndarray) -> jnp.ndarray:
    """Squared L2 norm ``Σ x_j²``.

    Args:
        x: Point, shape ``(d,)``.

    Returns:
        Scalar cost.
    """
    return jnp.sum(x ** 2)


class ShiftedQuadratic:
    """Scaled squared distance to a fixed center, plus an offset.

    ``cost(x) = scale * ||x - center||² + offset``

    Attributes:
        center: Location of the minimum, shape ``(d,)``.
        scale: Curvature multiplier.
        offset: Cost at the minimum.
    """

    def __init__(
        self,
        center: Optional[Sequence[float]] = None,
        dim: int = 2,
        scale: float = 1.0,
        offset: float = 0.0,
    ):
        """
        Args:
            center: Minimum location.  If None, the origin in ``dim``
                dimensions.
            dim: Dimensionality, used only when *center* is None.
            scale: Curvature multiplier.
            offset: Cost at the minimum.
        """
        if center is None:
            self.center = jnp.zeros(dim)
        else:
            self.center = jnp.asarray(center, dtype=jnp.float64)
        self.dim = int(self.center.shape[0])
        self.scale = scale
        self.offset = offset

    def __call__(self, x: jnp.ndarray) -> jnp.ndarray:
        diff = x - self.center
        return self.scale * jnp.sum(diff ** 2) + self.offset
