"""Plot univariate JAX functions over [-0.1, 1.1]."""

from __future__ import annotations

import logging
from typing import Callable

import jax
import jax.numpy as jnp
import numpy as np

from kestrel.backend import Backend, new_backend, run
from kestrel.visualization.display import is_headless

try:
    import matplotlib.pyplot as plt
    import matplotlib.figure
    HAS_MATPLOTLIB = True
except ImportError:
    HAS_MATPLOTLIB = False

NUM_POINTS = 1000
X_RANGE = (-0.1, 1.1)

logger = logging.getLogger(__name__)

Univariate = Callable[[jax.Array], jax.Array]


def _check_matplotlib() -> None:
    if not HAS_MATPLOTLIB:
        raise ImportError(
            "Matplotlib is required for visualization. "
            "Install with: pip install matplotlib"
        )


def sample_univariate(
    fn: Univariate,
    backend: Backend,
    num_points: int = NUM_POINTS,
    x_range: tuple[float, float] = X_RANGE,
) -> tuple[np.ndarray, np.ndarray]:
    """Evaluate ``fn`` on ``num_points`` evenly spaced values of ``x_range``.

    The sampling grid and ``fn`` are compiled and run together on ``backend``.

    Returns:
        (x, y) numpy arrays of length ``num_points``
    """
    min_x, max_x = x_range
    step = (max_x - min_x) / (num_points - 1)

    def graph():
        inputs = jax.lax.iota(jnp.float32, num_points) * step + min_x
        return [inputs, fn(inputs)]

    x, y = run(backend, graph, name="sample_univariate")
    return x, y


def plot_univariate(
    name: str,
    *fns: Univariate,
    backend: Backend | None = None,
    num_points: int = NUM_POINTS,
    x_range: tuple[float, float] = X_RANGE,
    figsize: tuple[float, float] = (8, 5),
    show: bool = False,
) -> matplotlib.figure.Figure:
    """Overlay line plots of univariate functions.

    Args:
        name: Plot title. "title;f;g" also names the series (default "#0", "#1", ...)
        *fns: Functions mapping a float32 vector to a vector of the same length
        backend: Backend to run on (default: a new one, finalized afterwards)
        num_points: Samples per function
        x_range: Sampled interval
        figsize: Figure size
        show: Call plt.show() before returning (skipped when headless)

    Returns:
        Matplotlib figure object

    Example:
        >>> fig = plot_univariate("activations;relu;tanh", jax.nn.relu, jnp.tanh)
    """
    _check_matplotlib()

    title, *fn_names = name.split(";")
    own_backend = backend is None
    if own_backend:
        backend = new_backend()

    line_width = 1.0 if len(fns) > 1 else 2.0
    fig, ax = plt.subplots(figsize=figsize)
    try:
        for idx, fn in enumerate(fns):
            x, y = sample_univariate(fn, backend, num_points=num_points, x_range=x_range)
            label = fn_names[idx] if idx < len(fn_names) else f"#{idx}"
            ax.plot(x, y, label=label, linewidth=line_width)
    finally:
        if own_backend:
            backend.finalize()

    ax.set_title(title)
    ax.set_xscale('linear')
    ax.set_yscale('linear')
    ax.grid(True)
    if fns:
        ax.legend()

    plt.tight_layout()
    if show:
        if is_headless():
            logger.info("No display available, not showing plot %r", title)
        else:
            plt.show()
    return fig
