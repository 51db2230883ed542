"""Visualization helpers."""

from kestrel.visualization.display import configure_matplotlib_backend, is_headless
from kestrel.visualization.univariate import (
    NUM_POINTS,
    X_RANGE,
    plot_univariate,
    sample_univariate,
)

__all__ = [
    "configure_matplotlib_backend",
    "is_headless",
    "NUM_POINTS",
    "X_RANGE",
    "plot_univariate",
    "sample_univariate",
]
