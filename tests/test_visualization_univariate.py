"""Tests for univariate function sampling and plotting."""

from __future__ import annotations

import numpy as np
import pytest
import jax
import jax.numpy as jnp
import matplotlib.pyplot as plt

from kestrel.visualization import NUM_POINTS, X_RANGE, plot_univariate, sample_univariate


def test_sample_univariate_grid(backend):
    x, y = sample_univariate(jnp.square, backend)
    assert x.shape == (NUM_POINTS,)
    assert y.shape == (NUM_POINTS,)
    assert x[0] == pytest.approx(X_RANGE[0], abs=1e-6)
    assert x[-1] == pytest.approx(X_RANGE[1], abs=1e-5)
    assert np.all(np.diff(x) > 0)
    assert np.allclose(y, x ** 2, atol=1e-6)


def test_sample_univariate_custom_range(backend):
    x, y = sample_univariate(jnp.sin, backend, num_points=11, x_range=(0.0, 1.0))
    assert np.allclose(x, np.linspace(0.0, 1.0, 11), atol=1e-6)
    assert np.allclose(y, np.sin(x), atol=1e-6)


def test_plot_univariate_named_series(backend):
    fig = plot_univariate("activations;relu;tanh", jax.nn.relu, jnp.tanh, backend=backend)
    ax = fig.axes[0]
    lines = ax.get_lines()

    assert ax.get_title() == "activations"
    assert [line.get_label() for line in lines] == ["relu", "tanh"]
    assert all(line.get_linewidth() == 1.0 for line in lines)
    assert len(lines[0].get_xdata()) == NUM_POINTS
    # Caller's backend stays usable
    backend.assert_valid()
    plt.close(fig)


def test_plot_univariate_default_names_and_width(backend):
    fig = plot_univariate("sigmoid", jax.nn.sigmoid, backend=backend)
    lines = fig.axes[0].get_lines()
    assert [line.get_label() for line in lines] == ["#0"]
    assert lines[0].get_linewidth() == 2.0
    plt.close(fig)


def test_plot_univariate_partial_names(backend):
    fig = plot_univariate("t;first", jnp.square, jnp.abs, backend=backend, num_points=10)
    labels = [line.get_label() for line in fig.axes[0].get_lines()]
    assert labels == ["first", "#1"]
    plt.close(fig)


def test_plot_univariate_own_backend():
    fig = plot_univariate("own", jnp.exp, num_points=5)
    assert len(fig.axes[0].get_lines()) == 1
    plt.close(fig)


def test_plot_univariate_show_skipped_when_headless(backend, monkeypatch):
    monkeypatch.setenv('KESTREL_HEADLESS', 'true')

    def fail_show(*args, **kwargs):
        raise AssertionError("plt.show called without a display")

    monkeypatch.setattr(plt, 'show', fail_show)
    fig = plot_univariate("headless", jnp.abs, backend=backend, num_points=4, show=True)
    assert len(fig.axes[0].get_lines()) == 1
    plt.close(fig)
