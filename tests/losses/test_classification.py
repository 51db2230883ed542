"""Tests for binary and categorical cross-entropy losses."""

from __future__ import annotations

import numpy as np
import pytest
import jax
import jax.numpy as jnp

from kestrel.errors import ConfigurationError, ShapeMismatchError
from kestrel.losses import (
    EPSILON16,
    EPSILON32,
    EPSILON64,
    binary_crossentropy,
    binary_crossentropy_logits,
    categorical_crossentropy,
    categorical_crossentropy_logits,
    epsilon_for_dtype,
    sparse_categorical_crossentropy_logits,
)


def reference_bce(logits: np.ndarray, labels: np.ndarray) -> np.ndarray:
    """Naive BCE of sigmoid(logits) in float64."""
    x = logits.astype(np.float64)
    p = 1.0 / (1.0 + np.exp(-x))
    return -(labels * np.log(p) + (1.0 - labels) * np.log(1.0 - p))


# ============================================================================
# Epsilon
# ============================================================================

def test_epsilon_for_dtype():
    assert epsilon_for_dtype(jnp.float16) == EPSILON16
    assert epsilon_for_dtype(jnp.bfloat16) == EPSILON16
    assert epsilon_for_dtype(jnp.float32) == EPSILON32
    assert epsilon_for_dtype(np.float64) == EPSILON64


def test_epsilon_for_integer_dtype_raises():
    with pytest.raises(ConfigurationError, match="epsilon"):
        epsilon_for_dtype(jnp.int32)


# ============================================================================
# Binary cross-entropy
# ============================================================================

def test_binary_crossentropy_values():
    labels = jnp.array([1.0, 0.0, 1.0])
    predictions = jnp.array([0.9, 0.2, 0.5])
    loss = binary_crossentropy([labels], [predictions])
    assert loss.shape == (3,)
    assert np.allclose(loss, [-np.log(0.9), -np.log(0.8), -np.log(0.5)], atol=1e-6)


def test_binary_crossentropy_bool_labels():
    labels = jnp.array([True, False])
    predictions = jnp.array([0.75, 0.25])
    loss = binary_crossentropy([labels], [predictions])
    assert np.allclose(loss, [-np.log(0.75), -np.log(0.75)], atol=1e-6)


def test_binary_crossentropy_logits_matches_sigmoid_form():
    logits = jnp.linspace(-5.0, 5.0, 21)
    for y in (0.0, 1.0, 0.3):
        labels = jnp.full(21, y)
        from_logits = binary_crossentropy_logits([labels], [logits])
        from_probs = binary_crossentropy([labels], [jax.nn.sigmoid(logits)])
        assert np.allclose(from_logits, from_probs, rtol=1e-4, atol=1e-5)


def test_binary_crossentropy_logits_extremes():
    """Stable over [-20, 20] where naive float32 sigmoid saturates."""
    logits = np.linspace(-20.0, 20.0, 81, dtype=np.float32)
    for y in (0.0, 1.0):
        labels = np.full(81, y, dtype=np.float32)
        loss = binary_crossentropy_logits([jnp.asarray(labels)], [jnp.asarray(logits)])
        assert jnp.all(jnp.isfinite(loss))
        assert np.allclose(loss, reference_bce(logits, labels), rtol=1e-5, atol=1e-5)


def test_binary_crossentropy_logits_huge_logits_finite():
    logits = jnp.array([-1e4, -100.0, 100.0, 1e4])
    labels = jnp.array([1.0, 0.0, 1.0, 0.0])
    loss = binary_crossentropy_logits([labels], [logits])
    assert jnp.all(jnp.isfinite(loss))
    assert np.allclose(loss, [1e4, 0.0, 0.0, 1e4])


def test_binary_crossentropy_logits_reshapes_labels():
    logits = jnp.zeros((4, 1))
    labels = jnp.array([1.0, 0.0, 1.0, 0.0])
    loss = binary_crossentropy_logits([labels], [logits])
    assert loss.shape == (4, 1)
    assert np.allclose(loss, np.log(2.0))


def test_binary_crossentropy_logits_size_mismatch():
    with pytest.raises(ShapeMismatchError, match="incompatible"):
        binary_crossentropy_logits([jnp.zeros(3)], [jnp.zeros((2, 2))])


def test_binary_crossentropy_logits_weights_and_mask():
    logits = jnp.zeros(3)
    labels = jnp.ones(3)
    weights = jnp.array([1.0, 2.0, 3.0])
    mask = jnp.array([True, True, False])
    loss = binary_crossentropy_logits([labels, weights, mask], [logits])
    ln2 = np.log(2.0)
    assert np.allclose(loss, [ln2, 2 * ln2, 0.0])


# ============================================================================
# Categorical cross-entropy
# ============================================================================

def test_categorical_crossentropy_scenario():
    labels = jnp.array([[1.0, 0.0], [0.0, 1.0]])
    predictions = jnp.array([[0.9, 0.1], [0.2, 0.8]])
    loss = categorical_crossentropy([labels], [predictions])
    assert loss.shape == (2,)
    assert np.allclose(loss, [-np.log(0.9), -np.log(0.8)], atol=1e-6)
    assert np.allclose(loss, [0.105, 0.223], atol=1e-3)


def test_categorical_crossentropy_clips_zero_probability():
    labels = jnp.array([[1.0, 0.0]])
    predictions = jnp.array([[0.0, 1.0]])
    loss = categorical_crossentropy([labels], [predictions])
    assert jnp.all(jnp.isfinite(loss))
    assert float(loss[0]) == pytest.approx(-np.log(EPSILON32), rel=1e-3)


def test_categorical_crossentropy_shape_mismatch():
    with pytest.raises(ShapeMismatchError):
        categorical_crossentropy([jnp.zeros((2, 3))], [jnp.zeros((2, 2))])


def test_categorical_crossentropy_with_weights():
    labels = jnp.array([[1.0, 0.0], [0.0, 1.0]])
    predictions = jnp.array([[0.5, 0.5], [0.5, 0.5]])
    weights = jnp.array([2.0, 0.0])
    loss = categorical_crossentropy([labels, weights], [predictions])
    assert np.allclose(loss, [2 * np.log(2.0), 0.0], atol=1e-6)


def test_categorical_crossentropy_logits_values():
    labels = jnp.array([[0.0, 1.0, 0.0]])
    logits = jnp.array([[1.0, 2.0, 3.0]])
    loss = categorical_crossentropy_logits([labels], [logits])
    expected = -(2.0 - np.log(np.exp(1.0) + np.exp(2.0) + np.exp(3.0)))
    assert float(loss[0]) == pytest.approx(expected, rel=1e-5)


def test_categorical_crossentropy_logits_masked_rows():
    """Masked rows give zero loss and don't produce NaN even with huge logits."""
    labels = jnp.array([[1.0, 0.0], [0.0, 1.0]])
    logits = jnp.array([[2.0, 1.0], [1e30, -1e30]])
    mask = jnp.array([True, False])
    loss = categorical_crossentropy_logits([labels, mask], [logits])
    assert float(loss[1]) == 0.0
    assert jnp.all(jnp.isfinite(loss))

    grads = jax.grad(
        lambda x: jnp.sum(categorical_crossentropy_logits([labels, mask], [x])))(logits)
    assert np.allclose(grads[1], 0.0)


def test_categorical_crossentropy_logits_shape_mismatch():
    with pytest.raises(ShapeMismatchError):
        categorical_crossentropy_logits([jnp.zeros((2, 3))], [jnp.zeros((2, 4))])


# ============================================================================
# Sparse categorical cross-entropy
# ============================================================================

def test_sparse_matches_dense_scenario():
    logits = jnp.array([[2.0, 1.0]])
    sparse = sparse_categorical_crossentropy_logits([jnp.array([[1]])], [logits])
    dense = categorical_crossentropy_logits([jnp.array([[0.0, 1.0]])], [logits])
    assert sparse.shape == (1,)
    assert np.allclose(sparse, dense)
    assert float(sparse[0]) == pytest.approx(np.log(1.0 + np.exp(1.0)), rel=1e-5)


def test_sparse_batch_with_mask():
    logits = jnp.array([[0.0, 0.0, 0.0], [5.0, 0.0, 0.0]])
    labels = jnp.array([[2], [0]], dtype=jnp.int32)
    mask = jnp.array([True, False])
    loss = sparse_categorical_crossentropy_logits([labels, mask], [logits])
    assert np.allclose(loss, [np.log(3.0), 0.0], atol=1e-6)


def test_sparse_requires_integer_labels():
    with pytest.raises(ConfigurationError, match="integer"):
        sparse_categorical_crossentropy_logits([jnp.array([[1.0]])], [jnp.zeros((1, 2))])


def test_sparse_requires_same_rank():
    with pytest.raises(ShapeMismatchError, match="same rank"):
        sparse_categorical_crossentropy_logits([jnp.array([1])], [jnp.zeros((1, 2))])


def test_sparse_requires_last_dim_one():
    with pytest.raises(ShapeMismatchError, match="last dimension"):
        sparse_categorical_crossentropy_logits([jnp.array([[1, 0]])], [jnp.zeros((1, 2))])


def test_sparse_rejects_scalar_labels():
    with pytest.raises(ShapeMismatchError, match="last dimension"):
        sparse_categorical_crossentropy_logits([jnp.array(1)], [jnp.array(2.0)])


@pytest.mark.parametrize("loss_fn", [categorical_crossentropy, categorical_crossentropy_logits])
def test_categorical_rejects_scalar_labels(loss_fn):
    with pytest.raises(ShapeMismatchError, match="last dimension"):
        loss_fn([jnp.array(1.0)], [jnp.array(0.5)])
