"""Cross-entropy losses for binary and categorical classification.

None of these reduce over the batch: they return one loss per element
(binary) or per example (categorical). Reduce them (usually with a mean)
before taking gradients.
"""

from __future__ import annotations

from typing import Sequence

import jax
import jax.numpy as jnp

from kestrel.errors import ConfigurationError, ShapeMismatchError
from kestrel.losses.masking import (
    apply_weights_and_mask,
    check_labels_for_weights_and_mask,
    check_same_shape,
)
from kestrel.losses.types import Array, epsilon_for_dtype


def binary_crossentropy(labels: Sequence[Array], predictions: Sequence[Array]) -> Array:
    """Cross-entropy between labels and probabilities ``predictions``.

    Labels are cast to the predictions dtype, so booleans and 0/1 integers work.
    Predictions are not clipped: keep them away from 0 and 1 if needed.
    """
    predictions0 = jnp.asarray(predictions[0])
    labels0 = jnp.asarray(labels[0]).astype(predictions0.dtype)
    check_same_shape(labels0, predictions0)

    losses = -(labels0 * jnp.log(predictions0) + (1.0 - labels0) * jnp.log(1.0 - predictions0))

    weights, mask = check_labels_for_weights_and_mask(
        jax.ShapeDtypeStruct(labels0.shape, labels0.dtype), labels)
    return apply_weights_and_mask(losses, weights, mask)


def binary_crossentropy_logits(labels: Sequence[Array], logits: Sequence[Array]) -> Array:
    """Cross-entropy between labels and ``sigmoid(logits)``.

    Computed as ``max(x, 0) - x * y + log1p(exp(-|x|))``, which never
    exponentiates a large logit. Labels with the same number of elements but a
    different rank are reshaped to the logits shape.

    See https://www.tensorflow.org/api_docs/python/tf/nn/sigmoid_cross_entropy_with_logits
    """
    logits0 = jnp.asarray(logits[0])
    labels0 = jnp.asarray(labels[0]).astype(logits0.dtype)
    if labels0.size != logits0.size:
        raise ShapeMismatchError(
            f"labels[0] {labels0.shape} and logits[0] {logits0.shape} have incompatible shapes"
        )
    if labels0.ndim != logits0.ndim:
        labels0 = labels0.reshape(logits0.shape)
    check_same_shape(labels0, logits0, what="logits")

    log_part = jnp.log1p(jnp.exp(-jnp.abs(logits0)))
    losses = jnp.maximum(logits0, 0.0) - logits0 * labels0 + log_part

    weights, mask = check_labels_for_weights_and_mask(
        jax.ShapeDtypeStruct(labels0.shape, labels0.dtype), labels)
    return apply_weights_and_mask(losses, weights, mask)


def _batch_weights_shape(labels0: Array, dtype) -> jax.ShapeDtypeStruct:
    # Weights and mask cover every axis but the trailing class axis.
    if labels0.ndim == 0:
        raise ShapeMismatchError(
            f"labels[0] {labels0.shape} must have a last dimension holding the classes"
        )
    return jax.ShapeDtypeStruct(labels0.shape[:-1], dtype)


def categorical_crossentropy(labels: Sequence[Array], predictions: Sequence[Array]) -> Array:
    """Cross-entropy of probabilities ``predictions`` given dense labels.

    Labels have the same shape as predictions: one-hot, or any distribution
    over the last axis. Predictions are clipped to ``[eps, 1 - eps]`` with
    ``eps`` picked from the dtype (1e-4 half, 1e-7 single, 1e-8 double).
    Returns one loss per example (shape of labels without the last axis).
    """
    predictions0 = jnp.asarray(predictions[0])
    labels0 = jnp.asarray(labels[0])
    check_same_shape(labels0, predictions0)
    weights, mask = check_labels_for_weights_and_mask(
        _batch_weights_shape(labels0, predictions0.dtype), labels)

    labels0 = labels0.astype(predictions0.dtype)
    epsilon = epsilon_for_dtype(predictions0.dtype)
    clipped = jnp.clip(predictions0, epsilon, 1.0 - epsilon)
    losses = jnp.sum(-(labels0 * jnp.log(clipped)), axis=-1)
    return apply_weights_and_mask(losses, weights, mask)


def categorical_crossentropy_logits(labels: Sequence[Array], logits: Sequence[Array]) -> Array:
    """Cross-entropy of ``softmax(logits)`` given dense labels.

    Labels have the same shape as logits. Returns one loss per example.
    """
    logits0 = jnp.asarray(logits[0])
    labels0 = jnp.asarray(labels[0])
    weights, mask = check_labels_for_weights_and_mask(
        _batch_weights_shape(labels0, logits0.dtype), labels)
    return _categorical_crossentropy_logits(labels0, logits0, weights, mask)


def sparse_categorical_crossentropy_logits(labels: Sequence[Array], logits: Sequence[Array]) -> Array:
    """Cross-entropy of ``softmax(logits)`` given integer class labels.

    Labels have the same rank as logits with a last axis of size 1 holding the
    class index. Returns one loss per example.
    """
    logits0 = jnp.asarray(logits[0])
    labels0 = jnp.asarray(labels[0])
    if not jnp.issubdtype(labels0.dtype, jnp.integer):
        raise ConfigurationError(f"labels[0] dtype is {labels0.dtype}, it must be an integer")
    if labels0.ndim != logits0.ndim:
        raise ShapeMismatchError(
            f"labels[0] {labels0.shape} and logits[0] {logits0.shape} must have the same rank"
        )
    if labels0.ndim == 0 or labels0.shape[-1] != 1:
        raise ShapeMismatchError(
            f"labels[0] {labels0.shape} must have a last dimension of 1 holding the class index"
        )
    weights, mask = check_labels_for_weights_and_mask(
        _batch_weights_shape(labels0, logits0.dtype), labels)

    # The trailing axis is replaced by the one-hot class axis.
    reduced = labels0.reshape(labels0.shape[:-1])
    one_hot = jax.nn.one_hot(reduced, logits0.shape[-1], dtype=logits0.dtype)
    return _categorical_crossentropy_logits(one_hot, logits0, weights, mask)


def _categorical_crossentropy_logits(
    labels: Array,
    logits: Array,
    weights: Array | None,
    mask: Array | None,
) -> Array:
    if labels.shape != logits.shape:
        raise ShapeMismatchError(
            f"labels {labels.shape} and logits {logits.shape} must have the same shape"
        )
    if mask is not None:
        # Masked rows get zero logits so they can't affect the softmax.
        expanded_mask = jnp.broadcast_to(mask[..., None], logits.shape)
        logits = jnp.where(expanded_mask, logits, jnp.zeros_like(logits))
    log_predictions = jax.nn.log_softmax(logits, axis=-1)
    losses = jnp.sum(-(labels.astype(logits.dtype) * log_predictions), axis=-1)
    return apply_weights_and_mask(losses, weights, mask)
