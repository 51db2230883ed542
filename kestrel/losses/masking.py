"""Weight and mask handling shared by every loss."""

from __future__ import annotations

from typing import Sequence

import jax
import jax.numpy as jnp

from kestrel.errors import ShapeMismatchError, UnrecognizedAuxiliaryTensorError
from kestrel.losses.types import Array


def check_same_shape(labels: Array, predictions: Array, what: str = "predictions") -> None:
    """Raise ShapeMismatchError unless both tensors have the same shape."""
    if labels.shape != predictions.shape:
        raise ShapeMismatchError(
            f"labels[0] {labels.shape} and {what}[0] {predictions.shape} must have same shape"
        )


def check_labels_for_weights_and_mask(
    weights_shape: jax.ShapeDtypeStruct,
    labels: Sequence[Array],
) -> tuple[Array | None, Array | None]:
    """Find optional weights and mask among ``labels[1:]``.

    ``labels[0]`` holds the actual labels and is skipped. A trailing tensor with
    exactly ``weights_shape`` (shape and dtype) is taken as weights; a boolean
    tensor with the same dimensions is taken as a mask. At most one of each.

    If both are present, weights are zeroed where the mask is false.

    Args:
        weights_shape: Expected shape and dtype of the weights
        labels: Labels as given to the loss function

    Returns:
        (weights, mask), either may be None

    Raises:
        UnrecognizedAuxiliaryTensorError: For any other trailing tensor
    """
    weights = None
    mask = None
    for ii, extra in enumerate(labels[1:], start=1):
        extra = jnp.asarray(extra)
        same_dims = extra.shape == tuple(weights_shape.shape)
        if weights is None and same_dims and extra.dtype == weights_shape.dtype:
            weights = extra
        elif mask is None and same_dims and extra.dtype == jnp.bool_:
            mask = extra
        else:
            raise UnrecognizedAuxiliaryTensorError(
                f"labels has extra tensors whose use is unknown: labels[{ii}] is "
                f"{extra.dtype}{list(extra.shape)}; label weights would be "
                f"{weights_shape.dtype}{list(weights_shape.shape)}, labels mask would be "
                f"bool{list(weights_shape.shape)}"
            )
    if weights is not None and mask is not None:
        weights = jnp.where(mask, weights, jnp.zeros_like(weights))
    return weights, mask


def apply_weights_and_mask(losses: Array, weights: Array | None, mask: Array | None) -> Array:
    """Scale by weights, then select zero wherever the mask is false.

    The mask is applied with ``jnp.where``, never multiplied in: masked
    positions get no gradient.
    """
    if weights is not None:
        losses = losses * weights
    if mask is not None:
        losses = jnp.where(mask, losses, jnp.zeros_like(losses))
    return losses
