"""Regression losses: MAE, MSE, Huber and adaptive power.

Labels and predictions must have the same shape. Optional weights are
shaped like the labels (with the predictions dtype); an optional mask is a
boolean tensor with the same dimensions.
"""

from __future__ import annotations

from typing import Sequence

import jax
import jax.numpy as jnp

from kestrel.errors import ConfigurationError
from kestrel.losses.masking import (
    apply_weights_and_mask,
    check_labels_for_weights_and_mask,
    check_same_shape,
)
from kestrel.losses.types import (
    AdaptivePowerConfig,
    Array,
    HuberConfig,
    LossFn,
    epsilon_for_dtype,
)


def _primary(labels: Sequence[Array], predictions: Sequence[Array]) -> tuple[Array, Array]:
    labels0 = jnp.asarray(labels[0])
    predictions0 = jnp.asarray(predictions[0])
    check_same_shape(labels0, predictions0)
    return labels0, predictions0


def _weights_and_mask(labels: Sequence[Array], predictions0: Array):
    weights_shape = jax.ShapeDtypeStruct(predictions0.shape, predictions0.dtype)
    return check_labels_for_weights_and_mask(weights_shape, labels)


def mean_absolute_error(labels: Sequence[Array], predictions: Sequence[Array]) -> Array:
    """Mean of ``|labels - predictions|``, reduced to a scalar."""
    labels0, predictions0 = _primary(labels, predictions)
    weights, mask = _weights_and_mask(labels, predictions0)
    loss = jnp.abs(labels0 - predictions0)
    loss = apply_weights_and_mask(loss, weights, mask)
    return jnp.mean(loss)


def mean_squared_error(labels: Sequence[Array], predictions: Sequence[Array]) -> Array:
    """Mean of ``(labels - predictions)**2``, reduced to a scalar."""
    labels0, predictions0 = _primary(labels, predictions)
    weights, mask = _weights_and_mask(labels, predictions0)
    loss = jnp.square(labels0 - predictions0)
    loss = apply_weights_and_mask(loss, weights, mask)
    return jnp.mean(loss)


def make_huber_loss(delta: float = 1.0) -> LossFn:
    """Huber loss: quadratic near the target, linear further than ``delta``.

    ``delta`` also sets the slope of the linear part; 1.0 is a good default.
    The loss is returned per element, not reduced.

    Raises:
        ConfigurationError: If ``delta <= 0``
    """
    if delta <= 0.0:
        raise ConfigurationError(
            f"make_huber_loss requires delta > 0 (1.0 being a good default), delta={delta} given"
        )

    def huber_loss(labels: Sequence[Array], predictions: Sequence[Array]) -> Array:
        labels0, predictions0 = _primary(labels, predictions)
        weights, mask = _weights_and_mask(labels, predictions0)

        delta_const = jnp.asarray(delta, dtype=predictions0.dtype)
        abs_errors = jnp.abs(labels0 - predictions0)
        quadratic = jnp.minimum(abs_errors, delta_const)
        # Same as max(abs_errors - delta, 0) without doubling the gradient at |e| == delta.
        linear = abs_errors - quadratic
        loss = 0.5 * jnp.square(quadratic) + delta_const * linear
        return apply_weights_and_mask(loss, weights, mask)

    return huber_loss


def huber_loss_from_config(config: HuberConfig) -> LossFn:
    return make_huber_loss(config.delta)


def make_adaptive_power_loss(
    power_near: float = 2.0,
    power_far: float = 1.0,
    middle_delta: float = 1.0,
    sharpness: float = 1.0,
) -> LossFn:
    """Loss ``|e|**p(e)`` whose exponent moves from ``power_near`` to ``power_far``.

    - For ``|e|`` much smaller than ``middle_delta`` it tends to ``|e|**power_near``.
    - For ``|e|`` much larger it tends to ``|e|**power_far``.
    - At ``|e| == middle_delta`` the exponent is ``(power_near + power_far) / 2``.
    - ``sharpness`` sets the width of the transition in log-space.

    With ``power_near=2`` and ``power_far=1`` it behaves much like a Huber loss.
    The exponent is treated as a constant for differentiation. The loss is
    returned per element, not reduced.

    Raises:
        ConfigurationError: If ``middle_delta <= 0`` or ``sharpness <= 0``
    """
    if middle_delta <= 0.0:
        raise ConfigurationError(
            f"make_adaptive_power_loss requires middle_delta > 0, middle_delta={middle_delta} given"
        )
    if sharpness <= 0.0:
        raise ConfigurationError(
            f"make_adaptive_power_loss requires sharpness > 0, sharpness={sharpness} given"
        )

    def adaptive_power_loss(labels: Sequence[Array], predictions: Sequence[Array]) -> Array:
        labels0, predictions0 = _primary(labels, predictions)
        weights, mask = _weights_and_mask(labels, predictions0)
        dtype = predictions0.dtype

        delta = jnp.abs(labels0 - predictions0)
        if power_near == power_far:
            loss = jnp.power(delta, jnp.asarray(power_near, dtype=dtype))
        else:
            normalized = delta / middle_delta
            ln_delta = jnp.log(jnp.maximum(normalized, epsilon_for_dtype(dtype)))
            scaled = ln_delta * (abs(power_near - power_far) / sharpness)

            # power = power_near + (power_far - power_near) * sigmoid(scaled), written
            # two ways: the first can't overflow for scaled > 0, the second for scaled <= 0.
            version1 = (power_far - power_near) / (1.0 + jnp.exp(-scaled)) + power_near
            version2 = (power_near - power_far) / (1.0 + jnp.exp(scaled)) + power_far
            power = jnp.where(scaled > 0, version1, version2)

            # NaNs from the unused branch would leak through the gradient of where.
            power = jax.lax.stop_gradient(power)
            loss = jnp.power(delta, power)

        return apply_weights_and_mask(loss, weights, mask)

    return adaptive_power_loss


def adaptive_power_loss_from_config(config: AdaptivePowerConfig) -> LossFn:
    return make_adaptive_power_loss(
        power_near=config.power_near,
        power_far=config.power_far,
        middle_delta=config.middle_delta,
        sharpness=config.sharpness,
    )
