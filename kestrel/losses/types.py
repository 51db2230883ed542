"""Loss function type, hyperparameter configs and dtype epsilons."""

from __future__ import annotations

from typing import Any, Callable, Sequence

import jax
import jax.numpy as jnp
from flax import struct

from kestrel.errors import ConfigurationError

Array = jax.Array

# A loss maps (labels, predictions) to a loss tensor, per example or scalar.
# labels[0] is the ground truth; trailing labels may be weights and/or a mask.
LossFn = Callable[[Sequence[Array], Sequence[Array]], Array]

EPSILON16 = 1e-4
EPSILON32 = 1e-7
EPSILON64 = 1e-8


def epsilon_for_dtype(dtype: Any) -> float:
    """Smallest safe probability for ``dtype`` (used for clipping and log guards)."""
    dtype = jnp.dtype(dtype)
    if dtype == jnp.float64:
        return EPSILON64
    if dtype == jnp.float32:
        return EPSILON32
    if dtype in (jnp.dtype(jnp.float16), jnp.dtype(jnp.bfloat16)):
        return EPSILON16
    raise ConfigurationError(f"unknown epsilon value for dtype {dtype}")


@struct.dataclass
class HuberConfig:
    """Huber loss hyperparameters.

    Attributes:
        delta: Error size where the loss turns from quadratic to linear (> 0)
    """
    delta: float = struct.field(pytree_node=False, default=1.0)


@struct.dataclass
class AdaptivePowerConfig:
    """Adaptive power loss hyperparameters.

    Attributes:
        power_near: Exponent for errors much smaller than ``middle_delta``
        power_far: Exponent for errors much larger than ``middle_delta``
        middle_delta: Error where the exponent is halfway between the two (> 0)
        sharpness: Width of the transition in log-space; smaller is sharper (> 0)
    """
    power_near: float = struct.field(pytree_node=False, default=2.0)
    power_far: float = struct.field(pytree_node=False, default=1.0)
    middle_delta: float = struct.field(pytree_node=False, default=1.0)
    sharpness: float = struct.field(pytree_node=False, default=1.0)


@struct.dataclass
class TripletConfig:
    """Triplet loss hyperparameters.

    Attributes:
        margin: Hinge margin; a value <= 0 selects the soft-margin (softplus) form
        distance_metric: "l2", "squared_l2" or "cosine"
        mining_strategy: "hard" (hardest positive/negative per anchor) or "all"
    """
    margin: float = struct.field(pytree_node=False, default=1.0)
    distance_metric: str = struct.field(pytree_node=False, default="l2")
    mining_strategy: str = struct.field(pytree_node=False, default="hard")
