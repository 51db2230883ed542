"""Loss functions over JAX arrays.

Every loss has the signature ``loss(labels, predictions) -> loss``:
- labels[0] is the ground truth; optional trailing labels are per-example
  weights and/or a boolean mask
- predictions[0] is the model output (probabilities, logits or values)
- MAE and MSE return a scalar, all other losses return per-example values

Example:
    >>> from kestrel.losses import make_loss
    >>> loss_fn = make_loss("huber", HuberConfig(delta=0.5))
    >>> loss = loss_fn([labels], [predictions])
"""

from kestrel.losses.types import (
    LossFn,
    HuberConfig,
    AdaptivePowerConfig,
    TripletConfig,
    EPSILON16,
    EPSILON32,
    EPSILON64,
    epsilon_for_dtype,
)

from kestrel.losses.masking import (
    check_labels_for_weights_and_mask,
    apply_weights_and_mask,
)

from kestrel.losses.regression import (
    mean_absolute_error,
    mean_squared_error,
    make_huber_loss,
    make_adaptive_power_loss,
)

from kestrel.losses.classification import (
    binary_crossentropy,
    binary_crossentropy_logits,
    categorical_crossentropy,
    categorical_crossentropy_logits,
    sparse_categorical_crossentropy_logits,
)

from kestrel.losses.triplet import (
    make_triplet_loss,
    pairwise_distances,
)

from kestrel.losses.registry import (
    LossType,
    make_loss,
    loss_from_context,
    PARAM_LOSS,
)

__all__ = [
    # Types
    "LossFn",
    "HuberConfig",
    "AdaptivePowerConfig",
    "TripletConfig",
    "EPSILON16",
    "EPSILON32",
    "EPSILON64",
    "epsilon_for_dtype",
    # Weights and mask
    "check_labels_for_weights_and_mask",
    "apply_weights_and_mask",
    # Regression
    "mean_absolute_error",
    "mean_squared_error",
    "make_huber_loss",
    "make_adaptive_power_loss",
    # Classification
    "binary_crossentropy",
    "binary_crossentropy_logits",
    "categorical_crossentropy",
    "categorical_crossentropy_logits",
    "sparse_categorical_crossentropy_logits",
    # Metric learning
    "make_triplet_loss",
    "pairwise_distances",
    # Registry
    "LossType",
    "make_loss",
    "loss_from_context",
    "PARAM_LOSS",
]
