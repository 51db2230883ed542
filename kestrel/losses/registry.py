"""Loss lookup by type or by name, and the hyperparameter-context adapters."""

from __future__ import annotations

import enum
from typing import Any

from kestrel.context import Context
from kestrel.errors import ConfigurationError
from kestrel.losses.classification import (
    binary_crossentropy,
    binary_crossentropy_logits,
    categorical_crossentropy,
    categorical_crossentropy_logits,
    sparse_categorical_crossentropy_logits,
)
from kestrel.losses.regression import (
    adaptive_power_loss_from_config,
    huber_loss_from_config,
    mean_absolute_error,
    mean_squared_error,
)
from kestrel.losses.triplet import triplet_loss_from_config
from kestrel.losses.types import AdaptivePowerConfig, HuberConfig, LossFn, TripletConfig

# Hyperparameter names read by loss_from_context and the *_config_from_context adapters.
PARAM_LOSS = "loss"
PARAM_HUBER_LOSS_DELTA = "huber_loss_delta"
PARAM_ADAPTIVE_POWER_LOSS_NEAR = "adaptive_loss_near"
PARAM_ADAPTIVE_POWER_LOSS_FAR = "adaptive_loss_far"
PARAM_ADAPTIVE_POWER_LOSS_MIDDLE_DELTA = "adaptive_loss_middle"
PARAM_ADAPTIVE_POWER_LOSS_SHARPNESS = "adaptive_loss_sharpness"
PARAM_TRIPLET_LOSS_MARGIN = "triplet_loss_margin"
PARAM_TRIPLET_LOSS_DISTANCE_METRIC = "triplet_loss_pairwise_distance_metric"
PARAM_TRIPLET_LOSS_MINING_STRATEGY = "triplet_loss_mining_strategy"


class LossType(enum.Enum):
    """Losses that can be selected by name."""
    MAE = "mae"
    MSE = "mse"
    HUBER = "huber"
    APL = "apl"
    BIN_CROSS = "bin_cross"
    BIN_CROSS_LOGITS = "bin_cross_logits"
    CATEGORICAL_CROSS = "categorical_cross"
    CATEGORICAL_CROSS_LOGITS = "categorical_cross_logits"
    SPARSE_CROSS_LOGITS = "sparse_cross_logits"
    TRIPLET = "triplet"

    @classmethod
    def names(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, name: str) -> LossType:
        """Case-insensitive lookup of a loss name.

        Raises:
            ConfigurationError: Listing the known names
        """
        try:
            return cls(name.strip().lower())
        except (ValueError, AttributeError):
            known = '", "'.join(cls.names())
            raise ConfigurationError(
                f'unknown loss {name!r}, known losses are: "{known}"'
            ) from None


_SIMPLE_LOSSES: dict[LossType, LossFn] = {
    LossType.MAE: mean_absolute_error,
    LossType.MSE: mean_squared_error,
    LossType.BIN_CROSS: binary_crossentropy,
    LossType.BIN_CROSS_LOGITS: binary_crossentropy_logits,
    LossType.CATEGORICAL_CROSS: categorical_crossentropy,
    LossType.CATEGORICAL_CROSS_LOGITS: categorical_crossentropy_logits,
    LossType.SPARSE_CROSS_LOGITS: sparse_categorical_crossentropy_logits,
}

_CONFIGURED_LOSSES = {
    LossType.HUBER: (HuberConfig, huber_loss_from_config),
    LossType.APL: (AdaptivePowerConfig, adaptive_power_loss_from_config),
    LossType.TRIPLET: (TripletConfig, triplet_loss_from_config),
}


def make_loss(loss_type: LossType | str, config: Any = None) -> LossFn:
    """Return the loss for ``loss_type``.

    Args:
        loss_type: A LossType or its (case-insensitive) name
        config: Hyperparameters for Huber, APL and triplet losses
            (default config if None); must be None for the others.
    """
    if not isinstance(loss_type, LossType):
        loss_type = LossType.parse(loss_type)

    if loss_type in _SIMPLE_LOSSES:
        if config is not None:
            raise ConfigurationError(f"loss {loss_type.value!r} takes no configuration")
        return _SIMPLE_LOSSES[loss_type]

    config_cls, build = _CONFIGURED_LOSSES[loss_type]
    if config is None:
        config = config_cls()
    if not isinstance(config, config_cls):
        raise ConfigurationError(
            f"loss {loss_type.value!r} expects a {config_cls.__name__}, "
            f"got {type(config).__name__}"
        )
    return build(config)


def huber_config_from_context(ctx: Context) -> HuberConfig:
    return HuberConfig(delta=ctx.get_param_or(PARAM_HUBER_LOSS_DELTA, 1.0))


def adaptive_power_config_from_context(ctx: Context) -> AdaptivePowerConfig:
    return AdaptivePowerConfig(
        power_near=ctx.get_param_or(PARAM_ADAPTIVE_POWER_LOSS_NEAR, 2.0),
        power_far=ctx.get_param_or(PARAM_ADAPTIVE_POWER_LOSS_FAR, 1.0),
        middle_delta=ctx.get_param_or(PARAM_ADAPTIVE_POWER_LOSS_MIDDLE_DELTA, 1.0),
        sharpness=ctx.get_param_or(PARAM_ADAPTIVE_POWER_LOSS_SHARPNESS, 1.0),
    )


def triplet_config_from_context(ctx: Context) -> TripletConfig:
    return TripletConfig(
        margin=ctx.get_param_or(PARAM_TRIPLET_LOSS_MARGIN, 1.0),
        distance_metric=ctx.get_param_or(PARAM_TRIPLET_LOSS_DISTANCE_METRIC, "l2"),
        mining_strategy=ctx.get_param_or(PARAM_TRIPLET_LOSS_MINING_STRATEGY, "hard"),
    )


_CONTEXT_ADAPTERS = {
    LossType.HUBER: huber_config_from_context,
    LossType.APL: adaptive_power_config_from_context,
    LossType.TRIPLET: triplet_config_from_context,
}


def loss_from_context(ctx: Context) -> LossFn:
    """Loss selected by the ``"loss"`` hyperparameter (default ``"mae"``).

    Huber, APL and triplet losses read their own hyperparameters from ``ctx``
    too.

    Raises:
        ConfigurationError: If the name is unknown (the message lists known
            names) or a hyperparameter is invalid
    """
    name = ctx.get_param_or(PARAM_LOSS, "mae")
    try:
        loss_type = LossType.parse(name)
    except ConfigurationError as err:
        raise ConfigurationError(f"invalid value for hyperparameter {PARAM_LOSS!r}: {err}") from err
    adapter = _CONTEXT_ADAPTERS.get(loss_type)
    config = adapter(ctx) if adapter is not None else None
    return make_loss(loss_type, config)
