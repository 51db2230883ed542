"""Triplet loss over a batch of embeddings with online triplet mining.

labels[0] holds integer class ids shaped ``[batch]`` or ``[batch, 1]``;
predictions[0] holds embeddings shaped ``[batch, dim]``. Every example is used
as an anchor; positives share its class, negatives don't.

See https://arxiv.org/abs/1703.07737 for the mining strategies.
"""

from __future__ import annotations

from typing import Sequence

import jax
import jax.numpy as jnp

from kestrel.errors import ConfigurationError, ShapeMismatchError
from kestrel.losses.masking import apply_weights_and_mask, check_labels_for_weights_and_mask
from kestrel.losses.types import Array, LossFn, TripletConfig, epsilon_for_dtype

DISTANCE_METRICS = ("l2", "squared_l2", "cosine")
MINING_STRATEGIES = ("hard", "all")


def pairwise_distances(embeddings: Array, metric: str = "l2") -> Array:
    """Distances between all rows of ``embeddings``, shaped ``[batch, batch]``."""
    epsilon = epsilon_for_dtype(embeddings.dtype)
    if metric == "cosine":
        norms = jnp.linalg.norm(embeddings, axis=-1, keepdims=True)
        normalized = embeddings / jnp.maximum(norms, epsilon)
        return 1.0 - normalized @ normalized.T

    dot = embeddings @ embeddings.T
    square_norms = jnp.diagonal(dot)
    distances = square_norms[:, None] - 2.0 * dot + square_norms[None, :]
    distances = jnp.maximum(distances, 0.0)
    if metric == "squared_l2":
        return distances

    # sqrt has an infinite gradient at 0.
    zeros = distances <= 0.0
    distances = jnp.sqrt(jnp.where(zeros, epsilon, distances))
    return jnp.where(zeros, 0.0, distances)


def _margin_loss(gap: Array, margin: float) -> Array:
    if margin > 0.0:
        return jnp.maximum(gap + margin, 0.0)
    return jax.nn.softplus(gap)


def make_triplet_loss(
    margin: float = 1.0,
    distance_metric: str = "l2",
    mining_strategy: str = "hard",
) -> LossFn:
    """Triplet loss, returned per anchor (``[batch]``).

    Args:
        margin: Hinge margin. A value <= 0 selects the soft margin
            ``softplus(d(a, p) - d(a, n))``.
        distance_metric: One of "l2", "squared_l2", "cosine"
        mining_strategy: "hard" uses the furthest positive and the closest
            negative of each anchor; "all" averages over every valid triplet.

    Anchors without any positive or any negative get a zero loss.
    """
    distance_metric = distance_metric.lower()
    mining_strategy = mining_strategy.lower()
    if distance_metric not in DISTANCE_METRICS:
        raise ConfigurationError(
            f"unknown triplet distance metric {distance_metric!r}, "
            f"known metrics are: {', '.join(DISTANCE_METRICS)}"
        )
    if mining_strategy not in MINING_STRATEGIES:
        raise ConfigurationError(
            f"unknown triplet mining strategy {mining_strategy!r}, "
            f"known strategies are: {', '.join(MINING_STRATEGIES)}"
        )

    def triplet_loss(labels: Sequence[Array], predictions: Sequence[Array]) -> Array:
        embeddings = jnp.asarray(predictions[0])
        labels0 = jnp.asarray(labels[0])
        if embeddings.ndim != 2:
            raise ShapeMismatchError(
                f"predictions[0] {embeddings.shape} must be embeddings shaped [batch, dim]"
            )
        batch_size = embeddings.shape[0]
        if labels0.shape not in ((batch_size,), (batch_size, 1)):
            raise ShapeMismatchError(
                f"labels[0] {labels0.shape} must be shaped [{batch_size}] or [{batch_size}, 1] "
                f"to match predictions[0] {embeddings.shape}"
            )
        if not jnp.issubdtype(labels0.dtype, jnp.integer):
            raise ConfigurationError(f"labels[0] dtype is {labels0.dtype}, it must be an integer")
        weights, mask = check_labels_for_weights_and_mask(
            jax.ShapeDtypeStruct((batch_size,), embeddings.dtype), labels)

        classes = labels0.reshape(batch_size)
        same_class = classes[:, None] == classes[None, :]
        not_self = ~jnp.eye(batch_size, dtype=jnp.bool_)
        positives = same_class & not_self
        negatives = ~same_class
        valid_anchors = jnp.any(positives, axis=1) & jnp.any(negatives, axis=1)

        distances = pairwise_distances(embeddings, distance_metric)
        if mining_strategy == "hard":
            hardest_positive = jnp.max(jnp.where(positives, distances, 0.0), axis=1)
            row_max = jnp.max(distances, axis=1, keepdims=True)
            hardest_negative = jnp.min(jnp.where(negatives, distances, row_max), axis=1)
            losses = _margin_loss(hardest_positive - hardest_negative, margin)
        else:
            gaps = distances[:, :, None] - distances[:, None, :]
            triplets = positives[:, :, None] & negatives[:, None, :]
            per_triplet = jnp.where(triplets, _margin_loss(gaps, margin), 0.0)
            counts = jnp.sum(triplets, axis=(1, 2))
            losses = jnp.sum(per_triplet, axis=(1, 2)) / jnp.maximum(counts, 1).astype(embeddings.dtype)

        losses = jnp.where(valid_anchors, losses, jnp.zeros_like(losses))
        return apply_weights_and_mask(losses, weights, mask)

    return triplet_loss


def triplet_loss_from_config(config: TripletConfig) -> LossFn:
    return make_triplet_loss(
        margin=config.margin,
        distance_metric=config.distance_metric,
        mining_strategy=config.mining_strategy,
    )
