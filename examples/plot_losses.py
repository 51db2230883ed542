"""Example: plot regression losses as a function of the prediction error.

Run with: KESTREL_HEADLESS=true python examples/plot_losses.py losses.png
"""

from __future__ import annotations

import sys

from kestrel.visualization import configure_matplotlib_backend

configure_matplotlib_backend()

import jax.numpy as jnp

from kestrel.backend import new_backend
from kestrel.losses import HuberConfig, AdaptivePowerConfig, LossType, make_loss
from kestrel.visualization import plot_univariate


def as_univariate(loss_type: LossType, config=None):
    """Loss of predicting x when the label is 0.5."""
    loss_fn = make_loss(loss_type, config)

    def fn(x):
        return loss_fn([jnp.full_like(x, 0.5)], [x])

    return fn


def main(output: str | None = None) -> None:
    backend = new_backend()
    try:
        fig = plot_univariate(
            "Losses around 0.5;huber(0.2);apl(2->1, mid 0.2);bin_cross_logits",
            as_univariate(LossType.HUBER, HuberConfig(delta=0.2)),
            as_univariate(LossType.APL, AdaptivePowerConfig(middle_delta=0.2, sharpness=0.5)),
            as_univariate(LossType.BIN_CROSS_LOGITS),
            backend=backend,
            show=output is None,
        )
    finally:
        backend.finalize()

    if output is not None:
        fig.savefig(output)
        print(f"Saved plot to {output}")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
