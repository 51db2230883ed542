"""Losses inside training steps and compiled executables."""

from __future__ import annotations

import numpy as np
import pytest
import jax
import jax.numpy as jnp
import jax.random as random
import optax
from flax import linen as nn
from flax.training import train_state

from kestrel.context import Context
from kestrel.errors import ShapeMismatchError
from kestrel.losses import LossType, loss_from_context, make_loss, sparse_categorical_crossentropy_logits


class Linear(nn.Module):
    features: int = 1

    @nn.compact
    def __call__(self, x):
        return nn.Dense(self.features)(x)


def make_regression_data(n: int = 64):
    key = random.PRNGKey(0)
    x = random.normal(key, (n, 3))
    y = x @ jnp.array([[1.0], [-2.0], [0.5]]) + 0.3
    return x, y


def create_state(model, x, learning_rate=0.1):
    params = model.init(random.PRNGKey(1), x)['params']
    return train_state.TrainState.create(
        apply_fn=model.apply, params=params, tx=optax.adam(learning_rate))


def make_train_step(loss_fn):
    @jax.jit
    def train_step(state, x, y):
        def compute_loss(params):
            predictions = state.apply_fn({'params': params}, x)
            return jnp.mean(loss_fn([y], [predictions]))

        loss, grads = jax.value_and_grad(compute_loss)(state.params)
        return state.apply_gradients(grads=grads), loss

    return train_step


@pytest.mark.parametrize("loss_name", ["mse", "mae", "huber", "apl"])
def test_regression_losses_train(loss_name):
    """Loss goes down when fitting a linear model."""
    x, y = make_regression_data()
    state = create_state(Linear(), x)
    train_step = make_train_step(loss_from_context(Context().set_param("loss", loss_name)))

    state, first_loss = train_step(state, x, y)
    for _ in range(100):
        state, loss = train_step(state, x, y)

    assert np.isfinite(float(loss))
    assert float(loss) < 0.5 * float(first_loss)


def test_classification_loss_trains():
    key = random.PRNGKey(2)
    x = random.normal(key, (128, 2))
    classes = (x[:, 0] + x[:, 1] > 0).astype(jnp.int32)[:, None]
    state = create_state(Linear(features=2), x)
    train_step = make_train_step(sparse_categorical_crossentropy_logits)

    state, first_loss = train_step(state, x, classes)
    for _ in range(100):
        state, loss = train_step(state, x, classes)

    assert float(loss) < float(first_loss)
    logits = state.apply_fn({'params': state.params}, x)
    accuracy = jnp.mean(jnp.argmax(logits, axis=-1) == classes[:, 0])
    assert float(accuracy) > 0.9


def test_loss_compiled_as_executable(backend):
    """A loss can be the graph of a compiled executable."""
    loss_fn = make_loss(LossType.CATEGORICAL_CROSS)
    builder = backend.builder("categorical_cross")
    builder.parameter("labels", (2, 2))
    builder.parameter("predictions", (2, 2))

    with builder.compile(lambda l, p: loss_fn([l], [p])) as exe:
        (loss,) = exe.execute([
            backend.buffer([[1.0, 0.0], [0.0, 1.0]], dtype=np.float32),
            backend.buffer([[0.9, 0.1], [0.2, 0.8]], dtype=np.float32),
        ])
        assert exe.outputs()[0].shape == (2,)

    assert np.allclose(loss, [-np.log(0.9), -np.log(0.8)], atol=1e-6)


def test_loss_shape_errors_surface_at_compile(backend):
    """Shape errors raised while tracing are not turned into compilation errors."""
    builder = backend.builder("mismatch")
    builder.parameter("labels", (3,))
    builder.parameter("predictions", (2,))
    with pytest.raises(ShapeMismatchError):
        builder.compile(lambda l, p: make_loss("mse")([l], [p]))
