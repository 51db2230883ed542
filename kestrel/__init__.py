"""Kestrel: XLA executables and numerically-stable losses for JAX.

Public API exports for the backend adapter, losses and hyperparameter context.
"""

# Errors
from kestrel.errors import (
    KestrelError,
    ConfigurationError,
    ShapeMismatchError,
    ArityError,
    UnrecognizedAuxiliaryTensorError,
    InvalidStateError,
    BackendError,
    CompilationError,
    ExecutionError,
)

# Backend adapter
from kestrel.backend import (
    Backend,
    BackendConfig,
    Builder,
    Executable,
    new_backend,
    finalize_executable,
    run,
)

# Hyperparameters
from kestrel.context import Context

# Losses
from kestrel.losses import (
    LossFn,
    LossType,
    make_loss,
    loss_from_context,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "KestrelError",
    "ConfigurationError",
    "ShapeMismatchError",
    "ArityError",
    "UnrecognizedAuxiliaryTensorError",
    "InvalidStateError",
    "BackendError",
    "CompilationError",
    "ExecutionError",

    # Backend
    "Backend",
    "BackendConfig",
    "Builder",
    "Executable",
    "new_backend",
    "finalize_executable",
    "run",

    # Context
    "Context",

    # Losses
    "LossFn",
    "LossType",
    "make_loss",
    "loss_from_context",
]
