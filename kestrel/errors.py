"""Exception types raised by kestrel.

Every error is raised at the call that detects it. Nothing in kestrel retries.
"""

from __future__ import annotations


class KestrelError(Exception):
    """Base class for all kestrel errors."""


class ConfigurationError(KestrelError, ValueError):
    """Invalid configuration: unknown loss name, bad hyperparameter, empty outputs."""


class ShapeMismatchError(KestrelError, ValueError):
    """Tensors whose shapes (or dtypes) do not agree."""


class ArityError(ShapeMismatchError):
    """Wrong number of buffers or donate flags given to an executable."""


class UnrecognizedAuxiliaryTensorError(KestrelError, ValueError):
    """Extra label tensor that is neither a weight nor a mask."""


class InvalidStateError(KestrelError, RuntimeError):
    """Use of a finalized (or never compiled) executable or backend."""


class BackendError(KestrelError, RuntimeError):
    """Failure reported by the XLA runtime, tagged with where it happened."""

    def __init__(self, message: str, *, computation: str, backend: str):
        super().__init__(f"backend {backend!r}, computation {computation!r}: {message}")
        self.computation = computation
        self.backend = backend


class CompilationError(BackendError):
    """Lowering or compiling a computation failed."""


class ExecutionError(BackendError):
    """Running a compiled computation failed."""
