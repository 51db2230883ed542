"""XLA backend: device selection, buffer placement and builders."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

import jax
import numpy as np

from kestrel.errors import ConfigurationError, InvalidStateError

if TYPE_CHECKING:
    from kestrel.backend.builder import Builder

logger = logging.getLogger(__name__)

BACKEND_NAME = "xla"


def env_flag(name: str) -> bool:
    """True if the environment variable is "true", "1" or "yes" (any case)."""
    return os.environ.get(name, "").lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class BackendConfig:
    """Immutable backend configuration.

    Args:
        platform: JAX platform to run on ("cpu", "gpu", "tpu"). None picks JAX's default.
        suppress_logging: Default for silencing runtime logs while compiling
    """
    platform: str | None = None
    suppress_logging: bool = False

    @classmethod
    def from_env(cls) -> BackendConfig:
        """Read KESTREL_PLATFORM and KESTREL_SUPPRESS_LOGGING."""
        return cls(
            platform=os.environ.get("KESTREL_PLATFORM") or None,
            suppress_logging=env_flag("KESTREL_SUPPRESS_LOGGING"),
        )


class Backend:
    """Owns the device that builders compile for and buffers live on.

    Example:
        >>> backend = Backend(BackendConfig(platform="cpu"))
        >>> x = backend.buffer([1.0, 2.0])
        >>> backend.finalize()
    """

    name = BACKEND_NAME

    def __init__(self, config: BackendConfig | None = None):
        self.config = config if config is not None else BackendConfig()
        try:
            devices = jax.devices(self.config.platform)
        except RuntimeError as err:
            raise ConfigurationError(
                f"backend {BACKEND_NAME!r}: no devices for platform {self.config.platform!r}"
            ) from err
        self.device: jax.Device | None = devices[0]
        self.platform: str = self.device.platform
        logger.debug("Backend %s using device %s", self.identifier, self.device)

    @property
    def identifier(self) -> str:
        return f"{BACKEND_NAME}:{self.platform}"

    @property
    def suppress_logging(self) -> bool:
        return self.config.suppress_logging

    def is_valid(self) -> bool:
        return self.device is not None

    def assert_valid(self) -> None:
        """Raise InvalidStateError if the backend has been finalized."""
        if self.device is None:
            raise InvalidStateError(f"backend {self.identifier!r}: already finalized")

    def finalize(self) -> None:
        """Release the backend. Safe to call more than once."""
        if self.device is None:
            return
        logger.debug("Finalizing backend %s", self.identifier)
        self.device = None

    def buffer(self, value: Any, dtype: Any = None) -> jax.Array:
        """Place a host value on the backend device."""
        self.assert_valid()
        return jax.device_put(np.asarray(value, dtype=dtype), self.device)

    def builder(self, name: str) -> Builder:
        """Start a new computation to be compiled on this backend."""
        from kestrel.backend.builder import Builder

        return Builder(self, name)

    def __repr__(self) -> str:
        state = "valid" if self.is_valid() else "finalized"
        return f"Backend({self.identifier!r}, {state})"


def new_backend(platform: str | None = None, config: BackendConfig | None = None) -> Backend:
    """Create a backend, falling back to the KESTREL_* environment variables.

    Args:
        platform: Overrides the platform of ``config``
        config: Explicit configuration (default: read from environment)
    """
    if config is None:
        config = BackendConfig.from_env()
    if platform is not None:
        config = BackendConfig(platform=platform, suppress_logging=config.suppress_logging)
    return Backend(config)
