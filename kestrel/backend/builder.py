"""Builder: collects the parameters of a computation before it is compiled."""

from __future__ import annotations

from typing import Any, Callable, Sequence, TYPE_CHECKING

import jax
import jax.numpy as jnp

from kestrel.errors import ConfigurationError, InvalidStateError
from kestrel.backend.executable import Executable, compile_executable

if TYPE_CHECKING:
    from kestrel.backend.backend import Backend


class Builder:
    """Graph construction context for one computation.

    Parameters are declared in order with :meth:`parameter`; the graph itself is
    a function of those parameters handed to :meth:`compile`.

    Example:
        >>> builder = backend.builder("affine")
        >>> _ = builder.parameter("x", (3,))
        >>> exe = builder.compile(lambda x: [2.0 * x, x + 1.0])
        >>> doubled, shifted = exe.execute([backend.buffer([1.0, 2.0, 3.0])])
    """

    def __init__(self, backend: Backend, name: str):
        backend.assert_valid()
        self.backend = backend
        self.name = name
        self.parameter_names: list[str] = []
        self.parameter_shapes: list[jax.ShapeDtypeStruct] = []
        self.compiled = False

    def parameter(self, name: str, shape: Sequence[int], dtype: Any = jnp.float32) -> int:
        """Declare the next parameter and return its position."""
        if self.compiled:
            raise InvalidStateError(f"computation {self.name!r} already compiled")
        if name in self.parameter_names:
            raise ConfigurationError(
                f"computation {self.name!r}: parameter {name!r} declared twice"
            )
        self.parameter_names.append(name)
        self.parameter_shapes.append(jax.ShapeDtypeStruct(tuple(shape), jnp.dtype(dtype)))
        return len(self.parameter_names) - 1

    def compile(
        self,
        graph_fn: Callable[..., Any],
        *,
        suppress_logging: bool | None = None,
    ) -> Executable:
        """Compile ``graph_fn(*parameters)`` into an executable.

        Args:
            graph_fn: Returns one output value or a sequence of them
            suppress_logging: Silence runtime logs while compiling
                (default: the backend configuration)
        """
        if self.compiled:
            raise InvalidStateError(f"computation {self.name!r} already compiled")
        self.backend.assert_valid()
        if suppress_logging is None:
            suppress_logging = self.backend.suppress_logging
        executable = compile_executable(self, graph_fn, suppress_logging=suppress_logging)
        self.compiled = True
        return executable

    def __repr__(self) -> str:
        return f"Builder({self.name!r}, parameters={self.parameter_names})"
