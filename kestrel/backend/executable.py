"""Executable: a compiled, loaded XLA program and its lifecycle.

States: compiled by :func:`compile_executable`, executed any number of times,
then finalized. Finalize is terminal and idempotent.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence, TYPE_CHECKING

import jax
import jax.numpy as jnp
import numpy as np

from kestrel.errors import (
    ArityError,
    CompilationError,
    ConfigurationError,
    ExecutionError,
    InvalidStateError,
    KestrelError,
)
from kestrel.backend import runtime

if TYPE_CHECKING:
    from kestrel.backend.backend import Backend
    from kestrel.backend.builder import Builder

logger = logging.getLogger(__name__)

# Loaded programs are keyed by the positions of donated inputs; () donates none.
DonateKey = tuple[int, ...]


def _as_output_list(outputs: Any) -> list[jax.Array]:
    if isinstance(outputs, (tuple, list)):
        return [jnp.asarray(out) for out in outputs]
    return [jnp.asarray(outputs)]


class Executable:
    """A compiled computation bound to a backend.

    Not safe to execute concurrently from several threads; serialize access
    or give each caller its own executable.
    """

    def __init__(
        self,
        backend: Backend,
        program: jax.stages.Compiled,
        name: str,
        parameter_names: list[str],
        parameter_shapes: list[jax.ShapeDtypeStruct],
        output_shapes: list[jax.ShapeDtypeStruct],
        traced_fn: Callable[..., Any],
    ):
        self.backend: Backend | None = backend
        self.name = name
        self.parameter_names = parameter_names
        self.parameter_shapes = parameter_shapes
        self.output_shapes = output_shapes
        self._traced_fn: Callable[..., Any] | None = traced_fn
        self._programs: dict[DonateKey, jax.stages.Compiled] | None = {(): program}
        # Kept for error messages after finalize clears the backend.
        self._backend_id = backend.identifier

    @property
    def program(self) -> jax.stages.Compiled | None:
        """The loaded program that donates no inputs (None once finalized)."""
        if self._programs is None:
            return None
        return self._programs.get(())

    def is_valid(self) -> bool:
        return self._programs is not None and self.backend is not None and self.backend.is_valid()

    def assert_valid(self) -> None:
        """Raise InvalidStateError if finalized, or if the backend was finalized."""
        if self._programs is None or self.backend is None:
            raise InvalidStateError(
                f"backend {self._backend_id!r}: executable {self.name!r} already finalized"
            )
        self.backend.assert_valid()

    def finalize(self) -> None:
        """Free the loaded programs. Safe to call more than once."""
        if self._programs is None or self.backend is None:
            return
        for key, program in self._programs.items():
            err = runtime.destroy_program(program)
            if err is not None:
                logger.warning(
                    "Error while destroying executable %r (donate=%s) on backend %r: %s",
                    self.name, key, self._backend_id, err,
                )
        logger.debug("Finalized executable %r on backend %r", self.name, self._backend_id)
        self._programs = None
        self._traced_fn = None
        self.backend = None
        self.parameter_names = []
        self.parameter_shapes = []
        self.output_shapes = []

    def inputs(self) -> tuple[list[str], list[jax.ShapeDtypeStruct]]:
        """Parameter names and shapes, in declaration order."""
        return self.parameter_names, self.parameter_shapes

    def outputs(self) -> list[jax.ShapeDtypeStruct]:
        """Output shapes, in the order the graph function returned them."""
        return self.output_shapes

    def execute(
        self,
        inputs: Sequence[jax.Array],
        donate: Sequence[bool] | None = None,
    ) -> list[jax.Array]:
        """Run the computation on the backend device.

        Args:
            inputs: One buffer per parameter, in declaration order
            donate: Optional per-input flags; donated buffers must not be used
                by the caller afterwards. None or empty donates nothing. Any
                sequence of truthy values works, numpy bool arrays included.

        Returns:
            One buffer per output, in declaration order

        Raises:
            ArityError: Wrong number of inputs or donate flags
            CompilationError: The first call with a new donation pattern
                compiles a program for it, and that compilation failed
            ExecutionError: The runtime failed to run the program
        """
        self.assert_valid()
        num_params = len(self.parameter_shapes)
        if len(inputs) != num_params:
            raise ArityError(
                f"backend {self._backend_id!r}: wrong number of parameters to execute "
                f"{self.name!r}: {len(inputs)} given, {num_params} expected"
            )
        flags = [] if donate is None else [bool(flag) for flag in donate]
        if flags and len(flags) != num_params:
            raise ArityError(
                f"backend {self._backend_id!r}: wrong number of donate values to execute "
                f"{self.name!r}: {len(flags)} given, none or {num_params} expected"
            )
        key: DonateKey = tuple(ii for ii, flag in enumerate(flags) if flag)
        program = self._program_for(key)
        try:
            return runtime.execute_program(program, inputs)
        except Exception as err:
            raise ExecutionError(
                f"failed to execute: {err}", computation=self.name, backend=self._backend_id
            ) from err

    def _program_for(self, key: DonateKey) -> jax.stages.Compiled:
        program = self._programs.get(key)
        if program is not None:
            return program
        # Donation is fixed at compile time, so each donation pattern gets its own program.
        logger.debug("Compiling %r for donated inputs %s", self.name, key)
        program = _compile(
            self._traced_fn,
            self.parameter_shapes,
            key,
            name=self.name,
            backend_id=self._backend_id,
            suppress_logging=self.backend.suppress_logging,
        )
        self._programs[key] = program
        return program

    def __enter__(self) -> Executable:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.finalize()

    def __repr__(self) -> str:
        state = "valid" if self._programs is not None else "finalized"
        return (
            f"Executable({self.name!r}, inputs={self.parameter_names}, "
            f"outputs={len(self.output_shapes)}, {state})"
        )


def finalize_executable(executable: Executable | None) -> None:
    """Finalize ``executable``; a no-op for None."""
    if executable is not None:
        executable.finalize()


def _compile(
    fn: Callable[..., Any],
    arg_specs: Sequence[jax.ShapeDtypeStruct],
    donate_argnums: DonateKey,
    *,
    name: str,
    backend_id: str,
    suppress_logging: bool,
) -> jax.stages.Compiled:
    try:
        with runtime.suppress_runtime_logging(suppress_logging):
            return runtime.compile_program(fn, arg_specs, donate_argnums)
    except KestrelError:
        # Raised by the graph function itself while tracing.
        raise
    except Exception as err:
        raise CompilationError(
            f"failed to compile: {err}", computation=name, backend=backend_id
        ) from err


def compile_executable(
    builder: Builder,
    graph_fn: Callable[..., Any],
    *,
    suppress_logging: bool = False,
) -> Executable:
    """Lower and compile the builder's computation.

    More than one output is returned as a tuple, which XLA un-tuples at
    execution time.
    """
    backend = builder.backend
    output_shapes: list[jax.ShapeDtypeStruct] = []

    def traced(*params: jax.Array) -> Any:
        outputs = _as_output_list(graph_fn(*params))
        if not outputs:
            raise ConfigurationError(
                f"backend {backend.identifier!r}, computation {builder.name!r}: "
                "you must have at least one output to a computation"
            )
        output_shapes[:] = [jax.ShapeDtypeStruct(out.shape, out.dtype) for out in outputs]
        if len(outputs) == 1:
            return outputs[0]
        return tuple(outputs)

    program = _compile(
        traced,
        builder.parameter_shapes,
        (),
        name=builder.name,
        backend_id=backend.identifier,
        suppress_logging=suppress_logging,
    )
    logger.debug(
        "Compiled %r on %s: %d inputs, %d outputs",
        builder.name, backend.identifier, len(builder.parameter_shapes), len(output_shapes),
    )
    return Executable(
        backend=backend,
        program=program,
        name=builder.name,
        parameter_names=list(builder.parameter_names),
        parameter_shapes=list(builder.parameter_shapes),
        output_shapes=list(output_shapes),
        traced_fn=traced,
    )


def run(backend: Backend, graph_fn: Callable[..., Any], *args: Any, name: str = "run") -> list[np.ndarray]:
    """Build, compile, execute and finalize a one-shot computation.

    Every positional argument becomes a parameter. Results are host numpy arrays.
    """
    builder = backend.builder(name)
    buffers = []
    for ii, arg in enumerate(args):
        buffer = backend.buffer(arg)
        builder.parameter(f"arg{ii}", buffer.shape, buffer.dtype)
        buffers.append(buffer)
    with builder.compile(graph_fn) as executable:
        return [np.asarray(out) for out in executable.execute(buffers)]
