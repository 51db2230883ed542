"""Procedural boundary over the XLA runtime as JAX exposes it.

Everything that touches ``jax.jit(...).lower(...).compile()`` and the loaded
program lives here, so the executable lifecycle only deals with four calls:
compile, execute, destroy and the logging-suppression scope.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Callable, Iterator, Sequence

import jax

# Python-side loggers used by JAX and the absl C++ bridge.
RUNTIME_LOGGERS = ("jax", "absl")


@contextlib.contextmanager
def suppress_runtime_logging(enabled: bool = True) -> Iterator[None]:
    """Raise the runtime loggers to ERROR for the duration of the block.

    Levels are restored on exit, also when the block raises.
    """
    if not enabled:
        yield
        return

    loggers = [logging.getLogger(name) for name in RUNTIME_LOGGERS]
    previous = [lg.level for lg in loggers]
    for lg in loggers:
        lg.setLevel(logging.ERROR)
    try:
        yield
    finally:
        for lg, level in zip(loggers, previous):
            lg.setLevel(level)


def compile_program(
    fn: Callable[..., Any],
    arg_specs: Sequence[jax.ShapeDtypeStruct],
    donate_argnums: tuple[int, ...] = (),
) -> jax.stages.Compiled:
    """Lower ``fn`` for the given argument specs and compile it to a loaded program."""
    lowered = jax.jit(fn, donate_argnums=donate_argnums).lower(*arg_specs)
    return lowered.compile()


def execute_program(program: jax.stages.Compiled, buffers: Sequence[jax.Array]) -> list[jax.Array]:
    """Run a loaded program. Tupled results come back as a flat list."""
    results = program(*buffers)
    if isinstance(results, (tuple, list)):
        return list(results)
    return [results]


def destroy_program(program: jax.stages.Compiled) -> Exception | None:
    """Release the device resources of a loaded program.

    Returns the error reported by the runtime instead of raising it.
    """
    try:
        executable = program.runtime_executable()
        delete = getattr(executable, "delete", None)
        if delete is not None:
            delete()
    except Exception as err:  # noqa: BLE001 - the caller decides what to do with it
        return err
    return None
