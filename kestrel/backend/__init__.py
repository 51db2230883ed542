"""XLA backend adapter built on JAX.

Core pieces:
- Backend: device selection and buffer placement
- Builder: ordered parameter declaration for one computation
- Executable: compiled program lifecycle (compile, validate, execute, finalize)
"""

from kestrel.backend.backend import (
    BACKEND_NAME,
    Backend,
    BackendConfig,
    new_backend,
)
from kestrel.backend.builder import Builder
from kestrel.backend.executable import (
    Executable,
    compile_executable,
    finalize_executable,
    run,
)
from kestrel.backend.runtime import suppress_runtime_logging

__all__ = [
    "BACKEND_NAME",
    "Backend",
    "BackendConfig",
    "new_backend",
    "Builder",
    "Executable",
    "compile_executable",
    "finalize_executable",
    "run",
    "suppress_runtime_logging",
]
