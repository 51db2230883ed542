"""Hyperparameter context: an immutable, typed key/value store.

Loss builders take explicit config objects; this store is only read by the
``*_from_context`` adapters in :mod:`kestrel.losses.registry`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from kestrel.errors import ConfigurationError

T = TypeVar("T")


def _coerce(key: str, value: Any, default: Any) -> Any:
    if default is None or value is None:
        return value if value is not None else default
    if isinstance(default, bool) or isinstance(value, bool):
        if type(value) is type(default):
            return value
    elif isinstance(default, float) and isinstance(value, int):
        return float(value)
    elif isinstance(value, type(default)):
        return value
    raise ConfigurationError(
        f"hyperparameter {key!r} has value {value!r} of type {type(value).__name__}, "
        f"expected {type(default).__name__}"
    )


@dataclass(frozen=True)
class Context:
    """Immutable hyperparameter store.

    Example:
        >>> ctx = Context().set_param("loss", "huber").set_param("huber_loss_delta", 0.5)
        >>> ctx.get_param_or("huber_loss_delta", 1.0)
        0.5
    """
    params: dict[str, Any] = field(default_factory=dict)

    def get_param_or(self, key: str, default: T) -> T:
        """Value for ``key``, or ``default`` when unset.

        Values are checked against the type of ``default``; ints are accepted
        where a float is expected.
        """
        if key not in self.params:
            return default
        return _coerce(key, self.params[key], default)

    def set_param(self, key: str, value: Any) -> Context:
        """Return a new context with ``key`` set."""
        return Context(params={**self.params, key: value})

    def with_params(self, **params: Any) -> Context:
        """Return a new context with all ``params`` set."""
        return Context(params={**self.params, **params})

    def __contains__(self, key: str) -> bool:
        return key in self.params

    def to_dict(self) -> dict[str, Any]:
        return dict(self.params)

    @classmethod
    def from_dict(cls, params: dict[str, Any]) -> Context:
        return cls(params=dict(params))

    def save(self, path: str | Path) -> None:
        """Save hyperparameters to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.params, f, indent=2, sort_keys=True)

    @classmethod
    def load(cls, path: str | Path) -> Context:
        """Load hyperparameters from a JSON file."""
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))
