"""Registry of transformers applied to raw query results."""

from __future__ import annotations

import importlib
from collections.abc import Callable, Mapping
from typing import Any, TypeAlias

from ..errors import ResolutionError

NestedQuery: TypeAlias = Callable[[str], dict[str, Any]]
"""Runs another saved query by id and returns its processed result."""

Transformer: TypeAlias = Callable[[dict[str, Any], NestedQuery], Any]
"""Called as transformer(data, query); should return a mapping of result sets."""


class TransformerRegistry:
    """
    Resolves transformer names to callables.

    Names are looked up among the registered transformers first. A name
    of the form `package.module:function` is imported on first use.
    """

    def __init__(self, transformers: Mapping[str, Transformer] | None = None):
        self._transformers: dict[str, Transformer] = dict(transformers or {})

    def register(self, name: str, transformer: Transformer) -> None:
        """Register a transformer under the given name."""
        self._transformers[name] = transformer

    def names(self) -> list[str]:
        return sorted(self._transformers)

    def resolve(self, name: str) -> Transformer:
        """
        Return the transformer registered as `name`.

        Raises:
            ResolutionError: when the name is unknown or cannot be imported.
        """
        transformer = self._transformers.get(name)
        if transformer is not None:
            return transformer
        module_name, sep, attr = name.partition(":")
        if not sep or not module_name or not attr:
            raise ResolutionError(f"Unknown transformer: {name}")
        try:
            module = importlib.import_module(module_name)
            transformer = getattr(module, attr)
        except (ImportError, AttributeError) as exc:
            raise ResolutionError(f"Cannot load transformer {name}: {exc}") from exc
        if not callable(transformer):
            raise ResolutionError(f"Transformer {name} is not callable")
        self._transformers[name] = transformer
        return transformer
