from __future__ import annotations

import importlib
from typing import Callable

import pandas as pd


class InjectorError(RuntimeError):
    pass


_REGISTRY: dict[str, Callable[..., pd.DataFrame]] = {}


def register_injector(name: str, fn: Callable[..., pd.DataFrame]) -> None:
    _REGISTRY[name] = fn


def get_injector(ref: str) -> Callable[..., pd.DataFrame]:
    """
    Resolve an injector by registered name or by "package.module:attribute".
    """
    if ref in _REGISTRY:
        return _REGISTRY[ref]
    if ":" not in ref:
        raise InjectorError(f"Unknown injector: {ref} (expected a registered name or 'module:attribute')")
    module_name, _, attr = ref.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise InjectorError(f"Cannot import injector module '{module_name}': {e}") from e
    fn = module
    for part in attr.split("."):
        if not hasattr(fn, part):
            raise InjectorError(f"Injector '{ref}' not found: {module_name} has no attribute {attr}")
        fn = getattr(fn, part)
    if not callable(fn):
        raise InjectorError(f"Injector '{ref}' is not callable")
    return fn  # type: ignore[return-value]
