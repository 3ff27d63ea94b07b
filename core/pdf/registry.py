"""PDF engine resolution for CLI/API callers."""

from __future__ import annotations

import importlib
from collections.abc import Callable

from core.pdf.engine import PdfEngine

EngineFactory = Callable[[], PdfEngine]

_ENGINE_METHODS = ("extract_fields", "fill_fields", "flatten")


def load_engine(reference: str) -> PdfEngine:
    """Instantiate a PDF engine from a ``module:attribute`` reference.

    The attribute is a class or zero-argument factory returning an object
    that implements :class:`PdfEngine`.
    """

    module_name, sep, attribute = reference.strip().partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Engine reference must look like 'module:attribute': {reference}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"Unable to import engine module: {module_name}") from exc

    try:
        factory: EngineFactory = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Engine not found: {reference}") from exc

    engine = factory()
    missing = [name for name in _ENGINE_METHODS if not callable(getattr(engine, name, None))]
    if missing:
        raise ValueError(f"Engine {reference} is missing methods: {', '.join(missing)}")
    return engine
