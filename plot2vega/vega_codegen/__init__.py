"""Vega mark, scale and data-transform generation for each layer kind."""

from .builders import build_layer, builder_for
from .fragment import (
    TABLE,
    BuildContext,
    DerivedSource,
    InlineSource,
    LayerFragment,
)

__all__ = [
    "build_layer",
    "builder_for",
    "TABLE",
    "BuildContext",
    "DerivedSource",
    "InlineSource",
    "LayerFragment",
]
