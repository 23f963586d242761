from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence


class DescriptorError(ValueError):
    """Raised when a plot descriptor mapping cannot be interpreted."""


@dataclass(frozen=True)
class PlotDescriptor:
    """Field bindings and layer markers reported by the host plotting library.

    ``results`` keeps the host's declaration order.  Keys are layer markers
    such as ``geom_point`` or ``stat_bin_handle``; values are either a mapping
    of per-layer parameters or an opaque handle.
    """

    x: Sequence[Any]
    y: Sequence[Any]
    color: Optional[Sequence[Any]] = None
    ymin: Optional[Sequence[Any]] = None
    ymax: Optional[Sequence[Any]] = None
    results: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PlotDescriptor":
        if not isinstance(payload, Mapping):
            raise DescriptorError("descriptor must be a mapping")
        aes = payload.get("aes", payload)
        if not isinstance(aes, Mapping):
            raise DescriptorError("'aes' must be a mapping")
        for key in ("x", "y"):
            if key not in aes:
                raise DescriptorError(f"descriptor is missing the '{key}' binding")
            if not _is_sequence(aes[key]):
                raise DescriptorError(f"binding '{key}' must be a sequence")
        optional: Dict[str, Optional[Sequence[Any]]] = {}
        for key in ("color", "ymin", "ymax"):
            value = aes.get(key)
            if value is not None and not _is_sequence(value):
                raise DescriptorError(f"binding '{key}' must be a sequence")
            optional[key] = value
        results = payload.get("results", payload.get("layers", {}))
        if isinstance(results, Sequence) and not isinstance(results, str):
            results = {str(name): {} for name in results}
        if not isinstance(results, Mapping):
            raise DescriptorError("'results' must be a mapping of layer markers")
        return cls(
            x=aes["x"],
            y=aes["y"],
            color=optional["color"],
            ymin=optional["ymin"],
            ymax=optional["ymax"],
            results=dict(results),
        )


@dataclass(frozen=True)
class ChartOptions:
    """Global metadata applied by the assembler and the legend stage."""

    title: str = "Untitled"
    x_label: str = "x-axis"
    y_label: str = "y-axis"
    width: int = 500
    height: int = 500
    interactive: bool = False
    jitter_seed: Optional[int] = None

    @property
    def has_title(self) -> bool:
        return bool(self.title) and self.title != "Untitled"


def _is_sequence(value: object) -> bool:
    if isinstance(value, (str, bytes)):
        return False
    return hasattr(value, "__len__") and hasattr(value, "__getitem__")
