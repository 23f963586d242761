"""Detection of requested layers in a plot descriptor."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .descriptor import PlotDescriptor
from .projection import Diagnostic

logger = logging.getLogger(__name__)

HANDLE_SUFFIX = "_handle"


class LayerKind(str, enum.Enum):
    """Closed set of layer kinds the compiler knows how to build."""

    POINT = "geom_point"
    LINE = "geom_line"
    BAR = "geom_bar"
    JITTER = "geom_jitter"
    SWARM = "geom_swarm"
    RASTER = "geom_raster"
    INTERVAL = "geom_interval"
    ABLINE = "geom_abline"
    VLINE = "geom_vline"
    HLINE = "geom_hline"
    POLYGON = "geom_polygon"
    GLM = "stat_glm"
    SMOOTH = "stat_smooth"
    FIT = "stat_fit"
    BIN = "stat_bin"
    DENSITY = "stat_density"
    VIOLIN = "stat_violin"
    BOXPLOT = "stat_boxplot"
    SUMMARY = "stat_summary"
    BIN2D = "stat_bin2d"
    ELLIPSE = "stat_ellipse"
    QQ = "stat_qq"
    CORNERHIST = "stat_cornerhist"
    REGRESSION_PLOT = "regression_plot"

    @property
    def is_statistical(self) -> bool:
        return self.value.startswith("stat_")

    @classmethod
    def from_marker(cls, marker: str) -> Optional["LayerKind"]:
        name = marker[: -len(HANDLE_SUFFIX)] if marker.endswith(HANDLE_SUFFIX) else marker
        if name == cls.REGRESSION_PLOT.value:
            return None
        try:
            return cls(name)
        except ValueError:
            return None


def _freeze(params: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(params))


@dataclass(frozen=True)
class LayerRequest:
    kind: LayerKind
    parameters: Mapping[str, Any] = field(default_factory=lambda: _freeze({}))

    def __post_init__(self) -> None:
        if not isinstance(self.parameters, MappingProxyType):
            object.__setattr__(self, "parameters", _freeze(self.parameters))

    def param(self, key: str, default: Any = None) -> Any:
        return self.parameters.get(key, default)


@dataclass(frozen=True)
class LayerAnalysis:
    requests: Tuple[LayerRequest, ...]
    diagnostics: Tuple[Diagnostic, ...] = ()


def _marker_present(marker: str, value: Any) -> bool:
    if marker.endswith(HANDLE_SUFFIX):
        return True
    if value is None:
        return False
    if isinstance(value, Mapping):
        return True
    if hasattr(value, "__len__"):
        return len(value) > 0
    return bool(value)


def _marker_params(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def analyze_layers(descriptor: PlotDescriptor) -> LayerAnalysis:
    """Build one :class:`LayerRequest` per recognized marker, in declaration order."""

    found: Dict[LayerKind, Dict[str, Any]] = {}
    for marker, value in descriptor.results.items():
        kind = LayerKind.from_marker(str(marker))
        if kind is None:
            logger.debug("Ignoring unrecognized layer marker '%s'", marker)
            continue
        if not _marker_present(str(marker), value):
            continue
        params = _marker_params(value)
        if kind in found:
            # direct and _handle markers describe the same layer
            for key, item in params.items():
                found[kind].setdefault(key, item)
            continue
        found[kind] = params

    requests: List[LayerRequest] = []
    kinds = list(found)
    merged = LayerKind.POINT in found and LayerKind.GLM in found
    for kind in kinds:
        if merged and kind in (LayerKind.POINT, LayerKind.GLM):
            if any(r.kind is LayerKind.REGRESSION_PLOT for r in requests):
                continue
            params = dict(found[LayerKind.GLM])
            for key, item in found[LayerKind.POINT].items():
                params.setdefault(key, item)
            requests.append(LayerRequest(LayerKind.REGRESSION_PLOT, params))
            continue
        requests.append(LayerRequest(kind, found[kind]))

    diagnostics: List[Diagnostic] = []
    if not requests:
        message = "No geom or stat type detected, defaulting to point chart"
        logger.info(message)
        diagnostics.append(Diagnostic("default-layer", message))
        requests.append(LayerRequest(LayerKind.POINT))

    logger.info(
        "Detected %d layer(s): %s",
        len(requests),
        ", ".join(request.kind.value for request in requests),
    )
    return LayerAnalysis(requests=tuple(requests), diagnostics=tuple(diagnostics))
