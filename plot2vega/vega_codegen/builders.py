"""Dispatch from :class:`LayerKind` to the builder that compiles it."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping

from ..analyzer import LayerKind, LayerRequest
from ..projection import ProjectedData
from . import geoms, stats
from .fragment import BuildContext, LayerFragment

logger = logging.getLogger(__name__)

Builder = Callable[[ProjectedData, Mapping[str, Any], BuildContext], LayerFragment]

_BUILDERS: Dict[LayerKind, Builder] = {
    LayerKind.POINT: geoms.build_point,
    LayerKind.LINE: geoms.build_line,
    LayerKind.BAR: geoms.build_bar,
    LayerKind.JITTER: geoms.build_jitter,
    LayerKind.SWARM: geoms.build_swarm,
    LayerKind.RASTER: geoms.build_raster,
    LayerKind.INTERVAL: geoms.build_interval,
    LayerKind.ABLINE: geoms.build_abline,
    LayerKind.VLINE: geoms.build_vline,
    LayerKind.HLINE: geoms.build_hline,
    LayerKind.POLYGON: geoms.build_polygon,
    LayerKind.REGRESSION_PLOT: stats.build_regression_plot,
    LayerKind.GLM: stats.build_glm,
    LayerKind.FIT: stats.build_fit,
    LayerKind.SMOOTH: stats.build_smooth,
    LayerKind.BIN: stats.build_bin,
    LayerKind.DENSITY: stats.build_density,
    LayerKind.VIOLIN: stats.build_violin,
    LayerKind.BOXPLOT: stats.build_boxplot,
    LayerKind.SUMMARY: stats.build_summary,
    LayerKind.QQ: stats.build_qq,
    LayerKind.BIN2D: stats.build_bin2d,
    LayerKind.ELLIPSE: stats.build_ellipse,
    LayerKind.CORNERHIST: stats.build_cornerhist,
}

_missing = [kind.value for kind in LayerKind if kind not in _BUILDERS]
if _missing:
    raise RuntimeError(f"no layer builder registered for: {', '.join(_missing)}")


def builder_for(kind: LayerKind) -> Builder:
    return _BUILDERS[kind]


def build_layer(request: LayerRequest, data: ProjectedData, context: BuildContext) -> LayerFragment:
    fragment = _BUILDERS[request.kind](data, request.parameters, context)
    if fragment.is_empty:
        logger.info("Layer %s produced no marks: %s", request.kind.value, fragment.note)
    else:
        logger.debug(
            "Layer %s produced %d mark(s), %d scale(s), %d derived source(s)",
            request.kind.value,
            len(fragment.marks),
            len(fragment.required_scales),
            len(fragment.data_transforms),
        )
    return fragment
