"""Merge layer fragments into one Vega specification."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .config import CompilerConfig
from .descriptor import ChartOptions
from .projection import Diagnostic, ProjectedData
from .scales import COLOR_SCALE, ScaleSpec
from .validate import check_scale_references
from .vega_codegen.fragment import TABLE, DerivedSource, InlineSource, LayerFragment

logger = logging.getLogger(__name__)

Source = Union[DerivedSource, InlineSource]

_AXIS_TITLES = {"bottom": "x_label", "left": "y_label"}


@dataclass(frozen=True)
class VisualizationSpec:
    """Assembled chart document; :meth:`to_vega` yields the JSON-ready mapping."""

    width: int
    height: int
    padding: Dict[str, int]
    data: Tuple[Dict[str, Any], ...]
    scales: Tuple[ScaleSpec, ...]
    axes: Tuple[Dict[str, Any], ...]
    marks: Tuple[Dict[str, Any], ...]
    legends: Tuple[Dict[str, Any], ...] = ()
    signals: Tuple[Dict[str, Any], ...] = ()
    title: Optional[str] = None
    schema: str = ""
    autosize: str = "none"
    color_domain: Tuple[str, ...] = field(default=(), compare=False)

    def scale(self, name: str) -> Optional[ScaleSpec]:
        for scale in self.scales:
            if scale.name == name:
                return scale
        return None

    @property
    def has_color_scale(self) -> bool:
        return self.scale(COLOR_SCALE) is not None

    def to_vega(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            "$schema": self.schema,
            "width": self.width,
            "height": self.height,
            "padding": dict(self.padding),
            "autosize": self.autosize,
        }
        if self.title:
            spec["title"] = self.title
        if self.signals:
            spec["signals"] = copy.deepcopy(list(self.signals))
        spec["data"] = copy.deepcopy(list(self.data))
        spec["scales"] = [scale.to_vega() for scale in self.scales]
        spec["axes"] = copy.deepcopy(list(self.axes))
        spec["marks"] = copy.deepcopy(list(self.marks))
        if self.legends:
            spec["legends"] = copy.deepcopy(list(self.legends))
        return spec


def _merge_scales(
    fragments: Sequence[LayerFragment], diagnostics: List[Diagnostic]
) -> Tuple[ScaleSpec, ...]:
    merged: Dict[str, ScaleSpec] = {}
    for fragment in fragments:
        for scale in fragment.required_scales:
            kept = merged.get(scale.name)
            if kept is None:
                merged[scale.name] = scale
                continue
            if not kept.compatible_with(scale):
                message = (
                    f"Scale '{scale.name}' requested as {scale.kind.value} but already "
                    f"declared as {kept.kind.value}; keeping the first declaration"
                )
                logger.warning(message)
                diagnostics.append(Diagnostic("scale-conflict", message))
    return tuple(merged.values())


def _merge_sources(
    fragments: Sequence[LayerFragment], diagnostics: List[Diagnostic]
) -> List[Dict[str, Any]]:
    merged: Dict[str, Dict[str, Any]] = {}
    for fragment in fragments:
        sources: List[Source] = list(fragment.auxiliary_data_sources)
        sources.extend(fragment.data_transforms)
        for source in sources:
            rendered = source.to_vega()
            kept = merged.get(source.name)
            if source.name == TABLE or (kept is not None and kept != rendered):
                message = f"Data source '{source.name}' declared twice with different content; keeping the first"
                logger.warning(message)
                diagnostics.append(Diagnostic("source-conflict", message))
                continue
            merged.setdefault(source.name, rendered)
    return list(merged.values())


def _merge_axes(fragments: Sequence[LayerFragment], options: ChartOptions) -> List[Dict[str, Any]]:
    by_orient: Dict[str, Dict[str, Any]] = {}
    for fragment in fragments:
        for ax in fragment.axes:
            by_orient.setdefault(ax["orient"], dict(ax))
    axes = []
    for orient, ax in by_orient.items():
        label_attr = _AXIS_TITLES.get(orient)
        if label_attr is not None:
            ax["title"] = getattr(options, label_attr)
        axes.append(ax)
    return axes


def assemble_spec(
    fragments: Sequence[LayerFragment],
    data: ProjectedData,
    options: ChartOptions,
    config: CompilerConfig,
) -> Tuple[VisualizationSpec, Tuple[Diagnostic, ...]]:
    """Concatenate marks in request order and merge scales, sources and axes by name.

    The cleaned rows always form the first data source, ``table``.  The result
    is checked for dangling scale references before it is returned.
    """

    diagnostics: List[Diagnostic] = []
    drawn = [fragment for fragment in fragments if not fragment.is_empty]
    marks: List[Dict[str, Any]] = []
    for fragment in drawn:
        marks.extend(copy.deepcopy(list(fragment.marks)))

    table = {"name": TABLE, "values": data.records()}
    spec = VisualizationSpec(
        width=options.width,
        height=options.height,
        padding=dict(config.padding),
        data=tuple([table] + _merge_sources(drawn, diagnostics)),
        scales=_merge_scales(drawn, diagnostics),
        axes=tuple(_merge_axes(drawn, options)),
        marks=tuple(marks),
        title=options.title if options.has_title else None,
        schema=config.schema_url,
        color_domain=data.color_domain,
    )
    check_scale_references(spec.to_vega())
    logger.info(
        "Assembled %d mark(s), %d scale(s), %d data source(s) from %d layer(s)",
        len(spec.marks),
        len(spec.scales),
        len(spec.data),
        len(fragments),
    )
    return spec, tuple(diagnostics)
