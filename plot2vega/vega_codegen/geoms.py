"""Builders for layers that draw the cleaned rows more or less directly."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..projection import ProjectedData
from ..scales import (
    WIDE_BAND_PADDING,
    X_SCALE,
    Y_SCALE,
    AxisRole,
    ScaleKind,
    ScaleSpec,
    axis,
    color_scale,
    data_domain,
    default_axes,
    scatter_scales,
    x_scale,
    y_scale,
)
from .fragment import (
    TABLE,
    BuildContext,
    InlineSource,
    LayerFragment,
    default_color,
    expr_number,
    float_param,
    make_mark,
    position,
    scaled,
    series_lines,
    signal,
    value,
)

logger = logging.getLogger(__name__)

JITTER_SOURCE = "jittered"
SWARM_SOURCE = "swarmed"
DEFAULT_JITTER_WIDTH = 0.8


def symbol_encoding(data: ProjectedData, context: BuildContext, size: int) -> Dict[str, Any]:
    return {
        "y": position(Y_SCALE, "y", not data.y_is_numeric),
        "size": value(size),
        "stroke": value("white"),
        "strokeWidth": value(1),
        "fill": default_color(data, context.config),
    }


def build_point(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    if data.is_empty:
        return LayerFragment.empty("point layer has no rows to draw")
    enter = {"x": position(X_SCALE, "x", not data.x_is_numeric)}
    enter.update(symbol_encoding(data, context, context.config.symbol_size))
    mark = make_mark("symbol", TABLE, enter, name="points")
    return LayerFragment(
        marks=(mark,),
        required_scales=scatter_scales(data, context.config),
        axes=default_axes(),
    )


def _jitter_offsets(count: int, seed: int, spread: float) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return (rng.random(count) - 0.5) * spread


def _jitter_layer(
    data: ProjectedData,
    params: Mapping[str, Any],
    context: BuildContext,
    *,
    mark_name: str,
    seeded_source: str,
    banded: bool,
    size: int,
    x_axis_extra: Optional[Dict[str, Any]] = None,
) -> LayerFragment:
    """Symbols displaced horizontally by a random offset.

    Banded x spreads the points over ``width`` times the band; continuous x
    uses a fixed pixel spread.  Without a seed the offset is drawn by the
    renderer's ``random()``; with one the offsets are computed here and
    embedded in an inline copy of the rows.
    """

    width = float_param(params, "width", DEFAULT_JITTER_WIDTH)
    config = context.config
    base = f"scale('{X_SCALE}', datum.x)"
    if banded:
        base += f" + bandwidth('{X_SCALE}') / 2"

    sources: List[InlineSource] = []
    source = TABLE
    if context.jitter_seed is None:
        if banded:
            offset = f"(random() - 0.5) * bandwidth('{X_SCALE}') * {expr_number(width)}"
        else:
            offset = f"(random() - 0.5) * {expr_number(config.jitter_pixels)}"
    else:
        spread = width if banded else config.jitter_pixels
        offsets = _jitter_offsets(len(data.rows), context.jitter_seed, spread)
        rows = []
        for record, jitter in zip(data.records(), offsets):
            rows.append({**record, "jitter": float(jitter)})
        sources.append(InlineSource(seeded_source, tuple(rows)))
        source = seeded_source
        offset = f"datum.jitter * bandwidth('{X_SCALE}')" if banded else "datum.jitter"

    mark = make_mark(
        "symbol",
        source,
        symbol_encoding(data, context, size),
        name=mark_name,
        update={"x": signal(f"{base} + {offset}")},
    )
    axes = default_axes(x_extra=x_axis_extra)
    return LayerFragment(
        marks=(mark,),
        required_scales=scatter_scales(data, config, force_band=banded),
        auxiliary_data_sources=tuple(sources),
        axes=axes,
    )


def build_jitter(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    if data.is_empty:
        return LayerFragment.empty("jitter layer has no rows to draw")
    return _jitter_layer(
        data,
        params,
        context,
        mark_name="jitteredPoints",
        seeded_source=JITTER_SOURCE,
        banded=not data.x_is_numeric,
        size=context.config.symbol_size,
    )


def build_swarm(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    # packing is not computed; swarm is a band-forced jitter
    if data.is_empty:
        return LayerFragment.empty("swarm layer has no rows to draw")
    return _jitter_layer(
        data,
        params,
        context,
        mark_name="swarmPoints",
        seeded_source=SWARM_SOURCE,
        banded=True,
        size=context.config.swarm_symbol_size,
        x_axis_extra={"labelAngle": 0, "labelFontSize": 12},
    )


def build_line(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    if data.is_empty:
        return LayerFragment.empty("line layer has no rows to draw")
    config = context.config
    line = make_mark(
        "line",
        TABLE,
        {
            "x": position(X_SCALE, "x", not data.x_is_numeric),
            "y": position(Y_SCALE, "y", not data.y_is_numeric),
            "strokeWidth": value(config.line_width),
            "stroke": default_color(data, config),
        },
        sort={"field": "datum.x"},
    )
    mark = series_lines(data, TABLE, line, name="lines")
    return LayerFragment(
        marks=(mark,),
        required_scales=scatter_scales(data, config, role=AxisRole.REFERENCE),
        axes=default_axes(),
    )


def _bar_scales(data: ProjectedData, context: BuildContext) -> List[ScaleSpec]:
    scales = [
        x_scale(data, force_band=True, band_padding=WIDE_BAND_PADDING),
        replace(y_scale(data), round=True),
    ]
    if data.has_color_group:
        scales.append(color_scale(data, context.config))
    return scales


def build_bar(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    if data.is_empty:
        return LayerFragment.empty("bar layer has no rows to draw")
    if not data.y_is_numeric:
        return LayerFragment.empty("bar layer needs a numeric y field")

    bar_enter = {
        "y": scaled(Y_SCALE, "y"),
        "y2": scaled(Y_SCALE, value=0),
        "fill": default_color(data, context.config),
    }
    if data.has_color_group:
        bar_enter["x"] = scaled("pos", "color")
        bar_enter["width"] = scaled("pos", band=1)
        bar = make_mark("rect", "facet", bar_enter, name="bars")
        mark: Dict[str, Any] = {
            "name": "barGroups",
            "type": "group",
            "from": {"facet": {"data": TABLE, "name": "facet", "groupby": "x"}},
            "encode": {"enter": {"x": scaled(X_SCALE, "x")}},
            "signals": [{"name": "width", "update": f"bandwidth('{X_SCALE}')"}],
            "scales": [
                {
                    "name": "pos",
                    "type": ScaleKind.BANDED.value,
                    "range": "width",
                    "domain": data_domain("facet", "color"),
                }
            ],
            "marks": [bar],
        }
    else:
        bar_enter["x"] = scaled(X_SCALE, "x")
        bar_enter["width"] = scaled(X_SCALE, band=1)
        mark = make_mark("rect", TABLE, bar_enter, name="bars")

    return LayerFragment(
        marks=(mark,),
        required_scales=tuple(_bar_scales(data, context)),
        axes=(
            axis("bottom", X_SCALE, tickSize=0, labelPadding=4, zindex=1),
            axis("left", Y_SCALE),
        ),
    )


def build_raster(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Full-height ticks at each x value; the layer only needs an x scale."""

    if data.is_empty:
        return LayerFragment.empty("raster layer has no rows to draw")
    scales: List[ScaleSpec] = [x_scale(data, role=AxisRole.REFERENCE)]
    if data.has_color_group:
        scales.append(color_scale(data, context.config))
    mark = make_mark(
        "rect",
        TABLE,
        {
            "x": position(X_SCALE, "x", not data.x_is_numeric),
            "width": value(2),
            "y": value(0),
            "height": signal("height"),
            "fill": default_color(data, context.config),
        },
        name="ticks",
    )
    return LayerFragment(
        marks=(mark,),
        required_scales=tuple(scales),
        axes=(axis("bottom", X_SCALE),),
    )


def build_interval(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    if data.is_empty:
        return LayerFragment.empty("interval layer has no rows to draw")
    if not data.has_interval:
        return LayerFragment.empty("interval layer needs numeric ymin and ymax bindings")
    config = context.config
    y = replace(y_scale(data), domain_source={"data": TABLE, "fields": ["y", "ymin", "ymax"]})
    scales = [x_scale(data), y]
    if data.has_color_group:
        scales.append(color_scale(data, config))
    mark = make_mark(
        "rule",
        TABLE,
        {
            "x": position(X_SCALE, "x", not data.x_is_numeric),
            "y": scaled(Y_SCALE, "ymin"),
            "y2": scaled(Y_SCALE, "ymax"),
            "strokeWidth": value(config.line_width),
            "stroke": default_color(data, config),
        },
        name="errorbars",
    )
    return LayerFragment(marks=(mark,), required_scales=tuple(scales), axes=default_axes())


def _reference_style(context: BuildContext, width: int, dash: Sequence[int]) -> Dict[str, Any]:
    return {
        "stroke": value(context.config.reference_stroke),
        "strokeWidth": value(width),
        "strokeDash": value(list(dash)),
    }


def build_abline(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Line ``y = intercept + slope * x`` across the observed x extent."""

    extent = data.x_extent()
    if extent is None:
        return LayerFragment.empty("abline layer needs a numeric x field")
    slope = float_param(params, "slope", 1.0)
    intercept = float_param(params, "intercept", 0.0)
    lo, hi = extent
    points = tuple({"x": x, "y": intercept + slope * x} for x in (lo, hi))
    enter = {"x": scaled(X_SCALE, "x"), "y": scaled(Y_SCALE, "y")}
    enter.update(_reference_style(context, context.config.line_width, (5, 5)))
    mark = make_mark("line", "abline_points", enter, name="abline", clip=True)
    return LayerFragment(
        marks=(mark,),
        required_scales=scatter_scales(data, context.config, role=AxisRole.REFERENCE),
        auxiliary_data_sources=(InlineSource("abline_points", points),),
        axes=default_axes(),
    )


def _intercepts(raw: Any) -> List[float]:
    if raw is None:
        return []
    items = raw if isinstance(raw, (list, tuple, np.ndarray)) else [raw]
    out: List[float] = []
    for item in items:
        try:
            number = float(item)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric intercept %r", item)
            continue
        if np.isfinite(number):
            out.append(number)
    return out


def _reference_rules(
    data: ProjectedData,
    params: Mapping[str, Any],
    context: BuildContext,
    *,
    field: str,
    param_key: str,
    mark_name: str,
    source_name: str,
) -> LayerFragment:
    intercepts = _intercepts(params.get(param_key))
    numeric = data.x_is_numeric if field == "x" else data.y_is_numeric
    sources: List[InlineSource] = []
    if intercepts:
        if not numeric:
            return LayerFragment.empty(f"{mark_name} intercepts need a numeric {field} field")
        sources.append(InlineSource(source_name, tuple({field: v} for v in intercepts)))
        source = source_name
        banded = False
    elif data.is_empty:
        return LayerFragment.empty(f"{mark_name} layer has neither intercepts nor rows")
    else:
        source = TABLE
        banded = not numeric

    if field == "x":
        enter = {"x": position(X_SCALE, "x", banded), "y": value(0), "y2": signal("height")}
    else:
        enter = {"x": value(0), "x2": signal("width"), "y": position(Y_SCALE, "y", banded)}
    enter.update(_reference_style(context, 1, (3, 3)))
    mark = make_mark("rule", source, enter, name=mark_name)
    return LayerFragment(
        marks=(mark,),
        required_scales=scatter_scales(data, context.config, role=AxisRole.REFERENCE),
        auxiliary_data_sources=tuple(sources),
        axes=default_axes(),
    )


def build_vline(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    return _reference_rules(
        data,
        params,
        context,
        field="x",
        param_key="xintercept",
        mark_name="vlines",
        source_name="vline_values",
    )


def build_hline(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    return _reference_rules(
        data,
        params,
        context,
        field="y",
        param_key="yintercept",
        mark_name="hlines",
        source_name="hline_values",
    )


def _vertex_scales(source: str) -> Tuple[ScaleSpec, ...]:
    """Linear x/y scales over inline vertices, for tables that cannot supply a domain."""

    return (
        ScaleSpec(name=X_SCALE, kind=ScaleKind.CONTINUOUS, domain_source=data_domain(source, "x"), range="width"),
        ScaleSpec(
            name=Y_SCALE,
            kind=ScaleKind.CONTINUOUS,
            domain_source=data_domain(source, "y"),
            range="height",
            zero_included=True,
            nice=True,
        ),
    )


def build_polygon(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Closed shape over explicit vertices, or a translucent area under the rows."""

    fill = {"fill": value("#cccccc"), "fillOpacity": value(0.3)}
    numeric_rows = not data.is_empty and data.x_is_numeric and data.y_is_numeric

    xs = _intercepts(params.get("x"))
    ys = _intercepts(params.get("y"))
    if xs and ys:
        if numeric_rows:
            scales = scatter_scales(data, context.config, role=AxisRole.REFERENCE)
        else:
            scales = _vertex_scales("polygon_vertices")
        vertices = tuple({"x": vx, "y": vy} for vx, vy in zip(xs, ys))
        enter = {
            "x": scaled(X_SCALE, "x"),
            "y": scaled(Y_SCALE, "y"),
            "interpolate": value("linear-closed"),
            "stroke": value(context.config.reference_stroke),
            "strokeWidth": value(1),
        }
        enter.update(fill)
        mark = make_mark("line", "polygon_vertices", enter, name="polygons")
        return LayerFragment(
            marks=(mark,),
            required_scales=scales,
            auxiliary_data_sources=(InlineSource("polygon_vertices", vertices),),
            axes=default_axes(),
        )

    if not numeric_rows:
        return LayerFragment.empty("polygon layer needs vertices or numeric x and y fields")
    scales = scatter_scales(data, context.config, role=AxisRole.REFERENCE)
    enter = {
        "x": scaled(X_SCALE, "x"),
        "y": scaled(Y_SCALE, "y"),
        "y2": scaled(Y_SCALE, value=0),
    }
    enter.update(fill)
    mark = make_mark("area", TABLE, enter, name="polygons", sort={"field": "datum.x"})
    return LayerFragment(marks=(mark,), required_scales=scales, axes=default_axes())
