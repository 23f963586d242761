"""Builders for statistical layers.

Every statistic is emitted as a declarative transform request on a derived
data source; the renderer evaluates it.  Builders only decide transform
parameters (extents, bin steps, grouping) from the cleaned rows.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..projection import ProjectedData
from ..scales import (
    COLOR_OFFSET_SCALE,
    TIGHT_BAND_PADDING,
    WIDE_BAND_PADDING,
    X_SCALE,
    Y_SCALE,
    AxisRole,
    ScaleKind,
    ScaleSpec,
    axis,
    color_offset_scale,
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
    DerivedSource,
    LayerFragment,
    color_or,
    default_color,
    expr_number,
    facet_group,
    float_param,
    groupby_fields,
    int_param,
    make_mark,
    position,
    scaled,
    series_lines,
    signal,
    value,
)
from .geoms import symbol_encoding

logger = logging.getLogger(__name__)

REGRESSION_METHODS = ("linear", "log", "exp", "pow", "quad", "poly")
HEAT_SCALE = "heatcolor"
WIDTH_SCALE = "widthscale"
WHISKER_FACTOR = 1.5


def _needs_numeric(
    data: ProjectedData, layer: str, *, x: bool = True, y: bool = True
) -> Optional[LayerFragment]:
    """Empty fragment when the rows cannot feed a numeric statistic."""

    if data.is_empty:
        return LayerFragment.empty(f"{layer} layer has no rows to summarize")
    missing = []
    if x and not data.x_is_numeric:
        missing.append("x")
    if y and not data.y_is_numeric:
        missing.append("y")
    if missing:
        return LayerFragment.empty(f"{layer} layer needs numeric {' and '.join(missing)}")
    return None


def _widen(extent: Tuple[float, float]) -> Tuple[float, float]:
    lo, hi = extent
    if hi > lo:
        return lo, hi
    return lo - 0.5, hi + 0.5


def _bin_step(extent: Tuple[float, float], nbins: int) -> Tuple[float, float, float]:
    lo, hi = _widen(extent)
    return lo, hi, (hi - lo) / nbins


def bin_transform(field: str, extent: Tuple[float, float], nbins: int, names: Sequence[str]) -> Dict[str, Any]:
    """Equal-width ``bin`` transform over ``extent`` with exactly ``nbins`` steps."""

    lo, hi, step = _bin_step(extent, nbins)
    return {
        "type": "bin",
        "field": field,
        "extent": [lo, hi],
        "step": step,
        "nice": False,
        "as": list(names),
    }


def count_aggregate(groupby: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "aggregate",
        "groupby": list(groupby),
        "fields": [None],
        "ops": ["count"],
        "as": ["count"],
    }


def formula(expr: str, name: str) -> Dict[str, Any]:
    return {"type": "formula", "expr": expr, "as": name}


def _dodged(data: ProjectedData, band: float) -> Dict[str, Any]:
    """x position at ``band`` of the slot, dodging color groups inside the x band."""

    if not data.has_color_group:
        return scaled(X_SCALE, "x", band=band)
    return signal(
        f"scale('{X_SCALE}', datum.x) + scale('{COLOR_OFFSET_SCALE}', datum.color)"
        f" + bandwidth('{COLOR_OFFSET_SCALE}') * {expr_number(band)}"
    )


def _dodged_width(data: ProjectedData, band: float) -> Dict[str, Any]:
    if not data.has_color_group:
        return scaled(X_SCALE, band=band)
    return signal(f"bandwidth('{COLOR_OFFSET_SCALE}') * {expr_number(band)}")


def _categorical_scales(
    data: ProjectedData, context: BuildContext, padding: float
) -> Tuple[ScaleSpec, ...]:
    scales = [x_scale(data, force_band=True, band_padding=padding), y_scale(data)]
    if data.has_color_group:
        scales.append(color_scale(data, context.config))
        scales.append(color_offset_scale(data))
    return tuple(scales)


# -- fitted curves -----------------------------------------------------------


def _regression(data: ProjectedData, method: str, order: Optional[int]) -> Dict[str, Any]:
    if method not in REGRESSION_METHODS:
        logger.warning("Unknown regression method '%s'; using linear", method)
        method = "linear"
    transform: Dict[str, Any] = {"type": "regression", "x": "x", "y": "y", "method": method}
    if method == "poly":
        transform["order"] = order if order is not None else 3
    if data.has_color_group:
        transform["groupby"] = ["color"]
    return transform


def _fit_line(
    data: ProjectedData,
    source: str,
    name: str,
    *,
    stroke: Dict[str, Any],
    width: int,
    x_field: str = "x",
    y_field: str = "y",
) -> Dict[str, Any]:
    line = make_mark(
        "line",
        source,
        {
            "x": scaled(X_SCALE, x_field),
            "y": scaled(Y_SCALE, y_field),
            "stroke": stroke,
            "strokeWidth": value(width),
        },
        sort={"field": f"datum.{x_field}"},
    )
    return series_lines(data, source, line, name=name, facet_name=f"{source}_series")


def _curve_fragment(
    data: ProjectedData,
    context: BuildContext,
    source: DerivedSource,
    marks: Sequence[Dict[str, Any]],
    *,
    role: AxisRole = AxisRole.REFERENCE,
) -> LayerFragment:
    return LayerFragment(
        marks=tuple(marks),
        required_scales=scatter_scales(data, context.config, role=role),
        data_transforms=(source,),
        axes=default_axes(),
    )


def build_regression_plot(
    data: ProjectedData, params: Mapping[str, Any], context: BuildContext
) -> LayerFragment:
    """Points and their fitted regression line, both read from the cleaned table.

    Categorical fields cannot be fitted; the points are still drawn and the
    fragment notes the dropped line.
    """

    if data.is_empty:
        return LayerFragment.empty("regression plot layer has no rows to summarize")
    config = context.config
    enter = {"x": position(X_SCALE, "x", not data.x_is_numeric)}
    enter.update(symbol_encoding(data, context, config.symbol_size))
    points = make_mark("symbol", TABLE, enter, name="data_points")
    unfittable = _needs_numeric(data, "regression plot")
    if unfittable is not None:
        return LayerFragment(
            marks=(points,),
            required_scales=scatter_scales(data, config),
            axes=default_axes(),
            note=f"{unfittable.note}; fitted line dropped",
        )
    method = str(params.get("method", "linear"))
    order = int_param(params, "order", 3) if "order" in params else None
    source = DerivedSource("regression", TABLE, (_regression(data, method, order),))
    line = _fit_line(
        data,
        source.name,
        "regression_line",
        stroke=color_or(data, config.fit_stroke),
        width=config.line_width,
    )
    return _curve_fragment(data, context, source, (points, line), role=AxisRole.SCATTER)


def build_glm(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    empty = _needs_numeric(data, "glm")
    if empty is not None:
        return empty
    method = str(params.get("method", "linear"))
    order = int_param(params, "order", 3) if "order" in params else None
    source = DerivedSource("glm_fit", TABLE, (_regression(data, method, order),))
    line = _fit_line(
        data,
        source.name,
        "glm_line",
        stroke=color_or(data, context.config.fit_stroke),
        width=context.config.line_width,
    )
    return _curve_fragment(data, context, source, (line,))


def build_fit(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    empty = _needs_numeric(data, "fit")
    if empty is not None:
        return empty
    method = str(params.get("method", "poly"))
    order = int_param(params, "order", 3)
    source = DerivedSource("fit_curve", TABLE, (_regression(data, method, order),))
    line = _fit_line(
        data,
        source.name,
        "fit_line",
        stroke=color_or(data, context.config.fit_stroke),
        width=context.config.line_width,
    )
    return _curve_fragment(data, context, source, (line,))


def build_smooth(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    empty = _needs_numeric(data, "smooth")
    if empty is not None:
        return empty
    bandwidth = float_param(params, "bandwidth", 0.3)
    loess: Dict[str, Any] = {
        "type": "loess",
        "x": "x",
        "y": "y",
        "bandwidth": bandwidth,
        "as": ["smooth_x", "smooth_y"],
    }
    if data.has_color_group:
        loess["groupby"] = ["color"]
    source = DerivedSource("smoothed", TABLE, (loess,))
    line = _fit_line(
        data,
        source.name,
        "smooth_line",
        stroke=default_color(data, context.config),
        width=context.config.smooth_line_width,
        x_field="smooth_x",
        y_field="smooth_y",
    )
    return _curve_fragment(data, context, source, (line,))


# -- distributions -----------------------------------------------------------


def build_bin(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Histogram of x; color groups are stacked inside each bin."""

    empty = _needs_numeric(data, "histogram", y=False)
    if empty is not None:
        return empty
    nbins = int_param(params, "nbins", 30)
    extent = data.x_extent()
    assert extent is not None
    transforms: List[Dict[str, Any]] = [
        bin_transform("x", extent, nbins, ("x0", "x1")),
        count_aggregate(groupby_fields(data, "x0", "x1")),
    ]
    enter: Dict[str, Any] = {
        "x": scaled(X_SCALE, "x0"),
        "x2": scaled(X_SCALE, "x1"),
        "fill": default_color(data, context.config),
    }
    if data.has_color_group:
        transforms.append(
            {
                "type": "stack",
                "groupby": ["x0"],
                "field": "count",
                "sort": {"field": "color"},
                "as": ["y0", "y1"],
            }
        )
        enter["y"] = scaled(Y_SCALE, "y1")
        enter["y2"] = scaled(Y_SCALE, "y0")
        y_field = "y1"
    else:
        enter["y"] = scaled(Y_SCALE, "count")
        enter["y2"] = scaled(Y_SCALE, value=0)
        y_field = "count"
    source = DerivedSource("binned", TABLE, tuple(transforms))
    scales: List[ScaleSpec] = [
        x_scale(data, role=AxisRole.REFERENCE),
        y_scale(data, "binned", field=y_field, continuous=True),
    ]
    if data.has_color_group:
        scales.append(color_scale(data, context.config))
    mark = make_mark("rect", source.name, enter, name="histogram")
    return LayerFragment(
        marks=(mark,),
        required_scales=tuple(scales),
        data_transforms=(source,),
        axes=default_axes(),
    )


def build_density(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    empty = _needs_numeric(data, "density", y=False)
    if empty is not None:
        return empty
    extent = data.x_extent()
    assert extent is not None
    lo, hi = _widen(extent)
    kde: Dict[str, Any] = {
        "type": "kde",
        "field": "x",
        "bandwidth": float_param(params, "bandwidth", 0.4),
        "steps": int_param(params, "steps", 100, minimum=2),
        "extent": [lo, hi],
        "as": ["value", "density"],
    }
    if data.has_color_group:
        kde["groupby"] = ["color"]
    source = DerivedSource("density", TABLE, (kde,))
    line = _fit_line(
        data,
        source.name,
        "density_curves",
        stroke=default_color(data, context.config),
        width=context.config.line_width,
        x_field="value",
        y_field="density",
    )
    scales: List[ScaleSpec] = [
        x_scale(data, role=AxisRole.REFERENCE),
        y_scale(data, source.name, field="density", continuous=True),
    ]
    if data.has_color_group:
        scales.append(color_scale(data, context.config))
    return LayerFragment(
        marks=(line,),
        required_scales=tuple(scales),
        data_transforms=(source,),
        axes=default_axes(),
    )


def build_violin(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Per-category kernel density of y mirrored about the band centre."""

    empty = _needs_numeric(data, "violin", x=False)
    if empty is not None:
        return empty
    extent = data.y_extent()
    assert extent is not None
    lo, hi = _widen(extent)
    groupby = groupby_fields(data, "x")
    kde = {
        "type": "kde",
        "field": "y",
        "groupby": groupby,
        "bandwidth": float_param(params, "bandwidth", 0.7),
        "steps": int_param(params, "steps", 100, minimum=2),
        "extent": [lo, hi],
        "as": ["value", "density"],
    }
    source = DerivedSource("violin_density", TABLE, (kde,))
    slot = COLOR_OFFSET_SCALE if data.has_color_group else X_SCALE
    half = f"bandwidth('{slot}') / 2"
    scales = list(_categorical_scales(data, context, TIGHT_BAND_PADDING))
    scales.append(
        ScaleSpec(
            name=WIDTH_SCALE,
            kind=ScaleKind.CONTINUOUS,
            domain_source=data_domain(source.name, "density"),
            range=(0, {"signal": f"bandwidth('{slot}') * 0.4"}),
        )
    )

    def half_violin(sign: str) -> Dict[str, Any]:
        return make_mark(
            "area",
            "violin",
            {
                "orient": value("horizontal"),
                "fill": default_color(data, context.config),
                "fillOpacity": value(0.7),
            },
            update={
                "y": scaled(Y_SCALE, "value"),
                "x": signal(half),
                "x2": signal(f"{half} {sign} scale('{WIDTH_SCALE}', datum.density)"),
            },
        )

    if data.has_color_group:
        group_x = signal(
            f"scale('{X_SCALE}', datum.x) + scale('{COLOR_OFFSET_SCALE}', datum.color)"
        )
    else:
        group_x = scaled(X_SCALE, "x")
    group = facet_group(
        source.name,
        "violin",
        groupby,
        [half_violin("+"), half_violin("-")],
        name="violins",
        encode={"update": {"x": group_x}},
    )
    return LayerFragment(
        marks=(group,),
        required_scales=tuple(scales),
        data_transforms=(source,),
        axes=(axis("bottom", X_SCALE), axis("left", Y_SCALE, grid=True)),
    )


def _group_key_expr(data: ProjectedData) -> str:
    if data.has_color_group:
        return "'' + datum.x + '|' + datum.color"
    return "'' + datum.x"


def build_boxplot(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Tukey boxplot per category, with outliers strictly outside the whiskers."""

    empty = _needs_numeric(data, "boxplot", x=False)
    if empty is not None:
        return empty
    config = context.config
    stats = ("q1", "median", "q3", "min", "max")
    factor = expr_number(float_param(params, "whisker", WHISKER_FACTOR))
    summary = DerivedSource(
        "boxplot",
        TABLE,
        (
            {
                "type": "aggregate",
                "groupby": groupby_fields(data, "x"),
                "fields": ["y"] * len(stats),
                "ops": list(stats),
                "as": list(stats),
            },
            formula("datum.q3 - datum.q1", "iqr"),
            formula(f"max(datum.min, datum.q1 - {factor} * datum.iqr)", "lower_whisker"),
            formula(f"min(datum.max, datum.q3 + {factor} * datum.iqr)", "upper_whisker"),
            formula(_group_key_expr(data), "group_key"),
        ),
    )
    outliers = DerivedSource(
        "outliers",
        TABLE,
        (
            formula(_group_key_expr(data), "group_key"),
            {
                "type": "lookup",
                "from": summary.name,
                "key": "group_key",
                "fields": ["group_key"],
                "values": ["lower_whisker", "upper_whisker"],
            },
            {
                "type": "filter",
                "expr": "datum.y < datum.lower_whisker || datum.y > datum.upper_whisker",
            },
        ),
    )

    def rule(name: str, enter: Dict[str, Any], width: int = 1) -> Dict[str, Any]:
        enter = dict(enter)
        enter["stroke"] = value(config.outline_stroke)
        enter["strokeWidth"] = value(width)
        return make_mark("rule", summary.name, enter, name=name)

    boxes = make_mark(
        "rect",
        summary.name,
        {
            "x": _dodged(data, 0.25),
            "width": _dodged_width(data, 0.5),
            "y": scaled(Y_SCALE, "q1"),
            "y2": scaled(Y_SCALE, "q3"),
            "fill": default_color(data, config),
            "fillOpacity": value(0.6),
            "stroke": value(config.outline_stroke),
            "strokeWidth": value(1),
        },
        name="boxes",
    )
    marks = [
        boxes,
        rule("median", {"x": _dodged(data, 0.25), "x2": _dodged(data, 0.75), "y": scaled(Y_SCALE, "median")}, 2),
        rule(
            "lower_whisker_cap",
            {"x": _dodged(data, 0.35), "x2": _dodged(data, 0.65), "y": scaled(Y_SCALE, "lower_whisker")},
        ),
        rule(
            "upper_whisker_cap",
            {"x": _dodged(data, 0.35), "x2": _dodged(data, 0.65), "y": scaled(Y_SCALE, "upper_whisker")},
        ),
        rule(
            "lower_whisker_line",
            {"x": _dodged(data, 0.5), "y": scaled(Y_SCALE, "q1"), "y2": scaled(Y_SCALE, "lower_whisker")},
        ),
        rule(
            "upper_whisker_line",
            {"x": _dodged(data, 0.5), "y": scaled(Y_SCALE, "q3"), "y2": scaled(Y_SCALE, "upper_whisker")},
        ),
        make_mark(
            "symbol",
            outliers.name,
            {
                "x": _dodged(data, 0.5),
                "y": scaled(Y_SCALE, "y"),
                "size": value(40),
                "shape": value("circle"),
                "fill": value(config.outline_stroke),
                "fillOpacity": value(0.5),
            },
            name="outlier_points",
        ),
    ]
    return LayerFragment(
        marks=tuple(marks),
        required_scales=_categorical_scales(data, context, TIGHT_BAND_PADDING),
        data_transforms=(summary, outliers),
        axes=(
            axis("bottom", X_SCALE, labelAngle=0, labelAlign="center", labelBaseline="top"),
            axis("left", Y_SCALE, grid=True),
        ),
    )


def build_summary(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Mean bars with normal-approximation confidence intervals."""

    empty = _needs_numeric(data, "summary", x=False)
    if empty is not None:
        return empty
    config = context.config
    z = expr_number(float_param(params, "z", 1.96))
    half_width = f"{z} * datum.stdev_y / sqrt(datum.count_y)"
    source = DerivedSource(
        "summary",
        TABLE,
        (
            {
                "type": "aggregate",
                "groupby": groupby_fields(data, "x"),
                "fields": ["y", "y", "y"],
                "ops": ["mean", "stdev", "count"],
                "as": ["mean_y", "stdev_y", "count_y"],
            },
            formula(f"datum.mean_y - {half_width}", "ci_lower"),
            formula(f"datum.mean_y + {half_width}", "ci_upper"),
        ),
    )
    bars = make_mark(
        "rect",
        source.name,
        {
            "x": _dodged(data, 0),
            "width": _dodged_width(data, 1),
            "y": scaled(Y_SCALE, "mean_y"),
            "y2": scaled(Y_SCALE, value=0),
            "fill": default_color(data, config),
        },
        name="summary_bars",
    )
    errorbars = make_mark(
        "rule",
        source.name,
        {
            "x": _dodged(data, 0.5),
            "y": scaled(Y_SCALE, "ci_lower"),
            "y2": scaled(Y_SCALE, "ci_upper"),
            "strokeWidth": value(config.line_width),
            "stroke": value(config.outline_stroke),
        },
        name="summary_errorbars",
    )
    return LayerFragment(
        marks=(bars, errorbars),
        required_scales=_categorical_scales(data, context, WIDE_BAND_PADDING),
        data_transforms=(source,),
        axes=default_axes(),
    )


def build_qq(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Sample quantiles of y against standard normal quantiles."""

    empty = _needs_numeric(data, "qq", x=False)
    if empty is not None:
        return empty
    groupby = groupby_fields(data)
    window: Dict[str, Any] = {
        "type": "window",
        "sort": {"field": "y"},
        "ops": ["row_number"],
        "as": ["rank"],
    }
    join: Dict[str, Any] = {
        "type": "joinaggregate",
        "fields": [None],
        "ops": ["count"],
        "as": ["n"],
    }
    if groupby:
        window["groupby"] = list(groupby)
        join["groupby"] = list(groupby)
    source = DerivedSource(
        "qq",
        TABLE,
        (window, join, formula("quantileNormal((datum.rank - 0.5) / datum.n)", "theoretical")),
    )
    enter = {"x": scaled(X_SCALE, "theoretical")}
    enter.update(symbol_encoding(data, context, context.config.symbol_size))
    mark = make_mark("symbol", source.name, enter, name="qq_points")
    scales: List[ScaleSpec] = [
        ScaleSpec(
            name=X_SCALE,
            kind=ScaleKind.CONTINUOUS,
            domain_source=data_domain(source.name, "theoretical"),
            range="width",
            nice=True,
        ),
        y_scale(data),
    ]
    if data.has_color_group:
        scales.append(color_scale(data, context.config))
    return LayerFragment(
        marks=(mark,),
        required_scales=tuple(scales),
        data_transforms=(source,),
        axes=default_axes(),
    )


def build_bin2d(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    empty = _needs_numeric(data, "2d histogram")
    if empty is not None:
        return empty
    nbins = int_param(params, "nbins", 20)
    x_extent = data.x_extent()
    y_extent = data.y_extent()
    assert x_extent is not None and y_extent is not None
    source = DerivedSource(
        "binned2d",
        TABLE,
        (
            bin_transform("x", x_extent, nbins, ("x0", "x1")),
            bin_transform("y", y_extent, nbins, ("y0", "y1")),
            count_aggregate(("x0", "x1", "y0", "y1")),
        ),
    )
    heat = ScaleSpec(
        name=HEAT_SCALE,
        kind=ScaleKind.CONTINUOUS,
        domain_source=data_domain(source.name, "count"),
        range=(context.config.heat_low, context.config.default_fill),
        zero_included=True,
    )
    mark = make_mark(
        "rect",
        source.name,
        {
            "x": scaled(X_SCALE, "x0"),
            "x2": scaled(X_SCALE, "x1"),
            "y": scaled(Y_SCALE, "y1"),
            "y2": scaled(Y_SCALE, "y0"),
            "fill": scaled(HEAT_SCALE, "count"),
        },
        name="heatmap",
    )
    return LayerFragment(
        marks=(mark,),
        required_scales=(
            x_scale(data, role=AxisRole.REFERENCE),
            y_scale(data),
            heat,
        ),
        data_transforms=(source,),
        axes=default_axes(),
    )


def ellipse_radius(level: float) -> float:
    """Mahalanobis radius enclosing ``level`` of a bivariate normal."""

    return float(np.sqrt(-2.0 * np.log1p(-level)))


def build_ellipse(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Covariance ellipse per color group, traced from aggregate moments."""

    empty = _needs_numeric(data, "ellipse")
    if empty is not None:
        return empty
    if len(data.rows) < 2:
        return LayerFragment.empty("ellipse layer needs at least two rows")
    level = float_param(params, "level", 0.95)
    if not 0.0 < level < 1.0:
        logger.warning("Ellipse level %s outside (0, 1); using 0.95", level)
        level = 0.95
    npoints = int_param(params, "points", 48, minimum=8)
    k = expr_number(ellipse_radius(level))
    step = expr_number(2 * math.pi / npoints)

    transforms = (
        formula("datum.x * datum.x", "xx"),
        formula("datum.y * datum.y", "yy"),
        formula("datum.x * datum.y", "xy"),
        {
            "type": "aggregate",
            "groupby": groupby_fields(data),
            "fields": ["x", "y", "xx", "yy", "xy"],
            "ops": ["mean"] * 5,
            "as": ["mx", "my", "mxx", "myy", "mxy"],
        },
        formula("max(datum.mxx - datum.mx * datum.mx, 0)", "vx"),
        formula("max(datum.myy - datum.my * datum.my, 0)", "vy"),
        formula("datum.mxy - datum.mx * datum.my", "cxy"),
        formula(
            "sqrt(pow((datum.vx - datum.vy) / 2, 2) + datum.cxy * datum.cxy)", "spread"
        ),
        formula("(datum.vx + datum.vy) / 2 + datum.spread", "l1"),
        formula("max((datum.vx + datum.vy) / 2 - datum.spread, 0)", "l2"),
        formula("atan2(2 * datum.cxy, datum.vx - datum.vy) / 2", "theta"),
        formula(f"sequence(0, {npoints})", "steps"),
        {"type": "flatten", "fields": ["steps"], "as": ["step"]},
        formula(f"datum.step * {step}", "t"),
        formula(
            f"datum.mx + {k} * (sqrt(datum.l1) * cos(datum.t) * cos(datum.theta)"
            " - sqrt(datum.l2) * sin(datum.t) * sin(datum.theta))",
            "ex",
        ),
        formula(
            f"datum.my + {k} * (sqrt(datum.l1) * cos(datum.t) * sin(datum.theta)"
            " + sqrt(datum.l2) * sin(datum.t) * cos(datum.theta))",
            "ey",
        ),
    )
    source = DerivedSource("ellipse", TABLE, transforms)
    color = default_color(data, context.config)
    line = make_mark(
        "line",
        source.name,
        {
            "x": scaled(X_SCALE, "ex"),
            "y": scaled(Y_SCALE, "ey"),
            "interpolate": value("linear-closed"),
            "stroke": color,
            "strokeWidth": value(context.config.line_width),
            "fill": color,
            "fillOpacity": value(0.15),
        },
        sort={"field": "datum.step"},
    )
    mark = series_lines(data, source.name, line, name="ellipses", facet_name="ellipse_series")
    return LayerFragment(
        marks=(mark,),
        required_scales=scatter_scales(data, context.config),
        data_transforms=(source,),
        axes=default_axes(),
    )


def build_cornerhist(data: ProjectedData, params: Mapping[str, Any], context: BuildContext) -> LayerFragment:
    """Histogram of ``y - x`` in an inset at the top-right corner of the plot."""

    empty = _needs_numeric(data, "corner histogram")
    if empty is not None:
        return empty
    nbins = int_param(params, "nbins", 20)
    extent = data.diff_extent()
    assert extent is not None
    config = context.config
    source = DerivedSource(
        "cornerhist",
        TABLE,
        (
            formula("datum.y - datum.x", "diff"),
            bin_transform("diff", extent, nbins, ("d0", "d1")),
            count_aggregate(("d0", "d1")),
        ),
    )
    size = 0.35
    inset_w = f"width * {expr_number(size)}"
    inset_h = f"height * {expr_number(size)}"
    local_scales = [
        {
            "name": "cornerx",
            "type": ScaleKind.CONTINUOUS.value,
            "domain": {"data": source.name, "fields": ["d0", "d1"]},
            "range": [0, {"signal": inset_w}],
            "zero": True,
        },
        {
            "name": "cornery",
            "type": ScaleKind.CONTINUOUS.value,
            "domain": data_domain(source.name, "count"),
            "range": [{"signal": inset_h}, 0],
            "zero": True,
            "nice": True,
        },
    ]
    bars = make_mark(
        "rect",
        source.name,
        {
            "x": scaled("cornerx", "d0"),
            "x2": scaled("cornerx", "d1"),
            "y": scaled("cornery", "count"),
            "y2": scaled("cornery", value=0),
            "fill": value(config.default_fill),
            "fillOpacity": value(0.7),
        },
        name="corner_bars",
    )
    zero_rule = {
        "type": "rule",
        "encode": {
            "enter": {
                "x": scaled("cornerx", value=0),
                "y": value(0),
                "y2": signal(inset_h),
                "stroke": value(config.reference_stroke),
                "strokeDash": value([3, 3]),
            }
        },
    }
    inset = {
        "name": "corner_hist",
        "type": "group",
        "encode": {
            "enter": {
                "x": signal(f"width - {inset_w}"),
                "y": value(0),
                "width": signal(inset_w),
                "height": signal(inset_h),
                "fill": value("white"),
                "stroke": value("#ddd"),
            }
        },
        "scales": local_scales,
        "axes": [
            axis("bottom", "cornerx", title="y - x", labelFontSize=8, tickCount=3),
        ],
        "marks": [bars, zero_rule],
    }
    return LayerFragment(
        marks=(inset,),
        required_scales=scatter_scales(data, config),
        data_transforms=(source,),
        axes=default_axes(),
    )
