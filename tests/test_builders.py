import math

import pytest

from plot2vega.analyzer import LayerKind, LayerRequest
from plot2vega.config import default_config
from plot2vega.projection import project_data
from plot2vega.vega_codegen import BuildContext, build_layer, builder_for
from plot2vega.vega_codegen.stats import ellipse_radius


def _context(seed=None):
    return BuildContext(config=default_config(), jitter_seed=seed)


def _build(kind, data, seed=None, **params):
    return build_layer(LayerRequest(kind, params), data, _context(seed))


def _source(fragment, name):
    for source in fragment.data_transforms:
        if source.name == name:
            return source.to_vega()
    raise KeyError(name)


def _scale_names(fragment):
    return [scale.name for scale in fragment.required_scales]


def test_every_layer_kind_has_a_builder():
    for kind in LayerKind:
        assert callable(builder_for(kind))


def test_histogram_bins_span_observed_extent():
    data = project_data(list(range(11)), [1] * 11)

    fragment = _build(LayerKind.BIN, data, nbins=5)

    binned = _source(fragment, "binned")
    bin_step, aggregate = binned["transform"]
    assert bin_step["type"] == "bin"
    assert bin_step["extent"] == [0.0, 10.0]
    assert bin_step["step"] == pytest.approx(2.0)
    assert bin_step["nice"] is False
    assert aggregate["groupby"] == ["x0", "x1"]
    assert aggregate["ops"] == ["count"]
    assert fragment.marks[0]["from"] == {"data": "binned"}


def test_histogram_stacks_color_groups():
    data = project_data([1, 2, 3, 4], [0, 0, 0, 0], ["A", "B", "A", "B"])

    fragment = _build(LayerKind.BIN, data)

    transforms = _source(fragment, "binned")["transform"]
    assert transforms[1]["groupby"] == ["x0", "x1", "color"]
    assert transforms[2]["type"] == "stack"
    assert transforms[0]["step"] == pytest.approx(3.0 / 30)
    assert "color" in _scale_names(fragment)


def test_histogram_of_single_value_widens_extent():
    data = project_data([4, 4], [1, 2])

    bin_step = _source(_build(LayerKind.BIN, data, nbins=2), "binned")["transform"][0]

    assert bin_step["extent"] == [3.5, 4.5]
    assert bin_step["step"] == pytest.approx(0.5)


def test_histogram_with_categorical_x_is_empty():
    data = project_data(["a", "b"], [1, 2])

    fragment = _build(LayerKind.BIN, data)

    assert fragment.is_empty
    assert "numeric x" in fragment.note


def test_invalid_parameter_falls_back_to_default():
    data = project_data([0, 3], [1, 2])

    bin_step = _source(_build(LayerKind.BIN, data, nbins="many"), "binned")["transform"][0]

    assert bin_step["step"] == pytest.approx(0.1)


def test_point_layer_binds_rows_directly():
    data = project_data([1, 2], [3, 4])

    fragment = _build(LayerKind.POINT, data)

    [mark] = fragment.marks
    assert mark["type"] == "symbol"
    assert mark["from"] == {"data": "table"}
    assert mark["encode"]["enter"]["fill"] == {"value": "#ff4565"}
    assert _scale_names(fragment) == ["xscale", "yscale"]


def test_empty_data_gives_empty_fragment():
    data = project_data([], [])

    for kind in LayerKind:
        assert _build(kind, data).is_empty, kind


def test_grouped_line_fans_out_per_color():
    data = project_data([1, 2, 3, 4], [1, 2, 3, 4], ["A", "A", "B", "B"])

    [group] = _build(LayerKind.LINE, data).marks

    assert group["type"] == "group"
    assert group["from"]["facet"] == {"name": "series", "data": "table", "groupby": "color"}
    [line] = group["marks"]
    assert line["from"] == {"data": "series"}
    assert line["sort"] == {"field": "datum.x"}
    assert line["encode"]["enter"]["stroke"] == {"scale": "color", "field": "color"}


def test_grouped_bars_dodge_inside_category_band():
    data = project_data(["a", "a", "b", "b"], [1, 2, 3, 4], ["A", "B", "A", "B"])

    fragment = _build(LayerKind.BAR, data)

    [group] = fragment.marks
    assert group["name"] == "barGroups"
    assert group["from"]["facet"]["groupby"] == "x"
    assert group["scales"][0]["name"] == "pos"
    assert group["marks"][0]["encode"]["enter"]["x"] == {"scale": "pos", "field": "color"}
    xscale = fragment.required_scales[0].to_vega()
    assert xscale["type"] == "band"
    assert xscale["padding"] == 0.2


def test_bar_with_categorical_y_is_empty():
    data = project_data(["a", "b"], ["c", "d"])

    assert _build(LayerKind.BAR, data).is_empty


def test_swarm_forces_banded_x():
    data = project_data([1, 2, 3], [1, 2, 3])

    fragment = _build(LayerKind.SWARM, data)

    assert fragment.required_scales[0].to_vega()["type"] == "band"
    update_x = fragment.marks[0]["encode"]["update"]["x"]["signal"]
    assert "random()" in update_x
    assert "bandwidth('xscale')" in update_x


def test_seeded_jitter_embeds_offsets():
    data = project_data([1, 2, 3], [1, 2, 3])

    first = _build(LayerKind.JITTER, data, seed=3)
    second = _build(LayerKind.JITTER, data, seed=3)

    assert first == second
    [source] = first.auxiliary_data_sources
    assert source.name == "jittered"
    assert all(abs(row["jitter"]) <= 6 for row in source.values)
    assert first.marks[0]["from"] == {"data": "jittered"}
    assert "random()" not in first.marks[0]["encode"]["update"]["x"]["signal"]


def test_raster_needs_only_x_scale():
    data = project_data([1, 2], [3, 4])

    fragment = _build(LayerKind.RASTER, data)

    assert _scale_names(fragment) == ["xscale"]
    assert [ax["orient"] for ax in fragment.axes] == ["bottom"]


def test_interval_requires_bounds():
    plain = project_data([1, 2], [3, 4])
    bounded = project_data([1, 2], [3, 4], ymin=[2, 3], ymax=[4, 5])

    assert _build(LayerKind.INTERVAL, plain).is_empty
    fragment = _build(LayerKind.INTERVAL, bounded)
    assert fragment.marks[0]["encode"]["enter"]["y2"] == {"scale": "yscale", "field": "ymax"}
    assert fragment.required_scales[1].to_vega()["domain"]["fields"] == ["y", "ymin", "ymax"]


def test_abline_spans_x_extent():
    data = project_data([0, 4], [0, 1])

    fragment = _build(LayerKind.ABLINE, data, slope=2, intercept=1)

    [points] = fragment.auxiliary_data_sources
    assert points.values == ({"x": 0.0, "y": 1.0}, {"x": 4.0, "y": 9.0})


def test_reference_rules_use_inline_intercepts():
    data = project_data([1, 2], [3, 4])

    vline = _build(LayerKind.VLINE, data, xintercept=[1.5, "bad", 2.5])
    hline = _build(LayerKind.HLINE, data)

    assert vline.auxiliary_data_sources[0].values == ({"x": 1.5}, {"x": 2.5})
    assert vline.marks[0]["from"] == {"data": "vline_values"}
    assert hline.marks[0]["from"] == {"data": "table"}


def test_polygon_closes_explicit_vertices():
    data = project_data([0, 1], [0, 1])

    fragment = _build(LayerKind.POLYGON, data, x=[0, 1, 1], y=[0, 0, 1])

    assert fragment.marks[0]["encode"]["enter"]["interpolate"] == {"value": "linear-closed"}
    assert len(fragment.auxiliary_data_sources[0].values) == 3


def test_regression_plot_shares_table_with_fit():
    data = project_data([1, 2, 3], [2, 4, 6], ["A", "B", "A"])

    fragment = _build(LayerKind.REGRESSION_PLOT, data, method="poly", order=2)

    points, line = fragment.marks
    assert points["from"] == {"data": "table"}
    [regression] = _source(fragment, "regression")["transform"]
    assert regression == {
        "type": "regression",
        "x": "x",
        "y": "y",
        "method": "poly",
        "order": 2,
        "groupby": ["color"],
    }
    assert line["from"]["facet"]["data"] == "regression"


def test_fit_defaults_to_cubic_polynomial():
    data = project_data([1, 2, 3], [2, 4, 6])

    [regression] = _source(_build(LayerKind.FIT, data), "fit_curve")["transform"]

    assert regression["method"] == "poly"
    assert regression["order"] == 3


def test_unknown_regression_method_falls_back_to_linear():
    data = project_data([1, 2, 3], [2, 4, 6])

    [regression] = _source(_build(LayerKind.GLM, data, method="spline"), "glm_fit")["transform"]

    assert regression["method"] == "linear"
    assert "order" not in regression


def test_smooth_requests_loess():
    data = project_data([1, 2, 3], [2, 4, 6])

    [loess] = _source(_build(LayerKind.SMOOTH, data, bandwidth=0.5), "smoothed")["transform"]

    assert loess["type"] == "loess"
    assert loess["bandwidth"] == 0.5


def test_density_and_violin_use_kde():
    numeric = project_data([1, 2, 3], [2, 4, 6])
    categories = project_data(["a", "a", "b"], [2, 4, 6])

    [density] = _source(_build(LayerKind.DENSITY, numeric), "density")["transform"]
    violin = _build(LayerKind.VIOLIN, categories)
    [kde] = _source(violin, "violin_density")["transform"]

    assert density["field"] == "x"
    assert density["extent"] == [1.0, 3.0]
    assert kde["field"] == "y"
    assert kde["groupby"] == ["x"]
    assert kde["bandwidth"] == 0.7
    [group] = violin.marks
    assert [mark["type"] for mark in group["marks"]] == ["area", "area"]
    assert "widthscale" in _scale_names(violin)


def test_boxplot_whiskers_and_outliers():
    data = project_data(["a", "a", "b", "b"], [1, 2, 3, 40], ["A", "B", "A", "B"])

    fragment = _build(LayerKind.BOXPLOT, data)

    summary = _source(fragment, "boxplot")["transform"]
    assert summary[0]["ops"] == ["q1", "median", "q3", "min", "max"]
    assert summary[0]["groupby"] == ["x", "color"]
    formulas = {step["as"]: step["expr"] for step in summary[1:]}
    assert formulas["iqr"] == "datum.q3 - datum.q1"
    assert formulas["lower_whisker"] == "max(datum.min, datum.q1 - 1.5 * datum.iqr)"
    assert formulas["upper_whisker"] == "min(datum.max, datum.q3 + 1.5 * datum.iqr)"
    outliers = _source(fragment, "outliers")["transform"]
    assert outliers[1]["from"] == "boxplot"
    assert outliers[2]["expr"] == "datum.y < datum.lower_whisker || datum.y > datum.upper_whisker"
    names = [mark["name"] for mark in fragment.marks]
    assert names[0] == "boxes"
    assert names[-1] == "outlier_points"
    assert "colorpos" in _scale_names(fragment)


def test_summary_confidence_interval():
    data = project_data(["a", "a"], [1, 3])

    transforms = _source(_build(LayerKind.SUMMARY, data), "summary")["transform"]

    assert transforms[0]["ops"] == ["mean", "stdev", "count"]
    assert transforms[1]["expr"] == "datum.mean_y - 1.96 * datum.stdev_y / sqrt(datum.count_y)"


def test_qq_ranks_against_normal_quantiles():
    data = project_data([1, 2, 3], [3, 1, 2])

    fragment = _build(LayerKind.QQ, data)

    window, join, theoretical = _source(fragment, "qq")["transform"]
    assert window["ops"] == ["row_number"]
    assert join["as"] == ["n"]
    assert theoretical["expr"] == "quantileNormal((datum.rank - 0.5) / datum.n)"
    assert fragment.required_scales[0].to_vega()["domain"] == {"data": "qq", "field": "theoretical"}


def test_bin2d_uses_heat_scale():
    data = project_data([0, 1, 2], [0, 2, 4])

    fragment = _build(LayerKind.BIN2D, data, nbins=2)

    xbin, ybin, count = _source(fragment, "binned2d")["transform"]
    assert xbin["step"] == pytest.approx(1.0)
    assert ybin["step"] == pytest.approx(2.0)
    assert count["groupby"] == ["x0", "x1", "y0", "y1"]
    assert fragment.marks[0]["encode"]["enter"]["fill"] == {"scale": "heatcolor", "field": "count"}


def test_ellipse_radius_matches_chi_square_quantile():
    assert ellipse_radius(0.95) == pytest.approx(math.sqrt(5.991464547), rel=1e-6)


def test_ellipse_needs_two_rows():
    assert _build(LayerKind.ELLIPSE, project_data([1], [1])).is_empty
    fragment = _build(LayerKind.ELLIPSE, project_data([1, 2, 3], [1, 3, 2]), points=12)
    transforms = _source(fragment, "ellipse")["transform"]
    assert {"type": "flatten", "fields": ["steps"], "as": ["step"]} in transforms
    assert {"type": "formula", "expr": "sequence(0, 12)", "as": "steps"} in transforms


def test_cornerhist_declares_local_scales():
    data = project_data([1, 2, 3], [2, 2, 5])

    fragment = _build(LayerKind.CORNERHIST, data)

    [inset] = fragment.marks
    assert inset["type"] == "group"
    assert [scale["name"] for scale in inset["scales"]] == ["cornerx", "cornery"]
    assert "cornerx" not in _scale_names(fragment)
    diff, bin_step, _ = _source(fragment, "cornerhist")["transform"]
    assert diff["expr"] == "datum.y - datum.x"
    assert bin_step["extent"] == [0.0, 2.0]


def test_regression_plot_keeps_points_for_categorical_x():
    data = project_data(["a", "b", "c"], [1, 2, 3])

    fragment = _build(LayerKind.REGRESSION_PLOT, data)

    [points] = fragment.marks
    assert points["name"] == "data_points"
    assert points["encode"]["enter"]["x"] == {"scale": "xscale", "field": "x", "band": 0.5}
    assert fragment.data_transforms == ()
    assert "fitted line dropped" in fragment.note
    assert fragment.required_scales[0].to_vega()["type"] == "band"


def test_polygon_vertices_need_no_rows():
    for data in (project_data([], []), project_data(["a", "b"], [1, 2])):
        fragment = _build(LayerKind.POLYGON, data, x=[0, 2, 1], y=[0, 0, 3])

        assert [mark["name"] for mark in fragment.marks] == ["polygons"]
        domains = [scale.to_vega()["domain"] for scale in fragment.required_scales]
        assert domains == [
            {"data": "polygon_vertices", "field": "x"},
            {"data": "polygon_vertices", "field": "y"},
        ]
