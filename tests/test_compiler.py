import json
import math

import pytest

from plot2vega.analyzer import LayerKind
from plot2vega.compiler import compile_plot, compile_to_vega
from plot2vega.descriptor import ChartOptions, DescriptorError, PlotDescriptor
from plot2vega.validate import check_scale_references


def _numeric_descriptor(results, color=None):
    return PlotDescriptor(
        x=[1.0, 2.0, 3.0, 4.0, 5.0, 6.0],
        y=[2.0, 1.0, 4.0, 3.0, 6.0, 5.0],
        color=color,
        results=results,
    )


def test_point_scenario_drops_nan_row_and_pads_x_scale():
    descriptor = {"x": [1, 2, 3, math.nan, 5], "y": [10, 20, 30, 40, 50], "results": {"geom_point": {}}}

    result = compile_plot(descriptor)
    doc = result.to_vega()

    assert doc["data"][0]["values"] == [
        {"x": 1.0, "y": 10.0},
        {"x": 2.0, "y": 20.0},
        {"x": 3.0, "y": 30.0},
        {"x": 5.0, "y": 50.0},
    ]
    xscale = next(scale for scale in doc["scales"] if scale["name"] == "xscale")
    assert xscale["type"] == "linear"
    assert xscale["domainMin"] == pytest.approx(0.8)
    dropped = [d for d in result.diagnostics if d.kind == "dropped-rows"]
    assert [d.count for d in dropped] == [1]


def test_bar_scenario_has_static_color_legend():
    descriptor = {
        "x": ["a", "b", "a", "b"],
        "y": [1, 2, 3, 4],
        "color": ["A", "A", "B", "B"],
        "results": {"geom_bar": {}},
    }

    doc = compile_to_vega(descriptor, ChartOptions(interactive=False))

    color_scales = [scale for scale in doc["scales"] if scale["name"] == "color"]
    assert len(color_scales) == 1
    assert color_scales[0]["domain"] == ["A", "B"]
    assert [legend["fill"] for legend in doc["legends"]] == ["color"]
    assert "signals" not in doc


def test_interactive_scenario_wires_selection_state():
    descriptor = {
        "x": ["a", "b", "a", "b"],
        "y": [1, 2, 3, 4],
        "color": ["A", "A", "B", "B"],
        "results": {"geom_bar": {}},
    }

    doc = compile_to_vega(descriptor, ChartOptions(interactive=True))

    assert [signal["name"] for signal in doc["signals"]] == ["clear", "shift", "clicked"]
    assert "selected" in [source["name"] for source in doc["data"]]
    bars = doc["marks"][0]["marks"][0]
    assert "data('selected')" in bars["encode"]["update"]["fill"][0]["test"]


def test_compilation_is_idempotent():
    descriptor = _numeric_descriptor({"geom_point": {}, "stat_glm": {}, "stat_bin": {}}, ["A", "B"] * 3)

    first = compile_to_vega(descriptor, ChartOptions(interactive=True))
    second = compile_to_vega(descriptor, ChartOptions(interactive=True))

    assert first == second
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


def test_seeded_jitter_is_reproducible():
    descriptor = _numeric_descriptor({"geom_jitter": {}})

    first = compile_to_vega(descriptor, ChartOptions(jitter_seed=11))
    second = compile_to_vega(descriptor, ChartOptions(jitter_seed=11))
    other = compile_to_vega(descriptor, ChartOptions(jitter_seed=12))

    assert first == second
    assert first != other


@pytest.mark.parametrize("kind", [kind for kind in LayerKind if kind is not LayerKind.REGRESSION_PLOT])
@pytest.mark.parametrize("color", [None, ["A", "B", "C"] * 2])
def test_every_layer_kind_compiles_to_a_consistent_spec(kind, color):
    result = compile_plot(_numeric_descriptor({kind.value: {}}, color), ChartOptions(interactive=True))
    doc = result.to_vega()

    check_scale_references(doc)
    json.dumps(doc)
    assert result.requests[0].kind is kind
    if kind is LayerKind.INTERVAL:
        assert doc["marks"] == []
        assert [d.kind for d in result.diagnostics] == ["empty-layer"]


def test_point_and_glm_compile_to_one_regression_plot():
    result = compile_plot(_numeric_descriptor({"geom_point": {}, "stat_glm": {}}))

    assert [request.kind for request in result.requests] == [LayerKind.REGRESSION_PLOT]
    assert [mark["name"] for mark in result.to_vega()["marks"]] == ["data_points", "regression_line"]


def test_default_layer_when_descriptor_requests_nothing():
    result = compile_plot(_numeric_descriptor({}))

    assert [request.kind for request in result.requests] == [LayerKind.POINT]
    assert [d.kind for d in result.diagnostics] == ["default-layer"]
    assert result.to_vega()["marks"][0]["name"] == "points"


def test_layers_draw_in_request_order():
    doc = compile_to_vega(_numeric_descriptor({"stat_bin": {}, "geom_vline": {"xintercept": 3}}))

    assert [mark["name"] for mark in doc["marks"]] == ["histogram", "vlines"]
    assert [source["name"] for source in doc["data"]] == ["table", "binned", "vline_values"]


def test_boxplot_compiles_tukey_whiskers():
    descriptor = {
        "x": ["a"] * 5 + ["b"] * 5,
        "y": [1, 2, 3, 4, 50, 2, 3, 4, 5, 6],
        "results": {"stat_boxplot": {}},
    }

    doc = compile_to_vega(descriptor)

    boxplot = next(source for source in doc["data"] if source["name"] == "boxplot")
    formulas = {step["as"]: step["expr"] for step in boxplot["transform"] if step["type"] == "formula"}
    assert formulas["lower_whisker"] == "max(datum.min, datum.q1 - 1.5 * datum.iqr)"
    assert formulas["upper_whisker"] == "min(datum.max, datum.q3 + 1.5 * datum.iqr)"
    outliers = next(source for source in doc["data"] if source["name"] == "outliers")
    assert outliers["source"] == "table"
    assert outliers["transform"][-1]["type"] == "filter"


def test_axis_titles_and_dimensions_come_from_options():
    doc = compile_to_vega(
        _numeric_descriptor({"geom_line": {}}),
        ChartOptions(title="Trend", x_label="day", y_label="value", width=640, height=480),
    )

    assert doc["title"] == "Trend"
    assert (doc["width"], doc["height"]) == (640, 480)
    assert {ax["orient"]: ax["title"] for ax in doc["axes"]} == {"bottom": "day", "left": "value"}


def test_malformed_descriptor_raises():
    with pytest.raises(DescriptorError, match="'y'"):
        compile_plot({"x": [1, 2]})
    with pytest.raises(DescriptorError):
        compile_plot({"x": "abc", "y": [1, 2, 3]})


def test_descriptor_accepts_aes_block_and_layer_list():
    descriptor = PlotDescriptor.from_mapping(
        {"aes": {"x": [1, 2], "y": [3, 4]}, "layers": ["geom_line", "stat_smooth"]}
    )

    assert list(descriptor.results) == ["geom_line", "stat_smooth"]
    result = compile_plot(descriptor)
    assert [request.kind for request in result.requests] == [LayerKind.LINE, LayerKind.SMOOTH]


def test_short_interval_bounds_still_compile():
    descriptor = PlotDescriptor(
        x=[1, 2, 3, 4], y=[1, 2, 3, 4], ymin=[0, 1, 2], ymax=[2, 3, 4], results={"geom_interval": {}}
    )

    doc = compile_to_vega(descriptor)

    assert [mark["name"] for mark in doc["marks"]] == ["errorbars"]
    assert "ymin" not in doc["data"][0]["values"][3]


def test_point_and_glm_on_categorical_x_still_draw_points():
    descriptor = {"x": ["a", "b", "c"], "y": [1, 2, 3], "results": {"geom_point": {}, "stat_glm": {}}}

    result = compile_plot(descriptor)
    doc = result.to_vega()

    assert [mark["name"] for mark in doc["marks"]] == ["data_points"]
    assert [d.kind for d in result.diagnostics] == ["partial-layer"]
    check_scale_references(doc)
