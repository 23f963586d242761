import pytest

from plot2vega.config import DEFAULT_PALETTE, default_config
from plot2vega.projection import FieldKind, ProjectedData, project_data
from plot2vega.scales import (
    AxisRole,
    ScaleKind,
    color_offset_scale,
    color_scale,
    x_scale,
    y_scale,
)


def test_scatter_x_scale_pads_lower_bound():
    data = project_data([1, 2, 3, 5], [10, 20, 30, 50])

    scale = x_scale(data)

    assert scale.kind is ScaleKind.CONTINUOUS
    assert scale.domain_min == pytest.approx(0.8)
    assert scale.to_vega()["domain"] == {"data": "table", "field": "x"}


def test_reference_x_scale_is_not_padded():
    data = project_data([1, 2, 3, 5], [10, 20, 30, 50])

    assert x_scale(data, role=AxisRole.REFERENCE).domain_min is None


def test_degenerate_extent_gets_no_pad():
    data = project_data([2, 2], [1, 2])

    assert x_scale(data).domain_min is None


def test_categorical_x_is_banded_and_sorted():
    data = project_data(["b", "a"], [1, 2])

    spec = x_scale(data).to_vega()

    assert spec["type"] == "band"
    assert spec["padding"] == 0.1
    assert spec["domain"]["sort"] is True


def test_continuous_y_includes_zero_and_is_nice():
    data = project_data([1, 2], [5, 6])

    spec = y_scale(data).to_vega()

    assert spec["type"] == "linear"
    assert spec["zero"] is True
    assert spec["nice"] is True
    assert spec["range"] == "height"


def test_color_scale_cycles_palette():
    labels = tuple(f"g{idx}" for idx in range(10))
    data = ProjectedData(
        rows=(),
        x_kind=FieldKind.CONTINUOUS,
        y_kind=FieldKind.CONTINUOUS,
        has_color_group=True,
        color_domain=labels,
    )

    spec = color_scale(data, default_config()).to_vega()

    assert spec["type"] == "ordinal"
    assert spec["domain"] == list(labels)
    assert len(spec["range"]) == 10
    assert spec["range"][8] == DEFAULT_PALETTE[0]


def test_color_scale_uses_configured_palette():
    data = project_data([1, 2], [1, 2], ["A", "B"])
    config = default_config()
    config.palette = ("red", "blue")

    assert color_scale(data, config).range == ("red", "blue")
    assert default_config().palette == DEFAULT_PALETTE


def test_color_offset_scale_spans_x_band():
    data = project_data(["a", "a"], [1, 2], ["A", "B"])

    spec = color_offset_scale(data).to_vega()

    assert spec["range"] == {"signal": "[0, bandwidth('xscale')]"}
    assert spec["domain"] == ["A", "B"]


def test_compatibility_is_by_name_and_kind():
    numeric = project_data([1, 2], [1, 2])
    labels = project_data(["a", "b"], [1, 2])

    assert x_scale(numeric).compatible_with(x_scale(numeric, role=AxisRole.REFERENCE))
    assert not x_scale(numeric).compatible_with(x_scale(labels))
