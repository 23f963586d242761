from plot2vega.assembler import assemble_spec
from plot2vega.config import default_config
from plot2vega.descriptor import ChartOptions
from plot2vega.projection import project_data
from plot2vega.scales import ScaleKind, ScaleSpec, axis
from plot2vega.vega_codegen import DerivedSource, InlineSource, LayerFragment


def _rule(name, scale="xscale"):
    return {
        "name": name,
        "type": "rule",
        "from": {"data": "table"},
        "encode": {"enter": {"x": {"scale": scale, "field": "x"}}},
    }


def _linear(name="xscale"):
    return ScaleSpec(name=name, kind=ScaleKind.CONTINUOUS, domain_source={"data": "table", "field": "x"}, range="width")


def _band(name="xscale"):
    return ScaleSpec(name=name, kind=ScaleKind.BANDED, domain_source={"data": "table", "field": "x"}, range="width")


def _assemble(fragments, options=None):
    data = project_data([1, 2], [3, 4])
    return assemble_spec(fragments, data, options or ChartOptions(), default_config())


def test_marks_concatenate_in_request_order_and_table_comes_first():
    first = LayerFragment(marks=(_rule("a"),), required_scales=(_linear(),))
    second = LayerFragment(
        marks=(_rule("b"),),
        required_scales=(_linear(),),
        data_transforms=(DerivedSource("derived", "table", ({"type": "filter", "expr": "true"},)),),
    )

    spec, diagnostics = _assemble([first, second])

    assert [mark["name"] for mark in spec.marks] == ["a", "b"]
    assert [source["name"] for source in spec.data] == ["table", "derived"]
    assert spec.data[0]["values"] == [{"x": 1.0, "y": 3.0}, {"x": 2.0, "y": 4.0}]
    assert len(spec.scales) == 1
    assert diagnostics == ()


def test_incompatible_scale_keeps_first_and_reports_conflict():
    first = LayerFragment(marks=(_rule("a"),), required_scales=(_linear(),))
    second = LayerFragment(marks=(_rule("b"),), required_scales=(_band(),))

    spec, diagnostics = _assemble([first, second])

    assert spec.scale("xscale").kind is ScaleKind.CONTINUOUS
    assert [d.kind for d in diagnostics] == ["scale-conflict"]


def test_conflicting_sources_keep_first():
    first = LayerFragment(
        marks=(_rule("a"),),
        required_scales=(_linear(),),
        auxiliary_data_sources=(InlineSource("points", ({"x": 1},)),),
    )
    same = LayerFragment(
        marks=(_rule("b"),),
        required_scales=(_linear(),),
        auxiliary_data_sources=(InlineSource("points", ({"x": 1},)),),
    )
    different = LayerFragment(
        marks=(_rule("c"),),
        required_scales=(_linear(),),
        auxiliary_data_sources=(InlineSource("points", ({"x": 2},)), InlineSource("table", ())),
    )

    spec, diagnostics = _assemble([first, same, different])

    points = [source for source in spec.data if source["name"] == "points"]
    assert points == [{"name": "points", "values": [{"x": 1}]}]
    assert [d.kind for d in diagnostics] == ["source-conflict", "source-conflict"]


def test_global_axis_titles_override_fragment_titles():
    fragment = LayerFragment(
        marks=(_rule("a"),),
        required_scales=(_linear(), _linear("yscale")),
        axes=(axis("bottom", "xscale", title="inner"), axis("left", "yscale", grid=True)),
    )
    options = ChartOptions(x_label="Weight", y_label="Height")

    spec, _ = _assemble([fragment], options)

    assert spec.axes == (
        {"orient": "bottom", "scale": "xscale", "title": "Weight"},
        {"orient": "left", "scale": "yscale", "grid": True, "title": "Height"},
    )


def test_empty_fragments_contribute_nothing():
    empty = LayerFragment(required_scales=(_band(),), axes=(axis("bottom", "xscale"),))

    spec, _ = _assemble([LayerFragment.empty("nothing"), empty])

    assert spec.marks == ()
    assert spec.scales == ()
    assert spec.axes == ()
    assert [source["name"] for source in spec.data] == ["table"]


def test_to_vega_layout():
    fragment = LayerFragment(marks=(_rule("a"),), required_scales=(_linear(),))

    untitled, _ = _assemble([fragment])
    titled, _ = _assemble([fragment], ChartOptions(title="Sales", width=300, height=200))

    doc = titled.to_vega()
    assert doc["$schema"] == "https://vega.github.io/schema/vega/v5.json"
    assert doc["title"] == "Sales"
    assert (doc["width"], doc["height"]) == (300, 200)
    assert doc["autosize"] == "none"
    assert "title" not in untitled.to_vega()
    assert "signals" not in doc
    assert "legends" not in doc
