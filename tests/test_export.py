import json

import pytest

from plot2vega.compiler import compile_plot
from plot2vega.export import render_html, write_vega_files


def test_writes_json_and_html_loader(tmp_path):
    spec = compile_plot({"x": [1, 2], "y": [3, 4], "results": {"geom_point": {}}}).spec
    target = tmp_path / "nested" / "out"

    json_path, html_path = write_vega_files(spec, "chart", target)

    assert json_path == target / "chart.json"
    assert html_path == target / "chart.html"
    assert json.loads(json_path.read_text(encoding="utf-8")) == spec.to_vega()
    html = html_path.read_text(encoding="utf-8")
    assert 'fetch("chart.json")' in html
    assert "vega-embed@6" in html
    assert "<title>Vega Chart</title>" in html


def test_accepts_plain_mapping_and_escapes_title(tmp_path):
    _, html_path = write_vega_files({"title": "<b>&</b>", "marks": []}, export_path=tmp_path)

    assert html_path.name == "untitled.html"
    assert "<title>&lt;b&gt;&amp;&lt;/b&gt;</title>" in html_path.read_text(encoding="utf-8")


@pytest.mark.parametrize("name", ["", "../escape", "dir/chart", "a\"b", "a b", "<x>"])
def test_rejects_unsafe_names(tmp_path, name):
    with pytest.raises(ValueError):
        write_vega_files({}, name, tmp_path)


def test_render_html_targets_named_container():
    html = render_html("sales", "Sales")

    assert '<div id="sales_chart"></div>' in html
    assert 'vegaEmbed(document.getElementById("sales_chart")' in html


def test_render_html_rejects_markup_in_name():
    with pytest.raises(ValueError):
        render_html('a"b')


def test_dotted_names_are_accepted(tmp_path):
    json_path, html_path = write_vega_files({}, "chart.v2", tmp_path)

    assert json_path.name == "chart.v2.json"
    assert 'getElementById("chart.v2_chart")' in html_path.read_text(encoding="utf-8")
