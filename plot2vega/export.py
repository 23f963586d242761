"""Write a compiled specification as ``<name>.json`` plus an HTML loader page."""

from __future__ import annotations

import json
import logging
import re
from html import escape
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple, Union

from .assembler import VisualizationSpec

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "untitled"
_FILE_NAME = re.compile(r"[\w.-]+")

html_tpl = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>%(title)s</title>
    <script src="https://cdn.jsdelivr.net/npm/vega@5"></script>
    <script src="https://cdn.jsdelivr.net/npm/vega-embed@6"></script>
</head>
<body>
    <div id="%(name)s_chart"></div>
    <script>
        fetch("%(name)s.json")
            .then(response => response.json())
            .then(spec => {
                vegaEmbed(document.getElementById("%(name)s_chart"), spec, {
                    actions: true,
                    theme: "default",
                    renderer: "canvas"
                });
            })
            .catch(error => console.error("Error loading chart:", error));
    </script>
</body>
</html>
"""


def _check_file_name(file_name: str) -> None:
    # the name is reused as an element id, a CSS selector and a JS string
    if not _FILE_NAME.fullmatch(file_name or "") or Path(file_name).name != file_name:
        raise ValueError(f"file name must be a bare name of letters, digits, '.', '_' or '-', got {file_name!r}")


def render_html(file_name: str, title: str = "Vega Chart") -> str:
    _check_file_name(file_name)
    return html_tpl % {"name": file_name, "title": escape(title)}


def _as_dict(spec: Union[VisualizationSpec, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(spec, VisualizationSpec):
        return spec.to_vega()
    return dict(spec)


def write_vega_files(
    spec: Union[VisualizationSpec, Mapping[str, Any]],
    file_name: str = DEFAULT_FILE_NAME,
    export_path: Union[str, Path] = ".",
) -> Tuple[Path, Path]:
    """Write ``<file_name>.json`` and ``<file_name>.html`` under ``export_path``."""

    _check_file_name(file_name)
    directory = Path(export_path)
    directory.mkdir(parents=True, exist_ok=True)
    payload = _as_dict(spec)

    json_path = directory / f"{file_name}.json"
    logger.info("Writing Vega specification to %s", json_path)
    json_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    html_path = directory / f"{file_name}.html"
    logger.info("Writing HTML loader to %s", html_path)
    html_path.write_text(render_html(file_name, payload.get("title") or "Vega Chart"), encoding="utf-8")
    return json_path, html_path
