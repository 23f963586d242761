"""Color legend and click/shift-click selection wiring."""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Any, Dict, List

from .assembler import VisualizationSpec
from .config import CompilerConfig
from .scales import COLOR_SCALE

logger = logging.getLogger(__name__)

SELECTED = "selected"
LEGEND_EVENTS = "@legendSymbol:click, @legendLabel:click"
MARK_SELECTION_TEST = "!length(data('selected')) || indata('selected', 'value', datum.color)"
LEGEND_SELECTION_TEST = "!length(data('selected')) || indata('selected', 'value', datum.value)"


def legend_needed(spec: VisualizationSpec) -> bool:
    return spec.has_color_scale and len(spec.color_domain) > 1


def static_legend() -> Dict[str, Any]:
    return {
        "fill": COLOR_SCALE,
        "orient": "right",
        "padding": 10,
        "cornerRadius": 5,
        "strokeColor": "#ddd",
        "fillColor": "#fff",
        "title": "Color",
        "titlePadding": 5,
        "titleFontSize": 12,
        "titleFontWeight": "bold",
        "labelFontSize": 11,
        "symbolSize": 100,
        "symbolType": "circle",
    }


def selection_signals() -> List[Dict[str, Any]]:
    """``clear``, ``shift`` and ``clicked``; together with ``selected`` they form the selection state."""

    return [
        {
            "name": "clear",
            "value": True,
            "on": [{"events": "pointerup[!event.item]", "update": "true", "force": True}],
        },
        {
            "name": "shift",
            "value": False,
            "on": [{"events": LEGEND_EVENTS, "update": "event.shiftKey", "force": True}],
        },
        {
            "name": "clicked",
            "value": None,
            "on": [{"events": LEGEND_EVENTS, "update": "{value: datum.value}", "force": True}],
        },
    ]


def selection_store() -> Dict[str, Any]:
    return {
        "name": SELECTED,
        "on": [
            {"trigger": "clear", "remove": True},
            {"trigger": "!shift", "remove": True},
            {"trigger": "!shift && clicked", "insert": "clicked"},
            {"trigger": "shift && clicked", "toggle": "clicked"},
        ],
    }


def interactive_legend(config: CompilerConfig) -> Dict[str, Any]:
    return {
        "fill": COLOR_SCALE,
        "title": "Color",
        "orient": "right",
        "padding": 10,
        "encode": {
            "symbols": {
                "name": "legendSymbol",
                "interactive": True,
                "update": {
                    "fill": {"value": "transparent"},
                    "strokeWidth": {"value": 2},
                    "opacity": [
                        {"test": LEGEND_SELECTION_TEST, "value": config.selected_opacity},
                        {"value": config.unselected_opacity},
                    ],
                    "size": {"value": 64},
                },
            },
            "labels": {
                "name": "legendLabel",
                "interactive": True,
                "update": {
                    "opacity": [
                        {"test": LEGEND_SELECTION_TEST, "value": 1},
                        {"value": 0.25},
                    ],
                },
            },
        },
    }


def _uses_color_scale(encoding: Any) -> bool:
    return isinstance(encoding, dict) and encoding.get("scale") == COLOR_SCALE


def _rewrite_mark(mark: Dict[str, Any], config: CompilerConfig) -> int:
    """Make color-bound channels of ``mark`` and its nested marks follow the selection."""

    rewritten = 0
    encode = mark.get("encode")
    if isinstance(encode, dict):
        enter = encode.get("enter", {})
        channels = [name for name in ("fill", "stroke") if _uses_color_scale(enter.get(name))]
        if channels:
            update = encode.setdefault("update", {})
            update["opacity"] = [
                {"test": MARK_SELECTION_TEST, "value": config.selected_opacity},
                {"value": config.unselected_opacity},
            ]
            for channel in channels:
                update[channel] = [
                    {"test": MARK_SELECTION_TEST, "scale": COLOR_SCALE, "field": "color"},
                    {"value": config.neutral_color},
                ]
            rewritten += 1
    for child in mark.get("marks", []):
        rewritten += _rewrite_mark(child, config)
    return rewritten


def augment_legend(
    spec: VisualizationSpec, config: CompilerConfig, *, interactive: bool = False
) -> VisualizationSpec:
    """Return ``spec`` with a color legend and, if ``interactive``, selection wiring.

    The spec is returned unchanged when there is no color scale or fewer than
    two color groups.
    """

    if not legend_needed(spec):
        return spec
    padding = dict(spec.padding)
    padding["right"] = config.legend_padding_right
    if not interactive:
        logger.debug("Attaching static legend for %d color groups", len(spec.color_domain))
        return replace(spec, legends=(static_legend(),), padding=padding)

    marks = copy.deepcopy(list(spec.marks))
    rewritten = sum(_rewrite_mark(mark, config) for mark in marks)
    logger.debug("Selection wiring applied to %d color-bound mark(s)", rewritten)
    return replace(
        spec,
        padding=padding,
        signals=tuple(spec.signals) + tuple(selection_signals()),
        data=tuple(spec.data) + (selection_store(),),
        legends=(interactive_legend(config),),
        marks=tuple(marks),
    )
