"""Configuration values shared by the compiler stages."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, Tuple

VEGA_SCHEMA_URL = "https://vega.github.io/schema/vega/v5.json"

DEFAULT_PALETTE: Tuple[str, ...] = (
    "#fc4464",
    "#08bc4d",
    "#04b0fc",
    "#ff9500",
    "#9b59b6",
    "#e74c3c",
    "#2ecc71",
    "#3498db",
)


@dataclass
class CompilerConfig:
    """Styling and layout constants consumed by scales, builders and legends."""

    palette: Tuple[str, ...] = DEFAULT_PALETTE
    default_fill: str = "#ff4565"
    reference_stroke: str = "#808080"
    neutral_color: str = "#ccc"
    fit_stroke: str = "firebrick"
    outline_stroke: str = "black"
    heat_low: str = "#f7f7f7"
    selected_opacity: float = 0.7
    unselected_opacity: float = 0.15
    symbol_size: int = 60
    swarm_symbol_size: int = 80
    line_width: int = 2
    smooth_line_width: int = 3
    jitter_pixels: float = 12.0
    schema_url: str = VEGA_SCHEMA_URL
    padding: Dict[str, int] = field(
        default_factory=lambda: {"left": 60, "right": 20, "top": 20, "bottom": 60}
    )
    legend_padding_right: int = 120


_DEFAULT_CONFIG = CompilerConfig()


def default_config() -> CompilerConfig:
    return copy.deepcopy(_DEFAULT_CONFIG)
