"""Layer fragments and small helpers for writing Vega encodings."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..config import CompilerConfig
from ..projection import ProjectedData
from ..scales import COLOR_SCALE, ScaleSpec

logger = logging.getLogger(__name__)

TABLE = "table"

Mark = Dict[str, Any]


@dataclass(frozen=True)
class DerivedSource:
    """Data source computed from another source by a transform pipeline."""

    name: str
    source: str
    transforms: Tuple[Dict[str, Any], ...]

    def to_vega(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source,
            "transform": [dict(step) for step in self.transforms],
        }


@dataclass(frozen=True)
class InlineSource:
    """Data source whose rows are embedded in the specification."""

    name: str
    values: Tuple[Dict[str, Any], ...]

    def to_vega(self) -> Dict[str, Any]:
        return {"name": self.name, "values": [dict(row) for row in self.values]}


@dataclass(frozen=True)
class BuildContext:
    config: CompilerConfig
    jitter_seed: Optional[int] = None


@dataclass(frozen=True)
class LayerFragment:
    marks: Tuple[Mark, ...] = ()
    required_scales: Tuple[ScaleSpec, ...] = ()
    data_transforms: Tuple[DerivedSource, ...] = ()
    auxiliary_data_sources: Tuple[InlineSource, ...] = ()
    axes: Tuple[Dict[str, Any], ...] = ()
    note: Optional[str] = field(default=None, compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.marks

    @classmethod
    def empty(cls, note: Optional[str] = None) -> "LayerFragment":
        return cls(note=note)


def value(val: Any) -> Dict[str, Any]:
    return {"value": val}


def signal(expr: str) -> Dict[str, Any]:
    return {"signal": expr}


def scaled(scale: str, field_name: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    enc: Dict[str, Any] = {"scale": scale}
    if field_name is not None:
        enc["field"] = field_name
    enc.update(extra)
    return enc


def color_or(data: ProjectedData, fallback: str) -> Dict[str, Any]:
    """Color-scale encoding when grouped, a constant color otherwise."""

    if data.has_color_group:
        return scaled(COLOR_SCALE, "color")
    return value(fallback)


def default_color(data: ProjectedData, config: CompilerConfig) -> Dict[str, Any]:
    return color_or(data, config.default_fill)


def make_mark(
    mark_type: str,
    source: str,
    enter: Mapping[str, Any],
    *,
    name: Optional[str] = None,
    update: Optional[Mapping[str, Any]] = None,
    **extra: Any,
) -> Mark:
    mark: Mark = {}
    if name:
        mark["name"] = name
    mark["type"] = mark_type
    mark["from"] = {"data": source}
    mark.update(extra)
    encode: Dict[str, Any] = {"enter": dict(enter)}
    if update:
        encode["update"] = dict(update)
    mark["encode"] = encode
    return mark


def facet_group(
    source: str,
    facet_name: str,
    groupby: Sequence[str],
    marks: Iterable[Mark],
    *,
    name: Optional[str] = None,
    encode: Optional[Mapping[str, Any]] = None,
    **extra: Any,
) -> Mark:
    """Group mark that repeats ``marks`` once per distinct ``groupby`` tuple."""

    group: Mark = {}
    if name:
        group["name"] = name
    group["type"] = "group"
    group["from"] = {
        "facet": {
            "name": facet_name,
            "data": source,
            "groupby": list(groupby) if len(groupby) > 1 else groupby[0],
        }
    }
    if encode:
        group["encode"] = dict(encode)
    group.update(extra)
    group["marks"] = list(marks)
    return group


def groupby_fields(data: ProjectedData, *fields: str) -> List[str]:
    """Grouping fields extended with ``color`` when color groups are present."""

    out = list(fields)
    if data.has_color_group:
        out.append("color")
    return out


def series_lines(
    data: ProjectedData,
    source: str,
    line: Mark,
    *,
    name: str,
    facet_name: str = "series",
) -> Mark:
    """Fan ``line`` out into one sub-mark per color group when grouped."""

    if not data.has_color_group:
        return {"name": name, **line}
    inner = dict(line)
    inner.pop("name", None)
    inner["from"] = {"data": facet_name}
    return facet_group(source, facet_name, ["color"], [inner], name=name)


def expr_number(val: float) -> str:
    """Format a number for embedding in a Vega expression string."""

    return format(float(val), "g")


def float_param(params: Mapping[str, Any], key: str, default: float) -> float:
    raw = params.get(key, default)
    try:
        out = float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric parameter %s=%r; using %s", key, raw, default)
        return float(default)
    if not math.isfinite(out):
        logger.warning("Ignoring non-finite parameter %s=%r; using %s", key, raw, default)
        return float(default)
    return out


def int_param(params: Mapping[str, Any], key: str, default: int, *, minimum: int = 1) -> int:
    raw = params.get(key, default)
    try:
        out = int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer parameter %s=%r; using %d", key, raw, default)
        return default
    if out < minimum:
        logger.warning("Parameter %s=%d below minimum %d; using %d", key, out, minimum, default)
        return default
    return out


def position(scale: str, field_name: str, banded: bool) -> Dict[str, Any]:
    """Encode ``field_name`` on ``scale``, centred in the band for banded scales."""

    if banded:
        return scaled(scale, field_name, band=0.5)
    return scaled(scale, field_name)
