"""Scale and axis synthesis shared by every layer builder."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .config import CompilerConfig
from .projection import ProjectedData

X_SCALE = "xscale"
Y_SCALE = "yscale"
COLOR_SCALE = "color"
COLOR_OFFSET_SCALE = "colorpos"

SCATTER_PAD_FRACTION = 0.05
TIGHT_BAND_PADDING = 0.1
WIDE_BAND_PADDING = 0.2


class ScaleKind(str, enum.Enum):
    CONTINUOUS = "linear"
    BANDED = "band"
    ORDINAL = "ordinal"


class AxisRole(str, enum.Enum):
    """How a layer uses a continuous x axis."""

    SCATTER = "scatter"
    REFERENCE = "reference"


@dataclass(frozen=True)
class ScaleSpec:
    name: str
    kind: ScaleKind
    domain_source: Any
    range: Any
    padding: Optional[float] = None
    zero_included: Optional[bool] = None
    nice: Optional[bool] = None
    domain_min: Optional[float] = None
    round: Optional[bool] = None

    def compatible_with(self, other: "ScaleSpec") -> bool:
        return self.name == other.name and self.kind is other.kind

    def to_vega(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            "name": self.name,
            "type": self.kind.value,
            "domain": _copy_domain(self.domain_source),
            "range": list(self.range) if isinstance(self.range, tuple) else self.range,
        }
        if self.padding is not None:
            spec["padding"] = self.padding
        if self.round is not None:
            spec["round"] = self.round
        if self.zero_included is not None:
            spec["zero"] = self.zero_included
        if self.nice is not None:
            spec["nice"] = self.nice
        if self.domain_min is not None:
            spec["domainMin"] = self.domain_min
        return spec


def _copy_domain(domain: Any) -> Any:
    if isinstance(domain, tuple):
        return list(domain)
    if isinstance(domain, dict):
        return dict(domain)
    return domain


def data_domain(source: str, field: str, *, sort: bool = False) -> Dict[str, Any]:
    domain: Dict[str, Any] = {"data": source, "field": field}
    if sort:
        domain["sort"] = True
    return domain


def band_scale(
    name: str,
    source: str,
    field: str,
    *,
    padding: float = TIGHT_BAND_PADDING,
    range_: Any = "width",
) -> ScaleSpec:
    return ScaleSpec(
        name=name,
        kind=ScaleKind.BANDED,
        domain_source=data_domain(source, field, sort=True),
        range=range_,
        padding=padding,
    )


def x_scale(
    data: ProjectedData,
    source: str = "table",
    *,
    field: str = "x",
    role: AxisRole = AxisRole.SCATTER,
    force_band: bool = False,
    band_padding: float = TIGHT_BAND_PADDING,
) -> ScaleSpec:
    """Continuous scale for numeric x, banded scale otherwise."""

    if force_band or not data.x_is_numeric:
        return band_scale(X_SCALE, source, field, padding=band_padding)
    domain_min = None
    extent = data.x_extent()
    if role is AxisRole.SCATTER and extent is not None:
        lo, hi = extent
        if hi > lo:
            domain_min = lo - SCATTER_PAD_FRACTION * (hi - lo)
    return ScaleSpec(
        name=X_SCALE,
        kind=ScaleKind.CONTINUOUS,
        domain_source=data_domain(source, field),
        range="width",
        domain_min=domain_min,
    )


def y_scale(
    data: ProjectedData,
    source: str = "table",
    *,
    field: str = "y",
    band_padding: float = TIGHT_BAND_PADDING,
    continuous: Optional[bool] = None,
) -> ScaleSpec:
    """Continuous y scales always include zero and are rounded to nice values."""

    if continuous is None:
        continuous = data.y_is_numeric
    if not continuous:
        return ScaleSpec(
            name=Y_SCALE,
            kind=ScaleKind.BANDED,
            domain_source=data_domain(source, field, sort=True),
            range="height",
            padding=band_padding,
        )
    return ScaleSpec(
        name=Y_SCALE,
        kind=ScaleKind.CONTINUOUS,
        domain_source=data_domain(source, field),
        range="height",
        zero_included=True,
        nice=True,
    )


def color_scale(data: ProjectedData, config: CompilerConfig) -> ScaleSpec:
    """Ordinal scale over the distinct color values, cycling through the palette."""

    domain = tuple(data.color_domain)
    palette = tuple(config.palette)
    colors = tuple(palette[idx % len(palette)] for idx in range(len(domain)))
    return ScaleSpec(
        name=COLOR_SCALE,
        kind=ScaleKind.ORDINAL,
        domain_source=domain,
        range=colors,
    )


def color_offset_scale(data: ProjectedData) -> ScaleSpec:
    """Band scale that dodges color groups inside one x band."""

    return ScaleSpec(
        name=COLOR_OFFSET_SCALE,
        kind=ScaleKind.BANDED,
        domain_source=tuple(data.color_domain),
        range={"signal": f"[0, bandwidth('{X_SCALE}')]"},
        padding=TIGHT_BAND_PADDING,
    )


def scatter_scales(
    data: ProjectedData,
    config: CompilerConfig,
    source: str = "table",
    *,
    role: AxisRole = AxisRole.SCATTER,
    force_band: bool = False,
) -> Tuple[ScaleSpec, ...]:
    scales = [
        x_scale(data, source, role=role, force_band=force_band),
        y_scale(data, source),
    ]
    if data.has_color_group:
        scales.append(color_scale(data, config))
    return tuple(scales)


def axis(orient: str, scale: str, title: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    spec: Dict[str, Any] = {"orient": orient, "scale": scale}
    if title is not None:
        spec["title"] = title
    spec.update(extra)
    return spec


def default_axes(
    *, x_extra: Optional[Dict[str, Any]] = None, y_extra: Optional[Dict[str, Any]] = None
) -> Tuple[Dict[str, Any], ...]:
    return (
        axis("bottom", X_SCALE, **(x_extra or {})),
        axis("left", Y_SCALE, **(y_extra or {})),
    )
