from __future__ import annotations

import re
from typing import Any, FrozenSet, Iterable, Mapping, Sequence, Set

_SCALE_CALL = re.compile(r"\b(?:scale|bandwidth|range|domain)\(\s*'([^']+)'")
_LEGEND_CHANNELS = ("fill", "stroke", "size", "shape", "opacity", "strokeDash")


class SpecContractError(RuntimeError):
    """Raised when an assembled specification references an undeclared scale."""


def _collect(node: Any, local: FrozenSet[str], out: Set[str]) -> None:
    if isinstance(node, str):
        out.update(name for name in _SCALE_CALL.findall(node) if name not in local)
        return
    if isinstance(node, Mapping):
        if node.get("type") == "group" and node.get("scales"):
            local = local | {scale["name"] for scale in node["scales"]}
        ref = node.get("scale")
        if isinstance(ref, str) and ref not in local:
            out.add(ref)
        for key, item in node.items():
            if key == "scale":
                continue
            _collect(item, local, out)
        return
    if isinstance(node, (list, tuple)):
        for item in node:
            _collect(item, local, out)


def referenced_scales(
    marks: Iterable[Mapping[str, Any]],
    *,
    axes: Iterable[Mapping[str, Any]] = (),
    legends: Iterable[Mapping[str, Any]] = (),
    scales: Iterable[Mapping[str, Any]] = (),
) -> Set[str]:
    """Scale names used by marks, axes, legends and scale-range signals.

    Scales declared inside a group mark are resolved locally and are not
    reported for that group's subtree.
    """

    out: Set[str] = set()
    empty: FrozenSet[str] = frozenset()
    for mark in marks:
        _collect(mark, empty, out)
    for ax in axes:
        _collect(ax, empty, out)
    for scale in scales:
        _collect({key: item for key, item in scale.items() if key != "name"}, empty, out)
    for legend in legends:
        for channel in _LEGEND_CHANNELS:
            ref = legend.get(channel)
            if isinstance(ref, str):
                out.add(ref)
        _collect(legend.get("encode", {}), empty, out)
    return out


def check_scale_references(spec: Mapping[str, Any]) -> None:
    """Raise :class:`SpecContractError` unless every referenced scale is declared once."""

    declared: Sequence[str] = [scale["name"] for scale in spec.get("scales", [])]
    duplicates = sorted({name for name in declared if declared.count(name) > 1})
    if duplicates:
        raise SpecContractError(f"scales declared more than once: {', '.join(duplicates)}")
    used = referenced_scales(
        spec.get("marks", []),
        axes=spec.get("axes", []),
        legends=spec.get("legends", []),
        scales=spec.get("scales", []),
    )
    missing = sorted(used - set(declared))
    if missing:
        raise SpecContractError(f"marks reference undeclared scales: {', '.join(missing)}")
