"""Projection of raw aesthetic arrays into a clean row-oriented table."""

from __future__ import annotations

import enum
import logging
import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

Value = Union[float, str]

MISSING_COLOR_LABEL = "missing"


class FieldKind(str, enum.Enum):
    CONTINUOUS = "continuous"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Diagnostic:
    """Informational record produced while compiling a descriptor."""

    kind: str
    message: str
    count: Optional[int] = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class DataRow:
    x: Value
    y: Value
    color: Optional[str] = None
    ymin: Optional[float] = None
    ymax: Optional[float] = None

    def to_record(self) -> Dict[str, Value]:
        record: Dict[str, Value] = {"x": self.x, "y": self.y}
        if self.color is not None:
            record["color"] = self.color
        if self.ymin is not None:
            record["ymin"] = self.ymin
        if self.ymax is not None:
            record["ymax"] = self.ymax
        return record


@dataclass(frozen=True)
class ProjectedData:
    rows: Tuple[DataRow, ...]
    x_kind: FieldKind
    y_kind: FieldKind
    has_color_group: bool = False
    color_domain: Tuple[str, ...] = ()
    has_interval: bool = False
    original_count: int = 0
    dropped_count: int = 0
    diagnostics: Tuple[Diagnostic, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def x_is_numeric(self) -> bool:
        return self.x_kind is FieldKind.CONTINUOUS

    @property
    def y_is_numeric(self) -> bool:
        return self.y_kind is FieldKind.CONTINUOUS

    def records(self) -> List[Dict[str, Value]]:
        return [row.to_record() for row in self.rows]

    def x_extent(self) -> Optional[Tuple[float, float]]:
        return _extent([row.x for row in self.rows]) if self.x_is_numeric else None

    def y_extent(self) -> Optional[Tuple[float, float]]:
        return _extent([row.y for row in self.rows]) if self.y_is_numeric else None

    def diff_extent(self) -> Optional[Tuple[float, float]]:
        """Extent of ``y - x``; only defined for two numeric fields."""

        if not (self.x_is_numeric and self.y_is_numeric) or not self.rows:
            return None
        return _extent([float(row.y) - float(row.x) for row in self.rows])


def _extent(values: Sequence[Any]) -> Optional[Tuple[float, float]]:
    if not values:
        return None
    arr = np.asarray(values, dtype=float)
    return float(arr.min()), float(arr.max())


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return math.isnan(float(value))
    return False


def is_numeric_field(values: Sequence[Any]) -> bool:
    """Return ``True`` when every entry of *values* is a real number or missing."""

    arr = np.asarray(values)
    if arr.dtype.kind in "iuf":
        return True
    if arr.dtype.kind != "O":
        return False
    seen_number = False
    for value in arr.ravel():
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            return False
        seen_number = True
    return seen_number


def _as_float_array(values: Sequence[Any]) -> np.ndarray:
    return np.asarray(
        [np.nan if value is None else float(value) for value in values], dtype=float
    )


def format_label(value: object) -> str:
    """Render a category value the way legends and band scales display it."""

    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        as_float = float(value)
        if as_float.is_integer():
            return str(int(as_float))
        return repr(as_float)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _color_domain(labels: Sequence[str], raw: Sequence[Any]) -> Tuple[str, ...]:
    distinct = list(dict.fromkeys(labels))
    if is_numeric_field(raw):
        def numeric_key(label: str) -> Tuple[int, float, str]:
            try:
                return (0, float(label), label)
            except ValueError:
                return (1, 0.0, label)

        return tuple(sorted(distinct, key=numeric_key))
    return tuple(sorted(distinct))


def _clean_field(values: Sequence[Any], numeric: bool) -> Tuple[np.ndarray, List[Value]]:
    """Return the validity mask and converted values of one bound field."""

    if numeric:
        arr = _as_float_array(values)
        return np.isfinite(arr), [float(v) for v in arr]
    mask = np.array([not _is_missing(v) for v in values], dtype=bool)
    return mask, [format_label(v) for v in values]


def _optional_numeric(values: Optional[Sequence[Any]], count: int) -> Optional[np.ndarray]:
    if values is None or not is_numeric_field(values):
        return None
    out = np.full(count, np.nan)
    head = _as_float_array(list(values)[:count])
    out[: len(head)] = head
    return out


def project_data(
    x: Sequence[Any],
    y: Sequence[Any],
    color: Optional[Sequence[Any]] = None,
    *,
    ymin: Optional[Sequence[Any]] = None,
    ymax: Optional[Sequence[Any]] = None,
) -> ProjectedData:
    """Clean the bound fields into a dense table of :class:`DataRow`."""

    diagnostics: List[Diagnostic] = []
    lengths = [len(x), len(y)]
    if color is not None:
        lengths.append(len(color))
    count = min(lengths)
    if len(set(lengths)) > 1:
        message = f"Field bindings differ in length {lengths}; truncated to {count} rows"
        logger.warning(message)
        diagnostics.append(Diagnostic("length-mismatch", message, count=max(lengths) - count))
    for name, bound in (("ymin", ymin), ("ymax", ymax)):
        if bound is not None and len(bound) < count:
            message = f"Binding '{name}' has {len(bound)} of {count} values; missing bounds left unset"
            logger.warning(message)
            diagnostics.append(Diagnostic("length-mismatch", message, count=count - len(bound)))

    raw_x = list(x)[:count]
    raw_y = list(y)[:count]
    raw_color = list(color)[:count] if color is not None else None

    x_numeric = is_numeric_field(raw_x)
    y_numeric = is_numeric_field(raw_y)
    numeric = x_numeric and y_numeric
    x_valid, x_values = _clean_field(raw_x, x_numeric)
    y_valid, y_values = _clean_field(raw_y, y_numeric)
    valid = x_valid & y_valid
    x_values = [v for v, ok in zip(x_values, valid) if ok]
    y_values = [v for v, ok in zip(y_values, valid) if ok]
    x_kind = FieldKind.CONTINUOUS if x_numeric else FieldKind.CATEGORICAL
    y_kind = FieldKind.CONTINUOUS if y_numeric else FieldKind.CATEGORICAL

    kept = int(valid.sum()) if count else 0
    dropped = count - kept
    if dropped:
        reason = "NaN or infinite values" if numeric else "missing or non-finite values"
        message = f"Removed {dropped} data points containing {reason} ({kept} remaining)"
        logger.warning(message)
        diagnostics.append(Diagnostic("dropped-rows", message, count=dropped))

    color_labels: Optional[List[str]] = None
    color_domain: Tuple[str, ...] = ()
    if raw_color is not None:
        color_labels = [
            MISSING_COLOR_LABEL if _is_missing(value) else format_label(value)
            for value, ok in zip(raw_color, valid)
            if ok
        ]
        color_domain = _color_domain(color_labels, raw_color)
    has_color_group = len(color_domain) > 1

    low = _optional_numeric(ymin, count)
    high = _optional_numeric(ymax, count)
    has_interval = low is not None and high is not None and y_numeric
    if has_interval:
        low = low[valid]
        high = high[valid]

    rows: List[DataRow] = []
    for idx in range(kept):
        rows.append(
            DataRow(
                x=x_values[idx],
                y=y_values[idx],
                color=color_labels[idx] if has_color_group and color_labels else None,
                ymin=_finite_or_none(low[idx]) if has_interval else None,
                ymax=_finite_or_none(high[idx]) if has_interval else None,
            )
        )

    logger.debug(
        "Projected %d of %d rows (x=%s, y=%s, color groups=%d)",
        kept,
        count,
        x_kind.value,
        y_kind.value,
        len(color_domain),
    )
    return ProjectedData(
        rows=tuple(rows),
        x_kind=x_kind,
        y_kind=y_kind,
        has_color_group=has_color_group,
        color_domain=color_domain if has_color_group else (),
        has_interval=has_interval,
        original_count=count,
        dropped_count=dropped,
        diagnostics=tuple(diagnostics),
    )


def _finite_or_none(value: float) -> Optional[float]:
    value = float(value)
    return value if math.isfinite(value) else None
