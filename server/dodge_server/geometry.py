from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

_PX_LENGTH = re.compile(r"^[0-9]+(\.[0-9]+)?px$")


class FormatError(ValueError):
    """Geometry that cannot be read as a plain pixel length or number."""


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class ElementGeometry:
    rect: Rect
    # Computed style, e.g. {"border-left-width": "2px"}.
    style: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PlayGeometry:
    button: ElementGeometry
    container: ElementGeometry
    tracking_area: ElementGeometry
    scroll_x: float = 0.0
    scroll_y: float = 0.0


def style_length(style: Mapping[str, str], prop: str) -> int:
    """Pixel length of a computed style property, rounded up."""
    value = style.get(prop)
    if not isinstance(value, str) or _PX_LENGTH.match(value) is None:
        raise FormatError(f"Unrecognised length of {value!r} for the {prop} property")
    return math.ceil(float(value[:-2]))


def border_width(style: Mapping[str, str], side: str) -> int:
    return style_length(style, f"border-{side}-width")


def _number(raw: Mapping[str, Any], key: str) -> float:
    val = raw.get(key)
    # bool is an int subclass but never a coordinate.
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        raise FormatError(f"Missing or non-numeric {key!r} field")
    val = float(val)
    if not math.isfinite(val):
        raise FormatError(f"Non-finite {key!r} field")
    return val


def parse_rect(raw: Any) -> Rect:
    if not isinstance(raw, dict):
        raise FormatError("rect must be a JSON object")
    return Rect(
        x=_number(raw, "x"),
        y=_number(raw, "y"),
        width=_number(raw, "width"),
        height=_number(raw, "height"),
    )


def parse_element(raw: Any, name: str) -> ElementGeometry:
    if not isinstance(raw, dict):
        raise FormatError(f"{name} geometry must be a JSON object")
    style = raw.get("style")
    if style is None:
        style = {}
    if not isinstance(style, dict):
        raise FormatError(f"{name} style must be a JSON object")
    return ElementGeometry(
        rect=parse_rect(raw.get("rect")),
        style={str(k): str(v) for k, v in style.items()},
    )


def parse_play_geometry(raw: Any) -> PlayGeometry:
    if not isinstance(raw, dict):
        raise FormatError("geometry must be a JSON object")
    scroll = raw.get("scroll")
    if scroll is None:
        scroll = {"x": 0.0, "y": 0.0}
    if not isinstance(scroll, dict):
        raise FormatError("scroll must be a JSON object")
    return PlayGeometry(
        button=parse_element(raw.get("button"), "button"),
        container=parse_element(raw.get("container"), "container"),
        tracking_area=parse_element(raw.get("trackingArea"), "trackingArea"),
        scroll_x=_number(scroll, "x"),
        scroll_y=_number(scroll, "y"),
    )
