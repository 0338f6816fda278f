from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Literal, TypedDict

from .controller import DodgeConfig
from .tracker import PointerSample


class RectMsg(TypedDict):
    x: float
    y: float
    width: float
    height: float


class ElementMsg(TypedDict, total=False):
    rect: RectMsg
    style: dict[str, str]


class GeometryMsg(TypedDict):
    button: ElementMsg
    container: ElementMsg
    trackingArea: ElementMsg
    scroll: dict[str, float]


class HelloMsg(TypedDict):
    t: Literal["hello"]
    clientVersion: str
    geometry: GeometryMsg


class ConfigMsg(TypedDict, total=False):
    t: Literal["config"]
    activationSpeed: float
    halfReboundVel: float
    accel: float
    hitPadding: float
    immunityMs: float
    tickMs: float
    sampleExpireMs: float
    minSpeed: float
    minAxisSpeed: float
    escapeTimeS: float


class PointerMsg(TypedDict):
    t: Literal["pointer.move", "pointer.over"]
    x: float
    y: float
    ts: float


class DiscontinuityMsg(TypedDict):
    t: Literal["pointer.leave", "resize"]
    ts: float


class ScrollMsg(TypedDict):
    t: Literal["scroll"]
    scrollX: float
    scrollY: float
    ts: float


class ActivateMsg(TypedDict):
    t: Literal["activate"]
    x: float
    y: float


ClientMsg = HelloMsg | ConfigMsg | PointerMsg | DiscontinuityMsg | ScrollMsg | ActivateMsg

CONFIG_FIELDS: dict[str, str] = {
    "activationSpeed": "activation_speed",
    "halfReboundVel": "half_rebound_vel",
    "accel": "accel",
    "hitPadding": "hit_padding",
    "immunityMs": "immunity_ms",
    "tickMs": "tick_ms",
    "sampleExpireMs": "sample_expire_ms",
    "minSpeed": "min_speed",
    "minAxisSpeed": "min_axis_speed",
    "escapeTimeS": "escape_time_s",
}


@dataclass
class ParsedMsg:
    t: str
    raw: dict[str, Any]


def parse_client_msg(payload: Any) -> ParsedMsg:
    if not isinstance(payload, dict):
        raise ValueError("Client message must be a JSON object")
    msg_type = payload.get("t")
    if not isinstance(msg_type, str):
        raise ValueError("Missing or invalid 't' field")
    return ParsedMsg(t=msg_type, raw=payload)


def require_float(raw: dict[str, Any], key: str) -> float:
    val = raw.get(key)
    if isinstance(val, bool) or val is None:
        raise ValueError(f"Missing or invalid {key!r} field")
    try:
        out = float(val)
    except (TypeError, ValueError):
        raise ValueError(f"Missing or invalid {key!r} field") from None
    if not math.isfinite(out):
        raise ValueError(f"Non-finite {key!r} field")
    return out


def parse_pointer_sample(raw: dict[str, Any]) -> PointerSample:
    return PointerSample(
        client_x=require_float(raw, "x"),
        client_y=require_float(raw, "y"),
        ts_ms=require_float(raw, "ts"),
    )


def merge_config(base: DodgeConfig, raw: dict[str, Any]) -> DodgeConfig:
    """Apply the numeric overrides present in ``raw``.

    Values that are not numbers are ignored. Numbers out of range raise
    RangeError from DodgeConfig.
    """
    changes: dict[str, float] = {}
    for key, attr in CONFIG_FIELDS.items():
        val = raw.get(key)
        if val is None or isinstance(val, bool):
            continue
        try:
            changes[attr] = float(val)
        except (TypeError, ValueError):
            continue
    return replace(base, **changes)
