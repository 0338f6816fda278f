from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable

from .events import POINTER_LEAVE, POINTER_MOVE, POINTER_OVER, RESIZE, SCROLL, InputBus
from .geometry import ElementGeometry, border_width

DEFAULT_SAMPLE_EXPIRE_MS = 300.0


@dataclass(frozen=True)
class PointerSample:
    client_x: float
    client_y: float
    ts_ms: float


class PointerTracker:
    """Estimates pointer position and velocity from pointer events.

    Positions are relative to the padding box of ``relative`` (its top-left
    corner inside the border is the origin). ``relative`` must stay fixed
    relative to ``tracking_area``. Velocities are in pixels per second.
    """

    def __init__(
        self,
        tracking_area: ElementGeometry,
        relative: ElementGeometry,
        on_update: Callable[[float], None] | None = None,
        *,
        scroll: tuple[float, float] = (0.0, 0.0),
        sample_expire_ms: float = DEFAULT_SAMPLE_EXPIRE_MS,
    ) -> None:
        # Raises FormatError before any state exists.
        self._offset_x = relative.rect.x - tracking_area.rect.x + border_width(relative.style, "left")
        self._offset_y = relative.rect.y - tracking_area.rect.y + border_width(relative.style, "top")
        # tracking area origin in client coordinates, moved by scrolling
        self._area_x = tracking_area.rect.x
        self._area_y = tracking_area.rect.y
        self._scroll_x, self._scroll_y = scroll
        self._on_update = on_update
        self._sample_expire_ms = sample_expire_ms

        self._vel_x = 0.0
        self._vel_y = 0.0
        self._pos_x = math.nan
        self._pos_y = math.nan
        self._client_x = math.nan
        self._client_y = math.nan
        self._last_ts_ms = math.nan
        self._now_at_sample = math.nan

    @property
    def sample_expire_ms(self) -> float:
        return self._sample_expire_ms

    def position(self) -> tuple[float, float] | None:
        if math.isnan(self._pos_x) or math.isnan(self._pos_y):
            return None
        return self._pos_x, self._pos_y

    def velocity(self, now_ms: float) -> tuple[float, float]:
        # NaN (no sample yet) fails the comparison too.
        if (now_ms - self._now_at_sample) <= self._sample_expire_ms:
            return self._vel_x, self._vel_y
        return 0.0, 0.0

    def to_relative(self, client_x: float, client_y: float) -> tuple[float, float]:
        return (
            client_x - self._area_x - self._offset_x,
            client_y - self._area_y - self._offset_y,
        )

    def _time_av_vel(self, curr: float, diff_pos: float, diff_time_ms: float) -> float:
        if diff_time_ms == 0:
            return 0.0
        vel = (diff_pos / diff_time_ms) * 1000
        if not math.isfinite(vel):
            return 0.0
        if diff_time_ms > self._sample_expire_ms:
            # history too old to blend with
            return vel
        if not math.isfinite(curr) or curr == 0:
            return vel
        if (vel < 0 < curr) or (curr < 0 < vel):
            # reversal, snap instead of converging slowly
            return vel
        return (curr + vel) / 2

    def _update_motion(self, diff_x: float, diff_y: float, ts_ms: float, now_ms: float) -> None:
        self._now_at_sample = now_ms
        diff_time = ts_ms - self._last_ts_ms
        self._vel_x = self._time_av_vel(self._vel_x, diff_x, diff_time)
        self._vel_y = self._time_av_vel(self._vel_y, diff_y, diff_time)
        self._last_ts_ms = ts_ms

        self._pos_x, self._pos_y = self.to_relative(self._client_x, self._client_y)
        if self._on_update is not None:
            self._on_update(now_ms)

    def _update_to_client_pos(self, sample: PointerSample, now_ms: float) -> None:
        if sample.client_x == self._client_x and sample.client_y == self._client_y:
            return
        diff_x = sample.client_x - self._client_x
        diff_y = sample.client_y - self._client_y
        self._client_x = sample.client_x
        self._client_y = sample.client_y
        self._update_motion(diff_x, diff_y, sample.ts_ms, now_ms)

    def _update_to_unknown(self, ts_ms: float, now_ms: float) -> None:
        self._client_x = math.nan
        self._client_y = math.nan
        self._update_motion(math.nan, math.nan, ts_ms, now_ms)

    def pointer_move(self, sample: PointerSample, now_ms: float) -> None:
        self._update_to_client_pos(sample, now_ms)

    def pointer_over(self, sample: PointerSample, now_ms: float) -> None:
        # Also fired after a zoom, once the resize has been handled.
        self._update_to_client_pos(sample, now_ms)

    def scroll(self, scroll_x: float, scroll_y: float, ts_ms: float, now_ms: float) -> None:
        # The pointer keeps its client position while the page moves under it.
        diff_x = scroll_x - self._scroll_x
        diff_y = scroll_y - self._scroll_y
        self._scroll_x = scroll_x
        self._scroll_y = scroll_y
        self._area_x -= diff_x
        self._area_y -= diff_y
        self._update_motion(diff_x, diff_y, ts_ms, now_ms)

    def pointer_leave(self, ts_ms: float, now_ms: float) -> None:
        self._update_to_unknown(ts_ms, now_ms)

    def resize(self, ts_ms: float, now_ms: float) -> None:
        # No telling where the pointer is after a resize or zoom.
        self._update_to_unknown(ts_ms, now_ms)

    def _on_input(self, name: str, data: dict[str, Any]) -> None:
        now_ms = data["now_ms"]
        if name == POINTER_MOVE:
            self.pointer_move(data["sample"], now_ms)
        elif name == POINTER_OVER:
            self.pointer_over(data["sample"], now_ms)
        elif name == SCROLL:
            self.scroll(data["scroll_x"], data["scroll_y"], data["ts_ms"], now_ms)
        elif name == POINTER_LEAVE:
            self.pointer_leave(data["ts_ms"], now_ms)
        elif name == RESIZE:
            self.resize(data["ts_ms"], now_ms)

    def attach(self, bus: InputBus) -> None:
        for name in (POINTER_MOVE, POINTER_OVER, SCROLL, POINTER_LEAVE, RESIZE):
            bus.subscribe(name, self._on_input)

    def detach(self, bus: InputBus) -> None:
        for name in (POINTER_MOVE, POINTER_OVER, SCROLL, POINTER_LEAVE, RESIZE):
            bus.unsubscribe(name, self._on_input)
