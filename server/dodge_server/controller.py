from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np

from .events import ACTIVATE, InputBus
from .geometry import PlayGeometry, border_width
from .motion import BoundedMotion, check_range
from .timers import Scheduler, TimerHandle
from .tracker import DEFAULT_SAMPLE_EXPIRE_MS, PointerTracker


@dataclass(frozen=True)
class DodgeConfig:
    half_rebound_vel: float = 1000.0
    accel: float = 25.0
    hit_padding: float = 2.0
    min_axis_speed: float = 20.0
    min_speed: float = 30.0
    # time allowed to clear the hit box when pushed out from a standstill
    escape_time_s: float = 0.1
    activation_speed: float = 4000.0
    immunity_ms: float = 1000.0
    tick_ms: float = 10.0
    sample_expire_ms: float = DEFAULT_SAMPLE_EXPIRE_MS

    def __post_init__(self) -> None:
        for name in (
            "half_rebound_vel",
            "accel",
            "min_axis_speed",
            "min_speed",
            "escape_time_s",
            "activation_speed",
            "immunity_ms",
            "tick_ms",
            "sample_expire_ms",
        ):
            check_range(name, getattr(self, name), 0, False, math.inf, False)
        check_range("hit_padding", self.hit_padding, 0, True, math.inf, False)


class ButtonView(Protocol):
    """Rendering side of the button."""

    def place(self, left: int, top: int) -> None: ...

    def show_resting(self, resting: bool) -> None: ...

    def show_alert(self, alert: bool) -> None: ...

    def show_hit(self, hit: bool) -> None: ...


@dataclass(frozen=True)
class EntrySides:
    horizontal: bool
    vertical: bool


def _round_px(value: float) -> int:
    # Half-up, the same as the browser rounds style lengths.
    return math.floor(value + 0.5)


class DodgeController:
    """A button that moves away from the pointer inside its container.

    The container's padding box bounds the button's top-left corner on each
    axis. Pointer hits push the button, activation throws it and makes it
    briefly immune to hits.
    """

    def __init__(
        self,
        geometry: PlayGeometry,
        view: ButtonView,
        scheduler: Scheduler,
        *,
        config: DodgeConfig | None = None,
        rng: np.random.Generator | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or DodgeConfig()
        self._view = view
        self._scheduler = scheduler
        self._rng = rng or np.random.default_rng()
        self._logger = logger or logging.getLogger("dodge.controller")

        container = geometry.container
        button = geometry.button.rect
        horz_bound = math.floor(
            container.rect.width
            - border_width(container.style, "left")
            - border_width(container.style, "right")
            - button.width
        )
        vert_bound = math.floor(
            container.rect.height
            - border_width(container.style, "top")
            - border_width(container.style, "bottom")
            - button.height
        )

        cfg = self._config
        self._motion_x = BoundedMotion(horz_bound, cfg.half_rebound_vel, cfg.accel, logger=logger)
        self._motion_y = BoundedMotion(vert_bound, cfg.half_rebound_vel, cfg.accel, logger=logger)
        self._left = _round_px(horz_bound / 2)
        self._top = _round_px(vert_bound / 2)
        self._motion_x.set_pos(self._left)
        self._motion_y.set_pos(self._top)
        self._tick_handle: TimerHandle | None = None

        self._padding = cfg.hit_padding
        self._hit_width = button.width + (2 * self._padding)
        self._hit_height = button.height + (2 * self._padding)
        self._hit = False
        self._hit_immune = False

        self._tracker = PointerTracker(
            geometry.tracking_area,
            container,
            self._detect_hit,
            scroll=(geometry.scroll_x, geometry.scroll_y),
            sample_expire_ms=cfg.sample_expire_ms,
        )
        self._alert_handle: TimerHandle | None = None
        self._bus: InputBus | None = None

        self._view.place(self._left, self._top)
        # shiny to tempt the user
        self._view.show_resting(True)

    @property
    def config(self) -> DodgeConfig:
        return self._config

    @property
    def tracker(self) -> PointerTracker:
        return self._tracker

    @property
    def bounds(self) -> tuple[float, float]:
        return self._motion_x.upper_pos, self._motion_y.upper_pos

    @property
    def position(self) -> tuple[int, int]:
        return self._left, self._top

    @property
    def velocity(self) -> tuple[float, float]:
        return self._motion_x.vel, self._motion_y.vel

    @property
    def moving(self) -> bool:
        return self._motion_x.moving or self._motion_y.moving

    @property
    def hit(self) -> bool:
        return self._hit

    @property
    def immune(self) -> bool:
        return self._hit_immune

    def attach(self, bus: InputBus) -> None:
        self._tracker.attach(bus)
        bus.subscribe(ACTIVATE, self._on_activate)
        self._bus = bus

    def close(self) -> None:
        if self._bus is not None:
            self._tracker.detach(self._bus)
            self._bus.unsubscribe(ACTIVATE, self._on_activate)
            self._bus = None
        self._cancel_tick()
        if self._alert_handle is not None:
            self._alert_handle.cancel()
            self._alert_handle = None

    def _on_activate(self, name: str, data: dict[str, Any]) -> None:
        x = data.get("x")
        y = data.get("y")
        # A keyboard activation reports the (0, 0) client point. A pointer
        # click there is rare and only costs a random direction.
        origin = None if x is None or y is None or (x == 0 and y == 0) else (x, y)
        self.activate(origin, data["now_ms"])

    def _alert_end(self, now_ms: float) -> None:
        self._alert_handle = None
        self._hit_immune = False
        self._view.show_alert(False)

    def _unit_vec_away_from(self, pos_x: float, pos_y: float) -> tuple[float, float]:
        mag = math.hypot(pos_x, pos_y)
        if not mag > 0:
            ang = float(self._rng.uniform(0.0, 2 * math.pi))
            pos_x = math.cos(ang)
            pos_y = math.sin(ang)
            mag = 1.0
        return -(pos_x / mag), -(pos_y / mag)

    def activate(self, origin: tuple[float, float] | None, now_ms: float) -> None:
        """Throw the button away from ``origin`` (client coordinates).

        ``None`` means the activation did not come from a pointer, so the
        button leaves in a random direction.
        """
        if origin is None:
            pos_x = pos_y = 0.0
        else:
            rel_x, rel_y = self._tracker.to_relative(*origin)
            # relative to the centre of the hit box
            pos_x = (rel_x - self._left + self._padding) - (self._hit_width / 2)
            pos_y = (rel_y - self._top + self._padding) - (self._hit_height / 2)

        vec_x, vec_y = self._unit_vec_away_from(pos_x, pos_y)
        speed = self._config.activation_speed
        self._logger.debug("activated at %s, escaping along (%.3f, %.3f)", origin, vec_x, vec_y)

        # immune to hits so it can escape
        self._hit_immune = True
        self._give_vel(speed * vec_x, speed * vec_y, now_ms)

        if self._alert_handle is not None:
            self._alert_handle.cancel()
        self._view.show_alert(True)
        self._alert_handle = self._scheduler.call_later(self._config.immunity_ms, self._alert_end)

    def _entry_sides(self, x: float, y: float, v_x: float, v_y: float) -> EntrySides:
        if v_x == 0 or v_y == 0:
            return EntrySides(horizontal=(v_y == 0), vertical=(v_x == 0))
        # Compare the inbound slope |vY / vX| with the slope dY / dX towards
        # the corner the pointer is heading away from, where dX, dY are the
        # depths from the entry edges:
        #   lhs < rhs  =>  entered through a horizontal side (vertical edge)
        #   lhs > rhs  =>  entered through a vertical side (horizontal edge)
        #   lhs = rhs  =>  corner
        lhs = abs(v_x) * (y if v_y > 0 else self._hit_height - y)
        rhs = abs(v_y) * (x if v_x > 0 else self._hit_width - x)
        return EntrySides(horizontal=(lhs >= rhs), vertical=(lhs <= rhs))

    def _min_axis_vel(self, vel: float) -> float:
        min_vel = self._config.min_axis_speed
        if abs(vel) < min_vel and vel != 0:
            return min_vel if vel > 0 else -min_vel
        return vel

    def _respond_to_hit(self, pointer_x: float, pointer_y: float, now_ms: float) -> None:
        motion_x = self._motion_x
        motion_y = self._motion_y
        pointer_vel_x, pointer_vel_y = self._tracker.velocity(now_ms)

        # pointer velocity in the frame of the button
        rel_vel_x = pointer_vel_x - motion_x.vel
        rel_vel_y = pointer_vel_y - motion_y.vel
        entry = self._entry_sides(pointer_x, pointer_y, rel_vel_x, rel_vel_y)

        if entry.horizontal:
            # rebound in the pointer's frame, then back to the container's
            vel_x = motion_x.rebound_vel(-rel_vel_x) + pointer_vel_x
        else:
            # picks up half the pointer's velocity through friction
            vel_x = motion_x.vel + (pointer_vel_x / 2)
        if entry.vertical:
            vel_y = motion_y.rebound_vel(-rel_vel_y) + pointer_vel_y
        else:
            vel_y = motion_y.vel + (pointer_vel_y / 2)

        vel_x = self._min_axis_vel(vel_x)
        vel_y = self._min_axis_vel(vel_y)
        min_speed = self._config.min_speed
        mag = math.hypot(vel_x, vel_y)
        if not mag >= min_speed:
            if not mag > 0:
                half_width = self._hit_width / 2
                half_height = self._hit_height / 2
                pos_x = pointer_x - half_width
                pos_y = pointer_y - half_height
                vec_x, vec_y = self._unit_vec_away_from(pos_x, pos_y)
                # depth from the centre to the corner being left behind
                depth = math.hypot(half_width - abs(pos_x), half_height - abs(pos_y))
                speed = max(min_speed, depth / self._config.escape_time_s)
                vel_x = speed * vec_x
                vel_y = speed * vec_y
            else:
                vel_x *= min_speed / mag
                vel_y *= min_speed / mag

        self._logger.debug(
            "hit at (%.1f, %.1f) entry=%s, new velocity (%.1f, %.1f)",
            pointer_x,
            pointer_y,
            entry,
            vel_x,
            vel_y,
        )
        self._give_vel(vel_x, vel_y, now_ms)

    def _detect_hit(self, now_ms: float) -> None:
        pos = self._tracker.position()
        hit = False
        pointer_x = pointer_y = math.nan
        if pos is not None:
            # container coordinates to hit box coordinates
            pointer_x = pos[0] - self._left + self._padding
            pointer_y = pos[1] - self._top + self._padding
            hit = (
                not self._hit_immune
                and 0 <= pointer_x <= self._hit_width
                and 0 <= pointer_y <= self._hit_height
            )

        was_hit = self._hit
        self._hit = hit
        if hit != was_hit:
            self._view.show_hit(hit)
        if hit and not was_hit:
            self._respond_to_hit(pointer_x, pointer_y, now_ms)

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _update_motion(self, now_ms: float) -> None:
        time_s = now_ms / 1000
        motion_x = self._motion_x
        motion_y = self._motion_y

        if motion_x.vel != 0:
            self._left = _round_px(motion_x.update(time_s).pos)
        if motion_y.vel != 0:
            self._top = _round_px(motion_y.update(time_s).pos)
        self._view.place(self._left, self._top)

        if motion_x.vel == 0 and motion_y.vel == 0:
            self._cancel_tick()
            self._view.show_resting(True)

        self._detect_hit(now_ms)

    def _give_vel(self, vel_x: float, vel_y: float, now_ms: float) -> None:
        time_s = now_ms / 1000
        # Start from the rendered pixels so rounding never accumulates.
        self._motion_x.set_pos(self._left)
        self._motion_y.set_pos(self._top)
        self._motion_x.set_vel(time_s, vel_x)
        self._motion_y.set_vel(time_s, vel_y)

        self._cancel_tick()
        self._view.show_resting(False)
        self._tick_handle = self._scheduler.call_every(self._config.tick_ms, self._update_motion)
