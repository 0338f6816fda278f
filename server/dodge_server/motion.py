from __future__ import annotations

import logging
import math
from dataclasses import dataclass


class RangeError(ValueError):
    """A number outside the interval it must lie in."""


def check_range(
    name: str,
    num: float,
    lower: float,
    lower_closed: bool,
    upper: float,
    upper_closed: bool,
) -> None:
    if isinstance(num, bool) or not isinstance(num, (int, float)):
        raise TypeError(f"{name} must be a number")
    # NaN fails every comparison, so it is always out of range.
    if not (
        (num > lower or (lower_closed and num == lower))
        and (num < upper or (upper_closed and num == upper))
    ):
        raise RangeError(
            f"{name} is {num} but must be in the interval "
            f"{'[' if lower_closed else '('}{lower},{upper}{']' if upper_closed else ')'}"
        )


def check_finite(name: str, num: float) -> None:
    check_range(name, num, -math.inf, False, math.inf, False)


@dataclass(frozen=True)
class MotionState:
    pos: float
    vel: float


class BoundedMotion:
    """Point particle between a lower boundary at 0 and an upper boundary.

    Away from the boundaries the particle decelerates at a constant rate
    ``a`` until it stops. Starting a trajectory at ``t = 0`` with position
    ``x0`` and velocity ``v0`` (``s0 = sign(v0)``)::

        v(t) = v0 - s0 * a * t
        x(t) = x0 + (v0 + v(t)) * t / 2

    A trajectory ends at the first ``T`` where ``x(T)`` is a boundary or
    ``v(T) = 0``. At a boundary a new trajectory starts there with velocity
    ``rebound_vel(v(T))``; otherwise the particle stays put.
    """

    def __init__(
        self,
        upper_pos: float,
        half_rebound_vel: float,
        accel: float,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        check_range("upper_pos", upper_pos, 0, False, math.inf, True)
        check_range("half_rebound_vel", half_rebound_vel, 0, False, math.inf, False)
        check_range("accel", accel, 0, False, math.inf, False)

        self._upper_pos = upper_pos
        self._half_rebound_vel = half_rebound_vel
        self._accel = accel
        self._logger = logger or logging.getLogger("dodge.motion")

        self._traj_start: float | None = None
        self._last_time: float | None = None
        self._init_pos = math.nan
        self._init_vel = 0.0
        self._pos = math.nan
        self._vel = 0.0

    @property
    def upper_pos(self) -> float:
        return self._upper_pos

    @property
    def pos(self) -> float:
        return self._pos

    @property
    def vel(self) -> float:
        return self._vel

    @property
    def moving(self) -> bool:
        return self._vel != 0.0

    def set_pos(self, init_pos: float) -> None:
        check_range("init_pos", init_pos, 0, True, self._upper_pos, True)
        self._init_pos = init_pos
        self._pos = init_pos

    def set_vel(self, time_s: float, init_vel: float) -> None:
        check_finite("time_s", time_s)
        check_finite("init_vel", init_vel)
        self._traj_start = time_s
        self._last_time = time_s
        self._init_vel = init_vel
        self._vel = init_vel

    def rebound_vel(self, vel: float) -> float:
        """Velocity leaving a boundary after arriving with ``vel``.

        ``f(v) = v / (v / vH + 1)`` is monotone in ``|v|`` while the retained
        fraction shrinks as ``|v|`` grows; at ``|v| == vH`` half is kept.
        """
        return -vel / ((abs(vel) / self._half_rebound_vel) + 1)

    def _vel_at(self, traj_time: float) -> float:
        if self._init_vel >= 0:
            # zero init_vel turns negative, which the caller clamps
            return self._init_vel - (self._accel * traj_time)
        return self._init_vel + (self._accel * traj_time)

    def _stop_time(self) -> float:
        return abs(self._init_vel) / self._accel

    def _pos_at(self, traj_time: float, vel: float) -> float:
        return self._init_pos + (((self._init_vel + vel) / 2) * traj_time)

    def _time_at_disp(self, disp: float) -> float:
        # Lower root of  disp - |v0| t + a t^2 / 2 = 0; the upper root is the
        # particle turning around.
        init_vel = self._init_vel
        accel = self._accel
        disc = (init_vel * init_vel) - (2 * accel * disp)
        if disc < 0:
            return math.nan
        return (abs(init_vel) - math.sqrt(disc)) / accel

    def update(self, time_s: float) -> MotionState:
        if self._traj_start is None or self._last_time is None:
            raise RangeError("update called before set_vel")
        if math.isnan(self._init_pos):
            raise RangeError("update called before set_pos")
        if not (time_s >= self._last_time):
            raise RangeError(
                f"time_s {time_s} is not later than the previous time of {self._last_time}"
            )
        self._last_time = time_s

        upper_pos = self._upper_pos
        while True:
            # time since the current quadratic trajectory began
            traj_time = max(0.0, time_s - self._traj_start)
            init_vel = self._init_vel
            vel = self._vel_at(traj_time)
            if (init_vel >= 0 and vel < 0) or (init_vel < 0 and vel > 0):
                # Stopped before time_s. Up to the stop time the position is
                # monotonic, so a boundary check against it is still exact.
                traj_time = self._stop_time()
                vel = 0.0

            pos = self._pos_at(traj_time, vel)
            if 0 <= pos <= upper_pos:
                break

            hit_lower = pos < 0
            disp = self._init_pos if hit_lower else upper_pos - self._init_pos
            hit_time = self._time_at_disp(disp)
            if not (0.0 <= hit_time <= traj_time):
                # floating point drift
                self._logger.error(
                    "Unexpected boundary hit time of %s outside of the range [0,%s]. "
                    "Using a hit time of %s instead",
                    hit_time,
                    traj_time,
                    traj_time,
                )
                hit_time = traj_time
            hit_vel = self._vel_at(hit_time)

            # New trajectory from the boundary for the leftover time.
            self._traj_start += hit_time
            self._init_vel = self.rebound_vel(hit_vel)
            self._init_pos = 0.0 if hit_lower else upper_pos

        self._pos = pos
        self._vel = vel
        return MotionState(pos=pos, vel=vel)
