"""Feed-forward control, a linear disturbance observer and a tracking differentiator."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Optional

from .mathutil import OrdinaryLeastSquares, float_constrain, sign


def _check_dt(dt: float) -> None:
    if dt <= 0:
        raise ValueError("dt must be positive")


def _coefficients(c: Sequence[float]) -> tuple[float, float, float]:
    values = tuple(float(v) for v in c)
    if len(values) != 3:
        raise ValueError("exactly three coefficients are required")
    return values  # type: ignore[return-value]


def _ols(order: int) -> Optional[OrdinaryLeastSquares]:
    return OrdinaryLeastSquares(order) if order > 2 else None


def _differentiate(
    ols: Optional[OrdinaryLeastSquares], dt: float, value: float, last: float
) -> float:
    """Slope of a signal: a sliding least-squares fit when available, else a difference."""
    if ols is not None:
        return ols.derivative(dt, value)
    return (value - last) / dt


def _low_pass(new: float, old: float, rc: float, dt: float) -> float:
    return new * dt / (rc + dt) + old * rc / (rc + dt)


class Feedforward:
    """Feed-forward controller for a plant G(s) = 1 / (c2 s^2 + c1 s + c0)."""

    def __init__(
        self,
        max_out: float,
        c: Optional[Sequence[float]],
        lpf_rc: float,
        ref_dot_ols_order: int,
        ref_ddot_ols_order: int,
    ) -> None:
        if c is None:
            self.c = (0.0, 0.0, 0.0)
            self.max_out = 0.0
        else:
            self.c = _coefficients(c)
            self.max_out = max_out
        self.lpf_rc = lpf_rc
        self.ref_dot_ols_order = ref_dot_ols_order
        self.ref_ddot_ols_order = ref_ddot_ols_order
        self.ref_dot_ols = _ols(ref_dot_ols_order)
        self.ref_ddot_ols = _ols(ref_ddot_ols_order)

        self.dt = 0.0
        self.ref = 0.0
        self.last_ref = 0.0
        self.ref_dot = 0.0
        self.ref_ddot = 0.0
        self.last_ref_dot = 0.0
        self.output = 0.0

    def calculate(self, ref: float, dt: float) -> float:
        """Filter the reference, differentiate it twice and return the limited output."""
        _check_dt(dt)
        self.dt = dt
        self.ref = _low_pass(ref, self.ref, self.lpf_rc, dt)

        self.ref_dot = _differentiate(self.ref_dot_ols, dt, self.ref, self.last_ref)
        self.ref_ddot = _differentiate(
            self.ref_ddot_ols, dt, self.ref_dot, self.last_ref_dot
        )

        c0, c1, c2 = self.c
        output = c0 * self.ref + c1 * self.ref_dot + c2 * self.ref_ddot
        self.output = float_constrain(output, -self.max_out, self.max_out)

        self.last_ref = self.ref
        self.last_ref_dot = self.ref_dot
        return self.output


class LDOB:
    """Linear disturbance observer for a plant G(s) = 1 / (c2 s^2 + c1 s + c0)."""

    def __init__(
        self,
        max_disturbance: float,
        deadband: float,
        c: Optional[Sequence[float]],
        lpf_rc: float,
        measure_dot_ols_order: int,
        measure_ddot_ols_order: int,
    ) -> None:
        self.deadband = deadband
        if c is None:
            self.c = (0.0, 0.0, 0.0)
            self.max_disturbance = 0.0
        else:
            self.c = _coefficients(c)
            self.max_disturbance = max_disturbance
        self.lpf_rc = lpf_rc
        self.measure_dot_ols_order = measure_dot_ols_order
        self.measure_ddot_ols_order = measure_ddot_ols_order
        self.measure_dot_ols = _ols(measure_dot_ols_order)
        self.measure_ddot_ols = _ols(measure_ddot_ols_order)

        self.dt = 0.0
        self.u = 0.0
        self.measure = 0.0
        self.last_measure = 0.0
        self.measure_dot = 0.0
        self.measure_ddot = 0.0
        self.last_measure_dot = 0.0
        self.disturbance = 0.0
        self.last_disturbance = 0.0
        self.output = 0.0

    def calculate(self, measure: float, u: float, dt: float) -> float:
        """Estimate the lumped disturbance from a measurement and the plant input."""
        _check_dt(dt)
        self.dt = dt
        self.measure = measure
        self.u = u

        self.measure_dot = _differentiate(
            self.measure_dot_ols, dt, self.measure, self.last_measure
        )
        self.measure_ddot = _differentiate(
            self.measure_ddot_ols, dt, self.measure_dot, self.last_measure_dot
        )

        c0, c1, c2 = self.c
        raw = c0 * self.measure + c1 * self.measure_dot + c2 * self.measure_ddot - self.u
        filtered = _low_pass(raw, self.last_disturbance, self.lpf_rc, dt)
        self.disturbance = float_constrain(
            filtered, -self.max_disturbance, self.max_disturbance
        )

        if abs(self.disturbance) > self.deadband * self.max_disturbance:
            self.output = self.disturbance
        else:
            self.output = 0.0

        self.last_measure = self.measure
        self.last_measure_dot = self.measure_dot
        self.last_disturbance = self.disturbance
        return self.output


class TrackingDifferentiator:
    """Han's tracking differentiator: follows an input with bounded acceleration ``r``."""

    def __init__(self, r: float, h0: float) -> None:
        if r <= 0:
            raise ValueError("r must be positive")
        if h0 == 0:
            raise ValueError("h0 must not be zero")
        self.r = r
        self.h0 = h0
        self.input = 0.0
        self.dt = 0.0
        self.x = 0.0
        self.dx = 0.0
        self.ddx = 0.0
        self.last_dx = 0.0
        self.last_ddx = 0.0

    def calculate(self, input_value: float, dt: float) -> float:
        """Advance by ``dt`` seconds and return the tracked value; a gap over 0.5 s gives 0."""
        self.dt = dt
        if dt > 0.5:
            return 0.0
        self.input = input_value

        r, h0 = self.r, self.h0
        d = r * h0 * h0
        a0 = self.dx * h0
        y = self.x - self.input + a0
        a1 = math.sqrt(d * (d + 8 * abs(y)))
        a2 = a0 + sign(y) * (a1 - d) / 2
        in_y = (sign(y + d) - sign(y - d)) / 2
        a = (a0 + y) * in_y + a2 * (1 - in_y)
        in_a = (sign(a + d) - sign(a - d)) / 2
        fhan = -r * a / d * in_a - r * sign(a) * (1 - in_a)

        self.ddx = fhan
        self.dx += (self.ddx + self.last_ddx) * dt / 2
        self.x += (self.dx + self.last_dx) * dt / 2
        self.last_ddx = self.ddx
        self.last_dx = self.dx
        return self.x