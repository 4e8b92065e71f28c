"""PID control with optional refinements, error detection and fuzzy gain scheduling."""

from __future__ import annotations

import enum
from collections.abc import Callable, Sequence
from typing import Optional

from .mathutil import OrdinaryLeastSquares

NB, NM, NS, ZE, PS, PM, PB = -3, -2, -1, 0, 1, 2, 3

Table = tuple[tuple[float, ...], ...]

DEFAULT_KP_RULE: Table = (
    (PB, PB, PM, PM, PS, ZE, ZE),
    (PB, PB, PM, PS, PS, ZE, PS),
    (PM, PM, PM, PS, ZE, PS, PS),
    (PM, PM, PS, ZE, PS, PM, PM),
    (PS, PS, ZE, PS, PS, PM, PM),
    (PS, ZE, PS, PM, PM, PM, PB),
    (ZE, ZE, PM, PM, PM, PB, PB),
)

DEFAULT_KI_RULE: Table = (
    (PB, PB, PM, PM, PS, ZE, ZE),
    (PB, PB, PM, PS, PS, ZE, ZE),
    (PB, PM, PM, PS, ZE, PS, PS),
    (PM, PM, PS, ZE, PS, PM, PM),
    (PS, PS, ZE, PS, PS, PM, PB),
    (ZE, ZE, PS, PS, PM, PB, PB),
    (ZE, ZE, PS, PM, PM, PB, PB),
)

DEFAULT_KD_RULE: Table = (
    (PS, PS, PB, PB, PB, PM, PS),
    (PS, PS, PB, PM, PM, PS, ZE),
    (ZE, PS, PM, PM, PS, PS, ZE),
    (ZE, PS, PS, PS, PS, PS, ZE),
    (ZE, ZE, ZE, ZE, ZE, ZE, ZE),
    (PB, PS, PS, PS, PS, PS, PB),
    (PB, PM, PM, PM, PS, PS, PB),
)

_BLOCKED_LIMIT = 500


class Improvement(enum.IntFlag):
    """Optional refinements of the basic PID law."""

    NONE = 0x00
    INTEGRAL_LIMIT = 0x01
    DERIVATIVE_ON_MEASUREMENT = 0x02
    TRAPEZOID_INTEGRAL = 0x04
    PROPORTIONAL_ON_MEASUREMENT = 0x08
    OUTPUT_FILTER = 0x10
    CHANGING_INTEGRATION_RATE = 0x20
    DERIVATIVE_FILTER = 0x40
    ERROR_HANDLE = 0x80


class ErrorType(enum.IntEnum):
    """Fault detected by the PID error handler."""

    NONE = 0x00
    MOTOR_BLOCKED = 0x01


def _table(rule: Optional[Sequence[Sequence[float]]], default: Table) -> Table:
    if rule is None:
        return default
    table = tuple(tuple(float(v) for v in row) for row in rule)
    if len(table) != 7 or any(len(row) != 7 for row in table):
        raise ValueError("a fuzzy rule table must be 7 x 7")
    return table


def _indices(value: float, step: float) -> tuple[int, int, float, float]:
    """Left/right table indices and their membership weights for one input."""
    ratio = value / step
    if value >= 3 * step:
        return 6, 6, 0.0, 1.0
    if value <= -3 * step:
        return 0, 0, 1.0, 0.0
    if value >= 0:
        left, right = int(ratio) + 3, int(ratio) + 4
    else:
        left, right = int(ratio) + 2, int(ratio) + 3
    return left, right, right - ratio - 3, ratio - left + 3


class FuzzyRule:
    """Fuzzy gain scheduler that yields extra Kp, Ki and Kd from error and its rate."""

    def __init__(
        self,
        kp_rule: Optional[Sequence[Sequence[float]]],
        ki_rule: Optional[Sequence[Sequence[float]]],
        kd_rule: Optional[Sequence[Sequence[float]]],
        kp_ratio: float,
        ki_ratio: float,
        kd_ratio: float,
        e_step: float,
        ec_step: float,
    ) -> None:
        self.kp_rule = _table(kp_rule, DEFAULT_KP_RULE)
        self.ki_rule = _table(ki_rule, DEFAULT_KI_RULE)
        self.kd_rule = _table(kd_rule, DEFAULT_KD_RULE)
        self.kp_ratio = kp_ratio
        self.ki_ratio = ki_ratio
        self.kd_ratio = kd_ratio
        self.e_step = 1.0 if e_step < 0.00001 else e_step
        self.ec_step = 1.0 if ec_step < 0.00001 else ec_step
        self.kp_fuzzy = 0.0
        self.ki_fuzzy = 0.0
        self.kd_fuzzy = 0.0
        self.e = 0.0
        self.ec = 0.0
        self.e_last = 0.0
        self.dt = 0.0

    def _blend(self, table: Table, e: tuple[int, int, float, float],
               ec: tuple[int, int, float, float]) -> float:
        e_left, e_right, e_lw, e_rw = e
        ec_left, ec_right, ec_lw, ec_rw = ec
        return (
            e_lw * ec_lw * table[e_left][ec_left]
            + e_lw * ec_rw * table[e_right][ec_left]
            + e_rw * ec_lw * table[e_left][ec_right]
            + e_rw * ec_rw * table[e_right][ec_right]
        )

    def implement(self, measure: float, ref: float, dt: float) -> None:
        """Update the fuzzy gains from a new measurement taken ``dt`` seconds after the last."""
        if dt <= 0:
            raise ValueError("dt must be positive")
        self.dt = dt
        self.e = ref - measure
        self.ec = (self.e - self.e_last) / dt
        self.e_last = self.e

        e = _indices(self.e, self.e_step)
        ec = _indices(self.ec, self.ec_step)
        self.kp_fuzzy = self._blend(self.kp_rule, e, ec)
        self.ki_fuzzy = self._blend(self.ki_rule, e, ec)
        self.kd_fuzzy = self._blend(self.kd_rule, e, ec)


PIDHook = Optional[Callable[["PID"], None]]


class PID:
    """PID controller with dead band, limits, filters and optional fuzzy gains."""

    def __init__(
        self,
        max_out: float,
        integral_limit: float,
        deadband: float,
        kp: float,
        ki: float,
        kd: float,
        coef_a: float,
        coef_b: float,
        output_lpf_rc: float,
        derivative_lpf_rc: float,
        ols_order: int,
        improve: int,
    ) -> None:
        self.deadband = deadband
        self.integral_limit = integral_limit
        self.max_out = max_out
        self.kp = kp
        self.ki = ki
        self.kd = kd
        self.coef_a = coef_a
        self.coef_b = coef_b
        self.output_lpf_rc = output_lpf_rc
        self.derivative_lpf_rc = derivative_lpf_rc
        self.ols_order = ols_order
        self.ols = OrdinaryLeastSquares(ols_order) if ols_order > 2 else None
        self.improve = Improvement(improve)

        self.ref = 0.0
        self.measure = 0.0
        self.last_measure = 0.0
        self.err = 0.0
        self.last_err = 0.0
        self.last_iterm = 0.0
        self.pout = 0.0
        self.iout = 0.0
        self.dout = 0.0
        self.iterm = 0.0
        self.output = 0.0
        self.last_output = 0.0
        self.last_dout = 0.0
        self.dt = 0.0

        self.error_count = 0
        self.error_type = ErrorType.NONE

        self.fuzzy_rule: Optional[FuzzyRule] = None
        self.user_func1: PIDHook = None
        self.user_func2: PIDHook = None

    def _gains(self) -> tuple[float, float, float]:
        if self.fuzzy_rule is None:
            return self.kp, self.ki, self.kd
        fr = self.fuzzy_rule
        return self.kp + fr.kp_fuzzy, self.ki + fr.ki_fuzzy, self.kd + fr.kd_fuzzy

    def _derivative(self, value: float, difference: float) -> float:
        if self.ols is not None:
            return self.ols.derivative(self.dt, value)
        return difference / self.dt

    def _handle_error(self) -> None:
        if self.output < self.max_out * 0.001 or abs(self.ref) < 0.0001:
            return
        if abs(self.ref - self.measure) / abs(self.ref) > 0.95:
            self.error_count += 1
        else:
            self.error_count = 0
        if self.error_count > _BLOCKED_LIMIT:
            self.error_type = ErrorType.MOTOR_BLOCKED

    def _changing_integration_rate(self) -> None:
        if self.err * self.iout <= 0:
            return
        magnitude = abs(self.err)
        if magnitude <= self.coef_b:
            return
        if magnitude <= self.coef_a + self.coef_b:
            self.iterm *= (self.coef_a - magnitude + self.coef_b) / self.coef_a
        else:
            self.iterm = 0.0

    def _integral_limit(self) -> None:
        temp_iout = self.iout + self.iterm
        temp_output = self.pout + self.iout + self.dout
        if abs(temp_output) > self.max_out and self.err * self.iout > 0:
            self.iterm = 0.0
        if temp_iout > self.integral_limit:
            self.iterm = 0.0
            self.iout = self.integral_limit
        if temp_iout < -self.integral_limit:
            self.iterm = 0.0
            self.iout = -self.integral_limit

    def calculate(self, measure: float, ref: float, dt: float) -> float:
        """Run one control step ``dt`` seconds after the previous one and return the output."""
        if dt <= 0:
            raise ValueError("dt must be positive")
        if self.improve & Improvement.ERROR_HANDLE:
            self._handle_error()

        self.dt = dt
        self.measure = measure
        self.ref = ref
        self.err = ref - measure

        if self.user_func1 is not None:
            self.user_func1(self)

        if abs(self.err) > self.deadband:
            kp, ki, kd = self._gains()
            self.pout = kp * self.err
            self.iterm = ki * self.err * dt
            self.dout = kd * self._derivative(self.err, self.err - self.last_err)

            if self.user_func2 is not None:
                self.user_func2(self)

            if self.improve & Improvement.TRAPEZOID_INTEGRAL:
                self.iterm = ki * ((self.err + self.last_err) / 2) * dt
            if self.improve & Improvement.CHANGING_INTEGRATION_RATE:
                self._changing_integration_rate()
            if self.improve & Improvement.DERIVATIVE_ON_MEASUREMENT:
                self.dout = kd * self._derivative(
                    -self.measure, self.last_measure - self.measure
                )
            if self.improve & Improvement.DERIVATIVE_FILTER:
                rc = self.derivative_lpf_rc
                self.dout = self.dout * dt / (rc + dt) + self.last_dout * rc / (rc + dt)
            if self.improve & Improvement.INTEGRAL_LIMIT:
                self._integral_limit()

            self.iout += self.iterm
            self.output = self.pout + self.iout + self.dout

            if self.improve & Improvement.OUTPUT_FILTER:
                rc = self.output_lpf_rc
                self.output = self.output * dt / (rc + dt) + self.last_output * rc / (rc + dt)

            self.output = min(max(self.output, -self.max_out), self.max_out)
            self.pout = min(max(self.pout, -self.max_out), self.max_out)

        self.last_measure = self.measure
        self.last_output = self.output
        self.last_dout = self.dout
        self.last_err = self.err
        self.last_iterm = self.iterm
        return self.output