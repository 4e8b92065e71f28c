"""Small numeric helpers: limiting, dead bands, ramps and a sliding least-squares fit."""

from __future__ import annotations

import math

PI = 3.14159265354
RADIAN_COEF = 57.295779513


def _ieee_div(num: float, den: float) -> float:
    """Divide like IEEE floats do: zero denominators give inf or nan instead of raising."""
    if den == 0:
        if num == 0 or math.isnan(num):
            return math.nan
        return math.copysign(math.inf, num) * math.copysign(1.0, den)
    return num / den


def fast_sqrt(x: float) -> float:
    """Square root by Newton iteration, to within 0.1 % of ``x`` in the square."""
    if x <= 0:
        return 0.0
    y = x / 2
    max_error = x * 0.001
    while True:
        delta = y * y - x
        y -= delta / (2 * y)
        if not (delta > max_error or delta < -max_error):
            return y


class Ramp:
    """A ramp that integrates its input over a fixed frame period, within limits."""

    def __init__(self, frame_period: float, max_value: float, min_value: float) -> None:
        self.frame_period = frame_period
        self.max_value = max_value
        self.min_value = min_value
        self.input = 0.0
        self.out = 0.0

    def calc(self, input_value: float) -> float:
        """Add ``input_value`` per second for one frame and return the limited output."""
        self.input = input_value
        self.out += self.input * self.frame_period
        if self.out > self.max_value:
            self.out = self.max_value
        elif self.out < self.min_value:
            self.out = self.min_value
        return self.out


def abs_limit(num: float, limit: float) -> float:
    """Clamp ``num`` to the range ``[-limit, limit]``."""
    if num > limit:
        return limit
    if num < -limit:
        return -limit
    return num


def sign(value: float) -> float:
    """Return 1.0 for non-negative values and -1.0 otherwise."""
    return 1.0 if value >= 0.0 else -1.0


def float_deadband(value: float, min_value: float, max_value: float) -> float:
    """Return 0.0 when ``value`` lies strictly between the bounds, else ``value``."""
    if min_value < value < max_value:
        return 0.0
    return value


def int16_deadline(value: int, min_value: int, max_value: int) -> int:
    """Integer dead band: 0 when ``value`` lies strictly between the bounds."""
    if min_value < value < max_value:
        return 0
    return value


def float_constrain(value: float, min_value: float, max_value: float) -> float:
    """Clamp ``value`` into ``[min_value, max_value]``."""
    if value < min_value:
        return min_value
    if value > max_value:
        return max_value
    return value


def int16_constrain(value: int, min_value: int, max_value: int) -> int:
    """Clamp an integer into ``[min_value, max_value]``."""
    if value < min_value:
        return min_value
    if value > max_value:
        return max_value
    return value


def loop_float_constrain(value: float, min_value: float, max_value: float) -> float:
    """Wrap ``value`` into ``[min_value, max_value]`` by whole periods of the range."""
    if max_value < min_value:
        return value
    length = max_value - min_value
    if value > max_value:
        while value > max_value:
            value -= length
    elif value < min_value:
        while value < min_value:
            value += length
    return value


def theta_format(angle: float) -> float:
    """Wrap an angle in degrees into -180..180."""
    return loop_float_constrain(angle, -180.0, 180.0)


def rad_format(angle: float) -> float:
    """Wrap an angle in radians into -PI..PI."""
    return loop_float_constrain(angle, -PI, PI)


def float_rounding(raw: float) -> int:
    """Truncate toward zero, then round up when the remaining fraction exceeds one half."""
    integer = int(raw)
    if raw - integer > 0.5:
        integer += 1
    return integer


class OrdinaryLeastSquares:
    """Straight-line least-squares fit over a sliding window of samples."""

    def __init__(self, order: int) -> None:
        if order < 2:
            raise ValueError("order must be at least 2")
        self.order = order
        self.count = 0
        self.x = [0.0] * order
        self.y = [0.0] * order
        self.k = 0.0
        self.b = 0.0
        self.standard_deviation = 0.0
        self.t = [0.0] * 4

    def _push(self, deltax: float, y: float) -> None:
        offset = self.x[1]
        last = self.x[-1] - offset + deltax
        self.x = [v - offset for v in self.x[1:]] + [last]
        self.y = self.y[1:] + [y]
        if self.count < self.order:
            self.count += 1
        window = list(zip(self.x[-self.count:], self.y[-self.count:]))
        self.t = [
            sum(xi * xi for xi, _ in window),
            sum(xi for xi, _ in window),
            sum(xi * yi for xi, yi in window),
            sum(yi for _, yi in window),
        ]

    def _denominator(self) -> float:
        return self.t[0] * self.order - self.t[1] * self.t[1]

    def _fit_slope(self) -> None:
        self.k = _ieee_div(self.t[2] * self.order - self.t[1] * self.t[3], self._denominator())

    def _fit_intercept(self) -> None:
        self.b = _ieee_div(self.t[0] * self.t[3] - self.t[1] * self.t[2], self._denominator())

    def _residual(self) -> None:
        window = zip(self.x[-self.count:], self.y[-self.count:])
        total = sum(abs(self.k * xi + self.b - yi) for xi, yi in window)
        self.standard_deviation = total / self.order

    def update(self, deltax: float, y: float) -> None:
        """Add a sample ``deltax`` after the previous one and refit slope and intercept."""
        self._push(deltax, y)
        self._fit_slope()
        self._fit_intercept()
        self._residual()

    def derivative(self, deltax: float, y: float) -> float:
        """Add a sample, refit the slope only and return it."""
        self._push(deltax, y)
        self._fit_slope()
        self._residual()
        return self.k

    def smooth(self, deltax: float, y: float) -> float:
        """Add a sample, refit, and return the fitted value at the newest sample."""
        self.update(deltax, y)
        return self.fitted()

    def fitted(self) -> float:
        """The fitted line evaluated at the newest sample."""
        return self.k * self.x[-1] + self.b