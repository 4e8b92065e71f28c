"""A second-order transfer function simulated by trapezoidal integration, and Gaussian noise."""

from __future__ import annotations

import math
import random
from collections.abc import Iterator, Sequence

_TWO_PI = 2.0 * 3.1415926535


class SecondOrderTF:
    """Simulates G(s) = 1 / (c2 s^2 + c1 s + c0)."""

    def __init__(self, c: Sequence[float]) -> None:
        coefficients = [float(v) for v in c]
        if len(coefficients) != 3:
            raise ValueError("exactly three coefficients are required")
        if coefficients[2] == 0:
            raise ValueError("the second-order coefficient must not be zero")
        self.c = coefficients
        self.u = 0.0
        self.dt = 0.0
        self.y = 0.0
        self.y_dot = 0.0
        self.y_ddot = 0.0
        self.last_y_dot = 0.0
        self.last_y_ddot = 0.0

    def calculate(self, input_value: float, dt: float) -> float:
        """Advance the system by ``dt`` seconds under ``input_value`` and return the output."""
        c0, c1, c2 = self.c
        self.dt = dt
        self.u = input_value
        self.y_ddot = self.u / c2 - self.y * c0 / c2 - self.y_dot * c1 / c2
        self.y_dot += (self.last_y_ddot + self.y_ddot) * dt / 2
        self.y += (self.last_y_dot + self.y_dot) * dt / 2
        self.last_y_dot = self.y_dot
        self.last_y_ddot = self.y_ddot
        return self.y


def gauss_samples(rng: random.Random | None = None) -> Iterator[float]:
    """Endless standard normal samples by the Box-Muller method, two per uniform pair."""
    source = rng if rng is not None else random.Random()
    while True:
        u = source.random()
        v = source.random()
        radius = math.sqrt(-2.0 * math.log(u)) if u > 0 else math.inf
        yield radius * math.sin(_TWO_PI * v)
        yield radius * math.cos(_TWO_PI * v)