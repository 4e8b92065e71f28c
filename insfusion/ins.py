"""Inertial navigation: attitude from the quaternion EKF, frame transforms and IMU heating."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from .mathutil import PI, float_constrain, float_rounding
from .pid import PID
from .quaternion_ekf import QuaternionEKF

_RAD_TO_DEG = 57.295779513
_UINT32_MAX = 4294967295
_GRAVITY = (0.0, 0.0, 9.81)

Vector = list[float]


def body_to_earth(vec: Sequence[float], q: Sequence[float]) -> Vector:
    """Rotate a body-frame vector into the earth frame by quaternion ``q``."""
    x, y, z = vec
    q0, q1, q2, q3 = q
    return [
        2.0 * ((0.5 - q2 * q2 - q3 * q3) * x + (q1 * q2 - q0 * q3) * y + (q1 * q3 + q0 * q2) * z),
        2.0 * ((q1 * q2 + q0 * q3) * x + (0.5 - q1 * q1 - q3 * q3) * y + (q2 * q3 - q0 * q1) * z),
        2.0 * ((q1 * q3 - q0 * q2) * x + (q2 * q3 + q0 * q1) * y + (0.5 - q1 * q1 - q2 * q2) * z),
    ]


def earth_to_body(vec: Sequence[float], q: Sequence[float]) -> Vector:
    """Rotate an earth-frame vector into the body frame by quaternion ``q``."""
    x, y, z = vec
    q0, q1, q2, q3 = q
    return [
        2.0 * ((0.5 - q2 * q2 - q3 * q3) * x + (q1 * q2 + q0 * q3) * y + (q1 * q3 - q0 * q2) * z),
        2.0 * ((q1 * q2 - q0 * q3) * x + (0.5 - q1 * q1 - q3 * q3) * y + (q2 * q3 + q0 * q1) * z),
        2.0 * ((q1 * q3 + q0 * q2) * x + (q2 * q3 - q0 * q1) * y + (0.5 - q1 * q1 - q2 * q2) * z),
    ]


def quaternion_update(
    q: Sequence[float], gx: float, gy: float, gz: float, dt: float
) -> Vector:
    """Integrate body rates (rad/s) over ``dt`` seconds to first order; returns a new quaternion."""
    hx, hy, hz = 0.5 * dt * gx, 0.5 * dt * gy, 0.5 * dt * gz
    q0, q1, q2, q3 = q
    return [
        q0 + (-q1 * hx - q2 * hy - q3 * hz),
        q1 + (q0 * hx + q2 * hz - q3 * hy),
        q2 + (q0 * hy - q1 * hz + q3 * hx),
        q3 + (q0 * hz + q1 * hy - q2 * hx),
    ]


def quaternion_to_euler(q: Sequence[float]) -> tuple[float, float, float]:
    """Yaw, pitch and roll in degrees from a quaternion."""
    q0, q1, q2, q3 = q
    yaw = math.atan2(2.0 * (q0 * q3 + q1 * q2), 2.0 * (q0 * q0 + q1 * q1) - 1.0)
    pitch = math.atan2(2.0 * (q0 * q1 + q2 * q3), 2.0 * (q0 * q0 + q3 * q3) - 1.0)
    s = 2.0 * (q0 * q2 - q1 * q3)
    roll = math.asin(s) if -1.0 <= s <= 1.0 else math.nan
    return yaw * _RAD_TO_DEG, pitch * _RAD_TO_DEG, roll * _RAD_TO_DEG


def euler_to_quaternion(yaw: float, pitch: float, roll: float) -> Vector:
    """Quaternion from yaw, pitch and roll in degrees."""
    half_yaw = yaw / _RAD_TO_DEG / 2
    half_pitch = pitch / _RAD_TO_DEG / 2
    half_roll = roll / _RAD_TO_DEG / 2
    cp, sp = math.cos(half_pitch), math.sin(half_pitch)
    cy, sy = math.cos(half_yaw), math.sin(half_yaw)
    cr, sr = math.cos(half_roll), math.sin(half_roll)
    return [
        cp * cr * cy + sp * sr * sy,
        sp * cr * cy - cp * sr * sy,
        sp * cr * sy + cp * sr * cy,
        cp * cr * sy - sp * sr * cy,
    ]


def _identity() -> tuple[tuple[float, ...], ...]:
    return ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))


@dataclass
class ImuParam:
    """Mounting offsets (degrees) and gyro scale factors used to correct raw IMU data."""

    scale: list[float] = field(default_factory=lambda: [1.0, 1.0, 1.0])
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    flag: bool = True
    _matrix: tuple[tuple[float, ...], ...] = field(
        default_factory=_identity, init=False, repr=False
    )
    _last: tuple[float, float, float] = field(
        default=(0.0, 0.0, 0.0), init=False, repr=False
    )

    def _rebuild(self) -> None:
        cy, sy = math.cos(self.yaw / _RAD_TO_DEG), math.sin(self.yaw / _RAD_TO_DEG)
        cp, sp = math.cos(self.pitch / _RAD_TO_DEG), math.sin(self.pitch / _RAD_TO_DEG)
        cr, sr = math.cos(self.roll / _RAD_TO_DEG), math.sin(self.roll / _RAD_TO_DEG)
        self._matrix = (
            (cy * cr + sy * sp * sr, cp * sy, cy * sr - cr * sy * sp),
            (cy * sp * sr - cr * sy, cy * cp, -sy * sr - cy * cr * sp),
            (-cp * sr, sp, cp * cr),
        )

    def correct(
        self, gyro: Sequence[float], accel: Sequence[float]
    ) -> tuple[Vector, Vector]:
        """Scale the gyro, rotate both vectors by the mounting offsets and return them."""
        last_yaw, last_pitch, last_roll = self._last
        if (
            abs(self.yaw - last_yaw) > 0.001
            or abs(self.pitch - last_pitch) > 0.001
            or abs(self.roll - last_roll) > 0.001
            or self.flag
        ):
            self._rebuild()
            self.flag = False

        scaled = [g * s for g, s in zip(gyro, self.scale)]
        gyro_out = [sum(c * v for c, v in zip(row, scaled)) for row in self._matrix]
        accel_out = [sum(c * v for c, v in zip(row, accel)) for row in self._matrix]
        self._last = (self.yaw, self.pitch, self.roll)
        return gyro_out, accel_out


class INS:
    """Attitude and motion-acceleration estimator fed with gyro and accelerometer samples."""

    def __init__(self) -> None:
        self.imu_param = ImuParam()
        self.ekf = QuaternionEKF(10, 0.001, 10000000, 1, 0)
        self.temp_pid = PID(2000, 300, 0, 1000, 20, 0, 0, 0, 0, 0, 0, 0)
        self.ref_temp = 40.0
        self.accel_lpf = 0.0085

        self.q = [1.0, 0.0, 0.0, 0.0]
        self.gyro = [0.0, 0.0, 0.0]
        self.accel = [0.0, 0.0, 0.0]
        self.motion_accel_b = [0.0, 0.0, 0.0]
        self.motion_accel_n = [0.0, 0.0, 0.0]
        self.xn = [1.0, 0.0, 0.0]
        self.yn = [0.0, 1.0, 0.0]
        self.zn = [0.0, 0.0, 1.0]
        self.atanxz = 0.0
        self.atanyz = 0.0
        self.roll = 0.0
        self.pitch = 0.0
        self.yaw = 0.0
        self.yaw_total_angle = 0.0
        self.dt = 0.0
        self.t = 0.0
        self.count = 0

    def update(self, gyro: Sequence[float], accel: Sequence[float], dt: float) -> None:
        """Fuse one gyro (rad/s) and accelerometer (m/s^2) sample taken ``dt`` seconds apart."""
        if dt <= 0:
            raise ValueError("dt must be positive")
        self.dt = dt
        self.t += dt

        self.gyro, self.accel = self.imu_param.correct(gyro, accel)
        ax, ay, az = self.accel
        self.atanxz = -math.atan2(ax, az) * 180 / PI
        self.atanyz = math.atan2(ay, az) * 180 / PI

        self.ekf.update(*self.gyro, *self.accel, dt)
        self.q = list(self.ekf.q)

        self.xn = body_to_earth((1.0, 0.0, 0.0), self.q)
        self.yn = body_to_earth((0.0, 1.0, 0.0), self.q)
        self.zn = body_to_earth((0.0, 0.0, 1.0), self.q)

        gravity_b = earth_to_body(_GRAVITY, self.q)
        lpf = self.accel_lpf
        self.motion_accel_b = [
            (a - g) * dt / (lpf + dt) + old * lpf / (lpf + dt)
            for a, g, old in zip(self.accel, gravity_b, self.motion_accel_b)
        ]
        self.motion_accel_n = body_to_earth(self.motion_accel_b, self.q)

        self.yaw = self.ekf.yaw
        self.pitch = self.ekf.pitch
        self.roll = self.ekf.roll
        self.yaw_total_angle = self.ekf.yaw_total_angle
        self.count += 1

    def temperature_control(self, temperature: float, dt: float) -> int:
        """Run the heater PID toward the reference temperature and return the PWM compare value."""
        output = self.temp_pid.calculate(temperature, self.ref_temp, dt)
        return int(float_constrain(float_rounding(output), 0, _UINT32_MAX))