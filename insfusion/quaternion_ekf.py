"""Attitude estimation with an extended Kalman filter on the quaternion.

The state is the attitude quaternion plus the gyroscope bias about the body x
and y axes.  The normalised accelerometer reading is the measurement.  A
chi-square test on the residual decides when the accelerometer may correct
the attitude.  Once the filter has converged, the gain is scaled down as the
residual grows.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

from .kalman_filter import KalmanFilter

_RAD_TO_DEG = 57.295779513
_HALF_PI = 1.5707963
_BIAS_VARIANCE_CAP = 10000.0
_DIVERGENCE_LIMIT = 50

_INITIAL_F = np.eye(6)
_INITIAL_P = np.array(
    [
        [100000, 0.1, 0.1, 0.1, 0.1, 0.1],
        [0.1, 100000, 0.1, 0.1, 0.1, 0.1],
        [0.1, 0.1, 100000, 0.1, 0.1, 0.1],
        [0.1, 0.1, 0.1, 100000, 0.1, 0.1],
        [0.1, 0.1, 0.1, 0.1, 100, 0.1],
        [0.1, 0.1, 0.1, 0.1, 0.1, 100],
    ],
    dtype=float,
)


def inv_sqrt(x: float) -> float:
    """Approximate 1/sqrt(x) from the single-precision bit pattern and one Newton step."""
    bits = int(np.array(x, dtype=np.float32).view(np.uint32))
    bits = (0x5F375A86 - (bits >> 1)) & 0xFFFFFFFF
    y = float(np.array(bits, dtype=np.uint32).view(np.float32))
    half_x = 0.5 * x
    return y * (1.5 - half_x * y * y)


def _asin(value: float) -> float:
    return math.asin(value) if -1.0 <= value <= 1.0 else math.nan


def _acos(value: float) -> float:
    return math.acos(value) if -1.0 <= value <= 1.0 else math.nan


class QuaternionEKF:
    """Quaternion EKF with gyro bias estimation, chi-square gating and P fading."""

    def __init__(
        self,
        process_noise1: float,
        process_noise2: float,
        measure_noise: float,
        lambda_: float,
        lpf: float,
    ) -> None:
        self.initialized = True
        self.q1 = process_noise1
        self.q2 = process_noise2
        self.r = measure_noise
        self.chi_square_test_threshold = 1e-8
        self.converge_flag = False
        self.stable_flag = False
        self.error_count = 0
        self.update_count = 0
        self.lambda_ = min(lambda_, 1.0)
        self.acc_lpf_coef = lpf

        self.q = [1.0, 0.0, 0.0, 0.0]
        self.gyro_bias = [0.0, 0.0, 0.0]
        self.gyro = [0.0, 0.0, 0.0]
        self.accel = [0.0, 0.0, 0.0]
        self.orientation_cosine = [0.0, 0.0, 0.0]
        self.gyro_norm = 0.0
        self.accl_norm = 0.0
        self.adaptive_gain_scale = 0.0
        self.chi_square = 0.0

        self.roll = 0.0
        self.pitch = 0.0
        self.yaw = 0.0
        self.yaw_total_angle = 0.0
        self.yaw_round_count = 0
        self.yaw_angle_last = 0.0
        self.dt = 0.0

        self.observed_P = _INITIAL_P.copy()
        self.observed_K = np.zeros((6, 3))
        self.observed_H = np.zeros((3, 6))

        kf = KalmanFilter(6, 0, 3)
        kf.xhat[:4] = [1.0, 0.0, 0.0, 0.0]
        kf.user_func0 = self._observe
        kf.user_func1 = self._linearize_f_and_fade_p
        kf.user_func2 = self._set_h
        kf.user_func3 = self._xhat_update
        kf.skip_eq3 = True
        kf.skip_eq4 = True
        kf.F = _INITIAL_F.copy()
        kf.P = _INITIAL_P.copy()
        self.kf = kf

    def update(
        self,
        gx: float,
        gy: float,
        gz: float,
        ax: float,
        ay: float,
        az: float,
        dt: float,
    ) -> None:
        """Fuse one gyro (rad/s) and accelerometer (m/s^2) sample taken ``dt`` seconds apart."""
        if dt + self.acc_lpf_coef == 0:
            raise ValueError("dt plus the low-pass coefficient must not be zero")
        kf = self.kf
        self.dt = dt

        self.gyro = [gx - self.gyro_bias[0], gy - self.gyro_bias[1], gz - self.gyro_bias[2]]
        hx, hy, hz = (0.5 * w * dt for w in self.gyro)

        f = _INITIAL_F.copy()
        f[0, 1:4] = [-hx, -hy, -hz]
        f[1, 0], f[1, 2], f[1, 3] = hx, hz, -hy
        f[2, 0], f[2, 1], f[2, 3] = hy, -hz, hx
        f[3, 0], f[3, 1], f[3, 2] = hz, hy, -hx
        kf.F = f

        raw = (ax, ay, az)
        if self.update_count == 0:
            self.accel = list(raw)
        denom = dt + self.acc_lpf_coef
        self.accel = [
            old * self.acc_lpf_coef / denom + new * dt / denom
            for old, new in zip(self.accel, raw)
        ]

        accel_inv_norm = inv_sqrt(sum(a * a for a in self.accel))
        kf.measured_vector = np.array([a * accel_inv_norm for a in self.accel])

        self.gyro_norm = 1.0 / inv_sqrt(sum(w * w for w in self.gyro))
        self.accl_norm = 1.0 / accel_inv_norm
        self.stable_flag = (
            self.gyro_norm < 0.3 and 9.8 - 0.5 < self.accl_norm < 9.8 + 0.5
        )

        for i in range(4):
            kf.Q[i, i] = self.q1 * dt
        for i in (4, 5):
            kf.Q[i, i] = self.q2 * dt
        for i in range(3):
            kf.R[i, i] = self.r

        filtered = kf.update()

        self.q = [float(v) for v in filtered[:4]]
        self.gyro_bias = [float(filtered[4]), float(filtered[5]), 0.0]

        q0, q1, q2, q3 = self.q
        self.yaw = math.atan2(
            2.0 * (q0 * q3 + q1 * q2), 2.0 * (q0 * q0 + q1 * q1) - 1.0
        ) * _RAD_TO_DEG
        self.pitch = math.atan2(
            2.0 * (q0 * q1 + q2 * q3), 2.0 * (q0 * q0 + q3 * q3) - 1.0
        ) * _RAD_TO_DEG
        self.roll = _asin(-2.0 * (q1 * q3 - q0 * q2)) * _RAD_TO_DEG

        if self.yaw - self.yaw_angle_last > 180.0:
            self.yaw_round_count -= 1
        elif self.yaw - self.yaw_angle_last < -180.0:
            self.yaw_round_count += 1
        self.yaw_total_angle = 360.0 * self.yaw_round_count + self.yaw
        self.yaw_angle_last = self.yaw
        self.update_count += 1

    def _observe(self, kf: KalmanFilter) -> None:
        self.observed_P = np.array(kf.P, dtype=float)
        self.observed_K = np.array(kf.K, dtype=float)
        self.observed_H = np.array(kf.H, dtype=float)

    def _linearize_f_and_fade_p(self, kf: KalmanFilter) -> None:
        q0, q1, q2, q3 = (float(v) for v in kf.xhatminus[:4])
        inv_norm = inv_sqrt(q0 * q0 + q1 * q1 + q2 * q2 + q3 * q3)
        kf.xhatminus[:4] = kf.xhatminus[:4] * inv_norm

        half_dt = self.dt / 2
        kf.F[0, 4], kf.F[0, 5] = q1 * half_dt, q2 * half_dt
        kf.F[1, 4], kf.F[1, 5] = -q0 * half_dt, q3 * half_dt
        kf.F[2, 4], kf.F[2, 5] = -q3 * half_dt, -q0 * half_dt
        kf.F[3, 4], kf.F[3, 5] = q2 * half_dt, -q1 * half_dt

        for i in (4, 5):
            kf.P[i, i] /= self.lambda_
            if kf.P[i, i] > _BIAS_VARIANCE_CAP:
                kf.P[i, i] = _BIAS_VARIANCE_CAP

    def _set_h(self, kf: KalmanFilter) -> None:
        d0, d1, d2, d3 = (2.0 * float(v) for v in kf.xhatminus[:4])
        h = np.zeros((kf.z_size, kf.xhat_size))
        h[0, :4] = [-d2, d3, -d0, d1]
        h[1, :4] = [d1, d0, d3, d2]
        h[2, :4] = [d0, -d1, -d2, d3]
        kf.H = h

    def _xhat_update(self, kf: KalmanFilter) -> None:
        kf.HT = kf.H.T.copy()
        kf.S = kf.H @ kf.Pminus @ kf.HT + kf.R
        s_inv = np.linalg.inv(kf.S)

        q0, q1, q2, q3 = (float(v) for v in kf.xhatminus[:4])
        predicted = np.array(
            [
                2 * (q1 * q3 - q0 * q2),
                2 * (q0 * q1 + q2 * q3),
                q0 * q0 - q1 * q1 - q2 * q2 + q3 * q3,
            ]
        )
        self.orientation_cosine = [_acos(abs(float(v))) for v in predicted]

        residual = kf.z - predicted
        self.chi_square = float(residual @ (s_inv @ residual))
        threshold = self.chi_square_test_threshold

        if self.chi_square < 0.5 * threshold:
            self.converge_flag = True

        if self.chi_square > threshold and self.converge_flag:
            if self.stable_flag:
                self.error_count += 1
            else:
                self.error_count = 0

            if self.error_count > _DIVERGENCE_LIMIT:
                self.converge_flag = False
                kf.skip_eq5 = False
            else:
                # Residual failed the test: keep the prediction only.
                kf.xhat = np.array(kf.xhatminus, dtype=float)
                kf.P = np.array(kf.Pminus, dtype=float)
                kf.skip_eq5 = True
                return
        else:
            if self.chi_square > 0.1 * threshold and self.converge_flag:
                self.adaptive_gain_scale = (threshold - self.chi_square) / (0.9 * threshold)
            else:
                self.adaptive_gain_scale = 1.0
            self.error_count = 0
            kf.skip_eq5 = False

        gain = kf.Pminus @ kf.HT @ s_inv
        gain = gain * self.adaptive_gain_scale
        for i in (4, 5):
            gain[i, :] *= self.orientation_cosine[i - 4] / _HALF_PI
        kf.K = gain

        correction = gain @ residual
        if self.converge_flag:
            limit = 1e-2 * self.dt
            for i in (4, 5):
                correction[i] = min(max(correction[i], -limit), limit)
        correction[3] = 0.0
        kf.xhat = kf.xhatminus + correction

    @staticmethod
    def gravity_direction(q: Sequence[float]) -> np.ndarray:
        """The unit gravity direction in the body frame predicted by quaternion ``q``."""
        q0, q1, q2, q3 = q
        return np.array(
            [
                2 * (q1 * q3 - q0 * q2),
                2 * (q0 * q1 + q2 * q3),
                q0 * q0 - q1 * q1 - q2 * q2 + q3 * q3,
            ]
        )