"""IMU attitude estimation (quaternion EKF, Kalman filter), PID and observer control, and numeric helpers."""

__version__ = "0.1.0"

__all__ = [
    "mathutil",
    "transfer_function",
    "kalman_filter",
    "quaternion_ekf",
    "pid",
    "observers",
    "ins",
]