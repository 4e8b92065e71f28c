"""A linear Kalman filter whose measurement model follows which measurements are valid.

When ``use_auto_adjustment`` is set, every zero entry of ``measured_vector`` is
treated as "no new reading".  Before each update the measurement vector ``z``,
the measurement matrix ``H`` and the noise matrix ``R`` are rebuilt from the
valid readings only.  ``measurement_map`` gives the 1-based state index each
measurement observes, ``measurement_degree`` its coefficient in ``H``, and
``mat_r_diagonal`` its variance.  Without auto adjustment, ``z`` is copied from
``measured_vector`` and ``H`` and ``R`` are used exactly as the caller set them.

Seven optional hooks, ``user_func0`` to ``user_func6``, are each called with the
filter at fixed points of :meth:`KalmanFilter.update`.  The flags ``skip_eq1``
to ``skip_eq5`` switch off the matching standard step, so that a hook can take
its place.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

import numpy as np

Hook = Optional[Callable[["KalmanFilter"], None]]


class KalmanFilter:
    """Kalman filter state, model matrices and the five update equations."""

    def __init__(self, xhat_size: int, u_size: int, z_size: int) -> None:
        if xhat_size < 1:
            raise ValueError("xhat_size must be at least 1")
        if u_size < 0 or z_size < 0:
            raise ValueError("u_size and z_size must not be negative")
        n, m, k = xhat_size, u_size, z_size
        self.xhat_size = n
        self.u_size = m
        self.z_size = k

        self.use_auto_adjustment = False
        self.measurement_valid_num = 0

        self.measurement_map = np.zeros(k, dtype=int)
        self.measurement_degree = np.zeros(k)
        self.mat_r_diagonal = np.zeros(k)
        self.state_min_variance = np.zeros(n)

        self.filtered_value = np.zeros(n)
        self.measured_vector = np.zeros(k)
        self.control_vector = np.zeros(m)

        self.xhat = np.zeros(n)
        self.xhatminus = np.zeros(n)
        self.u = np.zeros(m)
        self.z = np.zeros(k)
        self.P = np.zeros((n, n))
        self.Pminus = np.zeros((n, n))
        self.F = np.zeros((n, n))
        self.FT = np.zeros((n, n))
        self.B = np.zeros((n, m))
        self.H = np.zeros((k, n))
        self.HT = np.zeros((n, k))
        self.Q = np.zeros((n, n))
        self.R = np.zeros((k, k))
        self.K = np.zeros((n, k))
        self.S = np.zeros((k, k))

        self.skip_eq1 = False
        self.skip_eq2 = False
        self.skip_eq3 = False
        self.skip_eq4 = False
        self.skip_eq5 = False

        self.user_func0: Hook = None
        self.user_func1: Hook = None
        self.user_func2: Hook = None
        self.user_func3: Hook = None
        self.user_func4: Hook = None
        self.user_func5: Hook = None
        self.user_func6: Hook = None

    def _call(self, hook: Hook) -> None:
        if hook is not None:
            hook(self)

    def _adjust_h_k_r(self) -> None:
        """Rebuild z, H, R and the shape of K from the valid measurements."""
        measured = np.array(self.measured_vector, dtype=float)
        self.measured_vector = np.zeros(self.z_size)

        valid = [i for i, value in enumerate(measured) if value != 0]
        self.measurement_valid_num = len(valid)

        h = np.zeros((len(valid), self.xhat_size))
        for row, i in enumerate(valid):
            column = int(self.measurement_map[i]) - 1
            if not 0 <= column < self.xhat_size:
                raise ValueError(
                    f"measurement {i} maps to state {column + 1}, "
                    f"outside 1..{self.xhat_size}"
                )
            h[row, column] = self.measurement_degree[i]

        self.z = measured[valid]
        self.H = h
        self.HT = h.T.copy()
        self.R = np.diag(np.asarray(self.mat_r_diagonal, dtype=float)[valid])
        self.K = np.zeros((self.xhat_size, len(valid)))

    def measure(self) -> None:
        """Take the pending measurement and control vectors into z and u."""
        if self.use_auto_adjustment:
            self._adjust_h_k_r()
        else:
            self.z = np.array(self.measured_vector, dtype=float)
            self.measured_vector = np.zeros(self.z_size)
        self.u = np.array(self.control_vector, dtype=float)

    def xhat_minus_update(self) -> None:
        """Prior state: xhat' = F xhat (+ B u)."""
        if self.skip_eq1:
            return
        if self.u_size > 0:
            self.xhatminus = self.F @ self.xhat + self.B @ self.u
        else:
            self.xhatminus = self.F @ self.xhat

    def pminus_update(self) -> None:
        """Prior covariance: P' = F P F^T + Q."""
        if self.skip_eq2:
            return
        self.FT = self.F.T.copy()
        self.Pminus = self.F @ self.P @ self.FT + self.Q

    def set_k(self) -> None:
        """Gain: K = P' H^T (H P' H^T + R)^-1; raises LinAlgError if S is singular."""
        if self.skip_eq3:
            return
        self.HT = self.H.T.copy()
        self.S = self.H @ self.Pminus @ self.HT + self.R
        self.K = self.Pminus @ self.HT @ np.linalg.inv(self.S)

    def xhat_update(self) -> None:
        """Posterior state: xhat = xhat' + K (z - H xhat')."""
        if self.skip_eq4:
            return
        self.xhat = self.xhatminus + self.K @ (self.z - self.H @ self.xhatminus)

    def p_update(self) -> None:
        """Posterior covariance: P = P' - K H P'."""
        if self.skip_eq5:
            return
        self.P = self.Pminus - self.K @ self.H @ self.Pminus

    def update(self) -> np.ndarray:
        """Run one full predict/correct cycle and return the filtered state."""
        self.measure()
        self._call(self.user_func0)

        self.xhat_minus_update()
        self._call(self.user_func1)

        self.pminus_update()
        self._call(self.user_func2)

        if self.measurement_valid_num != 0 or not self.use_auto_adjustment:
            self.set_k()
            self._call(self.user_func3)

            self.xhat_update()
            self._call(self.user_func4)

            self.p_update()
        else:
            # No valid measurement: keep the prediction.
            self.xhat = np.array(self.xhatminus, dtype=float)
            self.P = np.array(self.Pminus, dtype=float)

        self._call(self.user_func5)

        # Keep the covariance from collapsing below the configured floor.
        for i, floor in enumerate(self.state_min_variance):
            if self.P[i, i] < floor:
                self.P[i, i] = floor

        self.filtered_value = np.array(self.xhat, dtype=float)
        self._call(self.user_func6)
        return self.filtered_value