# insfusion

Attitude estimation and control building blocks for inertial measurement
units, in Python on top of NumPy. Every step takes its time step `dt` in
seconds as an argument, so the components can be driven from recorded data
or from a simulation.

## Modules

- `insfusion.kalman_filter.KalmanFilter(xhat_size, u_size, z_size)` — a
  linear Kalman filter. Set the model on the instance (`F`, `B`, `H`, `Q`,
  `R`, `P`, `xhat`), write readings into `measured_vector` and optional
  control into `control_vector`, then call `update()`, which returns the
  filtered state. With `use_auto_adjustment = True`, a zero in
  `measured_vector` means "no new reading": `z`, `H`, `R` and the shape of `K`
  are rebuilt from the valid readings, using `measurement_map` (1-based state
  index per measurement), `measurement_degree` and `mat_r_diagonal`. If no
  reading is valid, the prediction is kept. `state_min_variance` puts a floor
  under the diagonal of `P`. The hooks `user_func0` … `user_func6` and the
  flags `skip_eq1` … `skip_eq5` let a caller replace single steps. The single
  steps are also public: `measure`, `xhat_minus_update`, `pminus_update`,
  `set_k`, `xhat_update`, `p_update`.
- `insfusion.quaternion_ekf` — `QuaternionEKF(process_noise1, process_noise2,
  measure_noise, lambda_, lpf)` estimates the attitude quaternion and the
  gyro bias about the body x and y axes. Its input is gyro (rad/s) and
  accelerometer (m/s²) samples, passed to `update(gx, gy, gz, ax, ay, az, dt)`.
  A chi-square test on the accelerometer residual decides whether a
  correction is applied. After convergence the gain is scaled down as the
  residual grows, and the bias variance is faded by `lambda_`. Results are in
  `q`, `gyro_bias`, `yaw`, `pitch`, `roll` (degrees) and `yaw_total_angle`,
  which keeps counting past ±180°. `inv_sqrt(x)` is the fast
  inverse-square-root approximation the filter uses. The static method
  `QuaternionEKF.gravity_direction(q)` gives the body-frame gravity direction
  that `q` predicts.
- `insfusion.ins` — frame transforms `body_to_earth(vec, q)` and
  `earth_to_body(vec, q)`, and the quaternion helpers
  `quaternion_update(q, gx, gy, gz, dt)`, `quaternion_to_euler(q)` (yaw,
  pitch, roll in degrees) and `euler_to_quaternion(yaw, pitch, roll)`. The
  `ImuParam` dataclass corrects mounting offsets and gyro scale. The `INS`
  class combines these: `update(gyro, accel, dt)` runs the EKF and fills
  `q`, `yaw`, `pitch`, `roll`, `yaw_total_angle`, the earth-frame axes
  `xn`/`yn`/`zn`, and the low-passed motion acceleration with gravity
  removed (`motion_accel_b`, `motion_accel_n`).
  `temperature_control(temperature, dt)` runs a heater PID toward
  `ref_temp` (40 °C by default) and returns a non-negative integer compare
  value.
- `insfusion.pid` — `PID(max_out, integral_limit, deadband, kp, ki, kd,
  coef_a, coef_b, output_lpf_rc, derivative_lpf_rc, ols_order, improve)` with
  `calculate(measure, ref, dt)`. The `Improvement` flags switch on the
  integral limit, derivative on measurement, the trapezoid integral, the
  output and derivative low-pass filters, the changing integration rate and
  error handling. Error handling sets `error_type` to
  `ErrorType.MOTOR_BLOCKED` after more than 500 consecutive steps in which
  the error stays above 95 % of the reference. When `ols_order > 2`, the
  derivative comes from a sliding least-squares fit. A `FuzzyRule`, assigned
  to `pid.fuzzy_rule` and updated with `implement(measure, ref, dt)`, adds
  fuzzy Kp/Ki/Kd terms. Passing `None` for a rule table selects the built-in
  7×7 table.
- `insfusion.observers` — `Feedforward` (feed-forward control for
  G(s) = 1/(c2·s² + c1·s + c0)), `LDOB` (linear disturbance observer with
  dead band and limit) and `TrackingDifferentiator(r, h0)`. Each class has a
  `calculate(..., dt)` method.
- `insfusion.transfer_function` — `SecondOrderTF(c)` simulates
  1/(c2·s² + c1·s + c0) by trapezoidal integration. `gauss_samples(rng)` is
  an endless Box–Muller generator of standard normal samples.
- `insfusion.mathutil` — clamping (`float_constrain`, `int16_constrain`,
  `abs_limit`), dead bands (`float_deadband`, `int16_deadline`), angle
  wrapping (`loop_float_constrain`, `theta_format`, `rad_format`), `sign`,
  `float_rounding`, `fast_sqrt`, a `Ramp` and the sliding-window
  `OrdinaryLeastSquares` fitter (`update`, `derivative`, `smooth`, `fitted`).

## What it does not do

The package does not talk to hardware. It does not read an IMU over a bus,
keep time or drive a heater output. Samples, time steps and temperatures are
supplied by the caller. `INS.temperature_control` only returns the value a
PWM output would be set to.

## Installation

```
pip install .
```

## Example: attitude from IMU samples

```python
from insfusion.quaternion_ekf import QuaternionEKF

ekf = QuaternionEKF(10, 0.001, 10_000_000, 1, 0)
for _ in range(1000):
    # gyro in rad/s, accel in m/s^2, period in s
    ekf.update(0.0, 0.0, 0.0, 0.0, 0.0, 9.81, 0.001)

print(ekf.yaw, ekf.pitch, ekf.roll)
```

## Example: full navigation step

```python
from insfusion.ins import INS

ins = INS()
ins.update(gyro=(0.0, 0.0, 0.0), accel=(0.0, 0.0, 9.81), dt=0.001)
heater_duty = ins.temperature_control(temperature=35.0, dt=0.002)
```

## Example: PID loop

```python
from insfusion.pid import PID, Improvement

pid = PID(
    max_out=2000, integral_limit=300, deadband=0,
    kp=1000, ki=20, kd=0,
    coef_a=0, coef_b=0,
    output_lpf_rc=0, derivative_lpf_rc=0,
    ols_order=0,
    improve=Improvement.INTEGRAL_LIMIT,
)
output = pid.calculate(measure=38.5, ref=40.0, dt=0.002)
```

## Running the tests

```
pip install .[test]
pytest
```