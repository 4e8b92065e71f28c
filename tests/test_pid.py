import pytest

from insfusion.pid import (
    DEFAULT_KD_RULE,
    DEFAULT_KP_RULE,
    ErrorType,
    FuzzyRule,
    Improvement,
    PID,
)


def make_pid(**overrides):
    params = dict(
        max_out=1000.0,
        integral_limit=1000.0,
        deadband=0.0,
        kp=0.0,
        ki=0.0,
        kd=0.0,
        coef_a=0.0,
        coef_b=0.0,
        output_lpf_rc=0.0,
        derivative_lpf_rc=0.0,
        ols_order=0,
        improve=Improvement.NONE,
    )
    params.update(overrides)
    return PID(**params)


def test_proportional_only_output():
    pid = make_pid(kp=2.0)
    out = pid.calculate(1.0, 4.0, 0.01)
    assert out == pytest.approx(2.0 * (4.0 - 1.0))
    assert pid.err == pytest.approx(3.0)


def test_output_is_limited_to_max_out():
    pid = make_pid(kp=100.0, max_out=50.0)
    assert pid.calculate(0.0, 10.0, 0.01) == pytest.approx(50.0)
    assert pid.calculate(0.0, -10.0, 0.01) == pytest.approx(-50.0)
    assert abs(pid.pout) <= 50.0


def test_error_inside_deadband_keeps_previous_output():
    pid = make_pid(kp=1.0, deadband=0.5)
    first = pid.calculate(0.0, 2.0, 0.01)
    second = pid.calculate(0.0, 0.2, 0.01)
    assert second == first
    assert pid.last_err == pytest.approx(0.2)


def test_integral_accumulates():
    pid = make_pid(ki=1.0)
    for _ in range(10):
        pid.calculate(0.0, 1.0, 0.1)
    assert pid.iout == pytest.approx(1.0)


def test_trapezoid_integral_uses_average_error():
    pid = make_pid(ki=1.0, improve=Improvement.TRAPEZOID_INTEGRAL)
    pid.calculate(0.0, 2.0, 0.5)
    assert pid.iterm == pytest.approx(((2.0 + 0.0) / 2) * 0.5)


def test_integral_limit_bounds_iout():
    pid = make_pid(ki=10.0, integral_limit=3.0, improve=Improvement.INTEGRAL_LIMIT)
    for _ in range(50):
        pid.calculate(0.0, 5.0, 0.1)
        assert pid.iout <= 3.0
    assert pid.iout == pytest.approx(3.0)


def test_changing_integration_rate_stops_integral_for_large_error():
    pid = make_pid(ki=1.0, coef_a=1.0, coef_b=1.0,
                   improve=Improvement.CHANGING_INTEGRATION_RATE)
    pid.calculate(0.0, 5.0, 0.1)
    iout_after_first = pid.iout
    pid.calculate(0.0, 5.0, 0.1)
    assert pid.iterm == 0.0
    assert pid.iout == pytest.approx(iout_after_first)


def test_derivative_zero_for_constant_error():
    pid = make_pid(kd=1.0)
    pid.calculate(0.0, 3.0, 0.1)
    pid.calculate(0.0, 3.0, 0.1)
    assert pid.dout == pytest.approx(0.0)


def test_derivative_on_measurement_opposes_measurement_change():
    pid = make_pid(kd=1.0, improve=Improvement.DERIVATIVE_ON_MEASUREMENT)
    pid.calculate(0.0, 0.0 + 10.0, 0.1)
    pid.calculate(1.0, 10.0, 0.1)
    assert pid.dout < 0


def test_ols_derivative_of_linear_error():
    pid = make_pid(kd=1.0, ols_order=3)
    for step in range(1, 8):
        pid.calculate(0.0, float(step), 1.0)
    assert pid.dout == pytest.approx(1.0)


def test_output_filter_lies_between_previous_and_raw_output():
    pid = make_pid(kp=1.0, output_lpf_rc=1.0, improve=Improvement.OUTPUT_FILTER)
    out = pid.calculate(0.0, 10.0, 0.1)
    assert 0.0 < out < 10.0


def test_error_handler_detects_blocked_motor():
    pid = make_pid(kp=1.0, improve=Improvement.ERROR_HANDLE)
    for _ in range(510):
        pid.calculate(0.0, 10.0, 0.01)
    assert pid.error_type is ErrorType.MOTOR_BLOCKED


def test_error_handler_resets_when_tracking():
    pid = make_pid(kp=1.0, improve=Improvement.ERROR_HANDLE)
    for _ in range(510):
        pid.calculate(9.9, 10.0, 0.01)
    assert pid.error_type is ErrorType.NONE
    assert pid.error_count == 0


def test_user_hook_is_called_with_pid():
    seen = []
    pid = make_pid(kp=1.0)
    pid.user_func1 = lambda p: seen.append(p.err)
    pid.calculate(1.0, 3.0, 0.01)
    assert seen == [pytest.approx(2.0)]


def test_non_positive_dt_rejected():
    pid = make_pid(kp=1.0)
    with pytest.raises(ValueError):
        pid.calculate(0.0, 1.0, 0.0)


def test_fuzzy_rule_default_tables_and_zero_error():
    rule = FuzzyRule(None, None, None, 1.0, 1.0, 1.0, 1.0, 1.0)
    assert rule.kp_rule == DEFAULT_KP_RULE
    rule.implement(1.0, 1.0, 0.01)
    assert rule.kp_fuzzy == pytest.approx(DEFAULT_KP_RULE[3][3])
    assert rule.kd_fuzzy == pytest.approx(DEFAULT_KD_RULE[3][3])


def test_fuzzy_rule_weights_sum_to_one():
    constant = [[2.5] * 7 for _ in range(7)]
    rule = FuzzyRule(constant, constant, constant, 1.0, 1.0, 1.0, 1.0, 1.0)
    for measure in (-10.0, -1.3, 0.0, 0.7, 2.2, 10.0):
        rule.implement(measure, 0.0, 0.5)
        assert rule.kp_fuzzy == pytest.approx(2.5)
        assert rule.ki_fuzzy == pytest.approx(2.5)


def test_fuzzy_rule_tiny_steps_default_to_one():
    rule = FuzzyRule(None, None, None, 1.0, 1.0, 1.0, 0.0, 0.0)
    assert rule.e_step == 1.0
    assert rule.ec_step == 1.0


def test_fuzzy_rule_rejects_bad_table():
    with pytest.raises(ValueError):
        FuzzyRule([[0.0] * 6] * 7, None, None, 1.0, 1.0, 1.0, 1.0, 1.0)


def test_pid_uses_fuzzy_gains():
    constant = [[1.0] * 7 for _ in range(7)]
    zero = [[0.0] * 7 for _ in range(7)]
    rule = FuzzyRule(constant, zero, zero, 1.0, 1.0, 1.0, 1.0, 1.0)
    rule.implement(0.0, 2.0, 0.1)
    pid = make_pid(kp=1.0)
    pid.fuzzy_rule = rule
    out = pid.calculate(0.0, 2.0, 0.1)
    assert out == pytest.approx((1.0 + rule.kp_fuzzy) * 2.0)


def test_improvement_flags_combine():
    flags = Improvement.INTEGRAL_LIMIT | Improvement.OUTPUT_FILTER
    pid = make_pid(kp=1.0, output_lpf_rc=1.0, improve=int(flags))
    assert pid.improve & Improvement.OUTPUT_FILTER
    assert not pid.improve & Improvement.DERIVATIVE_FILTER
    out = pid.calculate(0.0, 10.0, 0.1)
    assert out == pytest.approx(10.0 * 0.1 / (1.0 + 0.1))