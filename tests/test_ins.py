import math

import pytest

from insfusion.ins import (
    INS,
    ImuParam,
    body_to_earth,
    earth_to_body,
    euler_to_quaternion,
    quaternion_to_euler,
    quaternion_update,
)


def _norm(v):
    return math.sqrt(sum(x * x for x in v))


def _dot(a, b):
    return sum(x * y for x, y in zip(a, b))


def test_identity_quaternion_leaves_vectors_unchanged():
    q = [1.0, 0.0, 0.0, 0.0]
    assert body_to_earth([1.5, -2.0, 3.0], q) == pytest.approx([1.5, -2.0, 3.0])
    assert earth_to_body([1.5, -2.0, 3.0], q) == pytest.approx([1.5, -2.0, 3.0])


def test_yaw_quarter_turn_maps_body_x_to_earth_y():
    q = euler_to_quaternion(90.0, 0.0, 0.0)
    assert body_to_earth([1.0, 0.0, 0.0], q) == pytest.approx([0.0, 1.0, 0.0], abs=1e-9)


def test_frame_transforms_are_inverse():
    q = euler_to_quaternion(37.0, -12.0, 0.0)
    vec = [0.3, -1.2, 4.5]
    back = earth_to_body(body_to_earth(vec, q), q)
    assert back == pytest.approx(vec, abs=1e-9)
    assert _norm(body_to_earth(vec, q)) == pytest.approx(_norm(vec))


@pytest.mark.parametrize(
    "angles",
    [(45.0, 0.0, 0.0), (0.0, 30.0, 0.0), (0.0, 0.0, -20.0), (-60.0, 25.0, 0.0)],
)
def test_euler_quaternion_round_trip(angles):
    q = euler_to_quaternion(*angles)
    assert _norm(q) == pytest.approx(1.0)
    assert quaternion_to_euler(q) == pytest.approx(angles, abs=1e-6)


def test_quaternion_update_zero_rate_is_identity():
    q = [0.9, 0.1, -0.3, 0.2]
    assert quaternion_update(q, 0.0, 0.0, 0.0, 0.01) == q


def test_quaternion_update_integrates_yaw_rate():
    q = [1.0, 0.0, 0.0, 0.0]
    for _ in range(100):
        q = quaternion_update(q, 0.0, 0.0, 0.5, 0.01)
    yaw, pitch, roll = quaternion_to_euler(q)
    assert yaw > 0
    assert pitch == pytest.approx(0.0, abs=1e-9)
    assert roll == pytest.approx(0.0, abs=1e-9)


def test_imu_param_default_is_identity():
    param = ImuParam()
    gyro, accel = param.correct([0.1, -0.2, 0.3], [1.0, 2.0, 3.0])
    assert gyro == pytest.approx([0.1, -0.2, 0.3])
    assert accel == pytest.approx([1.0, 2.0, 3.0])
    assert param.flag is False


def test_imu_param_scale_affects_gyro_only():
    param = ImuParam(scale=[2.0, 1.0, 1.0])
    gyro, accel = param.correct([1.0, 1.0, 1.0], [1.0, 1.0, 1.0])
    assert gyro == pytest.approx([2.0, 1.0, 1.0])
    assert accel == pytest.approx([1.0, 1.0, 1.0])


def test_imu_param_rotation_preserves_length():
    param = ImuParam(yaw=30.0, pitch=10.0, roll=-20.0)
    gyro, accel = param.correct([0.4, -0.7, 1.1], [3.0, -4.0, 9.0])
    assert _norm(gyro) == pytest.approx(_norm([0.4, -0.7, 1.1]))
    assert _norm(accel) == pytest.approx(_norm([3.0, -4.0, 9.0]))


def test_imu_param_rebuilds_after_offset_change():
    param = ImuParam()
    param.correct([1.0, 0.0, 0.0], [0.0, 0.0, 0.0])
    param.yaw = 90.0
    gyro, _ = param.correct([1.0, 0.0, 0.0], [0.0, 0.0, 0.0])
    assert gyro == pytest.approx([0.0, -1.0, 0.0], abs=1e-9)


def test_ins_at_rest_stays_level():
    ins = INS()
    for _ in range(300):
        ins.update([0.0, 0.0, 0.0], [0.0, 0.0, 9.81], 0.001)
    assert ins.count == 300
    assert ins.t == pytest.approx(0.3)
    assert abs(ins.roll) < 1.0
    assert abs(ins.pitch) < 1.0
    assert ins.zn == pytest.approx([0.0, 0.0, 1.0], abs=1e-2)
    assert all(abs(a) < 0.1 for a in ins.motion_accel_n)


def test_ins_frame_axes_stay_orthogonal_while_turning():
    ins = INS()
    for _ in range(200):
        ins.update([0.0, 0.0, 1.0], [0.0, 0.0, 9.81], 0.001)
    assert _dot(ins.xn, ins.yn) == pytest.approx(0.0, abs=1e-6)
    assert _dot(ins.xn, ins.zn) == pytest.approx(0.0, abs=1e-6)
    assert _dot(ins.yn, ins.zn) == pytest.approx(0.0, abs=1e-6)


def test_ins_yaw_follows_gyro_integration():
    ins = INS()
    q = [1.0, 0.0, 0.0, 0.0]
    for _ in range(300):
        ins.update([0.0, 0.0, 1.0], [0.0, 0.0, 9.81], 0.001)
        q = quaternion_update(q, 0.0, 0.0, 1.0, 0.001)
    expected_yaw, _, _ = quaternion_to_euler(q)
    assert ins.yaw == pytest.approx(expected_yaw, abs=0.5)
    assert ins.yaw_total_angle == pytest.approx(ins.yaw)


def test_ins_rejects_non_positive_dt():
    ins = INS()
    with pytest.raises(ValueError):
        ins.update([0.0, 0.0, 0.0], [0.0, 0.0, 9.81], 0.0)


def test_temperature_control_saturates():
    ins = INS()
    assert ins.temperature_control(20.0, 0.001) == 2000
    cold = INS()
    assert cold.temperature_control(60.0, 0.001) == 0