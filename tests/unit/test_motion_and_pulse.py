import math

import numpy as np
import pytest

from raysplat.motion.pose import Pose
from raysplat.motion.trajectory import (
    CircularMotion,
    PolylineMotion,
    SensorState,
    SinusoidalMotion,
    StaticMotion,
)
from raysplat.runtime.pulse import OneShotTimer, PulseIndicator


def test_sensor_state_is_an_immutable_copy() -> None:
    source = np.array([1.0, 2.0, 3.0])
    state = SensorState(position=source, time_s=0.5)
    source[0] = 9.0
    assert state.position[0] == 1.0
    assert source.flags.writeable
    with pytest.raises(ValueError):
        state.position[1] = 0.0


def test_static_motion() -> None:
    motion = StaticMotion((1.0, -2.0, 0.5))
    state = motion.advance(motion.initial_state(), 3.0)
    np.testing.assert_allclose(state.position, [1.0, -2.0, 0.5])
    assert state.time_s == 3.0


def test_circular_motion_orbit_and_bob() -> None:
    motion = CircularMotion()
    np.testing.assert_allclose(motion.position_at(0.0), [4.0, 0.0, 1.5])
    t = math.pi
    np.testing.assert_allclose(motion.position_at(t), [0.0, 4.0, 1.5 + math.sin(1.1 * t)], atol=1e-12)
    with pytest.raises(ValueError):
        CircularMotion(radius=-1.0)


def test_sinusoidal_motion() -> None:
    motion = SinusoidalMotion(amplitude=(1.0, 2.0, 0.0), offset=(0.0, 0.0, 10.0))
    np.testing.assert_allclose(motion.position_at(0.0), [0.0, 0.0, 10.0])
    np.testing.assert_allclose(motion.position_at(math.pi / 2), [1.0, 2.0 * math.sin(math.pi / 8), 10.0])


def test_polyline_motion_interpolates_and_loops() -> None:
    motion = PolylineMotion([(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (10.0, 5.0, 0.0)], speed_mps=5.0)
    assert motion.duration_s == pytest.approx(3.0)
    np.testing.assert_allclose(motion.position_at(1.0), [5.0, 0.0, 0.0])
    np.testing.assert_allclose(motion.position_at(2.5), [10.0, 2.5, 0.0])
    np.testing.assert_allclose(motion.position_at(10.0), [10.0, 5.0, 0.0])

    looped = PolylineMotion([(0.0, 0.0, 0.0), (4.0, 0.0, 0.0)], speed_mps=2.0, loop=True)
    assert looped.duration_s == pytest.approx(4.0)
    np.testing.assert_allclose(looped.position_at(5.0), [2.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        PolylineMotion([(0.0, 0.0, 0.0)], speed_mps=1.0)


def test_pose_matrix_applies_scale_then_rotation() -> None:
    pose = Pose.from_xyz_rpy((1.0, 2.0, 3.0), (0.0, 0.0, 90.0))
    m = pose.matrix((2.0, 1.0, 1.0))
    np.testing.assert_allclose(m @ [1.0, 0.0, 0.0, 1.0], [1.0, 4.0, 3.0, 1.0], atol=1e-12)


def test_one_shot_timer() -> None:
    timer = OneShotTimer()
    fired = []
    timer.schedule(1.0, lambda: fired.append("a"))
    assert not timer.poll(0.5)
    timer.schedule(2.0, lambda: fired.append("b"))
    assert not timer.poll(1.5)
    assert timer.poll(2.0)
    assert not timer.poll(3.0)
    assert fired == ["b"]

    timer.schedule(4.0, lambda: fired.append("c"))
    timer.cancel()
    assert not timer.poll(5.0)
    assert fired == ["b"]


def test_pulse_indicator() -> None:
    pulse = PulseIndicator()
    pulse.trigger(1.0)
    assert pulse.scale == pytest.approx(1.5)
    assert pulse.active
    pulse.update(1.04)
    assert pulse.scale == pytest.approx(1.5)
    pulse.update(1.051)
    assert pulse.scale == pytest.approx(1.0)
    assert not pulse.active
    assert pulse.pulses == 1
