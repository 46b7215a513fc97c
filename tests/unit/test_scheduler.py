import pytest

from raysplat.core.errors import InvalidConfig
from raysplat.core.scheduler import ScanScheduler, ScanState


def test_ten_hz_at_twenty_hz_ticks() -> None:
    sched = ScanScheduler(10.0)
    fired = []
    for i in range(20):
        now = i * 0.05
        if sched.tick(now, lambda: now) is not None:
            fired.append(i)
    assert fired == [2, 4, 6, 8, 10, 12, 14, 16, 18]
    assert sched.scans_completed == 9


def test_frequency_above_tick_rate_scans_once_per_tick() -> None:
    sched = ScanScheduler(100.0)
    results = [sched.tick(i * 0.05, lambda: "scan") for i in range(10)]
    assert results[0] is None
    assert results[1:] == ["scan"] * 9


def test_due_does_not_mutate() -> None:
    sched = ScanScheduler(10.0)
    assert not sched.due(0.05)
    assert sched.due(0.1)
    assert sched.due(0.1)
    assert sched.last_scan_time == 0.0


def test_state_is_scanning_only_inside_scan() -> None:
    sched = ScanScheduler(10.0)
    seen = []
    sched.tick(0.2, lambda: seen.append(sched.state))
    assert seen == [ScanState.SCANNING]
    assert sched.state is ScanState.IDLE
    assert sched.last_scan_time == pytest.approx(0.2)


def test_failed_scan_restores_idle_without_recording() -> None:
    sched = ScanScheduler(10.0)

    def boom() -> None:
        raise RuntimeError("provider failed")

    with pytest.raises(RuntimeError):
        sched.tick(0.5, boom)
    assert sched.state is ScanState.IDLE
    assert sched.last_scan_time == 0.0
    assert sched.scans_completed == 0


def test_invalid_frequency_and_reset() -> None:
    with pytest.raises(InvalidConfig):
        ScanScheduler(0.0)
    sched = ScanScheduler(5.0, start_time_s=1.0)
    sched.tick(1.5, lambda: 1)
    sched.reset()
    assert sched.last_scan_time == 1.0
    assert sched.scans_completed == 0
