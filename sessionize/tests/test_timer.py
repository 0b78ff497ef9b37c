import pytest

from common.timer import StageTimer


def test_stages_recorded_in_order():
    timer = StageTimer()
    with timer.stage("read"):
        pass
    with timer.stage("write"):
        pass
    assert list(timer.durations) == ["read", "write"]
    assert timer.total == pytest.approx(sum(timer.durations.values()))
    assert timer.summary().startswith("read=")
    assert "total=" in timer.summary()


def test_stage_timed_even_when_it_fails():
    timer = StageTimer()
    with pytest.raises(RuntimeError):
        with timer.stage("sessionize"):
            raise RuntimeError("boom")
    assert timer.durations["sessionize"] >= 0


def test_stage_names_are_unique():
    timer = StageTimer()
    with timer.stage("read"):
        pass
    with pytest.raises(KeyError):
        with timer.stage("read"):
            pass
