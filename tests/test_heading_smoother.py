import math

import pytest

from navmap.core.geometry_utils import shortest_angle_difference
from navmap.sensors.heading_smoother import HeadingConfig, HeadingSmoother


def test_first_sample_initializes_directly():
    smoother = HeadingSmoother()
    result = smoother.ingest(123.0, 5.0)

    assert result.accepted
    assert result.heading == 123.0
    assert smoother.has_initial_sample


def test_wraparound_moves_forward_through_north():
    """358 then 2 turns the short way across 0/360"""
    smoother = HeadingSmoother()
    smoother.ingest(358.0, 5.0)
    result = smoother.ingest(2.0, 5.0)

    # 358 + 0.15 * 4 = 358.6
    assert result.heading == pytest.approx(358.6)
    assert shortest_angle_difference(358.0, result.heading) > 0


def test_repeated_samples_cross_north_forward():
    smoother = HeadingSmoother()
    smoother.ingest(358.0, 5.0)
    headings = [smoother.ingest(2.0, 5.0).heading for _ in range(40)]

    for previous, current in zip([358.0] + headings, headings):
        step = shortest_angle_difference(previous, current)
        assert 0.0 <= step < 4.0
    assert headings[-1] == pytest.approx(2.0, abs=0.01)
    assert all(0.0 <= h < 360.0 for h in headings)


def test_smoothing_factor_is_applied():
    smoother = HeadingSmoother()
    smoother.ingest(90.0, 5.0)
    assert smoother.ingest(180.0, 5.0).heading == pytest.approx(90.0 + 0.15 * 90.0)


@pytest.mark.parametrize("accuracy", [30.0, 25.5, -1.0, math.nan])
def test_inaccurate_sample_leaves_state_unchanged(accuracy):
    smoother = HeadingSmoother()
    smoother.ingest(45.0, 5.0)

    result = smoother.ingest(200.0, accuracy)

    assert not result.accepted
    assert result.heading == 45.0
    assert smoother.heading == 45.0


def test_rejected_sample_before_first_does_not_initialize():
    smoother = HeadingSmoother()
    smoother.ingest(45.0, 30.0)
    assert not smoother.has_initial_sample
    assert smoother.ingest(10.0, 3.0).heading == 10.0


@pytest.mark.parametrize("accuracy, warning", [(5.0, False), (15.0, False), (15.1, True), (25.0, True)])
def test_accuracy_warning(accuracy, warning):
    smoother = HeadingSmoother()
    result = smoother.ingest(10.0, accuracy)
    assert result.accepted
    assert result.accuracy_warning is warning
    assert smoother.accuracy_warning is warning


def test_raw_heading_is_normalized():
    smoother = HeadingSmoother()
    assert smoother.ingest(-90.0, 5.0).heading == 270.0


def test_reset_forgets_state():
    smoother = HeadingSmoother()
    smoother.ingest(100.0, 20.0)
    smoother.reset()

    assert not smoother.has_initial_sample
    assert not smoother.accuracy_warning
    assert smoother.ingest(300.0, 5.0).heading == 300.0


def test_custom_config():
    smoother = HeadingSmoother(HeadingConfig(smoothing_factor=0.5, max_accuracy_deg=40.0))
    smoother.ingest(0.0, 35.0)
    assert smoother.ingest(90.0, 35.0).heading == pytest.approx(45.0)


@pytest.mark.parametrize("factor", [0.0, 1.5, -0.1])
def test_invalid_config_raises(factor):
    with pytest.raises(ValueError):
        HeadingConfig(smoothing_factor=factor)
