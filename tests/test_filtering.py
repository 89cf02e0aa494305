from __future__ import annotations

import pytest

from bowing_tracker.analysis.filtering import AxisFilterBank, ScalarKalmanFilter


def test_first_measurement_seeds_the_estimate() -> None:
    kf = ScalarKalmanFilter()
    assert kf.estimate is None
    assert kf.filter(10.0) == 10.0
    assert kf.uncertainty == 1.0


def test_update_step_matches_random_walk_equations() -> None:
    kf = ScalarKalmanFilter(process_noise=0.1, measurement_noise=0.5)
    kf.filter(10.0)
    # p = 1.1, k = 1.1 / 1.6, x = 10 + k * 10
    assert kf.filter(20.0) == pytest.approx(16.875)
    assert kf.uncertainty == pytest.approx(0.34375)


def test_explicit_initial_estimate_is_used() -> None:
    kf = ScalarKalmanFilter(initial_estimate=0.0)
    assert kf.filter(10.0) == pytest.approx(6.875)


def test_constant_input_converges_and_stays_between_estimate_and_measurement() -> None:
    kf = ScalarKalmanFilter(initial_estimate=0.0)
    previous = 0.0
    for _ in range(50):
        value = kf.filter(100.0)
        assert previous <= value <= 100.0
        previous = value
    assert previous == pytest.approx(100.0, abs=1e-3)


def test_reset_restores_initial_state() -> None:
    kf = ScalarKalmanFilter()
    kf.filter(5.0)
    kf.filter(7.0)
    kf.reset()
    assert kf.estimate is None
    assert kf.uncertainty == 1.0
    assert kf.filter(3.0) == 3.0


@pytest.mark.parametrize(
    "kwargs",
    [{"process_noise": 0.0}, {"measurement_noise": -1.0}, {"initial_uncertainty": -0.1}],
)
def test_invalid_noise_parameters_raise(kwargs) -> None:
    with pytest.raises(ValueError):
        ScalarKalmanFilter(**kwargs)


def test_axis_filter_bank_filters_each_axis_independently() -> None:
    bank = AxisFilterBank(2)
    assert len(bank) == 2
    assert bank.filter((1.0, 100.0)) == (1.0, 100.0)
    x, y = bank.filter((1.0, 200.0))
    assert x == pytest.approx(1.0)
    assert 100.0 < y < 200.0
    with pytest.raises(ValueError):
        bank.filter((1.0,))
    bank.reset()
    assert bank.filter((4.0, 5.0)) == (4.0, 5.0)
