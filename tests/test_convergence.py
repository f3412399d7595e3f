import logging
import math

import pytest

from convergence import ElboMonitor, validate_training_args


class FakeModel:
    def __init__(self, values):
        self.values = iter(values)
        self.elbo = 0.0
        self.elbo_history = []

    def compute_elbo(self):
        return next(self.values)


def monitor(values, check_elbo=1, tol=0.5, iterations=10):
    model = FakeModel(values)
    return model, ElboMonitor(model, check_elbo, tol, iterations, logging.getLogger("vbtopics"))


def test_valid_arguments_pass():
    validate_training_args(10, 1.0, 100, 1e-4, 5, 1e-4, 1)
    validate_training_args(0, 0.0, 0, 0.0, 0, 0.0, math.inf)


@pytest.mark.parametrize(
    "args",
    [
        (10, -1.0, 100, 1e-4, 5, 1e-4, 1),
        (10, 1.0, 100, float("nan"), 5, 1e-4, 1),
        (-1, 1.0, 100, 1e-4, 5, 1e-4, 1),
        (10, 1.0, 2.0, 1e-4, 5, 1e-4, 1),
        (10, 1.0, 100, 1e-4, False, 1e-4, 1),
        (10, 1.0, 100, 1e-4, 5, 1e-4, 0),
        (10, 1.0, 100, 1e-4, 5, 1e-4, 2.5),
        (10, 1.0, 100, 1e-4, 5, 1e-4, -math.inf),
    ],
)
def test_invalid_arguments_raise(args):
    with pytest.raises(ValueError):
        validate_training_args(*args)


def test_monitor_stops_when_change_is_small():
    model, mon = monitor([-100.0, -50.0, -49.8])

    assert mon.start() == -100.0
    assert not mon.step(1)
    assert mon.step(2)
    assert model.elbo_history == [(0, -100.0), (1, -50.0), (2, -49.8)]
    assert model.elbo == -49.8


def test_monitor_respects_cadence():
    model, mon = monitor([-10.0, -5.0], check_elbo=3)

    mon.start()
    assert not mon.step(1)
    assert not mon.step(2)
    assert not mon.step(3)
    assert [epoch for epoch, _ in model.elbo_history] == [0, 3]


def test_monitor_is_disabled_when_no_check_fits_in_the_run():
    model, mon = monitor([], check_elbo=5, iterations=4)

    assert not mon.enabled
    assert mon.start() is None
    assert not mon.step(5)
    assert model.elbo_history == []


def test_monitor_never_checks_with_infinite_cadence():
    model, mon = monitor([], check_elbo=math.inf)

    assert not mon.enabled
    assert not mon.step(1)
