import numpy as np
from scipy import stats

from helpers import dirichlet_entropy, gamma_entropy


def test_dirichlet_entropy_matches_scipy():
    gamma = np.array([0.3, 1.5, 4.0, 2.2])

    assert np.isclose(dirichlet_entropy(gamma), stats.dirichlet(gamma).entropy())


def test_gamma_entropy_matches_scipy():
    shape = np.array([[0.1, 1.0], [2.5, 40.0]])
    rate = np.array([0.5, 3.0])

    expected = stats.gamma.entropy(shape, scale=1 / rate)
    assert np.allclose(gamma_entropy(shape, rate), expected)
