import numpy as np
import pytest

from ctm import CTM, FilteredCTM
from helpers import is_positive_definite
from validation import TopicModelError


def elbo_values(model):
    return np.array([elbo for _, elbo in model.elbo_history])


@pytest.fixture
def fitted(corpus):
    model = CTM(corpus, 3, seed=1)
    model.fit(iterations=10, tol=0.0, ntol=1e-8, vtol=1e-8, silent=True)
    return model


def test_fit_keeps_parameters_valid(fitted):
    assert np.allclose(fitted.beta.sum(axis=1), 1)
    assert is_positive_definite(fitted.sigma)
    assert np.allclose(fitted.sigma @ fitted.invsigma, np.eye(3), atol=1e-6)
    assert np.all(fitted.vsq > 0)
    assert np.all(np.isfinite(fitted.lam))
    fitted.check()


def test_prior_is_fitted_to_posteriors(fitted):
    dev = fitted.lam - fitted.lam.mean(axis=0)
    sigma = (np.diag(fitted.vsq.sum(axis=0)) + dev.T @ dev) / fitted.M

    assert fitted.mu == pytest.approx(fitted.lam.mean(axis=0))
    assert np.allclose(fitted.sigma, sigma)


def test_elbo_is_monotone(fitted):
    values = elbo_values(fitted)

    assert np.all(np.isfinite(values))
    assert np.all(np.diff(values) >= -1e-4 * np.abs(values[:-1]))
    assert values[-1] > values[0]


def test_same_seed_gives_same_model(corpus):
    first = CTM(corpus, 2, seed=4)
    second = CTM(corpus, 2, seed=4)
    first.fit(iterations=2, silent=True)
    second.fit(iterations=2, silent=True)

    assert np.array_equal(first.lam, second.lam)
    assert np.array_equal(first.sigma, second.sigma)


def test_non_positive_definite_covariance_is_rejected(corpus):
    model = CTM(corpus, 2, seed=1)
    model.sigma = np.array([[1.0, 2.0], [2.0, 1.0]])

    with pytest.raises(TopicModelError):
        model.check()


def test_gencorp(fitted):
    corp = fitted.gencorp(4, laplace_smooth=0.5, seed=2)

    assert len(corp) == 4
    corp.check()


def test_empty_documents_skip_training(empty_corpus):
    model = CTM(empty_corpus, 2, seed=1)
    model.fit(silent=True)

    assert model.epochs_run == 0
    model.check()


def test_filtered_ctm(corpus):
    model = FilteredCTM(corpus, 3, seed=1, mixing_rate=0.8, learn_mixing_rate=True)
    model.fit(iterations=5, tol=0.0, ntol=1e-8, vtol=1e-8, silent=True)
    values = elbo_values(model)

    assert 0 <= model.eta <= 1
    assert np.all((model.tau >= 0) & (model.tau <= 1))
    assert np.all(np.diff(values) >= -1e-4 * np.abs(values[:-1]))
    model.check()
