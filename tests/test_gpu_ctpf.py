import math

import numpy as np
import pytest

from ctpf import CTPF
from gpu_ctpf import GpuCTPF

PARAMETERS = ("term_shape", "term_rate", "user_shape", "user_rate",
              "content_shape", "content_rate", "feedback_shape", "feedback_rate")


@pytest.fixture
def fitted(corpus):
    model = GpuCTPF(corpus, 3, seed=1, backend="numpy")
    model.fit(iterations=10, tol=0.0, vtol=1e-8, silent=True)
    return model


def test_numpy_backend_is_selected(fitted):
    assert fitted.backend == "numpy"


def test_one_epoch_matches_document_loop(corpus):
    host = CTPF(corpus, 3, seed=5)
    device = GpuCTPF(corpus, 3, seed=5, backend="numpy")
    host.fit(iterations=1, viter=1, check_elbo=math.inf, silent=True)
    device.fit(iterations=1, viter=1, check_elbo=math.inf, silent=True)

    for name in PARAMETERS:
        assert np.allclose(getattr(host, name), getattr(device, name)), name
    assert np.allclose(host.scores, device.scores)


def test_allocations_are_distributions(fitted):
    assert fitted.phi.shape == (fitted.flat.n_tokens, 3)
    assert fitted.xi.shape == (fitted.flat.n_ratings, 6)
    assert np.allclose(fitted.phi.sum(axis=1), 1)
    assert np.allclose(fitted.xi.sum(axis=1), 1)
    fitted.check()


def test_elbo_is_monotone(fitted):
    values = np.array([elbo for _, elbo in fitted.elbo_history])

    assert len(values) == 11
    assert np.all(np.diff(values) >= -1e-4 * np.abs(values[:-1]))


def test_host_copy_is_refreshed_after_training(fitted):
    assert fitted._buffers is None
    assert np.all(fitted.term_shape >= fitted.priors["term_shape"])
    assert fitted.term_shape.shape == (3, fitted.V)


def test_rankings_exclude_readers(fitted):
    for d in range(fitted.M):
        readers, _ = fitted.flat.feedback(d)
        assert not set(fitted.recommend_users(d)) & set(readers)


def test_empty_documents_skip_training(empty_corpus):
    model = GpuCTPF(empty_corpus, 2, seed=1, backend="numpy")
    model.fit(silent=True)

    assert model.epochs_run == 0
    model.check()


@pytest.mark.parametrize("backend_name", ["numba", "cupy"])
def test_accelerated_backends_match_numpy(corpus, backend_name):
    try:
        model = GpuCTPF(corpus, 3, seed=2, backend=backend_name)
    except ImportError:
        pytest.skip(f"{backend_name} backend not available in this environment")
    reference = GpuCTPF(corpus, 3, seed=2, backend="numpy")

    model.fit(iterations=3, tol=0.0, silent=True)
    reference.fit(iterations=3, tol=0.0, silent=True)

    for name in PARAMETERS:
        assert np.allclose(getattr(model, name), getattr(reference, name), rtol=1e-6), name


@pytest.mark.parametrize("kwargs", [{"iterations": 0}, {"viter": 0}])
def test_zero_iteration_caps_are_rejected(corpus, kwargs):
    model = GpuCTPF(corpus, 3, seed=1, backend="numpy")

    with pytest.raises(ValueError, match="must be positive"):
        model.fit(silent=True, **kwargs)
