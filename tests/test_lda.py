import math

import numpy as np
import pytest

from corpus import Corpus, Document
from lda import LDA, FilteredLDA
from validation import TopicModelError


def elbo_values(model):
    return np.array([elbo for _, elbo in model.elbo_history])


def assert_non_decreasing(values, rel=1e-4):
    steps = np.diff(values)
    assert np.all(steps >= -rel * np.abs(values[:-1]))


@pytest.fixture
def fitted(corpus):
    model = LDA(corpus, 3, seed=1)
    model.fit(iterations=15, tol=0.0, ntol=1e-8, vtol=1e-8, silent=True)
    return model


def test_fit_keeps_parameters_valid(fitted):
    assert np.allclose(fitted.beta.sum(axis=1), 1)
    assert np.all(fitted.alpha > 0)
    assert np.all(fitted.gamma > 0)
    assert fitted.epochs_run == 15
    fitted.check()


def test_elbo_is_monotone(fitted):
    values = elbo_values(fitted)

    assert len(values) == 16
    assert np.all(np.isfinite(values))
    assert_non_decreasing(values)
    assert values[-1] > values[0]


def test_topics_are_sorted_by_weight(fitted):
    assert len(fitted.topics) == 3
    for k, ranking in enumerate(fitted.topics):
        assert sorted(ranking) == list(range(fitted.V))
        assert np.all(np.diff(fitted.beta[k, ranking]) <= 0)


def test_same_seed_gives_same_model(corpus):
    first = LDA(corpus, 3, seed=7)
    second = LDA(corpus, 3, seed=7)
    first.fit(iterations=3, silent=True)
    second.fit(iterations=3, silent=True)

    assert np.array_equal(first.beta, second.beta)
    assert np.array_equal(first.gamma, second.gamma)


def block_corpus():
    blocks = [[0, 1, 2], [3, 4, 5], [6, 7, 8, 9]]
    docs = [
        Document(blocks[0], counts=[6, 4, 3]),
        Document(blocks[1], counts=[5, 5, 2]),
        Document(blocks[2], counts=[4, 3, 3, 2]),
        Document(blocks[0] + blocks[1], counts=[3, 2, 1, 3, 2, 1]),
        Document(blocks[2] + [2], counts=[5, 2, 2, 3, 1]),
    ]
    return Corpus(docs=docs, vocab={j: f"term{j}" for j in range(10)})


def hellinger(p, q):
    return np.sqrt(0.5 * np.sum((np.sqrt(p) - np.sqrt(q)) ** 2))


def test_round_trip_recovers_topics():
    first = LDA(block_corpus(), 3, seed=11)
    second = LDA(block_corpus(), 3, seed=11)
    first.fit(iterations=30, tol=0.0, silent=True)
    second.fit(iterations=30, tol=0.0, silent=True)

    assert first.epochs_run == 30
    assert [t[0] for t in first.topics] == [t[0] for t in second.topics]
    assert np.array_equal(first.beta, second.beta)

    generated = first.gencorp(200, seed=11)
    assert len(generated) == 200
    assert generated.vocab == first.corp.vocab

    recovered = LDA(generated, 3, seed=11)
    recovered.fit(iterations=30, tol=0.0, silent=True)
    recovered.check()

    for k in range(3):
        match = min(range(3), key=lambda i: hellinger(first.beta[k], recovered.beta[i]))
        assert first.topics[k][0] in recovered.topics[match][:4]


def test_model_does_not_see_later_corpus_changes(corpus):
    model = LDA(corpus, 2, seed=1)
    corpus[0].counts[0] = 1000

    assert model.corp[0].counts[0] != 1000
    model.check()


def test_tolerance_stops_training(corpus):
    model = LDA(corpus, 2, seed=1)
    model.fit(iterations=100, tol=1e6, silent=True)

    assert model.epochs_run == 1


def test_check_elbo_cadence(corpus):
    model = LDA(corpus, 2, seed=1)
    model.fit(iterations=6, tol=0.0, check_elbo=3, silent=True)

    assert [epoch for epoch, _ in model.elbo_history] == [0, 3, 6]


def test_infinite_check_elbo_never_evaluates(corpus):
    model = LDA(corpus, 2, seed=1)
    model.fit(iterations=2, check_elbo=math.inf, silent=True)

    assert model.elbo_history == []
    assert model.elbo == 0.0
    assert model.epochs_run == 2


def test_empty_documents_skip_training(empty_corpus):
    model = LDA(empty_corpus, 2, seed=1)
    beta = model.beta.copy()
    model.fit(iterations=10, silent=True)

    assert np.array_equal(model.beta, beta)
    assert model.epochs_run == 0
    assert model.elbo_history == []
    model.check()


def test_corpus_without_documents():
    model = LDA(Corpus(vocab={0: "a", 1: "b"}), 2, seed=1)
    model.fit(silent=True)

    assert model.gamma.shape == (0, 2)
    assert model.epochs_run == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(tol=-1.0),
        dict(ntol=float("nan")),
        dict(iterations=-1),
        dict(viter=1.5),
        dict(check_elbo=0),
        dict(check_elbo=True),
    ],
)
def test_invalid_training_options(corpus, kwargs):
    model = LDA(corpus, 2, seed=1)

    with pytest.raises(ValueError):
        model.fit(silent=True, **kwargs)


@pytest.mark.parametrize("n_topics", [0, -2, 2.5, True])
def test_invalid_number_of_topics(corpus, n_topics):
    with pytest.raises(ValueError):
        LDA(corpus, n_topics)


def test_corrupted_model_is_rejected(corpus):
    model = LDA(corpus, 2, seed=1)
    model.gamma[0, 0] = np.nan

    with pytest.raises(TopicModelError, match="invalid"):
        model.fit(silent=True)


def test_gencorp_is_reproducible(fitted):
    first = fitted.gencorp(5, seed=3)
    second = fitted.gencorp(5, seed=3)

    assert len(first) == 5
    assert first.vocab == fitted.corp.vocab
    for a, b in zip(first, second):
        assert np.array_equal(a.terms, b.terms)
        assert np.array_equal(a.counts, b.counts)
    first.check()


def test_gendoc_uses_only_known_terms(fitted):
    doc = fitted.gendoc(laplace_smooth=1.0)

    doc.check()
    assert np.all(doc.terms < fitted.V)


def test_generation_rejects_bad_arguments(fitted):
    with pytest.raises(ValueError):
        fitted.gendoc(laplace_smooth=-1)
    with pytest.raises(ValueError):
        fitted.gencorp(0)


def test_training_is_logged(corpus, vbtopics_caplog, monkeypatch):
    model = LDA(corpus, 2, seed=1)
    monkeypatch.setattr(model.logger, "propagate", True)
    model.fit(iterations=2, tol=0.0)

    assert "Training LDA" in vbtopics_caplog.text
    assert "Epoch 2" in vbtopics_caplog.text


class TestFilteredLDA:
    def test_filter_parameters_stay_valid(self, corpus):
        model = FilteredLDA(corpus, 3, seed=1, mixing_rate=0.7)
        model.fit(iterations=8, tol=0.0, ntol=1e-8, vtol=1e-8, silent=True)

        assert np.all((model.tau >= 0) & (model.tau <= 1))
        assert len(model.tau) == model.flat.n_tokens
        assert model.kappa.sum() == pytest.approx(1)
        assert model.eta == 0.7
        assert_non_decreasing(elbo_values(model))
        model.check()

    def test_learned_mixing_rate_is_fraction_of_thematic_tokens(self, corpus):
        model = FilteredLDA(corpus, 3, seed=1, learn_mixing_rate=True)
        model.fit(iterations=3, tol=0.0, silent=True)

        expected = np.dot(model.tau, model.flat.counts) / model.C.sum()
        assert model.eta == pytest.approx(expected)

    def test_background_only_documents(self):
        corp = Corpus(docs=[Document([0, 1], counts=[3, 1]), Document([1, 2])])
        model = FilteredLDA(corp, 2, seed=1, mixing_rate=0.0)
        model.fit(iterations=3, silent=True)

        assert np.all(model.tau == 0)
        assert model.kappa == pytest.approx(np.array([3, 2, 1]) / 6)

    def test_invalid_mixing_rate(self, corpus):
        with pytest.raises(ValueError):
            FilteredLDA(corpus, 2, mixing_rate=1.5)

    def test_generated_documents_are_valid(self, corpus):
        model = FilteredLDA(corpus, 2, seed=1)
        model.fit(iterations=2, silent=True)

        for doc in model.gencorp(3, seed=0):
            doc.check()
