import logging

import numpy as np
import pytest

from corpus import Corpus, Document


def random_corpus(seed, n_docs=20, n_terms=30, n_users=8, max_terms=12, max_readers=4):
    rng = np.random.default_rng(seed)

    docs = []
    for _ in range(n_docs):
        terms = rng.choice(n_terms, size=rng.integers(1, max_terms + 1), replace=False)
        readers = rng.choice(n_users, size=rng.integers(0, max_readers + 1), replace=False)
        docs.append(
            Document(
                terms,
                counts=rng.integers(1, 6, size=len(terms)),
                readers=readers,
                ratings=rng.integers(1, 4, size=len(readers)),
            )
        )

    return Corpus(
        docs=docs,
        vocab={j: f"term{j}" for j in range(n_terms)},
        users={u: f"user{u}" for u in range(n_users)},
    )


@pytest.fixture
def corpus():
    return random_corpus(1)


@pytest.fixture
def make_corpus():
    return random_corpus


@pytest.fixture
def empty_corpus():
    return Corpus(docs=[Document(), Document()], vocab={0: "a", 1: "b"}, users={0: "u"})


@pytest.fixture
def vbtopics_caplog(caplog, monkeypatch):
    """caplog that also sees records from the non-propagating package logger."""
    monkeypatch.setattr(logging.getLogger("vbtopics"), "propagate", True)
    caplog.set_level(logging.DEBUG, logger="vbtopics")
    return caplog
