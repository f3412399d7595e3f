import numpy as np
import pandas as pd
import pytest

from ctpf import CTPF
from data_handler import DataHandler
from lda import LDA


def terms_frame():
    return pd.DataFrame(
        {
            "doc": ["d2", "d1", "d1", "d3", "d3", "d2"],
            "word": ["apple", "pear", "apple", "plum", "pear", "fig"],
            "n": [2, 1, 4, 1, 3, 5],
        }
    )


def ratings_frame():
    return pd.DataFrame(
        {
            "doc": ["d1", "d1", "d3", "d2"],
            "who": ["u2", "u1", "u1", "u3"],
            "stars": [1, 2, 5, 3],
        }
    )


def test_labels_are_mapped_in_sorted_order():
    dh = DataHandler()
    corp = dh.format_corpus(terms_frame(), ratings_frame())
    docs_dict, terms_dict, users_dict = dh.return_dicts()

    assert docs_dict == {"d1": 0, "d2": 1, "d3": 2}
    assert terms_dict == {"apple": 0, "fig": 1, "pear": 2, "plum": 3}
    assert users_dict == {"u1": 0, "u2": 1, "u3": 2}
    assert corp.vocab[1] == "fig"
    assert corp.users[2] == "u3"
    corp.check()


def test_documents_are_built_from_rows():
    corp = DataHandler().format_corpus(terms_frame(), ratings_frame())

    assert len(corp) == 3
    assert np.array_equal(corp[0].terms, [0, 2])
    assert np.array_equal(corp[0].counts, [4, 1])
    assert np.array_equal(corp[0].readers, [0, 1])
    assert np.array_equal(corp[0].ratings, [2, 1])
    assert corp[1].title == "d2"


def test_terms_only_corpus_has_no_users():
    corp = DataHandler().format_corpus(terms_frame())

    assert corp.n_users == 0
    assert all(len(doc.readers) == 0 for doc in corp)


def test_duplicate_pairs_are_summed(vbtopics_caplog):
    frame = pd.concat([terms_frame(), pd.DataFrame({"doc": ["d1"], "word": ["pear"], "n": [2]})])
    corp = DataHandler().format_corpus(frame)

    assert np.array_equal(corp[0].counts, [4, 3])
    assert "Summing" in vbtopics_caplog.text


def test_non_positive_counts_are_dropped(vbtopics_caplog):
    frame = terms_frame()
    frame.loc[0, "n"] = 0
    corp = DataHandler().format_corpus(frame)

    assert np.array_equal(corp[1].terms, [1])
    assert "non-positive count" in vbtopics_caplog.text


def test_fractional_counts_are_dropped(vbtopics_caplog):
    frame = terms_frame()
    frame["n"] = frame["n"].astype(float)
    frame.loc[0, "n"] = 2.7
    corp = DataHandler().format_corpus(frame)

    assert np.array_equal(corp[1].terms, [1])
    assert np.array_equal(corp[1].counts, [5])
    assert "non-integer count" in vbtopics_caplog.text


def test_ratings_without_terms_are_dropped(vbtopics_caplog):
    ratings = pd.concat([ratings_frame(), pd.DataFrame({"doc": ["d9"], "who": ["u4"], "stars": [1]})])
    dh = DataHandler()
    dh.format_corpus(terms_frame(), ratings)

    assert "d9" in vbtopics_caplog.text
    assert "u4" not in dh.users_dict


def test_missing_values_abort():
    frame = terms_frame()
    frame.loc[2, "word"] = None

    with pytest.raises(AssertionError):
        DataHandler().format_corpus(frame)


def test_return_topics():
    dh = DataHandler()
    model = LDA(dh.format_corpus(terms_frame()), 2, seed=1)
    model.fit(iterations=2, silent=True)
    topics = dh.return_topics(model, top_n=3)

    assert list(topics.columns) == ["topic_0", "topic_1"]
    assert topics.shape == (3, 2)
    assert set(topics["topic_0"]) <= {"apple", "fig", "pear", "plum"}


def test_return_recommendations():
    dh = DataHandler()
    model = CTPF(dh.format_corpus(terms_frame(), ratings_frame()), 2, seed=1)
    model.fit(iterations=2, silent=True)
    drecs, urecs = dh.return_recommendations(model)

    assert sorted(drecs["d1"]) == ["u3"]
    assert sorted(urecs["u1"]) == ["d2"]


def test_return_recommendations_before_fit():
    dh = DataHandler()
    model = CTPF(dh.format_corpus(terms_frame(), ratings_frame()), 2, seed=1)

    with pytest.raises(AssertionError):
        dh.return_recommendations(model)
